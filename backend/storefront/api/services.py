"""
Services API Endpoints

Read-only catalog lookup used by the checkout page.
"""
import json
import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.init_db import get_db
from ..exceptions import ServiceNotFoundError
from ..models.checkout import ServiceResponse
from ..services.payment_service import get_service

logger = logging.getLogger(__name__)

router = APIRouter()


def _feature_list(raw: str) -> List[str]:
    """Features are stored as a JSON list of strings or {"feature": str} objects."""
    if not raw:
        return []
    try:
        items = json.loads(raw)
    except ValueError:
        logger.warning("Service features column is not valid JSON")
        return []
    features = []
    for item in items if isinstance(items, list) else []:
        if isinstance(item, dict):
            item = item.get("feature")
        if item:
            features.append(str(item))
    return features


@router.get("/{id_or_slug}", response_model=ServiceResponse, response_model_exclude_none=True)
async def get_service_endpoint(
    id_or_slug: str,
    db: AsyncSession = Depends(get_db)
) -> ServiceResponse:
    """
    Get display fields for a service by id or slug.

    Example:
        GET /api/services/web-audit
    """
    service = await get_service(db, id_or_slug)
    if service is None:
        raise ServiceNotFoundError()

    return ServiceResponse(
        id=service.id,
        title=service.title,
        description=service.description or "",
        price=float(service.price),
        price_unit=service.price_unit,
        icon=service.icon,
        slug=service.slug,
        features=_feature_list(service.features),
    )
