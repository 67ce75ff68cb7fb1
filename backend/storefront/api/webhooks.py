"""
Stripe Webhooks API Endpoint

Receives processor events. The raw body is read untouched because the
signature covers the exact bytes sent.

Responses:
    200 {"received": true} once the event is applied (or was already applied)
    400 missing/invalid signature or malformed event
    500 handler failure, so the processor redelivers
"""
import logging
from typing import Dict

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import Settings
from ..db.init_db import get_db
from ..dependencies import get_notifier, get_settings, get_vault
from ..services.encryption import CredentialVault
from ..services.notifier import IntegratorNotifier
from ..services.webhook_service import process_webhook

logger = logging.getLogger(__name__)

router = APIRouter()


async def stripe_webhook_endpoint(
    request: Request,
    db: AsyncSession = Depends(get_db),
    vault: CredentialVault = Depends(get_vault),
    notifier: IntegratorNotifier = Depends(get_notifier),
    app_settings: Settings = Depends(get_settings)
) -> Dict[str, bool]:
    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    logger.info(f"Stripe webhook received: {len(payload)} bytes")

    outcome = await process_webhook(
        db,
        vault,
        notifier,
        payload,
        signature,
        app_settings.stripe_webhook_secret,
    )
    logger.info(
        f"Webhook {outcome.event_id} ({outcome.event_type}) complete: "
        f"duplicate={outcome.duplicate}, notifications={len(outcome.notifications)}"
    )
    return {"received": True}


# Same handler on the current and legacy paths
router.add_api_route("/v1/stripe/webhooks", stripe_webhook_endpoint, methods=["POST"])
router.add_api_route("/stripe/webhooks", stripe_webhook_endpoint, methods=["POST"])
