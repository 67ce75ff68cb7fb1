"""
Payment Gateways API Endpoints

Diagnostic listing of registered gateways and the platform default.
"""
from fastapi import APIRouter, Depends

from ..dependencies import get_registry
from ..models.checkout import GatewayListResponse, GatewaySummary
from ..services.gateways.registry import GatewayRegistry

router = APIRouter()


@router.get("", response_model=GatewayListResponse)
async def list_gateways_endpoint(
    registry: GatewayRegistry = Depends(get_registry)
) -> GatewayListResponse:
    """
    List every registered gateway.

    Returns:
        {"defaultGateway": "stripe", "gateways": [{name, displayName, isActive, supportedMethods, isDefault}]}
    """
    default_name = registry.active_gateway_name
    return GatewayListResponse(
        default_gateway=default_name,
        gateways=[
            GatewaySummary(
                name=info.name,
                display_name=info.display_name,
                is_active=info.is_active,
                supported_methods=info.supported_methods,
                is_default=info.name == default_name,
            )
            for info in registry.all_info()
        ],
    )
