"""
Provider Service

Integrator registration and lookup. Gateway secrets are validated, then
encrypted with the credential vault before they reach the database, and are
only decrypted in memory when a processor call or signature check needs them.
"""
import logging
import secrets
import uuid
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.models import ProviderModel, utcnow
from ..exceptions import CredentialValidationError, ProcessorError
from ..models.providers import ProviderRegistration
from .encryption import CredentialVault, validate_stripe_credentials, get_key_mode, mask_key
from .gateways.base import GatewayCredentials

logger = logging.getLogger(__name__)

ORDER_ID_PLACEHOLDER = "{orderId}"


def generate_api_key() -> str:
    return f"prov_{secrets.token_hex(24)}"


def build_redirect_url(template: Optional[str], order_id: str) -> Optional[str]:
    """Substitute {orderId} in an integrator redirect template."""
    if not template:
        return None
    return template.replace(ORDER_ID_PLACEHOLDER, order_id)


# ============================================================================
# Registration
# ============================================================================

async def register_provider(
    db: AsyncSession,
    vault: CredentialVault,
    registration: ProviderRegistration
) -> ProviderModel:
    """
    Create an integrator with a fresh API key.

    Args:
        db: Database session
        vault: Credential vault used to encrypt secrets
        registration: Validated registration input

    Returns:
        Stored ProviderModel; its `api_key` is the only copy handed back

    Raises:
        CredentialValidationError: own credentials are incomplete, malformed
            or mix test and live keys
    """
    secret_key = registration.stripe_secret_key or None
    publishable_key = registration.stripe_publishable_key or None
    webhook_secret = registration.stripe_webhook_secret or None

    if registration.use_own_gateway_credentials:
        if not (secret_key and publishable_key):
            raise CredentialValidationError([
                "Secret key and publishable key are required when using own gateway credentials"
            ])
        validate_stripe_credentials(secret_key, publishable_key, webhook_secret)
        key_mode = get_key_mode(secret_key)
    else:
        secret_key = publishable_key = webhook_secret = None
        key_mode = None

    provider = ProviderModel(
        id=str(uuid.uuid4()),
        name=registration.name,
        slug=registration.slug,
        api_key=generate_api_key(),
        payment_gateway=registration.payment_gateway,
        use_own_gateway_credentials=registration.use_own_gateway_credentials,
        stripe_secret_key=vault.encrypt(secret_key) if secret_key else None,
        stripe_publishable_key=publishable_key,
        stripe_webhook_secret=vault.encrypt(webhook_secret) if webhook_secret else None,
        stripe_key_mode=key_mode,
        status=registration.status,
        webhook_url=registration.webhook_url,
        success_redirect_url=registration.success_redirect_url,
        cancel_redirect_url=registration.cancel_redirect_url,
        description=registration.description,
    )
    db.add(provider)
    await db.commit()
    await db.refresh(provider)

    logger.info(
        f"Registered provider: {provider.id} ({provider.slug}), gateway={provider.payment_gateway}, "
        f"own_credentials={provider.use_own_gateway_credentials}, "
        f"secret_key={mask_key(secret_key) if secret_key else None}"
    )
    return provider


# ============================================================================
# Lookup
# ============================================================================

async def get_provider_by_api_key(db: AsyncSession, api_key: str) -> Optional[ProviderModel]:
    if not api_key:
        return None
    result = await db.execute(
        select(ProviderModel).where(ProviderModel.api_key == api_key)
    )
    return result.scalar_one_or_none()


async def touch_provider(db: AsyncSession, provider: ProviderModel) -> None:
    """Record that the integrator just used its API key (flushed, not committed)."""
    provider.last_used_at = utcnow()
    await db.flush()


def get_provider_credentials(
    vault: CredentialVault,
    provider: Optional[ProviderModel]
) -> Optional[GatewayCredentials]:
    """
    Decrypted gateway credentials for an integrator that brings its own account.

    Returns:
        None when the platform account should be used

    Raises:
        ProcessorError: the stored secret key no longer decrypts
    """
    if provider is None or not provider.use_own_gateway_credentials:
        return None

    secret_key = vault.decrypt(provider.stripe_secret_key or "")
    if provider.stripe_secret_key and not secret_key:
        logger.error(f"Stored secret key for provider {provider.id} could not be decrypted")
        raise ProcessorError("Payment processor credentials are unavailable")

    return GatewayCredentials(
        stripe_secret_key=secret_key or None,
        stripe_publishable_key=provider.stripe_publishable_key or None,
        stripe_webhook_secret=vault.decrypt(provider.stripe_webhook_secret or "") or None,
    )


async def list_provider_webhook_secrets(db: AsyncSession, vault: CredentialVault) -> List[str]:
    """Decrypted signing secrets of every integrator with its own processor account."""
    result = await db.execute(
        select(ProviderModel.id, ProviderModel.stripe_webhook_secret).where(
            ProviderModel.use_own_gateway_credentials.is_(True),
            ProviderModel.stripe_webhook_secret.is_not(None),
        )
    )
    webhook_secrets = []
    for provider_id, encrypted in result.all():
        secret = vault.decrypt(encrypted)
        if secret:
            webhook_secrets.append(secret)
        else:
            logger.warning(f"Skipping undecryptable webhook secret for provider {provider_id}")
    return webhook_secrets
