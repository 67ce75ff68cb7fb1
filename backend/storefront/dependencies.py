"""
FastAPI Dependencies

Long-lived collaborators (gateway registry, credential vault, integrator
notifier) are built once in the application lifespan and stored on
app.state; handlers receive them through these dependencies so tests can
override them.
"""
from fastapi import Request

from .config import Settings, settings
from .services.encryption import CredentialVault
from .services.gateways.registry import GatewayRegistry
from .services.notifier import IntegratorNotifier


def get_settings() -> Settings:
    return settings


def get_registry(request: Request) -> GatewayRegistry:
    return request.app.state.registry


def get_vault(request: Request) -> CredentialVault:
    return request.app.state.vault


def get_notifier(request: Request) -> IntegratorNotifier:
    return request.app.state.notifier
