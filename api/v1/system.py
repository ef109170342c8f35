"""
System endpoints.

Health checks and system status.
"""

from fastapi import APIRouter

from identity import __version__
from ..deps import ServicesDep

router = APIRouter()


@router.get("/status")
def get_status(services: ServicesDep):
    """
    Health check endpoint.

    Returns system status for Docker healthcheck.
    """
    config = services.config
    return {
        "status": "healthy",
        "service": "identity-api",
        "version": __version__,
        "storage": config.storage.backend,
        "require_verification": config.auth.require_verification,
        "verification_channel": config.auth.verification_channel
    }
