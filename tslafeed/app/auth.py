"""FastAPI dependency guarding the admin endpoints."""

import logging
import secrets

from fastapi import HTTPException, Request, status

logger = logging.getLogger(__name__)


def require_admin_secret(request: Request) -> None:
    """Require the shared admin secret header (raises 401 otherwise)."""
    from ..config.settings import settings

    provided = request.headers.get(settings.admin_header, "")
    expected = settings.generate_secret
    if not expected or not secrets.compare_digest(provided.encode(), expected.encode()):
        logger.warning("[API] Rejected admin request to %s", request.url.path)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )
