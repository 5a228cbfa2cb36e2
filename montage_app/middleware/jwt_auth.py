"""
JWT Auth Middleware — resolves the viewer of every /api/v1 request.

Sets ``g.viewer`` (a ``Viewer``), ``g.viewer_id`` and ``g.viewer_roles``.

    Authorization: Bearer <token>  →  viewer from the token's sub/roles
    no / invalid token             →  401 when API_AUTH_ENABLED is "true",
                                      otherwise the anonymous viewer
                                      (no roles, unrestricted scope)
"""

import logging

import jwt as pyjwt
from flask import current_app, g, request

from montage_app.services.jwt_service import decode_access_token
from montage_app.services.montage_service import ANONYMOUS, Viewer
from montage_app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
)


def _auth_enabled() -> bool:
    return str(current_app.config.get("API_AUTH_ENABLED", "true")).lower() == "true"


def viewer_from_payload(payload: dict) -> Viewer:
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise pyjwt.InvalidTokenError("sub must be a person id") from None
    roles = payload.get("roles") or []
    if not isinstance(roles, list):
        raise pyjwt.InvalidTokenError("roles must be a list")
    return Viewer(user_id=user_id, roles=tuple(str(r) for r in roles))


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.viewer = ANONYMOUS
        g.viewer_id = None
        g.viewer_roles = ()

        path = request.path
        if not path.startswith("/api/v1/"):
            return None
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return None

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            if _auth_enabled():
                return api_error(E.UNAUTHENTICATED, "Authentication required")
            return None

        token = auth_header[7:]  # Strip "Bearer "
        try:
            viewer = viewer_from_payload(decode_access_token(token))
        except pyjwt.ExpiredSignatureError:
            logger.info("Rejected expired token on %s", path)
            if _auth_enabled():
                return api_error(E.UNAUTHENTICATED, "Token expired")
            return None
        except pyjwt.InvalidTokenError as exc:
            logger.info("Rejected invalid token on %s: %s", path, exc)
            if _auth_enabled():
                return api_error(E.UNAUTHENTICATED, "Invalid token")
            return None

        g.viewer = viewer
        g.viewer_id = viewer.user_id
        g.viewer_roles = viewer.roles
        return None
