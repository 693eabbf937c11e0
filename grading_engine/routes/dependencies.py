"""
Request-scoped dependencies shared by the routers.

Identity is resolved upstream; the gateway forwards the authenticated
caller as X-Actor-Id / X-Organization-Id / X-Actor-Role headers.
"""
from typing import Optional

from fastapi import Header, HTTPException, status

from grading_engine.config.feature_flags import feature_flags
from grading_engine.core.tenant_guard import ALLOWED_ROLES, Actor
from grading_engine.errors import AuthorizationError, ErrorCode


async def get_current_actor(
    x_actor_id: Optional[int] = Header(None),
    x_organization_id: Optional[int] = Header(None),
    x_actor_role: Optional[str] = Header(None),
) -> Actor:
    """Build the Actor from gateway headers."""
    if x_actor_id is None or not x_actor_role:
        raise AuthorizationError(
            "Missing actor identity headers",
            code=ErrorCode.FORBIDDEN,
        )
    role = x_actor_role.strip().lower()
    if role not in ALLOWED_ROLES:
        raise AuthorizationError(
            f"Unknown actor role '{x_actor_role}'",
            details={"role": x_actor_role},
        )
    return Actor(id=x_actor_id, organization_id=x_organization_id, role=role)


def check_rubric_api_enabled():
    """Check if the rubric endpoints are enabled."""
    if not feature_flags.FEATURE_RUBRIC_API:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Rubric API is disabled"
        )


def check_grading_api_enabled():
    """Check if the grading endpoints are enabled."""
    if not feature_flags.FEATURE_GRADING_API:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Grading API is disabled"
        )
