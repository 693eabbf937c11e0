"""
Tenant Enforcement Layer

Organization scoping and role checks for the grading engine.

Identity is delegated: the caller hands in an Actor (id, organization_id,
role) already authenticated elsewhere. These guards only decide whether
that actor may touch a given organization or submission and surface a
refusal as AuthorizationError.
"""
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from grading_engine.errors import AuthorizationError, ErrorCode


# Role Constants (Deterministic string comparisons)
ROLE_SUPER_ADMIN = "superadmin"
ROLE_ADMIN = "admin"
ROLE_PROFESSOR = "professor"
ROLE_STUDENT = "student"

ALLOWED_ROLES = {
    ROLE_SUPER_ADMIN,
    ROLE_ADMIN,
    ROLE_PROFESSOR,
    ROLE_STUDENT,
}

# Roles allowed to author rubrics and grade
STAFF_ROLES = {ROLE_SUPER_ADMIN, ROLE_ADMIN, ROLE_PROFESSOR}

# Roles that may grade any submission of their organization
ORGANIZATION_WIDE_ROLES = {ROLE_SUPER_ADMIN, ROLE_ADMIN}


@dataclass(frozen=True)
class Actor:
    """Authenticated caller as provided by the identity collaborator."""
    id: int
    organization_id: Optional[int]
    role: str

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Actor":
        """Build from a user dictionary such as an auth payload."""
        organization_id = data.get("organization_id")
        return cls(
            id=int(data["id"]),
            organization_id=int(organization_id) if organization_id is not None else None,
            role=str(data.get("role", ROLE_STUDENT)),
        )

    @property
    def is_super_admin(self) -> bool:
        return self.role == ROLE_SUPER_ADMIN


def require_organization_scope(organization_id: int, actor: Actor) -> None:
    """
    Verify the actor belongs to organization_id.

    super_admin bypass allowed.

    Raises:
        AuthorizationError: organization mismatch or actor without organization
    """
    if actor.is_super_admin:
        return

    if actor.organization_id is None or int(actor.organization_id) != int(organization_id):
        raise AuthorizationError(
            "Actor does not belong to this organization",
            code=ErrorCode.SCOPE_VIOLATION,
            details={"organization_id": organization_id},
        )


def require_staff(actor: Actor) -> None:
    """Verify the actor may author rubrics and grade."""
    if actor.role not in STAFF_ROLES:
        raise AuthorizationError(
            f"Role '{actor.role}' cannot manage rubrics or grade submissions",
            details={"role": actor.role},
        )


def require_rubric_manager(organization_id: int, actor: Actor) -> None:
    """Staff member of the rubric's organization."""
    require_staff(actor)
    require_organization_scope(organization_id, actor)


def can_grade(submission: Any, actor: Actor) -> bool:
    """
    Rules:
    - super_admin grades anything
    - admin grades any submission of their organization
    - professor grades submissions assigned to them in their organization
    """
    if actor.is_super_admin:
        return True
    if actor.role not in STAFF_ROLES:
        return False
    if actor.organization_id is None or int(actor.organization_id) != int(submission.organization_id):
        return False
    if actor.role in ORGANIZATION_WIDE_ROLES:
        return True
    return int(submission.instructor_id) == int(actor.id)


def require_grading_rights(submission: Any, actor: Actor) -> None:
    """
    Raises:
        AuthorizationError: actor may not grade this submission
    """
    if not can_grade(submission, actor):
        raise AuthorizationError(
            "Actor is not allowed to grade this submission",
            details={"submission_id": getattr(submission, "id", None)},
        )
