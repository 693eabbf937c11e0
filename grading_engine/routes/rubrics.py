"""
Rubric Store Routes.

CRUD over an organization's grading rubrics plus default designation,
duplication and starter-rubric seeding.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from grading_engine.config.feature_flags import feature_flags
from grading_engine.core.tenant_guard import STAFF_ROLES, Actor, require_organization_scope
from grading_engine.database import get_db
from grading_engine.routes.dependencies import check_rubric_api_enabled, get_current_actor
from grading_engine.schemas.rubric import RubricCreate, RubricResponse, RubricUpdate
from grading_engine.services.rubric_service import RubricService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/rubrics",
    tags=["Rubrics"],
    dependencies=[Depends(check_rubric_api_enabled)],
)


class RubricIdResponse(BaseModel):
    success: bool = True
    rubric_id: int


class RubricActionResponse(BaseModel):
    success: bool = True
    message: str


@router.get("", response_model=List[RubricResponse])
async def list_rubrics(
    organization_id: int = Query(..., description="Owning organization"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    """
    List the organization's rubrics, default first, then newest first.

    With FEATURE_AUTO_SEED_DEFAULT_RUBRIC on, a staff member listing an
    organization that has no rubric yet gets the starter rubric seeded.
    """
    require_organization_scope(organization_id, actor)

    if feature_flags.FEATURE_AUTO_SEED_DEFAULT_RUBRIC and actor.role in STAFF_ROLES:
        await RubricService.ensure_default_rubric(db, organization_id, actor)

    return await RubricService.get_by_organization(db, organization_id)


@router.get("/default", response_model=Optional[RubricResponse])
async def get_default_rubric(
    organization_id: int = Query(...),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    require_organization_scope(organization_id, actor)
    return await RubricService.get_default(db, organization_id)


@router.get("/{rubric_id}", response_model=RubricResponse)
async def get_rubric(
    rubric_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    rubric = await RubricService.get_by_id(db, rubric_id)
    require_organization_scope(rubric.organization_id, actor)
    return rubric


@router.post("", response_model=RubricIdResponse, status_code=status.HTTP_201_CREATED)
async def create_rubric(
    request: RubricCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    """Create a rubric. Staff only."""
    rubric_id = await RubricService.create(
        db,
        organization_id=request.organization_id,
        name=request.name,
        description=request.description,
        is_default=request.is_default,
        criteria=request.criteria,
        actor=actor,
    )
    return RubricIdResponse(rubric_id=rubric_id)


@router.patch("/{rubric_id}", response_model=RubricActionResponse)
async def update_rubric(
    rubric_id: int,
    request: RubricUpdate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    """Partial update; omitted fields stay unchanged."""
    await RubricService.update(db, rubric_id, request, actor)
    return RubricActionResponse(message="Rubric updated")


@router.delete("/{rubric_id}", response_model=RubricActionResponse)
async def delete_rubric(
    rubric_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    """Delete a rubric. The organization's default cannot be deleted."""
    await RubricService.remove(db, rubric_id, actor)
    return RubricActionResponse(message="Rubric removed")


@router.post("/{rubric_id}/default", response_model=RubricActionResponse)
async def set_default_rubric(
    rubric_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    await RubricService.set_as_default(db, rubric_id, actor)
    return RubricActionResponse(message="Rubric set as default")


@router.post("/{rubric_id}/duplicate", response_model=RubricIdResponse, status_code=status.HTTP_201_CREATED)
async def duplicate_rubric(
    rubric_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    new_id = await RubricService.duplicate(db, rubric_id, actor)
    return RubricIdResponse(rubric_id=new_id)


@router.post("/seed-default", response_model=RubricIdResponse, status_code=status.HTTP_201_CREATED)
async def seed_default_rubric(
    organization_id: int = Query(...),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    """Create the starter rubric as the organization's default."""
    rubric_id = await RubricService.create_default_rubric(db, organization_id, actor)
    return RubricIdResponse(rubric_id=rubric_id)
