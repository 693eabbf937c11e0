"""
Rubric Store Service.

Owns grading rubrics and the single-default-per-organization invariant.

Default designation (create/update with is_default, set_as_default) runs
as one transaction: the organization's rubric rows are read with
FOR UPDATE, every other default is cleared and flushed, then the target
is marked and the transaction commits. The partial unique index on
grading_rubrics rejects any commit that would still leave two defaults;
that conflict is reported as InvariantViolationError and not retried.
"""
import copy
import logging
import math
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from pydantic import ValidationError as SchemaError
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from grading_engine.core.tenant_guard import Actor, require_rubric_manager
from grading_engine.errors import (
    APIError, ErrorCode, InvariantViolationError, NotFoundError, ValidationError
)
from grading_engine.orm.base import utcnow
from grading_engine.orm.grading_rubric import GradingRubric
from grading_engine.schemas.rubric import Criterion, RubricUpdate

logger = logging.getLogger(__name__)

CriterionInput = Union[Criterion, Mapping[str, Any]]

COPY_SUFFIX = " (Copy)"

UPDATABLE_FIELDS = {"name", "description", "is_default", "criteria"}

# Starter rubric seeded for every new organization.
# Criteria total 100 points; level points are percentages of max_points.
DEFAULT_RUBRIC_NAME = "Rubrica Padrão"
DEFAULT_RUBRIC_DESCRIPTION = "Rubrica de avaliação padrão para questões dissertativas"
DEFAULT_RUBRIC_CRITERIA: List[Dict[str, Any]] = [
    {
        "name": "Compreensão do Conteúdo",
        "description": "Demonstra entendimento do assunto",
        "max_points": 40,
        "levels": [
            {"label": "Excelente", "points": 100, "description": "Demonstra compreensão completa e profunda"},
            {"label": "Bom", "points": 75, "description": "Demonstra boa compreensão com pequenas lacunas"},
            {"label": "Regular", "points": 50, "description": "Demonstra compreensão básica com várias lacunas"},
            {"label": "Insuficiente", "points": 25, "description": "Demonstra pouca ou nenhuma compreensão"},
        ],
    },
    {
        "name": "Clareza e Organização",
        "description": "Apresenta ideias de forma clara e organizada",
        "max_points": 30,
        "levels": [
            {"label": "Excelente", "points": 100, "description": "Texto muito claro, bem estruturado e coeso"},
            {"label": "Bom", "points": 73, "description": "Texto claro e organizado com pequenos problemas"},
            {"label": "Regular", "points": 50, "description": "Texto com problemas de clareza e organização"},
            {"label": "Insuficiente", "points": 27, "description": "Texto confuso e desorganizado"},
        ],
    },
    {
        "name": "Uso de Exemplos",
        "description": "Utiliza exemplos relevantes para ilustrar pontos",
        "max_points": 20,
        "levels": [
            {"label": "Excelente", "points": 100, "description": "Exemplos muito relevantes e bem aplicados"},
            {"label": "Bom", "points": 75, "description": "Bons exemplos com aplicação adequada"},
            {"label": "Regular", "points": 50, "description": "Exemplos básicos ou pouco relevantes"},
            {"label": "Insuficiente", "points": 25, "description": "Sem exemplos ou exemplos inadequados"},
        ],
    },
    {
        "name": "Completude da Resposta",
        "description": "Responde completamente à questão proposta",
        "max_points": 10,
        "levels": [
            {"label": "Completa", "points": 100, "description": "Responde a todos os aspectos da questão"},
            {"label": "Parcial", "points": 60, "description": "Responde a maioria dos aspectos"},
            {"label": "Incompleta", "points": 30, "description": "Responde apenas alguns aspectos"},
            {"label": "Muito Incompleta", "points": 0, "description": "Não responde adequadamente"},
        ],
    },
]


def validate_criteria(criteria: Iterable[CriterionInput]) -> List[Dict[str, Any]]:
    """
    Validate criteria and return them serialized for storage.

    Rules:
    - name must not be blank
    - max_points must be a positive, finite number
    - at least one level
    - every level's points within 0-100

    An empty list is accepted (rubric still being authored).

    Raises:
        ValidationError: first rule broken, with the criterion index in details
    """
    serialized: List[Dict[str, Any]] = []
    for index, raw in enumerate(criteria):
        try:
            criterion = raw if isinstance(raw, Criterion) else Criterion.model_validate(raw)
        except SchemaError as e:
            raise ValidationError(
                f"Criterion {index} is malformed",
                code=ErrorCode.INVALID_CRITERIA,
                details={"criterion_index": index, "errors": e.errors(include_url=False, include_context=False)},
            )

        if not criterion.name.strip():
            raise ValidationError(
                f"Criterion {index} must have a name",
                code=ErrorCode.INVALID_CRITERIA,
                details={"criterion_index": index},
            )
        if not math.isfinite(criterion.max_points) or criterion.max_points <= 0:
            raise ValidationError(
                f"Criterion '{criterion.name}' must have max_points > 0",
                code=ErrorCode.INVALID_CRITERIA,
                details={"criterion_index": index, "max_points": criterion.max_points},
            )
        if not criterion.levels:
            raise ValidationError(
                f"Criterion '{criterion.name}' must have at least one level",
                code=ErrorCode.INVALID_CRITERIA,
                details={"criterion_index": index},
            )
        for level_index, level in enumerate(criterion.levels):
            if not math.isfinite(level.points) or level.points < 0 or level.points > 100:
                raise ValidationError(
                    f"Level '{level.label}' of criterion '{criterion.name}' must have points between 0 and 100",
                    code=ErrorCode.INVALID_CRITERIA,
                    details={"criterion_index": index, "level_index": level_index, "points": level.points},
                )

        serialized.append(criterion.model_dump())
    return serialized


def _validate_name(name: Optional[str]) -> str:
    if name is None or not name.strip():
        raise ValidationError("Rubric name must not be blank")
    return name.strip()


class RubricService:
    """
    Rubric Store.
    All mutations commit their own transaction and roll back on failure.
    """

    @staticmethod
    async def _get_or_404(db: AsyncSession, rubric_id: int, lock: bool = False) -> GradingRubric:
        query = select(GradingRubric).where(GradingRubric.id == rubric_id)
        if lock:
            query = query.with_for_update()
        result = await db.execute(query)
        rubric = result.scalar_one_or_none()
        if rubric is None:
            raise NotFoundError("Rubric", rubric_id, code=ErrorCode.RUBRIC_NOT_FOUND)
        return rubric

    @classmethod
    async def _clear_defaults(
        cls,
        db: AsyncSession,
        organization_id: int,
        keep_id: Optional[int] = None
    ) -> int:
        """
        Lock the organization's rubrics and clear is_default on all but keep_id.

        Flushes before returning so the clears reach the database ahead of
        the new default being set.
        """
        result = await db.execute(
            select(GradingRubric)
            .where(GradingRubric.organization_id == organization_id)
            .order_by(GradingRubric.id)
            .with_for_update()
        )
        cleared = 0
        for rubric in result.scalars().all():
            if rubric.is_default and rubric.id != keep_id:
                rubric.is_default = False
                rubric.updated_at = utcnow()
                cleared += 1
        await cls._persist(db, organization_id, commit=False)
        return cleared

    @staticmethod
    async def _persist(db: AsyncSession, organization_id: int, commit: bool = True) -> None:
        """
        Commit (or only flush), mapping a default-uniqueness conflict to
        InvariantViolationError. The session is rolled back on conflict.
        """
        try:
            if commit:
                await db.commit()
            else:
                await db.flush()
        except IntegrityError as e:
            await db.rollback()
            logger.warning(
                f"Concurrent default designation rejected for organization {organization_id}: {e.orig}"
            )
            raise InvariantViolationError(
                "Another rubric was made default concurrently; retry the request",
                code=ErrorCode.DEFAULT_RUBRIC_CONFLICT,
                details={"organization_id": organization_id},
            )

    @classmethod
    async def create(
        cls,
        db: AsyncSession,
        organization_id: int,
        name: str,
        description: str,
        is_default: bool,
        criteria: Iterable[CriterionInput],
        actor: Actor
    ) -> int:
        """
        Create a rubric and return its id.

        When is_default is set, every other rubric of the organization is
        cleared in the same transaction before the insert.

        Raises:
            ValidationError: blank name or invalid criteria
            AuthorizationError: actor cannot manage this organization's rubrics
            InvariantViolationError: concurrent default designation
        """
        require_rubric_manager(organization_id, actor)
        clean_name = _validate_name(name)
        stored_criteria = validate_criteria(criteria)

        try:
            if is_default:
                await cls._clear_defaults(db, organization_id)

            now = utcnow()
            rubric = GradingRubric(
                organization_id=organization_id,
                name=clean_name,
                description=description or "",
                is_default=bool(is_default),
                criteria=stored_criteria,
                created_by=actor.id,
                created_at=now,
                updated_at=now,
            )
            db.add(rubric)
            await cls._persist(db, organization_id, commit=False)
            rubric_id = rubric.id
            await cls._persist(db, organization_id)
        except APIError:
            await db.rollback()
            raise

        logger.info(
            f"Rubric {rubric_id} created for organization {organization_id}",
            extra={
                "rubric_id": rubric_id,
                "organization_id": organization_id,
                "is_default": bool(is_default),
                "criteria_count": len(stored_criteria),
                "created_by": actor.id,
            }
        )
        return rubric_id

    @classmethod
    async def update(
        cls,
        db: AsyncSession,
        rubric_id: int,
        partial_fields: Union[RubricUpdate, Mapping[str, Any]],
        actor: Actor
    ) -> None:
        """
        Partial update. Fields not supplied are left unchanged.

        Setting is_default to True clears every other default of the
        organization in the same transaction.

        Raises:
            NotFoundError: unknown rubric
            ValidationError: unknown field, blank name, invalid criteria
            AuthorizationError: actor cannot manage this organization's rubrics
        """
        if isinstance(partial_fields, RubricUpdate):
            updates = partial_fields.model_dump(exclude_unset=True)
        else:
            updates = dict(partial_fields)
        # None means "not supplied"
        updates = {key: value for key, value in updates.items() if value is not None}

        unknown = set(updates) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"Unknown rubric fields: {', '.join(sorted(unknown))}",
                details={"fields": sorted(unknown)},
            )

        try:
            rubric = await cls._get_or_404(db, rubric_id, lock=True)
            require_rubric_manager(rubric.organization_id, actor)

            if "name" in updates:
                rubric.name = _validate_name(updates["name"])
            if "description" in updates:
                rubric.description = updates["description"]
            if "criteria" in updates:
                rubric.criteria = validate_criteria(updates["criteria"])
            if "is_default" in updates:
                if updates["is_default"]:
                    await cls._clear_defaults(db, rubric.organization_id, keep_id=rubric.id)
                rubric.is_default = bool(updates["is_default"])

            rubric.updated_at = utcnow()
            organization_id = rubric.organization_id
            await cls._persist(db, organization_id)
        except APIError:
            await db.rollback()
            raise

        logger.info(
            f"Rubric {rubric_id} updated",
            extra={"rubric_id": rubric_id, "fields": sorted(updates), "updated_by": actor.id}
        )

    @classmethod
    async def remove(cls, db: AsyncSession, rubric_id: int, actor: Actor) -> None:
        """
        Delete a rubric.

        Raises:
            NotFoundError: unknown rubric
            InvariantViolationError: the rubric is the organization's default
        """
        try:
            rubric = await cls._get_or_404(db, rubric_id, lock=True)
            require_rubric_manager(rubric.organization_id, actor)

            if rubric.is_default:
                logger.warning(f"Refused to remove default rubric {rubric_id}")
                raise InvariantViolationError(
                    "Cannot remove the default rubric; set another rubric as default first",
                    code=ErrorCode.DEFAULT_RUBRIC_REMOVAL,
                    details={"rubric_id": rubric_id},
                )

            await db.delete(rubric)
            await db.commit()
        except APIError:
            await db.rollback()
            raise

        logger.info(f"Rubric {rubric_id} removed", extra={"rubric_id": rubric_id, "removed_by": actor.id})

    @classmethod
    async def set_as_default(cls, db: AsyncSession, rubric_id: int, actor: Actor) -> None:
        """
        Make rubric_id the organization's only default. Safe to repeat.

        Raises:
            NotFoundError: unknown rubric
        """
        try:
            rubric = await cls._get_or_404(db, rubric_id)
            require_rubric_manager(rubric.organization_id, actor)
            organization_id = rubric.organization_id

            cleared = await cls._clear_defaults(db, organization_id, keep_id=rubric_id)
            rubric.is_default = True
            rubric.updated_at = utcnow()
            await cls._persist(db, organization_id)
        except APIError:
            await db.rollback()
            raise

        logger.info(
            f"Rubric {rubric_id} set as default for organization {organization_id}",
            extra={"rubric_id": rubric_id, "organization_id": organization_id, "cleared": cleared}
        )

    @classmethod
    async def get_by_id(cls, db: AsyncSession, rubric_id: int) -> GradingRubric:
        """Raises NotFoundError for an unknown rubric."""
        return await cls._get_or_404(db, rubric_id)

    @staticmethod
    async def get_by_organization(db: AsyncSession, organization_id: int) -> List[GradingRubric]:
        """Default rubric first, then newest first; id breaks created_at ties."""
        result = await db.execute(
            select(GradingRubric)
            .where(GradingRubric.organization_id == organization_id)
            .order_by(
                GradingRubric.is_default.desc(),
                GradingRubric.created_at.desc(),
                GradingRubric.id.desc(),
            )
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_default(db: AsyncSession, organization_id: int) -> Optional[GradingRubric]:
        result = await db.execute(
            select(GradingRubric).where(
                GradingRubric.organization_id == organization_id,
                GradingRubric.is_default.is_(True),
            )
        )
        return result.scalars().first()

    @classmethod
    async def duplicate(cls, db: AsyncSession, rubric_id: int, actor: Actor) -> int:
        """
        Deep-copy a rubric into the same organization as a non-default rubric.
        Every call creates a new rubric.
        """
        source = await cls._get_or_404(db, rubric_id)
        return await cls.create(
            db,
            organization_id=source.organization_id,
            name=f"{source.name}{COPY_SUFFIX}",
            description=source.description,
            is_default=False,
            criteria=copy.deepcopy(list(source.criteria or [])),
            actor=actor,
        )

    @classmethod
    async def create_default_rubric(cls, db: AsyncSession, organization_id: int, actor: Actor) -> int:
        """Seed the starter rubric (40/30/20/10 points) as the organization's default."""
        rubric_id = await cls.create(
            db,
            organization_id=organization_id,
            name=DEFAULT_RUBRIC_NAME,
            description=DEFAULT_RUBRIC_DESCRIPTION,
            is_default=True,
            criteria=copy.deepcopy(DEFAULT_RUBRIC_CRITERIA),
            actor=actor,
        )
        logger.info(f"Seeded default rubric {rubric_id} for organization {organization_id}")
        return rubric_id

    @classmethod
    async def ensure_default_rubric(cls, db: AsyncSession, organization_id: int, actor: Actor) -> Optional[int]:
        """Seed the starter rubric when the organization has no rubric at all."""
        result = await db.execute(
            select(func.count())
            .select_from(GradingRubric)
            .where(GradingRubric.organization_id == organization_id)
        )
        if result.scalar() > 0:
            return None
        return await cls.create_default_rubric(db, organization_id, actor)
