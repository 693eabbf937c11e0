"""
Rubric store tests: CRUD, default exclusivity and validation.
"""
import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from grading_engine.errors import (
    AuthorizationError, ErrorCode, InvariantViolationError, NotFoundError, ValidationError
)
from grading_engine.orm.grading_rubric import GradingRubric
from grading_engine.schemas.rubric import RubricUpdate
from grading_engine.services.rubric_service import (
    COPY_SUFFIX, DEFAULT_RUBRIC_NAME, RubricService, validate_criteria
)
from grading_engine.tests.conftest import ORG_ID, OTHER_ORG_ID, simple_criteria


async def count_defaults(db, organization_id=ORG_ID):
    result = await db.execute(
        select(func.count())
        .select_from(GradingRubric)
        .where(GradingRubric.organization_id == organization_id, GradingRubric.is_default.is_(True))
    )
    return result.scalar()


async def make_rubric(db, actor, name="Essay", is_default=False, organization_id=ORG_ID):
    return await RubricService.create(
        db,
        organization_id=organization_id,
        name=name,
        description="",
        is_default=is_default,
        criteria=simple_criteria(60, 40),
        actor=actor,
    )


# =============================================================================
# Creation & validation
# =============================================================================

class TestCreate:
    """Rubric creation."""

    @pytest.mark.asyncio
    async def test_create_stores_criteria(self, db, admin):
        rubric_id = await make_rubric(db, admin)
        rubric = await RubricService.get_by_id(db, rubric_id)

        assert rubric.name == "Essay"
        assert rubric.is_default is False
        assert rubric.created_by == admin.id
        assert [c.max_points for c in rubric.criterion_models] == [60, 40]

    @pytest.mark.asyncio
    async def test_create_default_clears_previous(self, db, admin):
        first = await make_rubric(db, admin, "First", is_default=True)
        second = await make_rubric(db, admin, "Second", is_default=True)

        assert await count_defaults(db) == 1
        default = await RubricService.get_default(db, ORG_ID)
        assert default.id == second
        assert (await RubricService.get_by_id(db, first)).is_default is False

    @pytest.mark.asyncio
    async def test_non_positive_max_points_rejected(self, db, admin):
        criteria = simple_criteria(10)
        criteria[0]["max_points"] = 0
        with pytest.raises(ValidationError) as exc_info:
            await RubricService.create(db, ORG_ID, "Bad", "", False, criteria, admin)
        assert exc_info.value.code == ErrorCode.INVALID_CRITERIA

    @pytest.mark.asyncio
    async def test_criterion_without_levels_rejected(self, db, admin):
        criteria = simple_criteria(10)
        criteria[0]["levels"] = []
        with pytest.raises(ValidationError):
            await RubricService.create(db, ORG_ID, "Bad", "", False, criteria, admin)

    @pytest.mark.asyncio
    async def test_blank_name_rejected(self, db, admin):
        with pytest.raises(ValidationError):
            await RubricService.create(db, ORG_ID, "   ", "", False, simple_criteria(10), admin)

    @pytest.mark.asyncio
    async def test_student_cannot_create(self, db, student):
        with pytest.raises(AuthorizationError):
            await make_rubric(db, student)

    @pytest.mark.asyncio
    async def test_other_organization_cannot_create(self, db, outsider_admin):
        with pytest.raises(AuthorizationError):
            await make_rubric(db, outsider_admin)


class TestValidateCriteria:
    """Criterion rules outside the database."""

    def test_level_points_above_hundred_rejected(self):
        criteria = simple_criteria(10)
        criteria[0]["levels"][0]["points"] = 120
        with pytest.raises(ValidationError) as exc_info:
            validate_criteria(criteria)
        assert exc_info.value.details["level_index"] == 0

    def test_blank_criterion_name_rejected(self):
        criteria = simple_criteria(10)
        criteria[0]["name"] = ""
        with pytest.raises(ValidationError):
            validate_criteria(criteria)

    def test_malformed_criterion_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_criteria([{"name": "No points"}])
        assert exc_info.value.details["criterion_index"] == 0

    def test_empty_list_allowed(self):
        assert validate_criteria([]) == []


# =============================================================================
# Update / remove / default designation
# =============================================================================

class TestUpdate:
    """Partial updates."""

    @pytest.mark.asyncio
    async def test_partial_update_keeps_other_fields(self, db, admin):
        rubric_id = await make_rubric(db, admin)
        await RubricService.update(db, rubric_id, {"description": "Essay questions"}, admin)

        rubric = await RubricService.get_by_id(db, rubric_id)
        assert rubric.description == "Essay questions"
        assert rubric.name == "Essay"
        assert len(rubric.criteria) == 2

    @pytest.mark.asyncio
    async def test_update_model_with_unset_fields(self, db, admin):
        rubric_id = await make_rubric(db, admin)
        await RubricService.update(db, rubric_id, RubricUpdate(name="Renamed"), admin)

        rubric = await RubricService.get_by_id(db, rubric_id)
        assert rubric.name == "Renamed"
        assert rubric.is_default is False

    @pytest.mark.asyncio
    async def test_update_to_default_clears_others(self, db, admin):
        first = await make_rubric(db, admin, "First", is_default=True)
        second = await make_rubric(db, admin, "Second")

        await RubricService.update(db, second, {"is_default": True}, admin)

        assert await count_defaults(db) == 1
        assert (await RubricService.get_default(db, ORG_ID)).id == second
        assert (await RubricService.get_by_id(db, first)).is_default is False

    @pytest.mark.asyncio
    async def test_unknown_field_rejected(self, db, admin):
        rubric_id = await make_rubric(db, admin)
        with pytest.raises(ValidationError):
            await RubricService.update(db, rubric_id, {"organization_id": OTHER_ORG_ID}, admin)

    @pytest.mark.asyncio
    async def test_update_missing_rubric(self, db, admin):
        with pytest.raises(NotFoundError) as exc_info:
            await RubricService.update(db, 9999, {"name": "x"}, admin)
        assert exc_info.value.code == ErrorCode.RUBRIC_NOT_FOUND


class TestRemove:
    """Deletion guards."""

    @pytest.mark.asyncio
    async def test_remove_default_fails(self, db, admin):
        rubric_id = await make_rubric(db, admin, is_default=True)
        with pytest.raises(InvariantViolationError) as exc_info:
            await RubricService.remove(db, rubric_id, admin)
        assert exc_info.value.code == ErrorCode.DEFAULT_RUBRIC_REMOVAL
        assert (await RubricService.get_by_id(db, rubric_id)).is_default is True

    @pytest.mark.asyncio
    async def test_remove_after_promoting_another(self, db, admin):
        old_default = await make_rubric(db, admin, "Old", is_default=True)
        new_default = await make_rubric(db, admin, "New")

        await RubricService.set_as_default(db, new_default, admin)
        await RubricService.remove(db, old_default, admin)

        with pytest.raises(NotFoundError):
            await RubricService.get_by_id(db, old_default)
        assert (await RubricService.get_default(db, ORG_ID)).id == new_default


class TestSetAsDefault:
    """Default designation."""

    @pytest.mark.asyncio
    async def test_set_as_default_twice(self, db, admin):
        await make_rubric(db, admin, "A", is_default=True)
        target = await make_rubric(db, admin, "B")

        await RubricService.set_as_default(db, target, admin)
        await RubricService.set_as_default(db, target, admin)

        assert await count_defaults(db) == 1
        assert (await RubricService.get_default(db, ORG_ID)).id == target

    @pytest.mark.asyncio
    async def test_set_as_default_unknown(self, db, admin):
        with pytest.raises(NotFoundError):
            await RubricService.set_as_default(db, 4242, admin)

    @pytest.mark.asyncio
    async def test_organizations_are_independent(self, db, admin, outsider_admin):
        ours = await make_rubric(db, admin, is_default=True)
        theirs = await make_rubric(db, outsider_admin, is_default=True, organization_id=OTHER_ORG_ID)

        assert (await RubricService.get_default(db, ORG_ID)).id == ours
        assert (await RubricService.get_default(db, OTHER_ORG_ID)).id == theirs

    @pytest.mark.asyncio
    async def test_invariant_across_mixed_operations(self, db, admin):
        ids = [await make_rubric(db, admin, f"R{i}", is_default=(i % 2 == 0)) for i in range(5)]
        await RubricService.set_as_default(db, ids[1], admin)
        await RubricService.update(db, ids[3], {"is_default": True}, admin)
        await RubricService.duplicate(db, ids[3], admin)

        assert await count_defaults(db) == 1

    @pytest.mark.asyncio
    async def test_database_rejects_second_default(self, db, admin):
        """The partial unique index backs the invariant."""
        db.add(GradingRubric(organization_id=ORG_ID, name="A", is_default=True, criteria=[], created_by=admin.id))
        db.add(GradingRubric(organization_id=ORG_ID, name="B", is_default=True, criteria=[], created_by=admin.id))
        with pytest.raises(IntegrityError):
            await db.commit()
        await db.rollback()


def race_after_clear(monkeypatch, competitor):
    """
    Run competitor (another session) right after the first default clear,
    i.e. between the clear and the write of the new default.
    """
    original = RubricService._clear_defaults
    raced = []

    async def clear_then_race(db, organization_id, keep_id=None):
        cleared = await original(db, organization_id, keep_id=keep_id)
        if not raced:
            raced.append(True)
            await competitor()
        return cleared

    monkeypatch.setattr(RubricService, "_clear_defaults", staticmethod(clear_then_race))


class TestConcurrentDefaultDesignation:
    """Two sessions designating a default at the same time."""

    @pytest.mark.asyncio
    async def test_create_loses_to_concurrent_create(self, db, session_factory, admin, monkeypatch):
        winner_ids = []

        async def competitor():
            async with session_factory() as other:
                winner_ids.append(await make_rubric(other, admin, "Winner", is_default=True))

        race_after_clear(monkeypatch, competitor)
        with pytest.raises(InvariantViolationError) as exc_info:
            await make_rubric(db, admin, "Loser", is_default=True)

        assert exc_info.value.code == ErrorCode.DEFAULT_RUBRIC_CONFLICT
        assert await count_defaults(db) == 1
        assert (await RubricService.get_default(db, ORG_ID)).id == winner_ids[0]
        names = [rubric.name for rubric in await RubricService.get_by_organization(db, ORG_ID)]
        assert names == ["Winner"]

    @pytest.mark.asyncio
    async def test_set_as_default_loses_to_concurrent_set(self, db, session_factory, admin, monkeypatch):
        ours = await make_rubric(db, admin, "Ours")
        theirs = await make_rubric(db, admin, "Theirs")

        async def competitor():
            async with session_factory() as other:
                await RubricService.set_as_default(other, theirs, admin)

        race_after_clear(monkeypatch, competitor)
        with pytest.raises(InvariantViolationError):
            await RubricService.set_as_default(db, ours, admin)

        assert await count_defaults(db) == 1
        assert (await RubricService.get_default(db, ORG_ID)).id == theirs

    @pytest.mark.asyncio
    async def test_update_loses_to_concurrent_update(self, db, session_factory, admin, monkeypatch):
        ours = await make_rubric(db, admin, "Ours")
        theirs = await make_rubric(db, admin, "Theirs")

        async def competitor():
            async with session_factory() as other:
                await RubricService.update(other, theirs, {"is_default": True}, admin)

        race_after_clear(monkeypatch, competitor)
        with pytest.raises(InvariantViolationError):
            await RubricService.update(db, ours, {"is_default": True}, admin)

        assert await count_defaults(db) == 1
        assert (await RubricService.get_default(db, ORG_ID)).id == theirs

    @pytest.mark.asyncio
    async def test_session_usable_after_conflict(self, db, session_factory, admin, monkeypatch):
        async def competitor():
            async with session_factory() as other:
                await make_rubric(other, admin, "Winner", is_default=True)

        race_after_clear(monkeypatch, competitor)
        with pytest.raises(InvariantViolationError):
            await make_rubric(db, admin, "Loser", is_default=True)

        later = await make_rubric(db, admin, "Later")
        assert (await RubricService.get_by_id(db, later)).is_default is False


# =============================================================================
# Reads, duplicate, seeding
# =============================================================================

class TestReads:
    """Listing order and lookups."""

    @pytest.mark.asyncio
    async def test_default_first_then_newest(self, db, admin):
        oldest = await make_rubric(db, admin, "Oldest")
        default = await make_rubric(db, admin, "Default", is_default=True)
        newest = await make_rubric(db, admin, "Newest")

        rubrics = await RubricService.get_by_organization(db, ORG_ID)
        assert [r.id for r in rubrics] == [default, newest, oldest]

    @pytest.mark.asyncio
    async def test_get_default_none(self, db):
        assert await RubricService.get_default(db, ORG_ID) is None


class TestDuplicate:
    """Deep copies."""

    @pytest.mark.asyncio
    async def test_duplicate_is_independent_copy(self, db, admin):
        source_id = await make_rubric(db, admin, "Essay", is_default=True)
        copy_id = await RubricService.duplicate(db, source_id, admin)

        source = await RubricService.get_by_id(db, source_id)
        copied = await RubricService.get_by_id(db, copy_id)

        assert copy_id != source_id
        assert copied.name == f"Essay{COPY_SUFFIX}"
        assert copied.is_default is False
        assert copied.criteria == source.criteria

        await RubricService.update(db, copy_id, {"criteria": simple_criteria(5)}, admin)
        source = await RubricService.get_by_id(db, source_id)
        assert len(source.criteria) == 2

    @pytest.mark.asyncio
    async def test_each_call_creates_new_rubric(self, db, admin):
        source_id = await make_rubric(db, admin)
        first = await RubricService.duplicate(db, source_id, admin)
        second = await RubricService.duplicate(db, source_id, admin)
        assert len({source_id, first, second}) == 3


class TestSeeding:
    """Starter rubric."""

    @pytest.mark.asyncio
    async def test_create_default_rubric(self, db, admin):
        rubric_id = await RubricService.create_default_rubric(db, ORG_ID, admin)
        rubric = await RubricService.get_by_id(db, rubric_id)

        assert rubric.name == DEFAULT_RUBRIC_NAME
        assert rubric.is_default is True
        assert sum(c.max_points for c in rubric.criterion_models) == 100

    @pytest.mark.asyncio
    async def test_ensure_default_rubric_only_once(self, db, admin):
        first = await RubricService.ensure_default_rubric(db, ORG_ID, admin)
        second = await RubricService.ensure_default_rubric(db, ORG_ID, admin)

        assert first is not None
        assert second is None
        assert len(await RubricService.get_by_organization(db, ORG_ID)) == 1
