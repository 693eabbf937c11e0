"""
grading_engine/services/score_calculator.py
Deterministic Rubric Score Calculator

Pure functions: no side effects, no persistence access, no locking.

Scoring Logic:
--------------
A level's points are a PERCENTAGE of its criterion's max_points, so

    awarded = round_half_up(level_points / 100 * max_points)

Rounding is ROUND_HALF_UP on Decimal values: 2.5 → 3, 3.5 → 4, 3.49 → 3.
Floats are converted through their string form first, so 0.1-style binary
artefacts never move a value across a .5 boundary. Identical inputs always
give identical outputs, which keeps grading audits reproducible.

Rubric totals:
- max_possible sums every criterion's max_points, selected or not
- unselected criteria contribute 0 to total
- percentage = total / max_possible * 100, kept to two decimals
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Tuple, Union

from pydantic import ValidationError as SchemaError

from grading_engine.errors import ErrorCode, ValidationError
from grading_engine.schemas.rubric import Criterion, CriterionScore, CriterionSelection, RubricDefinition

Number = Union[int, float, Decimal]

PERCENT_MIN = Decimal("0")
PERCENT_MAX = Decimal("100")
_HUNDRED = Decimal("100")
_WHOLE = Decimal("1")
_CENTS = Decimal("0.01")


@dataclass(frozen=True)
class RubricScore:
    """Result of scoring a rubric."""
    per_criterion: Tuple[int, ...]
    total: int
    max_possible: Decimal
    percentage: Decimal

    def criterion_scores(self) -> List[CriterionScore]:
        """Per-criterion breakdown in the shape stored on a submission."""
        return [
            CriterionScore(criterion_index=index, awarded_points=points)
            for index, points in enumerate(self.per_criterion)
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "per_criterion": list(self.per_criterion),
            "total": self.total,
            "max_possible": float(self.max_possible),
            "percentage": float(self.percentage),
        }


def to_decimal(value: Number) -> Decimal:
    """Exact Decimal for ints/Decimals, string-based conversion for floats."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValidationError("Boolean is not a valid score value", code=ErrorCode.INVALID_SCORE)
    return Decimal(str(value))


def round_half_up(value: Decimal) -> int:
    """Round to the nearest integer, ties away from zero."""
    return int(value.quantize(_WHOLE, rounding=ROUND_HALF_UP))


def validate_percentage(value: Number, field: str = "score") -> Decimal:
    """Return value as Decimal, raising ValidationError outside [0, 100]."""
    amount = to_decimal(value)
    if not amount.is_finite() or amount < PERCENT_MIN or amount > PERCENT_MAX:
        raise ValidationError(
            f"{field} must be between 0 and 100, got {value}",
            code=ErrorCode.INVALID_SCORE,
            details={"field": field, "value": str(value)},
        )
    return amount


def score_criterion(criterion: Criterion, selected_level_points: Number) -> int:
    """
    Points awarded for one criterion.

    Args:
        criterion: The criterion being scored
        selected_level_points: Selected level as a percentage (0-100)

    Returns:
        Awarded points, rounded half-up to an integer

    Raises:
        ValidationError: level points outside [0, 100]
    """
    level_points = validate_percentage(selected_level_points, "level_points")
    return round_half_up(level_points / _HUNDRED * to_decimal(criterion.max_points))


def index_selections(
    criteria: List[Criterion],
    criterion_selections: Iterable[Union[CriterionSelection, Dict[str, Any]]],
) -> Dict[int, CriterionSelection]:
    """Map criterion_index → selection, rejecting unknown or repeated indices."""
    by_index: Dict[int, CriterionSelection] = {}
    for raw in criterion_selections:
        try:
            selection = raw if isinstance(raw, CriterionSelection) else CriterionSelection.model_validate(raw)
        except SchemaError as e:
            raise ValidationError(
                "Malformed criterion selection",
                code=ErrorCode.INVALID_SELECTION,
                details={"errors": e.errors(include_url=False, include_context=False)},
            )
        index = selection.criterion_index
        if index < 0 or index >= len(criteria):
            raise ValidationError(
                f"criterion_index {index} is out of range for a rubric with {len(criteria)} criteria",
                code=ErrorCode.INVALID_SELECTION,
                details={"criterion_index": index},
            )
        if index in by_index:
            raise ValidationError(
                f"criterion_index {index} was selected more than once",
                code=ErrorCode.INVALID_SELECTION,
                details={"criterion_index": index},
            )
        by_index[index] = selection
    return by_index


def score_rubric(
    rubric: RubricDefinition,
    criterion_selections: Iterable[Union[CriterionSelection, Dict[str, Any]]],
) -> RubricScore:
    """
    Score a rubric from per-criterion level selections.

    Args:
        rubric: Rubric definition (ordered criteria)
        criterion_selections: {criterion_index, level_points} items; criteria
            without a selection score 0

    Returns:
        RubricScore with per-criterion points, total, max_possible, percentage

    Raises:
        ValidationError: malformed selections, or a rubric whose criteria
            add up to zero points
    """
    criteria = list(rubric.criteria)
    max_possible = sum((to_decimal(c.max_points) for c in criteria), Decimal("0"))
    if max_possible <= 0:
        raise ValidationError(
            "Rubric must have positive total points to be used for grading",
            code=ErrorCode.ZERO_MAX_POINTS,
        )

    selections = index_selections(criteria, criterion_selections)

    per_criterion = tuple(
        score_criterion(criterion, selections[index].level_points) if index in selections else 0
        for index, criterion in enumerate(criteria)
    )
    total = sum(per_criterion)
    percentage = (Decimal(total) / max_possible * _HUNDRED).quantize(_CENTS, rounding=ROUND_HALF_UP)

    return RubricScore(
        per_criterion=per_criterion,
        total=total,
        max_possible=max_possible,
        percentage=percentage,
    )
