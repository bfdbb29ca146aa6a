from typing import Any, Dict, Optional

from ..errors import ErrorContext, ValidationError
from ..logging_config import get_logger
from ..models import CalculationPoints, CalculationPointsUpdateRequest, PointsUpdate, RecordType
from .common import (
    MutationResult,
    Services,
    character_header,
    commit,
    initial_increased,
    initial_new,
    load_for_update,
    make_record,
    points_change,
    replayed_record,
)

logger = get_logger(__name__)


def _apply(points: CalculationPoints, update: Optional[PointsUpdate], pool: str, context: ErrorContext) -> CalculationPoints:
    updated = points.model_copy()
    if update is None:
        return updated
    if update.start is not None:
        updated.start = initial_new(updated.start, update.start, f"{pool}.start", context)
    if update.total is not None:
        target = initial_increased(updated.total, update.total, f"{pool}.total", context)
        updated.available += target - updated.total
        updated.total = target
    return updated


def update_calculation_points(
    services: Services,
    user_id: str,
    character_id: str,
    request: CalculationPointsUpdateRequest,
) -> MutationResult:
    """Adjust start values and grant new adventure or attribute points."""
    if request.adventure_points is None and request.attribute_points is None:
        raise ValidationError("No calculation points passed", ErrorContext(character_id=character_id))

    character, recovered = load_for_update(services, user_id, character_id)
    section = character.character_sheet.calculation_points
    context = ErrorContext(character_id=character_id, user_id=user_id, operation="update_calculation_points")

    adventure_change = points_change(
        section.adventure_points, _apply(section.adventure_points, request.adventure_points, "adventurePoints", context)
    )
    attribute_change = points_change(
        section.attribute_points, _apply(section.attribute_points, request.attribute_points, "attributePoints", context)
    )

    if adventure_change is None and attribute_change is None:
        logger.info("Calculation points unchanged, replay", character_id=character_id)
        return MutationResult(
            data={**character_header(character), "calculationPoints": section.to_document()},
            record=replayed_record(recovered, RecordType.CALCULATION_POINTS_CHANGED, "calculationPoints"),
        )

    old: Dict[str, Any] = {}
    new: Dict[str, Any] = {}
    if adventure_change is not None:
        old["adventurePoints"] = adventure_change.old.to_document()
        new["adventurePoints"] = adventure_change.new.to_document()
        section.adventure_points = adventure_change.new
    if attribute_change is not None:
        old["attributePoints"] = attribute_change.old.to_document()
        new["attributePoints"] = attribute_change.new.to_document()
        section.attribute_points = attribute_change.new

    record = make_record(
        RecordType.CALCULATION_POINTS_CHANGED,
        "calculationPoints",
        old,
        new,
        adventure_points=adventure_change,
        attribute_points=attribute_change,
    )
    stored = commit(services, character, record)
    logger.info("Calculation points updated", character_id=character_id)
    return MutationResult(data={**character_header(character), "changes": {"old": old, "new": new}}, record=stored)
