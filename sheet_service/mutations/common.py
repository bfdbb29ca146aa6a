"""
Shared plumbing for the mutation orchestrators.

Every mutation follows the same steps: load the character, check the
caller's optimistic tokens (``InitialNew`` / ``InitialIncreased``), compute
the new state with the rules engine, then persist the sheet and append one
history record. The record is also stored on the character document, so a
record whose append failed is appended by the next request for that
character. A request whose target state is already in place is a replay:
nothing is written and only such a recovered record is returned.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from ..config import Settings
from ..errors import ConflictError, ErrorContext, InternalError, NotFoundError, ValidationError
from ..history import HistoryLedger
from ..logging_config import get_logger
from ..models import (
    CalculationPoints,
    Character,
    CharacterSheet,
    ChangeData,
    InitialIncreased,
    InitialNew,
    LearningMethod,
    PointsChange,
    Record,
    RecordCalculationPoints,
    RecordType,
)
from ..rules.combat import recalculate_all_combat_values
from ..rules.cost import parse_learning_method
from ..storage_backends.interfaces import StorageBackend, StoreError

logger = get_logger(__name__)


@dataclass
class Services:
    backend: StorageBackend
    ledger: HistoryLedger
    settings: Optional[Settings] = None

    @classmethod
    def from_backend(cls, backend: StorageBackend, settings: Settings) -> "Services":
        ledger = HistoryLedger(
            backend.history,
            capacity=settings.history_block_capacity,
            append_attempts=settings.history_append_attempts,
            backoff_seconds=settings.history_append_backoff_seconds,
        )
        return cls(backend=backend, ledger=ledger, settings=settings)


@dataclass
class MutationResult:
    data: Dict[str, Any]
    record: Optional[Record] = None

    def to_response(self) -> Dict[str, Any]:
        return {
            "data": self.data,
            "historyRecord": self.record.to_document() if self.record else None,
        }


def load_character(services: Services, user_id: str, character_id: str) -> Character:
    item = services.backend.characters.get_character(user_id, character_id)
    if item is None:
        raise NotFoundError(
            f"Character {character_id} not found",
            ErrorContext(character_id=character_id, user_id=user_id),
        )
    return Character.model_validate(item)


def load_for_update(services: Services, user_id: str, character_id: str) -> Tuple[Character, Optional[Record]]:
    """Load a character about to change, first recovering the record of its previous commit."""
    character = load_character(services, user_id, character_id)
    return character, recover_last_record(services, character)


def save_character(services: Services, character: Character) -> None:
    services.backend.characters.put_character(character.user_id, character.character_id, character.to_document())


def commit(services: Services, character: Character, record: Record) -> Record:
    """Persist the sheet together with its record, then append the record to the history."""
    character.last_record = record
    try:
        save_character(services, character)
    except StoreError as exc:
        raise InternalError(
            f"Failed to save character: {exc}",
            ErrorContext(character_id=character.character_id, user_id=character.user_id),
        ) from exc
    return services.ledger.append(character.character_id, record)


def recover_last_record(services: Services, character: Character) -> Optional[Record]:
    """Append the record of an earlier commit whose history append never landed.

    Returns the appended record, or ``None`` when the history already holds it.
    """
    record = character.last_record
    if record is None or services.ledger.has_record(character.character_id, record.id):
        return None
    logger.warning(
        "Appending history record of an earlier commit",
        character_id=character.character_id,
        record_id=record.id,
        record_type=record.type.name,
    )
    return services.ledger.append(character.character_id, record)


def replayed_record(recovered: Optional[Record], record_type: RecordType, name: str) -> Optional[Record]:
    """The recovered record when it belongs to the change being replayed."""
    if recovered is not None and recovered.type == record_type and recovered.name == name:
        return recovered
    return None


def initial_new(current: int, change: InitialNew, field: str, context: Optional[ErrorContext] = None) -> int:
    """Return the value to store for an ``{initialValue, newValue}`` change.

    A current value already equal to ``newValue`` is a replay and yields it unchanged.
    """
    if current == change.initial_value or current == change.new_value:
        return change.new_value
    raise ConflictError(
        f"The passed initial value for '{field}' doesn't match the current value",
        context or ErrorContext(field=field),
        details={"field": field, "initialValue": change.initial_value, "currentValue": current},
    )


def initial_increased(
    current: int, change: InitialIncreased, field: str, context: Optional[ErrorContext] = None
) -> int:
    if change.increased_points <= 0:
        raise ValidationError(
            f"Increased points for '{field}' must be positive",
            context or ErrorContext(field=field),
            details={"field": field, "increasedPoints": change.increased_points},
        )
    target = change.initial_value + change.increased_points
    if current == change.initial_value or current == target:
        return target
    raise ConflictError(
        f"The passed initial value for '{field}' doesn't match the current value",
        context or ErrorContext(field=field),
        details={"field": field, "initialValue": change.initial_value, "currentValue": current},
    )


def require_learning_method(value: Optional[str], context: Optional[ErrorContext] = None) -> LearningMethod:
    method = parse_learning_method(value)
    if method is None:
        raise ValidationError(
            f"Invalid or missing learning method: {value}",
            context or ErrorContext(field="learningMethod"),
        )
    return method


def points_change(old: CalculationPoints, new: CalculationPoints) -> Optional[PointsChange]:
    if old == new:
        return None
    return PointsChange(old=old, new=new)


def make_record(
    record_type: RecordType,
    name: str,
    old: Dict[str, Any],
    new: Dict[str, Any],
    learning_method: Optional[LearningMethod] = None,
    adventure_points: Optional[PointsChange] = None,
    attribute_points: Optional[PointsChange] = None,
    comment: Optional[str] = None,
    record_id: Optional[str] = None,
) -> Record:
    return Record(
        type=record_type,
        name=name,
        id=record_id or str(uuid.uuid4()),
        data=ChangeData(old=old, new=new),
        learning_method=learning_method,
        calculation_points=RecordCalculationPoints(
            adventure_points=adventure_points, attribute_points=attribute_points
        ),
        comment=comment,
        timestamp=datetime.now(timezone.utc),
    )


def character_header(character: Character) -> Dict[str, Any]:
    return {"characterId": character.character_id, "userId": character.user_id}


def recalculate_combat(sheet: CharacterSheet, old: Dict[str, Any], new: Dict[str, Any]) -> None:
    """Refresh every combat value after attack/parade base values changed, recording the diff."""
    changed = recalculate_all_combat_values(sheet.base_values, sheet.combat_values)
    if not changed:
        return
    old["combatValues"] = {
        category: {skill: sheet.combat_values[category][skill].to_document() for skill in skills}
        for category, skills in changed.items()
    }
    new["combatValues"] = {
        category: {skill: values.to_document() for skill, values in skills.items()}
        for category, skills in changed.items()
    }
    for category, skills in changed.items():
        sheet.combat_values[category].update(skills)
