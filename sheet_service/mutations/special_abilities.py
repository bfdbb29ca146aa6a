from ..logging_config import get_logger
from ..models import RecordType, SpecialAbilityRequest
from .common import (
    MutationResult,
    Services,
    character_header,
    commit,
    load_for_update,
    make_record,
    replayed_record,
)

logger = get_logger(__name__)


def add_special_ability(
    services: Services, user_id: str, character_id: str, request: SpecialAbilityRequest
) -> MutationResult:
    character, recovered = load_for_update(services, user_id, character_id)
    sheet = character.character_sheet
    header = {**character_header(character), "specialAbilityName": request.special_ability}

    if request.special_ability in sheet.special_abilities:
        logger.info("Special ability already present, replay", character_id=character_id)
        return MutationResult(
            data={**header, "specialAbilities": list(sheet.special_abilities)},
            record=replayed_record(recovered, RecordType.SPECIAL_ABILITIES_CHANGED, "specialAbilities"),
        )

    old = {"values": list(sheet.special_abilities)}
    sheet.special_abilities.append(request.special_ability)
    new = {"values": list(sheet.special_abilities)}

    record = make_record(RecordType.SPECIAL_ABILITIES_CHANGED, "specialAbilities", old, new)
    stored = commit(services, character, record)
    logger.info("Special ability added", character_id=character_id, special_ability=request.special_ability)
    return MutationResult(data={**header, "changes": {"old": old, "new": new}}, record=stored)
