import json

from sheet_service.config import Settings
from sheet_service.models import CharacterCreateRequest, LevelRequest
from sheet_service.mutations import characters, level
from sheet_service.mutations.common import Services
from sheet_service.storage_backends.file_backend import build_file_backend
from sheet_service.storage_backends.sqlite_backend import SQLiteCharacterStore, SQLiteDatabase, SQLiteHistoryStore
from tools import migrate_to_sqlite as migrator

USER_ID = "3f1c9a52-7d1e-4c2b-9a8e-5b6f0d2e4a71"
ATTRIBUTES = {
    "courage": 5,
    "intelligence": 5,
    "concentration": 5,
    "charisma": 4,
    "mentalResilience": 4,
    "dexterity": 6,
    "endurance": 5,
    "strength": 5,
}


def _seed(source, levels=3, capacity=2):
    settings = Settings(repo_root=source, history_block_capacity=capacity)
    services = Services.from_backend(build_file_backend(settings), settings)
    request = CharacterCreateRequest(name="Brenna", attributes=ATTRIBUTES)
    character_id = characters.create_character(services, USER_ID, request).data["characterId"]
    for current in range(1, levels + 1):
        level.increase_level(services, USER_ID, character_id, LevelRequest(initial_level=current))
    return settings, character_id


def test_migrate_cli_round_trip(tmp_path, capsys):
    source = tmp_path / "src"
    settings, character_id = _seed(source)

    db_path = tmp_path / "sheets.sqlite"
    rc = migrator.main(["--source", str(source), "--db", str(db_path)])
    assert rc == 0
    out = capsys.readouterr().out
    assert f"[OK] {character_id}: blocks=2, records=4" in out
    assert "[SUMMARY] imported=1, skipped=0, failed=0, total=1" in out

    db = SQLiteDatabase(db_path)
    try:
        item = SQLiteCharacterStore(db).get_character(USER_ID, character_id)
        assert item["characterSheet"]["generalInformation"]["level"] == 4
        blocks = SQLiteHistoryStore(db).query_blocks(character_id, descending=False)
        assert [block["blockNumber"] for block in blocks] == [1, 2]
        assert blocks[1]["previousBlockId"] == blocks[0]["blockId"]
        assert [record["number"] for block in blocks for record in block["changes"]] == [1, 2, 3, 4]
    finally:
        db.close()


def test_migrate_skips_existing_unless_overwrite(tmp_path, capsys):
    source = tmp_path / "src"
    _, character_id = _seed(source, levels=1)
    db_path = tmp_path / "sheets.sqlite"

    assert migrator.main(["--source", str(source), "--db", str(db_path)]) == 0
    capsys.readouterr()

    assert migrator.main(["--source", str(source), "--db", str(db_path)]) == 0
    assert f"[SKIP] {character_id}" in capsys.readouterr().out

    assert migrator.main(["--source", str(source), "--db", str(db_path), "--overwrite"]) == 0
    assert f"[OK] {character_id}: blocks=1, records=2" in capsys.readouterr().out


def test_migrate_dry_run_and_filters(tmp_path, capsys):
    source = tmp_path / "src"
    _, character_id = _seed(source, levels=0)
    db_path = tmp_path / "sheets.sqlite"

    assert migrator.main(["--source", str(source), "--db", str(db_path), "--dry-run"]) == 0
    assert f"[DRY-RUN] Would import 1 character(s): {character_id}" in capsys.readouterr().out
    assert not db_path.exists()

    assert migrator.main(["--source", str(source), "--db", str(db_path), "--characters", "nobody"]) == 0
    assert "[WARN] No characters found to import" in capsys.readouterr().out


def test_migrate_reports_invalid_character(tmp_path, capsys):
    source = tmp_path / "src"
    settings, _ = _seed(source, levels=0)
    broken = settings.characters_path / "broken.json"
    broken.write_text(json.dumps({"characterId": "broken", "userId": USER_ID}), encoding="utf-8")

    rc = migrator.main(["--source", str(source), "--db", str(tmp_path / "sheets.sqlite")])
    assert rc == 2
    assert "[FAIL] broken: invalid character" in capsys.readouterr().out


def test_migrate_missing_source(tmp_path):
    assert migrator.main(["--source", str(tmp_path / "nowhere"), "--db", str(tmp_path / "sheets.sqlite")]) == 1


def test_migrate_reports_orphaned_history(tmp_path, capsys):
    source = tmp_path / "src"
    _, character_id = _seed(source, levels=1)
    db_path = tmp_path / "sheets.sqlite"
    assert migrator.main(["--source", str(source), "--db", str(db_path)]) == 0

    db = SQLiteDatabase(db_path)
    try:
        assert SQLiteCharacterStore(db).delete_character(USER_ID, character_id)
    finally:
        db.close()
    capsys.readouterr()

    assert migrator.main(["--source", str(source), "--db", str(db_path)]) == 2
    assert f"[FAIL] {character_id}: history blocks present without a character" in capsys.readouterr().out

    assert migrator.main(["--source", str(source), "--db", str(db_path), "--overwrite"]) == 0
    assert f"[OK] {character_id}: blocks=1, records=2" in capsys.readouterr().out
