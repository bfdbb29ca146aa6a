def _patch(client, auth_headers, character_id, path, attack, parade):
    payload = {
        "skilledAttackValue": {"initialValue": attack[0], "increasedPoints": attack[1]},
        "skilledParadeValue": {"initialValue": parade[0], "increasedPoints": parade[1]},
    }
    return client.patch(f"/characters/{character_id}/combat/{path}", json=payload, headers=auth_headers)


def test_spend_melee_points(client, auth_headers, character_id):
    response = _patch(client, auth_headers, character_id, "melee/daggers", (0, 10), (0, 8))
    assert response.status_code == 200
    body = response.json()
    assert body["data"]["changes"]["new"]["combatValues"]["melee"]["daggers"] == {
        "availablePoints": 0,
        "skilledAttackValue": 10,
        "skilledParadeValue": 8,
        "attackValue": 42,
        "paradeValue": 40,
    }
    assert body["historyRecord"]["type"] == 7
    assert body["historyRecord"]["name"] == "melee/daggers"

    replay = _patch(client, auth_headers, character_id, "melee/daggers", (0, 10), (0, 8))
    assert replay.status_code == 200
    assert replay.json()["historyRecord"] is None


def test_spend_more_than_available(client, auth_headers, character_id):
    response = _patch(client, auth_headers, character_id, "melee/martialArts", (0, 10), (0, 3))
    assert response.status_code == 409


def test_ranged_skill_has_no_parade(client, auth_headers, character_id):
    assert _patch(client, auth_headers, character_id, "ranged/missile", (0, 2), (0, 1)).status_code == 400

    response = _patch(client, auth_headers, character_id, "ranged/missile", (0, 2), (0, 0))
    assert response.status_code == 200
    assert response.json()["data"]["changes"]["new"]["combatValues"]["ranged"]["missile"]["attackValue"] == 34


def test_combat_value_validation(client, auth_headers, character_id):
    assert _patch(client, auth_headers, character_id, "ranged/daggers", (0, 1), (0, 0)).status_code == 400
    assert _patch(client, auth_headers, character_id, "melee/athletics", (0, 1), (0, 0)).status_code == 400
    assert _patch(client, auth_headers, character_id, "melee/daggers", (0, -1), (0, 0)).status_code == 400
    assert _patch(client, auth_headers, character_id, "melee/daggers", (3, 1), (0, 0)).status_code == 409
