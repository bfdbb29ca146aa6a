def _offer(client, auth_headers, character_id):
    response = client.get(f"/characters/{character_id}/level-up", headers=auth_headers)
    assert response.status_code == 200
    return response.json()


def test_get_level_up_options(client, auth_headers, character_id):
    offer = _offer(client, auth_headers, character_id)
    assert offer["nextLevel"] == 2
    assert offer["optionsHash"]
    options = {option["kind"]: option for option in offer["options"]}
    assert options["hpRoll"]["allowed"] is True
    assert options["hpRoll"]["rollRange"] == {"min": 3, "max": 6}
    assert options["bonusActionPlusOne"]["allowed"] is False
    assert options["bonusActionPlusOne"]["reasonIfDenied"] == "Only available at level 6."


def test_apply_hp_roll(client, auth_headers, character_id):
    offer = _offer(client, auth_headers, character_id)
    payload = {
        "initialLevel": 1,
        "selectedEffect": "hpRoll",
        "effectParams": {"roll": 4},
        "optionsHash": offer["optionsHash"],
    }
    response = client.post(f"/characters/{character_id}/level-up", json=payload, headers=auth_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["data"]["effect"] == {"kind": "hpRoll", "roll": {"dice": "1d4+2", "value": 4}, "delta": None}
    assert body["historyRecord"]["name"] == "levelUp/hpRoll"
    assert body["historyRecord"]["type"] == 1

    sheet = client.get(f"/characters/{character_id}", headers=auth_headers).json()["characterSheet"]
    assert sheet["generalInformation"]["level"] == 2
    assert sheet["baseValues"]["healthPoints"]["current"] == 39
    assert sheet["baseValues"]["healthPoints"]["byLvlUp"] == 4
    progress = sheet["generalInformation"]["levelUpProgress"]
    assert progress["effects"]["hpRoll"] == {"selectionCount": 1, "firstChosenLevel": 2, "lastChosenLevel": 2}

    next_offer = _offer(client, auth_headers, character_id)
    assert next_offer["nextLevel"] == 3
    assert next_offer["optionsHash"] != offer["optionsHash"]


def test_apply_with_stale_hash(client, auth_headers, character_id):
    offer = _offer(client, auth_headers, character_id)
    client.post(f"/characters/{character_id}/level", json={"initialLevel": 1}, headers=auth_headers)
    payload = {"initialLevel": 2, "selectedEffect": "luckPlusOne", "optionsHash": offer["optionsHash"]}
    response = client.post(f"/characters/{character_id}/level-up", json=payload, headers=auth_headers)
    assert response.status_code == 409


def test_apply_denied_effect_and_bad_roll(client, auth_headers, character_id):
    offer = _offer(client, auth_headers, character_id)
    denied = {"initialLevel": 1, "selectedEffect": "legendaryActionPlusOne", "optionsHash": offer["optionsHash"]}
    assert client.post(f"/characters/{character_id}/level-up", json=denied, headers=auth_headers).status_code == 400

    no_roll = {"initialLevel": 1, "selectedEffect": "armorLevelRoll", "optionsHash": offer["optionsHash"]}
    assert client.post(f"/characters/{character_id}/level-up", json=no_roll, headers=auth_headers).status_code == 400

    unknown = {"initialLevel": 1, "selectedEffect": "flight", "optionsHash": offer["optionsHash"]}
    assert client.post(f"/characters/{character_id}/level-up", json=unknown, headers=auth_headers).status_code == 400


def test_reroll_unlock_adds_ability(client, auth_headers, character_id):
    offer = _offer(client, auth_headers, character_id)
    payload = {"initialLevel": 1, "selectedEffect": "rerollUnlock", "optionsHash": offer["optionsHash"]}
    response = client.post(f"/characters/{character_id}/level-up", json=payload, headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["data"]["changes"]["new"]["specialAbilities"] == ["Night Vision", "Reroll"]

    options = {option["kind"]: option for option in _offer(client, auth_headers, character_id)["options"]}
    assert options["rerollUnlock"]["allowed"] is False
