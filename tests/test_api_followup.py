from funnel_builder.db.repositories.followup import SequencesRepository
from funnel_builder.routers.common import encode
from funnel_builder.services.followup.agent_config import get_or_create_agent_config

from conftest import OTHER_USER_ID, TEST_USER_ID


def _config(api_client, project):
    response = api_client.post(f"/followup/agent-configs/{project.id}")
    assert response.status_code == 200
    return response.json()


def test_agent_config_is_created_once_per_project(api_client, project):
    first = _config(api_client, project)
    second = _config(api_client, project)
    assert first["id"] == second["id"]
    assert [item["id"] for item in api_client.get("/followup/agent-configs").json()] == [first["id"]]


def test_create_sequence_with_dynamic_messages(api_client, project):
    config = _config(api_client, project)

    response = api_client.post(
        "/followup/sequences",
        json={"agentConfigId": config["id"], "name": "Post-webinar", "messageCount": 3, "deadlineHours": 72},
    )

    assert response.status_code == 201
    sequence = response.json()
    assert sequence["id"]
    assert sequence["agent_config_id"] == config["id"]
    assert sequence["total_messages"] == 3
    assert [message["send_delay_hours"] for message in sequence["messages"]] == [0, 48, 72]
    assert sequence["target_segments"] == ["no_show", "skimmer", "sampler", "engaged", "hot"]


def test_sequence_intent_range_is_validated(api_client, project):
    config = _config(api_client, project)
    response = api_client.post(
        "/followup/sequences",
        json={"agentConfigId": config["id"], "name": "Bad", "minIntentScore": 80, "maxIntentScore": 20},
    )
    assert response.status_code == 400


def test_sequence_access_is_scoped_to_owner(api_client, db_session, other_project):
    foreign_config = get_or_create_agent_config(db_session, user_id=OTHER_USER_ID, project=other_project)
    foreign = SequencesRepository(db_session).create(agent_config_id=foreign_config.id, name="Theirs")

    assert api_client.get(f"/followup/sequences/{foreign.id}").status_code == 403
    assert api_client.get(f"/followup/sequences/{foreign.id}/messages").status_code == 403
    assert api_client.get("/followup/sequences/missing").status_code == 404


def test_message_crud_keeps_count_in_sync(api_client, project):
    config = _config(api_client, project)
    sequence = api_client.post("/followup/sequences", json={"agentConfigId": config["id"], "name": "Manual"}).json()
    base = f"/followup/sequences/{sequence['id']}/messages"

    created = api_client.post(base, json={"name": "Day 1", "messageOrder": 1, "bodyContent": "Hi {first_name}"})
    assert created.status_code == 201
    duplicate = api_client.post(base, json={"name": "Again", "messageOrder": 1, "bodyContent": "Hello"})
    assert duplicate.status_code == 409

    assert api_client.get(f"/followup/sequences/{sequence['id']}").json()["total_messages"] == 1

    message_id = created.json()["id"]
    patched = api_client.patch(f"{base}/{message_id}", json={"bodyContent": "Updated", "id": "hijack"})
    assert patched.status_code == 200
    assert patched.json()["id"] == message_id
    assert patched.json()["body_content"] == "Updated"

    assert api_client.delete(f"{base}/{message_id}").status_code == 204
    assert api_client.get(f"{base}/{message_id}").status_code == 404


def test_prospect_upsert_and_trigger(api_client, project):
    config = _config(api_client, project)
    sequence = api_client.post(
        "/followup/sequences",
        json={"agentConfigId": config["id"], "name": "Auto", "messageCount": 3},
    ).json()

    created = api_client.post(
        "/followup/prospects",
        json={"agentConfigId": config["id"], "email": "Lead@Example.com", "firstName": "Sam", "watchPercentage": 60},
    )
    assert created.status_code == 200
    assert created.json()["created"] is True
    prospect = created.json()["prospect"]
    assert prospect["email"] == "lead@example.com"
    assert prospect["segment"] == "engaged"

    again = api_client.post(
        "/followup/prospects", json={"agentConfigId": config["id"], "email": "lead@example.com"}
    )
    assert again.json()["created"] is False
    assert again.json()["prospect"]["id"] == prospect["id"]

    triggered = api_client.post("/followup/trigger", json={"prospectId": prospect["id"], "sequenceId": sequence["id"]})
    assert triggered.status_code == 201
    assert triggered.json()["count"] == 3
    assert all(item["delivery_status"] == "pending" for item in triggered.json()["deliveries"])

    detail = api_client.get(f"/followup/prospects/{prospect['id']}").json()
    assert len(detail["deliveries"]) == 3


def test_encode_reloads_rows_expired_by_a_later_commit(db_session, project):
    config = get_or_create_agent_config(db_session, user_id=TEST_USER_ID, project=project)
    sequence = SequencesRepository(db_session).create(agent_config_id=config.id, name="Expired")
    db_session.commit()

    payload = encode({"sequence": sequence, "configs": [config]})

    assert payload["sequence"]["id"] == sequence.id
    assert payload["sequence"]["name"] == "Expired"
    assert payload["configs"][0]["user_id"] == TEST_USER_ID
