import uuid

from funnel_builder.services.funnel_chat import FALLBACK_MESSAGE, VALIDATION_WARNING


def _chat_body(project_id: str, **overrides):
    body = {
        "projectId": project_id,
        "nodeType": "registration",
        "message": "Can you tighten the headline?",
        "conversationHistory": [],
        "currentContent": {"headline": "Join our free class"},
        "definition": {
            "title": "Registration Page",
            "description": "Where visitors sign up",
            "fields": [{"key": "headline", "label": "Main Headline", "type": "text", "required": True}],
        },
    }
    body.update(overrides)
    return body


def test_chat_returns_reply_and_suggested_changes(api_client, project, fake_llm):
    fake_llm.respond(
        "funnel_chat",
        {"message": "Here is a sharper headline.", "suggestedChanges": {"headline": "Sign 5 Clients in 30 Days"}},
    )

    response = api_client.post("/funnel-map/chat", json=_chat_body(project.id))

    assert response.status_code == 200
    assert response.headers["X-Request-ID"]
    assert response.json() == {
        "message": "Here is a sharper headline.",
        "suggestedChanges": {"headline": "Sign 5 Clients in 30 Days"},
    }

    overview = api_client.get(f"/funnel-map/{project.id}")
    assert overview.status_code == 200


def test_chat_falls_back_when_model_output_is_invalid(api_client, project, fake_llm):
    fake_llm.respond("funnel_chat", {"reply": "wrong shape"})

    response = api_client.post("/funnel-map/chat", json=_chat_body(project.id))

    assert response.status_code == 200
    assert response.json() == {"message": FALLBACK_MESSAGE, "warning": VALIDATION_WARNING}


def test_chat_rejects_invalid_payload_with_details(api_client, project):
    body = _chat_body(project.id)
    del body["message"]

    response = api_client.post("/funnel-map/chat", json=body)

    assert response.status_code == 400
    payload = response.json()
    assert payload["error"] == "Invalid request"
    assert {"field": "message", "message": "Field required"} in payload["details"]
    assert response.headers["X-Request-ID"]


def test_chat_rejects_malformed_json(api_client):
    response = api_client.post(
        "/funnel-map/chat", content=b"{not json", headers={"Content-Type": "application/json"}
    )
    assert response.status_code == 400
    assert response.json()["details"] == [{"field": "body", "message": "Invalid JSON"}]


def test_chat_checks_project_ownership(api_client, other_project):
    assert api_client.post("/funnel-map/chat", json=_chat_body(other_project.id)).json() == {"error": "Forbidden"}

    missing = api_client.post("/funnel-map/chat", json=_chat_body(str(uuid.uuid4())))
    assert missing.status_code == 404
    assert missing.json() == {"error": "Project not found"}


def test_chat_reports_model_failures_with_request_id(api_client, project, fake_llm):
    fake_llm.respond("funnel_chat", RuntimeError("provider unavailable"))

    response = api_client.post("/funnel-map/chat", json=_chat_body(project.id))

    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "Failed to process chat request"
    assert body["requestId"] == response.headers["X-Request-ID"]


def test_chat_requires_authentication(unauthenticated_client):
    response = unauthenticated_client.post("/funnel-map/chat", json={})
    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


def test_chat_is_rate_limited(api_client, project, fake_llm):
    fake_llm.respond("funnel_chat", {"message": "ok"})
    for _ in range(30):
        assert api_client.post("/funnel-map/chat", json=_chat_body(project.id)).status_code == 200

    limited = api_client.post("/funnel-map/chat", json=_chat_body(project.id))
    assert limited.status_code == 429
    assert limited.headers["X-Request-ID"]
