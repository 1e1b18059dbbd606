from funnel_builder.db.repositories.intakes import TranscriptsRepository

from conftest import OTHER_USER_ID, TEST_USER_ID


def test_health(api_client):
    assert api_client.get("/health").json() == {"ok": True}
    assert api_client.get("/health/db").json() == {"db": "ok"}


def test_requests_without_token_are_rejected(unauthenticated_client):
    response = unauthenticated_client.get("/projects")
    assert response.status_code == 401
    assert response.json()["detail"] == "Missing bearer token"


def test_project_lifecycle(api_client):
    created = api_client.post("/projects", json={"name": "Launch Lab", "businessNiche": "fitness"})
    assert created.status_code == 201
    project = created.json()
    assert project["user_id"] == TEST_USER_ID
    assert project["slug"] == "launch-lab"
    assert project["business_niche"] == "fitness"

    updated = api_client.patch(f"/projects/{project['id']}", json={"targetAudience": "busy parents"})
    assert updated.status_code == 200
    assert updated.json()["target_audience"] == "busy parents"

    listed = api_client.get("/projects").json()
    assert [item["id"] for item in listed] == [project["id"]]

    archived = api_client.delete(f"/projects/{project['id']}")
    assert archived.status_code == 200
    assert archived.json()["status"] == "archived"
    assert api_client.get("/projects", params={"status": "active"}).json() == []


def test_duplicate_names_get_unique_slugs(api_client):
    first = api_client.post("/projects", json={"name": "Same Name"}).json()
    second = api_client.post("/projects", json={"name": "Same Name"}).json()
    assert first["slug"] == "same-name"
    assert second["slug"] == "same-name-2"


def test_other_users_project_is_forbidden(api_client, other_project):
    assert other_project.user_id == OTHER_USER_ID
    response = api_client.get(f"/projects/{other_project.id}")
    assert response.status_code == 403
    assert api_client.get("/projects/does-not-exist").status_code == 404


def test_paste_intake_and_listing(api_client, project):
    content = "Our coaching program helps new coaches sign five clients in thirty days using webinars."
    created = api_client.post("/intake/paste", json={"projectId": project.id, "content": content})
    assert created.status_code == 201
    assert created.json()["intake_method"] == "paste"

    too_short = api_client.post("/intake/paste", json={"projectId": project.id, "content": "short"})
    assert too_short.status_code == 400

    listed = api_client.get(f"/intake/{project.id}").json()
    assert len(listed) == 1


def test_offer_generation_requires_intake(api_client, project):
    response = api_client.post("/offers/generate", json={"projectId": project.id})
    assert response.status_code == 400
    assert response.json()["detail"] == "Complete an intake session first"


def test_auto_generate_requires_intake(api_client, project):
    response = api_client.post("/generate/auto-generate-all", json={"projectId": project.id})
    assert response.status_code == 400

    status = api_client.get(f"/generate/status/{project.id}").json()
    assert status["isGenerating"] is False


def test_auto_generate_is_accepted_with_intake(api_client, project, db_session, monkeypatch):
    TranscriptsRepository(db_session).create(
        user_id=TEST_USER_ID,
        project_id=project.id,
        transcript_text="We coach agency owners to productize their services and scale past a million.",
    )
    queued = []
    monkeypatch.setattr(
        "funnel_builder.routers.generate.run_auto_generation", lambda **kwargs: queued.append(kwargs)
    )

    response = api_client.post("/generate/auto-generate-all", json={"projectId": project.id, "slideCount": 5})

    assert response.status_code == 202
    assert response.json()["success"] is True
    assert queued and queued[0]["slide_count"] == 5


def test_nps_create_and_summary(api_client):
    for score in (10, 9, 3):
        assert api_client.post("/nps", json={"score": score, "feedback": "  "}).status_code == 201
    assert api_client.post("/nps", json={"score": 11}).status_code == 422

    responses = api_client.get("/nps").json()
    assert len(responses) == 3
    assert all(item["feedback"] is None for item in responses)

    summary = api_client.get("/nps/summary").json()
    assert summary == {"total": 3, "promoters": 2, "passives": 0, "detractors": 1, "nps": 33}
