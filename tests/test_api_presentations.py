import json

from funnel_builder.db.enums import PresentationStatusEnum
from funnel_builder.db.repositories.decks import DeckStructuresRepository
from funnel_builder.db.repositories.presentations import PresentationsRepository
from funnel_builder.services import presentation_stream

from conftest import TEST_USER_ID


def _events(body: str):
    events = []
    for block in body.split("\n\n"):
        lines = block.strip().splitlines()
        if not lines or not lines[0].startswith("event: "):
            continue
        events.append((lines[0][len("event: "):], json.loads(lines[1][len("data: "):])))
    return events


def _deck(db_session, project):
    return DeckStructuresRepository(db_session).create(
        user_id=TEST_USER_ID,
        project_id=project.id,
        slides=[
            {"title": "Welcome", "description": "Set the stage", "section": "hook"},
            {"title": "Step One: Attract", "description": "Find leads", "section": "solution"},
            {"title": "Enroll Today", "description": "Make the offer", "section": "close"},
        ],
    )


def test_stream_requires_project_and_deck_ids(api_client):
    response = api_client.get("/presentations/generate/stream", params={"projectId": "abc"})
    assert response.status_code == 400


def test_stream_rejects_unknown_customization(api_client, project, db_session):
    deck = _deck(db_session, project)
    response = api_client.get(
        "/presentations/generate/stream",
        params={
            "projectId": project.id,
            "deckStructureId": deck.id,
            "customization": json.dumps({"textDensity": "huge"}),
        },
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid customization parameters"


def test_stream_emits_slides_and_completes(api_client, project, db_session, fake_llm):
    deck = _deck(db_session, project)
    fake_llm.respond("slide_1", {"title": "Welcome, Coaches", "content": ["Why this matters"]})

    response = api_client.get(
        "/presentations/generate/stream",
        params={"projectId": project.id, "deckStructureId": deck.id},
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    events = _events(response.text)
    names = [name for name, _ in events]
    assert names[0] == "connected"
    assert names.count("slide_generated") == 3
    assert names[-1] == "completed"

    connected = events[0][1]
    assert connected["totalSlides"] == 3
    assert connected["isResuming"] is False
    slides = [data["slide"] for name, data in events if name == "slide_generated"]
    assert slides[0]["title"] == "Welcome, Coaches"
    assert [slide["layoutType"] for slide in slides] == ["title", "process", "cta"]

    db_session.expire_all()
    presentation = PresentationsRepository(db_session).get(presentation_id=connected["presentationId"])
    assert presentation.status == PresentationStatusEnum.completed
    assert presentation.generation_progress == 100
    assert len(presentation.slides) == 3


def test_stream_resumes_after_existing_slides(api_client, project, db_session):
    deck = _deck(db_session, project)
    existing = PresentationsRepository(db_session).create(
        user_id=TEST_USER_ID,
        project_id=project.id,
        title="Partial",
        deck_structure_id=deck.id,
        status=PresentationStatusEnum.draft,
        slides=[{"slideNumber": 1, "title": "Welcome", "layoutType": "title"}],
    )

    response = api_client.get(
        "/presentations/generate/stream",
        params={"projectId": project.id, "deckStructureId": deck.id, "resumePresentationId": existing.id},
    )

    events = _events(response.text)
    connected = events[0][1]
    assert connected["isResuming"] is True
    assert connected["startFromSlide"] == 2
    assert connected["slidesToGenerate"] == 2
    assert [data["slideNumber"] for name, data in events if name == "slide_generated"] == [2, 3]


def _presentation(db_session, project):
    return PresentationsRepository(db_session).create(
        user_id=TEST_USER_ID,
        project_id=project.id,
        title="Webinar",
        status=PresentationStatusEnum.completed,
        slides=[
            {"slideNumber": 1, "title": "Hello", "content": ["a"], "layoutType": "title"},
            {"slideNumber": 2, "title": "Body", "content": ["b"], "layoutType": "bullets"},
        ],
    )


def test_slide_edit_requires_an_action(api_client, project, db_session):
    presentation = _presentation(db_session, project)
    response = api_client.patch(f"/presentations/{presentation.id}/slides/1", json={})
    assert response.status_code == 400


def test_slide_edit_rejects_unknown_layout_and_missing_slide(api_client, project, db_session):
    presentation = _presentation(db_session, project)
    assert api_client.patch(
        f"/presentations/{presentation.id}/slides/1", json={"layoutType": "spiral"}
    ).status_code == 400
    assert api_client.patch(
        f"/presentations/{presentation.id}/slides/9", json={"title": "Nope"}
    ).status_code == 404


def test_slide_edit_applies_direct_changes_and_quick_actions(api_client, project, db_session, fake_llm):
    presentation = _presentation(db_session, project)
    fake_llm.respond("slide_regenerate", {"title": "A Better Title"})

    direct = api_client.patch(
        f"/presentations/{presentation.id}/slides/2", json={"content": ["x", "y"], "layoutType": "quote"}
    )
    assert direct.status_code == 200
    assert direct.json()["slide"]["content"] == ["x", "y"]
    assert direct.json()["slide"]["layoutType"] == "quote"

    action = api_client.patch(f"/presentations/{presentation.id}/slides/2", json={"quickAction": "better_title"})
    assert action.status_code == 200
    slide = action.json()["slide"]
    assert slide["title"] == "A Better Title"
    assert slide["content"] == ["x", "y"]
    assert fake_llm.calls == ["slide_regenerate"]


def test_slide_edit_maps_model_failure_to_503(api_client, project, db_session, fake_llm):
    presentation = _presentation(db_session, project)
    fake_llm.respond("slide_regenerate", RuntimeError("down"))
    response = api_client.patch(f"/presentations/{presentation.id}/slides/1", json={"customPrompt": "Shorter"})
    assert response.status_code == 503


def _slide_with_image(label, messages):
    return {"title": f"Title for {label}", "content": ["Point"], "imagePrompt": f"illustration for {label}"}


def test_stream_generates_an_image_for_each_slide(api_client, project, db_session, fake_llm, monkeypatch):
    deck = _deck(db_session, project)
    fake_llm.respond("slide_", _slide_with_image)
    stored = []

    def fake_store(*, presentation_id, slide_number, prompt, llm):
        stored.append((slide_number, prompt))
        return f"https://cdn.test/presentations/{presentation_id}/slide-{slide_number}.png"

    monkeypatch.setattr(presentation_stream, "generate_and_store_slide_image", fake_store)

    response = api_client.get(
        "/presentations/generate/stream",
        params={"projectId": project.id, "deckStructureId": deck.id},
    )

    events = _events(response.text)
    slides = [data["slide"] for name, data in events if name == "slide_generated"]
    assert [number for number, _ in stored] == [1, 2, 3]
    assert stored[0][1] == "illustration for slide_1"
    assert all(slide["imageUrl"].endswith(f"slide-{slide['slideNumber']}.png") for slide in slides)
    assert all(slide["imageGeneratedAt"] for slide in slides)

    db_session.expire_all()
    presentation = PresentationsRepository(db_session).get(presentation_id=events[0][1]["presentationId"])
    assert all(slide.get("imageUrl") for slide in presentation.slides)


def _failing_slide_generator(fail_at):
    def fake_generate_slide(slide, *, index, **_kwargs):
        if index == fail_at:
            raise RuntimeError("model exploded")
        return {"slideNumber": slide.slide_number, "title": slide.title, "content": [], "layoutType": "bullets"}

    return fake_generate_slide


def test_stream_error_after_some_slides_keeps_a_draft(api_client, project, db_session, monkeypatch):
    deck = _deck(db_session, project)
    monkeypatch.setattr(presentation_stream, "generate_slide", _failing_slide_generator(1))

    response = api_client.get(
        "/presentations/generate/stream",
        params={"projectId": project.id, "deckStructureId": deck.id},
    )

    events = _events(response.text)
    name, error = events[-1]
    assert name == "error"
    assert error["isTimeout"] is False
    assert error["slidesGenerated"] == 1
    assert error["status"] == "draft"

    db_session.expire_all()
    presentation = PresentationsRepository(db_session).get(presentation_id=error["presentationId"])
    assert presentation.status == PresentationStatusEnum.draft
    assert presentation.error_message == "Generation stopped at slide 1. model exploded"


def test_stream_error_before_any_slide_marks_failed(api_client, project, db_session, monkeypatch):
    deck = _deck(db_session, project)
    monkeypatch.setattr(presentation_stream, "generate_slide", _failing_slide_generator(0))

    response = api_client.get(
        "/presentations/generate/stream",
        params={"projectId": project.id, "deckStructureId": deck.id},
    )

    name, error = _events(response.text)[-1]
    assert name == "error"
    assert error["status"] == "failed"
    assert error["slidesGenerated"] == 0

    db_session.expire_all()
    presentation = PresentationsRepository(db_session).get(presentation_id=error["presentationId"])
    assert presentation.status == PresentationStatusEnum.failed
    assert presentation.error_message == "model exploded"


def test_stream_enforces_presentation_limit(api_client, project, db_session, monkeypatch):
    deck = _deck(db_session, project)
    monkeypatch.setattr(presentation_stream.settings, "PRESENTATION_LIMIT_PER_PROJECT", 1)
    repo = PresentationsRepository(db_session)
    repo.create(
        user_id=TEST_USER_ID,
        project_id=project.id,
        title="Failed one",
        deck_structure_id=deck.id,
        status=PresentationStatusEnum.failed,
        slides=[],
    )
    params = {"projectId": project.id, "deckStructureId": deck.id}

    # Failed presentations do not count toward the limit.
    assert api_client.get("/presentations/generate/stream", params=params).status_code == 200

    response = api_client.get("/presentations/generate/stream", params=params)
    assert response.status_code == 429
    assert response.json()["code"] == "PRESENTATION_LIMIT_REACHED"
