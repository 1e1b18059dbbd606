import json
import threading

from funnel_builder.db.enums import PresentationStatusEnum
from funnel_builder.db.repositories.decks import DeckStructuresRepository
from funnel_builder.db.repositories.presentations import PresentationsRepository
from funnel_builder.services import presentation_stream
from funnel_builder.services.presentation_stream import (
    DISCONNECT_MESSAGE,
    TIMEOUT_MESSAGE,
    PresentationStream,
    prepare_generation,
)
from funnel_builder.services.slide_generator import PresentationCustomization

from conftest import TEST_USER_ID


def _plan(db_session, project):
    deck = DeckStructuresRepository(db_session).create(
        user_id=TEST_USER_ID,
        project_id=project.id,
        slides=[
            {"title": "Welcome", "description": "", "section": "hook"},
            {"title": "The Method", "description": "", "section": "solution"},
            {"title": "Join Now", "description": "", "section": "close"},
        ],
    )
    return prepare_generation(
        db_session,
        user_id=TEST_USER_ID,
        project=project,
        deck=deck,
        customization=PresentationCustomization(),
    )


def _gated_slide_generator(gate, block_at):
    def fake_generate_slide(slide, *, index, **_kwargs):
        if index == block_at:
            gate.wait(5)
        return {"slideNumber": slide.slide_number, "title": slide.title, "content": [], "layoutType": "bullets"}

    return fake_generate_slide


def _parse(chunk: bytes):
    lines = chunk.decode("utf-8").strip().splitlines()
    if not lines or not lines[0].startswith("event: "):
        return None, None
    return lines[0][len("event: "):], json.loads(lines[1][len("data: "):])


def test_timeout_emits_error_event_and_records_failure(db_session, project, fake_llm, monkeypatch):
    plan = _plan(db_session, project)
    gate = threading.Event()
    monkeypatch.setattr(presentation_stream, "generate_slide", _gated_slide_generator(gate, 0))
    stream = PresentationStream(plan, llm_factory=lambda: fake_llm, heartbeat_seconds=0.01, timeout_seconds=0.2)

    chunks = list(stream.events())
    gate.set()
    stream.worker.join(5)

    assert any(chunk.startswith(b":heartbeat ") for chunk in chunks)
    name, data = _parse(chunks[-1])
    assert name == "error"
    assert data["error"] == TIMEOUT_MESSAGE
    assert data["isTimeout"] is True
    assert data["status"] == "failed"

    db_session.expire_all()
    presentation = PresentationsRepository(db_session).get(presentation_id=plan.presentation_id)
    assert presentation.status == PresentationStatusEnum.failed
    assert presentation.error_message == TIMEOUT_MESSAGE
    assert presentation.slides == []


def test_client_disconnect_leaves_a_draft(db_session, project, fake_llm, monkeypatch):
    plan = _plan(db_session, project)
    gate = threading.Event()
    monkeypatch.setattr(presentation_stream, "generate_slide", _gated_slide_generator(gate, 1))
    stream = PresentationStream(plan, llm_factory=lambda: fake_llm, heartbeat_seconds=0.01)

    events = stream.events()
    assert _parse(next(events))[0] == "connected"
    while _parse(next(events))[0] != "slide_generated":
        pass
    events.close()
    gate.set()
    stream.worker.join(5)

    assert not stream.worker.is_alive()
    db_session.expire_all()
    presentation = PresentationsRepository(db_session).get(presentation_id=plan.presentation_id)
    assert presentation.status == PresentationStatusEnum.draft
    assert presentation.error_message == f"Generation stopped at slide 1. {DISCONNECT_MESSAGE}"
    assert len(presentation.slides) == 1


def test_slides_with_an_image_are_not_regenerated(db_session, project, fake_llm, monkeypatch):
    plan = _plan(db_session, project)
    calls = []
    monkeypatch.setattr(
        presentation_stream,
        "generate_and_store_slide_image",
        lambda **kwargs: calls.append(kwargs) or "https://cdn.test/new.png",
    )
    stream = PresentationStream(plan, llm_factory=lambda: fake_llm, generate_images=True)

    kept = {"slideNumber": 1, "imagePrompt": "sunrise", "imageUrl": "https://cdn.test/old.png"}
    stream._attach_image(kept, fake_llm)
    fresh = {"slideNumber": 2, "imagePrompt": "sunset"}
    stream._attach_image(fresh, fake_llm)
    no_prompt = {"slideNumber": 3, "imagePrompt": None}
    stream._attach_image(no_prompt, fake_llm)

    assert kept["imageUrl"] == "https://cdn.test/old.png"
    assert fresh["imageUrl"] == "https://cdn.test/new.png"
    assert "imageGeneratedAt" in fresh
    assert "imageUrl" not in no_prompt
    assert [call["slide_number"] for call in calls] == [2]
