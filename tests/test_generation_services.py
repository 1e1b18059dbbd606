import pytest

from funnel_builder.db.enums import PathwayTypeEnum
from funnel_builder.llm.prompts import TranscriptData
from funnel_builder.services.auto_generation import REQUIRES_OFFER, generate_all_from_intake
from funnel_builder.services.decks import (
    PENDING_SECTION,
    DeckGenerationError,
    build_deck_slides,
    generate_deck_structure,
    renumber_slides,
)
from funnel_builder.services.offers import OfferGenerationError, generate_offer, normalize_offer

from conftest import TEST_USER_ID

TRANSCRIPT = TranscriptData(
    transcript_text="I run a coaching program for new coaches. It costs $2,997 and includes weekly calls.",
    extracted_data={"pricing": {"regular": "$3,997", "webinar": "$2,997"}},
)


def _slides(label, messages):
    # label is deck_slides_{start}_{end}
    start, end = (int(part) for part in label.split("_")[-2:])
    return {"slides": [{"title": f"Slide title {n}", "section": "Problem"} for n in range(start, end + 1)]}


def test_deck_chunks_fall_back_to_placeholders(fake_llm):
    fake_llm.respond("deck_slides_1_10", _slides)
    fake_llm.respond("deck_slides_11_20", RuntimeError("timeout"))
    fake_llm.respond("deck_slides", _slides)

    slides = build_deck_slides(TRANSCRIPT, slide_count=55, llm=fake_llm)

    assert len(slides) == 55
    assert [slide["slideNumber"] for slide in slides] == list(range(1, 56))
    assert slides[0] == {"slideNumber": 1, "title": "Slide title 1", "description": "", "section": "problem"}
    assert slides[10]["title"] == "Slide 11 - To Be Completed"
    assert all(slide["section"] == PENDING_SECTION for slide in slides[10:20])
    assert slides[54]["title"] == "Slide title 55"
    assert len(fake_llm.calls) == 6


def test_deck_rejects_unsupported_counts_and_total_failure(db_session, project, fake_llm):
    with pytest.raises(DeckGenerationError):
        build_deck_slides(TRANSCRIPT, slide_count=12, llm=fake_llm)

    fake_llm.respond("deck_slides", RuntimeError("down"))
    with pytest.raises(DeckGenerationError):
        generate_deck_structure(
            db_session, user_id=TEST_USER_ID, project=project, transcript=TRANSCRIPT, slide_count=5, llm=fake_llm
        )


def test_five_slide_deck_is_persisted(db_session, project, fake_llm):
    fake_llm.respond("deck_slides", _slides)
    deck = generate_deck_structure(
        db_session, user_id=TEST_USER_ID, project=project, transcript=TRANSCRIPT, slide_count=5, llm=fake_llm
    )
    assert deck.template_type == "5_slide_test"
    assert deck.total_slides == 5
    assert deck.sections == {"problem": 5}


def test_renumber_slides_is_one_based():
    assert [slide["slideNumber"] for slide in renumber_slides([{"slideNumber": 7}, {"slideNumber": 3}])] == [1, 2]


def test_normalize_offer_coerces_model_output():
    fields = normalize_offer(
        {
            "name": "Coach Accelerator",
            "price": "$2,997",
            "pathway": "something_else",
            "features": "- Weekly calls\n- Templates\n- Community",
            "currency": "usd",
        }
    )
    assert fields["price"] == 2997
    assert fields["pathway"] is PathwayTypeEnum.book_call
    assert fields["currency"] == "USD"
    assert fields["features"] == ["Weekly calls", "Templates", "Community"]

    with pytest.raises(OfferGenerationError):
        normalize_offer({"price": 10})


def test_generate_offer_uses_intake_pricing_when_model_omits_price(db_session, project, fake_llm):
    fake_llm.respond("offer", {"name": "Coach Accelerator", "features": ["a", "b", "c"]})
    offer = generate_offer(db_session, user_id=TEST_USER_ID, project=project, transcript=TRANSCRIPT, llm=fake_llm)
    assert offer.price == 2997
    assert offer.pathway == PathwayTypeEnum.book_call


def test_auto_generation_continues_past_failed_steps(db_session, project, fake_llm):
    fake_llm.respond("offer", RuntimeError("offer model down"))
    fake_llm.respond("deck_slides", _slides)
    fake_llm.respond("watch_page", {"headline": "Watch now", "watchPrompt": "Grab a notebook"})
    fake_llm.respond("registration_page", {"headline": "Save your seat", "benefitBullets": ["One", "Two"]})

    result = generate_all_from_intake(
        db_session, user_id=TEST_USER_ID, project=project, intake=TRANSCRIPT, slide_count=5, llm=fake_llm
    )

    failed = {item["step"]: item["error"] for item in result["failedSteps"]}
    assert result["success"] is False
    assert failed[2] == "offer model down"
    assert failed[5] == REQUIRES_OFFER
    assert failed[11] == REQUIRES_OFFER
    assert 3 in result["completedSteps"]

    db_session.refresh(project)
    status = project.generation_status
    assert status["is_generating"] is False
    assert status["completed_at"] is not None
    assert {item["step"]: item["status"] for item in status["progress"]}[2] == "failed"
