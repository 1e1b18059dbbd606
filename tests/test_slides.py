import pytest

from funnel_builder.services.slide_generator import (
    DeckStructureSlide,
    InvalidCustomizationError,
    PresentationCustomization,
    SlideGenerationError,
    deck_slide_from_payload,
    determine_layout_type,
    generate_presentation,
    regenerate_slide,
)


def _slide(title: str, number: int = 2, section: str = "") -> DeckStructureSlide:
    return DeckStructureSlide(slide_number=number, title=title, section=section)


@pytest.mark.parametrize(
    "title, expected",
    [
        ("Part Two", "section"),
        ("Client Testimonial", "quote"),
        ("The Numbers Behind It", "statistics"),
        ("Before and After", "comparison"),
        ("Step One: Foundations", "process"),
        ("Why Coaches Stall", "bullets"),
    ],
)
def test_layout_follows_title_keywords(title, expected):
    assert determine_layout_type(_slide(title), 3, 10) == expected


def test_first_and_last_slides_have_fixed_layouts():
    assert determine_layout_type(_slide("Step by step"), 0, 5) == "title"
    assert determine_layout_type(_slide("Step by step"), 4, 5) == "cta"


def test_deck_slide_without_title_gets_numbered_placeholder():
    assert deck_slide_from_payload({"description": "x"}, 4).title == "Slide 5"
    assert deck_slide_from_payload("not a dict", 0).slide_number == 1


def test_customization_defaults_and_validation():
    assert PresentationCustomization.from_payload(None).to_payload()["textDensity"] == "balanced"
    custom = PresentationCustomization.from_payload({"visualStyle": "bold", "imageStyle": "icons"})
    assert custom.visual_style == "bold"
    assert custom.image_style == "icons"
    with pytest.raises(InvalidCustomizationError):
        PresentationCustomization.from_payload({"textDensity": "enormous"})
    with pytest.raises(InvalidCustomizationError):
        PresentationCustomization.from_payload(["balanced"])


def test_generation_falls_back_to_outline_on_model_error(fake_llm):
    fake_llm.respond("slide_1", {"title": "Welcome", "content": ["One", "Two"], "speakerNotes": "Hi"})
    fake_llm.respond("slide_2", RuntimeError("provider down"))
    outline = [
        DeckStructureSlide(1, "Intro"),
        DeckStructureSlide(2, "The Problem", description="Coaches lack leads"),
    ]
    progress = []

    slides = generate_presentation(
        outline,
        customization=PresentationCustomization(),
        llm=fake_llm,
        on_slide_generated=lambda slide, pct: progress.append(pct),
    )

    assert slides[0]["title"] == "Welcome"
    assert slides[0]["layoutType"] == "title"
    assert slides[1]["title"] == "The Problem"
    assert slides[1]["content"] == ["Coaches lack leads"]
    assert slides[1]["layoutType"] == "cta"
    assert progress == [50, 100]


def test_generation_resumes_from_start_index(fake_llm):
    outline = [DeckStructureSlide(n, f"Slide {n}") for n in (1, 2, 3)]
    slides = generate_presentation(outline, customization=PresentationCustomization(), llm=fake_llm, start_index=2)
    assert [slide["slideNumber"] for slide in slides] == [3]
    assert fake_llm.calls == ["slide_3"]


def test_regenerate_keeps_slide_identity(fake_llm):
    fake_llm.respond("slide_regenerate", {"title": "Sharper", "content": ["New point"]})
    current = {"slideNumber": 4, "layoutType": "bullets", "title": "Old", "content": ["Old point"], "speakerNotes": "n"}
    updated = regenerate_slide(current, "Make it punchier", llm=fake_llm)
    assert updated["title"] == "Sharper"
    assert updated["content"] == ["New point"]
    assert updated["speakerNotes"] == "n"
    assert updated["slideNumber"] == 4
    assert updated["layoutType"] == "bullets"


def test_regenerate_raises_on_model_failure(fake_llm):
    fake_llm.respond("slide_regenerate", RuntimeError("boom"))
    with pytest.raises(SlideGenerationError):
        regenerate_slide({"slideNumber": 1, "title": "x"}, "shorter", llm=fake_llm)
