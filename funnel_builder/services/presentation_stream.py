"""Server-sent-event driver for slide-by-slide presentation generation.

Generation runs on a worker thread with its own database session. The response generator
drains the worker's event queue and emits heartbeat comments while it waits.
"""

from __future__ import annotations

import json
import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Optional

from sqlalchemy.orm import Session

from funnel_builder.config import settings
from funnel_builder.db.base import SessionLocal, utcnow
from funnel_builder.db.enums import PresentationStatusEnum
from funnel_builder.db.models import DeckStructure, FunnelProject, Presentation
from funnel_builder.db.repositories.presentations import PresentationsRepository
from funnel_builder.llm.client import LLMClient
from funnel_builder.services.slide_generator import (
    DeckStructureSlide,
    PresentationCustomization,
    deck_slide_from_payload,
    generate_slide,
)
from funnel_builder.services.slide_images import generate_and_store_slide_image

logger = logging.getLogger(__name__)

TIMEOUT_MESSAGE = "AI_PROVIDER_TIMEOUT"
DISCONNECT_MESSAGE = "Client disconnected before generation finished"
SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}
_DONE = object()


class PresentationLimitError(RuntimeError):
    pass


class ResumeTargetError(LookupError):
    pass


def sse_event(event_type: str, data: dict[str, Any]) -> bytes:
    return f"event: {event_type}\ndata: {json.dumps(data, default=str)}\n\n".encode("utf-8")


def sse_heartbeat() -> bytes:
    return f":heartbeat {int(time.time() * 1000)}\n\n".encode("utf-8")


@dataclass
class GenerationPlan:
    presentation_id: str
    slides: list[DeckStructureSlide]
    customization: PresentationCustomization
    start_index: int = 0
    is_resuming: bool = False
    business_context: dict[str, Any] = field(default_factory=dict)

    @property
    def total_slides(self) -> int:
        return len(self.slides)


def deck_outline(deck: DeckStructure) -> list[DeckStructureSlide]:
    return [deck_slide_from_payload(raw, index) for index, raw in enumerate(deck.slides or [])]


def prepare_generation(
    session: Session,
    *,
    user_id: str,
    project: FunnelProject,
    deck: DeckStructure,
    customization: PresentationCustomization,
    resume_presentation_id: Optional[str] = None,
    resume_from_slide: Optional[int] = None,
) -> GenerationPlan:
    """Create the presentation row, or reopen one for resuming, and describe the work left."""
    repo = PresentationsRepository(session)
    outline = deck_outline(deck)
    business_context = {
        "projectName": project.name,
        "niche": project.business_niche,
        "targetAudience": project.target_audience,
    }

    if resume_presentation_id:
        presentation = repo.get(presentation_id=resume_presentation_id)
        if presentation is None or presentation.user_id != user_id or presentation.funnel_project_id != project.id:
            raise ResumeTargetError(resume_presentation_id)
        existing = presentation.slides or []
        start_slide = resume_from_slide or (len(existing) + 1)
        start_slide = max(1, min(start_slide, len(outline) + 1))
        kept = [slide for slide in existing if (slide.get("slideNumber") or 0) < start_slide]
        repo.update(
            presentation,
            status=PresentationStatusEnum.generating,
            error_message=None,
            slides=kept,
            generation_progress=round(len(kept) / len(outline) * 100) if outline else 0,
        )
        return GenerationPlan(
            presentation_id=presentation.id,
            slides=outline,
            customization=customization,
            start_index=start_slide - 1,
            is_resuming=True,
            business_context=business_context,
        )

    limit = settings.PRESENTATION_LIMIT_PER_PROJECT
    if repo.count_active(project_id=project.id) >= limit:
        raise PresentationLimitError(f"Presentation limit of {limit} reached for this project")

    title = (deck.metadata_json or {}).get("title") if isinstance(deck.metadata_json, dict) else None
    presentation = repo.create(
        user_id=user_id,
        project_id=project.id,
        deck_structure_id=deck.id,
        title=title or f"{project.name} Presentation",
        status=PresentationStatusEnum.generating,
        customization=customization.to_payload(),
        slides=[],
        generation_progress=0,
    )
    return GenerationPlan(
        presentation_id=presentation.id,
        slides=outline,
        customization=customization,
        business_context=business_context,
    )


def _record_failure(session: Session, presentation_id: str, message: str) -> dict[str, Any]:
    repo = PresentationsRepository(session)
    presentation = repo.get(presentation_id=presentation_id)
    if presentation is None:
        return {"slidesGenerated": 0, "status": PresentationStatusEnum.failed.value}
    slides = presentation.slides or []
    if slides:
        status = PresentationStatusEnum.draft
        error_message = f"Generation stopped at slide {len(slides)}. {message}"
    else:
        status = PresentationStatusEnum.failed
        error_message = message
    repo.update(presentation, status=status, error_message=error_message)
    return {"slidesGenerated": len(slides), "status": status.value}


class PresentationStream:
    def __init__(
        self,
        plan: GenerationPlan,
        *,
        llm_factory: Callable[[], LLMClient] = LLMClient,
        session_factory: Callable[[], Session] = SessionLocal,
        heartbeat_seconds: Optional[float] = None,
        timeout_seconds: Optional[float] = None,
        generate_images: Optional[bool] = None,
    ) -> None:
        self.plan = plan
        self._llm_factory = llm_factory
        self._session_factory = session_factory
        self._heartbeat = heartbeat_seconds or settings.PRESENTATION_HEARTBEAT_SECONDS
        self._timeout = timeout_seconds or settings.PRESENTATION_STREAM_TIMEOUT_SECONDS
        self._generate_images = settings.PRESENTATION_GENERATE_IMAGES if generate_images is None else generate_images
        self._events: "queue.Queue[Any]" = queue.Queue()
        self._stop = threading.Event()
        self._timed_out = False
        self.worker: Optional[threading.Thread] = None

    def _emit(self, event_type: str, data: dict[str, Any]) -> None:
        self._events.put((event_type, data))

    def _attach_image(self, slide: dict[str, Any], llm: LLMClient) -> None:
        if not self._generate_images or not slide.get("imagePrompt") or slide.get("imageUrl"):
            return
        url = generate_and_store_slide_image(
            presentation_id=self.plan.presentation_id,
            slide_number=slide["slideNumber"],
            prompt=slide["imagePrompt"],
            llm=llm,
        )
        if url:
            slide["imageUrl"] = url
            slide["imageGeneratedAt"] = utcnow().isoformat()

    def _halt(self, session: Session) -> None:
        # The timeout path records its own failure.
        if self._timed_out:
            return
        summary = _record_failure(session, self.plan.presentation_id, DISCONNECT_MESSAGE)
        logger.info(
            "Presentation generation stopped by client",
            extra={"presentation_id": self.plan.presentation_id, **summary},
        )

    def _run(self) -> None:
        plan = self.plan
        session = self._session_factory()
        try:
            llm = self._llm_factory()
            repo = PresentationsRepository(session)
            total = plan.total_slides
            for index in range(plan.start_index, total):
                if self._stop.is_set():
                    self._halt(session)
                    return
                slide = generate_slide(
                    plan.slides[index],
                    index=index,
                    total=total,
                    customization=plan.customization,
                    llm=llm,
                    business_context=plan.business_context,
                )
                self._attach_image(slide, llm)
                if self._stop.is_set():
                    self._halt(session)
                    return
                progress = round((index + 1) / total * 100)
                repo.append_slide(presentation_id=plan.presentation_id, slide=slide, progress=progress)
                self._emit("slide_generated", {"slide": slide, "slideNumber": slide["slideNumber"], "progress": progress})
                self._emit("progress", {"progress": progress, "currentSlide": slide["slideNumber"]})

            presentation = repo.get(presentation_id=plan.presentation_id)
            presentation = repo.update(
                presentation,
                status=PresentationStatusEnum.completed,
                generation_progress=100,
                completed_at=utcnow(),
                error_message=None,
            )
            slides = presentation.slides or []
            logger.info(
                "Presentation generation completed",
                extra={"presentation_id": plan.presentation_id, "slides": len(slides)},
            )
            self._emit(
                "completed",
                {"presentationId": plan.presentation_id, "slides": slides, "slideCount": len(slides)},
            )
        except Exception as exc:  # noqa: BLE001
            logger.exception("Presentation generation failed", extra={"presentation_id": plan.presentation_id})
            session.rollback()
            summary = _record_failure(session, plan.presentation_id, str(exc))
            self._emit(
                "error",
                {"error": str(exc), "presentationId": plan.presentation_id, "isTimeout": False, **summary},
            )
        finally:
            session.close()
            self._events.put(_DONE)

    def _timeout_event(self) -> bytes:
        session = self._session_factory()
        try:
            summary = _record_failure(session, self.plan.presentation_id, TIMEOUT_MESSAGE)
        finally:
            session.close()
        logger.warning("Presentation generation timed out", extra={"presentation_id": self.plan.presentation_id})
        return sse_event(
            "error",
            {"error": TIMEOUT_MESSAGE, "presentationId": self.plan.presentation_id, "isTimeout": True, **summary},
        )

    def events(self) -> Iterator[bytes]:
        plan = self.plan
        yield sse_event(
            "connected",
            {
                "presentationId": plan.presentation_id,
                "totalSlides": plan.total_slides,
                "isResuming": plan.is_resuming,
                "startFromSlide": plan.start_index + 1,
                "slidesToGenerate": max(0, plan.total_slides - plan.start_index),
            },
        )
        self.worker = threading.Thread(target=self._run, name=f"presentation-{plan.presentation_id}", daemon=True)
        self.worker.start()
        deadline = time.monotonic() + self._timeout
        try:
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    self._timed_out = True
                    self._stop.set()
                    yield self._timeout_event()
                    return
                try:
                    item = self._events.get(timeout=min(self._heartbeat, remaining))
                except queue.Empty:
                    if time.monotonic() < deadline:
                        yield sse_heartbeat()
                    continue
                if item is _DONE:
                    return
                event_type, data = item
                yield sse_event(event_type, data)
        finally:
            # Client disconnects close the generator; the worker stops before its next slide.
            self._stop.set()
