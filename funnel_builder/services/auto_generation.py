"""Generates every funnel asset from the project's intake in one pass.

Each step records its state in ``FunnelProject.generation_status`` so clients can poll
progress. A failed step never stops later steps that do not depend on it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from funnel_builder.db.base import SessionLocal, utcnow
from funnel_builder.db.models import DeckStructure, FunnelProject, Offer
from funnel_builder.db.repositories.projects import ProjectsRepository
from funnel_builder.llm.client import LLMClient
from funnel_builder.llm.prompts import TranscriptData
from funnel_builder.observability import TraceContext, bind_trace_context, start_langfuse_span
from funnel_builder.services.decks import generate_deck_structure
from funnel_builder.services.followup.sequences import create_default_sequence
from funnel_builder.services.intake import combine_intakes
from funnel_builder.services.offers import generate_offer
from funnel_builder.services.pages import (
    generate_enrollment_page,
    generate_registration_page,
    generate_watch_page,
)

logger = logging.getLogger(__name__)

REQUIRES_OFFER = "requires offer"
REQUIRES_DECK = "requires deck structure"
NO_INTAKE_MESSAGE = "No intake records found. Please complete at least one intake session first."


class GenerationInProgressError(RuntimeError):
    pass


class MissingIntakeError(ValueError):
    pass


class StepPrerequisiteError(RuntimeError):
    pass


@dataclass(frozen=True)
class GenerationStep:
    number: int
    name: str


STEPS: tuple[GenerationStep, ...] = (
    GenerationStep(2, "Offer"),
    GenerationStep(3, "Deck Structure"),
    GenerationStep(5, "Enrollment Pages"),
    GenerationStep(8, "Watch Pages"),
    GenerationStep(9, "Registration Pages"),
    GenerationStep(11, "AI Followup"),
)


def initial_status() -> dict[str, Any]:
    return {
        "is_generating": True,
        "current_step": None,
        "progress": [{"step": step.number, "stepName": step.name, "status": "pending"} for step in STEPS],
        "generated_steps": [],
        "generation_errors": [],
        "started_at": utcnow().isoformat(),
        "completed_at": None,
    }


class _StatusTracker:
    def __init__(self, session: Session, project: FunnelProject) -> None:
        self.session = session
        self.project = project
        self.status = initial_status()

    def _save(self) -> None:
        # Reassign so the JSON column is flagged dirty.
        self.project = ProjectsRepository(self.session).update(self.project, generation_status=dict(self.status))

    def _entry(self, number: int) -> dict[str, Any]:
        return next(item for item in self.status["progress"] if item["step"] == number)

    def start(self) -> None:
        self._save()

    def begin(self, number: int) -> None:
        self._entry(number)["status"] = "in_progress"
        self.status["current_step"] = number
        self.status["progress"] = [dict(item) for item in self.status["progress"]]
        self._save()

    def complete(self, number: int) -> None:
        entry = self._entry(number)
        entry["status"] = "completed"
        entry["completedAt"] = utcnow().isoformat()
        self.status["generated_steps"] = [*self.status["generated_steps"], number]
        self.status["progress"] = [dict(item) for item in self.status["progress"]]
        self._save()

    def fail(self, number: int, error: str) -> None:
        entry = self._entry(number)
        entry["status"] = "failed"
        entry["error"] = error
        self.status["generation_errors"] = [*self.status["generation_errors"], {"step": number, "error": error}]
        self.status["progress"] = [dict(item) for item in self.status["progress"]]
        self._save()

    def finish(self) -> None:
        self.status["is_generating"] = False
        self.status["current_step"] = None
        self.status["completed_at"] = utcnow().isoformat()
        self._save()


def generate_all_from_intake(
    session: Session,
    *,
    user_id: str,
    project: FunnelProject,
    intake: TranscriptData,
    slide_count: int = 55,
    llm: Optional[LLMClient] = None,
) -> dict[str, Any]:
    llm = llm or LLMClient()
    tracker = _StatusTracker(session, project)
    tracker.start()
    logger.info("Starting auto-generation", extra={"project_id": project.id, "user_id": user_id})

    outputs: dict[str, Any] = {"offer": None, "deck": None}

    def run(step: GenerationStep, action: Callable[[], Any]) -> Any:
        tracker.begin(step.number)
        try:
            metadata = {"step": step.number, "step_name": step.name}
            with start_langfuse_span(name="auto_generation_step", metadata=metadata):
                result = action()
        except Exception as exc:  # noqa: BLE001
            session.rollback()
            message = str(exc) or exc.__class__.__name__
            logger.exception(
                "Auto-generation step failed",
                extra={"project_id": project.id, "step": step.number, "step_name": step.name},
            )
            tracker.fail(step.number, message)
            return None
        tracker.complete(step.number)
        return result

    def require_offer() -> Offer:
        if outputs["offer"] is None:
            raise StepPrerequisiteError(REQUIRES_OFFER)
        return outputs["offer"]

    def require_deck() -> DeckStructure:
        if outputs["deck"] is None:
            raise StepPrerequisiteError(REQUIRES_DECK)
        return outputs["deck"]

    offer_step, deck_step, enrollment_step, watch_step, registration_step, followup_step = STEPS

    outputs["offer"] = run(
        offer_step,
        lambda: generate_offer(session, user_id=user_id, project=project, transcript=intake, llm=llm),
    )
    outputs["deck"] = run(
        deck_step,
        lambda: generate_deck_structure(
            session, user_id=user_id, project=project, transcript=intake, slide_count=slide_count, llm=llm
        ),
    )
    run(
        enrollment_step,
        lambda: generate_enrollment_page(
            session, user_id=user_id, project=project, offer=require_offer(), transcript=intake, llm=llm
        ),
    )

    def watch_page() -> Any:
        require_deck()
        return generate_watch_page(session, user_id=user_id, project=project, llm=llm)

    run(watch_step, watch_page)
    run(
        registration_step,
        lambda: generate_registration_page(session, user_id=user_id, project=project, deck=require_deck(), llm=llm),
    )
    run(
        followup_step,
        lambda: create_default_sequence(session, user_id=user_id, project=project, offer=require_offer()),
    )

    tracker.finish()
    status = tracker.status
    logger.info(
        "Auto-generation finished",
        extra={
            "project_id": project.id,
            "completed": status["generated_steps"],
            "failed": [item["step"] for item in status["generation_errors"]],
        },
    )
    return {
        "success": not status["generation_errors"],
        "completedSteps": status["generated_steps"],
        "failedSteps": status["generation_errors"],
        "progress": status["progress"],
    }


def ensure_can_start(session: Session, project: FunnelProject) -> TranscriptData:
    """Check the project is idle and has intake, returning the combined intake."""
    if (project.generation_status or {}).get("is_generating"):
        raise GenerationInProgressError("Generation already in progress")
    intake = combine_intakes(session, project)
    if intake is None or not intake.transcript_text.strip():
        raise MissingIntakeError(NO_INTAKE_MESSAGE)
    return intake


def mark_queued(session: Session, project: FunnelProject) -> FunnelProject:
    status = initial_status()
    return ProjectsRepository(session).update(project, generation_status=status)


def run_auto_generation(
    *,
    project_id: str,
    user_id: str,
    slide_count: int = 55,
    session_factory: Callable[[], Session] = SessionLocal,
    llm_factory: Callable[[], LLMClient] = LLMClient,
) -> None:
    """Background entry point: owns its session and never raises."""
    session = session_factory()
    try:
        project = ProjectsRepository(session).get(project_id=project_id)
        if project is None:
            logger.warning("Auto-generation project disappeared", extra={"project_id": project_id})
            return
        intake = combine_intakes(session, project)
        if intake is None:
            ProjectsRepository(session).update(
                project,
                generation_status={
                    **initial_status(),
                    "is_generating": False,
                    "generation_errors": [{"step": 0, "error": NO_INTAKE_MESSAGE}],
                    "completed_at": utcnow().isoformat(),
                },
            )
            return
        trace = TraceContext(name="auto_generation", user_id=user_id, project_id=project_id, tags=["auto-generation"])
        with bind_trace_context(trace):
            generate_all_from_intake(
                session,
                user_id=user_id,
                project=project,
                intake=intake,
                slide_count=slide_count,
                llm=llm_factory(),
            )
    except Exception:  # noqa: BLE001
        logger.exception("Auto-generation crashed", extra={"project_id": project_id})
        session.rollback()
        project = ProjectsRepository(session).get(project_id=project_id)
        if project is not None:
            status = dict(project.generation_status or {})
            status.update(is_generating=False, completed_at=utcnow().isoformat())
            ProjectsRepository(session).update(project, generation_status=status)
    finally:
        session.close()
