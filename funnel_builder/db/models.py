from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from uuid import uuid4

import sqlalchemy as sa
from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from funnel_builder.db.base import Base, utcnow
from funnel_builder.db.enums import (
    ChannelEnum,
    ConsentStateEnum,
    DeliveryStatusEnum,
    EngagementLevelEnum,
    FunnelNodeStatusEnum,
    FunnelNodeTypeEnum,
    IntakeMethodEnum,
    NpsSurveyTypeEnum,
    OfferTypeEnum,
    PathwayTypeEnum,
    PresentationStatusEnum,
    ProjectStatusEnum,
    SegmentEnum,
    VideoProcessingStatusEnum,
)


def _uuid() -> str:
    return str(uuid4())


def _id_column() -> Mapped[str]:
    return mapped_column(String(36), primary_key=True, default=_uuid)


def _created_at() -> Mapped[datetime]:
    return mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


def _updated_at() -> Mapped[datetime]:
    return mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


def _project_fk() -> Mapped[str]:
    return mapped_column(ForeignKey("funnel_projects.id", ondelete="CASCADE"), nullable=False, index=True)


class FunnelProject(Base):
    __tablename__ = "funnel_projects"
    __table_args__ = (UniqueConstraint("user_id", "slug", name="uq_funnel_projects_user_slug"),)

    id: Mapped[str] = _id_column()
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    target_audience: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    business_niche: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[ProjectStatusEnum] = mapped_column(
        Enum(ProjectStatusEnum, name="project_status"),
        nullable=False,
        default=ProjectStatusEnum.draft,
    )
    current_step: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    settings: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    metadata_json: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, nullable=False, default=dict)
    generation_status: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class VapiTranscript(Base):
    __tablename__ = "vapi_transcripts"

    id: Mapped[str] = _id_column()
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    funnel_project_id: Mapped[str] = _project_fk()
    call_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    transcript_text: Mapped[str] = mapped_column(Text, nullable=False)
    extracted_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    intake_method: Mapped[IntakeMethodEnum] = mapped_column(
        Enum(IntakeMethodEnum, name="intake_method"),
        nullable=False,
        default=IntakeMethodEnum.paste,
    )
    session_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    call_status: Mapped[str] = mapped_column(String(32), nullable=False, default="completed")
    call_duration: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    metadata_json: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = _created_at()


class Offer(Base):
    __tablename__ = "offers"

    id: Mapped[str] = _id_column()
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    funnel_project_id: Mapped[str] = _project_fk()
    name: Mapped[str] = mapped_column(Text, nullable=False)
    tagline: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="USD")
    offer_type: Mapped[OfferTypeEnum] = mapped_column(
        Enum(OfferTypeEnum, name="offer_type"), nullable=False, default=OfferTypeEnum.main
    )
    features: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)
    bonuses: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)
    guarantee: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    promise: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    person: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    process: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    purpose: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    pathway: Mapped[Optional[PathwayTypeEnum]] = mapped_column(
        Enum(PathwayTypeEnum, name="pathway_type"), nullable=True
    )
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class DeckStructure(Base):
    __tablename__ = "deck_structures"

    id: Mapped[str] = _id_column()
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    funnel_project_id: Mapped[str] = _project_fk()
    transcript_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("vapi_transcripts.id", ondelete="SET NULL"), nullable=True
    )
    template_type: Mapped[str] = mapped_column(String(64), nullable=False, default="55_slide_promo")
    total_slides: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    slides: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    sections: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    metadata_json: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class TalkTrack(Base):
    __tablename__ = "talk_tracks"

    id: Mapped[str] = _id_column()
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    funnel_project_id: Mapped[str] = _project_fk()
    deck_structure_id: Mapped[str] = mapped_column(
        ForeignKey("deck_structures.id", ondelete="CASCADE"), nullable=False
    )
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    slide_timings: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    total_duration: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = _created_at()


class Presentation(Base):
    __tablename__ = "presentations"

    id: Mapped[str] = _id_column()
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    funnel_project_id: Mapped[str] = _project_fk()
    deck_structure_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("deck_structures.id", ondelete="SET NULL"), nullable=True
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[PresentationStatusEnum] = mapped_column(
        Enum(PresentationStatusEnum, name="presentation_status"),
        nullable=False,
        default=PresentationStatusEnum.draft,
    )
    customization: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    slides: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    generation_progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class EnrollmentPage(Base):
    __tablename__ = "enrollment_pages"

    id: Mapped[str] = _id_column()
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    funnel_project_id: Mapped[str] = _project_fk()
    offer_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("offers.id", ondelete="SET NULL"), nullable=True
    )
    page_type: Mapped[PathwayTypeEnum] = mapped_column(
        Enum(PathwayTypeEnum, name="pathway_type"),
        nullable=False,
        default=PathwayTypeEnum.direct_purchase,
    )
    headline: Mapped[str] = mapped_column(Text, nullable=False)
    subheadline: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    content_sections: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    cta_config: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    html_content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    theme: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    vanity_slug: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, unique=True)
    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class RegistrationPage(Base):
    __tablename__ = "registration_pages"

    id: Mapped[str] = _id_column()
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    funnel_project_id: Mapped[str] = _project_fk()
    deck_structure_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("deck_structures.id", ondelete="SET NULL"), nullable=True
    )
    headline: Mapped[str] = mapped_column(Text, nullable=False)
    subheadline: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    benefit_bullets: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    trust_statement: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cta_config: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    form_fields: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    html_content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    theme: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    vanity_slug: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, unique=True)
    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class PitchVideo(Base):
    __tablename__ = "pitch_videos"

    id: Mapped[str] = _id_column()
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    funnel_project_id: Mapped[str] = _project_fk()
    video_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    provider: Mapped[str] = mapped_column(String(64), nullable=False, default="upload")
    video_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    thumbnail_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    video_duration: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    processing_status: Mapped[VideoProcessingStatusEnum] = mapped_column(
        Enum(VideoProcessingStatusEnum, name="video_processing_status"),
        nullable=False,
        default=VideoProcessingStatusEnum.uploaded,
    )
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class WatchPage(Base):
    __tablename__ = "watch_pages"

    id: Mapped[str] = _id_column()
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    funnel_project_id: Mapped[str] = _project_fk()
    pitch_video_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("pitch_videos.id", ondelete="SET NULL"), nullable=True
    )
    headline: Mapped[str] = mapped_column(Text, nullable=False)
    subheadline: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    watch_prompt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cta_config: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    html_content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    theme: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    vanity_slug: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, unique=True)
    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class FunnelNodeData(Base):
    __tablename__ = "funnel_node_data"
    __table_args__ = (
        UniqueConstraint("funnel_project_id", "node_type", name="uq_funnel_node_data_project_node"),
    )

    id: Mapped[str] = _id_column()
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    funnel_project_id: Mapped[str] = _project_fk()
    node_type: Mapped[FunnelNodeTypeEnum] = mapped_column(
        Enum(FunnelNodeTypeEnum, name="funnel_node_type"), nullable=False
    )
    draft_content: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    refined_content: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    conversation_history: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[FunnelNodeStatusEnum] = mapped_column(
        Enum(FunnelNodeStatusEnum, name="funnel_node_status"),
        nullable=False,
        default=FunnelNodeStatusEnum.draft,
    )
    is_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_content: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    pathway_type: Mapped[Optional[PathwayTypeEnum]] = mapped_column(
        Enum(PathwayTypeEnum, name="pathway_type"), nullable=True
    )
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class FunnelMapConfig(Base):
    __tablename__ = "funnel_map_config"

    id: Mapped[str] = _id_column()
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    funnel_project_id: Mapped[str] = mapped_column(
        ForeignKey("funnel_projects.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    pathway_type: Mapped[PathwayTypeEnum] = mapped_column(
        Enum(PathwayTypeEnum, name="pathway_type"), nullable=False
    )
    drafts_generated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    drafts_generated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class FollowupAgentConfig(Base):
    __tablename__ = "followup_agent_configs"

    id: Mapped[str] = _id_column()
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    funnel_project_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("funnel_projects.id", ondelete="CASCADE"), nullable=True, index=True
    )
    offer_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("offers.id", ondelete="SET NULL"), nullable=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False, default="AI Follow-Up Agent")
    voice_config: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    knowledge_base: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    segmentation_rules: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    scoring_config: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    channel_config: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    compliance_config: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class FollowupProspect(Base):
    __tablename__ = "followup_prospects"
    __table_args__ = (
        UniqueConstraint("agent_config_id", "email", name="uq_followup_prospects_agent_email"),
        sa.Index("idx_followup_prospects_segment", "agent_config_id", "segment"),
    )

    id: Mapped[str] = _id_column()
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    agent_config_id: Mapped[str] = mapped_column(
        ForeignKey("followup_agent_configs.id", ondelete="CASCADE"), nullable=False
    )
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    first_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    watch_percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    watch_duration_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    replay_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    offer_clicks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    email_opens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    email_clicks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    challenge_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    goal_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    objection_hint: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="UTC")
    segment: Mapped[SegmentEnum] = mapped_column(
        Enum(SegmentEnum, name="followup_segment"), nullable=False, default=SegmentEnum.no_show
    )
    intent_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    fit_score: Mapped[int] = mapped_column(Integer, nullable=False, default=50)
    combined_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    engagement_level: Mapped[EngagementLevelEnum] = mapped_column(
        Enum(EngagementLevelEnum, name="engagement_level"),
        nullable=False,
        default=EngagementLevelEnum.cold,
    )
    consent_state: Mapped[ConsentStateEnum] = mapped_column(
        Enum(ConsentStateEnum, name="consent_state"),
        nullable=False,
        default=ConsentStateEnum.implied,
    )
    total_touches: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_touch_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    next_scheduled_touch: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    converted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    watched_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class FollowupSequence(Base):
    __tablename__ = "followup_sequences"

    id: Mapped[str] = _id_column()
    agent_config_id: Mapped[str] = mapped_column(
        ForeignKey("followup_agent_configs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sequence_type: Mapped[str] = mapped_column(String(64), nullable=False, default="3_day_discount")
    trigger_event: Mapped[str] = mapped_column(String(64), nullable=False, default="webinar_end")
    trigger_delay_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    deadline_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=72)
    total_messages: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    target_segments: Mapped[list[str]] = mapped_column(
        JSON, nullable=False, default=lambda: [segment.value for segment in SegmentEnum]
    )
    min_intent_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_intent_score: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    stop_on_reply: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    stop_on_conversion: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    requires_manual_approval: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class FollowupMessage(Base):
    __tablename__ = "followup_messages"
    __table_args__ = (
        UniqueConstraint(
            "sequence_id",
            "message_order",
            "ab_test_variant",
            name="uq_followup_messages_sequence_order_variant",
        ),
    )

    id: Mapped[str] = _id_column()
    sequence_id: Mapped[str] = mapped_column(
        ForeignKey("followup_sequences.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    message_order: Mapped[int] = mapped_column(Integer, nullable=False)
    channel: Mapped[ChannelEnum] = mapped_column(
        Enum(ChannelEnum, name="followup_channel"), nullable=False, default=ChannelEnum.email
    )
    send_delay_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    subject_line: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    body_content: Mapped[str] = mapped_column(Text, nullable=False)
    personalization_rules: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    ab_test_variant: Mapped[str] = mapped_column(String(16), nullable=False, default="")
    primary_cta: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class FollowupDelivery(Base):
    __tablename__ = "followup_deliveries"
    __table_args__ = (sa.Index("idx_followup_deliveries_status_scheduled", "delivery_status", "scheduled_send_at"),)

    id: Mapped[str] = _id_column()
    prospect_id: Mapped[str] = mapped_column(
        ForeignKey("followup_prospects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    message_id: Mapped[str] = mapped_column(
        ForeignKey("followup_messages.id", ondelete="CASCADE"), nullable=False
    )
    channel: Mapped[ChannelEnum] = mapped_column(Enum(ChannelEnum, name="followup_channel"), nullable=False)
    personalized_subject: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    personalized_body: Mapped[str] = mapped_column(Text, nullable=False)
    personalized_cta: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    scheduled_send_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    actual_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    delivery_status: Mapped[DeliveryStatusEnum] = mapped_column(
        Enum(DeliveryStatusEnum, name="delivery_status"),
        nullable=False,
        default=DeliveryStatusEnum.pending,
    )
    opened_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    first_click_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    total_clicks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    replied_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class FollowupEvent(Base):
    __tablename__ = "followup_events"

    id: Mapped[str] = _id_column()
    prospect_id: Mapped[str] = mapped_column(
        ForeignKey("followup_prospects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    delivery_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("followup_deliveries.id", ondelete="SET NULL"), nullable=True
    )
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    event_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = _created_at()


class FollowupIntentScore(Base):
    __tablename__ = "followup_intent_scores"

    id: Mapped[str] = _id_column()
    prospect_id: Mapped[str] = mapped_column(
        ForeignKey("followup_prospects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    intent_score: Mapped[int] = mapped_column(Integer, nullable=False)
    fit_score: Mapped[int] = mapped_column(Integer, nullable=False)
    combined_score: Mapped[int] = mapped_column(Integer, nullable=False)
    change_reason: Mapped[str] = mapped_column(Text, nullable=False)
    change_delta: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = _created_at()


class FollowupStory(Base):
    __tablename__ = "followup_story_library"

    id: Mapped[str] = _id_column()
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    story_type: Mapped[str] = mapped_column(String(64), nullable=False, default="testimonial")
    content: Mapped[str] = mapped_column(Text, nullable=False)
    objection_category: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    business_niche: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price_band: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = _created_at()


class NpsResponse(Base):
    __tablename__ = "nps_responses"

    id: Mapped[str] = _id_column()
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    score: Mapped[int] = mapped_column(Integer, nullable=False)
    feedback: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    survey_type: Mapped[NpsSurveyTypeEnum] = mapped_column(
        Enum(NpsSurveyTypeEnum, name="nps_survey_type"),
        nullable=False,
        default=NpsSurveyTypeEnum.quarterly,
    )
    created_at: Mapped[datetime] = _created_at()
