from funnel_builder.schemas.decks import DeckGenerateRequest, DeckSlide, DeckUpdateRequest, TalkTrackGenerateRequest
from funnel_builder.schemas.followup import (
    DeliveryFailedRequest,
    DeliveryStatusRequest,
    EngagementRequest,
    MessageCreateRequest,
    MessageUpdateRequest,
    ProspectUpsertRequest,
    SequenceCreateRequest,
    SequenceGenerateRequest,
    SequenceUpdateRequest,
    TriggerSequenceRequest,
)
from funnel_builder.schemas.funnel_map import (
    ConversationMessage,
    FunnelChatRequest,
    GenerateDraftsRequest,
    NodeContentUpdateRequest,
    NodeDefinitionPayload,
)
from funnel_builder.schemas.generate import AutoGenerateRequest
from funnel_builder.schemas.intake import PasteIntakeRequest, ScrapeIntakeRequest
from funnel_builder.schemas.nps import NpsCreateRequest
from funnel_builder.schemas.offers import OfferGenerateRequest, OfferUpdateRequest
from funnel_builder.schemas.pages import (
    AttachVideoRequest,
    EnrollmentPageGenerateRequest,
    PagePublishRequest,
    PageUpdateRequest,
    PitchVideoCreateRequest,
    PitchVideoStatusRequest,
    RegenerateFieldRequest,
    RegistrationPageGenerateRequest,
    WatchPageGenerateRequest,
)
from funnel_builder.schemas.presentations import SlideEditRequest
from funnel_builder.schemas.projects import ProjectCreateRequest, ProjectUpdateRequest

__all__ = [
    "AttachVideoRequest",
    "AutoGenerateRequest",
    "ConversationMessage",
    "DeckGenerateRequest",
    "DeckSlide",
    "DeckUpdateRequest",
    "DeliveryFailedRequest",
    "DeliveryStatusRequest",
    "EngagementRequest",
    "EnrollmentPageGenerateRequest",
    "FunnelChatRequest",
    "GenerateDraftsRequest",
    "MessageCreateRequest",
    "MessageUpdateRequest",
    "NodeContentUpdateRequest",
    "NodeDefinitionPayload",
    "NpsCreateRequest",
    "OfferGenerateRequest",
    "OfferUpdateRequest",
    "PagePublishRequest",
    "PageUpdateRequest",
    "PasteIntakeRequest",
    "PitchVideoCreateRequest",
    "PitchVideoStatusRequest",
    "ProjectCreateRequest",
    "ProjectUpdateRequest",
    "ProspectUpsertRequest",
    "RegenerateFieldRequest",
    "RegistrationPageGenerateRequest",
    "ScrapeIntakeRequest",
    "SequenceCreateRequest",
    "SequenceGenerateRequest",
    "SequenceUpdateRequest",
    "SlideEditRequest",
    "TalkTrackGenerateRequest",
    "TriggerSequenceRequest",
    "WatchPageGenerateRequest",
]
