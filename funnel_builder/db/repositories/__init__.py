from funnel_builder.db.repositories.projects import ProjectsRepository
from funnel_builder.db.repositories.intakes import TranscriptsRepository
from funnel_builder.db.repositories.offers import OffersRepository
from funnel_builder.db.repositories.decks import DeckStructuresRepository, TalkTracksRepository
from funnel_builder.db.repositories.presentations import PresentationsRepository
from funnel_builder.db.repositories.pages import PagesRepository
from funnel_builder.db.repositories.pitch_videos import PitchVideosRepository
from funnel_builder.db.repositories.funnel_map import FunnelMapConfigRepository, FunnelNodesRepository
from funnel_builder.db.repositories.followup import (
    AgentConfigsRepository,
    DeliveriesRepository,
    EventsRepository,
    IntentScoresRepository,
    MessagesRepository,
    ProspectsRepository,
    SequencesRepository,
    StoriesRepository,
)
from funnel_builder.db.repositories.nps import NpsResponsesRepository

__all__ = [
    "ProjectsRepository",
    "TranscriptsRepository",
    "OffersRepository",
    "DeckStructuresRepository",
    "TalkTracksRepository",
    "PresentationsRepository",
    "PagesRepository",
    "PitchVideosRepository",
    "FunnelNodesRepository",
    "FunnelMapConfigRepository",
    "AgentConfigsRepository",
    "ProspectsRepository",
    "SequencesRepository",
    "MessagesRepository",
    "DeliveriesRepository",
    "EventsRepository",
    "IntentScoresRepository",
    "StoriesRepository",
    "NpsResponsesRepository",
]
