from __future__ import annotations

import math
from typing import Iterable

from funnel_builder.db.models import NpsResponse

PROMOTER_MIN = 9
DETRACTOR_MAX = 6


def summarize(responses: Iterable[NpsResponse]) -> dict[str, int]:
    scores = [response.score for response in responses]
    total = len(scores)
    promoters = sum(1 for score in scores if score >= PROMOTER_MIN)
    detractors = sum(1 for score in scores if score <= DETRACTOR_MAX)
    passives = total - promoters - detractors
    nps = math.floor((promoters - detractors) / total * 100 + 0.5) if total else 0
    return {
        "total": total,
        "promoters": promoters,
        "passives": passives,
        "detractors": detractors,
        "nps": nps,
    }
