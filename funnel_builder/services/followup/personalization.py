from __future__ import annotations

import re
from typing import Any, Mapping, Optional

from funnel_builder.db.models import FollowupProspect

DEFAULT_FIRST_NAME = "there"

_TOKEN_RE = re.compile(r"\{\{\s*([a-z_][a-z0-9_]*)\s*\}\}|\{([a-z_][a-z0-9_]*)\}")


def prospect_tokens(prospect: Optional[FollowupProspect]) -> dict[str, Any]:
    if prospect is None:
        return {"first_name": DEFAULT_FIRST_NAME}
    return {
        "first_name": (prospect.first_name or "").strip() or DEFAULT_FIRST_NAME,
        "email": prospect.email,
        "watch_pct": prospect.watch_percentage,
        "minutes_watched": (prospect.watch_duration_seconds or 0) // 60,
        "challenge_notes": prospect.challenge_notes,
        "goal_notes": prospect.goal_notes,
        "objection_hint": prospect.objection_hint,
        "timezone": prospect.timezone,
    }


def personalize_text(text: Optional[str], values: Mapping[str, Any]) -> Optional[str]:
    """Replace ``{token}`` and ``{{token}}`` placeholders. Tokens without a value are left as written."""
    if text is None:
        return None

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1) or match.group(2)
        value = values.get(name)
        if value is None or value == "":
            return match.group(0)
        return str(value)

    return _TOKEN_RE.sub(_replace, text)


def personalize_cta(cta: Optional[dict[str, Any]], values: Mapping[str, Any]) -> dict[str, Any]:
    if not cta:
        return {}
    return {
        key: personalize_text(value, values) if isinstance(value, str) else value
        for key, value in cta.items()
    }


def build_personalization_values(
    prospect: Optional[FollowupProspect],
    context: Optional[Mapping[str, Any]] = None,
) -> dict[str, Any]:
    values = dict(context or {})
    for key, value in prospect_tokens(prospect).items():
        if value is not None and value != "":
            values[key] = value
    return values
