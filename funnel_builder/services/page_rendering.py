from __future__ import annotations

from html import escape
from typing import Any, Optional

DEFAULT_THEME: dict[str, str] = {
    "primary": "#3b82f6",
    "secondary": "#8b5cf6",
    "background": "#ffffff",
    "text": "#1f2937",
}


def resolve_theme(theme: Optional[dict[str, Any]]) -> dict[str, str]:
    resolved = dict(DEFAULT_THEME)
    for key, value in (theme or {}).items():
        if key in DEFAULT_THEME and isinstance(value, str) and value.strip():
            resolved[key] = value.strip()
    return resolved


def _text(value: Any) -> str:
    return escape(str(value)) if value not in (None, "") else ""


def _paragraphs(value: Any) -> str:
    if not value:
        return ""
    return "".join(f"<p>{_text(part)}</p>" for part in str(value).split("\n\n") if part.strip())


def _list(items: Any) -> str:
    if not items:
        return ""
    entries = "".join(f"<li>{_text(item)}</li>" for item in items if item)
    return f"<ul>{entries}</ul>" if entries else ""


def _button(cta: dict[str, Any]) -> str:
    text = _text(cta.get("text") or "Get Started")
    url = cta.get("url")
    if url:
        return f'<a class="cta" href="{escape(str(url), quote=True)}">{text}</a>'
    return f'<button class="cta" type="submit">{text}</button>'


def _document(title: str, body: str, theme: Optional[dict[str, Any]]) -> str:
    colors = resolve_theme(theme)
    style = (
        f"body{{margin:0;font-family:system-ui,sans-serif;background:{colors['background']};color:{colors['text']};}}"
        "main{max-width:760px;margin:0 auto;padding:48px 24px;}"
        f"h1{{color:{colors['primary']};font-size:2.5rem;line-height:1.15;}}"
        f"h2{{color:{colors['secondary']};}}"
        f".cta{{display:inline-block;background:{colors['primary']};color:#fff;padding:16px 32px;"
        "border-radius:8px;border:0;font-size:1.1rem;text-decoration:none;cursor:pointer;}"
        "form{display:flex;flex-direction:column;gap:12px;margin-top:24px;}"
        "input{padding:12px;border:1px solid #d1d5db;border-radius:6px;font-size:1rem;}"
    )
    return (
        "<!DOCTYPE html>"
        '<html lang="en"><head><meta charset="utf-8">'
        '<meta name="viewport" content="width=device-width, initial-scale=1">'
        f"<title>{_text(title)}</title><style>{style}</style></head>"
        f"<body><main>{body}</main></body></html>"
    )


def render_enrollment_page(
    *,
    headline: str,
    subheadline: Optional[str],
    content_sections: dict[str, Any],
    cta_config: dict[str, Any],
    theme: Optional[dict[str, Any]] = None,
) -> str:
    parts = [f"<h1>{_text(headline)}</h1>"]
    if subheadline:
        parts.append(f'<p class="subheadline">{_text(subheadline)}</p>')
    parts.append(_paragraphs(content_sections.get("opening")))
    for key in ("problemSection", "solutionSection"):
        section = content_sections.get(key)
        if isinstance(section, dict):
            parts.append(f"<section><h2>{_text(section.get('heading'))}</h2>{_paragraphs(section.get('content'))}</section>")
    if content_sections.get("features"):
        parts.append(
            f"<section><h2>{_text(content_sections.get('featuresHeading') or 'What You Get')}</h2>"
            f"{_list(content_sections.get('features'))}</section>"
        )
    if content_sections.get("bonuses"):
        parts.append(f"<section><h2>Bonuses</h2>{_list(content_sections.get('bonuses'))}</section>")
    if content_sections.get("price"):
        parts.append(f'<p class="price">{_text(content_sections.get("price"))}</p>')
    if content_sections.get("guarantee"):
        parts.append(f'<p class="guarantee">{_text(content_sections.get("guarantee"))}</p>')
    parts.append(_button(cta_config))
    if cta_config.get("urgencyText"):
        parts.append(f'<p class="urgency">{_text(cta_config.get("urgencyText"))}</p>')
    return _document(headline, "".join(parts), theme)


def render_registration_page(
    *,
    headline: str,
    subheadline: Optional[str],
    benefit_bullets: list[str],
    trust_statement: Optional[str],
    cta_config: dict[str, Any],
    form_fields: list[dict[str, Any]],
    theme: Optional[dict[str, Any]] = None,
) -> str:
    inputs = "".join(
        f'<input name="{escape(str(item.get("name", "")), quote=True)}" '
        f'type="{escape(str(item.get("type", "text")), quote=True)}" '
        f'placeholder="{escape(str(item.get("label", "")), quote=True)}"'
        f'{" required" if item.get("required") else ""}>'
        for item in form_fields
    )
    body = (
        f"<h1>{_text(headline)}</h1>"
        + (f'<p class="subheadline">{_text(subheadline)}</p>' if subheadline else "")
        + _list(benefit_bullets)
        + f'<form method="post">{inputs}{_button({"text": cta_config.get("text")})}</form>'
        + (f'<p class="trust">{_text(trust_statement)}</p>' if trust_statement else "")
    )
    return _document(headline, body, theme)


def render_watch_page(
    *,
    headline: str,
    subheadline: Optional[str],
    watch_prompt: Optional[str],
    cta_config: dict[str, Any],
    video_url: Optional[str] = None,
    theme: Optional[dict[str, Any]] = None,
) -> str:
    video = ""
    if video_url:
        video = f'<video controls preload="metadata" src="{escape(video_url, quote=True)}" style="width:100%"></video>'
    body = (
        f"<h1>{_text(headline)}</h1>"
        + (f'<p class="subheadline">{_text(subheadline)}</p>' if subheadline else "")
        + video
        + (f'<p class="watch-prompt">{_text(watch_prompt)}</p>' if watch_prompt else "")
        + _button(cta_config)
        + (f'<p class="cta-subtext">{_text(cta_config.get("subtext"))}</p>' if cta_config.get("subtext") else "")
    )
    return _document(headline, body, theme)
