from __future__ import annotations

import ipaddress
import logging
import socket
import time
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup
from sqlalchemy.orm import Session

from funnel_builder.config import settings
from funnel_builder.db.enums import IntakeMethodEnum
from funnel_builder.db.models import FunnelProject, VapiTranscript
from funnel_builder.db.repositories.intakes import TranscriptsRepository
from funnel_builder.llm.prompts import TranscriptData

logger = logging.getLogger(__name__)

MIN_PASTE_CHARS = 50
MIN_SCRAPE_CHARS = 100
_STRIP_TAGS = ("script", "style", "nav", "noscript", "iframe", "header", "footer")
_RETRYABLE_STATUS = {408, 429}
MAX_REDIRECTS = 5
_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class IntakeValidationError(ValueError):
    pass


class ScrapeError(RuntimeError):
    def __init__(self, message: str, status_code: int = 500) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass
class ScrapedPage:
    url: str
    title: str
    text: str


def _is_internal_address(raw_ip: str) -> bool:
    try:
        addr = ipaddress.ip_address(raw_ip.split("%")[0])
    except ValueError:
        return True
    return addr.is_private or addr.is_loopback or addr.is_link_local or addr.is_reserved or addr.is_unspecified


def validate_scrape_url(url: str) -> None:
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        raise IntakeValidationError("URL must start with http:// or https://")
    hostname = parsed.hostname
    if not hostname:
        raise IntakeValidationError("Invalid URL format")
    if hostname == "localhost" or hostname.endswith(".local"):
        raise IntakeValidationError("URL targets an internal address")
    try:
        ipaddress.ip_address(hostname)
    except ValueError:
        try:
            resolved = {entry[4][0] for entry in socket.getaddrinfo(hostname, None)}
        except socket.gaierror as exc:
            raise IntakeValidationError(f"Could not resolve host: {hostname}") from exc
        if any(_is_internal_address(str(ip)) for ip in resolved):
            raise IntakeValidationError("URL targets an internal address")
    else:
        if _is_internal_address(hostname):
            raise IntakeValidationError("URL targets an internal address")


def extract_page_text(html: str) -> tuple[str, str]:
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(list(_STRIP_TAGS)):
        tag.decompose()
    title = soup.title.get_text(strip=True) if soup.title else ""
    main = soup.find("main") or soup.find("article") or soup.find("body") or soup
    text = main.get_text(separator=" ", strip=True)
    return title, " ".join(text.split())


def _get_following_redirects(client: httpx.Client, url: str) -> httpx.Response:
    """Follow redirects one hop at a time so every target passes the internal-address check."""
    current = url
    for _ in range(MAX_REDIRECTS + 1):
        response = client.get(current, follow_redirects=False)
        location = response.headers.get("location")
        if not response.is_redirect or not location:
            return response
        current = urljoin(current, location)
        validate_scrape_url(current)
    raise ScrapeError("Too many redirects", status_code=502)


def fetch_html(
    url: str,
    *,
    client: Optional[httpx.Client] = None,
    max_retries: Optional[int] = None,
    timeout: Optional[float] = None,
) -> str:
    """GET ``url`` and return its body, retrying transport errors and 5xx with exponential backoff."""
    attempts = max(1, max_retries if max_retries is not None else settings.SCRAPE_MAX_RETRIES)
    owns_client = client is None
    client = client or httpx.Client(
        timeout=timeout or settings.SCRAPE_TIMEOUT_SECONDS,
        follow_redirects=False,
        headers={"User-Agent": _USER_AGENT, "Accept": "text/html,application/xhtml+xml"},
    )
    delay = 1.0
    last_error: Optional[str] = None
    try:
        for attempt in range(1, attempts + 1):
            try:
                response = _get_following_redirects(client, url)
            except httpx.HTTPError as exc:
                last_error = f"Request failed: {exc}"
                logger.warning("Scrape request failed", extra={"url": url, "attempt": attempt, "error": str(exc)})
            else:
                status = response.status_code
                if status < 400:
                    return response.text
                if status not in _RETRYABLE_STATUS and status < 500:
                    if status in (401, 403):
                        raise ScrapeError("Website blocked access to this page", status_code=status)
                    if status == 404:
                        raise ScrapeError("Page not found", status_code=404)
                    raise ScrapeError(f"HTTP {status}", status_code=status)
                last_error = f"HTTP {status}"
                logger.warning("Scrape returned retryable status", extra={"url": url, "status": status})
            if attempt < attempts:
                time.sleep(delay)
                delay *= 2
    finally:
        if owns_client:
            client.close()
    raise ScrapeError(last_error or "Failed to fetch website. Please check the URL and try again.", status_code=502)


def scrape_url(url: str, *, client: Optional[httpx.Client] = None) -> ScrapedPage:
    validate_scrape_url(url)
    title, text = extract_page_text(fetch_html(url, client=client))
    if len(text) < MIN_SCRAPE_CHARS:
        raise IntakeValidationError(
            f"Not enough content found on the page (minimum {MIN_SCRAPE_CHARS} characters)"
        )
    return ScrapedPage(url=url, title=title, text=text)


def create_paste_intake(
    session: Session,
    *,
    user_id: str,
    project: FunnelProject,
    content: str,
    session_name: Optional[str] = None,
    method: IntakeMethodEnum = IntakeMethodEnum.paste,
) -> VapiTranscript:
    text = (content or "").strip()
    if len(text) < MIN_PASTE_CHARS:
        raise IntakeValidationError(f"Content must be at least {MIN_PASTE_CHARS} characters")
    return TranscriptsRepository(session).create(
        user_id=user_id,
        project_id=project.id,
        transcript_text=text,
        intake_method=method,
        session_name=session_name,
        call_status="completed",
        metadata_json={"character_count": len(text), "word_count": len(text.split())},
    )


def create_scrape_intake(
    session: Session,
    *,
    user_id: str,
    project: FunnelProject,
    url: str,
    session_name: Optional[str] = None,
    client: Optional[httpx.Client] = None,
) -> VapiTranscript:
    page = scrape_url(url, client=client)
    logger.info("Scraped intake page", extra={"url": url, "characters": len(page.text)})
    return TranscriptsRepository(session).create(
        user_id=user_id,
        project_id=project.id,
        transcript_text=page.text,
        intake_method=IntakeMethodEnum.scrape,
        session_name=session_name or page.title or url,
        call_status="completed",
        metadata_json={
            "source_url": url,
            "page_title": page.title,
            "character_count": len(page.text),
            "word_count": len(page.text.split()),
        },
    )


def transcript_data(transcript: VapiTranscript) -> TranscriptData:
    return TranscriptData(
        transcript_text=transcript.transcript_text or "",
        extracted_data=transcript.extracted_data or {},
    )


def combine_intakes(session: Session, project: FunnelProject) -> Optional[TranscriptData]:
    """Merge every intake of the project, oldest first, into one transcript payload."""
    transcripts = TranscriptsRepository(session).list(project_id=project.id)
    if not transcripts:
        return None
    sections: list[str] = []
    extracted: dict[str, Any] = {}
    for transcript in transcripts:
        method = getattr(transcript.intake_method, "value", transcript.intake_method) or "intake"
        label = transcript.session_name or method
        sections.append(f"=== {label} ({method}) ===\n{transcript.transcript_text}")
        if isinstance(transcript.extracted_data, dict):
            extracted.update(transcript.extracted_data)
    return TranscriptData(transcript_text="\n\n".join(sections), extracted_data=extracted)
