from __future__ import annotations

import base64
import logging
import random
import time
from typing import Optional

import httpx

from funnel_builder.config import settings
from funnel_builder.llm.client import DATA_URL_PREFIX, LLMClient
from funnel_builder.services.media_storage import MediaStorage

logger = logging.getLogger(__name__)

_BASE_DELAY_SECONDS = 1.0


def _backoff_delay(attempt: int) -> float:
    return _BASE_DELAY_SECONDS * (2 ** attempt) + random.uniform(0, 0.5)


def generate_slide_image_url(
    prompt: str,
    *,
    llm: LLMClient,
    max_retries: Optional[int] = None,
    timeout: Optional[float] = None,
) -> Optional[str]:
    """Ask the image model for a URL, retrying failures. An empty response is final."""
    retries = settings.SLIDE_IMAGE_MAX_RETRIES if max_retries is None else max_retries
    timeout = timeout or settings.SLIDE_IMAGE_TIMEOUT_SECONDS
    for attempt in range(retries + 1):
        try:
            url = llm.generate_image(prompt, timeout=timeout)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Slide image generation attempt failed",
                extra={"attempt": attempt + 1, "error": str(exc)},
            )
            if attempt < retries:
                time.sleep(_backoff_delay(attempt))
            continue
        return url or None
    return None


def _download(url: str, http_client: Optional[httpx.Client]) -> tuple[bytes, str]:
    client = http_client or httpx.Client(timeout=settings.SLIDE_IMAGE_TIMEOUT_SECONDS)
    try:
        response = client.get(url)
        response.raise_for_status()
    finally:
        if http_client is None:
            client.close()
    return response.content, response.headers.get("content-type") or "image/png"


def generate_and_store_slide_image(
    *,
    presentation_id: str,
    slide_number: int,
    prompt: str,
    llm: LLMClient,
    storage: Optional[MediaStorage] = None,
    http_client: Optional[httpx.Client] = None,
) -> Optional[str]:
    """Generate an image, copy it into media storage and return its public URL.

    Returns None on any failure so a missing image never fails the slide.
    """
    source_url = generate_slide_image_url(prompt, llm=llm)
    if not source_url:
        return None
    try:
        storage = storage or MediaStorage()
        if source_url.startswith(DATA_URL_PREFIX):
            data = base64.b64decode(source_url[len(DATA_URL_PREFIX):])
            content_type = "image/png"
        else:
            data, content_type = _download(source_url, http_client)
        key = storage.build_key(f"presentations/{presentation_id}/slide-{slide_number}-{int(time.time() * 1000)}.png")
        return storage.upload_bytes(key=key, data=data, content_type=content_type)
    except Exception:  # noqa: BLE001
        logger.exception(
            "Failed to store slide image",
            extra={"presentation_id": presentation_id, "slide_number": slide_number},
        )
        return None
