from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Optional

import google.generativeai as genai
from anthropic import Anthropic
from openai import OpenAI

from funnel_builder.config import settings
from funnel_builder.llm.json_recovery import parse_json_with_recovery
from funnel_builder.observability import start_langfuse_generation


class LLMClientConfigError(Exception):
    pass


class LLMGenerationError(RuntimeError):
    pass


logger = logging.getLogger(__name__)
_DEFAULT_TIMEOUT = int(os.getenv("LLM_REQUEST_TIMEOUT", "120"))
_MAX_RETRIES = int(os.getenv("LLM_REQUEST_RETRIES", "2"))
_JSON_ATTEMPTS = 3
DATA_URL_PREFIX = "data:image/png;base64,"
_JSON_RETRY_BASE_DELAY = 1.0
_JSON_ONLY_INSTRUCTION = (
    "\n\nIMPORTANT: Respond with valid JSON only. Do not include markdown code fences, "
    "explanations, or any text outside the JSON."
)


@dataclass
class LLMGenerationParams:
    model: Optional[str] = None
    max_tokens: Optional[int] = None
    temperature: float = 0.2
    system: Optional[str] = None


@dataclass
class ChatMessage:
    role: str
    content: str


def _split_system(messages: list[ChatMessage], system: Optional[str]) -> tuple[Optional[str], list[ChatMessage]]:
    system_parts = [system] if system else []
    turns: list[ChatMessage] = []
    for message in messages:
        if message.role == "system":
            system_parts.append(message.content)
        else:
            turns.append(message)
    return ("\n\n".join(system_parts) or None), turns


class LLMClient:
    """
    Thin wrapper over the provider SDKs.
    Routes to the appropriate provider client based on the requested model.
    """

    def __init__(self, default_model: Optional[str] = None) -> None:
        self.default_model = default_model or settings.LLM_DEFAULT_MODEL
        self._gemini_configured = False
        self._anthropic_client: Optional[Anthropic] = None
        self._openai_client: Optional[OpenAI] = None

    def generate_text(self, prompt: str, params: Optional[LLMGenerationParams] = None) -> str:
        return self.complete([ChatMessage(role="user", content=prompt)], params)

    def complete(self, messages: list[ChatMessage], params: Optional[LLMGenerationParams] = None) -> str:
        params = params or LLMGenerationParams()
        model = params.model or self.default_model
        system, turns = _split_system(messages, params.system)
        if not turns:
            raise ValueError("At least one user or assistant message is required")

        with start_langfuse_generation(
            name="llm.complete",
            model=model,
            input=[{"role": turn.role, "content": turn.content} for turn in turns],
            model_parameters={"temperature": params.temperature, "max_tokens": params.max_tokens},
        ) as generation:
            if self._is_openai_model(model):
                text = self._complete_with_openai(system, turns, model, params)
            elif model.startswith("claude"):
                text = self._complete_with_anthropic(system, turns, model, params)
            else:
                text = self._complete_with_gemini(system, turns, model, params)
            if generation is not None:
                generation.update(output=text)
        return text

    def generate_json(
        self,
        messages: list[ChatMessage],
        params: Optional[LLMGenerationParams] = None,
        *,
        context: Optional[str] = None,
    ) -> Any:
        """Ask for a JSON-only answer and parse it, retrying with exponential backoff."""
        params = params or LLMGenerationParams()
        json_params = LLMGenerationParams(
            model=params.model,
            max_tokens=params.max_tokens,
            temperature=params.temperature,
            system=(params.system or "") + _JSON_ONLY_INSTRUCTION,
        )
        last_error: Optional[Exception] = None
        delay = _JSON_RETRY_BASE_DELAY
        for attempt in range(1, _JSON_ATTEMPTS + 1):
            try:
                text = self.complete(messages, json_params)
                return parse_json_with_recovery(text, context=context)
            except LLMClientConfigError:
                raise
            except Exception as exc:  # noqa: BLE001
                last_error = exc
                logger.warning(
                    "JSON generation attempt failed",
                    extra={"attempt": attempt, "context": context, "error": str(exc)},
                )
                if attempt < _JSON_ATTEMPTS:
                    time.sleep(delay)
                    delay *= 2
        raise LLMGenerationError(f"AI generation failed: {last_error}") from last_error

    def generate_image(self, prompt: str, *, size: str = "1792x1024", timeout: Optional[float] = None) -> str:
        """Return the generated image URL, or a base64 ``data:`` URL when the model sends bytes inline."""
        client = self._get_openai_client()
        model = settings.LLM_IMAGE_MODEL
        with start_langfuse_generation(name="llm.image", model=model, input=prompt):
            response = client.images.generate(
                model=model,
                prompt=prompt,
                size=size,
                n=1,
                timeout=timeout or _DEFAULT_TIMEOUT,
            )
        data = getattr(response, "data", None) or []
        image = data[0] if data else None
        url = getattr(image, "url", None)
        if url:
            return url
        b64_json = getattr(image, "b64_json", None)
        if b64_json:
            return f"{DATA_URL_PREFIX}{b64_json}"
        raise LLMGenerationError(f"Image generation returned no image for model {model}")

    def _is_openai_model(self, model: str) -> bool:
        lower = model.lower()
        prefixes = ("gpt-", "chatgpt-", "o1", "o3", "o4", "dall-e")
        return any(lower.startswith(prefix) for prefix in prefixes)

    def _get_openai_client(self) -> OpenAI:
        if self._openai_client:
            return self._openai_client
        api_key = os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise LLMClientConfigError("OPENAI_API_KEY not configured")
        client_kwargs: dict[str, Any] = {
            "api_key": api_key,
            "timeout": float(_DEFAULT_TIMEOUT),
            "max_retries": _MAX_RETRIES,
        }
        base_url = os.getenv("OPENAI_BASE_URL")
        if base_url:
            client_kwargs["base_url"] = base_url
        self._openai_client = OpenAI(**client_kwargs)
        return self._openai_client

    def _complete_with_openai(
        self,
        system: Optional[str],
        turns: list[ChatMessage],
        model: str,
        params: LLMGenerationParams,
    ) -> str:
        client = self._get_openai_client()
        chat_messages: list[dict[str, str]] = []
        if system:
            chat_messages.append({"role": "system", "content": system})
        chat_messages.extend({"role": turn.role, "content": turn.content} for turn in turns)

        completion_kwargs: dict[str, Any] = {"model": model, "messages": chat_messages}
        if params.temperature is not None:
            completion_kwargs["temperature"] = params.temperature
        if params.max_tokens:
            completion_kwargs["max_tokens"] = params.max_tokens

        try:
            completion = client.chat.completions.create(**completion_kwargs)
        except Exception:
            logger.exception("OpenAI chat completion failed", extra={"model": model})
            raise

        text = None
        if completion and completion.choices:
            text = getattr(completion.choices[0].message, "content", None)
        if text:
            return text
        raise LLMGenerationError(f"OpenAI chat completion returned no content for model {model}")

    def _complete_with_anthropic(
        self,
        system: Optional[str],
        turns: list[ChatMessage],
        model: str,
        params: LLMGenerationParams,
    ) -> str:
        api_key = os.getenv("ANTHROPIC_API_KEY")
        if not api_key:
            raise LLMClientConfigError("ANTHROPIC_API_KEY not configured")
        if not self._anthropic_client:
            self._anthropic_client = Anthropic(api_key=api_key)

        request_kwargs: dict[str, Any] = {
            "model": model,
            "max_tokens": params.max_tokens or 4096,
            "temperature": params.temperature,
            "messages": [{"role": turn.role, "content": turn.content} for turn in turns],
            "timeout": _DEFAULT_TIMEOUT,
        }
        if system:
            request_kwargs["system"] = system

        text = None
        for _ in range(max(1, _MAX_RETRIES)):
            try:
                response = self._anthropic_client.messages.create(**request_kwargs)
            except Exception:
                logger.exception("Anthropic generation attempt failed", extra={"model": model})
                continue
            text_parts = [content.text for content in response.content if getattr(content, "text", None)]
            text = "".join(text_parts) if text_parts else None
            if text:
                return text

        raise LLMGenerationError(f"Anthropic returned no content for model {model}")

    def _complete_with_gemini(
        self,
        system: Optional[str],
        turns: list[ChatMessage],
        model: str,
        params: LLMGenerationParams,
    ) -> str:
        api_key = os.getenv("GEMINI_API_KEY")
        if not api_key:
            raise LLMClientConfigError("GEMINI_API_KEY not configured")
        if not self._gemini_configured:
            genai.configure(api_key=api_key)
            self._gemini_configured = True

        generation_config: dict[str, Any] = {"temperature": params.temperature}
        if params.max_tokens:
            generation_config["max_output_tokens"] = params.max_tokens

        model_name = model if model.startswith("models/") else f"models/{model}"
        model_client = genai.GenerativeModel(
            model_name=model_name,
            generation_config=generation_config,
            system_instruction=system,
        )
        contents = [
            {"role": "model" if turn.role == "assistant" else "user", "parts": [turn.content]} for turn in turns
        ]
        try:
            result = model_client.generate_content(contents, request_options={"timeout": _DEFAULT_TIMEOUT})
            text = getattr(result, "text", None)
        except Exception:
            logger.exception("Gemini generation failed", extra={"model": model})
            raise

        if text:
            return text
        raise LLMGenerationError(f"Gemini returned no content for model {model}")
