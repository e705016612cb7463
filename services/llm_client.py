"""Text-generation model adapters and the bounded retry wrapper."""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Callable, Mapping, Optional, Protocol, Sequence, TypeVar

import openai
import requests

from services.config import FeedGenConfig, ModelParameters
from utils.http import build_vertex_predict_url, get_session, post_json
from utils.llm_text import short_preview_of

DEFAULT_OPENAI_MODEL = "gpt-4o-mini"

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class ModelRequestError(RuntimeError):
    """Raised when the model endpoint could not be reached or rejected the call."""


class ModelResponseError(RuntimeError):
    """Raised when the model answered without usable content."""


class TextModel(Protocol):
    def predict(self, prompt: str, params: ModelParameters) -> str:
        ...


def execute_with_retry(max_retries: int, fn: Callable[[], T], delay_seconds: float = 0) -> T:
    """Call ``fn`` up to ``max_retries`` times, re-raising the last failure."""

    attempts = max(int(max_retries), 1)
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except Exception as exc:
            if attempt == attempts:
                raise
            _LOGGER.warning("Attempt %s/%s failed: %s", attempt, attempts, exc)
            if delay_seconds:
                time.sleep(delay_seconds)
    raise AssertionError("unreachable")  # pragma: no cover


class VertexTextModel:
    """Vertex AI text model called through the REST ``:predict`` endpoint."""

    def __init__(
        self,
        project_id: str,
        location: str,
        model_id: str,
        *,
        access_token: str,
        session: Optional[requests.Session] = None,
        timeout: int = 60,
    ):
        self.url = build_vertex_predict_url(project_id, location, model_id)
        self.access_token = access_token
        self.session = session or get_session(access_token)
        self.timeout = timeout

    def predict(self, prompt: str, params: ModelParameters) -> str:
        payload = {
            "instances": [{"prompt": prompt}],
            "parameters": params.to_vertex(),
        }
        try:
            data = post_json(
                self.session,
                self.url,
                payload,
                timeout=self.timeout,
                token=self.access_token,
            )
        except (requests.RequestException, RuntimeError) as exc:
            raise ModelRequestError(f"Vertex AI request failed: {exc}") from exc

        predictions = data.get("predictions") if isinstance(data, Mapping) else None
        if not isinstance(predictions, Sequence) or not predictions:
            raise ModelResponseError(f"Vertex AI response has no predictions: {short_preview_of(data)}")
        first = predictions[0] if isinstance(predictions[0], Mapping) else {}
        safety = first.get("safetyAttributes")
        if isinstance(safety, Mapping) and safety.get("blocked"):
            raise ModelResponseError("Blocked for safety reasons.")
        content = first.get("content")
        if not content:
            raise ModelResponseError("No content")
        return str(content)


def _extract_response_content(response: object) -> str:
    content = ""
    if isinstance(response, Mapping):
        choices = response.get("choices")
        if isinstance(choices, Sequence) and choices:
            message = choices[0]
            if isinstance(message, Mapping):
                msg_payload = message.get("message") or {}
                if isinstance(msg_payload, Mapping):
                    content = str(msg_payload.get("content") or "")
    else:
        choices = getattr(response, "choices", None)
        if isinstance(choices, Sequence) and choices:
            message = getattr(choices[0], "message", None)
            content = str(getattr(message, "content", "") or "")
    return content


class OpenAITextModel:
    """OpenAI chat model behind the same ``predict`` contract.

    The chat completions API has no top-K sampling, so ``top_k`` is ignored.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_OPENAI_MODEL,
        *,
        client: Any = None,
        timeout: int = 60,
    ):
        self.model = model
        self.timeout = timeout
        if client is not None:
            self.client = client
            return
        api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise RuntimeError("OpenAI API key is not configured.")
        self.client = openai.OpenAI(api_key=api_key)

    def predict(self, prompt: str, params: ModelParameters) -> str:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=params.temperature,
                max_tokens=params.max_output_tokens,
                top_p=params.top_p,
                timeout=self.timeout,
            )
        except openai.OpenAIError as exc:
            raise ModelRequestError(f"OpenAI request failed: {exc}") from exc

        content = _extract_response_content(response)
        if not content:
            raise ModelResponseError("OpenAI response missing message content")
        return content


def build_text_model(config: FeedGenConfig, *, session: Optional[requests.Session] = None) -> TextModel:
    """Return the adapter selected by ``config.provider``."""

    if config.provider == "openai":
        model_id = config.model_id if config.model_id.startswith("gpt") else DEFAULT_OPENAI_MODEL
        return OpenAITextModel(config.openai_api_key or None, model_id)
    return VertexTextModel(
        config.gcp_project_id,
        config.gcp_location,
        config.model_id,
        access_token=config.access_token,
        session=session,
    )
