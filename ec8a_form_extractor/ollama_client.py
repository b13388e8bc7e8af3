from __future__ import annotations

import base64
import logging
from typing import Any, Sequence

import requests

from . import config
from .errors import MalformedResponse, QuotaExceeded, TransportFailure
from .parsing import parse_extraction_text
from .prompts import build_prompt, json_shape_hint
from .types import ExtractionFields

log = logging.getLogger("ec8a_form_extractor")


class OllamaExtractor:
    """Extraction port backed by a local Ollama vision model (OpenAI-compatible API)."""

    def __init__(
        self,
        *,
        url: str = config.OLLAMA_URL,
        model: str = config.OLLAMA_MODEL,
        target_labels: Sequence[str] = config.TARGET_PARTIES,
        timeout_s: float = config.OLLAMA_TIMEOUT_S,
    ):
        self.url = str(url).rstrip("/")
        self.model = str(model)
        self.target_labels = tuple(target_labels)
        self.timeout_s = float(timeout_s)
        # /no_think keeps Qwen3-style models from moving the answer into 'reasoning'.
        self._prompt = (
            "/no_think\n"
            + build_prompt(self.target_labels)
            + "\nReturn this exact JSON structure:\n"
            + json_shape_hint(self.target_labels)
        )

    def check_credentials(self) -> None:
        return None

    def _payload(self, image_bytes: bytes, mime_type: str) -> dict[str, Any]:
        b64_img = base64.b64encode(image_bytes).decode("ascii")
        return {
            "model": self.model,
            "messages": [
                {
                    "role": "system",
                    "content": "You are a data extraction assistant. Respond with valid JSON only.",
                },
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": self._prompt},
                        {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{b64_img}"}},
                    ],
                },
            ],
            "temperature": 0.0,
            "response_format": {"type": "json_object"},
            "stream": False,
        }

    def __call__(self, image_bytes: bytes, mime_type: str) -> ExtractionFields:
        try:
            resp = requests.post(
                f"{self.url}/v1/chat/completions",
                json=self._payload(image_bytes, mime_type),
                timeout=self.timeout_s,
            )
        except requests.RequestException as e:
            raise TransportFailure(f"Ollama request failed: {e}") from e

        if resp.status_code == 429:
            raise QuotaExceeded("Ollama HTTP 429: too many requests")
        try:
            resp.raise_for_status()
        except requests.HTTPError as e:
            raise TransportFailure(f"Ollama HTTP {resp.status_code}") from e

        try:
            msg = resp.json()["choices"][0]["message"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise MalformedResponse("Ollama returned an unexpected response payload") from e
        if not isinstance(msg, dict):
            raise MalformedResponse("Ollama returned an unexpected response payload")
        text = (msg.get("content") or msg.get("reasoning") or "").strip()
        return parse_extraction_text(text, self.target_labels)
