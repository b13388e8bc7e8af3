from __future__ import annotations

import base64
import json
import logging
import os
from typing import Any, Optional, Sequence
from urllib import error as urlerror
from urllib import parse as urlparse
from urllib import request as urlrequest

from . import config
from .errors import MalformedResponse, MissingCredential, QuotaExceeded, TransportFailure
from .parsing import parse_extraction_text
from .prompts import build_prompt, response_schema
from .types import ExtractionFields

log = logging.getLogger("ec8a_form_extractor")

_GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"


def validate_gemini_model(model: str) -> str:
    normalized = str(model or "").strip().lower()
    if normalized not in config.GEMINI_SUPPORTED_MODELS:
        supported = ", ".join(config.GEMINI_SUPPORTED_MODELS)
        raise ValueError(f"Unsupported Gemini model: {model!r}. Supported models: {supported}")
    return normalized


def resolve_gemini_api_key(explicit_api_key: Optional[str] = None) -> str:
    explicit = str(explicit_api_key or "").strip()
    if explicit:
        return explicit

    v1 = str(os.environ.get("GEMINI_API_KEY") or "").strip()
    v2 = str(os.environ.get("GOOGLE_API_KEY") or "").strip()

    if v1 and v2 and v1 != v2:
        raise RuntimeError(
            "Both GEMINI_API_KEY and GOOGLE_API_KEY are set with different values. "
            "Set only one or pass --api-key explicitly."
        )
    if v1:
        return v1
    if v2:
        return v2
    raise MissingCredential("Missing Gemini API key. Set GEMINI_API_KEY or GOOGLE_API_KEY.")


def _extract_text(payload: dict[str, Any]) -> str:
    out: list[str] = []
    for cand in list(payload.get("candidates") or []):
        content = cand.get("content") if isinstance(cand, dict) else None
        parts = (content or {}).get("parts") if isinstance(content, dict) else None
        for part in list(parts or []):
            if not isinstance(part, dict):
                continue
            txt = part.get("text")
            if isinstance(txt, str) and txt.strip():
                out.append(txt.strip())
    return "\n".join(out).strip()


def _api_error(code: Optional[int], detail: str, status: str = "") -> Exception:
    msg = f"Gemini API HTTP {code}" if code is not None else "Gemini API error"
    if detail:
        msg += f": {detail}"
    if code == 429 or status == "RESOURCE_EXHAUSTED":
        return QuotaExceeded(msg)
    return TransportFailure(msg)


def _request_json(url: str, body: dict[str, Any], *, timeout_s: float) -> dict[str, Any]:
    req = urlrequest.Request(
        url=url,
        data=json.dumps(body, ensure_ascii=False).encode("utf-8"),
        headers={"Content-Type": "application/json"},
        method="POST",
    )

    try:
        with urlrequest.urlopen(req, timeout=float(timeout_s)) as resp:
            raw = resp.read().decode("utf-8", errors="replace")
    except urlerror.HTTPError as e:
        detail = ""
        status = ""
        try:
            parsed = json.loads(e.read().decode("utf-8", errors="replace"))
            if isinstance(parsed, dict) and isinstance(parsed.get("error"), dict):
                detail = str(parsed["error"].get("message") or "").strip()
                status = str(parsed["error"].get("status") or "").strip()
        except (OSError, ValueError):
            detail = ""
        raise _api_error(e.code, detail, status) from e
    except urlerror.URLError as e:
        raise TransportFailure(f"Gemini API request failed: {e.reason}") from e
    except (TimeoutError, OSError) as e:
        raise TransportFailure(f"Gemini API request failed: {e}") from e

    try:
        payload = json.loads(raw)
    except ValueError as e:
        raise MalformedResponse("Gemini API returned invalid JSON") from e
    if not isinstance(payload, dict):
        raise MalformedResponse("Gemini API returned an invalid response payload")
    if isinstance(payload.get("error"), dict):
        err = payload["error"]
        raise _api_error(err.get("code"), str(err.get("message") or "unknown error").strip(), str(err.get("status") or ""))
    return payload


def generate_form_json(
    *,
    image_bytes: bytes,
    mime_type: str,
    model: str,
    api_key: str,
    prompt: str,
    schema: Optional[dict[str, Any]] = None,
    temperature: float = config.GEMINI_TEMPERATURE,
    timeout_s: float = config.REQUEST_TIMEOUT_S,
) -> str:
    """Send one image + prompt to Gemini and return the raw JSON text it answered with."""
    model_name = validate_gemini_model(model)
    key = str(api_key or "").strip()
    if not key:
        raise MissingCredential("Gemini API key is required")

    query = urlparse.urlencode({"key": key})
    url = _GEMINI_API_URL.format(model=model_name) + f"?{query}"
    generation_config: dict[str, Any] = {
        "temperature": float(temperature),
        "responseMimeType": "application/json",
    }
    if schema is not None:
        generation_config["responseSchema"] = schema
    body = {
        "contents": [
            {
                "parts": [
                    {
                        "inlineData": {
                            "mimeType": str(mime_type or "application/octet-stream"),
                            "data": base64.b64encode(image_bytes).decode("ascii"),
                        }
                    },
                    {"text": str(prompt)},
                ]
            }
        ],
        "generationConfig": generation_config,
    }
    payload = _request_json(url, body, timeout_s=float(timeout_s))
    text = _extract_text(payload)
    if text:
        return text

    reason = ""
    cands = list(payload.get("candidates") or [])
    if cands and isinstance(cands[0], dict):
        reason = str(cands[0].get("finishReason") or "").strip()
    if reason:
        raise MalformedResponse(f"No data returned from AI (finishReason={reason})")
    raise MalformedResponse("No data returned from AI")


class GeminiExtractor:
    """
    Extraction port backed by Gemini structured output.

    Calling the instance with `(image_bytes, mime_type)` returns ExtractionFields or
    raises an ExtractionError subclass. Instances hold no per-call state and are
    safe to share between worker threads.
    """

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        model: str = config.GEMINI_MODEL,
        target_labels: Sequence[str] = config.TARGET_PARTIES,
        temperature: float = config.GEMINI_TEMPERATURE,
        timeout_s: float = config.REQUEST_TIMEOUT_S,
    ):
        self.model = validate_gemini_model(model)
        self.target_labels = tuple(target_labels)
        self.temperature = float(temperature)
        self.timeout_s = float(timeout_s)
        self._explicit_key = api_key
        self._prompt = build_prompt(self.target_labels)
        self._schema = response_schema(self.target_labels)

    def check_credentials(self) -> None:
        resolve_gemini_api_key(self._explicit_key)

    def __call__(self, image_bytes: bytes, mime_type: str) -> ExtractionFields:
        text = generate_form_json(
            image_bytes=image_bytes,
            mime_type=mime_type,
            model=self.model,
            api_key=resolve_gemini_api_key(self._explicit_key),
            prompt=self._prompt,
            schema=self._schema,
            temperature=self.temperature,
            timeout_s=self.timeout_s,
        )
        return parse_extraction_text(text, self.target_labels)
