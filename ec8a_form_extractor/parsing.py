"""
Turn a vision model's JSON answer into `ExtractionFields`.

Models are asked for camelCase keys (see prompts.py) but snake_case is accepted
too. Handwritten "Nil", "-", "Zero" and blank cells read as 0; anything that is
not a non-negative whole number is dropped (None for a field, absent for a party).
"""

from __future__ import annotations

import json
import math
import re
from typing import Any, Dict, Mapping, Optional, Sequence

from . import config
from .errors import MalformedResponse
from .types import ExtractionFields

_NIL_WORDS = frozenset({"", "-", "--", "nil", "zero", "none", "null", "n/a"})

_INT_RE = re.compile(r"^\d+(?:\.0+)?$")

_CAMEL = {
    "lga": "lga",
    "registrationArea": "registration_area",
    "pollingUnit": "polling_unit",
    "delimitation": "delimitation",
    "votersOnRegister": "voters_on_register",
    "accreditedVoters": "accredited_voters",
    "ballotPapersIssued": "ballot_papers_issued",
    "unusedBallotPapers": "unused_ballot_papers",
    "spoiledBallotPapers": "spoiled_ballot_papers",
    "rejectedBallots": "rejected_ballots",
    "totalValidVotes": "total_valid_votes",
    "totalUsedBallotPapers": "total_used_ballot_papers",
}


def parse_count(raw: Any) -> Optional[int]:
    """Coerce a handwritten count to a non-negative int. Returns None when unreadable."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw if raw >= 0 else None
    if isinstance(raw, float):
        if not math.isfinite(raw) or raw < 0 or raw != int(raw):
            return None
        return int(raw)
    s = str(raw).strip().lower()
    if s in _NIL_WORDS:
        return 0
    s = s.replace(",", "").replace(" ", "")
    if not _INT_RE.match(s):
        return None
    return int(s.split(".", 1)[0])


def _parse_text(raw: Any) -> Optional[str]:
    if raw is None or isinstance(raw, (dict, list)):
        return None
    s = str(raw).strip()
    return s or None


def strip_json_fences(text: str) -> str:
    t = (text or "").strip()
    if t.startswith("```"):
        t = t[t.index("\n") + 1 :] if "\n" in t else ""
    if t.endswith("```"):
        t = t[:-3].rstrip()
    return t.strip()


def load_json_object(text: str) -> Dict[str, Any]:
    body = strip_json_fences(text)
    if not body:
        raise MalformedResponse("Model returned no data")
    try:
        payload = json.loads(body)
    except json.JSONDecodeError as e:
        raise MalformedResponse(f"Model returned invalid JSON: {e.msg}") from e
    if not isinstance(payload, dict):
        raise MalformedResponse(f"Model returned {type(payload).__name__}, expected a JSON object")
    return payload


def _normalize_keys(payload: Mapping[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for k, v in payload.items():
        key = _CAMEL.get(str(k), str(k))
        out[key] = v
    return out


def parse_votes(raw: Any, target_labels: Optional[Sequence[str]] = None) -> Dict[str, int]:
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise MalformedResponse("'votes' must be an object of party -> count")
    wanted = {str(l).upper(): str(l) for l in target_labels} if target_labels else None
    votes: Dict[str, int] = {}
    for party, count in raw.items():
        key = str(party).strip().upper()
        if wanted is not None:
            if key not in wanted:
                continue
            key = wanted[key]
        n = parse_count(count)
        if n is not None:
            votes[key] = n
    return votes


def parse_extraction_payload(
    payload: Mapping[str, Any],
    target_labels: Optional[Sequence[str]] = config.TARGET_PARTIES,
) -> ExtractionFields:
    if not isinstance(payload, Mapping):
        raise MalformedResponse(f"Expected a JSON object, got {type(payload).__name__}")
    data = _normalize_keys(payload)
    kwargs: Dict[str, Any] = {}
    for attr, _ in config.ADMIN_FIELDS:
        kwargs[attr] = _parse_text(data.get(attr))
    for attr, _ in config.NUMERIC_FIELDS:
        kwargs[attr] = parse_count(data.get(attr))
    kwargs["votes"] = parse_votes(data.get("votes"), target_labels)
    return ExtractionFields(**kwargs)


def parse_extraction_text(
    text: str,
    target_labels: Optional[Sequence[str]] = config.TARGET_PARTIES,
) -> ExtractionFields:
    return parse_extraction_payload(load_json_object(text), target_labels)
