from __future__ import annotations

from typing import Any, Dict, Sequence

from . import config

_PROMPT_TEMPLATE = """\
Analyze this image of an INEC EC 8A Statement of Result of Poll form.
Extract the administrative details and the voting figures strictly.

1. Look for the "State", "Local Government Area", "Registration Area", and "Polling Unit" fields at the top.
2. Extract the "Code" boxes to form the Delimitation string (e.g., State Code / LGA Code / Ward Code / PU Code).
3. Extract the numerical statistics from the top right table (Items #1 to #8).
4. Extract the scores for the following parties: {parties}.

Rules:
- If a field is written as "Nil", "-", "Zero", or left blank, treat it as the number 0.
- Be careful with handwritten numbers.
- Verify that the total valid votes match the sum of individual party votes if possible, but prioritize what is written.
- Return purely the JSON object matching the schema. No markdown fences, no explanation text.
"""

_STRING_FIELDS = (
    ("lga", "Local Government Area name"),
    ("registrationArea", "Registration Area / Ward name"),
    ("pollingUnit", "Polling Unit name"),
    ("delimitation", "The delimitation code (e.g., 04/04/06/013)"),
)

_INTEGER_FIELDS = (
    ("votersOnRegister", "Number of Voters on the Register"),
    ("accreditedVoters", "Number of Accredited Voters"),
    ("ballotPapersIssued", "Number of Ballot Papers Issued to the Polling Unit"),
    ("unusedBallotPapers", "Number of Unused Ballot Papers"),
    ("spoiledBallotPapers", "Number of Spoiled Ballot Papers"),
    ("rejectedBallots", "Number of Rejected Ballots"),
    ("totalValidVotes", "Number of Total Valid Votes (Total valid votes cast for all parties)"),
    ("totalUsedBallotPapers", "Total Number of Used Ballot Papers (Total of #5 + #6 + #7)"),
)


def build_prompt(target_labels: Sequence[str] = config.TARGET_PARTIES) -> str:
    return _PROMPT_TEMPLATE.format(parties=", ".join(target_labels))


def response_schema(target_labels: Sequence[str] = config.TARGET_PARTIES) -> Dict[str, Any]:
    """Gemini `responseSchema` (OpenAPI subset) for one EC 8A form."""
    props: Dict[str, Any] = {}
    for name, desc in _STRING_FIELDS:
        props[name] = {"type": "STRING", "description": desc}
    for name, desc in _INTEGER_FIELDS:
        props[name] = {"type": "INTEGER", "description": desc}
    props["votes"] = {
        "type": "OBJECT",
        "description": "Votes scored by each political party",
        "properties": {p: {"type": "INTEGER", "description": f"Votes for {p}"} for p in target_labels},
    }
    return {
        "type": "OBJECT",
        "properties": props,
        "required": [n for n, _ in _STRING_FIELDS] + [n for n, _ in _INTEGER_FIELDS] + ["votes"],
    }


def json_shape_hint(target_labels: Sequence[str] = config.TARGET_PARTIES) -> str:
    """Plain-text JSON skeleton for backends without schema-constrained output."""
    lines = ["{"]
    for name, _ in _STRING_FIELDS:
        lines.append(f'  "{name}": "string",')
    for name, _ in _INTEGER_FIELDS:
        lines.append(f'  "{name}": 0,')
    votes = ", ".join(f'"{p}": 0' for p in target_labels)
    lines.append(f'  "votes": {{{votes}}}')
    lines.append("}")
    return "\n".join(lines)
