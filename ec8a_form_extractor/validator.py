from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from . import config
from .types import ExtractionFields

log = logging.getLogger("ec8a_form_extractor")


class Validator:
    """
    Arithmetic sanity checks on an extracted EC 8A form.

    Checks never change a record's status; they produce warnings for manual review.
    """

    def __init__(self, *, target_labels: Sequence[str] = config.TARGET_PARTIES) -> None:
        self.target_labels = tuple(target_labels)

    def check(self, fields: ExtractionFields) -> List[Dict[str, Any]]:
        return (
            self.cross_validate_ballot_fields(fields)
            + self.cross_validate_party_sum(fields, self.target_labels)
        )

    @staticmethod
    def cross_validate_ballot_fields(fields: ExtractionFields) -> List[Dict[str, Any]]:
        """Verify the statistics table (items #1 to #8):

          1. spoiled(#5) + rejected(#6) + valid(#7) == total used(#8)
          2. unused(#4) + total used(#8) == issued(#3)
          3. accredited(#2) <= on register(#1)
        """
        warnings: List[Dict[str, Any]] = []
        spoiled = fields.spoiled_ballot_papers
        rejected = fields.rejected_ballots
        valid = fields.total_valid_votes
        used = fields.total_used_ballot_papers
        unused = fields.unused_ballot_papers
        issued = fields.ballot_papers_issued

        if spoiled is not None and rejected is not None and valid is not None and used is not None:
            expected = spoiled + rejected + valid
            if expected != used:
                warnings.append({
                    "check": "used_ballots_sum",
                    "detail": (
                        f"spoiled({spoiled}) + rejected({rejected}) + valid({valid}) "
                        f"= {expected} != total_used({used})"
                    ),
                })

        if unused is not None and used is not None and issued is not None:
            expected = unused + used
            if expected != issued:
                warnings.append({
                    "check": "ballot_issue_sum",
                    "detail": f"unused({unused}) + used({used}) = {expected} != issued({issued})",
                })

        accredited = fields.accredited_voters
        register = fields.voters_on_register
        if accredited is not None and register is not None and accredited > register:
            warnings.append({
                "check": "accredited_exceeds_register",
                "detail": f"accredited({accredited}) > voters_on_register({register})",
            })

        return warnings

    @staticmethod
    def cross_validate_party_sum(
        fields: ExtractionFields,
        target_labels: Sequence[str] = config.TARGET_PARTIES,
    ) -> List[Dict[str, Any]]:
        """Party scores should add up to the total valid votes written on the form."""
        valid: Optional[int] = fields.total_valid_votes
        if valid is None or not fields.votes:
            return []
        party_sum = sum(fields.count(p) for p in target_labels)
        if party_sum == valid:
            return []
        return [{
            "check": "party_votes_sum",
            "detail": f"sum of party votes = {party_sum} != total_valid_votes({valid})",
        }]
