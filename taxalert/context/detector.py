"""Keyword and pattern scoring to pick the likely tax authority of a document."""

from __future__ import annotations

import logging
from typing import Dict, Optional, Sequence

from taxalert.context.jurisdictions import JURISDICTION_PROFILES, JurisdictionContext

logger = logging.getLogger(__name__)

AUTHORITY_WEIGHT = 10
KEY_TERM_WEIGHT = 2
PATTERN_WEIGHT = 5


class JurisdictionDetector:
    """Score raw text against jurisdiction profiles.

    The result is advisory context for prompting. When nothing matches, or the
    best score is shared, the configured fallback profile wins if it is among
    the tied profiles; otherwise the first tied profile in table order does.
    """

    def __init__(
        self,
        profiles: Sequence[JurisdictionContext] = JURISDICTION_PROFILES,
        *,
        fallback_country: str = "US",
    ) -> None:
        if not profiles:
            raise ValueError("At least one jurisdiction profile is required")
        self.profiles = tuple(profiles)
        self.fallback_country = fallback_country.upper()
        fallback = self._find(self.fallback_country)
        if fallback is None:
            raise ValueError(f"Fallback jurisdiction {fallback_country!r} has no profile")
        self.fallback = fallback

    def _find(self, country: str) -> Optional[JurisdictionContext]:
        for profile in self.profiles:
            if profile.country == country:
                return profile
        return None

    @staticmethod
    def score(text: str, context: JurisdictionContext) -> int:
        lowered = text.lower()
        score = 0

        if context.authority.lower() in lowered:
            score += AUTHORITY_WEIGHT

        for term in context.key_terms:
            if term.lower() in lowered:
                score += KEY_TERM_WEIGHT

        for pattern in context.document_patterns:
            if pattern.search(text):
                score += PATTERN_WEIGHT

        return score

    def scores(self, text: str) -> Dict[str, int]:
        return {profile.country: self.score(text, profile) for profile in self.profiles}

    def detect(self, text: str) -> JurisdictionContext:
        scores = self.scores(text)
        logger.debug("Jurisdiction detection scores: %s", scores)

        best = max(scores.values())
        if best == 0:
            logger.warning(
                "No jurisdiction match found, defaulting to %s", self.fallback.country
            )
            return self.fallback

        tied = [profile for profile in self.profiles if scores[profile.country] == best]
        if len(tied) > 1:
            winner = self.fallback if self.fallback in tied else tied[0]
            logger.info(
                "Jurisdiction tie between %s at score %s, choosing %s",
                [profile.country for profile in tied],
                best,
                winner.country,
            )
            return winner

        winner = tied[0]
        logger.info("Detected jurisdiction: %s (score=%s)", winner.country, best)
        return winner

    @staticmethod
    def extract_document_reference(text: str, context: JurisdictionContext) -> Optional[str]:
        """Return the first document reference (e.g. "Notice 2024-45") found in ``text``."""

        for pattern in context.document_patterns:
            match = pattern.search(text)
            if match:
                return match.group(0)
        return None

    @staticmethod
    def validate_country(extracted_country: str, context: JurisdictionContext) -> bool:
        return extracted_country == context.country or extracted_country == "OTHER"


_default_detector = JurisdictionDetector()


def detect_jurisdiction(text: str) -> JurisdictionContext:
    """Detect the jurisdiction of ``text`` with the built-in profiles."""

    return _default_detector.detect(text)
