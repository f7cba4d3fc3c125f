"""
Chapter Affinity
-----------------
Maps free text to the most likely NC General Statutes chapter so the
retriever can bias the query embedding toward that chapter's language.

KeywordChapterDetector is a simple heuristic: chapters are
tested in declaration order and the first one whose keywords appear in the
text wins. It sits behind ChapterClassifier so a learned classifier can
replace it without touching the retriever.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Mapping, Optional, Sequence

# Priority order matters: the first matching chapter wins.
DEFAULT_CHAPTER_MAP: "OrderedDict[str, list[str]]" = OrderedDict(
    [
        ("42", ["Landlord", "Tenant", "Eviction", "Rent", "Lease", "Repairs", "Security Deposit", "Ejectment"]),
        ("50", ["Divorce", "Custody", "Alimony", "Child Support", "Separation"]),
        ("95", ["Wage", "Paycheck", "Overtime", "Employer", "Fired"]),
        ("20", ["Traffic", "Speeding", "License", "DWI", "Vehicle", "Citation"]),
        ("15A", ["Arrest", "Warrant", "Bail", "Criminal", "Probation"]),
        ("75", ["Debt Collector", "Consumer", "Warranty", "Scam", "Unfair Trade"]),
        ("1A", ["Summons", "Complaint", "Default Judgment", "Lawsuit", "Served"]),
        ("7A", ["Small Claims", "Magistrate"]),
        ("28A", ["Probate", "Estate", "Inheritance", "Executor"]),
    ]
)


class ChapterClassifier(ABC):
    """Anything that can label free text with a statute chapter."""

    @abstractmethod
    def detect(self, text: str) -> Optional[str]:
        """Return a chapter label, or None when the text has no affinity."""
        ...


class KeywordChapterDetector(ChapterClassifier):
    """
    Substring keyword matcher.

    Each keyword is lower-cased and split on whitespace; every resulting
    word is matched on its own, so "Security Deposit" fires on either
    "security" or "deposit".
    """

    def __init__(self, chapter_map: Optional[Mapping[str, Sequence[str]]] = None) -> None:
        chapter_map = DEFAULT_CHAPTER_MAP if chapter_map is None else chapter_map
        self._words: list[tuple[str, tuple[str, ...]]] = [
            (label, tuple(word for keyword in keywords for word in keyword.lower().split()))
            for label, keywords in chapter_map.items()
        ]

    @property
    def chapters(self) -> list[str]:
        return [label for label, _ in self._words]

    def detect(self, text: str) -> Optional[str]:
        lowered = text.lower()
        for label, words in self._words:
            if any(word in lowered for word in words):
                return label
        return None
