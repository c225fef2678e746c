"""Keyword-based sentiment tagging for inbound messages."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional

from supportdesk.config import KeywordLists, get_keyword_lists

POSITIVE_LIST = "positive_sentiment"
NEGATIVE_LIST = "negative_sentiment"

NEUTRAL_SCORE = 0.5
SCORE_STEP = 0.1
SNAPSHOT_CONFIDENCE = 0.8


@dataclass(frozen=True)
class SentimentResult:
    sentiment: str  # positive, neutral, negative
    score: float
    positive_hits: int
    negative_hits: int

    def as_snapshot(self, now: Optional[datetime] = None) -> dict:
        """Snapshot stored on sessions and message metadata."""
        now = now or datetime.now(timezone.utc)
        return {
            "overall_sentiment": self.sentiment,
            "sentiment_score": self.score,
            "emotion_detected": self.sentiment,
            "confidence": SNAPSHOT_CONFIDENCE,
            "analysis_timestamp": now.isoformat(),
        }


def count_keyword_hits(text: str, keywords: Iterable[str]) -> int:
    """Number of distinct keywords contained in text (case-insensitive)."""
    lowered = (text or "").lower()
    if not lowered:
        return 0
    return sum(1 for keyword in keywords if keyword and keyword in lowered)


class SentimentKeywordClassifier:
    def __init__(self, keyword_lists: Optional[KeywordLists] = None):
        lists = keyword_lists if keyword_lists is not None else get_keyword_lists()
        self.positive_keywords = lists.get(POSITIVE_LIST, frozenset())
        self.negative_keywords = lists.get(NEGATIVE_LIST, frozenset())

    def classify(self, text: str) -> SentimentResult:
        positive = count_keyword_hits(text, self.positive_keywords)
        negative = count_keyword_hits(text, self.negative_keywords)

        if positive > negative:
            return SentimentResult("positive", round(min(1.0, NEUTRAL_SCORE + positive * SCORE_STEP), 2), positive, negative)
        if negative > positive:
            return SentimentResult("negative", round(max(0.0, NEUTRAL_SCORE - negative * SCORE_STEP), 2), positive, negative)
        return SentimentResult("neutral", NEUTRAL_SCORE, positive, negative)
