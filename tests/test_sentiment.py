from datetime import datetime, timezone

from supportdesk.services.sentiment_service import SentimentKeywordClassifier, count_keyword_hits


class TestCountKeywordHits:
    def test_counts_distinct_keywords_case_insensitive(self):
        assert count_keyword_hits("I am ANGRY and Frustrated, so angry", {"angry", "frustrated", "upset"}) == 2

    def test_empty_text(self):
        assert count_keyword_hits("", {"angry"}) == 0
        assert count_keyword_hits(None, {"angry"}) == 0


class TestSentimentKeywordClassifier:
    def test_positive(self, keyword_lists):
        result = SentimentKeywordClassifier(keyword_lists).classify("Great service, thank you!")
        assert result.sentiment == "positive"
        assert result.score == 0.7

    def test_negative(self, keyword_lists):
        result = SentimentKeywordClassifier(keyword_lists).classify("This is bad, I hate it")
        assert result.sentiment == "negative"
        assert result.score == 0.3

    def test_neutral_when_balanced(self, keyword_lists):
        result = SentimentKeywordClassifier(keyword_lists).classify("good but bad")
        assert result.sentiment == "neutral"
        assert result.score == 0.5

    def test_neutral_without_keywords(self, keyword_lists):
        result = SentimentKeywordClassifier(keyword_lists).classify("where is my parcel")
        assert result.sentiment == "neutral"
        assert result.positive_hits == 0
        assert result.negative_hits == 0

    def test_score_is_clamped(self):
        lists = {"negative_sentiment": frozenset(f"w{i}" for i in range(8)), "positive_sentiment": frozenset()}
        text = " ".join(f"w{i}" for i in range(8))
        assert SentimentKeywordClassifier(lists).classify(text).score == 0.0

    def test_snapshot_shape(self, keyword_lists):
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        snapshot = SentimentKeywordClassifier(keyword_lists).classify("great").as_snapshot(now)
        assert snapshot["overall_sentiment"] == "positive"
        assert snapshot["confidence"] == 0.8
        assert snapshot["analysis_timestamp"] == now.isoformat()
