import pytest

from supportdesk.config import get_keyword_lists, load_keyword_lists


class TestLoadKeywordLists:
    def test_default_lists_present(self):
        lists = load_keyword_lists()
        for name in ("escalation", "negative_sentiment_escalation", "positive_sentiment", "negative_sentiment"):
            assert name in lists
            assert isinstance(lists[name], frozenset)
        assert "refund" in lists["escalation"]

    def test_custom_file_is_lowercased(self, tmp_path):
        path = tmp_path / "keywords.yaml"
        path.write_text("escalation:\n  - Speak To Human\n  - ' '\n", encoding="utf-8")
        lists = load_keyword_lists(path)
        assert lists["escalation"] == frozenset({"speak to human"})

    def test_rejects_non_list(self, tmp_path):
        path = tmp_path / "keywords.yaml"
        path.write_text("escalation: refund\n", encoding="utf-8")
        with pytest.raises(ValueError):
            load_keyword_lists(path)

    def test_rejects_non_mapping(self, tmp_path):
        path = tmp_path / "keywords.yaml"
        path.write_text("- refund\n", encoding="utf-8")
        with pytest.raises(ValueError):
            load_keyword_lists(path)

    def test_cached_lists(self):
        assert get_keyword_lists() is get_keyword_lists()
