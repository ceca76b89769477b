"""
Tests for the persisted record shapes
"""
import pytest

from portrait_studio.services.presets import get_preset, normalize_lang
from portrait_studio.services.records import (
    Failed,
    HistoryRecord,
    Pending,
    QuotaRecord,
    Succeeded,
    outcome_from_fields,
)


class TestHistoryRecord:
    def test_pending_persists_as_failed_without_error(self):
        record = HistoryRecord(id="1-abc", timestamp=1, type="id", original_url="o", lang="en")

        data = record.to_dict()

        assert data["status"] == "failed"
        assert data["generatedUrl"] is None
        assert "error" not in data
        assert HistoryRecord.from_dict(data).outcome == Pending()

    def test_failed_carries_error(self):
        record = HistoryRecord(id="1", timestamp=1, type="id", original_url="o", lang="en", outcome=Failed("boom"))

        assert record.to_dict()["error"] == "boom"
        assert HistoryRecord.from_dict(record.to_dict()) == record

    def test_success_drops_stale_error(self):
        data = {"id": "1", "status": "success", "generatedUrl": "https://x/y.png", "error": "old"}

        record = HistoryRecord.from_dict(data)

        assert record.outcome == Succeeded("https://x/y.png")
        assert "error" not in record.to_dict()

    def test_success_without_url(self):
        assert isinstance(outcome_from_fields({"status": "success"}), Failed)
        with pytest.raises(ValueError):
            outcome_from_fields({"status": "success"}, strict=True)

    def test_unknown_status_is_strictly_rejected(self):
        with pytest.raises(ValueError):
            outcome_from_fields({"status": "processing"}, strict=True)


class TestQuotaRecord:
    def test_from_dict_clamps_and_defaults(self):
        record = QuotaRecord.from_dict({"remainingQuota": -3, "totalPurchased": "4"}, "user_1")

        assert record.user_id == "user_1"
        assert record.remaining_quota == 0
        assert record.total_purchased == 4
        assert record.total_generated == 0


class TestPresets:
    @pytest.mark.parametrize("code,expected", [(None, "zh"), ("zh-TW", "zh"), ("EN-us", "en"), ("fr", "en")])
    def test_normalize_lang(self, code, expected):
        assert normalize_lang(code) == expected

    def test_prompt_selection(self):
        assert "Chinese New Year" in get_preset("festival").prompt_for("zh")
        assert "Chinese New Year" not in get_preset("festival").prompt_for("en")
        assert get_preset(None).key == "id"
        assert get_preset("MEMORIAL").key == "memorial"
