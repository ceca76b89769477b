"""
Tests for the history ledger
"""
import json

import pytest

from portrait_studio.services.history import HistoryService, history_key
from portrait_studio.services.records import Failed, Pending, Succeeded


async def _append(history: HistoryService, user_id: str = "user_1", style: str = "id", lang: str = "en"):
    return await history.append(user_id, style=style, original_url="data:image/jpeg;base64,AAAA", lang=lang)


class TestHistoryService:
    """History list operations"""

    @pytest.mark.asyncio
    async def test_list_empty_for_new_user(self, history):
        assert await history.list("nobody") == []

    @pytest.mark.asyncio
    async def test_append_starts_pending_and_lists_first(self, history):
        await _append(history, style="festival")
        record = await _append(history, style="memorial")

        records = await history.list("user_1")

        assert records[0].id == record.id
        assert [r.type for r in records] == ["memorial", "festival"]
        assert records[0].outcome == Pending()
        assert records[0].status == "failed"
        assert records[0].generated_url is None
        assert records[0].error is None

    @pytest.mark.asyncio
    async def test_record_id_format(self, history):
        record = await _append(history)

        prefix, suffix = record.id.split("-")
        assert int(prefix) == record.timestamp
        assert len(suffix) == 6

    @pytest.mark.asyncio
    async def test_update_changes_only_targeted_fields(self, history):
        record = await _append(history, style="festival", lang="zh")

        updated = await history.update(
            "user_1", record.id, {"status": "success", "generatedUrl": "https://cdn.test/files/out.png"}
        )

        stored = await history.get("user_1", record.id)
        assert updated is True
        assert stored.outcome == Succeeded("https://cdn.test/files/out.png")
        assert stored.timestamp == record.timestamp
        assert stored.type == "festival"
        assert stored.lang == "zh"
        assert stored.original_url == record.original_url

    @pytest.mark.asyncio
    async def test_update_ignores_identity_fields(self, history):
        record = await _append(history)

        await history.update("user_1", record.id, {"id": "other", "timestamp": 1, "error": "boom"})

        stored = await history.get("user_1", record.id)
        assert stored.timestamp == record.timestamp
        assert stored.outcome == Failed("boom")

    @pytest.mark.asyncio
    async def test_update_rejects_success_without_image(self, history):
        record = await _append(history)

        with pytest.raises(ValueError):
            await history.update("user_1", record.id, {"status": "success"})

        assert (await history.get("user_1", record.id)).outcome == Pending()

    @pytest.mark.asyncio
    async def test_update_missing_id_returns_false(self, history):
        await _append(history)

        assert await history.update("user_1", "missing", {"error": "x"}) is False

    @pytest.mark.asyncio
    async def test_mark_failed_then_success(self, history):
        record = await _append(history)

        await history.mark_failed("user_1", record.id, "Provider returned HTTP 500")
        assert (await history.get("user_1", record.id)).error == "Provider returned HTTP 500"

        await history.mark_success("user_1", record.id, "https://cdn.test/files/a.png")
        stored = await history.get("user_1", record.id)
        assert stored.status == "success"
        assert stored.error is None

    @pytest.mark.asyncio
    async def test_delete(self, history):
        first = await _append(history)
        second = await _append(history)

        assert await history.delete("user_1", first.id) is True

        assert [r.id for r in await history.list("user_1")] == [second.id]

    @pytest.mark.asyncio
    async def test_delete_missing_leaves_list_untouched(self, history, store):
        await _append(history)
        writes_before = len(store.puts)

        assert await history.delete("user_1", "missing") is False

        assert len(await history.list("user_1")) == 1
        assert len(store.puts) == writes_before

    @pytest.mark.asyncio
    async def test_round_trip_field_equality(self, history, store):
        record = await _append(history, style="memorial", lang="zh")
        await history.mark_success("user_1", record.id, "https://cdn.test/files/m.png")

        raw = json.loads(await store.get(history_key("user_1")))
        listed = (await history.list("user_1"))[0]

        assert listed.to_dict() == raw["records"][0]
        assert listed.id == record.id
        assert listed.timestamp == record.timestamp
        assert listed.generated_url == "https://cdn.test/files/m.png"

    @pytest.mark.asyncio
    async def test_users_are_isolated(self, history):
        await _append(history, user_id="user_1")

        assert await history.list("user_2") == []
