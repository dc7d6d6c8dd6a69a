"""
同步队列存储测试
"""

import json
import os

import pytest
from unittest.mock import patch

from core.errors import UnsupportedSyncError
from utils.sync_queue import SyncQueueStore, item_filename, DEAD_LETTER_DIR


class TestSyncQueueEnqueue:
    """入队"""

    @pytest.mark.asyncio
    async def test_enqueue_writes_pending_file(self, queue_store, queue_dir):
        sync_id = await queue_store.enqueue("respostas", "create", {"exam_id": 1, "answers": ["A"]})

        assert len(sync_id) == 16
        path = queue_dir / item_filename(sync_id)
        assert path.is_file()

        content = json.loads(path.read_text(encoding="utf-8"))
        assert content["id"] == sync_id
        assert content["collection"] == "respostas"
        assert content["action"] == "create"
        assert content["payload"] == {"exam_id": 1, "answers": ["A"]}
        assert content["attempts"] == 0
        assert content["status"] == "pending"
        assert isinstance(content["timestamp"], int)
        assert "lastAttempt" not in content

    @pytest.mark.asyncio
    async def test_enqueue_is_pretty_printed(self, queue_store, queue_dir):
        sync_id = await queue_store.enqueue("respostas", "create", {})
        text = (queue_dir / item_filename(sync_id)).read_text(encoding="utf-8")
        assert "\n  " in text

    @pytest.mark.asyncio
    async def test_enqueue_generates_unique_ids(self, queue_store):
        ids = {await queue_store.enqueue("respostas", "create", {}) for _ in range(20)}
        assert len(ids) == 20

    @pytest.mark.asyncio
    async def test_enqueue_rejects_unsupported_collection(self, queue_store, queue_dir):
        with pytest.raises(UnsupportedSyncError) as exc_info:
            await queue_store.enqueue("turmas", "create", {})
        assert exc_info.value.collection == "turmas"
        assert os.listdir(queue_dir) == []

    @pytest.mark.asyncio
    async def test_enqueue_rejects_unknown_action(self, queue_store, queue_dir):
        with pytest.raises(UnsupportedSyncError):
            await queue_store.enqueue("respostas", "upsert", {})
        assert os.listdir(queue_dir) == []

    @pytest.mark.asyncio
    async def test_enqueue_propagates_write_errors(self, queue_store):
        with patch.object(SyncQueueStore, "save", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                await queue_store.enqueue("respostas", "create", {})


class TestSyncQueueListing:
    """列出待同步项"""

    @pytest.mark.asyncio
    async def test_list_pending_ignores_other_files_and_dead_letter(self, queue_store, queue_dir):
        sync_id = await queue_store.enqueue("respostas", "create", {})
        (queue_dir / "notes.txt").write_text("x")
        (queue_dir / "sync-temp.tmp").write_text("x")
        dead = queue_dir / DEAD_LETTER_DIR
        dead.mkdir()
        (dead / "sync-old.json").write_text("{}")

        paths = await queue_store.list_pending()
        assert [p.name for p in paths] == [item_filename(sync_id)]

    @pytest.mark.asyncio
    async def test_list_pending_orders_by_timestamp(self, queue_store, queue_dir):
        ids = []
        for ts in (3000, 1000, 2000):
            sync_id = await queue_store.enqueue("respostas", "create", {"ts": ts})
            path = queue_dir / item_filename(sync_id)
            item = await queue_store.load(path)
            item.timestamp = ts
            await queue_store.save(path, item)
            ids.append((ts, sync_id))

        paths = await queue_store.list_pending()
        expected = [item_filename(sync_id) for _, sync_id in sorted(ids)]
        assert [p.name for p in paths] == expected

    @pytest.mark.asyncio
    async def test_list_pending_puts_corrupt_files_last(self, queue_store, queue_dir):
        (queue_dir / "sync-broken.json").write_text("{not json")
        sync_id = await queue_store.enqueue("respostas", "create", {})

        paths = await queue_store.list_pending()
        assert [p.name for p in paths] == [item_filename(sync_id), "sync-broken.json"]

    @pytest.mark.asyncio
    async def test_list_pending_missing_directory(self, tmp_path):
        store = SyncQueueStore(tmp_path / "queue")
        (tmp_path / "queue").rmdir()
        assert await store.list_pending() == []


class TestSyncQueueStatus:
    """队列状态"""

    @pytest.mark.asyncio
    async def test_status_counts_pending(self, queue_store):
        await queue_store.enqueue("respostas", "create", {})
        await queue_store.enqueue("respostas", "create", {})

        status = queue_store.status(online=True)
        assert status["pending"] == 2
        assert status["online"] is True
        assert status["lastCheck"].endswith("Z")
        assert "error" not in status

    def test_status_missing_directory(self, tmp_path):
        store = SyncQueueStore(tmp_path / "queue")
        (tmp_path / "queue").rmdir()
        assert store.status(online=False)["pending"] == 0

    def test_status_filesystem_error_never_raises(self, queue_store):
        with patch("utils.sync_queue.os.listdir", side_effect=PermissionError("denied")):
            status = queue_store.status(online=True)
        assert status["pending"] == 0
        assert status["online"] is False
        assert "denied" in status["error"]


class TestSyncQueueDeadLetter:
    """失败区"""

    @pytest.mark.asyncio
    async def test_move_to_dead_letter_keeps_name_and_state(self, queue_store, queue_dir):
        sync_id = await queue_store.enqueue("respostas", "create", {"exam_id": 9})
        path = queue_dir / item_filename(sync_id)
        item = await queue_store.load(path)
        item.attempts = 5
        await queue_store.save(path, item)

        target = queue_store.move_to_dead_letter(path)

        assert not path.exists()
        assert target == queue_dir / DEAD_LETTER_DIR / item_filename(sync_id)
        assert json.loads(target.read_text(encoding="utf-8"))["attempts"] == 5
        assert await queue_store.list_pending() == []

    @pytest.mark.asyncio
    async def test_list_and_requeue_dead_letter(self, queue_store, queue_dir):
        sync_id = await queue_store.enqueue("respostas", "create", {})
        path = queue_dir / item_filename(sync_id)
        item = await queue_store.load(path)
        item.attempts = 5
        item.last_attempt = 123
        await queue_store.save(path, item)
        queue_store.move_to_dead_letter(path)

        failed = await queue_store.list_dead_letter()
        assert [f["id"] for f in failed] == [sync_id]

        assert await queue_store.requeue_dead_letter(sync_id) is True
        requeued = await queue_store.load(path)
        assert requeued.attempts == 0
        assert requeued.last_attempt is None
        assert await queue_store.list_dead_letter() == []

    @pytest.mark.asyncio
    async def test_requeue_unknown_id(self, queue_store):
        assert await queue_store.requeue_dead_letter("0000000000000000") is False
