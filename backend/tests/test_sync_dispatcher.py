"""
同步调度器测试
使用 httpx.MockTransport 模拟权威服务器
"""

import json

import httpx
import pytest
from unittest.mock import AsyncMock

from core.connectivity import ConnectivityMonitor
from core.events import event_bus, Events
from core.security import decode_token, ROLE_SYSTEM
from utils.sync_dispatcher import SyncDispatcher, SyncOutcome
from utils.sync_queue import item_filename, DEAD_LETTER_DIR

API_BASE = "http://server.test"


class FakeServer:
    """记录请求并按预设状态码响应"""

    def __init__(self, status_code: int = 200, fail_ids=None, error: Exception = None):
        self.status_code = status_code
        self.fail_ids = set(fail_ids or [])
        self.error = error
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        body = json.loads(request.content)
        if body.get("syncId") in self.fail_ids:
            return httpx.Response(500, json={"message": "boom"})
        return httpx.Response(self.status_code, json={"code": 0})

    @property
    def calls(self) -> int:
        return len(self.requests)


def make_dispatcher(store, server: FakeServer, online: bool = True) -> SyncDispatcher:
    monitor = ConnectivityMonitor(base_url=API_BASE)
    monitor.online = online
    return SyncDispatcher(
        store,
        monitor,
        api_base_url=API_BASE,
        max_attempts=5,
        timeout=1.0,
        transport=httpx.MockTransport(server)
    )


def write_item(queue_dir, sync_id: str, collection: str = "respostas", attempts: int = 0, timestamp: int = 1000):
    path = queue_dir / item_filename(sync_id)
    path.write_text(json.dumps({
        "id": sync_id,
        "collection": collection,
        "action": "create",
        "payload": {"exam_id": 1, "student_id": 100, "answers": ["A"]},
        "timestamp": timestamp,
        "attempts": attempts,
        "status": "pending"
    }, indent=2), encoding="utf-8")
    return path


class TestDispatcherDelivery:
    """投递成功"""

    @pytest.mark.asyncio
    async def test_successful_delivery_removes_item(self, queue_store, queue_dir):
        server = FakeServer(200)
        dispatcher = make_dispatcher(queue_store, server)
        sync_id = await queue_store.enqueue("respostas", "create", {"exam_id": 1, "answers": ["B"]})

        report = await dispatcher.drain()

        assert report.outcomes == {"delivered": 1}
        assert not (queue_dir / item_filename(sync_id)).exists()
        assert server.calls == 1

    @pytest.mark.asyncio
    async def test_request_shape(self, queue_store):
        server = FakeServer(200)
        dispatcher = make_dispatcher(queue_store, server)
        sync_id = await queue_store.enqueue("respostas", "create", {"exam_id": 7})

        await dispatcher.drain()

        request = server.requests[0]
        assert request.method == "POST"
        assert str(request.url) == f"{API_BASE}/api/sync/respostas"
        assert json.loads(request.content) == {"action": "create", "data": {"exam_id": 7}, "syncId": sync_id}

        token = request.headers["Authorization"].split(" ", 1)[1]
        assert decode_token(token).role == ROLE_SYSTEM

    @pytest.mark.asyncio
    async def test_items_processed_in_timestamp_order(self, queue_store, queue_dir):
        server = FakeServer(200)
        dispatcher = make_dispatcher(queue_store, server)
        write_item(queue_dir, "bbbbbbbbbbbbbbbb", timestamp=3000)
        write_item(queue_dir, "aaaaaaaaaaaaaaaa", timestamp=2000)
        write_item(queue_dir, "cccccccccccccccc", timestamp=1000)

        await dispatcher.drain()

        order = [json.loads(r.content)["syncId"] for r in server.requests]
        assert order == ["cccccccccccccccc", "aaaaaaaaaaaaaaaa", "bbbbbbbbbbbbbbbb"]

    @pytest.mark.asyncio
    async def test_failure_is_isolated_to_one_item(self, queue_store, queue_dir):
        server = FakeServer(200, fail_ids=["aaaaaaaaaaaaaaaa"])
        dispatcher = make_dispatcher(queue_store, server)
        failing = write_item(queue_dir, "aaaaaaaaaaaaaaaa", timestamp=1000)
        passing = write_item(queue_dir, "bbbbbbbbbbbbbbbb", timestamp=2000)

        report = await dispatcher.drain()

        assert report.outcomes == {"retry": 1, "delivered": 1}
        assert failing.exists()
        assert not passing.exists()

    @pytest.mark.asyncio
    async def test_empty_queue(self, queue_store):
        server = FakeServer(200)
        report = await make_dispatcher(queue_store, server).drain()
        assert report.processed == 0
        assert server.calls == 0


class TestDispatcherRetry:
    """重试与失败区"""

    @pytest.mark.asyncio
    async def test_failed_attempt_is_recorded(self, queue_store, queue_dir):
        server = FakeServer(503)
        dispatcher = make_dispatcher(queue_store, server)
        sync_id = await queue_store.enqueue("respostas", "create", {})

        report = await dispatcher.drain()

        assert report.outcomes == {"retry": 1}
        item = await queue_store.load(queue_dir / item_filename(sync_id))
        assert item.attempts == 1
        assert item.last_attempt is not None

    @pytest.mark.asyncio
    async def test_network_error_counts_as_failure(self, queue_store, queue_dir):
        server = FakeServer(error=httpx.ConnectError("refused"))
        dispatcher = make_dispatcher(queue_store, server)
        sync_id = await queue_store.enqueue("respostas", "create", {})

        report = await dispatcher.drain()

        assert report.outcomes == {"retry": 1}
        assert (await queue_store.load(queue_dir / item_filename(sync_id))).attempts == 1

    @pytest.mark.asyncio
    async def test_retry_ceiling_moves_item_to_dead_letter(self, queue_store, queue_dir):
        server = FakeServer(500)
        dispatcher = make_dispatcher(queue_store, server)
        sync_id = await queue_store.enqueue("respostas", "create", {})
        pending = queue_dir / item_filename(sync_id)
        dead = queue_dir / DEAD_LETTER_DIR / item_filename(sync_id)

        for _ in range(4):
            await dispatcher.drain()
        assert pending.exists()
        assert (await queue_store.load(pending)).attempts == 4

        report = await dispatcher.drain()

        assert report.outcomes == {"dead_letter": 1}
        assert not pending.exists()
        assert dead.exists()
        assert json.loads(dead.read_text(encoding="utf-8"))["attempts"] == 5
        assert server.calls == 5

        # 失败区中的项目不再重试
        await dispatcher.drain()
        assert server.calls == 5

    @pytest.mark.asyncio
    async def test_item_loaded_at_ceiling_is_not_sent(self, queue_store, queue_dir):
        server = FakeServer(200)
        dispatcher = make_dispatcher(queue_store, server)
        write_item(queue_dir, "dddddddddddddddd", attempts=5)

        report = await dispatcher.drain()

        assert report.outcomes == {"dead_letter": 1}
        assert server.calls == 0
        assert (queue_dir / DEAD_LETTER_DIR / item_filename("dddddddddddddddd")).exists()

    @pytest.mark.asyncio
    async def test_corrupt_file_is_dead_lettered(self, queue_store, queue_dir):
        server = FakeServer(200)
        dispatcher = make_dispatcher(queue_store, server)
        (queue_dir / "sync-broken.json").write_text("{oops", encoding="utf-8")

        report = await dispatcher.drain()

        assert report.outcomes == {"invalid": 1}
        assert (queue_dir / DEAD_LETTER_DIR / "sync-broken.json").exists()
        assert server.calls == 0

    @pytest.mark.asyncio
    async def test_dead_letter_notifies_callbacks_and_event_bus(self, queue_store, queue_dir):
        server = FakeServer(200)
        dispatcher = make_dispatcher(queue_store, server)
        callback = AsyncMock()
        dispatcher.on_dead_letter(callback)
        write_item(queue_dir, "eeeeeeeeeeeeeeee", attempts=7)

        await dispatcher.drain()

        callback.assert_awaited_once()
        item, reason = callback.await_args.args
        assert item.id == "eeeeeeeeeeeeeeee"
        assert reason == "max_attempts"

        history = event_bus.get_history(Events.SYNC_DEAD_LETTER)
        assert history[-1].data["id"] == "eeeeeeeeeeeeeeee"
        assert history[-1].data["reason"] == "max_attempts"

    @pytest.mark.asyncio
    async def test_callback_error_does_not_break_drain(self, queue_store, queue_dir):
        server = FakeServer(200)
        dispatcher = make_dispatcher(queue_store, server)
        dispatcher.on_dead_letter(AsyncMock(side_effect=RuntimeError("notify failed")))
        write_item(queue_dir, "ffffffffffffffff", attempts=5, timestamp=1000)
        ok = write_item(queue_dir, "1111111111111111", timestamp=2000)

        report = await dispatcher.drain()

        assert report.outcomes == {"dead_letter": 1, "delivered": 1}
        assert not ok.exists()


class TestDispatcherGuards:
    """离线、并发与不支持的集合"""

    @pytest.mark.asyncio
    async def test_offline_drain_makes_no_calls(self, queue_store, queue_dir):
        server = FakeServer(200)
        dispatcher = make_dispatcher(queue_store, server, online=False)
        path = write_item(queue_dir, "aaaaaaaaaaaaaaaa")
        before = path.read_text(encoding="utf-8")

        report = await dispatcher.drain()

        assert report.skipped is True
        assert report.reason == "offline"
        assert server.calls == 0
        assert path.read_text(encoding="utf-8") == before

    @pytest.mark.asyncio
    async def test_drain_resumes_when_back_online(self, queue_store, queue_dir):
        server = FakeServer(200)
        dispatcher = make_dispatcher(queue_store, server, online=False)
        path = write_item(queue_dir, "aaaaaaaaaaaaaaaa")

        await dispatcher.drain()
        assert path.exists()

        dispatcher.monitor.set_online(True)
        await dispatcher.drain()
        assert not path.exists()

    @pytest.mark.asyncio
    async def test_concurrent_drain_is_skipped(self, queue_store, queue_dir):
        server = FakeServer(200)
        dispatcher = make_dispatcher(queue_store, server)
        write_item(queue_dir, "aaaaaaaaaaaaaaaa")

        async with dispatcher._lock:
            report = await dispatcher.drain()

        assert report.skipped is True
        assert report.reason == "busy"
        assert server.calls == 0

    @pytest.mark.asyncio
    async def test_unsupported_collection_left_untouched(self, queue_store, queue_dir):
        server = FakeServer(200)
        dispatcher = make_dispatcher(queue_store, server)
        path = write_item(queue_dir, "aaaaaaaaaaaaaaaa", collection="turmas")
        before = path.read_text(encoding="utf-8")

        report = await dispatcher.drain()

        assert report.outcomes == {SyncOutcome.UNSUPPORTED.value: 1}
        assert server.calls == 0
        assert path.read_text(encoding="utf-8") == before
        assert not (queue_dir / DEAD_LETTER_DIR / path.name).exists()

    def test_report_to_dict(self):
        from utils.sync_dispatcher import DrainReport
        report = DrainReport()
        report.record(SyncOutcome.DELIVERED)
        report.record(SyncOutcome.DELIVERED)
        report.record(SyncOutcome.RETRY)
        assert report.to_dict() == {
            "skipped": False,
            "reason": None,
            "processed": 3,
            "outcomes": {"delivered": 2, "retry": 1}
        }
