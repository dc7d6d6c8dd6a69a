"""
事件总线单元测试
"""

import pytest
import asyncio

from core.events import EventBus, Event, Events


class TestEvent:
    """事件数据类测试"""
    
    def test_event_creation(self):
        """测试事件创建"""
        event = Event(
            name="test.event",
            source="test_module"
        )
        
        assert event.name == "test.event"
        assert event.source == "test_module"
        assert event.data == {}
        assert event.timestamp is not None
    
    def test_event_with_data(self):
        """测试带数据的事件"""
        data = {"key": "value", "count": 42}
        event = Event(
            name="test.event",
            source="test_module",
            data=data
        )
        
        assert event.data == data
        assert event.data["key"] == "value"
        assert event.data["count"] == 42


class TestEventBus:
    """事件总线测试"""
    
    def test_eventbus_creation(self):
        """测试事件总线创建"""
        bus = EventBus()
        
        assert bus._handlers == {}
        assert bus._history == []
    
    def test_subscribe(self):
        """测试事件订阅"""
        bus = EventBus()
        
        def handler(event):
            pass
        
        bus.subscribe("test.event", handler)
        
        assert "test.event" in bus._handlers
        assert handler in bus._handlers["test.event"]
    
    def test_unsubscribe(self):
        """测试取消订阅"""
        bus = EventBus()
        
        def handler(event):
            pass
        
        bus.subscribe("test.event", handler)
        bus.unsubscribe("test.event", handler)
        
        assert handler not in bus._handlers.get("test.event", [])
    
    @pytest.mark.asyncio
    async def test_publish(self):
        """测试事件发布"""
        bus = EventBus()
        received_events = []
        
        def handler(event):
            received_events.append(event)
        
        bus.subscribe("test.event", handler)
        
        event = Event(name="test.event", source="test")
        await bus.publish(event)
        
        assert len(received_events) == 1
        assert received_events[0].name == "test.event"
    
    @pytest.mark.asyncio
    async def test_publish_async_handler(self):
        """测试异步处理器"""
        bus = EventBus()
        received_events = []
        
        async def async_handler(event):
            await asyncio.sleep(0.01)
            received_events.append(event)
        
        bus.subscribe("test.event", async_handler)
        
        event = Event(name="test.event", source="test")
        await bus.publish(event)
        
        assert len(received_events) == 1
    
    @pytest.mark.asyncio
    async def test_event_history(self):
        """测试事件历史记录"""
        bus = EventBus()
        
        event1 = Event(name="event1", source="test")
        event2 = Event(name="event2", source="test")
        
        await bus.publish(event1)
        await bus.publish(event2)
        
        history = bus.get_history()
        
        assert len(history) == 2
    
    @pytest.mark.asyncio
    async def test_handler_error_does_not_stop_others(self):
        """单个处理器出错不影响其他处理器"""
        bus = EventBus()
        received = []

        def broken(event):
            raise RuntimeError("boom")

        bus.subscribe("test.event", broken)
        bus.subscribe("test.event", received.append)
        await bus.publish(Event(name="test.event", source="test"))

        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_emit_schedules_publish(self):
        """emit 在事件循环中异步发布"""
        bus = EventBus()
        received = []
        bus.subscribe("test.event", received.append)

        bus.emit("test.event", "test", {"n": 1})
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        assert received[0].data == {"n": 1}

    def test_emit_without_loop_records_history(self):
        bus = EventBus()
        bus.emit("test.event", "test")
        assert bus.get_history("test.event")[0].source == "test"

    @pytest.mark.asyncio
    async def test_event_history_filter(self):
        """测试事件历史过滤"""
        bus = EventBus()
        
        await bus.publish(Event(name="type_a", source="test"))
        await bus.publish(Event(name="type_b", source="test"))
        await bus.publish(Event(name="type_a", source="test"))
        
        history_a = bus.get_history(event_name="type_a")
        
        assert len(history_a) == 2


class TestEventNames:
    """预定义事件名称测试"""
    
    def test_system_events(self):
        """测试系统事件名称"""
        assert Events.SYSTEM_STARTUP == "system.startup"
        assert Events.SYSTEM_SHUTDOWN == "system.shutdown"
    
    def test_sync_events(self):
        """离线同步与备份事件名称"""
        assert Events.SYNC_DELIVERED == "sync.delivered"
        assert Events.SYNC_DEAD_LETTER == "sync.dead_letter"
        assert Events.BACKUP_COMPLETED == "backup.completed"


class TestDeadLetterHandler:
    """失败区事件处理器"""

    @pytest.mark.asyncio
    async def test_dead_letter_is_logged(self, caplog):
        from core.event_handlers import on_sync_dead_letter
        event = Event(
            name=Events.SYNC_DEAD_LETTER,
            source="sync",
            data={"id": "abc", "collection": "respostas", "action": "create", "attempts": 5, "reason": "max_attempts"}
        )
        with caplog.at_level("WARNING", logger="core.event_handlers"):
            await on_sync_dead_letter(event)
        assert "respostas.create" in caplog.text
        assert "max_attempts" in caplog.text

    def test_register_event_handlers(self):
        from core.event_handlers import register_event_handlers, on_sync_dead_letter
        from core.events import event_bus
        register_event_handlers()
        assert on_sync_dead_letter in event_bus._handlers[Events.SYNC_DEAD_LETTER]
