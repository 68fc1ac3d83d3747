"""
事件处理器
订阅领域事件：占用变化时触发发件箱投递
"""
import logging
from typing import Optional

from hotel_occupancy.services.event_bus import event_bus, Event, EventBus
from hotel_occupancy.services.outbox import OutboxDispatcher, outbox_dispatcher
from hotel_occupancy.models.events import EventType

logger = logging.getLogger(__name__)


class EventHandlers:
    """
    事件处理器集合

    支持注入投递器以便于测试
    """

    def __init__(self, dispatcher: Optional[OutboxDispatcher] = None):
        self._dispatcher = dispatcher or outbox_dispatcher
        self._registered = False

    def handle_occupancy_changed(self, event: Event) -> None:
        """占用变化：后台投递发件箱，不阻塞请求"""
        logger.info(
            f"Occupancy changed: room {event.data.get('room_id')} "
            f"{event.data.get('kind')} (outbox {event.data.get('outbox_event_id')})"
        )
        self._dispatcher.dispatch_in_background()

    def handle_room_status_changed(self, event: Event) -> None:
        """房态变更审计日志"""
        data = event.data
        logger.info(
            f"Room {data.get('room_number')} status {data.get('old_status')} -> "
            f"{data.get('new_status')} by {data.get('changed_by')} ({data.get('reason')})"
        )

    def register(self, bus: Optional[EventBus] = None) -> None:
        """注册所有事件处理器"""
        if self._registered:
            return
        bus = bus or event_bus
        bus.subscribe(EventType.OCCUPANCY_CHANGED, self.handle_occupancy_changed)
        bus.subscribe(EventType.ROOM_STATUS_CHANGED, self.handle_room_status_changed)
        self._registered = True


_handlers = EventHandlers()


def register_event_handlers() -> None:
    """注册事件处理器（应用启动时调用）"""
    _handlers.register()
