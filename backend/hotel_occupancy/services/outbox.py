"""
事务性发件箱
入住/退房在同一事务中写入 OutboxEvent，提交后由 OutboxDispatcher 投递给库存系统

投递失败只记录日志与重试次数，不会回滚或阻塞已提交的业务操作
"""
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Callable, List, Optional
from sqlalchemy.orm import Session
from hotel_occupancy.config import settings
from hotel_occupancy.database import SessionLocal
from hotel_occupancy.models.ontology import OutboxEvent, OutboxEventType
from hotel_occupancy.services.notifier import OccupancyNotifier, build_notifier

logger = logging.getLogger(__name__)


def enqueue_occupancy_event(db: Session, kind: OutboxEventType,
                            room_id: int, guest_id: int) -> OutboxEvent:
    """在当前事务中追加一条出站事件（不提交）"""
    event = OutboxEvent(
        event_type=kind,
        payload=json.dumps({"roomId": room_id, "guestId": guest_id, "kind": kind.value}),
    )
    db.add(event)
    db.flush()
    return event


class OutboxDispatcher:
    """发件箱投递器"""

    def __init__(self, session_factory: Callable[[], Session] = None,
                 notifier: Optional[OccupancyNotifier] = None,
                 max_attempts: Optional[int] = None):
        self._session_factory = session_factory or SessionLocal
        self._notifier = notifier
        self._max_attempts = max_attempts or settings.OUTBOX_MAX_ATTEMPTS
        self._executor: Optional[ThreadPoolExecutor] = None

    @property
    def notifier(self) -> OccupancyNotifier:
        if self._notifier is None:
            self._notifier = build_notifier()
        return self._notifier

    def pending(self, db: Session, limit: int) -> List[OutboxEvent]:
        """未投递且未超过重试上限的事件，按写入顺序"""
        return db.query(OutboxEvent).filter(
            OutboxEvent.delivered_at.is_(None),
            OutboxEvent.attempts < self._max_attempts
        ).order_by(OutboxEvent.id).limit(limit).all()

    def dispatch_pending(self, limit: Optional[int] = None) -> int:
        """投递待发事件，返回成功数量"""
        limit = limit or settings.OUTBOX_BATCH_SIZE
        delivered = 0
        db = self._session_factory()
        try:
            for event in self.pending(db, limit):
                event.attempts += 1
                try:
                    self.notifier.notify(json.loads(event.payload))
                except Exception as e:
                    event.last_error = str(e)
                    logger.warning(
                        f"Outbox event {event.id} ({event.event_type.value}) delivery failed "
                        f"(attempt {event.attempts}/{self._max_attempts}): {e}"
                    )
                else:
                    event.delivered_at = datetime.now()
                    event.last_error = None
                    delivered += 1
                db.commit()
        finally:
            db.close()
        return delivered

    def dispatch_in_background(self) -> None:
        """提交到后台线程投递，调用方不等待结果"""
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="outbox")
        future = self._executor.submit(self.dispatch_pending)
        future.add_done_callback(self._log_failure)

    @staticmethod
    def _log_failure(future) -> None:
        exc = future.exception()
        if exc is not None:
            logger.error(f"Outbox dispatch failed: {exc}", exc_info=exc)

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None


# 全局投递器
outbox_dispatcher = OutboxDispatcher()
