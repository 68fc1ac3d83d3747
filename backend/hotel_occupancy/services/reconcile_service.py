"""
房态对账
房间状态是预订记录的派生值；启动时、定时任务或由管理员触发，修正漂移的房态
"""
import logging
from datetime import datetime
from typing import Callable, List
from sqlalchemy.orm import Session
from hotel_occupancy.models.ontology import Room, RoomStatus
from hotel_occupancy.services.availability_service import AvailabilityService
from hotel_occupancy.services.event_bus import event_bus, Event
from hotel_occupancy.services.room_service import RoomService

logger = logging.getLogger(__name__)


class RoomStatusReconciler:
    """按预订记录重新推导房态；维修中的房间不处理"""

    def __init__(self, db: Session, clock: Callable[[], datetime] = None,
                 event_publisher: Callable[[Event], None] = None):
        self.db = db
        self.availability = AvailabilityService(db)
        self.rooms = RoomService(db)
        self._now = clock or datetime.now
        self._publish_event = event_publisher or event_bus.publish

    def reconcile(self, now: datetime = None) -> List[dict]:
        now = now or self._now()
        corrections = []
        events = []

        rooms = self.db.query(Room).filter(Room.status != RoomStatus.MAINTENANCE).all()
        try:
            for room in rooms:
                expected = self.availability.occupancy_at(room.id, now)
                if room.status == expected:
                    continue

                old_status = room.status
                events.append(
                    self.rooms.set_status(room, expected, room.version, reason="reconcile")
                )
                corrections.append({
                    'room_id': room.id,
                    'room_number': room.room_number,
                    'old_status': old_status,
                    'new_status': expected,
                })
                logger.warning(
                    f"Room {room.room_number} status drifted: {old_status.value} -> {expected.value}"
                )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        for event in events:
            if event is None:
                continue
            try:
                self._publish_event(event)
            except Exception as e:
                logger.error(f"Publishing {event.event_type} failed: {e}", exc_info=True)

        logger.info(f"Reconciled {len(rooms)} room(s), {len(corrections)} correction(s)")
        return corrections
