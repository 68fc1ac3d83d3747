"""
生命周期协调器 - 预订写操作的唯一入口
入住、预订入住、退房、预订、取消、删除住宿、维修切换

每个操作的流程：
1. 校验（房间/记录存在、状态、可用性、折扣），失败时不写入任何数据
2. 同一事务内写入预订记录、条件更新房态（版本号校验）、追加发件箱事件
3. 提交后发布领域事件；发布失败只记录日志
"""
import logging
import math
from contextlib import contextmanager
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Iterable, Optional, Tuple
from sqlalchemy.orm import Session
from hotel_occupancy.models.ontology import (
    Room, RoomStatus, BookingKind, BookingStatus, Stay, Reservation, OutboxEventType
)
from hotel_occupancy.models.schemas import WalkInCheckIn, ReservationCheckIn, ReservationCreate
from hotel_occupancy.models.events import (
    EventType, GuestCheckedInData, GuestCheckedOutData,
    ReservationCreatedData, ReservationCancelledData, OccupancyChangedData
)
from hotel_occupancy.services.availability_service import (
    AvailabilityService, Interval, FAR_FUTURE, to_naive, validate_interval
)
from hotel_occupancy.services.discount_service import DiscountService
from hotel_occupancy.services.event_bus import event_bus, Event
from hotel_occupancy.services.outbox import enqueue_occupancy_event
from hotel_occupancy.services.room_service import RoomService
from hotel_occupancy.exceptions import Conflict, NotFound, Unauthorized, ValidationError

logger = logging.getLogger(__name__)

ONE_DAY_SECONDS = 24 * 60 * 60


def stay_days(start: datetime, end: datetime) -> int:
    """按天向上取整，至少 1 天"""
    seconds = (end - start).total_seconds()
    return max(1, math.ceil(seconds / ONE_DAY_SECONDS))


class LifecycleService:
    """生命周期协调器"""

    def __init__(self, db: Session, event_publisher: Callable[[Event], None] = None,
                 clock: Callable[[], datetime] = None):
        self.db = db
        self.availability = AvailabilityService(db)
        self.discounts = DiscountService(db)
        self.rooms = RoomService(db)
        # 支持依赖注入事件发布器与时钟，便于测试
        self._publish_event = event_publisher or event_bus.publish
        self._now = clock or datetime.now

    # ============== 内部工具 ==============

    @staticmethod
    def _require_operator(operator_id: Optional[int]) -> None:
        if operator_id is None:
            raise Unauthorized("缺少操作人身份")

    @contextmanager
    def _transaction(self):
        """提交或整体回滚"""
        try:
            yield
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def _publish_all(self, events: Iterable[Optional[Event]]) -> None:
        """提交后发布事件，失败不影响已提交的操作"""
        for event in events:
            if event is None:
                continue
            try:
                self._publish_event(event)
            except Exception as e:
                logger.error(f"Publishing {event.event_type} failed: {e}", exc_info=True)

    def _occupancy_event(self, outbox_event_id: int, room_id: int, stay_id: int,
                         kind: OutboxEventType) -> Event:
        return Event(
            event_type=EventType.OCCUPANCY_CHANGED,
            timestamp=self._now(),
            data=OccupancyChangedData(
                outbox_event_id=outbox_event_id,
                room_id=room_id,
                guest_id=stay_id,
                kind=kind.value
            ).to_dict(),
            source="lifecycle_service"
        )

    def _rent(self, rate: Decimal, duration: int, apply_discount: bool,
              now: datetime) -> Tuple[Decimal, Optional[str]]:
        """计算房费：rate * duration，按需应用当天有效折扣"""
        base_rent = Decimal(rate) * duration
        if not apply_discount:
            return base_rent, None

        discount = self.discounts.current_discount(now)
        if not discount:
            raise ValidationError("今天没有可用的折扣")
        return self.discounts.apply(base_rent, discount), discount.title

    def _get_room_by_number(self, room_number: str) -> Room:
        room = self.rooms.get_room_by_number(room_number)
        if not room:
            raise NotFound("房间不存在")
        return room

    def get_stay(self, stay_id: int) -> Optional[Stay]:
        return self.db.query(Stay).filter(Stay.id == stay_id).first()

    def get_reservation(self, reservation_id: int) -> Optional[Reservation]:
        return self.db.query(Reservation).filter(Reservation.id == reservation_id).first()

    def _ensure_free(self, room: Room, start: datetime, end: datetime,
                     exclude_ids: Iterable[int] = ()) -> None:
        conflicts = self.availability.conflicting_bookings(room.id, start, end, exclude_ids)
        if conflicts:
            first = conflicts[0]
            label = "住宿" if first.kind == BookingKind.STAY.value else "预订"
            raise Conflict(f"房间 {room.room_number} 在该时段已有{label}记录（#{first.id}）")

    # ============== 入住 ==============

    def check_in(self, data: WalkInCheckIn, operator_id: int) -> Stay:
        """
        散客入住（Walk-in）
        - 房间必须存在且为空闲
        - [现在, 现在 + 天数) 内不能有其他有效预订
        - 需要折扣时必须有当天有效的折扣
        """
        self._require_operator(operator_id)
        now = self._now()

        room = self._get_room_by_number(data.room_number)
        if room.status != RoomStatus.AVAILABLE:
            raise Conflict(f"房间状态为 {room.status.value}，无法入住")

        seen_version = room.version
        self._ensure_free(room, now, now + timedelta(days=data.stay_duration))
        total_rent, discount_title = self._rent(room.rate, data.stay_duration, data.apply_discount, now)

        with self._transaction():
            status_event = self.rooms.set_status(
                room, RoomStatus.OCCUPIED, seen_version, operator_id, "check_in"
            )
            stay = Stay(
                room_id=room.id,
                full_name=data.full_name,
                address=data.address,
                phone=data.phone,
                email=data.email,
                id_number=data.id_number,
                start_at=now,
                status=BookingStatus.CHECKED_IN,
                payment_method=data.payment_method,
                stay_duration=data.stay_duration,
                apply_discount=data.apply_discount,
                discount_title=discount_title,
                total_rent=total_rent,
                created_by=operator_id
            )
            self.db.add(stay)
            self.db.flush()
            outbox = enqueue_occupancy_event(self.db, OutboxEventType.CHECKIN, room.id, stay.id)

        self.db.refresh(stay)
        logger.info(f"Stay {stay.id} checked in to room {room.room_number}")
        self._publish_all([
            status_event,
            self._checked_in_event(stay, room, operator_id),
            self._occupancy_event(outbox.id, room.id, stay.id, OutboxEventType.CHECKIN),
        ])
        return stay

    def check_in_reservation(self, reservation_id: int, data: ReservationCheckIn,
                             operator_id: int) -> Stay:
        """
        预订入住：预订转为住宿记录
        天数为空时按预订区间计算；早于预订开始日期不能入住（当天提前到店可以）
        """
        self._require_operator(operator_id)
        now = self._now()

        reservation = self.get_reservation(reservation_id)
        if not reservation:
            raise NotFound("预订不存在")
        if reservation.status != BookingStatus.RESERVED:
            raise Conflict(f"预订状态为 {reservation.status.value}，无法办理入住")
        if now.date() < reservation.start_at.date():
            raise Conflict(f"预订 {reservation.start_at.date()} 开始，尚未到入住日期")

        room = reservation.room
        if room.status not in (RoomStatus.AVAILABLE, RoomStatus.RESERVED):
            raise Conflict(f"房间状态为 {room.status.value}，无法入住")

        seen_version = room.version
        duration = data.stay_duration or stay_days(reservation.start_at, reservation.end_at)
        self._ensure_free(room, now, now + timedelta(days=duration), exclude_ids=[reservation.id])
        total_rent, discount_title = self._rent(room.rate, duration, data.apply_discount, now)

        with self._transaction():
            status_event = self.rooms.set_status(
                room, RoomStatus.OCCUPIED, seen_version, operator_id, "reservation_check_in"
            )
            stay = Stay(
                room_id=room.id,
                full_name=reservation.full_name,
                address=reservation.address,
                phone=reservation.phone,
                email=reservation.email,
                id_number=reservation.id_number,
                start_at=now,
                status=BookingStatus.CHECKED_IN,
                payment_method=data.payment_method or reservation.payment_method,
                stay_duration=duration,
                apply_discount=data.apply_discount,
                discount_title=discount_title,
                total_rent=total_rent,
                reservation_id=reservation.id,
                created_by=operator_id
            )
            reservation.status = BookingStatus.CHECKED_IN
            self.db.add(stay)
            self.db.flush()
            outbox = enqueue_occupancy_event(self.db, OutboxEventType.CHECKIN, room.id, stay.id)

        self.db.refresh(stay)
        logger.info(f"Reservation {reservation_id} checked in as stay {stay.id}")
        self._publish_all([
            status_event,
            self._checked_in_event(stay, room, operator_id),
            self._occupancy_event(outbox.id, room.id, stay.id, OutboxEventType.CHECKIN),
        ])
        return stay

    def _checked_in_event(self, stay: Stay, room: Room, operator_id: int) -> Event:
        return Event(
            event_type=EventType.GUEST_CHECKED_IN,
            timestamp=self._now(),
            data=GuestCheckedInData(
                stay_id=stay.id,
                guest_name=stay.full_name,
                room_id=room.id,
                room_number=room.room_number,
                reservation_id=stay.reservation_id,
                check_in_at=stay.start_at,
                stay_duration=stay.stay_duration,
                total_rent=float(stay.total_rent or 0),
                operator_id=operator_id,
                is_walkin=stay.reservation_id is None
            ).to_dict(),
            source="lifecycle_service"
        )

    # ============== 退房 ==============

    def check_out(self, stay_id: int, operator_id: int) -> Stay:
        """
        退房
        - 重复退房报冲突，不会重复释放房间
        - 住宿天数按实际时长向上取整，至少 1 天
        - 关联预订同步为已退房
        """
        self._require_operator(operator_id)

        stay = self.get_stay(stay_id)
        if not stay:
            raise NotFound("住宿记录不存在")
        if stay.status == BookingStatus.CHECKED_OUT:
            raise Conflict("该住宿记录已退房")

        now = self._now()
        room = stay.room
        seen_version = room.version

        with self._transaction():
            stay.end_at = now
            stay.stay_duration = stay_days(stay.start_at, now)
            stay.status = BookingStatus.CHECKED_OUT

            if stay.reservation_id:
                reservation = self.get_reservation(stay.reservation_id)
                if reservation and reservation.status == BookingStatus.CHECKED_IN:
                    reservation.status = BookingStatus.CHECKED_OUT
            self.db.flush()

            next_status = self.availability.occupancy_at(
                room.id, now, exclude_ids=[stay.id, stay.reservation_id]
            )
            status_event = self.rooms.set_status(room, next_status, seen_version, operator_id, "check_out")
            outbox = enqueue_occupancy_event(self.db, OutboxEventType.CHECKOUT, room.id, stay.id)

        self.db.refresh(stay)
        logger.info(f"Stay {stay.id} checked out of room {room.room_number} after {stay.stay_duration} day(s)")
        self._publish_all([
            status_event,
            Event(
                event_type=EventType.GUEST_CHECKED_OUT,
                timestamp=now,
                data=GuestCheckedOutData(
                    stay_id=stay.id,
                    guest_name=stay.full_name,
                    room_id=room.id,
                    room_number=room.room_number,
                    check_out_at=now,
                    stay_duration=stay.stay_duration,
                    operator_id=operator_id
                ).to_dict(),
                source="lifecycle_service"
            ),
            self._occupancy_event(outbox.id, room.id, stay.id, OutboxEventType.CHECKOUT),
        ])
        return stay

    # ============== 预订 ==============

    def reserve(self, data: ReservationCreate, operator_id: int) -> Reservation:
        """
        创建预订
        - 区间 [start, end) 内房间不能有其他有效预订/住宿
        - 预订区间覆盖当前时刻且房间空闲时，房态置为 reserved；否则房态不变
        """
        self._require_operator(operator_id)
        start, end = to_naive(data.start_at), to_naive(data.end_at)
        validate_interval(start, end)

        room = self._get_room_by_number(data.room_number)
        if room.status == RoomStatus.MAINTENANCE:
            raise Conflict("房间维修中，无法预订")

        seen_version = room.version
        self._ensure_free(room, start, end)

        now = self._now()
        next_status = room.status
        if room.status == RoomStatus.AVAILABLE and Interval(start, end).contains(now):
            next_status = RoomStatus.RESERVED

        with self._transaction():
            status_event = self.rooms.set_status(room, next_status, seen_version, operator_id, "reservation")
            reservation = Reservation(
                room_id=room.id,
                full_name=data.full_name,
                address=data.address,
                phone=data.phone,
                email=data.email,
                id_number=data.id_number,
                start_at=start,
                end_at=end,
                status=BookingStatus.RESERVED,
                payment_method=data.payment_method,
                source=data.source,
                special_request=data.special_request,
                promo_code=data.promo_code,
                expected_arrival_time=data.expected_arrival_time,
                created_by=operator_id
            )
            self.db.add(reservation)

        self.db.refresh(reservation)
        self._publish_all([
            status_event,
            Event(
                event_type=EventType.RESERVATION_CREATED,
                timestamp=now,
                data=ReservationCreatedData(
                    reservation_id=reservation.id,
                    guest_name=reservation.full_name,
                    room_id=room.id,
                    room_number=room.room_number,
                    start_at=start.isoformat(),
                    end_at=end.isoformat(),
                    operator_id=operator_id
                ).to_dict(),
                source="lifecycle_service"
            ),
        ])
        return reservation

    def cancel_reservation(self, reservation_id: int, operator_id: int) -> Reservation:
        """
        取消预订
        只有 reserved 状态可以取消；房态为 reserved 时按剩余预订记录重新推导
        （包括预订已过期未入住的情况）
        """
        self._require_operator(operator_id)

        reservation = self.get_reservation(reservation_id)
        if not reservation:
            raise NotFound("预订不存在")
        if reservation.status != BookingStatus.RESERVED:
            raise Conflict(f"状态为 {reservation.status.value} 的预订不可取消")

        now = self._now()
        room = reservation.room
        seen_version = room.version
        held_room = room.status == RoomStatus.RESERVED

        with self._transaction():
            reservation.status = BookingStatus.CANCELLED
            self.db.flush()

            next_status = room.status
            if held_room:
                next_status = self.availability.occupancy_at(room.id, now, exclude_ids=[reservation.id])
            status_event = self.rooms.set_status(room, next_status, seen_version, operator_id, "reservation_cancelled")

        self.db.refresh(reservation)
        self._publish_all([
            status_event,
            Event(
                event_type=EventType.RESERVATION_CANCELLED,
                timestamp=now,
                data=ReservationCancelledData(
                    reservation_id=reservation.id,
                    guest_name=reservation.full_name,
                    room_id=room.id,
                    room_number=room.room_number,
                    operator_id=operator_id
                ).to_dict(),
                source="lifecycle_service"
            ),
        ])
        return reservation

    # ============== 删除与维修 ==============

    def delete_stay(self, stay_id: int, operator_id: int) -> bool:
        """删除住宿记录；在住记录需先退房"""
        self._require_operator(operator_id)

        stay = self.get_stay(stay_id)
        if not stay:
            raise NotFound("住宿记录不存在")
        if stay.status == BookingStatus.CHECKED_IN:
            raise Conflict("客人仍在住，请先办理退房")

        with self._transaction():
            self.db.delete(stay)
        logger.info(f"Stay {stay_id} deleted by {operator_id}")
        return True

    def set_maintenance(self, room_id: int, maintenance: bool, operator_id: int) -> Room:
        """
        维修切换（管理员操作）
        进入维修：房间不能有未结束的有效预订或在住记录
        退出维修：按预订记录重新推导房态
        """
        self._require_operator(operator_id)
        room = self.rooms.require_room(room_id)
        now = self._now()

        if maintenance == (room.status == RoomStatus.MAINTENANCE):
            return room

        seen_version = room.version
        if maintenance:
            # [now, FAR_FUTURE) 与所有未结束的有效记录重叠
            if not self.availability.is_room_free(room.id, now, FAR_FUTURE):
                raise Conflict("房间有有效的预订或在住记录，无法设为维修")
            next_status = RoomStatus.MAINTENANCE
        else:
            next_status = self.availability.occupancy_at(room.id, now)

        with self._transaction():
            status_event = self.rooms.set_status(
                room, next_status, seen_version, operator_id,
                "maintenance_on" if maintenance else "maintenance_off"
            )

        self.db.refresh(room)
        self._publish_all([status_event])
        return room
