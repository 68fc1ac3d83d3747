"""
可用性引擎
根据时间区间计算空闲房间：住宿与预订走同一条区间重叠查询

重叠规则为半开区间：a.start < b.end AND a.end > b.start
首尾相接（end == start）不算重叠；未退房的住宿 end 为空，按 FAR_FUTURE 处理
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple
from sqlalchemy import and_, func, literal, select, DateTime
from sqlalchemy.orm import Session
from hotel_occupancy.models.ontology import (
    Room, RoomStatus, Booking, BookingKind, BookingStatus, ACTIVE_BOOKING_STATUSES
)
from hotel_occupancy.exceptions import ValidationError

FAR_FUTURE = datetime(9999, 12, 31)


def to_naive(value: datetime) -> datetime:
    """带时区的时间转为本地无时区时间，与库中存储保持一致"""
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


@dataclass(frozen=True)
class Interval:
    """占用区间，end 为空表示未结束"""
    start: datetime
    end: Optional[datetime] = None

    @property
    def effective_end(self) -> datetime:
        return self.end if self.end is not None else FAR_FUTURE

    def overlaps(self, other: "Interval") -> bool:
        return self.start < other.effective_end and self.effective_end > other.start

    def contains(self, at: datetime) -> bool:
        return self.start <= at < self.effective_end


def validate_interval(start: datetime, end: datetime) -> None:
    if start is None or end is None:
        raise ValidationError("开始和结束时间不能为空")
    if end <= start:
        raise ValidationError("结束时间必须晚于开始时间")


def overlap_clause(start: datetime, end: datetime):
    """与 [start, end) 重叠的预订记录过滤条件"""
    return and_(
        Booking.start_at < end,
        func.coalesce(Booking.end_at, literal(FAR_FUTURE, type_=DateTime)) > start,
    )


def parse_date_range(checkin: Optional[str], checkout: Optional[str]) -> Tuple[datetime, datetime]:
    """解析 YYYY-MM-DD 日期区间（当天零点）"""
    if not checkin or not checkout:
        raise ValidationError("入住和离店日期不能为空")
    try:
        start = datetime.strptime(checkin, "%Y-%m-%d")
        end = datetime.strptime(checkout, "%Y-%m-%d")
    except ValueError:
        raise ValidationError("日期格式错误，请使用 YYYY-MM-DD")
    validate_interval(start, end)
    return start, end


class AvailabilityService:
    """可用性引擎"""

    def __init__(self, db: Session):
        self.db = db

    def _active_overlapping(self, start: datetime, end: datetime):
        return self.db.query(Booking).filter(
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            overlap_clause(start, end)
        )

    def conflicting_bookings(self, room_id: int, start: datetime, end: datetime,
                             exclude_ids: Iterable[int] = ()) -> List[Booking]:
        """指定房间在区间内的有效预订记录"""
        validate_interval(start, end)
        query = self._active_overlapping(start, end).filter(Booking.room_id == room_id)
        exclude_ids = list(exclude_ids)
        if exclude_ids:
            query = query.filter(~Booking.id.in_(exclude_ids))
        return query.order_by(Booking.start_at).all()

    def is_room_free(self, room_id: int, start: datetime, end: datetime,
                     exclude_ids: Iterable[int] = ()) -> bool:
        return not self.conflicting_bookings(room_id, start, end, exclude_ids)

    def find_available(self, start: datetime, end: datetime,
                       category: Optional[str] = None) -> List[Room]:
        """
        获取区间内可用房间
        排除：有重叠有效预订/住宿的房间、维修中的房间；按房间号升序
        """
        validate_interval(start, end)

        busy_room_ids = select(Booking.room_id).where(
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            overlap_clause(start, end)
        )

        query = self.db.query(Room).filter(
            Room.status != RoomStatus.MAINTENANCE,
            ~Room.id.in_(busy_room_ids)
        )
        if category:
            query = query.filter(Room.category == category)

        return query.order_by(func.length(Room.room_number), Room.room_number).all()

    def occupancy_at(self, room_id: int, at: datetime,
                     exclude_ids: Iterable[int] = ()) -> RoomStatus:
        """
        由预订记录推导房间在 at 时刻应有的房态（不考虑维修）
        在住 → occupied；有覆盖该时刻的预订 → reserved；否则 available
        """
        query = self.db.query(Booking).filter(
            Booking.room_id == room_id,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            Booking.start_at <= at,
            func.coalesce(Booking.end_at, literal(FAR_FUTURE, type_=DateTime)) > at
        )
        exclude_ids = [i for i in exclude_ids if i is not None]
        if exclude_ids:
            query = query.filter(~Booking.id.in_(exclude_ids))

        current = query.all()
        if any(b.kind == BookingKind.STAY.value for b in current):
            return RoomStatus.OCCUPIED
        if any(b.kind == BookingKind.RESERVATION.value and b.status == BookingStatus.RESERVED
               for b in current):
            return RoomStatus.RESERVED
        return RoomStatus.AVAILABLE

    def availability_by_category(self, start: datetime, end: datetime) -> Dict[str, dict]:
        """按房型类别统计可用房间数"""
        available = self.find_available(start, end)
        result: Dict[str, dict] = {}

        totals = self.db.query(Room.category, func.count(Room.id)).filter(
            Room.status != RoomStatus.MAINTENANCE
        ).group_by(Room.category).all()
        for category, total in totals:
            result[category] = {'category': category, 'total': total, 'available': 0}

        for room in available:
            result[room.category]['available'] += 1
        return result
