"""
预订记录查询服务 - 住宿、预订、房间时间线
只读，不修改任何状态
"""
from datetime import datetime, timedelta
from typing import List, Optional
from sqlalchemy.orm import Session
from hotel_occupancy.config import settings
from hotel_occupancy.models.ontology import (
    Room, Booking, BookingKind, BookingStatus, Stay, Reservation, ACTIVE_BOOKING_STATUSES
)
from hotel_occupancy.services.availability_service import overlap_clause
from hotel_occupancy.exceptions import NotFound, ValidationError


class BookingService:
    """预订记录查询服务"""

    def __init__(self, db: Session):
        self.db = db

    # ============== 住宿 ==============

    def get_stays(self, status: Optional[BookingStatus] = None) -> List[Stay]:
        """获取住宿记录（按入住时间倒序）"""
        query = self.db.query(Stay)
        if status:
            query = query.filter(Stay.status == status)
        return query.order_by(Stay.start_at.desc()).all()

    def get_stay(self, stay_id: int) -> Stay:
        stay = self.db.query(Stay).filter(Stay.id == stay_id).first()
        if not stay:
            raise NotFound("住宿记录不存在")
        return stay

    def get_checked_in_by_category(self, category: Optional[str]) -> List[Stay]:
        """某房型类别下的在住客人（按入住时间倒序）"""
        if not category:
            raise ValidationError("房型类别不能为空")
        return self.db.query(Stay).join(Room, Stay.room_id == Room.id).filter(
            Stay.status == BookingStatus.CHECKED_IN,
            Room.category == category
        ).order_by(Stay.start_at.desc()).all()

    # ============== 预订 ==============

    def get_reservations(self, status: Optional[BookingStatus] = None,
                         room_id: Optional[int] = None) -> List[Reservation]:
        """获取预订列表（按开始时间升序）"""
        query = self.db.query(Reservation)
        if status:
            query = query.filter(Reservation.status == status)
        if room_id:
            query = query.filter(Reservation.room_id == room_id)
        return query.order_by(Reservation.start_at).all()

    def get_reservation(self, reservation_id: int) -> Reservation:
        reservation = self.db.query(Reservation).filter(Reservation.id == reservation_id).first()
        if not reservation:
            raise NotFound("预订不存在")
        return reservation

    # ============== 时间线 ==============

    def get_room_timeline(self, room_id: int, days: Optional[int] = None,
                          now: Optional[datetime] = None) -> List[dict]:
        """
        房间时间线：从今天零点起 days 天内的有效住宿与预订，按开始时间排序
        """
        room = self.db.query(Room).filter(Room.id == room_id).first()
        if not room:
            raise NotFound("房间不存在")

        days = days or settings.TIMELINE_DAYS
        start = (now or datetime.now()).replace(hour=0, minute=0, second=0, microsecond=0)
        end = start + timedelta(days=days)

        bookings = self.db.query(Booking).filter(
            Booking.room_id == room_id,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            overlap_clause(start, end)
        ).order_by(Booking.start_at, Booking.id).all()

        return [
            {
                'booking_id': b.id,
                'type': "Guest (Checked-in)" if b.kind == BookingKind.STAY.value else "Reservation",
                'name': b.full_name,
                'start_at': b.start_at,
                'end_at': b.end_at,
                'status': b.status,
            }
            for b in bookings
        ]
