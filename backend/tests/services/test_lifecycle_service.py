"""
生命周期协调器测试
入住、退房、预订、取消、维修、并发冲突
"""
import pytest
from datetime import date, datetime, timedelta
from decimal import Decimal
from unittest.mock import patch
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from hotel_occupancy.database import Base
from hotel_occupancy.models.ontology import (
    Room, RoomStatus, Stay, Reservation, BookingStatus, Discount, OutboxEvent,
    OutboxEventType, Employee, EmployeeRole
)
from hotel_occupancy.models.schemas import WalkInCheckIn, ReservationCheckIn, ReservationCreate
from hotel_occupancy.models.events import EventType
from hotel_occupancy.services.lifecycle_service import LifecycleService, stay_days
from hotel_occupancy.exceptions import Conflict, NotFound, Unauthorized, ValidationError
from conftest import make_room


def _walk_in(room_number="101", duration=3, apply_discount=False, name="张三"):
    return WalkInCheckIn(
        full_name=name, phone="13800138000", email="Guest@Example.com",
        room_number=room_number, stay_duration=duration, apply_discount=apply_discount
    )


def _reservation_request(room_number="202", start=datetime(2024, 6, 1, 14), end=datetime(2024, 6, 5, 12)):
    return ReservationCreate(full_name="李四", room_number=room_number, start_at=start, end_at=end)


@pytest.fixture
def service(db_session, clock, published):
    return LifecycleService(db_session, event_publisher=published.append, clock=clock)


class TestStayDays:

    def test_minimum_one_day(self):
        start = datetime(2024, 5, 1, 14)
        assert stay_days(start, start) == 1
        assert stay_days(start, start + timedelta(hours=2)) == 1

    def test_rounds_up(self):
        start = datetime(2024, 5, 1, 14)
        assert stay_days(start, start + timedelta(days=2, hours=1)) == 3


class TestCheckIn:

    def test_check_in_and_check_out(self, service, db_session, room_101, manager, clock, published):
        """101（5000/晚）入住 3 天，3 天后退房"""
        stay = service.check_in(_walk_in(), manager.id)

        assert stay.total_rent == Decimal("15000")
        assert stay.status == BookingStatus.CHECKED_IN
        assert stay.start_at == clock.now
        assert stay.email == "guest@example.com"
        db_session.refresh(room_101)
        assert room_101.status == RoomStatus.OCCUPIED

        clock.advance(days=3)
        stay = service.check_out(stay.id, manager.id)

        assert stay.stay_duration == 3
        assert stay.end_at == clock.now
        assert stay.status == BookingStatus.CHECKED_OUT
        db_session.refresh(room_101)
        assert room_101.status == RoomStatus.AVAILABLE

        types = [e.event_type for e in published]
        assert types.count(EventType.OCCUPANCY_CHANGED) == 2
        assert EventType.GUEST_CHECKED_IN in types
        assert EventType.GUEST_CHECKED_OUT in types

    def test_check_in_writes_outbox_event(self, service, db_session, room_101, manager):
        stay = service.check_in(_walk_in(), manager.id)

        outbox = db_session.query(OutboxEvent).one()
        assert outbox.event_type == OutboxEventType.CHECKIN
        assert f'"guestId": {stay.id}' in outbox.payload
        assert outbox.delivered_at is None

    def test_room_not_available(self, service, db_session, manager):
        make_room(db_session, "101", status=RoomStatus.MAINTENANCE)

        with pytest.raises(Conflict):
            service.check_in(_walk_in(), manager.id)
        assert db_session.query(Stay).count() == 0

    def test_room_not_found(self, service, manager):
        with pytest.raises(NotFound):
            service.check_in(_walk_in(room_number="999"), manager.id)

    def test_missing_operator(self, service, room_101):
        with pytest.raises(Unauthorized):
            service.check_in(_walk_in(), None)

    def test_upcoming_reservation_blocks_check_in(self, service, db_session, manager, clock):
        make_room(db_session, "202")
        service.reserve(_reservation_request(
            start=clock.now + timedelta(days=1), end=clock.now + timedelta(days=3)
        ), manager.id)

        with pytest.raises(Conflict):
            service.check_in(_walk_in(room_number="202", duration=2), manager.id)
        assert service.check_in(_walk_in(room_number="202", duration=1), manager.id).id

    def test_discount_applied(self, service, db_session, manager, clock):
        make_room(db_session, "301", rate="1000")
        db_session.add(Discount(
            title="五一特惠", percentage=Decimal("20"),
            start_date=date(2024, 5, 1), end_date=date(2024, 5, 5), created_by=manager.id
        ))
        db_session.commit()

        stay = service.check_in(_walk_in(room_number="301", duration=1, apply_discount=True), manager.id)

        assert stay.total_rent == Decimal("800")
        assert stay.discount_title == "五一特惠"

    def test_discount_requested_without_current_discount(self, service, db_session, room_101, manager):
        with pytest.raises(ValidationError):
            service.check_in(_walk_in(apply_discount=True), manager.id)

        assert db_session.query(Stay).count() == 0
        db_session.refresh(room_101)
        assert room_101.status == RoomStatus.AVAILABLE
        assert room_101.version == 0


class TestCheckOut:

    def test_second_checkout_conflicts(self, service, db_session, room_101, manager):
        stay = service.check_in(_walk_in(), manager.id)
        service.check_out(stay.id, manager.id)
        db_session.refresh(room_101)
        version = room_101.version

        with pytest.raises(Conflict):
            service.check_out(stay.id, manager.id)

        db_session.refresh(room_101)
        assert room_101.version == version
        assert db_session.query(OutboxEvent).count() == 2

    def test_same_day_checkout_counts_one_day(self, service, room_101, manager, clock):
        stay = service.check_in(_walk_in(duration=2), manager.id)
        clock.advance(hours=3)

        stay = service.check_out(stay.id, manager.id)
        assert stay.stay_duration == 1

    def test_checkout_unknown_stay(self, service, manager):
        with pytest.raises(NotFound):
            service.check_out(12345, manager.id)


class TestReservations:

    def test_future_reservation_keeps_status(self, service, db_session, room_202, manager, published):
        reservation = service.reserve(_reservation_request(), manager.id)

        assert reservation.status == BookingStatus.RESERVED
        db_session.refresh(room_202)
        assert room_202.status == RoomStatus.AVAILABLE
        assert room_202.version == 1
        assert [e.event_type for e in published] == [EventType.RESERVATION_CREATED]

    def test_reservation_covering_now_marks_room_reserved(self, service, db_session, room_202, manager, clock):
        service.reserve(_reservation_request(
            start=clock.now - timedelta(hours=1), end=clock.now + timedelta(days=1)
        ), manager.id)

        db_session.refresh(room_202)
        assert room_202.status == RoomStatus.RESERVED

    def test_overlapping_reservation_conflicts(self, service, room_202, manager):
        service.reserve(_reservation_request(), manager.id)

        with pytest.raises(Conflict):
            service.reserve(_reservation_request(
                start=datetime(2024, 6, 4), end=datetime(2024, 6, 6)
            ), manager.id)

    def test_touching_reservation_allowed(self, service, room_202, manager):
        service.reserve(_reservation_request(
            start=datetime(2024, 6, 1), end=datetime(2024, 6, 5)
        ), manager.id)
        second = service.reserve(_reservation_request(
            start=datetime(2024, 6, 5), end=datetime(2024, 6, 7)
        ), manager.id)
        assert second.id

    def test_invalid_interval(self, service, room_202, manager):
        with pytest.raises(ValidationError):
            service.reserve(_reservation_request(
                start=datetime(2024, 6, 5), end=datetime(2024, 6, 1)
            ), manager.id)

    def test_reserve_room_in_maintenance(self, service, db_session, manager):
        make_room(db_session, "202", status=RoomStatus.MAINTENANCE)
        with pytest.raises(Conflict):
            service.reserve(_reservation_request(), manager.id)

    def test_cancel_restores_room(self, service, db_session, room_202, manager, clock):
        reservation = service.reserve(_reservation_request(
            start=clock.now - timedelta(hours=1), end=clock.now + timedelta(days=1)
        ), manager.id)

        cancelled = service.cancel_reservation(reservation.id, manager.id)

        assert cancelled.status == BookingStatus.CANCELLED
        db_session.refresh(room_202)
        assert room_202.status == RoomStatus.AVAILABLE

    def test_cancel_twice_conflicts(self, service, room_202, manager):
        reservation = service.reserve(_reservation_request(), manager.id)
        service.cancel_reservation(reservation.id, manager.id)

        with pytest.raises(Conflict):
            service.cancel_reservation(reservation.id, manager.id)

    def test_cancel_expired_reservation_frees_room(self, service, db_session, room_202, manager, clock):
        """未入住且已过期的预订取消后，房间恢复空闲"""
        reservation = service.reserve(_reservation_request(
            start=clock.now - timedelta(hours=1), end=clock.now + timedelta(days=1)
        ), manager.id)
        db_session.refresh(room_202)
        assert room_202.status == RoomStatus.RESERVED

        clock.advance(days=2)
        service.cancel_reservation(reservation.id, manager.id)

        db_session.refresh(room_202)
        assert room_202.status == RoomStatus.AVAILABLE
        stay = service.check_in(_walk_in(room_number="202", duration=1), manager.id)
        assert stay.status == BookingStatus.CHECKED_IN

    def test_check_in_before_start_date_conflicts(self, service, db_session, room_202, manager):
        reservation = service.reserve(_reservation_request(), manager.id)

        with pytest.raises(Conflict):
            service.check_in_reservation(reservation.id, ReservationCheckIn(), manager.id)
        db_session.refresh(reservation)
        assert reservation.status == BookingStatus.RESERVED

    def test_check_in_earlier_on_start_day(self, service, db_session, room_202, manager, clock):
        """开始当天提前到店可以入住"""
        reservation = service.reserve(_reservation_request(
            start=clock.now + timedelta(hours=3), end=clock.now + timedelta(days=2)
        ), manager.id)

        stay = service.check_in_reservation(reservation.id, ReservationCheckIn(), manager.id)

        assert stay.reservation_id == reservation.id
        db_session.refresh(room_202)
        assert room_202.status == RoomStatus.OCCUPIED

    def test_check_in_reservation(self, service, db_session, room_202, manager, clock):
        reservation = service.reserve(_reservation_request(
            start=clock.now, end=clock.now + timedelta(days=2)
        ), manager.id)

        stay = service.check_in_reservation(reservation.id, ReservationCheckIn(), manager.id)

        assert stay.reservation_id == reservation.id
        assert stay.stay_duration == 2
        assert stay.total_rent == Decimal("576")
        db_session.refresh(reservation)
        db_session.refresh(room_202)
        assert reservation.status == BookingStatus.CHECKED_IN
        assert room_202.status == RoomStatus.OCCUPIED

        clock.advance(days=2)
        service.check_out(stay.id, manager.id)
        db_session.refresh(reservation)
        assert reservation.status == BookingStatus.CHECKED_OUT

        with pytest.raises(Conflict):
            service.cancel_reservation(reservation.id, manager.id)


class TestDeleteAndMaintenance:

    def test_delete_checked_in_stay_conflicts(self, service, room_101, manager):
        stay = service.check_in(_walk_in(), manager.id)
        with pytest.raises(Conflict):
            service.delete_stay(stay.id, manager.id)

    def test_delete_checked_out_stay(self, service, db_session, room_101, manager):
        stay = service.check_in(_walk_in(), manager.id)
        service.check_out(stay.id, manager.id)

        assert service.delete_stay(stay.id, manager.id) is True
        assert db_session.query(Stay).count() == 0

    def test_maintenance_round_trip(self, service, db_session, room_202, manager):
        room = service.set_maintenance(room_202.id, True, manager.id)
        assert room.status == RoomStatus.MAINTENANCE

        room = service.set_maintenance(room_202.id, False, manager.id)
        assert room.status == RoomStatus.AVAILABLE

    def test_maintenance_rejected_with_active_booking(self, service, room_202, manager):
        service.reserve(_reservation_request(), manager.id)
        with pytest.raises(Conflict):
            service.set_maintenance(room_202.id, True, manager.id)


class TestConcurrentCheckIn:

    def test_only_one_check_in_wins(self, tmp_path):
        """第二个会话在第一个会话读取版本号之后抢先入住，第一个会话必须冲突"""
        engine = create_engine(
            f"sqlite:///{tmp_path / 'race.db'}",
            connect_args={"check_same_thread": False}
        )
        Base.metadata.create_all(bind=engine)
        Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)

        setup = Session()
        operator = Employee(username="op", password_hash="x", name="op", role=EmployeeRole.RECEPTIONIST)
        setup.add(operator)
        setup.add(Room(room_number="101", category="标准间", rate=Decimal("288"), version=0))
        setup.commit()
        operator_id = operator.id
        setup.close()

        first, second = Session(), Session()
        first_service = LifecycleService(first, event_publisher=lambda e: None)
        second_service = LifecycleService(second, event_publisher=lambda e: None)
        original = first_service.availability.conflicting_bookings

        def interleaved(*args, **kwargs):
            # 第一个会话的可用性检查已通过，第二个会话随后提交
            result = original(*args, **kwargs)
            second_service.check_in(_walk_in(name="李四"), operator_id)
            return result

        try:
            with patch.object(first_service.availability, "conflicting_bookings", side_effect=interleaved):
                with pytest.raises(Conflict):
                    first_service.check_in(_walk_in(name="张三"), operator_id)

            check = Session()
            stays = check.query(Stay).all()
            assert [s.full_name for s in stays] == ["李四"]
            assert check.query(Room).one().status == RoomStatus.OCCUPIED
            check.close()
        finally:
            first.close()
            second.close()
            engine.dispose()
