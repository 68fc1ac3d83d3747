"""
房间服务测试
"""
import base64
import pytest
from datetime import datetime
from decimal import Decimal
from unittest.mock import Mock

from hotel_occupancy.models.ontology import Room, RoomStatus, Booking, Stay, Reservation, BookingStatus
from hotel_occupancy.models.schemas import RoomCreate, RoomUpdate, ImageUpload
from hotel_occupancy.models.events import EventType
from hotel_occupancy.services.image_store import ImageStore
from hotel_occupancy.services.room_service import RoomService
from hotel_occupancy.exceptions import Conflict, NotFound, UpstreamUnavailable, ValidationError
from conftest import make_room


def _image(name="room.jpg", content=b"fake-jpeg"):
    return ImageUpload(filename=name, content_base64=base64.b64encode(content).decode())


def _create(number="101", **kwargs):
    return RoomCreate(room_number=number, category="标准间", rate=Decimal("288"), **kwargs)


class TestCreateRoom:

    def test_create_room(self, db_session, image_store):
        service = RoomService(db_session, image_store=image_store)
        room = service.create_room(_create(amenities=["wifi"], images=[_image()]))

        assert room.status == RoomStatus.AVAILABLE
        assert room.version == 0
        assert room.amenities == '["wifi"]'
        assert len(room.images) == 1
        assert room.images[0].url.startswith("/uploads/rooms/")

    def test_duplicate_room_number(self, db_session, image_store):
        service = RoomService(db_session, image_store=image_store)
        service.create_room(_create())

        with pytest.raises(Conflict):
            service.create_room(_create())

    def test_invalid_base64(self, db_session, image_store):
        service = RoomService(db_session, image_store=image_store)
        bad = ImageUpload(filename="x.jpg", content_base64="***")

        with pytest.raises(ValidationError):
            service.create_room(_create(images=[bad]))
        assert db_session.query(Room).count() == 0

    def test_upload_failure_cleans_up(self, db_session):
        store = Mock(spec=ImageStore)
        store.upload.side_effect = ["/uploads/rooms/a.jpg", UpstreamUnavailable("down")]
        service = RoomService(db_session, image_store=store)

        with pytest.raises(UpstreamUnavailable):
            service.create_room(_create(images=[_image("a.jpg"), _image("b.jpg")]))

        store.delete.assert_called_once_with("/uploads/rooms/a.jpg")
        assert db_session.query(Room).count() == 0


class TestUpdateRoom:

    def test_update_attributes_and_images(self, db_session, image_store):
        service = RoomService(db_session, image_store=image_store)
        room = service.create_room(_create(images=[_image("old.jpg")]))
        old_url = room.images[0].url

        room = service.update_room(room.id, RoomUpdate(
            rate=Decimal("300"), deleted_images=[old_url], new_images=[_image("new.jpg")]
        ))

        assert room.rate == Decimal("300")
        assert [img.url for img in room.images] != [old_url]
        assert len(room.images) == 1

    def test_image_delete_failure_is_not_fatal(self, db_session):
        store = Mock(spec=ImageStore)
        store.upload.return_value = "/uploads/rooms/a.jpg"
        store.delete.side_effect = UpstreamUnavailable("down")
        service = RoomService(db_session, image_store=store)
        room = service.create_room(_create(images=[_image()]))

        room = service.update_room(room.id, RoomUpdate(deleted_images=["/uploads/rooms/a.jpg"]))
        assert room.images == []

    def test_rename_to_existing_number(self, db_session, image_store):
        make_room(db_session, "102")
        service = RoomService(db_session, image_store=image_store)
        room = service.create_room(_create())

        with pytest.raises(Conflict):
            service.update_room(room.id, RoomUpdate(room_number="102"))

    def test_update_missing_room(self, db_session, image_store):
        with pytest.raises(NotFound):
            RoomService(db_session, image_store=image_store).update_room(999, RoomUpdate())


class TestDeleteRoom:

    def test_delete_room(self, db_session, image_store):
        service = RoomService(db_session, image_store=image_store)
        room = service.create_room(_create(images=[_image()]))

        assert service.delete_room(room.id) is True
        assert db_session.query(Room).count() == 0

    def test_delete_room_with_active_booking(self, db_session, room_202, manager, image_store):
        db_session.add(Reservation(
            room_id=room_202.id, full_name="李四", start_at=datetime(2024, 6, 1),
            end_at=datetime(2024, 6, 5), status=BookingStatus.RESERVED, created_by=manager.id
        ))
        db_session.commit()

        with pytest.raises(Conflict):
            RoomService(db_session, image_store=image_store).delete_room(room_202.id)
        assert db_session.query(Room).count() == 1

    def test_delete_room_removes_history(self, db_session, room_202, manager, image_store):
        """已取消、已退房的记录随房间一起删除"""
        reservation = Reservation(
            room_id=room_202.id, full_name="李四", start_at=datetime(2024, 5, 1),
            end_at=datetime(2024, 5, 3), status=BookingStatus.CHECKED_OUT, created_by=manager.id
        )
        db_session.add(reservation)
        db_session.flush()
        db_session.add_all([
            Stay(room_id=room_202.id, full_name="李四", start_at=datetime(2024, 5, 1),
                 end_at=datetime(2024, 5, 3), status=BookingStatus.CHECKED_OUT,
                 reservation_id=reservation.id, created_by=manager.id),
            Reservation(room_id=room_202.id, full_name="王五", start_at=datetime(2024, 6, 1),
                        end_at=datetime(2024, 6, 5), status=BookingStatus.CANCELLED, created_by=manager.id),
        ])
        db_session.commit()

        assert RoomService(db_session, image_store=image_store).delete_room(room_202.id) is True
        assert db_session.query(Room).count() == 0
        assert db_session.query(Booking).count() == 0

    def test_image_cleanup_failure_tolerated(self, db_session):
        store = Mock(spec=ImageStore)
        store.upload.return_value = "/uploads/rooms/a.jpg"
        store.delete.side_effect = UpstreamUnavailable("down")
        service = RoomService(db_session, image_store=store)
        room = service.create_room(_create(images=[_image()]))

        assert service.delete_room(room.id) is True


class TestSetStatus:

    def test_bumps_version_and_returns_event(self, db_session, room_101, manager):
        service = RoomService(db_session)
        event = service.set_status(room_101, RoomStatus.OCCUPIED, 0, manager.id, "check_in")
        db_session.commit()

        assert event.event_type == EventType.ROOM_STATUS_CHANGED
        assert event.data["old_status"] == "available"
        assert event.data["new_status"] == "occupied"
        db_session.refresh(room_101)
        assert room_101.version == 1

    def test_unchanged_status_still_bumps_version(self, db_session, room_101):
        service = RoomService(db_session)
        assert service.set_status(room_101, RoomStatus.AVAILABLE, 0) is None
        db_session.commit()
        db_session.refresh(room_101)
        assert room_101.version == 1

    def test_stale_version_conflicts(self, db_session, room_101):
        service = RoomService(db_session)
        with pytest.raises(Conflict):
            service.set_status(room_101, RoomStatus.OCCUPIED, 5)

    def test_status_summary(self, db_session, sample_rooms):
        summary = RoomService(db_session).get_room_status_summary()
        assert summary['total'] == 4
        assert summary['available'] == 4
        assert summary['occupied'] == 0
