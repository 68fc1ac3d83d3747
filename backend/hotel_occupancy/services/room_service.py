"""
房间服务 - 房间登记
管理 Room 对象的增删改查与图片
房态只能通过 set_status 由生命周期协调器写入
"""
import base64
import binascii
import json
import logging
from datetime import datetime
from typing import Callable, Iterable, List, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session
from hotel_occupancy.models.ontology import (
    Room, RoomImage, RoomStatus, Booking, BookingKind, ACTIVE_BOOKING_STATUSES
)
from hotel_occupancy.models.schemas import RoomCreate, RoomUpdate, ImageUpload
from hotel_occupancy.models.events import EventType, RoomStatusChangedData
from hotel_occupancy.services.event_bus import event_bus, Event
from hotel_occupancy.services.image_store import ImageStore, LocalImageStore
from hotel_occupancy.exceptions import Conflict, NotFound, UpstreamUnavailable, ValidationError

logger = logging.getLogger(__name__)


def decode_image(image: ImageUpload) -> bytes:
    try:
        return base64.b64decode(image.content_base64, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError(f"图片 {image.filename} 不是有效的 base64 内容")


class RoomService:
    """房间服务"""

    def __init__(self, db: Session, image_store: Optional[ImageStore] = None,
                 event_publisher: Callable[[Event], None] = None):
        self.db = db
        self.image_store = image_store or LocalImageStore()
        # 支持依赖注入事件发布器，便于测试
        self._publish_event = event_publisher or event_bus.publish

    # ============== 查询 ==============

    def get_rooms(self, category: Optional[str] = None, status: Optional[RoomStatus] = None,
                  is_publicly_visible: Optional[bool] = None) -> List[Room]:
        """获取房间列表（按房间号升序）"""
        query = self.db.query(Room)

        if category:
            query = query.filter(Room.category == category)
        if status is not None:
            query = query.filter(Room.status == status)
        if is_publicly_visible is not None:
            query = query.filter(Room.is_publicly_visible == is_publicly_visible)

        return query.order_by(func.length(Room.room_number), Room.room_number).all()

    def get_room(self, room_id: int) -> Optional[Room]:
        """获取单个房间"""
        return self.db.query(Room).filter(Room.id == room_id).first()

    def get_room_by_number(self, room_number: str) -> Optional[Room]:
        """根据房间号获取房间"""
        return self.db.query(Room).filter(Room.room_number == room_number).first()

    def require_room(self, room_id: int) -> Room:
        room = self.get_room(room_id)
        if not room:
            raise NotFound("房间不存在")
        return room

    # ============== 图片 ==============

    def _upload_images(self, images: Iterable[ImageUpload]) -> List[str]:
        """上传图片；任一失败时删除已上传的图片并抛出"""
        payloads = [(img.filename, decode_image(img)) for img in images]
        urls: List[str] = []
        try:
            for filename, content in payloads:
                urls.append(self.image_store.upload(filename, content))
        except UpstreamUnavailable:
            self._delete_images(urls)
            raise
        return urls

    def _delete_images(self, urls: Iterable[str]) -> List[str]:
        """删除图片，失败只记录日志；返回删除失败的地址"""
        failed = []
        for url in urls:
            try:
                self.image_store.delete(url)
            except UpstreamUnavailable as e:
                logger.warning(f"Image delete failed for {url}: {e}")
                failed.append(url)
        return failed

    def add_images(self, room_id: int, images: List[ImageUpload]) -> Room:
        """为房间追加图片"""
        room = self.require_room(room_id)
        for url in self._upload_images(images):
            room.images.append(RoomImage(url=url))
        self.db.commit()
        self.db.refresh(room)
        return room

    # ============== 增删改 ==============

    def create_room(self, data: RoomCreate) -> Room:
        """创建房间，房间号重复时报冲突"""
        if self.get_room_by_number(data.room_number):
            raise Conflict(f"房间号 '{data.room_number}' 已存在")

        fields = data.model_dump(exclude={'images', 'status', 'amenities'})
        room = Room(
            **fields,
            amenities=json.dumps(data.amenities, ensure_ascii=False),
            status=data.status or RoomStatus.AVAILABLE,
            version=0
        )
        for url in self._upload_images(data.images):
            room.images.append(RoomImage(url=url))

        self.db.add(room)
        self.db.commit()
        self.db.refresh(room)
        logger.info(f"Room {room.room_number} created")
        return room

    def update_room(self, room_id: int, data: RoomUpdate) -> Room:
        """更新房间静态属性与图片（房态不可在此修改）"""
        room = self.require_room(room_id)

        update_data = data.model_dump(exclude_unset=True, exclude={'deleted_images', 'new_images'})
        if 'room_number' in update_data:
            existing = self.get_room_by_number(update_data['room_number'])
            if existing and existing.id != room_id:
                raise Conflict(f"房间号 '{update_data['room_number']}' 已存在")
        if 'amenities' in update_data:
            update_data['amenities'] = json.dumps(update_data['amenities'] or [], ensure_ascii=False)

        new_urls = self._upload_images(data.new_images)

        for key, value in update_data.items():
            setattr(room, key, value)

        if data.deleted_images:
            to_delete = set(data.deleted_images)
            self._delete_images([img.url for img in room.images if img.url in to_delete])
            room.images = [img for img in room.images if img.url not in to_delete]

        for url in new_urls:
            room.images.append(RoomImage(url=url))

        self.db.commit()
        self.db.refresh(room)
        return room

    def delete_room(self, room_id: int) -> bool:
        """
        删除房间
        有效的预订或在住记录引用时拒绝；已取消、已退房的历史记录随房间一并删除
        图片清理失败不影响删除
        """
        room = self.require_room(room_id)

        active_count = self.db.query(Booking).filter(
            Booking.room_id == room_id,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES)
        ).count()
        if active_count > 0:
            raise Conflict("该房间有有效的预订或在住记录，无法删除")

        history = self.db.query(Booking).filter(Booking.room_id == room_id).all()
        room_number = room.room_number
        image_urls = [img.url for img in room.images]

        try:
            # 住宿记录可能引用预订记录，先删住宿
            for kind in (BookingKind.STAY.value, BookingKind.RESERVATION.value):
                for booking in history:
                    if booking.kind == kind:
                        self.db.delete(booking)
                self.db.flush()
            self.db.delete(room)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self._delete_images(image_urls)
        logger.info(f"Room {room_number} deleted with {len(history)} history booking(s)")
        return True

    # ============== 房态写入 ==============

    def set_status(self, room: Room, status: RoomStatus, expected_version: int,
                   changed_by: Optional[int] = None, reason: str = "") -> Optional[Event]:
        """
        条件更新房态并递增版本号（不提交）

        仅当库中版本号仍为 expected_version 时生效，否则说明有并发预订写入，抛出冲突。
        房态有变化时返回待发布的房态变更事件，由调用方在提交后发布
        """
        old_status = room.status
        updated = self.db.query(Room).filter(
            Room.id == room.id,
            Room.version == expected_version
        ).update({
            Room.status: status,
            Room.version: expected_version + 1,
            Room.updated_at: datetime.utcnow(),
        }, synchronize_session="evaluate")

        if updated != 1:
            logger.warning(
                f"Room {room.room_number} version {expected_version} is stale, concurrent booking detected"
            )
            raise Conflict(f"房间 {room.room_number} 正在被其他操作预订，请重试")

        if old_status == status:
            return None

        return Event(
            event_type=EventType.ROOM_STATUS_CHANGED,
            timestamp=datetime.now(),
            data=RoomStatusChangedData(
                room_id=room.id,
                room_number=room.room_number,
                old_status=old_status.value,
                new_status=status.value,
                changed_by=changed_by,
                reason=reason
            ).to_dict(),
            source="room_service"
        )

    def get_room_status_summary(self) -> dict:
        """获取房态统计"""
        summary = {'total': 0}
        for status in RoomStatus:
            summary[status.value] = 0
        for status, count in self.db.query(Room.status, func.count(Room.id)).group_by(Room.status).all():
            summary[status.value] = count
            summary['total'] += count
        return summary
