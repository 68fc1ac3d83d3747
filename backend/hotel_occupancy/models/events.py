"""
领域事件定义 (Domain Events)
房态与预订生命周期中的核心业务事件
"""
from enum import Enum
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Optional, Dict, Any


class EventType(str, Enum):
    """事件类型枚举"""
    # 房间相关
    ROOM_STATUS_CHANGED = "room.status_changed"

    # 入住相关
    GUEST_CHECKED_IN = "guest.checked_in"
    GUEST_CHECKED_OUT = "guest.checked_out"

    # 预订相关
    RESERVATION_CREATED = "reservation.created"
    RESERVATION_CANCELLED = "reservation.cancelled"

    # 房态占用变化（需通知外部系统）
    OCCUPANCY_CHANGED = "occupancy.changed"


@dataclass
class BaseEventData:
    """事件数据基类"""
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        result = asdict(self)
        # 处理 datetime 序列化
        for key, value in result.items():
            if isinstance(value, datetime):
                result[key] = value.isoformat()
        return result


@dataclass
class RoomStatusChangedData(BaseEventData):
    """房间状态变更事件数据"""
    room_id: int = 0
    room_number: str = ""
    old_status: str = ""
    new_status: str = ""
    changed_by: Optional[int] = None
    reason: str = ""


@dataclass
class GuestCheckedInData(BaseEventData):
    """客人入住事件数据"""
    stay_id: int = 0
    guest_name: str = ""
    room_id: int = 0
    room_number: str = ""
    reservation_id: Optional[int] = None
    check_in_at: datetime = field(default_factory=datetime.now)
    stay_duration: int = 1
    total_rent: float = 0.0
    operator_id: int = 0
    is_walkin: bool = True


@dataclass
class GuestCheckedOutData(BaseEventData):
    """客人退房事件数据"""
    stay_id: int = 0
    guest_name: str = ""
    room_id: int = 0
    room_number: str = ""
    check_out_at: datetime = field(default_factory=datetime.now)
    stay_duration: int = 1
    operator_id: int = 0


@dataclass
class ReservationCreatedData(BaseEventData):
    """预订创建事件数据"""
    reservation_id: int = 0
    guest_name: str = ""
    room_id: int = 0
    room_number: str = ""
    start_at: str = ""
    end_at: str = ""
    operator_id: int = 0


@dataclass
class ReservationCancelledData(BaseEventData):
    """预订取消事件数据"""
    reservation_id: int = 0
    guest_name: str = ""
    room_id: int = 0
    room_number: str = ""
    operator_id: int = 0


@dataclass
class OccupancyChangedData(BaseEventData):
    """房态占用变化事件数据 - 对应一条发件箱记录"""
    outbox_event_id: int = 0
    room_id: int = 0
    guest_id: int = 0
    kind: str = ""
