"""
本体对象定义 (Ontology Objects)
房间、预订记录（住宿/预订两种变体）、折扣、出站事件
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from sqlalchemy import (
    Column, Integer, String, DateTime, Date,
    ForeignKey, Text, Enum as SQLEnum, Boolean, Numeric
)
from sqlalchemy.orm import relationship
from hotel_occupancy.database import Base


# ============== 枚举定义 ==============

class RoomStatus(str, Enum):
    """房间状态枚举"""
    AVAILABLE = "available"        # 空闲
    OCCUPIED = "occupied"          # 入住中
    RESERVED = "reserved"          # 已预留
    MAINTENANCE = "maintenance"    # 维修中


class BookingKind(str, Enum):
    """预订记录变体"""
    STAY = "stay"                  # 住宿（散客入住或预订入住）
    RESERVATION = "reservation"    # 预订（未来时段占用）


class BookingStatus(str, Enum):
    """预订记录状态 - 住宿与预订共用一套状态"""
    RESERVED = "reserved"          # 已预订
    CHECKED_IN = "checked_in"      # 已入住
    CHECKED_OUT = "checked_out"    # 已退房
    CANCELLED = "cancelled"        # 已取消


# 占用房间的状态
ACTIVE_BOOKING_STATUSES = (BookingStatus.RESERVED, BookingStatus.CHECKED_IN)


class PaymentMethod(str, Enum):
    """支付方式"""
    CASH = "cash"
    CARD = "card"
    ONLINE = "online"
    PAY_AT_HOTEL = "pay_at_hotel"


class ReservationSource(str, Enum):
    """预订渠道"""
    CRM = "crm"
    WEBSITE = "website"
    API = "api"


class EmployeeRole(str, Enum):
    """员工角色"""
    MANAGER = "manager"            # 经理
    RECEPTIONIST = "receptionist"  # 前台


class OutboxEventType(str, Enum):
    """出站事件类型"""
    CHECKIN = "checkin"
    CHECKOUT = "checkout"


# ============== 本体对象定义 ==============

class Room(Base):
    """
    房间对象
    status 只由生命周期协调器写入；version 在每次预订写入时递增，用于并发校验
    """
    __tablename__ = "rooms"

    id = Column(Integer, primary_key=True, index=True)
    room_number = Column(String(10), unique=True, nullable=False)  # 房间号
    category = Column(String(50), nullable=False, index=True)      # 房型类别
    bed_type = Column(String(50))                                  # 床型
    view = Column(String(50))                                      # 景观
    rate = Column(Numeric(12, 2), nullable=False)                  # 每晚价格
    adults = Column(Integer, default=2)                            # 可住成人数
    owner = Column(String(100))                                    # 业主
    status = Column(SQLEnum(RoomStatus), default=RoomStatus.AVAILABLE, nullable=False)
    amenities = Column(Text)                                       # 设施列表(JSON)
    is_publicly_visible = Column(Boolean, default=False)           # 是否对外展示
    public_description = Column(Text)                              # 对外描述
    version = Column(Integer, default=0, nullable=False)           # 预订写入版本号
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # 链接
    images = relationship("RoomImage", back_populates="room", cascade="all, delete-orphan")
    bookings = relationship("Booking", back_populates="room")


class RoomImage(Base):
    """房间图片（存储地址）"""
    __tablename__ = "room_images"

    id = Column(Integer, primary_key=True, index=True)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=False)
    url = Column(String(255), nullable=False)

    room = relationship("Room", back_populates="images")


class Booking(Base):
    """
    预订记录 - 住宿与预订的统一抽象（单表继承，按 kind 区分）
    [start_at, end_at) 为占用区间；end_at 为空表示未结束（在住）
    """
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    kind = Column(String(20), nullable=False, index=True)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=False, index=True)

    # 客人信息
    full_name = Column(String(100), nullable=False)
    address = Column(String(255))
    phone = Column(String(20))
    email = Column(String(100))
    id_number = Column(String(50))                       # 证件号码

    start_at = Column(DateTime, nullable=False, index=True)
    end_at = Column(DateTime, index=True)
    status = Column(SQLEnum(BookingStatus), nullable=False, index=True)
    payment_method = Column(SQLEnum(PaymentMethod))
    created_by = Column(Integer, ForeignKey("employees.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # 链接
    room = relationship("Room", back_populates="bookings")
    creator = relationship("Employee", foreign_keys=[created_by])

    __mapper_args__ = {
        "polymorphic_on": kind,
        "polymorphic_identity": "booking",
    }

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_BOOKING_STATUSES

    @property
    def room_number(self):
        return self.room.room_number if self.room else None

    @property
    def room_category(self):
        return self.room.category if self.room else None


class Stay(Booking):
    """
    住宿记录 - 实际入住
    start_at 为入住时间，end_at 为退房时间
    """
    stay_duration = Column(Integer, default=1)           # 住宿天数（退房时重算）
    apply_discount = Column(Boolean, default=False)
    discount_title = Column(String(100))
    total_rent = Column(Numeric(12, 2))
    reservation_id = Column(Integer, ForeignKey("bookings.id"), nullable=True)  # 可能是 walk-in

    __mapper_args__ = {"polymorphic_identity": BookingKind.STAY.value}

    @property
    def check_in_at(self) -> datetime:
        return self.start_at

    @property
    def check_out_at(self):
        return self.end_at


class Reservation(Booking):
    """预订记录 - 未来时段的房间保留"""
    source = Column(SQLEnum(ReservationSource), default=ReservationSource.CRM)
    special_request = Column(Text)
    promo_code = Column(String(50))
    expected_arrival_time = Column(String(10))

    __mapper_args__ = {"polymorphic_identity": BookingKind.RESERVATION.value}


class Discount(Base):
    """
    折扣对象
    有效期 [start_date, end_date] 两端包含
    """
    __tablename__ = "discounts"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(100), nullable=False)
    percentage = Column(Numeric(5, 2), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    created_by = Column(Integer, ForeignKey("employees.id"))
    created_at = Column(DateTime, default=datetime.utcnow)


class OutboxEvent(Base):
    """
    出站事件（事务性发件箱）
    与状态变更在同一事务中写入，提交后异步投递
    """
    __tablename__ = "outbox_events"

    id = Column(Integer, primary_key=True, index=True)
    event_type = Column(SQLEnum(OutboxEventType), nullable=False)
    payload = Column(Text, nullable=False)               # JSON
    attempts = Column(Integer, default=0, nullable=False)
    last_error = Column(Text)
    delivered_at = Column(DateTime, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class Employee(Base):
    """员工对象 - 操作人身份"""
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, nullable=False)  # 登录账号
    password_hash = Column(String(255), nullable=False)  # 密码哈希
    name = Column(String(100), nullable=False)           # 姓名
    role = Column(SQLEnum(EmployeeRole), nullable=False)
    is_active = Column(Boolean, default=True)            # 是否启用
    created_at = Column(DateTime, default=datetime.utcnow)
