"""
Pydantic 模式定义
用于 API 请求/响应验证
"""
import json
from datetime import datetime, date
from decimal import Decimal
from typing import Optional, List, Any
from pydantic import BaseModel, Field, field_validator, ConfigDict
from hotel_occupancy.models.ontology import (
    RoomStatus, BookingKind, BookingStatus, PaymentMethod, ReservationSource, EmployeeRole
)


# ============== 房间 Schemas ==============

class RoomBase(BaseModel):
    room_number: str = Field(..., max_length=10)
    category: str = Field(..., max_length=50)
    bed_type: Optional[str] = Field(None, max_length=50)
    view: Optional[str] = Field(None, max_length=50)
    rate: Decimal = Field(..., ge=0)
    adults: int = Field(default=2, ge=1)
    owner: Optional[str] = Field(None, max_length=100)
    amenities: List[str] = Field(default_factory=list)
    is_publicly_visible: bool = False
    public_description: Optional[str] = None


class ImageUpload(BaseModel):
    filename: str = Field(..., max_length=200)
    content_base64: str


class RoomCreate(RoomBase):
    # 新建房间只允许空闲或维修
    status: Optional[RoomStatus] = None
    images: List[ImageUpload] = Field(default_factory=list)

    @field_validator('status')
    @classmethod
    def check_initial_status(cls, v: Optional[RoomStatus]) -> Optional[RoomStatus]:
        if v is not None and v not in (RoomStatus.AVAILABLE, RoomStatus.MAINTENANCE):
            raise ValueError("新建房间状态只能为 available 或 maintenance")
        return v


class RoomUpdate(BaseModel):
    room_number: Optional[str] = Field(None, max_length=10)
    category: Optional[str] = Field(None, max_length=50)
    bed_type: Optional[str] = Field(None, max_length=50)
    view: Optional[str] = Field(None, max_length=50)
    rate: Optional[Decimal] = Field(None, ge=0)
    adults: Optional[int] = Field(None, ge=1)
    owner: Optional[str] = Field(None, max_length=100)
    amenities: Optional[List[str]] = None
    is_publicly_visible: Optional[bool] = None
    public_description: Optional[str] = None
    deleted_images: List[str] = Field(default_factory=list)
    new_images: List[ImageUpload] = Field(default_factory=list)


class RoomResponse(RoomBase):
    id: int
    status: RoomStatus
    images: List[str] = Field(default_factory=list)
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)

    @field_validator('amenities', mode='before')
    @classmethod
    def parse_amenities(cls, v: Any) -> List[str]:
        if v is None:
            return []
        if isinstance(v, str):
            return json.loads(v) if v else []
        return v

    @field_validator('images', mode='before')
    @classmethod
    def image_urls(cls, v: Any) -> List[str]:
        return [getattr(img, 'url', img) for img in (v or [])]


class MaintenanceUpdate(BaseModel):
    maintenance: bool


class RoomStatusCorrection(BaseModel):
    room_id: int
    room_number: str
    old_status: RoomStatus
    new_status: RoomStatus


# ============== 客人 Schemas ==============

class GuestInfo(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=100)
    address: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=20)
    email: Optional[str] = Field(None, max_length=100)
    id_number: Optional[str] = Field(None, max_length=50)

    @field_validator('full_name', 'address', 'phone', 'id_number')
    @classmethod
    def strip_text(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if isinstance(v, str) else v

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().lower() if isinstance(v, str) else v


# ============== 入住 Schemas ==============

class WalkInCheckIn(GuestInfo):
    room_number: str
    stay_duration: int = Field(..., ge=1)
    payment_method: Optional[PaymentMethod] = None
    apply_discount: bool = False


class ReservationCheckIn(BaseModel):
    # 为空时按预订区间计算
    stay_duration: Optional[int] = Field(None, ge=1)
    payment_method: Optional[PaymentMethod] = None
    apply_discount: bool = False


class BookingResponse(BaseModel):
    id: int
    kind: BookingKind
    room_id: int
    room_number: Optional[str] = None
    room_category: Optional[str] = None
    full_name: str
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    id_number: Optional[str] = None
    start_at: datetime
    end_at: Optional[datetime] = None
    status: BookingStatus
    payment_method: Optional[PaymentMethod] = None
    created_by: int
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class StayResponse(BookingResponse):
    stay_duration: int
    apply_discount: bool = False
    discount_title: Optional[str] = None
    total_rent: Optional[Decimal] = None
    reservation_id: Optional[int] = None


# ============== 预订 Schemas ==============

class ReservationCreate(GuestInfo):
    room_number: str
    start_at: datetime
    end_at: datetime
    expected_arrival_time: Optional[str] = Field(None, max_length=10)
    source: ReservationSource = ReservationSource.CRM
    special_request: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None
    promo_code: Optional[str] = Field(None, max_length=50)


class ReservationResponse(BookingResponse):
    source: Optional[ReservationSource] = None
    special_request: Optional[str] = None
    promo_code: Optional[str] = None
    expected_arrival_time: Optional[str] = None


class TimelineEntry(BaseModel):
    booking_id: int
    type: str
    name: str
    start_at: datetime
    end_at: Optional[datetime] = None
    status: BookingStatus


# ============== 折扣 Schemas ==============

class DiscountCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=100)
    percentage: Decimal = Field(..., gt=0, le=100)
    start_date: date
    end_date: date


class DiscountResponse(DiscountCreate):
    id: int
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


# ============== 认证 Schemas ==============

class LoginRequest(BaseModel):
    username: str
    password: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    employee: dict


class EmployeeResponse(BaseModel):
    id: int
    username: str
    name: str
    role: EmployeeRole
    is_active: bool
    model_config = ConfigDict(from_attributes=True)
