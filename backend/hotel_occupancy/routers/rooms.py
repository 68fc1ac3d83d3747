"""
房间管理路由
房间登记、图片、可用性查询、时间线、维修切换、房态对账
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from hotel_occupancy.database import get_db
from hotel_occupancy.models.ontology import Employee, RoomStatus
from hotel_occupancy.models.schemas import (
    RoomCreate, RoomUpdate, RoomResponse, ImageUpload, MaintenanceUpdate,
    RoomStatusCorrection, TimelineEntry
)
from hotel_occupancy.services.room_service import RoomService
from hotel_occupancy.services.availability_service import AvailabilityService, parse_date_range
from hotel_occupancy.services.booking_service import BookingService
from hotel_occupancy.services.lifecycle_service import LifecycleService
from hotel_occupancy.services.reconcile_service import RoomStatusReconciler
from hotel_occupancy.services.image_store import ImageStore, get_image_store
from hotel_occupancy.security.auth import get_current_user, require_manager
from hotel_occupancy.exceptions import DomainError

router = APIRouter(prefix="/rooms", tags=["房间管理"])


@router.get("", response_model=List[RoomResponse])
def list_rooms(
    category: Optional[str] = None,
    status: Optional[RoomStatus] = None,
    is_publicly_visible: Optional[bool] = None,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """获取房间列表"""
    service = RoomService(db)
    return service.get_rooms(category, status, is_publicly_visible)


@router.get("/summary")
def get_room_status_summary(
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """房态统计"""
    return RoomService(db).get_room_status_summary()


@router.get("/available", response_model=List[RoomResponse])
def list_available_rooms(
    checkin: Optional[str] = Query(None, description="入住日期 YYYY-MM-DD"),
    checkout: Optional[str] = Query(None, description="离店日期 YYYY-MM-DD"),
    category: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """获取区间内可用房间"""
    try:
        start, end = parse_date_range(checkin, checkout)
        return AvailabilityService(db).find_available(start, end, category)
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/available/by-category")
def get_availability_by_category(
    checkin: Optional[str] = Query(None, description="入住日期 YYYY-MM-DD"),
    checkout: Optional[str] = Query(None, description="离店日期 YYYY-MM-DD"),
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """按房型类别统计可用房间数"""
    try:
        start, end = parse_date_range(checkin, checkout)
        return list(AvailabilityService(db).availability_by_category(start, end).values())
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/reconcile", response_model=List[RoomStatusCorrection])
def reconcile_room_status(
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_manager)
):
    """按预订记录校正房态"""
    return RoomStatusReconciler(db).reconcile()


@router.get("/{room_id}", response_model=RoomResponse)
def get_room(
    room_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """获取单个房间"""
    try:
        return RoomService(db).require_room(room_id)
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("", response_model=RoomResponse)
def create_room(
    data: RoomCreate,
    db: Session = Depends(get_db),
    image_store: ImageStore = Depends(get_image_store),
    current_user: Employee = Depends(require_manager)
):
    """创建房间"""
    service = RoomService(db, image_store=image_store)
    try:
        return service.create_room(data)
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put("/{room_id}", response_model=RoomResponse)
def update_room(
    room_id: int,
    data: RoomUpdate,
    db: Session = Depends(get_db),
    image_store: ImageStore = Depends(get_image_store),
    current_user: Employee = Depends(require_manager)
):
    """更新房间"""
    service = RoomService(db, image_store=image_store)
    try:
        return service.update_room(room_id, data)
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/{room_id}")
def delete_room(
    room_id: int,
    db: Session = Depends(get_db),
    image_store: ImageStore = Depends(get_image_store),
    current_user: Employee = Depends(require_manager)
):
    """删除房间"""
    service = RoomService(db, image_store=image_store)
    try:
        service.delete_room(room_id)
        return {"message": "删除成功"}
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{room_id}/images", response_model=RoomResponse)
def add_room_images(
    room_id: int,
    images: List[ImageUpload],
    db: Session = Depends(get_db),
    image_store: ImageStore = Depends(get_image_store),
    current_user: Employee = Depends(require_manager)
):
    """上传房间图片"""
    service = RoomService(db, image_store=image_store)
    try:
        return service.add_images(room_id, images)
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/{room_id}/timeline", response_model=List[TimelineEntry])
def get_room_timeline(
    room_id: int,
    days: Optional[int] = Query(None, ge=1, le=365),
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """房间时间线（在住与预订）"""
    try:
        return BookingService(db).get_room_timeline(room_id, days)
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put("/{room_id}/maintenance", response_model=RoomResponse)
def set_room_maintenance(
    room_id: int,
    data: MaintenanceUpdate,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_manager)
):
    """设置/解除维修"""
    service = LifecycleService(db)
    try:
        return service.set_maintenance(room_id, data.maintenance, current_user.id)
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
