"""
预订管理路由
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from hotel_occupancy.database import get_db
from hotel_occupancy.models.ontology import Employee, BookingStatus
from hotel_occupancy.models.schemas import (
    ReservationCreate, ReservationResponse, ReservationCheckIn, StayResponse
)
from hotel_occupancy.services.booking_service import BookingService
from hotel_occupancy.services.lifecycle_service import LifecycleService
from hotel_occupancy.security.auth import get_current_user, require_receptionist_or_manager
from hotel_occupancy.exceptions import DomainError

router = APIRouter(prefix="/reservations", tags=["预订管理"])


@router.get("", response_model=List[ReservationResponse])
def list_reservations(
    status: Optional[BookingStatus] = None,
    room_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """获取预订列表"""
    return BookingService(db).get_reservations(status, room_id)


@router.post("", response_model=ReservationResponse)
def create_reservation(
    data: ReservationCreate,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_receptionist_or_manager)
):
    """创建预订"""
    service = LifecycleService(db)
    try:
        return service.reserve(data, current_user.id)
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/{reservation_id}", response_model=ReservationResponse)
def get_reservation(
    reservation_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """获取预订详情"""
    try:
        return BookingService(db).get_reservation(reservation_id)
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{reservation_id}/cancel", response_model=ReservationResponse)
def cancel_reservation(
    reservation_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_receptionist_or_manager)
):
    """取消预订"""
    service = LifecycleService(db)
    try:
        return service.cancel_reservation(reservation_id, current_user.id)
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{reservation_id}/checkin", response_model=StayResponse)
def check_in_reservation(
    reservation_id: int,
    data: ReservationCheckIn,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_receptionist_or_manager)
):
    """预订入住"""
    service = LifecycleService(db)
    try:
        return service.check_in_reservation(reservation_id, data, current_user.id)
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
