"""
客人（住宿记录）路由
散客入住、在住查询、退房、删除
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from hotel_occupancy.database import get_db
from hotel_occupancy.models.ontology import Employee, BookingStatus
from hotel_occupancy.models.schemas import WalkInCheckIn, StayResponse
from hotel_occupancy.services.booking_service import BookingService
from hotel_occupancy.services.lifecycle_service import LifecycleService
from hotel_occupancy.security.auth import get_current_user, require_manager, require_receptionist_or_manager
from hotel_occupancy.exceptions import DomainError

router = APIRouter(prefix="/guests", tags=["客人管理"])


@router.get("", response_model=List[StayResponse])
def list_stays(
    status: Optional[BookingStatus] = None,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """获取住宿记录"""
    return BookingService(db).get_stays(status)


@router.get("/by-category", response_model=List[StayResponse])
def list_checked_in_by_category(
    category: Optional[str] = Query(None, description="房型类别"),
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """某房型类别的在住客人"""
    try:
        return BookingService(db).get_checked_in_by_category(category)
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("", response_model=StayResponse)
def walk_in_check_in(
    data: WalkInCheckIn,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_receptionist_or_manager)
):
    """散客入住"""
    service = LifecycleService(db)
    try:
        return service.check_in(data, current_user.id)
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/{stay_id}", response_model=StayResponse)
def get_stay(
    stay_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """获取住宿记录详情"""
    try:
        return BookingService(db).get_stay(stay_id)
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{stay_id}/checkout", response_model=StayResponse)
def check_out(
    stay_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_receptionist_or_manager)
):
    """退房"""
    service = LifecycleService(db)
    try:
        return service.check_out(stay_id, current_user.id)
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/{stay_id}")
def delete_stay(
    stay_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_manager)
):
    """删除住宿记录（需已退房）"""
    service = LifecycleService(db)
    try:
        service.delete_stay(stay_id, current_user.id)
        return {"message": "删除成功"}
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
