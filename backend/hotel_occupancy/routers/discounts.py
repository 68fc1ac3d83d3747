"""
折扣管理路由
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from hotel_occupancy.database import get_db
from hotel_occupancy.models.ontology import Employee
from hotel_occupancy.models.schemas import DiscountCreate, DiscountResponse
from hotel_occupancy.services.discount_service import DiscountService
from hotel_occupancy.security.auth import get_current_user, require_manager
from hotel_occupancy.exceptions import DomainError

router = APIRouter(prefix="/discounts", tags=["折扣管理"])


@router.get("", response_model=List[DiscountResponse])
def list_discounts(
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """获取所有折扣"""
    return DiscountService(db).get_discounts()


@router.get("/current", response_model=Optional[DiscountResponse])
def get_current_discount(
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """今天有效的折扣，没有时返回 null"""
    return DiscountService(db).current_discount()


@router.post("", response_model=DiscountResponse)
def create_discount(
    data: DiscountCreate,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_manager)
):
    """创建折扣"""
    service = DiscountService(db)
    try:
        return service.create_discount(data, current_user.id)
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/{discount_id}")
def delete_discount(
    discount_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_manager)
):
    """删除折扣"""
    service = DiscountService(db)
    try:
        service.delete_discount(discount_id)
        return {"message": "删除成功"}
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
