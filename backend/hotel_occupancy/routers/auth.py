"""
认证路由
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from hotel_occupancy.database import get_db
from hotel_occupancy.models.schemas import LoginRequest, LoginResponse, EmployeeResponse
from hotel_occupancy.models.ontology import Employee
from hotel_occupancy.services.employee_service import EmployeeService
from hotel_occupancy.security.auth import get_current_user
from hotel_occupancy.exceptions import DomainError

router = APIRouter(prefix="/auth", tags=["认证"])


@router.post("/login", response_model=LoginResponse)
def login(data: LoginRequest, db: Session = Depends(get_db)):
    """用户登录"""
    service = EmployeeService(db)
    try:
        result = service.authenticate(data.username, data.password)
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    if not result:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="用户名或密码错误"
        )
    return result


@router.get("/me", response_model=EmployeeResponse)
def get_current_user_info(current_user: Employee = Depends(get_current_user)):
    """获取当前用户信息"""
    return current_user
