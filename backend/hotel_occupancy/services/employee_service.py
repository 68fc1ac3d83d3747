"""
员工服务 - 登录认证
"""
from typing import Optional
from sqlalchemy.orm import Session
from hotel_occupancy.models.ontology import Employee, EmployeeRole
from hotel_occupancy.security.auth import get_password_hash, verify_password, create_access_token
from hotel_occupancy.exceptions import Conflict, Unauthorized


class EmployeeService:
    """员工服务"""

    def __init__(self, db: Session):
        self.db = db

    def get_employee_by_username(self, username: str) -> Optional[Employee]:
        return self.db.query(Employee).filter(Employee.username == username).first()

    def create_employee(self, username: str, password: str, name: str,
                        role: EmployeeRole) -> Employee:
        """创建员工"""
        if self.get_employee_by_username(username):
            raise Conflict(f"用户名 '{username}' 已存在")

        employee = Employee(
            username=username,
            password_hash=get_password_hash(password),
            name=name,
            role=role,
            is_active=True
        )
        self.db.add(employee)
        self.db.commit()
        self.db.refresh(employee)
        return employee

    def authenticate(self, username: str, password: str) -> Optional[dict]:
        """认证登录，用户名或密码错误返回 None"""
        employee = self.get_employee_by_username(username)
        if not employee:
            return None

        if not employee.is_active:
            raise Unauthorized("账号已停用")

        if not verify_password(password, employee.password_hash):
            return None

        token = create_access_token(employee.id, employee.role)

        return {
            'access_token': token,
            'token_type': 'bearer',
            'employee': {
                'id': employee.id,
                'username': employee.username,
                'name': employee.name,
                'role': employee.role,
                'is_active': employee.is_active
            }
        }
