"""
初始化数据脚本
创建：员工账号、示例房间、示例折扣

默认账号（密码均为 123456）：
  manager        张经理       经理
  front1         李前台       前台
"""
import json
from datetime import date, timedelta
from decimal import Decimal
from hotel_occupancy.database import SessionLocal, init_db
from hotel_occupancy.models.ontology import Room, RoomStatus, Employee, EmployeeRole, Discount
from hotel_occupancy.services.employee_service import EmployeeService


def init_employees(db):
    """初始化员工"""
    service = EmployeeService(db)
    employees_data = [
        {'username': 'manager', 'name': '张经理', 'role': EmployeeRole.MANAGER},
        {'username': 'front1', 'name': '李前台', 'role': EmployeeRole.RECEPTIONIST},
    ]

    for data in employees_data:
        if service.get_employee_by_username(data['username']):
            continue
        service.create_employee(data['username'], '123456', data['name'], data['role'])
        print(f"创建员工: {data['name']} ({data['username']})")


def init_rooms(db):
    """初始化房间：2-4 层，每层 5 间"""
    categories = {
        2: ('标准间', 'twin', Decimal('288')),
        3: ('大床房', 'king', Decimal('328')),
        4: ('豪华间', 'king', Decimal('458')),
    }

    for floor, (category, bed_type, rate) in categories.items():
        for i in range(1, 6):
            room_number = f"{floor}{i:02d}"
            if db.query(Room).filter(Room.room_number == room_number).first():
                continue
            db.add(Room(
                room_number=room_number,
                category=category,
                bed_type=bed_type,
                view='city' if i % 2 else 'garden',
                rate=rate,
                adults=2,
                status=RoomStatus.AVAILABLE,
                amenities=json.dumps(['wifi', 'tv'], ensure_ascii=False),
                is_publicly_visible=True,
                version=0
            ))
            print(f"创建房间: {room_number} ({category})")

    db.commit()


def init_discounts(db):
    """初始化本周折扣"""
    if db.query(Discount).count() > 0:
        return

    manager = db.query(Employee).filter(Employee.username == 'manager').first()
    today = date.today()
    db.add(Discount(
        title='开业特惠',
        percentage=Decimal('10'),
        start_date=today,
        end_date=today + timedelta(days=7),
        created_by=manager.id if manager else None
    ))
    db.commit()
    print("创建折扣: 开业特惠 10%")


def main():
    print("=" * 50)
    print("开始初始化数据...")
    print("=" * 50)

    init_db()
    db = SessionLocal()
    try:
        init_employees(db)
        init_rooms(db)
        init_discounts(db)
    finally:
        db.close()

    print("=" * 50)
    print("初始化完成！")
    print("=" * 50)


if __name__ == "__main__":
    main()
