"""
Pytest 配置和共享 fixtures
"""
import pytest
from datetime import datetime, timedelta
from decimal import Decimal
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from hotel_occupancy.database import Base, get_db
from hotel_occupancy.models import ontology  # noqa
from hotel_occupancy.models.ontology import Employee, EmployeeRole, Room, RoomStatus
from hotel_occupancy.security.auth import get_password_hash, create_access_token
from hotel_occupancy.services.image_store import LocalImageStore, get_image_store
from hotel_occupancy.main import app


class FakeClock:
    """可手动推进的时钟"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def make_room(db, room_number: str, category: str = "标准间", rate: str = "288",
              status: RoomStatus = RoomStatus.AVAILABLE) -> Room:
    room = Room(
        room_number=room_number,
        category=category,
        rate=Decimal(rate),
        adults=2,
        status=status,
        amenities="[]",
        version=0
    )
    db.add(room)
    db.commit()
    db.refresh(room)
    return room


@pytest.fixture(scope="function")
def db_engine():
    """创建内存数据库引擎"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db_session(session_factory):
    """创建数据库会话"""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def image_store(tmp_path):
    """写入临时目录的图片存储"""
    return LocalImageStore(upload_dir=str(tmp_path / "images"), base_url="/uploads/rooms")


@pytest.fixture(scope="function")
def client(db_session, image_store):
    """创建测试客户端（不触发应用启动流程）"""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_image_store] = lambda: image_store
    yield TestClient(app)
    app.dependency_overrides.clear()


# ============== 时钟与事件 ==============

@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 5, 1, 14, 0))


@pytest.fixture
def published():
    """记录发布的事件；用 published.append 作为事件发布器"""
    return []


# ============== 认证相关 Fixtures ==============

@pytest.fixture
def manager(db_session):
    """创建经理用户"""
    employee = Employee(
        username="manager",
        password_hash=get_password_hash("123456"),
        name="经理",
        role=EmployeeRole.MANAGER,
        is_active=True
    )
    db_session.add(employee)
    db_session.commit()
    db_session.refresh(employee)
    return employee


@pytest.fixture
def receptionist(db_session):
    """创建前台用户"""
    employee = Employee(
        username="front1",
        password_hash=get_password_hash("123456"),
        name="前台小王",
        role=EmployeeRole.RECEPTIONIST,
        is_active=True
    )
    db_session.add(employee)
    db_session.commit()
    db_session.refresh(employee)
    return employee


@pytest.fixture
def manager_token(manager):
    return create_access_token(manager.id, manager.role)


@pytest.fixture
def receptionist_token(receptionist):
    return create_access_token(receptionist.id, receptionist.role)


@pytest.fixture
def manager_auth_headers(manager_token):
    """返回经理认证的请求头"""
    return {"Authorization": f"Bearer {manager_token}"}


@pytest.fixture
def receptionist_auth_headers(receptionist_token):
    """返回前台认证的请求头"""
    return {"Authorization": f"Bearer {receptionist_token}"}


# ============== 实体相关 Fixtures ==============

@pytest.fixture
def room_101(db_session):
    return make_room(db_session, "101", category="豪华间", rate="5000")


@pytest.fixture
def room_202(db_session):
    return make_room(db_session, "202", category="标准间", rate="288")


@pytest.fixture
def sample_rooms(db_session):
    """一组不同房型的房间"""
    return [
        make_room(db_session, "101", category="标准间", rate="288"),
        make_room(db_session, "102", category="标准间", rate="288"),
        make_room(db_session, "201", category="大床房", rate="328"),
        make_room(db_session, "1001", category="豪华间", rate="888"),
    ]
