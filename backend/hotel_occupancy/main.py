"""
房态占用引擎主应用入口
散客入住与预订共用一套房间可用性引擎
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from hotel_occupancy.config import settings
from hotel_occupancy.database import init_db, SessionLocal
from hotel_occupancy.exceptions import DomainError
from hotel_occupancy.routers import auth, rooms, guests, reservations, discounts

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # 初始化数据库
    init_db()

    # 注册事件处理器
    from hotel_occupancy.services.event_handlers import register_event_handlers
    register_event_handlers()

    # 按预订记录校正房态
    if settings.RECONCILE_ON_STARTUP:
        from hotel_occupancy.services.reconcile_service import RoomStatusReconciler
        db = SessionLocal()
        try:
            corrections = RoomStatusReconciler(db).reconcile()
            if corrections:
                logger.warning(f"Startup reconciliation corrected {len(corrections)} room(s)")
        finally:
            db.close()

    # 投递上次未送达的出站事件
    from hotel_occupancy.services.outbox import outbox_dispatcher
    outbox_dispatcher.dispatch_in_background()

    # 定时校正房态
    from hotel_occupancy.services.scheduler import ReconcileScheduler
    reconcile_scheduler = ReconcileScheduler()
    reconcile_scheduler.start()

    yield

    reconcile_scheduler.shutdown()
    outbox_dispatcher.shutdown()


# 创建应用
app = FastAPI(
    title=settings.APP_NAME,
    description="酒店房态占用引擎：散客入住、预订、退房与房间可用性",
    version="1.0.0",
    lifespan=lifespan
)

# CORS 配置
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # 生产环境应限制具体域名
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    """路由未处理的领域异常映射为对应的 HTTP 状态码"""
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# 注册路由
app.include_router(auth.router)
app.include_router(rooms.router)
app.include_router(guests.router)
app.include_router(reservations.router)
app.include_router(discounts.router)


@app.get("/")
def root():
    """根路径"""
    return {
        "name": settings.APP_NAME,
        "version": "1.0.0",
        "status": "running"
    }


@app.get("/health")
def health_check():
    """健康检查"""
    return {"status": "healthy"}
