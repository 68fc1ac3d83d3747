"""
定时任务 - 基于 APScheduler 的后台调度
周期性按预订记录校正房态（例如预订过期未入住后释放房间）
"""
import logging
from typing import Callable, Optional
from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy.orm import Session
from hotel_occupancy.config import settings
from hotel_occupancy.database import SessionLocal
from hotel_occupancy.exceptions import Conflict
from hotel_occupancy.services.reconcile_service import RoomStatusReconciler

logger = logging.getLogger(__name__)

RECONCILE_JOB_ID = "room_status_reconcile"


def run_reconcile(session_factory: Callable[[], Session] = SessionLocal) -> int:
    """执行一次房态校正，返回修正的房间数；与前台操作并发冲突时留到下一轮"""
    db = session_factory()
    try:
        corrections = RoomStatusReconciler(db).reconcile()
    except Conflict as e:
        logger.warning(f"Scheduled reconciliation skipped: {e}")
        return 0
    finally:
        db.close()

    if corrections:
        logger.warning(f"Scheduled reconciliation corrected {len(corrections)} room(s)")
    return len(corrections)


class ReconcileScheduler:
    """房态校正调度器"""

    def __init__(self, interval_seconds: Optional[int] = None,
                 session_factory: Callable[[], Session] = SessionLocal,
                 scheduler: Optional[BackgroundScheduler] = None):
        self.interval_seconds = (
            settings.RECONCILE_INTERVAL_SECONDS if interval_seconds is None else interval_seconds
        )
        self._session_factory = session_factory
        self._scheduler = scheduler or BackgroundScheduler()

    @property
    def scheduler(self) -> BackgroundScheduler:
        return self._scheduler

    @property
    def enabled(self) -> bool:
        return self.interval_seconds > 0

    def add_jobs(self) -> None:
        if not self.enabled:
            return
        self._scheduler.add_job(
            run_reconcile,
            trigger="interval",
            seconds=self.interval_seconds,
            kwargs={"session_factory": self._session_factory},
            id=RECONCILE_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info(f"Job added: {RECONCILE_JOB_ID} every {self.interval_seconds}s")

    def start(self) -> None:
        """添加任务并启动调度器；间隔为 0 时不启动"""
        if not self.enabled:
            logger.info("Scheduled reconciliation disabled")
            return
        self.add_jobs()
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("APScheduler started")

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("APScheduler shut down")
