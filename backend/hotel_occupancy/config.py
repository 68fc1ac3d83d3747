"""
应用配置
从环境变量读取配置，支持 .env 文件
"""
import os
from typing import Optional
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """应用设置"""

    # 应用基础配置
    APP_NAME: str = "Hotel Occupancy"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # 数据库配置
    DATABASE_URL: str = "sqlite:///./occupancy.db"

    # JWT 配置
    SECRET_KEY: str = "occupancy-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 480

    # 库存系统通知 (入住/退房事件)
    INVENTORY_API_BASE_URL: Optional[str] = os.environ.get("INVENTORY_API_BASE_URL")
    NOTIFY_TIMEOUT_SECONDS: float = 5.0
    OUTBOX_MAX_ATTEMPTS: int = 5
    OUTBOX_BATCH_SIZE: int = 50

    # 房间图片存储
    IMAGE_UPLOAD_DIR: str = "./uploads/rooms"
    IMAGE_BASE_URL: str = "/uploads/rooms"

    # 房间时间线天数
    TIMELINE_DAYS: int = 30

    # 启动时校正房态
    RECONCILE_ON_STARTUP: bool = True
    # 定时校正房态间隔（秒），0 表示不启用
    RECONCILE_INTERVAL_SECONDS: int = 300

    model_config = ConfigDict(env_file=".env", case_sensitive=True)


# 全局设置实例
settings = Settings()
