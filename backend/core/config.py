"""
系统配置管理
统一管理所有配置项，支持环境变量覆盖
"""

from pathlib import Path
from pydantic_settings import BaseSettings
from typing import Optional, List
from urllib.parse import quote_plus

# 获取backend目录的绝对路径
BACKEND_DIR = Path(__file__).parent.parent.resolve()
ENV_FILE = BACKEND_DIR / ".env"


class Settings(BaseSettings):
    """系统配置"""

    # 应用信息
    app_name: str = "Provas Online"
    app_version: str = "1.0.0"
    debug: bool = False

    # 数据库配置（database_url 优先，测试环境使用 sqlite+aiosqlite）
    database_url: Optional[str] = None
    db_host: str = "localhost"
    db_port: int = 3306
    db_user: str = "root"
    db_password: str = ""
    db_name: str = "provas_online"

    @property
    def db_url(self) -> str:
        if self.database_url:
            return self.database_url
        encoded_user = quote_plus(self.db_user)
        encoded_pwd = quote_plus(self.db_password)
        return f"mysql+aiomysql://{encoded_user}:{encoded_pwd}@{self.db_host}:{self.db_port}/{self.db_name}"

    @property
    def is_sqlite(self) -> bool:
        return self.db_url.startswith("sqlite")

    # JWT令牌配置
    jwt_secret: str = "your-secret-key-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60

    # 离线同步队列
    sync_queue_dir: str = str(BACKEND_DIR / "sync-queue")
    sync_max_attempts: int = 5  # 超过后移入 failed 目录
    sync_request_timeout: float = 10.0  # 单次同步请求超时（秒）
    sync_drain_interval: int = 300  # 定时处理队列间隔（秒）
    api_base_url: str = "http://localhost:8000"  # 权威服务器地址

    # 连接状态检测
    connectivity_check_interval: int = 10  # 检测间隔（秒）
    health_check_timeout: float = 5.0

    # 数据备份
    backup_dir: str = str(BACKEND_DIR / "backups")
    backup_collections: List[str] = ["provas", "alunos", "respostas", "turmas", "usuarios"]
    backup_keep_full: int = 7  # 保留最近的完整备份数
    backup_keep_summaries: int = 30  # 保留最近的摘要数
    backup_hour: int = 2
    backup_minute: int = 0

    # 是否在启动时启动后台调度（测试环境关闭）
    scheduler_enabled: bool = True

    class Config:
        env_file = str(ENV_FILE)
        env_file_encoding = "utf-8"


_settings_instance: Optional[Settings] = None


def get_settings() -> Settings:
    """
    获取配置单例
    支持运行时重新加载
    """
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()

        if not _settings_instance.debug and _settings_instance.jwt_secret == "your-secret-key-change-in-production":
            import logging
            logging.getLogger("core.config").warning(
                "🚨 [安全警告] 您正在生产环境模式下使用默认的 JWT_SECRET！"
                "请立即在 .env 文件中配置 JWT_SECRET。"
            )
    return _settings_instance


def reload_settings():
    """重新加载配置"""
    global _settings_instance
    _settings_instance = Settings()
    return _settings_instance
