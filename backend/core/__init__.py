"""
核心模块
提供配置、数据库、鉴权、事件与错误处理等基础设施

导出列表：
- 配置管理: get_settings, Settings, reload_settings
- 数据库: Base, get_db, async_session
- 安全认证: get_current_user, require_roles, require_admin, require_staff
- 事件系统: event_bus, Events, Event
- 错误处理: ErrorCode, AppException, success_response, error_response
"""

# 配置管理
from .config import get_settings, Settings, reload_settings

# 数据库
from .database import Base, get_db, async_session, init_db, close_db

# 安全认证
from .security import (
    get_current_user,
    require_roles,
    require_admin,
    require_staff,
    create_token,
    create_service_token,
    decode_token,
    TokenData
)

# 事件系统
from .events import event_bus, Events, Event, EventBus

# 错误处理
from .errors import (
    ErrorCode,
    AppException,
    NotFoundException,
    PermissionException,
    BusinessException,
    UnsupportedSyncError,
    success_response,
    error_response
)

__all__ = [
    "get_settings", "Settings", "reload_settings",
    "Base", "get_db", "async_session", "init_db", "close_db",
    "get_current_user", "require_roles", "require_admin", "require_staff",
    "create_token", "create_service_token", "decode_token", "TokenData",
    "event_bus", "Events", "Event", "EventBus",
    "ErrorCode", "AppException", "NotFoundException", "PermissionException",
    "BusinessException", "UnsupportedSyncError", "success_response", "error_response",
]
