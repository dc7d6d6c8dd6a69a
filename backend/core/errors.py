"""
标准错误码体系
提供统一的错误码定义和异常处理
"""

from typing import Optional, Any, Dict
from enum import IntEnum
from fastapi import status
from fastapi.responses import JSONResponse


class ErrorCode(IntEnum):
    """
    标准错误码

    错误码规范：
    - 0: 成功
    - 1xxx: 系统级错误
    - 2xxx: 认证/授权错误
    - 3xxx: 业务通用错误
    - 4xxx: 模块级错误
    """

    # ==================== 成功 ====================
    SUCCESS = 0

    # ==================== 系统级错误 (1xxx) ====================
    INTERNAL_ERROR = 1000           # 服务器内部错误
    SERVICE_UNAVAILABLE = 1004      # 服务不可用

    # ==================== 认证/授权错误 (2xxx) ====================
    UNAUTHORIZED = 2001             # 未认证（未登录）
    PERMISSION_DENIED = 2004        # 权限不足

    # ==================== 业务通用错误 (3xxx) ====================
    VALIDATION_ERROR = 3001         # 参数验证失败
    RESOURCE_NOT_FOUND = 3002       # 资源不存在
    RESOURCE_CONFLICT = 3004        # 资源冲突
    OPERATION_FAILED = 3005         # 操作失败

    # ==================== 模块级错误 (4xxx) ====================
    # 4100-4199: 考试模块
    EXAM_NOT_FOUND = 4101
    EXAM_SCORE_NOT_RELEASED = 4102

    # 4200-4299: 离线同步 / 备份
    SYNC_NOT_SUPPORTED = 4201
    BACKUP_NOT_FOUND = 4210
    BACKUP_FAILED = 4211


# 错误码对应的默认消息
ERROR_MESSAGES: Dict[int, str] = {
    ErrorCode.SUCCESS: "操作成功",

    # 系统级
    ErrorCode.INTERNAL_ERROR: "服务器内部错误，请稍后重试",
    ErrorCode.SERVICE_UNAVAILABLE: "服务暂时不可用",

    # 认证/授权
    ErrorCode.UNAUTHORIZED: "请先登录",
    ErrorCode.PERMISSION_DENIED: "没有权限执行此操作",

    # 业务通用
    ErrorCode.VALIDATION_ERROR: "参数验证失败",
    ErrorCode.RESOURCE_NOT_FOUND: "请求的资源不存在",
    ErrorCode.RESOURCE_CONFLICT: "资源冲突",
    ErrorCode.OPERATION_FAILED: "操作失败",

    # 模块级
    ErrorCode.EXAM_NOT_FOUND: "试卷不存在",
    ErrorCode.EXAM_SCORE_NOT_RELEASED: "成绩尚未发布",
    ErrorCode.SYNC_NOT_SUPPORTED: "不支持的同步操作",
    ErrorCode.BACKUP_NOT_FOUND: "备份文件不存在",
    ErrorCode.BACKUP_FAILED: "备份失败",
}

# 错误码对应的 HTTP 状态码
ERROR_HTTP_STATUS: Dict[int, int] = {
    ErrorCode.SUCCESS: status.HTTP_200_OK,

    # 系统级 -> 500
    ErrorCode.INTERNAL_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.SERVICE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,

    # 认证/授权 -> 401/403
    ErrorCode.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.PERMISSION_DENIED: status.HTTP_403_FORBIDDEN,

    # 业务通用 -> 400/404/409
    ErrorCode.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorCode.RESOURCE_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.RESOURCE_CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCode.OPERATION_FAILED: status.HTTP_400_BAD_REQUEST,

    # 模块级
    ErrorCode.EXAM_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.EXAM_SCORE_NOT_RELEASED: status.HTTP_403_FORBIDDEN,
    ErrorCode.SYNC_NOT_SUPPORTED: status.HTTP_400_BAD_REQUEST,
    ErrorCode.BACKUP_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.BACKUP_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class AppException(Exception):
    """
    应用异常基类

    用于抛出业务异常，包含错误码和详细信息

    Usage:
        raise AppException(ErrorCode.RESOURCE_NOT_FOUND, "提交记录不存在")
    """

    def __init__(
        self,
        code: int = ErrorCode.INTERNAL_ERROR,
        message: Optional[str] = None,
        data: Any = None
    ):
        self.code = code
        self.message = message or ERROR_MESSAGES.get(code, "未知错误")
        self.data = data
        self.http_status = ERROR_HTTP_STATUS.get(code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        super().__init__(self.message)

    def to_response(self) -> JSONResponse:
        """转换为 JSONResponse"""
        return JSONResponse(
            status_code=self.http_status,
            content=self.to_dict()
        )

    def to_dict(self) -> dict:
        """转换为字典"""
        return {
            "code": self.code,
            "message": self.message,
            "data": self.data
        }


class NotFoundException(AppException):
    """资源不存在异常"""

    def __init__(self, resource: str = "资源", resource_id: Any = None):
        message = f"{resource}不存在"
        if resource_id:
            message = f"{resource} (ID: {resource_id}) 不存在"
        super().__init__(
            code=ErrorCode.RESOURCE_NOT_FOUND,
            message=message
        )


class PermissionException(AppException):
    """权限异常"""

    def __init__(self, message: str = "没有权限执行此操作"):
        super().__init__(
            code=ErrorCode.PERMISSION_DENIED,
            message=message
        )


class BusinessException(AppException):
    """业务异常"""

    def __init__(
        self,
        code: int = ErrorCode.OPERATION_FAILED,
        message: str = "操作失败",
        data: Any = None
    ):
        super().__init__(code=code, message=message, data=data)


class UnsupportedSyncError(BusinessException):
    """集合或动作没有注册同步处理器"""

    def __init__(self, collection: str, action: Optional[str] = None):
        if action:
            message = f"集合 {collection} 不支持同步动作 {action}"
        else:
            message = f"集合 {collection} 不支持同步"
        super().__init__(
            code=ErrorCode.SYNC_NOT_SUPPORTED,
            message=message,
            data={"collection": collection, "action": action}
        )
        self.collection = collection
        self.action = action


# ==================== 异常处理器 ====================

def register_exception_handlers(app):
    """
    注册异常处理器

    在 main.py 中调用：
        from core.errors import register_exception_handlers
        register_exception_handlers(app)
    """
    from fastapi.exceptions import RequestValidationError
    from starlette.exceptions import HTTPException as StarletteHTTPException

    @app.exception_handler(AppException)
    async def handle_app_exception(request, exc: AppException):
        return exc.to_response()

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request, exc: RequestValidationError):
        errors = []
        for error in exc.errors():
            errors.append({
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"]
            })

        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "code": ErrorCode.VALIDATION_ERROR,
                "message": "参数验证失败",
                "data": {"errors": errors}
            }
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request, exc: StarletteHTTPException):
        # 映射 HTTP 状态码到业务错误码
        code_mapping = {
            401: ErrorCode.UNAUTHORIZED,
            403: ErrorCode.PERMISSION_DENIED,
            404: ErrorCode.RESOURCE_NOT_FOUND,
            500: ErrorCode.INTERNAL_ERROR,
            503: ErrorCode.SERVICE_UNAVAILABLE,
        }

        code = code_mapping.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
        message = str(exc.detail) if exc.detail else ERROR_MESSAGES.get(code, "请求失败")

        return JSONResponse(
            status_code=exc.status_code,
            content={
                "code": code,
                "message": message,
                "data": None
            },
            headers=getattr(exc, "headers", None)
        )


# ==================== 响应构建器 ====================

def success_response(
    data: Any = None,
    message: str = "操作成功"
) -> dict:
    """构建成功响应"""
    return {
        "code": ErrorCode.SUCCESS,
        "message": message,
        "data": data
    }


def error_response(
    code: int = ErrorCode.INTERNAL_ERROR,
    message: Optional[str] = None,
    data: Any = None
) -> dict:
    """构建错误响应"""
    return {
        "code": code,
        "message": message or ERROR_MESSAGES.get(code, "操作失败"),
        "data": data
    }
