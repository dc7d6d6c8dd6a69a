"""
统一鉴权模块
提供JWT令牌生成、验证和角色检查
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel

from .config import get_settings

# Bearer令牌认证
security = HTTPBearer()

# 角色
ROLE_STUDENT = "student"
ROLE_PROFESSOR = "professor"
ROLE_ADMIN = "admin"
ROLE_SYSTEM = "system"  # 内部同步服务使用


class TokenData(BaseModel):
    """令牌数据"""
    user_id: int
    username: str
    role: str = ROLE_STUDENT


def create_token(data: TokenData, expires_delta: Optional[timedelta] = None) -> str:
    """
    创建JWT令牌

    Args:
        data: 令牌数据
        expires_delta: 过期时间增量，默认使用配置值
    """
    settings = get_settings()
    to_encode = data.model_dump()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    to_encode["exp"] = expire
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def create_service_token() -> str:
    """为同步调度器签发内部服务令牌"""
    return create_token(
        TokenData(user_id=0, username="sync-dispatcher", role=ROLE_SYSTEM),
        expires_delta=timedelta(minutes=5)
    )


def decode_token(token: str) -> Optional[TokenData]:
    """解码JWT令牌，无效时返回 None"""
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        return TokenData(**payload)
    except (JWTError, ValueError):
        return None


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> TokenData:
    """获取当前用户（依赖注入用）"""
    token_data = decode_token(credentials.credentials)

    if token_data is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="无效的认证凭据",
            headers={"WWW-Authenticate": "Bearer"}
        )

    return token_data


def require_roles(*roles: str):
    """角色检查依赖工厂"""
    async def role_checker(user: TokenData = Depends(get_current_user)) -> TokenData:
        if user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="没有权限执行此操作"
            )
        return user
    return role_checker


def require_admin():
    """仅允许系统管理员访问（role=admin）"""
    return require_roles(ROLE_ADMIN)


def require_staff():
    """允许教师及管理员访问"""
    return require_roles(ROLE_PROFESSOR, ROLE_ADMIN)
