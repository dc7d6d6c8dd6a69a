"""
数据备份路由
手动备份、备份列表与恢复
"""

import re
import logging

from fastapi import APIRouter, Depends

from core.errors import AppException, ErrorCode, BusinessException, success_response
from core.security import TokenData, require_admin, require_staff
from utils.backup import BackupEngine, get_backup_engine

router = APIRouter(prefix="/api/backup", tags=["数据备份"])
logger = logging.getLogger(__name__)

# 只允许恢复备份目录下的完整备份文件
BACKUP_NAME_PATTERN = re.compile(r"^backup-[A-Za-z0-9\-]+\.json$")


@router.post("/manual", summary="手动备份")
async def manual_backup(
    backup: BackupEngine = Depends(get_backup_engine),
    user: TokenData = Depends(require_staff())
):
    logger.info(f"用户 {user.username} 发起手动备份")
    try:
        result = await backup.backup_collections()
    except OSError as e:
        logger.error(f"手动备份失败: {e}", exc_info=True)
        raise AppException(ErrorCode.BACKUP_FAILED, f"备份失败: {e}")
    return success_response(data=result, message="备份完成")


@router.get("/list", summary="备份列表")
async def list_backups(
    backup: BackupEngine = Depends(get_backup_engine),
    user: TokenData = Depends(require_staff())
):
    items = backup.list_backups()
    return success_response(data={"items": items, "total": len(items)})


@router.post("/restore/{filename}", summary="从备份恢复")
async def restore_backup(
    filename: str,
    backup: BackupEngine = Depends(get_backup_engine),
    user: TokenData = Depends(require_admin())
):
    """部分集合恢复失败时 success=false，报告中列出每个集合的结果"""
    if not BACKUP_NAME_PATTERN.match(filename):
        raise BusinessException(ErrorCode.VALIDATION_ERROR, "无效的备份文件名")

    path = backup.backup_dir / filename
    if not path.is_file():
        raise AppException(ErrorCode.BACKUP_NOT_FOUND)

    logger.warning(f"管理员 {user.username} 从备份恢复: {filename}")
    report = await backup.restore_from_backup(path)
    message = "恢复完成" if report.success else "部分集合恢复失败"
    return success_response(data=report.model_dump(), message=message)
