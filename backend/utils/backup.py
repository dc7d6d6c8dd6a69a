"""
数据备份工具
将允许备份的集合（数据表）导出为 JSON 快照，并支持按快照恢复
"""

import json
import base64
import logging
from pathlib import Path
from decimal import Decimal
from datetime import date, datetime, time, timezone
from typing import Any, Dict, List, Optional, Sequence, Union

import aiofiles
from sqlalchemy import Date, DateTime, MetaData, Table, Time, inspect, select
from sqlalchemy.ext.asyncio import AsyncEngine

from core.config import get_settings
from core.database import Base, load_models
from core.events import event_bus, Events
from schemas.backup import BackupFileInfo, BackupResult, CollectionRestoreResult, RestoreReport
from utils.timezone import iso_utc, file_stamp

logger = logging.getLogger(__name__)

BACKUP_PREFIX = "backup-"
SUMMARY_PREFIX = "summary-"
FILE_SUFFIX = ".json"


def _json_default(value: Any):
    """数据库值转 JSON"""
    if isinstance(value, datetime):
        return iso_utc(value)
    if isinstance(value, (date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, bytes):
        return base64.b64encode(value).decode("ascii")
    raise TypeError(f"无法序列化类型 {type(value).__name__}")


def _parse_datetime(value: str) -> datetime:
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def _coerce_row(table: Table, row: Dict[str, Any]) -> Dict[str, Any]:
    """按列类型还原 JSON 中的值，忽略表中不存在的字段"""
    values = {}
    for column in table.columns:
        if column.name not in row:
            continue
        value = row[column.name]
        if isinstance(value, str):
            if isinstance(column.type, DateTime):
                value = _parse_datetime(value)
            elif isinstance(column.type, Date):
                value = date.fromisoformat(value[:10])
            elif isinstance(column.type, Time):
                value = time.fromisoformat(value)
        values[column.name] = value
    return values


def _format_size(size_bytes: int) -> str:
    return f"{size_bytes / 1024 / 1024:.2f} MB"


class BackupEngine:
    """备份引擎"""

    def __init__(
        self,
        engine: Optional[AsyncEngine] = None,
        backup_dir: Union[str, Path, None] = None,
        collections: Optional[Sequence[str]] = None,
        keep_full: Optional[int] = None,
        keep_summaries: Optional[int] = None
    ):
        settings = get_settings()
        if engine is None:
            from core.database import engine as app_engine
            engine = app_engine
        self.engine = engine
        self.backup_dir = Path(backup_dir or settings.backup_dir)
        self.collections = list(collections if collections is not None else settings.backup_collections)
        self.keep_full = keep_full if keep_full is not None else settings.backup_keep_full
        self.keep_summaries = keep_summaries if keep_summaries is not None else settings.backup_keep_summaries
        self.backup_dir.mkdir(parents=True, exist_ok=True)

    # ==================== 表解析 ====================

    @staticmethod
    def _table_names(sync_conn) -> List[str]:
        return inspect(sync_conn).get_table_names()

    @staticmethod
    def _resolve_table(sync_conn, name: str, create: bool = False) -> Table:
        """
        获取表对象

        优先使用应用定义的表结构；数据库中存在但应用未定义的表通过反射获取。
        create=True 时为缺失的表建表（仅限应用定义的表）。
        """
        load_models()
        known = Base.metadata.tables.get(name)
        exists = inspect(sync_conn).has_table(name)

        if exists:
            if known is not None:
                return known
            return Table(name, MetaData(), autoload_with=sync_conn)

        if create and known is not None:
            known.create(sync_conn)
            logger.info(f"已创建数据表: {name}")
            return known
        raise LookupError(f"数据表 {name} 不存在")

    # ==================== 备份 ====================

    async def _dump_collection(self, name: str) -> List[Dict[str, Any]]:
        async with self.engine.connect() as conn:
            table = await conn.run_sync(self._resolve_table, name)
            result = await conn.execute(select(table))
            return [dict(row) for row in result.mappings().all()]

    async def backup_collections(self) -> Dict[str, Any]:
        """
        执行一次完整备份

        Returns:
            {"backup_file", "summary_file", "summary": {集合: 记录数}}
        """
        timestamp = iso_utc()
        stamp = file_stamp(timestamp)
        logger.info(f"💾 开始备份: {timestamp}")

        async with self.engine.connect() as conn:
            existing = await conn.run_sync(self._table_names)
        targets = [name for name in existing if name in self.collections]

        data: Dict[str, List[Dict[str, Any]]] = {}
        counts: Dict[str, int] = {}
        for name in targets:
            try:
                rows = await self._dump_collection(name)
            except Exception as e:
                logger.error(f"❌ 备份集合 {name} 失败: {e}", exc_info=True)
                continue
            data[name] = rows
            counts[name] = len(rows)
            logger.info(f"✅ {name}: {len(rows)} 条记录")

        backup_path = self.backup_dir / f"{BACKUP_PREFIX}{stamp}{FILE_SUFFIX}"
        summary_path = self.backup_dir / f"{SUMMARY_PREFIX}{stamp}{FILE_SUFFIX}"

        await self._write_json(backup_path, {"timestamp": timestamp, "collections": data})
        await self._write_json(summary_path, {"timestamp": timestamp, "counts": counts})
        logger.info(f"✅ 备份完成: {backup_path.name}")

        self.clean_old_backups()

        result = BackupResult(backup_file=str(backup_path), summary_file=str(summary_path), summary=counts)
        event_bus.emit(Events.BACKUP_COMPLETED, "backup", result.model_dump())
        return result.model_dump()

    async def _write_json(self, path: Path, content: Dict[str, Any]):
        text = json.dumps(content, ensure_ascii=False, indent=2, default=_json_default)
        async with aiofiles.open(path, "w", encoding="utf-8") as f:
            await f.write(text)

    # ==================== 清理 ====================

    def _files_by_mtime(self, prefix: str) -> List[Path]:
        files = [
            p for p in self.backup_dir.iterdir()
            if p.is_file() and p.name.startswith(prefix) and p.name.endswith(FILE_SUFFIX)
        ]
        return sorted(files, key=lambda p: p.stat().st_mtime, reverse=True)

    def clean_old_backups(self):
        """保留最近的完整备份和摘要，其余删除"""
        try:
            for prefix, keep in ((BACKUP_PREFIX, self.keep_full), (SUMMARY_PREFIX, self.keep_summaries)):
                for path in self._files_by_mtime(prefix)[keep:]:
                    path.unlink()
                    logger.info(f"🗑️ 已删除旧备份: {path.name}")
        except OSError as e:
            logger.error(f"清理旧备份失败: {e}")

    # ==================== 恢复 ====================

    async def restore_from_backup(self, backup_file: Union[str, Path]) -> RestoreReport:
        """
        从完整备份恢复

        每个集合在独立事务中清空后重新写入；某个集合失败不影响其他集合。
        文件不存在时抛出 FileNotFoundError。
        """
        path = Path(backup_file)
        if not path.is_file():
            raise FileNotFoundError(f"备份文件不存在: {path}")

        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            content = json.loads(await f.read())

        collections: Dict[str, List[Dict[str, Any]]] = content.get("collections") or {}
        logger.info(f"🔄 开始恢复备份: {path.name} ({len(collections)} 个集合)")

        results: List[CollectionRestoreResult] = []
        for name, rows in collections.items():
            try:
                restored = await self._restore_collection(name, rows or [])
                results.append(CollectionRestoreResult(collection=name, success=True, restored=restored))
                logger.info(f"✅ {name}: 已恢复 {restored} 条记录")
            except Exception as e:
                logger.error(f"❌ 恢复集合 {name} 失败: {e}")
                results.append(CollectionRestoreResult(collection=name, success=False, error=str(e)))

        report = RestoreReport(
            file=path.name,
            success=all(r.success for r in results),
            collections=results
        )
        if not report.success:
            logger.warning(f"⚠️ 备份部分恢复失败: {report.failed}")
        return report

    async def _restore_collection(self, name: str, rows: List[Dict[str, Any]]) -> int:
        async with self.engine.begin() as conn:
            table = await conn.run_sync(self._resolve_table, name, True)
            await conn.execute(table.delete())
            if rows:
                await conn.execute(table.insert(), [_coerce_row(table, row) for row in rows])
        return len(rows)

    # ==================== 列表 ====================

    def list_backups(self) -> List[Dict[str, Any]]:
        """列出完整备份（最新在前），出错时返回空列表"""
        try:
            items = []
            for path in self._files_by_mtime(BACKUP_PREFIX):
                stat = path.stat()
                items.append(BackupFileInfo(
                    name=path.name,
                    size=_format_size(stat.st_size),
                    size_bytes=stat.st_size,
                    modified=iso_utc(datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)),
                    created=iso_utc(datetime.fromtimestamp(stat.st_ctime, tz=timezone.utc))
                ).model_dump())
            return items
        except OSError as e:
            logger.error(f"列出备份失败: {e}")
            return []


_backup_engine: Optional[BackupEngine] = None


def get_backup_engine() -> BackupEngine:
    """获取备份引擎实例"""
    global _backup_engine
    if _backup_engine is None:
        _backup_engine = BackupEngine()
    return _backup_engine
