"""
@PURPOSE: 会话存储: 读取/持久化 Playwright storage state (cookies + origins), 写入串行化
@OUTLINE:
  - dataclass SessionInfo: 会话文件状态(是否存在/保存时间/cookie 数量)
  - class SessionStore: 会话存储主类
    - exists(): 会话文件是否存在
    - load(): 读取会话 JSON
    - info(): 会话状态摘要
    - is_stale(): 是否超过最大有效期
    - save(): 原子写入会话(进程内锁 + 跨进程文件锁)
    - save_from_context(): 从浏览器上下文导出并写入
    - clear(): 删除会话与元数据
@GOTCHAS:
  - 写入使用临时文件 + os.replace, 读取方不会看到半个文件
  - 同一路径的写入在进程内由 asyncio.Lock 串行, 跨进程由 FileLock 串行
  - 保存时间戳写入独立的 .meta.json 文件
@DEPENDENCIES:
  - 外部: filelock, loguru
@RELATED: browser_manager.py, utils/state_detector.py
"""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, ClassVar

from filelock import FileLock
from loguru import logger
from playwright.async_api import BrowserContext


@dataclass(frozen=True, slots=True)
class SessionInfo:
    """会话文件状态摘要."""

    path: Path
    exists: bool
    saved_at: datetime | None = None
    cookies: int = 0
    origins: int = 0

    @property
    def age_hours(self) -> float | None:
        if self.saved_at is None:
            return None
        return (datetime.now() - self.saved_at).total_seconds() / 3600


class SessionStore:
    """会话存储.

    Attributes:
        state_file: storage state 文件路径
        max_age: 会话建议有效期(仅用于提示, 不阻止使用)

    Examples:
        >>> store = SessionStore("storage/shopify-storage.json")
        >>> store.exists()
        False
    """

    METADATA_SUFFIX = ".meta.json"

    _locks: ClassVar[dict[str, asyncio.Lock]] = {}

    def __init__(self, state_file: str | Path, max_age_hours: float = 24 * 14):
        self.state_file = Path(state_file)
        self.max_age = timedelta(hours=max_age_hours)

    @property
    def metadata_file(self) -> Path:
        """获取元数据文件路径."""
        return self.state_file.with_suffix(self.state_file.suffix + self.METADATA_SUFFIX)

    @property
    def lock_file(self) -> Path:
        return self.state_file.with_suffix(self.state_file.suffix + ".lock")

    def _async_lock(self) -> asyncio.Lock:
        key = str(self.state_file.resolve())
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def exists(self) -> bool:
        return self.state_file.exists()

    def load(self) -> dict[str, Any] | None:
        """读取会话 JSON, 文件不存在时返回 None."""
        if not self.state_file.exists():
            logger.info(f"会话文件不存在: {self.state_file}")
            return None
        with self.state_file.open("r", encoding="utf-8") as f:
            return json.load(f)

    def _saved_at(self) -> datetime | None:
        if self.metadata_file.exists():
            with self.metadata_file.open("r", encoding="utf-8") as f:
                metadata = json.load(f)
            return datetime.fromisoformat(metadata["timestamp"])
        if self.state_file.exists():
            return datetime.fromtimestamp(self.state_file.stat().st_mtime)
        return None

    def info(self) -> SessionInfo:
        """返回会话状态摘要."""
        if not self.state_file.exists():
            return SessionInfo(path=self.state_file, exists=False)
        state = self.load() or {}
        return SessionInfo(
            path=self.state_file,
            exists=True,
            saved_at=self._saved_at(),
            cookies=len(state.get("cookies", [])),
            origins=len(state.get("origins", [])),
        )

    def is_stale(self) -> bool:
        """会话是否超过建议有效期."""
        saved_at = self._saved_at()
        if saved_at is None:
            return True
        age = datetime.now() - saved_at
        if age > self.max_age:
            logger.warning(f"会话已保存 {age.total_seconds() / 3600:.1f} 小时, 可能需要重新采集")
            return True
        return False

    def _write(self, state: dict[str, Any]) -> None:
        self.state_file.parent.mkdir(parents=True, exist_ok=True)
        with FileLock(str(self.lock_file)):
            fd, tmp_path = tempfile.mkstemp(
                dir=self.state_file.parent, prefix=f".{self.state_file.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(state, f, ensure_ascii=False, indent=2)
                os.replace(tmp_path, self.state_file)
            except BaseException:
                Path(tmp_path).unlink(missing_ok=True)
                raise
            self._save_metadata()

    def _save_metadata(self) -> None:
        metadata = {"timestamp": datetime.now().isoformat(), "format": "playwright-storage-state"}
        with self.metadata_file.open("w", encoding="utf-8") as f:
            json.dump(metadata, f, ensure_ascii=False, indent=2)

    async def save(self, state: dict[str, Any]) -> None:
        """原子写入会话, 同一路径的并发写入串行执行."""
        async with self._async_lock():
            await asyncio.to_thread(self._write, state)
        logger.info(
            f"会话已保存到 {self.state_file} "
            f"(cookies={len(state.get('cookies', []))}, origins={len(state.get('origins', []))})"
        )

    async def save_from_context(self, context: BrowserContext) -> None:
        """从浏览器上下文导出 storage state 并写入."""
        state = await context.storage_state()
        await self.save(state)

    def clear(self) -> None:
        """删除会话文件与元数据."""
        for path in (self.state_file, self.metadata_file):
            if path.exists():
                path.unlink()
        logger.info(f"会话已清除: {self.state_file}")
