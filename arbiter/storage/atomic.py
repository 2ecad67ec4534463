"""
Atomic Write Operations
=======================

Used for configuration dumps and engine state snapshots.

Pattern:
1. Write to temporary file {name}.tmp
2. Flush and sync to disk
3. Atomic rename to final path

A reader sees either the old file or the complete new one, never a partial write.
"""

import contextlib
import json
import logging
import os
import shutil
from datetime import datetime
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

logger = logging.getLogger("arbiter.storage.atomic")

T = TypeVar("T", bound=BaseModel)


def _fsync_dir(path_dir: Path) -> None:
    try:
        fd = os.open(str(path_dir), os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(fd)
    except OSError:
        logger.debug(f"Directory fsync not supported for {path_dir}")
    finally:
        os.close(fd)


def atomic_write(
    path: Path | str,
    content: str | bytes,
    encoding: str = "utf-8",
    sync: bool = True,
) -> bool:
    """
    Write content to file atomically.

    Args:
        path: Target file path
        content: Content to write (string or bytes)
        encoding: Encoding for string content
        sync: Whether to sync to disk (fsync)

    Returns:
        True if successful
    """
    path = Path(path)
    tmp_path = path.with_suffix(path.suffix + ".tmp")

    try:
        path.parent.mkdir(parents=True, exist_ok=True)

        data = content if isinstance(content, bytes) else content.encode(encoding)
        with open(os.fspath(tmp_path), "wb") as f:
            f.write(data)
            if sync:
                f.flush()
                os.fsync(f.fileno())

        tmp_path.replace(path)

        if sync:
            _fsync_dir(path.parent)

        return True

    except OSError as e:
        logger.error(f"Atomic write failed for {path}: {e}")

        with contextlib.suppress(OSError):
            tmp_path.unlink(missing_ok=True)

        return False


class AtomicWriter:
    """
    Directory-scoped atomic writer with backup support.

    Features:
    - Atomic writes
    - Timestamped backups, pruned to max_backups
    - Pydantic model validation on read
    """

    def __init__(
        self,
        base_dir: Path | str,
        backup_dir: Path | str | None = None,
        max_backups: int = 5,
    ) -> None:
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

        self.backup_dir = Path(backup_dir) if backup_dir else self.base_dir / "backups"
        self.backup_dir.mkdir(parents=True, exist_ok=True)

        self.max_backups = max_backups

    def path_for(self, name: str) -> Path:
        return self.base_dir / f"{name}.json"

    def write_json(
        self,
        name: str,
        data: dict[str, Any] | list[Any],
        backup: bool = False,
    ) -> bool:
        path = self.path_for(name)

        if backup and path.exists():
            self._create_backup(path)

        content = json.dumps(data, ensure_ascii=False, indent=2, default=str)
        return atomic_write(path, content)

    def write_model(
        self,
        name: str,
        model: BaseModel,
        backup: bool = False,
    ) -> bool:
        """Write a pydantic model atomically"""
        path = self.path_for(name)

        if backup and path.exists():
            self._create_backup(path)

        return atomic_write(path, model.model_dump_json(indent=2))

    def read_json(self, name: str) -> dict[str, Any] | list[Any] | None:
        path = self.path_for(name)

        if not path.exists():
            return None

        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)  # type: ignore[no-any-return]
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to read {path}: {e}")
            return None

    def read_model(self, name: str, model_class: type[T]) -> T | None:
        """Read and validate a pydantic model; None when missing or invalid"""
        path = self.path_for(name)

        if not path.exists():
            return None

        try:
            return model_class.model_validate_json(path.read_bytes())
        except (OSError, ValidationError) as e:
            logger.error(f"Failed to read/validate {path}: {e}")
            return None

    def _create_backup(self, path: Path) -> Path | None:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        backup_path = self.backup_dir / f"{timestamp}_{path.name}"

        try:
            shutil.copy2(path, backup_path)
        except OSError as e:
            logger.error(f"Failed to create backup: {e}")
            return None

        self._cleanup_old_backups(path.name)
        return backup_path

    def _cleanup_old_backups(self, original_name: str) -> None:
        backups = sorted(self.backup_dir.glob(f"*_{original_name}"), reverse=True)

        for old_backup in backups[self.max_backups :]:
            with contextlib.suppress(OSError):
                old_backup.unlink()

    def list_backups(self, name: str) -> list[Path]:
        return sorted(self.backup_dir.glob(f"*_{name}.json"), reverse=True)

    def delete(self, name: str) -> bool:
        path = self.path_for(name)

        if not path.exists():
            return False

        self._create_backup(path)
        try:
            path.unlink()
        except OSError as e:
            logger.error(f"Failed to delete {path}: {e}")
            return False
        return True

    def exists(self, name: str) -> bool:
        return self.path_for(name).exists()
