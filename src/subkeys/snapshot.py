"""Snapshot files: the local JSON array of backed-up subscriptions."""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Iterable, Optional

from .config import SNAPSHOT_FILENAME, backup_root
from .errors import SnapshotError
from .models import CredentialRecord

logger = logging.getLogger(__name__)


def backup_dir(resource_group: str, service_name: str, product_id: str = "", root: Optional[Path] = None) -> Path:
    """backup/<resource-group>/<apim-name>[/<product-id>]"""
    path = (root or backup_root()) / resource_group / service_name
    if product_id:
        path = path / product_id
    return path


def ensure_backup_dir(resource_group: str, service_name: str, product_id: str = "", root: Optional[Path] = None) -> Path:
    path = backup_dir(resource_group, service_name, product_id, root)
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise SnapshotError(f"failed to create backup directory {path}: {exc}") from exc
    return path


def default_snapshot_path(resource_group: str, service_name: str, product_id: str = "", root: Optional[Path] = None) -> Path:
    return ensure_backup_dir(resource_group, service_name, product_id, root) / SNAPSHOT_FILENAME


def load_snapshot(path: Path) -> list[CredentialRecord]:
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except OSError as exc:
        raise SnapshotError(f"failed to read {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise SnapshotError(f"failed to parse {path}: {exc}") from exc

    if data is None:
        return []
    if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
        raise SnapshotError(f"failed to parse {path}: expected a JSON array of subscription objects")

    try:
        records = [CredentialRecord.from_dict(item) for item in data]
    except ValueError as exc:
        raise SnapshotError(f"failed to parse {path}: {exc}") from exc
    logger.debug("Loaded %d record(s) from %s", len(records), path)
    return records


def save_snapshot(path: Path, records: Iterable[CredentialRecord]) -> Path:
    """Write records as a pretty-printed JSON array.

    The file is written next to its destination and renamed into place, so an
    existing snapshot is never left half-written.
    """
    path = Path(path)
    payload = json.dumps([r.to_dict() for r in records], indent=2, ensure_ascii=False)

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.write("\n")
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
    except OSError as exc:
        raise SnapshotError(f"failed to write backup file {path}: {exc}") from exc

    logger.debug("Wrote snapshot to %s", path)
    return path


def clean_backups(root: Optional[Path] = None) -> bool:
    """Remove the backup root. Returns False when there was nothing to remove."""
    root = root or backup_root()
    if not root.exists():
        return False
    try:
        shutil.rmtree(root)
    except OSError as exc:
        raise SnapshotError(f"failed to remove backup folder {root}: {exc}") from exc
    return True
