"""
Run configuration for backup / restore / delete / compare.

Each command gets a frozen config built once from parsed CLI arguments, with
environment variable fallbacks for the target instance:

  AZURE_SUBSCRIPTION_ID   cloud subscription hosting the APIM instance
  APIM_RESOURCE_GROUP     resource group of the APIM instance
  APIM_SERVICE_NAME       APIM instance name
  SUBKEYS_BACKUP_ROOT     root of the default backup layout (default: backup)
"""

from __future__ import annotations

import argparse
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

SNAPSHOT_FILENAME = "subscriptions.json"

SCOPE_POLICY_GENERIC = "generic"
SCOPE_POLICY_PRODUCT = "product"
SCOPE_POLICIES = (SCOPE_POLICY_GENERIC, SCOPE_POLICY_PRODUCT)


def backup_root() -> Path:
    return Path(os.getenv("SUBKEYS_BACKUP_ROOT", "backup"))


def _arg(args: argparse.Namespace, name: str, default=None):
    value = getattr(args, name, None)
    return default if value in (None, "") else value


@dataclass(frozen=True)
class TargetConfig:
    """The APIM instance a command talks to."""

    resource_group: str
    service_name: str
    cloud_subscription_id: str = ""

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "TargetConfig":
        resource_group = _arg(args, "resource_group", os.getenv("APIM_RESOURCE_GROUP", ""))
        service_name = _arg(args, "apim_name", os.getenv("APIM_SERVICE_NAME", ""))
        if not resource_group or not service_name:
            raise ValueError("--resource-group and --apim-name are required")
        return cls(
            resource_group=resource_group,
            service_name=service_name,
            cloud_subscription_id=_arg(args, "subscription", os.getenv("AZURE_SUBSCRIPTION_ID", "")),
        )


@dataclass(frozen=True)
class BackupConfig:
    target: TargetConfig
    product_id: str = ""
    output: Optional[Path] = None
    root: Path = Path("backup")

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "BackupConfig":
        output = _arg(args, "output")
        return cls(
            target=TargetConfig.from_args(args),
            product_id=_arg(args, "product_id", ""),
            output=Path(output) if output else None,
            root=backup_root(),
        )


@dataclass(frozen=True)
class ListConfig:
    target: TargetConfig
    product_id: str = ""
    show_keys: bool = False

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "ListConfig":
        return cls(
            target=TargetConfig.from_args(args),
            product_id=_arg(args, "product_id", ""),
            show_keys=bool(_arg(args, "show_keys", False)),
        )


@dataclass(frozen=True)
class RestoreConfig:
    target: TargetConfig
    input_path: Path
    dry_run: bool = False
    include_builtin: bool = False
    scope_policy: str = SCOPE_POLICY_GENERIC

    def __post_init__(self):
        if self.scope_policy not in SCOPE_POLICIES:
            raise ValueError(f"Unknown scope policy: {self.scope_policy}")

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "RestoreConfig":
        input_path = _arg(args, "input")
        if not input_path:
            raise ValueError("--input is required")
        return cls(
            target=TargetConfig.from_args(args),
            input_path=Path(input_path),
            dry_run=bool(_arg(args, "dry_run", False)),
            include_builtin=bool(_arg(args, "include_builtin", False)),
            scope_policy=_arg(args, "scope_policy", SCOPE_POLICY_GENERIC),
        )


@dataclass(frozen=True)
class DeleteConfig:
    target: TargetConfig
    product_id: str = ""
    dry_run: bool = False
    include_builtin: bool = False

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "DeleteConfig":
        return cls(
            target=TargetConfig.from_args(args),
            product_id=_arg(args, "product_id", ""),
            dry_run=bool(_arg(args, "dry_run", False)),
            include_builtin=bool(_arg(args, "all", False)),
        )


@dataclass(frozen=True)
class CompareConfig:
    file_a: Path
    file_b: Path

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "CompareConfig":
        files = list(getattr(args, "files", None) or [])
        if len(files) == 2:
            return cls(file_a=Path(files[0]), file_b=Path(files[1]))
        if len(files) == 1:
            raise ValueError("expected 2 files, got 1")
        file_a = _arg(args, "file_a")
        file_b = _arg(args, "file_b")
        if not file_a or not file_b:
            raise ValueError("must provide either two positional arguments or both -a and -b flags")
        return cls(file_a=Path(file_a), file_b=Path(file_b))
