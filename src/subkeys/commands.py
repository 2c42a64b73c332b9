"""
Command implementations: backup, list, restore, delete, compare, clean.

Every command takes its frozen config and, for the commands that talk to
APIM, an optional pre-built client (anything exposing ``list_credentials``,
``fetch_secrets``, ``create_or_update``, ``delete`` and
``cloud_subscription_id``). Records are processed one at a time, in order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from rich.markup import escape
from rich.table import Table

from .client import ApimSubscriptionClient
from .compare import MATCHED, MISMATCHED, ComparisonReport, compare_snapshots
from .config import (
    SCOPE_POLICY_PRODUCT,
    BackupConfig,
    CompareConfig,
    DeleteConfig,
    ListConfig,
    RestoreConfig,
    TargetConfig,
)
from .errors import CommandFailed, RemoteOperationError
from .models import BUILTIN_SUBSCRIPTION_NAME, CredentialRecord
from .projection import CreateOptions, collect_records
from .scope import build_scope, extract_product_id, extract_suffix
from .snapshot import clean_backups, default_snapshot_path, load_snapshot, save_snapshot
from .styles import RULE, TAGS, make_console

logger = logging.getLogger(__name__)
console = make_console()

ClientFactory = Callable[[TargetConfig], ApimSubscriptionClient]


@dataclass
class BackupResult:
    path: Path
    count: int


@dataclass
class RestoreSummary:
    restored: int = 0
    failed: int = 0
    skipped: int = 0
    total: int = 0


@dataclass
class DeleteSummary:
    deleted: int = 0
    skipped: int = 0
    failed: int = 0
    total: int = 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _print_target(action: str, target: TargetConfig, product_id: str = "") -> None:
    console.print(f"[header]{action} APIM instance: {target.service_name}[/header]")
    console.print(f"Resource Group: {target.resource_group}")
    if target.cloud_subscription_id:
        console.print(f"Subscription ID: {target.cloud_subscription_id}")
    if product_id:
        console.print(f"Product ID: {product_id}")


def _connect(target: TargetConfig, client, factory: Optional[ClientFactory]):
    if client is not None:
        return client
    console.print("\n[step]Authenticating with Azure CLI...[/step]")
    client = (factory or ApimSubscriptionClient.connect)(target)
    console.print("[success]Successfully authenticated with Azure CLI[/success]")
    return client


def mask_key(key: str) -> str:
    if len(key) <= 8:
        return "*" * len(key)
    return f"{key[:4]}{'*' * (len(key) - 8)}{key[-4:]}"


def restore_scope(record: CredentialRecord, config: RestoreConfig, cloud_subscription_id: str) -> Optional[str]:
    """Rebuild a record's scope for the restore target.

    Under the generic policy any suffix is carried over and a record without
    one is restored at instance scope. Under the product policy a record
    without a product id yields ``None`` and is not restored.
    """
    target = config.target
    if config.scope_policy == SCOPE_POLICY_PRODUCT:
        product_id = extract_product_id(record.properties.scope)
        if not product_id:
            return None
        return build_scope(cloud_subscription_id, target.resource_group, target.service_name, f"products/{product_id}")

    suffix = extract_suffix(record.properties.scope)
    return build_scope(cloud_subscription_id, target.resource_group, target.service_name, suffix)


# ---------------------------------------------------------------------------
# backup / list
# ---------------------------------------------------------------------------


def run_backup(config: BackupConfig, client=None, client_factory: Optional[ClientFactory] = None) -> BackupResult:
    _print_target("Backing up subscription keys from", config.target, config.product_id)

    if config.output is not None:
        path = config.output
        console.print(f"Output file: {path}")
    else:
        path = default_snapshot_path(
            config.target.resource_group, config.target.service_name, config.product_id, config.root
        )
        console.print(f"Backup directory: {path.parent}")

    client = _connect(config.target, client, client_factory)

    console.print("\n[step]Fetching subscriptions...[/step]")
    records = list(collect_records(client, config.product_id or None))
    console.print(f"\nFound {len(records)} subscription(s)")

    save_snapshot(path, records)
    console.print(f"Backup saved to: {path}")
    console.print("[success]Backup completed successfully[/success]")
    return BackupResult(path=path, count=len(records))


def run_list(config: ListConfig, client=None, client_factory: Optional[ClientFactory] = None) -> list[CredentialRecord]:
    _print_target("Listing subscription keys from", config.target, config.product_id)
    client = _connect(config.target, client, client_factory)

    console.print("\n[step]Fetching subscriptions...[/step]")
    records = list(collect_records(client, config.product_id or None))
    if not records:
        console.print("No subscriptions found.")
        return records

    console.print(f"\nFound {len(records)} subscription(s):")
    for i, rec in enumerate(records, 1):
        console.print(_record_table(i, rec, show_keys=config.show_keys))
    console.print(RULE)
    return records


def _record_table(index: int, record: CredentialRecord, *, show_keys: bool) -> Table:
    props = record.properties
    table = Table(title=f"[{index}] {escape(props.display_name)}", title_justify="left", show_header=False, box=None)
    table.add_column("Field", style="muted", no_wrap=True)
    table.add_column("Value")

    keys = (props.primary_key, props.secondary_key)
    if not show_keys:
        keys = tuple(mask_key(k) for k in keys)

    rows = [
        ("ID", record.id),
        ("Name", record.name),
        ("Type", record.type),
        ("Scope", props.scope),
        ("State", props.state),
        ("Owner ID", props.owner_id or ""),
        ("Created", props.created_date or ""),
        ("Start Date", props.start_date or ""),
        ("End Date", props.end_date or ""),
        ("Expiration Date", props.expiration_date or ""),
        ("Notification Date", props.notification_date or ""),
        ("State Comment", props.state_comment or ""),
        ("Allow Tracing", str(props.allow_tracing).lower()),
        ("Primary Key", keys[0]),
        ("Secondary Key", keys[1]),
    ]
    for label, value in rows:
        table.add_row(label, escape(value))
    return table


# ---------------------------------------------------------------------------
# restore
# ---------------------------------------------------------------------------


def run_restore(config: RestoreConfig, client=None, client_factory: Optional[ClientFactory] = None) -> RestoreSummary:
    _print_target("Restoring subscription keys to", config.target)
    console.print(f"Input file: {config.input_path}")
    if config.dry_run:
        console.print("\n[warning]Running in DRY-RUN mode. No changes will be applied.[/warning]")

    records = load_snapshot(config.input_path)
    summary = RestoreSummary(total=len(records))
    if not records:
        console.print("No subscriptions found in input file. Nothing to restore.")
        return summary
    console.print(f"\nFound {len(records)} subscription(s) to restore")

    client = _connect(config.target, client, client_factory)
    cloud_sub_id = client.cloud_subscription_id

    for rec in records:
        sid = rec.name
        display_name = escape(rec.display_name)

        if rec.is_builtin and not config.include_builtin:
            console.print(f"  {TAGS['skip']} {display_name} ({sid}) built-in")
            summary.skipped += 1
            continue

        scope = restore_scope(rec, config, cloud_sub_id)
        if scope is None:
            console.print(f"  {TAGS['skip']} {display_name} ({sid}) could not extract product ID from scope")
            logger.warning("No product id in scope %r of subscription %s", rec.properties.scope, sid)
            summary.failed += 1
            continue

        if config.dry_run:
            console.print(f"  {TAGS['dry']} Would restore: {display_name} (sid={sid}, scope={scope})")
            summary.restored += 1
            continue

        console.print(f"  Restoring: {display_name} (sid={sid})...")
        try:
            client.create_or_update(sid, scope, rec.display_name, CreateOptions.from_record(rec))
        except RemoteOperationError as exc:
            console.print(f"  {TAGS['fail']} {display_name}: {escape(str(exc))}")
            summary.failed += 1
            continue
        console.print(f"  {TAGS['ok']} {display_name}")
        summary.restored += 1

    console.print(
        f"\nRestore complete: {summary.restored} succeeded, {summary.failed} failed, "
        f"{summary.skipped} skipped (out of {summary.total} total)"
    )
    if summary.failed:
        raise CommandFailed(f"{summary.failed} subscription(s) failed to restore", summary.failed, summary)
    return summary


# ---------------------------------------------------------------------------
# delete
# ---------------------------------------------------------------------------


def run_delete(config: DeleteConfig, client=None, client_factory: Optional[ClientFactory] = None) -> DeleteSummary:
    _print_target("Deleting subscription keys from", config.target, config.product_id)
    if config.include_builtin:
        console.print("Mode: Delete ALL subscriptions (including built-in)")
    else:
        console.print("Mode: Delete all subscriptions except built-in (master)")
    if config.dry_run:
        console.print("\n[warning]Running in DRY-RUN mode. No changes will be applied.[/warning]")

    client = _connect(config.target, client, client_factory)

    console.print("\n[step]Fetching subscriptions...[/step]")
    contracts = list(client.list_credentials(config.product_id or None))
    summary = DeleteSummary(total=len(contracts))
    if not contracts:
        console.print("No subscriptions found. Nothing to delete.")
        return summary
    console.print(f"\nFound {len(contracts)} subscription(s)")

    for contract in contracts:
        sid = contract.name or ""
        display_name = escape(contract.display_name or "")

        if sid == BUILTIN_SUBSCRIPTION_NAME and not config.include_builtin:
            console.print(f"  {TAGS['skip']} {display_name} (built-in)")
            summary.skipped += 1
            continue

        if config.dry_run:
            console.print(f"  {TAGS['dry']} Would delete: {display_name} (id={sid})")
            summary.deleted += 1
            continue

        console.print(f"  Deleting: {display_name} (id={sid})...")
        try:
            client.delete(sid)
        except RemoteOperationError as exc:
            console.print(f"  {TAGS['fail']} {display_name}: {escape(str(exc))}")
            summary.failed += 1
            continue
        console.print(f"  {TAGS['ok']} {display_name}")
        summary.deleted += 1

    console.print(
        f"\nDelete complete: {summary.deleted} deleted, {summary.skipped} skipped, {summary.failed} failed"
    )
    if summary.failed:
        raise CommandFailed(f"{summary.failed} subscription(s) failed to delete", summary.failed, summary)
    return summary


# ---------------------------------------------------------------------------
# compare / clean
# ---------------------------------------------------------------------------


def print_comparison(report: ComparisonReport) -> None:
    for entry in report.entries:
        props = entry.record.properties
        name = escape(props.display_name)
        if entry.outcome == MATCHED:
            console.print(f"  {TAGS['ok']} {name}")
        elif entry.outcome == MISMATCHED:
            console.print(f"  {TAGS['diff']} {name} (keys match, attributes differ)")
            for diff in entry.differences:
                console.print(f"      {diff.json_key}: {escape(repr(diff.left))} != {escape(repr(diff.right))}")
        else:
            console.print(f"  {TAGS['miss']} {name} (primaryKey={mask_key(props.primary_key)})")


def run_compare(config: CompareConfig) -> ComparisonReport:
    console.print("[header]Comparing backup files:[/header]")
    console.print(f"  File A: {config.file_a}")
    console.print(f"  File B: {config.file_b}")

    snapshot_a = load_snapshot(config.file_a)
    snapshot_b = load_snapshot(config.file_b)
    report = compare_snapshots(snapshot_a, snapshot_b)

    console.print(f"\nFile A: {report.total_a} subscription(s) (master excluded)")
    console.print(f"File B: {report.total_b} subscription(s) (master excluded)")
    print_comparison(report)

    console.print(
        f"\nComparison complete: {report.matched} matched, {report.mismatched} mismatched, "
        f"{report.missing} missing (out of {report.total_a} total)"
    )
    if not report.ok:
        raise CommandFailed(f"{report.failures} key(s) missing or attributes differ", report.failures, report)
    return report


def run_clean(root: Optional[Path] = None) -> bool:
    if clean_backups(root):
        console.print("[success]Backup folder removed successfully.[/success]")
        return True
    console.print("No backup folder found. Nothing to clean.")
    return False
