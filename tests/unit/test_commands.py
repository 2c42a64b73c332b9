"""Backup, list, restore, delete and compare runs against an in-memory instance."""

import json
from pathlib import Path

import pytest

from subkeys.commands import (
    mask_key,
    restore_scope,
    run_backup,
    run_clean,
    run_compare,
    run_delete,
    run_list,
    run_restore,
)
from subkeys.config import (
    SCOPE_POLICY_PRODUCT,
    BackupConfig,
    CompareConfig,
    DeleteConfig,
    ListConfig,
    RestoreConfig,
)
from subkeys.errors import CommandFailed, RemoteOperationError, SnapshotError
from subkeys.snapshot import load_snapshot, save_snapshot

TARGET_PREFIX = (
    "/subscriptions/22222222-2222-2222-2222-222222222222/resourceGroups/rg-target"
    "/providers/Microsoft.ApiManagement/service/apim-target"
)


@pytest.fixture
def snapshot_file(tmp_path, record_factory) -> Path:
    records = [
        record_factory("master", "m1", "m2", suffix=""),
        record_factory("alice", "a1", "a2", owner_id="/users/alice", allow_tracing=True),
        record_factory("ops", "o1", "o2", suffix=""),
        record_factory("echo", "e1", "e2", suffix="apis/echo-api"),
    ]
    return save_snapshot(tmp_path / "subscriptions.json", records)


class TestBackup:
    def test_default_layout(self, populated_client, target, backup_root):
        result = run_backup(BackupConfig(target=target, root=backup_root), client=populated_client)

        assert result.path == backup_root / "rg-target" / "apim-target" / "subscriptions.json"
        assert result.count == 3
        saved = load_snapshot(result.path)
        assert [r.name for r in saved] == ["master", "alice", "ops"]
        assert all(r.has_secrets for r in saved)

    def test_product_layout(self, populated_client, target, backup_root):
        result = run_backup(
            BackupConfig(target=target, product_id="starter", root=backup_root), client=populated_client
        )

        assert result.path == backup_root / "rg-target" / "apim-target" / "starter" / "subscriptions.json"
        assert [r.name for r in load_snapshot(result.path)] == ["alice"]

    def test_custom_output(self, populated_client, target, tmp_path):
        output = tmp_path / "nested" / "my-backup.json"
        result = run_backup(BackupConfig(target=target, output=output), client=populated_client)

        assert result.path == output
        data = json.loads(output.read_text())
        assert data[1]["properties"]["primaryKey"] == "a-primary"
        assert data[1]["properties"]["createdDate"] == "2024-01-01T12:00:00Z"

    def test_listing_error_aborts_without_writing(self, populated_client, target, tmp_path):
        def broken(name):
            raise RemoteOperationError(f"failed to get secrets for subscription {name}", entity=name)

        populated_client.fetch_secrets = broken
        output = tmp_path / "out.json"

        with pytest.raises(RemoteOperationError):
            run_backup(BackupConfig(target=target, output=output), client=populated_client)
        assert not output.exists()

    def test_uses_client_factory(self, populated_client, target, tmp_path):
        seen = []

        def factory(cfg):
            seen.append(cfg)
            return populated_client

        run_backup(BackupConfig(target=target, output=tmp_path / "x.json"), client_factory=factory)

        assert seen == [target]


class TestList:
    def test_returns_records(self, populated_client, target):
        records = run_list(ListConfig(target=target), client=populated_client)
        assert len(records) == 3

    def test_masks_keys_by_default(self, populated_client, target, capsys):
        populated_client.secrets["alice"] = ("abcdefghijklmnop", "qrstuvwxyz012345")

        run_list(ListConfig(target=target, product_id="starter"), client=populated_client)

        out = capsys.readouterr().out
        assert "abcdefghijklmnop" not in out
        assert "abcd********mnop" in out

    def test_empty(self, fake_client, target, capsys):
        assert run_list(ListConfig(target=target), client=fake_client) == []
        assert "No subscriptions found." in capsys.readouterr().out


class TestMaskKey:
    def test_short_key_fully_masked(self):
        assert mask_key("abc") == "***"

    def test_long_key(self):
        assert mask_key("0123456789") == "0123**6789"


class TestRestoreScope:
    def test_generic_keeps_suffix(self, record_factory, target, tmp_path):
        config = RestoreConfig(target=target, input_path=tmp_path / "x.json")
        record = record_factory("echo", "e1", "e2", suffix="apis/echo-api")

        assert restore_scope(record, config, target.cloud_subscription_id) == f"{TARGET_PREFIX}/apis/echo-api"

    def test_generic_instance_scope(self, record_factory, target, tmp_path):
        config = RestoreConfig(target=target, input_path=tmp_path / "x.json")
        record = record_factory("ops", "o1", "o2", suffix="")

        assert restore_scope(record, config, target.cloud_subscription_id) == TARGET_PREFIX

    def test_product_policy_requires_product(self, record_factory, target, tmp_path):
        config = RestoreConfig(target=target, input_path=tmp_path / "x.json", scope_policy=SCOPE_POLICY_PRODUCT)

        assert restore_scope(record_factory("ops", "o1", "o2", suffix=""), config, "sub") is None
        assert restore_scope(record_factory("alice", "a1", "a2"), config, "sub").endswith("/products/starter")


class TestRestore:
    def test_restores_all_but_master(self, fake_client, target, snapshot_file):
        summary = run_restore(RestoreConfig(target=target, input_path=snapshot_file), client=fake_client)

        assert (summary.restored, summary.failed, summary.skipped, summary.total) == (3, 0, 1, 4)
        created = {name: (scope, display, opts) for name, scope, display, opts in fake_client.created}
        assert set(created) == {"alice", "ops", "echo"}
        assert created["alice"][0] == f"{TARGET_PREFIX}/products/starter"
        assert created["ops"][0] == TARGET_PREFIX
        assert created["echo"][0] == f"{TARGET_PREFIX}/apis/echo-api"

    def test_carries_secrets_and_attributes(self, fake_client, target, snapshot_file):
        run_restore(RestoreConfig(target=target, input_path=snapshot_file), client=fake_client)

        name, _, display_name, opts = fake_client.created[0]
        assert (name, display_name) == ("alice", "Alice")
        assert (opts.primary_key, opts.secondary_key) == ("a1", "a2")
        assert opts.owner_id == "/users/alice"
        assert opts.allow_tracing is True
        assert opts.state == "active"

    def test_display_name_sent_verbatim(self, fake_client, target, tmp_path, record_factory):
        """Console markup escaping must not leak into the restored display name."""
        path = save_snapshot(tmp_path / "s.json", [record_factory("bob", "b1", "b2", display_name="[team] Bob")])

        run_restore(RestoreConfig(target=target, input_path=path), client=fake_client)

        assert fake_client.created[0][2] == "[team] Bob"

    def test_include_builtin(self, fake_client, target, snapshot_file):
        summary = run_restore(
            RestoreConfig(target=target, input_path=snapshot_file, include_builtin=True), client=fake_client
        )

        assert (summary.restored, summary.skipped) == (4, 0)
        assert fake_client.created[0][0] == "master"

    def test_dry_run_makes_no_calls(self, fake_client, target, snapshot_file):
        summary = run_restore(RestoreConfig(target=target, input_path=snapshot_file, dry_run=True), client=fake_client)

        assert summary.restored == 3
        assert fake_client.created == []

    def test_failures_counted_and_loop_continues(self, fake_client, target, snapshot_file):
        fake_client.fail_on = {"alice"}

        with pytest.raises(CommandFailed) as exc_info:
            run_restore(RestoreConfig(target=target, input_path=snapshot_file), client=fake_client)

        summary = exc_info.value.summary
        assert exc_info.value.failures == 1
        assert (summary.restored, summary.failed, summary.skipped) == (2, 1, 1)
        assert [c[0] for c in fake_client.created] == ["ops", "echo"]

    def test_product_policy_skips_and_fails(self, fake_client, target, snapshot_file):
        config = RestoreConfig(target=target, input_path=snapshot_file, scope_policy=SCOPE_POLICY_PRODUCT)

        with pytest.raises(CommandFailed) as exc_info:
            run_restore(config, client=fake_client)

        summary = exc_info.value.summary
        assert (summary.restored, summary.failed, summary.skipped) == (1, 2, 1)
        assert [c[0] for c in fake_client.created] == ["alice"]

    def test_empty_snapshot(self, fake_client, target, tmp_path):
        path = save_snapshot(tmp_path / "empty.json", [])

        summary = run_restore(RestoreConfig(target=target, input_path=path), client=fake_client)

        assert summary.total == 0
        assert fake_client.created == []

    def test_unreadable_snapshot_is_fatal(self, fake_client, target, tmp_path):
        with pytest.raises(SnapshotError):
            run_restore(RestoreConfig(target=target, input_path=tmp_path / "missing.json"), client=fake_client)

    def test_backup_then_restore_reproduces_keys(self, populated_client, fake_client, target, tmp_path):
        """Keys backed up from one instance come back identical in another."""
        backup = run_backup(BackupConfig(target=target, output=tmp_path / "b.json"), client=populated_client)
        run_restore(RestoreConfig(target=target, input_path=backup.path), client=fake_client)

        after = run_backup(BackupConfig(target=target, output=tmp_path / "after.json"), client=fake_client)
        restored = {r.name: r.properties for r in load_snapshot(after.path)}
        assert (restored["alice"].primary_key, restored["alice"].secondary_key) == ("a-primary", "a-secondary")
        assert restored["alice"].owner_id == "/users/alice"
        assert restored["ops"].allow_tracing is True


class TestDelete:
    def test_skips_master(self, populated_client, target):
        summary = run_delete(DeleteConfig(target=target), client=populated_client)

        assert (summary.deleted, summary.skipped, summary.failed) == (2, 1, 0)
        assert populated_client.deleted == ["alice", "ops"]

    def test_all_includes_master(self, populated_client, target):
        summary = run_delete(DeleteConfig(target=target, include_builtin=True), client=populated_client)

        assert summary.deleted == 3
        assert "master" in populated_client.deleted

    def test_product_filter(self, populated_client, target):
        run_delete(DeleteConfig(target=target, product_id="starter"), client=populated_client)
        assert populated_client.deleted == ["alice"]

    def test_dry_run(self, populated_client, target):
        summary = run_delete(DeleteConfig(target=target, dry_run=True), client=populated_client)

        assert summary.deleted == 2
        assert populated_client.deleted == []

    def test_failure_counted(self, populated_client, target):
        populated_client.fail_on = {"alice"}

        with pytest.raises(CommandFailed) as exc_info:
            run_delete(DeleteConfig(target=target), client=populated_client)

        summary = exc_info.value.summary
        assert (summary.deleted, summary.skipped, summary.failed) == (1, 1, 1)
        assert populated_client.deleted == ["ops"]

    def test_nothing_to_delete(self, fake_client, target):
        summary = run_delete(DeleteConfig(target=target), client=fake_client)
        assert summary.total == 0


class TestCompare:
    def test_success(self, tmp_path, record_factory):
        a = save_snapshot(tmp_path / "a.json", [record_factory("master", "m1", "m2"), record_factory("alice", "a1", "a2")])
        b = save_snapshot(tmp_path / "b.json", [record_factory("master", "x1", "x2"), record_factory("alice", "a1", "a2")])

        report = run_compare(CompareConfig(a, b))

        assert report.matched == 1
        assert report.ok

    def test_failure_after_full_report(self, tmp_path, record_factory, capsys):
        a = save_snapshot(
            tmp_path / "a.json",
            [record_factory("alice", "a1", "a2", display_name="Alice"), record_factory("bob", "b1", "b2")],
        )
        b = save_snapshot(tmp_path / "b.json", [record_factory("alice", "a1", "a2", display_name="Alicia")])

        with pytest.raises(CommandFailed) as exc_info:
            run_compare(CompareConfig(a, b))

        assert exc_info.value.failures == 2
        out = capsys.readouterr().out
        assert "displayName: 'Alice' != 'Alicia'" in out
        assert "[MISS] Bob" in out
        assert "1 mismatched, 1 missing" in out


class TestClean:
    def test_clean(self, tmp_path):
        root = tmp_path / "backup"
        (root / "rg").mkdir(parents=True)

        assert run_clean(root) is True
        assert run_clean(root) is False
