"""
Shared pytest fixtures for the subscription backup/restore tests.

Provides:
  - SDK-shaped subscription contracts (azure-mgmt-apimanagement models)
  - persisted CredentialRecord builders
  - FakeSubscriptionClient: an in-memory stand-in for one APIM instance
"""

from datetime import datetime, timezone
from typing import Optional

import pytest
from azure.mgmt.apimanagement.models import SubscriptionContract, SubscriptionKeysContract

from subkeys.config import TargetConfig
from subkeys.errors import RemoteOperationError
from subkeys.models import CredentialProperties, CredentialRecord
from subkeys.projection import record_from_contract
from subkeys.scope import build_scope

SOURCE_SUB = "11111111-1111-1111-1111-111111111111"
TARGET_SUB = "22222222-2222-2222-2222-222222222222"
SOURCE_RG = "rg-source"
SOURCE_APIM = "apim-source"
TARGET_RG = "rg-target"
TARGET_APIM = "apim-target"

SUBSCRIPTION_TYPE = "Microsoft.ApiManagement/service/subscriptions"


def source_scope(suffix: str = "") -> str:
    return build_scope(SOURCE_SUB, SOURCE_RG, SOURCE_APIM, suffix)


def make_contract(
    name: str,
    *,
    display_name: Optional[str] = None,
    suffix: str = "products/starter",
    state: str = "active",
    owner_id: Optional[str] = None,
    allow_tracing: Optional[bool] = False,
    with_dates: bool = True,
) -> SubscriptionContract:
    contract = SubscriptionContract(
        scope=source_scope(suffix),
        display_name=display_name or name.title(),
        state=state,
        owner_id=owner_id,
        allow_tracing=allow_tracing,
        start_date=datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc) if with_dates else None,
        expiration_date=datetime(2026, 1, 2, 0, 0, 0, tzinfo=timezone.utc) if with_dates else None,
    )
    contract.id = f"{source_scope()}/subscriptions/{name}"
    contract.name = name
    contract.type = SUBSCRIPTION_TYPE
    contract.created_date = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc) if with_dates else None
    return contract


def make_record(
    name: str,
    primary: str,
    secondary: str,
    *,
    display_name: Optional[str] = None,
    suffix: str = "products/starter",
    **props,
) -> CredentialRecord:
    return CredentialRecord(
        id=f"{source_scope()}/subscriptions/{name}",
        name=name,
        type=SUBSCRIPTION_TYPE,
        properties=CredentialProperties(
            scope=source_scope(suffix),
            display_name=display_name or name.title(),
            primary_key=primary,
            secondary_key=secondary,
            created_date=props.pop("created_date", "2024-01-01T12:00:00Z"),
            **props,
        ),
    )


class FakeSubscriptionClient:
    """In-memory APIM instance exposing the four subscription operations."""

    def __init__(self, cloud_subscription_id: str = TARGET_SUB):
        self.cloud_subscription_id = cloud_subscription_id
        self.contracts: dict[str, SubscriptionContract] = {}
        self.secrets: dict[str, tuple[str, str]] = {}
        self.fail_on: set[str] = set()
        self.created: list[tuple] = []
        self.deleted: list[str] = []

    def add(self, contract: SubscriptionContract, primary: str, secondary: str) -> None:
        self.contracts[contract.name] = contract
        self.secrets[contract.name] = (primary, secondary)

    def list_credentials(self, product_id=None):
        contracts = list(self.contracts.values())
        if product_id:
            contracts = [c for c in contracts if c.scope.endswith(f"/products/{product_id}")]
        return contracts

    def fetch_secrets(self, name):
        primary, secondary = self.secrets[name]
        return SubscriptionKeysContract(primary_key=primary, secondary_key=secondary)

    def create_or_update(self, name, scope, display_name, options=None):
        if name in self.fail_on:
            raise RemoteOperationError(f"failed to create subscription {name}: Conflict", entity=name)
        self.created.append((name, scope, display_name, options))
        contract = SubscriptionContract(
            scope=scope,
            display_name=display_name,
            state=options.state if options else "active",
            owner_id=(options.owner_id or None) if options else None,
            allow_tracing=options.allow_tracing if options else None,
        )
        contract.name = name
        self.contracts[name] = contract
        if options:
            self.secrets[name] = (options.primary_key, options.secondary_key)
        return record_from_contract(contract, self.fetch_secrets(name))

    def delete(self, name):
        if name in self.fail_on:
            raise RemoteOperationError(f"failed to delete subscription {name}: PreconditionFailed", entity=name)
        self.deleted.append(name)
        self.contracts.pop(name, None)
        self.secrets.pop(name, None)


@pytest.fixture
def fake_client() -> FakeSubscriptionClient:
    return FakeSubscriptionClient()


@pytest.fixture
def populated_client(fake_client) -> FakeSubscriptionClient:
    """Instance with the built-in master key, one product key and one instance-wide key."""
    fake_client.add(make_contract("master", display_name="Built-in all-access subscription", suffix=""), "m1", "m2")
    fake_client.add(make_contract("alice", owner_id="/users/alice"), "a-primary", "a-secondary")
    fake_client.add(make_contract("ops", suffix="", allow_tracing=True), "o-primary", "o-secondary")
    return fake_client


@pytest.fixture
def backup_root(tmp_path, monkeypatch):
    root = tmp_path / "backup"
    monkeypatch.setenv("SUBKEYS_BACKUP_ROOT", str(root))
    return root


@pytest.fixture
def contract_factory():
    return make_contract


@pytest.fixture
def record_factory():
    return make_record


@pytest.fixture
def target() -> TargetConfig:
    return TargetConfig(resource_group=TARGET_RG, service_name=TARGET_APIM, cloud_subscription_id=TARGET_SUB)
