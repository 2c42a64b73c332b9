"""
Mapping between azure-mgmt-apimanagement models and persisted records.

The management API never returns keys from a list call, so every listed
subscription needs a second ``list_secrets`` round trip before it can be
written to a snapshot.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterator, Optional

from azure.mgmt.apimanagement.models import (
    SubscriptionContract,
    SubscriptionCreateParameters,
    SubscriptionKeysContract,
)

from .errors import IncompleteRecordError
from .models import CredentialProperties, CredentialRecord

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


def _state_string(state) -> str:
    if state is None:
        return ""
    return getattr(state, "value", state)


# ---------------------------------------------------------------------------
# Remote -> local
# ---------------------------------------------------------------------------


def record_from_contract(
    contract: SubscriptionContract,
    secrets: Optional[SubscriptionKeysContract] = None,
) -> CredentialRecord:
    """Project a listed subscription (plus its secrets) into a record."""
    primary = secrets.primary_key if secrets is not None else contract.primary_key
    secondary = secrets.secondary_key if secrets is not None else contract.secondary_key

    return CredentialRecord(
        id=contract.id or "",
        name=contract.name or "",
        type=contract.type or "",
        properties=CredentialProperties(
            owner_id=contract.owner_id or None,
            scope=contract.scope or "",
            display_name=contract.display_name or "",
            state=_state_string(contract.state),
            created_date=format_timestamp(contract.created_date),
            start_date=format_timestamp(contract.start_date),
            end_date=format_timestamp(contract.end_date),
            expiration_date=format_timestamp(contract.expiration_date),
            notification_date=format_timestamp(contract.notification_date),
            primary_key=primary or "",
            secondary_key=secondary or "",
            state_comment=contract.state_comment or None,
            allow_tracing=bool(contract.allow_tracing),
        ),
    )


def collect_records(client, product_id: Optional[str] = None) -> Iterator[CredentialRecord]:
    """List subscriptions and attach each one's keys.

    ``client`` must provide ``list_credentials`` and ``fetch_secrets``. Any
    failure propagates: a partial listing is not a usable snapshot.
    """
    for contract in client.list_credentials(product_id):
        if contract is None:
            continue
        name = contract.name or ""
        logger.debug("Fetching secrets for subscription %s", name)
        secrets = client.fetch_secrets(name)
        record = record_from_contract(contract, secrets)
        if not record.has_secrets:
            raise IncompleteRecordError(f"subscription {name} returned without both keys", entity=name)
        yield record


# ---------------------------------------------------------------------------
# Local -> remote
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CreateOptions:
    """Optional create/update fields carried over from a backed-up record."""

    primary_key: str = ""
    secondary_key: str = ""
    state: str = ""
    owner_id: str = ""
    allow_tracing: Optional[bool] = None

    @classmethod
    def from_record(cls, record: CredentialRecord) -> "CreateOptions":
        props = record.properties
        return cls(
            primary_key=props.primary_key,
            secondary_key=props.secondary_key,
            state=props.state,
            owner_id=props.owner_id or "",
            allow_tracing=props.allow_tracing,
        )


def to_create_parameters(scope: str, display_name: str, options: Optional[CreateOptions] = None) -> SubscriptionCreateParameters:
    """Build the create/update payload; empty optional values are not sent."""
    options = options or CreateOptions()
    return SubscriptionCreateParameters(
        scope=scope,
        display_name=display_name,
        primary_key=options.primary_key or None,
        secondary_key=options.secondary_key or None,
        state=options.state or None,
        owner_id=options.owner_id or None,
        allow_tracing=options.allow_tracing,
    )


def record_to_contract(record: CredentialRecord) -> SubscriptionContract:
    """Rebuild the SDK model for a record, timestamps parsed back to datetimes."""
    props = record.properties
    contract = SubscriptionContract(
        owner_id=props.owner_id,
        scope=props.scope,
        display_name=props.display_name,
        state=props.state or None,
        start_date=parse_timestamp(props.start_date),
        end_date=parse_timestamp(props.end_date),
        expiration_date=parse_timestamp(props.expiration_date),
        notification_date=parse_timestamp(props.notification_date),
        primary_key=props.primary_key or None,
        secondary_key=props.secondary_key or None,
        state_comment=props.state_comment,
        allow_tracing=props.allow_tracing,
    )
    # read-only on the wire, so not accepted by the constructor
    contract.id = record.id or None
    contract.name = record.name or None
    contract.type = record.type or None
    contract.created_date = parse_timestamp(props.created_date)
    return contract
