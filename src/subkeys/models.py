"""
Persisted subscription record schema.

Mirrors the APIM REST ``SubscriptionContract`` shape so a snapshot file reads
like the management API's own JSON: top-level ``id``/``name``/``type`` and a
camelCase ``properties`` object. Optional properties are ``None`` when the
service did not return them and are left out of the JSON entirely.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

BUILTIN_SUBSCRIPTION_NAME = "master"


class SubscriptionState(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    SUBMITTED = "submitted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


# python attribute -> JSON key, in the order keys are written
PROPERTY_JSON_KEYS = {
    "owner_id": "ownerId",
    "scope": "scope",
    "display_name": "displayName",
    "state": "state",
    "created_date": "createdDate",
    "start_date": "startDate",
    "end_date": "endDate",
    "expiration_date": "expirationDate",
    "notification_date": "notificationDate",
    "primary_key": "primaryKey",
    "secondary_key": "secondaryKey",
    "state_comment": "stateComment",
    "allow_tracing": "allowTracing",
}

_OPTIONAL_PROPERTIES = {
    "owner_id",
    "created_date",
    "start_date",
    "end_date",
    "expiration_date",
    "notification_date",
    "state_comment",
}


@dataclass
class CredentialProperties:
    scope: str = ""
    display_name: str = ""
    state: str = SubscriptionState.ACTIVE.value
    primary_key: str = ""
    secondary_key: str = ""
    allow_tracing: bool = False
    owner_id: Optional[str] = None
    created_date: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    expiration_date: Optional[str] = None
    notification_date: Optional[str] = None
    state_comment: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for attr, key in PROPERTY_JSON_KEYS.items():
            value = getattr(self, attr)
            if attr in _OPTIONAL_PROPERTIES and value is None:
                continue
            out[key] = value
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CredentialProperties":
        kwargs: dict[str, Any] = {}
        for attr, key in PROPERTY_JSON_KEYS.items():
            if key in data and data[key] is not None:
                kwargs[attr] = data[key]
        tracing = kwargs.get("allow_tracing", False)
        if not isinstance(tracing, bool):
            raise ValueError(f"allowTracing must be true or false, got {tracing!r}")
        return cls(**kwargs)


@dataclass
class CredentialRecord:
    """One APIM subscription with both of its keys."""

    id: str = ""
    name: str = ""
    type: str = ""
    properties: CredentialProperties = field(default_factory=CredentialProperties)

    @property
    def display_name(self) -> str:
        return self.properties.display_name

    @property
    def is_builtin(self) -> bool:
        return self.name == BUILTIN_SUBSCRIPTION_NAME

    @property
    def has_secrets(self) -> bool:
        return bool(self.properties.primary_key) and bool(self.properties.secondary_key)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "properties": self.properties.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CredentialRecord":
        return cls(
            id=data.get("id") or "",
            name=data.get("name") or "",
            type=data.get("type") or "",
            properties=CredentialProperties.from_dict(data.get("properties") or {}),
        )
