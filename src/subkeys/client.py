"""
Thin wrapper around ``ApiManagementClient`` for subscription operations.

Authentication uses the signed-in Azure CLI session. When no cloud
subscription id is given, the active one is read from ``az account show``.
"""

from __future__ import annotations

import json
import logging
import subprocess
from contextlib import contextmanager
from typing import Iterable, Iterator, Optional

from azure.core.exceptions import AzureError, ClientAuthenticationError
from azure.identity import AzureCliCredential
from azure.mgmt.apimanagement import ApiManagementClient
from azure.mgmt.apimanagement.models import SubscriptionContract, SubscriptionKeysContract

from .config import TargetConfig
from .errors import AuthenticationError, RemoteOperationError
from .models import CredentialRecord
from .projection import CreateOptions, record_from_contract, to_create_parameters

logger = logging.getLogger(__name__)


def _run(cmd: list[str], timeout: int = 30) -> tuple[bool, str]:
    """Run a command and return (success, stdout)."""
    try:
        r = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
        return r.returncode == 0, r.stdout.strip()
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return False, ""


def resolve_cloud_subscription_id() -> str:
    """Return the active Azure subscription id from the Azure CLI."""
    ok, out = _run(["az", "account", "show", "--query", "id", "-o", "tsv"])
    if ok and out:
        return out

    ok, out = _run(["az", "account", "show", "-o", "json"])
    if not ok:
        raise AuthenticationError("no subscription ID provided and 'az account show' failed; run 'az login'")
    try:
        account = json.loads(out)
    except json.JSONDecodeError as exc:
        raise AuthenticationError(f"failed to parse 'az account show' output: {exc}") from exc

    sub_id = account.get("id", "") if isinstance(account, dict) else ""
    if not sub_id:
        raise AuthenticationError("no subscription ID found in 'az account show' output")
    return sub_id


@contextmanager
def _translate_errors(action: str, entity: Optional[str] = None) -> Iterator[None]:
    """Map SDK failures onto the package's error types.

    Authentication failures (``CredentialUnavailableError`` included) are
    fatal. Any other ``AzureError``, HTTP or transport, is a remote failure
    attributed to ``entity``.
    """
    try:
        yield
    except ClientAuthenticationError as exc:
        raise AuthenticationError(f"authentication failed: {exc.message}") from exc
    except AzureError as exc:
        raise RemoteOperationError(f"failed to {action}: {exc.message}", entity=entity) from exc


class ApimSubscriptionClient:
    """Subscription list / secrets / create / delete for one APIM instance."""

    def __init__(self, target: TargetConfig, sdk_client: ApiManagementClient):
        self.target = target
        self._sdk = sdk_client

    @classmethod
    def connect(cls, target: TargetConfig, credential=None) -> "ApimSubscriptionClient":
        """Authenticate and build a client; resolves the subscription id if unset."""
        sub_id = target.cloud_subscription_id or resolve_cloud_subscription_id()
        if sub_id != target.cloud_subscription_id:
            target = TargetConfig(target.resource_group, target.service_name, sub_id)
        try:
            credential = credential or AzureCliCredential()
            sdk = ApiManagementClient(credential, sub_id)
        except ClientAuthenticationError as exc:
            raise AuthenticationError(f"authentication failed: {exc.message}") from exc
        logger.debug("Connected to %s/%s in subscription %s", target.resource_group, target.service_name, sub_id)
        return cls(target, sdk)

    @property
    def cloud_subscription_id(self) -> str:
        return self.target.cloud_subscription_id

    # -- collaborator operations ------------------------------------------

    def list_credentials(self, product_id: Optional[str] = None) -> Iterable[SubscriptionContract]:
        """All subscriptions of the instance, or only those of ``product_id``.

        Returned contracts carry no keys; see :meth:`fetch_secrets`.
        """
        rg, name = self.target.resource_group, self.target.service_name
        with _translate_errors("list subscriptions"):
            if product_id:
                pager = self._sdk.product_subscriptions.list(rg, name, product_id)
            else:
                pager = self._sdk.subscription.list(rg, name)
            # drain here so paging errors surface as RemoteOperationError
            return list(pager)

    def fetch_secrets(self, name: str) -> SubscriptionKeysContract:
        with _translate_errors(f"get secrets for subscription {name}", name):
            return self._sdk.subscription.list_secrets(self.target.resource_group, self.target.service_name, name)

    def create_or_update(
        self,
        name: str,
        scope: str,
        display_name: str,
        options: Optional[CreateOptions] = None,
    ) -> CredentialRecord:
        """Create (or overwrite) subscription ``name`` and return it with its keys."""
        params = to_create_parameters(scope, display_name, options)
        rg, service = self.target.resource_group, self.target.service_name
        with _translate_errors(f"create subscription {name}", name):
            contract = self._sdk.subscription.create_or_update(rg, service, name, params)
        # create_or_update does not echo the keys back
        return record_from_contract(contract, self.fetch_secrets(name))

    def delete(self, name: str) -> None:
        with _translate_errors(f"delete subscription {name}", name):
            self._sdk.subscription.delete(self.target.resource_group, self.target.service_name, name, if_match="*")
