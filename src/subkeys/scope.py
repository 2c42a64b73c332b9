"""
Scope parsing and rebuilding for APIM subscription restores.

A subscription scope is a full ARM resource id, e.g.

    /subscriptions/<id>/resourceGroups/<rg>/providers/Microsoft.ApiManagement/service/<apim>/products/<product>

Everything up to and including the instance name is environment specific.
The remainder (``products/<product>``, ``apis/<api>``, or nothing for an
instance-wide subscription) is what carries over to another environment.
"""

from __future__ import annotations

SERVICE_MARKER = "/service/"
PRODUCT_MARKER = "/products/"
PROVIDER_NAMESPACE = "Microsoft.ApiManagement"


def extract_suffix(scope: str) -> str:
    """Return the part of ``scope`` that follows ``/service/<instance>/``.

    Returns ``""`` when the scope has no ``/service/`` segment or points at the
    instance itself; callers treat that as an instance-level scope.
    """
    idx = scope.rfind(SERVICE_MARKER)
    if idx == -1:
        return ""

    after_marker = scope[idx + len(SERVICE_MARKER):]
    slash = after_marker.find("/")
    if slash == -1:
        return ""

    suffix = after_marker[slash + 1:]
    if suffix.endswith("/"):
        suffix = suffix[:-1]
    return suffix


def extract_product_id(scope: str) -> str:
    """Return the product id of a product-scoped subscription, or ``""``."""
    idx = scope.rfind(PRODUCT_MARKER)
    if idx == -1:
        return ""
    product_id = scope[idx + len(PRODUCT_MARKER):]
    if product_id.endswith("/"):
        product_id = product_id[:-1]
    return product_id


def instance_scope(cloud_subscription_id: str, resource_group: str, service_name: str) -> str:
    return (
        f"/subscriptions/{cloud_subscription_id}"
        f"/resourceGroups/{resource_group}"
        f"/providers/{PROVIDER_NAMESPACE}"
        f"/service/{service_name}"
    )


def build_scope(cloud_subscription_id: str, resource_group: str, service_name: str, suffix: str = "") -> str:
    """Build a full scope for the target instance, appending ``suffix`` if any."""
    scope = instance_scope(cloud_subscription_id, resource_group, service_name)
    if suffix:
        scope = f"{scope}/{suffix}"
    return scope
