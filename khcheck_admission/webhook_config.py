"""Webhook configuration generation utilities."""

from __future__ import annotations

import re
from typing import Iterable

from .config import KHCHECK_RESOURCE
from .review import GroupVersionResource

DEFAULT_OPERATIONS = ("CREATE", "UPDATE")
FAILURE_POLICIES = {"Fail", "Ignore"}


def _render_list(values: Iterable[str], indent: int) -> list[str]:
    space = " " * indent
    return [f"{space}- {value}" for value in values]


def _quote_if_empty(value: str) -> str:
    # the core API group is the empty string and must stay quoted in YAML
    return value if value else '""'


def _webhook_name(name: str, resource: GroupVersionResource) -> tuple[str, str]:
    config_name = re.sub(r"[^a-z0-9.-]", "-", name.lower()).strip("-")
    config_name = config_name or "khcheck-admission"
    # webhook names must be fully qualified
    domain = resource.group or "k8s.io"
    return config_name, f"{config_name}.{domain}"


def generate_webhook_configuration_yaml(
    *,
    url: str,
    name: str = "khcheck-admission",
    resource: GroupVersionResource = KHCHECK_RESOURCE,
    operations: Iterable[str] = DEFAULT_OPERATIONS,
    ca_bundle: str | None = None,
    failure_policy: str = "Fail",
    timeout_seconds: int = 10,
) -> str:
    """
    Generate a ValidatingWebhookConfiguration that routes ``resource`` to this webhook.

    Args:
        url: Webhook URL reachable by the Kubernetes API server, including the path.
        name: metadata.name for the generated resource.
        resource: The group/version/resource triple the webhook validates.
        operations: Admission operations to intercept.
        ca_bundle: Optional base64-encoded CA bundle.
        failure_policy: ``Fail`` or ``Ignore``.
        timeout_seconds: API server call timeout, 1 to 30 seconds.
    """
    if failure_policy not in FAILURE_POLICIES:
        raise ValueError(f"failure_policy must be one of: {', '.join(sorted(FAILURE_POLICIES))}")
    if not 1 <= timeout_seconds <= 30:
        raise ValueError("timeout_seconds must be between 1 and 30")

    normalized_operations = sorted({operation.strip().upper() for operation in operations})
    if not normalized_operations:
        raise ValueError("at least one operation is required")

    config_name, webhook_name = _webhook_name(name, resource)

    lines = [
        "apiVersion: admissionregistration.k8s.io/v1",
        "kind: ValidatingWebhookConfiguration",
        "metadata:",
        f"  name: {config_name}",
        "webhooks:",
        f"  - name: {webhook_name}",
        "    admissionReviewVersions:",
        "      - v1",
        "    sideEffects: None",
        f"    failurePolicy: {failure_policy}",
        f"    timeoutSeconds: {timeout_seconds}",
        "    clientConfig:",
        f"      url: {url}",
    ]

    if ca_bundle:
        lines.append(f"      caBundle: {ca_bundle}")

    lines.extend(
        [
            "    rules:",
            "      - operations:",
            *_render_list(normalized_operations, 10),
            "        apiGroups:",
            *_render_list([_quote_if_empty(resource.group)], 10),
            "        apiVersions:",
            *_render_list([resource.version], 10),
            "        resources:",
            *_render_list([resource.resource], 10),
        ]
    )
    return "\n".join(lines) + "\n"
