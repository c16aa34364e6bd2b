"""
Structural model of the Kuberhealthy ``KuberhealthyCheck`` custom resource.

Decoding only establishes that the payload has the shape of a khcheck; field
semantics such as duration syntax are left to Kuberhealthy itself.
"""

from __future__ import annotations

import json
import types
from dataclasses import dataclass, field
from typing import Any

from .errors import PayloadDecodeError

KHCHECK_API_VERSION = "comcast.github.io/v1"
KHCHECK_KIND = "KuberhealthyCheck"

TOP_LEVEL_FIELDS = {"apiVersion", "kind", "metadata", "spec", "status"}
SPEC_FIELDS = {"runInterval", "timeout", "podSpec", "extraAnnotations", "extraLabels"}


@dataclass(frozen=True)
class ObjectMeta:
    name: str = ""
    namespace: str = ""
    labels: types.MappingProxyType = field(default_factory=lambda: types.MappingProxyType({}))
    annotations: types.MappingProxyType = field(default_factory=lambda: types.MappingProxyType({}))


@dataclass(frozen=True)
class CheckConfig:
    run_interval: str = ""
    timeout: str = ""
    pod_spec: types.MappingProxyType = field(default_factory=lambda: types.MappingProxyType({}))
    extra_annotations: types.MappingProxyType = field(default_factory=lambda: types.MappingProxyType({}))
    extra_labels: types.MappingProxyType = field(default_factory=lambda: types.MappingProxyType({}))


@dataclass(frozen=True)
class KuberhealthyCheck:
    metadata: ObjectMeta
    spec: CheckConfig
    status: types.MappingProxyType = field(default_factory=lambda: types.MappingProxyType({}))
    api_version: str = KHCHECK_API_VERSION
    kind: str = KHCHECK_KIND


def _require_mapping(value: Any, path: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise PayloadDecodeError(f"{path} must be an object, got {type(value).__name__}")
    return value


def _optional_field(data: dict[str, Any], key: str, expected: type, path: str) -> Any:
    value = data.get(key)
    if value is None:
        return None
    # bool is an int subclass; a JSON true is not a valid integer field
    if not isinstance(value, expected) or (expected is int and isinstance(value, bool)):
        raise PayloadDecodeError(
            f"{path}.{key} must be of type {expected.__name__}, got {type(value).__name__}"
        )
    return value


def _string_map(data: dict[str, Any], key: str, path: str) -> types.MappingProxyType:
    value = _optional_field(data, key, dict, path) or {}
    for map_key, map_value in value.items():
        if not isinstance(map_value, str):
            raise PayloadDecodeError(f"{path}.{key}[{map_key!r}] must be a string")
    return types.MappingProxyType(dict(value))


def _reject_unknown(data: dict[str, Any], known: set[str], path: str) -> None:
    unknown = sorted(set(data) - known)
    if unknown:
        raise PayloadDecodeError(f"unknown field(s) in {path}: {', '.join(unknown)}")


def _decode_metadata(value: Any) -> ObjectMeta:
    metadata = _require_mapping(value, "metadata")
    for key in ("generateName", "uid", "resourceVersion", "creationTimestamp"):
        _optional_field(metadata, key, str, "metadata")
    _optional_field(metadata, "generation", int, "metadata")
    return ObjectMeta(
        name=_optional_field(metadata, "name", str, "metadata") or "",
        namespace=_optional_field(metadata, "namespace", str, "metadata") or "",
        labels=_string_map(metadata, "labels", "metadata"),
        annotations=_string_map(metadata, "annotations", "metadata"),
    )


def _decode_spec(value: Any) -> CheckConfig:
    spec = _require_mapping(value, "spec")
    _reject_unknown(spec, SPEC_FIELDS, "spec")

    pod_spec = _optional_field(spec, "podSpec", dict, "spec") or {}
    containers = pod_spec.get("containers")
    if containers is not None:
        if not isinstance(containers, list):
            raise PayloadDecodeError("spec.podSpec.containers must be a list")
        for index, container in enumerate(containers):
            _require_mapping(container, f"spec.podSpec.containers[{index}]")

    return CheckConfig(
        run_interval=_optional_field(spec, "runInterval", str, "spec") or "",
        timeout=_optional_field(spec, "timeout", str, "spec") or "",
        pod_spec=types.MappingProxyType(pod_spec),
        extra_annotations=_string_map(spec, "extraAnnotations", "spec"),
        extra_labels=_string_map(spec, "extraLabels", "spec"),
    )


def khcheck_from_dict(document: Any) -> KuberhealthyCheck:
    """Decode an already parsed JSON document into a ``KuberhealthyCheck``."""
    document = _require_mapping(document, "khcheck")
    _reject_unknown(document, TOP_LEVEL_FIELDS, "khcheck")

    api_version = document.get("apiVersion")
    kind = document.get("kind")
    if api_version != KHCHECK_API_VERSION or kind != KHCHECK_KIND:
        raise PayloadDecodeError(
            f"expected {KHCHECK_API_VERSION}, Kind={KHCHECK_KIND}; got {api_version}, Kind={kind}"
        )

    if "metadata" not in document or "spec" not in document:
        raise PayloadDecodeError("khcheck must contain 'metadata' and 'spec' fields")

    status = _optional_field(document, "status", dict, "khcheck") or {}

    return KuberhealthyCheck(
        metadata=_decode_metadata(document["metadata"]),
        spec=_decode_spec(document["spec"]),
        status=types.MappingProxyType(status),
    )


def decode_khcheck(raw: bytes) -> KuberhealthyCheck:
    """
    Decode the raw embedded object of an admission request.

    Raises:
        PayloadDecodeError: if ``raw`` is empty, not JSON, or not shaped like a khcheck.
    """
    if not raw:
        raise PayloadDecodeError("could not decode khcheck: empty object")
    try:
        document = json.loads(raw)
    except (ValueError, RecursionError) as exc:
        raise PayloadDecodeError(f"could not decode khcheck: {exc}") from exc
    return khcheck_from_dict(document)
