"""
AdmissionReview envelope model and its JSON codec.

Only the fields the validator consumes or produces are modelled. Everything is
built fresh per request.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from .errors import EnvelopeDecodeError, ResponseEncodeError

ADMISSION_API_VERSION = "admission.k8s.io/v1"
ADMISSION_REVIEW_KIND = "AdmissionReview"


@dataclass(frozen=True)
class GroupVersionResource:
    group: str = ""
    version: str = ""
    resource: str = ""

    def __str__(self) -> str:
        if self.group:
            return f"{self.group}/{self.version}, Resource={self.resource}"
        return f"{self.version}, Resource={self.resource}"


@dataclass(frozen=True)
class AdmissionRequest:
    uid: str
    resource: GroupVersionResource
    object_raw: bytes = b""
    operation: str = ""
    namespace: str = ""
    name: str = ""


@dataclass(frozen=True)
class AdmissionResponse:
    uid: str
    allowed: bool
    reason: str | None = None


@dataclass(frozen=True)
class AdmissionReview:
    request: AdmissionRequest | None = None
    response: AdmissionResponse | None = None


def _expect_type(value: Any, expected: type | tuple[type, ...], path: str) -> Any:
    if not isinstance(value, expected):
        raise EnvelopeDecodeError(
            f"{path} must be of type {getattr(expected, '__name__', expected)}, "
            f"got {type(value).__name__}"
        )
    return value


def _optional_str(data: dict[str, Any], key: str, path: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    return _expect_type(value, str, f"{path}.{key}")


def _decode_resource(value: Any) -> GroupVersionResource:
    if value is None:
        return GroupVersionResource()
    _expect_type(value, dict, "request.resource")
    return GroupVersionResource(
        group=_optional_str(value, "group", "request.resource"),
        version=_optional_str(value, "version", "request.resource"),
        resource=_optional_str(value, "resource", "request.resource"),
    )


def _decode_request(value: dict[str, Any]) -> AdmissionRequest:
    embedded = value.get("object")
    # the embedded object stays opaque; keep it as bytes for the payload decoder
    try:
        object_raw = b"" if embedded is None else json.dumps(embedded).encode("utf-8")
    except (ValueError, RecursionError) as exc:
        raise EnvelopeDecodeError(f"could not re-encode request.object: {exc}") from exc
    return AdmissionRequest(
        uid=_optional_str(value, "uid", "request"),
        resource=_decode_resource(value.get("resource")),
        object_raw=object_raw,
        operation=_optional_str(value, "operation", "request"),
        namespace=_optional_str(value, "namespace", "request"),
        name=_optional_str(value, "name", "request"),
    )


def _decode_response(value: dict[str, Any]) -> AdmissionResponse:
    allowed = value.get("allowed", False)
    if not isinstance(allowed, bool):
        raise EnvelopeDecodeError("response.allowed must be a boolean")

    reason = None
    status = value.get("status")
    if status is not None:
        _expect_type(status, dict, "response.status")
        message = status.get("message")
        if message is not None:
            reason = _expect_type(message, str, "response.status.message")

    return AdmissionResponse(
        uid=_optional_str(value, "uid", "response"),
        allowed=allowed,
        reason=reason,
    )


def decode_review(body: bytes) -> AdmissionReview:
    """
    Decode an AdmissionReview envelope.

    An absent, null or empty ``request`` decodes to ``request=None``; deciding
    whether that is acceptable is left to the caller.

    Raises:
        EnvelopeDecodeError: if the body is not a well-formed v1 AdmissionReview.
    """
    # ValueError also covers UnicodeDecodeError and the int digit limit
    try:
        document = json.loads(body.decode("utf-8"))
    except (ValueError, RecursionError) as exc:
        raise EnvelopeDecodeError(f"could not decode admission review: {exc}") from exc

    _expect_type(document, dict, "admission review")

    api_version = document.get("apiVersion")
    kind = document.get("kind")
    if not api_version or not kind:
        raise EnvelopeDecodeError("admission review is missing apiVersion or kind")
    if api_version != ADMISSION_API_VERSION or kind != ADMISSION_REVIEW_KIND:
        raise EnvelopeDecodeError(
            f"unsupported envelope {api_version}, Kind={kind}; "
            f"expected {ADMISSION_API_VERSION}, Kind={ADMISSION_REVIEW_KIND}"
        )

    request = document.get("request")
    response = document.get("response")
    if request is not None:
        _expect_type(request, dict, "request")
    if response is not None:
        _expect_type(response, dict, "response")

    return AdmissionReview(
        request=_decode_request(request) if request else None,
        response=_decode_response(response) if response else None,
    )


def review_to_dict(review: AdmissionReview) -> dict[str, Any]:
    document: dict[str, Any] = {
        "apiVersion": ADMISSION_API_VERSION,
        "kind": ADMISSION_REVIEW_KIND,
    }
    if review.request is not None:
        request = review.request
        document["request"] = {
            "uid": request.uid,
            "resource": {
                "group": request.resource.group,
                "version": request.resource.version,
                "resource": request.resource.resource,
            },
        }
        if request.object_raw:
            document["request"]["object"] = json.loads(request.object_raw)
    if review.response is not None:
        response: dict[str, Any] = {
            "uid": review.response.uid,
            "allowed": review.response.allowed,
        }
        if review.response.reason:
            response["status"] = {"message": review.response.reason}
        document["response"] = response
    return document


def encode_review(review: AdmissionReview) -> bytes:
    """Serialize an envelope to compact JSON bytes."""
    try:
        return json.dumps(review_to_dict(review), separators=(",", ":")).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise ResponseEncodeError(f"marshaling response: {exc}") from exc
