"""
Error kinds raised by the admission validation pipeline.

Every failure maps to exactly one HTTP status. Errors are never serialized into
the response body; callers match on ``kind`` (or the subclass) instead of the
message text.
"""

from __future__ import annotations

import enum
from http import HTTPStatus
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .validator import ValidationStage


class ErrorKind(enum.Enum):
    METHOD_NOT_ALLOWED = "MethodNotAllowed"
    UNSUPPORTED_CONTENT_TYPE = "UnsupportedContentType"
    BODY_READ_ERROR = "BodyReadError"
    ENVELOPE_DECODE_ERROR = "EnvelopeDecodeError"
    MISSING_REQUEST = "MissingRequest"
    RESOURCE_KIND_MISMATCH = "ResourceKindMismatch"
    PAYLOAD_DECODE_ERROR = "PayloadDecodeError"
    RESPONSE_ENCODE_ERROR = "ResponseEncodeError"
    RESPONSE_WRITE_ERROR = "ResponseWriteError"


class AdmissionError(Exception):
    """Base class for all terminal pipeline failures."""

    kind: ErrorKind
    status: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR

    def __init__(self, message: str, stage: ValidationStage | None = None):
        super().__init__(message)
        self.message = message
        # last stage reached before the failure; filled in by the validator
        self.stage = stage

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


class MethodNotAllowed(AdmissionError):
    kind = ErrorKind.METHOD_NOT_ALLOWED
    status = HTTPStatus.METHOD_NOT_ALLOWED


class UnsupportedContentType(AdmissionError):
    kind = ErrorKind.UNSUPPORTED_CONTENT_TYPE
    status = HTTPStatus.BAD_REQUEST


class BodyReadError(AdmissionError):
    kind = ErrorKind.BODY_READ_ERROR
    status = HTTPStatus.BAD_REQUEST


class EnvelopeDecodeError(AdmissionError):
    kind = ErrorKind.ENVELOPE_DECODE_ERROR
    status = HTTPStatus.INTERNAL_SERVER_ERROR


class MissingRequest(AdmissionError):
    kind = ErrorKind.MISSING_REQUEST
    status = HTTPStatus.BAD_REQUEST


class ResourceKindMismatch(AdmissionError):
    kind = ErrorKind.RESOURCE_KIND_MISMATCH
    status = HTTPStatus.BAD_REQUEST


class PayloadDecodeError(AdmissionError):
    kind = ErrorKind.PAYLOAD_DECODE_ERROR
    status = HTTPStatus.BAD_REQUEST


class ResponseEncodeError(AdmissionError):
    kind = ErrorKind.RESPONSE_ENCODE_ERROR
    status = HTTPStatus.INTERNAL_SERVER_ERROR


class ResponseWriteError(AdmissionError):
    kind = ErrorKind.RESPONSE_WRITE_ERROR
    status = HTTPStatus.INTERNAL_SERVER_ERROR


ERRORS_BY_KIND: dict[ErrorKind, type[AdmissionError]] = {
    cls.kind: cls
    for cls in (
        MethodNotAllowed,
        UnsupportedContentType,
        BodyReadError,
        EnvelopeDecodeError,
        MissingRequest,
        ResourceKindMismatch,
        PayloadDecodeError,
        ResponseEncodeError,
        ResponseWriteError,
    )
}
