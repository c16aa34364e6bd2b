"""
Admission validator for KuberhealthyCheck resources.

The validator is a linear pipeline::

    Received -> EnvelopeValid -> ResourceKindValid -> PayloadValid -> Allowed -> Encoded

Any failure ends the pipeline: the matching HTTP status is set on the response
sink and a typed ``AdmissionError`` is raised, recording the last stage reached
in ``stage``. The body written on success is always an AdmissionReview carrying
an ``allowed`` verdict; failures never produce a verdict body.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import BinaryIO, Mapping

from .config import ValidatorConfig
from .errors import (
    AdmissionError,
    BodyReadError,
    MethodNotAllowed,
    MissingRequest,
    PayloadDecodeError,
    ResourceKindMismatch,
    ResponseWriteError,
    UnsupportedContentType,
)
from .events import LoggingObserver, ValidationObserver
from .review import AdmissionResponse, AdmissionReview, decode_review, encode_review


class ValidationStage(enum.Enum):
    RECEIVED = "Received"
    ENVELOPE_VALID = "EnvelopeValid"
    RESOURCE_KIND_VALID = "ResourceKindValid"
    PAYLOAD_VALID = "PayloadValid"
    ALLOWED = "Allowed"
    ENCODED = "Encoded"


@dataclass(frozen=True)
class InboundRequest:
    """The parts of an HTTP request the validator looks at."""

    method: str
    headers: Mapping[str, str] = field(default_factory=dict)
    body: BinaryIO | None = None

    def header(self, name: str) -> str | None:
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return None


class ResponseSink:
    """
    Writable HTTP response.

    The first status written wins. Writing data before any status implies 200.
    """

    def write_header(self, status: int) -> None:
        raise NotImplementedError

    def write(self, data: bytes) -> None:
        raise NotImplementedError


class AdmissionValidator:
    """Decides whether a KuberhealthyCheck may be admitted.

    Holds only immutable configuration, so one instance can serve concurrent
    requests.
    """

    def __init__(
        self,
        config: ValidatorConfig | None = None,
        observer: ValidationObserver | None = None,
    ):
        self.config = config or ValidatorConfig()
        self.observer = observer or LoggingObserver()

    def handle(self, request: InboundRequest, sink: ResponseSink) -> None:
        """
        Run the pipeline and write the verdict to ``sink``.

        Raises:
            AdmissionError: after the matching status has been set on ``sink``.
        """
        self.observer.started(request)

        try:
            response, body = self._evaluate(request)
        except AdmissionError as err:
            sink.write_header(err.status)
            self.observer.rejected(request, err)
            raise

        try:
            sink.write(body)
        except OSError as exc:
            # bytes may already be on the wire; the status is best effort
            sink.write_header(HTTPStatus.INTERNAL_SERVER_ERROR)
            err = ResponseWriteError(
                f"failed to write response: {exc}", stage=ValidationStage.ENCODED
            )
            self.observer.rejected(request, err)
            raise err from exc

        self.observer.completed(request, response)

    def review(self, request: InboundRequest) -> bytes:
        """Run the pipeline without a sink and return the encoded envelope."""
        _, body = self._evaluate(request)
        return body

    def _evaluate(self, request: InboundRequest) -> tuple[AdmissionResponse, bytes]:
        stage = ValidationStage.RECEIVED
        try:
            self._check_method(request)
            self._check_content_type(request)
            envelope = decode_review(self._read_body(request))
            if envelope.request is None:
                raise MissingRequest("malformed admission request: request is missing")
            stage = ValidationStage.ENVELOPE_VALID

            admission_request = envelope.request
            if admission_request.resource != self.config.expected_resource:
                raise ResourceKindMismatch(
                    f"expected resource to be {self.config.expected_resource}, "
                    f"got {admission_request.resource}"
                )
            stage = ValidationStage.RESOURCE_KIND_VALID

            self._decode_payload(admission_request.object_raw)
            stage = ValidationStage.PAYLOAD_VALID

            response = AdmissionResponse(uid=admission_request.uid, allowed=True)
            stage = ValidationStage.ALLOWED

            body = encode_review(AdmissionReview(response=response))
        except AdmissionError as err:
            err.stage = stage
            raise
        return response, body

    def _check_method(self, request: InboundRequest) -> None:
        if request.method != self.config.method:
            raise MethodNotAllowed(
                f"invalid method {request.method}, only {self.config.method} requests are allowed"
            )

    def _check_content_type(self, request: InboundRequest) -> None:
        content_type = request.header("Content-Type")
        if content_type != self.config.content_type:
            raise UnsupportedContentType(
                f"unsupported content type {content_type}, only {self.config.content_type} is supported"
            )

    def _read_body(self, request: InboundRequest) -> bytes:
        if request.body is None:
            return b""

        raw_length = request.header("Content-Length")
        try:
            if raw_length is None:
                return request.body.read()

            try:
                length = int(raw_length)
            except ValueError as exc:
                raise BodyReadError(f"invalid Content-Length {raw_length!r}") from exc
            if length < 0:
                raise BodyReadError(f"invalid Content-Length {raw_length!r}")

            data = request.body.read(length)
        except OSError as exc:
            raise BodyReadError(f"could not read admission request body: {exc}") from exc

        if len(data) != length:
            raise BodyReadError(
                f"could not read admission request body: expected {length} bytes, got {len(data)}"
            )
        return data

    def _decode_payload(self, raw: bytes) -> None:
        try:
            self.config.payload_decoder(raw)
        except PayloadDecodeError:
            raise
        except (TypeError, ValueError, RecursionError) as exc:
            # custom decoders may raise plain decoding errors
            raise PayloadDecodeError(f"could not decode object: {exc}") from exc
