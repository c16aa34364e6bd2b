"""Lifecycle hooks the validator calls while processing a review."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .errors import AdmissionError
    from .review import AdmissionResponse
    from .validator import InboundRequest


logger = logging.getLogger(__name__)


class ValidationObserver:
    """No-op observer. Subclass and override the hooks you care about."""

    def started(self, request: InboundRequest) -> None:
        pass

    def completed(self, request: InboundRequest, response: AdmissionResponse) -> None:
        pass

    def rejected(self, request: InboundRequest, error: AdmissionError) -> None:
        pass


class LoggingObserver(ValidationObserver):
    def __init__(self, log: logging.Logger | None = None):
        self.log = log or logger

    def started(self, request):
        self.log.info("Handling validation webhook request.", extra={"method": request.method})

    def completed(self, request, response):
        self.log.info(
            "Completed validation. uid=%s allowed=%s",
            response.uid,
            response.allowed,
            extra={"uid": response.uid, "allowed": response.allowed},
        )

    def rejected(self, request, error):
        self.log.warning(
            "Admission validation failed: kind=%s status=%d stage=%s: %s",
            error.kind.value,
            error.status,
            error.stage.value if error.stage else "unknown",
            error.message,
            extra={"error_kind": error.kind.value, "status": int(error.status)},
        )
