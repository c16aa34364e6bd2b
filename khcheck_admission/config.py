"""Process-wide configuration, built once at startup and never mutated."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Callable

from .khcheck import decode_khcheck
from .review import GroupVersionResource

KHCHECK_RESOURCE = GroupVersionResource(group="comcast.github.io", version="v1", resource="khchecks")

CONTENT_TYPE_JSON = "application/json"
METHOD_POST = "POST"

ENV_PREFIX = "KHCHECK_WEBHOOK_"


@dataclass(frozen=True)
class ValidatorConfig:
    expected_resource: GroupVersionResource = KHCHECK_RESOURCE
    content_type: str = CONTENT_TYPE_JSON
    method: str = METHOD_POST
    # raises PayloadDecodeError on malformed input
    payload_decoder: Callable[[bytes], Any] = decode_khcheck


@dataclass(frozen=True)
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 8443
    path: str = "/validate"
    cert_file: str | None = None
    key_file: str | None = None
    log_level: str = "INFO"

    @property
    def tls_enabled(self) -> bool:
        return bool(self.cert_file and self.key_file)


def env_default(name: str, default: Any = None) -> Any:
    """Return ``KHCHECK_WEBHOOK_<NAME>`` from the environment, or ``default``."""
    return os.environ.get(f"{ENV_PREFIX}{name.upper()}", default)
