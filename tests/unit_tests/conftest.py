"""Shared fixtures for unit tests."""

import io
import json

import pytest

from khcheck_admission.events import ValidationObserver
from khcheck_admission.validator import AdmissionValidator, InboundRequest, ResponseSink


class MemorySink(ResponseSink):
    """In-memory response sink mirroring the first-status-wins rule."""

    def __init__(self, fail_writes=False):
        self.status = None
        self.chunks = []
        self.fail_writes = fail_writes

    def write_header(self, status):
        if self.status is None:
            self.status = int(status)

    def write(self, data):
        if self.fail_writes:
            raise BrokenPipeError("client went away")
        if self.status is None:
            self.status = 200
        self.chunks.append(data)

    @property
    def body(self):
        return b"".join(self.chunks)


class RecordingObserver(ValidationObserver):
    def __init__(self):
        self.events = []

    def started(self, request):
        self.events.append(("started", None))

    def completed(self, request, response):
        self.events.append(("completed", response))

    def rejected(self, request, error):
        self.events.append(("rejected", error))


@pytest.fixture
def khcheck_object():
    """A minimal, well-formed KuberhealthyCheck"""
    return {
        "apiVersion": "comcast.github.io/v1",
        "kind": "KuberhealthyCheck",
        "metadata": {"name": "deployment", "namespace": "kuberhealthy"},
        "spec": {
            "runInterval": "15m",
            "timeout": "10m",
            "podSpec": {
                "containers": [
                    {
                        "name": "deployment",
                        "image": "kuberhealthy/deployment-check:v1.9.0",
                    }
                ]
            },
            "extraLabels": {"team": "platform"},
        },
    }


@pytest.fixture
def review_factory(khcheck_object):
    """Factory for AdmissionReview documents targeting khchecks"""

    def _create_review(
        uid="abc-123",
        resource=None,
        obj=None,
        operation="CREATE",
    ):
        if resource is None:
            resource = {"group": "comcast.github.io", "version": "v1", "resource": "khchecks"}
        return {
            "apiVersion": "admission.k8s.io/v1",
            "kind": "AdmissionReview",
            "request": {
                "uid": uid,
                "kind": {"group": "comcast.github.io", "version": "v1", "kind": "KuberhealthyCheck"},
                "resource": resource,
                "operation": operation,
                "namespace": "kuberhealthy",
                "name": "deployment",
                "object": khcheck_object if obj is None else obj,
            },
        }

    return _create_review


@pytest.fixture
def http_request_factory():
    """Factory for InboundRequests carrying a raw body"""

    def _create_request(body, method="POST", content_type="application/json", headers=None):
        if isinstance(body, dict):
            body = json.dumps(body).encode("utf-8")
        all_headers = {"Content-Length": str(len(body))}
        if content_type is not None:
            all_headers["Content-Type"] = content_type
        all_headers.update(headers or {})
        return InboundRequest(method=method, headers=all_headers, body=io.BytesIO(body))

    return _create_request


@pytest.fixture
def observer():
    return RecordingObserver()


@pytest.fixture
def validator(observer):
    return AdmissionValidator(observer=observer)


@pytest.fixture
def sink():
    return MemorySink()


@pytest.fixture
def failing_sink():
    return MemorySink(fail_writes=True)
