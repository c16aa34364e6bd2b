"""
KuberhealthyCheck Admission Webhook Package

This package provides a validating admission webhook that only admits
KuberhealthyCheck resources whose embedded object decodes cleanly.
"""

from .config import KHCHECK_RESOURCE, ServerConfig, ValidatorConfig
from .errors import AdmissionError, ErrorKind
from .events import LoggingObserver, ValidationObserver
from .review import AdmissionRequest, AdmissionResponse, AdmissionReview, GroupVersionResource
from .validator import AdmissionValidator, InboundRequest, ResponseSink, ValidationStage

__all__ = [
    'KHCHECK_RESOURCE',
    'ServerConfig',
    'ValidatorConfig',
    'AdmissionError',
    'ErrorKind',
    'LoggingObserver',
    'ValidationObserver',
    'AdmissionRequest',
    'AdmissionResponse',
    'AdmissionReview',
    'GroupVersionResource',
    'AdmissionValidator',
    'InboundRequest',
    'ResponseSink',
    'ValidationStage',
]
