"""Request intent and error classification."""

from scriptwell.classify.errors import (
    ClassifiedError,
    ErrorClassifier,
    OutputClassification,
    OutputErrorType,
    classify_output,
)
from scriptwell.classify.request import (
    ErrorLocation,
    RequestClassification,
    RequestClassifier,
    RequestIntent,
    extract_error_locations,
    routing_info,
)

__all__ = [
    "ClassifiedError",
    "ErrorClassifier",
    "ErrorLocation",
    "OutputClassification",
    "OutputErrorType",
    "RequestClassification",
    "RequestClassifier",
    "RequestIntent",
    "classify_output",
    "extract_error_locations",
    "routing_info",
]
