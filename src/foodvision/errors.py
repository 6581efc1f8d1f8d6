"""Error taxonomy for the prediction pipeline.

Every failure inside a pipeline stage surfaces as exactly one of the
``GatewayError`` subclasses below. Each class carries the HTTP status the API
answers with and a short machine readable kind for the response body.
"""
from __future__ import annotations

from typing import Optional


class GatewayError(Exception):
    """Base class for all pipeline failures."""

    status_code = 500
    error_kind = "internal_error"
    default_message = "Internal error"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_dict(self) -> dict:
        return {"error": self.error_kind, "detail": self.message}


class IngestError(GatewayError):
    """Raised when the upload stream fails or exceeds the size limit."""

    status_code = 400
    error_kind = "ingest_error"
    default_message = "Could not read the uploaded file"


class DecodeError(GatewayError):
    """Raised when the upload is not a decodable image."""

    status_code = 400
    error_kind = "decode_error"
    default_message = "Uploaded file is not a supported image"


class AuthError(GatewayError):
    """Raised when the service credentials are missing, invalid or expired."""

    status_code = 502
    error_kind = "auth_error"
    default_message = "Prediction service rejected the gateway credentials"


class NetworkError(GatewayError):
    """Raised on connection failures and timeouts talking to the model."""

    status_code = 504
    error_kind = "network_error"
    default_message = "Prediction service could not be reached"


class RemoteError(GatewayError):
    """Raised when the prediction service answers with an error or bad body."""

    status_code = 502
    error_kind = "remote_error"
    default_message = "Prediction service returned an invalid response"

    def __init__(self, message: Optional[str] = None, upstream_status: Optional[int] = None) -> None:
        super().__init__(message)
        self.upstream_status = upstream_status


class SchemaError(GatewayError):
    """Raised when scores and class list disagree."""

    status_code = 500
    error_kind = "schema_error"
    default_message = "Prediction does not match the configured class list"


class RequestCancelled(Exception):
    """Raised when the caller disconnected before the pipeline finished."""


__all__ = [
    "GatewayError",
    "IngestError",
    "DecodeError",
    "AuthError",
    "NetworkError",
    "RemoteError",
    "SchemaError",
    "RequestCancelled",
]
