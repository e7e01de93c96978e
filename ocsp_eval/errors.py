from __future__ import annotations

from typing import Optional

from .models import Stage


class OCSPError(Exception):
    """Base class for every failure raised by the OCSP pipeline.

    Each subclass names exactly one kind of failure and the pipeline stage
    that produces it, so callers can branch on the class instead of the message.
    """

    stage: Stage = Stage.PARSE


# Parse stage

class ParseError(OCSPError):
    """Certificate or issuer public key could not be decoded"""

    stage = Stage.PARSE


# Request stage

class NoResponderError(OCSPError):
    stage = Stage.REQUEST

    def __init__(self, message: str = "Certificate does not contain an HTTP OCSP responder URL"):
        super().__init__(message)


class NoCheckError(OCSPError):
    stage = Stage.REQUEST

    def __init__(self, message: str = "Certificate is an OCSP responder certificate with the OCSP No Check extension"):
        super().__init__(message)


class RequestEncodingError(OCSPError):
    stage = Stage.REQUEST


# Query stage

class TransportError(OCSPError):
    """Network, DNS, URL, timeout or cancellation failure while querying the responder"""

    stage = Stage.QUERY


class ResponderHTTPError(OCSPError):
    stage = Stage.QUERY

    def __init__(self, status_code: int, reason: Optional[str] = None):
        self.status_code = status_code
        self.reason = reason
        status = f"{status_code} {reason}" if reason else str(status_code)
        super().__init__(f"HTTP error from OCSP responder: {status}")


class InvalidContentTypeError(OCSPError):
    stage = Stage.QUERY

    def __init__(self, content_type: Optional[str]):
        self.content_type = content_type
        super().__init__(f"HTTP response header has invalid Content-Type value {content_type or ''}".rstrip())


# Check stage

class ResponseParseError(OCSPError):
    """Response is malformed, unsigned by the right key, or about another certificate"""

    stage = Stage.CHECK


class UnknownStatusError(OCSPError):
    stage = Stage.CHECK

    def __init__(self, message: str = "OCSP responder does not know this certificate"):
        super().__init__(message)


class ConfigError(Exception):
    """Configuration file could not be read or has invalid values"""
