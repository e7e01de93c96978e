from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, NamedTuple, Optional

if TYPE_CHECKING:
    from .errors import OCSPError


class Stage(Enum):
    PARSE = "parse"
    REQUEST = "request"
    QUERY = "query"
    CHECK = "check"


class OCSPRequest(NamedTuple):
    responder_url: str
    request_bytes: bytes


@dataclass(frozen=True)
class CheckOutcome:
    revoked: bool
    # UTC; None unless revoked
    revocation_time: Optional[datetime] = None


@dataclass(frozen=True)
class Evaluation:
    """Result of evaluating a certificate's OCSP responder.

    If error is None, responder_url, request_bytes, response_bytes and outcome
    are all set. Otherwise any of them may be None, depending on the stage
    that failed.
    """

    responder_url: Optional[str] = None
    request_bytes: Optional[bytes] = None
    response_bytes: Optional[bytes] = None
    response_time: timedelta = timedelta(0)
    error: Optional[OCSPError] = None
    outcome: Optional[CheckOutcome] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def failed_stage(self) -> Optional[Stage]:
        if self.error is None:
            return None
        return self.error.stage
