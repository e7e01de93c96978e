import threading
import time
from datetime import timedelta
from typing import Optional, Tuple

from .certificate import parse_certificate
from .config import Config, resolve_config
from .errors import OCSPError
from .models import Evaluation
from .ocsp_client import check_response, create_request, query


def _timed_query(
    responder_url: str,
    request_bytes: bytes,
    config: Config,
    deadline: Optional[float],
    cancel: Optional[threading.Event],
) -> Tuple[Optional[bytes], timedelta, Optional[OCSPError]]:
    start = time.perf_counter()
    try:
        response_bytes = query(
            responder_url,
            request_bytes,
            http_client=config.get_http_client(),
            user_agent=config.user_agent,
            deadline=deadline,
            cancel=cancel,
        )
        error = None
    except OCSPError as exc:
        response_bytes = None
        error = exc
    response_time = timedelta(seconds=time.perf_counter() - start)
    return response_bytes, response_time, error


def evaluate(
    cert_bytes: bytes,
    issuer_subject: bytes,
    issuer_pubkey: bytes,
    config: Optional[Config] = None,
    deadline: Optional[float] = None,
    cancel: Optional[threading.Event] = None,
) -> Evaluation:
    """Evaluate the OCSP responder of a certificate.

    cert_bytes can be a precertificate, but issuer_subject and issuer_pubkey
    must come from the final certificate's issuer, not the precertificate's
    issuer.

    Runs parse_certificate, create_request, query and check_response in turn
    and stops at the first failure, which is recorded in the returned
    Evaluation rather than raised. Fields produced before the failure are kept.
    response_time covers the query alone. A config of None means Config().
    """
    config = resolve_config(config)
    config.log("[DEBUG] Evaluation starting\n")

    try:
        cert, issuer = parse_certificate(cert_bytes, issuer_subject, issuer_pubkey)
    except OCSPError as exc:
        config.log(f"[ERROR] Parse failed: {exc}\n")
        return Evaluation(error=exc)
    config.log(f"[DEBUG] Certificate parsed - Serial: {cert.serial_number:x}\n")

    try:
        responder_url, request_bytes = create_request(cert, issuer)
    except OCSPError as exc:
        config.log(f"[ERROR] Request creation failed: {exc}\n")
        return Evaluation(error=exc)
    config.log(f"[DEBUG] Request built - Responder: {responder_url}, {len(request_bytes)} bytes\n")

    response_bytes, response_time, error = _timed_query(responder_url, request_bytes, config, deadline, cancel)
    if error is not None:
        config.log(f"[ERROR] Query failed after {response_time.total_seconds():.3f}s: {error}\n")
        return Evaluation(
            responder_url=responder_url,
            request_bytes=request_bytes,
            response_time=response_time,
            error=error,
        )
    config.log(f"[DEBUG] Response received - {len(response_bytes)} bytes in {response_time.total_seconds():.3f}s\n")

    try:
        outcome = check_response(cert, issuer, response_bytes)
    except OCSPError as exc:
        config.log(f"[ERROR] Response check failed: {exc}\n")
        return Evaluation(
            responder_url=responder_url,
            request_bytes=request_bytes,
            response_bytes=response_bytes,
            response_time=response_time,
            error=exc,
        )

    config.log(f"[INFO] Evaluation completed - revoked={outcome.revoked}\n")
    return Evaluation(
        responder_url=responder_url,
        request_bytes=request_bytes,
        response_bytes=response_bytes,
        response_time=response_time,
        outcome=outcome,
    )
