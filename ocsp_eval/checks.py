import threading
from typing import Optional

from cryptography import x509

from .certificate import IssuerStub, parse_certificate
from .config import Config, resolve_config
from .models import CheckOutcome
from .ocsp_client import check_response, create_request, query


def check_cert(
    cert: x509.Certificate,
    issuer: IssuerStub,
    config: Optional[Config] = None,
    deadline: Optional[float] = None,
    cancel: Optional[threading.Event] = None,
) -> CheckOutcome:
    """Perform an OCSP check for cert and report if and when it was revoked.

    cert can be a precertificate, but issuer must describe the final
    certificate's issuer. Wraps create_request, query and check_response;
    their errors propagate unchanged.
    """
    config = resolve_config(config)
    responder_url, request_bytes = create_request(cert, issuer)
    response_bytes = query(
        responder_url,
        request_bytes,
        http_client=config.get_http_client(),
        user_agent=config.user_agent,
        deadline=deadline,
        cancel=cancel,
    )
    return check_response(cert, issuer, response_bytes)


def check_raw_cert(
    cert_bytes: bytes,
    issuer_subject: bytes,
    issuer_pubkey_bytes: bytes,
    config: Optional[Config] = None,
    deadline: Optional[float] = None,
    cancel: Optional[threading.Event] = None,
) -> CheckOutcome:
    """Like check_cert, starting from the raw certificate and its issuer's raw subject and public key"""
    cert, issuer = parse_certificate(cert_bytes, issuer_subject, issuer_pubkey_bytes)
    return check_cert(cert, issuer, config=config, deadline=deadline, cancel=cancel)
