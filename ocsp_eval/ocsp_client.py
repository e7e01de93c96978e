import threading
import time
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.exceptions import LocationParseError
from urllib3.util import SKIP_HEADER, Retry
from cryptography import x509
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import dsa, ec, ed448, ed25519, padding, rsa
from cryptography.x509.ocsp import (
    OCSPCertStatus,
    OCSPRequestBuilder,
    OCSPResponse,
    OCSPResponseStatus,
    OCSPSingleResponse,
    load_der_ocsp_response,
)
from cryptography.x509.oid import AuthorityInformationAccessOID, ExtendedKeyUsageOID, ExtensionOID, SignatureAlgorithmOID

from .certificate import IssuerStub, issuer_fields
from .errors import (
    InvalidContentTypeError,
    NoCheckError,
    NoResponderError,
    RequestEncodingError,
    ResponderHTTPError,
    ResponseParseError,
    TransportError,
    UnknownStatusError,
)
from .models import CheckOutcome, OCSPRequest

# Baseline Requirements 4.10.2: "The CA SHALL operate and maintain its CRL and
# OCSP capability with resources sufficient to provide a response time of ten
# seconds or less under normal operating conditions."
QUERY_TIMEOUT = 10.0

OCSP_REQUEST_CONTENT_TYPE = "application/ocsp-request"
OCSP_RESPONSE_CONTENT_TYPE = "application/ocsp-response"

_REQUEST_HASH = hashes.SHA1()
_CANCEL_POLL_INTERVAL = 0.05
_READ_CHUNK_SIZE = 16 * 1024

_URL_ERRORS = (
    requests.exceptions.MissingSchema,
    requests.exceptions.InvalidSchema,
    requests.exceptions.InvalidURL,
    LocationParseError,
)


def new_http_client(retries: int = 1) -> requests.Session:
    """Create a session for OCSP queries.

    Connection and read failures of POST requests are retried up to retries
    times. HTTP error statuses are never retried.
    """
    retry = Retry(
        total=retries,
        connect=retries,
        read=retries,
        status_forcelist=(),
        allowed_methods=Retry.DEFAULT_ALLOWED_METHODS | {"POST"},
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session = requests.Session()
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


default_http_client = new_http_client()


def _ocsp_servers(cert: x509.Certificate) -> List[str]:
    try:
        aia = cert.extensions.get_extension_for_class(x509.AuthorityInformationAccess).value
    except x509.ExtensionNotFound:
        return []
    return [
        desc.access_location.value
        for desc in aia
        if desc.access_method == AuthorityInformationAccessOID.OCSP
        and isinstance(desc.access_location, x509.UniformResourceIdentifier)
    ]


def _get_ocsp_server(cert: x509.Certificate) -> Optional[str]:
    for server in _ocsp_servers(cert):
        if server.startswith("http://"):
            return server
    return None


def _is_ocsp_responder_cert(cert: x509.Certificate) -> bool:
    try:
        eku = cert.extensions.get_extension_for_class(x509.ExtendedKeyUsage).value
    except x509.ExtensionNotFound:
        return False
    return ExtendedKeyUsageOID.OCSP_SIGNING in eku


def _has_ocsp_no_check(cert: x509.Certificate) -> bool:
    return any(ext.oid == ExtensionOID.OCSP_NO_CHECK for ext in cert.extensions)


def create_request(cert: x509.Certificate, issuer: IssuerStub) -> OCSPRequest:
    """Return the "http://" OCSP responder URL of cert and a DER OCSP request for it.

    cert can be a precertificate, but issuer must describe the final
    certificate's issuer, not the precertificate's issuer.

    Raises NoCheckError if cert is an OCSP responder certificate with the OCSP
    No Check extension, NoResponderError if it lacks an "http://" responder, or
    RequestEncodingError if the request can't be encoded.
    """
    if _is_ocsp_responder_cert(cert) and _has_ocsp_no_check(cert):
        raise NoCheckError()

    responder_url = _get_ocsp_server(cert)
    if responder_url is None:
        raise NoResponderError()

    try:
        builder = OCSPRequestBuilder().add_certificate_by_hash(
            issuer.name_hash(_REQUEST_HASH),
            issuer.key_hash(_REQUEST_HASH),
            cert.serial_number,
            _REQUEST_HASH,
        )
        request_bytes = builder.build().public_bytes(serialization.Encoding.DER)
    except (ValueError, TypeError) as exc:
        raise RequestEncodingError(f"error creating OCSP request: {exc}") from exc
    return OCSPRequest(responder_url, request_bytes)


def query(
    responder_url: str,
    request_bytes: bytes,
    http_client: Optional[requests.Session] = None,
    timeout: Optional[float] = None,
    user_agent: str = "",
    deadline: Optional[float] = None,
    cancel: Optional[threading.Event] = None,
) -> bytes:
    """POST an OCSP request to responder_url and return the raw response.

    The query gives up after timeout seconds (QUERY_TIMEOUT when None), or at
    deadline (a time.monotonic() value) if that comes first, or as soon as
    cancel is set. Every such stop, and every failure of the HTTP exchange,
    raises TransportError. A status other than 200 raises ResponderHTTPError;
    a Content-Type other than "application/ocsp-response" raises
    InvalidContentTypeError.
    """
    session = http_client if http_client is not None else default_http_client
    expires = time.monotonic() + (QUERY_TIMEOUT if timeout is None else timeout)
    if deadline is not None:
        expires = min(expires, deadline)

    headers = {
        "Content-Type": OCSP_REQUEST_CONTENT_TYPE,
        "Accept": OCSP_RESPONSE_CONTENT_TYPE,
        "User-Agent": user_agent or SKIP_HEADER,
    }

    if cancel is not None and cancel.is_set():
        raise TransportError("error querying OCSP responder over HTTP: query cancelled")
    budget = expires - time.monotonic()
    if budget <= 0:
        raise TransportError("error querying OCSP responder over HTTP: deadline exceeded")

    outcome: Dict[str, Any] = {}
    finished = threading.Event()
    abandoned = threading.Event()

    def exchange():
        try:
            with session.post(responder_url, data=request_bytes, headers=headers, timeout=budget, stream=True) as resp:
                body = bytearray()
                for chunk in resp.iter_content(chunk_size=_READ_CHUNK_SIZE):
                    if abandoned.is_set():
                        return
                    body.extend(chunk)
                outcome["response"] = (resp.status_code, resp.reason, resp.headers.get("Content-Type"), bytes(body))
        except Exception as exc:
            outcome["error"] = exc
        finally:
            finished.set()

    worker = threading.Thread(target=exchange, name="ocsp-query", daemon=True)
    worker.start()

    while not finished.is_set():
        if cancel is not None and cancel.is_set():
            abandoned.set()
            raise TransportError("error querying OCSP responder over HTTP: query cancelled")
        remaining = expires - time.monotonic()
        if remaining <= 0:
            abandoned.set()
            raise TransportError(f"error querying OCSP responder over HTTP: deadline exceeded after {budget:.3g}s")
        finished.wait(remaining if cancel is None else min(remaining, _CANCEL_POLL_INTERVAL))

    error = outcome.get("error")
    if error is not None:
        if isinstance(error, _URL_ERRORS):
            raise TransportError(f"error with OCSP responder URL: {error}") from error
        if isinstance(error, (requests.exceptions.ChunkedEncodingError, requests.exceptions.ContentDecodingError)):
            raise TransportError(f"error reading response from OCSP responder: {error}") from error
        raise TransportError(f"error querying OCSP responder over HTTP: {error}") from error

    status_code, reason, content_type, body = outcome["response"]
    if status_code != 200:
        raise ResponderHTTPError(status_code, reason)
    if content_type != OCSP_RESPONSE_CONTENT_TYPE:
        raise InvalidContentTypeError(content_type)
    return body


def _rsa_padding(signature_algorithm_oid: x509.ObjectIdentifier, hash_algorithm) -> padding.AsymmetricPadding:
    if signature_algorithm_oid == SignatureAlgorithmOID.RSASSA_PSS:
        return padding.PSS(mgf=padding.MGF1(hash_algorithm), salt_length=padding.PSS.AUTO)
    return padding.PKCS1v15()


def _verify_signature(public_key, signature: bytes, data: bytes, hash_algorithm, signature_algorithm_oid: x509.ObjectIdentifier) -> None:
    if isinstance(public_key, rsa.RSAPublicKey):
        public_key.verify(signature, data, _rsa_padding(signature_algorithm_oid, hash_algorithm), hash_algorithm)
    elif isinstance(public_key, ec.EllipticCurvePublicKey):
        public_key.verify(signature, data, ec.ECDSA(hash_algorithm))
    elif isinstance(public_key, (ed25519.Ed25519PublicKey, ed448.Ed448PublicKey)):
        public_key.verify(signature, data)
    elif isinstance(public_key, dsa.DSAPublicKey):
        public_key.verify(signature, data, hash_algorithm)
    else:
        raise UnsupportedAlgorithm(f"unsupported public key type {type(public_key).__name__}")


_SIGNATURE_ERRORS = (InvalidSignature, UnsupportedAlgorithm, ValueError, TypeError)


def _find_single_response(response: OCSPResponse, cert: x509.Certificate, issuer: IssuerStub) -> OCSPSingleResponse:
    for single in response.responses:
        if single.serial_number != cert.serial_number:
            continue
        try:
            algorithm = single.hash_algorithm
        except UnsupportedAlgorithm:
            continue
        if single.issuer_name_hash == issuer.name_hash(algorithm) and single.issuer_key_hash == issuer.key_hash(algorithm):
            return single
    raise ResponseParseError("error parsing OCSP response: no response matching the supplied certificate")


def _responder_key(responder: x509.Certificate, issuer: IssuerStub):
    """Public key of an embedded responder certificate, once it is shown to be delegated by issuer"""
    try:
        if issuer_fields(responder)[1] == issuer.subject_public_key_info:
            return issuer.public_key
    except ValueError as exc:
        raise ResponseParseError(f"error parsing OCSP response: malformed embedded certificate: {exc}") from exc

    try:
        _verify_signature(
            issuer.public_key,
            responder.signature,
            responder.tbs_certificate_bytes,
            responder.signature_hash_algorithm,
            responder.signature_algorithm_oid,
        )
    except _SIGNATURE_ERRORS as exc:
        raise ResponseParseError(f"error parsing OCSP response: bad signature on embedded certificate: {exc}") from exc

    try:
        authorized = _is_ocsp_responder_cert(responder)
        responder_key = responder.public_key()
    except (ValueError, UnsupportedAlgorithm, x509.DuplicateExtension, x509.UnsupportedGeneralNameType) as exc:
        raise ResponseParseError(f"error parsing OCSP response: unusable embedded certificate: {exc}") from exc
    if not authorized:
        raise ResponseParseError("error parsing OCSP response: embedded certificate is not authorized for OCSP signing")
    return responder_key


def _verify_response_signature(response: OCSPResponse, issuer: IssuerStub) -> None:
    try:
        certificates = response.certificates
    except ValueError as exc:
        raise ResponseParseError(f"error parsing OCSP response: {exc}") from exc

    signer_key = issuer.public_key
    if certificates:
        # Only the first embedded certificate is considered, and it must chain directly to the issuer
        signer_key = _responder_key(certificates[0], issuer)

    try:
        _verify_signature(
            signer_key,
            response.signature,
            response.tbs_response_bytes,
            response.signature_hash_algorithm,
            response.signature_algorithm_oid,
        )
    except _SIGNATURE_ERRORS as exc:
        raise ResponseParseError(f"error parsing OCSP response: bad OCSP signature: {exc}") from exc


def check_response(cert: x509.Certificate, issuer: IssuerStub, response_bytes: bytes) -> CheckOutcome:
    """Validate an OCSP response for cert and report if and when it was revoked.

    cert can be a precertificate, but issuer must describe the final
    certificate's issuer, not the precertificate's issuer.

    Raises ResponseParseError if the response can't be parsed, isn't about cert,
    or isn't properly signed, and UnknownStatusError if the status is neither
    good nor revoked.
    """
    try:
        response = load_der_ocsp_response(response_bytes)
    except ValueError as exc:
        raise ResponseParseError(f"error parsing OCSP response: {exc}") from exc

    if response.response_status != OCSPResponseStatus.SUCCESSFUL:
        raise ResponseParseError(f"error parsing OCSP response: error from server: {response.response_status.name.lower()}")

    try:
        single = _find_single_response(response, cert, issuer)
    except ValueError as exc:
        raise ResponseParseError(f"error parsing OCSP response: {exc}") from exc
    _verify_response_signature(response, issuer)

    if single.certificate_status == OCSPCertStatus.GOOD:
        return CheckOutcome(revoked=False)
    if single.certificate_status == OCSPCertStatus.REVOKED:
        return CheckOutcome(revoked=True, revocation_time=single.revocation_time_utc)
    raise UnknownStatusError()
