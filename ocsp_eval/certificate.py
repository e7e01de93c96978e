from dataclasses import dataclass
from typing import Any, List, Tuple

from asn1crypto import keys as asn1_keys, x509 as asn1_x509
from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization

from .errors import ParseError


@dataclass(frozen=True)
class IssuerStub:
    """The parts of an issuer certificate needed to build and verify OCSP messages.

    This is not a certificate: it has no serial number, validity period or
    extensions. Use it only as the issuer argument of create_request and
    check_response.
    """

    subject: bytes
    subject_public_key_info: bytes
    public_key: Any

    def name_hash(self, algorithm: hashes.HashAlgorithm) -> bytes:
        return _digest(self.subject, algorithm)

    def key_hash(self, algorithm: hashes.HashAlgorithm) -> bytes:
        # RFC 6960 hashes the BIT STRING value, without tag, length or unused-bits octet
        spki = asn1_keys.PublicKeyInfo.load(self.subject_public_key_info)
        return _digest(spki["public_key"].contents[1:], algorithm)


def _digest(data: bytes, algorithm: hashes.HashAlgorithm) -> bytes:
    h = hashes.Hash(algorithm)
    h.update(data)
    return h.finalize()


def parse_certificate(cert_bytes: bytes, issuer_subject: bytes, issuer_pubkey_bytes: bytes) -> Tuple[x509.Certificate, IssuerStub]:
    """Parse a DER certificate and build an IssuerStub from its issuer's raw subject and public key.

    cert_bytes can be a precertificate, but issuer_subject and issuer_pubkey_bytes
    must come from the final certificate's issuer, not the precertificate's issuer.

    Raises ParseError if the certificate or the public key can't be decoded.
    """
    try:
        cert = x509.load_der_x509_certificate(cert_bytes)
        # extensions are decoded lazily; surface malformed ones now
        cert.extensions
    except (ValueError, TypeError, x509.InvalidVersion, x509.DuplicateExtension, x509.UnsupportedGeneralNameType) as exc:
        raise ParseError(f"unable to parse certificate: {exc}") from exc

    try:
        issuer_pubkey = serialization.load_der_public_key(issuer_pubkey_bytes)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise ParseError(f"unable to parse issuer public key: {exc}") from exc

    issuer = IssuerStub(
        subject=bytes(issuer_subject),
        subject_public_key_info=bytes(issuer_pubkey_bytes),
        public_key=issuer_pubkey,
    )
    return cert, issuer


def issuer_fields(issuer_cert: x509.Certificate) -> Tuple[bytes, bytes]:
    """Return the raw DER subject and SubjectPublicKeyInfo of a full issuer certificate"""
    der = issuer_cert.public_bytes(serialization.Encoding.DER)
    tbs = asn1_x509.Certificate.load(der)["tbs_certificate"]
    return tbs["subject"].dump(), tbs["subject_public_key_info"].dump()


def load_pem_chain(data: bytes) -> List[x509.Certificate]:
    """Parse every CERTIFICATE block of a PEM bundle, in order"""
    if not data.strip():
        return []
    try:
        return x509.load_pem_x509_certificates(data)
    except ValueError as exc:
        raise ParseError(f"invalid PEM: {exc}") from exc
