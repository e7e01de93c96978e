"""Certificate authority, certificate and OCSP response builders shared by the tests."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Sequence

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed448, ed25519
from cryptography.x509 import ocsp
from cryptography.x509.oid import AuthorityInformationAccessOID, NameOID

from ocsp_eval.certificate import issuer_fields

OCSP_URL = "http://ocsp.example.com"


@dataclass
class CertKey:
    cert: x509.Certificate
    key: Any


def _name(common_name: str) -> x509.Name:
    return x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])


def _sign_algorithm(key):
    if isinstance(key, (ed25519.Ed25519PrivateKey, ed448.Ed448PrivateKey)):
        return None
    return hashes.SHA256()


def build_ca(common_name: str = "Test OCSP CA", key=None) -> CertKey:
    """Generate a self-signed CA certificate."""
    key = key or ec.generate_private_key(ec.SECP256R1())
    now = datetime.now(timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(_name(common_name))
        .issuer_name(_name(common_name))
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=3650))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .sign(key, _sign_algorithm(key))
    )
    return CertKey(cert, key)


def build_cert(
    issuer: CertKey,
    common_name: str = "leaf.example.com",
    serial: Optional[int] = None,
    ocsp_urls: Sequence[str] = (OCSP_URL,),
    eku: Sequence[x509.ObjectIdentifier] = (),
    no_check: bool = False,
    precert: bool = False,
    ca: bool = False,
    rsa_padding=None,
) -> CertKey:
    """Generate a certificate signed by issuer."""
    key = ec.generate_private_key(ec.SECP256R1())
    now = datetime.now(timezone.utc)
    builder = (
        x509.CertificateBuilder()
        .subject_name(_name(common_name))
        .issuer_name(issuer.cert.subject)
        .public_key(key.public_key())
        .serial_number(serial or x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=90))
    )
    if ocsp_urls:
        builder = builder.add_extension(
            x509.AuthorityInformationAccess([
                x509.AccessDescription(AuthorityInformationAccessOID.OCSP, x509.UniformResourceIdentifier(url))
                for url in ocsp_urls
            ]),
            critical=False,
        )
    if eku:
        builder = builder.add_extension(x509.ExtendedKeyUsage(list(eku)), critical=False)
    if no_check:
        builder = builder.add_extension(x509.OCSPNoCheck(), critical=False)
    if precert:
        builder = builder.add_extension(x509.PrecertPoison(), critical=True)
    if ca:
        builder = builder.add_extension(x509.BasicConstraints(ca=True, path_length=0), critical=True)
    return CertKey(builder.sign(issuer.key, _sign_algorithm(issuer.key), rsa_padding=rsa_padding), key)


def build_response(
    cert: x509.Certificate,
    issuer: CertKey,
    status: ocsp.OCSPCertStatus = ocsp.OCSPCertStatus.GOOD,
    revoked_at: Optional[datetime] = None,
    signer: Optional[CertKey] = None,
    embed: bool = False,
    algorithm: hashes.HashAlgorithm = hashes.SHA1(),
) -> bytes:
    """Build a DER OCSP response about cert, signed by signer (the issuer by default)."""
    signer = signer or issuer
    now = datetime.now(timezone.utc).replace(microsecond=0)
    revoked = status == ocsp.OCSPCertStatus.REVOKED
    builder = ocsp.OCSPResponseBuilder().add_response(
        cert=cert,
        issuer=issuer.cert,
        algorithm=algorithm,
        cert_status=status,
        this_update=now,
        next_update=now + timedelta(days=1),
        revocation_time=(revoked_at or now) if revoked else None,
        revocation_reason=x509.ReasonFlags.key_compromise if revoked else None,
    )
    builder = builder.responder_id(ocsp.OCSPResponderEncoding.HASH, signer.cert)
    if embed:
        builder = builder.certificates([signer.cert])
    response = builder.sign(signer.key, _sign_algorithm(signer.key))
    return response.public_bytes(serialization.Encoding.DER)


def der(cert: x509.Certificate) -> bytes:
    return cert.public_bytes(serialization.Encoding.DER)


def pem(*certs: x509.Certificate) -> bytes:
    return b"".join(c.public_bytes(serialization.Encoding.PEM) for c in certs)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def ca() -> CertKey:
    return build_ca()


@pytest.fixture
def leaf(ca) -> CertKey:
    return build_cert(ca)


@pytest.fixture
def issuer_bytes(ca):
    """Raw (subject, SubjectPublicKeyInfo) of the CA"""
    return issuer_fields(ca.cert)


@pytest.fixture
def pki():
    """Expose the builders to test modules without importing conftest."""

    class _PKI:
        ca = staticmethod(build_ca)
        cert = staticmethod(build_cert)
        response = staticmethod(build_response)
        der = staticmethod(der)
        pem = staticmethod(pem)
        ocsp_url = OCSP_URL

    return _PKI
