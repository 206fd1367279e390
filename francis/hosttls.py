"""TLS configuration for hosts that talk to each other."""

from __future__ import annotations

import enum
import os
import ssl
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

MIN_TLS_VERSION = ssl.TLSVersion.TLSv1_3
ALPN_HTTP3 = "h3"

_SELF_SIGNED_ORGANIZATION = "Actor Host"
_SELF_SIGNED_VALIDITY = timedelta(days=180)


class ClientAuth(enum.Enum):
    """How a server asks for and checks client certificates."""

    NO_CLIENT_CERT = "no-client-cert"
    REQUEST_CLIENT_CERT = "request-client-cert"
    REQUIRE_ANY_CLIENT_CERT = "require-any-client-cert"
    VERIFY_CLIENT_CERT_IF_GIVEN = "verify-client-cert-if-given"
    REQUIRE_AND_VERIFY_CLIENT_CERT = "require-and-verify-client-cert"

    @property
    def verify_mode(self) -> ssl.VerifyMode:
        """The closest ``ssl`` verify mode for a server context.

        ``ssl`` cannot require a certificate without verifying it, so
        REQUIRE_ANY_CLIENT_CERT also verifies the certificate.
        """
        if self is ClientAuth.NO_CLIENT_CERT:
            return ssl.CERT_NONE
        if self in (ClientAuth.REQUEST_CLIENT_CERT, ClientAuth.VERIFY_CLIENT_CERT_IF_GIVEN):
            return ssl.CERT_OPTIONAL
        return ssl.CERT_REQUIRED


@dataclass
class TLSCertificate:
    """A certificate chain (leaf first) with its private key."""

    certificates: list[x509.Certificate] = field(default_factory=list)
    private_key: Any = None

    @property
    def complete(self) -> bool:
        """True if there is at least one certificate and a private key."""
        return bool(self.certificates) and self.private_key is not None

    @property
    def leaf(self) -> x509.Certificate | None:
        return self.certificates[0] if self.certificates else None

    def cert_pem(self) -> bytes:
        return b"".join(
            cert.public_bytes(serialization.Encoding.PEM) for cert in self.certificates
        )

    def key_pem(self) -> bytes:
        return self.private_key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )

    @classmethod
    def from_pem(cls, cert_pem: bytes, key_pem: bytes) -> TLSCertificate:
        """Load a chain and an unencrypted private key from PEM data."""
        certificates = x509.load_pem_x509_certificates(cert_pem)
        private_key = serialization.load_pem_private_key(key_pem, password=None)
        return cls(certificates=list(certificates), private_key=private_key)


def _pem_bundle(certificates: list[x509.Certificate]) -> str:
    return "".join(
        cert.public_bytes(serialization.Encoding.PEM).decode("ascii")
        for cert in certificates
    )


def _load_chain(ctx: ssl.SSLContext, certificate: TLSCertificate) -> None:
    with tempfile.TemporaryDirectory() as directory:
        cert_path = os.path.join(directory, "cert.pem")
        key_path = os.path.join(directory, "key.pem")
        with open(cert_path, "wb") as fh:
            fh.write(certificate.cert_pem())
        with open(key_path, "wb") as fh:
            fh.write(certificate.key_pem())
        ctx.load_cert_chain(cert_path, key_path)


@dataclass
class TLSConfig:
    """Settings for one side (server or client) of a TLS connection."""

    min_version: ssl.TLSVersion = MIN_TLS_VERSION
    client_auth: ClientAuth = ClientAuth.NO_CLIENT_CERT
    certificates: list[TLSCertificate] = field(default_factory=list)
    root_cas: list[x509.Certificate] | None = None
    client_cas: list[x509.Certificate] | None = None
    next_protos: list[str] = field(default_factory=list)
    insecure_skip_verify: bool = False

    def to_ssl_context(self, server: bool) -> ssl.SSLContext:
        """Build an ``ssl.SSLContext`` for the server or the client side."""
        if server:
            ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
            if self.client_cas:
                ctx.load_verify_locations(cadata=_pem_bundle(self.client_cas))
            ctx.verify_mode = self.client_auth.verify_mode
        else:
            ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
            if self.insecure_skip_verify:
                ctx.check_hostname = False
                ctx.verify_mode = ssl.CERT_NONE
            if self.root_cas:
                ctx.load_verify_locations(cadata=_pem_bundle(self.root_cas))
            else:
                ctx.load_default_certs(ssl.Purpose.SERVER_AUTH)

        ctx.minimum_version = self.min_version
        if self.next_protos:
            ctx.set_alpn_protocols(self.next_protos)
        for certificate in self.certificates:
            _load_chain(ctx, certificate)
        return ctx


@dataclass
class HostTLSOptions:
    """TLS options for a host; every field is optional.

    Without a server certificate a self-signed one is generated. Skipping
    validation is meant for clusters that use self-signed certificates.
    """

    ca_certificate: x509.Certificate | None = None
    server_certificate: TLSCertificate | None = None
    insecure_skip_tls_validation: bool = False
    client_certificate: TLSCertificate | None = None
    client_auth: ClientAuth = ClientAuth.NO_CLIENT_CERT

    def get_tls_config(self) -> tuple[TLSConfig, TLSConfig]:
        """Return the server and client configurations."""
        server_config = TLSConfig(min_version=MIN_TLS_VERSION, client_auth=self.client_auth)
        client_config = TLSConfig(min_version=MIN_TLS_VERSION, next_protos=[ALPN_HTTP3])

        if self.ca_certificate is not None:
            pool = [self.ca_certificate]
            server_config.root_cas = pool
            server_config.client_cas = pool
            client_config.root_cas = pool

        if self.insecure_skip_tls_validation:
            client_config.insecure_skip_verify = True

        if self.server_certificate is not None:
            if not self.server_certificate.complete:
                raise ValueError(
                    "option TLSOptions.ServerCertificate is not valid: "
                    "must contain both a certificate and private key"
                )
            server_config.certificates = [self.server_certificate]
        else:
            server_config.certificates = [generate_self_signed_server_cert()]

        if self.client_certificate is not None:
            if not self.client_certificate.complete:
                raise ValueError(
                    "option TLSOptions.ClientCertificate is not valid: "
                    "must contain both a certificate and private key"
                )
            client_config.certificates = [self.client_certificate]

        return server_config, client_config


def generate_self_signed_server_cert() -> TLSCertificate:
    """Create a self-signed P-256 server certificate valid for 180 days."""
    try:
        key = ec.generate_private_key(ec.SECP256R1())
    except Exception as err:
        raise RuntimeError(
            f"failed to generate private key for the self-signed certificate: {err}"
        ) from err

    now = datetime.now(timezone.utc)
    name = x509.Name(
        [x509.NameAttribute(NameOID.ORGANIZATION_NAME, _SELF_SIGNED_ORGANIZATION)]
    )
    try:
        cert = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(key.public_key())
            .serial_number(1)
            .not_valid_before(now - timedelta(hours=1))
            .not_valid_after(now + _SELF_SIGNED_VALIDITY)
            .add_extension(
                x509.KeyUsage(
                    digital_signature=True,
                    content_commitment=False,
                    key_encipherment=False,
                    data_encipherment=False,
                    key_agreement=False,
                    key_cert_sign=False,
                    crl_sign=False,
                    encipher_only=False,
                    decipher_only=False,
                ),
                critical=True,
            )
            .add_extension(
                x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False
            )
            .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
            .sign(key, hashes.SHA256())
        )
    except Exception as err:
        raise RuntimeError(f"failed to create self-signed certificate: {err}") from err

    return TLSCertificate(certificates=[cert], private_key=key)