"""Ways for hosts in a cluster to authenticate one another."""

from __future__ import annotations

import hmac
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Mapping, MutableMapping

from cryptography import x509
from cryptography.x509.oid import ExtendedKeyUsageOID

from francis.hosttls import ClientAuth, HostTLSOptions, TLSCertificate

HEADER_AUTHORIZATION = "Authorization"
AUTHORIZATION_SCHEME_SHARED_KEY = "PSK"
_MIN_KEY_LENGTH = 16


def _get_header(headers: Mapping[str, str], name: str) -> str:
    lower = name.lower()
    for key, value in headers.items():
        if key.lower() == lower:
            return value
    return ""


def _set_header(headers: MutableMapping[str, str], name: str, value: str) -> None:
    lower = name.lower()
    for key in [key for key in headers if key.lower() == lower]:
        del headers[key]
    headers[name] = value


class PeerAuthenticationMethod(ABC):
    """Interface shared by every peer authentication method."""

    @abstractmethod
    def validate(self) -> None:
        """Check the configuration; raise ValueError if it is not usable."""

    @abstractmethod
    def update_request(self, headers: MutableMapping[str, str]) -> None:
        """Add credentials to the headers of a request sent to another host."""

    @abstractmethod
    def validate_incoming_request(self, headers: Mapping[str, str]) -> bool:
        """Return whether an incoming request is authorized."""


@dataclass
class PeerAuthenticationSharedKey(PeerAuthenticationMethod):
    """Authenticates peers with a key shared by every host."""

    key: str

    def validate(self) -> None:
        if not self.key:
            raise ValueError("key is empty")
        if len(self.key.encode("utf-8")) < _MIN_KEY_LENGTH:
            raise ValueError("key must be at least 16-characters long")

    def update_request(self, headers: MutableMapping[str, str]) -> None:
        _set_header(
            headers, HEADER_AUTHORIZATION, f"{AUTHORIZATION_SCHEME_SHARED_KEY} {self.key}"
        )

    def validate_incoming_request(self, headers: Mapping[str, str]) -> bool:
        scheme, sep, value = _get_header(headers, HEADER_AUTHORIZATION).partition(" ")
        if not sep or scheme != AUTHORIZATION_SCHEME_SHARED_KEY:
            return False
        return hmac.compare_digest(value.encode("utf-8"), self.key.encode("utf-8"))


@dataclass
class PeerAuthenticationMTLS(PeerAuthenticationMethod):
    """Authenticates peers with certificates signed by a shared CA."""

    ca: x509.Certificate | None = None
    certificate: TLSCertificate | None = None

    def validate(self) -> None:
        if self.ca is None:
            raise ValueError("property CA certificate is empty")
        if self.certificate is None:
            raise ValueError("property Certificate is empty")
        if not self.certificate.complete:
            raise ValueError(
                "property Certificate is not valid: "
                "must contain both a certificate and private key"
            )

        leaf = self.certificate.certificates[0]
        try:
            usages = list(
                leaf.extensions.get_extension_for_class(x509.ExtendedKeyUsage).value
            )
        except x509.ExtensionNotFound:
            usages = []
        except ValueError as err:
            raise ValueError(f"failed to parse certificate: {err}") from err

        if ExtendedKeyUsageOID.SERVER_AUTH not in usages:
            raise ValueError(
                "certificate does not have server authentication extended key usage"
            )
        if ExtendedKeyUsageOID.CLIENT_AUTH not in usages:
            raise ValueError(
                "certificate does not have client authentication extended key usage"
            )

    def set_tls_options(self, opts: HostTLSOptions) -> None:
        """Configure host TLS options for mutual TLS with this certificate."""
        opts.insecure_skip_tls_validation = False
        opts.ca_certificate = self.ca
        opts.client_certificate = self.certificate
        opts.server_certificate = self.certificate
        opts.client_auth = ClientAuth.REQUIRE_AND_VERIFY_CLIENT_CERT

    def update_request(self, headers: MutableMapping[str, str]) -> None:
        """Nothing to add: authentication happens in the TLS handshake."""

    def validate_incoming_request(self, headers: Mapping[str, str]) -> bool:
        return True