"""Server certificate trust decisions and TLS settings for ldap3.

The evaluator is a pure function of the presented certificates and the
policy, so it can be exercised without a TLS handshake. The connector feeds
it the peer certificate after the socket has been wrapped.
"""
from __future__ import annotations

import ipaddress
import logging
import ssl
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Sequence

from cryptography import x509
from cryptography.x509.oid import NameOID
from cryptography.x509.verification import PolicyBuilder, Store, VerificationError
from ldap3 import Tls

from .models import DirectoryConfig

logger = logging.getLogger(__name__)


class TrustPolicy(str, Enum):
    SKIP_VERIFY = "skip_verify"
    CUSTOM_CA = "custom_ca"
    DEFAULT = "default"


@dataclass(frozen=True)
class TrustDecision:
    accepted: bool
    statuses: tuple[str, ...] = ()


def trust_policy_for(cfg: DirectoryConfig) -> TrustPolicy:
    if cfg.skip_ssl_verify:
        return TrustPolicy.SKIP_VERIFY
    if cfg.root_ca_path:
        return TrustPolicy.CUSTOM_CA
    return TrustPolicy.DEFAULT


def load_ca_bundle(path: str) -> list[x509.Certificate]:
    with open(path, "rb") as f:
        return x509.load_pem_x509_certificates(f.read())


def _dns_match(pattern: str, host: str) -> bool:
    pattern = pattern.lower().rstrip(".")
    host = host.lower().rstrip(".")
    if pattern.startswith("*."):
        # single left-most label only
        head, _, rest = host.partition(".")
        return bool(head) and rest == pattern[2:]
    return pattern == host


def certificate_matches_host(cert: x509.Certificate, host: str) -> bool:
    """subjectAltName match for ``host``; CN is consulted only without a SAN."""
    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        ip = None

    try:
        san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
    except x509.ExtensionNotFound:
        san = None

    if san is not None:
        if ip is not None:
            return ip in san.get_values_for_type(x509.IPAddress)
        return any(_dns_match(name, host) for name in san.get_values_for_type(x509.DNSName))

    for attr in cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME):
        value = attr.value if isinstance(attr.value, str) else attr.value.decode("utf-8", "replace")
        if ip is not None:
            if value == str(ip):
                return True
        elif _dns_match(value, host):
            return True
    return False


def _verifier_subject(host: str):
    try:
        return x509.IPAddress(ipaddress.ip_address(host))
    except ValueError:
        return x509.DNSName(host)


def evaluate_server_certificate(
    server_cert: bytes | None,
    chain: Sequence[bytes],
    host: str,
    policy: TrustPolicy,
    ca_bundle: Sequence[x509.Certificate] | None = None,
    now: datetime | None = None,
) -> TrustDecision:
    """Decide whether the presented server certificate is trusted.

    ``server_cert`` and ``chain`` are DER encoded; ``chain`` holds any
    intermediates the server sent (the leaf itself may be included).
    ``ca_bundle`` is only consulted for :attr:`TrustPolicy.CUSTOM_CA`.
    """
    if policy is TrustPolicy.SKIP_VERIFY:
        logger.warning("TLS certificate verification is disabled for %s; the connection is not authenticated", host)
        return TrustDecision(True, ("verification skipped",))

    if policy is TrustPolicy.DEFAULT:
        # already enforced by the handshake (CERT_REQUIRED + hostname check)
        return TrustDecision(True)

    if not server_cert:
        logger.warning("Server %s presented no certificate", host)
        return TrustDecision(False, ("RemoteCertificateNotAvailable",))

    leaf = x509.load_der_x509_certificate(server_cert)
    if not certificate_matches_host(leaf, host):
        logger.warning("Provided certificate not valid for remote name %s", host)
        return TrustDecision(False, ("RemoteCertificateNameMismatch",))

    if not ca_bundle:
        logger.warning("No CA certificates available to validate %s", host)
        return TrustDecision(False, ("EmptyTrustStore",))

    intermediates = [x509.load_der_x509_certificate(der) for der in chain if der != server_cert]

    builder = PolicyBuilder().store(Store(list(ca_bundle)))
    if now is not None:
        builder = builder.time(now)
    verifier = builder.build_server_verifier(_verifier_subject(host))

    statuses: list[str] = []
    try:
        verifier.verify(leaf, intermediates)
        accepted = True
    except VerificationError as e:
        statuses.append(f"UntrustedRoot: {e}")
        accepted = False

    if leaf.issuer == leaf.subject:
        statuses.append("SelfSigned")

    for status in statuses:
        logger.warning("%s: certificate chain for %s", status, host)
    if accepted:
        logger.warning(
            "Certificate chain for %s validated against the configured CA bundle: %s",
            host, leaf.subject.rfc4514_string(),
        )
    return TrustDecision(accepted, tuple(statuses))


def build_tls(cfg: DirectoryConfig, host: str | None = None) -> Tls:
    """ldap3 ``Tls`` settings for a connection to ``host`` (the configured
    server when omitted, a referred one otherwise).

    For :attr:`TrustPolicy.CUSTOM_CA` the handshake itself does not verify;
    :func:`evaluate_server_certificate` runs on the peer certificate right
    after it, before any credentials are sent.
    """
    policy = trust_policy_for(cfg)
    kwargs: dict = {
        "validate": ssl.CERT_REQUIRED if policy is TrustPolicy.DEFAULT else ssl.CERT_NONE,
        "sni": host or cfg.host,
    }
    if cfg.client_cert_path and cfg.client_key_path:
        kwargs["local_certificate_file"] = cfg.client_cert_path
        kwargs["local_private_key_file"] = cfg.client_key_path
    return Tls(**kwargs)
