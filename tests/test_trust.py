import datetime
import logging
import ipaddress
import ssl

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from conftest import make_config
from ldap_bridge.directory import TlsMode
from ldap_bridge.directory.trust import (
    TrustPolicy,
    build_tls,
    certificate_matches_host,
    evaluate_server_certificate,
    load_ca_bundle,
    trust_policy_for,
)

NOW = datetime.datetime(2026, 6, 1, tzinfo=datetime.timezone.utc)


def _name(cn):
    return x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, cn)])


def make_ca(cn="Test Root CA"):
    key = ec.generate_private_key(ec.SECP256R1())
    cert = (
        x509.CertificateBuilder()
        .subject_name(_name(cn))
        .issuer_name(_name(cn))
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(NOW - datetime.timedelta(days=30))
        .not_valid_after(NOW + datetime.timedelta(days=3650))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=True,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
        .sign(key, hashes.SHA256())
    )
    return cert, key


def make_leaf(ca_cert, ca_key, dns_names=("ldap.test",), ips=(), cn="ldap.test"):
    key = ec.generate_private_key(ec.SECP256R1())
    builder = (
        x509.CertificateBuilder()
        .subject_name(_name(cn))
        .issuer_name(ca_cert.subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(NOW - datetime.timedelta(days=1))
        .not_valid_after(NOW + datetime.timedelta(days=90))
        .add_extension(x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False)
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(ca_key.public_key()), critical=False
        )
    )
    names = [x509.DNSName(n) for n in dns_names] + [x509.IPAddress(ipaddress.ip_address(i)) for i in ips]
    if names:
        builder = builder.add_extension(x509.SubjectAlternativeName(names), critical=False)
    return builder.sign(ca_key, hashes.SHA256())


def der(cert):
    return cert.public_bytes(serialization.Encoding.DER)


@pytest.fixture(scope="module")
def ca():
    return make_ca()


def test_custom_ca_accepts_chain_to_bundle(ca):
    ca_cert, ca_key = ca
    leaf = make_leaf(ca_cert, ca_key)
    decision = evaluate_server_certificate(der(leaf), [], "ldap.test", TrustPolicy.CUSTOM_CA, [ca_cert], now=NOW)
    assert decision.accepted
    assert decision.statuses == ()


def test_accepted_custom_ca_chain_is_logged(ca, caplog):
    ca_cert, ca_key = ca
    leaf = make_leaf(ca_cert, ca_key)
    with caplog.at_level(logging.WARNING):
        decision = evaluate_server_certificate(der(leaf), [], "ldap.test", TrustPolicy.CUSTOM_CA, [ca_cert], now=NOW)
    assert decision.accepted
    assert "validated against the configured CA bundle" in caplog.text
    assert "CN=ldap.test" in caplog.text


def test_custom_ca_rejects_name_mismatch(ca):
    ca_cert, ca_key = ca
    leaf = make_leaf(ca_cert, ca_key, dns_names=("other.test",))
    decision = evaluate_server_certificate(der(leaf), [], "ldap.test", TrustPolicy.CUSTOM_CA, [ca_cert], now=NOW)
    assert not decision.accepted
    assert decision.statuses == ("RemoteCertificateNameMismatch",)


def test_custom_ca_rejects_other_root(ca):
    ca_cert, ca_key = ca
    other_ca, _ = make_ca("Somebody Else")
    leaf = make_leaf(ca_cert, ca_key)
    decision = evaluate_server_certificate(der(leaf), [], "ldap.test", TrustPolicy.CUSTOM_CA, [other_ca], now=NOW)
    assert not decision.accepted
    assert decision.statuses[0].startswith("UntrustedRoot")


def test_custom_ca_rejects_expired_certificate(ca):
    ca_cert, ca_key = ca
    leaf = make_leaf(ca_cert, ca_key)
    later = NOW + datetime.timedelta(days=365)
    decision = evaluate_server_certificate(der(leaf), [], "ldap.test", TrustPolicy.CUSTOM_CA, [ca_cert], now=later)
    assert not decision.accepted


def test_custom_ca_rejects_missing_certificate(ca):
    ca_cert, _ = ca
    decision = evaluate_server_certificate(None, [], "ldap.test", TrustPolicy.CUSTOM_CA, [ca_cert])
    assert not decision.accepted
    assert decision.statuses == ("RemoteCertificateNotAvailable",)


def test_custom_ca_rejects_empty_bundle(ca):
    ca_cert, ca_key = ca
    leaf = make_leaf(ca_cert, ca_key)
    decision = evaluate_server_certificate(der(leaf), [], "ldap.test", TrustPolicy.CUSTOM_CA, [], now=NOW)
    assert not decision.accepted
    assert decision.statuses == ("EmptyTrustStore",)


def test_skip_verify_accepts_anything():
    assert evaluate_server_certificate(None, [], "ldap.test", TrustPolicy.SKIP_VERIFY).accepted


def test_default_policy_defers_to_handshake():
    assert evaluate_server_certificate(None, [], "ldap.test", TrustPolicy.DEFAULT).accepted


def test_host_matching(ca):
    ca_cert, ca_key = ca
    wildcard = make_leaf(ca_cert, ca_key, dns_names=("*.corp.test",))
    assert certificate_matches_host(wildcard, "dc1.corp.test")
    assert certificate_matches_host(wildcard, "DC1.Corp.Test")
    assert not certificate_matches_host(wildcard, "a.dc1.corp.test")
    assert not certificate_matches_host(wildcard, "corp.test")

    by_ip = make_leaf(ca_cert, ca_key, dns_names=(), ips=("10.0.0.5",))
    assert certificate_matches_host(by_ip, "10.0.0.5")
    assert not certificate_matches_host(by_ip, "10.0.0.6")

    cn_only = make_leaf(ca_cert, ca_key, dns_names=(), cn="legacy.test")
    assert certificate_matches_host(cn_only, "legacy.test")


def test_policy_selection():
    assert trust_policy_for(make_config(skip_ssl_verify=True, root_ca_path="/ca.pem")) is TrustPolicy.SKIP_VERIFY
    assert trust_policy_for(make_config(root_ca_path="/ca.pem")) is TrustPolicy.CUSTOM_CA
    assert trust_policy_for(make_config()) is TrustPolicy.DEFAULT


def test_build_tls_verifies_only_for_default_policy():
    assert build_tls(make_config(tls_mode=TlsMode.LDAPS)).validate == ssl.CERT_REQUIRED
    assert build_tls(make_config(tls_mode=TlsMode.LDAPS, root_ca_path="/ca.pem")).validate == ssl.CERT_NONE
    assert build_tls(make_config(tls_mode=TlsMode.LDAPS, skip_ssl_verify=True)).validate == ssl.CERT_NONE


def test_build_tls_sends_sni_for_target_host():
    cfg = make_config(tls_mode=TlsMode.LDAPS)
    assert build_tls(cfg).sni == "ldap.test"
    assert build_tls(cfg, "b.test").sni == "b.test"


def test_load_ca_bundle(tmp_path, ca):
    ca_cert, _ = ca
    other, _ = make_ca("Second Root")
    bundle = tmp_path / "ca.pem"
    bundle.write_bytes(ca_cert.public_bytes(serialization.Encoding.PEM) + other.public_bytes(serialization.Encoding.PEM))
    assert [c.subject for c in load_ca_bundle(str(bundle))] == [ca_cert.subject, other.subject]
