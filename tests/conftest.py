"""
Test Configuration Module

Local HTTP and HTTPS servers for measured requests, a certificate authority
generated with cryptography, and a controllable clock for Metric.
"""

import ipaddress
import ssl
import threading
import time
from datetime import datetime, timedelta, timezone
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Iterator

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from httpmetrics.config import get_settings

# Delay before the response headers and again before the body, so that
# server processing and content transfer are always measurable
SERVER_DELAY = 0.01
RESPONSE_BODY = b"httpmetrics " * 512


class FakeClock:
    """Clock for Metric that only moves when told to"""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def set_ms(self, ms: float) -> None:
        self.now = ms / 1000

    def advance_ms(self, ms: float) -> None:
        self.now += ms / 1000


class _DelayedHandler(BaseHTTPRequestHandler):
    """Keep-alive HTTP/1.1 handler that answers every GET with a fixed body"""

    protocol_version = "HTTP/1.1"

    def do_GET(self):
        time.sleep(SERVER_DELAY)
        self.send_response(200)
        self.send_header("Content-Type", "text/plain")
        self.send_header("Content-Length", str(len(RESPONSE_BODY)))
        self.end_headers()
        time.sleep(SERVER_DELAY)
        self.wfile.write(RESPONSE_BODY)

    def log_message(self, format, *args):
        pass


def _serve(server: ThreadingHTTPServer) -> threading.Thread:
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    return thread


def _key_pem(key) -> bytes:
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )


def _make_certificates(directory) -> tuple[str, str, str]:
    """
    Create a CA and a localhost server certificate signed by it

    Returns:
        tuple[str, str, str]: (CA cert path, server cert path, server key path)
    """
    now = datetime.now(timezone.utc)

    ca_key = ec.generate_private_key(ec.SECP256R1())
    ca_name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "httpmetrics test CA")])
    ca_cert = (
        x509.CertificateBuilder()
        .subject_name(ca_name)
        .issuer_name(ca_name)
        .public_key(ca_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(hours=1))
        .not_valid_after(now + timedelta(days=1))
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
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(ca_key.public_key()), critical=False)
        .sign(ca_key, hashes.SHA256())
    )

    server_key = ec.generate_private_key(ec.SECP256R1())
    server_cert = (
        x509.CertificateBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "localhost")]))
        .issuer_name(ca_name)
        .public_key(server_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(hours=1))
        .not_valid_after(now + timedelta(days=1))
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=True,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=False,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False)
        .add_extension(
            x509.SubjectAlternativeName(
                [x509.DNSName("localhost"), x509.IPAddress(ipaddress.ip_address("127.0.0.1"))]
            ),
            critical=False,
        )
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(server_key.public_key()), critical=False)
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(ca_key.public_key()), critical=False
        )
        .sign(ca_key, hashes.SHA256())
    )

    ca_path = directory / "ca.pem"
    cert_path = directory / "server.pem"
    key_path = directory / "server.key"
    ca_path.write_bytes(ca_cert.public_bytes(serialization.Encoding.PEM))
    cert_path.write_bytes(server_cert.public_bytes(serialization.Encoding.PEM))
    key_path.write_bytes(_key_pem(server_key))
    return str(ca_path), str(cert_path), str(key_path)


@pytest.fixture(autouse=True)
def fresh_settings():
    """Reload settings for every test so environment overrides apply"""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(scope="session")
def http_url() -> Iterator[str]:
    """Base URL of a plaintext keep-alive server, addressed by host name"""
    server = ThreadingHTTPServer(("127.0.0.1", 0), _DelayedHandler)
    _serve(server)
    yield f"http://localhost:{server.server_address[1]}/"
    server.shutdown()
    server.server_close()


@pytest.fixture(scope="session")
def certificates(tmp_path_factory) -> tuple[str, str, str]:
    return _make_certificates(tmp_path_factory.mktemp("certs"))


@pytest.fixture(scope="session")
def https_url(certificates) -> Iterator[str]:
    """Base URL of a TLS keep-alive server, addressed by host name"""
    _, cert_path, key_path = certificates
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.load_cert_chain(cert_path, key_path)

    server = ThreadingHTTPServer(("127.0.0.1", 0), _DelayedHandler)
    server.socket = context.wrap_socket(server.socket, server_side=True)
    _serve(server)
    yield f"https://localhost:{server.server_address[1]}/"
    server.shutdown()
    server.server_close()


@pytest.fixture
def client_ssl_context(certificates) -> ssl.SSLContext:
    """Client context trusting the test CA"""
    ca_path, _, _ = certificates
    return ssl.create_default_context(cafile=ca_path)
