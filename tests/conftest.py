"""
Pytest configuration and fixtures for all tests.
"""
import datetime
import ipaddress
import logging
import smtplib
import socket
from typing import Any

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from core.config import ENV_VARS
from core.context import TransportConfig


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """No SMTP_* / SEND_FROM / LOG_* from the developer's shell leaks into a test."""
    for var in ENV_VARS.values():
        monkeypatch.delenv(var, raising=False)


@pytest.fixture(autouse=True)
def restore_root_logger():
    """setup_logging() uses basicConfig(force=True); put the root logger back afterwards."""
    root = logging.getLogger()
    saved_handlers = root.handlers[:]
    saved_level = root.level
    yield
    for handler in root.handlers:
        if handler not in saved_handlers:
            handler.close()
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)


def get_free_port() -> int:
    """Find a free port on localhost."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        s.listen(1)
        port = s.getsockname()[1]
    return port


class FakeServer:
    """Scripted server behaviour shared by every FakeSMTP client of one test."""

    def __init__(self):
        self.clients: list["FakeSMTP"] = []
        self.extensions: set[str] = {"8bitmime", "auth", "starttls"}
        self.greeting: tuple[int, bytes] = (220, b"fake.example ESMTP")
        self.connect_error: Exception | None = None
        self.helo_error: Exception | None = None
        self.starttls_error: Exception | None = None
        self.auth_error: Exception | None = None
        self.mail_reply: tuple[int, bytes] = (250, b"2.1.0 Ok")
        self.rcpt_replies: dict[str, tuple[int, bytes]] = {}
        self.data_reply: tuple[int, bytes] = (250, b"2.0.0 Ok: queued")
        self.data_error: Exception | None = None

    @property
    def client(self) -> "FakeSMTP":
        assert len(self.clients) == 1
        return self.clients[0]


class FakeSMTP:
    """Stands in for smtplib.SMTP / SMTP_SSL and records every protocol step."""

    def __init__(self, server: FakeServer, kind: str, host: str = "", port: int = 0, **kwargs: Any):
        self.server = server
        self.kind = kind
        self.host = host
        self.kwargs = kwargs
        self.calls: list[tuple] = []
        self.encrypted = kind == "ssl"
        self.closed = False
        self.user = None
        self.password = None
        server.clients.append(self)
        # smtplib connects and reads the greeting from the constructor when given a host
        if host:
            code, msg = self.connect(host, port)
            if code != 220:
                self.close()
                raise smtplib.SMTPConnectError(code, msg)

    @property
    def steps(self) -> list[str]:
        return [c[0] for c in self.calls]

    def connect(self, host, port):
        self.calls.append(("connect", host, port, self.encrypted))
        if self.server.connect_error:
            raise self.server.connect_error
        return self.server.greeting

    def ehlo_or_helo_if_needed(self):
        self.calls.append(("ehlo", self.encrypted))
        if self.server.helo_error:
            raise self.server.helo_error

    def has_extn(self, name):
        return name.lower() in self.server.extensions

    def starttls(self, context=None):
        self.calls.append(("starttls", context))
        if self.server.starttls_error:
            raise self.server.starttls_error
        self.encrypted = True

    def auth_plain(self, challenge=None):
        return f"\0{self.user}\0{self.password}"

    def auth(self, mechanism, authobject):
        self.calls.append(("auth", mechanism, self.user, self.password, self.encrypted))
        if self.server.auth_error:
            raise self.server.auth_error
        return (235, b"2.7.0 Authentication successful")

    def mail(self, sender, options=()):
        self.calls.append(("mail", sender, list(options)))
        return self.server.mail_reply

    def rcpt(self, recip):
        self.calls.append(("rcpt", recip))
        return self.server.rcpt_replies.get(recip, (250, b"2.1.5 Ok"))

    def data(self, msg):
        self.calls.append(("data", msg))
        if self.server.data_error:
            raise self.server.data_error
        return self.server.data_reply

    def quit(self):
        self.calls.append(("quit",))
        return (221, b"Bye")

    def close(self):
        self.closed = True


@pytest.fixture
def fake_smtp(monkeypatch) -> FakeServer:
    """Replace smtplib.SMTP and smtplib.SMTP_SSL with recording fakes."""
    server = FakeServer()

    def factory(kind):
        def make(*args, **kwargs):
            return FakeSMTP(server, kind, *args, **kwargs)
        return make

    monkeypatch.setattr(smtplib, "SMTP", factory("plain"))
    monkeypatch.setattr(smtplib, "SMTP_SSL", factory("ssl"))
    return server


@pytest.fixture
def transport_config() -> TransportConfig:
    return TransportConfig(host="smtp.example.com", port=587, user="relay", password="s3cret", security="TLS")


SAMPLE_MESSAGE = (
    b"Received: from localhost\r\n"
    b"From: Old Name <old@example.com>\r\n"
    b"To: alice@example.org, bob@example.org\r\n"
    b"Cc: carol@example.org\r\n"
    b"Subject: Nightly report\r\n"
    b"\r\n"
    b"Body line one.\r\n"
    b".leading dot\r\n"
)


@pytest.fixture
def sample_message() -> bytes:
    return SAMPLE_MESSAGE


def _key_usage(**enabled) -> x509.KeyUsage:
    flags = dict.fromkeys(
        ("digital_signature", "content_commitment", "key_encipherment", "data_encipherment",
         "key_agreement", "key_cert_sign", "crl_sign", "encipher_only", "decipher_only"),
        False,
    )
    flags.update(enabled)
    return x509.KeyUsage(**flags)


@pytest.fixture(scope="session")
def tls_files(tmp_path_factory) -> dict[str, str]:
    """A throwaway CA plus a server certificate for localhost / 127.0.0.1, as PEM files."""
    directory = tmp_path_factory.mktemp("tls")
    now = datetime.datetime.now(datetime.timezone.utc)
    valid_from, valid_to = now - datetime.timedelta(days=1), now + datetime.timedelta(days=30)

    ca_key = ec.generate_private_key(ec.SECP256R1())
    ca_name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "smtplemail test CA")])
    ca_cert = (
        x509.CertificateBuilder()
        .subject_name(ca_name)
        .issuer_name(ca_name)
        .public_key(ca_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(valid_from)
        .not_valid_after(valid_to)
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(_key_usage(digital_signature=True, key_cert_sign=True, crl_sign=True), critical=True)
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
        .not_valid_before(valid_from)
        .not_valid_after(valid_to)
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(_key_usage(digital_signature=True), critical=True)
        .add_extension(x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False)
        .add_extension(
            x509.SubjectAlternativeName([
                x509.DNSName("localhost"),
                x509.IPAddress(ipaddress.ip_address("127.0.0.1")),
            ]),
            critical=False,
        )
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(server_key.public_key()), critical=False)
        .add_extension(x509.AuthorityKeyIdentifier.from_issuer_public_key(ca_key.public_key()), critical=False)
        .sign(ca_key, hashes.SHA256())
    )

    paths = {
        "ca": directory / "ca.pem",
        "cert": directory / "server.pem",
        "key": directory / "server.key",
    }
    paths["ca"].write_bytes(ca_cert.public_bytes(serialization.Encoding.PEM))
    paths["cert"].write_bytes(server_cert.public_bytes(serialization.Encoding.PEM))
    paths["key"].write_bytes(server_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ))
    return {name: str(path) for name, path in paths.items()}
