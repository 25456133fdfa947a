import base64
import hmac
import socketserver
import threading
from typing import Dict, List, Optional

import pytest

from alertmail.alert_config import AuthCredentials, NotifierConfig, SmtpSettings
from alertmail.model import Alert, LabelSet


class FakeSMTP:
    """Stands in for smtplib.SMTP and records the session."""

    def __init__(self, host, port, timeout=None, features=None, fail=None, replies=None):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.esmtp_features: Dict[str, str] = dict(features or {})
        self.fail = dict(fail or {})
        self.replies = dict(replies or {})
        self.calls: List[str] = []
        self.auth_responses: List[Optional[str]] = []
        self.envelope = {}
        self.message: Optional[bytes] = None
        self.closed = False

    def _step(self, name):
        self.calls.append(name)
        if name in self.fail:
            raise self.fail[name]

    def ehlo_or_helo_if_needed(self):
        self._step("ehlo")

    def ehlo(self, name=""):
        self._step("ehlo")
        return 250, b"ok"

    def has_extn(self, opt):
        return opt.lower() in self.esmtp_features

    def starttls(self, context=None):
        self._step("starttls")
        self.tls_context = context
        return 220, b"ready"

    def auth(self, mechanism, authobject, *, initial_response_ok=True):
        self._step("auth")
        self.auth_mechanism = mechanism
        self.auth_responses.append(authobject())
        self.auth_responses.append(authobject(b"<1896.697170952@postoffice.example.net>"))
        return 235, b"authenticated"

    def mail(self, sender, options=()):
        self._step("mail")
        self.envelope["from"] = sender
        return self.replies.get("mail", (250, b"ok"))

    def rcpt(self, recip, options=()):
        self._step("rcpt")
        self.envelope["to"] = recip
        return self.replies.get("rcpt", (250, b"ok"))

    def data(self, msg):
        self._step("data")
        self.message = msg
        return 250, b"queued"

    def quit(self):
        self._step("quit")
        return 221, b"bye"

    def close(self):
        self.calls.append("close")
        self.closed = True


@pytest.fixture
def fake_smtp():
    """Factory fixture: ``factory, sessions = fake_smtp(features=..., fail=...)``."""

    def make(features=None, fail=None, replies=None):
        sessions: List[FakeSMTP] = []

        def factory(host, port, timeout=None, context=None):
            s = FakeSMTP(host, port, timeout, features, fail, replies)
            s.ssl_context = context
            sessions.append(s)
            return s

        return factory, sessions

    return make


@pytest.fixture
def config():
    return NotifierConfig(
        smtp=SmtpSettings(smart_host="mail.example.org:587", sender="kfc@example.org"),
        credentials=AuthCredentials(),
    )


@pytest.fixture
def alert():
    return Alert(
        summary="Latency above 500ms",
        description="p99 latency has been above 500ms for 5 minutes",
        labels=LabelSet({"alertname": "HighLatency", "instance": "a"}),
        payload={"GeneratorURL": "http://prometheus.example.org/graph"},
    )


CRAM_CHALLENGE = b"<12345.67890@localhost>"


class _SMTPHandler(socketserver.StreamRequestHandler):
    """Just enough of RFC 5321 to talk to smtplib."""

    def _reply(self, line: str) -> None:
        self.wfile.write(line.encode("ascii") + b"\r\n")
        self.wfile.flush()

    def _cram_md5(self) -> None:
        srv = self.server
        self._reply("334 " + base64.b64encode(CRAM_CHALLENGE).decode("ascii"))
        try:
            answer = base64.b64decode(self.rfile.readline().strip()).decode("utf-8")
        except ValueError:
            self._reply("535 malformed response")
            return
        user, _, digest = answer.rpartition(" ")
        expected = hmac.new(srv.secret.encode("utf-8"), CRAM_CHALLENGE, "md5").hexdigest()
        if hmac.compare_digest(digest, expected):
            srv.authenticated = ("CRAM-MD5", user)
            self._reply("235 authenticated")
        else:
            self._reply("535 bad credentials")

    def handle(self) -> None:
        srv = self.server
        self._reply("220 localhost ESMTP")
        while True:
            raw = self.rfile.readline()
            if not raw:
                return
            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            srv.commands.append(line)
            verb = line.split(" ", 1)[0].upper()
            if verb in ("EHLO", "HELO"):
                lines = ["localhost"] + srv.extensions
                for ext in lines[:-1]:
                    self._reply("250-" + ext)
                self._reply("250 " + lines[-1])
            elif verb == "AUTH" and line.split()[1:2] == ["CRAM-MD5"]:
                self._cram_md5()
            elif verb in ("MAIL", "RCPT", "RSET", "NOOP"):
                self._reply("250 ok")
            elif verb == "DATA":
                self._reply("354 end with <CRLF>.<CRLF>")
                chunks = []
                while True:
                    chunk = self.rfile.readline()
                    if not chunk or chunk == b".\r\n":
                        break
                    chunks.append(chunk)
                srv.messages.append(b"".join(chunks))
                self._reply("250 queued")
            elif verb == "QUIT":
                self._reply("221 bye")
                return
            else:
                self._reply("502 command not implemented")


class LoopbackSMTPServer(socketserver.ThreadingTCPServer):
    daemon_threads = True
    allow_reuse_address = True

    def __init__(self, extensions=None, secret=""):
        super().__init__(("127.0.0.1", 0), _SMTPHandler)
        self.extensions: List[str] = list(extensions or [])
        self.secret = secret
        self.commands: List[str] = []
        self.messages: List[bytes] = []
        self.authenticated = None

    @property
    def address(self) -> str:
        host, port = self.server_address[:2]
        return f"{host}:{port}"


@pytest.fixture
def smtp_server():
    """Factory fixture starting a loopback SMTP server on a free port."""
    servers: List[LoopbackSMTPServer] = []

    def start(extensions=None, secret=""):
        server = LoopbackSMTPServer(extensions, secret)
        threading.Thread(target=server.serve_forever, daemon=True).start()
        servers.append(server)
        return server

    yield start

    for server in servers:
        server.shutdown()
        server.server_close()
