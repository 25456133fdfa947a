"""
SMTP Authentication Negotiation

Picks an AUTH mechanism from what the smart host advertises and what
credentials are available, and says whether the session must be upgraded with
STARTTLS first.
"""

from __future__ import annotations

import hmac
import logging
import ssl
from dataclasses import dataclass
from typing import NamedTuple, Optional, Tuple, Union

from .alert_config import AuthCredentials
from .errors import InvalidAddressError

logger = logging.getLogger(__name__)


def split_host_port(address: str) -> Tuple[str, str]:
    """Split ``host:port`` or ``[host]:port`` into its parts.

    Raises:
        InvalidAddressError: if the address has no port, a port that is not
            plain ASCII digits, stray brackets or more than one unbracketed colon
    """
    def fail(reason: str) -> InvalidAddressError:
        return InvalidAddressError(f"invalid address: address {address}: {reason}")

    i = address.rfind(":")
    if i < 0:
        raise fail("missing port in address")

    if address.startswith("["):
        end = address.find("]")
        if end < 0:
            raise fail("missing ']' in address")
        if end + 1 == len(address):
            raise fail("missing port in address")
        if end + 1 != i:
            raise fail("too many colons in address" if address[end + 1] == ":" else "missing port in address")
        host = address[1:end]
        if "[" in address[1:] or "]" in address[end + 1:]:
            raise fail("unexpected bracket in address")
    else:
        host = address[:i]
        if ":" in host:
            raise fail("too many colons in address")
        if "[" in address or "]" in address:
            raise fail("unexpected bracket in address")

    port = address[i + 1:]
    if not (port.isascii() and port.isdigit()):
        raise fail(f"invalid port {port!r}")
    return host, port


@dataclass(frozen=True)
class TLSConfig:
    """TLS settings for STARTTLS, pinned to the smart host's name.

    smtplib passes the host it connected to as the SNI and verification name;
    the sender refuses to upgrade when that host differs from ``server_name``.
    """

    server_name: str

    def create_context(self) -> ssl.SSLContext:
        return ssl.create_default_context()


class CramMD5Auth:
    """CRAM-MD5 responder for ``smtplib.SMTP.auth``."""

    mechanism = "CRAM-MD5"

    def __init__(self, username: str, secret: str):
        self.username = username
        self._secret = secret

    def __call__(self, challenge: Optional[bytes] = None) -> Optional[str]:
        # No initial response; wait for the server challenge.
        if challenge is None:
            return None
        digest = hmac.new(self._secret.encode("utf-8"), challenge, "md5").hexdigest()
        return f"{self.username} {digest}"

    def __repr__(self) -> str:
        return f"CramMD5Auth(username={self.username!r})"


class PlainAuth:
    """PLAIN responder for ``smtplib.SMTP.auth``."""

    mechanism = "PLAIN"

    def __init__(self, identity: str, username: str, password: str, host: str):
        self.identity = identity
        self.username = username
        self._password = password
        self.host = host

    def __call__(self, challenge: Optional[bytes] = None) -> str:
        return f"{self.identity}\0{self.username}\0{self._password}"

    def __repr__(self) -> str:
        return f"PlainAuth(identity={self.identity!r}, username={self.username!r}, host={self.host!r})"


SmtpAuth = Union[CramMD5Auth, PlainAuth]


class AuthSelection(NamedTuple):
    auth: Optional[SmtpAuth] = None
    tls_config: Optional[TLSConfig] = None


class SmtpAuthNegotiator:
    """Selects the auth handle and TLS settings for one session."""

    def __init__(self, smart_host: str, credentials: AuthCredentials):
        self.smart_host = smart_host
        self.credentials = credentials

    def negotiate(self, has_auth: bool, mechanisms: str) -> AuthSelection:
        """
        Choose an AUTH mechanism.

        Mechanisms are tried in the order the server advertises them; the
        first one whose credentials are configured wins. Anything else falls
        back to an unauthenticated session.

        Args:
            has_auth: Whether the server advertised the AUTH extension
            mechanisms: Space separated mechanism names from the EHLO reply

        Returns:
            AuthSelection with the auth handle and TLS config (either may be None)

        Raises:
            InvalidAddressError: if PLAIN is selected and the smart host
                address cannot be split into host and port
        """
        if not has_auth:
            return AuthSelection()

        creds = self.credentials
        for mech in mechanisms.split():
            if mech == "CRAM-MD5":
                if not creds.secret:
                    continue
                logger.debug("Selected CRAM-MD5 authentication")
                return AuthSelection(CramMD5Auth(creds.username, creds.secret), None)
            if mech == "PLAIN":
                if not creds.password:
                    continue
                # The bare host name is needed both for auth and for TLS.
                host, _ = split_host_port(self.smart_host)
                logger.debug(f"Selected PLAIN authentication with STARTTLS to {host}")
                return AuthSelection(
                    PlainAuth(creds.identity, creds.username, creds.password, host),
                    TLSConfig(server_name=host),
                )

        logger.debug(f"No usable AUTH mechanism among {mechanisms!r}")
        return AuthSelection()
