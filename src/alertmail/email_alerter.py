"""
Email Alerter

Delivers one alert notification over one SMTP session to the smart host:
connect (plaintext or implicit TLS), negotiate STARTTLS and AUTH, set the
envelope, stream the rendered message and close. There is no retry; a failed
attempt is reported to the caller.
"""

import logging
import smtplib
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from .alert_config import NotifierConfig
from .errors import (
    AuthenticationError,
    ConnectionFailedError,
    DeliveryError,
    NotificationError,
    StartTLSError,
)
from .message import render_email_body
from .model import Alert, NotificationOp
from .smtp_auth import PlainAuth, SmtpAuthNegotiator, TLSConfig, split_host_port

logger = logging.getLogger(__name__)

_SMTP_ERRORS = (smtplib.SMTPException, OSError)
# smtplib encodes commands and AUTH responses as ASCII.
_COMMAND_ERRORS = _SMTP_ERRORS + (UnicodeError,)


@dataclass
class SendResult:
    """Outcome of a single notification attempt."""
    ok: bool
    recipient: str
    fingerprint: int
    kind: Optional[str] = None
    error: Optional[str] = None


def _reply_text(resp) -> str:
    if isinstance(resp, bytes):
        return resp.decode("utf-8", errors="replace")
    return str(resp)


class EmailAlerter:
    """SMTP notification sender bound to one smart host."""

    def __init__(self, config: NotifierConfig,
                 negotiator: Optional[SmtpAuthNegotiator] = None,
                 smtp_factory: Callable[..., smtplib.SMTP] = smtplib.SMTP,
                 smtp_ssl_factory: Callable[..., smtplib.SMTP] = smtplib.SMTP_SSL):
        self.config = config
        self.negotiator = negotiator or SmtpAuthNegotiator(config.smtp.smart_host, config.credentials)
        self._smtp_factory = smtp_factory
        self._smtp_ssl_factory = smtp_ssl_factory

    def send(self, to: str, op: NotificationOp, alert: Alert,
             moment: Optional[datetime] = None) -> None:
        """
        Send one notification about ``alert`` to ``to``.

        Args:
            to: Envelope and header recipient
            op: Whether the alert triggered or resolved
            alert: Alert to report
            moment: Time for the Date header, defaults to now

        Raises:
            NotificationError: subclass naming the step that failed
        """
        smtp_settings = self.config.smtp
        host, port = split_host_port(smtp_settings.smart_host)

        logger.debug(f"Connecting to smart host {host}:{port} (implicit TLS: {smtp_settings.implicit_tls})")
        try:
            if smtp_settings.implicit_tls:
                smtp = self._smtp_ssl_factory(host, int(port), timeout=smtp_settings.timeout,
                                              context=TLSConfig(server_name=host).create_context())
            else:
                smtp = self._smtp_factory(host, int(port), timeout=smtp_settings.timeout)
        except _SMTP_ERRORS as e:
            raise ConnectionFailedError(f"connecting to {smtp_settings.smart_host} failed: {e}", e) from e

        try:
            self._run_session(smtp, host, to, op, alert, moment)
        finally:
            self._close(smtp)

    def send_alert(self, to: str, op: NotificationOp, alert: Alert,
                   moment: Optional[datetime] = None) -> SendResult:
        """Send a notification and report the outcome instead of raising."""
        fingerprint = alert.fingerprint()
        try:
            self.send(to, op, alert, moment)
        except NotificationError as e:
            logger.error(f"Notification for {alert.name or '<unnamed>'} ({fingerprint:016x}) "
                         f"to {to} failed: {e}")
            return SendResult(ok=False, recipient=to, fingerprint=fingerprint, kind=e.kind, error=str(e))

        logger.info(f"Notification [{op.status}] {alert.name} sent to {to}")
        return SendResult(ok=True, recipient=to, fingerprint=fingerprint)

    def _run_session(self, smtp: smtplib.SMTP, host: str, to: str, op: NotificationOp,
                     alert: Alert, moment: Optional[datetime]) -> None:
        settings = self.config.smtp

        try:
            smtp.ehlo_or_helo_if_needed()
        except _SMTP_ERRORS as e:
            raise ConnectionFailedError(f"greeting {settings.smart_host} failed: {e}", e) from e

        # Authenticate if we and the server are both configured for it.
        has_auth = bool(smtp.has_extn("auth"))
        mechanisms = smtp.esmtp_features.get("auth", "") if has_auth else ""
        auth, tls_config = self.negotiator.negotiate(has_auth, mechanisms)

        # smtplib verifies the certificate against the host it connected to.
        if tls_config is not None and not settings.implicit_tls:
            if tls_config.server_name != host:
                raise StartTLSError(
                    f"starttls failed: server name {tls_config.server_name!r} does not match {host!r}")
            logger.debug(f"Upgrading session with STARTTLS ({tls_config.server_name})")
            try:
                smtp.starttls(context=tls_config.create_context())
                smtp.ehlo()
            except _SMTP_ERRORS as e:
                raise StartTLSError(f"starttls failed: {e}", e) from e

        if auth is not None:
            if isinstance(auth, PlainAuth) and auth.host != host:
                raise AuthenticationError(f"PLAIN failed: wrong host name {auth.host!r}", auth.mechanism)
            try:
                smtp.auth(auth.mechanism, auth)
            except _COMMAND_ERRORS as e:
                raise AuthenticationError(f"{auth.mechanism} failed: {e}", auth.mechanism, e) from e

        try:
            code, resp = smtp.mail(settings.sender)
            if code != 250:
                raise DeliveryError(f"sender {settings.sender} refused: {code} {_reply_text(resp)}")
            code, resp = smtp.rcpt(to)
            if code not in (250, 251):
                raise DeliveryError(f"recipient {to} refused: {code} {_reply_text(resp)}")
        except DeliveryError:
            raise
        except _COMMAND_ERRORS as e:
            raise DeliveryError(f"setting envelope failed: {e}", e) from e

        body = render_email_body(settings.sender, to, op.status, alert, moment, settings.sender_name)
        try:
            smtp.data(body)
        except _SMTP_ERRORS as e:
            raise DeliveryError(f"sending message data failed: {e}", e) from e
        logger.debug(f"Message for {alert.fingerprint():016x} accepted by {settings.smart_host}")

    def _close(self, smtp: smtplib.SMTP) -> None:
        try:
            smtp.quit()
        except _SMTP_ERRORS as e:
            logger.debug(f"QUIT failed: {e}")
        finally:
            smtp.close()
