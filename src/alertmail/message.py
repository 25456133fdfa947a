"""
Notification Message Rendering

Builds the plain-text email for an alert state transition. The set of fields
is fixed, so the message is assembled section by section rather than through a
template engine.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import BinaryIO, List, Mapping, Optional

from .errors import RenderError
from .model import Alert

logger = logging.getLogger(__name__)

DEFAULT_SENDER_NAME = "KFC2K"
CRLF = "\r\n"

_DAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
           "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def format_date(moment: datetime) -> str:
    """Format ``moment`` like ``Mon, 2 Jan 2006 15:04:05 -0700``.

    Day and month names are always English. Naive datetimes are taken as
    local time.
    """
    if moment.tzinfo is None:
        moment = moment.astimezone()
    offset = moment.utcoffset()
    minutes = int(offset.total_seconds() // 60) if offset is not None else 0
    sign = "-" if minutes < 0 else "+"
    hours, mins = divmod(abs(minutes), 60)
    return (f"{_DAYS[moment.weekday()]}, {moment.day} {_MONTHS[moment.month - 1]} "
            f"{moment.year:04d} {moment:%H:%M:%S} {sign}{hours:02d}{mins:02d}")


def _label_lines(title: str, entries: Mapping) -> List[str]:
    lines = [f"{title}:", ""]
    for name in sorted(entries):
        lines.append(f'  {name} = "{entries[name]}"')
    return lines


def render_email_body(from_addr: str, to_addr: str, status: str, alert: Alert,
                      moment: Optional[datetime] = None,
                      sender_name: str = DEFAULT_SENDER_NAME) -> bytes:
    """Render the full message (headers, blank line, body) as UTF-8 bytes.

    Args:
        from_addr: Address shown in the From header
        to_addr: Address shown in the To header
        status: Status tag for the subject, "ALERT" or "RESOLVED"
        alert: Alert being reported
        moment: Time for the Date header, defaults to now
        sender_name: Display name in the From header

    Returns:
        CRLF-terminated message ready for SMTP DATA
    """
    if moment is None:
        moment = datetime.now().astimezone()

    lines = [
        f"From: {sender_name} <{from_addr}>",
        f"To: {to_addr}",
        f"Date: {format_date(moment)}",
        f"Subject: [{status}] {alert.name}: {alert.summary}",
        "",
    ]
    lines.extend(alert.description.splitlines() or [""])
    lines.extend(_label_lines("Grouping labels", alert.labels))
    lines.extend(_label_lines("Payload labels", alert.payload))

    return (CRLF.join(lines) + CRLF).encode("utf-8")


def write_email_body(stream: BinaryIO, from_addr: str, to_addr: str, status: str,
                     alert: Alert, moment: Optional[datetime] = None,
                     sender_name: str = DEFAULT_SENDER_NAME) -> int:
    """Render the message into ``stream`` and return the number of bytes written.

    Standalone stream API for writing notifications to files or pipes. SMTP
    delivery hands the rendered bytes to ``smtplib`` instead, so write failures
    during DATA surface as ``DeliveryError`` there, not ``RenderError``.
    """
    body = render_email_body(from_addr, to_addr, status, alert, moment, sender_name)
    try:
        stream.write(body)
    except (OSError, ValueError) as e:
        raise RenderError(f"writing message body failed: {e}", e) from e
    logger.debug(f"Rendered {len(body)} bytes for {alert.name or '<unnamed>'} [{status}]")
    return len(body)
