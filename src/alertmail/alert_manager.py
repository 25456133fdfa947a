"""
Alert Manager

Caller-side coordinator for notifications. Runs each (recipient, alert)
attempt independently on a worker pool and keeps delivery statistics.
"""

import concurrent.futures
import logging
import threading
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from .alert_config import NotifierConfig
from .email_alerter import EmailAlerter, SendResult
from .model import Alert, NotificationOp

logger = logging.getLogger(__name__)


class AlertManager:
    """Fans notifications out to recipients on a thread pool."""

    def __init__(self, config: NotifierConfig, alerter: Optional[EmailAlerter] = None):
        self.config = config
        self.email_alerter = alerter or EmailAlerter(config)
        self._pool = concurrent.futures.ThreadPoolExecutor(
            max_workers=config.max_workers, thread_name_prefix="alertmail")
        self._stats_lock = threading.Lock()

        self.stats = {
            'notifications_sent': 0,
            'notifications_failed': 0,
            'last_fingerprint': None,
        }

        logger.info(f"Alert manager initialized (smart host: {config.smtp.smart_host}, "
                    f"sender: {config.smtp.sender})")

    def notify(self, alert: Alert, op: NotificationOp, recipients: Iterable[str],
               moment: Optional[datetime] = None) -> List[SendResult]:
        """
        Notify every recipient about an alert state transition.

        Args:
            alert: Alert to report
            op: Trigger or resolve
            recipients: Email addresses, one SMTP session each
            moment: Time for the Date header, defaults to now

        Returns:
            One SendResult per recipient, in recipient order
        """
        recipients = list(recipients)
        if not recipients:
            logger.warning(f"No recipients specified for {alert.name or '<unnamed>'}")
            return []

        futures = [
            self._pool.submit(self.email_alerter.send_alert, to, op, alert, moment)
            for to in recipients
        ]
        results = [f.result() for f in futures]

        with self._stats_lock:
            for r in results:
                if r.ok:
                    self.stats['notifications_sent'] += 1
                else:
                    self.stats['notifications_failed'] += 1
            self.stats['last_fingerprint'] = alert.fingerprint()

        return results

    def get_statistics(self) -> Dict:
        with self._stats_lock:
            return self.stats.copy()

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)

    def __enter__(self) -> "AlertManager":
        return self

    def __exit__(self, *exc) -> None:
        self.shutdown()
