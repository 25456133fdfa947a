"""
Alert notification over SMTP.

Identifies alerts by a stable fingerprint of their labels and emails
triggered/resolved notifications through a smart host.
"""

from .alert_config import AuthCredentials, NotifierConfig, SmtpSettings
from .alert_manager import AlertManager
from .email_alerter import EmailAlerter, SendResult
from .model import Alert, LabelSet, NotificationOp

__all__ = [
    "Alert",
    "AlertManager",
    "AuthCredentials",
    "EmailAlerter",
    "LabelSet",
    "NotificationOp",
    "NotifierConfig",
    "SendResult",
    "SmtpSettings",
]
