"""
Notifier Configuration Management

Handles smart host settings, SMTP credentials and validation.
"""

import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

logger = logging.getLogger(__name__)

ENV_USERNAME = "SMTP_AUTH_USERNAME"
ENV_SECRET = "SMTP_AUTH_SECRET"
ENV_PASSWORD = "SMTP_AUTH_PASSWORD"
ENV_IDENTITY = "SMTP_AUTH_IDENTITY"

_EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')


@dataclass
class SmtpSettings:
    """Smart host and envelope settings."""
    smart_host: str = ""
    sender: str = "kfc@example.org"
    sender_name: str = "KFC2K"
    timeout: float = 30.0
    # TLS from the first byte (e.g. port 465) instead of STARTTLS.
    implicit_tls: bool = False


@dataclass
class AuthCredentials:
    """SMTP AUTH credentials, normally taken from the environment."""
    username: str = ""
    secret: str = field(default="", repr=False)
    password: str = field(default="", repr=False)
    identity: str = ""

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'AuthCredentials':
        env = os.environ if environ is None else environ
        return cls(
            username=env.get(ENV_USERNAME, ''),
            secret=env.get(ENV_SECRET, ''),
            password=env.get(ENV_PASSWORD, ''),
            identity=env.get(ENV_IDENTITY, ''),
        )


@dataclass
class NotifierConfig:
    """Complete notifier configuration."""
    smtp: SmtpSettings = field(default_factory=SmtpSettings)
    credentials: AuthCredentials = field(default_factory=AuthCredentials)
    max_workers: int = 4

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any],
                  credentials: Optional[AuthCredentials] = None) -> 'NotifierConfig':
        """Create NotifierConfig from dictionary.

        Credentials are never read from the dictionary; pass them explicitly
        or they are taken from the environment.
        """
        smtp_dict = config_dict.get('smtp', {})
        smtp = SmtpSettings(
            smart_host=smtp_dict.get('smart_host', ''),
            sender=smtp_dict.get('sender', 'kfc@example.org'),
            sender_name=smtp_dict.get('sender_name', 'KFC2K'),
            timeout=float(smtp_dict.get('timeout', 30.0)),
            implicit_tls=bool(smtp_dict.get('implicit_tls', False)),
        )
        return cls(
            smtp=smtp,
            credentials=credentials if credentials is not None else AuthCredentials.from_env(),
            max_workers=int(config_dict.get('max_workers', 4)),
        )

    @classmethod
    def from_file(cls, path: Union[str, Path],
                  credentials: Optional[AuthCredentials] = None) -> 'NotifierConfig':
        p = Path(path)
        with p.open("r", encoding="utf-8") as f:
            data = json.load(f)
        logger.debug(f"Loaded notifier config from {p}")
        return cls.from_dict(data, credentials)

    def to_dict(self) -> Dict[str, Any]:
        """Convert NotifierConfig to dictionary (without credentials)."""
        return {
            'smtp': {
                'smart_host': self.smtp.smart_host,
                'sender': self.smtp.sender,
                'sender_name': self.smtp.sender_name,
                'timeout': self.smtp.timeout,
                'implicit_tls': self.smtp.implicit_tls,
            },
            'max_workers': self.max_workers,
        }

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors."""
        # Imported here, smtp_auth depends on this module.
        from .errors import InvalidAddressError
        from .smtp_auth import split_host_port

        errors = []

        if not self.smtp.smart_host:
            errors.append("SMTP smart host is required")
        else:
            try:
                split_host_port(self.smtp.smart_host)
            except InvalidAddressError as e:
                errors.append(str(e))

        if not self.smtp.sender:
            errors.append("Sender address is required")
        elif not _EMAIL_PATTERN.match(self.smtp.sender):
            errors.append(f"Invalid email format: {self.smtp.sender}")

        if self.smtp.timeout <= 0:
            errors.append("SMTP timeout must be positive")
        if self.max_workers < 1:
            errors.append("max_workers must be at least 1")

        return errors
