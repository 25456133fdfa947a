from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

import typer

from .alert_config import AuthCredentials, NotifierConfig
from .email_alerter import EmailAlerter
from .errors import NotificationError
from .message import render_email_body
from .model import Alert, LabelSet, NotificationOp

app = typer.Typer(help="Send alert state notifications through an SMTP smart host.")


def _parse_pairs(pairs: Optional[List[str]], what: str) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for item in pairs or []:
        name, sep, value = item.partition("=")
        if not sep or not name:
            raise typer.BadParameter(f"{what} must look like name=value, got {item!r}")
        out[name] = value
    return out


def _load_alert(alert_file: Optional[str], summary: str, description: str,
                labels: Optional[List[str]], payload: Optional[List[str]]) -> Alert:
    if alert_file:
        p = Path(alert_file)
        if not p.exists():
            raise typer.BadParameter(f"Alert file not found: {alert_file}")
        with p.open("r", encoding="utf-8") as f:
            return Alert.from_dict(json.load(f))
    return Alert(
        summary=summary,
        description=description,
        labels=LabelSet(_parse_pairs(labels, "label")),
        payload=_parse_pairs(payload, "payload"),
    )


def _load_config(config: Optional[str], smarthost: Optional[str], sender: Optional[str],
                 implicit_tls: bool = False) -> NotifierConfig:
    if config:
        p = Path(config)
        if not p.exists():
            raise typer.BadParameter(f"Config not found: {config}")
        cfg = NotifierConfig.from_file(p, AuthCredentials.from_env())
    else:
        cfg = NotifierConfig(credentials=AuthCredentials.from_env())
    if smarthost:
        cfg.smtp.smart_host = smarthost
    if sender:
        cfg.smtp.sender = sender
    if implicit_tls:
        cfg.smtp.implicit_tls = True
    return cfg


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log SMTP session steps")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def send(
    to: str = typer.Option(..., help="Recipient email address"),
    smarthost: Optional[str] = typer.Option(None, help="Address of the smarthost to send all email notifications to (host:port)"),
    sender: Optional[str] = typer.Option(None, help="Sender email address to use in email notifications"),
    config: Optional[str] = typer.Option(None, help="Path to JSON config"),
    alert_file: Optional[str] = typer.Option(None, "--alert", help="Path to alert JSON (summary, description, labels, payload)"),
    summary: str = typer.Option("", help="Alert summary (ignored if --alert used)"),
    description: str = typer.Option("", help="Alert description (ignored if --alert used)"),
    label: Optional[List[str]] = typer.Option(None, "--label", "-l", help="Grouping label name=value, repeatable"),
    payload: Optional[List[str]] = typer.Option(None, "--payload", "-p", help="Payload entry name=value, repeatable"),
    resolve: bool = typer.Option(False, help="Report the alert as resolved instead of triggered"),
    implicit_tls: bool = typer.Option(False, help="Connect with TLS from the start (e.g. port 465) instead of STARTTLS"),
) -> None:
    """Send one notification. SMTP_AUTH_* environment variables supply credentials."""
    cfg = _load_config(config, smarthost, sender, implicit_tls)
    errors = cfg.validate()
    if errors:
        for e in errors:
            typer.echo(f"config error: {e}", err=True)
        raise typer.Exit(code=2)

    alert = _load_alert(alert_file, summary, description, label, payload)
    op = NotificationOp.RESOLVE if resolve else NotificationOp.TRIGGER

    typer.echo(f"smart host: {cfg.smtp.smart_host}, smtp sender: {cfg.smtp.sender}")
    try:
        EmailAlerter(cfg).send(to, op, alert)
    except NotificationError as e:
        typer.echo(f"Error happened: {e}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"sent [{op.status}] {alert.name} ({alert.fingerprint():016x}) to {to}")


@app.command()
def render(
    to: str = typer.Option("", help="Recipient shown in the To header"),
    sender: str = typer.Option("kfc@example.org", help="Sender shown in the From header"),
    alert_file: Optional[str] = typer.Option(None, "--alert", help="Path to alert JSON"),
    summary: str = typer.Option("", help="Alert summary"),
    description: str = typer.Option("", help="Alert description"),
    label: Optional[List[str]] = typer.Option(None, "--label", "-l", help="Grouping label name=value"),
    payload: Optional[List[str]] = typer.Option(None, "--payload", "-p", help="Payload entry name=value"),
    resolve: bool = typer.Option(False, help="Render as resolved"),
) -> None:
    """Print the message that would be sent, without connecting anywhere."""
    alert = _load_alert(alert_file, summary, description, label, payload)
    op = NotificationOp.RESOLVE if resolve else NotificationOp.TRIGGER
    body = render_email_body(sender, to, op.status, alert)
    sys.stdout.write(body.decode("utf-8").replace("\r\n", "\n"))


@app.command()
def fingerprint(
    label: Optional[List[str]] = typer.Option(None, "--label", "-l", help="Label name=value"),
) -> None:
    """Print the fingerprint of a label set."""
    labels = LabelSet(_parse_pairs(label, "label"))
    typer.echo(f"{labels.fingerprint():016x}")


if __name__ == "__main__":
    app()
