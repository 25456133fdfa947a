from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path

# Ensure src is on sys.path so `alertmail` is importable without installing
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT / "src") not in sys.path:
    sys.path.insert(0, str(ROOT / "src"))

from alertmail.message import render_email_body
from alertmail.model import Alert, LabelSet


def test_fingerprint() -> None:
    a = LabelSet({"alertname": "HighLatency", "instance": "a"})
    b = LabelSet({"instance": "a", "alertname": "HighLatency"})
    assert a.fingerprint() == b.fingerprint()
    assert a.fingerprint() != LabelSet({"alertname": "HighLatency", "instance": "b"}).fingerprint()


def test_render() -> None:
    alert = Alert(summary="Hello world", labels={"alertname": "Test"})
    body = render_email_body("kfc@example.org", "ops@example.org", "RESOLVED", alert,
                             datetime(2006, 1, 2, 15, 4, 5, tzinfo=timezone.utc))
    assert b"[RESOLVED] Test: Hello world" in body


def main() -> int:
    try:
        test_fingerprint()
        test_render()
    except Exception as e:
        print(f"SMOKE: FAIL: {e}")
        return 1
    print("SMOKE: PASS")
    return 0


if __name__ == "__main__":
    sys.exit(main())
