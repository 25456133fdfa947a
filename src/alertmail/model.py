"""
Alert identity model.

Concepts:
- A label set is the aggregation-significant identity of an alert: an immutable
  mapping of label name to label value that must minimally carry "alertname".
- The fingerprint is a 64-bit FNV-1a digest over the sorted (name, value) pairs.
  It is stable across processes and independent of insertion order.
- Payload entries are display-only and never take part in identity.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, Optional

ALERT_NAME_LABEL = "alertname"

FNV64_OFFSET_BASIS = 0xCBF29CE484222325
FNV64_PRIME = 0x100000001B3
_MASK64 = 0xFFFFFFFFFFFFFFFF

_SEPARATOR = b"\x00"


def fnv1a_64(data: bytes, seed: int = FNV64_OFFSET_BASIS) -> int:
    """FNV-1a over ``data``, continuing from ``seed``."""
    h = seed
    for byte in data:
        h ^= byte
        h = (h * FNV64_PRIME) & _MASK64
    return h


def fingerprint_labels(labels: Mapping) -> int:
    """Fingerprint of any str -> str mapping.

    Names are sorted by their UTF-8 bytes, then ``name NUL value NUL`` is fed
    into the hash for each of them.
    """
    encoded = sorted((k.encode("utf-8"), v.encode("utf-8")) for k, v in labels.items())
    h = FNV64_OFFSET_BASIS
    for name, value in encoded:
        h = fnv1a_64(name + _SEPARATOR + value + _SEPARATOR, h)
    return h


class LabelSet(Mapping):
    """Immutable mapping of label names to label values."""

    __slots__ = ("_labels",)

    def __init__(self, labels: Optional[Mapping] = None, **kwargs: str) -> None:
        data: Dict[str, str] = dict(labels or {})
        data.update(kwargs)
        for k, v in data.items():
            if not isinstance(k, str) or not isinstance(v, str):
                raise TypeError(f"label names and values must be str, got {k!r}={v!r}")
        self._labels = data

    def __getitem__(self, name: str) -> str:
        return self._labels[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._labels)

    def __len__(self) -> int:
        return len(self._labels)

    def __repr__(self) -> str:
        inner = ", ".join(f"{k}={v!r}" for k, v in sorted(self._labels.items()))
        return f"LabelSet({{{inner}}})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Mapping):
            return NotImplemented
        return self.equal(other)

    def __hash__(self) -> int:
        return self.fingerprint()

    def fingerprint(self) -> int:
        return fingerprint_labels(self._labels)

    def equal(self, other: Mapping) -> bool:
        """Set equality over (name, value) pairs."""
        if len(self) != len(other):
            return False
        for k, v in self._labels.items():
            if k not in other or other[k] != v:
                return False
        return True

    def match_on_labels(self, other: Mapping, names: Iterable[str]) -> bool:
        """Compare only the given labels.

        A label missing from a set reads as the empty string, so a label
        absent from both sets matches.
        """
        for name in names:
            if self._labels.get(name, "") != other.get(name, ""):
                return False
        return True

    def to_dict(self) -> Dict[str, str]:
        return dict(self._labels)


class NotificationOp(Enum):
    """State transition a notification reports."""

    TRIGGER = "trigger"
    RESOLVE = "resolve"

    @property
    def status(self) -> str:
        return "ALERT" if self is NotificationOp.TRIGGER else "RESOLVED"


@dataclass(frozen=True)
class Alert:
    """An alert as handed over by the alert-generation pipeline."""

    summary: str = ""
    description: str = ""
    labels: LabelSet = field(default_factory=LabelSet)
    payload: Mapping = field(default_factory=dict, hash=False)

    def __post_init__(self):
        if not isinstance(self.labels, LabelSet):
            object.__setattr__(self, "labels", LabelSet(self.labels))
        object.__setattr__(self, "payload", MappingProxyType(dict(self.payload)))

    @property
    def name(self) -> str:
        return self.labels.get(ALERT_NAME_LABEL, "")

    def fingerprint(self) -> int:
        return self.labels.fingerprint()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Alert":
        """Build an Alert from its JSON form."""
        labels = data.get("labels") or {}
        payload = data.get("payload") or {}
        return cls(
            summary=str(data.get("summary", "")),
            description=str(data.get("description", "")),
            labels=LabelSet({str(k): str(v) for k, v in labels.items()}),
            payload={str(k): str(v) for k, v in payload.items()},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary,
            "description": self.description,
            "labels": self.labels.to_dict(),
            "payload": dict(self.payload),
        }
