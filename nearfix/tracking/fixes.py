from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class PositionFix:
    latitude: float
    longitude: float
    accuracy: float | None  # meters, None when the provider did not report one
    timestamp: float  # epoch seconds
    altitude: float | None = None
    heading: float | None = None
    speed: float | None = None

    @property
    def coordinate(self) -> tuple[float, float]:
        return (self.latitude, self.longitude)

    @property
    def effective_accuracy(self) -> float:
        """Accuracy in meters, with a missing value treated as worst case."""
        if self.accuracy is None or math.isnan(self.accuracy):
            return math.inf
        return float(self.accuracy)

    def to_dict(self) -> dict:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "accuracy": self.accuracy,
            "timestamp": self.timestamp,
            "altitude": self.altitude,
            "heading": self.heading,
            "speed": self.speed,
        }

    @classmethod
    def from_dict(cls, d: dict) -> PositionFix:
        return cls(
            latitude=float(d["latitude"]),
            longitude=float(d["longitude"]),
            accuracy=_optional_float(d.get("accuracy")),
            timestamp=_parse_timestamp(d["timestamp"]),
            altitude=_optional_float(d.get("altitude")),
            heading=_optional_float(d.get("heading")),
            speed=_optional_float(d.get("speed")),
        )


@dataclass(frozen=True, slots=True)
class RemotePosition:
    """Another subject's last published position, as returned by the store."""

    subject_id: str
    latitude: float
    longitude: float
    timestamp: float  # epoch seconds
    accuracy: float | None = None

    @property
    def coordinate(self) -> tuple[float, float]:
        return (self.latitude, self.longitude)

    @classmethod
    def from_dict(cls, d: dict) -> RemotePosition:
        subject = d.get("subject_id", d.get("user_id"))
        if subject is None:
            raise KeyError("subject_id")
        return cls(
            subject_id=str(subject),
            latitude=float(d["latitude"]),
            longitude=float(d["longitude"]),
            timestamp=_parse_timestamp(d["timestamp"]),
            accuracy=_optional_float(d.get("accuracy")),
        )


def _optional_float(value: object) -> float | None:
    """None stays None; numbers and numeric strings become floats, anything else raises."""
    if value is None or value == "":
        return None
    if isinstance(value, int | float | str) and not isinstance(value, bool):
        return float(value)
    raise TypeError(f"expected a number, got {value!r}")


def _parse_timestamp(value: object) -> float:
    """Epoch seconds from a number or an ISO-8601 string (store rows use the latter)."""
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return datetime.fromisoformat(text).timestamp()
    raise TypeError(f"unsupported timestamp: {value!r}")
