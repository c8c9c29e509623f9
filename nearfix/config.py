"""Runtime configuration for nearfix."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class AccuracyTier(Enum):
    HIGHEST = "highest"
    HIGH = "high"
    BALANCED = "balanced"
    LOW = "low"
    LOWEST = "lowest"

    def degrade(self) -> AccuracyTier:
        """Next cheaper/faster tier. LOWEST stays LOWEST."""
        tiers = list(AccuracyTier)
        idx = tiers.index(self)
        return tiers[min(idx + 1, len(tiers) - 1)]


@dataclass
class NearfixConfig:
    # Fix ingestion
    hard_reject_accuracy: float = 100.0  # meters
    max_jump_distance: float = 200.0  # meters
    gap_reset_window: float = 30.0  # seconds
    history_capacity: int = 12

    # Stabilization
    min_cluster_size: int = 3
    target_cluster_size: int = 5
    cluster_radius: float = 15.0  # meters
    recency_horizon: float = 60.0  # seconds
    recency_floor: float = 0.1
    recent_window: float = 10.0  # seconds
    publish_confidence: float = 0.8
    # size / accuracy / consistency / recency
    confidence_weights: tuple[float, float, float, float] = (0.3, 0.4, 0.2, 0.1)

    # Accuracy escalation
    retry_accuracy: float = 50.0  # meters
    max_retries: int = 5
    stabilization_timeout: float = 30.0  # seconds
    request_timeout: float = 10.0  # seconds, per one-shot request
    fix_max_age: float = 60.0  # seconds
    initial_tier: AccuracyTier = AccuracyTier.HIGHEST

    # Continuous watch
    watch_tier: AccuracyTier = AccuracyTier.HIGH
    watch_min_distance: float = 0.0  # meters
    watch_min_interval: float = 2.0  # seconds

    # Publishing
    publish_accuracy: float = 200.0  # meters
    min_publish_interval: float = 2.0  # seconds
    publish_heartbeat: float = 30.0  # seconds
    estimate_max_age: float = 300.0  # seconds without a fresh fix before the estimate is dropped

    # Proximity
    nearby_radius: float = 2000.0  # meters
    refresh_interval: float = 60.0  # seconds
    liveness_window: float = 300.0  # seconds
    very_close_distance: float = 100.0  # meters
    nearby_distance: float = 500.0  # meters

    # Paths
    data_dir: Path = field(default_factory=lambda: Path.home() / ".nearfix")


_DURATION_KEYS = {
    "gap_reset_window",
    "recency_horizon",
    "recent_window",
    "stabilization_timeout",
    "request_timeout",
    "fix_max_age",
    "watch_min_interval",
    "min_publish_interval",
    "publish_heartbeat",
    "estimate_max_age",
    "refresh_interval",
    "liveness_window",
}

_TIER_KEYS = {"initial_tier", "watch_tier"}


def load_config_file(path: Path) -> dict:
    """Load config overrides from a TOML file. Returns empty dict if not found."""
    if not path.exists():
        return {}
    import tomllib
    return tomllib.loads(path.read_text())


def apply_overrides(config: NearfixConfig, overrides: dict) -> NearfixConfig:
    """Apply dict overrides (from TOML or CLI) onto a config."""
    for key, value in overrides.items():
        if key in _TIER_KEYS and isinstance(value, str):
            setattr(config, key, AccuracyTier(value.lower().strip()))
        elif key in _DURATION_KEYS:
            if isinstance(value, str):
                setattr(config, key, parse_duration(value))
            elif isinstance(value, int | float):
                setattr(config, key, float(value))
        elif key == "confidence_weights" and isinstance(value, list | tuple):
            if len(value) != 4:
                raise ValueError("confidence_weights needs exactly four values")
            config.confidence_weights = tuple(float(v) for v in value)  # type: ignore[assignment]
        elif key == "data_dir" and isinstance(value, str):
            config.data_dir = Path(value)
        elif hasattr(config, key):
            setattr(config, key, value)
    return config


def parse_duration(s: str) -> float:
    """Parse duration string like '30s', '5m' or '1h' into seconds."""
    s = s.lower().strip()
    if s.endswith("ms"):
        return float(s[:-2]) / 1000.0
    if s.endswith("m"):
        return float(s[:-1]) * 60
    if s.endswith("h"):
        return float(s[:-1]) * 3600
    if s.endswith("s"):
        return float(s[:-1])
    return float(s)
