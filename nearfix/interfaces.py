"""Call contracts for the platform location provider and the remote store."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Protocol

from nearfix.config import AccuracyTier
from nearfix.tracking.fixes import PositionFix, RemotePosition


class FixSubscription(Protocol):
    """Continuous fix stream. Iteration ends once cancelled."""

    def __aiter__(self) -> AsyncIterator[PositionFix]: ...

    def cancel(self) -> None: ...


class LocationProvider(Protocol):
    async def get_current_fix(
        self,
        tier: AccuracyTier,
        max_age: float,
        timeout: float,
    ) -> PositionFix:
        """One-shot fix. Raises a LocationError subclass on failure."""
        ...

    async def subscribe(
        self,
        tier: AccuracyTier,
        min_distance: float,
        min_interval: float,
    ) -> FixSubscription: ...


class LocationStore(Protocol):
    async def publish(
        self,
        latitude: float,
        longitude: float,
        accuracy: float,
        altitude: float | None,
        heading: float | None,
        speed: float | None,
        timestamp: float,
    ) -> None:
        """Raises StoreWriteFailed on failure."""
        ...

    async def clear(self) -> None: ...

    async def fetch_nearby(self, radius: float) -> list[RemotePosition]:
        """Raises StoreFetchFailed on failure."""
        ...
