"""Error taxonomy for provider and store failures."""

from __future__ import annotations


class NearfixError(Exception):
    """Base class for all engine errors."""


class LocationError(NearfixError):
    """Failure reported by the platform location provider."""

    fatal = False


class PermissionDenied(LocationError):
    fatal = True


class ServicesDisabled(LocationError):
    fatal = True


class ProviderTimeout(LocationError):
    pass


class ProviderUnavailable(LocationError):
    pass


class StoreError(NearfixError):
    """Failure reported by the remote profile/location store."""


class StoreWriteFailed(StoreError):
    pass


class StoreFetchFailed(StoreError):
    pass
