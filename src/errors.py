"""
Error taxonomy of the analytics engine.

Every failure surfaced to callers is one of these types; an empty result is
never reported through an exception.
"""

from typing import Any


class GovernanceAnalyticsError(Exception):
    """Base class for analytics failures."""


class NotFoundError(GovernanceAnalyticsError):
    """Requested entity (proposal, upgrade, PR, contributor) does not exist."""

    def __init__(self, entity: str, key: Any):
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} not found: {key}")


class InvalidFilterError(GovernanceAnalyticsError):
    """A filter value outside its accepted domain, rejected before querying."""

    def __init__(self, field: str, value: Any, reason: str = "unsupported value"):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"invalid filter {field}={value!r}: {reason}")


class UpstreamUnavailableError(GovernanceAnalyticsError):
    """The underlying event store cannot be reached. Not retried here."""

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"event store unavailable ({source}): {reason}")


class EventOrderError(GovernanceAnalyticsError):
    """An event older than the latest one already logged for the same entity."""

    def __init__(self, key: Any, latest: Any, received: Any):
        self.key = key
        self.latest = latest
        self.received = received
        super().__init__(
            f"out-of-order event for {key}: {received} is older than {latest}"
        )
