"""Exception hierarchy shared by the planner services and the HTTP layer."""
from __future__ import annotations

from typing import Optional


class CrawlPlannerError(Exception):
    """Base class for every planner error."""


class InvalidConfiguration(CrawlPlannerError):
    pass


class RoutingError(CrawlPlannerError):
    """A single leg could not be resolved. Callers substitute a fallback leg."""


class GeocodeFailure(RoutingError):
    def __init__(self, address: Optional[str], reason: str = 'address could not be resolved') -> None:
        self.address = address
        self.reason = reason
        super().__init__(f'geocoding failed for {address!r}: {reason}')


class RoutingFailure(RoutingError):
    def __init__(self, origin: Optional[str], destination: Optional[str], reason: str = 'no route found') -> None:
        self.origin = origin
        self.destination = destination
        self.reason = reason
        super().__init__(f'routing failed for {origin!r} -> {destination!r}: {reason}')


class GenerationExhausted(CrawlPlannerError):
    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(f'no valid assignment found within {attempts} attempts')


class GroupFormationExhausted(CrawlPlannerError):
    """The participant pool cannot give every group an address-eligible member."""

    def __init__(self, attempts: int, num_groups: int, eligible: int) -> None:
        self.attempts = attempts
        self.num_groups = num_groups
        self.eligible = eligible
        super().__init__(
            f'could not form {num_groups} groups with at least one host each '
            f'after {attempts} attempts ({eligible} participants have an address)'
        )


__all__ = [
    'CrawlPlannerError',
    'InvalidConfiguration',
    'RoutingError',
    'GeocodeFailure',
    'RoutingFailure',
    'GenerationExhausted',
    'GroupFormationExhausted',
]
