"""Domain objects for a planned crawl.

Groups reference each other through ``route`` (the host group visited at each
stop, possibly the group itself). These references are cyclic, so the
serialised form stores group ids only and ``Event.from_dict`` rebuilds the
references in two passes.
"""
from __future__ import annotations

import datetime as dt
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .errors import InvalidConfiguration
from .schemas import EventConfig, Participant, RouteLeg


class Group:
    def __init__(self, group_id: Optional[str] = None, members: Optional[List[Participant]] = None) -> None:
        self.id: str = group_id or uuid.uuid4().hex
        self.members: List[Participant] = list(members or [])
        self.host: Optional[Participant] = None
        self.route: List['Group'] = []
        self.route_legs: List[RouteLeg] = []

    def __repr__(self) -> str:
        names = ','.join(m.name for m in self.members)
        return f'Group(id={self.id[:8]}, members=[{names}])'

    def get_host(self) -> Optional[Participant]:
        if self.host is None:
            self.host = next((m for m in self.members if m.is_host), None)
        return self.host

    @property
    def host_address(self) -> Optional[str]:
        host = self.get_host()
        return host.address if host else None

    def total_travel_time(self) -> float:
        """Sum of leg durations in seconds, or -1 when legs were never computed."""
        if not self.route_legs:
            return -1
        return sum(leg.total_duration_seconds for leg in self.route_legs)

    @property
    def fallback_leg_count(self) -> int:
        return sum(1 for leg in self.route_legs if leg.is_fallback)

    def to_dict(self) -> Dict[str, Any]:
        host = self.get_host()
        return {
            'id': self.id,
            'members': [m.model_dump(mode='json') for m in self.members],
            'host': host.id if host else None,
            'route': [g.id for g in self.route],
            'route_legs': [leg.model_dump(mode='json') for leg in self.route_legs],
        }


class Event:
    def __init__(self, config: EventConfig, participants: List[Participant]) -> None:
        self.config = config
        self.participants = list(participants)
        self.groups: List[Group] = []
        self.assignment: List[List[int]] = []

    @property
    def start_address(self) -> str:
        return self.config.start_address

    @property
    def end_address(self) -> str:
        return self.config.end_address

    @property
    def start_datetime(self) -> dt.datetime:
        return self.config.start_datetime

    def departure_after(self, offset_minutes: float) -> dt.datetime:
        return self.config.start_datetime + dt.timedelta(minutes=offset_minutes)

    def apply_assignment(self, assignment: List[List[int]]) -> None:
        if len(assignment) != len(self.groups):
            raise InvalidConfiguration(
                f'assignment covers {len(assignment)} groups but the event has {len(self.groups)}'
            )
        for group in self.groups:
            group.route = []
        for group_no, row in enumerate(assignment):
            for host_index in row:
                self.groups[group_no].route.append(self.groups[host_index])
        self.assignment = [list(row) for row in assignment]

    def total_travel_time(self) -> float:
        return sum(max(0.0, g.total_travel_time()) for g in self.groups)

    @property
    def fallback_leg_count(self) -> int:
        return sum(g.fallback_leg_count for g in self.groups)

    def group_by_id(self, group_id: str) -> Optional[Group]:
        return next((g for g in self.groups if g.id == group_id), None)

    def describe(self) -> str:
        lines = ['++++ Event ++++']
        for group_no, group in enumerate(self.groups):
            host = group.get_host()
            stops = ' > '.join(
                f'{stop_no}: {(stop.get_host().name if stop.get_host() else "?")} ({stop.host_address or "?"})'
                for stop_no, stop in enumerate(group.route)
            )
            lines.append(f'== Group {group_no} ==')
            lines.append(f'Group members: {",".join(m.name for m in group.members)}')
            lines.append(f'Host: {host.name if host else "-"}')
            lines.append(f'Route: {stops}')
        return '\n'.join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'config': self.config.model_dump(mode='json'),
            'participants': [p.model_dump(mode='json') for p in self.participants],
            'groups': [g.to_dict() for g in self.groups],
            'assignment': [list(row) for row in self.assignment],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Event':
        event = cls(
            EventConfig.model_validate(data['config']),
            [Participant.model_validate(p) for p in data.get('participants') or []],
        )
        # First pass: instantiate every group without cross references.
        pending: List[tuple[Group, List[str], Optional[str]]] = []
        for raw in data.get('groups') or []:
            group = Group(
                group_id=raw.get('id'),
                members=[Participant.model_validate(m) for m in raw.get('members') or []],
            )
            group.route_legs = [RouteLeg.model_validate(leg) for leg in raw.get('route_legs') or []]
            pending.append((group, list(raw.get('route') or []), raw.get('host')))
            event.groups.append(group)

        # Second pass: resolve route ids and reconcile host members.
        by_id = {g.id: g for g in event.groups}
        for group, route_ids, host_id in pending:
            group.route = [by_id[gid] for gid in route_ids if gid in by_id]
            host = next((m for m in group.members if m.id == host_id), None) if host_id else None
            if host is None:
                host = next((m for m in group.members if m.is_host), None)
            if host is not None:
                host.is_host = True
            group.host = host
        event.assignment = [list(row) for row in data.get('assignment') or []]
        return event


@dataclass
class TrialResult:
    event: Event
    total_time_seconds: float
    fallback_legs: int = 0
    assignment_valid: bool = True

    @property
    def flagged(self) -> bool:
        return self.fallback_legs > 0 or not self.assignment_valid

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_time_seconds': self.total_time_seconds,
            'fallback_legs': self.fallback_legs,
            'assignment_valid': self.assignment_valid,
            'event': self.event.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TrialResult':
        return cls(
            event=Event.from_dict(data['event']),
            total_time_seconds=float(data.get('total_time_seconds') or 0.0),
            fallback_legs=int(data.get('fallback_legs') or 0),
            assignment_valid=bool(data.get('assignment_valid', True)),
        )
