from __future__ import annotations

from typing import List

from ...models import Event, Group
from ...schemas import HostGroupInfo, Itinerary, ItineraryLeg

FINALE = HostGroupInfo(host_name='Finale', host_group_members='Everyone')


def _host_info(stop: Group) -> HostGroupInfo:
    host = stop.get_host()
    return HostGroupInfo(
        host_name=host.name if host else '',
        host_group_members=', '.join(m.name for m in stop.members),
    )


def build_itinerary(event: Event, group: Group) -> Itinerary:
    """Shareable plan for one group: every leg plus whose place it leads to.

    Leg ``i`` leads to the host of stop ``i``; the leg after the last stop leads
    to the end address where everyone converges.
    """
    legs: List[ItineraryLeg] = []
    for leg_no, leg in enumerate(group.route_legs):
        host_group = _host_info(group.route[leg_no]) if leg_no < len(group.route) else FINALE
        legs.append(ItineraryLeg(
            travel_mode=leg.overall_mode,
            departure_time=leg.departure_time,
            arrival_time=leg.arrival_time,
            start_address=leg.start_address,
            end_address=leg.end_address,
            distance_text=leg.distance.text if leg.distance else '',
            duration_text=leg.total_duration.text if leg.total_duration else '',
            steps=list(leg.steps),
            host_group=host_group,
            is_fallback=leg.is_fallback,
        ))
    return Itinerary(
        start_address=event.start_address,
        end_address=event.end_address,
        start_datetime=event.start_datetime.isoformat(),
        members=[m.name for m in group.members],
        legs=legs,
    )
