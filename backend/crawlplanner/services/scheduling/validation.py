from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Set

logger = logging.getLogger(__name__)


def collect_visitor_sets(assignment: List[List[int]]) -> List[Dict[int, Set[int]]]:
    """Per stop, map each host index to the set of groups at that host (host included)."""
    num_stops = len(assignment[0]) if assignment else 0
    partners: List[Dict[int, Set[int]]] = [{} for _ in range(num_stops)]
    for group_no, row in enumerate(assignment):
        for stop_no, host in enumerate(row):
            partners[stop_no].setdefault(host, set()).add(group_no)
    return partners


def validate_assignment(assignment: List[List[int]]) -> Dict[str, Any]:
    """
    Check a group -> host schedule against the crawl constraints.

    Constraints checked:
    1. Host presence: every visited group is itself hosting at that stop
    2. Row uniqueness: no two groups follow the identical schedule
    3. Stop-to-stop diversity: for consecutive stops, the visitor sets of any
       host pair differ by at least ``hosts_per_stop - 1`` groups
    4. Even distribution: every host receives at least ``ceil(G / hosts_per_stop)``
       groups (itself included) at every stop

    Works on externally supplied assignments too; it never mutates its input.

    Returns:
        {
            'valid': bool,
            'errors': List[str],
            'statistics': dict,
        }
    """
    errors: List[str] = []
    num_groups = len(assignment)
    num_stops = len(assignment[0]) if assignment else 0

    if num_groups == 0 or num_stops == 0:
        return {
            'valid': False,
            'errors': ['assignment is empty'],
            'statistics': {'groups': num_groups, 'stops': num_stops},
        }
    if any(len(row) != num_stops for row in assignment):
        errors.append('rows have different lengths')
        return {'valid': False, 'errors': errors, 'statistics': {'groups': num_groups, 'stops': num_stops}}
    if any(not (0 <= host < num_groups) for row in assignment for host in row):
        errors.append('assignment references a group index out of range')
        return {'valid': False, 'errors': errors, 'statistics': {'groups': num_groups, 'stops': num_stops}}

    hosts = num_groups // num_stops

    # 1. host presence
    for group_no, row in enumerate(assignment):
        for stop_no, host in enumerate(row):
            if assignment[host][stop_no] != host:
                errors.append(
                    f'Group {group_no} visits group {host} at stop {stop_no}, but group {host} is not hosting'
                )

    # 2. row uniqueness
    seen: Dict[tuple, int] = {}
    for group_no, row in enumerate(assignment):
        key = tuple(row)
        if key in seen:
            errors.append(f'Groups {seen[key]} and {group_no} have identical routes')
        else:
            seen[key] = group_no

    partners = collect_visitor_sets(assignment)

    # 3. diversity between consecutive stops
    min_change = hosts - 1
    for stop_no in range(num_stops - 1):
        for host, visiting in partners[stop_no].items():
            for next_host, next_visiting in partners[stop_no + 1].items():
                if len(visiting - next_visiting) < min_change:
                    errors.append(
                        f'Groups at host {host} (stop {stop_no}) barely change at host {next_host} '
                        f'(stop {stop_no + 1})'
                    )

    # 4. even distribution
    min_size = math.ceil(num_groups / hosts) if hosts else num_groups
    for stop_no, stop_partners in enumerate(partners):
        for host, visiting in stop_partners.items():
            if len(visiting) < min_size:
                errors.append(
                    f'Host {host} receives {len(visiting)} groups at stop {stop_no} (expected at least {min_size})'
                )

    statistics = {
        'groups': num_groups,
        'stops': num_stops,
        'hosts_per_stop': hosts,
        'hosts_by_stop': [sorted(p.keys()) for p in partners],
        'visitor_counts': [{h: len(v) for h, v in sorted(p.items())} for p in partners],
    }
    logger.debug('assignment validation: %d groups, %d stops, %d errors', num_groups, num_stops, len(errors))
    return {'valid': not errors, 'errors': errors, 'statistics': statistics}


def is_valid_assignment(assignment: List[List[int]]) -> bool:
    return bool(validate_assignment(assignment)['valid'])
