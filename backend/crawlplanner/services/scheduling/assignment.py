"""Randomized generation of group -> host schedules.

An assignment is a ``num_groups x num_stops`` matrix where ``assignment[g][s]``
is the index of the group whose host receives group ``g`` at stop ``s``. A
hosting group's entry is its own index.

Solving the constraints exactly is awkward; a random candidate is cheap and
validation is cheap, so callers retry generation until a candidate passes.
"""
from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass
from typing import Dict, List, Optional, Set

from ...errors import GenerationExhausted
from .validation import is_valid_assignment

logger = logging.getLogger('scheduling')

Assignment = List[List[int]]


def hosts_per_stop(num_groups: int, num_stops: int) -> int:
    if num_stops < 1:
        raise ValueError('num_stops must be at least 1')
    hosts = num_groups // num_stops
    if hosts < 1:
        raise ValueError(f'{num_groups} groups cannot host {num_stops} stops')
    return hosts


def visitor_quota(num_groups: int, hosts: int) -> int:
    """Maximum number of visiting groups (host excluded) a host receives per stop."""
    return math.ceil(num_groups / hosts) - 1


def generate_assignment(num_stops: int, num_groups: int, rng: Optional[random.Random] = None) -> Assignment:
    rng = rng or random.Random()
    hosts = hosts_per_stop(num_groups, num_stops)
    quota = visitor_quota(num_groups, hosts)

    already_hosting: Set[int] = set()
    hosting_per_stop: List[List[int]] = []
    for _ in range(num_stops):
        available = [g for g in range(num_groups) if g not in already_hosting]
        chosen = rng.sample(available, hosts)
        hosting_per_stop.append(chosen)
        already_hosting.update(chosen)

    visitors: List[Dict[int, int]] = [{host: 0 for host in stop_hosts} for stop_hosts in hosting_per_stop]
    assignment: Assignment = []
    for group in range(num_groups):
        row: List[int] = []
        for stop, stop_hosts in enumerate(hosting_per_stop):
            if group in visitors[stop]:
                row.append(group)
                continue
            host = rng.choice(stop_hosts)
            while visitors[stop][host] >= quota:
                host = rng.choice(stop_hosts)
            visitors[stop][host] += 1
            row.append(host)
        assignment.append(row)
    return assignment


@dataclass
class GenerationResult:
    assignment: Assignment
    valid: bool
    attempts: int


def generate_valid_assignment(
    num_stops: int,
    num_groups: int,
    rng: Optional[random.Random] = None,
    *,
    max_attempts: int = 100,
    strict: bool = False,
) -> GenerationResult:
    """Generate candidates until one validates or ``max_attempts`` is used up.

    On exhaustion the last candidate is returned with ``valid=False`` (a degraded
    result beats no result), unless ``strict`` asks for ``GenerationExhausted``.
    """
    rng = rng or random.Random()
    attempts = 0
    candidate: Assignment = []
    while attempts < max(1, max_attempts):
        attempts += 1
        candidate = generate_assignment(num_stops, num_groups, rng)
        if is_valid_assignment(candidate):
            return GenerationResult(candidate, True, attempts)
    if strict:
        raise GenerationExhausted(attempts)
    logger.warning(
        'assignment.degraded no valid assignment after %d attempts (stops=%d groups=%d); using last candidate',
        attempts, num_stops, num_groups,
    )
    return GenerationResult(candidate, False, attempts)


def assignment_feasibility(num_stops: int, num_groups: int) -> Dict[str, object]:
    """Report (stops, groups) combinations the validator can never accept.

    Nothing is adjusted here; the scheduler logs the issues and carries on with
    degraded assignments.
    """
    issues: List[str] = []
    if num_groups < num_stops or num_stops < 1:
        issues.append('fewer groups than stops: no host available for some stops')
        return {'feasible': False, 'issues': issues, 'hosts_per_stop': 0}
    hosts = num_groups // num_stops
    if num_groups % hosts != 0:
        issues.append(
            f'{num_groups} groups do not split evenly over {hosts} hosts per stop: '
            f'every host needs {math.ceil(num_groups / hosts)} groups'
        )
    if num_stops > 1 and hosts == 1 and num_groups > 1:
        # a single host per stop receives everybody, so every schedule row repeats
        issues.append('one host per stop gives every group the same schedule')
    return {'feasible': not issues, 'issues': issues, 'hosts_per_stop': hosts}
