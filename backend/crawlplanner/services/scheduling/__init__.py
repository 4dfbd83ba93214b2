from __future__ import annotations

from .assignment import (
    GenerationResult,
    assignment_feasibility,
    generate_assignment,
    generate_valid_assignment,
    hosts_per_stop,
    visitor_quota,
)
from .grouping import form_groups, set_random_host, set_random_hosts
from .itinerary import build_itinerary
from .jobs import SearchJobs
from .scheduler import EventScheduler, SearchOutcome, TrialStage, select_top_k
from .validation import collect_visitor_sets, is_valid_assignment, validate_assignment

__all__ = [
    'GenerationResult',
    'assignment_feasibility',
    'generate_assignment',
    'generate_valid_assignment',
    'hosts_per_stop',
    'visitor_quota',
    'form_groups',
    'set_random_host',
    'set_random_hosts',
    'build_itinerary',
    'SearchJobs',
    'EventScheduler',
    'SearchOutcome',
    'TrialStage',
    'select_top_k',
    'collect_visitor_sets',
    'is_valid_assignment',
    'validate_assignment',
]
