from __future__ import annotations

import asyncio
import datetime as dt
import logging
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Protocol

from ...errors import GroupFormationExhausted, RoutingError
from ...models import Event, Group, TrialResult
from ...schemas import EventConfig, Participant, RouteLeg
from . import config as search_config
from .assignment import assignment_feasibility, generate_valid_assignment
from .grouping import form_groups, set_random_hosts

logger = logging.getLogger('scheduling')

ProgressCallback = Callable[[float, Optional[str]], Awaitable[None]]


class RouteProvider(Protocol):
    async def get_route(self, origin: Optional[str], destination: Optional[str], departure: dt.datetime) -> RouteLeg:
        ...


class TrialStage(str, Enum):
    FORM_GROUPS = 'form_groups'
    GENERATE_ASSIGNMENT = 'generate_assignment'
    ASSIGN_HOSTS = 'assign_hosts'
    APPLY_ASSIGNMENT = 'apply_assignment'
    COMPUTE_LEGS = 'compute_legs'
    SCORE = 'score'
    DONE = 'done'


@dataclass
class SearchOutcome:
    ranked: List[TrialResult] = field(default_factory=list)
    trials_run: int = 0
    trials_failed: int = 0
    failures: Dict[str, int] = field(default_factory=dict)

    @property
    def flagged(self) -> int:
        return sum(1 for result in self.ranked if result.flagged)

    def summary(self) -> Dict[str, Any]:
        return {
            'trials_run': self.trials_run,
            'trials_failed': self.trials_failed,
            'failures': dict(self.failures),
            'flagged_results': self.flagged,
            'best_total_seconds': self.ranked[0].total_time_seconds if self.ranked else None,
        }


def _at_least_one(name: str, value: Optional[int], default: Callable[[], int]) -> int:
    if value is None:
        return default()
    if value < 1:
        raise ValueError(f'{name} must be at least 1, got {value}')
    return value


def select_top_k(results: Iterable[TrialResult], k: int) -> List[TrialResult]:
    """The ``k`` lowest-scoring results in ascending order; ties keep trial order."""
    return sorted(results, key=lambda r: r.total_time_seconds)[:max(0, k)]


class EventScheduler:
    """Runs trials (grouping + assignment + routing) and keeps the best ones.

    Provider calls happen strictly one after another: trials run sequentially
    and within a trial every group's legs are requested in order.
    """

    def __init__(
        self,
        client: RouteProvider,
        *,
        rng: Optional[random.Random] = None,
        generation_retries: Optional[int] = None,
        formation_retries: Optional[int] = None,
        strict_generation: Optional[bool] = None,
        progress_cb: Optional[ProgressCallback] = None,
    ) -> None:
        self.client = client
        self.rng = rng or random.Random(search_config.search_seed())
        self.generation_retries = _at_least_one('generation_retries', generation_retries, search_config.generation_retries)
        self.formation_retries = _at_least_one('formation_retries', formation_retries, search_config.group_formation_retries)
        self.strict_generation = search_config.strict_generation() if strict_generation is None else strict_generation
        self.progress_cb = progress_cb

    def _enter(self, stage: TrialStage, trial: Optional[int]) -> None:
        logger.debug('trial.stage stage=%s', stage.value, extra={'trial': trial})

    async def run_trial(
        self,
        config: EventConfig,
        participants: List[Participant],
        *,
        trial: Optional[int] = None,
    ) -> TrialResult:
        event = Event(config, participants)

        self._enter(TrialStage.FORM_GROUPS, trial)
        event.groups = form_groups(participants, config.num_groups, self.rng, max_attempts=self.formation_retries)

        self._enter(TrialStage.GENERATE_ASSIGNMENT, trial)
        generated = generate_valid_assignment(
            config.num_stops,
            config.num_groups,
            self.rng,
            max_attempts=self.generation_retries,
            strict=self.strict_generation,
        )

        self._enter(TrialStage.ASSIGN_HOSTS, trial)
        set_random_hosts(event.groups, self.rng)

        self._enter(TrialStage.APPLY_ASSIGNMENT, trial)
        event.apply_assignment(generated.assignment)

        self._enter(TrialStage.COMPUTE_LEGS, trial)
        await self.compute_legs(event, trial=trial)

        self._enter(TrialStage.SCORE, trial)
        total = event.total_travel_time()
        result = TrialResult(
            event=event,
            total_time_seconds=total,
            fallback_legs=event.fallback_leg_count,
            assignment_valid=generated.valid,
        )
        self._enter(TrialStage.DONE, trial)
        logger.info(
            'trial.scored total_seconds=%.0f fallback_legs=%d assignment_valid=%s',
            total, result.fallback_legs, result.assignment_valid, extra={'trial': trial},
        )
        return result

    async def compute_legs(self, event: Event, *, trial: Optional[int] = None) -> float:
        minutes = event.config.time_per_stop_minutes
        total = 0.0
        for group in event.groups:
            group.route_legs = await self._group_legs(event, group, minutes, trial)
            total += group.total_travel_time()
        return total

    async def _group_legs(self, event: Event, group: Group, minutes: int, trial: Optional[int]) -> List[RouteLeg]:
        route = group.route
        legs = [await self._leg(event.start_address, route[0].host_address, event.start_datetime, trial)]
        for hop in range(1, len(route)):
            legs.append(await self._leg(
                route[hop - 1].host_address,
                route[hop].host_address,
                event.departure_after(hop * minutes),
                trial,
            ))
        legs.append(await self._leg(
            route[-1].host_address,
            event.end_address,
            event.departure_after(len(route) * minutes),
            trial,
        ))
        return legs

    async def _leg(self, origin: Optional[str], destination: Optional[str], departure: dt.datetime, trial: Optional[int]) -> RouteLeg:
        try:
            return await self.client.get_route(origin, destination, departure)
        except RoutingError as exc:
            logger.warning('leg.fallback %s', exc, extra={'trial': trial})
            return RouteLeg.fallback(origin, destination, departure, str(exc))

    async def _emit_progress(self, ratio: float, message: Optional[str] = None) -> None:
        if self.progress_cb is None:
            return
        await self.progress_cb(max(0.0, min(1.0, float(ratio))), message)

    async def search(
        self,
        config: EventConfig,
        participants: List[Participant],
        *,
        trials: Optional[int] = None,
        top_k: Optional[int] = None,
        deadline_seconds: Optional[float] = None,
    ) -> SearchOutcome:
        trials = _at_least_one('trials', trials, search_config.max_trials)
        k = _at_least_one('top_k', top_k, search_config.top_k)
        deadline = deadline_seconds if deadline_seconds is not None else search_config.search_deadline_seconds()

        feasibility = assignment_feasibility(config.num_stops, config.num_groups)
        for issue in feasibility['issues']:
            logger.warning('search.infeasible_constraints %s', issue)

        eligible = sum(1 for p in participants if p.can_host)
        outcome = SearchOutcome()
        loop = asyncio.get_running_loop()
        started = loop.time()
        formation_error: Optional[GroupFormationExhausted] = None

        for index in range(trials):
            if deadline is not None and loop.time() - started >= deadline:
                logger.warning('search.deadline reached after %d of %d trials', index, trials)
                break
            await self._emit_progress(index / trials, f'Trial {index + 1} of {trials}')
            outcome.trials_run += 1
            try:
                result = await self.run_trial(config, participants, trial=index)
            except GroupFormationExhausted as exc:
                outcome.trials_failed += 1
                outcome.failures[type(exc).__name__] = outcome.failures.get(type(exc).__name__, 0) + 1
                formation_error = exc
                logger.error('trial.group_formation_failed %s', exc, extra={'trial': index})
                if eligible < config.num_groups:
                    # no reshuffle can ever succeed with this pool
                    raise
                continue
            except Exception as exc:  # pylint: disable=broad-except
                outcome.trials_failed += 1
                outcome.failures[type(exc).__name__] = outcome.failures.get(type(exc).__name__, 0) + 1
                logger.exception('trial.failed %s', exc, extra={'trial': index})
                continue
            outcome.ranked = select_top_k([*outcome.ranked, result], k)

        if not outcome.ranked and formation_error is not None:
            raise formation_error
        await self._emit_progress(1.0, 'Search complete')
        logger.info(
            'search.done trials=%d failed=%d best=%s flagged=%d',
            outcome.trials_run, outcome.trials_failed,
            outcome.ranked[0].total_time_seconds if outcome.ranked else None, outcome.flagged,
        )
        return outcome
