import datetime as dt
import random

import pytest

from conftest import StubRouter, make_participants
from crawlplanner.errors import GroupFormationExhausted
from crawlplanner.models import Event, TrialResult
from crawlplanner.schemas import EventConfig
from crawlplanner.services.scheduling import EventScheduler, select_top_k
from crawlplanner.services.scheduling import config as search_config


def _result(score):
    config = EventConfig(
        start_address='S', end_address='E',
        start_datetime=dt.datetime(2026, 1, 1, tzinfo=dt.timezone.utc),
        time_per_stop_minutes=30, num_groups=1, num_stops=1,
    )
    return TrialResult(event=Event(config, []), total_time_seconds=score)


def _scheduler(client, seed=1, **kwargs):
    return EventScheduler(client, rng=random.Random(seed), generation_retries=100, formation_retries=200, **kwargs)


def test_select_top_k_keeps_lowest_scores():
    ranked = select_top_k([_result(s) for s in [500, 100, 300, 700, 200]], 3)
    assert [r.total_time_seconds for r in ranked] == [100, 200, 300]
    assert select_top_k([_result(5)], 0) == []


def test_select_top_k_is_stable_for_ties():
    first, second = _result(100), _result(100)
    assert select_top_k([first, second], 2) == [first, second]


@pytest.mark.asyncio
async def test_trial_legs_and_departure_times(event_config, participants, stub_router):
    result = await _scheduler(stub_router).run_trial(event_config, participants, trial=0)
    event = result.event
    start = event_config.start_datetime
    step = dt.timedelta(minutes=event_config.time_per_stop_minutes)

    assert len(stub_router.calls) == event_config.num_groups * (event_config.num_stops + 1)
    for group_no, group in enumerate(event.groups):
        assert len(group.route_legs) == event_config.num_stops + 1
        calls = stub_router.calls[group_no * 4:(group_no + 1) * 4]
        assert calls[0][0] == 'Central Station'
        assert calls[0][2] == start
        for hop in range(1, 3):
            assert calls[hop][0] == group.route[hop - 1].host_address
            assert calls[hop][1] == group.route[hop].host_address
            assert calls[hop][2] == start + hop * step
        # the walk to the finale leaves after the last stop
        assert calls[3][1] == 'Town Square'
        assert calls[3][2] == start + 3 * step

    expected = sum(StubRouter.duration(o, d) for o, d, _ in stub_router.calls)
    assert result.total_time_seconds == expected
    assert result.fallback_legs == 0


@pytest.mark.asyncio
async def test_trial_hosts_and_routes(event_config, participants, stub_router):
    result = await _scheduler(stub_router, seed=4).run_trial(event_config, participants)
    event = result.event
    assert len(event.groups) == 6
    for group_no, group in enumerate(event.groups):
        host = group.get_host()
        assert host is not None and host.can_host
        assert len(group.route) == 3
        assert [event.groups.index(g) for g in group.route] == event.assignment[group_no]
    # the caller's roster keeps its flags
    assert not any(p.is_host for p in participants)


@pytest.mark.asyncio
async def test_failed_legs_become_fallbacks(event_config, participants):
    router = StubRouter(fail={'Town Square'})
    result = await _scheduler(router).run_trial(event_config, participants)
    assert result.fallback_legs == event_config.num_groups
    assert result.flagged
    for group in result.event.groups:
        last = group.route_legs[-1]
        assert last.is_fallback
        assert last.overall_mode == 'UNKNOWN'
        assert last.total_duration_seconds == 0
        assert 'Town Square' in last.failure_reason
    ok_calls = [c for c in router.calls if c[1] != 'Town Square']
    assert result.total_time_seconds == sum(StubRouter.duration(o, d) for o, d, _ in ok_calls)


@pytest.mark.asyncio
async def test_search_ranks_and_keeps_going_after_a_failed_trial(event_config, participants):
    # the very first provider call blows up, which sinks trial 0 only
    router = StubRouter(raise_on_calls={1})
    progress = []

    async def on_progress(ratio, message):
        progress.append((ratio, message))

    outcome = await _scheduler(router, progress_cb=on_progress).search(
        event_config, participants, trials=5, top_k=3, deadline_seconds=None,
    )
    assert outcome.trials_run == 5
    assert outcome.trials_failed == 1
    assert outcome.failures == {'RuntimeError': 1}
    assert len(outcome.ranked) == 3
    scores = [r.total_time_seconds for r in outcome.ranked]
    assert scores == sorted(scores)
    assert progress[0][0] == 0.0
    assert progress[-1] == (1.0, 'Search complete')
    assert outcome.summary()['best_total_seconds'] == scores[0]


@pytest.mark.asyncio
async def test_provider_calls_never_overlap(event_config, participants, stub_router):
    await _scheduler(stub_router).search(event_config, participants, trials=3, top_k=2, deadline_seconds=None)
    assert stub_router.max_in_flight == 1


@pytest.mark.asyncio
async def test_search_with_too_few_addresses_raises(event_config, stub_router):
    people = make_participants(6, 5)
    with pytest.raises(GroupFormationExhausted):
        await _scheduler(stub_router).search(event_config, people, trials=3, top_k=1, deadline_seconds=None)
    assert stub_router.calls == []


@pytest.mark.asyncio
async def test_search_stops_at_deadline(event_config, participants, stub_router):
    outcome = await _scheduler(stub_router).search(event_config, participants, trials=10, top_k=3, deadline_seconds=0)
    assert outcome.trials_run == 0
    assert outcome.ranked == []


@pytest.mark.asyncio
async def test_infeasible_layout_still_produces_flagged_results(participants, stub_router, caplog):
    config = EventConfig(
        start_address='Central Station',
        end_address='Town Square',
        start_datetime=dt.datetime(2026, 11, 7, 18, 0, tzinfo=dt.timezone.utc),
        time_per_stop_minutes=30,
        num_groups=3,
        num_stops=3,
    )
    scheduler = EventScheduler(stub_router, rng=random.Random(0), generation_retries=3, formation_retries=50)
    with caplog.at_level('WARNING', logger='scheduling'):
        outcome = await scheduler.search(config, participants, trials=2, top_k=2, deadline_seconds=None)
    assert len(outcome.ranked) == 2
    assert all(not r.assignment_valid and r.flagged for r in outcome.ranked)
    assert outcome.flagged == 2
    assert any('search.infeasible_constraints' in r.getMessage() for r in caplog.records)


@pytest.mark.asyncio
@pytest.mark.parametrize('kwargs', [{'trials': 0}, {'top_k': 0}, {'trials': -3}])
async def test_search_rejects_non_positive_counts(event_config, participants, stub_router, kwargs):
    params = {'trials': 2, 'top_k': 1, **kwargs}
    with pytest.raises(ValueError):
        await _scheduler(stub_router).search(event_config, participants, deadline_seconds=None, **params)
    assert stub_router.calls == []


@pytest.mark.parametrize('kwargs', [{'generation_retries': 0}, {'formation_retries': 0}])
def test_scheduler_rejects_zero_retries(stub_router, kwargs):
    with pytest.raises(ValueError):
        EventScheduler(stub_router, rng=random.Random(0), **kwargs)


def test_scheduler_defaults_come_from_environment(stub_router, monkeypatch):
    monkeypatch.setenv('CRAWL_GENERATION_RETRIES', '7')
    search_config.generation_retries.cache_clear()
    try:
        scheduler = EventScheduler(stub_router, rng=random.Random(0))
        assert scheduler.generation_retries == 7
    finally:
        search_config.generation_retries.cache_clear()
