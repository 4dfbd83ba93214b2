from __future__ import annotations

import logging
import random
from typing import Iterable, List, Optional

from ...errors import GroupFormationExhausted
from ...models import Group
from ...schemas import Participant

logger = logging.getLogger('scheduling')


def _deal_round_robin(participants: List[Participant], num_groups: int) -> List[Group]:
    groups = [Group() for _ in range(num_groups)]
    for index, participant in enumerate(participants):
        groups[index % num_groups].members.append(participant)
    return groups


def form_groups(
    participants: Iterable[Participant],
    num_groups: int,
    rng: Optional[random.Random] = None,
    *,
    max_attempts: int = 1000,
) -> List[Group]:
    """Shuffle participants into ``num_groups`` groups that each contain a possible host.

    Members are copies, so host flags set on one trial's groups never leak into
    the caller's roster. Raises ``GroupFormationExhausted`` when no grouping is
    found within ``max_attempts`` shuffles.
    """
    if num_groups < 1:
        raise ValueError('num_groups must be at least 1')
    rng = rng or random.Random()
    pool = [p.model_copy(update={'is_host': False}) for p in participants]
    eligible = sum(1 for p in pool if p.can_host)

    rng.shuffle(pool)
    for attempt in range(1, max_attempts + 1):
        groups = _deal_round_robin(pool, num_groups)
        if all(any(m.can_host for m in g.members) for g in groups):
            logger.debug('groups.formed groups=%d participants=%d attempts=%d', num_groups, len(pool), attempt)
            return groups
        rng.shuffle(pool)
    raise GroupFormationExhausted(max_attempts, num_groups, eligible)


def set_random_host(group: Group, rng: Optional[random.Random] = None) -> Optional[Participant]:
    rng = rng or random.Random()
    candidates = [m for m in group.members if m.can_host]
    if not candidates:
        return None
    for member in group.members:
        member.is_host = False
    host = rng.choice(candidates)
    host.is_host = True
    group.host = host
    return host


def set_random_hosts(groups: Iterable[Group], rng: Optional[random.Random] = None) -> None:
    rng = rng or random.Random()
    for group in groups:
        set_random_host(group, rng)
