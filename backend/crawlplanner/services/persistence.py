"""Saved planner state: event configuration, participant roster, ranked results.

Each piece lives under its own key as a JSON document, so it can be exported
or replaced independently of the others.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from ..models import TrialResult
from ..schemas import EventConfig, ExportBundle, Participant
from ..store import KeyValueStore

logger = logging.getLogger(__name__)

CONFIG_KEY = 'planner:config'
PARTICIPANTS_KEY = 'planner:participants'
RESULTS_KEY = 'planner:results'


def dump_results(results: List[TrialResult]) -> str:
    return json.dumps([r.to_dict() for r in results], ensure_ascii=False)


def load_results(text: Optional[str]) -> List[TrialResult]:
    if not text:
        return []
    data = json.loads(text)
    if not isinstance(data, list):
        raise ValueError('results document must be a JSON list')
    return [TrialResult.from_dict(item) for item in data]


class EventStore:
    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    async def get_config(self) -> Optional[EventConfig]:
        raw = await self._store.get(CONFIG_KEY)
        return EventConfig.model_validate_json(raw) if raw else None

    async def save_config(self, config: EventConfig) -> None:
        await self._store.set(CONFIG_KEY, config.model_dump_json())

    async def list_participants(self) -> List[Participant]:
        raw = await self._store.get(PARTICIPANTS_KEY)
        if not raw:
            return []
        try:
            items = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning('participants document is not valid JSON; starting with an empty roster')
            return []
        return [Participant.model_validate(item) for item in items if isinstance(item, dict)]

    async def save_participants(self, participants: List[Participant]) -> None:
        await self._store.set(PARTICIPANTS_KEY, json.dumps([p.model_dump(mode='json') for p in participants], ensure_ascii=False))

    async def add_participant(self, participant: Participant) -> List[Participant]:
        participants = await self.list_participants()
        participants.append(participant)
        await self.save_participants(participants)
        return participants

    async def remove_participant(self, index: int) -> List[Participant]:
        participants = await self.list_participants()
        if not 0 <= index < len(participants):
            raise IndexError(f'no participant at position {index}')
        participants.pop(index)
        await self.save_participants(participants)
        return participants

    async def get_results(self) -> List[TrialResult]:
        return load_results(await self._store.get(RESULTS_KEY))

    async def save_results(self, results: List[TrialResult]) -> None:
        await self._store.set(RESULTS_KEY, dump_results(results))

    async def export_bundle(self) -> ExportBundle:
        config = await self.get_config()
        results_raw = await self._store.get(RESULTS_KEY)
        return ExportBundle(
            config=config.model_dump(mode='json') if config else None,
            participants=[p.model_dump(mode='json') for p in await self.list_participants()],
            results=json.loads(results_raw) if results_raw else [],
        )

    async def import_bundle(self, bundle: ExportBundle) -> Dict[str, Any]:
        # parse everything first so a broken bundle leaves the saved state alone
        config = EventConfig.model_validate(bundle.config) if bundle.config is not None else None
        participants = [Participant.model_validate(p) for p in bundle.participants]
        results = [TrialResult.from_dict(r) for r in bundle.results]
        if config is not None:
            await self.save_config(config)
        await self.save_participants(participants)
        await self.save_results(results)
        return {
            'config': bundle.config is not None,
            'participants': len(participants),
            'results': len(results),
        }
