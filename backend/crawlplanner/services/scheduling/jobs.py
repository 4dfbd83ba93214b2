from __future__ import annotations

import asyncio
import datetime as dt
import json
import logging
import random
import uuid
from typing import Any, Dict, List, Optional

from ...errors import GroupFormationExhausted
from ...schemas import EventConfig, Participant
from ...store import KeyValueStore
from ..persistence import EventStore
from .scheduler import EventScheduler, RouteProvider

logger = logging.getLogger('jobs')

JOB_PREFIX = 'job:'
_STATUS_IN_PROGRESS = {'queued', 'running'}


def _now() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


class SearchJobs:
    """Background best-of-K searches with progress persisted in the store.

    Only one search runs at a time, since every search shares the rate
    limited routing provider.
    """

    def __init__(self, store: KeyValueStore, client: RouteProvider) -> None:
        self._store = store
        self._events = EventStore(store)
        self._client = client
        self._active: Dict[str, asyncio.Task[Any]] = {}

    async def _load(self, job_id: str) -> Optional[Dict[str, Any]]:
        raw = await self._store.get(JOB_PREFIX + job_id)
        return json.loads(raw) if raw else None

    async def _save(self, doc: Dict[str, Any]) -> None:
        await self._store.set(JOB_PREFIX + doc['id'], json.dumps(doc, ensure_ascii=False))

    async def _update(self, job_id: str, **fields: Any) -> None:
        doc = await self._load(job_id) or {'id': job_id}
        doc.update(fields)
        doc['updated_at'] = _now()
        await self._save(doc)

    async def enqueue(
        self,
        config: EventConfig,
        participants: List[Participant],
        *,
        trials: Optional[int] = None,
        top_k: Optional[int] = None,
        seed: Optional[int] = None,
    ) -> Dict[str, Any]:
        for job in await self.list(limit=50):
            if job.get('status') in _STATUS_IN_PROGRESS and job['id'] in self._active:
                return {'was_enqueued': False, 'job': job}

        job_id = uuid.uuid4().hex
        now = _now()
        doc: Dict[str, Any] = {
            'id': job_id,
            'status': 'queued',
            'progress': 0.0,
            'message': 'Waiting to start',
            'trials': trials,
            'top_k': top_k,
            'seed': seed,
            'summary': None,
            'error': None,
            'created_at': now,
            'updated_at': now,
            'started_at': None,
            'completed_at': None,
        }
        await self._save(doc)

        loop = asyncio.get_running_loop()
        task = loop.create_task(self._run(job_id, config, participants, trials, top_k, seed))
        self._active[job_id] = task

        def _cleanup(_task: asyncio.Task[Any]) -> None:
            self._active.pop(job_id, None)

        task.add_done_callback(_cleanup)
        return {'was_enqueued': True, 'job': doc}

    async def get(self, job_id: str) -> Optional[Dict[str, Any]]:
        return await self._load(job_id)

    async def list(self, *, limit: int = 10) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        for key in await self._store.keys(JOB_PREFIX):
            raw = await self._store.get(key)
            if raw:
                items.append(json.loads(raw))
        items.sort(key=lambda doc: doc.get('created_at') or '', reverse=True)
        return items[:limit]

    async def wait(self, job_id: str) -> None:
        task = self._active.get(job_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def cancel(self, job_id: str) -> bool:
        task = self._active.get(job_id)
        if task is None:
            return False
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        # a task cancelled before its first step never reaches _run's handler
        doc = await self._load(job_id)
        if doc and doc.get('status') in _STATUS_IN_PROGRESS:
            await self._update(job_id, status='cancelled', progress=1.0, message='Cancelled', completed_at=_now())
        return True

    async def _run(
        self,
        job_id: str,
        config: EventConfig,
        participants: List[Participant],
        trials: Optional[int],
        top_k: Optional[int],
        seed: Optional[int],
    ) -> None:
        try:
            await self._update(job_id, status='running', progress=0.0, message='Initializing...', started_at=_now())

            async def _progress_callback(ratio: float, message: Optional[str] = None) -> None:
                await self._update(job_id, progress=min(ratio, 0.99), message=message or f'{int(round(ratio * 100))}% complete')

            scheduler = EventScheduler(
                self._client,
                rng=random.Random(seed) if seed is not None else None,
                progress_cb=_progress_callback,
            )
            outcome = await scheduler.search(config, participants, trials=trials, top_k=top_k)
            await self._events.save_results(outcome.ranked)
            await self._update(
                job_id,
                status='completed',
                progress=1.0,
                message='Completed',
                summary=outcome.summary(),
                completed_at=_now(),
            )
        except asyncio.CancelledError:
            await self._update(job_id, status='cancelled', progress=1.0, message='Cancelled', completed_at=_now())
            raise
        except GroupFormationExhausted as exc:
            logger.error('Search job infeasible: %s', exc, extra={'job_id': job_id})
            await self._update(
                job_id,
                status='failed',
                progress=1.0,
                message='Participants cannot be split into the requested groups',
                error=str(exc),
                completed_at=_now(),
            )
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception('Search job failed: %s', exc, extra={'job_id': job_id})
            await self._update(
                job_id,
                status='failed',
                progress=1.0,
                message='Search failed',
                error=str(exc),
                completed_at=_now(),
            )
