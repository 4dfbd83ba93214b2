from typing import List, Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import PlainTextResponse

from ..errors import InvalidConfiguration
from ..schemas import EventConfig, ExportBundle, Itinerary, Participant, SearchRequest
from ..services.scheduling import SearchJobs, build_itinerary

######### Router / Endpoints #########

# Planner router (mounted under /planner in main.py)
router = APIRouter()


def _services(request: Request):
    return request.app.state


@router.get('/config')
async def get_config(request: Request):
    config = await _services(request).event_store.get_config()
    if config is None:
        raise HTTPException(status_code=404, detail='event not configured')
    return config


@router.put('/config')
async def put_config(request: Request, config: EventConfig):
    await _services(request).event_store.save_config(config)
    return config


@router.get('/participants')
async def list_participants(request: Request) -> List[Participant]:
    return await _services(request).event_store.list_participants()


@router.post('/participants', status_code=201)
async def add_participant(request: Request, participant: Participant) -> List[Participant]:
    return await _services(request).event_store.add_participant(participant)


@router.delete('/participants/{index}')
async def remove_participant(request: Request, index: int) -> List[Participant]:
    try:
        return await _services(request).event_store.remove_participant(index)
    except IndexError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.post('/search', status_code=202)
async def start_search(request: Request, payload: Optional[SearchRequest] = None):
    payload = payload or SearchRequest()
    services = _services(request)
    config = await services.event_store.get_config()
    if config is None:
        raise HTTPException(status_code=422, detail='event not configured')
    participants = await services.event_store.list_participants()
    eligible = sum(1 for p in participants if p.can_host)
    if eligible < config.num_groups:
        raise HTTPException(
            status_code=422,
            detail=f'{config.num_groups} groups need at least {config.num_groups} participants with an address (have {eligible})',
        )
    jobs: SearchJobs = services.jobs
    return await jobs.enqueue(config, participants, trials=payload.trials, top_k=payload.top_k, seed=payload.seed)


@router.get('/jobs')
async def list_jobs(request: Request, limit: int = 10):
    return await _services(request).jobs.list(limit=limit)


@router.get('/jobs/{job_id}')
async def get_job(request: Request, job_id: str):
    job = await _services(request).jobs.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail='job not found')
    return job


@router.delete('/jobs/{job_id}')
async def cancel_job(request: Request, job_id: str):
    jobs: SearchJobs = _services(request).jobs
    if await jobs.get(job_id) is None:
        raise HTTPException(status_code=404, detail='job not found')
    cancelled = await jobs.cancel(job_id)
    return {'cancelled': cancelled, 'job': await jobs.get(job_id)}


@router.get('/results')
async def get_results(request: Request):
    results = await _services(request).event_store.get_results()
    return [
        {
            'rank': rank,
            'total_time_seconds': result.total_time_seconds,
            'fallback_legs': result.fallback_legs,
            'assignment_valid': result.assignment_valid,
            'flagged': result.flagged,
            'event': result.event.to_dict(),
        }
        for rank, result in enumerate(results, start=1)
    ]


@router.get('/results/{rank}/groups/{group_id}/itinerary')
async def get_itinerary(request: Request, rank: int, group_id: str) -> Itinerary:
    results = await _services(request).event_store.get_results()
    if not 1 <= rank <= len(results):
        raise HTTPException(status_code=404, detail='result not found')
    event = results[rank - 1].event
    group = event.group_by_id(group_id)
    if group is None:
        raise HTTPException(status_code=404, detail='group not found')
    return build_itinerary(event, group)


@router.get('/export')
async def export_bundle(request: Request) -> ExportBundle:
    return await _services(request).event_store.export_bundle()


@router.post('/import')
async def import_bundle(request: Request, bundle: ExportBundle):
    try:
        return await _services(request).event_store.import_bundle(bundle)
    except (ValueError, KeyError, InvalidConfiguration) as exc:
        raise HTTPException(status_code=422, detail=f'invalid bundle: {exc}')


@router.get('/cache/export', response_class=PlainTextResponse)
async def export_cache(request: Request):
    return await _services(request).cache.dump()


@router.post('/cache/import')
async def import_cache(request: Request):
    document = (await request.body()).decode('utf-8')
    try:
        count = await _services(request).cache.load(document)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=f'invalid cache document: {exc}')
    return {'imported': count}
