"""
FastAPI application for the running crawl planner.
"""
import os

# Load environment variables from local .env before other imports that read os.getenv
try:
    from pathlib import Path

    from dotenv import load_dotenv  # type: ignore
    _ENV_PATH = Path(__file__).resolve().parent / '.env'
    if _ENV_PATH.exists():
        load_dotenv(dotenv_path=_ENV_PATH, override=False)
except ImportError:
    pass
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .errors import GroupFormationExhausted, InvalidConfiguration
from .logging_config import configure_logging
from .routers import planning
from .services.cache import GeoRouteCache
from .services.persistence import EventStore
from .services.routing import RoutingClient
from .services.scheduling import SearchJobs
from .settings import Settings, get_settings
from .store import KeyValueStore, build_store

logger = logging.getLogger(__name__)


def create_app(
    store: Optional[KeyValueStore] = None,
    client=None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """Build the application; ``store`` and ``client`` may be injected (tests)."""
    configure_logging()
    settings = settings or get_settings()
    store = store or build_store(settings)
    cache = GeoRouteCache(store)
    owns_client = client is None
    if client is None:
        client = RoutingClient(cache, settings)

    @asynccontextmanager
    async def _lifespan(app: FastAPI):
        # startup
        await store.connect()
        try:
            yield
        finally:
            # shutdown
            if owns_client:
                await client.aclose()
            await store.close()

    app = FastAPI(
        title=settings.app_name,
        debug=settings.debug,
        version="1.0.0",
        root_path=os.getenv('BACKEND_ROOT_PATH', ''),
        lifespan=_lifespan,
    )
    app.state.settings = settings
    app.state.store = store
    app.state.cache = cache
    app.state.client = client
    app.state.event_store = EventStore(store)
    app.state.jobs = SearchJobs(store, client)

    origins = [o.strip() for o in settings.allowed_origins.split(',') if o.strip()] or ['*']
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_methods=['*'],
        allow_headers=['*'],
    )

    @app.exception_handler(GroupFormationExhausted)
    async def _formation_handler(request: Request, exc: GroupFormationExhausted):
        return JSONResponse(status_code=422, content={'detail': str(exc)})

    @app.exception_handler(InvalidConfiguration)
    async def _config_handler(request: Request, exc: InvalidConfiguration):
        return JSONResponse(status_code=422, content={'detail': str(exc)})

    @app.get('/health')
    async def health():
        return {'status': 'ok'}

    app.include_router(planning.router, prefix='/planner', tags=['planner'])
    return app


app = create_app()
