"""
HTTP surface of the portal (FastAPI).

create_app() wires the reference set, store, quota tracker and daily reset
scheduler into ``app.state`` during the lifespan startup phase and tears the
scheduler down on shutdown. Route handlers receive those objects through
dependencies rather than module globals.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, File, Header, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ._version import __version__
from .auth import Principal, principal_from_header
from .config import PortalConfig, load_config
from .exceptions import (
    AuthorizationError,
    FileTooLargeError,
    ForbiddenError,
    QuotaExceededError,
    StorageUnavailableError,
    SubmissionError,
)
from .leaderboard import DEFAULT_LIMIT, build_leaderboard
from .quota import DailyResetScheduler, QuotaTracker
from .reference import ReferenceSet, load_reference_set, upload_format
from .store import ScoreStore, build_store, wait_for_store
from .workflow import SubmissionWorkflow

logger = logging.getLogger("fraudboard.api")

MAX_PAGE_LIMIT = 500


def _parse_limit(raw: Optional[str], default: int) -> int:
    try:
        limit = int(raw) if raw is not None else default
    except ValueError:
        limit = default
    if limit < 1:
        return default
    return min(limit, MAX_PAGE_LIMIT)


def _error_body(error: str, exc: Exception, config: PortalConfig) -> dict:
    body = {'error': error}
    if config.is_dev:
        body['message'] = f"{type(exc).__name__}: {exc}"
    return body


# ============================================================================
# Dependencies
# ============================================================================

def get_config(request: Request) -> PortalConfig:
    return request.app.state.config


def get_reference(request: Request) -> ReferenceSet:
    return request.app.state.reference


def get_workflow(request: Request) -> SubmissionWorkflow:
    return request.app.state.workflow


def get_principal(request: Request, authorization: Optional[str] = Header(None)) -> Principal:
    config = request.app.state.config
    return principal_from_header(authorization, config.jwt_secret, config.jwt_algorithm)


# ============================================================================
# Application factory
# ============================================================================

def create_app(config: Optional[PortalConfig] = None,
               reference: Optional[ReferenceSet] = None,
               store: Optional[ScoreStore] = None,
               start_scheduler: bool = True) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        config: Settings; read from the environment when None
        reference: Pre-loaded reference set; loaded from
            ``config.reference_dataset`` at startup when None
        store: Score store; built from config (and waited for) when None
        start_scheduler: Run the midnight counter reset thread
    """
    config = config or load_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app_store = store
        if app_store is None:
            app_store = build_store(config)
            wait_for_store(app_store, config.store_connect_retries, config.store_connect_delay)
        app_reference = reference if reference is not None else load_reference_set(config.reference_dataset)

        tracker = QuotaTracker(app_store, config.max_daily_uploads, tz=config.tzinfo)
        app.state.config = config
        app.state.store = app_store
        app.state.reference = app_reference
        app.state.quota = tracker
        app.state.workflow = SubmissionWorkflow(
            app_reference, app_store, tracker, max_file_size=config.max_file_size
        )
        scheduler = DailyResetScheduler(tracker)
        app.state.scheduler = scheduler
        if start_scheduler:
            scheduler.start()
        logger.info(f"Portal ready: {len(app_reference)} reference rows, "
                    f"{config.max_daily_uploads} uploads/day")
        try:
            yield
        finally:
            scheduler.stop()
            logger.info("Daily reset scheduler stopped")

    app = FastAPI(title="Fraud Detection Datathon Portal", version=__version__, lifespan=lifespan)
    app.state.config = config
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )
    _register_error_handlers(app, config)
    _register_routes(app)
    return app


def _register_error_handlers(app: FastAPI, config: PortalConfig) -> None:

    @app.exception_handler(FileTooLargeError)
    async def too_large(request: Request, exc: FileTooLargeError):
        return JSONResponse(status_code=413, content={'error': f"{exc.message}. {exc.details}"})

    @app.exception_handler(SubmissionError)
    async def invalid_submission(request: Request, exc: SubmissionError):
        return JSONResponse(status_code=422, content={'error': exc.message, 'details': exc.details})

    @app.exception_handler(QuotaExceededError)
    async def quota_exceeded(request: Request, exc: QuotaExceededError):
        return JSONResponse(status_code=429, content={
            'error': str(exc),
            'nextReset': exc.next_reset.isoformat(),
        })

    @app.exception_handler(AuthorizationError)
    async def unauthorized(request: Request, exc: AuthorizationError):
        return JSONResponse(status_code=401, content={'error': str(exc)})

    @app.exception_handler(ForbiddenError)
    async def forbidden(request: Request, exc: ForbiddenError):
        return JSONResponse(status_code=403, content={'error': 'Forbidden: Invalid token'})

    @app.exception_handler(StorageUnavailableError)
    async def storage_unavailable(request: Request, exc: StorageUnavailableError):
        logger.error(f"Storage error on {request.url.path}: {exc}")
        return JSONResponse(status_code=503, content=_error_body('Storage unavailable', exc, config))

    @app.exception_handler(Exception)
    async def unhandled(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.url.path}")
        return JSONResponse(status_code=500, content=_error_body('Internal server error', exc, config))


def _register_routes(app: FastAPI) -> None:

    @app.post("/upload")
    def upload(file: Optional[UploadFile] = File(None),
               principal: Principal = Depends(get_principal),
               workflow: SubmissionWorkflow = Depends(get_workflow)):
        if file is None:
            return JSONResponse(status_code=400, content={'error': 'No file uploaded'})
        filename = file.filename or ''
        if file.content_type != 'text/csv' and not filename.lower().endswith('.csv'):
            return JSONResponse(status_code=400, content={'error': 'Only CSV files are allowed'})
        file.file.seek(0)
        result = workflow.submit(principal, file.file)
        return result.to_dict()

    @app.get("/leaderboard")
    def leaderboard(limit: Optional[str] = None,
                    workflow: SubmissionWorkflow = Depends(get_workflow)):
        entries = build_leaderboard(workflow.store.list_scores(), _parse_limit(limit, DEFAULT_LIMIT))
        return {
            'leaderboard': [e.to_dict() for e in entries],
            'updated_at': datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/scores")
    def scores(limit: Optional[str] = None,
               principal: Principal = Depends(get_principal),
               workflow: SubmissionWorkflow = Depends(get_workflow)):
        owner = principal.owner_id
        history = workflow.score_history(owner, _parse_limit(limit, 0))
        return {
            'scores': [
                {'f1': s.f1, 'accuracy': s.accuracy, 'timestamp': s.timestamp.isoformat()}
                for s in history
            ],
            'stats': workflow.user_stats(owner).to_dict(),
        }

    @app.get("/row-count")
    def row_count(reference: ReferenceSet = Depends(get_reference)):
        return {'rowCount': len(reference)}

    @app.get("/upload-format")
    def expected_format(reference: ReferenceSet = Depends(get_reference)):
        return upload_format(reference)

    @app.get("/verify-token")
    def verify_token(principal: Principal = Depends(get_principal)):
        return {
            'authenticated': True,
            'user': {'username': principal.username, 'isAdmin': principal.is_admin},
        }

    @app.get("/health")
    def health(request: Request):
        store = getattr(request.app.state, 'store', None)
        try:
            connected = bool(store and store.ping())
        except Exception as e:
            logger.warning(f"Health check ping failed: {e}")
            connected = False
        return {
            'status': 'OK',
            'version': __version__,
            'database': 'connected' if connected else 'disconnected',
        }
