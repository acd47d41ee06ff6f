"""
FastAPI application for the player voting service.

Serves the public voting API, the admin API, a health check, Prometheus
metrics and, for every other GET path, the static front-end.
"""
import logging
import secrets
import sys
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Header, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

from .config import Settings
from .database import Database
from .errors import ConfigurationError, InternalError, NotFound, Unauthorized, VotingError
from .ledger import VoteLedger
from .models import (
    AddPlayerRequest,
    CheckVoteResponse,
    ErrorResponse,
    HealthResponse,
    LoginRequest,
    PlayerResponse,
    PlayersResponse,
    ResetVoteRequest,
    SuccessResponse,
    UpdateImageRequest,
    VoteRequest,
)
from .registry import CandidateRegistry

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger(__name__)

# Prometheus metrics
votes_cast = Counter(
    "votes_cast_total",
    "Total number of votes recorded"
)
vote_errors = Counter(
    "vote_errors_total",
    "Total number of rejected vote submissions",
    ["error_type"]
)
vote_resets = Counter(
    "vote_resets_total",
    "Total number of votes withdrawn by their device"
)
request_duration = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint", "status"]
)


def configure_logging(settings: Settings):
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)


# Dependencies

def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_ledger(request: Request) -> VoteLedger:
    return request.app.state.ledger


def get_registry(request: Request) -> CandidateRegistry:
    return request.app.state.registry


def password_matches(settings: Settings, password: Optional[str]) -> bool:
    if not settings.ADMIN_PASSWORD or not password:
        return False
    return secrets.compare_digest(password.encode(), settings.ADMIN_PASSWORD.encode())


async def require_admin(
    settings: Settings = Depends(get_settings),
    x_admin_password: Optional[str] = Header(default=None),
):
    """Gate admin routes on X-Admin-Password when ADMIN_REQUIRE_AUTH is on."""
    if settings.ADMIN_REQUIRE_AUTH and not password_matches(settings, x_admin_password):
        raise Unauthorized()


# Exception handlers

async def voting_error_handler(request: Request, exc: VotingError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = f"Invalid request: {errors[0]['msg']}" if errors else "Invalid request"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "error": message},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=InternalError().to_dict(),
    )


router = APIRouter()
admin_router = APIRouter(prefix="/api/admin", tags=["admin"])
error_responses = {
    400: {"model": ErrorResponse, "description": "Missing or invalid fields"},
    500: {"model": ErrorResponse, "description": "Internal server error"},
}


@router.get("/api/players", response_model=PlayersResponse)
async def get_players(registry: CandidateRegistry = Depends(get_registry)):
    """List all players ordered by id with the total number of votes."""
    players, total_votes = await registry.list_players()
    return PlayersResponse(players=players, totalVotes=total_votes)


@router.get(
    "/api/check-vote/{device_id}",
    response_model=CheckVoteResponse,
    response_model_exclude_none=True,
)
async def check_vote(device_id: str, ledger: VoteLedger = Depends(get_ledger)):
    has_voted, player_id = await ledger.check_vote(device_id)
    return CheckVoteResponse(hasVoted=has_voted, playerId=player_id)


@router.post(
    "/api/vote",
    response_model=SuccessResponse,
    responses={**error_responses, 404: {"model": ErrorResponse, "description": "Player not found"}},
)
async def submit_vote(vote: VoteRequest, ledger: VoteLedger = Depends(get_ledger)):
    """
    Cast a vote for a player.

    - **playerId**: Player identifier
    - **deviceId**: Device token; each device may hold one vote at a time

    A device that already voted gets a 400 with ``alreadyVoted: true`` and
    the player it voted for.
    """
    try:
        await ledger.cast_vote(vote.playerId, vote.deviceId)
    except VotingError as e:
        vote_errors.labels(error_type=type(e).__name__).inc()
        logger.info(f"Vote rejected ({type(e).__name__}): device={vote.deviceId}, player={vote.playerId}")
        raise

    votes_cast.inc()
    return SuccessResponse()


@router.post("/api/reset-vote", response_model=SuccessResponse, responses=error_responses)
async def reset_vote(body: ResetVoteRequest, ledger: VoteLedger = Depends(get_ledger)):
    """Withdraw this device's vote so it can vote again."""
    player_id = await ledger.reset_vote(body.deviceId)
    if player_id is not None:
        vote_resets.inc()
    return SuccessResponse()


@admin_router.post(
    "/login",
    response_model=SuccessResponse,
    responses={401: {"model": ErrorResponse, "description": "Invalid password"}},
)
async def admin_login(body: LoginRequest, settings: Settings = Depends(get_settings)):
    if not password_matches(settings, body.password):
        logger.warning("Failed admin login attempt")
        raise Unauthorized()
    logger.info("Admin logged in")
    return SuccessResponse()


@admin_router.post(
    "/reset-all",
    response_model=SuccessResponse,
    dependencies=[Depends(require_admin)],
)
async def admin_reset_all(ledger: VoteLedger = Depends(get_ledger)):
    """Delete every vote and set every tally to zero. Irreversible."""
    await ledger.reset_all()
    return SuccessResponse()


@admin_router.post(
    "/add-player",
    response_model=PlayerResponse,
    responses=error_responses,
    dependencies=[Depends(require_admin)],
)
async def admin_add_player(body: AddPlayerRequest,
                           registry: CandidateRegistry = Depends(get_registry)):
    player = await registry.add_player(body.name, body.team, body.image, body.position)
    return PlayerResponse(player=player)


@admin_router.delete(
    "/remove-player/{player_id}",
    response_model=SuccessResponse,
    responses={404: {"model": ErrorResponse, "description": "Player not found"}},
    dependencies=[Depends(require_admin)],
)
async def admin_remove_player(player_id: int,
                              registry: CandidateRegistry = Depends(get_registry)):
    await registry.remove_player(player_id)
    return SuccessResponse()


@admin_router.put(
    "/update-image/{player_id}",
    response_model=PlayerResponse,
    responses={404: {"model": ErrorResponse, "description": "Player not found"}},
    dependencies=[Depends(require_admin)],
)
async def admin_update_image(player_id: int, body: UpdateImageRequest,
                             registry: CandidateRegistry = Depends(get_registry)):
    player = await registry.update_image(player_id, body.image)
    return PlayerResponse(player=player)


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"model": HealthResponse, "description": "Service unhealthy"}},
)
async def health_check(request: Request):
    """Report whether the service can reach PostgreSQL."""
    try:
        healthy = await request.app.state.store.check_health()
    except Exception as e:
        logger.error(f"PostgreSQL health check error: {e}")
        healthy = False

    response = HealthResponse(
        status="healthy" if healthy else "unhealthy",
        services={"postgresql": "connected" if healthy else "disconnected"},
        timestamp=datetime.now(timezone.utc),
    )
    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=response.model_dump(mode="json"),
    )


@router.get("/metrics", include_in_schema=False)
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


frontend_router = APIRouter()


@frontend_router.get("/{full_path:path}", include_in_schema=False)
async def serve_frontend(full_path: str, settings: Settings = Depends(get_settings)):
    """Serve a static file, falling back to index.html for client-side routes."""
    if full_path == "api" or full_path.startswith("api/"):
        raise NotFound("Not found")

    static_dir = Path(settings.STATIC_DIR).resolve()
    if full_path:
        target = (static_dir / full_path).resolve()
        if target.is_relative_to(static_dir) and target.is_file():
            return FileResponse(target)

    index = static_dir / "index.html"
    if index.is_file():
        return FileResponse(index)
    raise NotFound("Not found")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database pool and prepare the schema for an app-owned store."""
    settings: Settings = app.state.settings
    store = app.state.store
    logger.info(f"Starting {settings.SERVICE_NAME} service...")

    if app.state.owns_store:
        try:
            await store.initialize()
            await store.init_schema(settings.SEED_PLAYERS)
        except ConfigurationError:
            raise
        except Exception as e:
            # Only missing configuration is fatal; the store reconnects on first use
            logger.error(f"Database initialization failed, continuing startup: {e}")

    logger.info(f"{settings.SERVICE_NAME} started successfully")

    yield

    logger.info(f"Shutting down {settings.SERVICE_NAME} service...")
    if app.state.owns_store:
        await store.close()


def create_app(settings: Optional[Settings] = None, store=None) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Settings to use; read from the environment when omitted
        store: Storage backend; a PostgreSQL ``Database`` when omitted, which
            requires DATABASE_URL

    Raises:
        ConfigurationError: no store given and DATABASE_URL is not set
    """
    if settings is None:
        settings = Settings()
    configure_logging(settings)

    owns_store = store is None
    if owns_store:
        if not settings.DATABASE_URL:
            logger.critical(f"Cannot start {settings.SERVICE_NAME}: DATABASE_URL is not set")
            raise ConfigurationError("DATABASE_URL is not set")
        store = Database(settings)

    app = FastAPI(
        title="Player Voting API",
        description="One vote per device for a fixed list of players",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = store
    app.state.owns_store = owns_store
    app.state.ledger = VoteLedger(store)
    app.state.registry = CandidateRegistry(store)

    # Middleware added later wraps middleware added earlier. Unexpected errors
    # become JSON 500s here, inside CORS, so they still carry CORS headers.
    @app.middleware("http")
    async def unhandled_error_middleware(request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            return await unhandled_error_handler(request, e)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=settings.CORS_ALLOW_METHODS,
        allow_headers=settings.CORS_ALLOW_HEADERS,
    )

    @app.middleware("http")
    async def prometheus_middleware(request: Request, call_next):
        """Middleware to track request duration per route template."""
        start = time.perf_counter()
        response = await call_next(request)
        route = request.scope.get("route")
        request_duration.labels(
            method=request.method,
            endpoint=getattr(route, "path", "unmatched"),
            status=response.status_code,
        ).observe(time.perf_counter() - start)
        return response

    app.add_exception_handler(VotingError, voting_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    app.include_router(router)
    app.include_router(admin_router)
    app.include_router(frontend_router)

    return app


def run():
    """Console entry point: validate configuration and serve with uvicorn."""
    import uvicorn

    settings = Settings()
    configure_logging(settings)

    if not settings.DATABASE_URL:
        logger.critical("DATABASE_URL is not set, refusing to start")
        sys.exit(1)

    uvicorn.run(
        "player_vote.main:create_app",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
