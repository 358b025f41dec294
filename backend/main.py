"""FastAPI application for the tweet raffle backend.

Exposes an endpoint that fetches a tweet's likers or retweeters from the
Twitter API and draws seeded winners and backups from them, plus a
health check for uptime monitors.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Annotated

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from backend.config import get_settings
from backend.models import (
    ErrorResponse,
    HealthResponse,
    ProcessRaffleRequest,
    ProcessRaffleResponse,
    RaffleKind,
    WinnerEntry,
)
from backend.twitter_client import (
    InvalidTweetURLError,
    RateLimitError,
    TwitterAPIError,
    TwitterClient,
    extract_tweet_id,
    fetch_participants,
)
from backend.winner_selector import (
    InsufficientParticipantsError,
    InvalidSeedError,
    NoParticipantsError,
    resolve_seed,
    seed_value,
    select_winners,
)

logger = logging.getLogger(__name__)

SERVICE_NAME = "Tweet Raffle Backend"
SERVICE_VERSION = "2.0.0"

# Server-side bounds on the draw size.
MIN_WINNERS, MAX_WINNERS = 1, 50
MIN_BACKUPS, MAX_BACKUPS = 0, 20

COMMENTS_COMING_SOON = "Comments raffle feature is coming soon! Please use Likes or Retweets for now."
GENERIC_FAILURE = "Failed to process raffle. Please try again later."


class RaffleHTTPException(HTTPException):
    """HTTPException that also carries an optional diagnostic detail string."""

    def __init__(self, status_code: int, error: str, details: str | None = None) -> None:
        super().__init__(status_code=status_code, detail=error)
        self.details = details


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-wide startup and shutdown resources.

    Creates the shared Twitter client on startup and closes its connection
    pool on shutdown.
    """
    settings = get_settings()
    app.state.twitter_client = TwitterClient.from_settings(settings)
    logger.info("Twitter client ready (base_url=%s, max_pages=%d)", settings.twitter_api_base_url, settings.max_pages)
    try:
        yield
    finally:
        app.state.twitter_client.close()
        logger.info("Closed Twitter client")


app = FastAPI(
    title="Tweet Raffle",
    description="Twitter giveaway winner picker API",
    version=SERVICE_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(get_settings().cors_allowed_origins),
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "ngrok-skip-browser-warning"],
)


@app.middleware("http")
async def skip_ngrok_browser_warning(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Tag every response so ngrok tunnels serve it without an interstitial page."""
    response = await call_next(request)
    response.headers["ngrok-skip-browser-warning"] = "true"
    return response


def get_twitter_client(request: Request) -> TwitterClient:
    """Provide the application's shared Twitter client to request handlers."""
    client: TwitterClient = request.app.state.twitter_client
    return client


# ---------------------------------------------------------------------------
# Error rendering
# ---------------------------------------------------------------------------


def _error_response(status_code: int, error: str, details: str | None = None) -> JSONResponse:
    body = ErrorResponse(error=error, details=details)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


@app.exception_handler(StarletteHTTPException)  # type: ignore[untyped-decorator]
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render every HTTPException with the API's ``{success, error, details}`` shape."""
    return _error_response(exc.status_code, str(exc.detail), getattr(exc, "details", None))


@app.exception_handler(RequestValidationError)  # type: ignore[untyped-decorator]
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed bodies and wrongly-typed fields as a 400."""
    fields = ", ".join(".".join(str(part) for part in error["loc"][1:]) or "body" for error in exc.errors())
    return _error_response(400, "Invalid request body", f"Invalid value for: {fields}")


# ---------------------------------------------------------------------------
# Raffle processing
# ---------------------------------------------------------------------------


def _is_missing(value: object) -> bool:
    return value is None or value == ""


def _validate_counts(winner_count: int, backup_count: int) -> None:
    if not MIN_WINNERS <= winner_count <= MAX_WINNERS:
        raise RaffleHTTPException(400, f"winnerCount must be between {MIN_WINNERS} and {MAX_WINNERS}")
    if not MIN_BACKUPS <= backup_count <= MAX_BACKUPS:
        raise RaffleHTTPException(400, f"backupCount must be between {MIN_BACKUPS} and {MAX_BACKUPS}")


@app.post("/api/process-raffle", response_model=ProcessRaffleResponse)  # type: ignore[untyped-decorator]
async def api_process_raffle(
    request: ProcessRaffleRequest,
    client: Annotated[TwitterClient, Depends(get_twitter_client)],
) -> ProcessRaffleResponse:
    """Fetch a tweet's participants and draw seeded winners and backups.

    All input validation happens before the Twitter API is contacted.

    Raises:
        HTTPException 400: For missing or invalid parameters, an
            unsupported raffle type, or too few participants.
        HTTPException 404: If the tweet has no participants of the requested kind.
        HTTPException 429: If the Twitter API rate-limits the request.
        HTTPException 500: For any other upstream or internal failure.
    """
    if any(
        _is_missing(value)
        for value in (request.raffle_id, request.tweet_url, request.raffle_type, request.winner_count)
    ):
        raise RaffleHTTPException(400, "Missing required parameters")

    # Presence was checked above; narrow the optional types.
    raffle_id = request.raffle_id
    tweet_url = str(request.tweet_url)
    winner_count = int(request.winner_count)  # type: ignore[arg-type]
    backup_count = request.backup_count or 0

    try:
        tweet_id = extract_tweet_id(tweet_url)
    except InvalidTweetURLError as exc:
        raise RaffleHTTPException(400, "Invalid tweet URL", str(exc)) from exc

    try:
        kind = RaffleKind(int(str(request.raffle_type).strip()))
    except ValueError as exc:
        raise RaffleHTTPException(400, "Invalid raffle type") from exc

    if kind is RaffleKind.COMMENTS:
        raise RaffleHTTPException(400, COMMENTS_COMING_SOON)

    _validate_counts(winner_count, backup_count)

    seed = resolve_seed(request.transaction_hash)
    try:
        seed_value(seed)
    except InvalidSeedError as exc:
        raise RaffleHTTPException(400, "Invalid transaction hash", str(exc)) from exc

    logger.info(
        "Processing raffle %s for tweet %s: type=%s, winners=%d, backups=%d",
        raffle_id,
        tweet_id,
        kind.label,
        winner_count,
        backup_count,
    )

    try:
        participants = await asyncio.to_thread(fetch_participants, tweet_id, kind, client)
    except RateLimitError as exc:
        logger.warning("Rate limited while processing raffle %s: %s", raffle_id, exc)
        raise RaffleHTTPException(429, str(exc)) from exc
    except TwitterAPIError as exc:
        logger.exception("Twitter API error while processing raffle %s", raffle_id)
        raise RaffleHTTPException(500, GENERIC_FAILURE, str(exc)) from exc
    except Exception as exc:
        logger.exception("Unexpected error while fetching participants for raffle %s", raffle_id)
        raise RaffleHTTPException(500, GENERIC_FAILURE, str(exc)) from exc

    try:
        result = select_winners(participants, seed, winner_count, backup_count, kind=kind)
        response = ProcessRaffleResponse(
            raffle_id=raffle_id,  # type: ignore[arg-type]
            tweet_url=tweet_url,
            total_participants=len(result.all_participants),
            raffle_type=kind.label,
            winners=[WinnerEntry.from_participant(p) for p in result.winners],
            backups=[WinnerEntry.from_participant(p) for p in result.backups],
            all_participants=[p.username for p in result.all_participants],
            seed=result.seed,
        )
    except NoParticipantsError as exc:
        raise RaffleHTTPException(404, str(exc)) from exc
    except InsufficientParticipantsError as exc:
        raise RaffleHTTPException(400, str(exc)) from exc
    except Exception as exc:
        logger.exception("Unexpected error while selecting winners for raffle %s", raffle_id)
        raise RaffleHTTPException(500, GENERIC_FAILURE, str(exc)) from exc

    logger.info(
        "Raffle %s: selected %d winner(s) and %d backup(s) from %d participant(s) using seed value %d",
        raffle_id,
        len(result.winners),
        len(result.backups),
        len(result.all_participants),
        result.seed_value,
    )
    return response


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@app.get("/api/health", response_model=HealthResponse)  # type: ignore[untyped-decorator]
async def api_health() -> HealthResponse:
    """Report service liveness; touches no external services."""
    return HealthResponse(
        timestamp=datetime.now(UTC).isoformat(),
        service=SERVICE_NAME,
        version=SERVICE_VERSION,
        environment=get_settings().environment,
    )


def run() -> None:
    """Serve the application with uvicorn using the configured host and port."""
    settings = get_settings()
    uvicorn.run("backend.main:app", host=settings.host, port=settings.port, log_level=settings.log_level)
