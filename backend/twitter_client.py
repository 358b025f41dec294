"""Twitter API v2 participant fetcher.

Resolves a raffle tweet into the accounts that liked or retweeted it.
Upstream failures always surface as exceptions; the fetcher never
substitutes placeholder participants.
"""

import logging
import math
import re
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
from pydantic import ValidationError

from backend.config import DEFAULT_TWITTER_API_BASE_URL, Settings
from backend.models import Participant, RaffleKind

logger = logging.getLogger(__name__)

# Twitter caps liking_users / retweeted_by pages at 100 users.
_PAGE_SIZE = 100
_USER_FIELDS = "id,username,name"

# Used when a 429 response carries no usable x-rate-limit-reset header.
_FALLBACK_RATE_LIMIT_WINDOW = timedelta(minutes=15)

# Tried in order; the second pattern accepts a bare tweet id.
_TWEET_ID_PATTERNS = (
    re.compile(r"(?:twitter\.com|x\.com)/\w+/status/(\d+)"),
    re.compile(r"(\d{15,20})"),
)


class TwitterAPIError(Exception):
    """Base exception for failures talking to the Twitter API.

    Covers non-2xx responses, transport errors and timeouts, and
    responses that cannot be decoded.
    """


class InvalidTweetURLError(TwitterAPIError):
    """Raised when no tweet id can be extracted from the given URL.

    Provide a URL in the format: https://x.com/<user>/status/<id>
    """


class RateLimitError(TwitterAPIError):
    """Raised when the Twitter API rejects a request with HTTP 429.

    Attributes:
        reset_at: UTC time at which the rate-limit window resets.
    """

    def __init__(self, reset_at: datetime, *, now: datetime | None = None) -> None:
        self.reset_at = reset_at
        now = now or datetime.now(UTC)
        wait_minutes = max(1, math.ceil((reset_at - now).total_seconds() / 60))
        super().__init__(
            f"Twitter API rate limit exceeded. Please wait {wait_minutes} minutes and try again. "
            f"Reset time: {reset_at:%H:%M:%S} UTC"
        )


class UnsupportedRaffleKindError(Exception):
    """Raised when participants are requested for a kind that cannot be fetched."""


def extract_tweet_id(url: str) -> str:
    """Extract the numeric tweet id from a tweet permalink.

    Args:
        url: A twitter.com or x.com status URL, or a bare 15-20 digit id.

    Returns:
        The tweet id as a string of digits.

    Raises:
        InvalidTweetURLError: If no tweet id can be found in ``url``.
    """
    for pattern in _TWEET_ID_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    raise InvalidTweetURLError(
        f"Could not extract tweet id from URL: {url!r}. Expected format: https://x.com/<user>/status/<id>"
    )


def _reset_time_from_header(value: str | None, now: datetime) -> datetime:
    """Convert an ``x-rate-limit-reset`` header (epoch seconds) to a datetime."""
    if value:
        try:
            return datetime.fromtimestamp(int(value), tz=UTC)
        except (ValueError, OverflowError, OSError):
            logger.warning("Ignoring unparseable x-rate-limit-reset header: %r", value)
    return now + _FALLBACK_RATE_LIMIT_WINDOW


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("detail") or body.get("title") or body.get("errors") or body)
    return str(body)


class TwitterClient:
    """Thin synchronous client for the Twitter API v2 user-lookup endpoints.

    One instance is shared for the lifetime of the application and handed
    to request handlers as a dependency. It holds no per-request state.
    """

    def __init__(
        self,
        bearer_token: str,
        *,
        base_url: str = DEFAULT_TWITTER_API_BASE_URL,
        timeout: float = 10.0,
        max_pages: int = 1,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._max_pages = max_pages
        self._client = httpx.Client(
            base_url=base_url,
            timeout=timeout,
            headers={"Authorization": f"Bearer {bearer_token}"},
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "TwitterClient":
        if not settings.twitter_bearer_token:
            logger.warning("TWITTER_BEARER_TOKEN is not set; Twitter requests will be rejected")
        return cls(
            settings.twitter_bearer_token,
            base_url=settings.twitter_api_base_url,
            timeout=settings.request_timeout,
            max_pages=settings.max_pages,
        )

    def __enter__(self) -> "TwitterClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def liking_users(self, tweet_id: str) -> list[Participant]:
        """Return the accounts that liked ``tweet_id``."""
        return self._fetch_users(f"/tweets/{tweet_id}/liking_users")

    def retweeted_by(self, tweet_id: str) -> list[Participant]:
        """Return the accounts that retweeted ``tweet_id``."""
        return self._fetch_users(f"/tweets/{tweet_id}/retweeted_by")

    def _get(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        """Issue a GET request and return the decoded JSON body.

        Raises:
            RateLimitError: If the API responds with HTTP 429.
            TwitterAPIError: For transport failures, timeouts, other
                non-2xx statuses, or a body that is not a JSON object.
        """
        try:
            response = self._client.get(path, params=params)
        except httpx.HTTPError as exc:
            raise TwitterAPIError(f"Request to Twitter API failed: {exc}") from exc

        if response.status_code == 429:
            reset_at = _reset_time_from_header(response.headers.get("x-rate-limit-reset"), datetime.now(UTC))
            raise RateLimitError(reset_at)
        if response.is_error:
            raise TwitterAPIError(f"Twitter API returned HTTP {response.status_code}: {_error_detail(response)}")

        try:
            body = response.json()
        except ValueError as exc:
            raise TwitterAPIError("Twitter API returned a response that is not valid JSON") from exc
        if not isinstance(body, dict):
            raise TwitterAPIError("Twitter API returned an unexpected response shape")
        return body

    def _fetch_users(self, path: str) -> list[Participant]:
        """Collect users from ``path``, following pagination up to ``max_pages``.

        Users are de-duplicated by id, keeping the first occurrence, so the
        result preserves the order the API returned them in.
        """
        participants: dict[str, Participant] = {}
        params: dict[str, Any] = {"max_results": _PAGE_SIZE, "user.fields": _USER_FIELDS}

        for page in range(1, self._max_pages + 1):
            body = self._get(path, params)

            for user in body.get("data") or []:
                try:
                    participant = Participant.model_validate(user)
                except ValidationError as exc:
                    raise TwitterAPIError(f"Twitter API returned a malformed user record: {user!r}") from exc
                participants.setdefault(participant.id, participant)

            next_token = (body.get("meta") or {}).get("next_token")
            if not next_token:
                break
            if page == self._max_pages:
                logger.info("Stopping after %d page(s) of %s; more results are available", page, path)
                break
            params = {**params, "pagination_token": next_token}

        return list(participants.values())


def fetch_participants(tweet_id: str, kind: RaffleKind, client: TwitterClient) -> list[Participant]:
    """Fetch the candidate pool for a raffle.

    This is the entry point used by the API endpoint. It performs the
    outbound calls for one raffle kind and does no retries or caching.

    Args:
        tweet_id: Numeric id of the raffle tweet.
        kind: Which engagement signal to collect.
        client: Twitter client used for the outbound calls.

    Returns:
        Participants in the order the API returned them (possibly empty).

    Raises:
        UnsupportedRaffleKindError: If ``kind`` is ``RaffleKind.COMMENTS``.
        RateLimitError: If the Twitter API rate-limits the request.
        TwitterAPIError: For any other upstream failure.
    """
    if kind is RaffleKind.LIKES:
        logger.info("Fetching likes for tweet %s", tweet_id)
        participants = client.liking_users(tweet_id)
    elif kind is RaffleKind.RETWEETS:
        logger.info("Fetching retweets for tweet %s", tweet_id)
        participants = client.retweeted_by(tweet_id)
    else:
        raise UnsupportedRaffleKindError(f"Fetching participants for {kind.label} raffles is not supported")

    logger.info("Fetched %d %s participant(s) for tweet %s", len(participants), kind.label.lower(), tweet_id)
    return participants
