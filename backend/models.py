"""Pydantic models for request/response types used by the tweet raffle API.

Wire field names are camelCase to match the frontend; Python attributes
stay snake_case through an alias generator.
"""

from enum import IntEnum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

TWITTER_PROFILE_URL = "https://twitter.com/{username}"


class RaffleKind(IntEnum):
    """Participation signal used to build the candidate pool."""

    LIKES = 0
    RETWEETS = 1
    COMMENTS = 2

    @property
    def label(self) -> str:
        """Human-readable name shown in raffle results."""
        return _RAFFLE_KIND_LABELS[self]


_RAFFLE_KIND_LABELS = {
    RaffleKind.LIKES: "Likes",
    RaffleKind.RETWEETS: "Retweets",
    RaffleKind.COMMENTS: "Comments (soon)",
}


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Participant(BaseModel):
    """A Twitter account that liked or retweeted the raffle tweet.

    Materialized fresh from the Twitter API for every request and never
    persisted.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Stable Twitter user id")
    username: str = Field(description="Twitter handle (without @)")
    name: str | None = Field(default=None, description="Display name, if the API returned one")

    @property
    def twitter_url(self) -> str:
        return TWITTER_PROFILE_URL.format(username=self.username)


class ProcessRaffleRequest(_CamelModel):
    """Request body for the /api/process-raffle endpoint.

    Every field is optional here so that a missing field is reported by the
    handler as a ``400`` with the API's own error shape instead of a
    framework validation error.
    """

    raffle_id: str | int | None = Field(default=None, description="Opaque correlation id, echoed back")
    tweet_url: str | None = Field(default=None, description="Permalink of the raffle tweet")
    raffle_type: int | str | None = Field(
        default=None, description="0=Likes, 1=Retweets, 2=Comments (unsupported); numeric strings accepted"
    )
    winner_count: int | None = Field(default=None, description="How many winners to pick (1-50)")
    backup_count: int | None = Field(default=None, description="How many backups to pick (0-20), default 0")
    transaction_hash: str | None = Field(default=None, description="Seed for the draw, usually a tx hash")


class WinnerEntry(_CamelModel):
    """A selected winner or backup as returned to the client."""

    id: str
    username: str
    twitter_url: str

    @classmethod
    def from_participant(cls, participant: Participant) -> "WinnerEntry":
        return cls(id=participant.id, username=participant.username, twitter_url=participant.twitter_url)


class SelectionResult(BaseModel):
    """Outcome of a seeded draw over a participant list.

    ``winners`` and ``backups`` are disjoint slices of the same seeded
    ordering; ``all_participants`` is the input list in fetch order.
    """

    model_config = ConfigDict(frozen=True)

    winners: list[Participant]
    backups: list[Participant]
    all_participants: list[Participant]
    seed: str = Field(description="Seed string the ordering was derived from")
    seed_value: int = Field(description="Integer parsed from the last 8 characters of the seed")


class ProcessRaffleResponse(_CamelModel):
    """Successful response body returned by /api/process-raffle."""

    success: bool = True
    raffle_id: str | int
    tweet_url: str
    total_participants: int = Field(ge=0)
    raffle_type: str = Field(description="Human-readable raffle kind label")
    winners: list[WinnerEntry]
    backups: list[WinnerEntry]
    all_participants: list[str] = Field(description="Usernames of every fetched participant, for transparency")
    seed: str = Field(description="Seed used for the draw, so the result can be re-derived")


class ErrorResponse(BaseModel):
    """Error body shared by every endpoint."""

    success: bool = False
    error: str
    details: str | None = None


class HealthResponse(BaseModel):
    """Response body returned by /api/health."""

    status: str = "OK"
    timestamp: str
    service: str
    version: str
    environment: str
