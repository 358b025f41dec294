"""Seeded winner selection for tweet raffles.

Orders the participant pool by a SHA-256 key derived from each
participant id and the raffle seed, then slices winners and backups off
the front. The same ids, seed and counts always produce the same draw,
so anyone holding the seed (usually the fee transaction hash) can
re-derive the result.

This is a deterministic hash sort, not a verifiable random function.
"""

import hashlib
import time
from collections.abc import Sequence

from backend.models import Participant, RaffleKind, SelectionResult

_SEED_SUFFIX_LENGTH = 8
_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")

_NO_PARTICIPANTS_MESSAGES = {
    RaffleKind.LIKES: "No users found who liked this tweet. The tweet might be private or have no likes.",
    RaffleKind.RETWEETS: "No users found who retweeted this tweet. The tweet might be private or have no retweets.",
    RaffleKind.COMMENTS: (
        "No users found who commented on this tweet. The tweet might have no comments, "
        "or its comments might be private."
    ),
}


class RaffleSelectionError(Exception):
    """Base exception for draws that cannot be performed."""


class NoParticipantsError(RaffleSelectionError):
    """Raised when the participant pool is empty."""

    def __init__(self, kind: RaffleKind | None = None) -> None:
        self.kind = kind
        super().__init__(_NO_PARTICIPANTS_MESSAGES.get(kind, "No participants found for this tweet"))


class InsufficientParticipantsError(RaffleSelectionError):
    """Raised when there are fewer participants than requested winners.

    Attributes:
        found: Size of the participant pool.
        needed: Number of winners requested.
    """

    def __init__(self, found: int, needed: int) -> None:
        self.found = found
        self.needed = needed
        super().__init__(f"Not enough participants. Found {found}, need {needed}")


class InvalidSeedError(RaffleSelectionError):
    """Raised when the seed has no hexadecimal digits to derive an ordering from."""


def resolve_seed(seed: str | None) -> str:
    """Return ``seed``, or the current time in milliseconds if it is empty."""
    if seed:
        return seed
    return str(time.time_ns() // 1_000_000)


def seed_value(seed: str) -> int:
    """Parse the integer that drives the ordering from a seed string.

    Takes the last 8 characters of ``seed`` and reads them the way a
    base-16 ``parseInt`` does: leading whitespace is skipped, an optional
    sign and ``0x`` prefix are accepted, then the longest run of hex
    digits is read. ``"0x...abcd1234"`` and ``"abcd1234"`` give the same
    value, and ``"-abc"`` gives ``-0xabc``.

    Raises:
        InvalidSeedError: If no hex digit follows the optional sign and prefix.
    """
    suffix = seed[-_SEED_SUFFIX_LENGTH:].lstrip()
    sign = 1
    if suffix[:1] in ("+", "-"):
        sign = -1 if suffix[0] == "-" else 1
        suffix = suffix[1:]
    if suffix[:2].lower() == "0x":
        suffix = suffix[2:]

    end = 0
    while end < len(suffix) and suffix[end] in _HEX_DIGITS:
        end += 1
    if end == 0:
        raise InvalidSeedError(f"Seed {seed!r} does not end in hexadecimal digits")
    return sign * int(suffix[:end], 16)


def sort_key(participant_id: str, value: int) -> int:
    """Return the 32-bit ordering key for one participant."""
    digest = hashlib.sha256(f"{participant_id}{value}".encode()).hexdigest()
    return int(digest[:8], 16)


def order_participants(participants: Sequence[Participant], value: int) -> list[Participant]:
    """Return ``participants`` sorted ascending by their seeded key.

    ``sorted`` is stable, so key ties keep fetch order.
    """
    return sorted(participants, key=lambda participant: sort_key(participant.id, value))


def select_winners(
    participants: Sequence[Participant],
    seed: str | None,
    winner_count: int,
    backup_count: int = 0,
    kind: RaffleKind | None = None,
) -> SelectionResult:
    """Draw winners and backups from the participant pool.

    Args:
        participants: Candidate pool in fetch order.
        seed: Seed string; the current time is used if it is empty.
        winner_count: How many winners to select.
        backup_count: How many backups to select after the winners. Fewer
            are returned if the pool runs out.
        kind: Raffle kind, used only to word the empty-pool error.

    Returns:
        A SelectionResult whose winners and backups are disjoint.

    Raises:
        NoParticipantsError: If ``participants`` is empty.
        InsufficientParticipantsError: If the pool is smaller than ``winner_count``.
        InvalidSeedError: If no ordering can be derived from ``seed``.
    """
    if not participants:
        raise NoParticipantsError(kind)
    if len(participants) < winner_count:
        raise InsufficientParticipantsError(found=len(participants), needed=winner_count)

    resolved = resolve_seed(seed)
    value = seed_value(resolved)
    ordered = order_participants(participants, value)

    winners_end = min(max(winner_count, 0), len(ordered))
    backups_end = min(winners_end + max(backup_count, 0), len(ordered))

    return SelectionResult(
        winners=ordered[:winners_end],
        backups=ordered[winners_end:backups_end],
        all_participants=list(participants),
        seed=resolved,
        seed_value=value,
    )
