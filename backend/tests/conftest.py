"""Shared fixtures for tweet raffle backend tests."""

import pytest

from backend.models import Participant


@pytest.fixture()
def sample_participants() -> list[Participant]:
    """Return a representative pool of five participants in fetch order."""
    return [
        Participant(id="1001", username="alice", name="Alice"),
        Participant(id="1002", username="bob", name="Bob"),
        Participant(id="1003", username="charlie"),
        Participant(id="1004", username="diana", name="Diana"),
        Participant(id="1005", username="eve"),
    ]
