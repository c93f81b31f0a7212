import os

# Tests never talk to PostgreSQL
os.environ["AMERICANO_STORE"] = "memory"

import pytest

from americano.history import PairingState
from americano.models import Player, Tournament


def make_players(n):
    return [Player(id=f"p{i}", name=f"Player {i}") for i in range(1, n + 1)]


def make_tournament(n_players=8, courts=2, points_per_match=24, max_rounds=10):
    players = make_players(n_players)
    return Tournament(
        id="t1",
        name="Friday Americano",
        points_per_match=points_per_match,
        number_of_courts=courts,
        max_rounds=max_rounds,
        players=players,
        pairing_state=PairingState.for_players(p.id for p in players),
    )


class RecordingChannel:
    def __init__(self):
        self.events = []

    async def publish(self, tournament_id, event, payload):
        self.events.append((tournament_id, event, payload))

    def kinds(self):
        return [e[1] for e in self.events]


@pytest.fixture
def tournament():
    return make_tournament()


@pytest.fixture
def channel():
    return RecordingChannel()
