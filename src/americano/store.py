"""
Durable storage of Tournament aggregates, keyed by tournament id.

Stores hand out detached copies: mutating a loaded Tournament has no effect
until it is passed back to save().
"""
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from americano.models import Tournament


class TournamentStore(ABC):

    @abstractmethod
    async def load(self, tournament_id: str) -> Optional[Tournament]:
        ...

    @abstractmethod
    async def save(self, tournament: Tournament) -> None:
        ...

    @abstractmethod
    async def delete(self, tournament_id: str) -> bool:
        ...

    @abstractmethod
    async def list(self) -> List[Tournament]:
        ...


class MemoryTournamentStore(TournamentStore):
    """Process-local store; keeps the serialized form so loads never share state."""

    def __init__(self):
        self._data: Dict[str, dict] = {}

    async def load(self, tournament_id: str) -> Optional[Tournament]:
        raw = self._data.get(tournament_id)
        return Tournament.from_dict(raw) if raw is not None else None

    async def save(self, tournament: Tournament) -> None:
        self._data[tournament.id] = tournament.to_dict()

    async def delete(self, tournament_id: str) -> bool:
        return self._data.pop(tournament_id, None) is not None

    async def list(self) -> List[Tournament]:
        return [Tournament.from_dict(raw) for raw in self._data.values()]
