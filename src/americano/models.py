from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from americano.history import PAIRING_STATE_VERSION, PairingState, rebuild_pairing_state

ADMIN_HISTORY_LIMIT = 100


def generate_id():
    import uuid
    return str(uuid.uuid4())[:8]


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class MatchStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class TournamentStatus(str, Enum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"


@dataclass
class Player:
    id: str
    name: str
    total_points: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "total_points": self.total_points}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Player":
        return cls(id=data["id"], name=data["name"], total_points=int(data.get("total_points", 0)))


@dataclass
class Match:
    id: str
    player1_id: str  # team 1
    player2_id: str  # team 1
    player3_id: str  # team 2
    player4_id: str  # team 2
    team1_score: Optional[int] = None
    team2_score: Optional[int] = None
    court_number: Optional[int] = None
    status: MatchStatus = MatchStatus.PENDING

    @property
    def players(self) -> Tuple[str, str, str, str]:
        return (self.player1_id, self.player2_id, self.player3_id, self.player4_id)

    @property
    def team1(self) -> Tuple[str, str]:
        return (self.player1_id, self.player2_id)

    @property
    def team2(self) -> Tuple[str, str]:
        return (self.player3_id, self.player4_id)

    @property
    def completed(self) -> bool:
        return self.status == MatchStatus.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "player1_id": self.player1_id,
            "player2_id": self.player2_id,
            "player3_id": self.player3_id,
            "player4_id": self.player4_id,
            "team1_score": self.team1_score,
            "team2_score": self.team2_score,
            "court_number": self.court_number,
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Match":
        return cls(
            id=data["id"],
            player1_id=data["player1_id"],
            player2_id=data["player2_id"],
            player3_id=data["player3_id"],
            player4_id=data["player4_id"],
            team1_score=data.get("team1_score"),
            team2_score=data.get("team2_score"),
            court_number=data.get("court_number"),
            status=MatchStatus(data.get("status", MatchStatus.PENDING)),
        )


@dataclass
class Round:
    id: str
    round_number: int
    matches: List[Match] = field(default_factory=list)
    status: MatchStatus = MatchStatus.PENDING

    @property
    def completed(self) -> bool:
        return self.status == MatchStatus.COMPLETED

    def refresh_status(self) -> None:
        if self.matches and all(m.completed for m in self.matches):
            self.status = MatchStatus.COMPLETED
        elif any(m.completed for m in self.matches):
            self.status = MatchStatus.IN_PROGRESS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "round_number": self.round_number,
            "matches": [m.to_dict() for m in self.matches],
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Round":
        return cls(
            id=data["id"],
            round_number=int(data["round_number"]),
            matches=[Match.from_dict(m) for m in data.get("matches", [])],
            status=MatchStatus(data.get("status", MatchStatus.PENDING)),
        )


@dataclass
class Tournament:
    id: str
    name: str
    points_per_match: int = 24
    number_of_courts: int = 1
    max_rounds: int = 0
    description: str = ""
    target_duration: int = 105  # minutes
    players: List[Player] = field(default_factory=list)
    rounds: List[Round] = field(default_factory=list)
    pairing_state: PairingState = field(default_factory=PairingState)
    status: TournamentStatus = TournamentStatus.DRAFT
    admin_history: List[Dict[str, Any]] = field(default_factory=list)
    created_at: str = field(default_factory=utcnow)
    last_updated: str = field(default_factory=utcnow)

    def player(self, pid: str) -> Optional[Player]:
        return next((p for p in self.players if p.id == pid), None)

    def find_match(self, match_id: str) -> Tuple[Optional[Round], Optional[Match]]:
        for rnd in self.rounds:
            for m in rnd.matches:
                if m.id == match_id:
                    return rnd, m
        return None, None

    def log_action(self, action: str, details: Dict[str, Any]) -> None:
        self.last_updated = utcnow()
        self.admin_history.append({"timestamp": self.last_updated, "action": action, "details": details})
        if len(self.admin_history) > ADMIN_HISTORY_LIMIT:
            self.admin_history = self.admin_history[-ADMIN_HISTORY_LIMIT:]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "points_per_match": self.points_per_match,
            "number_of_courts": self.number_of_courts,
            "max_rounds": self.max_rounds,
            "target_duration": self.target_duration,
            "status": self.status.value,
            "players": [p.to_dict() for p in self.players],
            "rounds": [r.to_dict() for r in self.rounds],
            "pairing_state": self.pairing_state.to_dict(),
            "admin_history": list(self.admin_history),
            "created_at": self.created_at,
            "last_updated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Tournament":
        players = [Player.from_dict(p) for p in data.get("players", [])]
        rounds = [Round.from_dict(r) for r in data.get("rounds", [])]
        raw_state = data.get("pairing_state")
        if not raw_state or int(raw_state.get("version", 0)) < PAIRING_STATE_VERSION:
            state = rebuild_pairing_state([p.id for p in players], rounds)
        else:
            state = PairingState.from_dict(raw_state)
        return cls(
            id=data["id"],
            name=data["name"],
            description=data.get("description", ""),
            points_per_match=int(data.get("points_per_match", 24)),
            number_of_courts=int(data.get("number_of_courts", 1)),
            max_rounds=int(data.get("max_rounds", 0)),
            target_duration=int(data.get("target_duration", 105)),
            status=TournamentStatus(data.get("status", TournamentStatus.DRAFT)),
            players=players,
            rounds=rounds,
            pairing_state=state,
            admin_history=list(data.get("admin_history", [])),
            created_at=data.get("created_at") or utcnow(),
            last_updated=data.get("last_updated") or utcnow(),
        )
