"""
Tournament operations on top of a store and a broadcast channel.

Every mutating operation runs load -> controller -> save under a
per-tournament lock, so two round generations for the same tournament can
never both succeed and a second score for the same match fails cleanly.
"""
import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from americano.broadcast import BroadcastChannel, EventKind, NullChannel
from americano.calculator import calculate_tournament_stats
from americano.controller import BlockReason, TournamentController
from americano.exceptions import InvalidTournament, TournamentNotFound
from americano.history import PairingState
from americano.models import Match, Player, Round, Tournament, generate_id
from americano.store import TournamentStore

logger = logging.getLogger(__name__)


def parse_player_names(raw: Sequence[str]) -> List[str]:
    return [n.strip() for n in raw if n and n.strip()]


class TournamentService:

    def __init__(self, store: TournamentStore, channel: Optional[BroadcastChannel] = None,
                 auto_advance: bool = False):
        self.store = store
        self.channel = channel or NullChannel()
        self.auto_advance = auto_advance
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock(self, tournament_id: str) -> asyncio.Lock:
        return self._locks.setdefault(tournament_id, asyncio.Lock())

    async def get(self, tournament_id: str) -> Tournament:
        t = await self.store.load(tournament_id)
        if t is None:
            raise TournamentNotFound(tournament_id)
        return t

    async def list(self) -> List[Tournament]:
        return await self.store.list()

    async def _mutate(self, tournament_id: str, action: Callable[[TournamentController], Any]):
        lock = self._lock(tournament_id)
        async with lock:
            try:
                t = await self.get(tournament_id)
            except TournamentNotFound:
                if self._locks.get(tournament_id) is lock:
                    del self._locks[tournament_id]
                raise
            result = action(TournamentController(t))
            await self.store.save(t)
        return t, result

    async def _publish(self, tournament_id: str, event: EventKind, payload: Dict[str, Any]) -> None:
        try:
            await self.channel.publish(tournament_id, event, payload)
        except Exception:
            logger.warning("Broadcast of %s for %s failed", event.value, tournament_id, exc_info=True)

    async def _publish_leaderboard(self, t: Tournament) -> None:
        await self._publish(t.id, EventKind.LEADERBOARD_UPDATED,
                            {"leaderboard": TournamentController(t).leaderboard()})

    # -- Lifecycle ---------------------------------------------------------

    async def create_tournament(
        self,
        name: str,
        player_names: Sequence[str],
        number_of_courts: int = 1,
        points_per_match: int = 24,
        target_duration: int = 105,
        description: str = "",
        max_rounds: Optional[int] = None,
    ) -> Tournament:
        names = parse_player_names(player_names)
        if len(names) < 4:
            raise InvalidTournament("at least 4 players are needed")
        if number_of_courts < 1:
            raise InvalidTournament("at least 1 court is needed")
        if points_per_match < 1:
            raise InvalidTournament("points per match must be positive")

        if max_rounds is None:
            stats = calculate_tournament_stats(len(names), number_of_courts, points_per_match,
                                               target_duration)
            max_rounds = stats.total_rounds

        players = [Player(id=generate_id(), name=n) for n in names]
        t = Tournament(
            id=generate_id(),
            name=name.strip(),
            description=description,
            points_per_match=points_per_match,
            number_of_courts=number_of_courts,
            max_rounds=max_rounds,
            target_duration=target_duration,
            players=players,
            pairing_state=PairingState.for_players(p.id for p in players),
        )
        t.log_action("TOURNAMENT_CREATED", {
            "players": names,
            "settings": {"points_per_match": points_per_match,
                         "number_of_courts": number_of_courts,
                         "target_duration": target_duration,
                         "max_rounds": max_rounds},
        })
        await self.store.save(t)
        logger.info("Created tournament %s (%d players, %d courts, %d rounds)",
                    t.id, len(players), number_of_courts, max_rounds)
        return t

    async def delete(self, tournament_id: str) -> bool:
        async with self._lock(tournament_id):
            deleted = await self.store.delete(tournament_id)
        self._locks.pop(tournament_id, None)
        if deleted:
            logger.info("Deleted tournament %s", tournament_id)
        return deleted

    async def generate_next_round(self, tournament_id: str) -> Tuple[Tournament, Optional[Round], Optional[BlockReason]]:
        def action(ctl: TournamentController):
            status = ctl.tournament.status
            reason = ctl.block_reason()
            return ctl.generate_next_round(), reason, status

        t, (rnd, reason, status) = await self._mutate(tournament_id, action)
        if rnd is not None:
            await self._publish(t.id, EventKind.NEW_ROUND, {"round_number": rnd.round_number,
                                                            "round": rnd.to_dict()})
        elif t.status != status:
            await self._publish(t.id, EventKind.TOURNAMENT_UPDATED, {"status": t.status.value})
        return t, rnd, reason

    async def record_score(self, tournament_id: str, match_id: str,
                           team1_score: int, team2_score: int) -> Tuple[Tournament, Match]:
        t, match = await self._mutate(
            tournament_id, lambda ctl: ctl.record_score(match_id, team1_score, team2_score))

        await self._publish(t.id, EventKind.SCORE_UPDATED, {
            "match_id": match.id, "team1_score": team1_score, "team2_score": team2_score,
        })
        await self._publish(t.id, EventKind.MATCH_COMPLETED, {"match_id": match.id})
        rnd, _ = t.find_match(match.id)
        if rnd.completed:
            await self._publish(t.id, EventKind.ROUND_COMPLETED, {"round_number": rnd.round_number})
        await self._publish_leaderboard(t)

        if rnd.completed and self.auto_advance and TournamentController(t).should_auto_generate_next_round():
            t, _, _ = await self.generate_next_round(t.id)
        return t, match

    async def reset_with_new_players(self, tournament_id: str, player_names: Sequence[str]) -> Tournament:
        names = parse_player_names(player_names)
        players = [Player(id=generate_id(), name=n) for n in names]
        t, _ = await self._mutate(tournament_id, lambda ctl: ctl.reset_with_new_players(players))
        await self._publish(t.id, EventKind.TOURNAMENT_UPDATED, {"status": t.status.value,
                                                                 "reset": True})
        await self._publish_leaderboard(t)
        return t

    # -- Admin -------------------------------------------------------------

    async def add_player(self, tournament_id: str, name: str) -> Tuple[Tournament, Player]:
        t, player = await self._mutate(tournament_id, lambda ctl: ctl.add_player(name))
        await self._publish(t.id, EventKind.PLAYER_JOINED, {"player_name": player.name})
        await self._publish_leaderboard(t)
        return t, player

    async def remove_player(self, tournament_id: str, player_id: str) -> Tuple[Tournament, Player]:
        t, player = await self._mutate(tournament_id, lambda ctl: ctl.remove_player(player_id))
        await self._publish(t.id, EventKind.PLAYER_LEFT, {"player_name": player.name})
        await self._publish_leaderboard(t)
        return t, player

    async def adjust_player_points(self, tournament_id: str, player_id: str,
                                   total_points: int) -> Tuple[Tournament, Player]:
        t, player = await self._mutate(
            tournament_id, lambda ctl: ctl.adjust_player_points(player_id, total_points))
        await self._publish_leaderboard(t)
        return t, player

    async def finish(self, tournament_id: str) -> Tournament:
        t, _ = await self._mutate(tournament_id, lambda ctl: ctl.finish())
        await self._publish(t.id, EventKind.TOURNAMENT_UPDATED, {"status": t.status.value})
        return t
