import logging
from contextlib import asynccontextmanager
from typing import List, Optional
from uuid import uuid4

from asyncpg import Connection
from sqlalchemy import (
    JSON, Column, ForeignKey, Integer, String,
    select,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, relationship

from americano.models import Tournament
from americano.store import TournamentStore
from config import DATABASE_URL

logger = logging.getLogger(__name__)

JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase): pass


class FixedConnection(Connection):
    def _get_unique_id(self, prefix: str) -> str:
        return f'__asyncpg_{prefix}_{uuid4()}__'


def make_engine(url: str = DATABASE_URL):
    connect_args = {}
    if url.startswith("postgresql+asyncpg"):
        connect_args = {
            "statement_cache_size": 0,
            "prepared_statement_cache_size": 0,
            "connection_class": FixedConnection,
        }
    return create_async_engine(url, echo=False, future=True, connect_args=connect_args)


engine = make_engine()

# Фабрика сессий
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False
)


@asynccontextmanager
async def session_scope(factory=AsyncSessionLocal):
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db(bind=engine):
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

#ORM

class TournamentORM(Base):
    __tablename__ = "tournaments"

    id               = Column(String, primary_key=True)
    name             = Column(String, nullable=False)
    description      = Column(String, nullable=False, default="")
    courts           = Column(Integer, nullable=False)
    points_per_match = Column(Integer, nullable=False, default=24)
    max_rounds       = Column(Integer, nullable=False, default=0)
    target_duration  = Column(Integer, nullable=False, default=105)
    status           = Column(String, nullable=False, default="DRAFT")  # DRAFT | ACTIVE | COMPLETED
    pairing_state    = Column(JSONType, nullable=True)
    admin_history    = Column(JSONType, nullable=False, default=list)
    created_at       = Column(String, nullable=False)
    last_updated     = Column(String, nullable=False)

    players = relationship(
        "PlayerORM",
        back_populates="tournament",
        cascade="all, delete-orphan",
        order_by="PlayerORM.position",
        lazy="selectin",
    )
    rounds = relationship(
        "RoundORM",
        back_populates="tournament",
        cascade="all, delete-orphan",
        order_by="RoundORM.round",
        lazy="selectin",
    )


class PlayerORM(Base):
    __tablename__ = "players"

    id            = Column(String, primary_key=True)
    tournament_id = Column(String, ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False)
    position      = Column(Integer, nullable=False, default=0)
    name          = Column(String, nullable=False)
    points        = Column(Integer, nullable=False, default=0)

    tournament = relationship("TournamentORM", back_populates="players")


class RoundORM(Base):
    __tablename__ = "rounds"

    id            = Column(String, primary_key=True)
    tournament_id = Column(String, ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False)
    round         = Column(Integer, nullable=False)
    status        = Column(String, nullable=False, default="PENDING")

    tournament = relationship("TournamentORM", back_populates="rounds")
    matches = relationship(
        "MatchORM",
        back_populates="round_row",
        cascade="all, delete-orphan",
        order_by="MatchORM.position",
        lazy="selectin",
    )


class MatchORM(Base):
    __tablename__ = "matches"

    id            = Column(String, primary_key=True)
    round_id      = Column(String, ForeignKey("rounds.id", ondelete="CASCADE"), nullable=False)
    position      = Column(Integer, nullable=False, default=0)
    court         = Column(Integer, nullable=True)
    team1         = Column(JSONType, nullable=False)   # list[str] -- player ids
    team2         = Column(JSONType, nullable=False)
    score1        = Column(Integer, nullable=True)
    score2        = Column(Integer, nullable=True)
    status        = Column(String, nullable=False, default="PENDING")

    round_row = relationship("RoundORM", back_populates="matches")


def _orm_to_tournament(t_row: TournamentORM) -> Tournament:
    """Convert SQLAlchemy ORM rows into the Tournament aggregate."""
    data = {
        "id": t_row.id,
        "name": t_row.name,
        "description": t_row.description or "",
        "points_per_match": t_row.points_per_match,
        "number_of_courts": t_row.courts,
        "max_rounds": t_row.max_rounds,
        "target_duration": t_row.target_duration,
        "status": t_row.status,
        "players": [
            {"id": p.id, "name": p.name, "total_points": p.points}
            for p in t_row.players
        ],
        "rounds": [
            {
                "id": r.id,
                "round_number": r.round,
                "status": r.status,
                "matches": [
                    {
                        "id": m.id,
                        "player1_id": m.team1[0], "player2_id": m.team1[1],
                        "player3_id": m.team2[0], "player4_id": m.team2[1],
                        "team1_score": m.score1, "team2_score": m.score2,
                        "court_number": m.court,
                        "status": m.status,
                    }
                    for m in r.matches
                ],
            }
            for r in t_row.rounds
        ],
        "pairing_state": t_row.pairing_state,
        "admin_history": t_row.admin_history or [],
        "created_at": t_row.created_at,
        "last_updated": t_row.last_updated,
    }
    # A row without pairing state is migrated by Tournament.from_dict
    return Tournament.from_dict(data)


def _tournament_to_orm(t: Tournament) -> TournamentORM:
    return TournamentORM(
        id=t.id, name=t.name, description=t.description,
        courts=t.number_of_courts, points_per_match=t.points_per_match,
        max_rounds=t.max_rounds, target_duration=t.target_duration,
        status=t.status.value,
        pairing_state=t.pairing_state.to_dict(),
        admin_history=list(t.admin_history),
        created_at=t.created_at, last_updated=t.last_updated,
        players=[
            PlayerORM(id=p.id, tournament_id=t.id, position=i, name=p.name, points=p.total_points)
            for i, p in enumerate(t.players)
        ],
        rounds=[
            RoundORM(
                id=r.id, tournament_id=t.id, round=r.round_number, status=r.status.value,
                matches=[
                    MatchORM(
                        id=m.id, round_id=r.id, position=i, court=m.court_number,
                        team1=list(m.team1), team2=list(m.team2),
                        score1=m.team1_score, score2=m.team2_score,
                        status=m.status.value,
                    )
                    for i, m in enumerate(r.matches)
                ],
            )
            for r in t.rounds
        ],
    )


class SqlTournamentStore(TournamentStore):

    def __init__(self, session_factory=AsyncSessionLocal):
        self.session_factory = session_factory

    async def load(self, tournament_id: str) -> Optional[Tournament]:
        async with session_scope(self.session_factory) as session:
            row = await session.get(TournamentORM, tournament_id)
            return _orm_to_tournament(row) if row else None

    async def save(self, tournament: Tournament) -> None:
        async with session_scope(self.session_factory) as session:
            await session.merge(_tournament_to_orm(tournament))

    async def delete(self, tournament_id: str) -> bool:
        async with session_scope(self.session_factory) as session:
            row = await session.get(TournamentORM, tournament_id)
            if not row:
                return False
            await session.delete(row)
        logger.debug("Deleted tournament row %s", tournament_id)
        return True

    async def list(self) -> List[Tournament]:
        async with session_scope(self.session_factory) as session:
            result = await session.execute(select(TournamentORM).order_by(TournamentORM.created_at))
            return [_orm_to_tournament(row) for row in result.scalars().all()]
