from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field

from americano.calculator import calculate_tournament_stats, format_duration
from americano.controller import TournamentController
from americano.exceptions import (
    AmericanoError,
    MatchAlreadyCompleted,
    MatchNotFound,
    PlayerChangeNotAllowed,
    PlayerNotFound,
    TournamentNotFound,
)
from americano.models import Tournament
from americano.service import TournamentService
from config import DEFAULT_POINTS_PER_MATCH, DEFAULT_TARGET_DURATION

router = APIRouter(prefix='/americano', tags=['Americano'])


# -- Request models ------------------------------------------------------------

class TournamentCreate(BaseModel):
    name: str
    player_names: List[str]
    number_of_courts: int = Field(1, ge=1)
    points_per_match: int = Field(DEFAULT_POINTS_PER_MATCH, ge=1)
    target_duration: int = Field(DEFAULT_TARGET_DURATION, ge=1)
    description: str = ""
    max_rounds: Optional[int] = Field(None, ge=1)


class ScoreIn(BaseModel):
    team1_score: int = Field(..., ge=0)
    team2_score: int = Field(..., ge=0)


class PlayerIn(BaseModel):
    name: str


class PlayersReset(BaseModel):
    player_names: List[str]


class PointsIn(BaseModel):
    total_points: int = Field(..., ge=0)


# -- Helpers -------------------------------------------------------------------

def get_service(request: Request) -> TournamentService:
    return request.app.state.service


def _http_error(exc: AmericanoError) -> HTTPException:
    if isinstance(exc, TournamentNotFound):
        return HTTPException(status_code=404, detail="Tournament not found")
    if isinstance(exc, MatchNotFound):
        return HTTPException(status_code=404, detail="Match not found")
    if isinstance(exc, PlayerNotFound):
        return HTTPException(status_code=404, detail="Player not found")
    if isinstance(exc, (MatchAlreadyCompleted, PlayerChangeNotAllowed)):
        return HTTPException(status_code=409, detail=str(exc) or exc.__class__.__name__)
    return HTTPException(status_code=400, detail=str(exc))


def _tournament_view(t: Tournament) -> dict:
    ctl = TournamentController(t)
    current = ctl.current_round()
    stats = calculate_tournament_stats(len(t.players), t.number_of_courts, t.points_per_match,
                                       t.target_duration)
    data = t.to_dict()
    data.pop("pairing_state")
    data.pop("admin_history")
    data.update({
        "progress_state": ctl.progress_state().value,
        "completed_rounds": ctl.completed_round_count(),
        "can_generate_next_round": ctl.can_generate_next_round(),
        "current_round": current.to_dict() if current else None,
        "leaderboard": ctl.leaderboard(),
        "estimated_duration": format_duration(stats.estimated_duration),
    })
    return data


# Routes

@router.get("/tournaments")
async def list_tournaments(service: TournamentService = Depends(get_service)):
    return [
        {"id": t.id, "name": t.name, "status": t.status.value, "players": len(t.players),
         "rounds": len(t.rounds), "max_rounds": t.max_rounds, "created_at": t.created_at}
        for t in await service.list()
    ]


@router.post("/tournaments", status_code=201)
async def create_tournament(body: TournamentCreate, service: TournamentService = Depends(get_service)):
    try:
        t = await service.create_tournament(
            name=body.name,
            player_names=body.player_names,
            number_of_courts=body.number_of_courts,
            points_per_match=body.points_per_match,
            target_duration=body.target_duration,
            description=body.description,
            max_rounds=body.max_rounds,
        )
    except AmericanoError as exc:
        raise _http_error(exc)
    return _tournament_view(t)


@router.head("/tournaments/{tid}")
async def tournament_head(tid: str, service: TournamentService = Depends(get_service)):
    try:
        await service.get(tid)
    except AmericanoError as exc:
        raise _http_error(exc)
    return Response(status_code=200)


@router.get("/tournaments/{tid}")
async def tournament_view(tid: str, service: TournamentService = Depends(get_service)):
    try:
        t = await service.get(tid)
    except AmericanoError as exc:
        raise _http_error(exc)
    return _tournament_view(t)


@router.delete("/tournaments/{tid}", status_code=204)
async def delete_tournament(tid: str, service: TournamentService = Depends(get_service)):
    if not await service.delete(tid):
        raise HTTPException(status_code=404, detail="Tournament not found")
    return Response(status_code=204)


@router.get("/tournaments/{tid}/history")
async def tournament_history(tid: str, service: TournamentService = Depends(get_service)):
    try:
        t = await service.get(tid)
    except AmericanoError as exc:
        raise _http_error(exc)
    return t.admin_history


@router.post("/tournaments/{tid}/rounds", status_code=201)
async def generate_round(tid: str, service: TournamentService = Depends(get_service)):
    try:
        t, rnd, reason = await service.generate_next_round(tid)
    except AmericanoError as exc:
        raise _http_error(exc)
    if rnd is None:
        raise HTTPException(status_code=409, detail={
            "reason": reason.value if reason else "NO_DISJOINT_MATCHES",
            "status": t.status.value,
        })
    return rnd.to_dict()


@router.get("/tournaments/{tid}/rounds/current")
async def current_round(tid: str, service: TournamentService = Depends(get_service)):
    try:
        t = await service.get(tid)
    except AmericanoError as exc:
        raise _http_error(exc)
    rnd = TournamentController(t).current_round()
    if rnd is None:
        raise HTTPException(status_code=404, detail="No round in progress")
    return rnd.to_dict()


@router.post("/tournaments/{tid}/matches/{match_id}/score")
async def submit_score(
    tid: str,
    match_id: str,
    body: ScoreIn,
    service: TournamentService = Depends(get_service),
):
    try:
        t, match = await service.record_score(tid, match_id, body.team1_score, body.team2_score)
    except AmericanoError as exc:
        raise _http_error(exc)
    return {"match": match.to_dict(), "tournament": _tournament_view(t)}


@router.get("/tournaments/{tid}/leaderboard")
async def leaderboard(tid: str, service: TournamentService = Depends(get_service)):
    try:
        t = await service.get(tid)
    except AmericanoError as exc:
        raise _http_error(exc)
    return TournamentController(t).leaderboard()


@router.post("/tournaments/{tid}/players", status_code=201)
async def add_player(tid: str, body: PlayerIn, service: TournamentService = Depends(get_service)):
    try:
        _, player = await service.add_player(tid, body.name)
    except AmericanoError as exc:
        raise _http_error(exc)
    return player.to_dict()


@router.delete("/tournaments/{tid}/players/{pid}")
async def remove_player(tid: str, pid: str, service: TournamentService = Depends(get_service)):
    try:
        _, player = await service.remove_player(tid, pid)
    except AmericanoError as exc:
        raise _http_error(exc)
    return player.to_dict()


@router.put("/tournaments/{tid}/players/{pid}/points")
async def adjust_points(tid: str, pid: str, body: PointsIn, service: TournamentService = Depends(get_service)):
    try:
        _, player = await service.adjust_player_points(tid, pid, body.total_points)
    except AmericanoError as exc:
        raise _http_error(exc)
    return player.to_dict()


@router.post("/tournaments/{tid}/reset")
async def reset_players(tid: str, body: PlayersReset, service: TournamentService = Depends(get_service)):
    try:
        t = await service.reset_with_new_players(tid, body.player_names)
    except AmericanoError as exc:
        raise _http_error(exc)
    return _tournament_view(t)


@router.post("/tournaments/{tid}/finish")
async def finish_tournament(tid: str, service: TournamentService = Depends(get_service)):
    try:
        t = await service.finish(tid)
    except AmericanoError as exc:
        raise _http_error(exc)
    return _tournament_view(t)


@router.websocket("/tournaments/{tid}/live")
async def tournament_live(websocket: WebSocket, tid: str):
    channel = websocket.app.state.channel
    await channel.join(tid, websocket)
    try:
        while True:
            # clients only listen; incoming frames keep the connection alive
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        channel.leave(tid, websocket)
