"""
T20 League API
FastAPI wrapper around the league engine
"""

import logging
import random
import time
import uuid
from typing import Callable, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel

from league_engine import db
from league_engine.auction import UserAction, pending_player_ids, progress_auction, skip_to_player
from league_engine.contracts import decode_save, encode_save
from league_engine.errors import ImportRejectedError, StorageError, ValidationError
from league_engine.generator import generate_league, generate_seeded_league
from league_engine.invariants import validate
from league_engine.models import BowlingPreset, GameState, PlayoffTieBreak, PolicySet
from league_engine.policy import PolicyContext, create_retention_state, resolve_policy_for_state
from league_engine.schedule import rank_teams
from league_engine.season import (
    advance_season,
    simulate_next_scheduled_window,
    simulate_remaining_season,
    start_season,
    update_user_team_setup,
)

_log = logging.getLogger("league_engine.api")

app = FastAPI(title="T20 League Simulation API", version="0.3.0")

sessions: Dict[str, dict] = {}


class CreateLeagueRequest(BaseModel):
    seed: Optional[int] = None
    policy_set: PolicySet = PolicySet.LEGACY
    season_year: Optional[int] = None
    pre_seeded: bool = False
    playoff_tie_break: PlayoffTieBreak = PlayoffTieBreak.HOME_TEAM


class SkipRequest(BaseModel):
    player_id: str


class TeamSetupRequest(BaseModel):
    playing_xi: List[str]
    wicketkeeper_id: str
    bowling_preset: BowlingPreset = BowlingPreset.BALANCED


class ImportRequest(BaseModel):
    document: str


class SaveRequest(BaseModel):
    label: str = ""


# ═══════════════════════════════════════════════════════════════
# SESSION HELPERS
# ═══════════════════════════════════════════════════════════════

def _get_session(session_id: str) -> dict:
    if session_id not in sessions:
        raise HTTPException(status_code=404, detail="Session not found")
    return sessions[session_id]


def _require_state(session: dict) -> GameState:
    if session.get("state") is None:
        raise HTTPException(status_code=400, detail="No league created in this session")
    return session["state"]


def _apply(session: dict, operation: Callable[[GameState], GameState]) -> GameState:
    """Run a core operation and commit its result to the session only if it succeeds."""
    state = _require_state(session)
    try:
        next_state = operation(state)
    except ValidationError as e:
        _log.warning(f"Rejected operation: {e.message}")
        raise HTTPException(status_code=400, detail=e.message)
    session["state"] = next_state
    return next_state


def _serialize_team(state: GameState, team) -> dict:
    by_id = state.player_by_id()
    return {
        "id": team.id,
        "name": team.name,
        "short_name": team.short_name,
        "city": team.city,
        "color": team.color,
        "budget_remaining": team.budget_remaining,
        "squad_size": len(team.roster_player_ids),
        "overseas": sum(1 for pid in team.roster_player_ids if pid in by_id and by_id[pid].is_overseas),
        "playing_xi": list(team.playing_xi),
        "wicketkeeper_player_id": team.wicketkeeper_player_id,
        "bowling_preset": team.bowling_preset.value,
    }


def _serialize_standing(position: int, team) -> dict:
    return {
        "position": position,
        "team_id": team.id,
        "name": team.name,
        "played": team.matches_played,
        "wins": team.wins,
        "losses": team.losses,
        "ties": team.ties,
        "points": team.points,
        "net_run_rate": round(team.net_run_rate, 3),
    }


def _serialize_auction(state: GameState) -> dict:
    auction = state.auction
    player = state.find_player(auction.current_player_id)
    return {
        "complete": auction.complete,
        "phase": auction.phase.value,
        "message": auction.message,
        "awaiting_user_action": auction.awaiting_user_action,
        "allow_rtm": auction.allow_rtm,
        "current_player": player.to_dict() if player else None,
        "current_bid": auction.current_bid,
        "current_bid_team_id": auction.current_bid_team_id,
        "current_bid_increment": auction.current_bid_increment,
        "lot": auction.current_nomination_index + 1,
        "pending": len(pending_player_ids(state)),
    }


def _serialize_summary(session_id: str, session: dict) -> dict:
    state = session["state"]
    resolved = resolve_policy_for_state(state)
    retention = create_retention_state(resolved)
    user_team = state.find_team(state.user_team_id)
    return {
        "session_id": session_id,
        "created_at": session["created_at"],
        "phase": state.phase.value,
        "seed": state.metadata.seed,
        "season_number": state.metadata.season_number,
        "season_year": resolved.season_year,
        "auction_type": resolved.auction_type.value,
        "policy_key": resolved.policy.key,
        "retention": {
            "enabled": retention.enabled,
            "max_retentions": retention.max_retentions,
            "phase": retention.phase,
        },
        "user_team": _serialize_team(state, user_team) if user_team else None,
        "champion_team_id": state.champion_team_id,
        "auction": _serialize_auction(state),
    }


# ═══════════════════════════════════════════════════════════════
# SESSIONS
# ═══════════════════════════════════════════════════════════════

@app.get("/health")
def health_check():
    return {"status": "ok", "sessions": len(sessions)}


@app.post("/sessions")
def create_session(req: CreateLeagueRequest):
    seed = req.seed if req.seed is not None else random.randint(1, 999_999)
    context = PolicyContext(policy_set=req.policy_set, season_year=req.season_year)
    try:
        if req.pre_seeded:
            state = generate_seeded_league(seed, context)
        else:
            state = generate_league(seed, context)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)
    state.config.playoff_tie_break = req.playoff_tie_break

    session_id = str(uuid.uuid4())
    sessions[session_id] = {"state": state, "created_at": time.time()}
    return _serialize_summary(session_id, sessions[session_id])


@app.delete("/sessions/{session_id}")
def delete_session(session_id: str):
    if session_id not in sessions:
        raise HTTPException(status_code=404, detail="Session not found")
    del sessions[session_id]
    return {"deleted": True}


@app.get("/sessions/{session_id}")
def get_session(session_id: str):
    session = _get_session(session_id)
    _require_state(session)
    return _serialize_summary(session_id, session)


@app.get("/sessions/{session_id}/teams")
def list_teams(session_id: str):
    state = _require_state(_get_session(session_id))
    return [_serialize_team(state, team) for team in state.teams]


@app.get("/sessions/{session_id}/players/{player_id}")
def get_player(session_id: str, player_id: str):
    state = _require_state(_get_session(session_id))
    player = state.find_player(player_id)
    if player is None:
        raise HTTPException(status_code=404, detail=f"Player '{player_id}' not found")
    return player.to_dict()


# ═══════════════════════════════════════════════════════════════
# AUCTION
# ═══════════════════════════════════════════════════════════════

@app.get("/sessions/{session_id}/auction")
def get_auction(session_id: str):
    state = _require_state(_get_session(session_id))
    return _serialize_auction(state)


@app.get("/sessions/{session_id}/auction/pending")
def get_pending_lots(session_id: str, limit: int = Query(default=50, ge=1, le=500)):
    state = _require_state(_get_session(session_id))
    return {"player_ids": pending_player_ids(state)[:limit]}


@app.post("/sessions/{session_id}/auction/bid")
def auction_bid(session_id: str):
    session = _get_session(session_id)
    state = _apply(session, lambda s: progress_auction(s, UserAction.BID))
    return _serialize_auction(state)


@app.post("/sessions/{session_id}/auction/pass")
def auction_pass(session_id: str):
    session = _get_session(session_id)
    state = _apply(session, lambda s: progress_auction(s, UserAction.PASS))
    return _serialize_auction(state)


@app.post("/sessions/{session_id}/auction/auto")
def auction_auto(session_id: str):
    session = _get_session(session_id)
    state = _apply(session, lambda s: progress_auction(s, UserAction.AUTO))
    return {"phase": state.phase.value, "auction": _serialize_auction(state)}


@app.post("/sessions/{session_id}/auction/skip")
def auction_skip(session_id: str, req: SkipRequest):
    session = _get_session(session_id)
    state = _apply(session, lambda s: skip_to_player(s, req.player_id))
    return _serialize_auction(state)


# ═══════════════════════════════════════════════════════════════
# SEASON
# ═══════════════════════════════════════════════════════════════

@app.post("/sessions/{session_id}/season/start")
def season_start(session_id: str):
    session = _get_session(session_id)
    state = _apply(session, start_season)
    return {"phase": state.phase.value, "fixtures": len(state.fixtures)}


@app.post("/sessions/{session_id}/season/simulate-next")
def season_simulate_next(session_id: str):
    session = _get_session(session_id)
    played = {}

    def operation(state: GameState) -> GameState:
        window = simulate_next_scheduled_window(state)
        played["date"] = window.simulated_date
        played["matches"] = [m.to_dict() for m in window.played_matches]
        return window.state

    state = _apply(session, operation)
    return {
        "phase": state.phase.value,
        "simulated_date": played["date"],
        "matches": played["matches"],
        "champion_team_id": state.champion_team_id,
    }


@app.post("/sessions/{session_id}/season/simulate-rest")
def season_simulate_rest(session_id: str):
    session = _get_session(session_id)
    run = {}

    def operation(state: GameState) -> GameState:
        result = simulate_remaining_season(state)
        run["windows"] = result.windows
        run["cancelled"] = result.cancelled
        return result.state

    state = _apply(session, operation)
    return {
        "phase": state.phase.value,
        "windows": run["windows"],
        "cancelled": run["cancelled"],
        "champion_team_id": state.champion_team_id,
    }


@app.post("/sessions/{session_id}/season/advance")
def season_advance(session_id: str):
    session = _get_session(session_id)
    _apply(session, advance_season)
    return _serialize_summary(session_id, session)


@app.get("/sessions/{session_id}/season/standings")
def get_standings(session_id: str):
    state = _require_state(_get_session(session_id))
    return [_serialize_standing(i, team) for i, team in enumerate(rank_teams(state.teams), start=1)]


@app.get("/sessions/{session_id}/season/fixtures")
def get_fixtures(session_id: str, played: Optional[bool] = None):
    state = _require_state(_get_session(session_id))
    fixtures = state.fixtures
    if played is not None:
        fixtures = [f for f in fixtures if f.played == played]
    return [f.to_dict() for f in fixtures]


@app.get("/sessions/{session_id}/season/stats")
def get_stats(session_id: str, sort: str = Query(default="runs", pattern="^(runs|wickets)$")):
    state = _require_state(_get_session(session_id))
    players = state.player_by_id()
    lines = sorted(state.stats.values(), key=lambda s: -getattr(s, sort))
    result = []
    for line in lines:
        player = players.get(line.player_id)
        row = line.to_dict()
        row["name"] = player.full_name if player else line.player_id
        row["team_id"] = player.team_id if player else None
        row["strike_rate"] = line.strike_rate
        row["economy"] = line.economy
        result.append(row)
    return result


@app.put("/sessions/{session_id}/team-setup")
def put_team_setup(session_id: str, req: TeamSetupRequest):
    session = _get_session(session_id)
    state = _apply(
        session,
        lambda s: update_user_team_setup(s, req.playing_xi, req.wicketkeeper_id, req.bowling_preset),
    )
    return _serialize_team(state, state.find_team(state.user_team_id))


@app.get("/sessions/{session_id}/validate")
def validate_session(session_id: str):
    state = _require_state(_get_session(session_id))
    failures = validate(state)
    return {"valid": not failures, "failures": [f.to_dict() for f in failures]}


# ═══════════════════════════════════════════════════════════════
# IMPORT / EXPORT / SAVES
# ═══════════════════════════════════════════════════════════════

@app.get("/sessions/{session_id}/export")
def export_session(session_id: str):
    state = _require_state(_get_session(session_id))
    return {"document": encode_save(state)}


@app.post("/sessions/{session_id}/import")
def import_session(session_id: str, req: ImportRequest):
    session = _get_session(session_id)
    try:
        state = decode_save(req.document)
    except ImportRejectedError as e:
        _log.warning(f"Rejected import: {e.message}")
        raise HTTPException(status_code=400, detail=e.message)
    session["state"] = state
    return _serialize_summary(session_id, session)


@app.get("/saves")
def list_saves():
    try:
        db.init_db()
        return db.list_saves()
    except StorageError as e:
        raise HTTPException(status_code=500, detail=e.message)


@app.post("/sessions/{session_id}/saves/{save_key}")
def save_session(session_id: str, save_key: str, req: SaveRequest):
    state = _require_state(_get_session(session_id))
    try:
        db.init_db()
        db.save_state(save_key, state, label=req.label)
    except StorageError as e:
        raise HTTPException(status_code=500, detail=e.message)
    return {"saved": True, "save_key": save_key}


@app.post("/sessions/{session_id}/saves/{save_key}/load")
def load_session(session_id: str, save_key: str):
    session = _get_session(session_id)
    try:
        db.init_db()
        state = db.load_state(save_key)
    except ImportRejectedError as e:
        _log.warning(f"Rejected stored save {save_key}: {e.message}")
        raise HTTPException(status_code=400, detail=e.message)
    except StorageError as e:
        raise HTTPException(status_code=500, detail=e.message)
    if state is None:
        raise HTTPException(status_code=404, detail=f"Save '{save_key}' not found")
    session["state"] = state
    return _serialize_summary(session_id, session)


@app.delete("/saves/{save_key}")
def delete_save(save_key: str):
    try:
        db.init_db()
        deleted = db.delete_save(save_key)
    except StorageError as e:
        raise HTTPException(status_code=500, detail=e.message)
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Save '{save_key}' not found")
    return {"deleted": True}
