"""
Season Flow
===========

Phase transitions after the auction:

    preseason --start_season--> regular-season --(league stage done)--> playoffs
    playoffs --(final played)--> complete --advance_season--> auction | preseason

Matches are played one calendar date ("window") at a time.  Each window
simulates every unplayed fixture on the earliest remaining date, folds the
results into standings and stats, lets the bracket grow, and re-checks the
whole state before returning it.  A window is never half-applied.

Long runs go through ``iter_season_windows`` so a host can stream progress
and cancel between dates.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterator, List, Optional

from league_engine.errors import ValidationError
from league_engine.generator import (
    generate_league,
    generate_young_players,
    open_auction,
    order_players_for_auction,
    season_start_iso,
    select_balanced_xi,
)
from league_engine.invariants import assert_semantic_integrity
from league_engine.match_sim import simulate_match
from league_engine.models import (
    BowlingPreset,
    FixtureStage,
    GameState,
    LastSeasonStats,
    MatchResult,
    Phase,
    Team,
)
from league_engine.policy import (
    AuctionType,
    PolicyContext,
    ResolvedPolicy,
    resolve_policy,
    season_year_from_iso,
)
from league_engine.schedule import (
    PLAYOFF_TEAMS,
    fixture_date_key,
    generate_round_robin_fixtures,
    rank_teams,
    resolve_tied_playoff,
    seed_positions,
    update_playoff_bracket,
)
from league_engine.stats import apply_match_to_stats
from league_engine.timeutil import utc_now_iso

_log = logging.getLogger("league_engine.season")

POINTS_FOR_WIN = 2
POINTS_FOR_TIE = 1
NRR_OVERS = 20
PLAYOFF_MATCHES = 4
RELEASES_PER_TEAM = 4
NEXT_SEED_STEP = 10_007
SEED_MODULUS = 1_000_000_000
MAX_AGE = 50
# unsigned prospects older than this leave the pool at the season rollover
PROSPECT_MAX_AGE = 23


@dataclass
class WindowResult:
    state: GameState
    played_matches: List[MatchResult] = field(default_factory=list)
    simulated_date: Optional[str] = None  # None once the season is complete


@dataclass
class SeasonCheckpoint:
    state: GameState
    completed: int
    total: int
    simulated_date: Optional[str]
    played_matches: List[MatchResult] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "completed": self.completed,
            "total": self.total,
            "simulated_date": self.simulated_date,
            "played_match_ids": [m.id for m in self.played_matches],
            "phase": self.state.phase.value,
        }


@dataclass
class SeasonRunResult:
    state: GameState
    cancelled: bool
    windows: int = 0


# ═══════════════════════════════════════════════════════════════
# START
# ═══════════════════════════════════════════════════════════════

def start_season(state: GameState) -> GameState:
    if state.phase is not Phase.PRESEASON:
        raise ValidationError("Season can only be started from preseason")

    next_state = state.clone()
    if not next_state.fixtures:
        next_state.fixtures = generate_round_robin_fixtures(next_state.teams, next_state.metadata.created_at)
    next_state.phase = Phase.REGULAR_SEASON
    next_state.metadata.updated_at = utc_now_iso()
    assert_semantic_integrity(next_state)
    return next_state


# ═══════════════════════════════════════════════════════════════
# MATCH WINDOWS
# ═══════════════════════════════════════════════════════════════

def update_standings(state: GameState, match: MatchResult):
    """League-stage points and net run rate.  Playoff results never touch the table."""
    if not match.innings or match.stage is not FixtureStage.LEAGUE:
        return
    home = state.find_team(match.home_team_id)
    away = state.find_team(match.away_team_id)
    if home is None or away is None:
        return

    home_innings, away_innings = match.innings[0], match.innings[1]
    delta = (home_innings.runs - away_innings.runs) / NRR_OVERS
    home.net_run_rate += delta
    away.net_run_rate -= delta

    if match.winner_team_id is None:
        for team in (home, away):
            team.points += POINTS_FOR_TIE
            team.ties += 1
        return

    winner, loser = (home, away) if match.winner_team_id == home.id else (away, home)
    winner.points += POINTS_FOR_WIN
    winner.wins += 1
    loser.losses += 1


def total_expected_matches(state: GameState) -> int:
    league = sum(1 for f in state.fixtures if f.stage is FixtureStage.LEAGUE)
    return league + (PLAYOFF_MATCHES if len(state.teams) >= PLAYOFF_TEAMS else 0)


def _finish_if_done(state: GameState):
    final = next((f for f in state.fixtures if f.stage is FixtureStage.FINAL), None)
    if final is not None and final.played:
        state.phase = Phase.COMPLETE
        state.champion_team_id = final.winner_team_id
        return
    if any(f.stage.is_playoff for f in state.fixtures):
        state.phase = Phase.PLAYOFFS
        return
    if state.fixtures and all(f.played for f in state.fixtures) and len(state.teams) < PLAYOFF_TEAMS:
        state.phase = Phase.COMPLETE
        state.champion_team_id = rank_teams(state.teams)[0].id


def simulate_next_scheduled_window(state: GameState) -> WindowResult:
    """Play every fixture on the earliest unplayed date.

    Returns the new state, the matches played and the date, or a ``None``
    date when the season is already complete.
    """
    if state.phase is Phase.AUCTION:
        raise ValidationError("Season cannot be simulated while the auction is running")
    if state.phase is Phase.PRESEASON:
        raise ValidationError("Season must be started before simulating matches")
    if state.phase is Phase.COMPLETE:
        return WindowResult(state=state.clone())

    next_state = state.clone()
    start = next_state.metadata.created_at

    if all(f.played for f in next_state.fixtures):
        update_playoff_bracket(next_state)
    pending = [f for f in next_state.fixtures if not f.played]
    if not pending:
        _finish_if_done(next_state)
        next_state.metadata.updated_at = utc_now_iso()
        assert_semantic_integrity(next_state)
        return WindowResult(state=next_state)

    window_date = min(fixture_date_key(f, start) for f in pending)
    tie_break = next_state.config.playoff_tie_break
    seeds = seed_positions(next_state)
    played = []

    for index, fixture in enumerate(next_state.fixtures):
        if fixture.played or fixture_date_key(fixture, start) != window_date:
            continue
        result = simulate_match(next_state, fixture, index + 1)
        if result.stage.is_playoff and result.winner_team_id is None:
            result.winner_team_id = resolve_tied_playoff(result, tie_break, seeds)
            result.margin = f"Tie ({tie_break.value} tie-break)"
        next_state.fixtures[index] = result
        update_standings(next_state, result)
        apply_match_to_stats(next_state, result)
        played.append(result)

    update_playoff_bracket(next_state)
    _finish_if_done(next_state)

    next_state.metadata.updated_at = utc_now_iso()
    assert_semantic_integrity(next_state)
    _log.debug(f"Window {window_date}: {len(played)} played, phase={next_state.phase.value}")
    return WindowResult(state=next_state, played_matches=played, simulated_date=window_date)


def iter_season_windows(
    state: GameState,
    should_cancel: Optional[Callable[[], bool]] = None,
) -> Iterator[SeasonCheckpoint]:
    """Yield a checkpoint after each simulated date until the season completes.

    ``should_cancel`` is polled between dates; returning True stops the
    iteration with the last checkpoint's state fully committed.
    """
    current = state
    while current.phase is not Phase.COMPLETE:
        if should_cancel is not None and should_cancel():
            return
        window = simulate_next_scheduled_window(current)
        current = window.state
        if window.simulated_date is None and current.phase is not Phase.COMPLETE:
            return
        yield SeasonCheckpoint(
            state=current,
            completed=sum(1 for f in current.fixtures if f.played),
            total=total_expected_matches(current),
            simulated_date=window.simulated_date,
            played_matches=window.played_matches,
        )


def simulate_remaining_season(
    state: GameState,
    on_progress: Optional[Callable[[SeasonCheckpoint], None]] = None,
    should_cancel: Optional[Callable[[], bool]] = None,
) -> SeasonRunResult:
    latest = state.clone()
    windows = 0
    for checkpoint in iter_season_windows(state, should_cancel):
        latest = checkpoint.state
        windows += 1
        if on_progress is not None:
            on_progress(checkpoint)
    return SeasonRunResult(state=latest, cancelled=latest.phase is not Phase.COMPLETE, windows=windows)


# ═══════════════════════════════════════════════════════════════
# TEAM SETUP
# ═══════════════════════════════════════════════════════════════

def update_user_team_setup(
    state: GameState,
    playing_xi: List[str],
    wicketkeeper_id: str,
    bowling_preset: BowlingPreset = BowlingPreset.BALANCED,
) -> GameState:
    next_state = state.clone()
    team = next_state.find_team(next_state.user_team_id)
    if team is None:
        raise ValidationError("User team not found")

    roster = set(team.roster_player_ids)
    xi = [pid for pid in playing_xi if pid in roster][:11]
    if len(xi) != 11 and len(team.roster_player_ids) >= 11:
        raise ValidationError("Playing XI must contain exactly 11 players")
    if wicketkeeper_id not in xi:
        raise ValidationError("Wicketkeeper must be part of the playing XI")

    team.playing_xi = xi
    team.wicketkeeper_player_id = wicketkeeper_id
    team.bowling_preset = BowlingPreset(bowling_preset)
    next_state.metadata.updated_at = utc_now_iso()
    assert_semantic_integrity(next_state)
    return next_state


# ═══════════════════════════════════════════════════════════════
# NEXT SEASON
# ═══════════════════════════════════════════════════════════════

def _refresh_last_season(state: GameState, previous: GameState):
    for player in state.players:
        line = previous.stats.get(player.id)
        if line is None:
            player.last_season_stats = LastSeasonStats()
        else:
            player.last_season_stats = LastSeasonStats(
                matches=line.matches,
                runs=line.runs,
                wickets=line.wickets,
                strike_rate=line.strike_rate,
                economy=line.economy,
            )
        if player.age is not None:
            player.age = min(MAX_AGE, player.age + 1)


def _prune_unsigned(state: GameState) -> int:
    """Drop players nobody signed last season, keeping young prospects."""
    def stays(player) -> bool:
        if player.team_id is not None:
            return True
        return player.is_prospect and (player.age is None or player.age <= PROSPECT_MAX_AGE)

    before = len(state.players)
    state.players = [p for p in state.players if stays(p)]
    return before - len(state.players)


def _carry_over_team(state: GameState, team: Team, purse: int):
    """Keep the best of the squad, release the rest back to the pool."""
    by_id = state.player_by_id()
    roster = sorted((by_id[pid] for pid in team.roster_player_ids if pid in by_id), key=lambda p: -p.overall)
    keep = max(state.config.min_squad_size, len(roster) - RELEASES_PER_TEAM)
    retained, released = roster[:keep], roster[keep:]

    for player in released:
        player.team_id = None
        player.previous_team_id = team.id
    for player in retained:
        player.previous_team_id = None

    team.roster_player_ids = [p.id for p in retained]
    team.playing_xi, team.wicketkeeper_player_id = select_balanced_xi(retained)
    team.budget_remaining = max(0, purse - sum(p.base_price for p in retained))
    team.reset_standings()


def _mini_carryover(state: GameState, resolved: ResolvedPolicy, next_seed: int, season_start: str) -> GameState:
    next_state = state.clone()
    policy = resolved.policy
    config = next_state.config
    config.season_seed = next_seed
    config.auction_budget = policy.purse
    config.min_squad_size = policy.squad_min
    config.max_squad_size = policy.squad_max

    pruned = _prune_unsigned(next_state)
    _refresh_last_season(next_state, state)
    for team in next_state.teams:
        _carry_over_team(next_state, team, policy.purse)

    season_number = state.metadata.season_number + 1
    known = {p.id for p in next_state.players}
    youth = [p for p in generate_young_players(config, id_prefix=f"s{season_number}-player") if p.id not in known]
    next_state.players.extend(youth)

    entries = order_players_for_auction([p for p in next_state.players if p.team_id is None])
    next_state.auction = open_auction(entries, next_state.players, resolved)
    next_state.fixtures = []
    next_state.stats = {}
    next_state.champion_team_id = None
    next_state.phase = Phase.AUCTION

    next_state.metadata.seed = next_seed
    next_state.metadata.created_at = season_start
    _log.debug(f"Mini carryover: {pruned} unsigned players left, {len(youth)} prospects joined, "
               f"{len(entries)} lots queued")
    return next_state


def advance_season(state: GameState) -> GameState:
    """Roll a completed season into the next one.

    Mini-auction years carry squads over (best players kept, four released per
    team, last season's unsigned veterans dropped, a new youth class added);
    mega years regenerate the league.  The user keeps the franchise with the
    same short name.
    """
    if state.phase is not Phase.COMPLETE:
        raise ValidationError("Current season must be complete before advancing")

    next_year = season_year_from_iso(state.metadata.created_at) + 1
    context = PolicyContext(policy_set=state.config.policy_set, season_year=next_year)
    resolved = resolve_policy(context)
    season_start = season_start_iso(next_year)
    next_seed = (state.metadata.seed + NEXT_SEED_STEP) % SEED_MODULUS

    if resolved.auction_type is AuctionType.MINI:
        next_state = _mini_carryover(state, resolved, next_seed, season_start)
    else:
        next_state = generate_league(next_seed, context, season_start)
        next_state.config.playoff_tie_break = state.config.playoff_tie_break

    user_team = state.find_team(state.user_team_id)
    if user_team is not None:
        same = next((t for t in next_state.teams if t.short_name == user_team.short_name), None)
        if same is not None:
            next_state.user_team_id = same.id

    next_state.metadata.season_number = state.metadata.season_number + 1
    next_state.metadata.updated_at = utc_now_iso()
    assert_semantic_integrity(next_state)
    _log.debug(f"Advanced to {next_year} ({resolved.auction_type.value}) seed={next_seed}")
    return next_state
