"""
Season Schedule and Playoff Bracket
===================================

- Single-leg round robin by the circle method: every unordered pair meets
  once, home and away alternating by round and pairing slot
- Rounds are dated ROUND_GAP_DAYS apart from the season start
- Standings ranking: points, net run rate, wins (all descending), then name
- Playoffs build themselves as their inputs finish:

      league stage fully played  ->  qualifier-1 (1 v 2), eliminator (3 v 4)
      qualifier-1 + eliminator   ->  qualifier-2 (Q1 loser v eliminator winner)
      qualifier-1 + qualifier-2  ->  final (Q1 winner v Q2 winner)
"""

import logging
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

from league_engine.errors import ValidationError
from league_engine.models import (
    FixtureStage,
    GameState,
    MatchResult,
    PlayoffTieBreak,
    Team,
)

_log = logging.getLogger("league_engine.schedule")

ROUND_GAP_DAYS = 3
PLAYOFF_GAP_DAYS = 3
PLAYOFF_TEAMS = 4


# ═══════════════════════════════════════════════════════════════
# DATES
# ═══════════════════════════════════════════════════════════════

def parse_date_key(value: Optional[str]) -> date:
    """Calendar date of an ISO timestamp or a ``YYYY-MM-DD`` key."""
    if not value:
        raise ValidationError("Fixture date is missing", {"value": value})
    try:
        if len(value) == 10:
            return date.fromisoformat(value)
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    except ValueError as e:
        raise ValidationError(f"Invalid date: {value}", {"value": value}) from e


def round_date_key(season_start_iso: str, round_number: int) -> str:
    start = parse_date_key(season_start_iso)
    return (start + timedelta(days=(round_number - 1) * ROUND_GAP_DAYS)).isoformat()


def fixture_date_key(fixture: MatchResult, season_start_iso: str) -> str:
    return fixture.scheduled_at or round_date_key(season_start_iso, fixture.round)


# ═══════════════════════════════════════════════════════════════
# ROUND ROBIN
# ═══════════════════════════════════════════════════════════════

def _venue(team: Team) -> str:
    return f"{team.city} Oval"


def generate_round_robin_fixtures(teams: List[Team], season_start_iso: str) -> List[MatchResult]:
    if len(teams) < 2:
        return []

    slots: List[Optional[Team]] = list(teams)
    if len(slots) % 2:
        slots.append(None)

    rounds = len(slots) - 1
    per_round = len(slots) // 2
    fixtures = []

    for round_index in range(rounds):
        for pair in range(per_round):
            left = slots[pair]
            right = slots[len(slots) - 1 - pair]
            if left is None or right is None:
                continue

            home, away = (right, left) if (round_index + pair) % 2 == 1 else (left, right)
            fixtures.append(MatchResult(
                id=f"match-{len(fixtures) + 1}",
                home_team_id=home.id,
                away_team_id=away.id,
                venue=_venue(home),
                round=round_index + 1,
                scheduled_at=round_date_key(season_start_iso, round_index + 1),
            ))

        # rotate everything but the first slot one step clockwise
        slots = [slots[0], slots[-1]] + slots[1:-1]

    return fixtures


# ═══════════════════════════════════════════════════════════════
# STANDINGS
# ═══════════════════════════════════════════════════════════════

def rank_teams(teams: List[Team]) -> List[Team]:
    return sorted(teams, key=lambda t: (-t.points, -t.net_run_rate, -t.wins, t.name))


def seed_positions(state: GameState) -> Dict[str, int]:
    """1-based standings position per team id."""
    return {team.id: position for position, team in enumerate(rank_teams(state.teams), start=1)}


def resolve_tied_playoff(fixture: MatchResult, tie_break: PlayoffTieBreak, seeds: Dict[str, int]) -> str:
    """Winner of a tied knockout match under the configured tie-break."""
    if tie_break is PlayoffTieBreak.HIGHER_SEED:
        home_seed = seeds.get(fixture.home_team_id, len(seeds) + 1)
        away_seed = seeds.get(fixture.away_team_id, len(seeds) + 1)
        return fixture.away_team_id if away_seed < home_seed else fixture.home_team_id
    return fixture.home_team_id


# ═══════════════════════════════════════════════════════════════
# PLAYOFF BRACKET
# ═══════════════════════════════════════════════════════════════

def _find_stage(fixtures: List[MatchResult], stage: FixtureStage) -> Optional[MatchResult]:
    for fixture in fixtures:
        if fixture.stage is stage:
            return fixture
    return None


def _playoff_fixture(
    stage: FixtureStage,
    home: Team,
    away: Team,
    round_number: int,
    scheduled_at: str,
) -> MatchResult:
    return MatchResult(
        id=f"playoff-{stage.value}",
        home_team_id=home.id,
        away_team_id=away.id,
        venue=_venue(home),
        round=round_number,
        scheduled_at=scheduled_at,
        stage=stage,
    )


def _next_slot(state: GameState):
    last_round = max((f.round for f in state.fixtures), default=0)
    last_date = max(parse_date_key(fixture_date_key(f, state.metadata.created_at)) for f in state.fixtures)
    return last_round + 1, (last_date + timedelta(days=PLAYOFF_GAP_DAYS)).isoformat()


def update_playoff_bracket(state: GameState) -> List[MatchResult]:
    """Append whichever playoff fixtures have just become decidable.  Mutates ``state``.

    Returns the fixtures added (possibly none).
    """
    league = [f for f in state.fixtures if f.stage is FixtureStage.LEAGUE]
    if not league or any(not f.played for f in league):
        return []

    teams = state.team_by_id()
    added = []
    qualifier_1 = _find_stage(state.fixtures, FixtureStage.QUALIFIER_1)
    eliminator = _find_stage(state.fixtures, FixtureStage.ELIMINATOR)
    qualifier_2 = _find_stage(state.fixtures, FixtureStage.QUALIFIER_2)
    final = _find_stage(state.fixtures, FixtureStage.FINAL)

    if qualifier_1 is None and eliminator is None:
        ranked = rank_teams(state.teams)
        if len(ranked) < PLAYOFF_TEAMS:
            return []
        round_number, when = _next_slot(state)
        added.append(_playoff_fixture(FixtureStage.QUALIFIER_1, ranked[0], ranked[1], round_number, when))
        added.append(_playoff_fixture(FixtureStage.ELIMINATOR, ranked[2], ranked[3], round_number, when))

    elif (qualifier_2 is None and qualifier_1 is not None and eliminator is not None
          and qualifier_1.played and eliminator.played):
        round_number, when = _next_slot(state)
        added.append(_playoff_fixture(
            FixtureStage.QUALIFIER_2,
            teams[qualifier_1.loser_team_id],
            teams[eliminator.winner_team_id],
            round_number,
            when,
        ))

    elif (final is None and qualifier_1 is not None and qualifier_2 is not None
          and qualifier_1.played and qualifier_2.played):
        round_number, when = _next_slot(state)
        added.append(_playoff_fixture(
            FixtureStage.FINAL,
            teams[qualifier_1.winner_team_id],
            teams[qualifier_2.winner_team_id],
            round_number,
            when,
        ))

    for fixture in added:
        _log.debug(f"Bracket: {fixture.stage.value} {fixture.home_team_id} v {fixture.away_team_id} "
                   f"on {fixture.scheduled_at}")
    state.fixtures.extend(added)
    return added
