"""
State Invariant Checker
=======================

Whole-state semantic validation, run on every candidate state before it is
handed back to a caller.  ``validate`` only reads the state, so running it
twice gives the same list.

Checks:
  - rosters reference known players; XI is at most 11 and drawn from the roster
  - a designated wicketkeeper is in the XI
  - budgets are never negative
  - squad size within max (and min once the auction is complete)
  - overseas players within the policy cap
  - minimum spend met once the auction is complete
  - fixture dates parse
  - innings: wickets <= 10, overs in [0, 20], batting runs within 12 of the total
  - prospects: potential never below current ratings
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List

from league_engine.errors import SemanticIntegrityError, ValidationError
from league_engine.models import GameState
from league_engine.policy import resolve_policy_for_state
from league_engine.schedule import parse_date_key

MAX_WICKETS = 10
MAX_OVERS = 20
BATTING_RUNS_TOLERANCE = 12
XI_SIZE = 11


@dataclass
class ValidationFailure:
    code: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "details": dict(self.details)}


def _check_teams(state: GameState, failures: List[ValidationFailure]):
    player_by_id = state.player_by_id()
    policy = resolve_policy_for_state(state).policy
    auction_done = state.auction.complete

    for team in state.teams:
        roster = set(team.roster_player_ids)
        for player_id in team.roster_player_ids:
            if player_id not in player_by_id:
                failures.append(ValidationFailure(
                    "unknown-roster-player", "Roster references unknown player",
                    {"team_id": team.id, "player_id": player_id},
                ))

        if len(team.playing_xi) > XI_SIZE:
            failures.append(ValidationFailure(
                "xi-too-large", f"Team {team.name} names more than {XI_SIZE} in its playing XI",
                {"team_id": team.id, "size": len(team.playing_xi)},
            ))
        outsiders = [pid for pid in team.playing_xi if pid not in roster]
        if outsiders:
            failures.append(ValidationFailure(
                "xi-not-in-roster", f"Team {team.name} playing XI includes unrostered players",
                {"team_id": team.id, "player_ids": outsiders},
            ))

        keeper = team.wicketkeeper_player_id
        if keeper and keeper not in team.playing_xi:
            failures.append(ValidationFailure(
                "keeper-not-in-xi", "Team wicketkeeper must be part of playing XI",
                {"team_id": team.id, "wicketkeeper_player_id": keeper},
            ))

        if team.budget_remaining < 0:
            failures.append(ValidationFailure(
                "negative-budget", f"Team {team.name} exceeded budget",
                {"team_id": team.id, "budget_remaining": team.budget_remaining},
            ))

        squad = len(team.roster_player_ids)
        if squad > state.config.max_squad_size:
            failures.append(ValidationFailure(
                "squad-above-max", f"Team {team.name} exceeds max squad size",
                {"team_id": team.id, "size": squad, "max": state.config.max_squad_size},
            ))
        if auction_done and squad < state.config.min_squad_size:
            failures.append(ValidationFailure(
                "squad-below-min", f"Team {team.name} is below min squad size",
                {"team_id": team.id, "size": squad, "min": state.config.min_squad_size},
            ))

        overseas = sum(1 for pid in team.roster_player_ids
                       if pid in player_by_id and player_by_id[pid].is_overseas)
        if overseas > policy.overseas_cap:
            failures.append(ValidationFailure(
                "overseas-cap", f"Team {team.name} exceeds the overseas cap",
                {"team_id": team.id, "overseas": overseas, "cap": policy.overseas_cap},
            ))

        spent = state.config.auction_budget - team.budget_remaining
        if auction_done and spent < policy.minimum_spend:
            failures.append(ValidationFailure(
                "minimum-spend", f"Team {team.name} is below the minimum spend",
                {"team_id": team.id, "spent": spent, "minimum": policy.minimum_spend},
            ))


def _check_fixtures(state: GameState, failures: List[ValidationFailure]):
    for match in state.fixtures:
        if match.scheduled_at is not None:
            try:
                parse_date_key(match.scheduled_at)
            except ValidationError:
                failures.append(ValidationFailure(
                    "invalid-fixture-date", "Fixture date does not parse",
                    {"match_id": match.id, "scheduled_at": match.scheduled_at},
                ))

        for innings in match.innings or []:
            if innings.wickets < 0 or innings.wickets > MAX_WICKETS:
                failures.append(ValidationFailure(
                    "innings-wickets", f"Wickets cannot exceed {MAX_WICKETS}",
                    {"match_id": match.id, "wickets": innings.wickets},
                ))
            if innings.overs < 0 or innings.overs > MAX_OVERS:
                failures.append(ValidationFailure(
                    "innings-overs", f"Overs must be in [0, {MAX_OVERS}]",
                    {"match_id": match.id, "overs": innings.overs},
                ))
            batting_runs = sum(line.runs for line in innings.batting)
            if abs(batting_runs - innings.runs) > BATTING_RUNS_TOLERANCE:
                failures.append(ValidationFailure(
                    "innings-runs-drift", "Innings and batting runs drift too much",
                    {"match_id": match.id, "innings_runs": innings.runs, "batting_runs": batting_runs},
                ))


def _check_prospects(state: GameState, failures: List[ValidationFailure]):
    for player in state.players:
        if not player.is_prospect:
            continue
        potential = player.development.potential
        ratings = player.ratings
        pairs = [
            ("batting_overall", potential.batting_overall, ratings.batting.overall),
            ("bowling_overall", potential.bowling_overall, ratings.bowling.overall),
            ("fielding_overall", potential.fielding_overall, ratings.fielding.overall),
            ("temperament", potential.temperament, ratings.temperament),
            ("fitness", potential.fitness, ratings.fitness),
        ]
        below = [name for name, ceiling, current in pairs if ceiling < current]
        if below:
            failures.append(ValidationFailure(
                "prospect-potential", "Prospect potential is below current ratings",
                {"player_id": player.id, "fields": below},
            ))


def validate(state: GameState) -> List[ValidationFailure]:
    """Every invariant violation in ``state``; empty when the state is sound."""
    failures: List[ValidationFailure] = []
    _check_teams(state, failures)
    _check_fixtures(state, failures)
    _check_prospects(state, failures)
    return failures


def assert_semantic_integrity(state: GameState):
    failures = validate(state)
    if failures:
        raise SemanticIntegrityError(failures)
