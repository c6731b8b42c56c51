"""
T20 Match Simulator
===================

Ball-by-ball simulation of two 20-over innings.

Per ball:
  - batting strength  = weighted batting overall, timing, power, composure
  - bowling strength  = weighted bowling overall, accuracy, control, variations
  - bias              = (batting - bowling) / 22
  - wicket chance     = max(0.04, 0.12 - 0.01 x bias), scaled by the bowling
                        side's preset
  - runs otherwise    = round(U{0..6} x phase multiplier + bias), clamped to 0-6

Phase multipliers: overs 1-6 x1.1 (powerplay), 7-15 x0.9, 16-20 x1.25.
Strike rotates on odd runs and at the end of each over; a new batter takes
strike after a dismissal.  Each innings draws from its own PRNG stream so
the first innings never depends on the second.
"""

import copy
from typing import Dict, List, Optional, Set

from league_engine.models import (
    BattingLine,
    BowlingLine,
    BowlingPreset,
    DismissalKind,
    GameState,
    InningsSummary,
    MatchResult,
    Player,
    PlayerRole,
    Team,
    round_half_up,
)
from league_engine.prng import Prng, create_prng

OVERS = 20
BALLS_PER_OVER = 6
MAX_WICKETS = 10
XI_SIZE = 11
BOWLING_UNIT_SIZE = 5
SECOND_INNINGS_SEED_OFFSET = 9_999

PHASE_MULTIPLIERS = (1.1, 0.9, 1.25)
POWERPLAY_OVERS = 6
MIDDLE_OVERS_END = 15

BASE_WICKET_CHANCE = 0.12
MIN_WICKET_CHANCE = 0.04
BIAS_DIVISOR = 22

DISMISSAL_WEIGHTS = [
    (DismissalKind.CAUGHT, 56.5),
    (DismissalKind.BOWLED, 21.4),
    (DismissalKind.LBW, 9.0),
    (DismissalKind.RUN_OUT, 10.2),
    (DismissalKind.CAUGHT_AND_BOWLED, 2.9),
]

BOWLING_ROLE_BONUS = {
    PlayerRole.BOWLER: 8,
    PlayerRole.ALLROUNDER: 5,
    PlayerRole.WICKETKEEPER: -4,
    PlayerRole.BATTER: -6,
}

# (wicket chance factor, run bias) applied when a side bowls
PRESET_MODIFIERS = {
    BowlingPreset.BALANCED: (1.0, 0.0),
    BowlingPreset.AGGRESSIVE: (1.15, 0.3),
    BowlingPreset.DEFENSIVE: (0.88, -0.3),
}

KEEPER_CATCH_BOOST = 1.08


# ═══════════════════════════════════════════════════════════════
# SELECTION
# ═══════════════════════════════════════════════════════════════

def team_players(players: List[Player], team: Team) -> List[Player]:
    """Up to 11 from the named XI, topped up from the rest of the squad."""
    by_id = {p.id: p for p in players}
    xi = [by_id[pid] for pid in team.playing_xi if pid in by_id]
    if len(xi) >= XI_SIZE:
        return xi[:XI_SIZE]
    named = set(team.playing_xi)
    fallback = [p for p in players if p.team_id == team.id and p.id not in named]
    return (xi + fallback)[:XI_SIZE]


def bowling_suitability(player: Player) -> int:
    return player.ratings.bowling.overall + BOWLING_ROLE_BONUS[player.role]


def fielding_suitability(player: Player) -> int:
    traits = player.ratings.fielding.traits
    keeper_bonus = 10 if player.role is PlayerRole.WICKETKEEPER else 0
    return round_half_up(traits["catching"] * 0.55 + traits["ground_fielding"] * 0.35 + keeper_bonus)


def bowling_unit(players: List[Player]) -> List[Player]:
    return sorted(players, key=lambda p: -bowling_suitability(p))[:BOWLING_UNIT_SIZE]


def resolve_wicketkeeper(team: Team, players: List[Player]) -> Optional[str]:
    if team.wicketkeeper_player_id and any(p.id == team.wicketkeeper_player_id for p in players):
        return team.wicketkeeper_player_id
    for player in players:
        if player.role is PlayerRole.WICKETKEEPER:
            return player.id
    return players[0].id if players else None


def _batting_strength(player: Player) -> int:
    batting = player.ratings.batting
    return round_half_up(
        batting.overall * 0.5
        + batting.traits["timing"] * 0.2
        + batting.traits["power"] * 0.2
        + batting.traits["composure"] * 0.1
    )


def _bowling_strength(player: Player) -> int:
    bowling = player.ratings.bowling
    return round_half_up(
        bowling.overall * 0.55
        + bowling.traits["accuracy"] * 0.2
        + bowling.traits["control"] * 0.15
        + bowling.traits["variations"] * 0.1
    )


def _pick_fielder(prng: Prng, fielders: List[Player], exclude: Set[str], keeper_id: Optional[str]) -> Optional[Player]:
    pool = [p for p in fielders if p.id not in exclude]
    if not pool:
        return None

    weights = [fielding_suitability(p) * (KEEPER_CATCH_BOOST if p.id == keeper_id else 1) for p in pool]
    total = sum(weights)
    if total <= 0:
        return pool[0]

    roll = prng.next() * total
    for player, weight in zip(pool, weights):
        roll -= weight
        if roll <= 0:
            return player
    return pool[-1]


def _pick_dismissal(prng: Prng) -> DismissalKind:
    roll = prng.next() * sum(w for _, w in DISMISSAL_WEIGHTS)
    for kind, weight in DISMISSAL_WEIGHTS:
        roll -= weight
        if roll <= 0:
            return kind
    return DismissalKind.CAUGHT


# ═══════════════════════════════════════════════════════════════
# INNINGS
# ═══════════════════════════════════════════════════════════════

def simulate_innings(
    batting_team: Team,
    bowling_team: Team,
    batters: List[Player],
    fielders: List[Player],
    seed: int,
    target: Optional[int] = None,
) -> InningsSummary:
    """One innings.  With ``target`` set it stops as soon as the score passes it."""
    prng = create_prng(seed)
    order = [p.id for p in batters]
    batter_by_id = {p.id: p for p in batters}
    lines: Dict[str, BattingLine] = {}
    batting: List[BattingLine] = []

    def line_for(player_id: str) -> BattingLine:
        if player_id not in lines:
            lines[player_id] = BattingLine(player_id=player_id)
            batting.append(lines[player_id])
        return lines[player_id]

    unit = bowling_unit(fielders)
    keeper_id = resolve_wicketkeeper(bowling_team, fielders)
    bowling = [BowlingLine(player_id=p.id) for p in unit]
    wicket_factor, preset_bias = PRESET_MODIFIERS[bowling_team.bowling_preset]

    runs = wickets = balls = 0
    striker = order[0] if order else None
    non_striker = order[1] if len(order) > 1 else None
    next_in = 2
    for player_id in (striker, non_striker):
        if player_id:
            line_for(player_id)

    def chased() -> bool:
        return target is not None and runs > target

    for over in range(OVERS if unit else 0):
        if striker is None or wickets >= MAX_WICKETS:
            break

        if over < POWERPLAY_OVERS:
            multiplier = PHASE_MULTIPLIERS[0]
        elif over < MIDDLE_OVERS_END:
            multiplier = PHASE_MULTIPLIERS[1]
        else:
            multiplier = PHASE_MULTIPLIERS[2]
        bowler = unit[over % len(unit)]
        bowler_line = bowling[over % len(unit)]
        bowling_strength = _bowling_strength(bowler)

        for _ in range(BALLS_PER_OVER):
            if striker is None or wickets >= MAX_WICKETS:
                break
            batter = batter_by_id.get(striker)
            if batter is None:
                break
            batter_line = line_for(striker)

            bias = (_batting_strength(batter) - bowling_strength) / BIAS_DIVISOR
            wicket_chance = max(MIN_WICKET_CHANCE, (BASE_WICKET_CHANCE - bias * 0.01) * wicket_factor)

            if prng.next() < wicket_chance:
                wickets += 1
                batter_line.out = True
                batter_line.balls += 1
                kind = _pick_dismissal(prng)
                batter_line.dismissal_kind = kind

                if kind in (DismissalKind.BOWLED, DismissalKind.LBW, DismissalKind.CAUGHT_AND_BOWLED):
                    batter_line.dismissed_by_player_id = bowler.id
                    bowler_line.wickets += 1
                elif kind is DismissalKind.CAUGHT:
                    catcher = _pick_fielder(prng, fielders, {bowler.id}, keeper_id)
                    batter_line.dismissed_by_player_id = bowler.id
                    batter_line.assisted_by_player_id = catcher.id if catcher else keeper_id
                    bowler_line.wickets += 1
                else:
                    fielder = _pick_fielder(prng, fielders, set(), keeper_id)
                    batter_line.dismissed_by_player_id = fielder.id if fielder else (keeper_id or bowler.id)

                striker = order[next_in] if next_in < len(order) else None
                next_in += 1
                if striker:
                    line_for(striker)
            else:
                scored = max(0, round_half_up(prng.next_int(0, 6) * multiplier + bias + preset_bias))
                scored = min(scored, 6)
                runs += scored
                batter_line.runs += scored
                batter_line.balls += 1
                bowler_line.runs_conceded += scored
                if scored == 4:
                    batter_line.fours += 1
                elif scored == 6:
                    batter_line.sixes += 1
                if scored % 2 == 1:
                    striker, non_striker = non_striker, striker

            balls += 1
            if chased():
                break

        bowler_line.overs += 1
        if chased() or wickets >= MAX_WICKETS or striker is None:
            break
        striker, non_striker = non_striker, striker

    return InningsSummary(
        batting_team_id=batting_team.id,
        bowling_team_id=bowling_team.id,
        wicketkeeper_player_id=keeper_id,
        runs=runs,
        wickets=wickets,
        overs=round(balls / BALLS_PER_OVER, 1),
        batting=batting,
        bowling=bowling,
    )


# ═══════════════════════════════════════════════════════════════
# MATCH
# ═══════════════════════════════════════════════════════════════

def simulate_match(state: GameState, fixture: MatchResult, seed_offset: int) -> MatchResult:
    """Play ``fixture`` and return it filled in.  Neither argument is modified.

    The home side bats first.  Innings streams are seeded from
    ``metadata.seed + seed_offset`` and that plus 9999.
    """
    home = state.find_team(fixture.home_team_id)
    away = state.find_team(fixture.away_team_id)
    result = copy.deepcopy(fixture)
    if home is None or away is None:
        return result

    home_players = team_players(state.players, home)
    away_players = team_players(state.players, away)
    seed = state.metadata.seed + seed_offset

    first = simulate_innings(home, away, home_players, away_players, seed)
    second = simulate_innings(away, home, away_players, home_players, seed + SECOND_INNINGS_SEED_OFFSET, first.runs)

    if first.runs > second.runs:
        result.winner_team_id = home.id
        result.margin = f"{first.runs - second.runs} runs"
    elif second.runs > first.runs:
        result.winner_team_id = away.id
        result.margin = f"{MAX_WICKETS - second.wickets} wickets"
    else:
        result.winner_team_id = None
        result.margin = "Tie"

    result.played = True
    result.innings = [first, second]
    return result
