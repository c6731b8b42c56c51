"""
Season stat aggregation.

A batting appearance counts as a match; bowling lines only add overs,
wickets and runs conceded.
"""

from typing import Dict

from league_engine.models import GameState, MatchResult, StatLine


def _line(stats: Dict[str, StatLine], player_id: str) -> StatLine:
    if player_id not in stats:
        stats[player_id] = StatLine(player_id=player_id)
    return stats[player_id]


def _accumulate(stats: Dict[str, StatLine], match: MatchResult) -> None:
    for innings in match.innings or []:
        for batting in innings.batting:
            line = _line(stats, batting.player_id)
            line.matches += 1
            line.runs += batting.runs
            line.balls += batting.balls
        for bowling in innings.bowling:
            line = _line(stats, bowling.player_id)
            line.overs += bowling.overs
            line.wickets += bowling.wickets
            line.runs_conceded += bowling.runs_conceded


def apply_match_to_stats(state: GameState, match: MatchResult) -> None:
    """Fold one played match into ``state.stats`` in place."""
    _accumulate(state.stats, match)


def rebuild_stats(state: GameState) -> Dict[str, StatLine]:
    """Recompute every stat line from the played fixtures."""
    stats: Dict[str, StatLine] = {}
    for match in state.fixtures:
        if match.played:
            _accumulate(stats, match)
    return stats
