#!/usr/bin/env python3
"""
Match Simulator Tests
=====================

Scorecard consistency, chase termination, determinism and bowling presets.
"""

import copy

import pytest

from league_engine.generator import generate_seeded_league
from league_engine.match_sim import (
    bowling_unit,
    resolve_wicketkeeper,
    simulate_innings,
    simulate_match,
    team_players,
)
from league_engine.models import BowlingPreset, DismissalKind


@pytest.fixture(scope="module")
def state():
    return generate_seeded_league(606)


@pytest.fixture(scope="module")
def played(state):
    return [simulate_match(state, fixture, index + 1) for index, fixture in enumerate(state.fixtures[:12])]


# ═══════════════════════════════════════════════════════════════
# SCORECARDS
# ═══════════════════════════════════════════════════════════════

class TestScorecards:
    def test_two_innings_home_first(self, played):
        for match in played:
            assert match.played
            assert len(match.innings) == 2
            assert match.innings[0].batting_team_id == match.home_team_id
            assert match.innings[1].batting_team_id == match.away_team_id

    def test_innings_limits(self, played):
        for match in played:
            for innings in match.innings:
                assert 0 <= innings.wickets <= 10
                assert 0 <= innings.overs <= 20
                assert innings.runs >= 0

    def test_batting_lines_sum_to_total(self, played):
        for match in played:
            for innings in match.innings:
                assert sum(line.runs for line in innings.batting) == innings.runs
                assert sum(1 for line in innings.batting if line.out) == innings.wickets

    def test_bowling_figures(self, played):
        for match in played:
            for innings in match.innings:
                assert all(line.overs <= 4 for line in innings.bowling)
                credited = sum(
                    1 for line in innings.batting
                    if line.out and line.dismissal_kind is not DismissalKind.RUN_OUT
                )
                assert sum(line.wickets for line in innings.bowling) == credited
                assert sum(line.runs_conceded for line in innings.bowling) == innings.runs

    def test_chase_stops_once_target_passed(self, played):
        for match in played:
            first, second = match.innings
            if second.runs > first.runs:
                assert second.runs - first.runs <= 6
                assert match.winner_team_id == match.away_team_id
                assert match.margin.endswith("wickets")

    def test_result_and_margin(self, played):
        for match in played:
            first, second = match.innings
            if first.runs > second.runs:
                assert match.winner_team_id == match.home_team_id
                assert match.margin == f"{first.runs - second.runs} runs"
            elif first.runs == second.runs:
                assert match.winner_team_id is None
                assert match.margin == "Tie"

    def test_caught_has_fielder(self, played):
        for match in played:
            for innings in match.innings:
                for line in innings.batting:
                    if line.dismissal_kind is DismissalKind.CAUGHT:
                        assert line.assisted_by_player_id is not None


# ═══════════════════════════════════════════════════════════════
# PURITY AND DETERMINISM
# ═══════════════════════════════════════════════════════════════

class TestDeterminism:
    def test_fixture_not_modified(self, state):
        fixture = state.fixtures[0]
        simulate_match(state, fixture, 1)
        assert not fixture.played
        assert fixture.innings is None

    def test_same_offset_same_match(self, state):
        a = simulate_match(state, state.fixtures[0], 3)
        b = simulate_match(state, state.fixtures[0], 3)
        assert a.to_dict() == b.to_dict()


# ═══════════════════════════════════════════════════════════════
# SELECTION AND PRESETS
# ═══════════════════════════════════════════════════════════════

class TestSelection:
    def test_team_players_is_xi(self, state):
        team = state.teams[0]
        players = team_players(state.players, team)
        assert [p.id for p in players] == team.playing_xi

    def test_bowling_unit_is_five(self, state):
        players = team_players(state.players, state.teams[0])
        unit = bowling_unit(players)
        assert len(unit) == 5
        assert {p.id for p in unit} <= {p.id for p in players}

    def test_keeper_from_team(self, state):
        team = state.teams[0]
        players = team_players(state.players, team)
        assert resolve_wicketkeeper(team, players) == team.wicketkeeper_player_id

    def test_aggressive_bowling_shortens_innings(self, state):
        batting_team = state.teams[0]
        bowling_team = copy.copy(state.teams[1])
        batters = team_players(state.players, batting_team)
        fielders = team_players(state.players, bowling_team)

        def balls_faced(preset: BowlingPreset) -> int:
            bowling_team.bowling_preset = preset
            total = 0
            for seed in range(40):
                innings = simulate_innings(batting_team, bowling_team, batters, fielders, 1000 + seed)
                total += sum(line.balls for line in innings.batting)
            return total

        assert balls_faced(BowlingPreset.AGGRESSIVE) < balls_faced(BowlingPreset.DEFENSIVE)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
