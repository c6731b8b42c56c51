#!/usr/bin/env python3
"""
Schedule and Playoff Bracket Tests
==================================

Round-robin construction, date keys, standings order and the four-match
playoff bracket.
"""

from collections import Counter
from datetime import date, timedelta

import pytest

from league_engine.errors import ValidationError
from league_engine.generator import generate_seeded_league
from league_engine.models import FixtureStage, PlayoffTieBreak
from league_engine.schedule import (
    ROUND_GAP_DAYS,
    generate_round_robin_fixtures,
    parse_date_key,
    rank_teams,
    resolve_tied_playoff,
    seed_positions,
    update_playoff_bracket,
)

SEASON_START = "2025-01-01T00:00:00.000Z"


@pytest.fixture
def state():
    return generate_seeded_league(321)


def _finish_league(state):
    """Play every league fixture on paper, home side winning, with a fixed table."""
    for fixture in state.fixtures:
        fixture.played = True
        fixture.winner_team_id = fixture.home_team_id
    for index, team in enumerate(state.teams):
        team.points = 40 - index * 2
        team.wins = 20 - index


def _settle(fixture, winner_id):
    fixture.played = True
    fixture.winner_team_id = winner_id


# ═══════════════════════════════════════════════════════════════
# ROUND ROBIN
# ═══════════════════════════════════════════════════════════════

class TestRoundRobin:
    def test_every_pair_once(self, state):
        fixtures = generate_round_robin_fixtures(state.teams, SEASON_START)
        assert len(fixtures) == 45
        pairs = Counter(frozenset((f.home_team_id, f.away_team_id)) for f in fixtures)
        assert len(pairs) == 45
        assert set(pairs.values()) == {1}

    def test_one_match_per_team_per_round(self, state):
        fixtures = generate_round_robin_fixtures(state.teams, SEASON_START)
        rounds = {}
        for fixture in fixtures:
            rounds.setdefault(fixture.round, []).extend([fixture.home_team_id, fixture.away_team_id])
        assert len(rounds) == 9
        for team_ids in rounds.values():
            assert len(team_ids) == len(set(team_ids)) == 10

    def test_round_dates(self, state):
        fixtures = generate_round_robin_fixtures(state.teams, SEASON_START)
        for fixture in fixtures:
            expected = date(2025, 1, 1) + timedelta(days=(fixture.round - 1) * ROUND_GAP_DAYS)
            assert fixture.scheduled_at == expected.isoformat()

    def test_odd_team_count(self, state):
        fixtures = generate_round_robin_fixtures(state.teams[:5], SEASON_START)
        assert len(fixtures) == 10
        appearances = Counter()
        for fixture in fixtures:
            appearances[fixture.home_team_id] += 1
            appearances[fixture.away_team_id] += 1
        assert set(appearances.values()) == {4}

    def test_too_few_teams(self, state):
        assert generate_round_robin_fixtures(state.teams[:1], SEASON_START) == []

    def test_ids_and_venues(self, state):
        fixtures = generate_round_robin_fixtures(state.teams, SEASON_START)
        cities = {t.id: t.city for t in state.teams}
        assert [f.id for f in fixtures] == [f"match-{i}" for i in range(1, 46)]
        assert all(f.venue == f"{cities[f.home_team_id]} Oval" for f in fixtures)


# ═══════════════════════════════════════════════════════════════
# DATES AND STANDINGS
# ═══════════════════════════════════════════════════════════════

class TestDatesAndStandings:
    def test_parse_date_key(self):
        assert parse_date_key("2025-03-04") == date(2025, 3, 4)
        assert parse_date_key("2025-03-04T10:00:00.000Z") == date(2025, 3, 4)

    def test_parse_date_key_rejects(self):
        with pytest.raises(ValidationError):
            parse_date_key("not-a-date")
        with pytest.raises(ValidationError):
            parse_date_key(None)

    def test_rank_order(self, state):
        a, b, c, d = state.teams[:4]
        a.points, b.points, c.points, d.points = 4, 6, 4, 4
        a.net_run_rate, c.net_run_rate, d.net_run_rate = 0.5, 1.2, 0.5
        a.wins, d.wins = 2, 1
        ranked = rank_teams([a, b, c, d])
        assert [t.id for t in ranked] == [b.id, c.id, a.id, d.id]

    def test_seed_positions(self, state):
        _finish_league(state)
        seeds = seed_positions(state)
        assert seeds[state.teams[0].id] == 1
        assert seeds[state.teams[9].id] == 10


# ═══════════════════════════════════════════════════════════════
# PLAYOFFS
# ═══════════════════════════════════════════════════════════════

class TestPlayoffBracket:
    def test_nothing_until_league_done(self, state):
        assert update_playoff_bracket(state) == []

    def test_full_bracket(self, state):
        _finish_league(state)
        top = [t.id for t in state.teams[:4]]

        added = update_playoff_bracket(state)
        stages = [f.stage for f in added]
        assert stages == [FixtureStage.QUALIFIER_1, FixtureStage.ELIMINATOR]
        q1, elim = added
        assert (q1.home_team_id, q1.away_team_id) == (top[0], top[1])
        assert (elim.home_team_id, elim.away_team_id) == (top[2], top[3])
        assert q1.scheduled_at == elim.scheduled_at
        assert q1.scheduled_at > max(f.scheduled_at for f in state.fixtures if f.stage is FixtureStage.LEAGUE)
        assert update_playoff_bracket(state) == []

        _settle(q1, top[0])
        assert update_playoff_bracket(state) == []
        _settle(elim, top[3])
        (q2,) = update_playoff_bracket(state)
        assert q2.stage is FixtureStage.QUALIFIER_2
        assert (q2.home_team_id, q2.away_team_id) == (top[1], top[3])
        assert q2.scheduled_at > q1.scheduled_at

        _settle(q2, top[3])
        (final,) = update_playoff_bracket(state)
        assert final.stage is FixtureStage.FINAL
        assert final.id == "playoff-final"
        assert (final.home_team_id, final.away_team_id) == (top[0], top[3])
        assert update_playoff_bracket(state) == []

    def test_no_playoffs_below_four_teams(self, state):
        state.teams = state.teams[:3]
        state.fixtures = generate_round_robin_fixtures(state.teams, SEASON_START)
        _finish_league(state)
        assert update_playoff_bracket(state) == []


# ═══════════════════════════════════════════════════════════════
# TIE-BREAKS
# ═══════════════════════════════════════════════════════════════

class TestTieBreaks:
    def test_home_team(self, state):
        fixture = state.fixtures[0]
        seeds = {fixture.home_team_id: 4, fixture.away_team_id: 1}
        assert resolve_tied_playoff(fixture, PlayoffTieBreak.HOME_TEAM, seeds) == fixture.home_team_id

    def test_higher_seed(self, state):
        fixture = state.fixtures[0]
        seeds = {fixture.home_team_id: 4, fixture.away_team_id: 1}
        assert resolve_tied_playoff(fixture, PlayoffTieBreak.HIGHER_SEED, seeds) == fixture.away_team_id
        seeds = {fixture.home_team_id: 2, fixture.away_team_id: 3}
        assert resolve_tied_playoff(fixture, PlayoffTieBreak.HIGHER_SEED, seeds) == fixture.home_team_id


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
