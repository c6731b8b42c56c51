#!/usr/bin/env python3
"""
Season Flow Tests
=================

Starting a season, date-by-date windows, playoffs to a champion, cancellable
runs, team setup and rolling into the next season.
"""

import pytest

from league_engine.auction import run_auto_auction
from league_engine.errors import ValidationError
from league_engine.generator import generate_league, generate_seeded_league
from league_engine.invariants import validate
from league_engine.models import BowlingPreset, FixtureStage, Phase, PolicySet
from league_engine.policy import PolicyContext
from league_engine.season import (
    iter_season_windows,
    simulate_next_scheduled_window,
    simulate_remaining_season,
    start_season,
    update_user_team_setup,
    advance_season,
)
from league_engine.stats import rebuild_stats


@pytest.fixture(scope="module")
def auctioned():
    return run_auto_auction(generate_league(8080))


@pytest.fixture(scope="module")
def completed(auctioned):
    return simulate_remaining_season(auctioned).state


@pytest.fixture(scope="module")
def preseason():
    return generate_seeded_league(7070)


@pytest.fixture(scope="module")
def cycle_rollover():
    context = PolicyContext(policy_set=PolicySet.CYCLE, season_year=2025)
    done = simulate_remaining_season(run_auto_auction(generate_league(5150, context))).state
    return done, advance_season(done)


# ═══════════════════════════════════════════════════════════════
# START
# ═══════════════════════════════════════════════════════════════

class TestStartSeason:
    def test_from_preseason(self, preseason):
        started = start_season(preseason)
        assert started.phase is Phase.REGULAR_SEASON
        assert preseason.phase is Phase.PRESEASON
        assert len(started.fixtures) == len(preseason.fixtures)

    def test_rejected_during_auction(self):
        with pytest.raises(ValidationError) as exc:
            start_season(generate_league(8081))
        assert exc.value.message == "Season can only be started from preseason"

    def test_rejected_in_regular_season(self, auctioned):
        assert auctioned.phase is Phase.REGULAR_SEASON
        with pytest.raises(ValidationError):
            start_season(auctioned)


# ═══════════════════════════════════════════════════════════════
# WINDOWS
# ═══════════════════════════════════════════════════════════════

class TestWindows:
    def test_cannot_simulate_before_start(self, preseason):
        with pytest.raises(ValidationError):
            simulate_next_scheduled_window(preseason)
        with pytest.raises(ValidationError):
            simulate_next_scheduled_window(generate_league(8082))

    def test_first_window_plays_one_round(self, auctioned):
        window = simulate_next_scheduled_window(auctioned)
        first_date = min(f.scheduled_at for f in auctioned.fixtures)
        assert window.simulated_date == first_date
        assert len(window.played_matches) == 5
        assert all(m.scheduled_at == first_date for m in window.played_matches)
        assert not any(f.played for f in auctioned.fixtures)

    def test_standings_points_conserved(self, auctioned):
        state = auctioned
        for _ in range(3):
            state = simulate_next_scheduled_window(state).state
        played = [f for f in state.fixtures if f.played]
        assert sum(t.points for t in state.teams) == 2 * len(played)
        assert sum(t.matches_played for t in state.teams) == 2 * len(played)
        assert abs(sum(t.net_run_rate for t in state.teams)) < 1e-9

    def test_stats_match_fixtures(self, auctioned):
        state = auctioned
        for _ in range(2):
            state = simulate_next_scheduled_window(state).state
        rebuilt = rebuild_stats(state)
        assert {k: v.to_dict() for k, v in rebuilt.items()} == {k: v.to_dict() for k, v in state.stats.items()}

    def test_window_to_completion(self, auctioned):
        state = auctioned
        iterations = 0
        while state.phase is not Phase.COMPLETE and iterations < 400:
            state = simulate_next_scheduled_window(state).state
            iterations += 1

        assert state.phase is Phase.COMPLETE
        assert iterations < 400
        assert all(f.played for f in state.fixtures)
        assert len(state.fixtures) == 49
        assert validate(state) == []

    def test_complete_window_is_noop(self, completed):
        window = simulate_next_scheduled_window(completed)
        assert window.simulated_date is None
        assert window.played_matches == []
        assert window.state.phase is Phase.COMPLETE


# ═══════════════════════════════════════════════════════════════
# PLAYOFFS AND CHAMPION
# ═══════════════════════════════════════════════════════════════

class TestPlayoffs:
    def test_champion_won_final(self, completed):
        final = next(f for f in completed.fixtures if f.stage is FixtureStage.FINAL)
        assert final.played
        assert completed.champion_team_id == final.winner_team_id
        assert completed.champion_team_id is not None

    def test_playoffs_leave_table_alone(self, completed):
        league = [f for f in completed.fixtures if f.stage is FixtureStage.LEAGUE]
        assert sum(t.matches_played for t in completed.teams) == 2 * len(league)
        assert sum(t.points for t in completed.teams) == 2 * len(league)

    def test_every_playoff_has_winner(self, completed):
        for fixture in completed.fixtures:
            if fixture.stage.is_playoff:
                assert fixture.winner_team_id in (fixture.home_team_id, fixture.away_team_id)

    def test_enters_playoffs_phase(self, auctioned):
        state = auctioned
        while not any(f.stage.is_playoff for f in state.fixtures):
            state = simulate_next_scheduled_window(state).state
        assert state.phase is Phase.PLAYOFFS


# ═══════════════════════════════════════════════════════════════
# CANCELLABLE RUNS
# ═══════════════════════════════════════════════════════════════

class TestSeasonRuns:
    def test_checkpoints_progress(self, auctioned):
        checkpoints = list(iter_season_windows(auctioned))
        assert checkpoints[-1].state.phase is Phase.COMPLETE
        completed = [c.completed for c in checkpoints]
        assert completed == sorted(completed)
        assert completed[-1] == checkpoints[-1].total == 49
        assert all(c.played_matches for c in checkpoints)

    def test_cancel_between_dates(self, auctioned):
        seen = []

        def should_cancel():
            return len(seen) >= 3

        result = simulate_remaining_season(auctioned, on_progress=seen.append, should_cancel=should_cancel)
        assert result.cancelled
        assert result.windows == 3
        assert result.state.phase is Phase.REGULAR_SEASON
        played = [f for f in result.state.fixtures if f.played]
        assert len(played) == 15
        assert validate(result.state) == []

    def test_run_matches_window_loop(self, auctioned, completed):
        state = auctioned
        while state.phase is not Phase.COMPLETE:
            state = simulate_next_scheduled_window(state).state
        assert [f.winner_team_id for f in state.fixtures] == [f.winner_team_id for f in completed.fixtures]
        assert state.champion_team_id == completed.champion_team_id

    def test_remaining_on_complete_state(self, completed):
        result = simulate_remaining_season(completed)
        assert not result.cancelled
        assert result.windows == 0


# ═══════════════════════════════════════════════════════════════
# TEAM SETUP
# ═══════════════════════════════════════════════════════════════

class TestTeamSetup:
    def test_valid_setup(self, preseason):
        team = preseason.find_team(preseason.user_team_id)
        xi = team.roster_player_ids[:11]
        updated = update_user_team_setup(preseason, xi, xi[3], BowlingPreset.AGGRESSIVE)
        new_team = updated.find_team(updated.user_team_id)
        assert new_team.playing_xi == xi
        assert new_team.wicketkeeper_player_id == xi[3]
        assert new_team.bowling_preset is BowlingPreset.AGGRESSIVE
        assert team.bowling_preset is BowlingPreset.BALANCED

    def test_xi_must_be_eleven(self, preseason):
        team = preseason.find_team(preseason.user_team_id)
        xi = team.roster_player_ids[:10]
        with pytest.raises(ValidationError) as exc:
            update_user_team_setup(preseason, xi, xi[0])
        assert exc.value.message == "Playing XI must contain exactly 11 players"

    def test_unrostered_players_dropped(self, preseason):
        team = preseason.find_team(preseason.user_team_id)
        outsider = next(p.id for p in preseason.players if p.team_id != team.id)
        xi = team.roster_player_ids[:10] + [outsider]
        with pytest.raises(ValidationError):
            update_user_team_setup(preseason, xi, xi[0])

    def test_keeper_must_play(self, preseason):
        team = preseason.find_team(preseason.user_team_id)
        xi = team.roster_player_ids[:11]
        with pytest.raises(ValidationError) as exc:
            update_user_team_setup(preseason, xi, team.roster_player_ids[12])
        assert exc.value.message == "Wicketkeeper must be part of the playing XI"


# ═══════════════════════════════════════════════════════════════
# NEXT SEASON
# ═══════════════════════════════════════════════════════════════

class TestAdvanceSeason:
    def test_incomplete_rejected(self, auctioned):
        with pytest.raises(ValidationError) as exc:
            advance_season(auctioned)
        assert exc.value.message == "Current season must be complete before advancing"

    def test_legacy_regenerates(self, completed):
        nxt = advance_season(completed)
        assert nxt.phase is Phase.AUCTION
        assert nxt.metadata.season_number == 2
        assert nxt.metadata.seed == (completed.metadata.seed + 10007) % 1_000_000_000
        assert nxt.metadata.created_at.startswith("2026-01-01")
        assert nxt.champion_team_id is None
        assert nxt.fixtures == []
        assert all(not t.roster_player_ids for t in nxt.teams)
        assert nxt.find_team(nxt.user_team_id) is not None

    def test_mini_carryover(self, cycle_rollover):
        done, nxt = cycle_rollover
        assert done.phase is Phase.COMPLETE

        assert nxt.phase is Phase.AUCTION
        assert nxt.metadata.season_number == 2
        assert nxt.metadata.created_at.startswith("2026-01-01")
        assert nxt.auction.allow_rtm
        assert nxt.fixtures == [] and nxt.stats == {}
        assert validate(nxt) == []

        old_rosters = {t.id: t.roster_player_ids for t in done.teams}
        by_id = nxt.player_by_id()
        for team in nxt.teams:
            before = len(old_rosters[team.id])
            assert len(team.roster_player_ids) == max(18, before - 4)
            assert set(team.roster_player_ids) <= set(old_rosters[team.id])
            assert team.points == team.wins == team.losses == 0
            assert team.budget_remaining == max(
                0, 12_000 - sum(by_id[pid].base_price for pid in team.roster_player_ids)
            )

        released = [p for p in nxt.players if p.previous_team_id is not None]
        expected = sum(len(old_rosters[t.id]) - len(t.roster_player_ids) for t in nxt.teams)
        assert len(released) == expected
        assert all(p.team_id is None for p in released)
        queued = {e.player_id for e in nxt.auction.entries}
        assert all(by_id[pid].team_id is None for pid in queued)
        assert any(p.id.startswith("s2-player-") for p in nxt.players)

        again = run_auto_auction(nxt)
        assert again.auction.complete
        assert validate(again) == []

    def test_unsigned_veterans_leave_pool(self, cycle_rollover):
        done, nxt = cycle_rollover
        unsigned = {p.id for p in done.players if p.team_id is None and not p.is_prospect}
        remaining = {p.id for p in nxt.players}
        assert not unsigned & remaining
        for player in nxt.players:
            assert player.team_id is not None or player.previous_team_id is not None or player.is_prospect

    def test_second_rollover_keeps_pool_bounded(self, cycle_rollover):
        _, nxt = cycle_rollover
        second = simulate_remaining_season(run_auto_auction(nxt)).state
        third = advance_season(second)
        rostered = sum(len(t.roster_player_ids) for t in third.teams)
        unsigned = [p for p in third.players if p.team_id is None]
        released = [p for p in unsigned if p.previous_team_id is not None]
        prospects = [p for p in unsigned if p.is_prospect]
        assert len(third.players) == rostered + len(set(p.id for p in released + prospects))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
