#!/usr/bin/env python3
"""
League Generator Tests
======================

Franchise naming, the player pool, prospects, auction ordering and
pre-seeded leagues.
"""

from dataclasses import replace

import pytest

from league_engine.errors import ValidationError
from league_engine.generator import (
    MARQUEE_LOTS,
    RESERVED_TEAM_NAMES,
    generate_league,
    generate_players,
    generate_seeded_league,
    generate_teams,
    generate_young_players,
    order_players_for_auction,
    prospect_count,
    select_balanced_xi,
)
from league_engine.invariants import validate
from league_engine.models import AuctionPhase, DOMESTIC_COUNTRY_TAG, EntryStatus, Phase, PlayerRole, PolicySet
from league_engine.policy import PolicyContext


@pytest.fixture(scope="module")
def league():
    return generate_league(4242)


# ═══════════════════════════════════════════════════════════════
# TEAMS
# ═══════════════════════════════════════════════════════════════

class TestTeams:
    def test_ten_unique_franchises(self, league):
        names = [t.name for t in league.teams]
        assert len(names) == 10
        assert len(set(names)) == 10
        assert not set(names) & RESERVED_TEAM_NAMES

    def test_full_purse_and_empty_rosters(self, league):
        for team in league.teams:
            assert team.budget_remaining == league.config.auction_budget
            assert team.roster_player_ids == []
            assert team.playing_xi == []

    def test_too_many_teams_rejected(self, league):
        config_copy = replace(league.config, team_count=101)
        with pytest.raises(ValidationError):
            generate_teams(config_copy)

    def test_user_gets_first_team(self, league):
        assert league.user_team_id == league.teams[0].id


# ═══════════════════════════════════════════════════════════════
# PLAYERS
# ═══════════════════════════════════════════════════════════════

class TestPlayers:
    def test_pool_size(self, league):
        assert len(league.players) == league.config.team_count * league.config.max_squad_size

    def test_unique_ids(self, league):
        ids = [p.id for p in league.players]
        assert len(ids) == len(set(ids))

    def test_ratings_in_range(self, league):
        for player in league.players:
            for skill in (player.ratings.batting, player.ratings.bowling, player.ratings.fielding):
                assert 1 <= skill.overall <= 99
                assert all(1 <= v <= 99 for v in skill.traits.values())
            assert 1 <= player.ratings.temperament <= 99
            assert 1 <= player.ratings.fitness <= 99

    def test_prospect_slice(self, league):
        prospects = [p for p in league.players if p.is_prospect]
        assert len(prospects) == prospect_count(len(league.players), league.config.team_count)
        for player in prospects:
            assert not player.capped
            assert 18 <= player.age <= 21
            potential = player.development.potential
            assert potential.batting_overall >= player.ratings.batting.overall
            assert potential.bowling_overall >= player.ratings.bowling.overall
            assert potential.fielding_overall >= player.ratings.fielding.overall

    def test_keepers_have_gloves(self, league):
        for player in league.players:
            if player.role is PlayerRole.WICKETKEEPER and not player.is_prospect:
                assert player.ratings.fielding.traits["wicketkeeping"] >= 70

    def test_young_players_use_prefix(self, league):
        youth = generate_young_players(league.config, id_prefix="s2-player")
        assert youth
        assert all(p.is_prospect for p in youth)
        assert all(p.id.startswith("s2-player-") for p in youth)

    def test_deterministic(self):
        a = generate_players(generate_league(77).config)
        b = generate_players(generate_league(77).config)
        assert [p.to_dict() for p in a] == [p.to_dict() for p in b]


# ═══════════════════════════════════════════════════════════════
# AUCTION QUEUE
# ═══════════════════════════════════════════════════════════════

class TestAuctionQueue:
    def test_marquee_first(self, league):
        entries = league.auction.entries
        marquee = [e for e in entries[:MARQUEE_LOTS]]
        assert all(e.phase is AuctionPhase.MARQUEE for e in marquee)
        by_id = league.player_by_id()
        lowest_marquee = min(by_id[e.player_id].overall for e in marquee)
        rest = [by_id[e.player_id].overall for e in entries[MARQUEE_LOTS:]]
        assert all(overall <= lowest_marquee for overall in rest)

    def test_uncapped_overseas_excluded(self, league):
        queued = {e.player_id for e in league.auction.entries}
        for player in league.players:
            if not player.capped and player.country_tag != DOMESTIC_COUNTRY_TAG:
                assert player.id not in queued

    def test_late_lots_accelerated(self, league):
        entries = league.auction.entries
        if len(entries) > 150:
            assert entries[150].phase is AuctionPhase.ACCELERATED_2
        assert entries[75].phase is AuctionPhase.ACCELERATED_1

    def test_first_lot_open(self, league):
        auction = league.auction
        assert auction.current_player_id == auction.entries[0].player_id
        assert auction.awaiting_user_action
        assert all(e.status is EntryStatus.PENDING for e in auction.entries)

    def test_order_is_pure(self, league):
        first = order_players_for_auction(league.players)
        second = order_players_for_auction(league.players)
        assert [e.player_id for e in first] == [e.player_id for e in second]


# ═══════════════════════════════════════════════════════════════
# LEAGUES
# ═══════════════════════════════════════════════════════════════

class TestLeagues:
    def test_same_seed_same_league(self):
        assert generate_league(555).to_dict() == generate_league(555).to_dict()

    def test_new_league_validates(self, league):
        assert league.phase is Phase.AUCTION
        assert validate(league) == []

    def test_cycle_policy_metadata(self):
        state = generate_league(9, PolicyContext(policy_set=PolicySet.CYCLE, season_year=2026))
        assert state.config.policy_set is PolicySet.CYCLE
        assert state.metadata.created_at.startswith("2026-01-01")
        assert state.auction.allow_rtm

    def test_seeded_league(self):
        state = generate_seeded_league(2024)
        assert state.phase is Phase.PRESEASON
        assert state.auction.complete
        assert state.fixtures
        assert validate(state) == []
        for team in state.teams:
            assert 18 <= len(team.roster_player_ids) <= 25
            assert len(team.playing_xi) == 11
            assert team.wicketkeeper_player_id in team.playing_xi
            assert team.budget_remaining >= 0

    def test_balanced_xi_prefers_keeper(self, league):
        roster = [p for p in league.players if p.role is not PlayerRole.WICKETKEEPER][:14]
        keeper = next(p for p in league.players if p.role is PlayerRole.WICKETKEEPER)
        xi, gloves = select_balanced_xi(roster + [keeper])
        assert len(xi) == 11
        assert gloves == keeper.id
        assert keeper.id in xi


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
