"""
Franchise T20 League Simulation Engine
"""

from .errors import (
    LeagueError,
    ValidationError,
    SemanticIntegrityError,
    InvalidRangeError,
    EmptyInputError,
    ImportRejectedError,
    StorageError,
)
from .prng import Prng, create_prng
from .models import (
    GameState,
    Team,
    Player,
    MatchResult,
    Phase,
    AuctionPhase,
    BowlingPreset,
    FixtureStage,
    PolicySet,
    PlayoffTieBreak,
)
from .policy import PolicyContext, AuctionType, resolve_policy, get_bid_increment, create_retention_state, create_rtm_decision
from .generator import generate_league, generate_seeded_league, generate_teams, generate_players, generate_young_players, order_players_for_auction
from .auction import UserAction, progress_auction, run_auto_auction, skip_to_player, pending_player_ids
from .match_sim import simulate_match
from .schedule import generate_round_robin_fixtures, rank_teams, update_playoff_bracket
from .season import (
    start_season,
    simulate_next_scheduled_window,
    iter_season_windows,
    simulate_remaining_season,
    advance_season,
    update_user_team_setup,
)
from .invariants import validate, assert_semantic_integrity
from .contracts import decode_save, encode_save, upgrade_document

__all__ = [
    "LeagueError",
    "ValidationError",
    "SemanticIntegrityError",
    "InvalidRangeError",
    "EmptyInputError",
    "ImportRejectedError",
    "StorageError",
    "Prng",
    "create_prng",
    "GameState",
    "Team",
    "Player",
    "MatchResult",
    "Phase",
    "AuctionPhase",
    "BowlingPreset",
    "FixtureStage",
    "PolicySet",
    "PlayoffTieBreak",
    "PolicyContext",
    "AuctionType",
    "resolve_policy",
    "get_bid_increment",
    "create_retention_state",
    "create_rtm_decision",
    "generate_league",
    "generate_seeded_league",
    "generate_teams",
    "generate_players",
    "generate_young_players",
    "order_players_for_auction",
    "UserAction",
    "progress_auction",
    "run_auto_auction",
    "skip_to_player",
    "pending_player_ids",
    "simulate_match",
    "generate_round_robin_fixtures",
    "rank_teams",
    "update_playoff_bracket",
    "start_season",
    "simulate_next_scheduled_window",
    "iter_season_windows",
    "simulate_remaining_season",
    "advance_season",
    "update_user_team_setup",
    "validate",
    "assert_semantic_integrity",
    "decode_save",
    "encode_save",
    "upgrade_document",
]
