"""
Auction Policy Resolver
=======================

Pure lookup of the auction rules in force for a season.

Two policy sets exist:
  - "legacy-default"  one fixed free-for-all mega auction, reference year 2025
  - "cycle-2025"      a three-year cycle: 2025 mega (retentions), 2026 and
                      2027 mini auctions with Right to Match and rebound

Season years outside the known cycle are clamped to its ends, never rejected.
Nothing here touches a GameState except ``policy_context_from_state``, which
only reads the policy set and the season-start year.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple

from league_engine.models import AuctionPhase, PolicySet


class AuctionType(str, Enum):
    MEGA = "mega"
    MINI = "mini"


@dataclass(frozen=True)
class BidIncrementBand:
    min_bid: int
    increment: int


@dataclass(frozen=True)
class AuctionPolicy:
    key: str
    auction_type: AuctionType
    purse: int
    squad_min: int
    squad_max: int
    overseas_cap: int
    minimum_spend: int
    minimum_player_base: int
    retention_limit: int
    retention_enabled: bool
    rtm_enabled: bool
    rtm_rebound_enabled: bool
    force_fill_to_minimum_squad: bool
    bid_increment_bands: Tuple[BidIncrementBand, ...]
    phase_increment_floor: Dict[AuctionPhase, int] = field(hash=False)


@dataclass(frozen=True)
class ResolvedPolicy:
    season_year: int
    auction_type: AuctionType
    policy: AuctionPolicy


@dataclass
class PolicyContext:
    """What the caller knows about the season; resolution uses the first field that is set."""
    policy_set: PolicySet = PolicySet.LEGACY
    season_year: Optional[int] = None
    season_index: Optional[int] = None
    cycle_marker: Optional[int] = None


# ═══════════════════════════════════════════════════════════════
# POLICY TABLES
# ═══════════════════════════════════════════════════════════════

FALLBACK_SEASON_YEAR = 2025
CYCLE_BASE_YEAR = 2024

LEGACY_DEFAULT_POLICY = AuctionPolicy(
    key="legacy-default",
    auction_type=AuctionType.MEGA,
    purse=12_000,
    squad_min=18,
    squad_max=25,
    overseas_cap=8,
    minimum_spend=9_000,
    minimum_player_base=30,
    retention_limit=0,
    retention_enabled=False,
    rtm_enabled=False,
    rtm_rebound_enabled=False,
    force_fill_to_minimum_squad=True,
    bid_increment_bands=(
        BidIncrementBand(0, 5),
        BidIncrementBand(100, 20),
        BidIncrementBand(200, 25),
        BidIncrementBand(500, 50),
    ),
    phase_increment_floor={
        AuctionPhase.MARQUEE: 0,
        AuctionPhase.CAPPED: 0,
        AuctionPhase.UNCAPPED: 0,
        AuctionPhase.ACCELERATED_1: 20,
        AuctionPhase.ACCELERATED_2: 50,
    },
)

POLICY_BY_YEAR: Dict[int, AuctionPolicy] = {
    2025: replace(
        LEGACY_DEFAULT_POLICY,
        key="cycle-2025-mega",
        auction_type=AuctionType.MEGA,
        retention_limit=6,
        retention_enabled=True,
    ),
    2026: replace(
        LEGACY_DEFAULT_POLICY,
        key="cycle-2026-mini",
        auction_type=AuctionType.MINI,
        retention_limit=6,
        rtm_enabled=True,
        rtm_rebound_enabled=True,
    ),
    2027: replace(
        LEGACY_DEFAULT_POLICY,
        key="cycle-2027-mini",
        auction_type=AuctionType.MINI,
        retention_limit=6,
        rtm_enabled=True,
        rtm_rebound_enabled=True,
    ),
}

CYCLE_YEARS: List[int] = sorted(POLICY_BY_YEAR)


# ═══════════════════════════════════════════════════════════════
# RESOLUTION
# ═══════════════════════════════════════════════════════════════

def _clamp_to_cycle(year: int) -> int:
    if year in POLICY_BY_YEAR:
        return year
    if year < CYCLE_YEARS[0]:
        return CYCLE_YEARS[0]
    return CYCLE_YEARS[-1]


def derive_season_year(context: PolicyContext) -> int:
    if context.season_year is not None:
        return int(context.season_year)
    if context.season_index is not None:
        return CYCLE_BASE_YEAR + max(1, int(context.season_index))
    if context.cycle_marker is not None:
        return CYCLE_BASE_YEAR + max(1, int(context.cycle_marker))
    return FALLBACK_SEASON_YEAR


def resolve_policy(context: Optional[PolicyContext] = None) -> ResolvedPolicy:
    """Resolve the auction policy for a season.  Callable before any league exists."""
    if context is None:
        context = PolicyContext()

    if PolicySet(context.policy_set) is PolicySet.LEGACY:
        return ResolvedPolicy(
            season_year=FALLBACK_SEASON_YEAR,
            auction_type=LEGACY_DEFAULT_POLICY.auction_type,
            policy=LEGACY_DEFAULT_POLICY,
        )

    season_year = _clamp_to_cycle(derive_season_year(context))
    policy = POLICY_BY_YEAR[season_year]
    return ResolvedPolicy(season_year=season_year, auction_type=policy.auction_type, policy=policy)


def season_year_from_iso(iso_value: str) -> int:
    try:
        return datetime.fromisoformat(iso_value.replace("Z", "+00:00")).year
    except (ValueError, AttributeError):
        return FALLBACK_SEASON_YEAR


def policy_context_from_state(state) -> PolicyContext:
    """Policy set from config plus the season-start year from ``metadata.created_at``."""
    return PolicyContext(
        policy_set=state.config.policy_set,
        season_year=season_year_from_iso(state.metadata.created_at),
    )


def resolve_policy_for_state(state) -> ResolvedPolicy:
    return resolve_policy(policy_context_from_state(state))


# ═══════════════════════════════════════════════════════════════
# AUCTION HOOKS
# ═══════════════════════════════════════════════════════════════

def get_bid_increment(current_bid: int, phase: AuctionPhase, policy: AuctionPolicy) -> int:
    """Increment over ``current_bid``: highest band at or below the bid, floored per phase."""
    if phase is AuctionPhase.COMPLETE:
        return 0

    bands = sorted(policy.bid_increment_bands, key=lambda b: b.min_bid)
    increment = bands[0].increment if bands else 1
    for band in bands:
        if current_bid < band.min_bid:
            break
        increment = band.increment

    return max(increment, policy.phase_increment_floor.get(phase, 0))


def auction_opening_message(resolved: ResolvedPolicy) -> str:
    policy = resolved.policy
    label = f"{resolved.season_year} {resolved.auction_type.value}"
    if not policy.retention_enabled and not policy.rtm_enabled:
        return f"Free-for-all opening auction ({label}): no RTM or retention rights."
    if policy.retention_enabled:
        return f"{label} auction: retention rights enabled (max {policy.retention_limit})."
    rebound = " with rebound" if policy.rtm_rebound_enabled else ""
    return f"{label} auction: RTM enabled{rebound}."


@dataclass
class RetentionState:
    enabled: bool
    max_retentions: int
    phase: str  # "not-applicable" | "pending"


def create_retention_state(resolved: ResolvedPolicy) -> RetentionState:
    if not resolved.policy.retention_enabled:
        return RetentionState(enabled=False, max_retentions=0, phase="not-applicable")
    return RetentionState(enabled=True, max_retentions=resolved.policy.retention_limit, phase="pending")


@dataclass
class RtmDecision:
    enabled: bool
    allow_rebound: bool
    phase: str  # "disabled" | "completed" | "available"
    incumbent_team_id: Optional[str]
    winning_team_id: str
    final_bid: int

    @property
    def available(self) -> bool:
        return self.phase == "available"


def create_rtm_decision(
    resolved: ResolvedPolicy,
    winning_team_id: str,
    final_bid: int,
    incumbent_team_id: Optional[str],
) -> RtmDecision:
    """Whether the player's previous team may match ``final_bid`` before the sale closes."""
    policy = resolved.policy
    if not policy.rtm_enabled:
        phase = "disabled"
    elif not incumbent_team_id or incumbent_team_id == winning_team_id:
        phase = "completed"
    else:
        phase = "available"

    return RtmDecision(
        enabled=policy.rtm_enabled,
        allow_rebound=policy.rtm_enabled and policy.rtm_rebound_enabled,
        phase=phase,
        incumbent_team_id=incumbent_team_id,
        winning_team_id=winning_team_id,
        final_bid=final_bid,
    )
