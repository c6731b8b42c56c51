"""
League Generator
================

Deterministic procedural generation of a league from a seed:

- Franchises: city + brand names, unique and clear of a reserved deny-list
- Player pool: team_count x squad_max players, rated by role archetype
- Youth prospects: the trailing slice of the pool, regressed below their
  archetype with a potential ceiling and a first-class projection
- Auction queue: marquee lots first, then capped and uncapped domestic players
  grouped by role, with late lots pushed into the accelerated rounds
- Pre-seeded leagues: the whole pool distributed across teams with overseas
  caps, an implied spend per team and a balanced starting XI

Team names draw from ``Prng(season_seed)``, players from ``Prng(season_seed + 101)``.
Draw order inside a player is fixed; reordering it changes every league.
"""

import copy
import logging
from typing import Dict, List, Optional, Sequence, Tuple

from league_engine.errors import ValidationError
from league_engine.models import (
    AuctionEntry,
    AuctionPhase,
    AuctionState,
    BowlingRating,
    BowlingStyle,
    DOMESTIC_COUNTRY_TAG,
    Development,
    EntryStatus,
    FirstClassProjection,
    GameState,
    LastSeasonStats,
    LeagueConfig,
    Phase,
    Player,
    PlayerRatings,
    PlayerRole,
    Potential,
    SaveMetadata,
    SkillRating,
    Team,
    round_half_up,
)
from league_engine.policy import (
    PolicyContext,
    ResolvedPolicy,
    auction_opening_message,
    resolve_policy,
)
from league_engine.prng import Prng, create_prng

_log = logging.getLogger("league_engine.generator")


# ═══════════════════════════════════════════════════════════════
# NAME POOLS AND TABLES
# ═══════════════════════════════════════════════════════════════

RESERVED_TEAM_NAMES = frozenset({
    "Mumbai Indians",
    "Chennai Super Kings",
    "Royal Challengers Bangalore",
    "Kolkata Knight Riders",
    "Sunrisers Hyderabad",
    "Rajasthan Royals",
    "Delhi Capitals",
    "Punjab Kings",
    "Lucknow Super Giants",
    "Gujarat Titans",
})

CITY_POOL = [
    "Navapur", "Suryanagar", "Rajkotta", "Vindhara", "Malpura",
    "Kaveri", "Kalinga", "Panchal", "Narmad", "Ujjira",
]
BRAND_POOL = [
    "Strikers", "Falcons", "Chargers", "Gladiators", "Mariners",
    "Rangers", "Cyclones", "Comets", "Titans", "Warhawks",
]
TEAM_COLORS = [
    "#0b1f3a", "#9d1d20", "#1f6f8b", "#f4a300", "#2f5233",
    "#702963", "#4b6cb7", "#7b241c", "#2e4053", "#0e6655",
]

# Weighted toward domestic players: 11 of 19 draws are "IN".
COUNTRY_TAGS = ["IN"] * 11 + ["BD", "SL", "AFG", "AUS", "NZ", "ENG", "SA", "WI"]

FIRST_NAMES = [
    "Aariv", "Kabir", "Ishaan", "Arjun", "Sam", "Noah", "Liam", "Owen", "Finn", "Theo",
    "Ethan", "Jacob", "Mason", "Aiden", "Rayan", "Tariq", "Kane", "Tristan", "Marco", "Keon",
]
LAST_NAMES = [
    "Madan", "Rawat", "Bisht", "Perera", "Rahman", "Khan", "Patel", "Sharma", "Clarke", "Turner",
    "Miller", "Smith", "Brown", "Taylor", "OConnell", "van Dyk", "Samuels", "Ndlovu", "Fletcher", "Reid",
]

BASE_PRICE_TIERS = [200, 150, 125, 100, 75, 50, 40, 30]

ROLE_WEIGHTS: List[Tuple[PlayerRole, float]] = [
    (PlayerRole.BATTER, 0.34),
    (PlayerRole.BOWLER, 0.31),
    (PlayerRole.ALLROUNDER, 0.25),
    (PlayerRole.WICKETKEEPER, 0.10),
]

MARQUEE_LOTS = 16
ACCELERATED_1_FROM = 75
ACCELERATED_2_FROM = 150

DEFAULT_TEAM_COUNT = 10
PLAYER_SEED_OFFSET = 101
MARKET_SEED_OFFSET = 211

# Balanced XI template for pre-seeded rosters, filled in this order.
XI_TEMPLATE: List[Tuple[PlayerRole, int]] = [
    (PlayerRole.WICKETKEEPER, 1),
    (PlayerRole.BOWLER, 3),
    (PlayerRole.ALLROUNDER, 2),
    (PlayerRole.BATTER, 4),
]


# ═══════════════════════════════════════════════════════════════
# RATING HELPERS
# ═══════════════════════════════════════════════════════════════

def _clamp(value, lo=20, hi=99):
    return max(lo, min(hi, value))


def _mean(values: Sequence[int]) -> int:
    return round_half_up(sum(values) / len(values))


def _make_skill(base: int, offsets: Dict[str, int]) -> SkillRating:
    traits = {name: _clamp(base + offset) for name, offset in offsets.items()}
    return SkillRating(overall=_mean(list(traits.values())), traits=traits)


def _shift_skill(skill: SkillRating, delta: int, lo: int = 20, hi: int = 99) -> SkillRating:
    traits = {name: _clamp(value + delta, lo, hi) for name, value in skill.traits.items()}
    overall = _mean(list(traits.values()))
    if isinstance(skill, BowlingRating):
        return BowlingRating(overall=overall, traits=traits, style=skill.style)
    return SkillRating(overall=overall, traits=traits)


def _make_ratings(base: int, style: BowlingStyle) -> PlayerRatings:
    batting = _make_skill(base + 6, {
        "timing": 8,
        "power": 4,
        "placement": 5,
        "running_between_wickets": 2,
        "composure": 3,
    })
    pace = style is BowlingStyle.PACE
    bowling = _make_skill(base - 5 + (4 if pace else 2), {
        "accuracy": 6,
        "movement": 7 if pace else 3,
        "variations": 4 if pace else 7,
        "control": 5,
        "death_execution": 2,
    })
    fielding = _make_skill(base - 2, {
        "catching": 5,
        "ground_fielding": 4,
        "throwing": 3,
        "wicketkeeping": -4,
    })
    return PlayerRatings(
        batting=batting,
        bowling=BowlingRating(overall=bowling.overall, traits=bowling.traits, style=style),
        fielding=fielding,
        temperament=_clamp(base + 1),
        fitness=_clamp(base + 5),
    )


def _pick_role(roll: float) -> PlayerRole:
    cumulative = 0.0
    for role, weight in ROLE_WEIGHTS:
        cumulative += weight
        if roll <= cumulative:
            return role
    return PlayerRole.BATTER


def _tune_for_role(ratings: PlayerRatings, role: PlayerRole) -> PlayerRatings:
    tuned = copy.deepcopy(ratings)
    if role is PlayerRole.BATTER:
        tuned.batting = _shift_skill(tuned.batting, 6, 35, 99)
        tuned.bowling = _shift_skill(tuned.bowling, -12, 20, 75)
        tuned.fielding = _shift_skill(tuned.fielding, 1)
    elif role is PlayerRole.BOWLER:
        tuned.batting = _shift_skill(tuned.batting, -11, 20, 76)
        tuned.bowling = _shift_skill(tuned.bowling, 8, 42, 99)
        tuned.fielding = _shift_skill(tuned.fielding, 1)
    elif role is PlayerRole.WICKETKEEPER:
        tuned.batting = _shift_skill(tuned.batting, -1, 32, 89)
        tuned.bowling = _shift_skill(tuned.bowling, -16, 20, 70)
        tuned.fielding = _shift_skill(tuned.fielding, 4, 35, 99)
        tuned.fielding.traits["wicketkeeping"] = _clamp(tuned.fielding.traits["wicketkeeping"] + 22, 70, 99)
        tuned.fielding.overall = _mean(list(tuned.fielding.traits.values()))
    else:
        tuned.batting = _shift_skill(tuned.batting, 1, 45, 90)
        tuned.bowling = _shift_skill(tuned.bowling, 1, 45, 88)
        tuned.fielding = _shift_skill(tuned.fielding, 2, 35, 90)
    return tuned


def _soften_elite_allrounder(role: PlayerRole, ratings: PlayerRatings, prng: Prng) -> PlayerRatings:
    """Two-way stars stay rare: most 88+/84+ allrounders lose a few points on each side."""
    if role is not PlayerRole.ALLROUNDER:
        return ratings
    if ratings.batting.overall < 88 or ratings.bowling.overall < 84 or prng.next() > 0.7:
        return ratings
    softened = copy.deepcopy(ratings)
    softened.batting = _shift_skill(ratings.batting, -prng.next_int(3, 7), 45, 96)
    softened.bowling = _shift_skill(ratings.bowling, -prng.next_int(3, 7), 45, 95)
    return softened


def _regress_prospect(ratings: PlayerRatings, prng: Prng) -> PlayerRatings:
    batting_penalty = prng.next_int(6, 14)
    bowling_penalty = prng.next_int(6, 14)
    fielding_penalty = prng.next_int(4, 11)
    return PlayerRatings(
        batting=_shift_skill(ratings.batting, -batting_penalty, 30, 90),
        bowling=_shift_skill(ratings.bowling, -bowling_penalty, 30, 90),
        fielding=_shift_skill(ratings.fielding, -fielding_penalty, 30, 90),
        temperament=_clamp(ratings.temperament - prng.next_int(4, 12), 30, 95),
        fitness=_clamp(ratings.fitness - prng.next_int(0, 6), 35, 95),
    )


def _project_potential(ratings: PlayerRatings, prng: Prng) -> Potential:
    return Potential(
        batting_overall=_clamp(ratings.batting.overall + prng.next_int(8, 20), 35, 99),
        bowling_overall=_clamp(ratings.bowling.overall + prng.next_int(8, 20), 35, 99),
        fielding_overall=_clamp(ratings.fielding.overall + prng.next_int(7, 16), 35, 99),
        temperament=_clamp(ratings.temperament + prng.next_int(5, 14), 35, 99),
        fitness=_clamp(ratings.fitness + prng.next_int(4, 10), 40, 99),
    )


def _project_first_class(role: PlayerRole, potential: Potential) -> FirstClassProjection:
    batting_factor = {PlayerRole.BOWLER: 0.55, PlayerRole.ALLROUNDER: 0.88}.get(role, 1.0)
    bowling_factor = {PlayerRole.BATTER: 0.45, PlayerRole.ALLROUNDER: 0.88}.get(role, 1.0)
    return FirstClassProjection(
        runs=max(120, round_half_up((potential.batting_overall - 30) * 9 * batting_factor)),
        wickets=max(6, round_half_up((potential.bowling_overall - 30) * bowling_factor / 2.1)),
        strike_rate=_clamp(96 + (potential.batting_overall - 45) * 1.05, 75, 185),
        economy=max(4.0, min(8.8, round(8.6 - (potential.bowling_overall - 50) * 0.028, 1))),
    )


def _last_season_stats(prng: Prng, role: PlayerRole, ratings: PlayerRatings) -> LastSeasonStats:
    matches = prng.next_int(6, 16)
    batting = ratings.batting.overall
    bowling = ratings.bowling.overall

    runs_base = max(0, round_half_up((batting - 35) * matches * (0.45 if role is PlayerRole.BOWLER else 0.95) / 2))
    wickets_base = max(0, round_half_up((bowling - 35) * matches * (0.35 if role is PlayerRole.BATTER else 0.95) / 18))

    return LastSeasonStats(
        matches=matches,
        runs=runs_base + prng.next_int(0, 90),
        wickets=wickets_base + prng.next_int(0, 5 if role is PlayerRole.BOWLER else 3),
        strike_rate=_clamp(90 + (batting - 40) * 1.1 + prng.next_int(-12, 18), 70, 220),
        economy=max(4.0, min(12.0, round(9.2 - (bowling - 45) * 0.04 + prng.next_int(-8, 8) / 10, 1))),
    )


def prospect_count(pool_size: int, team_count: int) -> int:
    target = max(team_count * 2, round_half_up(pool_size * 0.08))
    return max(6, min(target, pool_size // 5))


# ═══════════════════════════════════════════════════════════════
# TEAMS AND PLAYERS
# ═══════════════════════════════════════════════════════════════

def generate_teams(config: LeagueConfig) -> List[Team]:
    if config.team_count > len(CITY_POOL) * len(BRAND_POOL):
        raise ValidationError(f"Cannot name {config.team_count} unique franchises")

    prng = create_prng(config.season_seed)
    used = set()
    teams = []

    for index in range(config.team_count):
        city = CITY_POOL[index % len(CITY_POOL)]
        name = ""
        while not name or name in used or name in RESERVED_TEAM_NAMES:
            brand = BRAND_POOL[prng.next_int(0, len(BRAND_POOL) - 1)]
            name = f"{city} {brand}"
        used.add(name)

        teams.append(Team(
            id=f"team-{index + 1}",
            city=city,
            name=name,
            short_name=f"{city[:3].upper()}{brand[:1].upper()}",
            color=TEAM_COLORS[index % len(TEAM_COLORS)],
            budget_remaining=config.auction_budget,
        ))

    return teams


def generate_players(config: LeagueConfig, id_prefix: str = "player") -> List[Player]:
    prng = create_prng(config.season_seed + PLAYER_SEED_OFFSET)
    pool_size = config.team_count * config.max_squad_size
    first_prospect = pool_size - prospect_count(pool_size, config.team_count)
    players = []

    for index in range(pool_size):
        base = prng.next_int(35, 88)
        style = BowlingStyle.PACE if prng.next() > 0.5 else BowlingStyle.SPIN
        role = _pick_role(prng.next())
        tuned = _soften_elite_allrounder(role, _tune_for_role(_make_ratings(base, style), role), prng)

        country = prng.pick(COUNTRY_TAGS)
        is_prospect = index >= first_prospect
        ratings = _regress_prospect(tuned, prng) if is_prospect else tuned
        capped = False if is_prospect else (country != DOMESTIC_COUNTRY_TAG or prng.next() > 0.45)
        potential = _project_potential(ratings, prng) if is_prospect else None

        first_name = prng.pick(FIRST_NAMES)
        last_name = prng.pick(LAST_NAMES)
        age = prng.next_int(18, 21) if is_prospect else prng.next_int(23, 35)
        base_price = prng.next_int(20, 40) if is_prospect else prng.pick(BASE_PRICE_TIERS)
        stats = _last_season_stats(prng, role, ratings)

        development = None
        if potential is not None:
            development = Development(
                is_prospect=True,
                potential=potential,
                first_class_projection=_project_first_class(role, potential),
            )

        players.append(Player(
            id=f"{id_prefix}-{index + 1}",
            first_name=first_name,
            last_name=last_name,
            country_tag=country,
            capped=capped,
            role=role,
            age=age,
            base_price=base_price,
            last_season_stats=stats,
            ratings=ratings,
            development=development,
        ))

    return players


def generate_young_players(config: LeagueConfig, id_prefix: str = "player") -> List[Player]:
    """Only the prospect slice of a freshly generated pool (a new youth class)."""
    return [p for p in generate_players(config, id_prefix) if p.is_prospect]


def order_players_for_auction(players: List[Player]) -> List[AuctionEntry]:
    by_overall = sorted(players, key=lambda p: -p.overall)
    marquee = by_overall[:min(MARQUEE_LOTS, len(by_overall))]
    marquee_ids = {p.id for p in marquee}

    remaining = [p for p in players if p.id not in marquee_ids]
    capped = [p for p in remaining if p.capped]
    uncapped = [p for p in remaining if not p.capped and p.country_tag == DOMESTIC_COUNTRY_TAG]

    def grouped(pool: List[Player]) -> List[Player]:
        groups = [
            [p for p in pool if p.role is PlayerRole.BATTER],
            [p for p in pool if p.role is PlayerRole.ALLROUNDER],
            [p for p in pool if p.role is PlayerRole.WICKETKEEPER],
            [p for p in pool if p.role is PlayerRole.BOWLER and p.ratings.bowling.style is BowlingStyle.PACE],
            [p for p in pool if p.role is PlayerRole.BOWLER and p.ratings.bowling.style is BowlingStyle.SPIN],
        ]
        ordered = []
        for group in groups:
            ordered.extend(sorted(group, key=lambda p: -p.overall))
        return ordered

    queue = [(p, AuctionPhase.MARQUEE) for p in marquee]
    queue += [(p, AuctionPhase.CAPPED) for p in grouped(capped)]
    queue += [(p, AuctionPhase.UNCAPPED) for p in grouped(uncapped)]

    entries = []
    for index, (player, phase) in enumerate(queue):
        if index >= ACCELERATED_2_FROM:
            phase = AuctionPhase.ACCELERATED_2
        elif index >= ACCELERATED_1_FROM:
            phase = AuctionPhase.ACCELERATED_1
        entries.append(AuctionEntry(player_id=player.id, phase=phase))
    return entries


# ═══════════════════════════════════════════════════════════════
# LEAGUE CREATION
# ═══════════════════════════════════════════════════════════════

def season_start_iso(season_year: int) -> str:
    return f"{season_year}-01-01T00:00:00.000Z"


def build_config(seed: int, resolved: ResolvedPolicy, context: PolicyContext) -> LeagueConfig:
    return LeagueConfig(
        team_count=DEFAULT_TEAM_COUNT,
        policy_set=context.policy_set,
        auction_budget=resolved.policy.purse,
        min_squad_size=resolved.policy.squad_min,
        max_squad_size=resolved.policy.squad_max,
        season_seed=seed,
    )


def open_auction(entries: List[AuctionEntry], players: List[Player], resolved: ResolvedPolicy) -> AuctionState:
    """Auction with its first lot already open and waiting on the user."""
    first = entries[0] if entries else None
    base_by_id = {p.id: p.base_price for p in players}
    return AuctionState(
        entries=entries,
        current_nomination_index=0,
        phase=first.phase if first else AuctionPhase.COMPLETE,
        current_player_id=first.player_id if first else None,
        current_bid_increment=base_by_id.get(first.player_id, 0) if first else 0,
        awaiting_user_action=first is not None,
        message=auction_opening_message(resolved),
        allow_rtm=resolved.policy.rtm_enabled,
    )


def generate_league(
    seed: int,
    policy_context: Optional[PolicyContext] = None,
    season_start: Optional[str] = None,
) -> GameState:
    """Auction-ready league.  Same seed and context give the same league."""
    context = policy_context or PolicyContext()
    resolved = resolve_policy(context)
    config = build_config(seed, resolved, context)

    teams = generate_teams(config)
    players = generate_players(config)
    entries = order_players_for_auction(players)
    created_at = season_start or season_start_iso(resolved.season_year)

    _log.debug(f"Generated league seed={seed} policy={resolved.policy.key} "
               f"players={len(players)} lots={len(entries)}")

    return GameState(
        metadata=SaveMetadata(seed=seed, created_at=created_at, updated_at=created_at),
        config=config,
        phase=Phase.AUCTION,
        user_team_id=teams[0].id,
        teams=teams,
        players=players,
        auction=open_auction(entries, players, resolved),
    )


# ═══════════════════════════════════════════════════════════════
# PRE-SEEDED ROSTERS
# ═══════════════════════════════════════════════════════════════

def select_balanced_xi(roster: List[Player]) -> Tuple[List[str], Optional[str]]:
    """Pick 1 keeper, 3 bowlers, 2 allrounders, 4 batters, then fill with the best left.

    Returns ``(xi_ids, wicketkeeper_id)``.  A rostered keeper left out of the
    XI replaces the last slot; with no keeper at all the first slot keeps.
    """
    ranked = sorted(roster, key=lambda p: -p.overall)
    chosen: List[Player] = []
    taken = set()

    for role, count in XI_TEMPLATE:
        picks = [p for p in ranked if p.role is role and p.id not in taken][:count]
        chosen.extend(picks)
        taken.update(p.id for p in picks)
    for player in ranked:
        if len(chosen) >= 11:
            break
        if player.id not in taken:
            chosen.append(player)
            taken.add(player.id)

    xi = [p.id for p in chosen[:11]]
    keeper = next((p.id for p in chosen[:11] if p.role is PlayerRole.WICKETKEEPER), None)
    if keeper is None:
        bench_keeper = next((p.id for p in ranked if p.role is PlayerRole.WICKETKEEPER), None)
        if bench_keeper is not None and xi:
            if len(xi) < 11:
                xi.append(bench_keeper)
            else:
                xi[-1] = bench_keeper
            keeper = bench_keeper
        else:
            keeper = xi[0] if xi else None
    return xi, keeper


def _normalize_domestic_supply(players: List[Player], overseas_slots: int) -> int:
    """Relabel the weakest overseas players as domestic until the caps can hold them all."""
    overseas = sorted((p for p in players if p.is_overseas), key=lambda p: p.overall)
    excess = len(overseas) - overseas_slots
    for player in overseas[:max(0, excess)]:
        player.country_tag = DOMESTIC_COUNTRY_TAG
    return max(0, excess)


def _snake_assign(players: List[Player], teams: List[Team], capacity) -> List[Player]:
    """Deal ``players`` (best first) in snake order to teams that still have ``capacity``."""
    unplaced = []
    n = len(teams)
    turn = 0
    for player in players:
        placed = False
        for _ in range(2 * n):
            round_index, slot = divmod(turn, n)
            team = teams[slot if round_index % 2 == 0 else n - 1 - slot]
            turn += 1
            if capacity(team):
                team.roster_player_ids.append(player.id)
                player.team_id = team.id
                placed = True
                break
        if not placed:
            unplaced.append(player)
    return unplaced


def _market_value(player: Player, prng: Prng) -> int:
    return player.base_price + player.overall * 2 + prng.next_int(0, 25)


def generate_seeded_league(
    seed: int,
    policy_context: Optional[PolicyContext] = None,
    season_start: Optional[str] = None,
) -> GameState:
    """League with the whole pool already rostered; the auction is skipped and play opens in preseason."""
    from league_engine.schedule import generate_round_robin_fixtures

    state = generate_league(seed, policy_context, season_start)
    resolved = resolve_policy(policy_context or PolicyContext())
    policy = resolved.policy
    players = state.players
    teams = state.teams
    by_id = state.player_by_id()

    relabelled = _normalize_domestic_supply(players, policy.overseas_cap * len(teams))
    overseas_slots = min(policy.overseas_cap, policy.squad_max)

    # Overseas players are dealt first, so a roster is all-overseas until the domestic pass.
    def overseas_room(team: Team) -> bool:
        return len(team.roster_player_ids) < overseas_slots

    def squad_room(team: Team) -> bool:
        return len(team.roster_player_ids) < policy.squad_max

    overseas = sorted((p for p in players if p.is_overseas), key=lambda p: -p.overall)
    domestic = sorted((p for p in players if not p.is_overseas), key=lambda p: -p.overall)
    leftover = _snake_assign(overseas, teams, overseas_room)
    leftover += _snake_assign(domestic, teams, squad_room)

    market = create_prng(seed + MARKET_SEED_OFFSET)
    value_by_player = {p.id: _market_value(p, market) for p in players}
    team_values = {t.id: sum(value_by_player[pid] for pid in t.roster_player_ids) for t in teams}
    top_value = max(team_values.values()) or 1
    headroom = state.config.auction_budget - policy.minimum_spend

    for team in teams:
        spend = policy.minimum_spend + round_half_up(headroom * team_values[team.id] / top_value * 0.9)
        team.budget_remaining = state.config.auction_budget - spend

        ids = team.roster_player_ids
        total_value = team_values[team.id] or 1
        allocated = 0
        for position, player_id in enumerate(ids):
            entry = state.auction.entry_for(player_id)
            if position == len(ids) - 1:
                price = max(0, spend - allocated)
            else:
                price = round_half_up(spend * value_by_player[player_id] / total_value)
            allocated += price
            if entry is None:
                # uncapped overseas players never enter the queue
                continue
            entry.status = EntryStatus.SOLD
            entry.sold_to_team_id = team.id
            entry.final_price = price

        xi, keeper = select_balanced_xi([by_id[pid] for pid in ids])
        team.playing_xi = xi
        team.wicketkeeper_player_id = keeper

    for player in leftover:
        entry = state.auction.entry_for(player.id)
        if entry is not None:
            entry.status = EntryStatus.UNSOLD

    auction = state.auction
    auction.complete = True
    auction.phase = AuctionPhase.COMPLETE
    auction.current_player_id = None
    auction.current_bid_increment = 0
    auction.awaiting_user_action = False
    auction.current_nomination_index = len(auction.entries)
    auction.message = "Rosters pre-seeded: auction skipped."

    state.fixtures = generate_round_robin_fixtures(teams, state.metadata.created_at)
    state.phase = Phase.PRESEASON

    _log.debug(f"Seeded league seed={seed}: relabelled {relabelled} overseas players, "
               f"{len(leftover)} left unrostered")
    return state
