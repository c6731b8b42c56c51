"""
Auction Rules
=============

Everything the bidding loop needs that is not the loop itself:

- AuctionIndexes: id lookups plus running overseas/keeper counts per team
- Eligibility: the single gate every bidder passes before a bid is applied,
  including the pool reserve that keeps enough unrostered players back
  for squads still short of the minimum
- Settlement: selling, passing over and closing a lot
- Completion: force-fill to the squad minimum from every unrostered player,
  keeper designation, minimum-spend top-up, then the fixture list

Budgets are only ever reduced through ``assign_player_to_team`` after
``can_team_bid`` has accepted the price, so they cannot go negative.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from league_engine.models import (
    AuctionEntry,
    AuctionPhase,
    EntryStatus,
    GameState,
    Phase,
    Player,
    PlayerRole,
    Team,
)
from league_engine.policy import AuctionPolicy
from league_engine.schedule import generate_round_robin_fixtures

_log = logging.getLogger("league_engine.auction_rules")

XI_SIZE = 11


# ═══════════════════════════════════════════════════════════════
# INDEXES
# ═══════════════════════════════════════════════════════════════

@dataclass
class AuctionIndexes:
    player_by_id: Dict[str, Player]
    team_by_id: Dict[str, Team]
    entry_by_player_id: Dict[str, AuctionEntry]
    overseas_count_by_team_id: Dict[str, int]
    keeper_count_by_team_id: Dict[str, int]
    # unrostered players, queued or not
    free_domestic: int = 0
    free_overseas: int = 0

    def overseas_count(self, team_id: str) -> int:
        return self.overseas_count_by_team_id.get(team_id, 0)

    def keeper_count(self, team_id: str) -> int:
        return self.keeper_count_by_team_id.get(team_id, 0)

    def record_signing(self, team_id: str, player: Player):
        if player.is_overseas:
            self.overseas_count_by_team_id[team_id] = self.overseas_count(team_id) + 1
            self.free_overseas -= 1
        else:
            self.free_domestic -= 1
        if player.role is PlayerRole.WICKETKEEPER:
            self.keeper_count_by_team_id[team_id] = self.keeper_count(team_id) + 1


def build_auction_indexes(state: GameState) -> AuctionIndexes:
    player_by_id = state.player_by_id()
    overseas: Dict[str, int] = {}
    keepers: Dict[str, int] = {}

    for team in state.teams:
        roster = [player_by_id[pid] for pid in team.roster_player_ids if pid in player_by_id]
        overseas[team.id] = sum(1 for p in roster if p.is_overseas)
        keepers[team.id] = sum(1 for p in roster if p.role is PlayerRole.WICKETKEEPER)

    free = [p for p in state.players if p.team_id is None]

    return AuctionIndexes(
        player_by_id=player_by_id,
        team_by_id=state.team_by_id(),
        entry_by_player_id={e.player_id: e for e in state.auction.entries},
        overseas_count_by_team_id=overseas,
        keeper_count_by_team_id=keepers,
        free_domestic=sum(1 for p in free if not p.is_overseas),
        free_overseas=sum(1 for p in free if p.is_overseas),
    )


# ═══════════════════════════════════════════════════════════════
# ELIGIBILITY
# ═══════════════════════════════════════════════════════════════

def reserved_for_minimum_squad(team: Team, bid: int, policy: AuctionPolicy) -> int:
    """Budget a team must hold to pay ``bid`` and still fill every slot up to the squad minimum."""
    roster_after_win = len(team.roster_player_ids) + 1
    slots_to_minimum = max(0, policy.squad_min - roster_after_win)
    return slots_to_minimum * policy.minimum_player_base + bid


@dataclass
class SquadShortfall:
    total: int
    domestic_only: int
    overseas_room: int

    def fillable(self, domestic: int, overseas: int) -> int:
        """Short slots a free pool of this make-up could cover."""
        from_domestic = min(domestic, self.domestic_only)
        flexible = min(self.overseas_room, overseas + domestic - from_domestic)
        return from_domestic + flexible


def squad_shortfall(state: GameState, indexes: AuctionIndexes, policy: AuctionPolicy) -> SquadShortfall:
    """Slots still needed to bring every team up to the squad minimum."""
    total = domestic_only = overseas_room = 0
    for team in state.teams:
        need = max(0, policy.squad_min - len(team.roster_player_ids))
        if need == 0:
            continue
        room = min(need, max(0, policy.overseas_cap - indexes.overseas_count(team.id)))
        total += need
        overseas_room += room
        domestic_only += need - room
    return SquadShortfall(total, domestic_only, overseas_room)


def starves_short_squads(
    state: GameState,
    indexes: AuctionIndexes,
    team: Team,
    player: Player,
    policy: AuctionPolicy,
) -> bool:
    """True when a team already at the minimum would take a player the short
    squads still need to reach it."""
    if len(team.roster_player_ids) < policy.squad_min:
        return False

    shortfall = squad_shortfall(state, indexes, policy)
    if shortfall.total == 0:
        return False

    before = shortfall.fillable(indexes.free_domestic, indexes.free_overseas)
    if player.is_overseas:
        after = shortfall.fillable(indexes.free_domestic, indexes.free_overseas - 1)
    else:
        after = shortfall.fillable(indexes.free_domestic - 1, indexes.free_overseas)
    return after < shortfall.total and after < before


def can_team_bid(
    state: GameState,
    indexes: AuctionIndexes,
    team: Team,
    player: Player,
    bid: int,
    policy: AuctionPolicy,
) -> bool:
    if len(team.roster_player_ids) >= policy.squad_max:
        return False

    if player.is_overseas and indexes.overseas_count(team.id) >= policy.overseas_cap:
        return False

    if team.budget_remaining < reserved_for_minimum_squad(team, bid, policy):
        return False

    if policy.force_fill_to_minimum_squad and starves_short_squads(state, indexes, team, player, policy):
        return False

    spent_after_bid = state.config.auction_budget - (team.budget_remaining - bid)
    if policy.minimum_spend > 0 and spent_after_bid > state.config.auction_budget:
        return False

    return True


# ═══════════════════════════════════════════════════════════════
# SETTLEMENT
# ═══════════════════════════════════════════════════════════════

def assign_player_to_team(indexes: AuctionIndexes, player: Player, team: Team, price: int) -> bool:
    """Roster ``player`` at ``price``.  Returns False if already rostered anywhere."""
    if player.id in team.roster_player_ids or player.team_id:
        return False

    player.team_id = team.id
    team.roster_player_ids.append(player.id)
    team.budget_remaining -= price
    indexes.record_signing(team.id, player)

    if len(team.playing_xi) < XI_SIZE:
        team.playing_xi.append(player.id)
        if team.wicketkeeper_player_id is None and player.role is PlayerRole.WICKETKEEPER:
            team.wicketkeeper_player_id = player.id
    return True


def close_current_lot(state: GameState):
    auction = state.auction
    auction.current_nomination_index += 1
    auction.current_player_id = None
    auction.current_bid = 0
    auction.current_bid_increment = 0
    auction.current_bid_team_id = None
    auction.passed_team_ids = []
    auction.awaiting_user_action = False


def mark_lot_unsold(state: GameState, entry: AuctionEntry):
    entry.status = EntryStatus.UNSOLD
    entry.sold_to_team_id = None
    entry.final_price = 0
    close_current_lot(state)


def mark_lot_sold(state: GameState, entry: AuctionEntry, winner: Team, final_price: int):
    entry.status = EntryStatus.SOLD
    entry.sold_to_team_id = winner.id
    entry.final_price = final_price
    close_current_lot(state)


def open_next_lot(state: GameState, indexes: AuctionIndexes, policy: AuctionPolicy) -> bool:
    """Open the next pending lot whose player is still unrostered.

    Stale entries are stepped over.  When the queue runs out the auction is
    completed and False is returned.
    """
    auction = state.auction
    while auction.current_nomination_index < len(auction.entries):
        entry = auction.entries[auction.current_nomination_index]
        player = indexes.player_by_id.get(entry.player_id)
        if player is None or player.team_id or entry.status is not EntryStatus.PENDING:
            auction.current_nomination_index += 1
            continue

        auction.current_player_id = player.id
        auction.phase = entry.phase
        auction.message = f"Lot {auction.current_nomination_index + 1}: {player.full_name}"
        return True

    complete_auction(state, indexes, policy)
    return False


# ═══════════════════════════════════════════════════════════════
# COMPLETION
# ═══════════════════════════════════════════════════════════════

def force_fill_minimum_squads(state: GameState, indexes: AuctionIndexes, policy: AuctionPolicy) -> int:
    """Hand short squads the cheapest unrostered players they can afford at base price.

    The pool is every unrostered player, queued or not, so uncapped overseas
    prospects that never had a lot can still fill a squad.  Teams with the
    least overseas room pick first.
    """
    if not policy.force_fill_to_minimum_squad:
        return 0

    filled = 0
    pool = sorted((p for p in state.players if p.team_id is None), key=lambda p: p.base_price)
    short = [t for t in state.teams if len(t.roster_player_ids) < policy.squad_min]
    short.sort(key=lambda t: policy.overseas_cap - indexes.overseas_count(t.id))

    for team in short:
        while len(team.roster_player_ids) < policy.squad_min:
            player = next(
                (p for p in pool
                 if p.team_id is None and can_team_bid(state, indexes, team, p, p.base_price, policy)),
                None,
            )
            if player is None:
                _log.warning(f"Force-fill left {team.id} at {len(team.roster_player_ids)} players")
                break

            assign_player_to_team(indexes, player, team, player.base_price)
            entry = indexes.entry_by_player_id.get(player.id)
            if entry is not None:
                entry.status = EntryStatus.SOLD
                entry.sold_to_team_id = team.id
                entry.final_price = player.base_price
            filled += 1

    return filled


def finalize_wicketkeepers(state: GameState, indexes: AuctionIndexes):
    """Top every XI up from the bench, then make sure a rostered keeper holds the gloves."""
    for team in state.teams:
        roster = set(team.roster_player_ids)
        xi = [pid for pid in team.playing_xi if pid in roster][:XI_SIZE]
        if len(xi) < XI_SIZE:
            bench = [pid for pid in team.roster_player_ids if pid not in xi]
            xi.extend(bench[:XI_SIZE - len(xi)])
        team.playing_xi = xi

        def is_keeper(pid: str) -> bool:
            player = indexes.player_by_id.get(pid)
            return player is not None and player.role is PlayerRole.WICKETKEEPER

        keeper_in_xi = next((pid for pid in xi if is_keeper(pid)), None)
        if keeper_in_xi is not None:
            team.wicketkeeper_player_id = keeper_in_xi
            continue

        squad_keeper = next((pid for pid in team.roster_player_ids if is_keeper(pid)), None)
        if squad_keeper is not None and xi:
            if len(xi) < XI_SIZE:
                xi.append(squad_keeper)
            else:
                xi[-1] = squad_keeper
            team.wicketkeeper_player_id = squad_keeper
            continue

        team.wicketkeeper_player_id = xi[0] if xi else None


def enforce_minimum_spend(state: GameState, policy: AuctionPolicy):
    for team in state.teams:
        spent = state.config.auction_budget - team.budget_remaining
        if spent < policy.minimum_spend:
            team.budget_remaining -= policy.minimum_spend - spent


def complete_auction(state: GameState, indexes: AuctionIndexes, policy: AuctionPolicy):
    filled = force_fill_minimum_squads(state, indexes, policy)
    finalize_wicketkeepers(state, indexes)
    enforce_minimum_spend(state, policy)

    auction = state.auction
    auction.complete = True
    auction.phase = AuctionPhase.COMPLETE
    auction.current_player_id = None
    auction.current_bid_team_id = None
    auction.current_bid = 0
    auction.current_bid_increment = 0
    auction.passed_team_ids = []
    auction.awaiting_user_action = False
    auction.message = "Auction complete."

    state.fixtures = generate_round_robin_fixtures(state.teams, state.metadata.created_at)
    state.phase = Phase.REGULAR_SEASON

    sold = sum(1 for e in auction.entries if e.status is EntryStatus.SOLD)
    _log.debug(f"Auction complete: {sold} sold ({filled} by force-fill), {len(state.fixtures)} fixtures")


def find_team(indexes: AuctionIndexes, team_id: Optional[str]) -> Optional[Team]:
    if team_id is None:
        return None
    return indexes.team_by_id.get(team_id)
