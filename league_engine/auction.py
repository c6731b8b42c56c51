"""
Auction State Machine
=====================

Drives the nomination queue lot by lot.  One machine runs per call to
``progress_auction`` on a private clone of the caller's state:

    AWAITING_OPEN  -> open the next live lot, or complete the auction
    AWAITING_BID   -> apply the user's action, then the user's or an AI turn
    SETTLING       -> keep bidding if anyone can still raise, else sell/pass
    COMPLETE       -> terminal

The same loop serves both drivers.  In interactive mode it suspends in
AWAITING_BID whenever the user is eligible to raise; in auto mode the user's
team bids by the same intent rule as the AI franchises, without the noise.

AI intent = base price + 2 x overall + roster need + keeper scarcity, plus a
0-35 perturbation from a PRNG seeded by (nomination index, current bid, pass
count), so any lot replays identically.
"""

import logging
from enum import Enum
from typing import List, Optional, Tuple

from league_engine.auction_rules import (
    AuctionIndexes,
    assign_player_to_team,
    build_auction_indexes,
    can_team_bid,
    find_team,
    mark_lot_sold,
    mark_lot_unsold,
    open_next_lot,
)
from league_engine.errors import ValidationError
from league_engine.invariants import assert_semantic_integrity
from league_engine.models import EntryStatus, GameState, Phase, Player, PlayerRole, Team
from league_engine.policy import (
    PolicyContext,
    ResolvedPolicy,
    create_rtm_decision,
    get_bid_increment,
    policy_context_from_state,
    resolve_policy,
)
from league_engine.prng import create_prng
from league_engine.timeutil import utc_now_iso

_log = logging.getLogger("league_engine.auction")

UNAVAILABLE_MESSAGE = "Player is no longer available in the auction queue"

# Roster-need bonus by current squad size
NEED_STEEP, NEED_MODERATE, NEED_LOW = 160, 75, 25
NEED_STEEP_BELOW, NEED_MODERATE_BELOW = 18, 22
KEEPER_SCARCITY_BONUS = 60
INTENT_NOISE_MAX = 35


class UserAction(str, Enum):
    BID = "bid"
    PASS = "pass"
    AUTO = "auto"


class AuctionStage(str, Enum):
    AWAITING_OPEN = "awaiting-open"
    AWAITING_BID = "awaiting-bid"
    SETTLING = "settling"
    COMPLETE = "complete"


def team_intent_value(team: Team, player: Player, indexes: AuctionIndexes) -> int:
    """What a franchise thinks the lot is worth, before noise."""
    squad = len(team.roster_player_ids)
    if squad < NEED_STEEP_BELOW:
        need = NEED_STEEP
    elif squad < NEED_MODERATE_BELOW:
        need = NEED_MODERATE
    else:
        need = NEED_LOW
    keeper_bonus = 0
    if player.role is PlayerRole.WICKETKEEPER and indexes.keeper_count(team.id) == 0:
        keeper_bonus = KEEPER_SCARCITY_BONUS
    return player.base_price + player.overall * 2 + need + keeper_bonus


class AuctionMachine:
    """Finite-state driver for one ``progress_auction`` call.  Mutates ``state`` in place."""

    def __init__(self, state: GameState, resolved: ResolvedPolicy, action: Optional[UserAction] = None):
        self.state = state
        self.resolved = resolved
        self.policy = resolved.policy
        self.indexes = build_auction_indexes(state)
        self.auto = action is UserAction.AUTO
        self.pending_action = action if action in (UserAction.BID, UserAction.PASS) else None
        self.suspended = False
        self._ai_cache: Optional[Tuple[tuple, Optional[Team]]] = None

        if state.auction.complete:
            self.stage = AuctionStage.COMPLETE
        elif state.auction.current_player_id is None:
            self.stage = AuctionStage.AWAITING_OPEN
        else:
            self.stage = AuctionStage.AWAITING_BID

    # ── lot helpers ────────────────────────────────────────────

    @property
    def user_team(self) -> Optional[Team]:
        return self.indexes.team_by_id.get(self.state.user_team_id)

    def _current_player(self) -> Optional[Player]:
        auction = self.state.auction
        player = self.indexes.player_by_id.get(auction.current_player_id)
        entry = self.indexes.entry_by_player_id.get(auction.current_player_id)
        if player is None or entry is None or player.team_id or entry.status is not EntryStatus.PENDING:
            return None
        return player

    def next_bid(self, player: Player) -> int:
        auction = self.state.auction
        if auction.current_bid == 0:
            auction.current_bid_increment = player.base_price
            return player.base_price
        increment = get_bid_increment(auction.current_bid, auction.phase, self.policy)
        auction.current_bid_increment = increment
        return auction.current_bid + increment

    def _apply_bid(self, team: Team, bid: int):
        auction = self.state.auction
        auction.current_bid = bid
        auction.current_bid_team_id = team.id
        auction.message = f"{team.id} bids {bid}L"

    def _pass(self, team_id: str):
        if team_id not in self.state.auction.passed_team_ids:
            self.state.auction.passed_team_ids.append(team_id)

    def user_can_bid(self, player: Player, bid: int) -> bool:
        team = self.user_team
        auction = self.state.auction
        if team is None:
            return False
        if auction.current_bid_team_id == team.id or team.id in auction.passed_team_ids:
            return False
        return can_team_bid(self.state, self.indexes, team, player, bid, self.policy)

    def choose_ai_bidder(self, player: Player, bid: int) -> Optional[Team]:
        auction = self.state.auction
        key = (auction.current_nomination_index, auction.current_bid, auction.current_bid_team_id,
               len(auction.passed_team_ids), bid)
        if self._ai_cache is not None and self._ai_cache[0] == key:
            return self._ai_cache[1]

        prng = create_prng(
            self.state.metadata.seed
            + auction.current_nomination_index * 97
            + auction.current_bid * 13
            + len(auction.passed_team_ids) * 7
        )
        best: Optional[Team] = None
        best_value = -1
        for team in self.state.teams:
            if team.id in (self.state.user_team_id, auction.current_bid_team_id):
                continue
            if team.id in auction.passed_team_ids:
                continue
            if not can_team_bid(self.state, self.indexes, team, player, bid, self.policy):
                continue
            value = team_intent_value(team, player, self.indexes) + prng.next_int(0, INTENT_NOISE_MAX)
            if value >= bid and value > best_value:
                best, best_value = team, value

        self._ai_cache = (key, best)
        return best

    # ── transitions ────────────────────────────────────────────

    def step(self) -> AuctionStage:
        if self.stage is AuctionStage.AWAITING_OPEN:
            self._open()
        elif self.stage is AuctionStage.AWAITING_BID:
            self._bid_turn()
        elif self.stage is AuctionStage.SETTLING:
            self._settle()
        return self.stage

    def run(self) -> GameState:
        while self.stage is not AuctionStage.COMPLETE and not self.suspended:
            self.step()
        return self.state

    def _open(self):
        if open_next_lot(self.state, self.indexes, self.policy):
            self.stage = AuctionStage.AWAITING_BID
        else:
            self.stage = AuctionStage.COMPLETE

    def _bid_turn(self):
        auction = self.state.auction
        player = self._current_player()
        if player is None:
            # stale lot: the pointer may already sit on it, so just drop it and reopen
            auction.current_player_id = None
            self.stage = AuctionStage.AWAITING_OPEN
            return

        bid = self.next_bid(player)
        if self.pending_action is not None:
            action, self.pending_action = self.pending_action, None
            if action is UserAction.PASS:
                self._pass(self.state.user_team_id)
            elif self.user_can_bid(player, bid):
                self._apply_bid(self.user_team, bid)
                bid = self.next_bid(player)

        if self.user_can_bid(player, bid):
            if not self.auto:
                auction.awaiting_user_action = True
                auction.message = f"{player.full_name}: your move at {bid}L"
                self.suspended = True
                return
            if team_intent_value(self.user_team, player, self.indexes) >= bid:
                self._apply_bid(self.user_team, bid)
            else:
                self._pass(self.state.user_team_id)
        else:
            rival = self.choose_ai_bidder(player, bid)
            if rival is not None:
                self._apply_bid(rival, bid)

        auction.awaiting_user_action = False
        self.stage = AuctionStage.SETTLING

    def _settle(self):
        player = self._current_player()
        if player is None:
            self.state.auction.current_player_id = None
            self.stage = AuctionStage.AWAITING_OPEN
            return

        bid = self.next_bid(player)
        if self.user_can_bid(player, bid) or self.choose_ai_bidder(player, bid) is not None:
            self.stage = AuctionStage.AWAITING_BID
            return

        auction = self.state.auction
        entry = self.indexes.entry_by_player_id[player.id]
        winner = find_team(self.indexes, auction.current_bid_team_id)
        if winner is None:
            auction.message = f"{player.full_name} goes unsold"
            _log.debug(f"Lot {auction.current_nomination_index + 1} {player.id} unsold")
            mark_lot_unsold(self.state, entry)
        else:
            winner, price, matched = self._right_to_match(player, winner, auction.current_bid)
            assign_player_to_team(self.indexes, player, winner, price)
            suffix = " (RTM)" if matched else ""
            auction.message = f"{player.full_name} sold to {winner.short_name} for {price}L{suffix}"
            _log.debug(f"Lot {auction.current_nomination_index + 1} {player.id} -> {winner.id} at {price}{suffix}")
            mark_lot_sold(self.state, entry, winner, price)

        self.stage = AuctionStage.AWAITING_OPEN

    def _right_to_match(self, player: Player, winner: Team, price: int) -> Tuple[Team, int, bool]:
        """Offer the lot to the player's previous franchise before it closes.

        The incumbent matches when it may legally pay the price and values the
        player at least that much; with rebound the outbid team may raise once
        and the incumbent may match again.  Whoever stands last buys.
        """
        if not self.state.auction.allow_rtm:
            return winner, price, False
        decision = create_rtm_decision(self.resolved, winner.id, price, player.previous_team_id)
        if not decision.available:
            return winner, price, False
        incumbent = self.indexes.team_by_id.get(decision.incumbent_team_id)
        if incumbent is None or not self._will_pay(incumbent, player, price):
            return winner, price, False

        self._apply_bid(incumbent, price)
        if decision.allow_rebound:
            raised = price + get_bid_increment(price, self.state.auction.phase, self.policy)
            if self._will_pay(winner, player, raised):
                self._apply_bid(winner, raised)
                if self._will_pay(incumbent, player, raised):
                    self._apply_bid(incumbent, raised)
                    return incumbent, raised, True
                return winner, raised, False
        return incumbent, price, True

    def _will_pay(self, team: Team, player: Player, price: int) -> bool:
        return (can_team_bid(self.state, self.indexes, team, player, price, self.policy)
                and team_intent_value(team, player, self.indexes) >= price)


# ═══════════════════════════════════════════════════════════════
# PUBLIC OPERATIONS
# ═══════════════════════════════════════════════════════════════

def _resolve(state: GameState, policy_context: Optional[PolicyContext]) -> ResolvedPolicy:
    return resolve_policy(policy_context or policy_context_from_state(state))


def progress_auction(
    state: GameState,
    action: Optional[UserAction] = None,
    policy_context: Optional[PolicyContext] = None,
) -> GameState:
    """Advance the auction until the user must act, or to completion in auto mode.

    Returns a new state; ``state`` is never modified.
    """
    next_state = state.clone()
    if next_state.phase is not Phase.AUCTION or next_state.auction.complete:
        return next_state

    if action is not None:
        action = UserAction(action)
    machine = AuctionMachine(next_state, _resolve(next_state, policy_context), action)
    machine.run()

    next_state.metadata.updated_at = utc_now_iso()
    assert_semantic_integrity(next_state)
    return next_state


def run_auto_auction(state: GameState, policy_context: Optional[PolicyContext] = None) -> GameState:
    return progress_auction(state, UserAction.AUTO, policy_context)


def skip_to_player(state: GameState, player_id: str) -> GameState:
    """Bring a pending lot to the front of the queue and open it for the user.

    Any lot that was open goes back to pending with its bidding discarded.
    If the user's team cannot open the bidding, the AI franchises settle the
    lot and the auction runs on to the user's next move.
    """
    next_state = state.clone()
    auction = next_state.auction
    if next_state.phase is not Phase.AUCTION or auction.complete:
        raise ValidationError(UNAVAILABLE_MESSAGE, {"player_id": player_id})

    position = next((i for i, e in enumerate(auction.entries) if e.player_id == player_id), None)
    player = next_state.find_player(player_id)
    if position is None or player is None or player.team_id:
        raise ValidationError(UNAVAILABLE_MESSAGE, {"player_id": player_id})
    entry = auction.entries[position]
    if entry.status is not EntryStatus.PENDING:
        raise ValidationError(UNAVAILABLE_MESSAGE, {"player_id": player_id})

    pointer = min(auction.current_nomination_index, len(auction.entries) - 1)
    auction.entries.pop(position)
    if position < pointer:
        pointer -= 1
    auction.entries.insert(pointer, entry)

    auction.current_nomination_index = pointer
    auction.current_player_id = player.id
    auction.phase = entry.phase
    auction.current_bid = 0
    auction.current_bid_team_id = None
    auction.current_bid_increment = player.base_price
    auction.passed_team_ids = []
    auction.awaiting_user_action = False
    auction.message = f"Lot {pointer + 1}: {player.full_name}"

    machine = AuctionMachine(next_state, _resolve(next_state, None))
    if machine.user_can_bid(player, player.base_price):
        auction.awaiting_user_action = True
    else:
        _log.debug(f"User cannot open {player.id} at {player.base_price}, settling among AI teams")
        machine.run()

    next_state.metadata.updated_at = utc_now_iso()
    assert_semantic_integrity(next_state)
    return next_state


def pending_player_ids(state: GameState) -> List[str]:
    return [e.player_id for e in state.auction.entries if e.status is EntryStatus.PENDING]
