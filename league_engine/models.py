"""
League Data Model
=================

Dataclasses for the whole league aggregate:

- Player (ratings tree, last-season numbers, optional youth development block)
- Team (purse, roster, playing XI, keeper, standings)
- AuctionEntry / AuctionState (the nomination queue and the open lot)
- MatchResult / InningsSummary (fixtures and scorecards)
- StatLine (per-player season aggregates)
- LeagueConfig / SaveMetadata / GameState (the aggregate root)

Everything serialises to and from plain JSON-safe dicts so a GameState can
live inside a save file.  Core operations never mutate a caller's GameState:
they work on ``state.clone()`` and hand the copy back.
"""

from __future__ import annotations

import copy
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


# ═══════════════════════════════════════════════════════════════
# ENUMERATIONS
# ═══════════════════════════════════════════════════════════════

class Phase(str, Enum):
    AUCTION = "auction"
    PRESEASON = "preseason"
    REGULAR_SEASON = "regular-season"
    PLAYOFFS = "playoffs"
    COMPLETE = "complete"


class AuctionPhase(str, Enum):
    MARQUEE = "marquee"
    CAPPED = "capped"
    UNCAPPED = "uncapped"
    ACCELERATED_1 = "accelerated-1"
    ACCELERATED_2 = "accelerated-2"
    COMPLETE = "complete"


class EntryStatus(str, Enum):
    PENDING = "pending"
    SOLD = "sold"
    UNSOLD = "unsold"


class PlayerRole(str, Enum):
    BATTER = "batter"
    BOWLER = "bowler"
    WICKETKEEPER = "wicketkeeper"
    ALLROUNDER = "allrounder"


class BowlingStyle(str, Enum):
    PACE = "pace"
    SPIN = "spin"


class BowlingPreset(str, Enum):
    BALANCED = "balanced"
    AGGRESSIVE = "aggressive"
    DEFENSIVE = "defensive"


class DismissalKind(str, Enum):
    CAUGHT = "caught"
    BOWLED = "bowled"
    LBW = "lbw"
    RUN_OUT = "run-out"
    CAUGHT_AND_BOWLED = "caught-and-bowled"


class FixtureStage(str, Enum):
    LEAGUE = "league"
    QUALIFIER_1 = "qualifier-1"
    ELIMINATOR = "eliminator"
    QUALIFIER_2 = "qualifier-2"
    FINAL = "final"

    @property
    def is_playoff(self) -> bool:
        return self is not FixtureStage.LEAGUE


class PolicySet(str, Enum):
    LEGACY = "legacy-default"
    CYCLE = "cycle-2025"


class PlayoffTieBreak(str, Enum):
    HOME_TEAM = "home-team"
    HIGHER_SEED = "higher-seed"


DOMESTIC_COUNTRY_TAG = "IN"
SCHEMA_VERSION = 3
ENGINE_VERSION = "0.3.0"


# ═══════════════════════════════════════════════════════════════
# PLAYERS
# ═══════════════════════════════════════════════════════════════

@dataclass
class SkillRating:
    """One skill group: an overall plus named traits, all on a 1-99 scale."""
    overall: int
    traits: Dict[str, int]

    def to_dict(self) -> dict:
        return {"overall": self.overall, "traits": dict(self.traits)}

    @classmethod
    def from_dict(cls, d: dict) -> "SkillRating":
        return cls(overall=int(d["overall"]), traits={k: int(v) for k, v in d["traits"].items()})


@dataclass
class BowlingRating(SkillRating):
    style: BowlingStyle = BowlingStyle.PACE

    def to_dict(self) -> dict:
        d = super().to_dict()
        d["style"] = self.style.value
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "BowlingRating":
        return cls(
            overall=int(d["overall"]),
            traits={k: int(v) for k, v in d["traits"].items()},
            style=BowlingStyle(d.get("style", "pace")),
        )


@dataclass
class PlayerRatings:
    batting: SkillRating
    bowling: BowlingRating
    fielding: SkillRating
    temperament: int
    fitness: int

    def to_dict(self) -> dict:
        return {
            "batting": self.batting.to_dict(),
            "bowling": self.bowling.to_dict(),
            "fielding": self.fielding.to_dict(),
            "temperament": self.temperament,
            "fitness": self.fitness,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "PlayerRatings":
        return cls(
            batting=SkillRating.from_dict(d["batting"]),
            bowling=BowlingRating.from_dict(d["bowling"]),
            fielding=SkillRating.from_dict(d["fielding"]),
            temperament=int(d["temperament"]),
            fitness=int(d["fitness"]),
        )


@dataclass
class LastSeasonStats:
    matches: int = 0
    runs: int = 0
    wickets: int = 0
    strike_rate: float = 0.0
    economy: float = 0.0

    def to_dict(self) -> dict:
        return {
            "matches": self.matches,
            "runs": self.runs,
            "wickets": self.wickets,
            "strike_rate": self.strike_rate,
            "economy": self.economy,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "LastSeasonStats":
        return cls(**{k: d.get(k, 0) for k in cls.__dataclass_fields__})


@dataclass
class Potential:
    batting_overall: int
    bowling_overall: int
    fielding_overall: int
    temperament: int
    fitness: int

    def to_dict(self) -> dict:
        return {
            "batting_overall": self.batting_overall,
            "bowling_overall": self.bowling_overall,
            "fielding_overall": self.fielding_overall,
            "temperament": self.temperament,
            "fitness": self.fitness,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Potential":
        return cls(**{k: int(d[k]) for k in cls.__dataclass_fields__})


@dataclass
class FirstClassProjection:
    runs: int
    wickets: int
    strike_rate: float
    economy: float

    def to_dict(self) -> dict:
        return {
            "runs": self.runs,
            "wickets": self.wickets,
            "strike_rate": self.strike_rate,
            "economy": self.economy,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "FirstClassProjection":
        return cls(**{k: d[k] for k in cls.__dataclass_fields__})


@dataclass
class Development:
    """Youth-prospect block: a potential ceiling and a first-class projection."""
    is_prospect: bool
    potential: Potential
    first_class_projection: FirstClassProjection

    def to_dict(self) -> dict:
        return {
            "is_prospect": self.is_prospect,
            "potential": self.potential.to_dict(),
            "first_class_projection": self.first_class_projection.to_dict(),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Development":
        return cls(
            is_prospect=bool(d["is_prospect"]),
            potential=Potential.from_dict(d["potential"]),
            first_class_projection=FirstClassProjection.from_dict(d["first_class_projection"]),
        )


@dataclass
class Player:
    id: str
    first_name: str
    last_name: str
    country_tag: str
    capped: bool
    role: PlayerRole
    base_price: int
    last_season_stats: LastSeasonStats
    ratings: PlayerRatings
    age: Optional[int] = None
    development: Optional[Development] = None
    team_id: Optional[str] = None
    previous_team_id: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def overall(self) -> int:
        """Composite of the three skill groups, used for ordering and valuation."""
        total = self.ratings.batting.overall + self.ratings.bowling.overall + self.ratings.fielding.overall
        return round_half_up(total / 3)

    @property
    def is_overseas(self) -> bool:
        return self.country_tag != DOMESTIC_COUNTRY_TAG

    @property
    def is_prospect(self) -> bool:
        return bool(self.development and self.development.is_prospect)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "country_tag": self.country_tag,
            "capped": self.capped,
            "role": self.role.value,
            "age": self.age,
            "base_price": self.base_price,
            "last_season_stats": self.last_season_stats.to_dict(),
            "ratings": self.ratings.to_dict(),
            "development": self.development.to_dict() if self.development else None,
            "team_id": self.team_id,
            "previous_team_id": self.previous_team_id,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Player":
        development = d.get("development")
        return cls(
            id=d["id"],
            first_name=d["first_name"],
            last_name=d["last_name"],
            country_tag=d["country_tag"],
            capped=bool(d["capped"]),
            role=PlayerRole(d["role"]),
            age=d.get("age"),
            base_price=int(d["base_price"]),
            last_season_stats=LastSeasonStats.from_dict(d.get("last_season_stats", {})),
            ratings=PlayerRatings.from_dict(d["ratings"]),
            development=Development.from_dict(development) if development else None,
            team_id=d.get("team_id"),
            previous_team_id=d.get("previous_team_id"),
        )


# ═══════════════════════════════════════════════════════════════
# TEAMS
# ═══════════════════════════════════════════════════════════════

@dataclass
class Team:
    id: str
    city: str
    name: str
    short_name: str
    color: str
    budget_remaining: int
    roster_player_ids: List[str] = field(default_factory=list)
    playing_xi: List[str] = field(default_factory=list)
    wicketkeeper_player_id: Optional[str] = None
    bowling_preset: BowlingPreset = BowlingPreset.BALANCED
    points: int = 0
    wins: int = 0
    losses: int = 0
    ties: int = 0
    net_run_rate: float = 0.0

    @property
    def matches_played(self) -> int:
        return self.wins + self.losses + self.ties

    def reset_standings(self) -> None:
        self.points = 0
        self.wins = 0
        self.losses = 0
        self.ties = 0
        self.net_run_rate = 0.0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "city": self.city,
            "name": self.name,
            "short_name": self.short_name,
            "color": self.color,
            "budget_remaining": self.budget_remaining,
            "roster_player_ids": list(self.roster_player_ids),
            "playing_xi": list(self.playing_xi),
            "wicketkeeper_player_id": self.wicketkeeper_player_id,
            "bowling_preset": self.bowling_preset.value,
            "points": self.points,
            "wins": self.wins,
            "losses": self.losses,
            "ties": self.ties,
            "net_run_rate": self.net_run_rate,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Team":
        return cls(
            id=d["id"],
            city=d["city"],
            name=d["name"],
            short_name=d["short_name"],
            color=d["color"],
            budget_remaining=int(d["budget_remaining"]),
            roster_player_ids=list(d.get("roster_player_ids", [])),
            playing_xi=list(d.get("playing_xi", [])),
            wicketkeeper_player_id=d.get("wicketkeeper_player_id"),
            bowling_preset=BowlingPreset(d.get("bowling_preset", "balanced")),
            points=int(d.get("points", 0)),
            wins=int(d.get("wins", 0)),
            losses=int(d.get("losses", 0)),
            ties=int(d.get("ties", 0)),
            net_run_rate=float(d.get("net_run_rate", 0.0)),
        )


# ═══════════════════════════════════════════════════════════════
# AUCTION
# ═══════════════════════════════════════════════════════════════

@dataclass
class AuctionEntry:
    player_id: str
    phase: AuctionPhase
    status: EntryStatus = EntryStatus.PENDING
    sold_to_team_id: Optional[str] = None
    final_price: int = 0

    def to_dict(self) -> dict:
        return {
            "player_id": self.player_id,
            "phase": self.phase.value,
            "status": self.status.value,
            "sold_to_team_id": self.sold_to_team_id,
            "final_price": self.final_price,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "AuctionEntry":
        return cls(
            player_id=d["player_id"],
            phase=AuctionPhase(d["phase"]),
            status=EntryStatus(d.get("status", "pending")),
            sold_to_team_id=d.get("sold_to_team_id"),
            final_price=int(d.get("final_price", 0)),
        )


@dataclass
class AuctionState:
    entries: List[AuctionEntry] = field(default_factory=list)
    current_nomination_index: int = 0
    phase: AuctionPhase = AuctionPhase.MARQUEE
    current_player_id: Optional[str] = None
    current_bid_team_id: Optional[str] = None
    current_bid: int = 0
    current_bid_increment: int = 0
    passed_team_ids: List[str] = field(default_factory=list)
    awaiting_user_action: bool = False
    message: str = ""
    allow_rtm: bool = False
    complete: bool = False

    def entry_for(self, player_id: str) -> Optional[AuctionEntry]:
        for entry in self.entries:
            if entry.player_id == player_id:
                return entry
        return None

    def pending_entries(self) -> List[AuctionEntry]:
        return [e for e in self.entries if e.status is EntryStatus.PENDING]

    def to_dict(self) -> dict:
        return {
            "current_nomination_index": self.current_nomination_index,
            "phase": self.phase.value,
            "current_player_id": self.current_player_id,
            "current_bid_team_id": self.current_bid_team_id,
            "current_bid": self.current_bid,
            "current_bid_increment": self.current_bid_increment,
            "passed_team_ids": list(self.passed_team_ids),
            "awaiting_user_action": self.awaiting_user_action,
            "message": self.message,
            "allow_rtm": self.allow_rtm,
            "entries": [e.to_dict() for e in self.entries],
            "complete": self.complete,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "AuctionState":
        return cls(
            entries=[AuctionEntry.from_dict(e) for e in d.get("entries", [])],
            current_nomination_index=int(d.get("current_nomination_index", 0)),
            phase=AuctionPhase(d.get("phase", "marquee")),
            current_player_id=d.get("current_player_id"),
            current_bid_team_id=d.get("current_bid_team_id"),
            current_bid=int(d.get("current_bid", 0)),
            current_bid_increment=int(d.get("current_bid_increment", 0)),
            passed_team_ids=list(d.get("passed_team_ids", [])),
            awaiting_user_action=bool(d.get("awaiting_user_action", False)),
            message=d.get("message", ""),
            allow_rtm=bool(d.get("allow_rtm", False)),
            complete=bool(d.get("complete", False)),
        )


# ═══════════════════════════════════════════════════════════════
# MATCHES
# ═══════════════════════════════════════════════════════════════

@dataclass
class BattingLine:
    player_id: str
    runs: int = 0
    balls: int = 0
    fours: int = 0
    sixes: int = 0
    out: bool = False
    dismissal_kind: Optional[DismissalKind] = None
    dismissed_by_player_id: Optional[str] = None
    assisted_by_player_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "player_id": self.player_id,
            "runs": self.runs,
            "balls": self.balls,
            "fours": self.fours,
            "sixes": self.sixes,
            "out": self.out,
            "dismissal_kind": self.dismissal_kind.value if self.dismissal_kind else None,
            "dismissed_by_player_id": self.dismissed_by_player_id,
            "assisted_by_player_id": self.assisted_by_player_id,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "BattingLine":
        kind = d.get("dismissal_kind")
        return cls(
            player_id=d["player_id"],
            runs=int(d.get("runs", 0)),
            balls=int(d.get("balls", 0)),
            fours=int(d.get("fours", 0)),
            sixes=int(d.get("sixes", 0)),
            out=bool(d.get("out", False)),
            dismissal_kind=DismissalKind(kind) if kind else None,
            dismissed_by_player_id=d.get("dismissed_by_player_id"),
            assisted_by_player_id=d.get("assisted_by_player_id"),
        )


@dataclass
class BowlingLine:
    player_id: str
    overs: int = 0
    runs_conceded: int = 0
    wickets: int = 0

    def to_dict(self) -> dict:
        return {
            "player_id": self.player_id,
            "overs": self.overs,
            "runs_conceded": self.runs_conceded,
            "wickets": self.wickets,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "BowlingLine":
        return cls(**{k: d.get(k, 0) for k in cls.__dataclass_fields__})


@dataclass
class InningsSummary:
    batting_team_id: str
    bowling_team_id: str
    wicketkeeper_player_id: Optional[str]
    runs: int
    wickets: int
    overs: float
    batting: List[BattingLine] = field(default_factory=list)
    bowling: List[BowlingLine] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "batting_team_id": self.batting_team_id,
            "bowling_team_id": self.bowling_team_id,
            "wicketkeeper_player_id": self.wicketkeeper_player_id,
            "runs": self.runs,
            "wickets": self.wickets,
            "overs": self.overs,
            "batting": [b.to_dict() for b in self.batting],
            "bowling": [b.to_dict() for b in self.bowling],
        }

    @classmethod
    def from_dict(cls, d: dict) -> "InningsSummary":
        return cls(
            batting_team_id=d["batting_team_id"],
            bowling_team_id=d["bowling_team_id"],
            wicketkeeper_player_id=d.get("wicketkeeper_player_id"),
            runs=int(d["runs"]),
            wickets=int(d["wickets"]),
            overs=float(d["overs"]),
            batting=[BattingLine.from_dict(b) for b in d.get("batting", [])],
            bowling=[BowlingLine.from_dict(b) for b in d.get("bowling", [])],
        )


@dataclass
class MatchResult:
    """A fixture.  Created unplayed by the scheduler, filled in once by the simulator."""
    id: str
    home_team_id: str
    away_team_id: str
    venue: str
    round: int
    scheduled_at: Optional[str] = None
    played: bool = False
    winner_team_id: Optional[str] = None
    margin: str = ""
    innings: Optional[List[InningsSummary]] = None
    stage: FixtureStage = FixtureStage.LEAGUE

    @property
    def loser_team_id(self) -> Optional[str]:
        if not self.played or self.winner_team_id is None:
            return None
        return self.away_team_id if self.winner_team_id == self.home_team_id else self.home_team_id

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "home_team_id": self.home_team_id,
            "away_team_id": self.away_team_id,
            "venue": self.venue,
            "round": self.round,
            "scheduled_at": self.scheduled_at,
            "played": self.played,
            "winner_team_id": self.winner_team_id,
            "margin": self.margin,
            "innings": [i.to_dict() for i in self.innings] if self.innings else None,
            "stage": self.stage.value,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "MatchResult":
        innings = d.get("innings")
        return cls(
            id=d["id"],
            home_team_id=d["home_team_id"],
            away_team_id=d["away_team_id"],
            venue=d.get("venue", ""),
            round=int(d["round"]),
            scheduled_at=d.get("scheduled_at"),
            played=bool(d.get("played", False)),
            winner_team_id=d.get("winner_team_id"),
            margin=d.get("margin", ""),
            innings=[InningsSummary.from_dict(i) for i in innings] if innings else None,
            stage=FixtureStage(d.get("stage", "league")),
        )


@dataclass
class StatLine:
    player_id: str
    matches: int = 0
    runs: int = 0
    balls: int = 0
    wickets: int = 0
    overs: int = 0
    runs_conceded: int = 0

    @property
    def strike_rate(self) -> float:
        return round(self.runs * 100 / self.balls, 2) if self.balls > 0 else 0.0

    @property
    def economy(self) -> float:
        return round(self.runs_conceded / self.overs, 2) if self.overs > 0 else 0.0

    def to_dict(self) -> dict:
        return {
            "player_id": self.player_id,
            "matches": self.matches,
            "runs": self.runs,
            "balls": self.balls,
            "wickets": self.wickets,
            "overs": self.overs,
            "runs_conceded": self.runs_conceded,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "StatLine":
        return cls(**{k: d.get(k, 0) for k in cls.__dataclass_fields__})


# ═══════════════════════════════════════════════════════════════
# AGGREGATE ROOT
# ═══════════════════════════════════════════════════════════════

@dataclass
class LeagueConfig:
    team_count: int
    auction_budget: int
    min_squad_size: int
    max_squad_size: int
    season_seed: int
    policy_set: PolicySet = PolicySet.LEGACY
    format: str = "T20"
    playoff_tie_break: PlayoffTieBreak = PlayoffTieBreak.HOME_TEAM

    def to_dict(self) -> dict:
        return {
            "team_count": self.team_count,
            "format": self.format,
            "policy_set": self.policy_set.value,
            "auction_budget": self.auction_budget,
            "min_squad_size": self.min_squad_size,
            "max_squad_size": self.max_squad_size,
            "season_seed": self.season_seed,
            "playoff_tie_break": self.playoff_tie_break.value,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "LeagueConfig":
        return cls(
            team_count=int(d["team_count"]),
            format=d.get("format", "T20"),
            policy_set=PolicySet(d.get("policy_set", "legacy-default")),
            auction_budget=int(d["auction_budget"]),
            min_squad_size=int(d["min_squad_size"]),
            max_squad_size=int(d["max_squad_size"]),
            season_seed=int(d["season_seed"]),
            playoff_tie_break=PlayoffTieBreak(d.get("playoff_tie_break", "home-team")),
        )


@dataclass
class SaveMetadata:
    seed: int
    created_at: str
    updated_at: str
    season_number: int = 1
    schema_version: int = SCHEMA_VERSION
    engine_version: str = ENGINE_VERSION

    def to_dict(self) -> dict:
        return {
            "schema_version": self.schema_version,
            "engine_version": self.engine_version,
            "seed": self.seed,
            "season_number": self.season_number,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "SaveMetadata":
        return cls(
            schema_version=int(d.get("schema_version", SCHEMA_VERSION)),
            engine_version=d.get("engine_version", ENGINE_VERSION),
            seed=int(d["seed"]),
            season_number=int(d.get("season_number", 1)),
            created_at=d["created_at"],
            updated_at=d["updated_at"],
        )


@dataclass
class GameState:
    metadata: SaveMetadata
    config: LeagueConfig
    phase: Phase
    user_team_id: str
    teams: List[Team]
    players: List[Player]
    auction: AuctionState
    fixtures: List[MatchResult] = field(default_factory=list)
    stats: Dict[str, StatLine] = field(default_factory=dict)
    champion_team_id: Optional[str] = None

    def clone(self) -> "GameState":
        """Owned deep copy; every core operation mutates a clone, never the input."""
        return copy.deepcopy(self)

    def player_by_id(self) -> Dict[str, Player]:
        return {p.id: p for p in self.players}

    def team_by_id(self) -> Dict[str, Team]:
        return {t.id: t for t in self.teams}

    def find_team(self, team_id: Optional[str]) -> Optional[Team]:
        for team in self.teams:
            if team.id == team_id:
                return team
        return None

    def find_player(self, player_id: Optional[str]) -> Optional[Player]:
        for player in self.players:
            if player.id == player_id:
                return player
        return None

    def to_dict(self) -> dict:
        return {
            "metadata": self.metadata.to_dict(),
            "config": self.config.to_dict(),
            "phase": self.phase.value,
            "user_team_id": self.user_team_id,
            "teams": [t.to_dict() for t in self.teams],
            "players": [p.to_dict() for p in self.players],
            "auction": self.auction.to_dict(),
            "fixtures": [f.to_dict() for f in self.fixtures],
            "stats": {k: v.to_dict() for k, v in self.stats.items()},
            "champion_team_id": self.champion_team_id,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "GameState":
        return cls(
            metadata=SaveMetadata.from_dict(d["metadata"]),
            config=LeagueConfig.from_dict(d["config"]),
            phase=Phase(d["phase"]),
            user_team_id=d["user_team_id"],
            teams=[Team.from_dict(t) for t in d["teams"]],
            players=[Player.from_dict(p) for p in d["players"]],
            auction=AuctionState.from_dict(d["auction"]),
            fixtures=[MatchResult.from_dict(f) for f in d.get("fixtures", [])],
            stats={k: StatLine.from_dict(v) for k, v in d.get("stats", {}).items()},
            champion_team_id=d.get("champion_team_id"),
        )


def round_half_up(value: float) -> int:
    """Round .5 away from zero on the positive side (not banker's rounding)."""
    return int(math.floor(value + 0.5))
