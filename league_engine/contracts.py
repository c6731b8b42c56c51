"""
Save Document Contracts
=======================

The import/export boundary for a league save.

decode_save runs four gates in order and rejects at the first that fails:
  1. size     - documents over MAX_SAVE_BYTES
  2. syntax   - anything that is not a JSON object
  3. schema   - pydantic models below (ranges, enums, date keys); older
                schema versions are upgraded first by ``upgrade_document``
  4. semantic - the whole-state invariant checker

Every rejection is an ``ImportRejectedError`` carrying the underlying cause.
"""

import copy
import json
import logging
from typing import Annotated, Callable, Dict, List, Literal, Optional, Union

import pydantic
from pydantic import BaseModel, Field

from league_engine.errors import ImportRejectedError, SemanticIntegrityError
from league_engine.invariants import assert_semantic_integrity
from league_engine.models import (
    SCHEMA_VERSION,
    AuctionPhase,
    BowlingPreset,
    BowlingStyle,
    DismissalKind,
    EntryStatus,
    FixtureStage,
    GameState,
    Phase,
    PlayerRole,
    PlayoffTieBreak,
    PolicySet,
)

_log = logging.getLogger("league_engine.contracts")

MAX_SAVE_BYTES = 5 * 1024 * 1024

Rating = Annotated[int, Field(ge=1, le=99)]
NonNegativeInt = Annotated[int, Field(ge=0)]


# ═══════════════════════════════════════════════════════════════
# DOCUMENT MODELS
# ═══════════════════════════════════════════════════════════════

class SkillRatingModel(BaseModel):
    overall: Rating
    traits: Dict[str, Rating]


class BowlingRatingModel(SkillRatingModel):
    style: BowlingStyle = BowlingStyle.PACE


class PlayerRatingsModel(BaseModel):
    batting: SkillRatingModel
    bowling: BowlingRatingModel
    fielding: SkillRatingModel
    temperament: Rating
    fitness: Rating


class LastSeasonStatsModel(BaseModel):
    matches: NonNegativeInt = 0
    runs: NonNegativeInt = 0
    wickets: NonNegativeInt = 0
    strike_rate: float = Field(default=0.0, ge=0)
    economy: float = Field(default=0.0, ge=0)


class PotentialModel(BaseModel):
    batting_overall: Rating
    bowling_overall: Rating
    fielding_overall: Rating
    temperament: Rating
    fitness: Rating


class FirstClassProjectionModel(BaseModel):
    runs: NonNegativeInt
    wickets: NonNegativeInt
    strike_rate: float = Field(ge=0)
    economy: float = Field(ge=0)


class DevelopmentModel(BaseModel):
    is_prospect: bool
    potential: PotentialModel
    first_class_projection: FirstClassProjectionModel


class PlayerModel(BaseModel):
    id: str = Field(min_length=1)
    first_name: str
    last_name: str
    country_tag: str = Field(min_length=2)
    capped: bool
    role: PlayerRole
    age: Optional[Annotated[int, Field(ge=16, le=50)]] = None
    base_price: int = Field(ge=1)
    last_season_stats: LastSeasonStatsModel = Field(default_factory=LastSeasonStatsModel)
    ratings: PlayerRatingsModel
    development: Optional[DevelopmentModel] = None
    team_id: Optional[str] = None
    previous_team_id: Optional[str] = None


class TeamModel(BaseModel):
    id: str = Field(min_length=1)
    city: str
    name: str
    short_name: str
    color: str
    budget_remaining: NonNegativeInt
    roster_player_ids: List[str] = []
    playing_xi: List[str] = []
    wicketkeeper_player_id: Optional[str] = None
    bowling_preset: BowlingPreset = BowlingPreset.BALANCED
    points: int = 0
    wins: NonNegativeInt = 0
    losses: NonNegativeInt = 0
    ties: NonNegativeInt = 0
    net_run_rate: float = 0.0


class AuctionEntryModel(BaseModel):
    player_id: str
    phase: AuctionPhase
    status: EntryStatus = EntryStatus.PENDING
    sold_to_team_id: Optional[str] = None
    final_price: NonNegativeInt = 0


class AuctionStateModel(BaseModel):
    entries: List[AuctionEntryModel] = []
    current_nomination_index: NonNegativeInt = 0
    phase: AuctionPhase = AuctionPhase.MARQUEE
    current_player_id: Optional[str] = None
    current_bid_team_id: Optional[str] = None
    current_bid: NonNegativeInt = 0
    current_bid_increment: NonNegativeInt = 0
    passed_team_ids: List[str] = []
    awaiting_user_action: bool = False
    message: str = ""
    allow_rtm: bool = False
    complete: bool = False


class BattingLineModel(BaseModel):
    player_id: str
    runs: NonNegativeInt = 0
    balls: NonNegativeInt = 0
    fours: NonNegativeInt = 0
    sixes: NonNegativeInt = 0
    out: bool = False
    dismissal_kind: Optional[DismissalKind] = None
    dismissed_by_player_id: Optional[str] = None
    assisted_by_player_id: Optional[str] = None


class BowlingLineModel(BaseModel):
    player_id: str
    overs: int = Field(default=0, ge=0, le=4)
    runs_conceded: NonNegativeInt = 0
    wickets: int = Field(default=0, ge=0, le=10)


class InningsModel(BaseModel):
    batting_team_id: str
    bowling_team_id: str
    wicketkeeper_player_id: Optional[str] = None
    runs: NonNegativeInt
    wickets: int = Field(ge=0, le=10)
    overs: float = Field(ge=0, le=20)
    batting: List[BattingLineModel] = []
    bowling: List[BowlingLineModel] = []


class MatchModel(BaseModel):
    id: str
    home_team_id: str
    away_team_id: str
    venue: str = ""
    round: int = Field(ge=1)
    scheduled_at: Optional[str] = Field(default=None, pattern=r"^\d{4}-\d{2}-\d{2}$")
    played: bool = False
    winner_team_id: Optional[str] = None
    margin: str = ""
    innings: Optional[List[InningsModel]] = None
    stage: FixtureStage = FixtureStage.LEAGUE


class StatLineModel(BaseModel):
    player_id: str
    matches: NonNegativeInt = 0
    runs: NonNegativeInt = 0
    balls: NonNegativeInt = 0
    wickets: NonNegativeInt = 0
    overs: NonNegativeInt = 0
    runs_conceded: NonNegativeInt = 0


class LeagueConfigModel(BaseModel):
    team_count: int = Field(ge=2, le=20)
    format: Literal["T20"] = "T20"
    policy_set: PolicySet = PolicySet.LEGACY
    auction_budget: int = Field(ge=1)
    min_squad_size: int = Field(ge=11)
    max_squad_size: int = Field(ge=11)
    season_seed: int
    playoff_tie_break: PlayoffTieBreak = PlayoffTieBreak.HOME_TEAM


class SaveMetadataModel(BaseModel):
    schema_version: Literal[3]
    engine_version: str
    seed: int
    season_number: int = Field(default=1, ge=1)
    created_at: str
    updated_at: str


class SaveDocument(BaseModel):
    metadata: SaveMetadataModel
    config: LeagueConfigModel
    phase: Phase
    user_team_id: str
    teams: List[TeamModel] = Field(min_length=2)
    players: List[PlayerModel]
    auction: AuctionStateModel
    fixtures: List[MatchModel] = []
    stats: Dict[str, StatLineModel] = {}
    champion_team_id: Optional[str] = None


# ═══════════════════════════════════════════════════════════════
# SCHEMA UPGRADES
# ═══════════════════════════════════════════════════════════════

def _upgrade_v2(doc: dict) -> dict:
    """Version 3 added season numbering, fixture stages, playoff tie-break and release tracking."""
    metadata = doc.setdefault("metadata", {})
    metadata.setdefault("season_number", 1)
    metadata["schema_version"] = 3
    doc.setdefault("config", {}).setdefault("playoff_tie_break", PlayoffTieBreak.HOME_TEAM.value)
    for fixture in doc.get("fixtures", []):
        fixture.setdefault("stage", FixtureStage.LEAGUE.value)
    for player in doc.get("players", []):
        player.setdefault("previous_team_id", None)
    doc.setdefault("champion_team_id", None)
    return doc


UPGRADERS: Dict[int, Callable[[dict], dict]] = {
    2: _upgrade_v2,
}


def upgrade_document(doc: dict) -> dict:
    """Bring an older save document up to the current schema version.  Returns a new dict."""
    metadata = doc.get("metadata")
    version = metadata.get("schema_version") if isinstance(metadata, dict) else None
    if version == SCHEMA_VERSION:
        return doc
    if version not in UPGRADERS:
        raise ImportRejectedError(f"Unsupported save schema version: {version}")

    upgraded = copy.deepcopy(doc)
    while version != SCHEMA_VERSION:
        upgraded = UPGRADERS[version](upgraded)
        version = upgraded["metadata"]["schema_version"]
    _log.debug(f"Upgraded save document to schema version {version}")
    return upgraded


# ═══════════════════════════════════════════════════════════════
# ENCODE / DECODE
# ═══════════════════════════════════════════════════════════════

def encode_save(state: GameState) -> str:
    return json.dumps(state.to_dict())


def decode_save(raw: Union[str, bytes]) -> GameState:
    """Parse, upgrade and validate a save document into a GameState."""
    size = len(raw.encode("utf-8")) if isinstance(raw, str) else len(raw)
    if size > MAX_SAVE_BYTES:
        raise ImportRejectedError(f"Save file is too large ({size} bytes, limit {MAX_SAVE_BYTES})")

    try:
        doc = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ImportRejectedError("Save file is not valid JSON", cause=e) from e
    if not isinstance(doc, dict):
        raise ImportRejectedError("Save file must contain a JSON object")

    doc = upgrade_document(doc)

    try:
        document = SaveDocument.model_validate(doc)
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise ImportRejectedError(
            f"Save file failed schema validation at {location}: {first['msg']}", cause=e,
        ) from e

    state = GameState.from_dict(document.model_dump(mode="json"))
    try:
        assert_semantic_integrity(state)
    except SemanticIntegrityError as e:
        raise ImportRejectedError(f"Save file failed semantic validation: {e.message}", cause=e) from e
    return state
