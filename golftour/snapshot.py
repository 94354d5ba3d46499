"""
In-memory view of one tour: rounds, players, playing assignments, hole
scores and par tables, normalised from stored rows.

Stored rows are loosely shaped (nullable columns, legacy spellings of tees,
pickups stored as "P" in the strokes column, single-tee par tables). They are
normalised once here by ``build_snapshot`` so that the scoring, handicap,
pairing and competition code only ever sees the fixed shapes below.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional

from .golf_calc import EMPTY, HOLES, ScoreOutcome, is_entered, net_points, score_from_row

logger = logging.getLogger(__name__)

TEES = ("M", "F")
FEMALE_ALIASES = {"F", "FEMALE", "W", "WOMAN", "WOMEN", "L", "LADIES"}


def normalize_tee(value) -> str:
    text = str(value or "").strip().upper()
    return "F" if text in FEMALE_ALIASES else "M"


def optional_tee(value) -> Optional[str]:
    if value is None or not str(value).strip():
        return None
    return normalize_tee(value)


def safe_int(value) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return math.floor(number)


def _field(row, *names, default=None):
    """First non-None value among ``names`` (dict keys or attributes)."""
    for name in names:
        if isinstance(row, dict):
            value = row.get(name)
        else:
            value = getattr(row, name, None)
        if value is not None:
            return value
    return default


@dataclass(frozen=True)
class HoleInfo:
    par: Optional[int]
    stroke_index: Optional[int]


@dataclass(frozen=True)
class PlayerInfo:
    id: int
    name: str
    tee: str = "M"
    starting_handicap: int = 0
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class RoundInfo:
    id: int
    course_id: Optional[int]
    round_no: Optional[int] = None
    played_on: Optional[date] = None
    created_at: Optional[datetime] = None
    locked: bool = False
    name: Optional[str] = None

    @property
    def label(self) -> str:
        if self.name:
            return self.name
        if self.round_no is not None:
            return f"Round {self.round_no}"
        return f"Round {self.id}"


@dataclass
class Assignment:
    round_id: int
    player_id: int
    playing: bool = False
    playing_handicap: Optional[int] = None
    tee: Optional[str] = None


def round_order_key(r: RoundInfo):
    # round_no, then played_on, then created_at, then id; missing values last
    return (
        r.round_no is None,
        r.round_no or 0,
        r.played_on is None,
        r.played_on or date.min,
        r.created_at is None,
        r.created_at or datetime.min,
        r.id,
    )


@dataclass
class TourSnapshot:
    rounds: list
    players: list
    assignments: dict = field(default_factory=dict)  # (round_id, player_id) -> Assignment
    scores: dict = field(default_factory=dict)       # (round_id, player_id) -> {hole: outcome}
    par_tables: dict = field(default_factory=dict)   # course_id -> {tee: {hole: HoleInfo}}
    rehandicapping_enabled: bool = True

    def __post_init__(self):
        self.rounds = sorted(self.rounds, key=round_order_key)
        self._rounds_by_id = {r.id: r for r in self.rounds}
        self._players_by_id = {p.id: p for p in self.players}

    # ---- lookups --------------------------------------------------------

    def round(self, round_id) -> Optional[RoundInfo]:
        return self._rounds_by_id.get(round_id)

    def player(self, player_id) -> Optional[PlayerInfo]:
        return self._players_by_id.get(player_id)

    def player_name(self, player_id) -> str:
        p = self.player(player_id)
        return p.name if p else str(player_id)

    def assignment(self, round_id, player_id) -> Optional[Assignment]:
        return self.assignments.get((round_id, player_id))

    def is_playing(self, round_id, player_id) -> bool:
        a = self.assignment(round_id, player_id)
        return bool(a and a.playing)

    def playing_ids(self, round_id) -> list:
        return [p.id for p in self.players if self.is_playing(round_id, p.id)]

    def starting_handicap(self, player_id) -> int:
        p = self.player(player_id)
        return p.starting_handicap if p else 0

    def playing_handicap(self, round_id, player_id) -> int:
        a = self.assignment(round_id, player_id)
        if a and a.playing_handicap is not None:
            return a.playing_handicap
        return self.starting_handicap(player_id)

    def tee_for(self, round_id, player_id) -> str:
        a = self.assignment(round_id, player_id)
        if a and a.tee:
            return a.tee
        p = self.player(player_id)
        return p.tee if p else "M"

    # ---- par tables -----------------------------------------------------

    def has_par_table(self, round_id) -> bool:
        rnd = self.round(round_id)
        if rnd is None or rnd.course_id is None:
            return False
        return any(self.par_tables.get(rnd.course_id, {}).values())

    def par_table(self, round_id, player_id) -> Optional[dict]:
        rnd = self.round(round_id)
        if rnd is None or rnd.course_id is None:
            return None
        by_tee = self.par_tables.get(rnd.course_id) or {}

        # player's tee, then men's, then ladies'
        for tee in (self.tee_for(round_id, player_id), "M", "F"):
            table = by_tee.get(tee)
            if table:
                return table
        return None

    def hole_info(self, round_id, player_id, hole) -> Optional[HoleInfo]:
        table = self.par_table(round_id, player_id)
        return table.get(hole) if table else None

    def par_for(self, round_id, player_id, hole) -> Optional[int]:
        info = self.hole_info(round_id, player_id, hole)
        return info.par if info else None

    # ---- scores ---------------------------------------------------------

    def outcome(self, round_id, player_id, hole) -> ScoreOutcome:
        return self.scores.get((round_id, player_id), {}).get(hole, EMPTY)

    def has_entry(self, round_id, player_id, hole) -> bool:
        return is_entered(self.outcome(round_id, player_id, hole))

    def hole_points(self, round_id, player_id, hole, handicap=None) -> int:
        info = self.hole_info(round_id, player_id, hole)
        if info is None:
            return 0
        if handicap is None:
            handicap = self.playing_handicap(round_id, player_id)
        return net_points(self.outcome(round_id, player_id, hole), info.par, info.stroke_index, handicap)

    def round_points(self, round_id, player_id, handicap=None) -> int:
        return sum(self.hole_points(round_id, player_id, hole, handicap) for hole in HOLES)

    def is_player_complete(self, round_id, player_id) -> bool:
        return all(self.has_entry(round_id, player_id, hole) for hole in HOLES)

    def is_round_complete(self, round_id) -> bool:
        playing = self.playing_ids(round_id)
        if not playing:
            return False
        return all(self.is_player_complete(round_id, pid) for pid in playing)


# ---------------------------------------------------------------------------
# Row adapters
# ---------------------------------------------------------------------------

def _player_from_row(row) -> Optional[PlayerInfo]:
    player_id = _field(row, "id", "player_id")
    if player_id is None:
        return None

    name = str(_field(row, "name", default="") or "").strip() or "(missing player)"

    # tour override, then the player's own starting handicap
    start = safe_int(_field(row, "starting_handicap", "start_handicap", default=0))
    start = max(0, start or 0)

    return PlayerInfo(
        id=player_id,
        name=name,
        tee=normalize_tee(_field(row, "tee", "gender", "sex")),
        starting_handicap=start,
        created_at=_field(row, "created_at"),
    )


def _round_from_row(row) -> Optional[RoundInfo]:
    round_id = _field(row, "id", "round_id")
    if round_id is None:
        return None
    return RoundInfo(
        id=round_id,
        course_id=_field(row, "course_id"),
        round_no=safe_int(_field(row, "round_no")),
        played_on=_field(row, "played_on", "round_date"),
        created_at=_field(row, "created_at"),
        locked=bool(_field(row, "locked", default=False)),
        name=_field(row, "name"),
    )


def build_snapshot(rounds, players, round_players=(), scores=(), pars=(), rehandicapping_enabled=True) -> TourSnapshot:
    """
    Build a TourSnapshot from stored rows (dicts or ORM objects).

    rounds:        id, course_id, round_no, played_on, created_at, locked, name
    players:       id, name, gender|tee, starting_handicap (tour) / start_handicap
    round_players: round_id, player_id, playing, playing_handicap, tee
    scores:        round_id, player_id, hole_number, strokes, pickup
    pars:          course_id, hole_number, par, stroke_index, tee (None = men's)
    """
    round_infos = [r for r in (_round_from_row(row) for row in rounds) if r is not None]
    player_infos = [p for p in (_player_from_row(row) for row in players) if p is not None]

    round_ids = {r.id for r in round_infos}
    player_ids = {p.id for p in player_infos}

    assignments = {}
    for row in round_players:
        rid = _field(row, "round_id")
        pid = _field(row, "player_id")
        if rid not in round_ids or pid not in player_ids:
            continue
        assignments[(rid, pid)] = Assignment(
            round_id=rid,
            player_id=pid,
            playing=_field(row, "playing") is True,
            playing_handicap=safe_int(_field(row, "playing_handicap")),
            tee=optional_tee(_field(row, "tee")),
        )

    score_map = {}
    skipped = 0
    for row in scores:
        rid = _field(row, "round_id")
        pid = _field(row, "player_id")
        hole = safe_int(_field(row, "hole_number", "hole"))
        if rid not in round_ids or pid not in player_ids or hole is None or not 1 <= hole <= 18:
            skipped += 1
            continue

        outcome = score_from_row(_field(row, "strokes"), _field(row, "pickup"))
        holes = score_map.setdefault((rid, pid), {})

        # never overwrite a real entry with a blank one
        if not is_entered(outcome) and is_entered(holes.get(hole, EMPTY)):
            continue
        holes[hole] = outcome

    if skipped:
        logger.debug(f"Skipped {skipped} score rows outside the tour or hole range")

    par_tables = {}
    for row in pars:
        course_id = _field(row, "course_id")
        hole = safe_int(_field(row, "hole_number", "number", "hole"))
        if course_id is None or hole is None or not 1 <= hole <= 18:
            continue
        tee = normalize_tee(_field(row, "tee"))
        par_tables.setdefault(course_id, {}).setdefault(tee, {})[hole] = HoleInfo(
            par=safe_int(_field(row, "par")),
            stroke_index=safe_int(_field(row, "stroke_index", "si")),
        )

    return TourSnapshot(
        rounds=round_infos,
        players=player_infos,
        assignments=assignments,
        scores=score_map,
        par_tables=par_tables,
        rehandicapping_enabled=rehandicapping_enabled,
    )
