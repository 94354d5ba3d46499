import math
from dataclasses import dataclass
from typing import Optional, Union

PICKUP_SENTINEL = "P"
HOLES = range(1, 19)

MIN_POINTS = 0
MAX_POINTS = 10


@dataclass(frozen=True)
class Numeric:
    strokes: int


@dataclass(frozen=True)
class Pickup:
    pass


@dataclass(frozen=True)
class Empty:
    pass


PICKUP = Pickup()
EMPTY = Empty()

ScoreOutcome = Union[Numeric, Pickup, Empty]


def parse_score(raw) -> ScoreOutcome:
    """
    raw: "", "P", "5", 5, 5.0 or None
    Invalid input is discarded as Empty rather than raising.
    """
    if raw is None:
        return EMPTY

    if isinstance(raw, bool):
        return EMPTY

    if isinstance(raw, (int, float)):
        if isinstance(raw, float) and (not math.isfinite(raw) or not raw.is_integer()):
            return EMPTY
        strokes = int(raw)
        return Numeric(strokes) if strokes >= 0 else EMPTY

    text = str(raw).strip()
    if not text:
        return EMPTY
    if text.upper() == PICKUP_SENTINEL:
        return PICKUP

    try:
        strokes = int(text)
    except ValueError:
        return EMPTY

    return Numeric(strokes) if strokes >= 0 else EMPTY


def score_from_row(strokes, pickup=None) -> ScoreOutcome:
    # pickup flag wins over whatever sits in the strokes column
    if pickup is True:
        return PICKUP
    return parse_score(strokes)


def raw_score(outcome: ScoreOutcome) -> str:
    if isinstance(outcome, Numeric):
        return str(outcome.strokes)
    if isinstance(outcome, Pickup):
        return PICKUP_SENTINEL
    return ""


def is_entered(outcome: ScoreOutcome) -> bool:
    return not isinstance(outcome, Empty)


def _whole_handicap(playing_handicap) -> int:
    try:
        value = float(playing_handicap or 0)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(value):
        return 0
    return max(0, math.floor(value))


def strokes_received(playing_handicap, stroke_index: Optional[int]) -> int:
    hcp = _whole_handicap(playing_handicap)
    base = hcp // 18
    remainder = hcp % 18

    extra = 1 if stroke_index is not None and 0 < stroke_index <= remainder else 0
    return base + extra


def strokes_received_per_hole(playing_handicap, holes):
    """
    holes: iterable of objects with number and stroke_index
    returns {hole_number: strokes_received}
    """
    return {h.number: strokes_received(playing_handicap, h.stroke_index) for h in holes}


def stableford_points(net_strokes: int, par: int) -> int:
    # par = 2 points, one point per stroke either side
    points = 2 + (par - net_strokes)
    return max(MIN_POINTS, min(MAX_POINTS, points))


def net_points(outcome: ScoreOutcome, par: Optional[int], stroke_index: Optional[int], playing_handicap) -> int:
    if not isinstance(outcome, Numeric):
        return 0
    if par is None or stroke_index is None:
        return 0

    received = strokes_received(playing_handicap, stroke_index)
    net = outcome.strokes - received
    return stableford_points(net, par)
