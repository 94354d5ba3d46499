"""
Head-to-head matches between two tour teams in a round.

Holes are decided on net Stableford points (pickup = 0). A hole is only
contested once both sides have an entry on it.
"""

from dataclasses import dataclass
from typing import Optional

from .golf_calc import HOLES
from .snapshot import TourSnapshot

INDIVIDUAL_MATCHPLAY = "INDIVIDUAL_MATCHPLAY"
BETTERBALL_MATCHPLAY = "BETTERBALL_MATCHPLAY"
INDIVIDUAL_STABLEFORD = "INDIVIDUAL_STABLEFORD"
FORMATS = (INDIVIDUAL_MATCHPLAY, BETTERBALL_MATCHPLAY, INDIVIDUAL_STABLEFORD)

WIN_POINTS = 1.0
HALVE_POINTS = 0.5

A, B, HALVED, NO_DATA = "A", "B", "HALVED", "NO_DATA"


@dataclass(frozen=True)
class MatchSummary:
    thru: int
    diff: int                 # > 0 means side A leads
    decided_at: Optional[int]
    is_final: bool


def side_hole_points(snapshot: TourSnapshot, round_id, player_ids, hole) -> Optional[int]:
    """Best points on the side for this hole, or None when nobody has an entry."""
    pts = [
        snapshot.hole_points(round_id, pid, hole)
        for pid in player_ids
        if pid is not None and snapshot.has_entry(round_id, pid, hole)
    ]
    return max(pts) if pts else None


def hole_winners(snapshot: TourSnapshot, round_id, side_a, side_b) -> list:
    """One of A / B / HALVED / NO_DATA per hole 1..18, with both sides' points."""
    rows = []
    for hole in HOLES:
        a_pts = side_hole_points(snapshot, round_id, side_a, hole)
        b_pts = side_hole_points(snapshot, round_id, side_b, hole)

        if a_pts is None or b_pts is None:
            winner = NO_DATA
        elif a_pts > b_pts:
            winner = A
        elif b_pts > a_pts:
            winner = B
        else:
            winner = HALVED

        rows.append({"hole": hole, "a_points": a_pts, "b_points": b_pts, "winner": winner})
    return rows


def summarize(winners) -> MatchSummary:
    diff = 0
    thru = 0
    decided_at = None

    for hole, w in zip(HOLES, winners):
        if w == NO_DATA:
            continue
        thru = hole
        if w == A:
            diff += 1
        elif w == B:
            diff -= 1

        if abs(diff) > 18 - hole:
            decided_at = hole
            break

    return MatchSummary(thru=thru, diff=diff, decided_at=decided_at, is_final=decided_at is not None or thru == 18)


def live_text(summary: MatchSummary, left: str, right: str) -> str:
    if summary.thru <= 0:
        return "Not started"
    if summary.diff == 0:
        return f"All Square (after {summary.thru} holes)"
    leader = left if summary.diff > 0 else right
    return f"{leader} {abs(summary.diff)} up (after {summary.thru} holes)"


def final_text(summary: MatchSummary, left: str, right: str) -> str:
    if summary.diff == 0:
        return "All Square"

    winner, loser = (left, right) if summary.diff > 0 else (right, left)
    up = abs(summary.diff)

    if summary.decided_at is not None and summary.decided_at < 18:
        return f"{winner} def {loser} {up} & {18 - summary.decided_at}"
    return f"{winner} def {loser} {up} up"


def result_text(summary: MatchSummary, left: str, right: str) -> str:
    return final_text(summary, left, right) if summary.is_final else live_text(summary, left, right)


def match_points(diff: int, is_final: bool, double_points: bool = False):
    """(side A points, side B points). Unfinished matches score nothing."""
    if not is_final:
        return 0.0, 0.0

    mult = 2 if double_points else 1
    if diff > 0:
        return WIN_POINTS * mult, 0.0
    if diff < 0:
        return 0.0, WIN_POINTS * mult
    return HALVE_POINTS * mult, HALVE_POINTS * mult


def stableford_match(snapshot: TourSnapshot, round_id, player_a, player_b) -> MatchSummary:
    """Round Stableford totals head to head; final once both cards are complete."""
    diff = snapshot.round_points(round_id, player_a) - snapshot.round_points(round_id, player_b)
    complete = snapshot.is_player_complete(round_id, player_a) and snapshot.is_player_complete(round_id, player_b)
    thru = min(
        sum(1 for h in HOLES if snapshot.has_entry(round_id, player_a, h)),
        sum(1 for h in HOLES if snapshot.has_entry(round_id, player_b, h)),
    )
    return MatchSummary(thru=thru, diff=diff, decided_at=None, is_final=complete)


def _side_label(snapshot, player_ids) -> str:
    names = [snapshot.player_name(pid) for pid in player_ids if pid is not None]
    return " / ".join(names) if names else "(empty)"


def evaluate_match(snapshot: TourSnapshot, round_id, fmt: str, side_a, side_b,
                   double_points: bool = False, match_no=None) -> dict:
    """
    side_a / side_b: player ids by slot. Individual formats use slot 1 only.
    """
    if fmt not in FORMATS:
        raise ValueError(f"Unknown match format: {fmt}")

    if fmt != BETTERBALL_MATCHPLAY:
        side_a = list(side_a)[:1]
        side_b = list(side_b)[:1]

    left = _side_label(snapshot, side_a)
    right = _side_label(snapshot, side_b)

    holes = []
    if fmt == INDIVIDUAL_STABLEFORD:
        if side_a and side_b:
            summary = stableford_match(snapshot, round_id, side_a[0], side_b[0])
        else:
            summary = MatchSummary(thru=0, diff=0, decided_at=None, is_final=False)
        if summary.is_final:
            text = "All Square" if summary.diff == 0 else (
                f"{left if summary.diff > 0 else right} def {right if summary.diff > 0 else left} by {abs(summary.diff)} pts"
            )
        else:
            text = live_text(summary, left, right)
    else:
        holes = hole_winners(snapshot, round_id, side_a, side_b)
        summary = summarize([h["winner"] for h in holes])
        text = result_text(summary, left, right)

    a_pts, b_pts = match_points(summary.diff, summary.is_final, double_points)

    return {
        "match_no": match_no,
        "format": fmt,
        "side_a": list(side_a),
        "side_b": list(side_b),
        "side_a_label": left,
        "side_b_label": right,
        "thru": summary.thru,
        "diff": summary.diff,
        "decided_at": summary.decided_at,
        "is_final": summary.is_final,
        "result": text,
        "points_a": a_pts,
        "points_b": b_pts,
        "holes": holes,
    }


def team_points(results) -> dict:
    """Sum of match points per side across a round's matches."""
    return {
        "A": sum(r["points_a"] for r in results),
        "B": sum(r["points_b"] for r in results),
    }
