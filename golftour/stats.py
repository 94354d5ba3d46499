"""
Per-player tour statistics: Stableford round summaries and gross/net
outcome counts per hole.
"""

import statistics

from .golf_calc import HOLES, Numeric, Pickup, strokes_received
from .snapshot import TourSnapshot

BUCKETS = ("eagle_or_better", "birdie", "par", "bogey", "double_or_worse")


def bucket_for(diff: int) -> str:
    if diff <= -2:
        return "eagle_or_better"
    if diff == -1:
        return "birdie"
    if diff == 0:
        return "par"
    if diff == 1:
        return "bogey"
    return "double_or_worse"


def sample_stdev(values):
    if len(values) < 2:
        return None
    return statistics.stdev(values)


def player_tour_stats(snapshot: TourSnapshot, player_id) -> dict:
    gross = dict.fromkeys(BUCKETS, 0)
    net = dict.fromkeys(BUCKETS, 0)
    holes_played = 0
    pickups = 0
    missing_pars = 0

    summaries = []
    for r in snapshot.rounds:
        if r.course_id is None:
            continue

        handicap = snapshot.playing_handicap(r.id, player_id)
        total = 0
        scored = 0

        for hole in HOLES:
            outcome = snapshot.outcome(r.id, player_id, hole)
            if not isinstance(outcome, (Numeric, Pickup)):
                continue

            info = snapshot.hole_info(r.id, player_id, hole)
            if info is None or info.par is None or info.stroke_index is None:
                missing_pars += 1
                continue

            holes_played += 1
            scored += 1

            # a pickup counts as double bogey or worse both ways
            if isinstance(outcome, Pickup):
                pickups += 1
                gross["double_or_worse"] += 1
                net["double_or_worse"] += 1
            else:
                gross[bucket_for(outcome.strokes - info.par)] += 1
                received = strokes_received(handicap, info.stroke_index)
                net[bucket_for(outcome.strokes - received - info.par)] += 1

            total += snapshot.hole_points(r.id, player_id, hole)

        summaries.append({
            "round_id": r.id,
            "course_id": r.course_id,
            "stableford_total": total,
            "holes_scored": scored,
            "is_complete": scored == len(HOLES),
        })

    completed = [s["stableford_total"] for s in summaries if s["is_complete"]]

    return {
        "player_id": player_id,
        "player_name": snapshot.player_name(player_id),
        "rounds": {
            "completed": len(completed),
            "best": max(completed) if completed else None,
            "worst": min(completed) if completed else None,
            "average": statistics.mean(completed) if completed else None,
            "stdev": sample_stdev(completed),
            "completed_totals": completed,
            "summaries": summaries,
        },
        "holes": {
            "played": holes_played,
            "pickups": pickups,
            "missing_pars": missing_pars,
            "gross": gross,
            "net": net,
        },
    }
