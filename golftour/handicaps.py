"""
Round-by-round playing handicap propagation for a tour.

Round 1 plays off each player's starting handicap. Once a round is complete,
every player who played it moves a third of the way from their Stableford
total towards the field average, bounded by ceil(start / 2) and start + 3.
The scan stops at the first incomplete round; later rounds keep whatever
value they already had.
"""

import logging
import math

from .snapshot import TourSnapshot

logger = logging.getLogger(__name__)

DELTA_DIVISOR = 3
MAX_ABOVE_START = 3


def round_half_up(x: float) -> int:
    # .5 rounds away from zero
    return math.floor(x + 0.5) if x >= 0 else math.ceil(x - 0.5)


def handicap_bounds(starting_handicap: int):
    return math.ceil(starting_handicap / 2), starting_handicap + MAX_ABOVE_START


def clamp(value, lo, hi):
    return max(lo, min(hi, value))


def field_average(totals):
    if not totals:
        return None
    return round_half_up(sum(totals) / len(totals))


def next_handicap(current: int, starting_handicap: int, average: int, round_total: int) -> int:
    delta = (average - round_total) / DELTA_DIVISOR
    lo, hi = handicap_bounds(starting_handicap)
    return clamp(round_half_up(current + delta), lo, hi)


def propagate_handicaps(snapshot: TourSnapshot) -> dict:
    """
    Returns {(round_id, player_id): playing_handicap} for every round the scan
    reached. Rounds past the first incomplete one are absent.
    """
    rounds = snapshot.rounds
    players = snapshot.players
    if not rounds or not players:
        return {}

    if not snapshot.rehandicapping_enabled:
        return {
            (r.id, p.id): p.starting_handicap
            for r in rounds
            for p in players
        }

    ph = {rounds[0].id: {p.id: p.starting_handicap for p in players}}

    for i, r in enumerate(rounds):
        nxt = rounds[i + 1] if i + 1 < len(rounds) else None

        if r.id not in ph:
            prev = ph[rounds[i - 1].id]
            ph[r.id] = {p.id: prev.get(p.id, p.starting_handicap) for p in players}

        if not snapshot.has_par_table(r.id):
            logger.info(f"Handicap scan stopped at {r.label}: no course or par table")
            break

        if not snapshot.is_round_complete(r.id):
            logger.debug(f"Handicap scan stopped at {r.label}: round incomplete")
            break

        totals = {}
        for p in players:
            if snapshot.is_playing(r.id, p.id):
                totals[p.id] = snapshot.round_points(r.id, p.id, ph[r.id][p.id])

        average = field_average(list(totals.values()))

        if nxt is None:
            break

        ph[nxt.id] = {}
        for p in players:
            current = ph[r.id][p.id]
            if average is None or p.id not in totals:
                ph[nxt.id][p.id] = current
                continue
            ph[nxt.id][p.id] = next_handicap(current, p.starting_handicap, average, totals[p.id])

    return {
        (round_id, player_id): value
        for round_id, by_player in ph.items()
        for player_id, value in by_player.items()
    }


def handicap_updates(snapshot: TourSnapshot) -> list:
    """
    Upsert batch covering every (round, player) pair of the tour.

    Each row keeps the stored playing flag and tee; the handicap is the
    propagated value when the scan reached that round, else the stored value,
    else the starting handicap.
    """
    computed = propagate_handicaps(snapshot)

    rows = []
    for r in snapshot.rounds:
        for p in snapshot.players:
            existing = snapshot.assignment(r.id, p.id)

            value = computed.get((r.id, p.id))
            if value is None:
                value = existing.playing_handicap if existing and existing.playing_handicap is not None else p.starting_handicap

            rows.append({
                "round_id": r.id,
                "player_id": p.id,
                "playing": bool(existing and existing.playing),
                "playing_handicap": value,
                "tee": existing.tee if existing and existing.tee else p.tee,
            })
    return rows
