"""
Appleby handicaps: rehandicapping only after rounds 3, 6, 9 and 12.

On each of those rounds the 6th best Stableford score among complete,
playing cards is the cutoff. Every point a player finishes away from the
cutoff moves their handicap 0.1 (beating it lowers the handicap). The
cumulative adjustment is capped at +/-3.0 from the tour starting handicap.

Rounds 1-3 play off the starting handicap, rounds 4-6 off the value after
round 3, and so on; rounds after 12 keep the value after round 12.
"""

import math
from dataclasses import dataclass, field

from .golf_calc import HOLES
from .handicaps import round_half_up
from .snapshot import TourSnapshot

CHECKPOINTS = (3, 6, 9, 12)
CUTOFF_PLACE = 6
STEP_PER_POINT = 0.1
MAX_ADJUSTMENT = 3.0


def round1(x: float) -> float:
    return math.floor(x * 10 + 0.5) / 10


@dataclass
class ApplebyRow:
    player_id: int
    name: str
    start: float
    seed: int
    score: dict = field(default_factory=dict)        # checkpoint -> Stableford total or None
    cutoff: dict = field(default_factory=dict)       # checkpoint -> cutoff or None
    is_cutoff_score: dict = field(default_factory=dict)
    step: dict = field(default_factory=dict)         # applied step, None when not adjusted
    capped: dict = field(default_factory=dict)       # step reduced by the cap
    adjustment_after: dict = field(default_factory=dict)
    handicap_after: dict = field(default_factory=dict)
    rounded_after: dict = field(default_factory=dict)


def checkpoint_rounds(snapshot: TourSnapshot) -> dict:
    """checkpoint -> RoundInfo, for the checkpoints the tour has a round for."""
    by_no = {r.round_no: r for r in snapshot.rounds if r.round_no is not None}
    return {n: by_no[n] for n in CHECKPOINTS if n in by_no}


def card_total(snapshot: TourSnapshot, round_id, player_id):
    """Stableford total of a complete playing card, or None."""
    if not snapshot.is_playing(round_id, player_id):
        return None
    if not snapshot.is_player_complete(round_id, player_id):
        return None
    if not snapshot.has_par_table(round_id):
        return None
    for hole in HOLES:
        info = snapshot.hole_info(round_id, player_id, hole)
        if info is None or info.par is None or info.stroke_index is None:
            return None
    return snapshot.round_points(round_id, player_id)


def cutoff_score(totals):
    scores = sorted((t for t in totals if t is not None), reverse=True)
    if len(scores) < CUTOFF_PLACE:
        return None
    return scores[CUTOFF_PLACE - 1]


def appleby_table(snapshot: TourSnapshot) -> dict:
    rounds = checkpoint_rounds(snapshot)

    scores = {
        n: {p.id: card_total(snapshot, r.id, p.id) for p in snapshot.players}
        for n, r in rounds.items()
    }
    cutoffs = {n: (cutoff_score(scores[n].values()) if n in scores else None) for n in CHECKPOINTS}

    rows = []
    for p in sorted(snapshot.players, key=lambda p: (p.name.lower(), str(p.id))):
        start = round1(max(0, p.starting_handicap))
        row = ApplebyRow(player_id=p.id, name=p.name, start=start, seed=max(0, round_half_up(start)))

        cum = 0.0
        for n in CHECKPOINTS:
            score = scores.get(n, {}).get(p.id)
            cutoff = cutoffs[n]
            row.score[n] = score
            row.cutoff[n] = cutoff
            row.is_cutoff_score[n] = score is not None and cutoff is not None and score == cutoff

            if score is None or cutoff is None:
                row.step[n] = None
                row.capped[n] = False
            else:
                raw = round1((cutoff - score) * STEP_PER_POINT)
                capped_cum = round1(max(-MAX_ADJUSTMENT, min(MAX_ADJUSTMENT, round1(cum + raw))))
                applied = round1(capped_cum - cum)
                row.step[n] = applied
                row.capped[n] = applied != raw
                cum = capped_cum

            row.adjustment_after[n] = round1(cum)
            row.handicap_after[n] = round1(start + cum)
            row.rounded_after[n] = round_half_up(start + cum)

        rows.append(row)

    can_update = any(c is not None for c in cutoffs.values())
    if not rounds:
        reason = "Rounds 3/6/9/12 not found yet for this tour."
    elif not can_update:
        reason = (
            f"Need at least {CUTOFF_PLACE} complete playing cards on one of "
            f"rounds 3/6/9/12 to set a cutoff."
        )
    else:
        reason = None

    return {"players": rows, "cutoffs": cutoffs, "can_update": can_update, "reason": reason}


def segment_handicap(row: ApplebyRow, round_no: int) -> int:
    """Whole handicap to play round ``round_no`` off."""
    value = row.seed
    for n in CHECKPOINTS:
        if round_no <= n:
            break
        if row.rounded_after.get(n) is not None:
            value = row.rounded_after[n]
    return max(0, math.floor(value))


def appleby_updates(snapshot: TourSnapshot, rows) -> list:
    """Upsert batch for every numbered round, keeping playing flags and tees."""
    batch = []
    for r in snapshot.rounds:
        if r.round_no is None:
            continue
        for row in rows:
            existing = snapshot.assignment(r.id, row.player_id)
            player = snapshot.player(row.player_id)
            batch.append({
                "round_id": r.id,
                "player_id": row.player_id,
                "playing": bool(existing and existing.playing),
                "playing_handicap": segment_handicap(row, r.round_no),
                "tee": existing.tee if existing and existing.tee else player.tee,
            })
    return batch
