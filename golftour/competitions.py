"""
Competition entities, formats and leaderboards.

Everything here reads per-hole net points from a TourSnapshot, so totals are
recomputed from hole scores every time and nothing is cached.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Optional, Union

from .golf_calc import HOLES
from .snapshot import TourSnapshot

PAIRING_MODES = ("SEQUENTIAL", "SNAKE")
TEAM_MODES = ("ROUND_ROBIN", "SNAKE_TEAMS")
DEFAULT_TEAM_BEST_M = 2


def round2(x: float) -> float:
    # halves go up: 0.625 -> 0.63
    return float(Decimal(str(x)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def pct2(num: int, den: int) -> float:
    if den <= 0:
        return 0.0
    return round2(num / den * 100)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Entity:
    entity_id: object
    label: str
    member_ids: tuple
    kind: str = "individual"


@dataclass(frozen=True)
class ExplicitGrouping:
    """Pairs or teams stored for the tour (or for one round)."""
    groups: tuple  # of Entity


@dataclass(frozen=True)
class GeneratedGrouping:
    """No stored groupings: build them from the tour's grouping settings."""
    kind: str              # pair/team
    mode: str              # SEQUENTIAL/SNAKE or ROUND_ROBIN/SNAKE_TEAMS
    team_count: int = 2


Grouping = Union[ExplicitGrouping, GeneratedGrouping]


def sort_players_for_grouping(players) -> list:
    """Oldest player first, then by name and id. Undated players go last."""
    return sorted(
        players,
        key=lambda p: (p.created_at is None, p.created_at or datetime.min, p.name.lower(), str(p.id)),
    )


def make_implicit_pairs(players, mode: str = "SEQUENTIAL") -> list:
    """
    SEQUENTIAL: 1+2, 3+4, ...   SNAKE: first+last, second+second-last, ...
    An odd player out gets a solo pair.
    """
    remaining = list(players)
    pairs = []

    while remaining:
        a = remaining.pop(0)
        b = None
        if remaining:
            b = remaining.pop(-1) if mode == "SNAKE" else remaining.pop(0)

        if b is None:
            label = f"{a.name} / (Solo)"
            members = (a.id,)
        else:
            label = f"{a.name} / {b.name}"
            members = (a.id, b.id)

        pairs.append(Entity(
            entity_id=f"implicit:pair:{len(pairs)}",
            label=label,
            member_ids=members,
            kind="pair",
        ))

    return pairs


def make_implicit_teams(players, team_count: int = 2, mode: str = "ROUND_ROBIN") -> list:
    k = max(1, int(team_count or 1))
    buckets = [[] for _ in range(k)]

    if mode == "SNAKE_TEAMS":
        # 0,1,..,k-1,k-1,..,1,0,0,1,..
        t, step = 0, 1
        for p in players:
            buckets[t].append(p.id)
            t += step
            if t == k:
                t, step = k - 1, -1
            elif t == -1:
                t, step = 0, 1
    else:
        for i, p in enumerate(players):
            buckets[i % k].append(p.id)

    return [
        Entity(
            entity_id=f"implicit:team:{idx}",
            label=f"Team {idx + 1}",
            member_ids=tuple(members),
            kind="team",
        )
        for idx, members in enumerate(buckets)
    ]


def choose_grouping(kind: str, stored_groups, pairing_mode="SEQUENTIAL",
                    team_mode="ROUND_ROBIN", team_count=2) -> Grouping:
    """Stored groupings win; otherwise fall back to the tour's defaults."""
    stored = tuple(stored_groups or ())
    if stored:
        return ExplicitGrouping(groups=stored)

    if kind == "pair":
        mode = pairing_mode if pairing_mode in PAIRING_MODES else "SEQUENTIAL"
    else:
        mode = team_mode if team_mode in TEAM_MODES else "ROUND_ROBIN"

    return GeneratedGrouping(kind=kind, mode=mode, team_count=max(1, int(team_count or 2)))


def resolve_entities(kind: str, players, grouping: Optional[Grouping] = None) -> list:
    ordered = sort_players_for_grouping(players)

    if kind == "individual":
        return [Entity(entity_id=p.id, label=p.name, member_ids=(p.id,)) for p in ordered]

    if isinstance(grouping, ExplicitGrouping):
        return list(grouping.groups)

    if grouping is None:
        grouping = choose_grouping(kind, ())

    if grouping.kind == "pair":
        return make_implicit_pairs(ordered, grouping.mode)
    return make_implicit_teams(ordered, grouping.team_count, grouping.mode)


# ---------------------------------------------------------------------------
# Definitions
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Eligibility:
    only_playing: bool = False
    require_complete: bool = False


@dataclass
class LeaderboardRow:
    entity_id: object
    label: str
    total: float
    stats: dict = field(default_factory=dict)


@dataclass(frozen=True)
class CompetitionDefinition:
    id: str
    name: str
    kind: str
    # compute(snapshot, entity, round_ids, options) -> (total, stats) or None to drop the entity
    compute: Callable
    eligibility: Eligibility = Eligibility()


def is_entity_eligible(eligibility: Eligibility, snapshot: TourSnapshot, entity: Entity, round_ids) -> bool:
    if eligibility.only_playing:
        for pid in entity.member_ids:
            if not any(snapshot.is_playing(rid, pid) for rid in round_ids):
                return False

    if eligibility.require_complete:
        for rid in round_ids:
            for pid in entity.member_ids:
                if snapshot.is_playing(rid, pid) and not snapshot.is_player_complete(rid, pid):
                    return False

    return True


def _members_label(snapshot, entity) -> str:
    return " / ".join(snapshot.player_name(pid) for pid in entity.member_ids)


# ---- individual formats ----------------------------------------------------

def par_average(par_target: int):
    def compute(snapshot, entity, round_ids, options):
        pid = entity.member_ids[0]
        holes_played = 0
        points = 0

        for rid in round_ids:
            for hole in HOLES:
                if snapshot.par_for(rid, pid, hole) != par_target:
                    continue
                if not snapshot.has_entry(rid, pid, hole):
                    continue
                holes_played += 1
                points += snapshot.hole_points(rid, pid, hole)

        avg = points / holes_played if holes_played else 0.0
        return round2(avg), {
            "holes_played": holes_played,
            "points_total": points,
            "avg_points": round2(avg),
            "par": par_target,
        }

    return compute


def percentage_of_holes(predicate, stat_prefix: str):
    def compute(snapshot, entity, round_ids, options):
        pid = entity.member_ids[0]
        holes_played = 0
        hits = 0

        for rid in round_ids:
            for hole in HOLES:
                if not snapshot.has_entry(rid, pid, hole):
                    continue
                holes_played += 1
                if predicate(snapshot.hole_points(rid, pid, hole)):
                    hits += 1

        percent = pct2(hits, holes_played)
        return percent, {
            "holes_played": holes_played,
            f"{stat_prefix}_count": hits,
            f"{stat_prefix}_pct": percent,
        }

    return compute


def eclectic(snapshot, entity, round_ids, options):
    """Best net points per hole across the rounds, summed."""
    pid = entity.member_ids[0]
    best = {hole: 0 for hole in HOLES}
    played = set()

    for rid in round_ids:
        for hole in HOLES:
            if not snapshot.has_entry(rid, pid, hole):
                continue
            played.add(hole)
            best[hole] = max(best[hole], snapshot.hole_points(rid, pid, hole))

    total = sum(best.values())
    return total, {
        "holes_played": len(played),
        "holes_contributed": sum(1 for v in best.values() if v > 0),
        "eclectic_total": total,
        "best_by_hole": best,
    }


# ---- pair / team formats ---------------------------------------------------

def _hole_points_for_members(snapshot, rid, hole, member_ids) -> list:
    """Points of the members that have an entry on this hole."""
    return [
        snapshot.hole_points(rid, pid, hole)
        for pid in member_ids
        if snapshot.has_entry(rid, pid, hole)
    ]


def best_ball(snapshot, entity, round_ids, options):
    if len(entity.member_ids) != 2:
        return None

    holes_played = 0
    total = 0
    for rid in round_ids:
        for hole in HOLES:
            pts = _hole_points_for_members(snapshot, rid, hole, entity.member_ids)
            if not pts:
                continue
            holes_played += 1
            total += max(pts)

    return total, {
        "members": _members_label(snapshot, entity),
        "holes_played": holes_played,
        "points_total": total,
        "avg_points": round2(total / holes_played) if holes_played else 0.0,
        "method": "best_ball",
    }


def aggregate(snapshot, entity, round_ids, options):
    if len(entity.member_ids) < 2:
        return None

    holes_played = 0
    total = 0
    for rid in round_ids:
        for hole in HOLES:
            pts = _hole_points_for_members(snapshot, rid, hole, entity.member_ids)
            if not pts:
                continue
            holes_played += 1
            total += sum(pts)

    return total, {
        "members": _members_label(snapshot, entity),
        "holes_played": holes_played,
        "points_total": total,
        "method": "aggregate",
    }


def best_m_minus_zeros(snapshot, entity, round_ids, options):
    """Per hole: top M member scores, minus one for every member on zero."""
    if len(entity.member_ids) < 2:
        return None

    try:
        m = max(1, int((options or {}).get("team_best_m") or DEFAULT_TEAM_BEST_M))
    except (TypeError, ValueError):
        m = DEFAULT_TEAM_BEST_M

    holes_played = 0
    total = 0
    zero_penalty = 0
    for rid in round_ids:
        for hole in HOLES:
            pts = _hole_points_for_members(snapshot, rid, hole, entity.member_ids)
            if not pts:
                continue
            holes_played += 1
            zeros = pts.count(0)
            total += sum(sorted(pts, reverse=True)[:m]) - zeros
            zero_penalty += zeros

    return total, {
        "members": _members_label(snapshot, entity),
        "holes_played": holes_played,
        "points_total": total,
        "avg_points": round2(total / holes_played) if holes_played else 0.0,
        "team_best_m": m,
        "zero_penalty_total": zero_penalty,
        "method": "top_m_minus_zeros",
    }


STRICT = Eligibility(only_playing=True, require_complete=True)
PLAYING = Eligibility(only_playing=True)

CATALOG = [
    CompetitionDefinition("tour_napoleon_par3_avg", "Napoleon - Avg Stableford on Par 3s",
                          "individual", par_average(3), STRICT),
    CompetitionDefinition("tour_big_george_par4_avg", "The Big George - Avg Stableford on Par 4s",
                          "individual", par_average(4), STRICT),
    CompetitionDefinition("tour_grand_canyon_par5_avg", "The Grand Canyon - Avg Stableford on Par 5s",
                          "individual", par_average(5), STRICT),
    CompetitionDefinition("tour_bagel_man_zero_pct", "The Bagel Man - % Holes with 0 Points",
                          "individual", percentage_of_holes(lambda pts: pts == 0, "zero"), PLAYING),
    CompetitionDefinition("tour_wizard_four_plus_pct", "The Wizard - % Holes with 4+ Points",
                          "individual", percentage_of_holes(lambda pts: pts >= 4, "four_plus"), PLAYING),
    CompetitionDefinition("tour_eclectic", "The Eclectic - Best Stableford per Hole",
                          "individual", eclectic, PLAYING),
    CompetitionDefinition("tour_pair_best_ball_stableford", "Pairs - Best Ball Stableford",
                          "pair", best_ball, STRICT),
    CompetitionDefinition("tour_pair_aggregate_stableford", "Pairs - Aggregate Stableford",
                          "pair", aggregate, STRICT),
    CompetitionDefinition("tour_team_aggregate_stableford", "Teams - Aggregate Stableford",
                          "team", aggregate, STRICT),
    CompetitionDefinition("tour_team_best_m_minus_zeros", "Teams - Top M Stableford minus zeros",
                          "team", best_m_minus_zeros, STRICT),
]

CATALOG_BY_ID = {c.id: c for c in CATALOG}


def get_competition(competition_id: str) -> Optional[CompetitionDefinition]:
    return CATALOG_BY_ID.get(competition_id)


def _selected_rounds(snapshot: TourSnapshot, round_ids) -> list:
    if round_ids is None:
        return [r.id for r in snapshot.rounds]
    wanted = set(round_ids)
    return [r.id for r in snapshot.rounds if r.id in wanted]


def run_competition(definition: CompetitionDefinition, snapshot: TourSnapshot, entities,
                    round_ids=None, options=None) -> list:
    rids = _selected_rounds(snapshot, round_ids)

    rows = []
    for entity in entities:
        if not is_entity_eligible(definition.eligibility, snapshot, entity, rids):
            continue
        result = definition.compute(snapshot, entity, rids, options)
        if result is None:
            continue
        total, stats = result
        rows.append(LeaderboardRow(entity_id=entity.entity_id, label=entity.label, total=total, stats=stats))

    rows.sort(key=lambda row: (-row.total, row.label))
    return rows


# ---------------------------------------------------------------------------
# Tour leaderboard and standings
# ---------------------------------------------------------------------------

def tour_leaderboard(snapshot: TourSnapshot) -> dict:
    headers = [{"id": r.id, "label": f"R{idx + 1}"} for idx, r in enumerate(snapshot.rounds)]

    rows = []
    for p in snapshot.players:
        per_round = {}
        total = 0
        for r in snapshot.rounds:
            if not snapshot.is_playing(r.id, p.id):
                per_round[r.id] = None
                continue
            points = snapshot.round_points(r.id, p.id)
            per_round[r.id] = points
            total += points

        rows.append({
            "player_id": p.id,
            "player_name": p.name,
            "per_round": per_round,
            "total": total,
        })

    rows.sort(key=lambda row: (-row["total"], row["player_name"]))
    return {"rounds": headers, "rows": rows}


def standings_to_date(snapshot: TourSnapshot, player_ids, exclude_round_id=None) -> list:
    """Player ids worst first by net points in every other round of the tour."""
    totals = {}
    for pid in player_ids:
        totals[pid] = sum(
            snapshot.round_points(r.id, pid)
            for r in snapshot.rounds
            if r.id != exclude_round_id and snapshot.is_playing(r.id, pid)
        )

    # ties by name so the order is stable
    return sorted(player_ids, key=lambda pid: (totals[pid], snapshot.player_name(pid)))


# ---------------------------------------------------------------------------
# H2Z: running Stableford total on par 3s, wiped by any zero
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class H2ZLeg:
    leg_no: int
    start_round_no: int
    end_round_no: int


@dataclass(frozen=True)
class H2ZResult:
    final_score: int
    best_score: int
    best_len: int


def default_h2z_legs(snapshot: TourSnapshot) -> list:
    """One leg over the whole tour."""
    if not snapshot.rounds:
        return []
    numbers = [n for _, n in _effective_round_numbers(snapshot)]
    return [H2ZLeg(leg_no=1, start_round_no=min(numbers), end_round_no=max(numbers))]


def _effective_round_numbers(snapshot: TourSnapshot) -> list:
    # round_no where stored, else the 1-based position in tour order
    return [
        (r, r.round_no if r.round_no is not None else idx + 1)
        for idx, r in enumerate(snapshot.rounds)
    ]


def h2z_for_player(snapshot: TourSnapshot, player_id, leg: H2ZLeg, events=None) -> H2ZResult:
    """
    Walks the leg's par 3s in tour order. Points add to the running total;
    a hole worth 0 (pickups and unplayed holes included) resets it.

    events: optional list that receives one dict per par 3 seen.
    """
    lo = min(leg.start_round_no, leg.end_round_no)
    hi = max(leg.start_round_no, leg.end_round_no)

    running = 0
    run_len = 0
    best_score = 0
    best_len = 0

    for r, round_no in _effective_round_numbers(snapshot):
        if not lo <= round_no <= hi:
            continue

        for hole in HOLES:
            if snapshot.par_for(r.id, player_id, hole) != 3:
                continue

            pts = snapshot.hole_points(r.id, player_id, hole)
            before = running

            if pts == 0:
                running = 0
                run_len = 0
            else:
                running += pts
                run_len += 1
                if running > best_score:
                    best_score = running
                    best_len = run_len

            if events is not None:
                events.append({
                    "round_id": r.id,
                    "round_no": round_no,
                    "hole": hole,
                    "points": pts,
                    "running_before": before,
                    "running_after": running,
                    "reset": pts == 0,
                })

    return H2ZResult(final_score=running, best_score=best_score, best_len=best_len)


def h2z_leaderboard(snapshot: TourSnapshot, legs=None) -> list:
    """Per leg, every tour player ranked by best streak, then current total."""
    legs = list(legs) if legs else default_h2z_legs(snapshot)

    boards = []
    for leg in sorted(legs, key=lambda l: l.leg_no):
        rows = []
        for p in snapshot.players:
            result = h2z_for_player(snapshot, p.id, leg)
            rows.append({
                "player_id": p.id,
                "player_name": p.name,
                "final_score": result.final_score,
                "best_score": result.best_score,
                "best_len": result.best_len,
            })
        rows.sort(key=lambda row: (-row["best_score"], -row["final_score"], row["player_name"]))
        boards.append({
            "leg_no": leg.leg_no,
            "start_round_no": leg.start_round_no,
            "end_round_no": leg.end_round_no,
            "rows": rows,
        })
    return boards
