import logging
import threading
import weakref
from collections import defaultdict
from dataclasses import asdict

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models, schemas
from .appleby import appleby_table, appleby_updates
from .competitions import (
    choose_grouping,
    Entity,
    get_competition,
    H2ZLeg,
    h2z_leaderboard,
    resolve_entities,
    run_competition,
    standings_to_date,
    tour_leaderboard,
)
from .golf_calc import EMPTY, HOLES, Pickup, parse_score
from .handicaps import handicap_updates
from .matchplay import evaluate_match, team_points
from .pairings import (
    generate_fair_mix,
    generate_final_seeded,
    generate_mixed_fair,
    generate_mixed_seeded,
    generate_prefer_pairs,
    PairingError,
    POLICY_NOTES,
    validate_partition,
)
from .snapshot import build_snapshot, normalize_tee, TourSnapshot
from .stats import player_tour_stats

logger = logging.getLogger(__name__)

# failure reasons, mapped to HTTP statuses in main
NOT_FOUND = "not_found"
LOCKED = "locked"
CONFLICT = "conflict"
STORE = "store"


def _fail(message: str, reason: str) -> dict:
    return {"ok": False, "error": message, "reason": reason}


#---------------------------------------------------------------------------------
# ---------------------------------- Tours ---------------------------------------
# --------------------------------------------------------------------------------

def get_tours(db: Session):
    return db.query(models.Tour).order_by(models.Tour.name).all()

def get_tour(db: Session, tour_id: int):
    return db.query(models.Tour).filter(models.Tour.id == tour_id).first()

def create_tour(db: Session, data: schemas.TourCreate):
    t = models.Tour(**data.model_dump())
    db.add(t)
    db.commit()
    db.refresh(t)
    return t

def set_rehandicapping(db: Session, tour_id: int, enabled: bool):
    t = get_tour(db, tour_id)
    if not t:
        return None
    t.rehandicapping_enabled = enabled
    db.commit()
    db.refresh(t)
    return t


#---------------------------------------------------------------------------------
# ---------------------------------- Players -------------------------------------
# --------------------------------------------------------------------------------

def get_players(db: Session):
    return db.query(models.Player).order_by(models.Player.name).all()

def get_player(db: Session, player_id: int):
    return db.query(models.Player).filter(models.Player.id == player_id).first()

def create_player(db: Session, data: schemas.PlayerCreate):
    p = models.Player(**data.model_dump())
    db.add(p)
    db.commit()
    db.refresh(p)
    return p

def get_tour_player(db: Session, tour_id: int, player_id: int):
    return (
        db.query(models.TourPlayer)
        .filter(models.TourPlayer.tour_id == tour_id, models.TourPlayer.player_id == player_id)
        .first()
    )

def add_player_to_tour(db: Session, tour_id: int, player_id: int, starting_handicap=None):
    tp = get_tour_player(db, tour_id, player_id)
    if tp is None:
        tp = models.TourPlayer(tour_id=tour_id, player_id=player_id)
        db.add(tp)
    tp.starting_handicap = starting_handicap
    db.commit()
    db.refresh(tp)
    return tp

def effective_starting_handicap(player, tour_player=None) -> int:
    if tour_player is not None and tour_player.starting_handicap is not None:
        value = tour_player.starting_handicap
    else:
        value = player.start_handicap or 0
    return max(0, int(value))


#---------------------------------------------------------------------------------
# ------------------------------------ Courses -----------------------------------
# --------------------------------------------------------------------------------

def get_course(db: Session, course_id: int):
    return db.query(models.Course).filter(models.Course.id == course_id).first()

def create_course(db: Session, data: schemas.CourseCreate):
    c = models.Course(**data.model_dump())
    db.add(c)
    db.commit()
    db.refresh(c)
    return c

def get_holes_for_course(db: Session, course_id: int):
    return (
        db.query(models.Hole)
        .filter(models.Hole.course_id == course_id)
        .order_by(models.Hole.tee, models.Hole.number)
        .all()
    )

def upsert_holes_for_course(db: Session, course_id: int, holes_data, tee: str = "M"):
    # the whole par table for one tee is replaced
    tee = normalize_tee(tee)
    db.query(models.Hole).filter(models.Hole.course_id == course_id, models.Hole.tee == tee).delete()

    for h in holes_data:
        db.add(models.Hole(course_id=course_id, tee=tee, **h.model_dump()))

    db.commit()


#---------------------------------------------------------------------------------
# ------------------------------------- Rounds -----------------------------------
# --------------------------------------------------------------------------------

def get_round(db: Session, round_id: int):
    return db.query(models.Round).filter(models.Round.id == round_id).first()

def get_rounds_by_tour(db: Session, tour_id: int):
    return db.query(models.Round).filter(models.Round.tour_id == tour_id).all()

def create_round(db: Session, data: schemas.RoundCreate):
    r = models.Round(**data.model_dump())
    db.add(r)
    db.commit()
    db.refresh(r)
    return r

def get_round_player(db: Session, round_id: int, player_id: int):
    return (
        db.query(models.RoundPlayer)
        .filter(models.RoundPlayer.round_id == round_id, models.RoundPlayer.player_id == player_id)
        .first()
    )

def add_player_to_round(db: Session, round_id: int, player_id: int, playing: bool = True, tee=None):
    """Creates the round assignment with the player's starting handicap."""
    r = get_round(db, round_id)
    player = get_player(db, player_id)
    if not r or not player:
        return None

    rp = get_round_player(db, round_id, player_id)
    if rp is None:
        tp = get_tour_player(db, r.tour_id, player_id)
        rp = models.RoundPlayer(
            round_id=round_id,
            player_id=player_id,
            playing_handicap=effective_starting_handicap(player, tp),
            tee=normalize_tee(tee or player.gender),
        )
        db.add(rp)
    rp.playing = playing

    db.commit()
    db.refresh(rp)
    return rp

def get_round_handicaps(db: Session, round_id: int):
    rows = (
        db.query(models.RoundPlayer, models.Player)
        .join(models.Player, models.Player.id == models.RoundPlayer.player_id)
        .filter(models.RoundPlayer.round_id == round_id)
        .order_by(models.Player.name, models.Player.id)
        .all()
    )
    return [
        {
            "player_id": p.id,
            "name": p.name,
            "playing": rp.playing,
            "playing_handicap": rp.playing_handicap,
            "tee": rp.tee,
        }
        for rp, p in rows
    ]


#---------------------------------------------------------------------------------
# ------------------------------------ Snapshot ----------------------------------
# --------------------------------------------------------------------------------

def load_tour_snapshot(db: Session, tour_id: int):
    """
    Reads every row the engine needs for a tour before anything is computed.
    Returns None for an unknown tour.
    """
    tour = get_tour(db, tour_id)
    if not tour:
        return None

    rounds = get_rounds_by_tour(db, tour_id)
    round_ids = [r.id for r in rounds]
    course_ids = {r.course_id for r in rounds if r.course_id is not None}

    round_players = []
    scores = []
    if round_ids:
        round_players = db.query(models.RoundPlayer).filter(models.RoundPlayer.round_id.in_(round_ids)).all()
        scores = db.query(models.HoleScore).filter(models.HoleScore.round_id.in_(round_ids)).all()

    pars = []
    if course_ids:
        pars = db.query(models.Hole).filter(models.Hole.course_id.in_(course_ids)).all()

    # tour members first, then anyone only known from a round assignment
    overrides = {tp.player_id: tp.starting_handicap for tp in tour.tour_players}
    player_ids = set(overrides) | {rp.player_id for rp in round_players}
    players = []
    if player_ids:
        players = (
            db.query(models.Player)
            .filter(models.Player.id.in_(player_ids))
            .order_by(models.Player.name, models.Player.id)
            .all()
        )

    player_rows = [
        {
            "id": p.id,
            "name": p.name,
            "gender": p.gender,
            "starting_handicap": overrides.get(p.id) if overrides.get(p.id) is not None else p.start_handicap,
            "created_at": p.created_at,
        }
        for p in players
    ]

    return build_snapshot(
        rounds=rounds,
        players=player_rows,
        round_players=round_players,
        scores=scores,
        pars=pars,
        rehandicapping_enabled=bool(tour.rehandicapping_enabled),
    )


#---------------------------------------------------------------------------------
# ------------------------------------ Handicaps ---------------------------------
# --------------------------------------------------------------------------------

class TourLock:
    """threading.Lock that can be held in a WeakValueDictionary."""

    def __init__(self):
        self._lock = threading.Lock()

    def __enter__(self):
        self._lock.acquire()
        return self

    def __exit__(self, *exc):
        self._lock.release()
        return False

    def locked(self) -> bool:
        return self._lock.locked()


# a tour's entry goes away once nobody holds its lock
_tour_locks = weakref.WeakValueDictionary()
_tour_locks_guard = threading.Lock()


def _tour_lock(tour_id) -> TourLock:
    with _tour_locks_guard:
        lock = _tour_locks.get(tour_id)
        if lock is None:
            lock = TourLock()
            _tour_locks[tour_id] = lock
        return lock


def _upsert_round_players(db: Session, rows, round_ids) -> int:
    existing = {
        (rp.round_id, rp.player_id): rp
        for rp in db.query(models.RoundPlayer).filter(models.RoundPlayer.round_id.in_(round_ids)).all()
    }

    for row in rows:
        rp = existing.get((row["round_id"], row["player_id"]))
        if rp is None:
            rp = models.RoundPlayer(round_id=row["round_id"], player_id=row["player_id"])
            db.add(rp)
        rp.playing = row["playing"]
        rp.playing_handicap = row["playing_handicap"]
        rp.tee = row["tee"]

    return len(rows)


def recalc_and_save_tour_handicaps(db: Session, tour_id: int, require_complete_round_id=None) -> dict:
    """
    Recomputes every playing handicap of the tour and upserts them.

    With require_complete_round_id set, nothing happens unless that round is
    complete. One recalculation per tour at a time.
    """
    with _tour_lock(tour_id):
        try:
            snapshot = load_tour_snapshot(db, tour_id)
            if snapshot is None:
                return _fail(f"Tour {tour_id} not found", NOT_FOUND)

            if require_complete_round_id is not None and not snapshot.is_round_complete(require_complete_round_id):
                logger.debug(f"Tour {tour_id}: round {require_complete_round_id} incomplete, handicaps untouched")
                return {"ok": True, "updated": 0, "skipped": True}

            rows = handicap_updates(snapshot)
            if not rows:
                return {"ok": True, "updated": 0}

            updated = _upsert_round_players(db, rows, [r.id for r in snapshot.rounds])
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Handicap recalculation failed for tour {tour_id}: {e}", exc_info=True)
            return _fail(str(e), STORE)

    logger.info(f"Tour {tour_id}: recalculated {updated} playing handicaps")
    return {"ok": True, "updated": updated}


#---------------------------------------------------------------------------------
# ------------------------------------- Scores -----------------------------------
# --------------------------------------------------------------------------------

def get_hole_scores(db: Session, round_id: int, player_id: int):
    return (
        db.query(models.HoleScore)
        .filter(models.HoleScore.round_id == round_id, models.HoleScore.player_id == player_id)
        .order_by(models.HoleScore.hole_number)
        .all()
    )


def save_hole_scores(db: Session, round_id: int, player_id: int, entries: dict) -> dict:
    """
    entries: {hole_number: raw entry} with raw "", "P", "5" or 5.
    Blank entries delete the stored score. Handicaps are recalculated once
    the round is complete.
    """
    r = get_round(db, round_id)
    if not r:
        return _fail(f"Round {round_id} not found", NOT_FOUND)
    if r.locked:
        return _fail(f"Round {round_id} is locked", LOCKED)
    if not get_player(db, player_id):
        return _fail(f"Player {player_id} not found", NOT_FOUND)

    stored = {s.hole_number: s for s in get_hole_scores(db, round_id, player_id)}
    saved = 0
    cleared = 0

    try:
        for hole, raw in entries.items():
            hole = int(hole)
            if hole not in HOLES:
                logger.debug(f"Ignoring entry for hole {hole} in round {round_id}")
                continue

            outcome = parse_score(raw)
            row = stored.get(hole)

            if outcome == EMPTY:
                if row is not None:
                    db.delete(row)
                    cleared += 1
                continue

            if row is None:
                row = models.HoleScore(round_id=round_id, player_id=player_id, hole_number=hole)
                db.add(row)

            if isinstance(outcome, Pickup):
                row.strokes = None
                row.pickup = True
            else:
                row.strokes = outcome.strokes
                row.pickup = False
            saved += 1

        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Saving scores failed for round {round_id}, player {player_id}: {e}", exc_info=True)
        return _fail(str(e), STORE)

    logger.info(f"Round {round_id}, player {player_id}: saved {saved} holes, cleared {cleared}")

    handicaps = recalc_and_save_tour_handicaps(db, r.tour_id, require_complete_round_id=round_id)
    return {"ok": True, "saved": saved, "cleared": cleared, "handicaps": handicaps}


#---------------------------------------------------------------------------------
# ------------------------------------- Groups -----------------------------------
# --------------------------------------------------------------------------------

def get_round_groups(db: Session, round_id: int):
    groups = (
        db.query(models.RoundGroup)
        .filter(models.RoundGroup.round_id == round_id)
        .order_by(models.RoundGroup.group_no)
        .all()
    )
    return [
        {
            "group_no": g.group_no,
            "start_hole": g.start_hole,
            "tee_time": g.tee_time,
            "notes": g.notes,
            "player_ids": [m.player_id for m in g.members],
        }
        for g in groups
    ]


def get_past_groups(db: Session, tour_id: int, exclude_round_id=None):
    """Member lists of every stored playing group in the tour's other rounds."""
    q = (
        db.query(models.RoundGroupPlayer)
        .join(models.Round, models.Round.id == models.RoundGroupPlayer.round_id)
        .filter(models.Round.tour_id == tour_id)
    )
    if exclude_round_id is not None:
        q = q.filter(models.RoundGroupPlayer.round_id != exclude_round_id)

    by_group = defaultdict(list)
    for m in q.order_by(models.RoundGroupPlayer.group_id, models.RoundGroupPlayer.seat).all():
        by_group[m.group_id].append(m.player_id)
    return list(by_group.values())


def get_tour_pairs(db: Session, tour_id: int):
    """Declared tour-scope pairs, as (a, b) player id tuples."""
    groups = (
        db.query(models.TourGroup)
        .filter(
            models.TourGroup.tour_id == tour_id,
            models.TourGroup.scope == "tour",
            models.TourGroup.type == "pair",
        )
        .order_by(models.TourGroup.created_at, models.TourGroup.id)
        .all()
    )
    pairs = []
    for g in groups:
        members = [m.player_id for m in sorted(g.members, key=lambda m: (m.position is None, m.position or 0, m.id))]
        if len(members) == 2:
            pairs.append((members[0], members[1]))
    return pairs


def _split_by_tee(snapshot: TourSnapshot, round_id, player_ids):
    males = [pid for pid in player_ids if snapshot.tee_for(round_id, pid) != "F"]
    females = [pid for pid in player_ids if snapshot.tee_for(round_id, pid) == "F"]
    return males, females


def build_round_groups(db: Session, snapshot: TourSnapshot, round_obj, policy: str, rng=None) -> list:
    playing = snapshot.playing_ids(round_obj.id)

    if policy == "prefer_pairs":
        groups = generate_prefer_pairs(playing, get_tour_pairs(db, round_obj.tour_id), rng)
    elif policy == "fair_mix":
        groups = generate_fair_mix(playing, get_past_groups(db, round_obj.tour_id, round_obj.id), rng)
    elif policy == "final_seeded":
        groups = generate_final_seeded(standings_to_date(snapshot, playing, round_obj.id))
    elif policy == "mixed_fair":
        males, females = _split_by_tee(snapshot, round_obj.id, playing)
        groups = generate_mixed_fair(males, females, get_past_groups(db, round_obj.tour_id, round_obj.id), rng)
    elif policy == "mixed_seeded":
        ranked = standings_to_date(snapshot, playing, round_obj.id)
        males, females = _split_by_tee(snapshot, round_obj.id, ranked)
        groups = generate_mixed_seeded(males, females)
    else:
        raise PairingError(f"Unknown pairing policy: {policy}")

    validate_partition(groups, playing)
    return groups


def generate_round_groups(db: Session, round_id: int, policy: str, rng=None) -> dict:
    """
    Generates the round's playing groups and replaces the stored ones in a
    single transaction. On any failure the previous groups stay as they were.
    """
    r = get_round(db, round_id)
    if not r:
        return _fail(f"Round {round_id} not found", NOT_FOUND)

    try:
        snapshot = load_tour_snapshot(db, r.tour_id)
        groups = build_round_groups(db, snapshot, r, policy, rng)
    except PairingError as e:
        logger.info(f"Round {round_id}: no groups generated ({policy}): {e}")
        return _fail(str(e), CONFLICT)
    except SQLAlchemyError as e:
        logger.error(f"Loading round {round_id} for grouping failed: {e}", exc_info=True)
        return _fail(str(e), STORE)

    try:
        db.query(models.RoundGroupPlayer).filter(models.RoundGroupPlayer.round_id == round_id).delete()
        db.query(models.RoundGroup).filter(models.RoundGroup.round_id == round_id).delete()

        for idx, members in enumerate(groups, start=1):
            g = models.RoundGroup(round_id=round_id, group_no=idx, start_hole=1, notes=POLICY_NOTES[policy])
            db.add(g)
            db.flush()
            for seat, pid in enumerate(members, start=1):
                db.add(models.RoundGroupPlayer(round_id=round_id, group_id=g.id, player_id=pid, seat=seat))

        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Replacing groups for round {round_id} failed: {e}", exc_info=True)
        return _fail(str(e), STORE)

    logger.info(f"Round {round_id}: {len(groups)} groups generated ({policy})")
    return {"ok": True, "policy": policy, "groups": get_round_groups(db, round_id)}


#---------------------------------------------------------------------------------
# --------------------------------- Competitions ---------------------------------
# --------------------------------------------------------------------------------

def get_grouping_settings(db: Session, tour_id: int):
    s = db.query(models.TourGroupingSettings).filter(models.TourGroupingSettings.tour_id == tour_id).first()
    if s is None:
        # defaults without writing a row
        s = models.TourGroupingSettings(
            tour_id=tour_id,
            default_pairing_mode="SEQUENTIAL",
            default_team_mode="ROUND_ROBIN",
            default_team_count=2,
            default_team_best_m=2,
        )
    return s


def _stored_groups(db: Session, tour_id: int, kind: str, round_id=None):
    q = db.query(models.TourGroup).filter(models.TourGroup.tour_id == tour_id, models.TourGroup.type == kind)
    if round_id is None:
        q = q.filter(models.TourGroup.scope == "tour")
    else:
        q = q.filter(models.TourGroup.scope == "round", models.TourGroup.round_id == round_id)
    return q.order_by(models.TourGroup.team_index, models.TourGroup.name, models.TourGroup.id).all()


def get_stored_entities(db: Session, tour_id: int, kind: str, round_id=None):
    """
    Stored pairs or teams. With round_id, that round's own groupings win and
    the tour-wide ones are used when it has none.
    """
    groups = _stored_groups(db, tour_id, kind, round_id) if round_id is not None else []
    if not groups:
        groups = _stored_groups(db, tour_id, kind)

    return [
        Entity(
            entity_id=g.id,
            label=g.name,
            member_ids=tuple(m.player_id for m in sorted(g.members, key=lambda m: (m.position is None, m.position or 0, m.id))),
            kind=kind,
        )
        for g in groups
    ]


def resolve_tour_entities(db: Session, snapshot: TourSnapshot, tour_id: int, kind: str, round_id=None):
    if kind == "individual":
        return resolve_entities(kind, snapshot.players)

    settings = get_grouping_settings(db, tour_id)
    grouping = choose_grouping(
        kind,
        get_stored_entities(db, tour_id, kind, round_id),
        pairing_mode=settings.default_pairing_mode,
        team_mode=settings.default_team_mode,
        team_count=settings.default_team_count,
    )
    return resolve_entities(kind, snapshot.players, grouping)


def compute_competition(db: Session, tour_id: int, competition_id: str, round_id=None) -> dict:
    definition = get_competition(competition_id)
    if definition is None:
        return _fail(f"Unknown competition: {competition_id}", NOT_FOUND)

    try:
        snapshot = load_tour_snapshot(db, tour_id)
        if snapshot is None:
            return _fail(f"Tour {tour_id} not found", NOT_FOUND)

        entities = resolve_tour_entities(db, snapshot, tour_id, definition.kind, round_id)
        options = {"team_best_m": get_grouping_settings(db, tour_id).default_team_best_m}
    except SQLAlchemyError as e:
        logger.error(f"Loading tour {tour_id} for {competition_id} failed: {e}", exc_info=True)
        return _fail(str(e), STORE)

    rows = run_competition(
        definition,
        snapshot,
        entities,
        round_ids=[round_id] if round_id is not None else None,
        options=options,
    )

    return {
        "ok": True,
        "competition_id": definition.id,
        "name": definition.name,
        "kind": definition.kind,
        "rows": [asdict(row) for row in rows],
    }


def compute_tour_leaderboard(db: Session, tour_id: int) -> dict:
    try:
        snapshot = load_tour_snapshot(db, tour_id)
    except SQLAlchemyError as e:
        logger.error(f"Loading tour {tour_id} for the leaderboard failed: {e}", exc_info=True)
        return _fail(str(e), STORE)

    if snapshot is None:
        return _fail(f"Tour {tour_id} not found", NOT_FOUND)
    return {"ok": True, **tour_leaderboard(snapshot)}


def get_h2z_legs(db: Session, tour_id: int):
    rows = (
        db.query(models.TourH2ZLeg)
        .filter(models.TourH2ZLeg.tour_id == tour_id)
        .order_by(models.TourH2ZLeg.leg_no)
        .all()
    )
    return [H2ZLeg(leg_no=leg.leg_no, start_round_no=leg.start_round_no, end_round_no=leg.end_round_no) for leg in rows]


def compute_h2z(db: Session, tour_id: int) -> dict:
    """H2Z boards per stored leg, or one leg over the whole tour."""
    try:
        snapshot = load_tour_snapshot(db, tour_id)
        if snapshot is None:
            return _fail(f"Tour {tour_id} not found", NOT_FOUND)
        legs = get_h2z_legs(db, tour_id)
    except SQLAlchemyError as e:
        logger.error(f"Loading tour {tour_id} for H2Z failed: {e}", exc_info=True)
        return _fail(str(e), STORE)

    return {"ok": True, "legs": h2z_leaderboard(snapshot, legs)}


def compute_player_tour_stats(db: Session, tour_id: int, player_id: int) -> dict:
    try:
        snapshot = load_tour_snapshot(db, tour_id)
    except SQLAlchemyError as e:
        logger.error(f"Loading tour {tour_id} for player stats failed: {e}", exc_info=True)
        return _fail(str(e), STORE)

    if snapshot is None:
        return _fail(f"Tour {tour_id} not found", NOT_FOUND)
    if snapshot.player(player_id) is None:
        return _fail(f"Player {player_id} is not in tour {tour_id}", NOT_FOUND)
    return {"ok": True, **player_tour_stats(snapshot, player_id)}


#---------------------------------------------------------------------------------
# ------------------------------------- Appleby ----------------------------------
# --------------------------------------------------------------------------------

def _appleby_payload(table: dict) -> dict:
    return {
        "ok": True,
        "cutoffs": table["cutoffs"],
        "can_update": table["can_update"],
        "reason": table["reason"],
        "players": [asdict(row) for row in table["players"]],
    }


def compute_appleby(db: Session, tour_id: int) -> dict:
    try:
        snapshot = load_tour_snapshot(db, tour_id)
    except SQLAlchemyError as e:
        logger.error(f"Loading tour {tour_id} for Appleby failed: {e}", exc_info=True)
        return _fail(str(e), STORE)

    if snapshot is None:
        return _fail(f"Tour {tour_id} not found", NOT_FOUND)
    return _appleby_payload(appleby_table(snapshot))


def apply_appleby_handicaps(db: Session, tour_id: int) -> dict:
    """Writes the Appleby playing handicap of every numbered round of the tour."""
    with _tour_lock(tour_id):
        try:
            snapshot = load_tour_snapshot(db, tour_id)
            if snapshot is None:
                return _fail(f"Tour {tour_id} not found", NOT_FOUND)

            table = appleby_table(snapshot)
            if not table["can_update"]:
                return _fail(table["reason"], CONFLICT)

            rows = appleby_updates(snapshot, table["players"])
            updated = _upsert_round_players(db, rows, [r.id for r in snapshot.rounds]) if rows else 0
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Applying Appleby handicaps failed for tour {tour_id}: {e}", exc_info=True)
            return _fail(str(e), STORE)

    logger.info(f"Tour {tour_id}: applied {updated} Appleby handicaps")
    return {"ok": True, "updated": updated}


#---------------------------------------------------------------------------------
# ------------------------------------- Matches ----------------------------------
# --------------------------------------------------------------------------------

def get_match_settings(db: Session, round_id: int):
    return db.query(models.MatchRoundSettings).filter(models.MatchRoundSettings.round_id == round_id).first()


def _match_sides(match):
    sides = {"A": {}, "B": {}}
    for mp in match.players:
        sides.setdefault(mp.side, {})[mp.slot] = mp.player_id
    return (
        [pid for _, pid in sorted(sides["A"].items())],
        [pid for _, pid in sorted(sides["B"].items())],
    )


def compute_round_matches(db: Session, round_id: int) -> dict:
    try:
        r = get_round(db, round_id)
        if not r:
            return _fail(f"Round {round_id} not found", NOT_FOUND)

        settings = get_match_settings(db, round_id)
        if settings is None:
            return _fail(f"No match format set for round {round_id}", NOT_FOUND)

        snapshot = load_tour_snapshot(db, r.tour_id)
        matches = [(m.match_no, _match_sides(m)) for m in sorted(settings.matches, key=lambda m: m.match_no)]
        team_a = db.get(models.TourGroup, settings.group_a_id)
        team_b = db.get(models.TourGroup, settings.group_b_id)
    except SQLAlchemyError as e:
        logger.error(f"Loading matches for round {round_id} failed: {e}", exc_info=True)
        return _fail(str(e), STORE)

    results = [
        evaluate_match(
            snapshot, round_id, settings.format, side_a, side_b,
            double_points=settings.double_points, match_no=match_no,
        )
        for match_no, (side_a, side_b) in matches
    ]
    totals = team_points(results)

    return {
        "ok": True,
        "round_id": round_id,
        "format": settings.format,
        "double_points": settings.double_points,
        "team_a": team_a.name if team_a else "Team A",
        "team_b": team_b.name if team_b else "Team B",
        "points_a": totals["A"],
        "points_b": totals["B"],
        "matches": results,
    }
