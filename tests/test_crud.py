import random
import threading
import time

from sqlalchemy.exc import OperationalError, SQLAlchemyError

from golftour import crud, models, schemas

from factories import card

TWOS = [2] * 18
THIRTY = [2] * 12 + [1] * 6
FORTY_TWO = [2] * 12 + [3] * 6


def _handicaps(db, round_id):
    return {row["name"]: row["playing_handicap"] for row in crud.get_round_handicaps(db, round_id)}


def _score_round_one(db, tour):
    r1 = tour["rounds"][0]
    alice, bob, carol, dave = tour["players"]
    results = []
    for player, points in [(alice, THIRTY), (bob, TWOS), (carol, FORTY_TWO), (dave, TWOS)]:
        results.append(crud.save_hole_scores(db, r1.id, player.id, card(points, player.start_handicap)))
    return results


def _add_group(db, tour_id, kind, name, player_ids, scope="tour", round_id=None):
    g = models.TourGroup(tour_id=tour_id, scope=scope, round_id=round_id, type=kind, name=name)
    g.members = [models.TourGroupMember(player_id=pid, position=i) for i, pid in enumerate(player_ids)]
    db.add(g)
    db.commit()
    return g


# ---- scores -------------------------------------------------------------------

def test_save_hole_scores_stores_and_clears(db, tour):
    r1 = tour["rounds"][0]
    alice = tour["players"][0]

    result = crud.save_hole_scores(db, r1.id, alice.id, {1: 5, 2: "P", 3: ""})
    assert result["ok"]
    assert (result["saved"], result["cleared"]) == (2, 0)
    assert result["handicaps"]["skipped"]

    rows = {s.hole_number: s for s in crud.get_hole_scores(db, r1.id, alice.id)}
    assert rows[1].strokes == 5 and not rows[1].pickup
    assert rows[2].strokes is None and rows[2].pickup

    result = crud.save_hole_scores(db, r1.id, alice.id, {1: "", 2: " "})
    assert result["cleared"] == 2
    assert crud.get_hole_scores(db, r1.id, alice.id) == []


def test_save_hole_scores_refuses_locked_round(db, tour):
    r1 = tour["rounds"][0]
    r1.locked = True
    db.commit()

    result = crud.save_hole_scores(db, r1.id, tour["players"][0].id, {1: 4})
    assert result == {"ok": False, "error": f"Round {r1.id} is locked", "reason": crud.LOCKED}


def test_save_hole_scores_unknown_round(db, tour):
    result = crud.save_hole_scores(db, 999, tour["players"][0].id, {1: 4})
    assert result["reason"] == crud.NOT_FOUND


# ---- handicaps ----------------------------------------------------------------

def test_completing_a_round_recalculates_handicaps(db, tour):
    results = _score_round_one(db, tour)

    assert all(r["handicaps"].get("skipped") for r in results[:-1])
    assert results[-1]["handicaps"] == {"ok": True, "updated": 8}

    r1, r2 = tour["rounds"]
    assert _handicaps(db, r1.id) == {"Alice": 10, "Bob": 20, "Carol": 16, "Dave": 4}
    assert _handicaps(db, r2.id) == {"Alice": 12, "Bob": 20, "Carol": 14, "Dave": 4}


def test_recalc_with_rehandicapping_disabled(db, tour):
    _score_round_one(db, tour)
    crud.set_rehandicapping(db, tour["tour"].id, False)

    result = crud.recalc_and_save_tour_handicaps(db, tour["tour"].id)
    assert result == {"ok": True, "updated": 8}
    assert _handicaps(db, tour["rounds"][1].id) == {"Alice": 10, "Bob": 20, "Carol": 16, "Dave": 4}


def test_recalc_guard_skips_incomplete_round(db, tour):
    result = crud.recalc_and_save_tour_handicaps(db, tour["tour"].id, require_complete_round_id=tour["rounds"][0].id)
    assert result["skipped"]
    assert result["updated"] == 0


def test_recalc_unknown_tour(db):
    result = crud.recalc_and_save_tour_handicaps(db, 404)
    assert result["ok"] is False
    assert result["reason"] == crud.NOT_FOUND


def test_recalc_store_failure_rolls_back(db, tour, monkeypatch):
    def boom():
        raise SQLAlchemyError("disk full")

    monkeypatch.setattr(db, "commit", boom)
    result = crud.recalc_and_save_tour_handicaps(db, tour["tour"].id)
    assert result == {"ok": False, "error": "disk full", "reason": crud.STORE}


def test_tour_override_sets_starting_handicap(db, tour):
    alice = tour["players"][0]
    crud.add_player_to_tour(db, tour["tour"].id, alice.id, starting_handicap=15)

    crud.recalc_and_save_tour_handicaps(db, tour["tour"].id)
    assert _handicaps(db, tour["rounds"][0].id)["Alice"] == 15


# ---- groups -------------------------------------------------------------------

def test_generate_round_groups_replaces_groups(db, field_of):
    t, r, ids = field_of(8)

    result = crud.generate_round_groups(db, r.id, "fair_mix", random.Random(1))
    assert result["ok"]
    groups = crud.get_round_groups(db, r.id)
    assert [len(g["player_ids"]) for g in groups] == [4, 4]
    assert sorted(pid for g in groups for pid in g["player_ids"]) == sorted(ids)
    assert groups[0]["notes"] == "Auto: Fair mix (non-final)"

    again = crud.generate_round_groups(db, r.id, "fair_mix", random.Random(2))
    assert again["ok"]
    assert db.query(models.RoundGroup).filter(models.RoundGroup.round_id == r.id).count() == 2
    assert db.query(models.RoundGroupPlayer).filter(models.RoundGroupPlayer.round_id == r.id).count() == 8


def test_failed_generation_keeps_previous_groups(db, field_of):
    t, r, ids = field_of(8)
    crud.generate_round_groups(db, r.id, "fair_mix", random.Random(1))
    before = crud.get_round_groups(db, r.id)

    # an all-men field cannot make 2M+2F groups
    result = crud.generate_round_groups(db, r.id, "mixed_fair", random.Random(1))
    assert result["ok"] is False
    assert result["reason"] == crud.CONFLICT
    assert crud.get_round_groups(db, r.id) == before


def test_generate_round_groups_impossible_field(db, field_of):
    t, r, ids = field_of(5)
    result = crud.generate_round_groups(db, r.id, "fair_mix")
    assert result["reason"] == crud.CONFLICT
    assert crud.get_round_groups(db, r.id) == []


def test_generate_round_groups_mixed(db, field_of):
    t, r, ids = field_of(8, genders=["M", "F"] * 4)
    result = crud.generate_round_groups(db, r.id, "mixed_fair", random.Random(3))
    assert result["ok"]

    female = set(ids[1::2])
    for g in result["groups"]:
        assert sum(1 for pid in g["player_ids"] if pid in female) == 2


def test_prefer_pairs_uses_declared_tour_pairs(db, field_of):
    t, r, ids = field_of(8)
    _add_group(db, t.id, "pair", "First pair", [ids[0], ids[7]])

    result = crud.generate_round_groups(db, r.id, "prefer_pairs", random.Random(5))
    assert result["ok"]
    assert any(ids[0] in g["player_ids"] and ids[7] in g["player_ids"] for g in result["groups"])


def test_final_seeded_puts_leader_first_in_last_group(db, tour):
    _score_round_one(db, tour)
    r2 = tour["rounds"][1]
    carol = tour["players"][2]

    result = crud.generate_round_groups(db, r2.id, "final_seeded")
    assert result["ok"]
    assert result["groups"][-1]["player_ids"][0] == carol.id


def test_past_groups_exclude_current_round(db, tour):
    r1, r2 = tour["rounds"]
    crud.generate_round_groups(db, r1.id, "fair_mix", random.Random(0))

    assert len(crud.get_past_groups(db, tour["tour"].id, exclude_round_id=r2.id)) == 1
    assert crud.get_past_groups(db, tour["tour"].id, exclude_round_id=r1.id) == []


def test_unknown_round_for_groups(db):
    assert crud.generate_round_groups(db, 999, "fair_mix")["reason"] == crud.NOT_FOUND


# ---- competitions and leaderboards ------------------------------------------

def test_compute_competition_with_generated_pairs(db, tour):
    _score_round_one(db, tour)
    r1 = tour["rounds"][0]

    result = crud.compute_competition(db, tour["tour"].id, "tour_pair_best_ball_stableford", round_id=r1.id)
    assert result["ok"]
    # players in the order they were created: Alice / Bob, Carol / Dave
    assert [(row["label"], row["total"]) for row in result["rows"]] == [("Carol / Dave", 42), ("Alice / Bob", 36)]


def test_compute_competition_with_stored_pairs(db, tour):
    _score_round_one(db, tour)
    alice, bob, carol, dave = tour["players"]
    _add_group(db, tour["tour"].id, "pair", "Odd Couple", [alice.id, carol.id])

    result = crud.compute_competition(
        db, tour["tour"].id, "tour_pair_best_ball_stableford", round_id=tour["rounds"][0].id
    )
    assert [row["label"] for row in result["rows"]] == ["Odd Couple"]
    assert result["rows"][0]["total"] == 42


def test_compute_competition_unknown(db, tour):
    assert crud.compute_competition(db, tour["tour"].id, "nope")["reason"] == crud.NOT_FOUND


def test_compute_tour_leaderboard(db, tour):
    _score_round_one(db, tour)
    board = crud.compute_tour_leaderboard(db, tour["tour"].id)
    assert board["ok"]
    assert [(row["player_name"], row["total"]) for row in board["rows"]] == [
        ("Carol", 42), ("Bob", 36), ("Dave", 36), ("Alice", 30),
    ]


def test_compute_round_matches(db, tour):
    _score_round_one(db, tour)
    t = tour["tour"]
    r1 = tour["rounds"][0]
    alice, bob, carol, dave = tour["players"]

    team_a = _add_group(db, t.id, "team", "Lions", [carol.id, dave.id])
    team_b = _add_group(db, t.id, "team", "Tigers", [alice.id, bob.id])
    settings = models.MatchRoundSettings(
        tour_id=t.id, round_id=r1.id, group_a_id=team_a.id, group_b_id=team_b.id,
        format="INDIVIDUAL_MATCHPLAY", double_points=False,
    )
    match = models.Match(match_no=1)
    match.players = [
        models.MatchPlayer(side="A", slot=1, player_id=carol.id),
        models.MatchPlayer(side="B", slot=1, player_id=alice.id),
    ]
    settings.matches = [match]
    db.add(settings)
    db.commit()

    result = crud.compute_round_matches(db, r1.id)
    assert result["ok"]
    assert (result["team_a"], result["team_b"]) == ("Lions", "Tigers")
    assert result["matches"][0]["result"] == "Carol def Alice 4 & 2"
    assert (result["points_a"], result["points_b"]) == (1.0, 0.0)


def test_round_matches_without_format(db, tour):
    assert crud.compute_round_matches(db, tour["rounds"][0].id)["reason"] == crud.NOT_FOUND


def test_round_pairs_win_over_tour_pairs(db, tour):
    _score_round_one(db, tour)
    alice, bob, carol, dave = tour["players"]
    r1, r2 = tour["rounds"]
    _add_group(db, tour["tour"].id, "pair", "Odd Couple", [alice.id, carol.id])
    _add_group(db, tour["tour"].id, "pair", "Day One", [alice.id, dave.id], scope="round", round_id=r1.id)

    result = crud.compute_competition(db, tour["tour"].id, "tour_pair_best_ball_stableford", round_id=r1.id)
    assert [row["label"] for row in result["rows"]] == ["Day One"]

    # round 2 has no groupings of its own
    labels = {e.label for e in crud.get_stored_entities(db, tour["tour"].id, "pair", round_id=r2.id)}
    assert labels == {"Odd Couple"}


# ---- store failures -----------------------------------------------------------

def _broken_query(*args, **kwargs):
    raise OperationalError("SELECT", {}, Exception("db gone"))


def test_read_paths_report_store_failures(db, tour, monkeypatch):
    tour_id = tour["tour"].id
    round_id = tour["rounds"][0].id
    monkeypatch.setattr(db, "query", _broken_query)

    for result in (
        crud.compute_tour_leaderboard(db, tour_id),
        crud.compute_competition(db, tour_id, "tour_eclectic"),
        crud.compute_round_matches(db, round_id),
        crud.compute_h2z(db, tour_id),
        crud.compute_appleby(db, tour_id),
        crud.compute_player_tour_stats(db, tour_id, 1),
    ):
        assert result["ok"] is False
        assert result["reason"] == crud.STORE
        assert "db gone" in result["error"]


def test_failed_group_write_keeps_previous_groups(db, field_of, monkeypatch):
    t, r, ids = field_of(8)
    crud.generate_round_groups(db, r.id, "fair_mix", random.Random(1))
    before = crud.get_round_groups(db, r.id)

    def boom():
        raise SQLAlchemyError("write failed")

    # fails after the old groups were deleted and the new ones flushed
    monkeypatch.setattr(db, "commit", boom)
    result = crud.generate_round_groups(db, r.id, "fair_mix", random.Random(2))
    monkeypatch.undo()

    assert result == {"ok": False, "error": "write failed", "reason": crud.STORE}
    assert crud.get_round_groups(db, r.id) == before
    assert db.query(models.RoundGroupPlayer).filter(models.RoundGroupPlayer.round_id == r.id).count() == 8


# ---- per-tour lock ------------------------------------------------------------

def test_recalculation_holds_the_tour_lock(db, tour, monkeypatch):
    tour_id = tour["tour"].id
    seen = []
    real_load = crud.load_tour_snapshot

    def load(session, tid):
        seen.append(crud._tour_lock(tid).locked())
        return real_load(session, tid)

    monkeypatch.setattr(crud, "load_tour_snapshot", load)
    crud.recalc_and_save_tour_handicaps(db, tour_id)

    assert seen == [True]
    # released and dropped from the registry afterwards
    assert tour_id not in crud._tour_locks


def test_recalculations_for_one_tour_do_not_overlap(monkeypatch):
    events = []

    def load(session, tid):
        events.append("start")
        time.sleep(0.05)
        events.append("end")
        return None

    monkeypatch.setattr(crud, "load_tour_snapshot", load)
    threads = [threading.Thread(target=crud.recalc_and_save_tour_handicaps, args=(None, 7)) for _ in range(2)]
    for th in threads:
        th.start()
    for th in threads:
        th.join()

    assert events == ["start", "end", "start", "end"]


# ---- H2Z, Appleby, player stats ----------------------------------------------

def test_compute_h2z_uses_stored_legs(db, tour):
    tour_id = tour["tour"].id
    db.add_all([
        models.TourH2ZLeg(tour_id=tour_id, leg_no=2, start_round_no=2, end_round_no=2),
        models.TourH2ZLeg(tour_id=tour_id, leg_no=1, start_round_no=1, end_round_no=1),
    ])
    db.commit()
    _score_round_one(db, tour)

    result = crud.compute_h2z(db, tour_id)
    assert [leg["leg_no"] for leg in result["legs"]] == [1, 2]

    # Carol scores 2, 2, 2, 3 on the par 3s of round 1
    leg1 = {row["player_name"]: row for row in result["legs"][0]["rows"]}
    assert (leg1["Carol"]["best_score"], leg1["Carol"]["best_len"]) == (9, 4)
    assert result["legs"][0]["rows"][0]["player_name"] == "Carol"
    # nothing scored in round 2
    assert all(row["best_score"] == 0 for row in result["legs"][1]["rows"])


def test_compute_h2z_default_leg(db, tour):
    result = crud.compute_h2z(db, tour["tour"].id)
    assert [(leg["start_round_no"], leg["end_round_no"]) for leg in result["legs"]] == [(1, 2)]


def test_apply_appleby_without_checkpoint_rounds(db, tour):
    result = crud.apply_appleby_handicaps(db, tour["tour"].id)
    assert result["ok"] is False
    assert result["reason"] == crud.CONFLICT


def test_apply_appleby_handicaps(db, field_of):
    t, r1, ids = field_of(7)
    r3 = crud.create_round(db, schemas.RoundCreate(tour_id=t.id, course_id=r1.course_id, round_no=3))
    r4 = crud.create_round(db, schemas.RoundCreate(tour_id=t.id, course_id=r1.course_id, round_no=4))

    totals = [40, 38, 36, 35, 34, 30, 10]
    for pid, total in zip(ids, totals):
        crud.add_player_to_round(db, r3.id, pid)
        base, extra = divmod(total, 18)
        crud.save_hole_scores(db, r3.id, pid, card([base + 1] * extra + [base] * (18 - extra), 12))

    table = crud.compute_appleby(db, t.id)
    assert table["cutoffs"][3] == 30

    result = crud.apply_appleby_handicaps(db, t.id)
    assert result == {"ok": True, "updated": 3 * 7}

    r4_handicaps = {row["player_id"]: row["playing_handicap"] for row in crud.get_round_handicaps(db, r4.id)}
    assert r4_handicaps[ids[0]] == 11
    assert r4_handicaps[ids[5]] == 12
    assert r4_handicaps[ids[6]] == 14

    # rounds 1-3 stay on the starting handicap
    r3_handicaps = {row["player_id"]: row["playing_handicap"] for row in crud.get_round_handicaps(db, r3.id)}
    assert set(r3_handicaps.values()) == {12}


def test_compute_player_tour_stats(db, tour):
    _score_round_one(db, tour)
    carol = tour["players"][2]

    stats = crud.compute_player_tour_stats(db, tour["tour"].id, carol.id)
    assert stats["ok"]
    assert stats["rounds"]["completed_totals"] == [42]
    assert stats["holes"]["played"] == 18

    assert crud.compute_player_tour_stats(db, tour["tour"].id, 999)["reason"] == crud.NOT_FOUND
