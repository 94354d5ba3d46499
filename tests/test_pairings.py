import random
from collections import Counter

import pytest

from golftour.pairings import (
    co_play_matrix,
    generate_fair_mix,
    generate_final_seeded,
    generate_mixed_fair,
    generate_mixed_seeded,
    generate_prefer_pairs,
    group_sizes,
    max_co_play,
    PairingError,
    validate_partition,
)


def _random_partition(player_ids, rng):
    shuffled = list(player_ids)
    rng.shuffle(shuffled)
    groups, k = [], 0
    for size in group_sizes(len(shuffled)):
        groups.append(shuffled[k:k + size])
        k += size
    return groups


def _assert_partition(groups, player_ids):
    validate_partition(groups, player_ids)
    assert Counter(pid for g in groups for pid in g) == Counter(player_ids)


@pytest.mark.parametrize(
    "n, expected",
    [(3, [3]), (4, [4]), (6, [3, 3]), (7, [3, 4]), (8, [4, 4]), (9, [3, 3, 3]), (10, [3, 3, 4]), (13, [3, 3, 3, 4])],
)
def test_group_sizes(n, expected):
    assert group_sizes(n) == expected


def test_group_sizes_cover_every_field():
    for n in [3, 4] + list(range(6, 41)):
        sizes = group_sizes(n)
        assert sum(sizes) == n
        assert set(sizes) <= {3, 4}


@pytest.mark.parametrize("n", [1, 2, 5])
def test_group_sizes_impossible(n):
    with pytest.raises(PairingError):
        group_sizes(n)


def test_group_sizes_empty():
    assert group_sizes(0) == []


def test_co_play_matrix_is_unordered():
    matrix = co_play_matrix([[1, 2, 3], [2, 1, 4]])
    assert matrix[(1, 2)] == 2
    assert matrix[(1, 3)] == 1
    assert matrix.get((3, 4), 0) == 0


@pytest.mark.parametrize("n", [3, 4, 6, 7, 8, 9, 11, 14, 17, 22])
def test_every_policy_partitions_the_field(n):
    players = list(range(100, 100 + n))
    rng = random.Random(n)
    past = _random_partition(players, random.Random(1))

    _assert_partition(generate_prefer_pairs(players, [(100, 101)], rng), players)
    _assert_partition(generate_fair_mix(players, past, rng), players)
    _assert_partition(generate_final_seeded(players), players)


def test_prefer_pairs_keeps_pairs_together():
    players = list(range(1, 13))
    pairs = [(1, 2), (3, 4), (5, 6), (7, 8)]
    groups = generate_prefer_pairs(players, pairs, random.Random(3))

    _assert_partition(groups, players)
    for a, b in pairs:
        assert any(a in g and b in g for g in groups)


def test_prefer_pairs_skips_players_not_in_round():
    players = list(range(1, 9))
    groups = generate_prefer_pairs(players, [(1, 99), (2, 3), (3, 4)], random.Random(4))
    _assert_partition(groups, players)
    assert any(2 in g and 3 in g for g in groups)


def test_prefer_pairs_is_reproducible_with_seed():
    players = list(range(1, 15))
    a = generate_prefer_pairs(players, [(1, 2)], random.Random(42))
    b = generate_prefer_pairs(players, [(1, 2)], random.Random(42))
    assert a == b


def test_fair_mix_avoids_repeat_partners_when_possible():
    players = list(range(16))
    past = [players[i:i + 4] for i in range(0, 16, 4)]
    matrix = co_play_matrix(past)

    for seed in range(20):
        groups = generate_fair_mix(players, past, random.Random(seed))
        # the first group always has fresh candidates available
        assert max_co_play([groups[0]], matrix) == 0


def test_fair_mix_beats_random_partition():
    players = list(range(16))
    history_rng = random.Random(7)
    past = _random_partition(players, history_rng) + _random_partition(players, history_rng)
    matrix = co_play_matrix(past)

    trials = 200
    fair = sum(max_co_play(generate_fair_mix(players, past, random.Random(s)), matrix) for s in range(trials))
    naive = sum(max_co_play(_random_partition(players, random.Random(s)), matrix) for s in range(trials))

    assert fair <= naive


def test_final_seeded_puts_leaders_last():
    # worst first; totals are distinct
    standings = list(range(1, 15))
    groups = generate_final_seeded(standings)
    _assert_partition(groups, standings)

    last = groups[-1]
    others = [pid for g in groups[:-1] for pid in g]
    assert min(last) > max(others)
    # leader takes the first seat of the last group
    assert last[0] == 14


def test_mixed_fair_builds_two_and_two():
    males = [1, 2, 3, 4]
    females = [11, 12, 13, 14]
    groups = generate_mixed_fair(males, females, past_groups=[[1, 11, 2, 12]], rng=random.Random(5))

    _assert_partition(groups, males + females)
    for g in groups:
        assert sum(1 for pid in g if pid in males) == 2
        assert sum(1 for pid in g if pid in females) == 2


def test_mixed_seeded_orders_groups():
    groups = generate_mixed_seeded([1, 2, 3, 4], [11, 12, 13, 14])
    assert groups == [[1, 2, 11, 12], [3, 4, 13, 14]]


@pytest.mark.parametrize(
    "males, females",
    [([1, 2, 3, 4], [11]), ([1, 2, 3, 4], [11, 12]), ([1, 2, 3], [11, 12, 13])],
)
def test_mixed_policies_reject_unbalanced_fields(males, females):
    with pytest.raises(PairingError):
        generate_mixed_fair(males, females, [])
    with pytest.raises(PairingError):
        generate_mixed_seeded(males, females)


def test_validate_partition_rejects_bad_groups():
    with pytest.raises(PairingError):
        validate_partition([[1, 2, 3], [3, 4, 5]], [1, 2, 3, 4, 5])
    with pytest.raises(PairingError):
        validate_partition([[1, 2, 3]], [1, 2, 3, 4])
    with pytest.raises(PairingError):
        validate_partition([[1, 2, 3, 9]], [1, 2, 3])
    with pytest.raises(PairingError):
        validate_partition([[1, 2], [3, 4, 5, 6]], [1, 2, 3, 4, 5, 6])
