"""
Playing group generation.

Every policy partitions the round's playing players into groups of 3 or 4:

- prefer_pairs: declared tour pairs play together where seats allow (round 1)
- fair_mix: minimise how often players have already shared a group
- final_seeded: leaderboard order, leaders in the last group (final round)

plus the 2M+2F variants used by mixed tours.
"""

import random
from collections import Counter
from itertools import combinations


class PairingError(ValueError):
    """The field cannot be split under the requested rule."""


def group_sizes(n: int) -> list:
    if n <= 0:
        return []

    mod = n % 4
    if mod == 0:
        return [4] * (n // 4)
    if mod == 3:
        return [3] + [4] * ((n - 3) // 4)
    if mod == 2 and n >= 6:
        return [3, 3] + [4] * ((n - 6) // 4)
    if mod == 1 and n >= 9:
        return [3, 3, 3] + [4] * ((n - 9) // 4)

    # 1, 2 and 5 players
    raise PairingError(f"Cannot split {n} players into groups of 3 or 4")


def _shuffled(items, rng=None) -> list:
    out = list(items)
    (rng or random).shuffle(out)
    return out


def pair_key(a, b):
    return (a, b) if str(a) < str(b) else (b, a)


def co_play_matrix(past_groups) -> Counter:
    """How many times each unordered pair of players shared a group."""
    matrix = Counter()
    for grp in past_groups:
        for a, b in combinations(grp, 2):
            matrix[pair_key(a, b)] += 1
    return matrix


def group_score(group, candidate, matrix) -> int:
    return sum(matrix.get(pair_key(p, candidate), 0) for p in group)


def max_co_play(groups, matrix) -> int:
    """Highest past co-play count among pairs placed together in ``groups``."""
    best = 0
    for grp in groups:
        for a, b in combinations(grp, 2):
            best = max(best, matrix.get(pair_key(a, b), 0))
    return best


def _pick_least_played(candidates, group, matrix):
    best = None
    best_score = None
    for c in candidates:
        score = group_score(group, c, matrix)
        if best_score is None or score < best_score:
            best, best_score = c, score
    return best


def validate_partition(groups, player_ids) -> None:
    expected = list(player_ids)
    seen = Counter(pid for grp in groups for pid in grp)

    dupes = [pid for pid, n in seen.items() if n > 1]
    if dupes:
        raise PairingError(f"Players placed twice: {dupes}")

    missing = [pid for pid in expected if pid not in seen]
    if missing:
        raise PairingError(f"Players left out: {missing}")

    strangers = [pid for pid in seen if pid not in set(expected)]
    if strangers:
        raise PairingError(f"Players not in this round: {strangers}")

    bad = [len(grp) for grp in groups if len(grp) not in (3, 4)]
    if bad:
        raise PairingError(f"Group sizes must be 3 or 4, got {bad}")


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------

def generate_prefer_pairs(player_ids, pairs, rng=None) -> list:
    """
    pairs: iterable of (a, b) player id tuples declared for the tour
    """
    sizes = group_sizes(len(player_ids))
    unassigned = set(player_ids)
    groups = [[] for _ in sizes]

    for a, b in pairs:
        if a == b or a not in unassigned or b not in unassigned:
            continue
        for gi, grp in enumerate(groups):
            if len(grp) + 2 <= sizes[gi]:
                grp.extend([a, b])
                unassigned.discard(a)
                unassigned.discard(b)
                break

    # keep input order before shuffling so a seeded rng is reproducible
    remaining = _shuffled([pid for pid in player_ids if pid in unassigned], rng)
    k = 0
    for gi, grp in enumerate(groups):
        while len(grp) < sizes[gi] and k < len(remaining):
            grp.append(remaining[k])
            k += 1

    return groups


def generate_fair_mix(player_ids, past_groups, rng=None) -> list:
    sizes = group_sizes(len(player_ids))
    matrix = co_play_matrix(past_groups)

    remaining = list(player_ids)
    groups = []

    for size in sizes:
        seed = _shuffled(remaining, rng)[0]
        remaining.remove(seed)
        grp = [seed]

        while len(grp) < size and remaining:
            best = _pick_least_played(remaining, grp, matrix)
            grp.append(best)
            remaining.remove(best)

        groups.append(grp)

    return groups


def generate_final_seeded(standings_ascending) -> list:
    """
    standings_ascending: player ids worst first. The last group is filled
    first, taking players from the end of the list, so leaders tee off last.
    """
    best_first = list(reversed(standings_ascending))
    sizes = group_sizes(len(best_first))
    groups = [[] for _ in sizes]

    idx = 0
    for gi in range(len(groups) - 1, -1, -1):
        for _ in range(sizes[gi]):
            groups[gi].append(best_first[idx])
            idx += 1

    return groups


def _check_mixed_field(male_ids, female_ids) -> None:
    if len(male_ids) < 2 or len(female_ids) < 2:
        raise PairingError(
            f"2M+2F groups need at least 2 of each tee: have {len(male_ids)}M / {len(female_ids)}F"
        )
    if len(male_ids) != len(female_ids) or len(male_ids) % 2:
        raise PairingError(
            f"2M+2F groups need equal, even numbers of each tee: have {len(male_ids)}M / {len(female_ids)}F"
        )


def generate_mixed_fair(male_ids, female_ids, past_groups, rng=None) -> list:
    """Fourballs of two men and two women, least co-played first."""
    _check_mixed_field(male_ids, female_ids)
    matrix = co_play_matrix(past_groups)

    males = list(male_ids)
    females = list(female_ids)
    groups = []

    for _ in range(len(males) // 2):
        seed = _shuffled(males, rng)[0]
        males.remove(seed)
        grp = [seed]

        for pool in (males, females, females):
            pick = _pick_least_played(pool, grp, matrix)
            pool.remove(pick)
            grp.append(pick)

        groups.append(grp)

    return groups


def generate_mixed_seeded(males_ascending, females_ascending) -> list:
    """2M+2F groups in leaderboard order, worst first, best in the last group."""
    _check_mixed_field(males_ascending, females_ascending)

    groups = []
    for i in range(0, len(males_ascending), 2):
        groups.append(list(males_ascending[i:i + 2]) + list(females_ascending[i:i + 2]))
    return groups


POLICY_NOTES = {
    "prefer_pairs": "Auto: Round 1 (prefer tour pairs)",
    "fair_mix": "Auto: Fair mix (non-final)",
    "final_seeded": "Auto: Final round (leaderboard-seeded)",
    "mixed_fair": "Auto: Mixed 2M+2F (fair)",
    "mixed_seeded": "Auto: Mixed 2M+2F (leaderboard-seeded)",
}
