"""
Tests for the persona scorer: z-score, normal-CDF percentile, archetype
weighting and the top-two position label.
"""

from __future__ import annotations

import random

import pytest

from wallet_persona.analytics.features import METRIC_KEYS, MetricVector
from wallet_persona.analytics.reference_stats import MetricStats
from wallet_persona.analytics.scorer import (
    ARCHETYPES,
    POSITION_WEIGHTS,
    PersonaScore,
    archetype_scores,
    percentile_to_sub_score,
    round_half_up,
    score_wallet,
    top_two_position,
    z_score,
    z_to_percentile,
)


def _stats(mean: float = 10.0, std: float = 5.0) -> dict[str, MetricStats]:
    return {key: MetricStats(mean=mean, std=std) for key in METRIC_KEYS}


def test_weight_table():
    assert ARCHETYPES == ("Explorer", "Diamond", "Whale", "Degen")
    assert [POSITION_WEIGHTS["Explorer"][k] for k in METRIC_KEYS] == [4, 2, 0, 1, 0, 3]
    assert [POSITION_WEIGHTS["Diamond"][k] for k in METRIC_KEYS] == [1, 1, 5, 0, 1, 2]
    assert [POSITION_WEIGHTS["Whale"][k] for k in METRIC_KEYS] == [0, 0, 2, 1, 5, 2]
    assert [POSITION_WEIGHTS["Degen"][k] for k in METRIC_KEYS] == [1, 4, 0, 3, 2, 1]


def test_z_score_zero_std_is_zero():
    assert z_score(123.0, 5.0, 0.0) == 0.0
    assert z_score(5.0, 5.0, 0.0) == 0.0
    assert z_score(15.0, 10.0, 5.0) == 1.0


def test_percentile_at_zero_is_fifty():
    assert z_to_percentile(0.0) == 50.0


@pytest.mark.parametrize("z", [0.3, 1.0, 1.645, 2.5])
def test_percentile_symmetry(z):
    assert z_to_percentile(z) + z_to_percentile(-z) == pytest.approx(100.0)


def test_percentile_known_values_and_bounds():
    assert z_to_percentile(1.0) == 84.1
    assert z_to_percentile(-1.0) == 15.9
    assert z_to_percentile(50.0) == 100.0
    assert z_to_percentile(-50.0) == 0.0


def test_round_half_up():
    assert round_half_up(0.25, 1) == 0.3
    assert round_half_up(2.45, 1) == 2.5
    assert round_half_up(4.04, 1) == 4.0


def test_sub_score():
    assert percentile_to_sub_score(100.0) == 5.0
    assert percentile_to_sub_score(50.0) == 2.5
    assert percentile_to_sub_score(84.1) == 4.2


def test_explorer_all_max_sub_scores_is_ten():
    scores = archetype_scores({key: 5.0 for key in METRIC_KEYS})
    assert scores["Explorer"] == 10.0
    assert all(score == 10.0 for score in scores.values())


def test_std_zero_population_puts_every_metric_at_median():
    result = score_wallet(MetricVector(dex_volume_usd=9999), _stats(mean=1.0, std=0.0))
    assert all(p == 50.0 for p in result.percentiles.values())
    assert all(z == 0.0 for z in result.z_scores.values())
    assert all(s == 5.0 for s in result.scores.values())


def test_ties_keep_table_order():
    assert top_two_position({a: 5.0 for a in ARCHETYPES}) == "Explorer_Diamond"
    assert top_two_position({"Explorer": 1.0, "Diamond": 2.0, "Whale": 2.0, "Degen": 0.5}) == "Diamond_Whale"


def test_whale_profile():
    vector = MetricVector(dex_volume_usd=100.0, avg_token_holding_period=20.0)
    result = score_wallet(vector, _stats(mean=10.0, std=5.0))
    assert result.position.startswith("Whale_")
    assert result.percentiles["dex_volume_usd"] == 100.0
    assert result.percentiles["distinct_contract_count"] == 2.3


def test_scores_bounded_and_position_consistent_for_random_vectors():
    rng = random.Random(7)
    stats = {key: MetricStats(mean=rng.uniform(0, 50), std=rng.uniform(0, 20)) for key in METRIC_KEYS}
    for _ in range(200):
        vector = MetricVector(**{key: rng.uniform(0, 200) for key in METRIC_KEYS})
        result = score_wallet(vector, stats)
        assert all(0.0 <= s <= 10.0 for s in result.scores.values())
        assert all(0.0 <= p <= 100.0 for p in result.percentiles.values())
        first, second = result.position.split("_")
        assert first != second
        assert result.scores[first] >= result.scores[second]
        assert all(result.scores[first] >= result.scores[a] for a in ARCHETYPES)


def test_empty_persona_score():
    empty = PersonaScore.empty()
    assert empty.position is None
    assert set(empty.scores) == set(ARCHETYPES)
    assert all(v == 0.0 for v in empty.percentiles.values())
