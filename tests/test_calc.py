import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))
from calc import (
    AWAITING,
    DARK,
    DEFAULT_LEVELS,
    LIGHT,
    MEDIUM,
    MEDIUM_DARK,
    VERY_LIGHT,
    compute,
    compute_row,
    roast_level,
    round2,
    suggest_charge,
    summarize,
    to_number,
    validate_levels,
)


def test_to_number():
    assert to_number("114.5") == pytest.approx(114.5)
    assert to_number("114,5") == pytest.approx(114.5)
    assert to_number(42) == 42.0
    assert to_number("") == 0.0
    assert to_number(None) == 0.0
    assert to_number("abc") == 0.0
    assert to_number(" 12g") == pytest.approx(12.0)
    assert to_number(float("nan")) == 0.0
    assert to_number("Infinity") == 0.0


def test_round2():
    assert round2(11.923076923) == 11.92
    assert round2(0.125) == 0.13
    assert round2(-0.125) == -0.13
    assert round2(2.675) == 2.67
    assert round2(1.005) == 1.0
    assert round2(1e308) == 1e308
    for x in (11.92, 0.005, 1234.5678, -3.14159, 100.0):
        assert round2(round2(x)) == round2(x)


def test_roast_level_default_bands():
    lv = DEFAULT_LEVELS
    assert roast_level(0, lv) == AWAITING
    assert roast_level(-5, lv) == AWAITING
    assert roast_level(10.99, lv) == VERY_LIGHT
    assert roast_level(11, lv) == LIGHT
    assert roast_level(13, lv) == MEDIUM
    assert roast_level(16.5, lv) == MEDIUM_DARK
    assert roast_level(17, lv) == DARK


def test_roast_level_monotonic():
    order = [AWAITING, VERY_LIGHT, LIGHT, MEDIUM, MEDIUM_DARK, DARK]
    ranks = [order.index(roast_level(x / 10, DEFAULT_LEVELS)) for x in range(-10, 300)]
    assert ranks == sorted(ranks)


def test_roast_level_unordered_thresholds_first_match():
    lv = {"light_lo": 20, "light_hi": 5, "med_hi": 15, "mdark_hi": 17}
    assert roast_level(12, lv) == VERY_LIGHT
    assert roast_level(25, lv) == DARK


def test_validate_levels():
    assert validate_levels(DEFAULT_LEVELS) == []
    problems = validate_levels({"light_lo": 11, "light_hi": 10, "med_hi": 15, "mdark_hi": 17})
    assert len(problems) == 1
    assert "light_lo" in problems[0]
    assert validate_levels({"light_lo": 11}) != []


def test_compute_row_scenario_a():
    item = compute_row(130, {"id": 1, "drop": "114.5", "notes": "ok"}, DEFAULT_LEVELS)
    assert item["drop"] == pytest.approx(114.5)
    assert item["loss"] == pytest.approx(15.5)
    assert item["loss_pct"] == pytest.approx(11.92)
    assert item["level"] == LIGHT
    assert item["notes"] == "ok"


def test_compute_row_zero_charge():
    item = compute_row(0, {"id": 1, "drop": "50"}, DEFAULT_LEVELS)
    assert item["loss_pct"] == 0
    assert item["level"] == AWAITING


def test_compute_row_bounds():
    assert compute_row(130, {"drop": "130"}, DEFAULT_LEVELS)["loss_pct"] == 0
    assert compute_row(130, {"drop": "0"}, DEFAULT_LEVELS)["loss_pct"] == 100


def test_suggest_charge():
    assert suggest_charge(100, 20) == pytest.approx(125.0)
    assert suggest_charge(100, 100) == 0.0
    assert suggest_charge(100, 120) == 0.0


def test_summarize_session_cupping():
    items = [{"drop": 100.0, "loss_pct": 10.0}, {"drop": 100.0, "loss_pct": 10.0}]
    summary = summarize(items, "15", "2", False, "100")
    assert summary["total_drop"] == 200
    assert summary["total_cupping"] == 30
    assert summary["remain_after_cupping"] == 170


def test_summarize_per_batch_cupping_counts_dropped_rows():
    items = [{"drop": 100.0, "loss_pct": 1}, {"drop": 0.0, "loss_pct": 0}, {"drop": 120.0, "loss_pct": 1}]
    summary = summarize(items, "15", "9", True, "0")
    assert summary["total_cupping"] == 30


def test_summarize_negative_remainder_kept():
    summary = summarize([{"drop": 10.0, "loss_pct": 5}], "15", "1", False, "0")
    assert summary["remain_after_cupping"] == -5


def test_summarize_full_loss_suggests_zero():
    summary = summarize([{"drop": 0.0, "loss_pct": 100.0}], "0", "0", False, "100")
    assert summary["avg_loss_pct"] == 100
    assert summary["suggested_charge"] == 0


def test_summarize_empty():
    summary = summarize([], "15", "1", False, "100")
    assert summary["total_drop"] == 0
    assert summary["avg_drop"] == 0
    assert summary["avg_loss_pct"] == 0
    assert summary["suggested_charge"] == 0
    assert summary["remain_after_cupping"] == -15


def test_total_drop_rounded_once():
    items = [{"drop": 0.004, "loss_pct": 0}] * 1000
    assert summarize(items, 0, 0, False, 0)["total_drop"] == pytest.approx(4.0)


def test_compute_pipeline():
    rows = [{"id": 1, "drop": "114.5"}, {"id": 2, "drop": "110"}, {"id": 3, "drop": ""}]
    out = compute(rows, "130", DEFAULT_LEVELS, "15", "1", True, "100")
    items, summary = out["items"], out["summary"]
    assert [it["level"] for it in items] == [LIGHT, MEDIUM_DARK, DARK]
    assert summary["total_drop"] == pytest.approx(224.5)
    assert summary["avg_drop"] == pytest.approx(74.83)
    # (11.92 + 15.38 + 100) / 3
    assert summary["avg_loss_pct"] == pytest.approx(42.43)
    assert summary["total_cupping"] == 30
    assert summary["suggested_charge"] == pytest.approx(round2(100 / (1 - 0.4243)))
