"""Pure calculation utilities for roast loss logic."""

import math
import re
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List

AWAITING = "(계산 대기)"
VERY_LIGHT = "라이트(아주 밝음)"
LIGHT = "라이트"
MEDIUM = "미디움"
MEDIUM_DARK = "미디움 다크"
DARK = "다크"

LEVEL_FIELDS = ("light_lo", "light_hi", "med_hi", "mdark_hi")
DEFAULT_LEVELS = {"light_lo": 11.0, "light_hi": 13.0, "med_hi": 15.0, "mdark_hi": 17.0}

# leading decimal literal, parsed the way a browser parseFloat does
_NUMBER_RE = re.compile(r"\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def to_number(value: Any) -> float:
    """Parse free-text numeric input, accepting ',' as decimal separator.

    Anything that does not start with a number degrades to 0.0.
    """
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        n = float(value)
        return n if math.isfinite(n) else 0.0
    text = str(value or "").replace(",", ".")
    m = _NUMBER_RE.match(text)
    if not m:
        return 0.0
    try:
        n = float(m.group(0))
    except ValueError:
        return 0.0
    return n if math.isfinite(n) else 0.0


def round2(n: float) -> float:
    """Round to two decimals, ties away from zero."""
    scaled = abs(n) * 100
    if not math.isfinite(scaled):
        return n
    # quantize the exact binary value; 2.675 * 100 is 267.49999999999997
    whole = Decimal(scaled).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return math.copysign(float(whole), n) / 100


def roast_level(loss_pct: float, levels: Dict[str, float]) -> str:
    if loss_pct <= 0:
        return AWAITING
    if loss_pct < levels["light_lo"]:
        return VERY_LIGHT
    if loss_pct < levels["light_hi"]:
        return LIGHT
    if loss_pct < levels["med_hi"]:
        return MEDIUM
    if loss_pct < levels["mdark_hi"]:
        return MEDIUM_DARK
    return DARK


def validate_levels(levels: Dict[str, Any]) -> List[str]:
    """Return the problems with a threshold set; empty when it is usable."""
    problems = []
    for name in LEVEL_FIELDS:
        v = levels.get(name)
        if isinstance(v, bool) or not isinstance(v, (int, float)) or not math.isfinite(v):
            problems.append(f"{name} must be a number")
    if problems:
        return problems
    for lo, hi in zip(LEVEL_FIELDS, LEVEL_FIELDS[1:]):
        if not levels[lo] < levels[hi]:
            problems.append(f"{lo} ({levels[lo]}) must be below {hi} ({levels[hi]})")
    return problems


def compute_row(charge: float, row: Dict[str, Any], levels: Dict[str, float]) -> Dict[str, Any]:
    """Derive drop, loss, loss percentage and roast level for one batch row."""
    drop = to_number(row.get("drop", ""))
    loss = round2(charge - drop)
    loss_pct = round2((charge - drop) / charge * 100) if charge > 0 else 0.0
    item = dict(row)
    item.update(drop=drop, loss=loss, loss_pct=loss_pct, level=roast_level(loss_pct, levels))
    return item


def suggest_charge(target_remain: float, loss_pct: float) -> float:
    """Charge weight that leaves `target_remain` grams at the given loss rate."""
    r = 1 - loss_pct / 100
    if r <= 0:
        return 0.0
    return target_remain / r


def summarize(
    items: List[Dict[str, Any]],
    cupping_per_session: Any,
    cupping_sessions: Any,
    per_batch_cupping: bool,
    target_remain: Any,
) -> Dict[str, float]:
    """Aggregate computed rows and account for cupping consumption."""
    n = len(items)
    total_drop = round2(sum(it.get("drop") or 0 for it in items))
    avg_drop = round2(total_drop / n) if n else 0.0
    avg_loss_pct = round2(sum(it.get("loss_pct") or 0 for it in items) / n) if n else 0.0

    per_session = to_number(cupping_per_session)
    if per_batch_cupping:
        total_cupping = per_session * sum(1 for it in items if it["drop"] > 0)
    else:
        total_cupping = per_session * to_number(cupping_sessions)

    target = to_number(target_remain)
    suggested = round2(suggest_charge(target, avg_loss_pct)) if avg_loss_pct > 0 else 0.0
    return {
        "total_drop": total_drop,
        "avg_drop": avg_drop,
        "avg_loss_pct": avg_loss_pct,
        "total_cupping": total_cupping,
        "remain_after_cupping": round2(total_drop - total_cupping),
        "suggested_charge": suggested,
    }


def compute(
    rows: List[Dict[str, Any]],
    charge: Any,
    levels: Dict[str, float],
    cupping_per_session: Any = 0,
    cupping_sessions: Any = 0,
    per_batch_cupping: bool = False,
    target_remain: Any = 0,
) -> Dict[str, Any]:
    """Compute every row and the summary from raw inputs."""
    charge_num = to_number(charge)
    items = [compute_row(charge_num, r, levels) for r in rows]
    summary = summarize(items, cupping_per_session, cupping_sessions, per_batch_cupping, target_remain)
    return {"items": items, "summary": summary}
