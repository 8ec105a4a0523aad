"""Session state: rows, charge, cupping and threshold settings.

Every value is stored under its own key so a damaged entry only resets that
entry to its default.
"""

import json
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from calc import DEFAULT_LEVELS, LEVEL_FIELDS, compute
from storage import KeyValueStore

log = logging.getLogger(__name__)

KEY_CHARGE = "rlc_charge"
KEY_ROWS = "rlc_rows"
KEY_CUP_PER = "rlc_cup_per"
KEY_CUP_NUM = "rlc_cup_num"
KEY_TARGET = "rlc_target"
KEY_LEVELS = "rlc_levels"

ROW_TEXT_FIELDS = ("drop", "agtron", "dev_time", "notes")


def reset_rows() -> List[Dict[str, Any]]:
    return [{"id": 1, "drop": ""}]


def reset_levels() -> Dict[str, float]:
    return dict(DEFAULT_LEVELS)


@dataclass
class SessionState:
    charge: str = "130"
    rows: List[Dict[str, Any]] = field(default_factory=reset_rows)
    cupping_per_session: str = "15"
    cupping_sessions: str = "1"
    target_remain: str = "100"
    levels: Dict[str, float] = field(default_factory=reset_levels)
    per_batch_cupping: bool = False


def add_row(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    next_id = max((r["id"] for r in rows), default=0) + 1
    return rows + [{"id": next_id, "drop": ""}]


def remove_row(rows: List[Dict[str, Any]], row_id: int) -> List[Dict[str, Any]]:
    return [r for r in rows if r["id"] != row_id]


def update_row(rows: List[Dict[str, Any]], row_id: int, **fields) -> List[Dict[str, Any]]:
    return [dict(r, **fields) if r["id"] == row_id else r for r in rows]


# -----------------------------------------------------------------------------
# Loading
# -----------------------------------------------------------------------------
def _valid_rows(value: Any) -> bool:
    if not isinstance(value, list):
        return False
    for r in value:
        if not isinstance(r, dict) or isinstance(r.get("id"), bool) or not isinstance(r.get("id"), int):
            return False
        if any(not isinstance(r.get(f, ""), str) for f in ROW_TEXT_FIELDS):
            return False
    return True


def _valid_levels(value: Any) -> bool:
    return isinstance(value, dict) and all(
        isinstance(value.get(k), (int, float)) and not isinstance(value.get(k), bool)
        and math.isfinite(value[k])
        for k in LEVEL_FIELDS
    )


def _load(store: KeyValueStore, key: str, default: Any, valid: Callable[[Any], bool]) -> Any:
    raw = store.get(key)
    if raw is None:
        return default
    try:
        value = json.loads(raw)
    except ValueError:
        log.warning("Stored value for %s is not valid JSON, using default", key)
        return default
    if not valid(value):
        log.warning("Stored value for %s has an unexpected shape, using default", key)
        return default
    return value


def _is_text(value: Any) -> bool:
    return isinstance(value, str)


def load_session(store: KeyValueStore) -> SessionState:
    d = SessionState()
    levels = _load(store, KEY_LEVELS, d.levels, _valid_levels)
    return SessionState(
        charge=_load(store, KEY_CHARGE, d.charge, _is_text),
        rows=_load(store, KEY_ROWS, d.rows, _valid_rows),
        cupping_per_session=_load(store, KEY_CUP_PER, d.cupping_per_session, _is_text),
        cupping_sessions=_load(store, KEY_CUP_NUM, d.cupping_sessions, _is_text),
        target_remain=_load(store, KEY_TARGET, d.target_remain, _is_text),
        levels={k: float(levels[k]) for k in LEVEL_FIELDS},
    )


# -----------------------------------------------------------------------------
# Saving
# -----------------------------------------------------------------------------
def encode_session(state: SessionState) -> Dict[str, str]:
    return {
        KEY_CHARGE: json.dumps(state.charge, ensure_ascii=False),
        KEY_ROWS: json.dumps(state.rows, ensure_ascii=False),
        KEY_CUP_PER: json.dumps(state.cupping_per_session, ensure_ascii=False),
        KEY_CUP_NUM: json.dumps(state.cupping_sessions, ensure_ascii=False),
        KEY_TARGET: json.dumps(state.target_remain, ensure_ascii=False),
        KEY_LEVELS: json.dumps(state.levels, ensure_ascii=False),
    }


def save_session(
    store: KeyValueStore, state: SessionState, previous: Optional[Dict[str, str]] = None
) -> Dict[str, str]:
    """Write the keys that changed since ``previous`` and return the new snapshot."""
    snapshot = encode_session(state)
    for key, value in snapshot.items():
        if previous is None or previous.get(key) != value:
            store.set(key, value)
            log.debug("Saved %s", key)
    return snapshot


def compute_session(state: SessionState) -> Dict[str, Any]:
    return compute(
        state.rows,
        state.charge,
        state.levels,
        cupping_per_session=state.cupping_per_session,
        cupping_sessions=state.cupping_sessions,
        per_batch_cupping=state.per_batch_cupping,
        target_remain=state.target_remain,
    )
