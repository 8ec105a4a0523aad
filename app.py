# app.py
# =============================================================================
# Roast Loss Calculator — 배치별 손실률, 배전도, 커핑 차감
# =============================================================================

import logging
import os
from pathlib import Path

import matplotlib.pyplot as plt  # 배치별 손실률 차트
import streamlit as st
from babel.numbers import format_decimal

from calc import LEVEL_FIELDS, compute_row, to_number, validate_levels
from csv_io import apply_import, csv_bytes, csv_filename, parse_csv, rows_to_csv
from session import (
    ROW_TEXT_FIELDS,
    add_row,
    compute_session,
    load_session,
    remove_row,
    reset_levels,
    reset_rows,
    save_session,
    update_row,
)
from storage import FileStore

# -----------------------------------------------------------------------------
# CONFIG
# -----------------------------------------------------------------------------
st.set_page_config(page_title="Roast Loss Calculator", layout="wide")

DATA_DIR = Path(os.environ.get("ROAST_LOSS_DATA_DIR") or Path(__file__).parent / "data")
LOCALE = os.environ.get("ROAST_LOSS_LOCALE", "ko_KR")

logging.basicConfig(
    level=os.environ.get("ROAST_LOSS_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
log = logging.getLogger("roast_loss")

LEVEL_LABELS = {
    "light_lo": "라이트 하한",
    "light_hi": "라이트 상한",
    "med_hi": "미디움 상한",
    "mdark_hi": "미디움다크 상한",
}

# -----------------------------------------------------------------------------
# SESSION
# -----------------------------------------------------------------------------
store = FileStore(DATA_DIR)

if "session" not in st.session_state:
    st.session_state.session = load_session(store)
    st.session_state.saved_snapshot = None
    log.info("Loaded session from %s", DATA_DIR)
if "imported_file_id" not in st.session_state:
    st.session_state.imported_file_id = None

s = st.session_state.session

# -----------------------------------------------------------------------------
# HELPERS
# -----------------------------------------------------------------------------
def format_number(x, decimals: int = 2) -> str:
    """Format a number following the configured locale."""
    pattern = f"#,##0.{'0' * decimals}" if decimals > 0 else "#,##0"
    return format_decimal(x, format=pattern, locale=LOCALE)


def seed(key: str, initial) -> str:
    """Give a widget key its starting value once; the widget owns it afterwards."""
    if key not in st.session_state:
        st.session_state[key] = initial
    return key


def text_field(label: str, key: str, initial: str, **kwargs) -> str:
    return st.text_input(label, key=seed(key, initial), **kwargs)


def clear_widgets(prefix: str) -> None:
    for k in [k for k in st.session_state if str(k).startswith(prefix)]:
        del st.session_state[k]


def on_add_row():
    s.rows = add_row(s.rows)


def on_remove_row(row_id: int):
    s.rows = remove_row(s.rows, row_id)
    clear_widgets(f"row_{row_id}_")


def on_reset_rows():
    s.rows = reset_rows()
    clear_widgets("row_")
    log.info("Rows reset")


def on_restore_levels():
    s.levels = reset_levels()
    clear_widgets("level_")


def loss_chart(items, levels):
    fig, ax = plt.subplots(figsize=(8, 3))
    ax.bar([str(i) for i in range(1, len(items) + 1)], [it["loss_pct"] for it in items], color="#8B5A2B")
    for name in LEVEL_FIELDS:
        ax.axhline(levels[name], linestyle="--", linewidth=0.8, color="#4B2E2B")
    ax.set_xlabel("Batch")
    ax.set_ylabel("Loss (%)")
    return fig


# -----------------------------------------------------------------------------
# UI — inputs
# -----------------------------------------------------------------------------
st.title("Roasting 유기물손실률 계산")

c1, c2, c3, c4 = st.columns(4)
with c1:
    s.charge = text_field("투입량(Charge, g)", "charge", s.charge, placeholder="예: 130")
with c2:
    s.cupping_per_session = text_field("커핑 1회 사용량(g)", "cupping_per_session", s.cupping_per_session)
with c3:
    s.cupping_sessions = text_field("커핑 횟수(세션 수)", "cupping_sessions", s.cupping_sessions)
with c4:
    s.target_remain = text_field("목표 남길 양(g)", "target_remain", s.target_remain)

t1, t2 = st.columns([3, 1])
s.per_batch_cupping = t1.toggle("배치별 커핑 차감", key="per_batch_cupping")
show_settings = t2.toggle("설정", key="show_settings")

# -----------------------------------------------------------------------------
# SETTINGS — roast level thresholds
# -----------------------------------------------------------------------------
if show_settings:
    st.subheader("배전도 경계값 커스텀(손실률 %)")
    cols = st.columns(len(LEVEL_FIELDS) + 1)
    candidate = {}
    for col, name in zip(cols, LEVEL_FIELDS):
        with col:
            candidate[name] = to_number(text_field(LEVEL_LABELS[name], f"level_{name}", format(s.levels[name], "g")))
    cols[-1].button("기본값 복원", key="levels_restore", on_click=on_restore_levels)
    problems = validate_levels(candidate)
    if problems:
        for p in problems:
            st.error(p)
        st.caption("경계값이 오름차순이 될 때까지 이전 설정을 유지합니다.")
    elif candidate != s.levels:
        s.levels = candidate
        log.info("Roast level thresholds updated: %s", candidate)

# -----------------------------------------------------------------------------
# BATCHES — import / table
# -----------------------------------------------------------------------------
st.subheader("배치 입력")
b1, b2, b3 = st.columns([1, 1, 3])
b1.button("행 추가", key="rows_add", on_click=on_add_row)
b2.button("초기화", key="rows_reset", on_click=on_reset_rows)
uploaded = b3.file_uploader("CSV 불러오기", type=["csv"], key="csv_upload")

if uploaded is not None and uploaded.file_id != st.session_state.imported_file_id:
    st.session_state.imported_file_id = uploaded.file_id
    imported = parse_csv(uploaded.getvalue().decode("utf-8-sig", errors="replace"))
    new_rows = apply_import(s.rows, imported)
    if new_rows is not s.rows:
        s.rows = new_rows
        clear_widgets("row_")
        st.success(f"{len(new_rows)}개 배치를 불러왔습니다.")
    for row_no, msg in imported.warnings:
        st.warning(f"{row_no}행: {msg}")

charge_num = to_number(s.charge)
for idx, row in enumerate(list(s.rows), start=1):
    rid = row["id"]
    with st.container(border=True):
        cols = st.columns([1, 2, 2, 2, 2, 2, 2, 1])
        cols[0].write(idx)
        with cols[1]:
            drop = text_field("배출량(g)", f"row_{rid}_drop", row.get("drop", ""), placeholder="예: 114.5")
        with cols[5]:
            agtron = text_field("Agtron", f"row_{rid}_agtron", row.get("agtron", ""), placeholder="예: 75")
        with cols[6]:
            dev_time = text_field("DT(%)", f"row_{rid}_dev_time", row.get("dev_time", ""), placeholder="예: 18")
        notes = st.text_area("노트", key=seed(f"row_{rid}_notes", row.get("notes", "")), placeholder="향미/이슈/조정 메모")
        fields = {"drop": drop, "agtron": agtron, "dev_time": dev_time, "notes": notes or ""}
        if any(row.get(f, "") != fields[f] for f in ROW_TEXT_FIELDS):
            s.rows = update_row(s.rows, rid, **fields)

        computed = compute_row(charge_num, fields, s.levels)
        shown = bool(computed["drop"])
        cols[2].metric("손실량(g)", format_number(computed["loss"]) if shown else "-")
        cols[3].metric("손실률(%)", format_number(computed["loss_pct"]) if shown else "-")
        cols[4].metric("배전도", computed["level"] if shown else "-")
        cols[7].button("🗑", key=f"row_{rid}_remove", on_click=on_remove_row, args=(rid,))

# -----------------------------------------------------------------------------
# SUMMARY
# -----------------------------------------------------------------------------
result = compute_session(s)
items, summary = result["items"], result["summary"]

st.divider()
m1, m2, m3 = st.columns(3)
m1.metric("총 배출량", f"{format_number(summary['total_drop'])} g")
m2.metric("평균 손실률", f"{format_number(summary['avg_loss_pct'])}%")
m3.metric("평균 배출량", f"{format_number(summary['avg_drop'])} g")
m1, m2 = st.columns(2)
m1.metric(
    "커핑 차감 후 잔량",
    f"{format_number(summary['remain_after_cupping'])} g",
    help=f"총 커핑 {format_number(summary['total_cupping'])} g",
)
m2.metric("목표 잔량 권장 투입량", f"{format_number(summary['suggested_charge'])} g")
if summary["remain_after_cupping"] < 0:
    st.warning("커핑 사용량이 총 배출량보다 많습니다.")

if any(it["drop"] > 0 for it in items):
    fig = loss_chart(items, s.levels)
    st.pyplot(fig)
    plt.close(fig)
    st.caption("배치별 손실률과 배전도 경계값")

st.download_button(
    "CSV 내보내기",
    data=csv_bytes(rows_to_csv(items, charge_num)),
    file_name=csv_filename(),
    mime="text/csv",
    key="csv_export",
)

st.caption("💡 유기물 손실률(%) = 100% - [ (100 - 로스팅 손실률) × 원두의 건조 무게 / 생두의 건조 무게 ] %")

st.session_state.saved_snapshot = save_session(store, s, st.session_state.saved_snapshot)
