import logging
from contextlib import contextmanager
from typing import Dict, Optional

import altair as alt
import pandas as pd
import streamlit as st

from picklist.charts import HEAT_RANGE, ranking_heatmap
from picklist.config import get_settings
from picklist.errors import PicklistError, ValidationError
from picklist.persistence import JsonFileStore, RemotePicklistClient
from picklist.rows import Row
from picklist.session import PicklistSession
from picklist.stats import ColumnStats, normalize

settings = get_settings()
logging.basicConfig(level=settings.log_level)
alt.data_transformers.disable_max_rows()


# ---------- UI / layout helpers ----------
def inject_base_styles():
    if st.session_state.get("_base_css_injected"):
        return
    st.markdown(
        """
        <style>
        .app-top-bar {padding: 6px 0 4px;border-bottom: 1px solid #e5e7eb;margin-bottom: 10px;}
        .app-top-bar .page-title {font-size: 1.4rem;font-weight: 700;color: #111827;}
        .card {border: 1px solid #e5e7eb;border-radius: 12px;padding: 16px;background: #ffffff;
               box-shadow: 0 1px 2px rgba(0,0,0,0.04); margin-bottom: 12px;}
        .card-title {font-weight: 600;font-size: 1.0rem;color: #111827;margin-bottom: 8px;}
        .chip-row {display: flex;flex-wrap: wrap;gap: 6px;margin-top: 6px;}
        .chip {background: #f3f4f6;border: 1px solid #e5e7eb;border-radius: 14px;padding: 4px 10px;font-size: 0.85rem;color: #374151;}
        </style>
        """,
        unsafe_allow_html=True,
    )
    st.session_state["_base_css_injected"] = True


@contextmanager
def card(title: str):
    container = st.container()
    container.markdown(f"<div class='card'><div class='card-title'>{title}</div>", unsafe_allow_html=True)
    body = container.container()
    with body:
        yield body
    container.markdown("</div>", unsafe_allow_html=True)


def get_session() -> PicklistSession:
    if "picklist_session" not in st.session_state:
        remote = RemotePicklistClient(settings.remote_url, timeout=settings.remote_timeout) if settings.remote_url else None
        session = PicklistSession(JsonFileStore(settings.storage_dir), remote=remote)
        session.restore()
        st.session_state["picklist_session"] = session
    return st.session_state["picklist_session"]


def flush_warnings(session: PicklistSession):
    while session.warnings:
        st.warning(session.warnings.pop(0))


def _rgb(css: str) -> list:
    return [int(x) for x in css[css.index("(") + 1:-1].split(",")]


def heat_color(value: object, stats: Optional[ColumnStats]) -> str:
    """Interpolate red -> yellow -> green like the ranking heatmap."""
    norm = normalize(value, stats)
    if norm is None:
        return ""
    low, mid, high = (_rgb(c) for c in HEAT_RANGE)
    if norm < 0.5:
        a, b, t = low, mid, norm / 0.5
    else:
        a, b, t = mid, high, (norm - 0.5) / 0.5
    r, g, bl = (round(x + (y - x) * t) for x, y in zip(a, b))
    return f"background-color: rgba({r}, {g}, {bl}, 0.35)"


def render_table(session: PicklistSession, display: pd.DataFrame):
    stats: Dict[str, ColumnStats] = session.stats()
    inactive = [not session.order.is_active(r.team_number) for r in session.visible_rows()]

    def _style_row(row: pd.Series):
        if inactive[row.name]:
            return ["color: #9ca3af; text-decoration: line-through"] * len(row)
        return [heat_color(row[c], stats.get(c)) for c in row.index]

    st.dataframe(display.style.apply(_style_row, axis=1), use_container_width=True, hide_index=True)


def render_summary(session: PicklistSession):
    summary = session.summary()
    c1, c2, c3 = st.columns(3)
    c1.metric("Best pick", summary.best_pick if summary.best_pick is not None else "-")
    c2.metric("Best coral bot", summary.best_coral_bot if summary.best_coral_bot is not None else "-")
    c3.metric("Best algae bot", summary.best_algae_bot if summary.best_algae_bot is not None else "-")


def render_row_controls(session: PicklistSession, rows: list[Row]):
    teams = [r.team_number for r in rows]
    c1, c2, c3 = st.columns(3)
    with c1:
        st.markdown("**Move row**")
        index_from = st.number_input("From position", min_value=1, max_value=len(rows), value=1, key="move_from")
        index_to = st.number_input("To position", min_value=1, max_value=len(rows), value=1, key="move_to")
        if st.button("Move"):
            session.reorder(int(index_from) - 1, int(index_to) - 1)
            st.rerun()
    with c2:
        st.markdown("**Edit picklist order**")
        team = st.selectbox("Team", teams, key="edit_team")
        order = st.number_input("Picklist order", min_value=0, step=1, key="edit_order")
        if st.button("Set order"):
            try:
                session.edit_order(int(team), int(order))
                st.rerun()
            except PicklistError as exc:
                st.error(str(exc))
    with c3:
        st.markdown("**Activate / deactivate**")
        toggle_team = st.selectbox("Team", teams, key="toggle_team")
        active = session.order.is_active(int(toggle_team))
        if st.button("Deactivate" if active else "Reactivate"):
            if active:
                session.deactivate(int(toggle_team))
            else:
                session.reactivate(int(toggle_team))
            st.rerun()


def render_computed_columns(session: PicklistSession):
    with st.form("computed_column", clear_on_submit=True):
        name = st.text_input("Column name")
        formula = st.text_input("Formula", help="Arithmetic, comparison and && / || over column names")
        column_type = st.radio("Type", ["numeric", "boolean"], horizontal=True)
        if st.form_submit_button("Add column"):
            try:
                session.add_computed_column(name, formula, column_type)
                st.rerun()
            except ValidationError as exc:
                st.error(exc.describe())
    for column in session.computed.columns:
        cols = st.columns([3, 5, 1])
        cols[0].markdown(f"**{column.name}** ({column.type.value})")
        cols[1].code(column.formula)
        if cols[2].button("Remove", key=f"remove_{column.name}"):
            session.remove_computed_column(column.name)
            st.rerun()


def render_saved_picklists(session: PicklistSession):
    st.markdown("### Saved picklists")
    name = st.text_input("Save as", key="save_name")
    if st.button("Save picklist", disabled=not session.show_table):
        try:
            session.save_picklist(name.strip())
            st.success(f"Saved {name.strip()}")
        except PicklistError as exc:
            st.error(str(exc))
    if session.remote is not None and st.button("Save to server", disabled=not session.show_table):
        if session.push_remote(name.strip()):
            st.success("Saved to server")
    for picklist in sorted(session.saved_picklists(), key=lambda p: p.timestamp, reverse=True):
        stamp = pd.Timestamp(picklist.timestamp, unit="ms").strftime("%Y-%m-%d %H:%M")
        cols = st.columns([3, 1, 1])
        cols[0].markdown(f"**{picklist.name}**  \n{len(picklist.data)} teams · {stamp}")
        if cols[1].button("Load", key=f"load_{picklist.name}"):
            session.load_picklist(picklist.name)
            st.rerun()
        if cols[2].button("Delete", key=f"delete_{picklist.name}"):
            session.delete_picklist(picklist.name)
            st.rerun()


# ---------- UI setup ----------
st.set_page_config(page_title="Picklist", layout="wide")
inject_base_styles()
st.markdown("<div class='app-top-bar'><div class='page-title'>Picklist</div></div>", unsafe_allow_html=True)

session = get_session()

with st.sidebar:
    render_saved_picklists(session)

with card("Data"):
    uploaded = st.file_uploader("Upload CSV", type=["csv"], key="upload_csv")
    if uploaded is not None and st.button("Load CSV"):
        try:
            session.upload_csv(uploaded.getvalue().decode("utf-8"))
            st.rerun()
        except PicklistError as exc:
            st.error(str(exc))
    if session.show_table:
        update = st.file_uploader("Update metrics CSV", type=["csv"], key="update_csv")
        if update is not None and st.button("Apply update"):
            try:
                session.update_csv(update.getvalue().decode("utf-8"))
                st.rerun()
            except PicklistError as exc:
                st.error(str(exc))

flush_warnings(session)

if not session.show_table:
    st.info("Upload a CSV with a 'Team Number' or 'Team' column to start a picklist.")
    st.stop()

render_summary(session)

with card("Table"):
    sortable = session.sortable_columns()
    sort_cols = st.columns([4, 1, 2])
    column = sort_cols[0].selectbox("Sort by", sortable, index=sortable.index(session.sort_column) if session.sort_column in sortable else 0)
    if sort_cols[1].button("Sort"):
        session.sort_by(column)
        st.rerun()
    sort_cols[2].markdown(
        f"<div class='chip-row'><span class='chip'>{session.sort_column} {session.sort_direction}</span>"
        f"<span class='chip'>{session.order.state.value}</span></div>",
        unsafe_allow_html=True,
    )
    display = session.export_frame()
    render_table(session, display)
    st.download_button(
        "Export CSV",
        data=display.to_csv(index=False).encode("utf-8"),
        file_name="picklist.csv",
        mime="text/csv",
    )

with card("Rows"):
    render_row_controls(session, session.visible_rows())

with card("Computed columns"):
    render_computed_columns(session)

with card("Heatmap"):
    chart = ranking_heatmap(session.visible_rows(), session.catalog, session.stats())
    if chart is None:
        st.caption("No numeric columns with variation.")
    else:
        st.altair_chart(chart, use_container_width=True)
