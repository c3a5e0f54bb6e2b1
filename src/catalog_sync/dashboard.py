"""Streamlit dashboard for triaging review tasks."""
from __future__ import annotations

import os
from pathlib import Path

import pandas as pd
import streamlit as st

from catalog_sync.config import Settings
from catalog_sync.report import catalog_summary, review_tasks_frame
from catalog_sync.repository import CatalogStore

TASK_TYPES = ["offer_link", "category_review", "device_merge"]


@st.cache_resource
def get_store() -> CatalogStore:
    db_path = os.environ.get("CATALOG_SYNC_DB_PATH") or Settings.load().db_path
    return CatalogStore(Path(db_path))


def task_stats(tasks: pd.DataFrame) -> pd.DataFrame:
    if tasks.empty:
        return pd.DataFrame()
    return (
        tasks.groupby("task_type")
        .agg(open=("id", "count"), top_priority=("priority", "max"), mean_score=("score", "mean"))
        .reset_index()
    )


def main() -> None:
    st.set_page_config(page_title="Catalog Sync Review", layout="wide")
    st.title("Catalog Review Queue")

    store = get_store()

    task_type = st.sidebar.selectbox("Task type", options=["all", *TASK_TYPES])
    page_size = st.sidebar.slider("Tasks per page", min_value=5, max_value=50, value=10)

    st.subheader("Catalog")
    st.dataframe(catalog_summary(store), use_container_width=True)

    tasks = store.review_tasks(status="open", task_type=None if task_type == "all" else task_type)
    frame = review_tasks_frame(tasks)
    stats = task_stats(frame)
    if not stats.empty:
        st.subheader("Open tasks")
        st.table(stats)

    if not tasks:
        st.info("No open review tasks. Run a sync or an audit to populate the queue.")
        return

    page = st.number_input("Page", min_value=1, value=1, step=1)
    start = (page - 1) * page_size
    for task in tasks[start : start + page_size]:
        with st.container():
            st.markdown(f"### [{task.priority}] {task.task_type}: {task.source_listing_id}")
            st.caption(task.reason)
            st.json(task.payload)
            accept_col, dismiss_col = st.columns(2)
            if accept_col.button("Accept", key=f"accept-{task.id}"):
                store.resolve_review_task(task.id, accept=True)
                st.rerun()
            if dismiss_col.button("Dismiss", key=f"dismiss-{task.id}"):
                store.resolve_review_task(task.id, accept=False)
                st.rerun()


if __name__ == "__main__":
    main()
