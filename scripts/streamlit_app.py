# =============================================
# File: scripts/streamlit_app.py
# Purpose: Streamlit frontend for the drill block recommender
# =============================================

# streamlit_app.py
# -----------------------------------------------------------
# Drill Blocks: demo client (Streamlit)
#
# Talks to the FastAPI backend:
#   POST /recommend-drills { skill_level, equipments, completed_drill_ids,
#                            liked_drill_ids, disliked_drill_ids, block_size, num_blocks }
#
# How to run:
#   streamlit run scripts/streamlit_app.py
# -----------------------------------------------------------

from __future__ import annotations

import os
import uuid
from typing import Any, Dict, List

import requests
import streamlit as st

API_URL = os.getenv("DRILLS_API_URL", "http://localhost:8000")

st.set_page_config(page_title="Drill Blocks", page_icon="⚾", layout="wide")


def _csv(text: str) -> List[str]:
    return [p.strip() for p in (text or "").split(",") if p.strip()]


def _uid() -> str:
    if "user_id" not in st.session_state:
        st.session_state["user_id"] = "ui_" + uuid.uuid4().hex[:8]
    return st.session_state["user_id"]


def fetch_blocks(payload: Dict[str, Any]) -> Dict[str, Any]:
    r = requests.post(f"{API_URL}/recommend-drills", json=payload, timeout=60)
    if r.status_code == 429:
        return {"error": "Too many requests, try again in a minute."}
    if r.status_code != 200:
        detail = r.json().get("detail") if r.headers.get("content-type", "").startswith("application/json") else r.text
        return {"error": f"{r.status_code}: {detail}"}
    return r.json()


def render_block(block: Dict[str, Any]) -> None:
    st.subheader(block.get("name") or block.get("theme", "Block"))
    st.caption(
        f"{block.get('difficulty', '')} · {block.get('total_duration', 0)} min · "
        f"coherence {block.get('coherence_score', 0):.2f}"
    )
    if block.get("description"):
        st.write(block["description"])
    for obj in block.get("learning_objectives") or []:
        st.markdown(f"- {obj}")
    rows = [
        {
            "Drill": d.get("title"),
            "Difficulty": d.get("difficulty"),
            "Reps": d.get("reps"),
            "Minutes": d.get("duration"),
            "Score": round(float(d.get("relevance_score", 0.0)), 3),
            "Why": d.get("reasoning"),
        }
        for d in block.get("drills", [])
    ]
    st.dataframe(rows, use_container_width=True, hide_index=True)


# ---------- Sidebar ----------
with st.sidebar:
    st.header("Athlete")
    skill_level = st.selectbox("Skill level", ["beginner", "intermediate", "advanced"], index=1)
    equipment = st.text_input("Equipment (comma separated)", "Bat, Batting Tee, Baseballs")
    completed = st.text_input("Completed drill ids", "")
    liked = st.text_input("Liked drill ids", "")
    disliked = st.text_input("Disliked drill ids", "")
    block_size = st.slider("Block size", 3, 20, 8)
    num_blocks = st.slider("Blocks", 1, 5, 3)

st.title("Drill Blocks")

if st.button("Recommend", type="primary"):
    with st.spinner("Building blocks…"):
        data = fetch_blocks({
            "user_id": _uid(),
            "skill_level": skill_level,
            "equipments": _csv(equipment),
            "completed_drill_ids": _csv(completed),
            "liked_drill_ids": _csv(liked),
            "disliked_drill_ids": _csv(disliked),
            "block_size": block_size,
            "num_blocks": num_blocks,
        })
    if data.get("error"):
        st.error(data["error"])
    else:
        for block in data.get("blocks", []):
            render_block(block)
            st.divider()
