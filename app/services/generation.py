# =============================================
# File: app/services/generation.py
# Purpose: Block name/description/objectives with OpenAI (gpt-4o-mini) + deterministic fallback
# =============================================
from __future__ import annotations
import os
from typing import List, Dict, Tuple
import json

from loguru import logger
from openai import OpenAI

from ..utils.drill_core import Drill, UserProgress
from ..utils.prompting import build_block_messages

DEFAULT_MODEL = os.getenv("LLM_MODEL", "gpt-4o-mini")
DEFAULT_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.1"))
MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "300"))
TIMEOUT_S = float(os.getenv("LLM_TIMEOUT_SECONDS", "4"))
MAX_RETRIES = int(os.getenv("LLM_MAX_RETRIES", "1"))

FALLBACK_MODEL = "fallback"


def fallback_metadata(theme: str) -> Dict:
    """Deterministic labels used whenever the LLM path is unavailable."""
    return {
        "name": f"{theme.upper()} Development Block",
        "description": f"Focused training on {theme} skills",
        "objectives": [f"Improve {theme} abilities"],
    }


def _openai_client():
    return OpenAI()


def _chat_completion_with_retry(client, messages) -> Tuple[str | None, str | None]:
    """
    Try calling OpenAI up to MAX_RETRIES+1 times with TIMEOUT_S each.
    Returns (text, model) or (None, None) if all attempts fail.
    """
    attempts = max(1, MAX_RETRIES + 1)
    for attempt in range(attempts):
        try:
            resp = client.chat.completions.create(
                model=DEFAULT_MODEL,
                response_format={"type": "json_object"},
                temperature=DEFAULT_TEMPERATURE,
                max_tokens=MAX_TOKENS,
                messages=messages,
                timeout=TIMEOUT_S,
            )
            text = (resp.choices[0].message.content or "").strip()
            return text, getattr(resp, "model", DEFAULT_MODEL)
        except Exception as e:
            logger.warning(f"[generation] attempt {attempt + 1}/{attempts} failed: {e}")
            continue
    return None, None


def _parse_llm_json(text: str) -> Dict | None:
    """
    Extract {name, description, objectives} from the model output.
    Tolerant to small wrappers around the JSON; None when unusable.
    """
    if not text:
        return None
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    try:
        data = json.loads(text[start:end + 1])
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    name = str(data.get("name") or "").strip()
    if not name:
        return None
    objectives = data.get("objectives") or []
    if not isinstance(objectives, list):
        objectives = [objectives]
    return {
        "name": name,
        "description": str(data.get("description") or "").strip(),
        "objectives": [str(o).strip() for o in objectives if str(o).strip()][:5],
    }


def generate_block_metadata(
    drills: List[Drill],
    theme: str,
    progress: UserProgress,
) -> Tuple[Dict, Dict]:
    """
    Best-effort block naming.
    Returns (metadata, meta) where metadata = {name, description, objectives}
    and meta = {"model": str}. Never raises.
    """
    if not os.getenv("OPENAI_API_KEY"):
        return fallback_metadata(theme), {"model": FALLBACK_MODEL}

    messages = build_block_messages([d.title for d in drills], theme, progress.skill_level)
    try:
        client = _openai_client()
        text, model = _chat_completion_with_retry(client, messages)
    except Exception as e:
        logger.warning(f"[generation] client unavailable: {e}")
        text, model = None, None

    parsed = _parse_llm_json(text or "")
    if parsed is None:
        logger.info(f"[generation] falling back to default labels for theme={theme}")
        return fallback_metadata(theme), {"model": FALLBACK_MODEL}

    return parsed, {"model": model or DEFAULT_MODEL}
