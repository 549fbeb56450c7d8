# =============================================
# File: app/utils/prompting.py
# Purpose: Build JSON-structured messages for block naming with gpt-4o-mini
# =============================================
from __future__ import annotations
import re
from typing import List, Dict, Optional, Sequence

_WHITESPACE_RE = re.compile(r"\s+")

SYS_PROMPT = (
    "You are an athletic training assistant that names practice blocks. "
    "Use ONLY the drill titles provided. "
    "Output MUST be valid JSON with three fields: "
    "{\"name\": string, \"description\": string, \"objectives\": string[]}. "
    "Keep the name under 8 words and the description to one sentence. "
    "Do NOT invent drills."
)

USER_TEMPLATE = (
    "Create block metadata for {n} {theme} drills for a {level} user.\n\n"
    "Drills: {titles}\n\n"
    "Respond with JSON only:\n"
    "{{\n"
    "  \"name\": \"Block name\",\n"
    "  \"description\": \"1 sentence description\",\n"
    "  \"objectives\": [\"objective1\", \"objective2\"]\n"
    "}}"
)


def collapse_ws(text: str) -> str:
    if not text:
        return ""
    return _WHITESPACE_RE.sub(" ", text).strip()


def build_block_messages(titles: Sequence[str], theme: str, skill_level: Optional[str]) -> List[Dict]:
    """
    Messages for OpenAI Chat Completions.
    The model must return {"name": str, "description": str, "objectives": [str]}.
    """
    clean = [collapse_ws(t)[:120] for t in titles if collapse_ws(t)]
    user = USER_TEMPLATE.format(
        n=len(clean),
        theme=collapse_ws(theme) or "general",
        level=skill_level or "beginner",
        titles=", ".join(clean) if clean else "(none)",
    )
    return [
        {"role": "system", "content": SYS_PROMPT},
        {"role": "user", "content": user},
    ]
