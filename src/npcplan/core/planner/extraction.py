"""
Completion extraction for noisy model output.

Small models wrap or trail their JSON with chatter, code fences or thinking
blocks. These helpers isolate the first balanced JSON object so the
validator only ever sees one candidate.
"""

import re
from typing import Optional, Tuple


def strip_markdown_fences(text: str) -> str:
    """Remove ```json ... ``` wrapping that some models output.

    Args:
        text: Raw model output

    Returns:
        Text with markdown fences removed
    """
    text = text.strip()
    if text.startswith("```"):
        # Opening fence with optional language tag like ```json
        text = re.sub(r'^```\w*\n?', '', text)
        text = re.sub(r'\n?```\s*$', '', text)
    return text.strip()


def strip_think_tags(text: str) -> str:
    """Remove <think>...</think> and <|thinking|>...<|/thinking|> blocks."""
    text = re.sub(r'<think>.*?</think>\s*', '', text, flags=re.DOTALL)
    return re.sub(r'<\|thinking\|>.*?<\|/thinking\|>\s*', '', text, flags=re.DOTALL).strip()


def _scan_first_object(text: str) -> Optional[Tuple[int, int]]:
    start = text.find("{")
    if start < 0:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return start, i + 1
    return None


def try_extract_first_json_object(text: Optional[str]) -> Tuple[bool, Optional[str]]:
    """Return the exact source text of the first balanced JSON object.

    Scans once from the first ``{``, tracking brace depth and string/escape
    state so braces inside string literals are ignored.

    Returns:
        (True, object_text) when found; (False, None) for empty text, text
        without ``{``, or an unterminated string or object
    """
    if not text or not text.strip():
        return False, None
    span = _scan_first_object(text)
    if span is None:
        return False, None
    return True, text[span[0]:span[1]]


def json_object_complete(text: str) -> bool:
    """Stop predicate for streaming: true once one full object was produced."""
    found, _ = try_extract_first_json_object(text)
    return found


def trim_completion(text: str) -> str:
    """Cleanup applied to a raw completion before extraction."""
    return strip_markdown_fences(strip_think_tags(text or ""))
