"""
JSON decoding helpers for upstream workflow output.

Upstream fields may arrive JSON-encoded as a string or already parsed, and the
model behind the workflow sometimes wraps its JSON in a markdown code block or
breaks long strings across lines.
"""
import json
import re
import logging
from typing import Any, Optional

from .errors import SchemaViolation

logger = logging.getLogger(__name__)

_CODE_BLOCK = re.compile(r'```(?:json)?\s*([\s\S]*?)\s*```')


def _fix_newlines_in_json_strings(text: str) -> str:
    """Replace literal newlines inside JSON string values with spaces.

    Walks the text character-by-character, tracking whether we're inside
    a quoted string.  Any \\n found inside a string is replaced with a space.
    """
    result = []
    in_string = False
    i = 0
    while i < len(text):
        c = text[i]
        if c == '\\' and in_string and i + 1 < len(text):
            # Escaped character inside string, keep both chars as-is
            result.append(c)
            result.append(text[i + 1])
            i += 2
            continue
        if c == '"':
            in_string = not in_string
        if c == '\n' and in_string:
            result.append(' ')
        else:
            result.append(c)
        i += 1
    return ''.join(result)


def decode_json_text(text: str, field_name: str = "payload") -> Any:
    """Decode a JSON document carried as text.

    Raises SchemaViolation when the text is not JSON; there is no default
    value to fall back to.
    """
    text = text.strip()

    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        logger.warning(f"JSON parse error in '{field_name}' (attempt 1 - direct): {e}")

    # Only a fence wrapping the whole text; fences inside string values are content
    block = _CODE_BLOCK.fullmatch(text)
    if block:
        text = block.group(1).strip()

    try:
        return json.loads(_fix_newlines_in_json_strings(text))
    except json.JSONDecodeError as e:
        logger.error(f"Could not decode '{field_name}' as JSON: {e}. Raw text: {text[:200]}...")
        raise SchemaViolation(f"Field '{field_name}' is not valid JSON") from e


def flexible_field(container: dict, key: str) -> Optional[Any]:
    """Read a field that may be a JSON string or an already-parsed value.

    Returns None when the field is absent or null. Strings are decoded once;
    dicts and lists are returned as they are.
    """
    value = container.get(key)
    if value is None:
        return None
    if isinstance(value, str):
        if not value.strip():
            return None
        return decode_json_text(value, field_name=key)
    if isinstance(value, (dict, list)):
        return value
    raise SchemaViolation(f"Field '{key}' has unexpected type {type(value).__name__}")
