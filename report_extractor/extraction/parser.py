"""Response parsing for LLM extraction.

Models are asked to answer with a fenced ```json block; everything outside
the first such block is ignored.
"""

import logging
import re
from typing import Any, Optional

import orjson

logger = logging.getLogger(__name__)

JSON_BLOCK_PATTERN = re.compile(r"```json\s*([\s\S]*?)\s*```")


def extract_json_from_response(response_text: Optional[str]) -> Optional[str]:
    """Extract the first fenced JSON block from a model response."""
    if not response_text:
        return None

    match = JSON_BLOCK_PATTERN.search(response_text)
    if match and match.group(1):
        return match.group(1).strip()

    return None


def parse_extracted_json(json_string: Optional[str]) -> Optional[Any]:
    """Parse a JSON string, returning None if it is invalid."""
    if not json_string:
        return None

    try:
        return orjson.loads(json_string)
    except orjson.JSONDecodeError as e:
        logger.warning(f"Failed to parse JSON: {e}")
        return None


def extract_and_parse_json(response_text: Optional[str]) -> Optional[Any]:
    """Extract and parse the fenced JSON block in one step."""
    json_string = extract_json_from_response(response_text)
    if json_string is None:
        return None
    return parse_extracted_json(json_string)


def has_schema_properties(data: Any, schema: Optional[dict[str, Any]]) -> bool:
    """Check that extracted data contains at least one schema property."""
    if not isinstance(data, dict):
        return False
    if not schema or not schema.get("properties"):
        return False

    schema_keys = set(schema["properties"])
    return any(key in schema_keys for key in data)
