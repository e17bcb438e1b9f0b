"""Prompt building for LLM extraction."""

import json
from typing import Any


def build_developer_prompt(system_prompt: str, report: str) -> str:
    """Build the developer/system prompt wrapping the report content."""
    return f"<instructions>\n{system_prompt}\n</instructions>\n\n<report>\n{report}\n</report>"


def build_user_query(schema: dict[str, Any]) -> str:
    """Build the user query listing the schema keys and the schema itself."""
    keys = ", ".join(schema.get("properties", {}).keys())
    schema_json = json.dumps(schema, indent=2)
    return (
        f"<query>\n<json_keys>\n[{keys}]\n</json_keys>\n"
        f"<json_schema>\n```json{schema_json}```\n</json_schema>\n</query>"
    )


def build_combined_prompt(system_prompt: str, report: str, schema: dict[str, Any]) -> str:
    """Single-message prompt for providers without separate roles."""
    return build_developer_prompt(system_prompt, report) + "\n\n" + build_user_query(schema)
