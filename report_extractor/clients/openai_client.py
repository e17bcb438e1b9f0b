"""OpenAI-compatible provider client.

Works with the OpenAI API and compatible endpoints (Azure OpenAI, vLLM,
Ollama, etc.) through the chat completions API.
"""

import logging
from typing import TYPE_CHECKING, Any

from ..extraction.prompts import build_developer_prompt, build_user_query
from .base import ModelCaller, ModelInfo

if TYPE_CHECKING:
    from ..extraction.engine import ExtractionTask

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.0


class OpenAICaller(ModelCaller):
    """Chat completions client for OpenAI-compatible APIs."""

    name = "openai"
    display_name = "OpenAI"

    def _build_headers(self) -> dict[str, str]:
        headers = super()._build_headers()
        headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def preferred_models(self) -> list[str]:
        return ["gpt-4o", "gpt-4o-mini", "gpt-4-turbo", "gpt-3.5-turbo"]

    async def complete(self, task: "ExtractionTask", seed: int) -> str:
        payload = {
            "model": task.model,
            "messages": [
                {
                    "role": "system",
                    "content": build_developer_prompt(
                        task.system_prompt, task.report.content
                    ),
                },
                {"role": "user", "content": build_user_query(task.schema)},
            ],
            "temperature": DEFAULT_TEMPERATURE,
            "seed": seed,
        }

        data = await self._request(
            "POST", f"{self._base_url}/chat/completions", json=payload
        )

        choices: list[dict[str, Any]] = data.get("choices") or []
        if not choices:
            return ""
        return (choices[0].get("message") or {}).get("content") or ""

    async def list_models(self) -> list[ModelInfo]:
        data = await self._request("GET", f"{self._base_url}/models")
        models = [
            ModelInfo(id=m["id"], display_name=m["id"])
            for m in data.get("data", [])
            if m.get("id")
        ]
        return sorted(models, key=lambda m: m.id)
