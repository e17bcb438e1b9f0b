"""Google Gemini provider client.

Uses the Generative Language REST API. Gemini takes a single prompt, so the
developer prompt and user query are combined into one message.
"""

import logging
from typing import TYPE_CHECKING, Any, Optional

from ..extraction.prompts import build_combined_prompt
from .base import ModelCaller, ModelInfo

if TYPE_CHECKING:
    from ..extraction.engine import ExtractionTask

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.0
MODELS_PAGE_SIZE = 1000


def _strip_model_prefix(name: str) -> str:
    return name[len("models/") :] if name.startswith("models/") else name


class GeminiCaller(ModelCaller):
    """generateContent client for Google Gemini."""

    name = "gemini"
    display_name = "Gemini"

    def _build_headers(self) -> dict[str, str]:
        headers = super()._build_headers()
        headers["x-goog-api-key"] = self._api_key
        return headers

    def preferred_models(self) -> list[str]:
        return ["gemini-flash-lite-latest", "gemini-flash-latest", "gemini-pro-latest"]

    async def complete(self, task: "ExtractionTask", seed: int) -> str:
        prompt = build_combined_prompt(
            task.system_prompt, task.report.content, task.schema
        )
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": DEFAULT_TEMPERATURE, "seed": seed},
        }

        model = _strip_model_prefix(task.model)
        data = await self._request(
            "POST", f"{self._base_url}/models/{model}:generateContent", json=payload
        )

        candidates: list[dict[str, Any]] = data.get("candidates") or []
        if not candidates:
            return ""
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(part.get("text", "") for part in parts)

    async def _list_all_models(self) -> list[dict[str, Any]]:
        models: list[dict[str, Any]] = []
        page_token: Optional[str] = None

        while True:
            params: dict[str, Any] = {"pageSize": MODELS_PAGE_SIZE}
            if page_token:
                params["pageToken"] = page_token

            data = await self._request("GET", f"{self._base_url}/models", params=params)
            models.extend(data.get("models", []))

            page_token = data.get("nextPageToken")
            if not page_token:
                return models

    async def list_models(self) -> list[ModelInfo]:
        """List Gemini text models, newest versions first.

        Falls back to every non-embedding model when no gemini-named model
        is available.
        """
        raw = await self._list_all_models()

        def to_info(model: dict[str, Any]) -> ModelInfo:
            model_id = _strip_model_prefix(model.get("name", ""))
            return ModelInfo(id=model_id, display_name=model.get("displayName") or model_id)

        named = [m for m in raw if m.get("name")]
        text_models = [
            to_info(m)
            for m in named
            if "gemini" in m["name"] and "embedding" not in m["name"]
        ]
        if not text_models:
            text_models = [to_info(m) for m in named if "embedding" not in m["name"]]

        return sorted(text_models, key=lambda m: m.id, reverse=True)
