import json
import logging
import re
from typing import Protocol

import vertexai
from vertexai.preview.generative_models import GenerationConfig, GenerativeModel

LOGGER = logging.getLogger("finance_tracker.llm")

_CODE_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


class CompletionClient(Protocol):
    async def complete(
        self,
        prompt: str,
        *,
        temperature: float = 0.1,
        max_tokens: int = 1000,
        json_response: bool = True,
    ) -> str: ...


class VertexCompletionClient:
    """Gemini on Vertex AI. The SDK is initialised on first use."""

    def __init__(self, project_id, location, model_name="gemini-2.0-flash"):
        self.project_id = project_id
        self.location = location
        self.model_name = model_name
        self._model = None

    def _get_model(self):
        if self._model is None:
            vertexai.init(project=self.project_id, location=self.location)
            self._model = GenerativeModel(self.model_name)
            LOGGER.info("Initialised Vertex AI model %s in %s", self.model_name, self.location)
        return self._model

    async def complete(self, prompt, *, temperature=0.1, max_tokens=1000, json_response=True):
        config = GenerationConfig(
            temperature=temperature,
            max_output_tokens=max_tokens,
            response_mime_type="application/json" if json_response else None,
        )
        response = await self._get_model().generate_content_async(prompt, generation_config=config)
        return response.text


def strip_code_fences(text):
    stripped = (text or "").strip()
    match = _CODE_FENCE.match(stripped)
    if match:
        return match.group(1).strip()
    return stripped


def load_json_payload(text):
    """
    Parse model output that should hold a JSON object or array.

    Raises ValueError for empty or non-JSON output.
    """
    payload = strip_code_fences(text)
    if not payload:
        raise ValueError("empty model response")
    try:
        return json.loads(payload)
    except json.JSONDecodeError:
        pass
    # Some responses wrap the JSON in prose; take the outermost brackets.
    for opener, closer in (("{", "}"), ("[", "]")):
        start, end = payload.find(opener), payload.rfind(closer)
        if start < 0 or end <= start:
            continue
        try:
            return json.loads(payload[start : end + 1])
        except json.JSONDecodeError:
            continue
    raise ValueError("model response is not JSON")


def load_json_object(text):
    data = load_json_payload(text)
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    return data
