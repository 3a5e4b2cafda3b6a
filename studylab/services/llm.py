from __future__ import annotations

import json
from typing import Any, Dict, Optional

import structlog
from openai import OpenAI, OpenAIError
from typing_extensions import Protocol

from studylab.config import settings
from studylab.errors import ModelRequestError

logger = structlog.get_logger()


class CompletionClient(Protocol):
    def complete_structured(self, prompt: str, example_schema: Dict[str, Any]) -> Dict[str, Any]:
        ...


def _get_client(api_key: Optional[str] = None) -> OpenAI:
    api_key = api_key or settings.openai_api_key
    if not api_key:
        raise ModelRequestError("OPENAI_API_KEY not set")
    return OpenAI(api_key=api_key)


def _clean_json_like(content: str) -> str:
    # Strip common code fences ```json ... ``` or ``` ... ```
    text = content.strip()
    if text.startswith("```"):
        first_nl = text.find("\n")
        if first_nl != -1:
            text = text[first_nl + 1 :]
        if text.endswith("```"):
            text = text[:-3]
    # Keep the outermost JSON object if the model wrapped it in prose
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end != -1 and end > start:
        return text[start : end + 1]
    return text


def parse_json_object(content: str) -> Dict[str, Any]:
    try:
        data = json.loads(_clean_json_like(content or ""))
    except json.JSONDecodeError as e:
        raise ModelRequestError(f"Model returned malformed JSON: {e}") from e
    if not isinstance(data, dict):
        raise ModelRequestError(f"Model returned {type(data).__name__}, expected a JSON object")
    return data


class OpenAICompletionClient:
    """Chat completion returning a parsed JSON object shaped like `example_schema`."""

    def __init__(
        self,
        model: str = "gpt-4o",
        temperature: float = 0.2,
        timeout: float = 30.0,
        api_key: Optional[str] = None,
    ):
        self.model = model
        self.temperature = temperature
        self.timeout = timeout
        self.api_key = api_key

    def complete_structured(self, prompt: str, example_schema: Dict[str, Any]) -> Dict[str, Any]:
        client = _get_client(self.api_key).with_options(timeout=self.timeout, max_retries=0)
        instructions = (
            "You must respond with a JSON object in this exact format:\n"
            f"{json.dumps(example_schema, indent=2)}\n\n"
            "DO NOT include any other text, markdown formatting, or code blocks. "
            "Return ONLY the JSON object."
        )
        try:
            rsp = client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": instructions},
                    {"role": "user", "content": prompt},
                ],
                temperature=self.temperature,
                response_format={"type": "json_object"},
            )
        except OpenAIError as e:
            raise ModelRequestError(f"Completion request failed: {e}") from e
        content = rsp.choices[0].message.content or ""
        return parse_json_object(content)


def transcribe_audio(data: bytes, file_name: str, model: Optional[str] = None) -> str:
    client = _get_client().with_options(timeout=max(settings.request_timeout, 120.0))
    try:
        transcription = client.audio.transcriptions.create(
            file=(file_name, data),
            model=model or settings.transcription_model,
            response_format="json",
            temperature=0.2,
            prompt="This is an academic or scientific text. Please transcribe accurately.",
        )
    except OpenAIError as e:
        raise ModelRequestError(f"Transcription failed: {e}") from e
    return transcription.text or ""
