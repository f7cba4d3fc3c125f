"""
Legal Answer Generator
-----------------------
Turns a RetrievalContext into the (system prompt, user message) pair and
asks an OpenAI chat model for the structured JSON answer:

    {summary, source, deadline, task, urgency, advice, draft}

The JSON is parsed but not schema-validated; downstream consumers own
that check.
"""
from __future__ import annotations

import json

import openai
from langsmith import traceable
from loguru import logger

from statute_navigator.errors import EngineUnavailableError
from statute_navigator.generation.prompts import GENERAL_CHAPTER, SYSTEM_PROMPT
from statute_navigator.schemas import RetrievalContext


def build_prompt(context: RetrievalContext, user_message: str) -> tuple[str, str]:
    """Return (system_prompt, user_message) for the generator."""
    system_prompt = SYSTEM_PROMPT.format(
        context=context.render(),
        chapter=context.chapter or GENERAL_CHAPTER,
    )
    return system_prompt, user_message


class LegalAnswerGenerator:
    """Structured answer synthesis using OpenAI chat models in JSON mode."""

    def __init__(self, model: str = "gpt-4o-mini", temperature: float = 0.1) -> None:
        self.model = model
        self.temperature = temperature
        self._client: openai.OpenAI | None = None
        self.prompt_tokens = 0
        self.completion_tokens = 0

    @property
    def client(self) -> openai.OpenAI:
        if self._client is None:
            self._client = openai.OpenAI()
        return self._client

    @traceable(name="generate_answer", run_type="llm")
    def generate(self, system_prompt: str, user_message: str) -> dict:
        logger.debug(f"[Generator] {self.model} | message={user_message[:60]!r}")
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_message},
                ],
                temperature=self.temperature,
                response_format={"type": "json_object"},
            )
        except openai.OpenAIError as exc:
            raise EngineUnavailableError(f"Generation failed: {exc}") from exc

        usage = response.usage
        if usage is not None:
            self.prompt_tokens = usage.prompt_tokens
            self.completion_tokens = usage.completion_tokens
            logger.info(
                f"[Generator] Done | prompt={usage.prompt_tokens} completion={usage.completion_tokens}"
            )

        content = response.choices[0].message.content or "{}"
        try:
            return json.loads(content)
        except json.JSONDecodeError as exc:
            raise EngineUnavailableError(f"Generator returned malformed JSON: {exc}") from exc
