"""
Intent classification for free-form requests.

The model is asked to answer with a single JSON object tagged ``execute`` or
``explain``. Replies are parsed defensively: only the span between the first
``{`` and the last ``}`` is considered, and anything that does not validate
falls back to treating the whole reply as an explanation. Only transport
failures produce an ``Error``.
"""

import logging
from typing import Literal

from pydantic import BaseModel, ValidationError

from termtutor.gemini_client import ChunkSink, GeminiClient
from termtutor.responses import ClassifiedResponse, Error, Execute, Explain, Reply

logger = logging.getLogger(__name__)


class ExecutePayload(BaseModel):
    type: Literal["execute"]
    command: str
    explanation: str = ""


class ExplainPayload(BaseModel):
    type: Literal["explain"]
    response: str


class TaskCommandPayload(BaseModel):
    command: str
    explanation: str = ""


def build_intent_prompt(query: str, language_instruction: str) -> str:
    return (
        f"User request: {query}\n\n"
        "Analyze the request:\n"
        "1. EXECUTE: If user wants to DO something with the system "
        "(find files, list processes, check disk, etc.)\n"
        "2. EXPLAIN: For greetings, questions about concepts, explanations "
        "(hi, hello, why, what is, how does X work)\n\n"
        "Greetings like 'hi', 'hello', 'ola' are ALWAYS type explain.\n"
        "Only use execute if the user clearly wants to run a shell command.\n\n"
        "Respond with ONLY valid JSON:\n"
        'Execute: {"type":"execute","command":"shell command",'
        '"explanation":"1-line plain text explanation"}\n'
        'Explain: {"type":"explain","response":"plain text response"}\n\n'
        "CRITICAL: No markdown, no backticks, no asterisks, no formatting. Plain text only.\n"
        f"{language_instruction}"
    )


def build_task_prompt(task: str) -> str:
    return (
        f"User wants to: {task}\n\n"
        "Respond with ONLY a JSON object:\n"
        '{"command":"the shell command","explanation":"1-line explanation"}\n\n'
        "CRITICAL: Return ONLY valid JSON. No markdown, no text before or after."
    )


def extract_json_span(raw: str) -> str | None:
    """Return the text from the first ``{`` to the last ``}``, if any."""
    start = raw.find("{")
    end = raw.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    return raw[start : end + 1]


def parse_classification(raw: str) -> Execute | Explain:
    """Classify a raw model reply, falling back to ``Explain(raw)``."""
    span = extract_json_span(raw)
    if span is None:
        return Explain(raw)

    for payload_model in (ExecutePayload, ExplainPayload):
        try:
            payload = payload_model.model_validate_json(span)
        except ValidationError:
            continue
        if isinstance(payload, ExecutePayload):
            return Execute(command=payload.command.strip(), explanation=payload.explanation)
        return Explain(payload.response)

    logger.debug("Reply did not match the intent schema, treating it as an explanation")
    return Explain(raw)


def parse_task_command(raw: str) -> Execute:
    """Parse a ``--run`` reply; unparseable replies are taken as the command."""
    span = extract_json_span(raw)
    if span is not None:
        try:
            payload = TaskCommandPayload.model_validate_json(span)
            return Execute(command=payload.command.strip(), explanation=payload.explanation)
        except ValidationError:
            logger.debug("Task reply was not valid JSON, using it verbatim")
    return Execute(command=raw.strip())


class IntentClassifier:
    """Turns a free-form request into Execute, Explain or Error."""

    def __init__(self, client: GeminiClient):
        self.client = client

    def _prompt(self, query: str) -> str:
        return build_intent_prompt(query, self.client.config.language_instruction)

    def classify(self, query: str) -> ClassifiedResponse:
        match self.client.generate(self._prompt(query)):
            case Reply(text=text):
                return parse_classification(text)
            case Error() as error:
                return error

    def classify_streaming(self, query: str, on_chunk: ChunkSink) -> ClassifiedResponse:
        """Like ``classify`` but hands raw fragments to ``on_chunk`` as they arrive."""
        match self.client.stream_generate(self._prompt(query), on_chunk):
            case Reply(text=text):
                return parse_classification(text)
            case Error() as error:
                return error

    def command_for_task(self, task: str) -> ClassifiedResponse:
        """Ask directly for a command (``--run`` mode)."""
        match self.client.generate(build_task_prompt(task)):
            case Reply(text=text):
                return parse_task_command(text)
            case Error() as error:
                return error
