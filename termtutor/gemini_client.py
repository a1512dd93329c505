"""
HTTP client for the Gemini text-generation API.

Three operations against one backend:

- ``generateContent``: one request, one complete reply
- ``streamGenerateContent?alt=sse``: a server-sent event stream of partial
  replies
- ``countTokens``: size of the current session context

Every request carries the session's turns (for named, non-empty sessions)
followed by the new user turn. Successful exchanges are appended to the
session. Failures are returned as ``Error`` results; nothing is retried.
"""

import json
import logging
from collections.abc import Callable, Iterator
from typing import Any

import requests

from termtutor.config import TutorConfig
from termtutor.errors import DecodeError, TransportError, TutorError
from termtutor.responses import Error, RemoteResult, Reply
from termtutor.session import ROLE_MODEL, ROLE_USER, Session, Turn

logger = logging.getLogger(__name__)

API_BASE = "https://generativelanguage.googleapis.com/v1beta"

# (connect, read) timeouts in seconds
GENERATE_TIMEOUT = (30, 60)
STREAM_TIMEOUT = (30, 120)
COUNT_TOKENS_TIMEOUT = (10, 10)

SSE_DATA_PREFIX = "data: "
STREAM_READ_SIZE = 1024

VALIDATION_PROMPT = "Respond with only the word OK"
COMMAND_OUTPUT_ACK = "Got it. I'll remember this output for context."

ChunkSink = Callable[[str], None]


def extract_text(payload: Any) -> str | None:
    """Pull ``candidates[0].content.parts[0].text`` out of a response object."""
    try:
        text = payload["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return None
    return text if isinstance(text, str) else None


class StreamDecoder:
    """
    Incremental decoder for the server-sent event stream.

    Raw bytes are buffered and split on newlines; a trailing carriage return
    is stripped. Each ``data: `` line carries one JSON fragment whose text is
    emitted in arrival order. Malformed fragments are skipped.

    Output does not depend on how the transport chunks the bytes: partial
    lines (including partial UTF-8 sequences) wait in the buffer.
    """

    def __init__(self):
        self._buffer = bytearray()

    def feed(self, data: bytes) -> list[str]:
        """Add raw bytes, return the text fragments of every completed line."""
        self._buffer.extend(data)
        chunks = []
        while True:
            newline = self._buffer.find(b"\n")
            if newline < 0:
                break
            line = bytes(self._buffer[:newline])
            del self._buffer[: newline + 1]
            text = self._decode_line(line)
            if text:
                chunks.append(text)
        return chunks

    def close(self) -> list[str]:
        """Flush a final line that arrived without a newline."""
        if not self._buffer:
            return []
        line = bytes(self._buffer)
        self._buffer.clear()
        text = self._decode_line(line)
        return [text] if text else []

    def _decode_line(self, raw: bytes) -> str | None:
        if raw.endswith(b"\r"):
            raw = raw[:-1]
        try:
            line = raw.decode("utf-8")
        except UnicodeDecodeError:
            logger.debug("Skipping undecodable stream line")
            return None
        if not line.startswith(SSE_DATA_PREFIX):
            return None
        try:
            event = json.loads(line[len(SSE_DATA_PREFIX) :])
        except json.JSONDecodeError:
            logger.debug(f"Skipping malformed stream fragment: {line[:80]!r}")
            return None
        return extract_text(event)


class GeminiClient:
    """
    Gemini API client bound to one model and one session.

    The session is borrowed for building requests; this client is its only
    writer after an exchange.
    """

    def __init__(self, config: TutorConfig, session: Session | None = None):
        """
        Args:
            config: Resolved credential, model and language
            session: Conversation context (ephemeral when omitted)
        """
        self.config = config
        self.session = session if session is not None else Session()

    # ---------------------------------------------------------------- Helpers
    def _endpoint(self, method: str) -> str:
        return f"{API_BASE}/models/{self.config.model}:{method}"

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-goog-api-key": self.config.api_key,
        }

    def _build_contents(self, prompt: str, use_history: bool) -> list[dict[str, Any]]:
        contents = []
        if use_history and not self.session.is_ephemeral:
            contents = self.session.to_contents()
        contents.append(Turn(ROLE_USER, prompt).to_dict())
        return contents

    def _post(self, method: str, body: dict[str, Any], timeout, **kwargs) -> requests.Response:
        url = self._endpoint(method)
        logger.debug(f"POST {url}")
        try:
            return requests.post(url, json=body, headers=self._headers(), timeout=timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Network error: {e}") from e

    @staticmethod
    def _check_status(response: requests.Response) -> None:
        if response.status_code == 200:
            return
        message = f"API error: HTTP {response.status_code}"
        try:
            detail = response.json()["error"]["message"]
            message += f" - {detail}"
        except (ValueError, KeyError, TypeError):
            pass
        raise TransportError(message)

    @staticmethod
    def _parse_reply(response: requests.Response) -> str:
        try:
            payload = response.json()
        except ValueError as e:
            raise DecodeError(f"JSON parse error: {e}") from e
        text = extract_text(payload)
        if text is None:
            raise DecodeError("Invalid response structure")
        return text

    def _record_exchange(self, prompt: str, reply: str) -> None:
        self.session.extend([Turn(ROLE_USER, prompt), Turn(ROLE_MODEL, reply)])

    # ------------------------------------------------------------- Generation
    def generate(self, prompt: str, use_history: bool = True) -> RemoteResult:
        """Send one prompt and return the complete reply.

        With ``use_history`` the session context is sent and the exchange is
        recorded; probes pass ``use_history=False`` to bypass both.
        """
        body = {"contents": self._build_contents(prompt, use_history)}
        try:
            with self._post("generateContent", body, GENERATE_TIMEOUT) as response:
                self._check_status(response)
                text = self._parse_reply(response)
        except TutorError as e:
            return Error(str(e))

        if use_history:
            self._record_exchange(prompt, text)
        return Reply(text)

    def iter_stream(self, prompt: str, use_history: bool = True) -> Iterator[str]:
        """Yield decoded text fragments as they arrive.

        This generator does not record the exchange in the session; use
        ``stream_generate`` for that.

        Raises:
            TransportError: on connection failure, bad status, or a broken stream
        """
        body = {"contents": self._build_contents(prompt, use_history)}
        decoder = StreamDecoder()
        with self._post(
            "streamGenerateContent", body, STREAM_TIMEOUT, params={"alt": "sse"}, stream=True
        ) as response:
            self._check_status(response)
            try:
                for data in response.iter_content(chunk_size=STREAM_READ_SIZE):
                    yield from decoder.feed(data)
            except requests.exceptions.RequestException as e:
                raise TransportError(f"Stream error: {e}") from e
        yield from decoder.close()

    def stream_generate(
        self, prompt: str, on_chunk: ChunkSink, use_history: bool = True
    ) -> RemoteResult:
        """Stream a reply, handing each fragment to ``on_chunk`` as it arrives.

        ``on_chunk`` runs on the reading thread; a slow sink stalls the
        stream. The accumulated text is returned and recorded like a
        synchronous reply.
        """
        accumulated = []
        try:
            for chunk in self.iter_stream(prompt, use_history=use_history):
                accumulated.append(chunk)
                on_chunk(chunk)
        except TutorError as e:
            return Error(str(e))

        text = "".join(accumulated)
        if use_history:
            self._record_exchange(prompt, text)
        return Reply(text)

    # ---------------------------------------------------------------- Utility
    def count_tokens(self) -> int:
        """Token count of the session context.

        Returns 0 for an ephemeral or empty session without calling the API,
        and -1 on any failure.
        """
        if self.session.is_ephemeral or len(self.session) == 0:
            return 0
        body = {"contents": self.session.to_contents()}
        try:
            with self._post("countTokens", body, COUNT_TOKENS_TIMEOUT) as response:
                self._check_status(response)
                total = response.json().get("totalTokens")
        except (TutorError, ValueError, AttributeError) as e:
            logger.debug(f"Token count failed: {e}")
            return -1
        if not isinstance(total, int) or isinstance(total, bool) or total < 0:
            return -1
        return total

    def validate(self) -> RemoteResult:
        """Probe the credential and model without touching the session."""
        return self.generate(VALIDATION_PROMPT, use_history=False)

    def add_command_output(self, command: str, output: str) -> None:
        """Record an executed command and its output as session context."""
        context = f"I executed: {command}\n\nOutput:\n{output}"
        self.session.extend([Turn(ROLE_USER, context), Turn(ROLE_MODEL, COMMAND_OUTPUT_ACK)])
