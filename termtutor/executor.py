"""Shell command execution with live output and capture for session context."""

import codecs
import logging
import subprocess
import sys
from dataclasses import dataclass
from typing import TextIO

logger = logging.getLogger(__name__)

# Captured output becomes conversation context, so it is capped
OUTPUT_LIMIT = 2000
TRUNCATION_MARKER = "\n... [output truncated]"

EXIT_STATUS_UNKNOWN = -1
EXIT_SPAWN_FAILED = -2

READ_SIZE = 256


@dataclass
class ExecutionResult:
    """Outcome of running one command"""

    exit_code: int
    output: str
    truncated: bool = False

    @property
    def success(self) -> bool:
        return self.exit_code == 0


def _truncate(captured: bytes) -> tuple[str, bool]:
    if len(captured) <= OUTPUT_LIMIT:
        return captured.decode("utf-8", errors="replace"), False
    head = captured[:OUTPUT_LIMIT].decode("utf-8", errors="replace")
    return head + TRUNCATION_MARKER, True


def run_and_capture(command: str, echo: TextIO | None = sys.stdout) -> ExecutionResult:
    """Run ``command`` through the platform shell.

    stderr is merged into stdout. Output is written to ``echo`` as it is
    produced and accumulated for the result. There is no timeout; the call
    blocks until the child exits.

    Args:
        command: The exact command string; shell metacharacters are honored
        echo: Stream for live output, or None to stay silent

    Returns:
        ExecutionResult with the child's exit code (EXIT_STATUS_UNKNOWN if it
        was killed by a signal, EXIT_SPAWN_FAILED if it never started)
    """
    logger.debug(f"Executing: {command}")
    try:
        process = subprocess.Popen(
            command,
            shell=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
        )
    except OSError as e:
        logger.debug(f"Failed to spawn {command!r}: {e}")
        return ExecutionResult(EXIT_SPAWN_FAILED, f"Failed to execute command: {e}")

    captured = bytearray()
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    with process:
        assert process.stdout is not None
        while True:
            data = process.stdout.read1(READ_SIZE)
            if not data:
                break
            captured.extend(data)
            if echo is not None:
                echo.write(decoder.decode(data))
                echo.flush()
        returncode = process.wait()

    exit_code = returncode if returncode >= 0 else EXIT_STATUS_UNKNOWN
    output, truncated = _truncate(bytes(captured))
    return ExecutionResult(exit_code, output, truncated)
