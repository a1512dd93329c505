"""
"What if" simulation.

Predicts the effect of a command without running it: local heuristics give
immediate warnings, then the model is asked for a structured prediction.
A HIGH destructiveness rating in the reply upgrades the verdict; nothing
downgrades it.
"""

import logging
from dataclasses import dataclass, field

from termtutor.danger import classify_command
from termtutor.gemini_client import GeminiClient
from termtutor.responses import Error, Reply

logger = logging.getLogger(__name__)

FILES_AFFECTED_KEY = "FILES_AFFECTED:"
HIGH_DESTRUCTIVENESS = "DESTRUCTIVENESS: HIGH"

DESTRUCTIVE_WARNING = "This command is potentially destructive!"
RECURSIVE_RM_WARNING = "This command removes files/directories recursively."
WILDCARD_WARNING = "The wildcard (*) may affect more files than expected."
CHMOD_777_WARNING = "chmod 777 removes every permission restriction on the file."


@dataclass
class SimulationResult:
    predicted_text: str = ""
    files_affected: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    is_destructive: bool = False


def heuristic_warnings(command: str) -> list[str]:
    warnings = []
    if "rm" in command:
        if "-r" in command:
            warnings.append(RECURSIVE_RM_WARNING)
        if "*" in command:
            warnings.append(WILDCARD_WARNING)
    if "chmod" in command and "777" in command:
        warnings.append(CHMOD_777_WARNING)
    return warnings


def build_simulation_prompt(command: str, language_instruction: str) -> str:
    return (
        "You are a Linux command simulator. Predict what would happen if the "
        "following command were executed.\n\n"
        f"Command: {command}\n\n"
        "Answer in this structured format:\n"
        f"{FILES_AFFECTED_KEY} (comma-separated files/directories that would be "
        "modified, created or deleted)\n"
        "EXPECTED_OUTPUT: (what would appear in the terminal)\n"
        "RISKS: (possible problems or side effects)\n"
        "DESTRUCTIVENESS: (LOW, MEDIUM, HIGH)\n\n"
        "Keep the field names in English. Be precise and technical. "
        f"{language_instruction}"
    )


def parse_prediction(text: str, result: SimulationResult) -> None:
    """Fill ``files_affected`` and upgrade ``is_destructive`` from a reply."""
    for line in text.splitlines():
        if FILES_AFFECTED_KEY in line:
            files = line.split(":", 1)[1]
            result.files_affected.extend(f.strip() for f in files.split(",") if f.strip())
        if HIGH_DESTRUCTIVENESS in line.upper():
            result.is_destructive = True


class Simulator:
    """Predicts the effect of a command without executing it."""

    def __init__(self, client: GeminiClient):
        self.client = client

    def simulate(self, command: str) -> SimulationResult:
        verdict = classify_command(command)
        result = SimulationResult(is_destructive=verdict.is_dangerous)
        if verdict.is_dangerous:
            logger.debug(f"Heuristic rules matched: {', '.join(verdict.matched_rules)}")
            result.warnings.append(DESTRUCTIVE_WARNING)
        result.warnings.extend(heuristic_warnings(command))

        prompt = build_simulation_prompt(command, self.client.config.language_instruction)
        match self.client.generate(prompt, use_history=False):
            case Reply(text=text):
                result.predicted_text = text
                parse_prediction(text, result)
            case Error(message=message):
                result.predicted_text = f"Error simulating command: {message}"
        return result
