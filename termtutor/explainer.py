"""Command explanation modes: brief, normal, ELI5 and detailed."""

from enum import Enum

from termtutor.gemini_client import GeminiClient
from termtutor.responses import RemoteResult


class ExplainMode(str, Enum):
    BRIEF = "brief"
    NORMAL = "normal"
    ELI5 = "eli5"
    DETAILED = "detailed"


EXPLAIN_TEMPLATES: dict[ExplainMode, str] = {
    ExplainMode.BRIEF: (
        "Explain this command briefly and directly: {command}\n\n"
        "Format: One short paragraph with what it does, then each flag explained in one line. "
        "No emojis, no bullet points, no headers. Keep it under 100 words."
    ),
    ExplainMode.NORMAL: (
        "You are a CLI teaching assistant. Explain the following command clearly "
        "and educationally.\n\n"
        "Command: {command}\n\n"
        "Provide:\n"
        "1. A short summary of what it does\n"
        "2. An explanation of each flag/option used\n"
        "3. A practical example of when to use it\n\n"
        "Keep the explanation concise but informative."
    ),
    ExplainMode.ELI5: (
        "Explain this command to a 5-year-old in 2-3 simple sentences using a "
        "real-world analogy: {command}\n\n"
        "No emojis, no bullet points. Very short and simple."
    ),
    ExplainMode.DETAILED: (
        "You are an advanced Linux instructor. Give a detailed technical explanation.\n\n"
        "Command: {command}\n\n"
        "Include:\n"
        "1. Full syntax and all available options\n"
        "2. Practical usage examples\n"
        "3. Related commands\n"
        "4. Common pitfalls and best practices\n"
        "5. How to combine it with other commands (pipes, redirection)"
    ),
}

FIX_TEMPLATE = (
    "You are a CLI assistant helping fix a command that failed.\n\n"
    "Failed command: {command}\n"
    "Error message: {error}\n\n"
    "Provide:\n"
    "1. What caused the error\n"
    "2. The corrected command\n"
    "3. A short explanation of the fix\n\n"
    "Be direct and practical."
)

SUGGEST_TEMPLATE = (
    "User wants to: {task}\n\n"
    "Give the exact command, then one sentence explaining it. "
    "No emojis, no bullet points. Keep it very short."
)


class ExplainerEngine:
    """Builds explanation prompts and sends them through the client."""

    def __init__(self, client: GeminiClient):
        self.client = client

    def _with_language(self, prompt: str) -> str:
        return f"{prompt} {self.client.config.language_instruction}"

    def build_explain_prompt(self, command: str, mode: ExplainMode = ExplainMode.NORMAL) -> str:
        return self._with_language(EXPLAIN_TEMPLATES[mode].format(command=command))

    def explain(self, command: str, mode: ExplainMode = ExplainMode.NORMAL) -> RemoteResult:
        return self.client.generate(self.build_explain_prompt(command, mode))

    def suggest_fix(self, failed_command: str, error_message: str) -> RemoteResult:
        prompt = FIX_TEMPLATE.format(command=failed_command, error=error_message)
        return self.client.generate(self._with_language(prompt))

    def translate_question(self, question: str) -> RemoteResult:
        """Turn a how-do-I question into a suggested command."""
        return self.client.generate(self._with_language(SUGGEST_TEMPLATE.format(task=question)))
