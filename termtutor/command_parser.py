"""Light parsing of user input: question detection and command tokenizing."""

import shlex
from dataclasses import dataclass, field

# Keywords that mark a question when they start the input or follow a space
QUESTION_PATTERNS: tuple[str, ...] = (
    "como", "what", "how", "why", "quando", "where", "qual", "quais",
    "o que", "por que", "porque", "explain", "explique",
)

# Prefixes stripped when reducing a question to its intent
INTENT_PREFIXES: tuple[str, ...] = (
    "como eu ", "como posso ", "how do i ", "how can i ",
    "o que faz ", "what does ", "me explica ", "explain ",
)


@dataclass
class ParsedCommand:
    raw_input: str
    executable: str = ""
    flags: list[str] = field(default_factory=list)
    args: list[str] = field(default_factory=list)
    is_question: bool = False


def tokenize(text: str) -> list[str]:
    try:
        return shlex.split(text)
    except ValueError:
        # Unbalanced quotes
        return text.split()


class CommandParser:
    def parse(self, text: str) -> ParsedCommand:
        result = ParsedCommand(raw_input=text, is_question=self.is_question(text))
        if result.is_question:
            return result

        tokens = tokenize(text)
        if not tokens:
            return result

        result.executable = tokens[0]
        for token in tokens[1:]:
            if token.startswith("-"):
                result.flags.append(token)
            else:
                result.args.append(token)
        return result

    @staticmethod
    def is_question(text: str) -> bool:
        lower = text.lower()
        if "?" in lower:
            return True
        return any(lower.startswith(p) or f" {p}" in lower for p in QUESTION_PATTERNS)

    @staticmethod
    def extract_intent(question: str) -> str:
        intent = question.rstrip("?.")
        lower = intent.lower()
        for prefix in INTENT_PREFIXES:
            if lower.startswith(prefix):
                return intent[len(prefix) :]
        return intent
