"""Advisory tracking of how much of the model's context a session uses."""

import logging
from dataclasses import dataclass
from enum import Enum

from termtutor.gemini_client import GeminiClient

logger = logging.getLogger(__name__)

TOKEN_LIMIT = 1_000_000
ATTENTION_PERCENT = 50.0
WARNING_PERCENT = 80.0


class UsageLevel(str, Enum):
    OK = "ok"
    ATTENTION = "attention"
    WARNING = "warning"


@dataclass(frozen=True)
class TokenUsage:
    tokens: int
    limit: int
    percent: float
    level: UsageLevel


def usage_for(tokens: int, limit: int = TOKEN_LIMIT) -> TokenUsage:
    """Compute the percentage and tier for a token count."""
    percent = tokens / limit * 100.0
    if percent >= WARNING_PERCENT:
        level = UsageLevel.WARNING
    elif percent >= ATTENTION_PERCENT:
        level = UsageLevel.ATTENTION
    else:
        level = UsageLevel.OK
    return TokenUsage(tokens=tokens, limit=limit, percent=percent, level=level)


class TokenBudgetMonitor:
    """Queries the session's token count; never blocks a request."""

    def __init__(self, client: GeminiClient, limit: int = TOKEN_LIMIT):
        self.client = client
        self.limit = limit

    def count(self) -> int:
        """Token count, 0 for an ephemeral or empty session, -1 on failure."""
        return self.client.count_tokens()

    def check(self) -> TokenUsage | None:
        tokens = self.count()
        if tokens < 0:
            logger.debug("Token count unavailable")
            return None
        return usage_for(tokens, self.limit)
