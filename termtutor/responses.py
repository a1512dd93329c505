"""Result types shared by the client, the intent classifier and the pipeline.

Every result is one case of a small tagged union. Consumers ``match`` on the
case classes instead of checking nullable fields.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class Reply:
    """Raw text returned by a successful remote call."""

    text: str

    @property
    def success(self) -> bool:
        return True


@dataclass(frozen=True)
class Execute:
    """The model wants to run ``command``."""

    command: str
    explanation: str = ""

    @property
    def success(self) -> bool:
        return True


@dataclass(frozen=True)
class Explain:
    """The model answered with plain text."""

    text: str

    @property
    def success(self) -> bool:
        return True


@dataclass(frozen=True)
class Error:
    """A transport or decode failure, with a human-readable message."""

    message: str

    @property
    def success(self) -> bool:
        return False


ClassifiedResponse = Execute | Explain | Error
RemoteResult = Reply | Error
