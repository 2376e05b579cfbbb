"""Base reviewer implementing the Template Method pattern.

All providers share the same call algorithm:
    generate() → _call_with_retry() → _call_api()   ← only this differs per provider
    check()    → _list_models()                     ← and this

Subclasses implement two things only:
  - _call_api: make one raw generation call and return a GenerateResult
  - _list_models: return the model names the server can serve

Retry with backoff and the reachability verdict live here so every
provider behaves the same way when the local server is down or busy.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from stet_core.errors import ReviewerError, ReviewerUnreachableError

logger = logging.getLogger(__name__)

_MAX_RETRIES = 3


@dataclass
class Usage:
    """Token and timing counters reported by the model server."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    eval_duration_ns: int = 0

    def add(self, other: Usage) -> None:
        self.prompt_tokens += other.prompt_tokens
        self.completion_tokens += other.completion_tokens
        self.eval_duration_ns += other.eval_duration_ns


@dataclass
class GenerateResult:
    text: str
    model: str = ""
    usage: Usage = field(default_factory=Usage)


class TransientError(Exception):
    """Raised by _call_api for failures worth retrying (connection, timeout, 5xx)."""


class BaseReviewer(ABC):
    MAX_RETRIES: int = _MAX_RETRIES
    TEMPERATURE: float = 0.2

    def __init__(self, model: str, timeout: float = 300):
        self.model = model
        self.timeout = timeout

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def check(self) -> None:
        """Pre-flight: raise ReviewerUnreachableError unless the server serves ``self.model``."""
        try:
            names = self._list_models()
        except Exception as e:
            raise ReviewerUnreachableError(
                f"Could not reach the model server for {self.__class__.__name__}. Is it running?"
            ) from e
        if self.model not in names:
            raise ReviewerUnreachableError(
                f"Model {self.model!r} is not available on the server. Pull it first or pick another model."
            )

    def generate(self, system_prompt: str, user_prompt: str) -> GenerateResult:
        """Run one generation, retrying transient failures."""
        return self._call_with_retry(system_prompt, user_prompt)

    # ------------------------------------------------------------------ #
    # Abstract: implement in each provider                                #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _call_api(self, system_prompt: str, user_prompt: str) -> GenerateResult:
        """Make a single API call.

        Raise TransientError for failures worth retrying; any other exception
        fails the call immediately.
        """

    @abstractmethod
    def _list_models(self) -> list[str]:
        """Return the names of the models the server can serve."""

    # ------------------------------------------------------------------ #
    # Shared implementations                                               #
    # ------------------------------------------------------------------ #

    def _call_with_retry(self, system_prompt: str, user_prompt: str) -> GenerateResult:
        """Retry _call_api up to MAX_RETRIES times with exponential backoff."""
        for attempt in range(self.MAX_RETRIES):
            try:
                return self._call_api(system_prompt, user_prompt)
            except TransientError as e:
                if attempt == self.MAX_RETRIES - 1:
                    logger.error(
                        "%s call failed after %d attempts: %s",
                        self.__class__.__name__,
                        self.MAX_RETRIES,
                        e,
                    )
                    raise ReviewerError(
                        f"The model server did not respond after {self.MAX_RETRIES} attempts."
                    ) from e
                delay = 2**attempt
                logger.warning(
                    "%s call error (attempt %d/%d): %s. Retrying in %ds...",
                    self.__class__.__name__,
                    attempt + 1,
                    self.MAX_RETRIES,
                    e,
                    delay,
                )
                time.sleep(delay)
            except ReviewerError:
                raise
            except Exception as e:
                raise ReviewerError(f"The model server rejected the request: {e}") from e
        raise ReviewerError()
