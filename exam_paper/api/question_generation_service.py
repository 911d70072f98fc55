from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar

from .question_errors import GenerationFailedError, MissingCredentialError

_log = logging.getLogger(__name__)

T = TypeVar("T")

RETRY_BACKOFF_STEP_SEC = 2.0


@dataclass(frozen=True)
class QuestionGenerationDeps:
    generate_text: Callable[[str], str]
    sleep: Callable[[float], None] = time.sleep


def backoff_delay(retry_index: int, step_sec: float = RETRY_BACKOFF_STEP_SEC) -> float:
    """Linear backoff: retry 1 waits one step, retry 2 waits two."""
    return max(0, int(retry_index)) * float(step_sec)


def generate_with_retry(
    prompt: str,
    *,
    deps: QuestionGenerationDeps,
    max_attempts: int = 3,
    parse: Optional[Callable[[str], T]] = None,
) -> Any:
    attempts = max(1, int(max_attempts))
    last_error: Optional[Exception] = None
    for attempt in range(attempts):
        if attempt > 0:
            delay = backoff_delay(attempt)
            _log.info("question generation retry %d/%d in %.1fs", attempt, attempts - 1, delay)
            deps.sleep(delay)
        try:
            raw_text = deps.generate_text(prompt)
            _log.info("question generation response received chars=%d", len(raw_text or ""))
            if parse is None:
                return raw_text
            return parse(raw_text)
        except MissingCredentialError:
            raise
        except Exception as exc:
            last_error = exc
            _log.warning("question generation attempt %d failed: %s", attempt + 1, str(exc)[:200])
    message = str(last_error) if last_error is not None else "no attempts made"
    raise GenerationFailedError(f"AI Generation Failed: {message}")


def generate_once(prompt: str, *, deps: QuestionGenerationDeps) -> str:
    return deps.generate_text(prompt)
