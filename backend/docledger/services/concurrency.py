# Overview: Optimistic-concurrency retry helper for single-document read-modify-write.

from __future__ import annotations

import logging
import time

from .document_store import DocumentConflictError

logger = logging.getLogger(__name__)


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.05):
    """
    Execute a read-modify-write with retry on revision conflicts.

    `func` must re-read the document it writes on every call; retrying with a
    stale copy would conflict forever. Never wrap a saga in this: a saga that
    failed has already compensated and must surface its error.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except DocumentConflictError as exc:
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            logger.debug("revision conflict on attempt %d, retrying: %s", attempt + 1, exc)
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
