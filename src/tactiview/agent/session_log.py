"""Per-session logging with an explicit open/close lifecycle."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

_SESSION_FORMAT = "%(asctime)s %(levelname)-5s [%(name)s] %(message)s"


class SessionLogAdapter(logging.LoggerAdapter):
    """Prefixes every record with the session id."""

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return f"[{self.extra['session_id']}] {msg}", kwargs


@contextmanager
def open_session_log(
    session_id: str,
    log_dir: Path | None = None,
    logger: logging.Logger | None = None,
) -> Iterator[SessionLogAdapter]:
    """Yield a session-scoped logger.

    With ``log_dir`` set, records for this session are also written to
    ``<log_dir>/session-<id>.log``. The file handler is flushed, closed and
    detached on exit, including when the session raises.
    """
    logger = logger or logging.getLogger("tactiview.session")
    handler: logging.FileHandler | None = None
    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_dir / f"session-{session_id}.log", encoding="utf-8")
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(_SESSION_FORMAT))
        handler.addFilter(lambda record: getattr(record, "session_id", None) == session_id)
        logger.addHandler(handler)

    adapter = SessionLogAdapter(logger, {"session_id": session_id})
    try:
        yield adapter
    finally:
        if handler is not None:
            handler.flush()
            logger.removeHandler(handler)
            handler.close()
