from __future__ import annotations

import signal
from contextlib import contextmanager
from typing import Any, Dict, Iterator

from ..infra.errors import SessionInterrupted


_TERMINATING = tuple(
    sig for sig in (getattr(signal, "SIGTERM", None), getattr(signal, "SIGHUP", None)) if sig is not None
)


def _raise_interrupted(signum: int, frame: Any) -> None:
    raise SessionInterrupted(f"received signal {signal.Signals(signum).name}")


@contextmanager
def interrupt_on_termination() -> Iterator[None]:
    """Turn SIGTERM/SIGHUP into SessionInterrupted so cleanup handlers run.

    SIGINT already surfaces as KeyboardInterrupt.
    """
    previous: Dict[int, Any] = {}
    try:
        for sig in _TERMINATING:
            previous[sig] = signal.signal(sig, _raise_interrupted)
    except ValueError:
        # Not the main thread; leave the default handlers in place.
        pass
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
