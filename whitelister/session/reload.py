from __future__ import annotations

import subprocess
from typing import Callable, Sequence

from loguru import logger


ReloadFn = Callable[[], int]

# Exit status reported when the command cannot be started at all.
COMMAND_NOT_RUNNABLE = 127


def command_reload(command: Sequence[str]) -> ReloadFn:
    """Build a reload capability that runs ``command`` and reports its exit status."""
    argv = [str(a) for a in command]

    def _reload() -> int:
        logger.info("running reload command: {}", " ".join(argv))
        try:
            p = subprocess.run(argv)
        except OSError as e:
            logger.error("reload command could not be started: {}", e)
            return COMMAND_NOT_RUNNABLE
        return p.returncode

    return _reload
