# logs.py

import functools
import logging
import os
import sys
import time

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s :: %(message)s"


def setup_logging(level: str = "warning") -> None:
    """
    Configure the root logger to write to stderr.

    stdout is reserved for query results, so log records never go there.
    TIP_LOG_LEVEL, when set, wins over the level passed in.
    """
    level = os.getenv("TIP_LOG_LEVEL", level)
    lvl = getattr(logging, level.upper(), logging.WARNING)
    logging.basicConfig(level=lvl, format=LOG_FORMAT, stream=sys.stderr)


def timeit(fn):
    @functools.wraps(fn)
    def _wrap(*args, **kwargs):
        t0 = time.perf_counter()
        try:
            return fn(*args, **kwargs)
        finally:
            dt = (time.perf_counter() - t0) * 1000
            logging.getLogger(fn.__module__).debug(
                "duration_ms=%0.2f fn=%s", dt, fn.__name__
            )
    return _wrap
