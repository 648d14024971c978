from typing import Optional

import os
import logging
import sys
import time
import json

LOG_FORMAT = "[%(funcName)s:%(lineno)d] %(message)s"

logger = logging.getLogger("general")
feedlogger = logging.getLogger("feed")
slippagelogger = logging.getLogger("slippage")


def attach_file_handler(logger: logging.Logger, filename: str, fmt: Optional[str] = None, directory="logs"):
    if not fmt:
        fmt = LOG_FORMAT
    os.makedirs(directory, exist_ok=True)
    handler = logging.FileHandler(filename=os.path.join(directory, filename))
    handler.setFormatter(logging.Formatter(fmt=fmt))

    logger.propagate = False
    logger.addHandler(handler)


def configure_logging(directory="logs", verbose=False, console=True):
    os.makedirs(directory, exist_ok=True)
    logging.basicConfig(filename=os.path.join(directory, "log"), format=LOG_FORMAT)

    attach_file_handler(logger, "log_general", directory=directory)
    attach_file_handler(feedlogger, "log_feed", directory=directory)
    attach_file_handler(slippagelogger, "log_slippage", fmt="%(asctime)s %(message)s", directory=directory)

    if console:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(fmt="%(message)s"))
        slippagelogger.addHandler(handler)

    level = logging.DEBUG if verbose else logging.INFO
    logger.setLevel(level)
    feedlogger.setLevel(level)
    slippagelogger.setLevel(logging.INFO)


def record_timing(name):
    def decorator(func):
        prev = 0

        def inner(*args, **kwargs):
            nonlocal prev
            start = time.time()
            ret = func(*args, **kwargs)
            end = time.time()

            delta = end - start
            if prev != 0:
                latency = start - prev
                logger.debug(f"<{name}> execution time: {delta * 1000:,.6f} ms, latency: {latency * 1000:,.6f}ms")
            else:
                logger.debug(f"<{name}> execution time: {delta * 1000:,.6f} ms")

            prev = time.time()
            return ret

        return inner

    return decorator


def tojson(message):
    return json.dumps(message, separators=(",", ":"))


def fromjson(message):
    return json.loads(message)
