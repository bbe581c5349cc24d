import logging
import logging.config
import os
import sys

FORMAT = "%(asctime)s %(levelname)-6s %(name)8s:%(lineno)d %(message)s"
DATEFMT = "%Y-%m-%d %H:%M:%S"
DEFAULT_LOG_FILE = "/tmp/chainsoak.log"

# Library loggers held back to these levels
QUIET = {
    "httpx": "WARNING", # One INFO line per request otherwise
    "httpcore": "WARNING",
    "uvicorn.access": "WARNING",
    "uvicorn.error": "INFO",
    "antithesis": "WARNING",
}


def logging_config(level: str = "INFO", log_file: str | None = None) -> dict:
    """dictConfig for the harness. Logs go to stdout, and also to ``log_file`` when set."""
    handlers = {
        "console": {"class": "logging.StreamHandler", "formatter": "plain", "stream": sys.stdout},
    }
    if log_file:
        handlers["file"] = {"class": "logging.FileHandler", "formatter": "plain", "filename": log_file, "mode": "a"}
    names = list(handlers)

    def logger(lvl: str) -> dict:
        return {"level": lvl, "handlers": names, "propagate": False}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"plain": {"format": FORMAT, "datefmt": DATEFMT}},
        "handlers": handlers,
        "loggers": {
            "chainsoak": logger(level.upper()),
            **{name: logger(lvl) for name, lvl in QUIET.items()},
        },
        "root": {"level": "WARNING", "handlers": names},
    }


def setup_logging(level: str | None = None, log_file: str | None = None) -> None:
    """Configure logging once at startup.

    Defaults come from ``LOG_LEVEL`` (INFO) and ``LOG_FILE``; an empty
    ``LOG_FILE`` logs to stdout only.
    """
    level = level or os.getenv("LOG_LEVEL", "INFO")
    if log_file is None:
        log_file = os.getenv("LOG_FILE", DEFAULT_LOG_FILE)
    logging.config.dictConfig(logging_config(level, log_file))
    os.environ.setdefault("PYTHONUNBUFFERED", "1")
