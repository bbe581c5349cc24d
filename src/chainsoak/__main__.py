import asyncio
import logging
import sys

from chainsoak.app import run
from chainsoak.config import load_settings
from chainsoak.errors import FatalError
from chainsoak.logging_config import setup_logging

log = logging.getLogger("chainsoak")


def first_fatal(exc: BaseException) -> FatalError | None:
    """The first FatalError in ``exc``, looking inside (nested) exception groups."""
    if isinstance(exc, FatalError):
        return exc
    if isinstance(exc, BaseExceptionGroup):
        for e in exc.exceptions:
            if (found := first_fatal(e)) is not None:
                return found
    return None


def main():
    setup_logging()
    try:
        settings = load_settings()
        log.info("starting against %s with %d actors", ", ".join(settings.uris), settings.num_actors)
        asyncio.run(run(settings))
    except (FatalError, ExceptionGroup) as e:
        fatal = first_fatal(e)
        if fatal is None:
            raise
        log.critical("fatal: %s", fatal)
        sys.exit(f"fatal: {fatal}")


if __name__ == "__main__":
    main()
