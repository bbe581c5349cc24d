import asyncio
import logging
from collections.abc import Sequence

import httpx

import chainsoak.constants as C
from chainsoak.errors import RPCError
from chainsoak.rpc import HealthClient
from chainsoak.utils import sleep_or_stop

log = logging.getLogger("chainsoak.health")


async def await_healthy_node(uri: str, stop: asyncio.Event, *, http: httpx.AsyncClient, interval: float = C.POLL_INTERVAL) -> bool:
    client = HealthClient(uri, http=http)
    log.info("awaiting node health at %s", uri)
    while True:
        try:
            if await client.healthy():
                log.info("node reported healthy at %s", uri)
                return True
            log.info("node reported unhealthy at %s", uri)
        except RPCError as e:
            log.info("node couldn't be reached at %s: %s", uri, e)

        if await sleep_or_stop(stop, interval):
            log.info("node health check cancelled at %s", uri)
            return False


async def await_healthy(
    uris: Sequence[str],
    stop: asyncio.Event,
    *,
    http: httpx.AsyncClient,
    interval: float = C.POLL_INTERVAL,
) -> bool:
    """Block until every node reports healthy. False means ``stop`` fired first.

    No retry limit and no backoff: this is a startup gate.
    """
    for uri in uris:
        if not await await_healthy_node(uri, stop, http=http, interval=interval):
            return False
    log.info("all nodes reported healthy")
    return True
