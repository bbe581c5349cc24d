"""Harness entry: readiness gate, bootstrap, then every actor plus a status API.

Actors and the API server live in one TaskGroup. SIGINT/SIGTERM set the
shared stop event; actors finish their current flow and return, the server
is told to exit, and the group joins them all. A FatalError from any actor
cancels the rest and propagates out of ``run``.
"""
import asyncio
import contextlib
import logging
import signal

import httpx
import uvicorn
from antithesis.lifecycle import setup_complete
from fastapi import APIRouter, FastAPI, Request

from chainsoak.actor import Actor
from chainsoak.bootstrap import bootstrap
from chainsoak.config import Settings
from chainsoak.flows import FlowContext
from chainsoak.health import await_healthy
from chainsoak.outcomes import OutcomeRecorder
from chainsoak.rpc import client_factory
from chainsoak.wallet import KeystoreWallet

log = logging.getLogger("chainsoak.app")

r_state = APIRouter(prefix="/state", tags=["State"])


@r_state.get("/outcomes")
def state_outcomes(request: Request):
    """Confirmation and consistency tallies. ``inconsistencies`` > 0 is a bug in the system under test."""
    return request.app.state.recorder.snapshot()


@r_state.get("/failures")
def state_failures(request: Request, limit: int = 100):
    failures = list(request.app.state.recorder.failures)
    return failures[-limit:] if limit > 0 else []


@r_state.get("/actors")
def state_actors(request: Request):
    return [
        {"id": a.id, "addresses": sorted(a.addresses), "endpoints": list(a.endpoints)}
        for a in request.app.state.actors
    ]


def create_app(recorder: OutcomeRecorder, actors: list[Actor] | None = None) -> FastAPI:
    app = FastAPI(
        title="chainsoak",
        openapi_tags=[
            {"name": "State", "description": "What the actors have observed so far"},
        ],
    )
    app.state.recorder = recorder
    app.state.actors = actors if actors is not None else []

    @app.get("/health")
    def health():
        return {"status": "ok"} # The harness is up, says nothing about the nodes

    app.include_router(r_state)
    return app


async def serve_api(app: FastAPI, host: str, port: int, stop: asyncio.Event) -> None:
    server = uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_config=None))

    async def _exit_on_stop():
        await stop.wait()
        server.should_exit = True

    watcher = asyncio.create_task(_exit_on_stop(), name="status_api_stop")
    try:
        await server.serve()
    finally:
        watcher.cancel()
    # uvicorn swallows the signal it stopped on; make sure the actors see it too
    stop.set()


async def run(settings: Settings, stop: asyncio.Event | None = None) -> OutcomeRecorder:
    stop = stop or asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)

    recorder = OutcomeRecorder()
    async with httpx.AsyncClient(timeout=settings.rpc_timeout) as http:
        if not await await_healthy(settings.uris, stop, http=http, interval=settings.poll_interval):
            log.info("stopped before all nodes were healthy")
            return recorder

        clients = client_factory(http)

        async def open_wallet(uri: str, private_key: str) -> KeystoreWallet:
            return await KeystoreWallet.create(
                uri, private_key, http=http, poll_interval=settings.poll_interval, read_timeout=settings.confirm_timeout
            )

        actors = await bootstrap(settings, open_wallet, clients)
        setup_complete({"actors": len(actors), "nodes": len(settings.uris)})
        log.info("bootstrapped %d actors against %d nodes", len(actors), len(settings.uris))

        ctx = FlowContext(
            clients=clients,
            recorder=recorder,
            poll_interval=settings.poll_interval,
            confirm_timeout=settings.confirm_timeout,
            transfer_amount=settings.transfer_amount,
            cross_chain_amount=settings.cross_chain_amount,
        )
        async with asyncio.TaskGroup() as tg:
            if settings.api_enabled:
                app = create_app(recorder, actors)
                tg.create_task(serve_api(app, settings.api_host, settings.api_port, stop), name="status_api")
            for actor in actors:
                tg.create_task(actor.run(ctx, stop, max_delay=settings.max_delay), name=f"actor-{actor.id}")

    log.info("shutdown complete: %s", recorder.snapshot()["by_outcome"])
    return recorder
