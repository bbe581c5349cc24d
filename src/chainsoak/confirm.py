import logging
from collections.abc import Sequence

import chainsoak.constants as C
from chainsoak.errors import RPCError
from chainsoak.models import ConfirmationResult, EndpointResult, TxRecord
from chainsoak.rpc import ClientFactory
from chainsoak.utils import with_timeout

log = logging.getLogger("chainsoak.confirm")


async def confirm(
    record: TxRecord,
    uris: Sequence[str],
    clients: ClientFactory,
    *,
    interval: float = C.POLL_INTERVAL,
    timeout: float | None = None,
) -> ConfirmationResult:
    """Wait for ``record`` to be decided on every node, one node at a time.

    The first node that errors or decides anything but acceptance ends the
    probe; later nodes are not asked. ``timeout`` bounds the wait per node
    and is unbounded by default.
    """
    result = ConfirmationResult(record=record, expected=len(uris))
    accepted = C.ACCEPTED_STATUS[record.chain]
    for uri in uris:
        client = clients(uri, record.chain)
        try:
            status = await with_timeout(client.await_tx_decided(record.tx_id, interval), timeout)
        except (RPCError, TimeoutError) as e:
            detail = str(e) or f"no decision within {timeout}s"
            log.warning("failed to confirm %s on %s: %s", record, uri, detail)
            result.endpoints.append(EndpointResult(uri, C.Outcome.NODE_ERROR, detail))
            return result
        if status != accepted:
            log.warning("failed to confirm %s on %s: status == %s", record, uri, status)
            result.endpoints.append(EndpointResult(uri, C.Outcome.REJECTED, f"status == {status}"))
            return result
        log.info("confirmed %s on %s", record, uri)
        result.endpoints.append(EndpointResult(uri, C.Outcome.CONFIRMED, str(status)))

    log.info("confirmed %s on all nodes", record)
    return result
