import logging
from collections.abc import Iterable, Sequence

import chainsoak.constants as C
from chainsoak.errors import RPCError
from chainsoak.models import EndpointResult, TxRecord, VerificationResult
from chainsoak.rpc import ClientFactory

log = logging.getLogger("chainsoak.verify")


async def verify_consumed(
    record: TxRecord,
    uris: Sequence[str],
    addresses: Iterable[str],
    clients: ClientFactory,
) -> VerificationResult:
    """Check that no node still holds a UTXO that ``record`` consumed.

    Each node's UTXO set for ``addresses`` is fetched in full. A consumed
    UTXO still present is an inconsistency; a failed fetch is a node error.
    Either ends the check.
    """
    addresses = sorted(addresses)
    result = VerificationResult(record=record, expected=len(uris))
    for uri in uris:
        client = clients(uri, record.chain)
        try:
            utxos = await client.get_utxos(addresses)
        except RPCError as e:
            log.warning("failed to fetch %s-chain UTXOs on %s: %s", record.chain, uri, e)
            result.endpoints.append(EndpointResult(uri, C.Outcome.NODE_ERROR, str(e)))
            return result

        for ref in sorted(record.consumed):
            if ref in utxos:
                log.error("%s-chain UTXO %s still present on %s after %s was accepted", record.chain, ref, uri, record.tx_id)
                result.lingering.append(ref)
                result.endpoints.append(EndpointResult(uri, C.Outcome.INCONSISTENT, f"{ref} still present"))
                return result
        log.info("confirmed all %s-chain UTXOs consumed by %s are not present on %s", record.chain, record.tx_id, uri)
        result.endpoints.append(EndpointResult(uri, C.Outcome.CONSISTENT))

    log.info("confirmed all %s-chain UTXOs consumed by %s are not present on all nodes", record.chain, record.tx_id)
    return result
