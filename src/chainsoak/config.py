import argparse
import os
import tomllib
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from pathlib import Path

import chainsoak.constants as C
from chainsoak.errors import FatalError

pkg_root = Path(__file__).parent
config_file = pkg_root / "config.toml"


@dataclass(frozen=True, slots=True)
class Settings:
    uris: tuple[str, ...]
    num_actors: int = C.NUM_ACTORS
    genesis_key: str = C.GENESIS_KEY
    poll_interval: float = C.POLL_INTERVAL
    max_delay: float = C.MAX_FLOW_DELAY
    confirm_timeout: float | None = None
    rpc_timeout: float = C.RPC_TIMEOUT
    funding_amount: int = C.FUNDING_AMOUNT
    transfer_amount: int = C.TRANSFER_AMOUNT
    cross_chain_amount: int = C.CROSS_CHAIN_AMOUNT
    api_enabled: bool = True
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    def validate(self) -> "Settings":
        if not self.uris:
            raise FatalError("invalid config: at least one node URI is required")
        if self.num_actors < 1:
            raise FatalError(f"invalid config: num_actors must be positive, got {self.num_actors}")
        if self.poll_interval <= 0:
            raise FatalError(f"invalid config: poll_interval must be positive, got {self.poll_interval}")
        if self.max_delay < 0:
            raise FatalError(f"invalid config: max_delay must not be negative, got {self.max_delay}")
        if self.confirm_timeout is not None and self.confirm_timeout <= 0:
            raise FatalError(f"invalid config: confirm_timeout must be positive, got {self.confirm_timeout}")
        return self


def _optional_float(v) -> float | None:
    return None if v is None else float(v)


def _split_uris(raw: str) -> tuple[str, ...]:
    return tuple(u.strip().rstrip("/") for u in raw.split(",") if u.strip())


def from_toml(cfg: Mapping) -> Settings:
    """Build settings from a parsed config.toml document."""
    net = cfg.get("network", {})
    actors = cfg.get("actors", {})
    timing = cfg.get("timing", {})
    amounts = cfg.get("amounts", {})
    api = cfg.get("api", {})
    return Settings(
        uris=tuple(u.rstrip("/") for u in net.get("uris", [])),
        num_actors=int(actors.get("count", C.NUM_ACTORS)),
        genesis_key=actors.get("genesis_key") or C.GENESIS_KEY,
        poll_interval=float(timing.get("poll_interval", C.POLL_INTERVAL)),
        max_delay=float(timing.get("max_delay", C.MAX_FLOW_DELAY)),
        confirm_timeout=_optional_float(timing.get("confirm_timeout")),
        rpc_timeout=float(timing.get("rpc_timeout", C.RPC_TIMEOUT)),
        funding_amount=int(amounts.get("funding", C.FUNDING_AMOUNT)),
        transfer_amount=int(amounts.get("transfer", C.TRANSFER_AMOUNT)),
        cross_chain_amount=int(amounts.get("cross_chain", C.CROSS_CHAIN_AMOUNT)),
        api_enabled=bool(api.get("enabled", True)),
        api_host=api.get("host", "0.0.0.0"),
        api_port=int(api.get("port", 8000)),
    )


def apply_env(s: Settings, env: Mapping[str, str]) -> Settings:
    overrides: dict = {}
    if uris := env.get("SOAK_URIS"):
        overrides["uris"] = _split_uris(uris)
    if n := env.get("SOAK_NUM_ACTORS"):
        overrides["num_actors"] = int(n)
    if key := env.get("SOAK_GENESIS_KEY"):
        overrides["genesis_key"] = key
    if port := env.get("SOAK_API_PORT"):
        overrides["api_port"] = int(port)
    return replace(s, **overrides) if overrides else s


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="chainsoak", description="Randomized soak workload for a multi-chain ledger cluster.")
    parser.add_argument("-u", "--uris",
                        type=_split_uris,
                        help="Comma separated node URIs, e.g. http://node1:9650,http://node2:9650",
                        )
    parser.add_argument("-n", "--num-actors",
                        type=int,
                        help="Number of actors, genesis included.",
                        )
    parser.add_argument("-c", "--config",
                        type=Path,
                        help="Alternative config.toml.",
                        )
    parser.add_argument("--api-port",
                        type=int,
                        help="Port of the status API.",
                        )
    parser.add_argument("--no-api",
                        action="store_true",
                        help="Don't serve the status API.",
                        )
    return parser.parse_args(argv)


def overrides(a: argparse.Namespace) -> dict:
    o: dict = {}
    if a.uris is not None:
        o["uris"] = a.uris
    if a.num_actors is not None:
        o["num_actors"] = a.num_actors
    if a.api_port is not None:
        o["api_port"] = a.api_port
    if a.no_api:
        o["api_enabled"] = False
    return o


def load_settings(argv: Sequence[str] | None = None, env: Mapping[str, str] | None = None) -> Settings:
    """config.toml, then environment, then CLI flags. Raises FatalError on anything unusable."""
    args = parse_args(argv)
    path = args.config or config_file
    try:
        cfg = tomllib.loads(Path(path).read_text())
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise FatalError(f"invalid config: failed to read {path}: {e}") from e
    try:
        s = apply_env(from_toml(cfg), os.environ if env is None else env)
    except (TypeError, ValueError) as e:
        raise FatalError(f"invalid config: {e}") from e
    o = overrides(args)
    return (replace(s, **o) if o else s).validate()
