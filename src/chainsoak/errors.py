"""Exceptions raised by the soak harness.

Two tiers: ``FatalError`` stops the whole process, everything else aborts
only the current flow or the current per-endpoint check.
"""


class SoakError(Exception):
    """Base class for harness errors."""


class FatalError(SoakError):
    """The harness itself cannot keep running (config, keys, wallets, entropy)."""


class RPCError(SoakError):
    """A node answered with an error, a bad status, or could not be reached."""

    def __init__(self, message: str, *, uri: str | None = None, method: str | None = None, code: int | None = None):
        super().__init__(message)
        self.uri = uri
        self.method = method
        self.code = code

    def __str__(self) -> str:
        where = f"{self.method} @ {self.uri}" if self.method else self.uri
        base = super().__str__()
        return f"{base} ({where})" if where else base


class IssuanceError(RPCError):
    """The wallet could not issue a transaction."""
