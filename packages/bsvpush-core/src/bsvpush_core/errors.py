"""Error taxonomy shared by the push and clone pipelines."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path


class BsvPushError(Exception):
    """Base class for every error raised by bsvpush."""


class ConfigurationMissing(BsvPushError):
    """One or more required local files are absent."""

    def __init__(self, paths: Iterable[str | Path], hint: str = "Run: bsvpush init") -> None:
        self.paths = [Path(p) for p in paths]
        self.hint = hint
        s = "s" if len(self.paths) > 1 else ""
        listing = ", ".join(str(p) for p in self.paths)
        super().__init__(f"Cannot find the following file{s}: {listing}. {hint}")


class FormatError(BsvPushError):
    """A payload on the ledger does not follow the expected field layout."""


class InsufficientFunds(BsvPushError):
    """The funding key cannot cover the outputs and fee of the funding transaction."""

    def __init__(self, address: str, needed: int | None = None, available: int = 0) -> None:
        self.address = address
        self.needed = needed
        self.available = available
        if needed is None:
            msg = f"No UTXOs available from funding key. Add new funds to: {address}"
        else:
            msg = (
                f"Funding key {address} holds {available} satoshis, "
                f"{needed} are required"
            )
        super().__init__(msg)


class PayloadTooLarge(BsvPushError):
    """An encoded data script exceeds the maximum script size."""

    def __init__(self, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        super().__init__(
            f"Maximum OP_RETURN size is {limit} bytes. Script is {size} bytes."
        )


class BroadcastRejected(BsvPushError):
    """The chain client refused a transaction."""

    def __init__(self, tx_id: str, reason: str) -> None:
        self.tx_id = tx_id
        self.reason = reason
        super().__init__(f"Transaction {tx_id} rejected: {reason}")


class NetworkError(BsvPushError):
    """Wraps transport failures from the chain and index clients."""

    def __init__(self, operation: str, cause: Exception | str) -> None:
        self.operation = operation
        super().__init__(f"{operation} failed: {cause}")
        if isinstance(cause, Exception):
            self.__cause__ = cause


class TransactionNotFound(BsvPushError):
    """The requested transaction is unknown to the chain or index."""

    def __init__(self, tx_id: str) -> None:
        self.tx_id = tx_id
        super().__init__(f"Transaction not found: {tx_id}")


class UnencodableName(BsvPushError):
    """A local file or directory name cannot be written as UTF-8."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        super().__init__(f"Cannot push {str(self.path)!r}: its name is not valid UTF-8")


class UnresolvedReference(BsvPushError):
    """A payload still carries a placeholder id and cannot be signed."""


class PollCancelled(BsvPushError):
    """A polling wait was cancelled through its cancellation token."""

    def __init__(self, description: str) -> None:
        self.description = description
        super().__init__(f"Cancelled while waiting for {description}")


class PollTimeout(BsvPushError):
    """A bounded polling wait ran out of attempts."""

    def __init__(self, description: str, attempts: int) -> None:
        self.description = description
        self.attempts = attempts
        super().__init__(f"Gave up waiting for {description} after {attempts} attempts")
