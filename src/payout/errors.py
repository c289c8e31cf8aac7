"""Exception hierarchy for the distribution engine.

Everything raised here is fatal to a run except a `TransportError` coming out
of a single transaction send, which the submitter logs and moves past.
"""


class PayoutError(Exception):
    """Base class for errors that abort a run."""


class InputError(PayoutError):
    """Malformed allocation source, address, hash or keypair file."""


class LedgerError(PayoutError):
    """The persisted transaction ledger could not be read or written."""


class TransportError(PayoutError):
    """A ledger client request failed."""


class PreconditionError(PayoutError):
    """A pre-flight check refused to start the distribution."""
