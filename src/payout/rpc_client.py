"""JSON-RPC ledger client over httpx."""

import itertools
import logging
from collections.abc import Sequence

import httpx

from payout.client import FeeCalculator, TransactionStatus
from payout.constants import RPC_TIMEOUT
from payout.errors import TransportError
from payout.transaction import Transaction

log = logging.getLogger("payout.rpc")


class RpcClient:
    """Talks JSON-RPC 2.0 to a node.

    Parameters
    ----------
    url:
        Node endpoint, e.g. ``http://127.0.0.1:8899``.
    timeout:
        Per-request timeout in seconds.
    http:
        Optional pre-built ``httpx.AsyncClient`` (tests pass one with a mock
        transport). When given, the caller owns its lifetime.
    """

    def __init__(self, url: str, *, timeout: float = RPC_TIMEOUT, http: httpx.AsyncClient | None = None) -> None:
        self.url = url
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=timeout)
        self._ids = itertools.count(1)

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> "RpcClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def _request(self, method: str, params: list | None = None):
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params or []}
        try:
            r = await self._http.post(self.url, json=payload)
            r.raise_for_status()
            body = r.json()
        except httpx.HTTPError as e:
            raise TransportError(f"{method} failed: {e.__class__.__name__}: {e}") from e
        except ValueError as e:
            raise TransportError(f"{method} returned invalid JSON: {e}") from e

        if not isinstance(body, dict):
            raise TransportError(f"{method} returned {body!r}, not a JSON-RPC response")
        if body.get("error"):
            err = body["error"]
            if isinstance(err, dict):
                raise TransportError(f"{method} error {err.get('code')}: {err.get('message')}")
            raise TransportError(f"{method} error: {err!r}")
        if "result" not in body:
            raise TransportError(f"{method} returned no result")
        return body["result"]

    @staticmethod
    def _value(result):
        # Responses wrapped in an RpcResponse context carry the payload under "value".
        return result["value"] if isinstance(result, dict) and "value" in result else result

    async def send(self, transaction: Transaction) -> str:
        result = await self._request("sendTransaction", [transaction.serialize(), {"encoding": "base64"}])
        log.debug("sendTransaction -> %s", result)
        return transaction.signature

    async def get_statuses(self, signatures: Sequence[str]) -> list[TransactionStatus | None]:
        if not signatures:
            return []
        result = await self._request(
            "getSignatureStatuses", [list(signatures), {"searchTransactionHistory": True}]
        )
        values = self._value(result)
        if not isinstance(values, list):
            raise TransportError(f"getSignatureStatuses returned {values!r}")
        if len(values) != len(signatures):
            raise TransportError(f"getSignatureStatuses returned {len(values)} entries for {len(signatures)}")
        try:
            return [None if v is None else TransactionStatus.from_rpc(v) for v in values]
        except (KeyError, TypeError, ValueError) as e:
            raise TransportError(f"getSignatureStatuses returned {values!r}") from e

    async def get_recent_blockhashes(self) -> list[str]:
        result = self._value(await self._request("getRecentBlockhashes"))
        if not isinstance(result, list):
            raise TransportError(f"getRecentBlockhashes returned {result!r}")
        try:
            blockhashes = [entry["blockhash"] if isinstance(entry, dict) else entry for entry in result]
        except (KeyError, TypeError) as e:
            raise TransportError(f"getRecentBlockhashes returned {result!r}") from e
        if not all(isinstance(b, str) for b in blockhashes):
            raise TransportError(f"getRecentBlockhashes returned {result!r}")
        return blockhashes

    async def get_balance(self, address: str) -> int:
        value = self._value(await self._request("getBalance", [address]))
        if isinstance(value, bool) or not isinstance(value, int):
            raise TransportError(f"getBalance returned {value!r}")
        return value

    async def get_reference_blockhash(self) -> tuple[str, FeeCalculator]:
        value = self._value(await self._request("getRecentBlockhash"))
        try:
            return value["blockhash"], FeeCalculator.from_rpc(value["feeCalculator"])
        except (KeyError, TypeError, ValueError) as e:
            raise TransportError(f"getRecentBlockhash returned {value!r}") from e
