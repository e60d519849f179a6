"""
Transaction submission and confirmation against an opaque ledger.

The ledger is treated as a state machine reachable through `LedgerClient`:
submit a transaction, poll for its receipt, query state. `TransactionGateway`
adds bounded confirmation polling on top and never resubmits on its own.
"""

import asyncio
import itertools
import logging
import time
from abc import ABC, abstractmethod
from concurrent.futures import Executor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import requests

from config.config import LedgerConfig
from utils.utils import short
from .errors import (
    LedgerUnavailableError,
    TransactionRejectedError,
    TransactionTimeoutError,
)

logger = logging.getLogger(__name__)


# ============================================================================
# TRANSACTION TYPES
# ============================================================================


class ReceiptStatus(Enum):
    SUCCESS = 1
    FAILED = 0


@dataclass(frozen=True)
class LedgerTransaction:
    """A state-changing call: `contract.method(*args)`"""
    contract: str
    method: str
    args: Tuple[Any, ...] = ()

    def describe(self) -> str:
        return self.method

    def to_params(self) -> Dict[str, Any]:
        return {'to': self.contract, 'method': self.method, 'args': list(self.args)}


@dataclass(frozen=True)
class TransactionReceipt:
    tx_handle: str
    status: ReceiptStatus
    block_number: Optional[int] = None
    revert_reason: Optional[str] = None
    logs: Tuple[Dict[str, Any], ...] = field(default_factory=tuple)

    @property
    def succeeded(self) -> bool:
        return self.status is ReceiptStatus.SUCCESS


# ============================================================================
# LEDGER CLIENTS
# ============================================================================


class LedgerClient(ABC):
    """Minimal surface the voting core needs from a ledger node"""

    @abstractmethod
    def send_transaction(self, tx: LedgerTransaction) -> str:
        """Submit and return the transaction handle"""

    @abstractmethod
    def get_receipt(self, tx_handle: str) -> Optional[TransactionReceipt]:
        """None while the transaction is not yet included"""

    @abstractmethod
    def call(self, contract: str, method: str, *args: Any) -> Any:
        """Read-only query"""

    @abstractmethod
    def get_logs(self, contract: str, event: str, from_block: int,
                 filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    def block_number(self) -> int:
        ...


class JsonRpcLedgerClient(LedgerClient):
    """JSON-RPC 2.0 over HTTP.

    Node errors whose code is 3 or whose message mentions a revert are
    surfaced as TransactionRejectedError with the raw revert data as reason.
    Transport failures become LedgerUnavailableError.
    """

    REVERT_CODE = 3

    def __init__(self, config: LedgerConfig, session: Optional[requests.Session] = None):
        if not config.rpc_url:
            raise LedgerUnavailableError(
                "No ledger RPC URL configured (set VOTING_RPC_URL)")
        self.config = config
        self.session = session or requests.Session()
        self._ids = itertools.count(1)

    def _rpc(self, method: str, params: List[Any]) -> Any:
        payload = {
            'jsonrpc': '2.0',
            'id': next(self._ids),
            'method': method,
            'params': params,
        }
        try:
            response = self.session.post(
                self.config.rpc_url, json=payload, timeout=self.config.request_timeout)
            response.raise_for_status()
            body = response.json()
        except requests.RequestException as e:
            raise LedgerUnavailableError(f"{method} failed: {e}") from e
        except ValueError as e:
            raise LedgerUnavailableError(f"{method} returned invalid JSON") from e

        error = body.get('error')
        if error:
            message = str(error.get('message', ''))
            if error.get('code') == self.REVERT_CODE or 'revert' in message.lower():
                data = error.get('data')
                reason = data if isinstance(data, str) else message
                raise TransactionRejectedError(f"{method} reverted: {message}", reason=reason)
            raise LedgerUnavailableError(f"{method} error {error.get('code')}: {message}")

        return body.get('result')

    def send_transaction(self, tx: LedgerTransaction) -> str:
        return self._rpc('ledger_sendTransaction', [tx.to_params()])

    def get_receipt(self, tx_handle: str) -> Optional[TransactionReceipt]:
        result = self._rpc('ledger_getTransactionReceipt', [tx_handle])
        if result is None:
            return None
        status = ReceiptStatus.SUCCESS if int(result.get('status', 0)) == 1 else ReceiptStatus.FAILED
        return TransactionReceipt(
            tx_handle=tx_handle,
            status=status,
            block_number=result.get('blockNumber'),
            revert_reason=result.get('revertReason'),
            logs=tuple(result.get('logs') or ()),
        )

    def call(self, contract: str, method: str, *args: Any) -> Any:
        return self._rpc('ledger_call', [{'to': contract, 'method': method, 'args': list(args)}])

    def get_logs(self, contract: str, event: str, from_block: int,
                 filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        query = {
            'address': contract,
            'event': event,
            'fromBlock': from_block,
            'filters': filters or {},
        }
        return list(self._rpc('ledger_getLogs', [query]) or [])

    def block_number(self) -> int:
        return int(self._rpc('ledger_blockNumber', []))


# ============================================================================
# TRANSACTION GATEWAY
# ============================================================================


class TransactionGateway:
    """Submits transactions and awaits their receipts with a bounded poll.

    Client calls block (HTTP for the JSON-RPC client), so the async methods
    run them in `executor` (the loop's default pool when None) and other
    workflows keep running while one waits on the node.
    """

    def __init__(self, client: LedgerClient, config: Optional[LedgerConfig] = None,
                 executor: Optional[Executor] = None):
        self.client = client
        self.config = config or LedgerConfig()
        self.executor = executor

    async def _run_blocking(self, func, *args):
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(self.executor, func, *args)

    def submit(self, tx: LedgerTransaction) -> str:
        tx_handle = self.client.send_transaction(tx)
        logger.info(f"Submitted {tx.describe()}: {short(tx_handle, 20)}")
        return tx_handle

    async def submit_async(self, tx: LedgerTransaction) -> str:
        return await self._run_blocking(self.submit, tx)

    def get_receipt(self, tx_handle: str) -> Optional[TransactionReceipt]:
        return self.client.get_receipt(tx_handle)

    async def await_confirmation(self, tx_handle: str,
                                 poll_interval_ms: Optional[int] = None,
                                 max_attempts: Optional[int] = None,
                                 description: str = "Transaction") -> TransactionReceipt:
        """Poll until a receipt arrives.

        A success receipt returns, a failure receipt raises
        TransactionRejectedError at once, and running out of attempts raises
        TransactionTimeoutError carrying the handle. The transaction is never
        resubmitted here; after a timeout it may still be included later.
        """
        if poll_interval_ms is None:
            poll_interval_ms = self.config.poll_interval_ms
        if max_attempts is None:
            max_attempts = self.config.max_confirmation_attempts

        logger.info(f"Waiting for {description} to confirm: {short(tx_handle, 20)}")
        start_time = time.time()

        for attempt in range(1, max_attempts + 1):
            try:
                receipt = await self._run_blocking(self.client.get_receipt, tx_handle)
            except LedgerUnavailableError as e:
                logger.warning(f"Receipt poll {attempt}/{max_attempts} for {description} failed: {e}")
                receipt = None

            if receipt is not None:
                if receipt.succeeded:
                    logger.info(
                        f"{description} confirmed in block {receipt.block_number} "
                        f"after {attempt} poll(s), {time.time() - start_time:.2f}s")
                    return receipt
                logger.error(f"{description} failed on ledger: {short(tx_handle, 20)}")
                raise TransactionRejectedError(
                    f"{description} transaction failed on ledger (tx {tx_handle})",
                    reason=receipt.revert_reason,
                    tx_handle=tx_handle)

            if attempt < max_attempts:
                await asyncio.sleep(poll_interval_ms / 1000)

        raise TransactionTimeoutError(
            f"{description} not confirmed after {max_attempts} attempts; "
            f"it may still be mined (tx {tx_handle})",
            tx_handle=tx_handle,
            attempts=max_attempts)

    async def submit_and_confirm(self, tx: LedgerTransaction,
                                 description: Optional[str] = None) -> TransactionReceipt:
        tx_handle = await self.submit_async(tx)
        return await self.await_confirmation(tx_handle, description=description or tx.describe())
