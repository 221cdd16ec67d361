from mesa import Agent
from contextlib import contextmanager
from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple
import logging

from defi_exchange.errors import ExchangeError, InsufficientBalance, InvalidAmount

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x" + "0" * 40

PENDING = "pending"
QUEUED = "queued"
EXECUTED = "executed"
REVERTED = "reverted"

CallFn = Callable[[str, Any, Any, "BlockchainAgent"], Any]


@dataclass
class Transaction:
    """
    A contract call waiting for, or done with, execution.

    ``data_fn(sender, receiver, payload, chain)`` runs the call. A transaction
    moves ``pending`` (mempool) -> ``queued`` (in a block, waiting for
    confirmations) -> ``executed`` or ``reverted``.
    """

    tx_id: int
    sender: str
    receiver: Any
    data_fn: CallFn
    payload: Any = None
    submitted_at: int = 0
    confirmations: int = 1
    due_block: Optional[int] = None
    status: str = PENDING
    error: Optional[str] = None
    return_value: Any = None

    @property
    def executed(self) -> bool:
        return self.status == EXECUTED

    @property
    def reverted(self) -> bool:
        return self.status == REVERTED


class BlockchainAgent(Agent):
    """
    Settlement chain shared by every contract in the simulation.

    Holds all balance-like state (native balances, token balances and
    supplies, allowances, event logs) so that ``atomic`` can snapshot and
    restore a call's effects as one unit.

    Each ``step`` mines one block: mempool transactions are queued with a due
    block ``confirmations`` ahead, and every queued transaction whose due
    block has arrived is executed in submission order.
    """

    def __init__(self, model, block_time: float = 1.0, confirmations: int = 1):
        super().__init__(model)
        self.current_block: int = 0
        self.timestamp: float = 0.0
        self.block_time = float(block_time)
        self.confirmations = int(confirmations)

        self._tx_counter = 0
        self._address_counter = 0
        self._depth = 0
        self.mempool: List[Transaction] = []
        self.tx_queue: List[Transaction] = []

        self.native_balances: Dict[str, int] = {}
        self.token_balances: Dict[Tuple[str, str], int] = {}
        self.token_supplies: Dict[str, int] = {}
        self.allowances: Dict[Tuple[str, str, str], int] = {}
        self.contracts: Dict[str, Any] = {}
        self.event_logs: Dict[int, List[Tuple[str, Dict[str, Any]]]] = {}
        self.metrics: Dict[str, int] = dict.fromkeys(
            ("tx_submitted", "tx_executed", "tx_reverted"), 0
        )

    # --- accounts ---

    def new_address(self) -> str:
        """Allocate a fresh, never-zero account address."""
        self._address_counter += 1
        return "0x%040x" % self._address_counter

    def create_account(self, address: Optional[str] = None, initial_balance: int = 0) -> str:
        """Open an account, optionally at a chosen address, and fund it."""
        address = address or self.new_address()
        self.native_balances[address] = int(initial_balance)
        return address

    def register_contract(self, contract: Any) -> str:
        """Give ``contract`` its own account and return the address."""
        address = self.create_account()
        self.contracts[address] = contract
        return address

    def get_contract(self, address: Any) -> Optional[Any]:
        return self.contracts.get(address)

    def get_native_balance(self, address: str) -> int:
        return self.native_balances.get(address, 0)

    def get_token_balance(self, contract_address: str, holder: str) -> int:
        return self.token_balances.get((contract_address, holder), 0)

    def transfer_native(self, frm: str, to: str, amount: int) -> None:
        """Move ``amount`` native units from ``frm`` to ``to``."""
        if amount < 0:
            raise InvalidAmount(f"Negative native transfer: {amount}")
        available = self.get_native_balance(frm)
        if available < amount:
            raise InsufficientBalance(f"{frm} holds {available} native, needs {amount}")
        self.native_balances[frm] = available - amount
        self.native_balances[to] = self.get_native_balance(to) + amount

    # --- events ---

    def emit(self, address: str, event_name: str, **args: Any) -> None:
        """Record an event emitted by the contract at ``address``."""
        self._log_event(event_name, {"address": address, **args})

    def _log_event(self, event_name: str, payload: Dict[str, Any]) -> None:
        self.event_logs.setdefault(self.current_block, []).append((event_name, payload))

    def get_events(
        self, block: Optional[int] = None, event_name: Optional[str] = None
    ) -> List[Tuple[str, Dict[str, Any]]]:
        """Events of one block, or of the whole chain, optionally filtered by name."""
        if block is None:
            blocks = [self.event_logs[b] for b in sorted(self.event_logs)]
        else:
            blocks = [self.event_logs.get(block, [])]
        return [ev for evs in blocks for ev in evs if event_name is None or ev[0] == event_name]

    # --- atomic execution ---

    def _capture_state(self) -> Dict[str, Any]:
        """
        Copy every piece of state a contract call can mutate.

        Calls only append events to the current block, so that block's list
        is the only part of the event log that needs copying.
        """
        events = self.event_logs.get(self.current_block)
        return {
            "native_balances": dict(self.native_balances),
            "token_balances": dict(self.token_balances),
            "token_supplies": dict(self.token_supplies),
            "allowances": dict(self.allowances),
            "block": self.current_block,
            "events": None if events is None else len(events),
        }

    def _restore_state(self, snap: Dict[str, Any]) -> None:
        self.native_balances = snap["native_balances"]
        self.token_balances = snap["token_balances"]
        self.token_supplies = snap["token_supplies"]
        self.allowances = snap["allowances"]
        if snap["events"] is None:
            self.event_logs.pop(snap["block"], None)
        else:
            del self.event_logs[snap["block"]][snap["events"]:]

    @contextmanager
    def atomic(self) -> Iterator["BlockchainAgent"]:
        """
        Run a block of contract logic all-or-nothing.

        State is captured on entry and restored if the body raises; the
        exception is re-raised. Nested uses nest snapshots, so a failing
        inner call that propagates also undoes the outer call.
        """
        snap = self._capture_state()
        self._depth += 1
        try:
            yield self
        except Exception:
            self._restore_state(snap)
            logger.debug("Rolled back state at call depth %d", self._depth)
            raise
        finally:
            self._depth -= 1

    # --- transactions ---

    def submit_transaction(
        self,
        sender: str,
        receiver: Any,
        data_fn: CallFn,
        payload: Any = None,
        confirmations: Optional[int] = None,
    ) -> int:
        """Put a call in the mempool and return its transaction id."""
        self._tx_counter += 1
        self.mempool.append(
            Transaction(
                tx_id=self._tx_counter,
                sender=sender,
                receiver=receiver,
                data_fn=data_fn,
                payload=payload,
                submitted_at=self.current_block,
                confirmations=self.confirmations if confirmations is None else confirmations,
            )
        )
        self.metrics["tx_submitted"] += 1
        return self._tx_counter

    def _execute(self, tx: Transaction) -> None:
        """
        Run one transaction atomically.

        Any exception reverts the transaction without stopping the block:
        contract errors are logged as warnings, anything else (a failing
        hook or a broken ``data_fn``) with its traceback.
        """
        try:
            with self.atomic():
                tx.return_value = tx.data_fn(tx.sender, tx.receiver, tx.payload, self)
        except Exception as exc:
            tx.status, tx.error = REVERTED, type(exc).__name__
            self.metrics["tx_reverted"] += 1
            if isinstance(exc, ExchangeError):
                logger.warning("Transaction %d reverted: %s", tx.tx_id, tx.error)
            else:
                logger.exception("Transaction %d failed unexpectedly", tx.tx_id)
            self._log_event(
                "TransactionReverted",
                {"tx_id": tx.tx_id, "sender": tx.sender, "error": tx.error, "reason": str(exc)},
            )
            return

        tx.status = EXECUTED
        self.metrics["tx_executed"] += 1
        self._log_event(
            "TransactionExecuted",
            {"tx_id": tx.tx_id, "sender": tx.sender, "return_value": tx.return_value},
        )

    def step(self) -> None:
        """Mine one block and execute every transaction that is due."""
        self.current_block += 1
        self.timestamp += self.block_time

        for tx in self.mempool:
            tx.status = QUEUED
            tx.due_block = self.current_block + tx.confirmations
        self.tx_queue.extend(self.mempool)
        self.mempool = []

        due = [tx for tx in self.tx_queue if tx.due_block <= self.current_block]
        self.tx_queue = [tx for tx in self.tx_queue if tx.due_block > self.current_block]
        for tx in due:
            self._execute(tx)
        if due:
            logger.debug("Block %d executed %d transactions", self.current_block, len(due))

    def get_current_block(self) -> int:
        return self.current_block

    def get_pending_txs(self) -> List[int]:
        """Ids of transactions still in the mempool."""
        return [tx.tx_id for tx in self.mempool]

    def get_queued_txs(self) -> List[int]:
        """Ids of mined transactions waiting for confirmations."""
        return [tx.tx_id for tx in self.tx_queue]

    def get_metrics(self) -> Dict[str, int]:
        return self.metrics


def transactional(method: Callable) -> Callable:
    """Run a contract method inside its chain's ``atomic`` block."""

    @wraps(method)
    def wrapper(self, *args, **kwargs):
        with self.blockchain.atomic():
            return method(self, *args, **kwargs)

    return wrapper


class Contract(Agent):
    """
    Base class for agents deployed on a ``BlockchainAgent``.

    A contract gets its address at construction and owns a native
    account on the chain.
    """

    def __init__(self, model, blockchain: BlockchainAgent):
        super().__init__(model)
        self.blockchain = blockchain
        self.address = blockchain.register_contract(self)

    def _emit(self, event_name: str, **args: Any) -> None:
        self.blockchain.emit(self.address, event_name, **args)

    def _receive(self, sender: str, value: int) -> None:
        """Credit native currency attached to a payable call."""
        if value:
            self.blockchain.transfer_native(sender, self.address, value)

    def step(self):
        """Contracts are reactive; no internal logic on each step."""
        pass
