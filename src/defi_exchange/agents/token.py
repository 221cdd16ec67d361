from typing import Optional
import logging

from defi_exchange.agents.blockchain import ZERO_ADDRESS, BlockchainAgent, Contract, transactional
from defi_exchange.errors import (
    InsufficientAllowance,
    InsufficientBalance,
    InvalidAmount,
    InvalidRecipient,
    Unauthorized,
)

logger = logging.getLogger(__name__)

MAX_UINT256 = 2 ** 256 - 1


class TokenAgent(Contract):
    """
    Fungible token ledger with allowance semantics.

    Balances, total supply and allowances are kept in the chain's storage,
    keyed by this contract's address, so they roll back with the chain.

    Attributes:
        name (str): Human readable token name.
        symbol (str): Ticker symbol.
        decimals (int): Display precision of the smallest unit.
        minter (Optional[str]): Address allowed to mint and burn. ``None``
            leaves mint and burn open to any caller.
    """

    def __init__(
        self,
        model,
        blockchain: BlockchainAgent,
        name: str,
        symbol: str,
        decimals: int = 18,
        minter: Optional[str] = None,
    ):
        super().__init__(model, blockchain)
        self.name = name
        self.symbol = symbol
        self.decimals = int(decimals)
        self.minter = minter
        blockchain.token_supplies[self.address] = 0

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.symbol}@{self.address})"

    # --- views ---

    def total_supply(self) -> int:
        return self.blockchain.token_supplies.get(self.address, 0)

    def balance_of(self, holder: str) -> int:
        return self.blockchain.get_token_balance(self.address, holder)

    def allowance(self, owner: str, spender: str) -> int:
        return self.blockchain.allowances.get((self.address, owner, spender), 0)

    # --- mutations ---

    @transactional
    def mint(self, sender: str, to: str, amount: int) -> None:
        """Create ``amount`` new units for ``to``."""
        self._check_minter(sender)
        self._mint(to, amount)

    @transactional
    def burn(self, sender: str, holder: str, amount: int) -> None:
        """Destroy ``amount`` units held by ``holder``."""
        self._check_minter(sender)
        self._burn(holder, amount)

    @transactional
    def transfer(self, sender: str, to: str, amount: int) -> bool:
        self._transfer(sender, to, amount)
        return True

    @transactional
    def approve(self, sender: str, spender: str, amount: int) -> bool:
        """Allow ``spender`` to move up to ``amount`` of the sender's units."""
        self._check_amount(amount)
        self.blockchain.allowances[(self.address, sender, spender)] = amount
        self._emit("Approval", owner=sender, spender=spender, value=amount)
        return True

    @transactional
    def transfer_from(self, sender: str, owner: str, to: str, amount: int) -> bool:
        """Move ``amount`` from ``owner`` to ``to`` on behalf of ``sender``."""
        self._check_amount(amount)
        allowed = self.allowance(owner, sender)
        if allowed < amount:
            raise InsufficientAllowance(
                f"{sender} may spend {allowed} of {owner}'s {self.symbol}, needs {amount}"
            )
        self.blockchain.allowances[(self.address, owner, sender)] = allowed - amount
        self._transfer(owner, to, amount)
        return True

    # --- internals shared with subclasses ---

    def _check_minter(self, sender: str) -> None:
        if self.minter is not None and sender != self.minter:
            raise Unauthorized(f"{sender} may not mint or burn {self.symbol}")

    @staticmethod
    def _check_amount(amount: int) -> None:
        if amount < 0:
            raise InvalidAmount(f"Negative amount: {amount}")

    def _mint(self, to: str, amount: int) -> None:
        self._check_amount(amount)
        if not to or to == ZERO_ADDRESS:
            raise InvalidRecipient("Cannot mint to the zero address")
        balances = self.blockchain.token_balances
        balances[(self.address, to)] = balances.get((self.address, to), 0) + amount
        self.blockchain.token_supplies[self.address] = self.total_supply() + amount
        self._emit("Transfer", frm=ZERO_ADDRESS, to=to, value=amount)

    def _burn(self, holder: str, amount: int) -> None:
        self._check_amount(amount)
        balance = self.balance_of(holder)
        if balance < amount:
            raise InsufficientBalance(f"{holder} holds {balance} {self.symbol}, burning {amount}")
        self.blockchain.token_balances[(self.address, holder)] = balance - amount
        self.blockchain.token_supplies[self.address] = self.total_supply() - amount
        self._emit("Transfer", frm=holder, to=ZERO_ADDRESS, value=amount)

    def _transfer(self, frm: str, to: str, amount: int) -> None:
        self._check_amount(amount)
        if not to or to == ZERO_ADDRESS:
            raise InvalidRecipient("Cannot transfer to the zero address")
        balance = self.balance_of(frm)
        if balance < amount:
            raise InsufficientBalance(f"{frm} holds {balance} {self.symbol}, sending {amount}")
        balances = self.blockchain.token_balances
        balances[(self.address, frm)] = balance - amount
        balances[(self.address, to)] = balances.get((self.address, to), 0) + amount
        self._emit("Transfer", frm=frm, to=to, value=amount)
