from typing import Callable, NamedTuple, Optional, Tuple
import logging

from defi_exchange.agents.blockchain import BlockchainAgent, transactional
from defi_exchange.agents.curves import BaseCurve, ConstantProductCurve
from defi_exchange.agents.token import TokenAgent
from defi_exchange.errors import (
    ExchangeError,
    InsufficientOutputAmount,
    InsufficientTokenAmount,
    InsufficientTokenSold,
    InvalidAmountToRemove,
    InvalidLiquidityAmount,
    InvalidReserves,
    InvalidTokenAddress,
)
from defi_exchange.utils.math_helpers import get_price

logger = logging.getLogger(__name__)


class SwapLeg(NamedTuple):
    """First half of a token-to-token swap, kept so it can be undone."""

    trader: str
    tokens_in: int
    native_out: int


class ExchangeAgent(TokenAgent):
    """
    Liquidity pool between the chain's native asset and one token.

    The pool is itself a token ledger: its units are the liquidity shares.
    Reserves are never stored; they are the pool account's native balance
    and its balance in the token ledger, read once per call.

    Attributes:
        token (TokenAgent): Ledger of the traded token.
        factory: Registry that created the pool, used to route token-to-token swaps.
        curve (BaseCurve): Pricing curve used for swap and share arithmetic.
        on_swap (Callable): Optional hook for swap events.
        on_deposit (Callable): Optional hook for deposit events.
        on_withdraw (Callable): Optional hook for withdraw events.
    """

    def __init__(
        self,
        model,
        blockchain: BlockchainAgent,
        token_address: str,
        factory=None,
        curve: Optional[BaseCurve] = None,
        on_swap: Optional[Callable] = None,
        on_deposit: Optional[Callable] = None,
        on_withdraw: Optional[Callable] = None,
    ):
        token = blockchain.get_contract(token_address)
        if not isinstance(token, TokenAgent):
            raise InvalidTokenAddress(f"No token contract at {token_address}")

        super().__init__(
            model,
            blockchain,
            name=f"{token.symbol} Pool Share",
            symbol=f"{token.symbol}-LP",
        )
        # Shares are only issued and redeemed through the liquidity methods.
        self.minter = self.address
        self._token_address = token_address
        self.token = token
        self.factory = factory
        self.curve = curve if curve is not None else ConstantProductCurve()

        self.on_swap = on_swap
        self.on_deposit = on_deposit
        self.on_withdraw = on_withdraw

    @property
    def token_address(self) -> str:
        return self._token_address

    # --- views ---

    def get_native_reserve(self) -> int:
        return self.blockchain.get_native_balance(self.address)

    def get_token_supply(self) -> int:
        """Return the pool's token reserve."""
        return self.token.balance_of(self.address)

    def get_reserves(self) -> Tuple[int, int]:
        """Return a consistent (native_reserve, token_reserve) snapshot."""
        return self.get_native_reserve(), self.get_token_supply()

    def get_k(self) -> int:
        """Return the constant product of the reserves."""
        native_reserve, token_reserve = self.get_reserves()
        return native_reserve * token_reserve

    def get_price(self, reserve_a: int, reserve_b: int) -> int:
        return get_price(reserve_a, reserve_b)

    def get_native_amount(self, tokens_sold: int) -> int:
        """Quote the native amount bought by selling ``tokens_sold``."""
        native_reserve, token_reserve = self.get_reserves()
        amount_out, _ = self.curve.compute_swap(tokens_sold, token_reserve, native_reserve)
        return amount_out

    def get_token_amount(self, native_sold: int) -> int:
        """Quote the token amount bought by selling ``native_sold``."""
        native_reserve, token_reserve = self.get_reserves()
        amount_out, _ = self.curve.compute_swap(native_sold, native_reserve, token_reserve)
        return amount_out

    # --- liquidity ---

    @transactional
    def add_liquidity(self, sender: str, token_amount: int, value: int) -> int:
        """
        Deposit ``value`` native units plus matching tokens and mint shares.

        Args:
            sender (str): Liquidity provider; must have approved the pool.
            token_amount (int): Maximum token amount the provider will deposit.
            value (int): Native amount attached to the call.

        Returns:
            int: Shares minted to ``sender``.
        """
        if value <= 0:
            raise InvalidLiquidityAmount(f"Native deposit must be positive, got {value}")

        native_reserve, token_reserve = self.get_reserves()
        total_shares = self.total_supply()
        if total_shares == 0 and token_amount <= 0:
            raise InsufficientTokenAmount("First deposit must include tokens")

        token_required, shares = self.curve.compute_deposit(
            native_amount=value,
            native_reserve=native_reserve,
            token_reserve=token_reserve,
            total_shares=total_shares,
            token_amount=token_amount,
        )
        if token_amount < token_required:
            raise InsufficientTokenAmount(
                f"Deposit of {value} native needs {token_required} tokens, got {token_amount}"
            )
        if shares <= 0:
            raise InvalidLiquidityAmount(f"Deposit of {value} native mints no shares")

        self._receive(sender, value)
        self.token.transfer_from(self.address, sender, self.address, token_required)
        self._mint(sender, shares)

        self._emit("LiquidityAdded", token_amount=token_required, native_amount=value, shares=shares)
        logger.info(
            "%s added %d native + %d %s for %d shares",
            sender, value, token_required, self.token.symbol, shares,
        )
        if self.on_deposit:
            self.on_deposit(self, sender, shares)
        return shares

    @transactional
    def remove_liquidity(self, sender: str, share_amount: int) -> Tuple[int, int]:
        """
        Burn ``share_amount`` shares and return the pro-rata reserves.

        Returns:
            Tuple[int, int]: Native amount and token amount paid to ``sender``.
        """
        if share_amount <= 0 or share_amount > self.balance_of(sender):
            raise InvalidAmountToRemove(
                f"Cannot remove {share_amount} shares, {sender} holds {self.balance_of(sender)}"
            )

        native_reserve, token_reserve = self.get_reserves()
        native_amount, token_amount = self.curve.compute_withdraw(
            share_amount=share_amount,
            native_reserve=native_reserve,
            token_reserve=token_reserve,
            total_shares=self.total_supply(),
        )

        self._burn(sender, share_amount)
        self.blockchain.transfer_native(self.address, sender, native_amount)
        self.token.transfer(self.address, sender, token_amount)

        self._emit(
            "LiquidityRemoved",
            native_amount=native_amount,
            token_amount=token_amount,
            shares=share_amount,
        )
        logger.info(
            "%s removed %d shares for %d native + %d %s",
            sender, share_amount, native_amount, token_amount, self.token.symbol,
        )
        if self.on_withdraw:
            self.on_withdraw(self, sender, (native_amount, token_amount))
        return native_amount, token_amount

    # --- swaps ---

    @transactional
    def token_to_native_swap(self, sender: str, tokens_sold: int, min_native: int) -> int:
        """Sell ``tokens_sold`` for at least ``min_native`` native units."""
        if tokens_sold <= 0:
            raise InsufficientTokenSold(f"Tokens sold must be positive, got {tokens_sold}")

        native_reserve, token_reserve = self.get_reserves()
        native_bought, fee = self.curve.compute_swap(tokens_sold, token_reserve, native_reserve)
        if native_bought < min_native:
            raise InsufficientOutputAmount(f"Output {native_bought} below minimum {min_native}")

        self.token.transfer_from(self.address, sender, self.address, tokens_sold)
        self.blockchain.transfer_native(self.address, sender, native_bought)

        self._emit("NativePurchase", buyer=sender, tokens_sold=tokens_sold, native_bought=native_bought)
        logger.info(
            "%s sold %d %s for %d native (fee %d)",
            sender, tokens_sold, self.token.symbol, native_bought, fee,
        )
        if self.on_swap:
            self.on_swap(self, tokens_sold, native_bought, "TOKEN→NATIVE")
        return native_bought

    @transactional
    def native_to_token_swap(self, sender: str, min_tokens: int, value: int) -> int:
        """Sell the attached ``value`` for at least ``min_tokens`` tokens."""
        return self._native_to_token(sender, sender, min_tokens, value)

    @transactional
    def native_to_token_transfer(self, sender: str, recipient: str, min_tokens: int, value: int) -> int:
        """Like ``native_to_token_swap`` but pays the tokens to ``recipient``."""
        return self._native_to_token(sender, recipient, min_tokens, value)

    def _native_to_token(self, sender: str, recipient: str, min_tokens: int, value: int) -> int:
        # Reserves are read before the attached value is credited.
        native_reserve, token_reserve = self.get_reserves()
        tokens_bought, fee = self.curve.compute_swap(value, native_reserve, token_reserve)
        if tokens_bought < min_tokens:
            raise InsufficientOutputAmount(f"Output {tokens_bought} below minimum {min_tokens}")

        self._receive(sender, value)
        self.token.transfer(self.address, recipient, tokens_bought)

        self._emit("TokenPurchase", buyer=recipient, native_sold=value, tokens_bought=tokens_bought)
        logger.info(
            "%s sold %d native for %d %s to %s (fee %d)",
            sender, value, tokens_bought, self.token.symbol, recipient, fee,
        )
        if self.on_swap:
            self.on_swap(self, value, tokens_bought, "NATIVE→TOKEN")
        return tokens_bought

    @transactional
    def token_to_token_swap(
        self, sender: str, tokens_sold: int, min_tokens_bought: int, token_address: str
    ) -> int:
        """
        Sell this pool's token for another registered token in one call.

        Phase one sells ``tokens_sold`` here for native units; phase two buys
        the other token with them through the other pool, paying ``sender``.
        If phase two fails, phase one is undone before the error propagates;
        the enclosing atomic block then discards the rest of the call
        (allowance use, events).

        Returns:
            int: Amount of the other token delivered to ``sender``.
        """
        other = self.factory.lookup(token_address) if self.factory is not None else None
        if other is None or other is self:
            raise InvalidReserves(f"No pool to route into for token {token_address}")

        leg = self._sell_for_bridge(sender, tokens_sold)
        try:
            tokens_bought = other.native_to_token_transfer(
                self.address, sender, min_tokens_bought, value=leg.native_out
            )
        except ExchangeError:
            self._undo_bridge(leg)
            raise

        self._emit(
            "TokenToToken",
            tokens_sold=tokens_sold,
            token_address=token_address,
            tokens_bought=tokens_bought,
        )
        logger.info(
            "%s swapped %d %s for %d %s via %d native",
            sender, tokens_sold, self.token.symbol, tokens_bought, other.token.symbol, leg.native_out,
        )
        return tokens_bought

    @transactional
    def _sell_for_bridge(self, sender: str, tokens_sold: int) -> SwapLeg:
        if tokens_sold <= 0:
            raise InsufficientTokenSold(f"Tokens sold must be positive, got {tokens_sold}")

        native_reserve, token_reserve = self.get_reserves()
        native_bought, _ = self.curve.compute_swap(tokens_sold, token_reserve, native_reserve)
        self.token.transfer_from(self.address, sender, self.address, tokens_sold)
        return SwapLeg(trader=sender, tokens_in=tokens_sold, native_out=native_bought)

    @transactional
    def _undo_bridge(self, leg: SwapLeg) -> None:
        self.token.transfer(self.address, leg.trader, leg.tokens_in)
        logger.debug("Returned %d %s to %s after failed second hop", leg.tokens_in, self.token.symbol, leg.trader)
