from mesa import Agent
from typing import Callable, List, Optional
import logging

import numpy as np

from defi_exchange.agents.blockchain import BlockchainAgent
from defi_exchange.agents.exchange import ExchangeAgent
from defi_exchange.agents.token import MAX_UINT256
from defi_exchange.errors import ExchangeError

logger = logging.getLogger(__name__)

BPS = 10_000


class TraderAgent(Agent):
    """
    Trader that submits random swaps against a set of pools.

    Each step the trader may pick a pool and a direction, quote the output
    with the pool's view functions, and submit the swap as a transaction
    whose slippage floor is the quote less ``slippage_tolerance``. The floor
    can fail if other trades land first; the chain then reverts the call.

    Attributes:
        address (str): Chain account of the trader.
        pools (List[ExchangeAgent]): Pools the trader may use.
        trade_probability (float): Chance of trading on a given step.
        max_trade_fraction (float): Upper bound on the share of a balance sold per trade.
        slippage_tolerance (float): Accepted shortfall relative to the quote.
        token_to_token_probability (float): Chance a token sale is routed to another token.
        submitted (List[int]): Transaction ids submitted by this trader.
        on_trade (Callable): Optional hook called with each submitted trade.
    """

    def __init__(
        self,
        model,
        blockchain: BlockchainAgent,
        pools: List[ExchangeAgent],
        native_balance: int = 0,
        trade_probability: float = 0.5,
        max_trade_fraction: float = 0.05,
        slippage_tolerance: float = 0.01,
        token_to_token_probability: float = 0.0,
        on_trade: Optional[Callable] = None,
        seed: Optional[int] = None,
    ):
        super().__init__(model)
        self.blockchain = blockchain
        self.address = blockchain.create_account(initial_balance=native_balance)
        self.pools = list(pools)
        self.trade_probability = float(trade_probability)
        self.max_trade_fraction = float(max_trade_fraction)
        self.slippage_tolerance = float(slippage_tolerance)
        self._slippage_bps = int(round(self.slippage_tolerance * BPS))
        self.token_to_token_probability = float(token_to_token_probability)
        self.on_trade = on_trade
        self.submitted: List[int] = []
        self._rng = np.random.default_rng(seed)

    def native_balance(self) -> int:
        return self.blockchain.get_native_balance(self.address)

    def approve_pools(self) -> None:
        """Give every pool an unlimited allowance over the trader's tokens."""
        for pool in self.pools:
            pool.token.approve(self.address, pool.address, MAX_UINT256)

    def _trade_size(self, balance: int) -> int:
        return int(balance * self._rng.uniform(0.0, self.max_trade_fraction))

    def _floor(self, quote: int) -> int:
        """Lowest acceptable output for ``quote``, in exact integer arithmetic."""
        return quote - quote * self._slippage_bps // BPS

    def _submit(self, pool: ExchangeAgent, data_fn: Callable, payload: dict) -> None:
        tx_id = self.blockchain.submit_transaction(
            sender=self.address,
            receiver=pool,
            data_fn=data_fn,
            payload=payload,
        )
        self.submitted.append(tx_id)
        if self.on_trade:
            self.on_trade(self, pool, payload)

    def _buy_tokens(self, pool: ExchangeAgent) -> None:
        value = self._trade_size(self.native_balance())
        if value <= 0:
            return
        quote = pool.get_token_amount(value)
        payload = {"action": "native_to_token", "value": value, "min_out": self._floor(quote)}

        def data_fn(sender, receiver, payload, blockchain):
            return receiver.native_to_token_swap(sender, payload["min_out"], value=payload["value"])

        self._submit(pool, data_fn, payload)

    def _sell_tokens(self, pool: ExchangeAgent) -> None:
        tokens = self._trade_size(pool.token.balance_of(self.address))
        if tokens <= 0:
            return

        others = [p for p in self.pools if p is not pool]
        if others and self._rng.random() < self.token_to_token_probability:
            target = others[int(self._rng.integers(len(others)))]
            quote = target.get_token_amount(pool.get_native_amount(tokens))
            payload = {
                "action": "token_to_token",
                "tokens_sold": tokens,
                "min_out": self._floor(quote),
                "token_address": target.token_address,
            }

            def data_fn(sender, receiver, payload, blockchain):
                return receiver.token_to_token_swap(
                    sender, payload["tokens_sold"], payload["min_out"], payload["token_address"]
                )
        else:
            quote = pool.get_native_amount(tokens)
            payload = {"action": "token_to_native", "tokens_sold": tokens, "min_out": self._floor(quote)}

            def data_fn(sender, receiver, payload, blockchain):
                return receiver.token_to_native_swap(sender, payload["tokens_sold"], payload["min_out"])

        self._submit(pool, data_fn, payload)

    def step(self):
        """Maybe submit one swap against a randomly chosen pool."""
        if not self.pools or self._rng.random() >= self.trade_probability:
            return

        pool = self.pools[int(self._rng.integers(len(self.pools)))]
        try:
            if self._rng.random() < 0.5:
                self._buy_tokens(pool)
            else:
                self._sell_tokens(pool)
        except ExchangeError as exc:
            # Quoting an empty pool fails; the trader just sits this step out.
            logger.debug("Trader %s skipped %s: %s", self.unique_id, pool.address, exc)
