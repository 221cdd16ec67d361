# src/defi_exchange/models/exchange_model.py

import logging
from typing import Dict, List, Optional

import pandas as pd
from mesa import Model
from mesa.datacollection import DataCollector

from defi_exchange.agents.blockchain import BlockchainAgent
from defi_exchange.agents.exchange import ExchangeAgent
from defi_exchange.agents.factory import FactoryAgent
from defi_exchange.agents.token import TokenAgent
from defi_exchange.agents.trader import TraderAgent
from defi_exchange.utils.config_parser import merge_with_defaults

logger = logging.getLogger(__name__)


class ExchangeModel(Model):
    """
    Mesa model of a native/token exchange with one pool per token.

    - Builds the chain, the registry, one token and pool per entry in
      ``config["tokens"]`` and seeds each pool from a deployer account.
    - Traders submit swaps as transactions; each model step mines one block.
    - Pool reserves, prices and the constant product are collected per step.
    """

    def __init__(self, config: dict):
        cfg = merge_with_defaults(config)
        sim_cfg = cfg["simulation"]
        seed = sim_cfg.get("seed", None)
        super().__init__(seed=seed)

        self.num_steps = int(sim_cfg.get("steps", 100))

        # --- Chain and registry ---
        chain_cfg = cfg["blockchain"]
        self.blockchain = BlockchainAgent(
            self,
            block_time=float(chain_cfg.get("block_time", 12.0)),
            confirmations=int(chain_cfg.get("confirmations", 1)),
        )
        self.factory = FactoryAgent(self, self.blockchain)
        self.deployer = self.blockchain.create_account(
            initial_balance=int(cfg["deployer"].get("native_balance", 0))
        )

        self.tokens: Dict[str, TokenAgent] = {}
        self.pools: Dict[str, ExchangeAgent] = {}
        self.traders: List[TraderAgent] = []

        # --- Tokens and pools ---
        for token_cfg in cfg["tokens"]:
            self._init_token(token_cfg)

        # --- Traders ---
        self._init_traders(cfg["traders"], seed)

        # --- DataCollector ---
        reporters = {"Reverted_Txs": lambda m: m.blockchain.metrics["tx_reverted"]}
        for symbol in self.pools:
            reporters[f"{symbol}_native_reserve"] = lambda m, s=symbol: m.pools[s].get_native_reserve()
            reporters[f"{symbol}_token_reserve"] = lambda m, s=symbol: m.pools[s].get_token_supply()
            reporters[f"{symbol}_price"] = lambda m, s=symbol: m.pool_price(s)
            reporters[f"{symbol}_k"] = lambda m, s=symbol: m.pools[s].get_k()
        self.datacollector = DataCollector(model_reporters=reporters)
        logger.info(
            "Exchange model ready with %d pools and %d traders", len(self.pools), len(self.traders)
        )

    def _init_token(self, token_cfg: dict) -> None:
        """
        Deploy a token, create its pool and seed it with the configured liquidity.
        """
        symbol = token_cfg["symbol"]
        token = TokenAgent(self, self.blockchain, name=token_cfg.get("name", symbol), symbol=symbol)
        pool = self.factory.create_pool(token.address)
        self.tokens[symbol] = token
        self.pools[symbol] = pool

        liquidity = token_cfg.get("liquidity", {})
        token_amount = int(liquidity.get("token_amount", 0))
        native_amount = int(liquidity.get("native_amount", 0))
        if token_amount > 0 and native_amount > 0:
            token.mint(self.deployer, self.deployer, token_amount)
            token.approve(self.deployer, pool.address, token_amount)
            pool.add_liquidity(self.deployer, token_amount, value=native_amount)

    def _init_traders(self, traders_cfg: dict, seed: Optional[int]) -> None:
        """
        Instantiate TraderAgent instances, fund them and approve every pool.
        """
        pools = list(self.pools.values())
        for i in range(int(traders_cfg.get("count", 0))):
            trader = TraderAgent(
                self,
                self.blockchain,
                pools,
                native_balance=int(traders_cfg.get("native_balance", 0)),
                trade_probability=float(traders_cfg.get("trade_probability", 0.5)),
                max_trade_fraction=float(traders_cfg.get("max_trade_fraction", 0.05)),
                slippage_tolerance=float(traders_cfg.get("slippage_tolerance", 0.01)),
                token_to_token_probability=float(traders_cfg.get("token_to_token_probability", 0.0)),
                seed=None if seed is None else seed + i + 1,
            )
            token_balance = int(traders_cfg.get("token_balance", 0))
            for token in self.tokens.values():
                if token_balance > 0:
                    token.mint(self.deployer, trader.address, token_balance)
            trader.approve_pools()
            self.traders.append(trader)

    def pool_price(self, symbol: str) -> Optional[int]:
        """
        Return the pool's price of one native unit in tokens (scaled by 1000),
        or None while the pool is empty.
        """
        native_reserve, token_reserve = self.pools[symbol].get_reserves()
        if native_reserve <= 0 or token_reserve <= 0:
            return None
        return self.pools[symbol].get_price(token_reserve, native_reserve)

    def events_dataframe(self) -> pd.DataFrame:
        """Return every event on the chain as one row per event."""
        rows = []
        for block, events in sorted(self.blockchain.event_logs.items()):
            for name, payload in events:
                rows.append({"block": block, "event": name, **payload})
        return pd.DataFrame(rows)

    def step(self):
        """
        Advance the model one tick:
          1. Traders submit swaps in a random order.
          2. The chain mines a block and executes ready transactions.
          3. Pool metrics are collected via DataCollector.
        """
        self.agents.select(agent_type=TraderAgent).shuffle_do("step")
        self.blockchain.step()
        self.datacollector.collect(self)

    def run(self, steps: Optional[int] = None) -> pd.DataFrame:
        """Run ``steps`` ticks (default ``num_steps``) and return the collected metrics."""
        for _ in range(self.num_steps if steps is None else steps):
            self.step()
        return self.datacollector.get_model_vars_dataframe()
