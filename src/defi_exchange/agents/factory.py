from typing import Dict, Optional
import logging

from defi_exchange.agents.blockchain import ZERO_ADDRESS, BlockchainAgent, Contract
from defi_exchange.agents.exchange import ExchangeAgent
from defi_exchange.agents.token import TokenAgent
from defi_exchange.errors import AlreadyExistAnExchangeForThisToken, InvalidTokenAddress

logger = logging.getLogger(__name__)


class FactoryAgent(Contract):
    """
    Registry that deploys and indexes one pool per token.

    Entries are append-only: once a token has a pool it is never replaced.
    """

    def __init__(self, model, blockchain: BlockchainAgent):
        super().__init__(model, blockchain)
        self.pools: Dict[str, ExchangeAgent] = {}
        self._tokens_by_pool: Dict[str, str] = {}

    def create_pool(self, token_address: str) -> ExchangeAgent:
        """
        Deploy a pool for ``token_address`` and register it.

        The new pool holds no reserves; liquidity is added separately.

        Raises:
            InvalidTokenAddress: If the address is empty, the zero address, or
                does not name a token contract on the chain.
            AlreadyExistAnExchangeForThisToken: If the token already has a pool.
        """
        if not token_address or token_address == ZERO_ADDRESS:
            raise InvalidTokenAddress("Token address cannot be the zero address")
        if token_address in self.pools:
            raise AlreadyExistAnExchangeForThisToken(f"Pool already exists for {token_address}")
        if not isinstance(self.blockchain.get_contract(token_address), TokenAgent):
            raise InvalidTokenAddress(f"No token contract at {token_address}")

        pool = ExchangeAgent(self.model, self.blockchain, token_address, factory=self)
        self.pools[token_address] = pool
        self._tokens_by_pool[pool.address] = token_address

        self._emit("PoolCreated", pool=pool.address, token=token_address)
        logger.info("Created pool %s for token %s", pool.address, token_address)
        return pool

    def lookup(self, token_address: str) -> Optional[ExchangeAgent]:
        """Return the pool registered for ``token_address`` or None."""
        return self.pools.get(token_address)

    def token_of(self, pool_address: str) -> Optional[str]:
        """Return the token traded by the pool at ``pool_address`` or None."""
        return self._tokens_by_pool.get(pool_address)

    def pool_count(self) -> int:
        return len(self.pools)
