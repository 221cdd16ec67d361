import sys
from pathlib import Path
import pytest
from mesa import Model

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from defi_exchange.agents.blockchain import ZERO_ADDRESS, BlockchainAgent
from defi_exchange.agents.exchange import ExchangeAgent
from defi_exchange.agents.factory import FactoryAgent
from defi_exchange.agents.token import TokenAgent
from defi_exchange.errors import (
    AlreadyExistAnExchangeForThisToken,
    InsufficientOutputAmount,
    InvalidReserves,
    InvalidTokenAddress,
)

ETH = 10 ** 18


@pytest.fixture
def registry():
    model = Model()
    bc = BlockchainAgent(model=model)
    factory = FactoryAgent(model, bc)
    token1 = TokenAgent(model, bc, name="Token1", symbol="TK1")
    token2 = TokenAgent(model, bc, name="Token2", symbol="TK2")
    user = bc.create_account(initial_balance=10 * ETH)
    return bc, factory, token1, token2, user


@pytest.fixture
def two_pools(registry):
    """Both pools hold 100 token units against 1 native."""
    bc, factory, token1, token2, user = registry
    pool1 = factory.create_pool(token1.address)
    pool2 = factory.create_pool(token2.address)

    token1.mint(user, user, 200)
    token1.approve(user, pool1.address, 200)
    pool1.add_liquidity(user, 100, value=ETH)

    token2.mint(user, user, 100)
    token2.approve(user, pool2.address, 100)
    pool2.add_liquidity(user, 100, value=ETH)
    return bc, factory, token1, token2, user, pool1, pool2


def test_create_pool_emits_event_and_registers(registry):
    bc, factory, token1, _, _ = registry
    pool = factory.create_pool(token1.address)

    assert isinstance(pool, ExchangeAgent)
    assert pool.token_address == token1.address
    assert pool.factory is factory
    assert factory.lookup(token1.address) is pool
    assert factory.token_of(pool.address) == token1.address
    assert factory.pool_count() == 1
    (name, payload), = bc.get_events(event_name="PoolCreated")
    assert payload == {"address": factory.address, "pool": pool.address, "token": token1.address}
    assert pool.get_reserves() == (0, 0)


@pytest.mark.parametrize("bad_address", [ZERO_ADDRESS, None, ""])
def test_create_pool_with_null_address(registry, bad_address):
    _, factory, _, _, _ = registry
    with pytest.raises(InvalidTokenAddress):
        factory.create_pool(bad_address)
    assert factory.pool_count() == 0


def test_create_pool_for_non_token_address(registry):
    _, factory, _, _, user = registry
    with pytest.raises(InvalidTokenAddress):
        factory.create_pool(user)


def test_create_pool_twice_for_same_token(registry):
    _, factory, token1, _, _ = registry
    pool = factory.create_pool(token1.address)
    with pytest.raises(AlreadyExistAnExchangeForThisToken):
        factory.create_pool(token1.address)
    assert factory.lookup(token1.address) is pool
    assert factory.pool_count() == 1


def test_lookup_unknown_token(registry):
    _, factory, _, token2, _ = registry
    assert factory.lookup(token2.address) is None
    assert factory.token_of("0xdeadbeef") is None


def test_token_to_token_swap(two_pools):
    bc, _, token1, token2, user, pool1, pool2 = two_pools
    bridged = (10 * 990 * ETH) // (100 * 1000 + 10 * 990)

    bought = pool1.token_to_token_swap(user, 10, 1, token2.address)

    assert bought == 8
    assert token1.balance_of(user) == 90
    assert token2.balance_of(user) == 8
    assert pool1.get_reserves() == (ETH - bridged, 110)
    assert pool2.get_reserves() == (ETH + bridged, 92)
    (name, payload), = bc.get_events(event_name="TokenToToken")
    assert payload["tokens_sold"] == 10
    assert payload["tokens_bought"] == 8


def test_token_to_token_second_hop_failure_undoes_first(two_pools):
    bc, _, token1, token2, user, pool1, pool2 = two_pools
    reserves1, reserves2 = pool1.get_reserves(), pool2.get_reserves()

    with pytest.raises(InsufficientOutputAmount):
        pool1.token_to_token_swap(user, 10, 9, token2.address)

    assert pool1.get_reserves() == reserves1
    assert pool2.get_reserves() == reserves2
    assert token1.balance_of(user) == 100
    assert token2.balance_of(user) == 0
    assert token1.allowance(user, pool1.address) == 100
    assert bc.get_events(event_name="TokenToToken") == []


def test_token_to_token_without_liquidity(registry):
    _, factory, token1, token2, user = registry
    pool1 = factory.create_pool(token1.address)
    factory.create_pool(token2.address)
    with pytest.raises(InvalidReserves):
        pool1.token_to_token_swap(user, 100, 10, token2.address)


def test_token_to_token_to_unregistered_token(registry):
    bc, factory, token1, _, user = registry
    pool1 = factory.create_pool(token1.address)
    stray = TokenAgent(pool1.model, bc, name="Stray", symbol="STR")
    with pytest.raises(InvalidReserves):
        pool1.token_to_token_swap(user, 10, 1, stray.address)
    with pytest.raises(InvalidReserves):
        pool1.token_to_token_swap(user, 10, 1, token1.address)
