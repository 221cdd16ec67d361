import sys
from pathlib import Path
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from defi_exchange.agents.curves import BaseCurve, ConstantProductCurve
from defi_exchange.errors import InvalidReserves

ETH = 10 ** 18


def test_base_curve_is_abstract():
    with pytest.raises(TypeError):
        BaseCurve()


def test_compute_swap_reports_retained_fee():
    curve = ConstantProductCurve()
    out, fee = curve.compute_swap(1000, 300_000, 3_000)
    assert fee == 10
    assert out == (1000 * 990 * 3_000) // (300_000 * 1000 + 1000 * 990)


def test_compute_swap_propagates_pricing_errors():
    with pytest.raises(InvalidReserves):
        ConstantProductCurve().compute_swap(10, 0, 0)


def test_compute_deposit_empty_pool_accepts_any_ratio():
    curve = ConstantProductCurve()
    token_used, shares = curve.compute_deposit(
        native_amount=1, native_reserve=0, token_reserve=0, total_shares=0, token_amount=100
    )
    assert token_used == 100
    assert shares == 1


def test_compute_deposit_keeps_current_ratio():
    curve = ConstantProductCurve()
    token_used, shares = curve.compute_deposit(
        native_amount=2 * ETH,
        native_reserve=1 * ETH,
        token_reserve=100 * ETH,
        total_shares=1 * ETH,
        token_amount=500 * ETH,
    )
    assert token_used == 200 * ETH
    assert shares == 2 * ETH


def test_compute_deposit_rounds_down():
    curve = ConstantProductCurve()
    token_used, shares = curve.compute_deposit(
        native_amount=1, native_reserve=3, token_reserve=10, total_shares=3, token_amount=10
    )
    assert token_used == 3
    assert shares == 1


def test_compute_withdraw_pro_rata():
    curve = ConstantProductCurve()
    native_out, token_out = curve.compute_withdraw(
        share_amount=1 * ETH, native_reserve=3 * ETH, token_reserve=300 * ETH, total_shares=3 * ETH
    )
    assert native_out == 1 * ETH
    assert token_out == 100 * ETH


def test_compute_withdraw_everything_drains_pool():
    curve = ConstantProductCurve()
    assert curve.compute_withdraw(7, 13, 29, 7) == (13, 29)
