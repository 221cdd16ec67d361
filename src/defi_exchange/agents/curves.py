from abc import ABC, abstractmethod
from typing import Tuple

from defi_exchange.utils.math_helpers import FEE_DENOMINATOR, FEE_NUMERATOR, get_amount_out


class BaseCurve(ABC):
    """
    Abstract base class for pool pricing curves.

    All amounts are integers in smallest units and every method is a pure
    function of the reserves passed in; pools read their reserves once and
    hand that snapshot to the curve.

    To implement a custom curve, subclass this and implement the three required methods:
    - compute_swap
    - compute_deposit
    - compute_withdraw
    """

    @abstractmethod
    def compute_swap(self, amount_in: int, reserve_in: int, reserve_out: int) -> Tuple[int, int]:
        """
        Calculate output and retained fee for selling ``amount_in``.

        Args:
            amount_in (int): Amount of input asset provided.
            reserve_in (int): Current reserve of the input asset.
            reserve_out (int): Current reserve of the output asset.

        Returns:
            Tuple[int, int]: Output amount of the other asset, fee retained in the pool.
        """
        pass

    @abstractmethod
    def compute_deposit(
        self,
        native_amount: int,
        native_reserve: int,
        token_reserve: int,
        total_shares: int,
        token_amount: int,
    ) -> Tuple[int, int]:
        """
        Determine the token amount to pull and shares to mint for a deposit.

        Args:
            native_amount (int): Native amount deposited.
            native_reserve (int): Native reserve before the deposit.
            token_reserve (int): Token reserve before the deposit.
            total_shares (int): Shares outstanding before the deposit.
            token_amount (int): Token amount the provider offers.

        Returns:
            Tuple[int, int]: Token amount to pull, shares to mint.
        """
        pass

    @abstractmethod
    def compute_withdraw(
        self,
        share_amount: int,
        native_reserve: int,
        token_reserve: int,
        total_shares: int,
    ) -> Tuple[int, int]:
        """
        Determine the reserves returned when shares are redeemed.

        Args:
            share_amount (int): Shares to burn.
            native_reserve (int): Native reserve before the withdrawal.
            token_reserve (int): Token reserve before the withdrawal.
            total_shares (int): Shares outstanding before the withdrawal.

        Returns:
            Tuple[int, int]: Native amount and token amount to return.
        """
        pass


class ConstantProductCurve(BaseCurve):
    """
    Implements the constant product curve x * y = k with a fixed 1% input fee,
    as used by Uniswap v1 style exchanges.
    """

    def compute_swap(self, amount_in: int, reserve_in: int, reserve_out: int) -> Tuple[int, int]:
        amount_out = get_amount_out(amount_in, reserve_in, reserve_out)
        fee_amount = amount_in - amount_in * FEE_NUMERATOR // FEE_DENOMINATOR
        return amount_out, fee_amount

    def compute_deposit(
        self,
        native_amount: int,
        native_reserve: int,
        token_reserve: int,
        total_shares: int,
        token_amount: int,
    ) -> Tuple[int, int]:
        """
        An empty pool accepts any ratio and issues one share per native unit.
        Otherwise the deposit must match the current ratio; ``token_amount``
        is only an upper bound and the exact required amount is returned.
        """
        if total_shares == 0:
            return token_amount, native_amount

        token_required = native_amount * token_reserve // native_reserve
        shares = total_shares * native_amount // native_reserve
        return token_required, shares

    def compute_withdraw(
        self,
        share_amount: int,
        native_reserve: int,
        token_reserve: int,
        total_shares: int,
    ) -> Tuple[int, int]:
        native_amount = native_reserve * share_amount // total_shares
        token_amount = token_reserve * share_amount // total_shares
        return native_amount, token_amount
