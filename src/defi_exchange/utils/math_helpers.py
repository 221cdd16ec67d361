from defi_exchange.errors import InvalidReserves, InvalidTokenAmountSold

# 990 / 1000 of every input is priced; the other 1% stays in the pool.
FEE_NUMERATOR = 990
FEE_DENOMINATOR = 1000

PRICE_PRECISION = 1000


def get_price(reserve_a: int, reserve_b: int) -> int:
    """
    Return the ratio of two reserves scaled by ``PRICE_PRECISION``.

    With a precision of 1000 the result keeps three fractional digits
    using integer arithmetic only.

    Parameters
    ----------
    reserve_a : int
        Numerator reserve (e.g. the token reserve for the price of one
        native unit in tokens).
    reserve_b : int
        Denominator reserve.

    Returns
    -------
    int
        ``reserve_a * 1000 // reserve_b``.

    Raises
    ------
    InvalidReserves
        If either reserve is not positive.
    """
    if reserve_a <= 0 or reserve_b <= 0:
        raise InvalidReserves(f"Reserves must be positive, got {reserve_a} and {reserve_b}")
    return reserve_a * PRICE_PRECISION // reserve_b


def get_amount_out(amount_in: int, reserve_in: int, reserve_out: int) -> int:
    """
    Compute the output amount of a swap on the fee-adjusted constant-product curve.

    The fee is taken from the input before pricing:
    `amount_out = in_fee * reserve_out // (reserve_in * 1000 + in_fee)`
    with `in_fee = amount_in * 990`.

    Parameters
    ----------
    amount_in : int
        The input amount being sold into the pool.
    reserve_in : int
        Pool reserve of the input asset before the swap.
    reserve_out : int
        Pool reserve of the output asset before the swap.

    Returns
    -------
    int
        Amount of the output asset bought, rounded down.

    Raises
    ------
    InvalidReserves
        If either reserve is not positive.
    InvalidTokenAmountSold
        If ``amount_in`` is not positive.

    Notes
    -----
    Flooring means the trader never receives more than the exact amount, so
    ``reserve_in * reserve_out`` never decreases across a swap.
    """
    if reserve_in <= 0 or reserve_out <= 0:
        raise InvalidReserves(f"Reserves must be positive, got {reserve_in} and {reserve_out}")
    if amount_in <= 0:
        raise InvalidTokenAmountSold(f"Amount sold must be positive, got {amount_in}")

    amount_in_with_fee = amount_in * FEE_NUMERATOR
    numerator = amount_in_with_fee * reserve_out
    denominator = reserve_in * FEE_DENOMINATOR + amount_in_with_fee
    return numerator // denominator
