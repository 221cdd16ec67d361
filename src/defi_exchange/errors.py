"""Exchange error classes.

Every error aborts the call that raised it; chain state is restored by
``BlockchainAgent.atomic``. Names mirror the revert reasons of the
on-chain exchange.
"""


class ExchangeError(Exception):
    """Base error for exchange, registry and ledger operations."""

    pass


# --- Registry ---

class RegistryError(ExchangeError):
    """Base error for registry preconditions."""

    pass


class InvalidTokenAddress(RegistryError):
    """Token address is the zero address or does not name a token contract."""

    pass


class AlreadyExistAnExchangeForThisToken(RegistryError):
    """A pool is already registered for this token."""

    pass


# --- Pricing and swaps ---

class PricingError(ExchangeError):
    """Base error for pricing and swap operations."""

    pass


class InvalidReserves(PricingError):
    """Pricing attempted against an empty or nonexistent pool."""

    pass


class InvalidTokenAmountSold(PricingError):
    """Input amount to a pricing call must be positive."""

    pass


class InsufficientTokenSold(PricingError):
    """Input amount to a swap must be positive."""

    pass


class InsufficientOutputAmount(PricingError):
    """Computed output fell below the caller's slippage floor."""

    pass


# --- Liquidity ---

class LiquidityError(ExchangeError):
    """Base error for liquidity provision and removal."""

    pass


class InsufficientTokenAmount(LiquidityError):
    """Declared token amount is below what the current ratio requires."""

    pass


class InvalidAmountToRemove(LiquidityError):
    """Share amount is zero or exceeds the holder's balance."""

    pass


class InvalidLiquidityAmount(LiquidityError):
    """Native deposit is non-positive or too small to mint a share."""

    pass


# --- Ledger ---

class LedgerError(ExchangeError):
    """Base error for fungible ledger operations."""

    pass


class InsufficientBalance(LedgerError):
    pass


class InsufficientAllowance(LedgerError):
    pass


class InvalidRecipient(LedgerError):
    """Transfers and mints to the zero address are rejected."""

    pass


class InvalidAmount(LedgerError):
    """Ledger amounts must be non-negative integers."""

    pass


class Unauthorized(LedgerError):
    """Caller is not allowed to mint or burn on a gated ledger."""

    pass
