"""Economic primitives for the IDL Arena.

Pure integer functions mirroring the settlement arithmetic of the IDL
prediction-market program:
- Checked 128-bit arithmetic helpers
- Staking bonus and effective bet amount
- Vote-escrow accrual
- Parimutuel payout and fee distribution

All amounts are token base units (6 decimals). Every intermediate value is
kept inside the unsigned (or, for PnL, signed) 128-bit range; leaving it is
an invariant violation and aborts the run.
"""

from dataclasses import dataclass

from .errors import ArithmeticOverflow, InvariantViolation

TOKEN_DECIMALS = 6
TOKEN_UNIT = 10 ** TOKEN_DECIMALS

BPS_DENOMINATOR = 10_000

# Protocol constants (seconds / basis points)
MAX_LOCK_DURATION = 126_144_000  # 4 years
MIN_LOCK_DURATION = 604_800  # 1 week
MIN_RESOLUTION_WINDOW = 3_600  # markets resolve at least 1 hour out
MAX_TARGET_VALUE = 2 ** 64 - 1  # targets are u64 on the program
MAX_TIMESTAMP = 2 ** 63 - 1  # i64 unix seconds

BET_FEE_BPS = 300  # 3% of gross winnings
STAKER_FEE_SHARE_BPS = 5_000
CREATOR_FEE_SHARE_BPS = 2_500
TREASURY_FEE_SHARE_BPS = 1_500
BURN_FEE_SHARE_BPS = 1_000

STAKE_BONUS_UNIT = 1_000_000  # bonus accrues per million base units staked
STAKE_BONUS_BPS_PER_UNIT = 100
MAX_STAKE_BONUS_BPS = 5_000  # 50% cap

U128_MAX = 2 ** 128 - 1
I128_MIN = -(2 ** 127)
I128_MAX = 2 ** 127 - 1


def _check_u128(value: int, op: str) -> int:
    if value < 0 or value > U128_MAX:
        raise ArithmeticOverflow(f"{op} left the u128 range: {value}")
    return value


def checked_add(a: int, b: int) -> int:
    """Unsigned add; raises ArithmeticOverflow outside [0, 2**128)."""
    return _check_u128(a + b, "add")


def checked_sub(a: int, b: int) -> int:
    """Unsigned subtract; a negative result is an underflow."""
    return _check_u128(a - b, "sub")


def checked_mul(a: int, b: int) -> int:
    """Unsigned multiply."""
    return _check_u128(a * b, "mul")


def checked_signed_add(a: int, b: int) -> int:
    """Signed add used for profit/loss tracking."""
    value = a + b
    if value < I128_MIN or value > I128_MAX:
        raise ArithmeticOverflow(f"signed add left the i128 range: {value}")
    return value


def _require_non_negative(**values: int) -> None:
    for name, value in values.items():
        if value < 0:
            raise InvariantViolation(f"{name} must be non-negative, got {value}")


def staking_bonus_bps(staked_amount: int) -> int:
    """Bonus in basis points granted to a bettor for their staked balance.

    100 bps per million base units staked, saturating at 5000 bps (50%).

    Args:
        staked_amount: Staked base units

    Returns:
        Bonus in basis points (0-5000)
    """
    _require_non_negative(staked_amount=staked_amount)
    units = staked_amount // STAKE_BONUS_UNIT
    return min(checked_mul(units, STAKE_BONUS_BPS_PER_UNIT), MAX_STAKE_BONUS_BPS)


def effective_amount(amount: int, bonus_bps: int) -> int:
    """Principal plus staking bonus, truncated to whole base units."""
    _require_non_negative(amount=amount, bonus_bps=bonus_bps)
    multiplier = checked_add(BPS_DENOMINATOR, bonus_bps)
    return checked_mul(amount, multiplier) // BPS_DENOMINATOR


def vote_escrow(
    amount: int,
    lock_seconds: int,
    max_lock_seconds: int = MAX_LOCK_DURATION,
) -> int:
    """Vote-escrow power for locking `amount` for `lock_seconds`.

    Linear in lock length: amount * lock / max_lock. The lock is clamped to
    [0, max_lock_seconds] so the result always lies in [0, amount].

    Args:
        amount: Staked base units being locked
        lock_seconds: Requested lock duration
        max_lock_seconds: Duration granting a 1:1 ratio

    Returns:
        veIDL amount
    """
    _require_non_negative(amount=amount)
    if max_lock_seconds <= 0:
        raise InvariantViolation(f"max_lock_seconds must be positive, got {max_lock_seconds}")
    lock = max(0, min(lock_seconds, max_lock_seconds))
    return checked_mul(amount, lock) // max_lock_seconds


@dataclass(frozen=True)
class Payout:
    """Settlement of one winning bet.

    Attributes:
        share: Portion of the losing pool won
        gross: Principal returned plus share
        fee: Protocol fee taken from gross
        net: Amount credited to the bettor
    """
    share: int
    gross: int
    fee: int
    net: int


def parimutuel_payout(
    principal: int,
    effective_principal: int,
    winning_pool: int,
    losing_pool: int,
    fee_bps: int = BET_FEE_BPS,
) -> Payout:
    """Compute the payout for a winning parimutuel position.

    share = effective_principal * losing_pool // winning_pool. All operands
    are non-negative so integer division truncates toward zero; the
    fractional remainder stays in the pool. An empty winning pool pays no
    share (the principal is still returned).

    Example: principal=100, effective=110, pools 1000/500, 300 bps gives
    share=55, gross=155, fee=4, net=151.
    """
    _require_non_negative(
        principal=principal,
        effective_principal=effective_principal,
        winning_pool=winning_pool,
        losing_pool=losing_pool,
        fee_bps=fee_bps,
    )
    if winning_pool == 0:
        share = 0
    else:
        share = checked_mul(effective_principal, losing_pool) // winning_pool
    gross = checked_add(principal, share)
    fee = checked_mul(gross, fee_bps) // BPS_DENOMINATOR
    net = checked_sub(gross, fee)
    return Payout(share=share, gross=gross, fee=fee, net=net)


@dataclass(frozen=True)
class FeeSplit:
    """Distribution of a protocol fee."""
    staker_share: int
    creator_share: int
    treasury_share: int
    burn_share: int

    @property
    def total(self) -> int:
        return self.staker_share + self.creator_share + self.treasury_share + self.burn_share


def fee_split(fee: int) -> FeeSplit:
    """Split a fee 50/25/15/10 between stakers, creator, treasury and burn.

    Rounding dust is assigned to the treasury so the shares sum to `fee`.
    """
    _require_non_negative(fee=fee)
    staker = checked_mul(fee, STAKER_FEE_SHARE_BPS) // BPS_DENOMINATOR
    creator = checked_mul(fee, CREATOR_FEE_SHARE_BPS) // BPS_DENOMINATOR
    burn = checked_mul(fee, BURN_FEE_SHARE_BPS) // BPS_DENOMINATOR
    treasury = checked_sub(fee, staker + creator + burn)
    return FeeSplit(
        staker_share=staker,
        creator_share=creator,
        treasury_share=treasury,
        burn_share=burn,
    )


def market_fee_revenue(yes_pool: int, no_pool: int, fee_bps: int = BET_FEE_BPS) -> int:
    """Fee revenue attributed to a market: fee_bps of its total pool volume."""
    _require_non_negative(yes_pool=yes_pool, no_pool=no_pool)
    return checked_mul(checked_add(yes_pool, no_pool), fee_bps) // BPS_DENOMINATOR


def yes_ratio_pct(yes_pool: int, no_pool: int) -> int:
    """Integer percentage of the pool on YES; 50 for an empty market."""
    total = yes_pool + no_pool
    if total <= 0:
        return 50
    return yes_pool * 100 // total


def format_tokens(amount: int) -> str:
    """Human-readable token amount (e.g. 1.25K, -3.10M)."""
    value = amount / TOKEN_UNIT
    if abs(value) >= 1_000_000:
        return f"{value / 1_000_000:.2f}M"
    if abs(value) >= 1_000:
        return f"{value / 1_000:.2f}K"
    return f"{value:.2f}"
