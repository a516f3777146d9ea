"""Integer arithmetic for the rake and parimutuel payouts.

All amounts are non-negative integers in minimal currency units and every
division floors, so the ledger can never promise more than it holds. The
undistributed remainder ("dust") stays in the ledger.
"""

BPS_DENOMINATOR = 10_000
DEFAULT_RAKE_BPS = 300  # 3%


def calculate_rake(total_pool: int, rake_bps: int = DEFAULT_RAKE_BPS) -> int:
    """Platform fee on the full pool: floor(total_pool * rake_bps / 10000)."""
    if total_pool < 0:
        raise ValueError(f"Total pool must be non-negative, got {total_pool}")
    if not (0 <= rake_bps <= BPS_DENOMINATOR):
        raise ValueError(f"Rake must be between 0 and {BPS_DENOMINATOR} bps, got {rake_bps}")

    return total_pool * rake_bps // BPS_DENOMINATOR


def calculate_payout(user_stake: int, net_pool: int, winning_pool: int) -> int:
    """Proportional share of the net pool: floor(user_stake * net_pool / winning_pool)."""
    if user_stake < 0:
        raise ValueError(f"Stake must be non-negative, got {user_stake}")
    if net_pool < 0:
        raise ValueError(f"Net pool must be non-negative, got {net_pool}")
    if winning_pool <= 0:
        raise ValueError(f"Winning pool must be positive, got {winning_pool}")
    if user_stake > winning_pool:
        raise ValueError(
            f"Stake {user_stake} cannot exceed the winning pool {winning_pool}"
        )

    return user_stake * net_pool // winning_pool
