"""
stakepool - Time-Windowed Staking Ledger

Participants deposit a stake asset and accrue a reward asset at a configurable
rate per tick, proportional to their share of the pool.

Main Components:
- Staking: pool ledger, account store and the operation layer
- Treasury: custodial holder of undistributed reward funds
- Core: asset ledger, tick sources, configuration, logging and metrics
- CLI: scenario replay and preset inspection
"""

__version__ = "0.1.0"
__author__ = "stakepool Development Team"

__all__ = []
