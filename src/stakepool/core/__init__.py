"""
stakepool Core Module

Shared building blocks for the staking pool:
- Exception hierarchy
- Asset ledger used for stake and reward transfers
- Tick sources
- Configuration, logging and metrics
"""

__all__ = []
