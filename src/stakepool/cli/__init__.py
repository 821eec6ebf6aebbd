"""Command-line tools for staking pools."""
