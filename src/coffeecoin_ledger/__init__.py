"""CoffeeCoin loyalty ledger: Etherscan aggregation over the CoffeeCoin ERC-20."""

__version__ = "0.1.0"
