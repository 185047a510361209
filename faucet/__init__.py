"""Sepolia faucet bot: claims testnet ETH and hands it out over HTTP."""

__version__ = "0.1.0"
