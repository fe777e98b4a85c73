"""Crowdsale purchase watcher: on-chain sale events to Telegram."""

__version__ = "0.1.0"
