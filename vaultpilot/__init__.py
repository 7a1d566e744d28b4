"""Automates aggregator-routed vault deposits and redemptions on EVM chains."""

__version__ = "0.1.0"
