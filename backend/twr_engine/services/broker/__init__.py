"""
Broker clients implementing the snapshot, cash-flow and live-balance sources.
"""

from .base import BaseBrokerClient, error_for_status
from .alpaca import AlpacaBrokerClient, parse_portfolio_history
from .factory import BrokerClientFactory

__all__ = [
    "BaseBrokerClient",
    "AlpacaBrokerClient",
    "BrokerClientFactory",
    "error_for_status",
    "parse_portfolio_history",
]
