"""
Routing components: quote resolution, allowance management and the router gate.
"""

from .resolver import QuoteResolver, DEFAULT_SLIPPAGE_BPS
from .allowance import AllowanceManager
from .router_gate import RouterGate

__all__ = [
    "QuoteResolver",
    "DEFAULT_SLIPPAGE_BPS",
    "AllowanceManager",
    "RouterGate",
]
