"""
Holder rewards worker: cached holder/market reads and a cycle-driven payout engine.
"""

__version__ = "0.1.0"
