"""
Time-weighted return engine for brokerage accounts.
"""

__version__ = "1.0.0"
