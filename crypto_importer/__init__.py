"""
crypto-importer: imports historical exchange klines into Redis
"""

__version__ = "1.0.0"
