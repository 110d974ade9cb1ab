"""DCAFlow - A martingale-style DCA trading bot and backtester."""

import warnings

__version__ = "0.1.0"


# ccxt's async transport leaves aiohttp sessions to the garbage collector when
# a poll loop is torn down by a signal
warnings.filterwarnings("ignore", message="Unclosed client session")
warnings.filterwarnings("ignore", message="Unclosed connector")
