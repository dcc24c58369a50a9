import logging
from typing import Optional

from stableramp.core.config import settings

logger = logging.getLogger(__name__)

DEFAULT_SYMBOL = "AlphaUSD"


def normalize_address(address: Optional[str]) -> str:
    return (address or "").strip().lower()


def token_address_for_symbol(symbol: Optional[str]) -> str:
    """Resolve a stablecoin symbol, falling back to AlphaUSD for unknown ones."""
    symbols = settings.token_symbols
    address = symbols.get((symbol or "").strip())
    if not address:
        logger.warning(f"Token address not found for {symbol!r}, using {DEFAULT_SYMBOL}")
        address = symbols[DEFAULT_SYMBOL]
    return normalize_address(address)
