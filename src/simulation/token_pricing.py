# === MODULE PURPOSE ===
# Deterministic base prices for opaque token identifiers.
# Shared by scenario generation and historical replay.

# === KEY CONCEPTS ===
# - Stable hash: SHA-256 based, identical across processes and platforms
# - Price band: BTC-like, ETH-like, stablecoin or other, chosen by token name
# - Band price: hash value folded into the band's price range

import hashlib
from enum import Enum

# Values are masked to 31 bits so modulo arithmetic stays non-negative
_HASH_MASK = 0x7FFFFFFF


class PriceBand(Enum):
    """Price regime assigned to a token."""

    BTC = "btc"  # 30,000 - 50,000
    ETH = "eth"  # 1,500 - 3,500
    STABLECOIN = "stablecoin"  # 0.98 - 1.03
    OTHER = "other"  # 0.1 - 100.1


def stable_hash(text: str) -> int:
    """
    Hash text to a non-negative 31-bit integer.

    Uses the first 8 bytes (big-endian) of the SHA-256 digest of the UTF-8
    encoded text. Not meant to be secure, only reproducible.
    """
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big") & _HASH_MASK


def stable_fraction(text: str) -> float:
    """Map text to a reproducible float in [0, 1)."""
    return stable_hash(text) / (_HASH_MASK + 1)


def classify_token(token: str) -> PriceBand:
    """
    Pick the price band for a token by case-insensitive name matching.

    Checked in order, so "WBTC-ETH" lands in the BTC band.
    """
    name = token.lower()
    if "btc" in name:
        return PriceBand.BTC
    if "eth" in name:
        return PriceBand.ETH
    if "usdc" in name or "usdt" in name:
        return PriceBand.STABLECOIN
    return PriceBand.OTHER


def band_price(band: PriceBand, hash_value: int) -> float:
    """Fold a hash value into the price range of a band."""
    if band == PriceBand.BTC:
        return 30000.0 + (hash_value % 20000)
    if band == PriceBand.ETH:
        return 1500.0 + (hash_value % 2000)
    if band == PriceBand.STABLECOIN:
        return 0.98 + (hash_value % 5) / 100
    return 0.1 + (hash_value % 1000) / 10


def base_price(token: str) -> float:
    """Time-independent base price of a token."""
    return band_price(classify_token(token), stable_hash(token))
