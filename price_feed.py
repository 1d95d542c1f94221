"""DexScreener price feed — market cap lookup by token address."""

import json
import logging
import ssl
import time
import urllib.error
import urllib.parse
import urllib.request

from narrative_engine import sanitize_market_cap

log = logging.getLogger("narrative")

DEXSCREENER_TOKENS_URL = "https://api.dexscreener.com/latest/dex/tokens"
PRICE_FEED_TIMEOUT = 10  # seconds

try:
    import certifi
    _ssl_ctx = ssl.create_default_context(cafile=certifi.where())
except ImportError:
    _ssl_ctx = ssl.create_default_context()


class PriceFeedError(Exception):
    """The price feed could not be reached or returned something undecodable."""


def extract_market_cap(data) -> float:
    """Market cap of the first trading pair, or 0 if absent/unparseable."""
    if not isinstance(data, dict):
        return 0.0
    pairs = data.get("pairs") or []
    if not isinstance(pairs, list) or not pairs:
        return 0.0
    first = pairs[0]
    if not isinstance(first, dict):
        return 0.0
    return sanitize_market_cap(first.get("marketCap"))


def fetch_token_data(token: str, timeout: float = PRICE_FEED_TIMEOUT) -> dict:
    """GET the DexScreener token endpoint and return the decoded JSON."""
    url = f"{DEXSCREENER_TOKENS_URL}/{urllib.parse.quote(token, safe='')}"
    req = urllib.request.Request(url, headers={
        "Accept": "application/json",
        "User-Agent": "SoraNarrative/1.0",
    })
    t0 = time.time()
    try:
        with urllib.request.urlopen(req, timeout=timeout, context=_ssl_ctx) as resp:
            raw = resp.read().decode("utf-8")
    except urllib.error.HTTPError as e:
        raise PriceFeedError(f"DexScreener HTTP {e.code}") from e
    except (urllib.error.URLError, OSError) as e:
        raise PriceFeedError(f"DexScreener unreachable: {e}") from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise PriceFeedError(f"DexScreener returned non-JSON body: {e}") from e

    log.info("    price_feed: token=%s OK in %.1fs", token[:12], time.time() - t0)
    return data


def fetch_market_cap(token: str, timeout: float = PRICE_FEED_TIMEOUT) -> float:
    """Return the token's market cap. Missing pairs degrade to 0."""
    data = fetch_token_data(token, timeout=timeout)
    mc = extract_market_cap(data)
    if mc == 0:
        log.warning("    price_feed: no usable marketCap for token=%s", token[:12])
    return mc
