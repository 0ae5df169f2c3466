#!/usr/bin/env python3
import asyncio
import logging
import time
from typing import Optional, Dict, List

import aiohttp
from alerts.models import MarketSnapshot
from constants import (ANY_CHAIN, DEFAULT_CHAIN, DEXSCREENER_API_BASE_URL,
                       DEXSCREENER_RATE_LIMIT_DELAY)

logger = logging.getLogger(__name__)


async def api_get(url: str, session: aiohttp.ClientSession, retries: int = 3, timeout: int = 30) -> Optional[Dict]:
    """Makes an async GET request with retries and timeout."""
    for attempt in range(retries):
        try:
            async with session.get(url, timeout=aiohttp.ClientTimeout(total=timeout)) as response:
                response.raise_for_status()
                return await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            if attempt < retries - 1:
                await asyncio.sleep(2)
            else:
                logger.warning("API request failed after %d attempts: %s", retries, e)
                return None
    return None


def _to_float(value) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def select_best_pair(pairs: List[Dict], chain: str = DEFAULT_CHAIN) -> Optional[Dict]:
    """Highest liquidity.usd on the chain; ties keep the first pair seen."""
    best = None
    best_liquidity = 0.0
    for pair in pairs:
        if not isinstance(pair, dict):
            continue
        if chain != ANY_CHAIN and pair.get('chainId') != chain:
            continue
        liquidity = _to_float((pair.get('liquidity') or {}).get('usd'))
        if best is None or liquidity > best_liquidity:
            best = pair
            best_liquidity = liquidity
    return best


def snapshot_from_pair(token_address: str, pair: Dict) -> MarketSnapshot:
    """Every numeric field falls back to 0 when missing or unparsable."""
    market_cap = pair.get('marketCap')
    if market_cap is None:
        market_cap = pair.get('fdv')
    return MarketSnapshot(
        token_address=token_address,
        price=_to_float(pair.get('priceUsd')),
        change_24h=_to_float((pair.get('priceChange') or {}).get('h24')),
        market_cap=_to_float(market_cap),
        volume_24h=_to_float((pair.get('volume') or {}).get('h24')),
        liquidity_usd=_to_float((pair.get('liquidity') or {}).get('usd')),
        dex_id=pair.get('dexId'),
        pair_address=pair.get('pairAddress'),
    )


class DexScreenerClient:
    """Market data fetcher keyed by token address.

    Calls are spaced by at least ``rate_limit_delay`` seconds across every
    caller sharing this client, so concurrent token groups stay polite.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        chain: str = DEFAULT_CHAIN,
        rate_limit_delay: float = DEXSCREENER_RATE_LIMIT_DELAY,
    ):
        self.session = session
        self.chain = chain
        self._last_request_time = 0.0
        self._rate_limit_delay = rate_limit_delay
        self._rate_lock = asyncio.Lock()

    async def _wait_for_rate_limit(self):
        async with self._rate_lock:
            elapsed = time.time() - self._last_request_time
            if elapsed < self._rate_limit_delay:
                await asyncio.sleep(self._rate_limit_delay - elapsed)
            self._last_request_time = time.time()

    async def get_token_pairs(self, token_address: str) -> List[Dict]:
        """Returns every trading pair DexScreener lists for the token."""
        await self._wait_for_rate_limit()
        url = f"{DEXSCREENER_API_BASE_URL}/tokens/{token_address}"
        data = await api_get(url, self.session)
        if not data or not isinstance(data.get('pairs'), list):
            return []
        return data['pairs']

    async def fetch_snapshot(self, token_address: str) -> Optional[MarketSnapshot]:
        """Snapshot of the most liquid pair, or None when the token has no usable pair."""
        try:
            pairs = await self.get_token_pairs(token_address)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Market data fetch failed for %s: %s", token_address, exc)
            return None

        pair = select_best_pair(pairs, self.chain)
        if pair is None:
            logger.info("No %s trading pairs found for %s", self.chain, token_address)
            return None
        return snapshot_from_pair(token_address, pair)
