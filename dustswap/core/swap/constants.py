"""Constants and token metadata for consolidation swaps."""

from __future__ import annotations

from typing import Dict, Optional, Tuple

# 0x (and most aggregators) use this sentinel for the chain's native coin.
NATIVE_TOKEN_ADDRESS = '0xeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeee'
ZERO_ADDRESS = '0x0000000000000000000000000000000000000000'
NATIVE_ALIASES: Tuple[str, ...] = (NATIVE_TOKEN_ADDRESS, ZERO_ADDRESS)

MAX_UINT256 = 2**256 - 1

BASE_CHAIN_ID = 8453

# Default consolidation targets keyed by chain ID.
# Addresses intentionally lowercased to simplify comparisons.
OUTPUT_TOKENS: Dict[int, Dict[str, Dict[str, object]]] = {
    8453: {
        'USDC': {
            'symbol': 'USDC',
            'address': '0x833589fcd6edb6e08f4c7c32d4f71b54bda02913',
            'decimals': 6,
        },
        'WETH': {
            'symbol': 'WETH',
            'address': '0x4200000000000000000000000000000000000006',
            'decimals': 18,
        },
    },
    1: {
        'USDC': {
            'symbol': 'USDC',
            'address': '0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48',
            'decimals': 6,
        },
    },
}


def normalize_address(address: str) -> str:
    return (address or '').strip().lower()


def is_native(address: str) -> bool:
    return normalize_address(address) in NATIVE_ALIASES


def default_output_token(chain_id: int) -> Dict[str, object]:
    tokens = OUTPUT_TOKENS.get(chain_id) or OUTPUT_TOKENS[BASE_CHAIN_ID]
    return tokens['USDC']


def output_token_symbol(chain_id: int, address: str) -> str:
    """Symbol of a known output token, or a shortened address."""
    token = normalize_address(address)
    for meta in (OUTPUT_TOKENS.get(chain_id) or {}).values():
        if meta['address'] == token:
            return str(meta['symbol'])
    return f"{token[:6]}...{token[-4:]}" if token else ''


def output_token_decimals(chain_id: int, address: str) -> Optional[int]:
    token = normalize_address(address)
    for meta in (OUTPUT_TOKENS.get(chain_id) or {}).values():
        if meta['address'] == token:
            return int(meta['decimals'])
    return None


__all__ = [
    'NATIVE_TOKEN_ADDRESS',
    'ZERO_ADDRESS',
    'NATIVE_ALIASES',
    'MAX_UINT256',
    'BASE_CHAIN_ID',
    'OUTPUT_TOKENS',
    'normalize_address',
    'is_native',
    'default_output_token',
    'output_token_symbol',
    'output_token_decimals',
]
