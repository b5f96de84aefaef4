"""Utilities for working with EVM-compatible chains."""

from __future__ import annotations

# Function selectors (first 4 bytes of keccak256 of the signature)
ERC20_APPROVE_SELECTOR = '0x095ea7b3'    # approve(address,uint256)
ERC20_ALLOWANCE_SELECTOR = '0xdd62ed3e'  # allowance(address,address)
ERC20_BALANCE_OF_SELECTOR = '0x70a08231'  # balanceOf(address)
ERC20_DECIMALS_SELECTOR = '0x313ce567'   # decimals()


def to_hex_chain_id(chain_id: int) -> str:
    """EIP-5792 keys capabilities by hex chain id (``0x2105`` for Base)."""

    return hex(chain_id)


def encode_uint256(value: int) -> str:
    """Encode a uint256 as a 32-byte hex word (without 0x prefix)."""

    if value < 0 or value >= 2**256:
        raise ValueError(f'uint256 out of range: {value}')
    return format(value, '064x')


def encode_address(address: str) -> str:
    """Encode an address as a 32-byte hex word (without 0x prefix)."""

    addr = address.lower()
    if addr.startswith('0x'):
        addr = addr[2:]
    if len(addr) != 40:
        raise ValueError(f'Invalid address: {address}')
    return addr.zfill(64)


def encode_call(selector: str, *words: str) -> str:
    return selector + ''.join(words)


def decode_uint256(result: str) -> int:
    """Decode the first word of an ``eth_call`` result; empty results are 0."""

    body = (result or '0x')[2:] if (result or '').startswith('0x') else (result or '')
    if not body:
        return 0
    return int(body[:64], 16)


__all__ = [
    'ERC20_APPROVE_SELECTOR',
    'ERC20_ALLOWANCE_SELECTOR',
    'ERC20_BALANCE_OF_SELECTOR',
    'ERC20_DECIMALS_SELECTOR',
    'to_hex_chain_id',
    'encode_uint256',
    'encode_address',
    'encode_call',
    'decode_uint256',
]
