"""Helpers for validating and normalizing blockchain addresses and hashes."""

from __future__ import annotations

import re
from typing import Any

from hexbytes import HexBytes

ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")
TX_HASH_PATTERN = re.compile(r"^0x[a-fA-F0-9]{64}$")


def normalize_eth_address(value: str) -> str:
    """Validate and normalize an Ethereum address to lowercase hex."""
    if value is None:
        raise ValueError("Address cannot be null")
    address = value.strip()
    if not ADDRESS_PATTERN.fullmatch(address):
        raise ValueError("Invalid Ethereum address format")
    return address.lower()


def normalize_tx_hash(value: str) -> str:
    """Validate a transaction hash and return it lowercased."""
    if value is None:
        raise ValueError("Transaction hash cannot be null")
    tx_hash = value.strip()
    if not TX_HASH_PATTERN.fullmatch(tx_hash):
        raise ValueError("Invalid transaction hash format")
    return tx_hash.lower()


def to_hex(value: Any) -> str:
    """Render bytes-like RPC values (HexBytes, bytes, str) as 0x-prefixed hex."""
    if isinstance(value, str):
        return value.lower() if value.startswith("0x") else "0x" + value.lower()
    return "0x" + bytes(HexBytes(value)).hex()


def address_to_topic(address: str) -> str:
    """Left-pad an address into a 32-byte indexed event topic."""
    return ("0x" + address[2:].rjust(64, "0")).lower()


def topic_to_address(topic: Any) -> str:
    """Extract the lowercase address stored in the last 20 bytes of a topic."""
    return "0x" + to_hex(topic)[-40:]


__all__ = [
    "normalize_eth_address",
    "normalize_tx_hash",
    "to_hex",
    "address_to_topic",
    "topic_to_address",
]
