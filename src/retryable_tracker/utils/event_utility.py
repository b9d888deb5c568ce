"""
Helpers for reading raw receipt logs.

Receipt fields come back as HexBytes from web3 but as hex strings from
hand-built fixtures and some providers, so every reader here accepts both.
"""

from typing import Any

from web3 import Web3


def to_bytes(value: Any) -> bytes:
    """
    Convert a topic or data field (bytes or hex string) to bytes.

    :param value: The value to convert (bytes, str, or None)
    :return: Raw bytes, empty for missing values
    """
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    elif isinstance(value, str):
        hex_str = value[2:] if value.startswith('0x') else value
        return bytes.fromhex(hex_str)
    elif value is None:
        return b''
    raise TypeError(f"Cannot convert {type(value).__name__} to bytes")


def to_hex32(value: Any) -> str:
    """Normalize a 32-byte hash (bytes or hex string) to a 0x-prefixed lowercase string."""
    return '0x' + to_bytes(value).rjust(32, b'\0').hex()


def parse_event_topic_as_int(topic: Any) -> int:
    """
    Parse an event topic (bytes or hex string) as an integer.

    Ethereum event topics can come in different formats depending on the provider:
    - As bytes objects: b'\x00\x00...\xaa6\xa7'
    - As hex strings: "0x000000000000000000000000000000000000aa36a7"

    :param topic: The topic to parse (bytes, str, or other)
    :return: Integer value of the topic
    """
    if isinstance(topic, bytes):
        return int.from_bytes(topic, byteorder='big')
    elif isinstance(topic, str):
        hex_str = topic[2:] if topic.startswith('0x') else topic
        return int(hex_str, 16) if hex_str else 0
    else:
        return 0


def parse_event_topic_as_address(topic: Any) -> str:
    """Parse a left-padded address topic into a checksummed address."""
    return Web3.to_checksum_address(to_bytes(topic)[-20:])


def uint_to_address(value: int) -> str:
    """Interpret a uint256 word as a checksummed address."""
    return Web3.to_checksum_address(value.to_bytes(32, 'big')[-20:])


def parse_quantity(value: Any) -> int:
    """Parse an RPC quantity that may be an int or a hex string (e.g. Arbitrum's sendCount)."""
    if isinstance(value, int):
        return value
    return parse_event_topic_as_int(value)


def log_address(log: Any) -> str:
    """Lowercased emitting address of a log."""
    return str(log.get('address', '')).lower()


def log_topics(log: Any) -> list[bytes]:
    """Topics of a log as raw bytes."""
    return [to_bytes(topic) for topic in log.get('topics', [])]


def event_topic(signature: str) -> bytes:
    """Topic hash of an event signature, e.g. "Transfer(address,address,uint256)"."""
    return bytes(Web3.keccak(text=signature))
