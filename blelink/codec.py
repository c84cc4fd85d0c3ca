"""Payload encoding helpers."""

from typing import Union

ENCODING_BYTES = "bytes"
ENCODING_HEX = "hex"
ENCODING_STRING = "string"

# "buffer" is accepted as an alias for raw bytes
_BYTES_ALIASES = (ENCODING_BYTES, "buffer")

Payload = Union[bytes, bytearray, memoryview, str]


def buf2hex(data: bytes) -> str:
    """Render bytes as lowercase hex without separators."""
    return bytes(data).hex()


def hex2buf(value: str) -> bytes:
    """Parse a hex string (whitespace and ':' separators allowed) into bytes."""
    cleaned = "".join(value.split()).replace(":", "")
    return bytes.fromhex(cleaned)


def str2buf(value: str) -> bytes:
    return value.encode("utf-8")


def encode_payload(value: Payload, encoding: str = ENCODING_BYTES) -> bytes:
    """
    Convert a caller payload into the bytes written to the peripheral.

    Parameters:
        value: Raw bytes-like object, or a string for the "hex" and "string" encodings.
        encoding (str): One of "bytes" (alias "buffer"), "hex" or "string".

    Returns:
        bytes: The encoded payload.

    Raises:
        ValueError: If the encoding is unknown or the value does not fit it.
    """
    if encoding in _BYTES_ALIASES:
        if isinstance(value, str):
            raise ValueError("bytes encoding expects a bytes-like payload, got str")
        return bytes(value)
    if encoding == ENCODING_HEX:
        if not isinstance(value, str):
            raise ValueError("hex encoding expects a str payload")
        return hex2buf(value)
    if encoding == ENCODING_STRING:
        if not isinstance(value, str):
            raise ValueError("string encoding expects a str payload")
        return str2buf(value)
    raise ValueError(f"Unknown payload encoding '{encoding}'")


__all__ = [
    "ENCODING_BYTES",
    "ENCODING_HEX",
    "ENCODING_STRING",
    "Payload",
    "buf2hex",
    "encode_payload",
    "hex2buf",
    "str2buf",
]
