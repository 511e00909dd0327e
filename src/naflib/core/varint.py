"""
Variable-length encoding of non-negative integers.

Each byte carries 7 data bits, least-significant group first, and the high bit flags that more bytes follow.
Values are limited to unsigned 64-bit integers (at most 10 bytes).

Examples:
    >>> encode_varint(300)
    b'\\xac\\x02'
    >>> decode_varint(b'\\xac\\x02')
    (300, 2)
"""
from typing import Iterable, BinaryIO

from naflib.errors import TruncatedInput, Overflow


# Constants ------------------------------------------------------------------------------------------------------------
MAX_VALUE = (1 << 64) - 1
MAX_BYTES = 10
_CONTINUE = 0x80
_PAYLOAD = 0x7F


# Functions ------------------------------------------------------------------------------------------------------------
def encode_varint(value: int) -> bytes:
    """
    Encodes a non-negative integer as a varint.

    Args:
        value: Integer in ``[0, 2**64)``.

    Returns:
        The encoded bytes (1-10 bytes).

    Raises:
        ValueError: If ``value`` is negative.
        Overflow: If ``value`` does not fit in 64 bits.
    """
    value = int(value)
    if value < 0: raise ValueError(f'Cannot encode negative value: {value}')
    if value > MAX_VALUE: raise Overflow(f'Value {value} does not fit in 64 bits')
    out = bytearray()
    while value > _PAYLOAD:
        out.append((value & _PAYLOAD) | _CONTINUE)
        value >>= 7
    out.append(value)
    return bytes(out)


def encode_varints(values: Iterable[int]) -> bytes:
    """Encodes a sequence of integers as concatenated varints."""
    return b''.join(encode_varint(v) for v in values)


def decode_varint(data: bytes, offset: int = 0) -> tuple[int, int]:
    """
    Decodes a single varint from a buffer.

    Args:
        data: Buffer holding the encoded value.
        offset: Position of the first byte of the varint.

    Returns:
        A tuple of ``(value, offset)`` where ``offset`` points just past the varint.

    Raises:
        TruncatedInput: If the buffer ends before the terminating byte.
        Overflow: If the encoded value is wider than 64 bits.
    """
    value = shift = 0
    pos = offset
    while True:
        if pos >= len(data): raise TruncatedInput('Buffer ended inside a varint', offset=pos)
        byte = data[pos]
        pos += 1
        value |= (byte & _PAYLOAD) << shift
        if value > MAX_VALUE or pos - offset > MAX_BYTES:
            raise Overflow('Varint does not fit in 64 bits', offset=offset)
        if not byte & _CONTINUE: return value, pos
        shift += 7


def read_varint(handle: BinaryIO) -> int:
    """
    Reads a single varint from a binary handle, one byte at a time.

    Args:
        handle: Any object with a ``read(size)`` method returning bytes.

    Returns:
        The decoded integer.

    Raises:
        TruncatedInput: If the handle is exhausted before the terminating byte.
        Overflow: If the encoded value is wider than 64 bits.
    """
    value = shift = n = 0
    while True:
        byte = handle.read(1)
        if not byte: raise TruncatedInput('Source ended inside a varint')
        byte = byte[0]
        n += 1
        value |= (byte & _PAYLOAD) << shift
        if value > MAX_VALUE or n > MAX_BYTES: raise Overflow('Varint does not fit in 64 bits')
        if not byte & _CONTINUE: return value
        shift += 7

