"""
Module for the symbol alphabets used to store sequences in NAF archives.

Nucleotide archives store one 4-bit code per symbol, two codes per byte, with the first symbol in the low nibble.
The code of a nucleotide is the bitwise union of its possible bases (A=8, C=4, G=2, T/U=1), so ambiguity codes
and the gap (``-``, code 0) fit in the same 16 symbols. Protein and text archives store raw bytes.
"""
from typing import Union, Final, ClassVar

import numpy as np

from naflib.core.header import SequenceType
from naflib.errors import InvalidSymbol


# Classes --------------------------------------------------------------------------------------------------------------
class Alphabet:
    """
    A class to represent an alphabet of ASCII symbols and their packed codes.

    Packed alphabets hold at most 16 symbols; the code of a symbol is its index, and codes are packed
    ``8 // bits_per_symbol`` per byte. Raw alphabets use the byte value itself as the code and are stored unpacked.

    Examples:
        >>> codes = Alphabet.DNA.encode(b'ACGT')
        >>> Alphabet.DNA.pack(codes)
        b'H\\x12'
        >>> Alphabet.DNA.decode(Alphabet.DNA.unpack(b'H\\x12', 4))
        b'ACGT'
    """
    __slots__ = ('_data', '_raw', '_bits', '_lookup_table', '_valid', '_decode_table')
    DTYPE: Final = np.uint8
    INVALID: Final = np.iinfo(DTYPE).max
    MAX_LEN: Final = INVALID + 1
    MAX_PACKED: Final = 16
    ENCODING: Final = 'ascii'

    DNA: ClassVar['Alphabet']
    RNA: ClassVar['Alphabet']
    PROTEIN: ClassVar['Alphabet']
    TEXT: ClassVar['Alphabet']

    def __init__(self, symbols: bytes, raw: bool = False):
        """
        Initializes an Alphabet.

        Args:
            symbols: The symbols in the alphabet as bytes, in code order.
            raw: If ``True``, symbols are stored as their own byte value (8 bits, unpacked).

        Raises:
            ValueError: If the symbols are empty, duplicated, not ASCII (packed) or too many to pack.
        """
        if not symbols: raise ValueError('Alphabet must contain at least one symbol')
        if raw:
            if len(set(symbols)) != len(symbols): raise ValueError('Alphabet contains duplicate symbols')
        else:
            if not symbols.isascii(): raise ValueError('Alphabet symbols must be a valid ASCII string')
            if len(symbols) > self.MAX_PACKED:
                raise ValueError(f'Packed alphabets cannot exceed {self.MAX_PACKED} symbols')
            if len(set(symbols.upper())) != len(symbols): raise ValueError('Alphabet contains duplicate symbols')

        self._data: np.ndarray = np.frombuffer(symbols, dtype=self.DTYPE)
        self._raw = raw
        self._valid = np.zeros(self.MAX_LEN, dtype=bool)

        if raw:
            self._bits = 8
            self._valid[self._data] = True
            # Identity tables: the byte is the code
            self._lookup_table = np.arange(self.MAX_LEN, dtype=self.DTYPE)
            self._decode_table = self._lookup_table.tobytes()
            return

        # Smallest divisor of 8 that holds every code
        self._bits = next(b for b in (1, 2, 4) if (1 << b) >= len(symbols))

        # Build Lookup Table (both cases map to the same code)
        self._lookup_table = np.full(self.MAX_LEN, self.INVALID, dtype=self.DTYPE)
        indices = np.arange(len(symbols), dtype=self.DTYPE)
        self._lookup_table[np.frombuffer(symbols.upper(), dtype=self.DTYPE)] = indices
        self._lookup_table[np.frombuffer(symbols.lower(), dtype=self.DTYPE)] = indices
        self._valid[self._lookup_table != self.INVALID] = True

        # Build Decode Table (code -> canonical upper-case symbol)
        decode_map = np.zeros(self.MAX_LEN, dtype=self.DTYPE)
        decode_map[:len(self._data)] = np.frombuffer(symbols.upper(), dtype=self.DTYPE)
        self._decode_table = decode_map.tobytes()

    def __len__(self): return len(self._data)
    def __iter__(self): return iter(self._data)
    def __getitem__(self, item): return self._data[item]
    def __repr__(self):
        if self._raw and len(self) > 32: return f'<Alphabet: {len(self)} raw symbols>'
        return f'<Alphabet: {self._data.tobytes().decode("latin-1")}>'

    def __contains__(self, item):
        if isinstance(item, (str, bytes)):
            if len(item) != 1: return False
            item = ord(item)
        if isinstance(item, (int, np.integer)) and 0 <= item < self.MAX_LEN: return bool(self._valid[item])
        return False

    def __eq__(self, other):
        if self is other: return True
        if not isinstance(other, Alphabet): return False
        return self._raw == other._raw and np.array_equal(self._data, other._data)

    def __hash__(self): return hash((self._raw, self._data.tobytes()))

    @property
    def bits_per_symbol(self) -> int:
        """Returns the number of bits each symbol occupies in the sequence stream."""
        return self._bits

    @property
    def per_byte(self) -> int:
        """Returns the number of symbols stored in one byte of the sequence stream."""
        return 8 // self._bits

    @property
    def is_packed(self) -> bool:
        """Returns ``True`` if symbols are bit-packed (i.e. the alphabet is not raw)."""
        return not self._raw

    @classmethod
    def for_type(cls, sequence_type: Union[SequenceType, int]) -> 'Alphabet':
        """Returns the standard alphabet for a sequence type.

        Args:
            sequence_type: The ``SequenceType`` of the archive.

        Returns:
            The matching ``Alphabet`` singleton.
        """
        return _BY_TYPE[SequenceType(sequence_type)]

    def packed_size(self, n: int) -> int:
        """Returns the number of bytes needed to pack *n* symbols."""
        return -(-n // self.per_byte)

    def encode(self, text: Union[bytes, str]) -> np.ndarray:
        """
        Encodes symbols to codes.

        Args:
            text: The symbols as bytes (or an ASCII string).

        Returns:
            A ``uint8`` numpy array of codes.

        Raises:
            InvalidSymbol: If a byte is not part of the alphabet. The error offset is the position in ``text``.
        """
        if isinstance(text, str): text = text.encode(self.ENCODING)
        data = np.frombuffer(text, dtype=self.DTYPE)
        if not self._valid[data].all():
            bad = int(np.argmin(self._valid[data]))
            raise InvalidSymbol(int(data[bad]), offset=bad)
        if self._raw: return data
        return self._lookup_table[data]

    def decode(self, codes: np.ndarray) -> bytes:
        """Decodes an array of codes back to (upper-case) symbols.

        Args:
            codes: The numpy array of codes (uint8).

        Returns:
            The decoded byte string.

        Raises:
            InvalidSymbol: If a code does not name a symbol of this alphabet.
        """
        if codes.dtype != self.DTYPE: codes = codes.astype(self.DTYPE, copy=False)
        if self._raw:
            if not self._valid[codes].all():
                bad = int(np.argmin(self._valid[codes]))
                raise InvalidSymbol(int(codes[bad]), offset=bad)
        elif len(codes) and codes.max() >= len(self._data):
            bad = int(np.argmax(codes >= len(self._data)))
            raise InvalidSymbol(int(codes[bad]), offset=bad)
        return codes.tobytes().translate(self._decode_table)

    def case_mask(self, text: bytes) -> np.ndarray:
        """Returns a boolean array marking lower-case (soft-masked) positions of ``text``."""
        data = np.frombuffer(text, dtype=self.DTYPE)
        return (data >= ord('a')) & (data <= ord('z'))

    def pack(self, codes: np.ndarray) -> bytes:
        """
        Packs codes into bytes, first symbol in the least-significant bits.

        Args:
            codes: ``uint8`` array of codes.

        Returns:
            ``ceil(len(codes) / per_byte)`` bytes; unused bits of the last byte are zero.
        """
        if self._raw: return np.ascontiguousarray(codes, dtype=self.DTYPE).tobytes()
        return _pack_codes(np.asarray(codes, dtype=self.DTYPE), self._bits).tobytes()

    def unpack(self, packed: bytes, n: int) -> np.ndarray:
        """
        Unpacks exactly *n* codes, ignoring padding in the final byte.

        Args:
            packed: The packed bytes.
            n: The number of codes to extract.

        Returns:
            A ``uint8`` numpy array of *n* codes.

        Raises:
            ValueError: If ``packed`` is too short to hold *n* codes.
        """
        data = np.frombuffer(packed, dtype=self.DTYPE)
        if len(data) < self.packed_size(n):
            raise ValueError(f'{len(data)} bytes cannot hold {n} symbols of {self._bits} bits')
        if self._raw: return data[:n]
        return _unpack_codes(data, n, self._bits)


class SymbolPacker:
    """
    Packs symbols of consecutive records into one continuous stream.

    Records are not byte-aligned in the sequence stream, so the codes that do not fill a whole byte are carried over
    to the next call and flushed (zero padded) at the end.
    """
    __slots__ = ('_alphabet', '_carry', 'total')
    def __init__(self, alphabet: Alphabet):
        self._alphabet = alphabet
        self._carry = np.empty(0, dtype=Alphabet.DTYPE)
        self.total = 0

    def add(self, codes: np.ndarray) -> bytes:
        """Adds codes and returns the bytes that are now complete."""
        self.total += len(codes)
        per_byte = self._alphabet.per_byte
        if per_byte == 1: return self._alphabet.pack(codes)
        if len(self._carry): codes = np.concatenate((self._carry, codes))
        cut = len(codes) - len(codes) % per_byte
        self._carry = codes[cut:].copy()
        return self._alphabet.pack(codes[:cut])

    def flush(self) -> bytes:
        """Returns the final, zero-padded byte (if any)."""
        tail, self._carry = self._carry, np.empty(0, dtype=Alphabet.DTYPE)
        return self._alphabet.pack(tail) if len(tail) else b''


class SymbolUnpacker:
    """
    Unpacks symbols of consecutive records from a continuous stream.

    Args:
        alphabet: The alphabet of the stream.
        read: Callable returning exactly the requested number of bytes from the stream.
    """
    __slots__ = ('_alphabet', '_read', '_left', 'total')
    def __init__(self, alphabet: Alphabet, read):
        self._alphabet = alphabet
        self._read = read
        self._left = np.empty(0, dtype=Alphabet.DTYPE)
        self.total = 0

    def read(self, n: int) -> np.ndarray:
        """Returns the next *n* codes of the stream."""
        alpha = self._alphabet
        if n == 0: return np.empty(0, dtype=Alphabet.DTYPE)
        if not alpha.is_packed:
            self.total += n
            return alpha.unpack(self._read(n), n)
        head = self._left[:n]
        self._left = self._left[len(head):]
        missing = n - len(head)
        if missing:
            n_bytes = alpha.packed_size(missing)
            codes = alpha.unpack(self._read(n_bytes), n_bytes * alpha.per_byte)
            self._left = codes[missing:]
            head = np.concatenate((head, codes[:missing])) if len(head) else codes[:missing]
        self.total += n
        return head


# Initialize Standard Alphabets
Alphabet.DNA = Alphabet(b'-TGKCYSBAWRDMHVN')
Alphabet.RNA = Alphabet(b'-UGKCYSBAWRDMHVN')
Alphabet.PROTEIN = Alphabet(b'ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz*-', raw=True)
Alphabet.TEXT = Alphabet(bytes(range(Alphabet.MAX_LEN)), raw=True)
_BY_TYPE = {SequenceType.DNA: Alphabet.DNA, SequenceType.RNA: Alphabet.RNA,
            SequenceType.PROTEIN: Alphabet.PROTEIN, SequenceType.TEXT: Alphabet.TEXT}


# Functions ------------------------------------------------------------------------------------------------------------
def _pack_codes(codes: np.ndarray, bits: int) -> np.ndarray:
    per_byte = 8 // bits
    n_bytes = -(-len(codes) // per_byte)
    padded = np.zeros(n_bytes * per_byte, dtype=np.uint8)
    padded[:len(codes)] = codes
    shifts = (np.arange(per_byte, dtype=np.uint8) * bits).astype(np.uint8)
    # Codes never overlap, so summing the shifted lanes is a bitwise OR
    lanes = padded.reshape(-1, per_byte) << shifts
    return lanes.sum(axis=1, dtype=np.uint8)


def _unpack_codes(packed: np.ndarray, n: int, bits: int) -> np.ndarray:
    per_byte = 8 // bits
    mask = np.uint8((1 << bits) - 1)
    shifts = (np.arange(per_byte, dtype=np.uint8) * bits).astype(np.uint8)
    n_bytes = -(-n // per_byte)
    lanes = (packed[:n_bytes, None] >> shifts) & mask
    return lanes.reshape(-1)[:n]
