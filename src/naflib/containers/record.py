"""Container for one sequence entry of a NAF archive."""
from typing import Iterable, Optional, Union

import numpy as np

from naflib.core.interval import Interval, IntervalBatch


# Classes --------------------------------------------------------------------------------------------------------------
class Record:
    """
    A sequence record with identifier, comment, sequence, mask and quality.

    Every field is optional: a field is ``None`` when the archive does not store it (or it was not requested when
    decoding). The mask is normalized to sorted, merged intervals so records compare field-for-field.

    Args:
        id_: Record identifier (accession).
        comment: Record comment (description line without the identifier).
        sequence: The sequence symbols.
        quality: The quality string, one character per symbol.
        mask: Soft-masked regions as intervals, ``(start, end)`` tuples or an ``IntervalBatch``.
        length: The record length; inferred from the sequence or quality when omitted.

    Examples:
        >>> rec = Record(b'seq1', sequence=b'ACGT')
        >>> len(rec)
        4
        >>> rec.format_fasta()
        b'>seq1\\nACGT\\n'
    """
    __slots__ = ('id', 'comment', 'sequence', 'quality', 'mask', '_length')
    def __init__(self, id_: Union[bytes, str] = None, comment: Union[bytes, str] = None,
                 sequence: Union[bytes, str] = None, quality: Union[bytes, str] = None,
                 mask: Union[IntervalBatch, Iterable[Union[Interval, tuple]]] = None, length: int = None):
        self.id: Optional[bytes] = _as_bytes(id_)
        self.comment: Optional[bytes] = _as_bytes(comment)
        self.sequence: Optional[bytes] = _as_bytes(sequence)
        self.quality: Optional[bytes] = _as_bytes(quality)
        self.mask: Optional[IntervalBatch] = None if mask is None else IntervalBatch.build(mask).merge()
        if length is not None and length < 0: raise ValueError(f'Record length must be non-negative, got {length}')
        self._length: Optional[int] = None if length is None else int(length)

    def __repr__(self):
        name = self.id.decode(errors='replace') if self.id is not None else '?'
        return f'<Record: {name} length={self.length}>'

    def __len__(self): return self.length or 0

    def __eq__(self, other):
        if not isinstance(other, Record): return False
        return (self.id == other.id and self.comment == other.comment and self.sequence == other.sequence and
                self.quality == other.quality and self.length == other.length and
                (self.mask is None) == (other.mask is None) and (self.mask is None or self.mask == other.mask))

    @property
    def length(self) -> Optional[int]:
        """Returns the declared length, or the length of the sequence or quality if none was declared."""
        if self._length is not None: return self._length
        if self.sequence is not None: return len(self.sequence)
        if self.quality is not None: return len(self.quality)
        return None

    @length.setter
    def length(self, value: Optional[int]): self._length = None if value is None else int(value)

    @property
    def has_length(self) -> bool:
        """Returns ``True`` if the length was given explicitly rather than inferred."""
        return self._length is not None

    def name(self, separator: bytes = b' ') -> Optional[bytes]:
        """Returns the full record name: the identifier and the comment joined by ``separator``."""
        if self.id is None and self.comment is None: return None
        if not self.comment: return self.id
        if self.id is None: return self.comment
        return self.id + separator + self.comment

    def masked_sequence(self) -> Optional[bytes]:
        """Returns the sequence with masked regions in lower case."""
        if self.sequence is None or not self.mask: return self.sequence
        data = np.frombuffer(self.sequence, dtype=np.uint8).copy()
        soft = self.mask.to_mask(len(data))
        upper = (data >= ord('A')) & (data <= ord('Z'))
        data[soft & upper] += ord('a') - ord('A')
        return data.tobytes()

    def phred(self, offset: int = 33) -> Optional[np.ndarray]:
        """Returns the quality scores as integers."""
        if self.quality is None: return None
        return np.frombuffer(self.quality, dtype=np.uint8).astype(np.int16) - offset

    def format_fasta(self, line_length: int = 0, separator: bytes = b' ') -> bytes:
        """
        Formats the record as a FASTA entry.

        Args:
            line_length: Sequence line width (0 for a single line).
            separator: Byte between identifier and comment.

        Returns:
            The FASTA entry, including the trailing newline.
        """
        seq = self.masked_sequence() or b''
        if line_length and len(seq) > line_length:
            seq = b'\n'.join(seq[i:i + line_length] for i in range(0, len(seq), line_length))
        return b'>' + (self.name(separator) or b'') + b'\n' + seq + b'\n'

    def format_fastq(self, separator: bytes = b' ') -> bytes:
        """
        Formats the record as a FASTQ entry.

        Raises:
            ValueError: If the record has no quality.
        """
        if self.quality is None: raise ValueError('Cannot format a record without quality as FASTQ')
        return (b'@' + (self.name(separator) or b'') + b'\n' + (self.masked_sequence() or b'') + b'\n+\n' +
                self.quality + b'\n')


# Functions ------------------------------------------------------------------------------------------------------------
def _as_bytes(value: Union[bytes, str, None]) -> Optional[bytes]:
    if value is None or isinstance(value, bytes): return value
    if isinstance(value, str): return value.encode('ascii')
    return bytes(value)
