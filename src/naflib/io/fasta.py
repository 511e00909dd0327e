"""
FASTA and FASTQ text, to feed records into an archive and to rebuild text from one.

Examples:
    >>> with open('genome.fasta', 'rb') as fasta, Encoder('genome.naf', id=True, comment=True,
    ...                                                   sequence=True, mask=True) as encoder:
    ...     encoder.write_many(FastaReader(fasta))
"""
from typing import BinaryIO, Generator, Iterable

from naflib.containers.record import Record
from naflib.errors import ParserError


# Classes --------------------------------------------------------------------------------------------------------------
class _TextReader:
    """Base class for readers of sequence text files."""
    _CHUNK_SIZE = 65536
    __slots__ = ('_handle', '_separator', '_iterator')
    def __init__(self, handle: BinaryIO, separator: bytes = b' '):
        """
        Initializes the reader.

        Args:
            handle: The open binary handle to read from.
            separator: Byte splitting the header line into identifier and comment.
        """
        self._handle = handle
        self._separator = separator
        self._iterator = None

    def __enter__(self): return self
    def __exit__(self, exc_type, exc_val, exc_tb): self.close()
    def __iter__(self) -> Generator[Record, None, None]: raise NotImplementedError
    def __next__(self) -> Record:
        if self._iterator is None:
            self._iterator = self.__iter__()
        return next(self._iterator)

    def _lines(self) -> Generator[bytes, None, None]:
        """Yields the lines of the handle without their terminators, reading one chunk at a time."""
        pending = []
        while chunk := self._handle.read(self._CHUNK_SIZE):
            lines = chunk.split(b'\n')
            if len(lines) == 1:
                pending.append(chunk)
                continue
            pending.append(lines[0])
            yield b''.join(pending).rstrip(b'\r')
            for line in lines[1:-1]: yield line.rstrip(b'\r')
            pending = [lines[-1]]
        if last := b''.join(pending): yield last.rstrip(b'\r')

    def _split(self, header: bytes) -> tuple[bytes, bytes]:
        name, _, comment = header.rstrip().partition(self._separator)
        return name, comment

    def close(self):
        """Closes the reader (the handle belongs to the caller)."""
        self._iterator = None


class FastaReader(_TextReader):
    """
    Reader for FASTA format files.

    The case of the sequence is preserved, so lower-case (soft-masked) regions become the record mask once written
    to a nucleotide archive that stores masks. Records always carry a comment, empty when the header has none.

    Examples:
        >>> with open("genome.fasta", "rb") as f:
        ...     for record in FastaReader(f):
        ...         print(record.id)
    """
    __slots__ = ()
    def __iter__(self) -> Generator[Record, None, None]:
        """
        Iterates over FASTA records.

        Yields:
            Record objects with identifier, comment and sequence.

        Raises:
            ParserError: If sequence data comes before the first header.
        """
        header, lines = None, []
        for number, line in enumerate(self._lines(), 1):
            if line.startswith(b'>'):
                if header is not None: yield self._record(header, lines)
                header, lines = line[1:], []
            elif header is not None:
                lines.append(line)
            elif line.strip():
                raise ParserError(f"Invalid FASTA at line {number}: expected '>' before sequence data")
        if header is not None: yield self._record(header, lines)

    def _record(self, header: bytes, lines: list[bytes]) -> Record:
        name, comment = self._split(header)
        return Record(name, comment, b''.join(b''.join(lines).split()))


class FastqReader(_TextReader):
    """
    Reader for FASTQ format files.

    Records are the standard four lines; blank lines between records are skipped. Wrapped FASTQ sequences are not
    supported.

    Examples:
        >>> with open("reads.fastq", "rb") as f:
        ...     for record in FastqReader(f):
        ...         print(record.id, record.quality)
    """
    __slots__ = ()
    def __iter__(self) -> Generator[Record, None, None]:
        """
        Iterates over FASTQ records.

        Yields:
            Record objects with identifier, comment, sequence and quality.

        Raises:
            ParserError: If a record is malformed or its quality length disagrees with its sequence.
        """
        lines = enumerate(self._lines(), 1)
        for number, header in lines:
            if not header.strip(): continue
            if not header.startswith(b'@'): raise ParserError(f"Invalid FASTQ at line {number}: expected '@'")
            try:
                _, sequence = next(lines)
                plus_line, plus = next(lines)
                _, quality = next(lines)
            except StopIteration:
                raise ParserError(f'Truncated FASTQ record starting at line {number}') from None
            if not plus.startswith(b'+'): raise ParserError(f"Invalid FASTQ at line {plus_line}: expected '+'")
            sequence, quality = sequence.rstrip(), quality.rstrip()
            if len(sequence) != len(quality):
                raise ParserError(f'Quality of {header[1:]!r} has {len(quality)} characters, expected {len(sequence)}')
            name, comment = self._split(header[1:])
            yield Record(name, comment, sequence, quality)


# Functions ------------------------------------------------------------------------------------------------------------
def write_fasta(records: Iterable[Record], handle: BinaryIO, line_length: int = 60, separator: bytes = b' ') -> int:
    """
    Writes records as FASTA text.

    Args:
        records: The records to write.
        handle: Writable binary handle.
        line_length: Sequence line width (0 for a single line).
        separator: Byte between identifier and comment.

    Returns:
        The number of records written.
    """
    n = 0
    for record in records:
        handle.write(record.format_fasta(line_length, separator))
        n += 1
    return n


def write_fastq(records: Iterable[Record], handle: BinaryIO, separator: bytes = b' ') -> int:
    """
    Writes records as FASTQ text.

    Returns:
        The number of records written.

    Raises:
        ValueError: If a record has no quality.
    """
    n = 0
    for record in records:
        handle.write(record.format_fastq(separator))
        n += 1
    return n
