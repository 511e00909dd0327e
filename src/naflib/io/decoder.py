"""
Reading records from Nucleotide Archive Format files.

The decoder opens one block reader per requested stream and assembles records by pulling the next element of every
stream in lockstep: the Nth identifier, comment, length, sequence, mask and quality all belong to record N.
"""
from enum import Enum, auto
from logging import getLogger
from pathlib import Path
from typing import BinaryIO, Optional, Union
from warnings import warn

from naflib.containers.record import Record
from naflib.core.alphabet import Alphabet, SymbolUnpacker
from naflib.core.header import Flag, Header
from naflib.core.mask import MaskReader
from naflib.errors import NafError, AlreadyClosed, TruncatedArchive, InvalidSymbol, NafWarning
from naflib.io.block import BlockInfo, BlockReader
from naflib.io.source import ArchiveSource


log = getLogger(__name__)


# Classes --------------------------------------------------------------------------------------------------------------
class DecoderState(Enum):
    OPENING = auto()
    READY = auto()
    EXHAUSTED = auto()
    CLOSED = auto()


class Decoder:
    """
    Lazy, forward-only reader over the records of an archive.

    Each keyword argument selects whether a field is decoded. Blocks of fields that are not requested are skipped
    without being decompressed (or, for seekable sources, even read). Requesting a field the archive does not store
    is not an error: the field is ``None`` in every record.

    Args:
        file: File path or readable binary handle.
        title: Decode the archive title.
        id: Decode record identifiers.
        comment: Decode record comments.
        length: Decode record lengths (always decoded when sequence, mask or quality is).
        sequence: Decode sequences.
        mask: Decode soft-mask intervals.
        quality: Decode quality strings.
        chunk_size: Number of compressed bytes decompressed at a time per stream.
        spool_size: In-memory size of spooled blocks for non-seekable sources.

    Raises:
        FormatError: If the header is invalid.
        StreamError: If the source ends inside the header or a block prefix.

    Examples:
        >>> with Decoder('genomes.naf', sequence=False) as decoder:
        ...     for record in decoder:
        ...         print(record.id, record.length)
    """
    _CHUNK_SIZE = 65536

    def __init__(self, file: Union[str, Path, BinaryIO], *, title: bool = True, id: bool = True,
                 comment: bool = True, length: bool = True, sequence: bool = True, mask: bool = True,
                 quality: bool = True, chunk_size: int = None, spool_size: int = None):
        self._state = DecoderState.OPENING
        self._readers: dict[Flag, BlockReader] = {}
        self._blocks: dict[Flag, BlockInfo] = {}
        self._title: Optional[bytes] = None
        self._symbols: Optional[SymbolUnpacker] = None
        self._masks: Optional[MaskReader] = None
        self._index = 0
        chunk_size = chunk_size or self._CHUNK_SIZE
        self._source = ArchiveSource(file, spool_size=spool_size, chunk_size=chunk_size)
        try:
            self._header = self._source.read_header()
            requested = Flag(0)
            for flag, wanted in ((Flag.TITLE, title), (Flag.ID, id), (Flag.COMMENT, comment), (Flag.LENGTH, length),
                                 (Flag.SEQUENCE, sequence), (Flag.MASK, mask), (Flag.QUALITY, quality)):
                if wanted: requested |= flag
            active = requested & self._header.flags
            if active & Flag.NEEDS_LENGTH: active |= Flag.LENGTH
            self._active = active

            for kind, (info, region) in self._source.scan_blocks(self._header, active).items():
                self._blocks[kind] = info
                if region is not None: self._readers[kind] = BlockReader(info, region, chunk_size)

            self._alphabet = Alphabet.for_type(self._header.sequence_type)
            if Flag.SEQUENCE in self._readers:
                self._symbols = SymbolUnpacker(self._alphabet, self._readers[Flag.SEQUENCE].read)
            if Flag.MASK in self._readers:
                self._masks = MaskReader(self._readers[Flag.MASK].read_varint)
            if Flag.TITLE in self._readers:
                reader = self._readers.pop(Flag.TITLE)
                try: self._title = reader.read_all()
                finally: reader.close()
            log.debug('Opened %r, decoding %s', self._header, [f.label for f in self._active.streams()])
            self._state = DecoderState.READY
            if self._header.number_of_sequences == 0: self._exhaust()
        except BaseException:
            self.close()
            raise

    def __repr__(self): return f'<Decoder: {self._header!r} {self._state.name}>'
    def __enter__(self): return self
    def __exit__(self, exc_type, exc_val, exc_tb): self.close()
    def __iter__(self): return self

    def __len__(self): return self._header.number_of_sequences

    def __next__(self) -> Record:
        if self._state is DecoderState.EXHAUSTED: raise StopIteration
        if self._state is DecoderState.CLOSED: raise AlreadyClosed('Decoder is closed')
        try:
            record = self._read_record()
            self._index += 1
            if self._index >= self._header.number_of_sequences: self._exhaust()
        except NafError as e:
            if e.record is None: e.record = self._index
            log.debug('Failed reading record %d: %s', self._index, e)
            self.close()
            raise
        except Exception:
            self.close()
            raise
        return record

    @property
    def header(self) -> Header:
        """Returns the archive header."""
        return self._header

    @property
    def title(self) -> Optional[bytes]:
        """Returns the archive title, or ``None`` if absent or not requested."""
        return self._title

    @property
    def state(self) -> DecoderState: return self._state
    @property
    def alphabet(self) -> Alphabet: return self._alphabet
    @property
    def records_read(self) -> int: return self._index

    @property
    def blocks(self) -> list[BlockInfo]:
        """Returns the location and sizes of every block in the archive, in block order."""
        return list(self._blocks.values())

    def sizes(self) -> str:
        """Returns a report of the original and compressed size of every block."""
        return '\n'.join(str(b) for b in self._blocks.values())

    def _read_record(self) -> Record:
        """Reads one element from every active stream."""
        id_ = self._read_text(Flag.ID)
        comment = self._read_text(Flag.COMMENT)
        length = sequence = mask = quality = None
        if Flag.LENGTH in self._readers:
            length = self._readers[Flag.LENGTH].read_varint()
            if length is None: raise self._ended(Flag.LENGTH)
        if self._symbols is not None: sequence = self._read_sequence(length)
        if self._masks is not None: mask = self._masks.read(length)
        if Flag.QUALITY in self._readers: quality = self._readers[Flag.QUALITY].read(length)
        return Record(id_, comment, sequence, quality, mask, length)

    def _read_text(self, kind: Flag) -> Optional[bytes]:
        if (reader := self._readers.get(kind)) is None: return None
        value = reader.read_until(b'\0')
        if value is None: raise self._ended(kind)
        return value

    def _read_sequence(self, length: int) -> bytes:
        start = self._symbols.total
        codes = self._symbols.read(length)
        try: return self._alphabet.decode(codes)
        except InvalidSymbol as e:
            raise InvalidSymbol(e.symbol, stream=Flag.SEQUENCE.label, offset=start + e.offset,
                                record=self._index) from None

    def _ended(self, kind: Flag) -> TruncatedArchive:
        reader = self._readers[kind]
        return TruncatedArchive(f'Stream ended after {self._index} records', stream=kind.label,
                                offset=reader.tell(), record=self._index)

    def _release(self):
        readers, self._readers = self._readers, {}
        self._symbols = self._masks = None
        for reader in readers.values(): reader.close()

    def _exhaust(self):
        """Checks that every stream ends with the last declared record, then releases the streams and the source."""
        for kind, reader in self._readers.items():
            # A block that inflates to other than its declared size fails here
            if not reader.at_eof():
                warn(f'Stream {kind.label} has data past record {self._index}, which was ignored', NafWarning)
        log.debug('Exhausted after %d records', self._index)
        self._release()
        self._source.close()
        self._state = DecoderState.EXHAUSTED

    def close(self):
        """Releases every stream reader and the source. Safe to call more than once."""
        self._release()
        self._source.close()
        self._state = DecoderState.CLOSED
