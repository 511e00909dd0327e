"""
Writing records to Nucleotide Archive Format files.

The encoder appends every field of a record to its own uncompressed stream buffer. Nothing reaches the output until
the archive is finalized: then the header (with the final record count) is written, followed by one compressed block
per stream in block order.
"""
from enum import Enum, auto
from logging import getLogger
from pathlib import Path
from typing import BinaryIO, Iterable, Optional, Union

import zstandard

from naflib.containers.record import Record, _as_bytes
from naflib.core.alphabet import Alphabet, SymbolPacker
from naflib.core.header import Flag, FormatVersion, Header, SequenceType
from naflib.core.mask import encode_mask, runs_from_mask
from naflib.core.varint import encode_varint, encode_varints
from naflib.errors import (AlreadyClosed, InconsistentFlags, UnexpectedField, InvalidField, InvalidSymbol,
                           LengthMismatch, MaskLengthMismatch)
from naflib.io.block import BlockInfo, BlockWriter


log = getLogger(__name__)


# Classes --------------------------------------------------------------------------------------------------------------
class EncoderState(Enum):
    BUILDING = auto()
    FINALIZING = auto()
    CLOSED = auto()


class Encoder:
    """
    Builds an archive record by record.

    The fields stored in the archive are chosen up-front; every appended record must carry each of them. Fields are
    validated when appended, while missing fields are only reported when the archive is finalized (before anything
    is written).

    Args:
        file: Output path or writable binary handle. A path is only opened once the archive is finalized.
        sequence_type: The type of the stored sequences.
        id: Store record identifiers.
        comment: Store record comments.
        length: Store record lengths. Defaults to storing them whenever sequence, mask or quality are stored.
        sequence: Store sequences.
        mask: Store soft-mask intervals. In nucleotide archives, records without an explicit mask get one derived from
            the lower-case letters of their sequence.
        quality: Store quality strings.
        title: Archive title, stored if given.
        line_length: Line width hint for formatting sequences as text.
        name_separator: Byte between identifier and comment in full record names.
        format_version: Format version of the archive.
        level: Zstandard compression level.
        spool_size: In-memory size of each stream buffer before it spills to disk.

    Raises:
        InconsistentFlags: If the chosen fields cannot be stored together.

    Examples:
        >>> with Encoder('out.naf', id=True, sequence=True) as encoder:
        ...     encoder.write(Record(b'seq1', sequence=b'ACGT'))
    """
    _CHUNK_SIZE = 65536

    def __init__(self, file: Union[str, Path, BinaryIO], sequence_type: Union[SequenceType, int] = SequenceType.DNA,
                 *, id: bool = False, comment: bool = False, length: Optional[bool] = None, sequence: bool = False,
                 mask: bool = False, quality: bool = False, title: Union[bytes, str] = None, line_length: int = 60,
                 name_separator: bytes = b' ', format_version: Union[FormatVersion, int] = FormatVersion.V2,
                 level: int = 3, spool_size: int = None):
        flags = Flag(0)
        for flag, wanted in ((Flag.ID, id), (Flag.COMMENT, comment), (Flag.SEQUENCE, sequence), (Flag.MASK, mask),
                             (Flag.QUALITY, quality)):
            if wanted: flags |= flag
        if title is not None: flags |= Flag.TITLE
        if length is None: length = bool(flags & Flag.NEEDS_LENGTH)
        if length: flags |= Flag.LENGTH
        self._header = Header(flags, sequence_type, format_version, line_length, name_separator, 0)

        if not isinstance(file, (str, Path)) and not hasattr(file, 'write'):
            raise TypeError(f'Expected a path or a binary file object, got {type(file).__name__}')
        self._file = file
        self._level = level
        self._alphabet = Alphabet.for_type(self._header.sequence_type)
        self._writers: dict[Flag, BlockWriter] = {k: BlockWriter(k, spool_size) for k in flags.streams()}
        if title is not None: self._writers[Flag.TITLE].write(_as_bytes(title))
        self._packer = SymbolPacker(self._alphabet) if sequence else None
        self._missing: dict[Flag, int] = {}  # First record missing each stored field
        self._count = 0
        self._blocks: list[BlockInfo] = []
        self._state = EncoderState.BUILDING

    def __repr__(self): return f'<Encoder: {self._header!r} {self._state.name}>'
    def __enter__(self): return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._state is not EncoderState.BUILDING: return
        if exc_type is None: self.finalize()
        else: self.close()

    @property
    def header(self) -> Header: return self._header
    @property
    def state(self) -> EncoderState: return self._state
    @property
    def records_written(self) -> int: return self._count

    @property
    def blocks(self) -> list[BlockInfo]:
        """Returns the blocks written by ``finalize``."""
        return list(self._blocks)

    def write(self, record: Record):
        """
        Appends a record to the archive.

        A record that fails validation leaves every stream untouched.

        Args:
            record: The record to append.

        Raises:
            AlreadyClosed: If the archive was finalized or discarded.
            UnexpectedField: If the record carries a field the archive does not store.
            InvalidField: If an identifier or comment contains a NUL byte.
            InvalidSymbol: If the sequence contains a symbol outside the alphabet.
            LengthMismatch: If the sequence or quality disagree with the record length.
            MaskLengthMismatch: If a masked interval extends past the record length.
        """
        if self._state is not EncoderState.BUILDING: raise AlreadyClosed('Cannot write to a closed encoder')
        flags, i = self._header.flags, self._count
        for kind, value in ((Flag.ID, record.id), (Flag.COMMENT, record.comment), (Flag.SEQUENCE, record.sequence),
                            (Flag.MASK, record.mask), (Flag.QUALITY, record.quality),
                            (Flag.LENGTH, record.length if record.has_length else None)):
            if value is not None and kind not in flags:
                raise UnexpectedField(f'Record has a {kind.label} but the archive does not store it',
                                      stream=kind.label, record=i)

        pieces = {}
        missing = []
        length = record.length
        for kind, value in ((Flag.ID, record.id), (Flag.COMMENT, record.comment)):
            if kind not in flags: continue
            if value is None: missing.append(kind)
            elif b'\0' in value:
                raise InvalidField(f'The {kind.label} contains a NUL byte', stream=kind.label,
                                   offset=value.index(b'\0'), record=i)
            else: pieces[kind] = value + b'\0'

        if Flag.LENGTH in flags:
            if length is None: missing.append(Flag.LENGTH)
            else: pieces[Flag.LENGTH] = encode_varint(length)

        if Flag.SEQUENCE in flags:
            if record.sequence is None: missing.append(Flag.SEQUENCE)
            else:
                self._check_length(Flag.SEQUENCE, record.sequence, length)
                try: pieces[Flag.SEQUENCE] = self._alphabet.encode(record.sequence)
                except InvalidSymbol as e:
                    raise InvalidSymbol(e.symbol, stream=Flag.SEQUENCE.label, offset=e.offset, record=i) from None

        if Flag.MASK in flags:
            if record.mask is not None:
                if length is not None:
                    try: pieces[Flag.MASK] = encode_mask(record.mask, length)
                    except MaskLengthMismatch as e:
                        raise MaskLengthMismatch(str(e), stream=Flag.MASK.label, record=i) from None
            elif record.sequence is not None and self._header.sequence_type.is_nucleotide:
                runs = runs_from_mask(self._alphabet.case_mask(record.sequence))
                pieces[Flag.MASK] = encode_varints(runs.tolist())
            else:
                missing.append(Flag.MASK)

        if Flag.QUALITY in flags:
            if record.quality is None: missing.append(Flag.QUALITY)
            else:
                self._check_length(Flag.QUALITY, record.quality, length)
                pieces[Flag.QUALITY] = record.quality

        for kind in missing: self._missing.setdefault(kind, i)
        for kind, data in pieces.items():
            if kind == Flag.SEQUENCE: data = self._packer.add(data)
            self._writers[kind].write(data)
        self._count += 1

    def _check_length(self, kind: Flag, value: bytes, length: Optional[int]):
        if length is not None and len(value) != length:
            raise LengthMismatch(f'The {kind.label} has {len(value)} symbols but the record length is {length}',
                                 stream=kind.label, record=self._count)

    def write_many(self, records: Iterable[Record]) -> int:
        """Appends every record and returns the number appended."""
        n = 0
        for record in records:
            self.write(record)
            n += 1
        return n

    def finalize(self) -> list[BlockInfo]:
        """
        Writes the header and every stream block, then releases the buffers.

        Returns:
            The ``BlockInfo`` of each written block, in block order.

        Raises:
            AlreadyClosed: If the archive was already finalized or discarded.
            InconsistentFlags: If a record is missing a stored field. Nothing is written in that case.
        """
        if self._state is not EncoderState.BUILDING: raise AlreadyClosed('Encoder was already finalized')
        self._state = EncoderState.FINALIZING
        try:
            if self._missing:
                kind, index = min(self._missing.items(), key=lambda item: item[1])
                raise InconsistentFlags(f'Record is missing its {kind.label} although the archive stores it',
                                        stream=kind.label, record=index)
            if self._packer is not None: self._writers[Flag.SEQUENCE].write(self._packer.flush())
            self._header.number_of_sequences = self._count
            self._write_archive()
        finally:
            self._release()
        log.debug('Finalized %d records into %d blocks', self._count, len(self._blocks))
        return self.blocks

    def _write_archive(self):
        compressor = zstandard.ZstdCompressor(level=self._level)
        if isinstance(self._file, (str, Path)):
            with open(Path(self._file).expanduser(), 'wb') as handle: self._write_blocks(handle, compressor)
        else:
            self._write_blocks(self._file, compressor)
            if hasattr(self._file, 'flush'): self._file.flush()

    def _write_blocks(self, handle: BinaryIO, compressor: zstandard.ZstdCompressor):
        offset = self._header.write(handle)
        for kind in self._header.flags.streams():
            info = self._writers[kind].finish(handle, compressor, offset, self._CHUNK_SIZE)
            offset = info.offset + info.compressed_size
            self._blocks.append(info)

    def _release(self):
        writers, self._writers = self._writers, {}
        for writer in writers.values(): writer.close()
        self._state = EncoderState.CLOSED

    def close(self):
        """Discards the archive without writing anything, unless it was already finalized."""
        if self._state is EncoderState.BUILDING: log.debug('Discarded %d records', self._count)
        self._release()
