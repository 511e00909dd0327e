"""
Compressed stream blocks.

Each stream of an archive is compressed as one independent zstandard frame and framed as::

    original size (varint) | compressed size (varint) | zstd frame

Blocks are decompressed incrementally, a bounded chunk of compressed bytes at a time, so a stream never has to be
materialized in full before its first element is used.
"""
from dataclasses import dataclass
from logging import getLogger
from shutil import copyfileobj
from tempfile import SpooledTemporaryFile
from typing import BinaryIO, Optional

import zstandard

from naflib.core.header import Flag
from naflib.core.varint import decode_varint, encode_varint
from naflib.errors import TruncatedInput, TruncatedArchive, DecompressionError, Overflow


log = getLogger(__name__)


# Classes --------------------------------------------------------------------------------------------------------------
@dataclass(frozen=True)
class BlockInfo:
    """
    Location and sizes of one stream block.

    Attributes:
        kind: The stream stored in the block.
        offset: Position of the compressed frame, relative to the start of the archive.
        original_size: Size of the stream once decompressed.
        compressed_size: Size of the compressed frame.
    """
    kind: Flag
    offset: int
    original_size: int
    compressed_size: int

    def __str__(self):
        if self.original_size == self.compressed_size: return f'{self.kind.label}: {self.original_size}'
        return (f'{self.kind.label}: {self.compressed_size} / {self.original_size} '
                f'({self.ratio * 100:.3f}%)')

    @property
    def ratio(self) -> float:
        """Returns the compressed size as a fraction of the original size."""
        return self.compressed_size / self.original_size if self.original_size else 1.0


class BlockReader:
    """
    Incremental reader over one compressed stream block.

    Args:
        info: The block location and sizes.
        region: Source of the compressed bytes (anything with ``read(n)`` and ``close()``).
        chunk_size: Maximum number of compressed bytes fed to the decompressor at a time.

    Examples:
        >>> reader = BlockReader(info, region)
        >>> reader.read_until(b'\\0')
        b'seq1'
    """
    __slots__ = ('_info', '_region', '_chunk_size', '_dctx', '_buffer', '_pos', '_consumed', '_produced',
                 '_offset', '_finished')
    _CHUNK_SIZE = 65536

    def __init__(self, info: BlockInfo, region, chunk_size: int = None):
        self._info = info
        self._region = region
        self._chunk_size = chunk_size or self._CHUNK_SIZE
        self._dctx = zstandard.ZstdDecompressor().decompressobj()
        self._buffer = bytearray()
        self._pos = 0
        self._consumed = 0
        self._produced = 0
        self._offset = 0
        self._finished = False

    def __repr__(self): return f'<BlockReader: {self._info.kind.label} at {self._offset}>'

    @property
    def info(self) -> BlockInfo: return self._info
    @property
    def label(self) -> str: return self._info.kind.label

    def tell(self) -> int:
        """Returns the offset of the next unread byte in the decompressed stream."""
        return self._offset

    def _fill(self) -> bool:
        """Decompresses the next chunk; returns ``False`` once the block is exhausted."""
        if self._finished: return False
        size = self._info.compressed_size
        if self._consumed >= size:
            self._finish()
            return False
        chunk = self._region.read(min(self._chunk_size, size - self._consumed))
        if not chunk:
            raise TruncatedArchive(f'Block ended after {self._consumed} of {size} compressed bytes',
                                   stream=self.label, offset=self._offset)
        self._consumed += len(chunk)
        try:
            out = self._dctx.decompress(chunk)
        except zstandard.ZstdError as e:
            raise DecompressionError(f'Cannot decompress block: {e}', stream=self.label, offset=self._offset) from e
        if out:
            self._buffer += out
            self._produced += len(out)
            if self._produced > self._info.original_size:
                raise DecompressionError(f'Block inflates past its declared size of {self._info.original_size}',
                                         stream=self.label, offset=self._offset)
        return True

    def _finish(self):
        self._finished = True
        if self._produced != self._info.original_size:
            raise DecompressionError(f'Block inflated to {self._produced} bytes, expected {self._info.original_size}',
                                     stream=self.label, offset=self._offset)

    def _compact(self):
        if self._pos >= self._chunk_size:
            del self._buffer[:self._pos]
            self._pos = 0

    def _available(self) -> int: return len(self._buffer) - self._pos

    def _ensure(self, n: int) -> bool:
        while self._available() < n:
            if not self._fill(): return False
        return True

    def at_eof(self) -> bool:
        """Returns ``True`` if every byte of the stream has been read."""
        return not self._ensure(1)

    def read(self, n: int) -> bytes:
        """
        Reads exactly *n* bytes.

        Raises:
            TruncatedArchive: If the stream ends first.
        """
        self._compact()
        if not self._ensure(n):
            raise TruncatedArchive(f'Stream ended with {self._available()} of {n} requested bytes',
                                   stream=self.label, offset=self._offset)
        data = bytes(self._buffer[self._pos:self._pos + n])
        self._pos += n
        self._offset += n
        return data

    def read_until(self, delimiter: bytes = b'\0') -> Optional[bytes]:
        """
        Reads the next element terminated by ``delimiter`` (which is consumed but not returned).

        Returns:
            The element, or ``None`` if the stream is exhausted exactly at an element boundary.

        Raises:
            TruncatedArchive: If the stream ends inside an element.
        """
        self._compact()
        search_from = self._pos
        while (idx := self._buffer.find(delimiter, search_from)) == -1:
            search_from = max(self._pos, len(self._buffer) - len(delimiter) + 1)
            if not self._fill():
                if not self._available(): return None
                raise TruncatedArchive('Stream ended inside an element', stream=self.label, offset=self._offset)
        data = bytes(self._buffer[self._pos:idx])
        consumed = idx + len(delimiter) - self._pos
        self._pos += consumed
        self._offset += consumed
        return data

    def read_varint(self) -> Optional[int]:
        """
        Reads the next varint.

        Returns:
            The value, or ``None`` if the stream is exhausted exactly at a value boundary.

        Raises:
            TruncatedArchive: If the stream ends inside a varint.
            Overflow: If the value does not fit in 64 bits.
        """
        self._compact()
        while True:
            try:
                value, end = decode_varint(self._buffer, self._pos)
                break
            except TruncatedInput:
                if not self._fill():
                    if not self._available(): return None
                    raise TruncatedArchive('Stream ended inside a varint', stream=self.label, offset=self._offset)
            except Overflow as e:
                raise Overflow('Varint does not fit in 64 bits', stream=self.label, offset=self._offset) from e
        self._offset += end - self._pos
        self._pos = end
        return value

    def read_all(self) -> bytes:
        """Reads the rest of the stream."""
        while self._fill(): pass
        return self.read(self._available())

    def close(self):
        """Releases the decompression context and the compressed byte source."""
        if self._region is not None: self._region.close()
        self._region = None
        self._dctx = None
        self._buffer = bytearray()
        self._pos = 0


class BlockWriter:
    """
    Accumulates one uncompressed stream and writes it as a compressed block.

    The stream is buffered in a spooled temporary file (in memory up to ``spool_size``, on disk beyond), and only
    compressed when the block is written.

    Args:
        kind: The stream stored in the block.
        spool_size: In-memory size of the buffers before they spill to disk.
    """
    __slots__ = ('kind', 'size', '_spool', '_spool_size')
    _SPOOL_SIZE = 16 * 1024 * 1024

    def __init__(self, kind: Flag, spool_size: int = None):
        self.kind = kind
        self.size = 0
        self._spool_size = spool_size or self._SPOOL_SIZE
        self._spool = SpooledTemporaryFile(max_size=self._spool_size)

    def __repr__(self): return f'<BlockWriter: {self.kind.label} ({self.size} bytes)>'

    def write(self, data: bytes):
        """Appends uncompressed bytes to the stream."""
        self._spool.write(data)
        self.size += len(data)

    def finish(self, sink: BinaryIO, compressor: zstandard.ZstdCompressor, offset: int = 0,
               chunk_size: int = 65536) -> BlockInfo:
        """
        Compresses the stream and writes the framed block to ``sink``.

        Args:
            sink: Writable binary handle.
            compressor: The zstandard compressor to use.
            offset: Position of the block in the archive, for the returned ``BlockInfo``.
            chunk_size: Number of bytes compressed and copied at a time.

        Returns:
            The ``BlockInfo`` of the written block.
        """
        self._spool.seek(0)
        with SpooledTemporaryFile(max_size=self._spool_size) as compressed:
            _, written = compressor.copy_stream(self._spool, compressed, size=self.size, read_size=chunk_size,
                                                write_size=chunk_size)
            prefix = encode_varint(self.size) + encode_varint(written)
            sink.write(prefix)
            compressed.seek(0)
            copyfileobj(compressed, sink, chunk_size)
        info = BlockInfo(self.kind, offset + len(prefix), self.size, written)
        log.debug('Wrote %s', info)
        return info

    def close(self):
        """Releases the spooled buffer."""
        self._spool.close()
