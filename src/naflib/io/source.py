"""
Byte sources for archives: path/handle resolution and per-block regions.

A seekable source is shared by every block reader, each one seeking to its own region before reading. Sequential
sources (pipes, sockets, stdin) are read once: requested blocks are spooled to temporary files and unrequested
blocks are read past and discarded.
"""
from io import IOBase
from logging import getLogger
from pathlib import Path
from tempfile import SpooledTemporaryFile
from typing import BinaryIO, Optional, Union
from warnings import warn

from naflib.core.header import Flag, Header, read_exact
from naflib.core.varint import read_varint
from naflib.errors import TruncatedInput, TruncatedArchive, NafWarning
from naflib.io.block import BlockInfo


log = getLogger(__name__)


# Classes --------------------------------------------------------------------------------------------------------------
class Region:
    """
    A window of ``size`` bytes starting at ``offset`` in a handle, read with its own cursor.

    Reads past the end of the underlying handle return short, letting the block reader tell a truncated block from a
    complete one.

    Args:
        handle: A seekable binary handle.
        offset: Absolute position of the first byte.
        size: Number of bytes in the region.
        owned: If ``True`` the handle belongs to the region and is closed with it.
    """
    __slots__ = ('_handle', '_offset', '_size', '_pos', '_owned')
    def __init__(self, handle: BinaryIO, offset: int, size: int, owned: bool = False):
        self._handle = handle
        self._offset = offset
        self._size = size
        self._pos = 0
        self._owned = owned

    def __len__(self): return self._size

    def read(self, n: int) -> bytes:
        """Reads up to *n* bytes from the current position of the region."""
        n = min(n, self._size - self._pos)
        if n <= 0 or self._handle is None: return b''
        self._handle.seek(self._offset + self._pos)
        data = self._handle.read(n)
        self._pos += len(data)
        return data

    def close(self):
        """Closes the handle if the region owns it."""
        if self._owned and self._handle is not None: self._handle.close()
        self._handle = None


class ArchiveSource:
    """
    Handles the physical layer of a readable archive.

    Args:
        file: File path (str or Path) or an open binary handle.
        spool_size: In-memory size of the spool used for blocks of sequential sources before spilling to disk.
        chunk_size: Number of bytes copied at a time.
    """
    _SPOOL_SIZE = 16 * 1024 * 1024
    _CHUNK_SIZE = 65536

    def __init__(self, file: Union[str, Path, BinaryIO], spool_size: int = None, chunk_size: int = None):
        self._spool_size = spool_size or self._SPOOL_SIZE
        self._chunk_size = chunk_size or self._CHUNK_SIZE
        self._close_on_exit = False
        if isinstance(file, (str, Path)):
            self._handle = open(Path(file).expanduser(), 'rb')
            self._close_on_exit = True
        elif isinstance(file, IOBase) or hasattr(file, 'read'):
            self._handle = file
        else:
            raise TypeError(f'Expected a path or a binary file object, got {type(file).__name__}')
        self.seekable = self._check_seekable(self._handle)
        self._start = self._handle.tell() if self.seekable else 0
        self._pos = 0  # bytes consumed relative to the start of the archive, for sequential sources

    def __enter__(self): return self
    def __exit__(self, exc_type, exc_val, exc_tb): self.close()

    @staticmethod
    def _check_seekable(handle) -> bool:
        try: return bool(handle.seekable())
        except (AttributeError, ValueError, OSError): return False

    def read(self, n: int) -> bytes:
        """Sequential read used while parsing the header and the block prefixes; short reads are retried."""
        data = read_exact(self._handle, n)
        self._pos += len(data)
        return data

    def read_header(self) -> Header:
        """Parses the archive header from the start of the source."""
        return Header.read(self)

    def scan_blocks(self, header: Header, wanted: Flag) -> dict[Flag, tuple[BlockInfo, Optional[Region]]]:
        """
        Locates every stream block declared by the header.

        Args:
            header: The parsed archive header.
            wanted: The streams that will be decoded; only these get a ``Region``.

        Returns:
            A mapping of stream kind to ``(BlockInfo, Region or None)``, in block order.

        Raises:
            TruncatedArchive: If a block prefix is missing.
        """
        blocks = {}
        for kind in header.flags.streams():
            try:
                original_size = read_varint(self)
                compressed_size = read_varint(self)
            except TruncatedInput as e:
                raise TruncatedArchive('Source ended inside a block prefix', stream=kind.label, offset=self._pos) from e
            info = BlockInfo(kind, self._pos, original_size, compressed_size)
            region = None
            if self.seekable:
                if kind in wanted:
                    region = Region(self._handle, self._start + self._pos, compressed_size)
                self._handle.seek(self._start + self._pos + compressed_size)
                self._pos += compressed_size
            elif kind in wanted:
                region = self._spool(compressed_size)
            else:
                self._discard(compressed_size)
            log.debug('Found %s block at %d (%d -> %d bytes)', kind.label, info.offset, compressed_size,
                      original_size)
            blocks[kind] = (info, region)
        self._check_trailing()
        return blocks

    def _spool(self, size: int) -> Region:
        spool = SpooledTemporaryFile(max_size=self._spool_size)
        copied = 0
        try:
            while copied < size:
                chunk = self.read(min(self._chunk_size, size - copied))
                if not chunk: break
                spool.write(chunk)
                copied += len(chunk)
        except BaseException:
            spool.close()
            raise
        # A short spool is only an error once the missing bytes are needed
        return Region(spool, 0, size, owned=True)

    def _discard(self, size: int):
        left = size
        while left > 0:
            chunk = self.read(min(self._chunk_size, left))
            if not chunk: break
            left -= len(chunk)

    def _check_trailing(self):
        if not self.seekable: return
        here = self._handle.tell()
        end = self._handle.seek(0, 2)
        self._handle.seek(here)
        if end > here: warn(f'{end - here} trailing bytes after the last block were ignored', NafWarning)

    def close(self):
        """Closes the handle if it was opened by this source."""
        if self._close_on_exit: self._handle.close()
