"""
The fixed-layout preamble of a NAF archive.

Layout, in strict order::

    magic (01 F9 EC) | version (1 byte) | flags (1 byte) | sequence type (1 byte)
    | line length (varint) | name separator (1 byte) | number of sequences (varint)

The flags declare which stream blocks follow the header; blocks are always laid out in ``Flag.STREAM_ORDER``.
"""
from enum import IntEnum, IntFlag
from io import BytesIO
from typing import BinaryIO, ClassVar, Union

from naflib.core.varint import encode_varint, read_varint
from naflib.errors import BadMagic, UnsupportedVersion, InconsistentFlags, BadHeader, TruncatedInput, TruncatedArchive


# Classes --------------------------------------------------------------------------------------------------------------
class FormatVersion(IntEnum):
    """
    Supported format versions.

    Version 1 archives cannot store qualities.
    """
    V1 = 1
    V2 = 2


class SequenceType(IntEnum):
    """The type of sequences stored in an archive, which selects the alphabet."""
    DNA = 0
    RNA = 1
    PROTEIN = 2
    TEXT = 3

    @property
    def is_nucleotide(self) -> bool:
        """Returns ``True`` for DNA and RNA, whose archives derive soft masks from lower-case letters."""
        return self in (SequenceType.DNA, SequenceType.RNA)


class Flag(IntFlag):
    """
    Flags for the optional stream blocks of an archive.

    Examples:
        >>> flags = Flag.ID | Flag.LENGTH | Flag.SEQUENCE
        >>> Flag.MASK in flags
        False
        >>> [f.label for f in flags.streams()]
        ['id', 'length', 'sequence']
    """
    QUALITY = 0x01
    SEQUENCE = 0x02
    MASK = 0x04
    LENGTH = 0x08
    COMMENT = 0x10
    ID = 0x20
    TITLE = 0x40
    EXTENDED = 0x80  # Reserved for future extension of the format

    STREAM_ORDER: ClassVar[tuple['Flag', ...]]
    NEEDS_LENGTH: ClassVar['Flag']

    @property
    def label(self) -> str:
        """Returns the lower-case stream name of a single flag."""
        return self.name.lower()

    def streams(self) -> list['Flag']:
        """Returns the individual flags set, in block order."""
        return [f for f in Flag.STREAM_ORDER if f in self]


Flag.STREAM_ORDER = (Flag.TITLE, Flag.ID, Flag.COMMENT, Flag.LENGTH, Flag.SEQUENCE, Flag.MASK, Flag.QUALITY)
Flag.NEEDS_LENGTH = Flag.SEQUENCE | Flag.MASK | Flag.QUALITY


class Header:
    """
    The header of a Nucleotide Archive Format file.

    Headers are the only mandatory section of NAF files, and contain metadata about the stored sequences, as well as
    formatting hints for rebuilding FASTA/FASTQ text.

    Args:
        flags: The streams present in the archive.
        sequence_type: The type of the stored sequences.
        format_version: The format version.
        line_length: Line width used when formatting sequences as text (0 means no wrapping).
        name_separator: Single byte placed between identifier and comment in a full record name.
        number_of_sequences: The declared record count.

    Raises:
        InconsistentFlags: If the flags cannot be represented in this format version.
        BadHeader: If a parameter is out of range.
    """
    __slots__ = ('flags', 'sequence_type', 'format_version', 'line_length', 'name_separator', 'number_of_sequences')
    MAGIC: ClassVar[bytes] = b'\x01\xf9\xec'
    LATEST: ClassVar[FormatVersion] = FormatVersion.V2

    def __init__(self, flags: Union[Flag, int] = Flag(0), sequence_type: Union[SequenceType, int] = SequenceType.DNA,
                 format_version: Union[FormatVersion, int] = FormatVersion.V2, line_length: int = 60,
                 name_separator: bytes = b' ', number_of_sequences: int = 0):
        self.format_version = FormatVersion(format_version)
        self.flags = Flag(flags)
        self.sequence_type = SequenceType(sequence_type)
        if line_length < 0: raise BadHeader(f'Line length must be non-negative, got {line_length}')
        self.line_length = int(line_length)
        if isinstance(name_separator, str): name_separator = name_separator.encode('ascii')
        if len(name_separator) != 1: raise BadHeader(f'Name separator must be a single byte, got {name_separator!r}')
        self.name_separator = name_separator
        if number_of_sequences < 0: raise BadHeader(f'Record count must be non-negative, got {number_of_sequences}')
        self.number_of_sequences = int(number_of_sequences)
        self.validate()

    def __repr__(self):
        return (f'<Header: v{int(self.format_version)} {self.sequence_type.name} '
                f'[{"|".join(f.label for f in self.flags.streams())}] n={self.number_of_sequences}>')

    def __eq__(self, other):
        if not isinstance(other, Header): return False
        return all(getattr(self, k) == getattr(other, k) for k in self.__slots__)

    def validate(self):
        """
        Checks that the flags are consistent with each other and with the format version.

        Raises:
            UnsupportedVersion: If the reserved extension flag is set.
            InconsistentFlags: If sequence, mask or quality are stored without lengths, or quality in version 1.
        """
        if Flag.EXTENDED in self.flags: raise UnsupportedVersion('Extended archive flags are not supported')
        if self.flags & Flag.NEEDS_LENGTH and Flag.LENGTH not in self.flags:
            needs = '|'.join(f.label for f in (self.flags & Flag.NEEDS_LENGTH).streams())
            raise InconsistentFlags(f'Streams {needs} require the length stream')
        if self.format_version == FormatVersion.V1 and Flag.QUALITY in self.flags:
            raise InconsistentFlags('Format version 1 cannot store qualities')

    @classmethod
    def read(cls, handle: BinaryIO) -> 'Header':
        """
        Parses a header from the current position of a binary handle.

        Args:
            handle: A readable binary handle positioned at the start of the archive.

        Returns:
            The parsed ``Header``; the handle is left at the first stream block.

        Raises:
            BadMagic: If the magic signature is absent.
            UnsupportedVersion: If the version is unknown.
            BadHeader: If the sequence type is unknown.
            InconsistentFlags: If the flags are inconsistent.
            TruncatedArchive: If the source ends inside the header.
        """
        magic = read_exact(handle, len(cls.MAGIC))
        if magic != cls.MAGIC:
            if 0 < len(magic) < len(cls.MAGIC) and cls.MAGIC.startswith(magic):
                raise TruncatedArchive('Source ended inside the magic signature', offset=len(magic))
            raise BadMagic(f'Not a NAF archive (magic {magic.hex()})', offset=0)
        try:
            version, flags, seq_type = _read_bytes(handle, 3)
            if version not in set(FormatVersion):
                raise UnsupportedVersion(f'Unsupported format version {version}', offset=3)
            if seq_type not in set(SequenceType):
                raise BadHeader(f'Unknown sequence type {seq_type}', offset=5)
            line_length = read_varint(handle)
            separator = _read_bytes(handle, 1)
            n = read_varint(handle)
        except TruncatedInput as e:
            raise TruncatedArchive('Source ended inside the header') from e
        return cls(flags, seq_type, version, line_length, separator, n)

    def tobytes(self) -> bytes:
        """Serializes the header."""
        buf = BytesIO()
        self.write(buf)
        return buf.getvalue()

    def write(self, handle: BinaryIO) -> int:
        """Writes the header to a binary handle and returns the number of bytes written."""
        self.validate()
        data = bytearray(self.MAGIC)
        data += bytes((self.format_version, self.flags, self.sequence_type))
        data += encode_varint(self.line_length)
        data += self.name_separator
        data += encode_varint(self.number_of_sequences)
        handle.write(data)
        return len(data)


# Functions ------------------------------------------------------------------------------------------------------------
def read_exact(handle: BinaryIO, n: int) -> bytes:
    """
    Reads *n* bytes, retrying on short reads.

    Pipes, sockets and unbuffered streams may return fewer bytes than asked for; only an empty read means the
    source has ended.

    Args:
        handle: Any object with a ``read(size)`` method returning bytes.
        n: Number of bytes wanted.

    Returns:
        Exactly *n* bytes, or fewer if the source ended first.
    """
    parts = []
    got = 0
    while got < n:
        chunk = handle.read(n - got)
        if not chunk: break
        parts.append(chunk)
        got += len(chunk)
    return b''.join(parts)


def _read_bytes(handle: BinaryIO, n: int) -> bytes:
    data = read_exact(handle, n)
    if len(data) != n: raise TruncatedInput(f'Expected {n} bytes, got {len(data)}')
    return data
