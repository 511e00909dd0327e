"""
Exception hierarchy for reading and writing Nucleotide Archive Format files.

Every error accepts optional keyword context (``stream``, ``offset``, ``record``) which is kept as attributes and
appended to the message, so that a failure deep inside a block can be traced back to the stream kind, the byte
offset inside the decompressed stream and the index of the record being assembled.
"""


# Exceptions and Warnings ----------------------------------------------------------------------------------------------
class NafWarning(Warning): pass


class NafError(Exception):
    """Base class for all naflib errors."""
    def __init__(self, message: str = '', *, stream: str = None, offset: int = None, record: int = None):
        self.stream = stream
        self.offset = offset
        self.record = record
        context = []
        if stream is not None: context.append(f'stream={stream}')
        if offset is not None: context.append(f'offset={offset}')
        if record is not None: context.append(f'record={record}')
        if context: message = f"{message} ({', '.join(context)})"
        super().__init__(message)


# Format errors: the archive cannot be used at all
class FormatError(NafError):
    """Raised when the archive header or the flag layout is invalid."""

class BadMagic(FormatError):
    """Raised when the archive does not start with the NAF magic signature."""

class UnsupportedVersion(FormatError):
    """Raised when the format version (or a reserved flag) is newer than this codec understands."""

class InconsistentFlags(FormatError):
    """Raised when header flags and supplied fields disagree."""

class BadHeader(FormatError):
    """Raised when a header parameter has an invalid value."""


# Stream errors: the bytes backing a stream are missing or cannot be decompressed
class StreamError(NafError, IOError):
    """Base class for stream level I/O errors."""

class TruncatedInput(StreamError):
    """Raised when a byte source ends in the middle of an encoded value."""

class TruncatedArchive(StreamError):
    """Raised when a stream ends before the declared number of records was read."""

class DecompressionError(StreamError):
    """Raised when the stream compressor rejects a block, or a block inflates to the wrong size."""


# Data errors: the decoded content is invalid at a given position
class DataError(NafError, ValueError):
    """Base class for invalid stream content."""

class InvalidSymbol(DataError):
    """Raised when a symbol or symbol code is not part of the alphabet."""
    def __init__(self, symbol: int, *, stream: str = None, offset: int = None, record: int = None):
        self.symbol = symbol
        super().__init__(f'Invalid symbol code {symbol:#04x}', stream=stream, offset=offset, record=record)

class MaskLengthMismatch(DataError):
    """Raised when mask runs do not add up to the record length."""

class Overflow(DataError):
    """Raised when a variable-length integer does not fit in 64 bits."""

class LengthMismatch(DataError):
    """Raised when a sequence or quality string disagrees with the record length."""


# Usage errors: the caller did something the codec refuses to do
class UsageError(NafError):
    """Base class for caller errors."""

class UnexpectedField(UsageError):
    """Raised when a record carries a field the archive was not configured to store."""

class AlreadyClosed(UsageError):
    """Raised when a finalized or closed archive handle is used again."""

class InvalidField(UsageError):
    """Raised when a field value cannot be represented in the archive (e.g. an identifier containing NUL)."""

class ParserError(DataError):
    """Raised when FASTA or FASTQ text is malformed."""
