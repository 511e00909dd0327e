"""
Reading and writing Nucleotide Archive Format (NAF) files.

Examples:
    >>> import naflib
    >>> with naflib.open('genomes.naf', 'w', id=True, sequence=True) as archive:
    ...     archive.write(naflib.Record(b'seq1', sequence=b'ACGT'))
    >>> with naflib.open('genomes.naf') as archive:
    ...     [record.sequence for record in archive]
    [b'ACGT']
"""
from pathlib import Path
from typing import BinaryIO, Union

from naflib.containers.record import Record
from naflib.core.header import Flag, FormatVersion, Header, SequenceType
from naflib.errors import (NafError, NafWarning, FormatError, StreamError, DataError, UsageError, BadMagic,
                           UnsupportedVersion, InconsistentFlags, BadHeader, TruncatedInput, TruncatedArchive,
                           DecompressionError, InvalidSymbol, MaskLengthMismatch, Overflow, LengthMismatch,
                           UnexpectedField, AlreadyClosed, InvalidField, ParserError)
from naflib.io.decoder import Decoder, DecoderState
from naflib.io.encoder import Encoder, EncoderState

__version__ = '0.1.0'


# Functions ------------------------------------------------------------------------------------------------------------
def open(file: Union[str, Path, BinaryIO], mode: str = 'r', **options) -> Union[Decoder, Encoder]:
    """
    Opens an archive for reading or writing.

    Args:
        file: File path or binary handle.
        mode: ``'r'`` for a ``Decoder``, ``'w'`` for an ``Encoder``.
        **options: Keyword arguments for the ``Decoder`` or ``Encoder``.

    Returns:
        The ``Decoder`` or ``Encoder``.

    Raises:
        ValueError: If the mode is not ``'r'`` or ``'w'``.
    """
    mode = mode.replace('b', '')
    if mode == 'r': return Decoder(file, **options)
    if mode == 'w': return Encoder(file, **options)
    raise ValueError(f"Invalid mode {mode!r}, expected 'r' or 'w'")
