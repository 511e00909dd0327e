"""
Run-length coding of soft-masked sequence regions.

The mask of a record is stored as alternating run lengths, starting with an unmasked run (which is zero when the
sequence starts masked), each run written as a varint. The runs of a record always add up to the record length, and
a record of length zero has no runs at all.

Examples:
    >>> runs_from_mask(np.array([0, 0, 1, 1, 1, 0], dtype=bool)).tolist()
    [2, 3, 1]
    >>> list(intervals_from_runs([2, 3, 1]))
    [2:5]
"""
from typing import Callable, Iterable, Union

import numpy as np

from naflib.core.interval import Interval, IntervalBatch
from naflib.core.varint import encode_varints
from naflib.errors import MaskLengthMismatch


# Functions ------------------------------------------------------------------------------------------------------------
def runs_from_mask(mask: np.ndarray) -> np.ndarray:
    """
    Computes the alternating run lengths of a boolean mask in one scan.

    Args:
        mask: Boolean array, ``True`` where the sequence is masked.

    Returns:
        An ``int64`` array of run lengths, starting with an unmasked run; empty for an empty mask.
    """
    mask = np.asarray(mask, dtype=bool)
    if not len(mask): return np.empty(0, dtype=np.int64)
    flips = np.flatnonzero(mask[1:] != mask[:-1]) + 1
    bounds = np.concatenate(([0], flips, [len(mask)]))
    runs = np.diff(bounds)
    if mask[0]: runs = np.concatenate(([0], runs))
    return runs.astype(np.int64, copy=False)


def intervals_from_runs(runs: Iterable[int]) -> IntervalBatch:
    """Converts alternating run lengths to the batch of masked intervals."""
    runs = np.asarray(list(runs) if not isinstance(runs, np.ndarray) else runs, dtype=np.int64)
    if len(runs) < 2: return IntervalBatch.empty()
    bounds = np.cumsum(runs)
    # Masked runs are at odd positions: they start where the previous run ends
    starts, ends = bounds[0::2], bounds[1::2]
    starts = starts[:len(ends)]
    keep = ends > starts
    return IntervalBatch(starts[keep], ends[keep], sort=False)


def runs_from_intervals(intervals: Union[IntervalBatch, Iterable[Interval]], length: int) -> np.ndarray:
    """
    Converts masked intervals to alternating run lengths covering ``length`` positions.

    Args:
        intervals: The masked intervals (merged before encoding).
        length: The record length.

    Returns:
        An ``int64`` array of run lengths.

    Raises:
        MaskLengthMismatch: If an interval extends past ``length``.
    """
    if length == 0:
        if IntervalBatch.build(intervals).merge(): raise MaskLengthMismatch('Masked interval in an empty record')
        return np.empty(0, dtype=np.int64)
    merged = IntervalBatch.build(intervals).merge()
    if merged.span() > length:
        raise MaskLengthMismatch(f'Masked interval ends at {merged.span()}, past record length {length}')
    bounds = np.concatenate(([0], np.stack((merged.starts, merged.ends), axis=1).ravel(), [length]))
    runs = np.diff(bounds)
    # A trailing masked run leaves an empty closing unmasked run
    if len(runs) > 1 and runs[-1] == 0: runs = runs[:-1]
    return runs.astype(np.int64, copy=False)


def encode_mask(intervals: Union[IntervalBatch, Iterable[Interval]], length: int) -> bytes:
    """Encodes the masked intervals of one record as varint runs."""
    return encode_varints(runs_from_intervals(intervals, length).tolist())


# Classes --------------------------------------------------------------------------------------------------------------
class MaskReader:
    """
    Reads the mask runs of consecutive records from a varint source.

    Args:
        read_varint: Callable returning the next varint of the mask stream, or ``None`` at the end of the stream.
    """
    __slots__ = ('_read_varint',)
    def __init__(self, read_varint: Callable[[], int]):
        self._read_varint = read_varint

    def read(self, length: int) -> IntervalBatch:
        """
        Reads the runs of one record.

        Args:
            length: The declared record length.

        Returns:
            The masked intervals of the record.

        Raises:
            MaskLengthMismatch: If the runs overshoot ``length`` or the stream ends first.
        """
        runs = []
        total = 0
        while total < length:
            run = self._read_varint()
            if run is None:
                raise MaskLengthMismatch(f'Mask stream ended after {total} of {length} positions')
            total += run
            runs.append(run)
        if total != length: raise MaskLengthMismatch(f'Mask runs cover {total} positions, expected {length}')
        return intervals_from_runs(runs)
