"""Half-open sequence intervals and numpy-backed interval batches, used to describe soft-masked regions."""
from typing import Union, Iterable

import numpy as np

from naflib.lib.resources import jit


# Classes --------------------------------------------------------------------------------------------------------------
class Interval:
    """
    Immutable half-open interval. Safe for hashing and use in sets/dicts.

    Attributes:
        start: The start position (0-based, inclusive).
        end: The end position (0-based, exclusive).
    """
    __slots__ = ('_start', '_end')

    def __init__(self, start: int, end: int):
        self._start: int = int(start)
        self._end: int = int(end)
        if self._start < 0 or self._end < self._start:
            raise ValueError(f'Invalid interval [{self._start}, {self._end})')

    @property
    def start(self): return self._start
    @property
    def end(self): return self._end
    def __hash__(self): return hash((self._start, self._end))
    def __repr__(self): return f"{self._start}:{self._end}"
    def __len__(self): return self._end - self._start
    def __iter__(self): return iter((self._start, self._end))

    def __eq__(self, other):
        if not isinstance(other, Interval): return False
        return self._start == other._start and self._end == other._end

    @classmethod
    def from_item(cls, item: Union[tuple, 'Interval']) -> 'Interval':
        """Coerces an ``Interval`` or a ``(start, end)`` tuple into an ``Interval``."""
        if isinstance(item, Interval): return item
        if isinstance(item, tuple) and len(item) == 2: return cls(*item)
        raise TypeError(f'Cannot convert {type(item)} to Interval')


class IntervalBatch:
    """
    Sorted batch of half-open intervals, powered by NumPy.

    Examples:
        >>> batch = IntervalBatch.build([(5, 8), (0, 2), (2, 3)])
        >>> list(batch.merge())
        [0:3, 5:8]
    """
    __slots__ = ('_starts', '_ends')
    _DTYPE = np.int64

    def __init__(self, starts: np.ndarray = None, ends: np.ndarray = None, sort: bool = True):
        if starts is None:
            self._starts = np.empty(0, dtype=self._DTYPE)
            self._ends = np.empty(0, dtype=self._DTYPE)
        else:
            self._starts = np.ascontiguousarray(starts, dtype=self._DTYPE)
            self._ends = np.ascontiguousarray(ends, dtype=self._DTYPE)
            if self._starts.shape != self._ends.shape: raise ValueError('Starts and ends must have the same shape')
            if np.any(self._starts < 0) or np.any(self._ends < self._starts):
                raise ValueError('Intervals must satisfy 0 <= start <= end')
        if sort: self.sort()

    def sort(self):
        """Sorts the intervals by start position, then end position."""
        if len(self._starts) > 1:
            order = np.lexsort((self._ends, self._starts))
            self._starts = self._starts[order]
            self._ends = self._ends[order]

    @classmethod
    def empty(cls) -> 'IntervalBatch':
        """Creates an empty IntervalBatch."""
        return cls()

    @classmethod
    def build(cls, intervals: Iterable[Union[Interval, tuple]]) -> 'IntervalBatch':
        """Creates an IntervalBatch from an iterable of intervals or ``(start, end)`` tuples.

        Args:
            intervals: The intervals to store.

        Returns:
            A new sorted ``IntervalBatch``.
        """
        if isinstance(intervals, IntervalBatch): return intervals
        data = [tuple(Interval.from_item(i)) for i in intervals]
        if not data: return cls.empty()
        arr = np.array(data, dtype=cls._DTYPE)
        return cls(arr[:, 0], arr[:, 1])

    def __repr__(self): return f"<IntervalBatch: {len(self)} intervals>"
    def __len__(self): return len(self._starts)
    def __bool__(self): return len(self._starts) > 0

    def __iter__(self):
        for s, e in zip(self._starts.tolist(), self._ends.tolist()): yield Interval(s, e)

    def __eq__(self, other):
        if isinstance(other, IntervalBatch):
            return np.array_equal(self._starts, other._starts) and np.array_equal(self._ends, other._ends)
        if isinstance(other, (list, tuple)): return self == IntervalBatch.build(other)
        return False

    @property
    def starts(self) -> np.ndarray: return self._starts
    @property
    def ends(self) -> np.ndarray: return self._ends

    def merge(self, tolerance: int = 0) -> 'IntervalBatch':
        """
        Merges overlapping or adjacent intervals, dropping empty ones.

        Args:
            tolerance: Maximum distance between intervals to merge.

        Returns:
            A new merged IntervalBatch.
        """
        keep = self._ends > self._starts
        if not keep.all(): return IntervalBatch(self._starts[keep], self._ends[keep], sort=False).merge(tolerance)
        if len(self) == 0: return self
        starts, ends = _merge_kernel(self._starts, self._ends, tolerance)
        return IntervalBatch(starts, ends, sort=False)

    def span(self) -> int:
        """Returns the end of the right-most interval (0 for an empty batch)."""
        return int(self._ends.max()) if len(self) else 0

    def to_mask(self, length: int) -> np.ndarray:
        """
        Renders the intervals as a boolean array of size ``length``.

        Raises:
            ValueError: If an interval extends past ``length``.
        """
        if self.span() > length: raise ValueError(f'Interval ends at {self.span()}, past length {length}')
        delta = np.zeros(length + 1, dtype=np.int64)
        np.add.at(delta, self._starts, 1)
        np.add.at(delta, self._ends, -1)
        return np.cumsum(delta[:-1]) > 0


# Kernels --------------------------------------------------------------------------------------------------------------
@jit(nopython=True, cache=True, nogil=True)
def _merge_kernel(starts, ends, tolerance):
    """
    Merges overlapping intervals in a single O(N) pass.
    Assumes inputs are sorted by start.
    """
    n = len(starts)
    temp_s = np.empty(n, dtype=starts.dtype)
    temp_e = np.empty(n, dtype=ends.dtype)

    curr_s = starts[0]
    curr_e = ends[0]
    out_idx = 0

    for i in range(1, n):
        s = starts[i]
        e = ends[i]
        if s <= curr_e + tolerance:
            curr_e = max(curr_e, e)
        else:
            temp_s[out_idx] = curr_s
            temp_e[out_idx] = curr_e
            out_idx += 1
            curr_s = s
            curr_e = e

    temp_s[out_idx] = curr_s
    temp_e[out_idx] = curr_e
    out_idx += 1

    return temp_s[:out_idx], temp_e[:out_idx]
