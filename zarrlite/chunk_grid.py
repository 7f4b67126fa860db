import itertools
import numbers
from typing import Iterator, NamedTuple, Optional, Sequence, Tuple

from zarrlite.errors import BoundsCheckError, ChunkKeyError, RangeError, RankMismatchError
from zarrlite.util import product


class ChunkProjection(NamedTuple):
    """The part of a region that falls inside one chunk.

    `chunk_selection` picks the cells inside the chunk buffer,
    `out_selection` the same cells relative to the region and
    `array_selection` relative to the whole array. `complete` is True when
    the piece covers every cell of the chunk that lies inside the array, so
    a write may replace the chunk without reading it.
    """
    chunk_coords: Tuple[int, ...]
    chunk_selection: Tuple[slice, ...]
    out_selection: Tuple[slice, ...]
    array_selection: Tuple[slice, ...]
    complete: bool


def ceildiv(a, b):
    return -(-a // b)


def _dim_pieces(start, length, dim_len, chunk_len):
    # (chunk index, chunk slice, region slice, array slice, complete) for each
    # chunk the interval [start, start + length) meets along one dimension
    stop = start + length
    for ix in range(start // chunk_len, ceildiv(stop, chunk_len)):
        lo = ix * chunk_len
        hi = min(lo + chunk_len, dim_len)
        a, b = max(start, lo), min(stop, hi)
        yield ix, slice(a - lo, b - lo), slice(a - start, b - start), slice(a, b), b - a == hi - lo


class ChunkGrid:
    """Chunk arithmetic for an array of a given shape and chunk shape.

    Instances hold no mutable state and perform no I/O.

    Parameters
    ----------
    shape : tuple of ints
        Array shape.
    chunks : tuple of ints
        Chunk shape, same length as `shape`.
    dimension_separator : {'.', '/'}, optional
        Separator placed between chunk indices in chunk keys.
    key_prefix : str, optional
        Prefix of every chunk key, normally the array path followed by '/'.

    """

    def __init__(self, shape: Sequence[int], chunks: Sequence[int],
                 dimension_separator: str = '.', key_prefix: str = ''):
        if len(shape) != len(chunks):
            raise RankMismatchError('chunks', len(shape), len(chunks))
        self.shape = tuple(shape)
        self.chunks = tuple(chunks)
        self.dimension_separator = dimension_separator
        self.key_prefix = key_prefix

    def __repr__(self):
        return 'ChunkGrid(shape={}, chunks={})'.format(self.shape, self.chunks)

    @property
    def ndim(self) -> int:
        return len(self.shape)

    def chunk_count(self, dim: int) -> int:
        """Number of chunks along dimension `dim`."""
        return ceildiv(self.shape[dim], self.chunks[dim])

    @property
    def cdata_shape(self) -> Tuple[int, ...]:
        """Number of chunks along each dimension."""
        return tuple(self.chunk_count(i) for i in range(self.ndim))

    @property
    def nchunks(self) -> int:
        return product(self.cdata_shape)

    def check_region(self, shape: Optional[Sequence[int]] = None,
                     offset: Optional[Sequence[int]] = None
                     ) -> Tuple[Tuple[int, ...], Tuple[int, ...]]:
        """Normalize a region and check it lies inside the array.

        `shape` defaults to the part of the array from `offset` to the end and
        `offset` defaults to the origin.

        Returns
        -------
        shape, offset : tuple of ints

        Raises
        ------
        RangeError
            On rank mismatch, a negative offset, a non-positive shape or a
            region extending beyond the array.
        """
        if offset is None:
            offset = (0,) * self.ndim
        offset = _as_int_tuple(offset, 'offset')
        if len(offset) != self.ndim:
            raise RankMismatchError('offset', self.ndim, len(offset))
        if shape is None:
            shape = tuple(max(1, s - o) for s, o in zip(self.shape, offset))
        shape = _as_int_tuple(shape, 'shape')
        if len(shape) != self.ndim:
            raise RankMismatchError('shape', self.ndim, len(shape))

        for dim, (o, s, dim_len) in enumerate(zip(offset, shape, self.shape)):
            if o < 0:
                raise RangeError('negative offset {} in dimension {}'.format(o, dim))
            if s < 1:
                raise RangeError('region shape must be positive, found {} in dimension {}'
                                 .format(s, dim))
            if o + s > dim_len:
                raise BoundsCheckError(dim, o, s, dim_len)
        return shape, offset

    def decompose(self, shape: Optional[Sequence[int]] = None,
                  offset: Optional[Sequence[int]] = None) -> Iterator[ChunkProjection]:
        """Lazily split a region into one piece per intersected chunk.

        Pieces come in row-major order over chunk indices. Their
        `array_selection` boxes tile the region exactly.
        """
        shape, offset = self.check_region(shape, offset)
        per_dim = [list(_dim_pieces(o, s, dim_len, chunk_len))
                   for o, s, dim_len, chunk_len in zip(offset, shape, self.shape, self.chunks)]
        return self._combine(per_dim)

    @staticmethod
    def _combine(per_dim):
        for combo in itertools.product(*per_dim):
            coords, chunk_sel, out_sel, array_sel, complete = zip(*combo)
            yield ChunkProjection(coords, chunk_sel, out_sel, array_sel, all(complete))

    def chunk_extent(self, chunk_coords: Sequence[int]) -> Tuple[slice, ...]:
        """Global box covered by a chunk, clipped to the array bounds."""
        self._check_coords(chunk_coords, chunk_coords)
        return tuple(slice(c * cl, min((c + 1) * cl, dl))
                     for c, cl, dl in zip(chunk_coords, self.chunks, self.shape))

    def chunk_key(self, chunk_coords: Sequence[int]) -> str:
        self._check_coords(chunk_coords, chunk_coords)
        return self.key_prefix + self.dimension_separator.join(map(str, chunk_coords))

    def chunk_coords(self, key: str) -> Tuple[int, ...]:
        """Parse a chunk key back into chunk indices."""
        coords = self._parse_key(key)
        if coords is None:
            raise ChunkKeyError(key, self.cdata_shape)
        return coords

    def is_chunk_key(self, key: str) -> bool:
        return self._parse_key(key) is not None

    def _parse_key(self, key):
        if not key.startswith(self.key_prefix):
            return None
        parts = key[len(self.key_prefix):].split(self.dimension_separator)
        if not all(p.isdigit() for p in parts):
            return None
        coords = tuple(int(p) for p in parts)
        if not self._valid_coords(coords):
            return None
        return coords

    def _valid_coords(self, coords):
        return len(coords) == self.ndim and all(
            isinstance(c, numbers.Integral) and 0 <= c < n
            for c, n in zip(coords, self.cdata_shape))

    def _check_coords(self, coords, key):
        if not self._valid_coords(coords):
            raise ChunkKeyError(key, self.cdata_shape)


def _as_int_tuple(v, name):
    if isinstance(v, numbers.Integral):
        v = (v,)
    try:
        items = tuple(v)
    except TypeError as e:
        raise RangeError('{} must be a sequence of integers, found {!r}'.format(name, v)) from e
    # floats are refused rather than truncated
    if not all(isinstance(i, numbers.Integral) and not isinstance(i, bool) for i in items):
        raise RangeError('{} must be a sequence of integers, found {!r}'.format(name, v))
    return tuple(int(i) for i in items)


def replace_ellipsis(selection, shape):
    """Expand `selection` to one item per dimension of `shape`: a single
    `...` stands for as many full slices as needed, and missing trailing
    items select whole dimensions."""
    if not isinstance(selection, tuple):
        selection = (selection,)
    ellipses = [i for i, item in enumerate(selection) if item is Ellipsis]
    if len(ellipses) > 1:
        raise IndexError("an index can only have a single ellipsis ('...')")
    if ellipses:
        at = ellipses[0]
        fill = (slice(None),) * max(0, len(shape) - len(selection) + 1)
        selection = selection[:at] + fill + selection[at + 1:]
    if len(selection) > len(shape):
        raise RangeError('too many indices for array; expected {}, got {}'
                         .format(len(shape), len(selection)))
    return selection + (slice(None),) * (len(shape) - len(selection))


def selection_to_region(selection, shape):
    """Translate a basic numpy selection of ints and step-1 slices into a region.

    Returns
    -------
    region_shape, offset : tuple of ints
    drop_axes : tuple of ints
        Dimensions selected by an integer, to be squeezed from the result.
    """
    selection = replace_ellipsis(selection, shape)
    region_shape = []
    offset = []
    drop_axes = []
    for dim, (dim_sel, dim_len) in enumerate(zip(selection, shape)):
        if isinstance(dim_sel, numbers.Integral):
            dim_sel = int(dim_sel)
            if dim_sel < 0:
                dim_sel += dim_len
            if not 0 <= dim_sel < dim_len:
                raise BoundsCheckError(dim, dim_sel, 1, dim_len)
            offset.append(dim_sel)
            region_shape.append(1)
            drop_axes.append(dim)
        elif isinstance(dim_sel, slice):
            start, stop, step = dim_sel.indices(dim_len)
            if step != 1:
                raise IndexError('only slices with step 1 are supported, got {!r}'
                                 .format(dim_sel))
            offset.append(start)
            region_shape.append(max(0, stop - start))
        else:
            raise IndexError('unsupported selection item; expected integer or slice, got {!r}'
                             .format(type(dim_sel)))
    return tuple(region_shape), tuple(offset), tuple(drop_axes)
