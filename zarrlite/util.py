import json
import math
import numbers
from textwrap import TextWrapper
from typing import Any, Dict, Optional, Tuple, Union

import numpy as np
from asciitree import BoxStyle, LeftAligned
from asciitree.traversal import Traversal
from numcodecs.compat import ensure_ndarray, ensure_text

from zarrlite.config import config
from zarrlite.errors import ConfigError


def json_dumps(o: Any) -> bytes:
    """Serialize `o` as sorted, indented ASCII JSON."""
    return json.dumps(o, indent=config.get("json_indent"), sort_keys=True, ensure_ascii=True,
                      separators=(',', ': ')).encode('ascii')


def json_loads(s: Union[bytes, str]) -> Dict[str, Any]:
    return json.loads(ensure_text(s, 'ascii'))


def _int_sequence(value, what):
    if isinstance(value, numbers.Integral):
        value = (value,)
    try:
        items = tuple(value)
    except TypeError as e:
        raise ConfigError('{} must be a sequence of integers, found {!r}'
                          .format(what, value)) from e
    if not all(isinstance(i, numbers.Integral) or i is None for i in items):
        raise ConfigError('{} must be a sequence of integers, found {!r}'.format(what, value))
    return items


def normalize_shape(shape) -> Tuple[int, ...]:
    """Array shape as a non-empty tuple of positive ints; an int means 1-D."""
    if shape is None:
        raise ConfigError('shape must be given')
    dims = _int_sequence(shape, 'shape')
    if not dims or any(d is None or d < 1 for d in dims):
        raise ConfigError('shape must have at least one dimension, all positive, found {!r}'
                          .format(shape))
    return tuple(int(d) for d in dims)


# dimensions longer than this are split into several chunks
CHUNK_DIM_TARGET = 512


def guess_chunks(shape: Tuple[int, ...]) -> Tuple[int, ...]:
    """
    Guess a chunk layout for an array of the given shape. Each dimension is
    split independently into the smallest number of roughly equal pieces
    such that no piece is longer than about 512 elements, rounding the chunk
    length up so the pieces cover the whole dimension.
    """
    chunks = []
    for dim_len in shape:
        nchunks = dim_len // CHUNK_DIM_TARGET
        if nchunks > 0:
            dim_chunk_len = dim_len // (nchunks + 1)
            if dim_len % dim_chunk_len:
                dim_chunk_len += 1
        else:
            dim_chunk_len = dim_len
        chunks.append(dim_chunk_len)
    return tuple(chunks)


def normalize_chunks(chunks: Any, shape: Tuple[int, ...], chunked: bool = True) -> Tuple[int, ...]:
    """Chunk shape for an array of normalized `shape`.

    None or True guesses a layout (or uses the whole shape when `chunked` is
    False), False means a single chunk, an int applies to every dimension,
    and None or a value below 1 in a sequence spans that whole dimension.
    """
    if chunks is None or chunks is True:
        return guess_chunks(shape) if chunked else tuple(shape)
    if chunks is False:
        return tuple(shape)
    if isinstance(chunks, numbers.Integral):
        chunks = (chunks,) * len(shape)
    chunks = _int_sequence(chunks, 'chunks')
    if len(chunks) != len(shape):
        raise ConfigError('chunks has {} dimensions but shape has {}'
                          .format(len(chunks), len(shape)))
    return tuple(dim if c is None or c < 1 else int(c) for dim, c in zip(shape, chunks))


_byte_orders = {
    '>': '>', 'big': '>',
    '<': '<', 'little': '<',
    '=': '=', 'native': '=',
}


def normalize_byte_order(byte_order: Optional[str]) -> Optional[str]:
    if byte_order is None:
        return None
    try:
        return _byte_orders[str(byte_order).lower()]
    except KeyError:
        raise ConfigError("byte order must be one of {}, found: {!r}"
                          .format(sorted(_byte_orders), byte_order))


def normalize_dtype(dtype, byte_order: Optional[str] = None) -> np.dtype:
    """Normalize `dtype` to a numeric numpy dtype with an explicit byte order.

    If `byte_order` is None, an explicit byte order carried by `dtype` is kept,
    otherwise the configured default (big-endian) is applied.
    """
    if dtype is None:
        dtype = config.get("array.dtype")

    # numpy reports the native order as '=', even when spelled out as '<' or '>'
    explicit = isinstance(dtype, str) and dtype[:1] in ('<', '>')
    try:
        dtype = np.dtype(dtype)
    except TypeError as e:
        raise ConfigError('invalid dtype {!r}'.format(dtype)) from e
    explicit = explicit or dtype.byteorder in ('<', '>')

    if dtype.kind not in 'biufc' or dtype.fields is not None or dtype.subdtype is not None:
        raise ConfigError('unsupported dtype {!r}; only numeric types are supported'
                          .format(dtype.str))

    byte_order = normalize_byte_order(byte_order)
    if byte_order is None:
        if explicit:
            return dtype
        byte_order = config.get("array.byte_order")

    if dtype.itemsize > 1 and dtype.byteorder != '|':
        dtype = dtype.newbyteorder(byte_order)
        if byte_order == '=':
            # resolve native order so it is recorded explicitly
            dtype = np.dtype(dtype.str)
    return dtype


def normalize_fill_value(fill_value, dtype: np.dtype):
    """`fill_value` as a numpy scalar of `dtype`, None meaning no fill value."""
    if fill_value is None:
        return None
    try:
        return np.array(fill_value, dtype=dtype)[()]
    except (TypeError, ValueError, OverflowError) as e:
        raise ConfigError('fill_value {!r} cannot be represented as {}: {}'
                          .format(fill_value, dtype.str, e)) from e


def normalize_order(order: Optional[str]) -> str:
    if order is None:
        order = config.get("array.order")
    order = str(order).upper()
    if order not in ['C', 'F']:
        raise ConfigError("order must be either 'C' or 'F', found: %r" % order)
    return order


def normalize_dimension_separator(sep: Optional[str]) -> str:
    if sep is None:
        sep = config.get("array.dimension_separator")
    if sep in (".", "/"):
        return sep
    raise ConfigError(
        "dimension_separator must be either '.' or '/', found: %r" % sep)


def normalize_storage_path(path: Union[str, bytes, None]) -> str:
    """Node path as '/'-joined segments without leading or trailing slashes.

    Backslashes count as separators and empty segments are dropped. '.' and
    '..' segments are refused, so a path never leaves its store root.
    """
    if not path:
        return ''
    if isinstance(path, bytes):
        path = path.decode('ascii')
    segments = [s for s in str(path).replace('\\', '/').split('/') if s]
    if {'.', '..'} & set(segments):
        raise ValueError("path containing '.' or '..' segment not allowed")
    return '/'.join(segments)


def buffer_size(v) -> int:
    return ensure_ndarray(v).nbytes


def human_readable_size(size) -> str:
    """Byte count with a binary unit suffix, e.g. '1.5K' for 1536."""
    if size < 1024:
        return str(size)
    scaled = float(size)
    for unit in 'KMGT':
        scaled /= 1024
        if scaled < 1024:
            return '{:.1f}{}'.format(scaled, unit)
    return '{:.1f}P'.format(scaled / 1024)


def product(shape) -> int:
    return math.prod(shape)


def info_text_report(items) -> str:
    """Render (label, value) pairs as aligned, wrapped 'label : value' lines."""
    width = max(len(label) for label, _ in items)
    lines = []
    for label, value in items:
        wrapper = TextWrapper(width=80, initial_indent=label.ljust(width) + ' : ',
                              subsequent_indent=' ' * width + ' : ')
        lines.append(wrapper.fill(str(value)))
    return '\n'.join(lines) + '\n'


class InfoReporter:
    """Shows the `info_items()` of a node when printed or displayed."""

    def __init__(self, obj):
        self.obj = obj

    def __repr__(self):
        return info_text_report(self.obj.info_items())


class _HierarchyTraversal(Traversal):
    # nodes are (group or array, depth) pairs

    def __init__(self, level=None):
        super().__init__()
        self.level = level

    def get_root(self, tree):
        return (tree, 0)

    def get_children(self, node):
        obj, depth = node
        if not hasattr(obj, 'values') or (self.level is not None and depth >= self.level):
            return []
        return [(child, depth + 1) for child in obj.values()]

    def get_text(self, node):
        obj, _ = node
        label = obj.basename or '/'
        if hasattr(obj, 'shape'):
            label += ' {} {}'.format(obj.shape, obj.dtype.str)
        return label


class TreeViewer:
    """Box drawing of a group and its descendants, at most `level` deep."""

    boxes = dict(UP_AND_RIGHT="└", HORIZONTAL="─", VERTICAL="│", VERTICAL_AND_RIGHT="├")

    def __init__(self, group, level=None):
        self.group = group
        self.level = level

    def __str__(self):
        draw = LeftAligned(traverse=_HierarchyTraversal(self.level),
                           draw=BoxStyle(gfx=self.boxes, horiz_len=2, label_space=1, indent=1))
        return draw(self.group)

    def __repr__(self):
        return str(self)
