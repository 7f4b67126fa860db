from dataclasses import dataclass, replace
from typing import Any, Optional, Tuple

import numpy as np

from zarrlite.compressors import Compressor, normalize_compressor
from zarrlite.util import (normalize_chunks, normalize_dimension_separator, normalize_dtype,
                           normalize_fill_value, normalize_order, normalize_shape, product)


@dataclass(frozen=True)
class ArrayParams:
    """Array configuration as given by the caller.

    Nothing is validated here; pass the parameters to :func:`build` (or call
    :meth:`build`) to obtain validated, immutable :class:`ArrayMetadata`.

    Parameters
    ----------
    shape : int or tuple of ints
        Array shape.
    chunks : int or tuple of ints, optional
        Chunk shape. If not given, it is guessed from `shape` (see `chunked`).
        Chunk dimensions of zero, a negative number or None are replaced by
        the corresponding array dimension.
    chunked : bool, optional
        Only used when `chunks` is not given. If True, chunks are guessed so
        that no dimension is much longer than 512 elements; if False, the array
        is stored as a single chunk.
    dtype : string or dtype, optional
        Numeric data type.
    byte_order : string, optional
        '>' or 'big', '<' or 'little', '=' or 'native'. If None, the byte order
        carried by `dtype` is kept when explicit, otherwise big-endian is used.
    fill_value : object, optional
        Value of cells in chunks that have never been written.
    compressor : Compressor, dict, str or None, optional
        Chunk compressor. 'default' uses the configured default; None disables
        compression.
    order : {'C', 'F'}, optional
        Memory layout of the elements inside each chunk.
    dimension_separator : {'.', '/'}, optional
        Separator placed between chunk indices in chunk keys.
    """

    shape: Any
    chunks: Any = None
    chunked: bool = True
    dtype: Any = "f8"
    byte_order: Optional[str] = None
    fill_value: Any = 0
    compressor: Any = "default"
    order: Optional[str] = None
    dimension_separator: Optional[str] = None

    def build(self) -> "ArrayMetadata":
        return build(self)


@dataclass(frozen=True)
class ArrayMetadata:
    """Validated, immutable description of one array."""

    shape: Tuple[int, ...]
    chunks: Tuple[int, ...]
    dtype: np.dtype
    fill_value: Any
    compressor: Compressor
    order: str = "C"
    dimension_separator: str = "."

    @property
    def ndim(self) -> int:
        return len(self.shape)

    @property
    def byte_order(self) -> str:
        """'>' or '<', or '|' for single byte types."""
        return self.dtype.str[0]

    @property
    def chunk_size(self) -> int:
        """Number of elements in one chunk buffer."""
        return product(self.chunks)

    def to_params(self) -> ArrayParams:
        return ArrayParams(
            shape=self.shape,
            chunks=self.chunks,
            dtype=self.dtype.str,
            fill_value=self.fill_value,
            compressor=self.compressor,
            order=self.order,
            dimension_separator=self.dimension_separator,
        )

    def evolve(self, **changes) -> "ArrayMetadata":
        """Derive new metadata with some parameters changed.

        Chunks are carried over unless ``chunks=None`` is passed, in which case
        they are guessed again for the (possibly new) shape.
        """
        return build(replace(self.to_params(), **changes))


def build(params: ArrayParams) -> ArrayMetadata:
    """Validate and normalize array parameters.

    Raises
    ------
    ConfigError
        If the shape is missing or empty, the chunk rank does not match the
        shape rank, or any other parameter is invalid.
    """
    shape = normalize_shape(params.shape)
    chunks = normalize_chunks(params.chunks, shape, params.chunked)
    dtype = normalize_dtype(params.dtype, params.byte_order)
    fill_value = normalize_fill_value(params.fill_value, dtype)
    compressor = normalize_compressor(params.compressor)
    order = normalize_order(params.order)
    dimension_separator = normalize_dimension_separator(params.dimension_separator)
    return ArrayMetadata(
        shape=shape,
        chunks=chunks,
        dtype=dtype,
        fill_value=fill_value,
        compressor=compressor,
        order=order,
        dimension_separator=dimension_separator,
    )
