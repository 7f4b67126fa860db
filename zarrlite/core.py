import logging

import numpy as np

from zarrlite.attrs import Attributes
from zarrlite.chunk import ChunkReaderWriter
from zarrlite.chunk_grid import ChunkGrid, selection_to_region
from zarrlite.errors import ArrayNotFoundError, ReadOnlyError
from zarrlite.meta import decode_array_metadata
from zarrlite.storage import (PER_KEY, array_meta_key, attrs_key, getsize, normalize_store_arg,
                              path_prefix)
from zarrlite.sync import ThreadSynchronizer, run_all
from zarrlite.util import InfoReporter, human_readable_size, normalize_storage_path, product

logger = logging.getLogger(__name__)


def is_scalar(value):
    return np.ndim(value) == 0


class Array:
    """A chunked N-dimensional array whose metadata is already in `store`.

    Parameters
    ----------
    store : MutableMapping
        Store holding the array metadata and chunks.
    path : string, optional
        Node path inside the store.
    read_only : bool, optional
        Refuse writes to the array and its attributes.
    synchronizer : ThreadSynchronizer, optional
        Lock table serializing read-modify-write cycles per chunk key. Give
        several Array objects over the same store the same synchronizer to
        serialize their writes against each other. A new one is created by
        default.

    Notes
    -----
    Each chunk is replaced as a whole, so a concurrent reader sees a chunk
    either before or after a write, never in between. A write covering
    several chunks is not atomic: readers may see some of its chunks
    updated and others not, and a write failing part way keeps the chunks
    it already stored.

    """

    def __init__(self, store, path=None, read_only=False, synchronizer=None):
        self._store = normalize_store_arg(store)
        self._path = normalize_storage_path(path)
        self._key_prefix = path_prefix(self._path)
        self._read_only = bool(read_only)
        if synchronizer is None:
            synchronizer = ThreadSynchronizer()
        self._synchronizer = synchronizer
        self._load_metadata()
        self._attrs = Attributes(self._store, key=self._key_prefix + attrs_key,
                                 read_only=read_only, synchronizer=synchronizer)

    def _load_metadata(self):
        blob = self._store.get(self._key_prefix + array_meta_key)
        if blob is None:
            raise ArrayNotFoundError(self._path)
        meta = decode_array_metadata(blob)
        self._meta = meta
        self._grid = ChunkGrid(meta.shape, meta.chunks,
                               dimension_separator=meta.dimension_separator,
                               key_prefix=self._key_prefix)
        self._chunk_rw = ChunkReaderWriter(self._store, meta)
        logger.debug("opened array %r in %s: shape=%s chunks=%s dtype=%s",
                     self._path, type(self._store).__name__, meta.shape, meta.chunks,
                     meta.dtype.str)

    @property
    def store(self):
        return self._store

    @property
    def path(self):
        return self._path

    @property
    def name(self):
        """Absolute name in h5py style, '/' for an array at the store root."""
        return '/' + self._path

    @property
    def basename(self):
        return self._path.rsplit('/', 1)[-1]

    @property
    def read_only(self):
        return self._read_only

    @read_only.setter
    def read_only(self, value):
        self._read_only = bool(value)
        self._attrs.read_only = self._read_only

    @property
    def metadata(self):
        """The :class:`zarrlite.params.ArrayMetadata` the array was opened with."""
        return self._meta

    @property
    def chunk_grid(self):
        return self._grid

    @property
    def shape(self):
        return self._meta.shape

    @property
    def chunks(self):
        """Extent of one chunk per dimension."""
        return self._meta.chunks

    @property
    def dtype(self):
        """Element type, byte order included."""
        return self._meta.dtype

    @property
    def byte_order(self):
        """'>' or '<', or '|' for single byte types."""
        return self._meta.byte_order

    @property
    def compressor(self):
        return self._meta.compressor

    @property
    def fill_value(self):
        """Value read from cells never written, None if undefined."""
        return self._meta.fill_value

    @property
    def order(self):
        """'C' or 'F' element layout inside each chunk."""
        return self._meta.order

    @property
    def dimension_separator(self):
        return self._meta.dimension_separator

    @property
    def synchronizer(self):
        return self._synchronizer

    @property
    def attrs(self):
        """User attributes, a mutable mapping of JSON serializable values."""
        return self._attrs

    @property
    def ndim(self):
        return len(self.shape)

    @property
    def size(self):
        """Number of elements."""
        return product(self.shape)

    @property
    def itemsize(self):
        return self.dtype.itemsize

    @property
    def nbytes(self):
        """Bytes the elements take uncompressed."""
        return self.size * self.itemsize

    @property
    def nbytes_stored(self):
        """Bytes held in the store for this array, metadata and attributes
        included."""
        return getsize(self._store, self._path)

    @property
    def cdata_shape(self):
        """Number of chunks per dimension."""
        return self._grid.cdata_shape

    @property
    def nchunks(self):
        return self._grid.nchunks

    @property
    def nchunks_initialized(self):
        """Number of chunks present in the store."""
        return sum(1 for k in self._store.keys()
                   if k.startswith(self._key_prefix) and self._grid.is_chunk_key(k))

    def __len__(self):
        return self.shape[0]

    def __eq__(self, other):
        return (isinstance(other, Array) and self.store == other.store and
                self.path == other.path and self.read_only == other.read_only)

    def __repr__(self):
        t = type(self)
        fields = [f"{self.name!r}"] if self._path else []
        fields += [str(self.shape), self.dtype.str]
        if self._read_only:
            fields.append("read-only")
        return f"<{t.__module__}.{t.__name__} {' '.join(fields)}>"

    def _parallel(self, npieces):
        return getattr(self._store, 'concurrency', PER_KEY) == PER_KEY and npieces > 1

    def read(self, shape=None, offset=None, out=None):
        """Read a region of the array.

        Parameters
        ----------
        shape : sequence of ints, optional
            Shape of the region; defaults to everything from `offset` to the end
            of the array.
        offset : sequence of ints, optional
            Position of the first element of the region; defaults to the origin.
        out : ndarray, optional
            Array of the region's shape to read into.

        Returns
        -------
        out : ndarray
            Region contents. Cells of chunks that were never written hold the
            fill value.

        Raises
        ------
        RangeError
            If the region does not lie inside the array or has the wrong rank.

        Examples
        --------
        >>> import zarrlite
        >>> z = zarrlite.zeros((100, 100), chunks=(10, 10), dtype='i4')
        >>> z.write(42, shape=(5, 5), offset=(8, 8))
        >>> z.read(shape=(2, 4), offset=(7, 7))
        array([[ 0,  0,  0,  0],
               [ 0, 42, 42, 42]], dtype='>i4')

        """
        shape, offset = self._grid.check_region(shape, offset)
        if out is None:
            out = np.empty(shape, dtype=self.dtype, order=self.order)
        elif out.shape != shape:
            raise ValueError('out must have shape {}, found {}'.format(shape, out.shape))

        def read_piece(piece):
            ckey = self._grid.chunk_key(piece.chunk_coords)
            chunk = self._chunk_rw.read_chunk(ckey)
            out[piece.out_selection] = chunk[piece.chunk_selection]

        pieces = list(self._grid.decompose(shape, offset))
        run_all(read_piece, pieces, parallel=self._parallel(len(pieces)))
        return out

    def write(self, value, shape=None, offset=None):
        """Write a region of the array.

        Parameters
        ----------
        value : scalar or array_like
            A scalar is written to every cell of the region. An array must
            have the region's shape, or be one-dimensional with as many
            elements as the region (it is then reshaped in C order), or be
            broadcastable to the region's shape.
        shape : sequence of ints, optional
            Shape of the region; defaults to the shape of `value`, or to
            everything from `offset` to the end of the array for a scalar.
        offset : sequence of ints, optional
            Position of the first element of the region; defaults to the origin.

        Raises
        ------
        RangeError
            If the region does not lie inside the array or has the wrong rank.
            Nothing is written in that case.
        ReadOnlyError
            If the array is read-only.

        """
        if self._read_only:
            raise ReadOnlyError()

        scalar = is_scalar(value)
        if not scalar:
            value = np.asanyarray(value)
            if shape is None:
                shape = value.shape
        shape, offset = self._grid.check_region(shape, offset)

        if scalar:
            value = np.array(value, dtype=self.dtype)[()]
        else:
            value = self._coerce_source(value, shape)

        def write_piece(piece):
            ckey = self._grid.chunk_key(piece.chunk_coords)
            with self._synchronizer[ckey]:
                if piece.complete:
                    # totally replace chunk, no need to read it
                    chunk = self._chunk_rw.empty_chunk()
                else:
                    chunk = self._chunk_rw.read_chunk(ckey)
                if scalar:
                    chunk[piece.chunk_selection] = value
                else:
                    chunk[piece.chunk_selection] = value[piece.out_selection]
                self._chunk_rw.write_chunk(ckey, chunk)

        pieces = list(self._grid.decompose(shape, offset))
        run_all(write_piece, pieces, parallel=self._parallel(len(pieces)))

    def _coerce_source(self, value, shape):
        if value.shape != shape:
            if value.ndim == 1 and value.size == product(shape):
                value = value.reshape(shape)
            else:
                try:
                    value = np.broadcast_to(value, shape)
                except ValueError as e:
                    raise ValueError('value with shape {} does not match region shape {}'
                                     .format(value.shape, shape)) from e
        return value.astype(self.dtype, copy=False)

    def __getitem__(self, selection):
        """Read with numpy basic indexing: ints, step-1 slices and `...`.

        Integer indices drop their dimension, so selecting a single cell
        returns a numpy scalar.

        Examples
        --------
        >>> import zarrlite
        >>> import numpy as np
        >>> z = zarrlite.array(np.arange(100).reshape(10, 10), chunks=(3, 3), dtype='i4')
        >>> z[2, 1:4]
        array([21, 22, 23], dtype='>i4')
        >>> int(z[9, 9])
        99

        """
        region_shape, offset, drop_axes = selection_to_region(selection, self.shape)
        out_shape = tuple(s for i, s in enumerate(region_shape) if i not in drop_axes)
        if 0 in region_shape:
            return np.empty(out_shape, dtype=self.dtype)
        out = self.read(region_shape, offset).reshape(out_shape)
        if out.shape == ():
            return out[()]
        return out

    def __setitem__(self, selection, value):
        """Write `value` to the cells picked by ints, step-1 slices and `...`;
        `value` is broadcast to the selection."""
        if self._read_only:
            raise ReadOnlyError()
        region_shape, offset, drop_axes = selection_to_region(selection, self.shape)
        if 0 in region_shape:
            return
        if not is_scalar(value):
            out_shape = tuple(s for i, s in enumerate(region_shape) if i not in drop_axes)
            value = np.broadcast_to(np.asanyarray(value), out_shape).reshape(region_shape)
        self.write(value, region_shape, offset)

    @property
    def info(self):
        """Printable summary of the array configuration and storage use."""
        return InfoReporter(self)

    def info_items(self):
        def qualname(o):
            return f"{type(o).__module__}.{type(o).__name__}"

        def sized(n):
            return f"{n} ({human_readable_size(n)})" if n >= 1024 else str(n)

        stored = self.nbytes_stored
        items = [("Name", self.name)] if self._path else []
        items += [
            ("Type", qualname(self)),
            ("Data type", self.dtype.str),
            ("Shape", str(self.shape)),
            ("Chunk shape", str(self.chunks)),
            ("Order", self.order),
            ("Read-only", str(self._read_only)),
            ("Compressor", repr(self.compressor)),
            ("Store type", qualname(self._store)),
            ("No. bytes", sized(self.nbytes)),
        ]
        if stored:
            items += [("No. bytes stored", sized(stored)),
                      ("Storage ratio", f"{self.nbytes / stored:.1f}")]
        items.append(("Chunks initialized", f"{self.nchunks_initialized}/{self.nchunks}"))
        return items
