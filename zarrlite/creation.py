import numpy as np

from zarrlite.core import Array
from zarrlite.errors import (ArrayNotFoundError, ContainsArrayError, ContainsGroupError,
                             GroupNotFoundError)
from zarrlite.params import ArrayParams
from zarrlite.storage import contains_array, contains_group, init_array, normalize_store_arg
from zarrlite.util import normalize_storage_path

_node_kinds = {
    'array': (contains_array, ArrayNotFoundError, ContainsArrayError),
    'group': (contains_group, GroupNotFoundError, ContainsGroupError),
}


def apply_open_mode(store, path, mode, kind, initialize):
    """Prepare the `kind` ('array' or 'group') node at `path` for opening.

    Modes follow h5py: 'r' and 'r+' need an existing node, 'a' creates a
    missing one, 'w' creates one replacing whatever is at `path`, 'w-' and
    'x' create one but refuse to replace anything. A node of the other kind
    at `path` is never opened. ``initialize(overwrite)`` writes new metadata.

    Returns True if the node is to be opened read-only.
    """
    if mode not in ('r', 'r+', 'a', 'w', 'w-', 'x'):
        raise ValueError("invalid mode {!r}".format(mode))
    exists, not_found, exists_error = _node_kinds[kind]
    other_exists, _, other_error = _node_kinds['group' if kind == 'array' else 'array']
    if mode == 'w':
        initialize(True)
    elif exists(store, path):
        if mode in ('w-', 'x'):
            raise exists_error(path)
    elif other_exists(store, path):
        raise other_error(path)
    elif mode in ('r', 'r+'):
        raise not_found(path)
    else:
        initialize(False)
    return mode == 'r'


def create(shape, chunks=None, chunked=True, dtype=None, byte_order=None, fill_value=0,
           compressor="default", order=None, store=None, synchronizer=None,
           overwrite=False, path=None, dimension_separator=None, read_only=False):
    """Create a new array and return it.

    Parameters
    ----------
    shape : int or tuple of ints
        Array extent per dimension.
    chunks : int or tuple of ints, optional
        Chunk extent per dimension, guessed from `shape` when missing. Values
        below one make the chunk span the whole dimension.
    chunked : bool, optional
        With `chunks` missing, False stores the array as a single chunk.
    dtype : string or dtype, optional
        Numeric element type, the configured ``array.dtype`` by default.
    byte_order : string, optional
        '>' or 'big', '<' or 'little', '=' or 'native'. When missing, a byte
        order spelled out in `dtype` is kept and big-endian used otherwise.
    fill_value : object
        Value read from cells never written; None leaves them undefined.
    compressor : Compressor, dict or str, optional
        Chunk compressor: 'default' for the configured one, a registered
        codec id, a codec config dict, or None for raw chunks.
    order : {'C', 'F'}, optional
        Element layout inside a chunk.
    store : MutableMapping or string
        Store, or a directory path, '.zip' path or URL to open one on. An
        existing zip archive is extended, never truncated.
    synchronizer : ThreadSynchronizer, optional
        Lock table for chunk read-modify-write cycles, to share between
        arrays over the same store.
    overwrite : bool, optional
        Replace whatever is stored at `path`; otherwise an existing node
        there raises.
    path : string, optional
        Node path inside the store.
    dimension_separator : {'.', '/'}, optional
        Joins chunk coordinates into chunk keys.
    read_only : bool, optional
        Return the new array protected against writes.

    Returns
    -------
    z : zarrlite.core.Array

    Examples
    --------
    >>> import zarrlite
    >>> z = zarrlite.create((3800, 5000))
    >>> z
    <zarrlite.core.Array (3800, 5000) >f8>
    >>> z.chunks
    (475, 500)

    """
    store = normalize_store_arg(store, mode="a")
    params = ArrayParams(shape=shape, chunks=chunks, chunked=chunked, dtype=dtype,
                         byte_order=byte_order, fill_value=fill_value, compressor=compressor,
                         order=order, dimension_separator=dimension_separator)
    init_array(store, params, overwrite=overwrite, path=path)
    return Array(store, path=path, synchronizer=synchronizer, read_only=read_only)


def empty(shape, **kwargs):
    """New array without a fill value; cells never written read as zeros.
    Other arguments as for :func:`create`."""
    return create(shape=shape, fill_value=None, **kwargs)


def zeros(shape, **kwargs):
    """New array reading 0 where nothing was written. Other arguments as for
    :func:`create`.

    Examples
    --------
    >>> import zarrlite
    >>> z = zarrlite.zeros((10000, 10000), chunks=(1000, 1000))
    >>> z[:2, :2]
    array([[0., 0.],
           [0., 0.]], dtype='>f8')

    """
    return create(shape=shape, fill_value=0, **kwargs)


def ones(shape, **kwargs):
    """New array reading 1 where nothing was written."""
    return create(shape=shape, fill_value=1, **kwargs)


def full(shape, fill_value, **kwargs):
    """New array reading `fill_value` where nothing was written.

    Examples
    --------
    >>> import zarrlite
    >>> z = zarrlite.full((10000, 10000), chunks=(1000, 1000), fill_value=42)
    >>> z[:2, :2]
    array([[42., 42.],
           [42., 42.]], dtype='>f8')

    """
    return create(shape=shape, fill_value=fill_value, **kwargs)


def array(data, **kwargs):
    """New array holding a copy of the array-like `data`, whose shape it
    takes and whose dtype it takes unless `dtype` is given.

    Examples
    --------
    >>> import numpy as np
    >>> import zarrlite
    >>> z = zarrlite.array(np.arange(10000, dtype='i4').reshape(100, 100), chunks=(10, 10))
    >>> z
    <zarrlite.core.Array (100, 100) >i4>

    """
    data = np.asanyarray(data)
    if kwargs.get("dtype") is None:
        kwargs["dtype"] = data.dtype
    kwargs["shape"] = data.shape
    read_only = kwargs.pop("read_only", False)
    z = create(**kwargs)
    z.write(data)
    z.read_only = read_only
    return z


def open_array(store=None, mode="a", shape=None, chunks=None, chunked=True, dtype=None,
               byte_order=None, fill_value=0, compressor="default", order=None,
               synchronizer=None, path=None, dimension_separator=None):
    """Open an array, creating it as `mode` allows.

    Parameters
    ----------
    store : MutableMapping or string, optional
        Store, or a directory path, '.zip' path or URL to open one on.
    mode : {'r', 'r+', 'a', 'w', 'w-', 'x'}, optional
        'r' read-only and 'r+' read/write on an existing array; 'a' read/write,
        creating the array if missing; 'w' create, replacing any node at
        `path`; 'w-' and 'x' create, failing if a node exists.
    shape, chunks, chunked, dtype, byte_order, fill_value, compressor, order, \
dimension_separator
        Configuration of a newly created array, as for :func:`create`.
    synchronizer : ThreadSynchronizer, optional
        Lock table for chunk read-modify-write cycles.
    path : string, optional
        Node path inside the store.

    Returns
    -------
    z : zarrlite.core.Array

    Raises
    ------
    ArrayNotFoundError
        If the mode needs an existing array and there is none.
    ContainsGroupError
        If a group sits at `path`.
    FormatError
        If the stored metadata is unreadable or not Zarr format 2.

    Notes
    -----
    Writes reach the store as they happen. Only a zip store has to be
    closed for its archive to be complete.

    """
    store = normalize_store_arg(store, mode=mode)
    path = normalize_storage_path(path)

    def initialize(overwrite):
        params = ArrayParams(shape=shape, chunks=chunks, chunked=chunked, dtype=dtype,
                             byte_order=byte_order, fill_value=fill_value,
                             compressor=compressor, order=order,
                             dimension_separator=dimension_separator)
        init_array(store, params, overwrite=overwrite, path=path)

    read_only = apply_open_mode(store, path, mode, 'array', initialize)
    return Array(store, path=path, read_only=read_only, synchronizer=synchronizer)
