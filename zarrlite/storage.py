"""Byte-blob stores holding zarrlite metadata and chunks.

A store is a :class:`collections.abc.MutableMapping` from string keys to
bytes. The mapping protocol carries the four store capabilities::

    store.get(key)      # blob, or None when the key was never written
    store[key] = blob   # put
    key in store        # exists
    del store[key]      # delete

Every store class also names a concurrency class in ``concurrency``:
``"per-key"`` stores may be driven from several threads on distinct keys at
once, ``"serial"`` stores funnel every call through one mutex. Any other
mutable mapping (a plain dict, say) is accepted as a per-key store.

"""
import logging
import os
import shutil
import time
import uuid
import zipfile
from collections.abc import MutableMapping
from threading import Lock, RLock
from typing import Any, List, Union

import fsspec
from numcodecs.compat import ensure_bytes

from zarrlite.errors import (ContainsArrayError, ContainsGroupError, FSPathExistNotDir,
                             ReadOnlyError, StoreError)
from zarrlite.meta import encode_array_metadata, encode_group_metadata
from zarrlite.params import ArrayMetadata, ArrayParams, build
from zarrlite.util import buffer_size, normalize_storage_path

logger = logging.getLogger(__name__)

array_meta_key = '.zarray'
group_meta_key = '.zgroup'
attrs_key = '.zattrs'

PER_KEY = 'per-key'
SERIAL = 'serial'

Path = Union[str, bytes, None]


def path_prefix(path: str) -> str:
    """Key prefix of the node at normalized `path`: '' for the root, 'a/b/' below it."""
    return path + '/' if path else ''


def _keys_below(store, path: Path) -> List[str]:
    prefix = path_prefix(normalize_storage_path(path))
    return [key for key in list(store) if key.startswith(prefix)]


class BaseStore(MutableMapping):
    """Common base of the zarrlite stores.

    Adds a concurrency class, a no-op :meth:`close`, context manager support,
    and prefix based :meth:`listdir`/:meth:`rmdir` that backends may replace
    with something cheaper.
    """

    concurrency = PER_KEY

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def close(self) -> None:
        pass

    def listdir(self, path: Path = None) -> List[str]:
        start = len(path_prefix(normalize_storage_path(path)))
        return sorted({key[start:].split('/', 1)[0]
                       for key in _keys_below(self, path) if len(key) > start})

    def rmdir(self, path: Path = None) -> None:
        for key in _keys_below(self, path):
            del self[key]


def contains_array(store, path: Path = None) -> bool:
    """Return True if the store holds array metadata at `path`."""
    return path_prefix(normalize_storage_path(path)) + array_meta_key in store


def contains_group(store, path: Path = None) -> bool:
    """Return True if the store holds group metadata at `path`."""
    return path_prefix(normalize_storage_path(path)) + group_meta_key in store


def listdir(store, path: Path = None) -> List[str]:
    """Names of the direct children of `path`."""
    if isinstance(store, BaseStore):
        return store.listdir(path)
    return BaseStore.listdir(store, path)


def rmdir(store, path: Path = None) -> None:
    """Delete every key at or below `path`."""
    if isinstance(store, BaseStore):
        store.rmdir(path)
    else:
        BaseStore.rmdir(store, path)


def getsize(store, path: Path = None) -> int:
    """Number of stored bytes at or below `path`, metadata included."""
    blobs = (store.get(key) for key in _keys_below(store, path))
    return sum(buffer_size(blob) for blob in blobs if blob is not None)


def normalize_store_arg(store: Any, mode="a"):
    """Turn the `store` argument of the open and create functions into a store.

    ``None`` gives a new :class:`MemoryStore`, a URL an :class:`FSStore`, a
    path ending in '.zip' a :class:`ZipStore` and any other path a
    :class:`DirectoryStore`. Mutable mappings are used as they are.

    `mode` only decides whether the store may be written to. Creating,
    truncating or refusing existing nodes is up to the caller, at the node's
    own path, so a zip archive is never truncated as a whole.
    """
    if store is None:
        return MemoryStore()
    if isinstance(store, os.PathLike):
        store = os.fspath(store)
    if isinstance(store, str):
        if '://' in store or '::' in store:
            return FSStore(store, mode='r' if mode == 'r' else 'w')
        if store.endswith('.zip'):
            return ZipStore(store, mode='r' if mode == 'r' else 'a')
        return DirectoryStore(store)
    if isinstance(store, MutableMapping):
        return store
    raise ValueError(
        "store must be None, a path, a URL or a mutable mapping, got {!r}".format(store))


def _claim_node(store, path: str, overwrite: bool) -> None:
    # make room for new metadata at path
    if overwrite:
        rmdir(store, path)
    elif contains_array(store, path):
        raise ContainsArrayError(path)
    elif contains_group(store, path):
        raise ContainsGroupError(path)


def _ensure_ancestors(store, path: str, overwrite: bool) -> None:
    # every ancestor of a node must be a group; an array in the way is only
    # replaced when overwriting
    parts = path.split('/') if path else []
    for depth in range(len(parts)):
        ancestor = '/'.join(parts[:depth])
        if contains_group(store, ancestor):
            continue
        if contains_array(store, ancestor):
            if not overwrite:
                raise ContainsArrayError(ancestor)
            rmdir(store, ancestor)
        store[path_prefix(ancestor) + group_meta_key] = encode_group_metadata()


def init_array(store, metadata: Union[ArrayMetadata, ArrayParams], overwrite: bool = False,
               path: Path = None) -> ArrayMetadata:
    """Write the metadata of a new array; low level, prefer :func:`zarrlite.create`.

    Parameters
    ----------
    store : MutableMapping
        Destination store.
    metadata : ArrayMetadata or ArrayParams
        Array configuration, validated before anything is written.
    overwrite : bool, optional
        If True, everything already stored under `path` is deleted first,
        otherwise an existing array or group raises.
    path : string, optional
        Node path; missing parent groups are created.

    Returns
    -------
    metadata : ArrayMetadata

    """
    if isinstance(metadata, ArrayParams):
        metadata = build(metadata)
    path = normalize_storage_path(path)
    _ensure_ancestors(store, path, overwrite)
    _claim_node(store, path, overwrite)
    store[path_prefix(path) + array_meta_key] = encode_array_metadata(metadata)
    logger.debug("initialized array at %r in %s: shape=%s chunks=%s dtype=%s",
                 path, type(store).__name__, metadata.shape, metadata.chunks,
                 metadata.dtype.str)
    return metadata


def init_group(store, overwrite: bool = False, path: Path = None) -> None:
    """Write the metadata of a new group; low level, prefer :func:`zarrlite.group`."""
    path = normalize_storage_path(path)
    _ensure_ancestors(store, path, overwrite)
    _claim_node(store, path, overwrite)
    store[path_prefix(path) + group_meta_key] = encode_group_metadata()


class MemoryStore(BaseStore):
    """Keeps every blob in one flat dict in main memory.

    This is the store used when none is given::

        >>> import zarrlite
        >>> z = zarrlite.zeros((100, 100))
        >>> type(z.store)
        <class 'zarrlite.storage.MemoryStore'>

    Mutations are guarded by a lock, so distinct keys can be written from
    several threads.
    """

    def __init__(self):
        self._blobs = dict()
        self._mutex = Lock()

    def __getitem__(self, key):
        return self._blobs[key]

    def __setitem__(self, key, value):
        value = ensure_bytes(value)
        with self._mutex:
            self._blobs[key] = value

    def __delitem__(self, key):
        with self._mutex:
            del self._blobs[key]

    def __contains__(self, key):
        return key in self._blobs

    def __iter__(self):
        with self._mutex:
            snapshot = sorted(self._blobs)
        return iter(snapshot)

    def __len__(self):
        return len(self._blobs)

    def __eq__(self, other):
        return isinstance(other, MemoryStore) and self._blobs == other._blobs


class DirectoryStore(BaseStore):
    """One file per key below a root directory; '/' in a key makes subdirectories.

    Parameters
    ----------
    path : string
        Root directory, created on the first write.

    Examples
    --------
    >>> import os
    >>> import zarrlite
    >>> z = zarrlite.zeros((10, 10), chunks=(5, 5), store='data/array.zarr', overwrite=True)
    >>> z[...] = 42
    >>> sorted(os.listdir('data/array.zarr'))
    ['.zarray', '0.0', '0.1', '1.0', '1.1']

    Notes
    -----
    A blob is written to a uniquely named temporary file next to its target
    and renamed into place, so readers never see a half written file. A
    missing file reads as an absent key. Any other failure of the file
    system raises :class:`zarrlite.errors.StoreError`.

    """

    def __init__(self, path):
        path = os.path.abspath(path)
        if os.path.exists(path) and not os.path.isdir(path):
            raise FSPathExistNotDir(path)
        self.path = path

    def _file(self, key):
        return os.path.join(self.path, *key.split('/'))

    def __getitem__(self, key):
        try:
            with open(self._file(key), 'rb') as f:
                return f.read()
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError) as e:
            raise KeyError(key) from e
        except OSError as e:
            raise StoreError("cannot read {!r} in {}: {}".format(key, self.path, e)) from e

    def __setitem__(self, key, value):
        value = ensure_bytes(value)
        target = self._file(key)
        partial = '{}.{}.partial'.format(target, uuid.uuid4().hex)
        try:
            os.makedirs(os.path.dirname(target), exist_ok=True)
            with open(partial, 'wb') as f:
                f.write(value)
            os.replace(partial, target)
        except OSError as e:
            raise StoreError("cannot write {!r} in {}: {}".format(key, self.path, e)) from e
        finally:
            if os.path.exists(partial):
                os.remove(partial)

    def __delitem__(self, key):
        target = self._file(key)
        if not os.path.isfile(target):
            raise KeyError(key)
        try:
            os.remove(target)
        except FileNotFoundError as e:
            raise KeyError(key) from e
        except OSError as e:
            raise StoreError("cannot delete {!r} in {}: {}".format(key, self.path, e)) from e

    def __contains__(self, key):
        return os.path.isfile(self._file(key))

    def __iter__(self):
        for folder, _, files in os.walk(self.path):
            rel = os.path.relpath(folder, self.path)
            prefix = '' if rel == os.curdir else rel.replace(os.sep, '/') + '/'
            for name in files:
                yield prefix + name

    def __len__(self):
        return sum(1 for _ in self)

    def __eq__(self, other):
        return isinstance(other, DirectoryStore) and self.path == other.path

    def rmdir(self, path: Path = None) -> None:
        folder = self._file(normalize_storage_path(path))
        if not os.path.isdir(folder):
            return
        try:
            shutil.rmtree(folder)
        except OSError as e:
            raise StoreError("cannot remove {!r} in {}: {}".format(path, self.path, e)) from e


def atexit_rmtree(path, isdir=os.path.isdir, rmtree=shutil.rmtree):  # pragma: no cover
    """Ensure directory removal at interpreter exit."""
    if isdir(path):
        rmtree(path)


class FSStore(BaseStore):
    """Store over any filesystem fsspec can reach, e.g. ``s3://bucket/data.zarr``.

    Parameters
    ----------
    url : str
        Protocol and root path. Protocols such as "s3" need their fsspec
        backend installed.
    mode : str
        'w' for a writable store, 'r' for a read-only one.
    storage_options
        Passed on to the fsspec filesystem.

    Notes
    -----
    Each get and put is one call to the filesystem; failures surface as
    :class:`zarrlite.errors.StoreError` and are not retried.

    """

    def __init__(self, url, mode='w', **storage_options):
        protocol, _ = fsspec.core.split_protocol(url)
        if protocol in (None, 'file'):
            storage_options.setdefault('auto_mkdir', True)
        self.url = url
        self.mode = mode
        self.map = fsspec.get_mapper(url, **storage_options)

    def _check_writeable(self):
        if self.mode == 'r':
            raise ReadOnlyError()

    def __getitem__(self, key):
        try:
            return self.map[key]
        except OSError as e:
            raise StoreError("cannot read {!r} from {}: {}".format(key, self.url, e)) from e

    def __setitem__(self, key, value):
        self._check_writeable()
        value = ensure_bytes(value)
        try:
            self.map[key] = value
        except OSError as e:
            raise StoreError("cannot write {!r} to {}: {}".format(key, self.url, e)) from e

    def __delitem__(self, key):
        self._check_writeable()
        if key not in self.map:
            raise KeyError(key)
        try:
            self.map.fs.rm(self.map._key_to_str(key))
        except OSError as e:
            raise StoreError("cannot delete {!r} from {}: {}".format(key, self.url, e)) from e

    def __contains__(self, key):
        return key in self.map

    def __iter__(self):
        return iter(self.map)

    def __len__(self):
        return len(self.map)

    def __eq__(self, other):
        return isinstance(other, FSStore) and (self.url, self.mode) == (other.url, other.mode)


class ZipStore(BaseStore):
    """All blobs in a single zip archive.

    Parameters
    ----------
    path : string
        Archive location.
    mode : string, optional
        'r' to read an existing archive, 'a' (default) to read and extend an
        archive, creating it if needed, 'w' to start from an empty archive.
    compression : int, optional
        Zip compression method of new entries, stored uncompressed by default.

    Examples
    --------
    >>> import zarrlite
    >>> with zarrlite.ZipStore('data/array.zip', mode='w') as store:
    ...     z = zarrlite.zeros((10, 10), chunks=(5, 5), store=store)
    ...     z[...] = 42

    Notes
    -----
    The archive must be closed for its directory to be written.

    Zip entries cannot be replaced in place: writing an existing key appends
    an entry that shadows the old one, and reads return the newest entry.
    Superseded entries are dropped by copying the live ones into a fresh
    archive whenever they come to outnumber the live entries, and on
    :meth:`flush` and :meth:`close`. Deleting keys copies the archive
    without them.

    The zipfile module allows a single user of an archive at a time, so
    every call holds one re-entrant mutex; the store is thread-safe but
    serial.

    """

    concurrency = SERIAL

    def __init__(self, path, mode='a', compression=zipfile.ZIP_STORED):
        self.path = os.path.abspath(path)
        self.mode = mode
        self.compression = compression
        self.mutex = RLock()
        self.zf = zipfile.ZipFile(self.path, mode=mode, compression=compression)
        names = self.zf.namelist()
        self._superseded = len(names) - len(set(names))

    def _check_writeable(self):
        if self.mode == 'r':
            raise ReadOnlyError()

    def __getitem__(self, key):
        with self.mutex:
            return self.zf.read(key)

    def __setitem__(self, key, value):
        self._check_writeable()
        value = ensure_bytes(value)
        entry = zipfile.ZipInfo(key, date_time=time.localtime()[:6])
        entry.compress_type = self.compression
        # rw-r--r--, zipfile would otherwise default to owner-only access
        entry.external_attr = 0o644 << 16
        with self.mutex:
            shadowing = key in self
            self.zf.writestr(entry, value)
            if shadowing:
                self._superseded += 1
                if self._superseded > len(self):
                    self._compact()

    def __delitem__(self, key):
        self._check_writeable()
        with self.mutex:
            if key not in self:
                raise KeyError(key)
            self._compact(drop={key})

    def __contains__(self, key):
        with self.mutex:
            try:
                self.zf.getinfo(key)
            except KeyError:
                return False
            return True

    def __iter__(self):
        with self.mutex:
            names = sorted(set(self.zf.namelist()))
        return iter(names)

    def __len__(self):
        with self.mutex:
            return len(set(self.zf.namelist()))

    def __eq__(self, other):
        return isinstance(other, ZipStore) and self.path == other.path

    def _compact(self, drop=()):
        # copy the newest entry of each live key into a fresh archive
        self.zf.close()
        partial = '{}.{}.partial'.format(self.path, uuid.uuid4().hex)
        try:
            with zipfile.ZipFile(self.path, mode='r') as src, \
                    zipfile.ZipFile(partial, mode='w', compression=self.compression) as dst:
                newest = {entry.filename: entry for entry in src.infolist()}
                for name, entry in newest.items():
                    if name not in drop:
                        dst.writestr(entry, src.read(entry))
            os.replace(partial, self.path)
        except OSError as e:
            raise StoreError("cannot rewrite {}: {}".format(self.path, e)) from e
        finally:
            if os.path.exists(partial):
                os.remove(partial)
            self.zf = zipfile.ZipFile(self.path, mode='a', compression=self.compression)
        logger.debug("compacted %s: dropped %d superseded entries and %d keys",
                     self.path, self._superseded, len(drop))
        self._superseded = 0

    def rmdir(self, path: Path = None) -> None:
        self._check_writeable()
        with self.mutex:
            doomed = set(_keys_below(self, path))
            if doomed:
                self._compact(drop=doomed)

    def clear(self):
        self.rmdir()

    def flush(self):
        """Write the archive directory, dropping superseded entries, and keep
        the store open for further use."""
        if self.mode == 'r':
            return
        with self.mutex:
            if self._superseded:
                self._compact()
            else:
                self.zf.close()
                self.zf = zipfile.ZipFile(self.path, mode='a', compression=self.compression)

    def close(self):
        """Write the archive directory, dropping superseded entries, and close it."""
        with self.mutex:
            if self._superseded and self.mode != 'r':
                self._compact()
            self.zf.close()
