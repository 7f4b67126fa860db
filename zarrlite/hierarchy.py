from collections.abc import MutableMapping

from zarrlite import creation
from zarrlite.attrs import Attributes
from zarrlite.core import Array
from zarrlite.errors import ContainsArrayError, GroupNotFoundError, ReadOnlyError
from zarrlite.meta import decode_group_metadata
from zarrlite.storage import (attrs_key, contains_array, contains_group, group_meta_key,
                              init_group, listdir, normalize_store_arg, path_prefix, rmdir)
from zarrlite.sync import ThreadSynchronizer
from zarrlite.util import TreeViewer, normalize_storage_path


class Group(MutableMapping):
    """A group node: a mapping from member names to arrays and sub-groups.

    Parameters
    ----------
    store : MutableMapping
        Store holding group metadata at `path`.
    path : string, optional
        Node path inside the store.
    read_only : bool, optional
        Refuse to create, replace or delete members and attributes.
    synchronizer : ThreadSynchronizer, optional
        Lock table shared by every array reached through this group; a new
        one is created by default.

    Members are named relative to the group; a name starting with '/' is
    taken from the store root.
    """

    def __init__(self, store, path=None, read_only=False, synchronizer=None):
        self._store = normalize_store_arg(store)
        self._path = normalize_storage_path(path)
        self._key_prefix = path_prefix(self._path)
        self._read_only = read_only
        if synchronizer is None:
            synchronizer = ThreadSynchronizer()
        self._synchronizer = synchronizer

        if contains_array(self._store, self._path):
            raise ContainsArrayError(self._path)
        blob = self._store.get(self._key_prefix + group_meta_key)
        if blob is None:
            raise GroupNotFoundError(self._path)
        self._meta = decode_group_metadata(blob)
        self._attrs = Attributes(self._store, key=self._key_prefix + attrs_key,
                                 read_only=read_only, synchronizer=synchronizer)

    @property
    def store(self):
        return self._store

    @property
    def path(self):
        return self._path

    @property
    def name(self):
        """Absolute name in h5py style, '/' for the root group."""
        return '/' + self._path

    @property
    def basename(self):
        return self._path.rsplit('/', 1)[-1]

    @property
    def read_only(self):
        return self._read_only

    @property
    def synchronizer(self):
        return self._synchronizer

    @property
    def attrs(self):
        """User attributes, a mutable mapping of JSON serializable values."""
        return self._attrs

    def __eq__(self, other):
        return (isinstance(other, Group) and self._store == other.store and
                self._path == other.path and self._read_only == other.read_only)

    def __repr__(self):
        t = type(self)
        suffix = ' read-only' if self._read_only else ''
        return f'<{t.__module__}.{t.__name__} {self.name!r}{suffix}>'

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        close = getattr(self._store, 'close', None)
        if close is not None:
            close()

    def _member_path(self, name):
        path = normalize_storage_path(name)
        if isinstance(name, str) and name.startswith('/'):
            return path
        return self._key_prefix + path

    def _members(self, kind_test):
        for name in listdir(self._store, self._path):
            if kind_test(self._store, self._key_prefix + name):
                yield name

    def __iter__(self):
        """Member names in sorted order.

        Examples
        --------
        >>> import zarrlite
        >>> g = zarrlite.group()
        >>> _ = g.create_group('foo')
        >>> _ = g.zeros('bar', shape=100, chunks=10)
        >>> list(g)
        ['bar', 'foo']

        """
        return self._members(lambda store, path: (contains_array(store, path) or
                                                  contains_group(store, path)))

    def __len__(self):
        return sum(1 for _ in self)

    def __contains__(self, name):
        path = self._member_path(name)
        return contains_array(self._store, path) or contains_group(self._store, path)

    def __getitem__(self, name):
        """The array or group stored under `name`; KeyError if there is none."""
        path = self._member_path(name)
        if contains_array(self._store, path):
            return Array(self._store, path=path, read_only=self._read_only,
                         synchronizer=self._synchronizer)
        if contains_group(self._store, path):
            return Group(self._store, path=path, read_only=self._read_only,
                         synchronizer=self._synchronizer)
        raise KeyError(name)

    def __setitem__(self, name, data):
        self.array(name, data, overwrite=True)

    def __delitem__(self, name):
        self._check_writeable()
        if name not in self:
            raise KeyError(name)
        rmdir(self._store, self._member_path(name))

    def group_keys(self):
        """Names of the sub-groups."""
        return self._members(contains_group)

    def array_keys(self):
        """Names of the member arrays."""
        return self._members(contains_array)

    def tree(self, level=None):
        """Printable view of the hierarchy below this group, at most `level`
        deep.

        Examples
        --------
        >>> import zarrlite
        >>> g = zarrlite.group()
        >>> bar = g.create_group('bar')
        >>> _ = bar.zeros('baz', shape=100, chunks=10, dtype='<i4')
        >>> _ = g.create_group('foo')
        >>> print(g.tree())
        /
         ├── bar
         │   └── baz (100,) <i4
         └── foo

        """
        return TreeViewer(self, level=level)

    def _check_writeable(self):
        if self._read_only:
            raise ReadOnlyError()

    def create_group(self, name, overwrite=False):
        """Create a sub-group; an existing node at `name` raises unless
        `overwrite` is True."""
        self._check_writeable()
        path = self._member_path(name)
        init_group(self._store, path=path, overwrite=overwrite)
        return Group(self._store, path=path, synchronizer=self._synchronizer)

    def require_group(self, name, overwrite=False):
        """The sub-group at `name`, created if it does not exist yet."""
        self._check_writeable()
        path = self._member_path(name)
        if not contains_group(self._store, path):
            init_group(self._store, path=path, overwrite=overwrite)
        return Group(self._store, path=path, synchronizer=self._synchronizer)

    def _new_array(self, factory, name, *args, **kwargs):
        self._check_writeable()
        kwargs.setdefault('synchronizer', self._synchronizer)
        return factory(*args, store=self._store, path=self._member_path(name), **kwargs)

    def create(self, name, **kwargs):
        """New member array; arguments as for :func:`zarrlite.create`."""
        return self._new_array(creation.create, name, **kwargs)

    def empty(self, name, **kwargs):
        return self._new_array(creation.empty, name, **kwargs)

    def zeros(self, name, **kwargs):
        return self._new_array(creation.zeros, name, **kwargs)

    def ones(self, name, **kwargs):
        return self._new_array(creation.ones, name, **kwargs)

    def full(self, name, fill_value, **kwargs):
        return self._new_array(creation.full, name, fill_value=fill_value, **kwargs)

    def array(self, name, data, **kwargs):
        """New member array holding a copy of `data`."""
        return self._new_array(creation.array, name, data, **kwargs)


def group(store=None, overwrite=False, synchronizer=None, path=None):
    """Open the group at `path`, creating it if needed.

    With `overwrite`, anything stored at `path` is replaced by an empty
    group.

    Examples
    --------
    >>> import zarrlite
    >>> zarrlite.group()
    <zarrlite.hierarchy.Group '/'>

    """
    return open_group(store, mode='w' if overwrite else 'a', synchronizer=synchronizer,
                      path=path)


def open_group(store=None, mode='a', synchronizer=None, path=None):
    """Open a group, creating it as `mode` allows.

    Parameters
    ----------
    store : MutableMapping or string, optional
        Store, or a directory path, '.zip' path or URL to open one on.
    mode : {'r', 'r+', 'a', 'w', 'w-', 'x'}, optional
        As for :func:`zarrlite.open_array`.
    synchronizer : ThreadSynchronizer, optional
        Lock table shared by the arrays of the group.
    path : string, optional
        Node path inside the store.

    Raises
    ------
    GroupNotFoundError
        If the mode needs an existing group and there is none.
    ContainsArrayError
        If an array sits at `path`.
    FormatError
        If the stored group metadata is not Zarr format 2.

    """
    store = normalize_store_arg(store, mode=mode)
    path = normalize_storage_path(path)

    def initialize(overwrite):
        init_group(store, overwrite=overwrite, path=path)

    read_only = creation.apply_open_mode(store, path, mode, 'group', initialize)
    return Group(store, path=path, read_only=read_only, synchronizer=synchronizer)
