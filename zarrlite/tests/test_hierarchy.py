import atexit
import json
import os
import tempfile
import textwrap

import numpy as np
import pytest
from numpy.testing import assert_array_equal

from zarrlite.core import Array
from zarrlite.creation import create
from zarrlite.errors import (ContainsArrayError, ContainsGroupError, FormatError,
                             GroupNotFoundError, ReadOnlyError, UnsupportedFormatError)
from zarrlite.hierarchy import Group, group, open_group
from zarrlite.storage import (DirectoryStore, MemoryStore, ZipStore, atexit_rmtree, attrs_key,
                              group_meta_key, init_group)
from zarrlite.sync import ThreadSynchronizer


class TestGroup:

    @staticmethod
    def create_store():
        return MemoryStore()

    def create_group(self, store=None, path=None, read_only=False, synchronizer=None):
        if store is None:
            store = self.create_store()
        init_group(store, path=path)
        return Group(store, path=path, read_only=read_only, synchronizer=synchronizer)

    def test_group_init(self):
        g = self.create_group()
        assert isinstance(g, Group)
        assert '' == g.path
        assert '/' == g.name
        assert '' == g.basename
        assert not g.read_only
        assert 0 == len(g)
        assert [] == list(g)
        assert "<zarrlite.hierarchy.Group '/'>" == repr(g)
        g.store.close()

        g = self.create_group(path='foo/bar')
        assert 'foo/bar' == g.path
        assert '/foo/bar' == g.name
        assert 'bar' == g.basename
        g.store.close()

    def test_group_init_errors(self):
        store = self.create_store()
        with pytest.raises(GroupNotFoundError):
            Group(store)
        create(100, chunks=10, store=store)
        with pytest.raises(ContainsArrayError):
            Group(store)
        store.close()

    def test_create_group(self):
        g1 = self.create_group()

        g2 = g1.create_group('foo')
        assert isinstance(g2, Group)
        assert 'foo' == g2.path
        assert '/foo' == g2.name

        g3 = g2.create_group('bar')
        assert 'foo/bar' == g3.path
        assert '/foo/bar' == g3.name

        # missing parents are created
        g4 = g1.create_group('a/b/c')
        assert 'a/b/c' == g4.path
        assert 'a' in g1
        assert 'a/b' in g1

        # absolute path
        g5 = g3.create_group('/x')
        assert 'x' == g5.path

        # creating an existing group fails
        with pytest.raises(ContainsGroupError):
            g1.create_group('foo')
        # unless overwritten
        g2 = g1.create_group('foo', overwrite=True)
        assert 'bar' not in g2

        g1.store.close()

    def test_require_group(self):
        g1 = self.create_group()

        g2 = g1.require_group('foo')
        g2.attrs['x'] = 1
        g3 = g1.require_group('foo')
        assert g2 == g3
        assert 1 == g3.attrs['x']

        g1.zeros('bar', shape=10)
        with pytest.raises(ContainsArrayError):
            g1.require_group('bar')
        g4 = g1.require_group('bar', overwrite=True)
        assert isinstance(g4, Group)

        g1.store.close()

    def test_array_creation(self):
        g = self.create_group()

        a = g.create('a', shape=100, chunks=10)
        assert isinstance(a, Array)
        assert 'a' == a.path
        assert '/a' == a.name
        b = g.empty('b', shape=100, chunks=10)
        assert b.fill_value is None
        c = g.zeros('c', shape=100, chunks=10)
        assert 0 == c.fill_value
        d = g.ones('d', shape=100, chunks=10)
        assert_array_equal(np.ones(100), d[...])
        e = g.full('e', 42, shape=100, chunks=10, dtype='i4')
        assert_array_equal(np.full(100, 42), e[...])
        f = g.array('f', np.arange(100), chunks=10)
        assert_array_equal(np.arange(100), f[...])
        h = g.create('sub/h', shape=10)
        assert 'sub/h' == h.path
        assert 'sub' in g

        # arrays created through a group share its lock table
        assert a.synchronizer is g.synchronizer
        assert g.synchronizer is g['b'].synchronizer

        with pytest.raises(ContainsArrayError):
            g.zeros('a', shape=10)
        a = g.zeros('a', shape=10, overwrite=True)
        assert (10,) == a.shape

        g.store.close()

    def test_getitem_contains_iterators(self):
        g1 = self.create_group()
        g2 = g1.create_group('foo/bar')
        d1 = g2.array('/a/b/c', np.arange(1000), chunks=100)
        d2 = g1.array('a/b/d', np.arange(100), chunks=10)
        g1.zeros('baz', shape=10)

        assert isinstance(g1['foo'], Group)
        assert isinstance(g1['foo']['bar'], Group)
        assert isinstance(g1['foo/bar'], Group)
        assert isinstance(g1['/foo/bar/'], Group)
        assert isinstance(g1['foo/bar'], Group)
        assert g2 == g1['foo/bar']
        assert g1['foo']['bar'] == g1['foo/bar']
        assert d1 == g1['a/b/c']
        assert d2 == g1['a']['b']['d']
        assert_array_equal(d1[:], g1['a/b/c'][:])
        assert_array_equal(d2[:], g1['a']['b']['d'][:])

        with pytest.raises(KeyError):
            g1['x']
        with pytest.raises(KeyError):
            g1['foo/x']

        assert 'foo' in g1
        assert 'foo/bar' in g1
        assert 'a/b/c' in g1
        assert 'x' not in g1
        assert 'foo/x' not in g1

        assert 3 == len(g1)
        assert ['a', 'baz', 'foo'] == list(g1)
        assert ['bar'] == list(g1['foo'])
        assert ['c', 'd'] == list(g1['a/b'])

        assert ['a', 'baz', 'foo'] == list(g1.keys())
        assert [g1['a'], g1['baz'], g1['foo']] == list(g1.values())
        assert [('a', g1['a']), ('baz', g1['baz']), ('foo', g1['foo'])] == list(g1.items())

        assert ['a', 'foo'] == list(g1.group_keys())
        assert ['baz'] == list(g1.array_keys())
        assert [] == list(g1['a/b'].group_keys())
        assert ['c', 'd'] == list(g1['a/b'].array_keys())

        g1.store.close()

    def test_setitem_delitem(self):
        g = self.create_group()
        g['foo'] = np.arange(100)
        assert_array_equal(np.arange(100), g['foo'][:])
        g['foo'] = np.arange(50)
        assert_array_equal(np.arange(50), g['foo'][:])

        g.create_group('bar/baz')
        del g['bar']
        assert 'bar' not in g
        assert 'bar/baz' not in g
        del g['foo']
        assert 'foo' not in g
        with pytest.raises(KeyError):
            del g['xxx']
        g.store.close()

    def test_attrs(self):
        g = self.create_group(path='foo')
        g.attrs['units'] = 'K'
        g.attrs.update(scale=2)
        assert dict(units='K', scale=2) == json.loads(
            str(g.store['foo/' + attrs_key], 'ascii'))

        g2 = Group(g.store, path='foo')
        assert 'K' == g2.attrs['units']
        assert 2 == g2.attrs['scale']
        g.store.close()

    def test_read_only(self):
        store = self.create_store()
        g = self.create_group(store)
        g.create_group('foo')
        g.zeros('bar', shape=10)
        g = Group(store, read_only=True)
        assert g.read_only
        assert "<zarrlite.hierarchy.Group '/' read-only>" == repr(g)
        with pytest.raises(ReadOnlyError):
            g.create_group('baz')
        with pytest.raises(ReadOnlyError):
            g.require_group('foo')
        with pytest.raises(ReadOnlyError):
            g.zeros('qux', shape=10)
        with pytest.raises(ReadOnlyError):
            g['qux'] = np.arange(10)
        with pytest.raises(ReadOnlyError):
            del g['foo']
        with pytest.raises(ReadOnlyError):
            g.attrs['x'] = 1

        # members inherit read-only
        assert g['foo'].read_only
        assert g['bar'].read_only
        with pytest.raises(ReadOnlyError):
            g['bar'][...] = 1
        store.close()

    def test_synchronizer(self):
        sync = ThreadSynchronizer()
        g = self.create_group(synchronizer=sync)
        a = g.zeros('a', shape=10)
        assert sync is g.synchronizer
        assert sync is a.synchronizer
        assert sync is g['a'].synchronizer
        g.create_group('b')
        assert 0 == len(sync)
        g.store.close()

    def test_context_manager(self):
        with self.create_group() as g:
            d = g.create('foo', shape=1000, chunks=100)
            d[:] = np.arange(1000)


class TestGroupWithDirectoryStore(TestGroup):

    @staticmethod
    def create_store():
        path = tempfile.mkdtemp()
        atexit.register(atexit_rmtree, path)
        return DirectoryStore(path)


@pytest.mark.filterwarnings("ignore:Duplicate name:UserWarning")
class TestGroupWithZipStore(TestGroup):

    @staticmethod
    def create_store():
        path = os.path.join(tempfile.mkdtemp(), 'data.zip')
        atexit.register(atexit_rmtree, os.path.dirname(path))
        return ZipStore(path, mode='w')

    def test_context_manager(self):
        with self.create_group() as g:
            d = g.create('foo', shape=1000, chunks=100)
            d[:] = np.arange(1000)
            path = g.store.path
        store = ZipStore(path, mode='r')
        assert_array_equal(np.arange(1000), open_group(store, mode='r')['foo'][:])
        store.close()


def test_group_defaults_to_memory_root():
    g = group()
    assert isinstance(g.store, MemoryStore)
    assert ('', '/') == (g.path, g.name)

    store = dict()
    g = group(store, path='foo/bar')
    assert store is g.store
    assert 'foo/bar' == g.path
    assert group_meta_key in store
    assert 'foo/' + group_meta_key in store


def test_group_overwrite():
    store = MemoryStore()
    group(store).create_group('foo')
    assert ['foo'] == list(group(store))
    assert [] == list(group(store, overwrite=True))

    store = MemoryStore()
    create(100, store=store)
    with pytest.raises(ContainsArrayError):
        group(store)
    g = group(store, overwrite=True)
    assert [] == list(g)
    assert group_meta_key in store


@pytest.fixture
def stores_on_disk(tmp_path):
    existing_group = str(tmp_path / 'group.zarr')
    g = open_group(existing_group, mode='w')
    g.create_group('foo')
    g.create_group('bar')
    existing_array = str(tmp_path / 'array.zarr')
    create(100, store=existing_array)
    return dict(group=existing_group, array=existing_array,
                missing=str(tmp_path / 'missing.zarr'))


@pytest.mark.parametrize('mode, target, outcome', [
    ('r', 'group', 2),
    ('r', 'array', ContainsArrayError),
    ('r', 'missing', GroupNotFoundError),
    ('r+', 'group', 2),
    ('r+', 'array', ContainsArrayError),
    ('r+', 'missing', GroupNotFoundError),
    ('a', 'group', 2),
    ('a', 'array', ContainsArrayError),
    ('a', 'missing', 0),
    ('w', 'group', 0),
    ('w', 'array', 0),
    ('w', 'missing', 0),
    ('w-', 'group', ContainsGroupError),
    ('w-', 'array', ContainsArrayError),
    ('w-', 'missing', 0),
    ('x', 'group', ContainsGroupError),
    ('x', 'array', ContainsArrayError),
    ('x', 'missing', 0),
])
def test_open_group_modes(stores_on_disk, mode, target, outcome):
    store = stores_on_disk[target]
    if isinstance(outcome, type):
        with pytest.raises(outcome):
            open_group(store, mode=mode)
        return
    g = open_group(store, mode=mode)
    assert isinstance(g.store, DirectoryStore)
    assert outcome == len(g)
    assert (mode == 'r') == g.read_only
    if mode == 'r':
        with pytest.raises(ReadOnlyError):
            g.create_group('baz')
    else:
        g.create_group('baz')
        assert outcome + 1 == len(open_group(store, mode='r'))


def test_open_group_invalid_mode():
    with pytest.raises(ValueError):
        open_group(MemoryStore(), mode='z')


def test_open_group_unsupported_format():
    store = MemoryStore()
    store[group_meta_key] = b'{"zarr_format": "1.3"}'
    with pytest.raises(FormatError) as excinfo:
        open_group(store, mode='r')
    assert isinstance(excinfo.value, UnsupportedFormatError)
    assert '1.3' == excinfo.value.version
    assert "Zarr format 2 expected but is '1.3'" == str(excinfo.value)


@pytest.fixture(params=[None, 'data/run1'], ids=['root', 'nested'])
def sample_hierarchy(request):
    root = group(path=request.param)
    root.create_group('scalars')
    images = root.create_group('images')
    images.zeros('raw', shape=(64, 64), chunks=32, dtype='<u2')
    images.create_group('masks').ones('cloud', shape=64, chunks=16, dtype='|u1')
    return root


def test_tree(sample_hierarchy):
    top = sample_hierarchy.basename or '/'
    expect = textwrap.dedent(f"""\
    {top}
     ├── images
     │   ├── masks
     │   │   └── cloud (64,) |u1
     │   └── raw (64, 64) <u2
     └── scalars""")
    assert expect == str(sample_hierarchy.tree())
    assert expect == repr(sample_hierarchy.tree())


@pytest.mark.parametrize('level, expect', [
    (0, ''),
    (1, '\n ├── images\n └── scalars'),
    (2, '\n ├── images\n │   ├── masks\n │   └── raw (64, 64) <u2\n └── scalars'),
])
def test_tree_level(sample_hierarchy, level, expect):
    top = sample_hierarchy.basename or '/'
    assert top + expect == str(sample_hierarchy.tree(level=level))


def test_tree_leaf_group(sample_hierarchy):
    assert 'scalars' == str(sample_hierarchy['scalars'].tree())
