import json

import pytest

from zarrlite.attrs import Attributes
from zarrlite.errors import FormatError, ReadOnlyError
from zarrlite.storage import MemoryStore
from zarrlite.sync import ThreadSynchronizer


class TestAttributes:

    def init_attributes(self, store, read_only=False):
        return Attributes(store, key='attrs', read_only=read_only)

    def test_storage(self):
        store = MemoryStore()
        a = self.init_attributes(store)
        assert 'foo' not in a
        assert dict() == a.asdict()
        assert 'attrs' not in store

        a['foo'] = 'bar'
        a['baz'] = 42
        assert isinstance(store['attrs'], bytes)
        assert dict(foo='bar', baz=42) == json.loads(store['attrs'].decode('ascii'))

    def test_get_set_del_contains(self):
        a = self.init_attributes(dict())
        a['foo'] = 'bar'
        a['baz'] = 42
        assert 'foo' in a
        assert 'bar' == a['foo']
        assert 42 == a['baz']
        del a['foo']
        assert 'foo' not in a
        with pytest.raises(KeyError):
            a['foo']
        with pytest.raises(KeyError):
            del a['foo']

    def test_update_put(self):
        a = self.init_attributes(dict())
        a.update(foo='spam', bar=42, baz=4.2)
        assert dict(foo='spam', bar=42, baz=4.2) == a.asdict()

        a.put(dict(foo='eggs', bar=84))
        assert dict(foo='eggs', bar=84) == a.asdict()

    def test_iterators(self):
        a = self.init_attributes(dict())
        assert 0 == len(a)
        assert set() == set(a.items())

        a['foo'] = 'bar'
        a['baz'] = 42
        assert 2 == len(a)
        assert {'foo', 'baz'} == set(a)
        assert {('foo', 'bar'), ('baz', 42)} == set(a.items())

    def test_read_only(self):
        store = dict()
        a = self.init_attributes(store, read_only=True)
        store['attrs'] = json.dumps(dict(foo='bar')).encode('ascii')
        assert a['foo'] == 'bar'
        with pytest.raises(ReadOnlyError):
            a['foo'] = 'quux'
        with pytest.raises(ReadOnlyError):
            del a['foo']
        with pytest.raises(ReadOnlyError):
            a.update(foo='quux')
        with pytest.raises(ReadOnlyError):
            a.put(dict())
        assert b'{"foo": "bar"}' == store['attrs']

    def test_invalid_json(self):
        a = self.init_attributes(dict(attrs=b'{"foo": '))
        with pytest.raises(FormatError):
            a.asdict()

    def test_changes_visible_through_other_objects(self):
        store = dict()
        a = self.init_attributes(store)
        b = self.init_attributes(store)
        a['foo'] = 'xxx'
        assert 'xxx' == b['foo']
        store['attrs'] = json.dumps(dict(foo='zzz')).encode('ascii')
        assert 'zzz' == a['foo']
        b.update(bar=1)
        assert dict(foo='zzz', bar=1) == a.asdict()


class TestAttributesWithThreadSynchronizer(TestAttributes):

    def init_attributes(self, store, read_only=False):
        return Attributes(store, key='attrs', read_only=read_only,
                          synchronizer=ThreadSynchronizer())
