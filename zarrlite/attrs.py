from collections.abc import MutableMapping

from zarrlite.errors import ReadOnlyError
from zarrlite.meta import Metadata2
from zarrlite.util import json_dumps


class Attributes(MutableMapping):
    """User attributes of an array or group, kept as one JSON object under
    `key` in `store`. Reached through the `.attrs` property of a node.

    Every read goes to the store, so attributes written through another
    node object are visible at once. A change loads the object, modifies it
    and writes it back while holding the synchronizer entry for `key`.
    """

    def __init__(self, store, key='.zattrs', read_only=False, synchronizer=None):
        self.store = store
        self.key = key
        self.read_only = read_only
        self.synchronizer = synchronizer

    def asdict(self):
        """All attributes as a new dict."""
        blob = self.store.get(self.key)
        return {} if blob is None else dict(Metadata2.parse_metadata(blob))

    def _modify(self, change):
        if self.read_only:
            raise ReadOnlyError()
        if self.synchronizer is None:
            self._apply(change)
        else:
            with self.synchronizer[self.key]:
                self._apply(change)

    def _apply(self, change):
        d = self.asdict()
        change(d)
        self.store[self.key] = json_dumps(d)

    def __getitem__(self, name):
        return self.asdict()[name]

    def __setitem__(self, name, value):
        self._modify(lambda d: d.__setitem__(name, value))

    def __delitem__(self, name):
        self._modify(lambda d: d.__delitem__(name))

    def update(self, *args, **kwargs):
        """Change several attributes with a single store write."""
        self._modify(lambda d: d.update(*args, **kwargs))

    def put(self, d):
        """Replace all attributes by the contents of `d`."""
        replacement = dict(d)

        def change(current):
            current.clear()
            current.update(replacement)
        self._modify(change)

    def __contains__(self, name):
        return name in self.asdict()

    def __iter__(self):
        return iter(self.asdict())

    def __len__(self):
        return len(self.asdict())
