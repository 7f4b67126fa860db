# flake8: noqa
from zarrlite.compressors import (BloscCompressor, Compressor, GZipCompressor, NullCompressor,
                                  ZlibCompressor, get_compressor, register_compressor)
from zarrlite.config import config
from zarrlite.core import Array
from zarrlite.creation import (array, create, empty, full, ones, open_array, zeros)
from zarrlite.errors import (BoundsCheckError, CodecError, ConfigError, FormatError,
                             RangeError, RankMismatchError, ReadOnlyError, StoreError,
                             UnsupportedFormatError)
from zarrlite.hierarchy import Group, group, open_group
from zarrlite.params import ArrayMetadata, ArrayParams, build
from zarrlite.storage import (DirectoryStore, FSStore, MemoryStore, ZipStore)
from zarrlite.sync import ThreadSynchronizer
from zarrlite.version import version as __version__
