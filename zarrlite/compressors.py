"""Chunk compressors.

A compressor turns the raw encoded bytes of one chunk into the bytes that are
persisted in a store, and back. The byte algorithms themselves are provided by
:mod:`numcodecs`; this module only fixes the closed set of variants zarrlite
knows about, how each one is described in ``.zarray`` metadata, and a registry
so that a compressor can be rebuilt from that description when an array is
opened again.
"""
from collections.abc import Mapping
from typing import Any, Dict, Optional, Type

import numcodecs
from numcodecs import blosc
from numcodecs.abc import Codec
from numcodecs.compat import ensure_bytes

from zarrlite.config import config
from zarrlite.errors import CodecError, ConfigError


class Compressor:
    """Base class for compressors.

    Subclasses set ``codec_id`` and implement :meth:`compress`,
    :meth:`decompress` and :meth:`get_config`.
    """

    codec_id: Optional[str] = None

    def compress(self, buf) -> bytes:  # pragma: no cover
        raise NotImplementedError

    def decompress(self, buf) -> bytes:  # pragma: no cover
        raise NotImplementedError

    def get_config(self) -> Optional[Dict[str, Any]]:  # pragma: no cover
        raise NotImplementedError

    def __eq__(self, other):
        if not isinstance(other, Compressor):
            return NotImplemented
        return self.get_config() == other.get_config()

    def __hash__(self):
        return hash(repr(self))

    def __repr__(self):
        conf = self.get_config() or {}
        params = ', '.join('{}={!r}'.format(k, v) for k, v in sorted(conf.items())
                           if k != 'id')
        return '{}({})'.format(type(self).__name__, params)


class NullCompressor(Compressor):
    """Pass-through compressor, persisted as ``null``."""

    codec_id = 'null'

    def compress(self, buf) -> bytes:
        return ensure_bytes(buf)

    def decompress(self, buf) -> bytes:
        return ensure_bytes(buf)

    def get_config(self):
        return None

    @classmethod
    def from_config(cls, conf):
        return cls()


class _NumcodecsCompressor(Compressor):
    """Delegates the byte algorithm to a :class:`numcodecs.abc.Codec`."""

    def __init__(self, codec: Codec):
        self._codec = codec

    def compress(self, buf) -> bytes:
        return ensure_bytes(self._codec.encode(buf))

    def decompress(self, buf) -> bytes:
        try:
            return ensure_bytes(self._codec.decode(buf))
        except Exception as e:
            raise CodecError('{} failed to decompress {} bytes'
                             .format(self.codec_id, len(buf))) from e


class ZlibCompressor(_NumcodecsCompressor):
    """Deflate compressor with a zlib header.

    Parameters
    ----------
    level : int
        Compression level, 0-9.
    """

    codec_id = 'zlib'
    codec_cls = numcodecs.Zlib

    def __init__(self, level: int = 1):
        level = int(level)
        if not 0 <= level <= 9:
            raise ConfigError('{} level must be between 0 and 9, found {}'
                              .format(self.codec_id, level))
        self.level = level
        super().__init__(self.codec_cls(level=level))

    def get_config(self):
        return dict(id=self.codec_id, level=self.level)

    @classmethod
    def from_config(cls, conf):
        return cls(level=conf.get('level', 1))


class GZipCompressor(ZlibCompressor):
    """Deflate compressor with a gzip header, readable by any gzip tool.

    Parameters
    ----------
    level : int
        Compression level, 0-9.
    """

    codec_id = 'gzip'
    codec_cls = numcodecs.GZip


class BloscCompressor(_NumcodecsCompressor):
    """Block compressor.

    Parameters
    ----------
    cname : str
        Name of the internal compressor, e.g. 'lz4', 'zstd', 'blosclz'.
    clevel : int
        Compression level, 0-9.
    shuffle : int
        0 for no shuffle, 1 for byte shuffle, 2 for bit shuffle.
    blocksize : int
        Block size in bytes, 0 lets blosc choose.
    """

    codec_id = 'blosc'

    def __init__(self, cname: str = 'lz4', clevel: int = 5, shuffle: int = 1,
                 blocksize: int = 0):
        clevel = int(clevel)
        if not 0 <= clevel <= 9:
            raise ConfigError('blosc clevel must be between 0 and 9, found {}'.format(clevel))
        if shuffle not in (0, 1, 2):
            raise ConfigError('blosc shuffle must be 0, 1 or 2, found {!r}'.format(shuffle))
        if cname not in blosc.list_compressors():
            raise ConfigError('blosc compressor {!r} is not available'.format(cname))
        self.cname = cname
        self.clevel = clevel
        self.shuffle = shuffle
        self.blocksize = int(blocksize)
        super().__init__(numcodecs.Blosc(cname=cname, clevel=clevel, shuffle=shuffle,
                                         blocksize=self.blocksize))

    def get_config(self):
        return dict(id=self.codec_id, cname=self.cname, clevel=self.clevel,
                    shuffle=self.shuffle, blocksize=self.blocksize)

    @classmethod
    def from_config(cls, conf):
        return cls(cname=conf.get('cname', 'lz4'),
                   clevel=conf.get('clevel', 5),
                   shuffle=conf.get('shuffle', 1),
                   blocksize=conf.get('blocksize', 0))


codec_registry: Dict[str, Type[Compressor]] = dict()


def register_compressor(cls: Type[Compressor], codec_id: Optional[str] = None):
    """Register a compressor class under `codec_id` (defaults to ``cls.codec_id``).

    The class must provide a ``from_config(conf)`` classmethod.
    """
    if codec_id is None:
        codec_id = cls.codec_id
    codec_registry[codec_id] = cls


register_compressor(NullCompressor)
register_compressor(ZlibCompressor)
register_compressor(GZipCompressor)
register_compressor(BloscCompressor)


def get_compressor(conf) -> Compressor:
    """Rebuild a compressor from its metadata description.

    Parameters
    ----------
    conf : dict or None
        Dictionary with an ``id`` key plus codec parameters, as stored in the
        ``compressor`` field of ``.zarray``. ``None`` gives the pass-through
        compressor.

    Returns
    -------
    compressor : Compressor
    """
    if conf is None:
        return NullCompressor()
    conf = dict(conf)
    codec_id = conf.pop('id', None)
    if codec_id is None:
        return NullCompressor()
    cls = codec_registry.get(codec_id)
    if cls is None:
        raise ConfigError('compressor not available: {!r}'.format(codec_id))
    return cls.from_config(conf)


def default_compressor() -> Compressor:
    return get_compressor(config.get('compressor'))


def normalize_compressor(compressor) -> Compressor:
    """Resolve the `compressor` argument of array creation.

    Accepts a :class:`Compressor`, ``None`` (pass-through), ``'default'`` (the
    configured default), a codec id string, a configuration mapping or a
    :mod:`numcodecs` codec.
    """
    if compressor is None:
        return NullCompressor()
    if isinstance(compressor, Compressor):
        return compressor
    if isinstance(compressor, str):
        if compressor == 'default':
            return default_compressor()
        return get_compressor({'id': compressor})
    if isinstance(compressor, Mapping):
        return get_compressor(compressor)
    if isinstance(compressor, Codec):
        return get_compressor(compressor.get_config())
    raise ConfigError('invalid compressor {!r}'.format(compressor))
