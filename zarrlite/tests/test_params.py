import numpy as np
import pytest

from zarrlite.compressors import BloscCompressor, NullCompressor, ZlibCompressor
from zarrlite.config import config
from zarrlite.errors import ConfigError
from zarrlite.params import ArrayMetadata, ArrayParams, build


@pytest.mark.parametrize('shape, expect', [
    ((3800, 5000), (475, 500)),
    ((3800, 4999), (475, 500)),
    ((3800, 33), (475, 33)),
    ((100,), (100,)),
])
def test_auto_chunks(shape, expect):
    meta = build(ArrayParams(shape=shape))
    assert expect == meta.chunks


def test_unchunked():
    meta = build(ArrayParams(shape=(1000, 1000), chunked=False))
    assert (1000, 1000) == meta.chunks


def test_zero_chunk_dimension_spans_array():
    meta = build(ArrayParams(shape=(3800, 5000), chunks=(444, 0)))
    assert (444, 5000) == meta.chunks


def test_defaults():
    meta = ArrayParams(shape=(10, 10)).build()
    assert isinstance(meta, ArrayMetadata)
    assert (10, 10) == meta.shape
    assert np.dtype('>f8') == meta.dtype
    assert '>' == meta.byte_order
    assert 0 == meta.fill_value
    assert 'C' == meta.order
    assert '.' == meta.dimension_separator
    assert BloscCompressor() == meta.compressor
    assert 2 == meta.ndim
    assert 100 == meta.chunk_size


def test_configured_defaults():
    with config.set({'compressor': {'id': 'zlib', 'level': 3},
                     'array.order': 'F',
                     'array.dimension_separator': '/'}):
        meta = build(ArrayParams(shape=100))
    assert ZlibCompressor(level=3) == meta.compressor
    assert 'F' == meta.order
    assert '/' == meta.dimension_separator


def test_byte_order():
    assert '<' == build(ArrayParams(shape=10, dtype='<i4')).byte_order
    assert '>' == build(ArrayParams(shape=10, dtype='<i4', byte_order='big')).byte_order
    assert '<' == build(ArrayParams(shape=10, dtype='i2', byte_order='little')).byte_order
    assert '|' == build(ArrayParams(shape=10, dtype='u1')).byte_order


def test_compressor_forms():
    assert NullCompressor() == build(ArrayParams(shape=10, compressor=None)).compressor
    assert ZlibCompressor(level=1) == build(ArrayParams(shape=10, compressor='zlib')).compressor
    meta = build(ArrayParams(shape=10, compressor=dict(id='blosc', cname='zstd', clevel=3)))
    assert BloscCompressor(cname='zstd', clevel=3) == meta.compressor


def test_missing_shape():
    with pytest.raises(ConfigError, match='Shape must be given.'):
        build(ArrayParams(shape=None))
    with pytest.raises(ConfigError, match='Shape must be given.'):
        build(ArrayParams(shape=()))


def test_chunk_rank_mismatch():
    with pytest.raises(ConfigError) as excinfo:
        build(ArrayParams(shape=(100, 100), chunks=(10, 10, 10)))
    assert ('Chunks must have the same number of dimensions as shape. '
            'Expected: 2 but was 3 !') == str(excinfo.value)


@pytest.mark.parametrize('params', [
    ArrayParams(shape=10, dtype='U3'),
    ArrayParams(shape=10, fill_value='foo', dtype='i4'),
    ArrayParams(shape=10, compressor='lzma'),
    ArrayParams(shape=10, order='X'),
    ArrayParams(shape=10, byte_order='middle'),
    ArrayParams(shape=10, dimension_separator=':'),
])
def test_invalid_params(params):
    with pytest.raises(ConfigError):
        build(params)


def test_params_are_immutable():
    params = ArrayParams(shape=10)
    with pytest.raises(AttributeError):
        params.shape = 20
    meta = params.build()
    with pytest.raises(AttributeError):
        meta.shape = (20,)


def test_evolve():
    meta = build(ArrayParams(shape=(100, 100), chunks=(10, 10), dtype='<i4', fill_value=3))
    evolved = meta.evolve(shape=(200, 100))
    assert (200, 100) == evolved.shape
    assert (10, 10) == evolved.chunks
    assert np.dtype('<i4') == evolved.dtype
    assert 3 == evolved.fill_value
    assert (100, 100) == meta.shape

    rechunked = meta.evolve(shape=(3800, 5000), chunks=None)
    assert (475, 500) == rechunked.chunks
