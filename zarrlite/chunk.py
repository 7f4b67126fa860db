import logging

import numpy as np

from zarrlite.errors import CodecError
from zarrlite.params import ArrayMetadata

logger = logging.getLogger(__name__)


class ChunkReaderWriter:
    """Encodes and decodes whole chunks of one array.

    Parameters
    ----------
    store : MutableMapping
        Store holding the encoded chunks.
    metadata : ArrayMetadata
        Describes the chunk shape, dtype (including byte order), memory
        order, fill value and compressor.

    """

    def __init__(self, store, metadata: ArrayMetadata):
        self.store = store
        self.metadata = metadata
        self._chunks = metadata.chunks
        self._dtype = metadata.dtype
        self._order = metadata.order
        self._compressor = metadata.compressor
        self._fill_value = metadata.fill_value

    def empty_chunk(self) -> np.ndarray:
        """New chunk buffer holding the fill value everywhere."""
        if self._fill_value is not None:
            chunk = np.empty(self._chunks, dtype=self._dtype, order=self._order)
            chunk.fill(self._fill_value)
        else:
            # N.B., use zeros here so any region beyond the array has consistent
            # and compressible data
            chunk = np.zeros(self._chunks, dtype=self._dtype, order=self._order)
        return chunk

    def read_chunk(self, ckey: str) -> np.ndarray:
        """Return the full buffer of a chunk.

        A chunk that was never written is returned filled with the fill value
        without touching the compressor. The returned buffer is always
        writeable and owned by the caller.
        """
        cdata = self.store.get(ckey)
        if cdata is None:
            # chunk not initialized
            return self.empty_chunk()
        return self.decode_chunk(cdata, ckey)

    def decode_chunk(self, cdata, ckey: str = '') -> np.ndarray:
        # decompress
        data = self._compressor.decompress(cdata)

        # view as numpy array with correct dtype
        expected = self.metadata.chunk_size * self._dtype.itemsize
        if len(data) != expected:
            raise CodecError('chunk {!r} decoded to {} bytes, expected {}'
                             .format(ckey, len(data), expected))
        chunk = np.frombuffer(data, dtype=self._dtype)

        # ensure correct chunk shape
        chunk = chunk.reshape(self._chunks, order=self._order)
        if not chunk.flags.writeable:
            chunk = chunk.copy(order='K')
        return chunk

    def encode_chunk(self, chunk: np.ndarray) -> bytes:
        if chunk.shape != self._chunks:
            raise ValueError('chunk buffer must have shape {}, found {}'
                             .format(self._chunks, chunk.shape))

        # ensure dtype, byte order and memory layout
        chunk = np.asarray(chunk).astype(self._dtype, order=self._order, copy=False)
        if self._order == 'F':
            raw = chunk.tobytes(order='F')
        else:
            raw = chunk.tobytes(order='C')

        # compress
        return self._compressor.compress(raw)

    def write_chunk(self, ckey: str, chunk: np.ndarray) -> None:
        """Encode and store a full chunk buffer."""
        self.store[ckey] = self.encode_chunk(chunk)
        logger.debug("wrote chunk %r", ckey)
