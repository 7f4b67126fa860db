class _BaseZarrError(ValueError):
    _msg = ""

    def __init__(self, *args):
        super().__init__(self._msg.format(*args))


class ConfigError(ValueError):
    """Invalid array configuration (shape, chunks, dtype, fill value, compressor)."""
    pass


class FormatError(Exception):
    """Persisted metadata is missing, unreadable or has an unsupported format."""

    def __init__(self, msg, version=None):
        super().__init__(msg)
        self.version = version


class UnsupportedFormatError(FormatError):

    def __init__(self, version):
        super().__init__("Zarr format 2 expected but is '{}'".format(version), version=version)


class ArrayNotFoundError(FormatError):

    def __init__(self, path):
        super().__init__("array not found at path {!r}".format(path))


class GroupNotFoundError(FormatError):

    def __init__(self, path):
        super().__init__("group not found at path {!r}".format(path))


class RangeError(IndexError):
    """Requested region is outside the array bounds or has the wrong rank."""
    pass


class BoundsCheckError(RangeError):

    def __init__(self, dim, offset, length, dim_len):
        super().__init__(
            "region out of bounds in dimension {}: offset {} + shape {} > {}"
            .format(dim, offset, length, dim_len))


class RankMismatchError(RangeError):

    def __init__(self, name, expected, actual):
        super().__init__(
            "{} must have {} dimensions, got {}".format(name, expected, actual))


class CodecError(RuntimeError):
    """A chunk's bytes could not be decompressed or decoded."""
    pass


class StoreError(OSError):
    """The backing store failed to read or write a blob."""
    pass


class ContainsGroupError(_BaseZarrError):
    _msg = "path {0!r} contains a group"


class ContainsArrayError(_BaseZarrError):
    _msg = "path {0!r} contains an array"


class FSPathExistNotDir(_BaseZarrError):
    _msg = "path exists but is not a directory: {0!r}"


class ReadOnlyError(PermissionError):
    def __init__(self):
        super().__init__("object is read-only")


class ChunkKeyError(RangeError):

    def __init__(self, key, cdata_shape):
        super().__init__("invalid chunk key {!r} for chunk grid with shape {!r}"
                         .format(key, cdata_shape))
