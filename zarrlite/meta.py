from collections.abc import Mapping
from typing import Any, Mapping as MappingType, Union

import numpy as np

from zarrlite.compressors import get_compressor
from zarrlite.errors import ConfigError, FormatError, UnsupportedFormatError
from zarrlite.params import ArrayMetadata, ArrayParams, build
from zarrlite.util import json_dumps, json_loads

ZARR_FORMAT = 2


class Metadata2:
    ZARR_FORMAT = ZARR_FORMAT

    @classmethod
    def parse_metadata(cls, s: Union[MappingType, bytes, str]) -> MappingType[str, Any]:
        # a store may hand back an already-parsed mapping
        if isinstance(s, Mapping):
            return s
        try:
            meta = json_loads(s)
        except (ValueError, UnicodeDecodeError) as e:
            raise FormatError("error decoding metadata: invalid JSON") from e
        if not isinstance(meta, Mapping):
            raise FormatError("error decoding metadata: expected a JSON object")
        return meta

    @classmethod
    def check_format(cls, meta: MappingType[str, Any]) -> None:
        zarr_format = meta.get("zarr_format", None)
        if zarr_format != cls.ZARR_FORMAT or isinstance(zarr_format, bool):
            raise UnsupportedFormatError(zarr_format)

    @classmethod
    def decode_array_metadata(cls, s: Union[MappingType, bytes, str]) -> ArrayMetadata:
        meta = cls.parse_metadata(s)
        cls.check_format(meta)
        try:
            dtype = cls.decode_dtype(meta["dtype"])
            params = ArrayParams(
                shape=tuple(meta["shape"]),
                chunks=tuple(meta["chunks"]),
                dtype=meta["dtype"],
                fill_value=cls.decode_fill_value(meta["fill_value"], dtype),
                compressor=get_compressor(meta["compressor"]),
                order=meta["order"],
                dimension_separator=meta.get("dimension_separator", None) or ".",
            )
            if meta.get("filters"):
                raise FormatError("filters are not supported, found {!r}"
                                  .format(meta["filters"]))
            return build(params)
        except (KeyError, TypeError, ValueError, ConfigError) as e:
            raise FormatError("error decoding metadata") from e

    @classmethod
    def encode_array_metadata(cls, meta: ArrayMetadata) -> bytes:
        meta = dict(
            zarr_format=cls.ZARR_FORMAT,
            shape=list(meta.shape),
            chunks=list(meta.chunks),
            dtype=cls.encode_dtype(meta.dtype),
            compressor=meta.compressor.get_config(),
            fill_value=cls.encode_fill_value(meta.fill_value, meta.dtype),
            order=meta.order,
            filters=None,
            dimension_separator=meta.dimension_separator,
        )
        return json_dumps(meta)

    @classmethod
    def encode_dtype(cls, d: np.dtype) -> str:
        return d.str

    @classmethod
    def decode_dtype(cls, d) -> np.dtype:
        if not isinstance(d, str):
            raise FormatError("unsupported dtype description {!r}".format(d))
        return np.dtype(d)

    @classmethod
    def decode_group_metadata(cls, s: Union[MappingType, bytes, str]) -> MappingType[str, Any]:
        meta = cls.parse_metadata(s)
        cls.check_format(meta)
        return {"zarr_format": cls.ZARR_FORMAT}

    @classmethod
    def encode_group_metadata(cls) -> bytes:
        return json_dumps({"zarr_format": cls.ZARR_FORMAT})

    @classmethod
    def decode_fill_value(cls, v: Any, dtype: np.dtype) -> Any:
        """Fill value from its JSON form; complex values are [real, imag] pairs."""
        if v is None:
            return None
        if dtype.kind == "c":
            part = dtype.type().real.dtype
            real, imag = (cls.decode_fill_value(p, part) for p in v)
            v = complex(real, imag)
        elif dtype.kind == "f" and isinstance(v, str):
            v = _float_by_name.get(v, v)
        return np.array(v, dtype=dtype)[()]

    @classmethod
    def encode_fill_value(cls, v: Any, dtype: np.dtype) -> Any:
        """JSON form of a fill value; non-finite floats are spelled out."""
        if v is None:
            return None
        if dtype.kind == "c":
            part = dtype.type().real.dtype
            return [cls.encode_fill_value(v.real, part), cls.encode_fill_value(v.imag, part)]
        if dtype.kind == "f":
            if np.isnan(v):
                return "NaN"
            if np.isinf(v):
                return "Infinity" if v > 0 else "-Infinity"
            return float(v)
        if dtype.kind == "b":
            return bool(v)
        return int(v)


_float_by_name = {"NaN": np.nan, "Infinity": np.inf, "-Infinity": -np.inf}

decode_array_metadata = Metadata2.decode_array_metadata
encode_array_metadata = Metadata2.encode_array_metadata
decode_group_metadata = Metadata2.decode_group_metadata
encode_group_metadata = Metadata2.encode_group_metadata
