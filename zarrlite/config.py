"""
The config module is responsible for managing the configuration of zarrlite and is based on
the Donfig python library.

Example:
    The default compressor used when creating arrays can be changed programmatically::

        from zarrlite.config import config

        with config.set({"compressor": {"id": "zlib", "level": 5}}):
            z = zarrlite.create(shape=(100, 100))

    or through environment variables, using a double underscore for nested access::

        export ZARRLITE_THREADING__MAX_WORKERS=4

For more information, see the Donfig documentation at https://github.com/pytroll/donfig.
"""

from donfig import Config as DConfig


class Config(DConfig):  # type: ignore[misc]
    """The Config will collect configuration from config files and environment variables

    Example environment variables:
    Grabs environment variables of the form "ZARRLITE_FOO__BAR_BAZ=123" and
    turns these into config variables of the form ``{"foo": {"bar-baz": 123}}``
    """

    def reset(self) -> None:
        self.clear()
        self.refresh()


config = Config(
    "zarrlite",
    defaults=[
        {
            "array": {
                "order": "C",
                "dimension_separator": ".",
                "dtype": "f8",
                "byte_order": ">",
                "fill_value": 0,
            },
            "compressor": {
                "id": "blosc",
                "cname": "lz4",
                "clevel": 5,
                "shuffle": 1,
                "blocksize": 0,
            },
            "threading": {"max_workers": None},
            "json_indent": 4,
        }
    ],
)
