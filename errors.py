class BitmapError(Exception):
    """Base class for bitmap codec and transform failures."""


class BitmapFormatError(BitmapError, ValueError):
    """The header or in-memory layout of a bitmap is inconsistent."""


class UnsupportedFormatError(BitmapError, ValueError):
    """The bitmap uses a layout this library does not handle."""
