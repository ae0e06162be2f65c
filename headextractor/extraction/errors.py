"""Exceptions raised while reading world files."""


class ExtractionError(Exception):
    """Base class for malformed world data."""

    pass


class RegionFormatError(ExtractionError):
    """Raised when a region file's container structure is malformed."""

    pass


class NBTDecodeError(ExtractionError):
    """Raised when an NBT stream is truncated or structurally invalid."""

    pass
