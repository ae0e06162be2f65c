"""
NBT (Named Binary Tag) decoding and encoding.

This module provides the Tag value type used to represent decoded tag trees,
an NBTReader that parses the big-endian binary format used by Minecraft save
data, and an NBTWriter that produces the same format.
"""

import gzip
import io
import logging
import struct
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import Any, BinaryIO, Dict, Iterable, List, Optional, Union

import numpy as np

from .errors import NBTDecodeError

logger = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"

# Minecraft refuses compounds and lists nested deeper than this
MAX_DEPTH = 512


class TagKind(IntEnum):
    """Tag type ids as they appear on disk."""

    END = 0
    BYTE = 1
    SHORT = 2
    INT = 3
    LONG = 4
    FLOAT = 5
    DOUBLE = 6
    BYTE_ARRAY = 7
    STRING = 8
    LIST = 9
    COMPOUND = 10
    INT_ARRAY = 11
    LONG_ARRAY = 12


_SCALAR_FORMATS = {
    TagKind.BYTE: ">b",
    TagKind.SHORT: ">h",
    TagKind.INT: ">i",
    TagKind.LONG: ">q",
    TagKind.FLOAT: ">f",
    TagKind.DOUBLE: ">d",
}

_ARRAY_DTYPES = {
    TagKind.INT_ARRAY: np.dtype(">i4"),
    TagKind.LONG_ARRAY: np.dtype(">i8"),
}


@dataclass
class Tag:
    """
    A single node of a tag tree.

    The payload type depends on ``kind``: ints and floats for the numeric
    kinds, ``bytes`` for byte arrays, ``str`` for strings, a list of ints for
    int/long arrays, a list of unnamed Tags for lists and a ``name -> Tag``
    dict (in stream order) for compounds. Lists also record the declared
    ``element_kind`` since an empty list still has one.
    """

    kind: TagKind
    value: Any = None
    name: str = ""
    element_kind: Optional[TagKind] = None

    def as_compound(self) -> Dict[str, "Tag"]:
        if self.kind is not TagKind.COMPOUND:
            raise TypeError(f"Expected a COMPOUND tag, got {self.kind.name}")
        return self.value

    def as_list(self) -> List["Tag"]:
        if self.kind is not TagKind.LIST:
            raise TypeError(f"Expected a LIST tag, got {self.kind.name}")
        return self.value

    def as_string(self) -> str:
        if self.kind is not TagKind.STRING:
            raise TypeError(f"Expected a STRING tag, got {self.kind.name}")
        return self.value

    def get(self, name: str) -> Optional["Tag"]:
        """Return the named child of a compound, or None."""
        if self.kind is not TagKind.COMPOUND:
            return None
        return self.value.get(name)

    @classmethod
    def compound(cls, name: str = "", children: Iterable["Tag"] = ()) -> "Tag":
        return cls(TagKind.COMPOUND, {child.name: child for child in children}, name)

    @classmethod
    def list_of(cls, element_kind: TagKind, items: Iterable["Tag"], name: str = "") -> "Tag":
        return cls(TagKind.LIST, list(items), name, element_kind)

    @classmethod
    def string(cls, value: str, name: str = "") -> "Tag":
        return cls(TagKind.STRING, value, name)


class NBTReader:
    """Parses one tag tree from a binary stream."""

    def __init__(self, stream: BinaryIO, max_depth: int = MAX_DEPTH):
        self.stream = stream
        self.max_depth = max_depth

    def _read(self, size: int) -> bytes:
        data = self.stream.read(size)
        if len(data) != size:
            raise NBTDecodeError(
                f"Unexpected end of stream: wanted {size} bytes, got {len(data)}"
            )
        return data

    def _read_kind(self) -> TagKind:
        type_id = self._read(1)[0]
        try:
            return TagKind(type_id)
        except ValueError:
            raise NBTDecodeError(f"Invalid tag type id {type_id}") from None

    def _read_count(self) -> int:
        (count,) = struct.unpack(">i", self._read(4))
        if count < 0:
            raise NBTDecodeError(f"Negative length {count}")
        return count

    def _read_string(self) -> str:
        (length,) = struct.unpack(">H", self._read(2))
        # Java writes modified UTF-8; the odd byte sequences it allows are replaced
        return self._read(length).decode("utf-8", errors="replace")

    def read_root(self) -> Tag:
        """Read a named root tag. A bare End tag decodes to an empty END Tag."""
        kind = self._read_kind()
        if kind is TagKind.END:
            return Tag(TagKind.END)
        name = self._read_string()
        return self._read_tag(kind, name, 0)

    def _read_tag(self, kind: TagKind, name: str, depth: int) -> Tag:
        if kind in _SCALAR_FORMATS:
            fmt = _SCALAR_FORMATS[kind]
            (value,) = struct.unpack(fmt, self._read(struct.calcsize(fmt)))
            return Tag(kind, value, name)

        if kind is TagKind.STRING:
            return Tag(kind, self._read_string(), name)

        if kind is TagKind.BYTE_ARRAY:
            return Tag(kind, self._read(self._read_count()), name)

        if kind in _ARRAY_DTYPES:
            dtype = _ARRAY_DTYPES[kind]
            raw = self._read(self._read_count() * dtype.itemsize)
            return Tag(kind, np.frombuffer(raw, dtype=dtype).tolist(), name)

        if depth >= self.max_depth:
            raise NBTDecodeError(f"Tag nesting deeper than {self.max_depth}")

        if kind is TagKind.LIST:
            element_kind = self._read_kind()
            count = self._read_count()
            if element_kind is TagKind.END and count > 0:
                raise NBTDecodeError(f"List of {count} END elements")
            # Plain loop keeps one Python frame per nesting level
            items = []
            for _ in range(count):
                items.append(self._read_tag(element_kind, "", depth + 1))
            return Tag(kind, items, name, element_kind)

        if kind is TagKind.COMPOUND:
            children: Dict[str, Tag] = {}
            while True:
                child_kind = self._read_kind()
                if child_kind is TagKind.END:
                    break
                child_name = self._read_string()
                children[child_name] = self._read_tag(child_kind, child_name, depth + 1)
            return Tag(kind, children, name)

        raise NBTDecodeError(f"Unexpected {kind.name} tag")


class NBTWriter:
    """Serializes tag trees to the binary format read by NBTReader."""

    def __init__(self, stream: BinaryIO):
        self.stream = stream

    def _write_string(self, value: str) -> None:
        encoded = value.encode("utf-8")
        self.stream.write(struct.pack(">H", len(encoded)))
        self.stream.write(encoded)

    def write_root(self, tag: Tag) -> None:
        self.stream.write(bytes([tag.kind]))
        if tag.kind is TagKind.END:
            return
        self._write_string(tag.name)
        self._write_payload(tag)

    def _write_payload(self, tag: Tag) -> None:
        kind = tag.kind
        if kind in _SCALAR_FORMATS:
            self.stream.write(struct.pack(_SCALAR_FORMATS[kind], tag.value))
        elif kind is TagKind.STRING:
            self._write_string(tag.value)
        elif kind is TagKind.BYTE_ARRAY:
            self.stream.write(struct.pack(">i", len(tag.value)))
            self.stream.write(bytes(tag.value))
        elif kind in _ARRAY_DTYPES:
            self.stream.write(struct.pack(">i", len(tag.value)))
            self.stream.write(np.asarray(tag.value, dtype=_ARRAY_DTYPES[kind]).tobytes())
        elif kind is TagKind.LIST:
            element_kind = tag.element_kind
            if element_kind is None:
                element_kind = tag.value[0].kind if tag.value else TagKind.END
            self.stream.write(bytes([element_kind]))
            self.stream.write(struct.pack(">i", len(tag.value)))
            for item in tag.value:
                if item.kind is not element_kind:
                    raise ValueError(
                        f"List '{tag.name}' declared {element_kind.name} but holds {item.kind.name}"
                    )
                self._write_payload(item)
        elif kind is TagKind.COMPOUND:
            for child_name, child in tag.value.items():
                self.stream.write(bytes([child.kind]))
                self._write_string(child_name)
                self._write_payload(child)
            self.stream.write(bytes([TagKind.END]))
        else:
            raise ValueError(f"Cannot write a payload for {kind.name}")


def decode(stream: BinaryIO, max_depth: int = MAX_DEPTH) -> Tag:
    """
    Decode a single named tag tree from an uncompressed stream.

    Raises:
        NBTDecodeError: If the stream is truncated or malformed
    """
    return NBTReader(stream, max_depth).read_root()


def decode_bytes(data: bytes, max_depth: int = MAX_DEPTH) -> Tag:
    return decode(io.BytesIO(data), max_depth)


def encode(tag: Tag) -> bytes:
    buffer = io.BytesIO()
    write_tag(buffer, tag)
    return buffer.getvalue()


def write_tag(stream: BinaryIO, tag: Tag) -> None:
    NBTWriter(stream).write_root(tag)


def read_nbt_file(path: Union[str, Path], max_depth: int = MAX_DEPTH) -> Tag:
    """
    Read a standalone NBT file such as level.dat or a player data file.

    These are normally gzip-compressed, but uncompressed files are accepted too.

    Raises:
        OSError: If the file can't be read or the gzip data is corrupt
        EOFError: If the gzip stream is truncated
        NBTDecodeError: If the decompressed data is malformed
    """
    data = Path(path).read_bytes()
    if data[:2] == GZIP_MAGIC:
        data = gzip.decompress(data)
    logger.debug(f"Decoding {len(data)} bytes of NBT from {path}")
    return decode_bytes(data, max_depth)
