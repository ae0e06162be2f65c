"""
Region file reading for Minecraft .mca archives.

A region file starts with a 1024-entry location table, one big-endian word
per chunk of a 32x32 chunk area. Each present entry points at a 4096-byte
sector holding a length-prefixed, compressed NBT blob.
"""

import gzip
import logging
import mmap
import struct
import zlib
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Union

import numpy as np

from .errors import RegionFormatError

logger = logging.getLogger(__name__)

SECTOR_SIZE = 4096
CHUNKS_PER_REGION = 1024
LOCATION_TABLE_SIZE = 4 * CHUNKS_PER_REGION

COMPRESSION_GZIP = 1
COMPRESSION_ZLIB = 2
COMPRESSION_NONE = 3


@dataclass
class RegionChunk:
    """Decompressed NBT payload of one chunk slot."""

    x: int
    z: int
    compression: int
    data: bytes


def chunk_offset(location: int) -> int:
    """Byte offset of a chunk from its location word; always sector aligned."""
    return ((location >> 8) & 0xFFFFFF) * SECTOR_SIZE


def decompress_chunk(compression: int, payload: bytes) -> bytes:
    """
    Decompress a chunk payload according to its compression tag.

    Raises:
        ValueError: If the compression tag is unsupported
        zlib.error, OSError, EOFError: If the payload is corrupt
    """
    if compression == COMPRESSION_GZIP:
        return gzip.decompress(payload)
    if compression == COMPRESSION_ZLIB:
        return zlib.decompress(payload)
    if compression == COMPRESSION_NONE:
        return payload
    raise ValueError(f"Unsupported compression type {compression}")


def read_region(path: Union[str, Path]) -> Iterator[RegionChunk]:
    """
    Lazily yield every present chunk of a region file.

    Chunks that point outside the file, use an unknown compression type or fail
    to decompress are logged and skipped; the rest of the file is still read.

    Args:
        path: Path to the .mca file

    Yields:
        RegionChunk for each readable slot, in slot order

    Raises:
        OSError: If the file can't be opened
        RegionFormatError: If the file is too short to hold a location table
    """
    path = Path(path)
    with open(path, "rb") as f:
        size = path.stat().st_size
        if size == 0:
            # The game leaves zero-byte regions behind for areas it never saved
            logger.debug(f"Skipping empty region file {path.name}")
            return
        if size < LOCATION_TABLE_SIZE:
            raise RegionFormatError(
                f"Region file {path.name} is {size} bytes, shorter than its location table"
            )

        with mmap.mmap(f.fileno(), 0, access=mmap.ACCESS_READ) as buffer:
            locations = np.frombuffer(buffer[:LOCATION_TABLE_SIZE], dtype=">u4")
            for index in np.flatnonzero(locations):
                index = int(index)
                x, z = index % 32, index // 32
                offset = chunk_offset(int(locations[index]))

                if offset + 5 > size:
                    logger.warning(
                        f"Chunk ({x}, {z}) in {path.name} points past the end of the file"
                    )
                    continue

                length, compression = struct.unpack_from(">iB", buffer, offset)
                payload_length = length - 1
                if payload_length < 0 or offset + 5 + payload_length > size:
                    logger.warning(
                        f"Chunk ({x}, {z}) in {path.name} has invalid length {length}"
                    )
                    continue

                payload = buffer[offset + 5 : offset + 5 + payload_length]
                try:
                    data = decompress_chunk(compression, payload)
                except ValueError as e:
                    logger.warning(f"Skipping chunk ({x}, {z}) in {path.name}: {e}")
                    continue
                except (zlib.error, OSError, EOFError) as e:
                    logger.warning(
                        f"Failed to decompress chunk ({x}, {z}) in {path.name}: {e}"
                    )
                    continue

                yield RegionChunk(x, z, compression, data)


class RegionFileReader:
    """Reads all chunks of one region file."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def __iter__(self) -> Iterator[RegionChunk]:
        return read_region(self.path)

    def read_all(self) -> List[RegionChunk]:
        return list(read_region(self.path))
