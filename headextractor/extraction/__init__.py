"""
Extraction module for finding player head profiles in Minecraft worlds.

This module provides readers for region files and NBT data, scanners that
locate profile candidates in tag trees and text, and the HeadExtractor that
runs them across every file of a world.
"""

from .errors import ExtractionError, NBTDecodeError, RegionFormatError
from .head_extractor import HeadExtractor, extract_heads, scan_file
from .nbt import Tag, TagKind, decode, decode_bytes, encode, read_nbt_file
from .region import RegionChunk, RegionFileReader, read_region
from .scanner import TagTreeScanner, TextScanner
from .validator import ProfileValidator

__all__ = [
    "ExtractionError",
    "HeadExtractor",
    "NBTDecodeError",
    "ProfileValidator",
    "RegionChunk",
    "RegionFileReader",
    "RegionFormatError",
    "Tag",
    "TagKind",
    "TagTreeScanner",
    "TextScanner",
    "decode",
    "decode_bytes",
    "encode",
    "extract_heads",
    "read_nbt_file",
    "read_region",
    "scan_file",
]
