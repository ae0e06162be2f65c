# Put the project root on sys.path so tests import headextractor without installing it
import base64
import gzip
import json
import struct
import sys
import zipfile
import zlib
from pathlib import Path

import pytest

ROOT = Path(__file__).parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from headextractor.extraction.nbt import Tag, TagKind, encode  # noqa: E402


def make_profile(url: str) -> str:
    """Base64 profile JSON for a skin URL, as stored by the game."""
    profile = {"timestamp": 1700000000000, "textures": {"SKIN": {"url": url}}}
    return base64.b64encode(json.dumps(profile).encode()).decode()


def legacy_head_item(token: str) -> Tag:
    """A player_head item stack as written before the item component rework."""
    textures = Tag.list_of(
        TagKind.COMPOUND, [Tag.compound("", [Tag.string(token, "Value")])], name="textures"
    )
    return Tag.compound(
        "",
        [
            Tag.string("minecraft:player_head", "id"),
            Tag(TagKind.BYTE, 1, "Count"),
            Tag.compound(
                "tag",
                [Tag.compound("SkullOwner", [Tag.compound("Properties", [textures])])],
            ),
        ],
    )


def component_head_item(token: str) -> Tag:
    """A player_head item stack using the minecraft:profile component."""
    properties = Tag.list_of(
        TagKind.COMPOUND,
        [Tag.compound("", [Tag.string("textures", "name"), Tag.string(token, "value")])],
        name="properties",
    )
    return Tag.compound(
        "",
        [
            Tag.string("minecraft:player_head", "id"),
            Tag(TagKind.INT, 1, "count"),
            Tag.compound(
                "components", [Tag.compound("minecraft:profile", [properties])]
            ),
        ],
    )


def chunk_with_items(items) -> Tag:
    """A chunk root holding a chest block entity with the given items."""
    chest = Tag.compound(
        "",
        [
            Tag.string("minecraft:chest", "id"),
            Tag.list_of(TagKind.COMPOUND, items, name="Items"),
        ],
    )
    return Tag.compound(
        "",
        [
            Tag(TagKind.INT, 3700, "DataVersion"),
            Tag.list_of(TagKind.COMPOUND, [chest], name="block_entities"),
        ],
    )


def compress(compression: int, data: bytes) -> bytes:
    if compression == 1:
        return gzip.compress(data)
    if compression == 2:
        return zlib.compress(data)
    return data


def build_region(chunks) -> bytes:
    """
    Build region file bytes.

    Args:
        chunks: Mapping of slot index to (compression type, already compressed payload)
    """
    header = bytearray(8192)
    body = bytearray()
    sector = 2
    for index, (compression, payload) in sorted(chunks.items()):
        blob = struct.pack(">iB", len(payload) + 1, compression) + payload
        sectors = (len(blob) + 4095) // 4096
        blob += b"\x00" * (sectors * 4096 - len(blob))
        struct.pack_into(">I", header, 4 * index, (sector << 8) | sectors)
        body += blob
        sector += sectors
    return bytes(header + body)


def region_of_roots(roots, compression: int = 2) -> bytes:
    """Region file bytes with one chunk per tag tree, in consecutive slots."""
    return build_region(
        {index: (compression, compress(compression, encode(root))) for index, root in enumerate(roots)}
    )


def set_zip_flag_bits(archive: Path, bits: int) -> None:
    """Set general purpose flag bits on the first entry of a zip archive."""
    data = bytearray(archive.read_bytes())
    # (header signature, offset of the flag field) for the local and central headers
    for signature, offset in ((b"PK\x03\x04", 6), (b"PK\x01\x02", 8)):
        start = data.find(signature) + offset
        (flags,) = struct.unpack_from("<H", data, start)
        struct.pack_into("<H", data, start, flags | bits)
    archive.write_bytes(bytes(data))


@pytest.fixture
def profile():
    return make_profile("http://textures.minecraft.net/texture/1a2b3c")


@pytest.fixture
def other_profile():
    return make_profile("http://textures.minecraft.net/texture/4d5e6f")


@pytest.fixture
def world_factory(tmp_path):
    """Create a world directory containing heads in every supported location."""

    def _make_world(name: str, profiles) -> Path:
        region_head, entity_head, player_head, level_head, pack_head, zip_head = profiles
        world = tmp_path / name
        (world / "region").mkdir(parents=True)
        (world / "entities").mkdir()
        (world / "playerdata").mkdir()

        (world / "region" / "r.0.0.mca").write_bytes(
            region_of_roots([chunk_with_items([legacy_head_item(region_head)])])
        )
        armor_stand = Tag.compound(
            "",
            [
                Tag.string("minecraft:armor_stand", "id"),
                Tag.list_of(TagKind.COMPOUND, [component_head_item(entity_head)], name="ArmorItems"),
            ],
        )
        (world / "entities" / "r.0.0.mca").write_bytes(
            region_of_roots(
                [Tag.compound("", [Tag.list_of(TagKind.COMPOUND, [armor_stand], name="Entities")])],
                compression=1,
            )
        )

        player = Tag.compound(
            "", [Tag.list_of(TagKind.COMPOUND, [legacy_head_item(player_head)], name="Inventory")]
        )
        (world / "playerdata" / "0b7e4a3c-0000-0000-0000-000000000000.dat").write_bytes(
            gzip.compress(encode(player))
        )
        level = Tag.compound(
            "",
            [
                Tag.compound(
                    "Data",
                    [
                        Tag.compound(
                            "Player",
                            [
                                Tag.list_of(
                                    TagKind.COMPOUND,
                                    [component_head_item(level_head)],
                                    name="Inventory",
                                )
                            ],
                        )
                    ],
                )
            ],
        )
        (world / "level.dat").write_bytes(gzip.compress(encode(level)))

        function_dir = world / "datapacks" / "heads" / "data" / "heads" / "function"
        function_dir.mkdir(parents=True)
        (function_dir / "give.mcfunction").write_text(
            "give @p player_head[profile={properties:[{name:\"textures\",value:\"%s\"}]}]\n"
            % pack_head
        )

        with zipfile.ZipFile(world / "datapacks" / "zipped.zip", "w") as archive:
            archive.writestr("pack.mcmeta", '{"pack": {"pack_format": 48}}')
            archive.writestr(
                "data/zipped/loot_table/head.json",
                json.dumps({"functions": [{"profile": "\"%s\"" % zip_head}]}),
            )
        return world

    return _make_world
