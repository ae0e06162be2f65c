"""
File discovery inside a Minecraft world directory.

Data packs are either plain directories or zip archives; both are exposed
through the same read-only walk/read_text interface so the caller never
needs to know which one it is looking at.
"""

import logging
import zipfile
import zlib
from pathlib import Path
from typing import Iterator, List, Union

logger = logging.getLogger(__name__)

DATA_PACK_SUFFIXES = (".json", ".mcfunction")


class DirectoryPack:
    """A data pack stored as a plain directory."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def walk(self) -> Iterator[str]:
        """Yield the relative POSIX path of every regular file in the pack."""
        for path in sorted(self.root.rglob("*")):
            if path.is_file():
                yield path.relative_to(self.root).as_posix()

    def read_text(self, name: str) -> str:
        return (self.root / name).read_bytes().decode("utf-8", errors="replace")

    def close(self) -> None:
        pass

    def __enter__(self) -> "DirectoryPack":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __str__(self) -> str:
        return str(self.root)


class ZipPack:
    """A data pack stored as a zip archive, read without extracting it."""

    def __init__(self, archive: Path):
        self.archive = Path(archive)
        self._zip = zipfile.ZipFile(self.archive)

    def walk(self) -> Iterator[str]:
        for info in self._zip.infolist():
            if not info.is_dir():
                yield info.filename

    def read_text(self, name: str) -> str:
        return self._zip.read(name).decode("utf-8", errors="replace")

    def close(self) -> None:
        self._zip.close()

    def __enter__(self) -> "ZipPack":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __str__(self) -> str:
        return str(self.archive)


DataPack = Union[DirectoryPack, ZipPack]


def open_data_pack(path: Union[str, Path]) -> DataPack:
    """
    Open a data pack directory or zip archive.

    Raises:
        ValueError: If the path is neither a directory nor a .zip file
        OSError, zipfile.BadZipFile: If the archive can't be opened
    """
    path = Path(path)
    if path.is_dir():
        return DirectoryPack(path)
    if path.is_file() and path.suffix == ".zip":
        return ZipPack(path)
    raise ValueError(f"Not a data pack: {path}")


def _list_files(directory: Path, suffix: str) -> List[Path]:
    if not directory.is_dir():
        return []
    return sorted(p for p in directory.iterdir() if p.is_file() and p.name.endswith(suffix))


def gather_mca(world_path: Path, include_entities: bool, include_region: bool) -> List[Path]:
    """Collect .mca files from the entities/ and region/ folders."""
    mca_paths: List[Path] = []
    if include_entities:
        mca_paths.extend(_list_files(world_path / "entities", ".mca"))
    if include_region:
        mca_paths.extend(_list_files(world_path / "region", ".mca"))
    return mca_paths


def gather_player_data(world_path: Path) -> List[Path]:
    """Collect playerdata/*.dat and level.dat."""
    dat_paths = _list_files(world_path / "playerdata", ".dat")
    level_dat = world_path / "level.dat"
    if level_dat.is_file():
        dat_paths.append(level_dat)
    return dat_paths


def gather_data_packs(world_path: Path) -> List[Path]:
    """Collect data pack directories and zip archives under datapacks/."""
    data_packs_path = world_path / "datapacks"
    if not data_packs_path.is_dir():
        return []
    return sorted(
        p
        for p in data_packs_path.iterdir()
        if p.is_dir() or (p.is_file() and p.suffix == ".zip")
    )


def iter_data_pack_texts(pack: DataPack) -> Iterator[str]:
    """
    Yield the contents of every .json and .mcfunction file in a data pack.

    Files that can't be read are logged and skipped. Besides I/O and corrupt
    data errors, zipfile raises RuntimeError for encrypted entries and
    NotImplementedError for compression methods or flags it doesn't support.
    """
    for name in pack.walk():
        if not name.endswith(DATA_PACK_SUFFIXES):
            continue
        try:
            yield pack.read_text(name)
        except (OSError, zipfile.BadZipFile, zlib.error, RuntimeError, NotImplementedError) as e:
            logger.warning(f"Unable to read {name} in {pack}: {e}")
