"""
Head extraction across whole Minecraft worlds.

This module provides the HeadExtractor class that finds every world file that
may hold player heads, scans region and player data files in a worker pool,
scans data packs on the calling thread and merges the validated profiles into
a single set.
"""

import logging
import multiprocessing
import multiprocessing.pool
import queue
import threading
import time
import zipfile
import zlib
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Union

import psutil
from tqdm import tqdm

from headextractor import LOG_FORMAT
from headextractor.config import load_extraction_config

from .errors import ExtractionError, NBTDecodeError
from .nbt import MAX_DEPTH, decode_bytes, read_nbt_file
from .region import read_region
from .scanner import DEFAULT_MAX_NODES, TagTreeScanner, TextScanner
from .validator import ProfileValidator
from .world_fs import (
    gather_data_packs,
    gather_mca,
    gather_player_data,
    iter_data_pack_texts,
    open_data_pack,
)

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

# Seconds between checks while waiting for a queued unit to start
START_POLL_INTERVAL = 0.1

# Per worker thread; pool processes run their tasks on the thread that ran the initializer
_worker_state = threading.local()


def available_cpu_count() -> Optional[int]:
    """CPUs this process may run on, or the logical CPU count where affinity is unsupported."""
    process = psutil.Process()
    if hasattr(process, "cpu_affinity"):
        return len(process.cpu_affinity())
    return psutil.cpu_count()


def default_worker_count() -> int:
    """One less than the number of available CPUs, but at least one."""
    return max(1, (available_cpu_count() or 1) - 1)


class HeadCollector:
    """Emit callback that keeps candidates passing validation."""

    def __init__(self, validator: Optional[ProfileValidator] = None):
        self.validator = validator if validator is not None else ProfileValidator()
        self.heads: Set[str] = set()

    def __call__(self, candidate: str) -> None:
        if candidate not in self.heads and self.validator.validate(candidate):
            self.heads.add(candidate)


def scan_file(
    path: PathLike,
    max_depth: int = MAX_DEPTH,
    max_nodes: int = DEFAULT_MAX_NODES,
    timeout: Optional[float] = None,
) -> Set[str]:
    """
    Find validated heads in one region (.mca) or NBT (.dat) file.

    Failures are logged and the heads found before the failure are returned;
    a chunk that fails to decode only skips that chunk.

    Args:
        path: Path to the file
        max_depth: NBT nesting limit
        max_nodes: Tag limit per tag tree
        timeout: Seconds before a region file is abandoned, checked between chunks

    Returns:
        Set of validated base64 profiles, empty if the file was abandoned
    """
    path = Path(path)
    collector = HeadCollector()
    scanner = TagTreeScanner(max_nodes=max_nodes)
    deadline = time.monotonic() + timeout if timeout is not None else None

    try:
        if path.suffix == ".mca":
            for chunk in read_region(path):
                if deadline is not None and time.monotonic() >= deadline:
                    logger.warning(f"Stopped scanning {path} after {timeout}s")
                    return set()
                try:
                    root = decode_bytes(chunk.data, max_depth)
                except NBTDecodeError as e:
                    logger.warning(
                        f"Failed to decode chunk ({chunk.x}, {chunk.z}) in {path}: {e}"
                    )
                    continue
                scanner.scan(root, collector)
        else:
            scanner.scan(read_nbt_file(path, max_depth), collector)
    except (OSError, EOFError, zlib.error, ExtractionError) as e:
        logger.warning(f"Unable to fully process {path}: {e}")

    logger.debug(f"Found {len(collector.heads)} heads in {path}")
    return collector.heads


def _init_worker(started, log_level: Optional[int]) -> None:
    """
    Pool initializer.

    Args:
        started: Queue that receives a unit's index when the unit starts, or None
        log_level: Root log level for worker processes, None for threads
    """
    _worker_state.started = started
    # Spawned processes start without the parent's handlers; no-op when forked
    if log_level is not None:
        logging.basicConfig(level=log_level, format=LOG_FORMAT)


def _scan_unit(
    index: int, path: str, max_depth: int, max_nodes: int, timeout: Optional[float]
) -> Set[str]:
    started = getattr(_worker_state, "started", None)
    if started is not None:
        started.put(index)
    return scan_file(path, max_depth, max_nodes, timeout)


class HeadExtractor:
    """
    Extracts player head profiles from Minecraft worlds.

    Region and player data files are independent, so each one is a single
    unit of work for a bounded pool. Workers return their own result sets and
    only this class ever writes to the combined set.
    """

    def __init__(self, config_path: Optional[Path] = None, num_workers: Optional[int] = None):
        """
        Initialize HeadExtractor with configuration.

        Args:
            config_path: Path to config.yaml file, defaults to built-in settings
            num_workers: Worker count, overrides the config file
        """
        extraction_config = load_extraction_config(config_path)

        if num_workers is None:
            num_workers = extraction_config["num_workers"]
        self.num_workers = max(1, num_workers) if num_workers else default_worker_count()

        self.pool_type = extraction_config["pool"]
        self.file_timeout = extraction_config["file_timeout"]
        self.max_depth = extraction_config["max_depth"]
        self.max_nodes = extraction_config["max_nodes"]
        self.show_progress = extraction_config["show_progress"]

        self.validator = ProfileValidator()
        self.text_scanner = TextScanner()

        logger.debug(
            f"HeadExtractor initialized with {self.num_workers} {self.pool_type} workers"
        )

    def _create_pool(self, started) -> multiprocessing.pool.Pool:
        if self.pool_type == "thread":
            return multiprocessing.pool.ThreadPool(
                processes=self.num_workers, initializer=_init_worker, initargs=(started, None)
            )
        log_level = logging.getLogger().getEffectiveLevel()
        return multiprocessing.Pool(
            processes=self.num_workers, initializer=_init_worker, initargs=(started, log_level)
        )

    def _create_start_queue(self):
        """Queue of started unit indices, only needed to time units."""
        if self.file_timeout is None:
            return None
        if self.pool_type == "thread":
            return queue.Queue()
        return multiprocessing.Queue()

    def _wait_for_unit(
        self,
        index: int,
        result: multiprocessing.pool.AsyncResult,
        started,
        start_times: Dict[int, float],
    ) -> Set[str]:
        """
        Wait for one unit's result.

        A unit's timeout runs from the moment a worker picks it up, so units
        queued behind a slow one keep their full time budget.

        Raises:
            multiprocessing.TimeoutError: If the unit ran longer than file_timeout
        """
        if started is None:
            return result.get()
        while index not in start_times:
            # A process's start notice can arrive after its result
            if result.ready():
                return result.get()
            try:
                start_times[started.get(timeout=START_POLL_INTERVAL)] = time.monotonic()
            except queue.Empty:
                continue
        remaining = start_times[index] + self.file_timeout - time.monotonic()
        return result.get(timeout=max(0.0, remaining))

    def scan_data_pack(self, pack_path: PathLike) -> Set[str]:
        """
        Find validated heads in the .json and .mcfunction files of a data pack.

        Args:
            pack_path: Data pack directory or .zip archive

        Returns:
            Set of validated base64 profiles
        """
        collector = HeadCollector(self.validator)
        try:
            with open_data_pack(pack_path) as pack:
                for text in iter_data_pack_texts(pack):
                    self.text_scanner.scan(text, collector)
        except (OSError, ValueError, zipfile.BadZipFile) as e:
            logger.warning(f"Unable to fully process {pack_path}: {e}")
        return collector.heads

    def extract_heads(
        self,
        world_paths: Iterable[PathLike],
        include_entities: bool = True,
        include_region: bool = True,
        include_player_data: bool = True,
        include_data_packs: bool = True,
    ) -> Set[str]:
        """
        Extract player head textures from worlds.

        Args:
            world_paths: Paths to the worlds to scan
            include_entities: Whether to scan heads carried by non-player entities
            include_region: Whether to scan heads placed in the world or in containers
            include_player_data: Whether to scan heads carried by players
            include_data_packs: Whether to scan .json and .mcfunction files in data packs

        Returns:
            Set of the base64-encoded player profiles in the given worlds
        """
        heads: Set[str] = set()
        if not (include_entities or include_region or include_player_data or include_data_packs):
            return heads

        files: List[Path] = []
        data_packs: List[Path] = []
        for world_path in world_paths:
            world_path = Path(world_path)
            try:
                if include_entities or include_region:
                    files.extend(gather_mca(world_path, include_entities, include_region))
                if include_player_data:
                    files.extend(gather_player_data(world_path))
                if include_data_packs:
                    data_packs.extend(gather_data_packs(world_path))
            except OSError as e:
                logger.warning(f"Unable to list files in {world_path}: {e}")

        logger.info(
            f"Scanning {len(files)} world files and {len(data_packs)} data packs "
            f"with {self.num_workers} workers"
        )

        started = self._create_start_queue()
        start_times: Dict[int, float] = {}
        with self._create_pool(started) as pool:
            pending = [
                (
                    path,
                    pool.apply_async(
                        _scan_unit,
                        (index, str(path), self.max_depth, self.max_nodes, self.file_timeout),
                    ),
                )
                for index, path in enumerate(files)
            ]

            # Data packs are cheap text scans; do them while the pool works
            for pack_path in data_packs:
                heads.update(self.scan_data_pack(pack_path))

            with tqdm(
                total=len(pending),
                desc="Scanning world files",
                unit="file",
                disable=not self.show_progress,
            ) as progress:
                for index, (path, result) in enumerate(pending):
                    try:
                        heads.update(self._wait_for_unit(index, result, started, start_times))
                    except multiprocessing.TimeoutError:
                        logger.warning(f"Gave up on {path} after {self.file_timeout}s")
                    except Exception as e:
                        logger.error(f"Worker failed while processing {path}: {e}")
                    progress.update(1)

        logger.info(f"Found {len(heads)} unique heads")
        return heads


def extract_heads(
    world_paths: Iterable[PathLike],
    include_entities: bool = True,
    include_region: bool = True,
    include_player_data: bool = True,
    include_data_packs: bool = True,
    num_workers: Optional[int] = None,
    config_path: Optional[Path] = None,
) -> Set[str]:
    """Convenience wrapper around HeadExtractor.extract_heads."""
    extractor = HeadExtractor(config_path=config_path, num_workers=num_workers)
    return extractor.extract_heads(
        world_paths,
        include_entities=include_entities,
        include_region=include_region,
        include_player_data=include_player_data,
        include_data_packs=include_data_packs,
    )
