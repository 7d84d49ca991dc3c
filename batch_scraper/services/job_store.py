"""Durable storage for job checkpoints and scraped products.

Two backends are provided:
- InMemoryJobStore: process-local, used in tests and with ``store.backend: memory``
- FileJobStore: JSON documents under ``store.data_dir``

Checkpoint writes replace the previous document atomically, so a crash
never leaves a half-written job on disk.
"""

import asyncio
import copy
import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog

from batch_scraper.core.config import StoreConfig
from batch_scraper.models.job import Job
from batch_scraper.models.product import ProductData
from batch_scraper.services.exceptions import StoreError

logger = structlog.get_logger(__name__)


def _sort_key(job: Job):
    return job.updated_at or job.created_at


def _job_from_dict(data: Dict[str, Any], source: str) -> Job:
    try:
        return Job.from_dict(data)
    except (KeyError, ValueError, TypeError) as e:
        raise StoreError(f"Malformed checkpoint {source}: {e!r}") from e


class JobStore(ABC):
    """Abstract job and product store."""

    @abstractmethod
    async def save_checkpoint(self, job: Job) -> None:
        """Persist the full job state, replacing any previous checkpoint.

        Raises:
            StoreError: If the write failed.
        """
        pass

    @abstractmethod
    async def load_job(self, job_id: str) -> Optional[Job]:
        pass

    @abstractmethod
    async def list_jobs(self, limit: int = 20) -> List[Job]:
        """Return stored jobs, most recently updated first."""
        pass

    @abstractmethod
    async def save_product(self, product: ProductData) -> str:
        """Persist a scraped product.

        Returns:
            Opaque reference recorded on the item as ``result_ref``.
        """
        pass

    async def load_most_recent_paused(self) -> Optional[Job]:
        """Return the most recently updated job that can be picked up again.

        Paused and stopped jobs qualify, as do checkpoints left in an active
        status by a process that died before writing its final state.
        """
        for job in await self.list_jobs(limit=0):
            if job.is_resumable() or job.was_interrupted():
                return job
        return None


class InMemoryJobStore(JobStore):
    """Job store held in process memory.

    Stored jobs are deep copies so later mutation by the controller never
    leaks into what was checkpointed.
    """

    def __init__(self) -> None:
        self._jobs: Dict[str, Job] = {}
        self._products: Dict[str, Dict[str, Any]] = {}
        self.checkpoint_count = 0

    async def save_checkpoint(self, job: Job) -> None:
        self._jobs[job.job_id] = copy.deepcopy(job)
        self.checkpoint_count += 1

    async def load_job(self, job_id: str) -> Optional[Job]:
        job = self._jobs.get(job_id)
        return copy.deepcopy(job) if job else None

    async def list_jobs(self, limit: int = 20) -> List[Job]:
        jobs = sorted(self._jobs.values(), key=_sort_key, reverse=True)
        if limit > 0:
            jobs = jobs[:limit]
        return [copy.deepcopy(job) for job in jobs]

    async def save_product(self, product: ProductData) -> str:
        ref = f"memory://products/{product.asin}"
        self._products[ref] = product.to_dict()
        return ref

    def get_product(self, ref: str) -> Optional[Dict[str, Any]]:
        return self._products.get(ref)


class FileJobStore(JobStore):
    """Job store backed by JSON files.

    Layout:
        <data_dir>/jobs/<job_id>.json
        <data_dir>/products/<asin>.json
    """

    def __init__(self, data_dir: str) -> None:
        self.data_dir = Path(data_dir)
        self.jobs_dir = self.data_dir / "jobs"
        self.products_dir = self.data_dir / "products"

    def initialize(self) -> None:
        """Create the data directories.

        Raises:
            StoreError: If the directories cannot be created.
        """
        try:
            self.jobs_dir.mkdir(parents=True, exist_ok=True)
            self.products_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError(f"Failed to initialize data directory: {e}") from e

        logger.info("job_store_initialized", data_dir=str(self.data_dir))

    async def save_checkpoint(self, job: Job) -> None:
        path = self.jobs_dir / f"{job.job_id}.json"
        await asyncio.to_thread(self._write_json, path, job.to_dict())

    async def load_job(self, job_id: str) -> Optional[Job]:
        path = self.jobs_dir / f"{job_id}.json"
        data = await asyncio.to_thread(self._read_json, path)
        return _job_from_dict(data, str(path)) if data is not None else None

    async def list_jobs(self, limit: int = 20) -> List[Job]:
        jobs = await asyncio.to_thread(self._read_all_jobs)
        jobs.sort(key=_sort_key, reverse=True)
        if limit > 0:
            jobs = jobs[:limit]
        return jobs

    async def save_product(self, product: ProductData) -> str:
        path = self.products_dir / f"{product.asin}.json"
        await asyncio.to_thread(self._write_json, path, product.to_dict())
        return str(path)

    def _read_all_jobs(self) -> List[Job]:
        jobs: List[Job] = []
        if not self.jobs_dir.exists():
            return jobs

        for path in self.jobs_dir.glob("*.json"):
            try:
                data = self._read_json(path)
                if data is not None:
                    jobs.append(_job_from_dict(data, str(path)))
            except StoreError as e:
                logger.warning("checkpoint_unreadable", path=str(path), error=str(e))
        return jobs

    def _read_json(self, path: Path) -> Optional[Dict[str, Any]]:
        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            raise StoreError(f"Failed to read {path}: {e}") from e

    def _write_json(self, path: Path, data: Dict[str, Any]) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, ensure_ascii=False, indent=2)
                os.replace(tmp_path, path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise StoreError(f"Failed to write {path}: {e}") from e


def create_job_store(config: StoreConfig) -> JobStore:
    """Build the job store selected by configuration.

    Args:
        config: Store configuration section.

    Returns:
        Ready-to-use JobStore.
    """
    if config.backend == "memory":
        logger.info("job_store_selected", backend="memory")
        return InMemoryJobStore()

    store = FileJobStore(config.data_dir)
    store.initialize()
    logger.info("job_store_selected", backend="file", data_dir=config.data_dir)
    return store
