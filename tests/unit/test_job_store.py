"""Tests for job checkpoint stores."""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from batch_scraper.core.config import StoreConfig
from batch_scraper.models import Item, ItemStatus, Job, JobStatus, ProductData
from batch_scraper.services.exceptions import StoreError
from batch_scraper.services.job_store import (
    FileJobStore,
    InMemoryJobStore,
    create_job_store,
)

BASE_TIME = datetime(2025, 1, 1, tzinfo=timezone.utc)


def _job(job_id: str, status: JobStatus = JobStatus.RUNNING, minutes: int = 0) -> Job:
    return Job(
        job_id=job_id,
        status=status,
        items=[Item(asin="B000000001"), Item(asin="B000000002", status=ItemStatus.SUCCESS)],
        batch_size=2,
        created_at=BASE_TIME,
        updated_at=BASE_TIME + timedelta(minutes=minutes),
    )


@pytest.fixture
def file_store(tmp_path: Path) -> FileJobStore:
    store = FileJobStore(str(tmp_path))
    store.initialize()
    return store


class TestInMemoryJobStore:
    """Tests for the in-memory store."""

    @pytest.mark.asyncio
    async def test_checkpoint_is_a_copy(self) -> None:
        store = InMemoryJobStore()
        job = _job("job-1")

        await store.save_checkpoint(job)
        job.items[0].status = ItemStatus.FAILED

        loaded = await store.load_job("job-1")
        assert loaded.items[0].status == ItemStatus.PENDING
        assert store.checkpoint_count == 1

    @pytest.mark.asyncio
    async def test_load_missing_job(self) -> None:
        assert await InMemoryJobStore().load_job("missing") is None

    @pytest.mark.asyncio
    async def test_list_most_recent_first(self) -> None:
        store = InMemoryJobStore()
        await store.save_checkpoint(_job("old", minutes=1))
        await store.save_checkpoint(_job("new", minutes=5))
        await store.save_checkpoint(_job("mid", minutes=3))

        jobs = await store.list_jobs()

        assert [job.job_id for job in jobs] == ["new", "mid", "old"]
        assert len(await store.list_jobs(limit=1)) == 1

    @pytest.mark.asyncio
    async def test_most_recent_paused(self) -> None:
        store = InMemoryJobStore()
        await store.save_checkpoint(_job("paused-old", JobStatus.PAUSED, minutes=1))
        await store.save_checkpoint(_job("stopped-new", JobStatus.STOPPED, minutes=2))
        await store.save_checkpoint(_job("done", JobStatus.COMPLETED, minutes=3))

        job = await store.load_most_recent_paused()

        assert job.job_id == "stopped-new"

    @pytest.mark.asyncio
    async def test_most_recent_paused_includes_interrupted(self) -> None:
        store = InMemoryJobStore()
        await store.save_checkpoint(_job("stopped-old", JobStatus.STOPPED, minutes=1))
        await store.save_checkpoint(_job("crashed", JobStatus.RUNNING, minutes=2))

        job = await store.load_most_recent_paused()

        assert job.job_id == "crashed"
        assert job.was_interrupted()

    @pytest.mark.asyncio
    async def test_most_recent_paused_none(self) -> None:
        store = InMemoryJobStore()
        await store.save_checkpoint(_job("done", JobStatus.COMPLETED))

        assert await store.load_most_recent_paused() is None

    @pytest.mark.asyncio
    async def test_save_product(self) -> None:
        store = InMemoryJobStore()

        ref = await store.save_product(ProductData(asin="B000000001", title="Widget"))

        assert ref == "memory://products/B000000001"
        assert store.get_product(ref)["title"] == "Widget"


class TestFileJobStore:
    """Tests for the JSON file store."""

    @pytest.mark.asyncio
    async def test_checkpoint_round_trip(self, file_store: FileJobStore) -> None:
        job = _job("job-1", JobStatus.PAUSED)

        await file_store.save_checkpoint(job)
        loaded = await file_store.load_job("job-1")

        assert loaded.status == JobStatus.PAUSED
        assert loaded.counts == job.counts
        assert loaded.updated_at == job.updated_at

    @pytest.mark.asyncio
    async def test_checkpoint_replaces_previous(self, file_store: FileJobStore) -> None:
        job = _job("job-1")
        await file_store.save_checkpoint(job)

        job.status = JobStatus.STOPPED
        await file_store.save_checkpoint(job)

        files = list(file_store.jobs_dir.iterdir())
        assert [f.name for f in files] == ["job-1.json"]
        data = json.loads(files[0].read_text())
        assert data["status"] == "stopped"

    @pytest.mark.asyncio
    async def test_load_missing_job(self, file_store: FileJobStore) -> None:
        assert await file_store.load_job("missing") is None

    @pytest.mark.asyncio
    async def test_corrupt_checkpoint_raises_on_load(self, file_store: FileJobStore) -> None:
        (file_store.jobs_dir / "bad.json").write_text("{not json")

        with pytest.raises(StoreError):
            await file_store.load_job("bad")

    @pytest.mark.asyncio
    async def test_list_skips_corrupt_checkpoint(self, file_store: FileJobStore) -> None:
        await file_store.save_checkpoint(_job("good", JobStatus.PAUSED))
        (file_store.jobs_dir / "bad.json").write_text("{not json")

        jobs = await file_store.list_jobs()

        assert [job.job_id for job in jobs] == ["good"]
        assert (await file_store.load_most_recent_paused()).job_id == "good"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            {"status": "paused"},
            {"job_id": "bad", "status": "exploded"},
            {"job_id": "bad", "status": "paused", "items": ["B000000001"]},
            ["not", "a", "job"],
        ],
    )
    async def test_malformed_checkpoint_raises_store_error(
        self, file_store: FileJobStore, payload
    ) -> None:
        (file_store.jobs_dir / "bad.json").write_text(json.dumps(payload))

        with pytest.raises(StoreError, match="Malformed checkpoint"):
            await file_store.load_job("bad")

    @pytest.mark.asyncio
    async def test_list_skips_malformed_checkpoint(self, file_store: FileJobStore) -> None:
        await file_store.save_checkpoint(_job("good", JobStatus.STOPPED))
        (file_store.jobs_dir / "bad.json").write_text(
            json.dumps({"job_id": "bad", "status": "exploded"})
        )

        jobs = await file_store.list_jobs()

        assert [job.job_id for job in jobs] == ["good"]
        assert (await file_store.load_most_recent_paused()).job_id == "good"

    @pytest.mark.asyncio
    async def test_save_product_writes_file(self, file_store: FileJobStore) -> None:
        ref = await file_store.save_product(ProductData(asin="B000000001", title="Widget"))

        path = Path(ref)
        assert path.parent == file_store.products_dir
        assert json.loads(path.read_text())["asin"] == "B000000001"

    @pytest.mark.asyncio
    async def test_write_failure_raises_store_error(self, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        store = FileJobStore(str(blocker))

        with pytest.raises(StoreError, match="Failed to write"):
            await store.save_checkpoint(_job("job-1"))

    def test_initialize_failure(self, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")

        with pytest.raises(StoreError, match="Failed to initialize"):
            FileJobStore(str(blocker)).initialize()


class TestCreateJobStore:
    """Tests for the store factory."""

    def test_memory_backend(self) -> None:
        store = create_job_store(StoreConfig(backend="memory"))

        assert isinstance(store, InMemoryJobStore)

    def test_file_backend_creates_dirs(self, tmp_path: Path) -> None:
        data_dir = tmp_path / "data"

        store = create_job_store(StoreConfig(backend="file", data_dir=str(data_dir)))

        assert isinstance(store, FileJobStore)
        assert (data_dir / "jobs").is_dir()
        assert (data_dir / "products").is_dir()
