import pytest
from conftest import file_item, payload
from pydantic import ValidationError

from photo_ingest.models import QueueConfig, StorageConfig, VariantSpec
from photo_ingest.queue.models import CatalogRecord, JobDescriptor, JobStatus, SessionStats


class TestJobDescriptor:
    def test_defaults(self):
        job = JobDescriptor(payload=payload(files=[file_item(), file_item("b.jpg")]))

        assert job.id.startswith("job-")
        assert job.status == JobStatus.WAITING
        assert job.attempts == 0
        assert job.file_count == 2
        assert not job.is_terminal

    def test_release_files_keeps_count(self):
        job = JobDescriptor(payload=payload(files=[file_item()]))
        job.release_files()

        assert job.payload.files == []
        assert job.file_count == 1

    def test_summary_has_no_bytes(self):
        job = JobDescriptor(payload=payload(parent_name="Album", files=[file_item()], session_id="s"))
        summary = job.summary()

        assert summary["parent_name"] == "Album"
        assert summary["session_id"] == "s"
        assert "files" not in summary
        assert "outcome" not in summary

    def test_file_bytes_hidden_from_repr(self):
        assert "data=" not in repr(file_item())


class TestRecordsAndStats:
    def test_record_requires_positive_dimensions(self):
        with pytest.raises(ValidationError):
            CatalogRecord(
                owner_id="u", parent_id="p", filename="f.jpg", mime_type="image/jpeg",
                size=1, width=0, height=10, storage_url="x",
            )

    def test_session_progress_rounds(self):
        stats = SessionStats(session_id="s", completed=1, failed=1, waiting=1, total_jobs=3)

        assert stats.progress == 33
        assert not stats.is_processing_complete


class TestConfigModels:
    def test_variant_quality_bounds(self):
        with pytest.raises(ValidationError):
            VariantSpec(role="medium", max_width=100, max_height=100, quality=0)

    def test_unknown_retry_policy_rejected(self):
        with pytest.raises(ValidationError):
            QueueConfig(retry_policy="sometimes")

    def test_unknown_storage_backend_rejected(self):
        with pytest.raises(ValidationError):
            StorageConfig(backend="ftp")
