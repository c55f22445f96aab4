import logging

from photo_ingest.errors import (
    AllFilesFailed,
    BackpressureRejected,
    CatalogWriteFailure,
    CorruptImage,
    ErrorType,
    UploadFailure,
    describe_error,
    error_type_of,
    is_retryable,
)
from photo_ingest.events import Event, EventBus, JobCompleted, JobProgress, JobQueued


class TestEventBus:
    def test_subscribe_by_type(self):
        bus = EventBus()
        received = []
        bus.subscribe(JobQueued, received.append)

        bus.publish(JobQueued(job_id="job-1", priority=2, file_count=3))
        bus.publish(JobCompleted(job_id="job-1"))

        assert [type(e) for e in received] == [JobQueued]

    def test_decorator_subscription(self):
        bus = EventBus()
        received = []

        @bus.subscribe(JobCompleted)
        def on_done(event):
            received.append(event.job_id)

        bus.publish(JobCompleted(job_id="job-7"))
        assert received == ["job-7"]

    def test_base_event_receives_everything(self):
        bus = EventBus()
        received = []
        bus.subscribe(Event, received.append)

        bus.publish(JobQueued(job_id="a"))
        bus.publish(JobCompleted(job_id="a"))

        assert len(received) == 2

    def test_unsubscribe(self):
        bus = EventBus()
        received = []
        bus.subscribe(JobQueued, received.append)
        bus.unsubscribe(JobQueued, received.append)

        bus.publish(JobQueued(job_id="a"))
        assert received == []

    def test_failing_subscriber_does_not_block_others(self, caplog):
        bus = EventBus()
        received = []

        def broken(event):
            raise RuntimeError("boom")

        bus.subscribe(JobQueued, broken)
        bus.subscribe(JobQueued, received.append)

        with caplog.at_level(logging.ERROR):
            bus.publish(JobQueued(job_id="a"))

        assert len(received) == 1
        assert "subscriber failed" in caplog.text

    def test_progress_percent(self):
        event = JobProgress(job_id="j", parent_name="p", processed=1, total=3, succeeded=1, failed=0)
        assert event.percent == 33
        empty = JobProgress(job_id="j", parent_name="p", processed=0, total=0, succeeded=0, failed=0)
        assert empty.percent == 100


class TestErrorTaxonomy:
    def test_classification(self):
        assert not is_retryable(CorruptImage("x"))
        assert not is_retryable(AllFilesFailed("x"))
        assert is_retryable(UploadFailure("x"))
        assert is_retryable(CatalogWriteFailure("x"))
        assert is_retryable(TimeoutError("x"))

    def test_error_type_of(self):
        assert error_type_of(CorruptImage()) == ErrorType.PERMANENT
        assert error_type_of(BackpressureRejected()) == ErrorType.TRANSIENT
        assert error_type_of(KeyError("k")) == ErrorType.TRANSIENT

    def test_describe_error(self):
        assert describe_error(CorruptImage("empty file")) == "CORRUPT_IMAGE: empty file"
        assert describe_error(ValueError("bad")) == "ValueError: bad"

    def test_default_message_is_code(self):
        assert str(UploadFailure()) == "UPLOAD_FAILURE: UPLOAD_FAILURE"
        assert UploadFailure().message == "UPLOAD_FAILURE"
