"""Unit tests for the scheduler."""

from unittest.mock import MagicMock, patch

from crm_intake import scheduler


class TestScheduler:
    """Tests for scheduler lifecycle and the intake job."""

    def test_start_and_stop(self):
        """Test the scheduler starts once and stops cleanly."""
        with patch.object(scheduler, "BackgroundScheduler") as scheduler_cls:
            first = scheduler.start_scheduler(interval_minutes=10)
            second = scheduler.start_scheduler()

            assert first is second
            scheduler_cls.return_value.add_job.assert_called_once()
            scheduler_cls.return_value.start.assert_called_once()
            assert scheduler.get_scheduler() is first

            scheduler.stop_scheduler()
            scheduler_cls.return_value.shutdown.assert_called_once_with(wait=False)
            assert scheduler.get_scheduler() is None

    def test_intake_job_survives_fetch_failure(self):
        """Test a failed fetch still lets the batch run."""
        fetcher = MagicMock()
        fetcher.return_value.fetch_and_store.side_effect = OSError("imap down")
        pipeline = MagicMock()
        pipeline.return_value.process_unprocessed_batch.return_value = {
            "processed": 1, "skipped": 0, "errors": 0,
        }

        with patch("crm_intake.processors.fetch.MailFetcher", fetcher), \
                patch("crm_intake.processors.pipeline.MessagePipeline", pipeline):
            scheduler.intake_job()

        pipeline.return_value.process_unprocessed_batch.assert_called_once()
