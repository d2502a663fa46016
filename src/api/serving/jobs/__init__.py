"""Background jobs of the serving layer."""

from src.api.serving.jobs.scheduled_batch import ScheduledBatchRunner, load_test_records

__all__ = ["ScheduledBatchRunner", "load_test_records"]
