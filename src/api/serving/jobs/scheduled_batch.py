"""
Scheduled Batch Replay
======================

Periodically loads a few records from a headerless delimited test file and
pushes them through the full routing, preprocessing and inference cycle,
logging one score per sample. Used to watch model behaviour on a fixed input
set in a production-like environment.

Overlapping runs are skipped, not queued. Failures are logged and the next
tick runs normally.
"""

import csv
import time
import logging
import threading
from typing import Dict, List, Optional, Sequence

import pandas as pd

from src.api.errors import APIError
from src.api.serving.config import ScheduleConfig
from src.api.serving.scoring.score_pipeline import BatchCoordinator, BatchScoringResult
from src.api.serving.telemetry.metrics import MetricsRecorder

logger = logging.getLogger(__name__)


# Criteo display-ads layout: 13 integer features then 26 hashed categoricals
DEFAULT_NUMERIC_COLUMNS = [f"I{i}" for i in range(1, 14)]
DEFAULT_CATEGORICAL_COLUMNS = [f"C{i}" for i in range(1, 27)]
DEFAULT_COLUMNS = DEFAULT_NUMERIC_COLUMNS + DEFAULT_CATEGORICAL_COLUMNS


def load_test_records(
    path: str,
    columns: Optional[Sequence[str]] = None,
    separator: str = "\t",
    max_records: int = 20,
    sample_id_field: str = "sampleId",
) -> List[Dict[str, str]]:
    """
    Read up to max_records rows of a headerless delimited file.

    Fields are taken positionally and kept as raw strings. Rows shorter than
    `columns` are padded with blanks; extra trailing fields are ignored.
    Each record gets a `sample_<n>` id (1-based) under sample_id_field.
    """
    columns = list(columns or DEFAULT_COLUMNS)
    try:
        df = pd.read_csv(
            path,
            sep=separator,
            header=None,
            names=list(range(len(columns))),
            index_col=False,
            usecols=range(len(columns)),
            dtype=str,
            keep_default_na=False,
            quoting=csv.QUOTE_NONE,
            nrows=max_records,
            encoding="utf-8",
        )
    except pd.errors.EmptyDataError:
        logger.info(f"Test data file is empty: {path}")
        return []

    df = df.fillna("")
    df.columns = columns

    records = df.to_dict(orient="records")
    for n, record in enumerate(records, start=1):
        record[sample_id_field] = f"sample_{n}"

    logger.info(f"Loaded test data: {len(records)} samples")
    return records


class ScheduledBatchRunner:
    """
    Replays the configured test file through a BatchCoordinator.

    Usage:
        runner = ScheduledBatchRunner(coordinator, config.schedule)
        runner.start()
        ...
        runner.stop()
    """

    def __init__(
        self,
        coordinator: BatchCoordinator,
        schedule: ScheduleConfig,
        metrics: Optional[MetricsRecorder] = None,
    ):
        self.coordinator = coordinator
        self.schedule = schedule
        self.metrics = metrics or MetricsRecorder(enabled=False)
        self._run_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> Optional[BatchScoringResult]:
        """
        One replay cycle.

        Returns None when skipped (another run in progress), when nothing was
        loaded, or on failure.
        """
        if not self._run_lock.acquire(blocking=False):
            logger.warning("Previous scheduled prediction still running, skipping this tick")
            self.metrics.record_scheduled_run("skipped")
            return None

        start = time.time()
        logger.info("=== Scheduled prediction task started ===")
        try:
            try:
                records = load_test_records(
                    self.schedule.data_path,
                    columns=self.schedule.columns,
                    separator=self.schedule.separator,
                    max_records=self.schedule.max_records,
                    sample_id_field=self.schedule.sample_id_field,
                )
            except (OSError, ValueError, pd.errors.ParserError) as e:
                logger.error(f"Test data loading failed: {self.schedule.data_path}: {e}")
                self.metrics.record_scheduled_run("load_error")
                return None

            if not records:
                logger.warning("No test data loaded, skipping current prediction task")
                self.metrics.record_scheduled_run("empty")
                return None

            try:
                result = self.coordinator.score_with_report(records)
            except APIError as e:
                logger.error(f"Scheduled prediction failed: {e.error_code} - {e.message}")
                self.metrics.record_scheduled_run("error")
                return None

            self._log_results(records, result)
            self.metrics.record_scheduled_run("degraded" if result.degraded else "success")
            return result
        finally:
            logger.info(f"=== Scheduled prediction task finished in {(time.time() - start) * 1000:.0f}ms ===")
            self._run_lock.release()

    def _log_results(self, records: List[Dict[str, str]], result: BatchScoringResult):
        id_field = self.schedule.sample_id_field
        logger.info(f"Prediction results (total {len(records)} samples):")
        for i, (record, score) in enumerate(zip(records, result.scores)):
            sample_id = record.get(id_field, f"unknown_{i}")
            logger.info(f"Sample ID: {sample_id} | CTR Probability: {float(score):.6f}")

    def _loop(self):
        interval = self.schedule.interval_seconds
        while not self._stop_event.wait(interval):
            try:
                self.run_once()
            except Exception as e:
                logger.exception(f"Unexpected error in scheduled prediction task: {e}")

    def start(self):
        if self.running:
            return
        if not self.schedule.data_path:
            logger.warning("Scheduled batch enabled without data_path, not starting")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="scheduled-batch", daemon=True)
        self._thread.start()
        logger.info(
            f"Scheduled batch started: every {self.schedule.interval_seconds}s "
            f"from {self.schedule.data_path} (max {self.schedule.max_records} records)"
        )

    def stop(self, timeout: float = 5.0):
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
            logger.info("Scheduled batch stopped")
