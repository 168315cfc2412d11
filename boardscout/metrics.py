"""Prometheus metrics for boardscout."""

import time

from prometheus_client import Counter, Gauge, Histogram, Info

# Application info
app_info = Info("boardscout", "boardscout application info")
app_info.info({"version": "0.1.0", "name": "boardscout"})

# Fetch metrics
page_fetches_total = Counter(
    "page_fetches_total",
    "Total number of network page fetch attempts",
    ["source", "status"],
)

page_fetch_errors_total = Counter(
    "page_fetch_errors_total",
    "Total number of failed page fetches",
    ["source", "error_type"],
)

page_fetch_duration_seconds = Histogram(
    "page_fetch_duration_seconds",
    "Time spent fetching pages over the network",
    ["source"],
    buckets=[0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0],
)

# Cache metrics
http_cache_hits_total = Counter(
    "http_cache_hits_total",
    "HTTP response cache hits",
    ["source"],
)

http_cache_misses_total = Counter(
    "http_cache_misses_total",
    "HTTP response cache misses",
    ["source"],
)

# Block detection
source_blocks_total = Counter(
    "source_blocks_total",
    "Responses that looked like a block page",
    ["source", "block_type"],
)

detail_circuit_open_total = Counter(
    "detail_circuit_open_total",
    "Times a source's detail fetching was stopped for the rest of a run",
    ["source"],
)

# Pipeline metrics
pipeline_runs_total = Counter(
    "pipeline_runs_total",
    "Total number of pipeline runs",
    ["status"],
)

pipeline_run_duration_seconds = Histogram(
    "pipeline_run_duration_seconds",
    "Pipeline run duration",
    buckets=[1, 5, 15, 30, 60, 120, 300, 600, 1200],
)

adapter_errors_total = Counter(
    "adapter_errors_total",
    "Adapter failures recorded in run errors",
    ["source", "kind"],
)

raw_records_total = Counter(
    "raw_records_total",
    "Raw records produced by adapters",
    ["source", "record_type"],
)

rejected_records_total = Counter(
    "rejected_records_total",
    "Raw records dropped by identity resolution or validation",
    ["source", "reason"],
)

# Reconciliation metrics
spec_claims_ingested_total = Counter(
    "spec_claims_ingested_total",
    "Spec claims ingested by outcome",
    ["tier", "outcome"],
)

spec_resolutions_total = Counter(
    "spec_resolutions_total",
    "Resolved (board, field) pairs",
    ["result"],
)

boards_in_catalog = Gauge(
    "boards_in_catalog",
    "Number of boards in the catalog after the last run",
)

# Scheduler metrics
scheduler_runs_total = Counter(
    "scheduler_runs_total",
    "Total number of scheduler runs",
    ["job_type", "status"],
)

scheduler_last_run_timestamp = Gauge(
    "scheduler_last_run_timestamp",
    "Timestamp of last scheduler run",
    ["job_type"],
)


def record_fetch_success(source: str, duration: float):
    """Record a successful network fetch."""
    page_fetches_total.labels(source=source, status="success").inc()
    page_fetch_duration_seconds.labels(source=source).observe(duration)


def record_fetch_error(source: str, error_type: str, duration: float):
    """Record a failed network fetch."""
    page_fetches_total.labels(source=source, status="error").inc()
    page_fetch_errors_total.labels(source=source, error_type=error_type).inc()
    page_fetch_duration_seconds.labels(source=source).observe(duration)


def record_cache_hit(source: str):
    http_cache_hits_total.labels(source=source).inc()


def record_cache_miss(source: str):
    http_cache_misses_total.labels(source=source).inc()


def record_block(source: str, block_type: str):
    source_blocks_total.labels(source=source, block_type=block_type).inc()


def record_pipeline_run(status: str, duration: float):
    """Record a finished pipeline run."""
    pipeline_runs_total.labels(status=status).inc()
    pipeline_run_duration_seconds.observe(duration)


def record_adapter_error(source: str, kind: str):
    adapter_errors_total.labels(source=source, kind=kind).inc()


def record_rejected(source: str, reason: str):
    rejected_records_total.labels(source=source, reason=reason).inc()


def record_claim_ingested(tier: str, outcome: str):
    spec_claims_ingested_total.labels(tier=tier, outcome=outcome).inc()


def record_scheduler_run(job_type: str, success: bool):
    """Record a scheduler job run."""
    status = "success" if success else "error"
    scheduler_runs_total.labels(job_type=job_type, status=status).inc()
    scheduler_last_run_timestamp.labels(job_type=job_type).set(time.time())
