"""Bounded-growth pruning for queue and result files."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from queuebridge.core.queue_records import is_processed, record_time

DEFAULT_MAX_PROCESSED_REQUESTS = 100
DEFAULT_PROCESSED_MAX_AGE_SECONDS = 3600
DEFAULT_MAX_RESULTS = 100


@dataclass(frozen=True)
class RetentionPolicy:
    """How many processed requests and results survive each pass.

    ``processed_max_age_seconds`` of 0 disables the age rule.
    """
    max_processed_requests: int = DEFAULT_MAX_PROCESSED_REQUESTS
    processed_max_age_seconds: int = DEFAULT_PROCESSED_MAX_AGE_SECONDS
    max_results: int = DEFAULT_MAX_RESULTS

    @classmethod
    def from_config(cls, cfg):
        return cls(
            max_processed_requests=cfg.get_int("RETAIN_PROCESSED_REQUESTS", DEFAULT_MAX_PROCESSED_REQUESTS, minimum=0),
            processed_max_age_seconds=cfg.get_int("RETAIN_PROCESSED_MAX_AGE_SECONDS", DEFAULT_PROCESSED_MAX_AGE_SECONDS, minimum=0),
            max_results=cfg.get_int("RETAIN_RESULTS", DEFAULT_MAX_RESULTS, minimum=1),
        )


def prune_requests(records, policy, now=None):
    """Drop old processed requests; unprocessed records are always kept.

    Processed records past the age limit go first, then the oldest
    processed records beyond ``max_processed_requests``. Order is preserved.
    """
    now = now or datetime.now(timezone.utc)
    cutoff = None
    if policy.processed_max_age_seconds > 0:
        cutoff = now - timedelta(seconds=policy.processed_max_age_seconds)

    keep_flags = []
    processed_indexes = []
    for idx, record in enumerate(records):
        if not is_processed(record):
            keep_flags.append(True)
            continue
        stamp = record_time(record, "processedAt", "requestedAt")
        if cutoff is not None and stamp is not None and stamp < cutoff:
            keep_flags.append(False)
            continue
        keep_flags.append(True)
        processed_indexes.append(idx)

    overflow = len(processed_indexes) - max(0, policy.max_processed_requests)
    if overflow > 0:
        # File order is append order, so the first entries are the oldest.
        for idx in processed_indexes[:overflow]:
            keep_flags[idx] = False

    return [record for record, keep in zip(records, keep_flags) if keep]


def prune_results(records, policy):
    """Keep the newest ``max_results`` result records (oldest-first removal)."""
    limit = max(1, policy.max_results)
    if len(records) <= limit:
        return list(records)
    return list(records[-limit:])
