"""Consumer side of the queue protocol: the reconciliation pass and its threads."""

from __future__ import annotations

import threading
from datetime import datetime, timezone

from queuebridge.core.errors import StorageError
from queuebridge.core.queue_records import (
    STATUS_FAILED,
    STATUS_PENDING,
    STATUS_SUCCESS,
    build_result_record,
    is_processed,
    mark_processed,
    new_request_id,
    normalize_status,
    request_id_of,
    utc_now_iso,
)
from queuebridge.services.retention import RetentionPolicy, prune_requests, prune_results

DEFAULT_QUEUE_POLL_INTERVAL_SECONDS = 2.0
MIN_QUEUE_POLL_INTERVAL_SECONDS = 0.2
MAX_QUEUE_POLL_INTERVAL_SECONDS = 300.0


def _noop(*_args, **_kwargs):
    return None


class QueueReconciler:
    """Process pending requests of one feature exactly once.

    One pass reads the queue and result files, runs the effect for every
    unprocessed request that has no result yet, then commits with
    read-merge-write: the result file first, then the queue file. The result
    file decides completion, so a crash between the two writes never re-runs
    an effect. Outcomes whose write failed are kept in memory and reused by
    the next pass. Records that arrive without a ``requestId`` get one written
    back to the queue before their effect runs.
    """

    def __init__(self, store, feature, executor, policy=None, *, log_action=None, log_exception=None):
        self.store = store
        self.feature = feature
        self.executor = executor
        self.policy = policy or RetentionPolicy()
        self.log_action = log_action or _noop
        self.log_exception = log_exception or _noop
        self._uncommitted = {}
        self._pass_lock = threading.Lock()

    @property
    def uncommitted_ids(self):
        return sorted(self._uncommitted)

    def run_once(self, now=None):
        """Run one pass and return a summary dict; storage errors abort the pass."""
        now = now or datetime.now(timezone.utc)
        summary = {
            "feature": self.feature.key,
            "handled": 0,
            "executed": 0,
            "adopted": 0,
            "reused": 0,
            "assigned": 0,
            "failed": 0,
            "results_written": False,
            "queue_written": False,
            "diagnostic": "",
            "error": "",
        }
        with self._pass_lock:
            try:
                self._run(now, summary)
            except StorageError as exc:
                summary["error"] = str(exc)
                self.log_exception(f"reconcile/{self.feature.key}", exc)
        return summary

    def _run(self, now, summary):
        queue_path = self.store.queue_path(self.feature)
        result_path = self.store.result_path(self.feature)

        queue_read = self.store.read(queue_path)
        if queue_read.diagnostic:
            summary["diagnostic"] = queue_read.diagnostic
            return
        if not queue_read.records:
            return
        records = queue_read.records
        if any(not request_id_of(record) and not is_processed(record) for record in records):
            records = self._assign_missing_ids(queue_path, summary)
            if records is None:
                return

        results_read = self.store.read(result_path)
        if results_read.diagnostic:
            summary["diagnostic"] = results_read.diagnostic
        known_results = {}
        for result in results_read.records:
            rid = request_id_of(result)
            if rid and normalize_status(result) != STATUS_PENDING:
                known_results[rid] = result

        working = {}
        new_results = []
        seen = set()
        for record in records:
            rid = request_id_of(record)
            if not rid or rid in seen:
                continue
            seen.add(rid)
            if is_processed(record):
                continue

            processed, needs_result = self._resolve(record, rid, known_results, now, summary)
            summary["handled"] += 1
            if processed["status"] == STATUS_FAILED:
                summary["failed"] += 1
            if needs_result:
                new_results.append(build_result_record(processed))
            working[rid] = processed

        if new_results or len(results_read.records) > self.policy.max_results:
            summary["results_written"] = self._commit_results(result_path, new_results)
        summary["queue_written"] = self._commit_queue(queue_path, working, now)

    def _assign_missing_ids(self, queue_path, summary):
        """Persist ids for unprocessed records that lack one; effects only run on stored ids.

        Returns the records as written, or ``None`` when the queue no longer parses.
        """
        with self.store.lock(queue_path):
            fresh = self.store.read(queue_path)
            if fresh.diagnostic:
                summary["diagnostic"] = fresh.diagnostic
                self.log_action("reconcile-skip", command=str(queue_path), rejection_message=fresh.diagnostic)
                return None
            records = []
            assigned = []
            for record in fresh.records:
                if not request_id_of(record) and not is_processed(record):
                    record = dict(record, requestId=new_request_id(self.feature.id_prefix))
                    assigned.append(record["requestId"])
                records.append(record)
            if assigned:
                self.store.write(queue_path, records)
                summary["assigned"] = len(assigned)
                self.log_action("reconcile-assign-id", command=" ".join(assigned))
            return records

    def _resolve(self, record, rid, known_results, now, summary):
        """Return ``(processed_record, needs_result)`` for one pending request."""
        processed = dict(record)
        existing = known_results.get(rid)
        if existing is not None:
            summary["adopted"] += 1
            mark_processed(
                processed,
                status=normalize_status(existing),
                message=existing.get("result", ""),
                processed_at=str(existing.get("processedAt") or utc_now_iso(now)),
            )
            return processed, False

        outcome = self._uncommitted.get(rid)
        if outcome is not None:
            summary["reused"] += 1
        else:
            outcome = self._execute(record, rid, now)
            summary["executed"] += 1
            self._uncommitted[rid] = outcome
        mark_processed(processed, **outcome)
        return processed, True

    def _execute(self, record, rid, now):
        ok, parsed = self.feature.validate(record)
        if not ok:
            status, message = STATUS_FAILED, str(parsed)
        else:
            payload = dict(record)
            payload.update(parsed)
            try:
                success, message = self.executor(payload)
                status = STATUS_SUCCESS if success else STATUS_FAILED
            except Exception as exc:
                self.log_exception(f"effect/{self.feature.key}/{rid}", exc)
                status, message = STATUS_FAILED, f"Effect error: {exc}"
        self.log_action(
            f"{self.feature.key}-{status}",
            command=rid,
            rejection_message=None if status == STATUS_SUCCESS else message,
        )
        return {"status": status, "message": message, "processed_at": utc_now_iso(now)}

    def _commit_results(self, result_path, new_results):
        with self.store.lock(result_path):
            fresh = self.store.read(result_path)
            merged = list(fresh.records)
            position = {}
            for idx, item in enumerate(merged):
                position.setdefault(request_id_of(item), idx)
            for result in new_results:
                rid = request_id_of(result)
                idx = position.get(rid)
                if idx is None:
                    position[rid] = len(merged)
                    merged.append(result)
                elif normalize_status(merged[idx]) == STATUS_PENDING:
                    # A pending placeholder never hides the real outcome.
                    merged[idx] = result
            merged = prune_results(merged, self.policy)
            if merged == fresh.records:
                return False
            self.store.write(result_path, merged)
            return True

    def _commit_queue(self, queue_path, working, now):
        with self.store.lock(queue_path):
            fresh = self.store.read(queue_path)
            if fresh.diagnostic:
                # Never overwrite a queue file that did not parse.
                self.log_action("reconcile-skip", command=str(queue_path), rejection_message=fresh.diagnostic)
                return False
            merged = []
            seen = set()
            for record in fresh.records:
                rid = request_id_of(record)
                if rid:
                    if rid in seen:
                        continue
                    seen.add(rid)
                if rid in working and not is_processed(record):
                    merged.append(working[rid])
                else:
                    merged.append(record)
            merged = prune_requests(merged, self.policy, now=now)
            if merged != fresh.records:
                self.store.write(queue_path, merged)
                written = True
            else:
                written = False
        for rid in working:
            self._uncommitted.pop(rid, None)
        return written


def feature_poll_interval(cfg, feature):
    """Per-feature interval: ``<FEATURE>_POLL_INTERVAL_SECONDS``, then the global key."""
    default = feature.default_poll_interval_seconds
    if cfg.has("QUEUE_POLL_INTERVAL_SECONDS"):
        default = cfg.get_float(
            "QUEUE_POLL_INTERVAL_SECONDS",
            DEFAULT_QUEUE_POLL_INTERVAL_SECONDS,
            minimum=MIN_QUEUE_POLL_INTERVAL_SECONDS,
            maximum=MAX_QUEUE_POLL_INTERVAL_SECONDS,
        )
    return cfg.get_float(
        f"{feature.key.upper()}_POLL_INTERVAL_SECONDS",
        default,
        minimum=MIN_QUEUE_POLL_INTERVAL_SECONDS,
        maximum=MAX_QUEUE_POLL_INTERVAL_SECONDS,
    )


class ReconcilerRuntime:
    """Owns one reconciler per feature, each on its own daemon thread."""

    def __init__(self, reconcilers, intervals, *, log_action=None, log_exception=None):
        self.reconcilers = dict(reconcilers)
        self.intervals = dict(intervals)
        self.log_action = log_action or _noop
        self.log_exception = log_exception or _noop
        self.last_summaries = {}
        self._stop_event = threading.Event()
        self._start_lock = threading.Lock()
        self._threads = []

    @property
    def running(self):
        return any(thread.is_alive() for thread in self._threads)

    def _loop(self, key):
        reconciler = self.reconcilers[key]
        interval = self.intervals.get(key, DEFAULT_QUEUE_POLL_INTERVAL_SECONDS)
        while not self._stop_event.is_set():
            try:
                self.last_summaries[key] = reconciler.run_once()
            except Exception as exc:
                self.log_exception(f"reconciler_loop/{key}", exc)
            self._stop_event.wait(interval)

    def start(self):
        """Start every reconciler thread once per runtime."""
        with self._start_lock:
            if self._threads:
                return False
            self._stop_event.clear()
            for key in self.reconcilers:
                thread = threading.Thread(target=self._loop, args=(key,), name=f"reconcile-{key}", daemon=True)
                thread.start()
                self._threads.append(thread)
        self.log_action("reconciler-start", command=",".join(sorted(self.reconcilers)))
        return True

    def stop(self, timeout=5.0):
        self._stop_event.set()
        with self._start_lock:
            threads, self._threads = self._threads, []
        for thread in threads:
            thread.join(timeout)
        if threads:
            self.log_action("reconciler-stop")

    def run_all_once(self, now=None):
        """Run one pass for every feature on the calling thread."""
        summaries = {}
        for key, reconciler in self.reconcilers.items():
            summaries[key] = reconciler.run_once(now=now)
        self.last_summaries.update(summaries)
        return summaries


def build_reconciler_runtime(cfg, store, executors, features, *, policy=None, log_action=None, log_exception=None):
    """Wire one reconciler per feature that has an executor."""
    policy = policy or RetentionPolicy.from_config(cfg)
    reconcilers = {}
    intervals = {}
    for key, feature in features.items():
        executor = executors.get(key)
        if executor is None:
            continue
        reconcilers[key] = QueueReconciler(
            store,
            feature,
            executor,
            policy,
            log_action=log_action,
            log_exception=log_exception,
        )
        intervals[key] = feature_poll_interval(cfg, feature)
    return ReconcilerRuntime(reconcilers, intervals, log_action=log_action, log_exception=log_exception)
