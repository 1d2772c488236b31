"""Read-side analysis over stored indexing events.

Every method queries the store on each call and returns a pydantic report
(or a plain value). Sessions without any stored event yield
:class:`~algolia_indexlog.models.schemas.AnalysisInputMissing` instead of
raising.

Examples
--------
Which expected items never made it into a session:
    >>> analyzer = Analyzer(store)
    >>> report = analyzer.find_missing(session_id, [101, 102, 103])
    >>> report.never_seen
    [103]

Walk one item through a session:
    >>> for event in analyzer.item_timeline(session_id, 101):
    ...     print(event.timestamp, event.stage.value)
"""

from __future__ import annotations

import csv
import io
from collections import Counter, defaultdict
from datetime import timedelta
from itertools import combinations
from typing import TYPE_CHECKING

from loguru import logger

from algolia_indexlog.constants import (
    STAGE_ORDER,
    TERMINAL_STAGES,
    ItemStatus,
    Level,
    Stage,
)
from algolia_indexlog.models.schemas import (
    AnalysisInputMissing,
    CompareReport,
    ErrorDetail,
    ErrorReport,
    ItemReport,
    MissingReport,
    RaceReport,
    RaceSummary,
    RaceTimeline,
    SessionOverlap,
    StageBreakdown,
    StageDelta,
)
from algolia_indexlog.services.aggregator import derive_item_status, group_by_item
from algolia_indexlog.services.payload import payload_flag, payload_int, payload_str
from algolia_indexlog.utils import normalize_item_id

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Sequence

    from algolia_indexlog.models.schemas import Event, ItemId, SessionInfo
    from algolia_indexlog.store import EventStore

__all__ = ["CSV_HEADER", "Analyzer", "ItemTimeline"]

CSV_HEADER = ("item_id", "type", "final_status", "skip_reason", "error_count", "last_stage")


def _id_sort_key(item_id: ItemId) -> tuple[int, int | str]:
    # Numeric ids first, then external string keys
    if isinstance(item_id, int):
        return (0, item_id)
    return (1, item_id)


def _sorted_ids(item_ids: Iterable[ItemId]) -> list[ItemId]:
    return sorted(item_ids, key=_id_sort_key)


def _retrieved_ids(events: Iterable[Event]) -> set[ItemId]:
    """Items with a retrieval event, including ids listed by batch retrievals."""
    retrieved: set[ItemId] = set()
    for event in events:
        if event.stage is not Stage.RETRIEVAL:
            continue
        if not event.is_batch_level:
            retrieved.add(event.item_id)
            continue
        listed = event.payload.get("item_ids")
        if isinstance(listed, list):
            retrieved.update(
                normalize_item_id(item_id) for item_id in listed if item_id not in (None, "")
            )
    return retrieved


def _error_message(event: Event) -> str:
    return payload_str(event.payload, "error", "message", default=f"{event.stage.value} error")


class ItemTimeline:
    """
    Restartable view of one item's events within a session.

    Iterating queries the store again, so a timeline reflects events
    flushed after it was created.

    Parameters
    ----------
    store : EventStore
        Store to query
    session_id : str
        Session identifier
    item_id : int or str
        Item identifier
    """

    def __init__(self, store: EventStore, session_id: str, item_id: ItemId) -> None:
        self._store = store
        self.session_id = session_id
        self.item_id = normalize_item_id(item_id)

    def __iter__(self) -> Iterator[Event]:
        return iter(self._store.session_events(self.session_id, self.item_id))

    def __repr__(self) -> str:
        return f"ItemTimeline(session_id={self.session_id!r}, item_id={self.item_id!r})"


class Analyzer:
    """
    Diagnostics over the event store.

    Parameters
    ----------
    store : EventStore
        Store to query
    """

    def __init__(self, store: EventStore) -> None:
        self.store = store

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def recent_sessions(self, limit: int = 10) -> list[SessionInfo]:
        """Most recently started sessions."""
        return self.store.recent_sessions(limit)

    def find_missing(
        self, session_id: str, expected_ids: Iterable[int | str]
    ) -> MissingReport | AnalysisInputMissing:
        """
        Compare the items a session should have processed with what it did.

        Parameters
        ----------
        session_id : str
            Session identifier
        expected_ids : Iterable[int | str]
            Item ids the caller expected the session to process

        Returns
        -------
        MissingReport | AnalysisInputMissing
            ``never_seen`` lists expected ids without a retrieval event,
            ``retrieved_not_processed`` lists retrieved ids that never reached
            submission or deletion, ``by_stage`` groups every observed item
            by the stage of its last event
        """
        events = self.store.session_events(session_id)
        if not events:
            return AnalysisInputMissing.for_sessions(session_id)

        expected = list(dict.fromkeys(normalize_item_id(item_id) for item_id in expected_ids))
        by_item = group_by_item(events)
        retrieved = _retrieved_ids(events)
        processed = {
            item_id
            for item_id, item_events in by_item.items()
            if any(event.stage in TERMINAL_STAGES for event in item_events)
        }

        by_stage: dict[Stage, list[ItemId]] = defaultdict(list)
        for item_id, item_events in by_item.items():
            by_stage[item_events[-1].stage].append(item_id)

        statuses = Counter(derive_item_status(item_events) for item_events in by_item.values())

        report = MissingReport(
            session_id=session_id,
            expected_count=len(expected),
            retrieved_count=len(retrieved),
            observed_count=len(by_item),
            processed_count=len(processed),
            never_seen=[item_id for item_id in expected if item_id not in retrieved],
            retrieved_not_processed=_sorted_ids(retrieved - processed),
            by_stage={
                stage: _sorted_ids(by_stage[stage])
                for stage in sorted(by_stage, key=STAGE_ORDER.__getitem__)
            },
            status_breakdown={status: statuses.get(status, 0) for status in ItemStatus},
        )
        logger.debug(
            f"Session {session_id}: {len(report.never_seen)} of {len(expected)} "
            "expected items never retrieved"
        )
        return report

    def item_timeline(self, session_id: str, item_id: int | str) -> ItemTimeline:
        """Events of one item in one session, ordered by (timestamp, seq)."""
        return ItemTimeline(self.store, session_id, item_id)

    def compare(self, session_a: str, session_b: str) -> CompareReport | AnalysisInputMissing:
        """
        Compare the items and stage activity of two sessions.

        Returns
        -------
        CompareReport | AnalysisInputMissing
            AnalysisInputMissing names whichever sessions have no events
        """
        events_a = self.store.session_events(session_a)
        events_b = self.store.session_events(session_b)
        missing = [
            sid
            for sid, events in ((session_a, events_a), (session_b, events_b))
            if not events
        ]
        if missing:
            return AnalysisInputMissing.for_sessions(*missing)

        items_a = set(group_by_item(events_a))
        items_b = set(group_by_item(events_b))
        stages_a = Counter(event.stage for event in events_a)
        stages_b = Counter(event.stage for event in events_b)

        return CompareReport(
            session_a=session_a,
            session_b=session_b,
            only_in_a=_sorted_ids(items_a - items_b),
            only_in_b=_sorted_ids(items_b - items_a),
            in_both=_sorted_ids(items_a & items_b),
            stage_deltas={
                stage: StageDelta(
                    session_a=stages_a[stage],
                    session_b=stages_b[stage],
                    difference=stages_a[stage] - stages_b[stage],
                )
                for stage in Stage
            },
            error_counts={
                session_a: sum(1 for event in events_a if event.level is Level.ERROR),
                session_b: sum(1 for event in events_b if event.level is Level.ERROR),
            },
        )

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def item_reports(self, session_id: str) -> list[ItemReport]:
        """One report per item observed in a session, ordered by item id."""
        by_item = group_by_item(self.store.session_events(session_id))
        return [
            self._item_report(item_id, by_item[item_id])
            for item_id in _sorted_ids(by_item)
        ]

    @staticmethod
    def _item_report(item_id: ItemId, events: Sequence[Event]) -> ItemReport:
        item_type = ""
        skip_reason = ""
        errors = []
        for event in events:
            if event.stage is Stage.RETRIEVAL:
                item_type = (
                    payload_str(event.payload, "type", "item_type", "post_type")
                    or item_type
                )
            elif event.stage is Stage.FILTERING:
                if payload_flag(event.payload, "should_index") is False:
                    skip_reason = (
                        payload_str(event.payload, "skip_reason", "reason") or skip_reason
                    )
            if event.level is Level.ERROR:
                errors.append(_error_message(event))
        return ItemReport(
            item_id=item_id,
            item_type=item_type,
            final_status=derive_item_status(events),
            skip_reason=skip_reason,
            error_count=len(errors),
            errors=errors,
            last_stage=events[-1].stage if events else None,
        )

    def problematic_items(self, session_id: str, limit: int = 100) -> list[ItemReport]:
        """Failed, skipped or errored items of a session."""
        problems = [r for r in self.item_reports(session_id) if r.is_problematic]
        return problems[:limit]

    def stage_breakdown(self, session_id: str) -> StageBreakdown | AnalysisInputMissing:
        """Per-stage counters for one session."""
        events = self.store.session_events(session_id)
        if not events:
            return AnalysisInputMissing.for_sessions(session_id)

        breakdown = StageBreakdown()
        reasons: Counter[str] = Counter()
        for event in events:
            failed = event.level is Level.ERROR
            if event.stage is Stage.RETRIEVAL:
                breakdown.retrieval_count += 1
            elif event.stage is Stage.FILTERING:
                if payload_flag(event.payload, "should_index", default=True):
                    breakdown.filtering_passed += 1
                else:
                    breakdown.filtering_skipped += 1
                    reason = payload_str(
                        event.payload, "skip_reason", "reason", default="unspecified"
                    )
                    reasons[reason] += 1
            elif event.stage is Stage.GENERATION:
                if failed:
                    breakdown.generation_failed += 1
                else:
                    breakdown.generation_success += 1
            elif event.stage is Stage.SANITIZATION:
                breakdown.sanitization_count += 1
                breakdown.records_dropped += payload_int(event.payload, "dropped_count")
            elif event.stage is Stage.SUBMISSION:
                if failed or payload_flag(event.payload, "success") is False:
                    breakdown.submission_failed += 1
                else:
                    breakdown.submission_success += 1
            elif event.stage is Stage.DELETION:
                breakdown.deletion_count += 1
        breakdown.skip_reasons = dict(reasons.most_common())
        return breakdown

    def errors(
        self, session_id: str, limit: int | None = None
    ) -> ErrorReport | AnalysisInputMissing:
        """
        Collect the error-level events of one session.

        Unlike the item reports this includes batch-level events, such as a
        rejected batch submission that names no item.

        Parameters
        ----------
        session_id : str
            Session identifier
        limit : int, optional
            Maximum number of details kept (the oldest first); counts always
            cover every error

        Returns
        -------
        ErrorReport | AnalysisInputMissing
            Total, per-stage counts over every stage, and details in
            (timestamp, seq) order
        """
        events = self.store.session_events(session_id)
        if not events:
            return AnalysisInputMissing.for_sessions(session_id)

        failures = [event for event in events if event.level is Level.ERROR]
        counts = Counter(event.stage for event in failures)
        details = [
            ErrorDetail(
                item_id=event.item_id,
                stage=event.stage,
                message=_error_message(event),
                timestamp=event.timestamp,
            )
            for event in failures
        ]
        return ErrorReport(
            session_id=session_id,
            total_count=len(failures),
            by_stage={stage: counts[stage] for stage in Stage},
            details=details if limit is None else details[:limit],
        )

    def export_csv(self, session_id: str, problems_only: bool = False) -> str:
        """
        Render item reports of a session as CSV.

        Parameters
        ----------
        session_id : str
            Session identifier
        problems_only : bool, optional
            Only include failed, skipped or errored items

        Returns
        -------
        str
            CSV text with header
            ``item_id,type,final_status,skip_reason,error_count,last_stage``
        """
        reports = self.item_reports(session_id)
        if problems_only:
            reports = [report for report in reports if report.is_problematic]

        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(CSV_HEADER)
        for report in reports:
            writer.writerow(
                [
                    report.item_id,
                    report.item_type,
                    report.final_status.value,
                    report.skip_reason,
                    report.error_count,
                    report.last_stage.value if report.last_stage else "",
                ]
            )
        return buffer.getvalue()

    # ------------------------------------------------------------------
    # Races
    # ------------------------------------------------------------------

    def detect_races(
        self, min_concurrent: int = 2, time_window: float = 10, limit: int = 100
    ) -> RaceReport:
        """
        Aggregate correlation records into a store-wide race report.

        Parameters
        ----------
        min_concurrent : int, optional
            Minimum number of distinct sessions per item, by default 2.
            This counts sessions across all of the item's records, not
            correlation records: a single record naming two sessions
            qualifies, while ``occurrences`` (the record count) is only
            used for sorting
        time_window : float, optional
            Seconds; records spanning more than this are ignored
        limit : int, optional
            Maximum number of items reported, by default 100

        Returns
        -------
        RaceReport
            Items sorted by occurrences (descending) then item id
        """
        window = timedelta(seconds=time_window)
        grouped: dict[ItemId, list] = defaultdict(list)
        for record in self.store.race_records():
            if record.last_seen - record.first_seen <= window:
                grouped[record.item_id].append(record)

        summaries = []
        by_stage: Counter[Stage] = Counter()
        by_hour: Counter[int] = Counter()
        for item_id, records in grouped.items():
            sessions = sorted({sid for record in records for sid in record.session_ids})
            if len(sessions) < min_concurrent:
                continue
            stages = {stage for record in records for stage in record.stages}
            summaries.append(
                RaceSummary(
                    item_id=item_id,
                    occurrences=len(records),
                    sessions=sessions,
                    stages=sorted(stages, key=STAGE_ORDER.__getitem__),
                    first_seen=min(record.first_seen for record in records),
                    last_seen=max(record.last_seen for record in records),
                )
            )
            for record in records:
                by_stage[record.stage] += 1
                by_hour[record.last_seen.hour] += 1

        summaries.sort(key=lambda s: (-s.occurrences, _id_sort_key(s.item_id)))
        if summaries:
            logger.info(f"Race correlations found for {len(summaries)} items")
        return RaceReport(
            total_items_affected=len(summaries),
            items=summaries[:limit],
            time_range=self.store.time_range(),
            by_stage={
                stage: by_stage[stage]
                for stage in sorted(by_stage, key=STAGE_ORDER.__getitem__)
            },
            by_hour=dict(sorted(by_hour.items())),
        )

    def race_timeline(self, item_id: int | str) -> RaceTimeline:
        """
        Merge one item's operations and race detections across sessions.

        Also reports every pair of sessions whose activity on the item
        overlapped in time.
        """
        item_id = normalize_item_id(item_id)
        events = self.store.item_events(item_id)
        entries = [
            {
                "timestamp": event.timestamp,
                "type": "operation",
                "session_id": event.session_id,
                "stage": event.stage.value,
                "level": event.level.value,
            }
            for event in events
        ]
        entries.extend(
            {
                "timestamp": record.last_seen,
                "type": "race_detected",
                "session_id": record.detected_by,
                "stage": record.stage.value,
                "concurrent_sessions": list(record.session_ids),
            }
            for record in self.store.race_records(item_id)
        )
        # Detections sort after the operation that triggered them
        entries.sort(key=lambda entry: (entry["timestamp"], entry["type"] == "race_detected"))

        spans: dict[str, list] = {}
        for event in events:
            span = spans.setdefault(event.session_id, [event.timestamp, event.timestamp])
            span[0] = min(span[0], event.timestamp)
            span[1] = max(span[1], event.timestamp)

        overlaps = []
        for a, b in combinations(sorted(spans), 2):
            start = max(spans[a][0], spans[b][0])
            end = min(spans[a][1], spans[b][1])
            if start <= end:
                overlaps.append(
                    SessionOverlap(
                        sessions=(a, b),
                        overlap_seconds=(end - start).total_seconds(),
                        overlap_start=start,
                        overlap_end=end,
                    )
                )
        return RaceTimeline(item_id=item_id, entries=entries, session_overlap=overlaps)
