"""
Roster Query Service - reporting views over the ledger

Read-only. Every status shown here comes from the lifecycle engine; nothing
in this module derives a status on its own.

Roster pipeline:
1. Load entries (narrowed by session when the filter names one)
2. Collapse each (session, participant) pair to its latest entry
3. Join sessions, derived statuses and personnel projections
4. Filter, sort by (registered_at, participant_id), paginate
"""

from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime

from training_registry.kernel.errors import SessionNotFound, ValidationError
from training_registry.kernel.logging import LogOperation, get_logger
from training_registry.kernel.metrics import track_operation
from training_registry.kernel.policy import RegistrationPolicy
from training_registry.kernel.time import TimeProvider, current_time
from training_registry.registration.ledger import SQLiteRegistrationLedger
from training_registry.registration.lifecycle import (
    display_registration_status,
    latest_entry,
    session_status,
)
from training_registry.registration.models import DisplayRegistrationStatus, RegistrationEntry
from training_registry.roster.models import (
    CatalogItem,
    CatalogView,
    HistoryItem,
    Page,
    PageRequest,
    RosterFilter,
    RosterRow,
    total_pages_for,
)
from training_registry.roster.personnel import PersonnelDirectory, resolve_personnel
from training_registry.sessions.models import Session, SessionStatus
from training_registry.sessions.store import SQLiteSessionStore

logger = get_logger(__name__)


def collapse_to_latest(entries: Iterable[RegistrationEntry]) -> list[RegistrationEntry]:
    """
    Keep one entry per (session, participant): the latest by status_changed_at

    A pair with more than one active entry breaks the ledger invariant; the
    read still succeeds and the defect is logged. Stored rows are not touched.
    """
    by_pair: dict[tuple[str, str], list[RegistrationEntry]] = defaultdict(list)
    for entry in entries:
        by_pair[(entry.session_id, entry.participant_id)].append(entry)

    collapsed = []
    for (session_id, participant_id), group in by_pair.items():
        if sum(1 for e in group if e.is_active()) > 1:
            logger.warning(
                "Duplicate active registrations collapsed on read",
                session_id=session_id,
                participant_id=participant_id,
                entries=len(group),
            )
        collapsed.append(latest_entry(group))
    return collapsed


def roster_sort_key(row: RosterRow) -> tuple:
    return (row.registered_at, row.participant_id, row.session_id, row.entry_id)


class RosterQueryService:
    """Rosters, session catalogs and participant history"""

    def __init__(
        self,
        session_store: SQLiteSessionStore,
        ledger: SQLiteRegistrationLedger,
        time_provider: TimeProvider,
        personnel_directory: PersonnelDirectory | None = None,
        policy: RegistrationPolicy | None = None,
    ) -> None:
        self.session_store = session_store
        self.ledger = ledger
        self.time_provider = time_provider
        self.personnel_directory = personnel_directory
        self.policy = policy or RegistrationPolicy()

    # ========== Rosters ==========

    @track_operation("query_roster")
    def query_roster(
        self,
        roster_filter: RosterFilter | None = None,
        page: PageRequest | None = None,
        now: datetime | None = None,
    ) -> Page[RosterRow]:
        """
        One page of the filtered roster

        A page number past the last page is clamped to the last page, and a
        size above the policy maximum is clamped to the maximum.
        """
        roster_filter = roster_filter or RosterFilter()
        page = page or PageRequest()
        now = current_time(self.time_provider, now)

        with LogOperation(
            logger,
            "query_roster",
            session_id=roster_filter.session_id,
            page=page.number,
        ):
            rows = self._roster_rows(roster_filter, now)

            size = min(page.size or self.policy.default_page_size, self.policy.max_page_size)
            total_pages = total_pages_for(len(rows), size)
            number = min(page.number, total_pages)
            offset = (number - 1) * size

            return Page[RosterRow](
                rows=rows[offset : offset + size],
                number=number,
                size=size,
                total_count=len(rows),
                total_pages=total_pages,
            )

    @track_operation("full_roster")
    def full_roster(self, session_id: str, now: datetime | None = None) -> list[RosterRow]:
        """
        Every roster row of one session, unpaginated, for export formatters

        Raises:
            SessionNotFound: Unknown session
        """
        now = current_time(self.time_provider, now)
        if self.session_store.get(session_id) is None:
            raise SessionNotFound(session_id)
        with LogOperation(logger, "full_roster", session_id=session_id):
            return self._roster_rows(RosterFilter(session_id=session_id), now)

    def _roster_rows(self, roster_filter: RosterFilter, now: datetime) -> list[RosterRow]:
        entries = collapse_to_latest(self.ledger.entries(session_id=roster_filter.session_id))
        sessions = self.session_store.get_many({e.session_id for e in entries})
        personnel = resolve_personnel(
            self.personnel_directory, sorted({e.participant_id for e in entries})
        )

        rows = []
        for entry in entries:
            session = sessions.get(entry.session_id)
            if session is None:
                logger.warning(
                    "Registration references unknown session, skipped",
                    entry_id=entry.entry_id,
                    session_id=entry.session_id,
                )
                continue
            row = RosterRow(
                entry_id=entry.entry_id,
                session_id=entry.session_id,
                session_title=session.title,
                participant_id=entry.participant_id,
                stored_status=entry.status,
                status=display_registration_status(entry, session, now),
                registered_at=entry.registered_at,
                status_changed_at=entry.status_changed_at,
                completed_at=entry.completed_at,
                performance_score=entry.performance_score,
                personnel=personnel[entry.participant_id],
            )
            if _matches(row, roster_filter):
                rows.append(row)

        rows.sort(key=roster_sort_key)
        return rows

    # ========== Participant views ==========

    @track_operation("session_catalog")
    def session_catalog(
        self,
        participant_id: str,
        view: CatalogView | str = CatalogView.ALL,
        now: datetime | None = None,
    ) -> list[CatalogItem]:
        """
        Sessions as one participant sees them, ordered by window start

        Views:
        - all: every session
        - upcoming: not yet ended and the participant is not registered
        - registered: the participant's display status is registered
        - past: the session ended or the participant completed it
        """
        try:
            view = CatalogView(view)
        except ValueError as e:
            allowed = ", ".join(v.value for v in CatalogView)
            raise ValidationError(
                f"Unknown catalog view {view!r} (expected one of: {allowed})",
                [{"field": "view", "message": f"must be one of {allowed}"}],
            ) from e
        now = current_time(self.time_provider, now)

        active_counts = self.ledger.count_active_by_session()
        own_entries = self._latest_by_session(participant_id)

        items = []
        for session in self.session_store.list_all():
            status = session_status(session, now)
            registration = display_registration_status(
                own_entries.get(session.session_id), session, now
            )
            if not _in_view(view, status, registration):
                continue
            registered_count = active_counts.get(session.session_id, 0)
            items.append(
                CatalogItem(
                    session_id=session.session_id,
                    title=session.title,
                    category=session.category,
                    start=session.window.start,
                    end=session.window.end,
                    location=session.location.display() if session.location else None,
                    instructor=session.instructor.display() if session.instructor else None,
                    mandatory=session.mandatory,
                    session_status=status,
                    registration_status=registration,
                    registered_count=registered_count,
                    capacity=session.capacity,
                    available_slots=max(0, session.capacity - registered_count),
                )
            )
        return items

    @track_operation("participant_history")
    def participant_history(
        self, participant_id: str, now: datetime | None = None
    ) -> list[HistoryItem]:
        """Sessions the participant completed, most recent completion first"""
        now = current_time(self.time_provider, now)
        own_entries = self._latest_by_session(participant_id)
        sessions = self.session_store.get_many(set(own_entries))

        items = []
        for session_id, entry in own_entries.items():
            session = sessions.get(session_id)
            if session is None:
                continue
            if display_registration_status(entry, session, now) != DisplayRegistrationStatus.COMPLETED:
                continue
            items.append(_history_item(session, entry))

        items.sort(key=lambda item: (item.completed_at, item.session_id), reverse=True)
        return items

    def _latest_by_session(self, participant_id: str) -> dict[str, RegistrationEntry]:
        return {
            entry.session_id: entry
            for entry in collapse_to_latest(self.ledger.entries(participant_id=participant_id))
        }


def _matches(row: RosterRow, roster_filter: RosterFilter) -> bool:
    if roster_filter.status is not None and row.status != roster_filter.status:
        return False
    if roster_filter.company:
        if row.personnel.company.casefold() != roster_filter.company.strip().casefold():
            return False
    if roster_filter.search:
        needle = roster_filter.search.strip().casefold()
        haystack = (row.personnel.full_name, row.participant_id, row.personnel.email)
        if not any(needle in value.casefold() for value in haystack):
            return False
    return True


def _in_view(
    view: CatalogView, status: SessionStatus, registration: DisplayRegistrationStatus
) -> bool:
    if view == CatalogView.UPCOMING:
        return status != SessionStatus.COMPLETED and registration in (
            DisplayRegistrationStatus.NOT_REGISTERED,
            DisplayRegistrationStatus.CANCELLED,
        )
    if view == CatalogView.REGISTERED:
        return registration == DisplayRegistrationStatus.REGISTERED
    if view == CatalogView.PAST:
        return status == SessionStatus.COMPLETED or registration == DisplayRegistrationStatus.COMPLETED
    return True


def _history_item(session: Session, entry: RegistrationEntry) -> HistoryItem:
    return HistoryItem(
        session_id=session.session_id,
        title=session.title,
        category=session.category,
        start=session.window.start,
        end=session.window.end,
        completed_at=entry.completed_at or entry.status_changed_at,
        performance_score=entry.performance_score,
    )
