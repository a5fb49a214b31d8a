"""Tests for the session status state machine."""

import pytest
from sqlalchemy.orm import Session

from conftest import add_session, session_statuses
from reconciler.core.exceptions import (
    AlreadyExistsError,
    ImportValidationError,
    InvalidTransitionError,
    NotFoundError,
)
from reconciler.models import SessionFilter, SessionStatus
from reconciler.services import session_service
from reconciler.services.session_service import derive_status


class TestDeriveStatus:
    """Test the pure status derivation."""

    @pytest.mark.parametrize(
        "user_mapped,book_mapped,expected",
        [
            (False, False, SessionStatus.PENDING_USER),
            (False, True, SessionStatus.PENDING_USER),
            (True, False, SessionStatus.PENDING_BOOK),
            (True, True, SessionStatus.READY),
        ],
    )
    def test_non_terminal(self, user_mapped, book_mapped, expected):
        """The user predicate wins over the book predicate."""
        for current in (SessionStatus.PENDING_USER, SessionStatus.PENDING_BOOK, SessionStatus.READY):
            assert derive_status(current, user_mapped, book_mapped) == expected

    @pytest.mark.parametrize("terminal", [SessionStatus.IMPORTED, SessionStatus.SKIPPED])
    def test_terminal_is_sticky(self, terminal):
        """Terminal statuses never change, whatever the mappings say."""
        for user_mapped in (False, True):
            for book_mapped in (False, True):
                assert derive_status(terminal, user_mapped, book_mapped) == terminal

    def test_accepts_raw_values(self):
        assert derive_status("ready", False, False) == SessionStatus.PENDING_USER


class TestCreateAndList:
    """Test session ingestion and listing."""

    def test_create_defaults_to_pending_user(self, db: Session, test_import):
        session = add_session(db, test_import.id, "s1", "u1", "b1")

        assert session.status == SessionStatus.PENDING_USER
        assert session.imported_at is None
        assert session.skip_reason is None

    def test_create_duplicate(self, db: Session, test_import):
        add_session(db, test_import.id, "s1", "u1", "b1")

        with pytest.raises(AlreadyExistsError):
            add_session(db, test_import.id, "s1", "u2", "b2")

    def test_get_missing(self, db: Session, test_import):
        with pytest.raises(NotFoundError):
            session_service.get_session(db, test_import.id, "s404")

    def test_list_oldest_first(self, db: Session, test_import):
        add_session(db, test_import.id, "late", "u1", "b1", minutes=60)
        add_session(db, test_import.id, "early", "u1", "b1", minutes=0)
        add_session(db, test_import.id, "middle", "u1", "b1", minutes=30)

        sessions = session_service.list_sessions(db, test_import.id)

        assert [s.external_session_id for s in sessions] == ["early", "middle", "late"]

    def test_list_filters(self, db: Session, populated_import):
        session_service.mark_imported(db, populated_import.id, "s1")
        session_service.skip_session(db, populated_import.id, "s2")

        def ids(status_filter):
            return {
                s.external_session_id
                for s in session_service.list_sessions(db, populated_import.id, status_filter)
            }

        assert ids(SessionFilter.IMPORTED) == {"s1"}
        assert ids(SessionFilter.SKIPPED) == {"s2"}
        assert ids(SessionFilter.PENDING) == {"s3", "s4"}
        assert ids(SessionFilter.READY) == set()
        assert ids(SessionFilter.ALL) == {"s1", "s2", "s3", "s4"}

    def test_list_paginates(self, db: Session, populated_import):
        page = session_service.list_sessions(db, populated_import.id, limit=2, offset=1)

        assert [s.external_session_id for s in page] == ["s2", "s3"]

    def test_summary(self, db: Session, populated_import):
        session_service.mark_imported(db, populated_import.id, "s1")
        session_service.skip_session(db, populated_import.id, "s2", "duplicate")

        summary = session_service.session_summary(db, populated_import.id)

        assert summary.total == 4
        assert summary.pending == 2
        assert summary.ready == 0
        assert summary.imported == 1
        assert summary.skipped == 1

    def test_count_by_status_zero_fills(self, db: Session, test_import):
        counts = session_service.count_by_status(db, test_import.id)

        assert set(counts) == {s.value for s in SessionStatus}
        assert sum(counts.values()) == 0


class TestMarkImported:
    """Test the downstream importer's transition."""

    @pytest.mark.parametrize(
        "start", [SessionStatus.PENDING_USER, SessionStatus.PENDING_BOOK, SessionStatus.READY]
    )
    def test_from_any_non_terminal(self, db: Session, test_import, start):
        add_session(db, test_import.id, "s1", "u1", "b1", status=start)

        session = session_service.mark_imported(db, test_import.id, "s1")

        assert session.status == SessionStatus.IMPORTED
        assert session.imported_at is not None

    def test_repeat_keeps_first_timestamp(self, db: Session, test_import):
        add_session(db, test_import.id, "s1", "u1", "b1", status=SessionStatus.READY)
        first = session_service.mark_imported(db, test_import.id, "s1")

        again = session_service.mark_imported(db, test_import.id, "s1")

        assert again.status == SessionStatus.IMPORTED
        assert again.imported_at == first.imported_at

    def test_skipped_cannot_be_imported(self, db: Session, test_import):
        add_session(db, test_import.id, "s1", "u1", "b1")
        session_service.skip_session(db, test_import.id, "s1")

        with pytest.raises(InvalidTransitionError) as exc_info:
            session_service.mark_imported(db, test_import.id, "s1")

        assert exc_info.value.current == SessionStatus.SKIPPED.value
        assert session_statuses(db, test_import.id)["s1"] == SessionStatus.SKIPPED.value

    def test_invalid_transition_is_validation_kind(self):
        assert issubclass(InvalidTransitionError, ImportValidationError)

    def test_missing_session(self, db: Session, test_import):
        with pytest.raises(NotFoundError):
            session_service.mark_imported(db, test_import.id, "s404")


class TestSkip:
    """Test skipping sessions."""

    @pytest.mark.parametrize(
        "start", [SessionStatus.PENDING_USER, SessionStatus.PENDING_BOOK, SessionStatus.READY]
    )
    def test_from_any_non_terminal(self, db: Session, test_import, start):
        add_session(db, test_import.id, "s1", "u1", "b1", status=start)

        session = session_service.skip_session(db, test_import.id, "s1", "not a real listen")

        assert session.status == SessionStatus.SKIPPED
        assert session.skip_reason == "not a real listen"

    def test_default_reason(self, db: Session, test_import):
        add_session(db, test_import.id, "s1", "u1", "b1")

        session = session_service.skip_session(db, test_import.id, "s1")

        assert session.skip_reason == "Skipped by admin"

    def test_repeat_overwrites_reason(self, db: Session, test_import):
        add_session(db, test_import.id, "s1", "u1", "b1")
        session_service.skip_session(db, test_import.id, "s1", "first")

        session = session_service.skip_session(db, test_import.id, "s1", "second")

        assert session.status == SessionStatus.SKIPPED
        assert session.skip_reason == "second"

    def test_imported_cannot_be_skipped(self, db: Session, test_import):
        add_session(db, test_import.id, "s1", "u1", "b1", status=SessionStatus.READY)
        session_service.mark_imported(db, test_import.id, "s1")

        with pytest.raises(InvalidTransitionError):
            session_service.skip_session(db, test_import.id, "s1")

        assert session_statuses(db, test_import.id)["s1"] == SessionStatus.IMPORTED.value

    def test_missing_session(self, db: Session, test_import):
        with pytest.raises(NotFoundError):
            session_service.skip_session(db, test_import.id, "s404")
