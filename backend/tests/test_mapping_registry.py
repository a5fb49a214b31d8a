"""Tests for the user/book mapping registry."""

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from conftest import add_book, add_user
from reconciler.core.exceptions import AlreadyExistsError, ImportValidationError, NotFoundError
from reconciler.models import EntityKind, ImportBook, ImportUser, MappingFilter
from reconciler.services.mapping_registry import (
    MappingRegistry,
    decode_suggestions,
    encode_suggestions,
)


class TestRegister:
    """Test registering unresolved rows."""

    def test_register_user_is_unmapped(self, db: Session, test_import):
        """A freshly registered user has no internal id or mapped_at."""
        user = add_user(
            db,
            test_import.id,
            "u1",
            username="alice",
            confidence=0.8,
            match_reason="email match",
            suggestions=["lu-1", "lu-7"],
        )

        assert user.external_id == "u1"
        assert user.username == "alice"
        assert user.internal_id is None
        assert user.mapped_at is None
        assert user.is_mapped is False
        assert user.confidence == 0.8
        assert user.match_reason == "email match"
        assert user.suggestions == ["lu-1", "lu-7"]

    def test_register_book_from_dict(self, db: Session, test_import):
        """Raw payloads are validated against the kind's schema."""
        book = MappingRegistry(db, "book").register(
            test_import.id, {"external_id": "b1", "title": "Dune", "asin": "B000"}
        )

        assert book.title == "Dune"
        assert book.asin == "B000"
        assert book.suggestions == []

    def test_register_duplicate_raises(self, db: Session, test_import):
        """A second row with the same external id is rejected."""
        add_user(db, test_import.id, "u1")

        with pytest.raises(AlreadyExistsError):
            add_user(db, test_import.id, "u1")

        # The session is still usable after the rollback
        assert MappingRegistry(db, EntityKind.USER).get(test_import.id, "u1").external_id == "u1"

    def test_same_external_id_in_other_kind_is_fine(self, db: Session, test_import):
        """Users and books are keyed independently."""
        add_user(db, test_import.id, "x1")
        add_book(db, test_import.id, "x1")

        assert MappingRegistry(db, EntityKind.BOOK).get(test_import.id, "x1").external_id == "x1"

    def test_register_unknown_import(self, db: Session):
        """Registering into a missing import fails."""
        with pytest.raises(NotFoundError):
            MappingRegistry(db, EntityKind.USER).register("nope", {"external_id": "u1"})

    def test_register_out_of_range_confidence(self, db: Session, test_import):
        """Confidence outside [0, 1] is a validation error."""
        with pytest.raises(ImportValidationError):
            MappingRegistry(db, EntityKind.BOOK).register(
                test_import.id, {"external_id": "b1", "confidence": 1.5}
            )


class TestSetMapping:
    """Test setting and clearing mappings."""

    def test_set_stamps_mapped_at(self, db: Session, test_import):
        """Setting an internal id stamps mapped_at and the display fields."""
        add_user(db, test_import.id, "u1")
        registry = MappingRegistry(db, EntityKind.USER)

        user = registry.set_mapping(
            test_import.id,
            "u1",
            "lu-1",
            {"internal_email": "alice@listenup.dev", "internal_display_name": "Alice"},
        )

        assert user.internal_id == "lu-1"
        assert user.mapped_at is not None
        assert user.is_mapped is True
        assert user.internal_email == "alice@listenup.dev"
        assert user.internal_display_name == "Alice"

    def test_clear_removes_everything(self, db: Session, test_import):
        """Clearing drops the id, mapped_at and display fields together."""
        add_book(db, test_import.id, "b1")
        registry = MappingRegistry(db, EntityKind.BOOK)
        registry.set_mapping(test_import.id, "b1", "lu-b1", {"internal_title": "Dune"})

        book = registry.clear_mapping(test_import.id, "b1")

        assert book.internal_id is None
        assert book.mapped_at is None
        assert book.internal_title is None
        assert book.is_mapped is False

    def test_empty_internal_id_clears(self, db: Session, test_import):
        """An empty string behaves like clearing."""
        add_user(db, test_import.id, "u1")
        registry = MappingRegistry(db, EntityKind.USER)
        registry.set_mapping(test_import.id, "u1", "lu-1")

        user = registry.set_mapping(test_import.id, "u1", "")

        assert user.internal_id is None
        assert user.mapped_at is None

    def test_remap_overwrites(self, db: Session, test_import):
        """Last write wins."""
        add_user(db, test_import.id, "u1")
        registry = MappingRegistry(db, EntityKind.USER)
        registry.set_mapping(test_import.id, "u1", "lu-1")

        user = registry.set_mapping(test_import.id, "u1", "lu-2")

        assert user.internal_id == "lu-2"

    def test_set_missing_row_raises(self, db: Session, test_import):
        """Setting a mapping for an unknown external id fails."""
        with pytest.raises(NotFoundError):
            MappingRegistry(db, EntityKind.USER).set_mapping(test_import.id, "ghost", "lu-1")

    def test_set_wrong_import_raises(self, db: Session, test_import):
        """The external id is scoped to its import."""
        add_user(db, test_import.id, "u1")

        with pytest.raises(NotFoundError):
            MappingRegistry(db, EntityKind.USER).set_mapping("other-import", "u1", "lu-1")

    def test_unknown_display_field_rejected(self, db: Session, test_import):
        """Book display fields are not accepted for users."""
        add_user(db, test_import.id, "u1")

        with pytest.raises(ImportValidationError):
            MappingRegistry(db, EntityKind.USER).set_mapping(
                test_import.id, "u1", "lu-1", {"internal_title": "Dune"}
            )

        assert MappingRegistry(db, EntityKind.USER).get(test_import.id, "u1").internal_id is None


class TestListAndGet:
    """Test listing, filtering and lookups."""

    def test_get_missing(self, db: Session, test_import):
        with pytest.raises(NotFoundError):
            MappingRegistry(db, EntityKind.BOOK).get(test_import.id, "b404")

    def test_users_ordered_by_username(self, db: Session, test_import):
        add_user(db, test_import.id, "u1", username="mallory")
        add_user(db, test_import.id, "u2", username="alice")
        add_user(db, test_import.id, "u3", username="bob")

        users = MappingRegistry(db, EntityKind.USER).list_mappings(test_import.id)

        assert [u.username for u in users] == ["alice", "bob", "mallory"]

    def test_books_ordered_by_title(self, db: Session, test_import):
        add_book(db, test_import.id, "b1", title="Neuromancer")
        add_book(db, test_import.id, "b2", title="Dune")

        books = MappingRegistry(db, EntityKind.BOOK).list_mappings(test_import.id)

        assert [b.title for b in books] == ["Dune", "Neuromancer"]

    def test_filter_partition(self, db: Session, test_import):
        """mapped and unmapped listings split the full listing with no overlap."""
        for i in range(5):
            add_book(db, test_import.id, f"b{i}", title=f"Book {i}")
        registry = MappingRegistry(db, EntityKind.BOOK)
        registry.set_mapping(test_import.id, "b1", "lu-b1")
        registry.set_mapping(test_import.id, "b3", "lu-b3")

        everything = {b.external_id for b in registry.list_mappings(test_import.id)}
        mapped = {b.external_id for b in registry.list_mappings(test_import.id, MappingFilter.MAPPED)}
        unmapped = {
            b.external_id for b in registry.list_mappings(test_import.id, MappingFilter.UNMAPPED)
        }

        assert mapped == {"b1", "b3"}
        assert mapped | unmapped == everything
        assert mapped & unmapped == set()

    def test_list_paginates(self, db: Session, test_import):
        for i in range(4):
            add_user(db, test_import.id, f"u{i}", username=f"user{i}")

        page = MappingRegistry(db, EntityKind.USER).list_mappings(test_import.id, limit=2, offset=1)

        assert [u.username for u in page] == ["user1", "user2"]

    def test_mapped_ids_and_count(self, db: Session, test_import):
        add_user(db, test_import.id, "u1")
        add_user(db, test_import.id, "u2")
        add_user(db, test_import.id, "u3")
        registry = MappingRegistry(db, EntityKind.USER)
        registry.set_mapping(test_import.id, "u2", "lu-2")

        assert registry.mapped_ids(test_import.id) == {"u2"}
        assert registry.count(test_import.id) == (1, 2)


class TestSuggestions:
    """Test the stored suggestions payload."""

    def test_encode_decode(self):
        assert decode_suggestions(encode_suggestions(["lu-1", "lu-2"])) == ["lu-1", "lu-2"]

    def test_empty_payload(self):
        assert decode_suggestions("") == []
        assert decode_suggestions(None) == []

    def test_malformed_payload_raises(self):
        with pytest.raises(ImportValidationError):
            decode_suggestions("not json")

    def test_wrong_shape_raises(self):
        with pytest.raises(ImportValidationError):
            decode_suggestions('{"lu-1": 0.9}')

    def test_corrupt_row_fails_get(self, db: Session, test_import):
        """A row with undecodable suggestions fails the read, not silently empties."""
        add_book(db, test_import.id, "b1")
        db.query(ImportBook).filter(ImportBook.external_id == "b1").update(
            {"suggestions": "not json"}, synchronize_session=False
        )
        db.commit()

        with pytest.raises(ImportValidationError):
            MappingRegistry(db, EntityKind.BOOK).get(test_import.id, "b1")

    def test_mapped_at_constraint(self, db: Session, test_import):
        """The table refuses an internal id without mapped_at."""
        add_user(db, test_import.id, "u1")
        with pytest.raises(IntegrityError):
            db.query(ImportUser).filter(ImportUser.external_id == "u1").update(
                {"internal_id": "lu-1"}, synchronize_session=False
            )
            db.commit()
        db.rollback()
