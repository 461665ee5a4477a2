from __future__ import annotations

from datetime import date, datetime, timezone

import pytest
from pydantic import ValidationError

from trip_curator.errors import ConflictError, NotFoundError, SchemaError
from trip_curator.storage import SessionRepository

NOW = datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)
DATES = {"start": date(2026, 4, 1), "end": date(2026, 4, 14)}


def test_same_inputs_yield_distinct_session_ids(session_repository: SessionRepository) -> None:
    first = session_repository.create(
        destinations=["Tokyo", "Kyoto"], date_range=DATES, interests=["food"], now=NOW
    )
    second = session_repository.create(
        destinations=["Tokyo", "Kyoto"], date_range=DATES, interests=["food"], now=NOW
    )
    assert first.session_id == "20260301-tokyo-kyoto-food"
    assert second.session_id == "20260301-tokyo-kyoto-food-2"
    assert first.title == "Tokyo, Kyoto"
    assert session_repository.list_ids() == [first.session_id, second.session_id]


def test_explicit_existing_id_conflicts(session_repository: SessionRepository) -> None:
    session_repository.create(destinations=["Lisbon"], date_range=DATES, interests=["tiles"], session_id="lisbon")
    with pytest.raises(ConflictError):
        session_repository.create(destinations=["Porto"], date_range=DATES, interests=["wine"], session_id="lisbon")


def test_invalid_session_does_not_leave_a_directory(session_repository: SessionRepository) -> None:
    with pytest.raises(ValidationError):
        session_repository.create(
            destinations=["Tokyo"],
            date_range={"start": date(2026, 4, 10), "end": date(2026, 4, 1)},
            interests=["food"],
            session_id="bad-dates",
        )
    assert not session_repository.session_dir("bad-dates").exists()


def test_load_roundtrip_and_missing(session_repository: SessionRepository, tokyo_session) -> None:
    assert session_repository.load(tokyo_session.session_id) == tokyo_session
    with pytest.raises(NotFoundError):
        session_repository.load("20990101-nowhere")


def test_load_rejects_invalid_document(session_repository: SessionRepository, tokyo_session) -> None:
    session_repository.session_path(tokyo_session.session_id).write_text('{"sessionId": 1}', encoding="utf-8")
    with pytest.raises(SchemaError):
        session_repository.load(tokyo_session.session_id)


def test_archive_hides_session_and_is_idempotent(session_repository: SessionRepository, tokyo_session) -> None:
    archived = session_repository.archive(tokyo_session.session_id, now=NOW)
    assert archived.is_archived
    again = session_repository.archive(tokyo_session.session_id)
    assert again.archived_at == archived.archived_at
    assert session_repository.list() == []
    assert [s.session_id for s in session_repository.list(include_archived=True)] == [tokyo_session.session_id]
    assert not session_repository.unarchive(tokyo_session.session_id).is_archived


def test_run_ids_are_unique_and_recorded(session_repository: SessionRepository, tokyo_session) -> None:
    sid = tokyo_session.session_id
    first = session_repository.allocate_run_id(sid, now=NOW)
    second = session_repository.allocate_run_id(sid, now=NOW)
    assert first == "20260301-093000"
    assert second == "20260301-093000-2"
    assert session_repository.list_runs(sid) == [first, second]
    assert session_repository.allocate_run_id(sid, mode="Full Discovery", now=NOW) == "20260301-093000-full-discovery"
    assert session_repository.record_run(sid, second).last_run_id == second
