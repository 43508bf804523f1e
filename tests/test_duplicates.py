import uuid

import pytest
from sqlalchemy.exc import OperationalError

from filedesk.duplicates import DuplicateChecker, check_duplicates
from filedesk.errors import TransientCheckError
from filedesk.models import File, FileWorkspace, Workspace


async def _add_file(session, owner_id, workspace_id, name):
    record = File(owner_id=owner_id, name=name, storage_path=f"{owner_id}/x", size_bytes=1)
    session.add(record)
    await session.flush()
    session.add(FileWorkspace(
        file_id=record.id, workspace_id=workspace_id, owner_id=owner_id, name=name,
    ))
    await session.commit()
    return record


async def test_empty_scope_reports_nothing(db_session, owner_id, workspace_id):
    existing = await check_duplicates(
        db_session, owner_id, workspace_id, ["a.txt", "b.txt", "c.txt"],
    )
    assert existing == {}


async def test_empty_input_short_circuits(owner_id, workspace_id):
    class ExplodingSession:
        async def execute(self, *args, **kwargs):
            raise AssertionError("no query expected")

    assert await check_duplicates(ExplodingSession(), owner_id, workspace_id, []) == {}


async def test_returns_only_existing_names(db_session, owner_id, workspace_id):
    record = await _add_file(db_session, owner_id, workspace_id, "report.docx")

    existing = await check_duplicates(
        db_session, owner_id, workspace_id, ["report.docx", "report.docx", "other.pdf"],
    )
    assert existing == {"report.docx": record.id}


async def test_match_is_case_sensitive(db_session, owner_id, workspace_id):
    await _add_file(db_session, owner_id, workspace_id, "report.docx")

    assert await check_duplicates(db_session, owner_id, workspace_id, ["Report.docx"]) == {}


async def test_scoped_to_owner_and_workspace(db_session, owner_id, workspace_id):
    other_owner = uuid.uuid4()
    other_workspace = Workspace(owner_id=owner_id, name="Archive")
    db_session.add(other_workspace)
    await db_session.commit()

    await _add_file(db_session, other_owner, workspace_id, "theirs.pdf")
    await _add_file(db_session, owner_id, other_workspace.id, "archived.pdf")

    existing = await check_duplicates(
        db_session, owner_id, workspace_id, ["theirs.pdf", "archived.pdf"],
    )
    assert existing == {}


async def test_query_failure_is_transient(owner_id, workspace_id):
    class BrokenSession:
        async def execute(self, *args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("connection reset"))

    with pytest.raises(TransientCheckError):
        await check_duplicates(BrokenSession(), owner_id, workspace_id, ["a.txt"])


async def test_checker_opens_its_own_session(session_factory, db_session, owner_id, workspace_id):
    record = await _add_file(db_session, owner_id, workspace_id, "notes.md")
    checker = DuplicateChecker(session_factory)

    assert await checker(owner_id, workspace_id, ["notes.md", "new.md"]) == {"notes.md": record.id}
    assert await checker(owner_id, workspace_id, []) == {}
