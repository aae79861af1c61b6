"""
PersonalPage Backend — Comment Ledger Unit Tests
==================================================

What we test:
    ✅ create() then list() shows the new comment first, with author fields
    ✅ list() is stable when nothing is written in between
    ✅ delete() only removes the caller's own comment
    ✅ Empty and overlong text are rejected
"""

import pytest

from personalpage.exceptions import UnauthorizedError, ValidationError
from personalpage.models.account import Account
from personalpage.services.comment_service import CommentLedger


@pytest.fixture
def ledger():
    return CommentLedger(max_length=50)


async def _account(db, username: str, avatar=None) -> Account:
    account = Account(username=username, password="not-a-real-hash", avatar=avatar)
    db.add(account)
    await db.flush()
    return account


class TestCreateAndList:

    @pytest.mark.asyncio
    async def test_new_comment_is_listed_first(self, ledger, db_session):
        alice = await _account(db_session, "alice", avatar="/uploads/a.png")
        await ledger.create(db_session, alice.id, "first")
        created = await ledger.create(db_session, alice.id, "  second  ")

        feed = await ledger.list(db_session)

        assert [c.content for c in feed] == ["second", "first"]
        assert feed[0].id == created.id
        assert feed[0].user_id == alice.id
        assert feed[0].username == "alice"
        assert feed[0].avatar == "/uploads/a.png"

    @pytest.mark.asyncio
    async def test_list_is_idempotent(self, ledger, db_session):
        alice = await _account(db_session, "alice")
        bob = await _account(db_session, "bob")
        for i in range(3):
            await ledger.create(db_session, alice.id, f"a{i}")
            await ledger.create(db_session, bob.id, f"b{i}")

        assert await ledger.list(db_session) == await ledger.list(db_session)

    @pytest.mark.asyncio
    async def test_empty_feed(self, ledger, db_session):
        assert await ledger.list(db_session) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "   ", "\n\t", None])
    async def test_rejects_blank_text(self, ledger, db_session, text):
        alice = await _account(db_session, "alice")
        with pytest.raises(ValidationError):
            await ledger.create(db_session, alice.id, text)

    @pytest.mark.asyncio
    async def test_rejects_overlong_text(self, ledger, db_session):
        alice = await _account(db_session, "alice")
        with pytest.raises(ValidationError):
            await ledger.create(db_session, alice.id, "x" * 51)
        created = await ledger.create(db_session, alice.id, "x" * 50)
        assert len(created.content) == 50

    @pytest.mark.asyncio
    async def test_unknown_author(self, ledger, db_session):
        with pytest.raises(UnauthorizedError):
            await ledger.create(db_session, 12345, "hello")


class TestDelete:

    @pytest.mark.asyncio
    async def test_non_author_cannot_delete(self, ledger, db_session):
        alice = await _account(db_session, "alice")
        bob = await _account(db_session, "bob")
        comment = await ledger.create(db_session, alice.id, "mine")

        assert await ledger.delete(db_session, bob.id, comment.id) is False
        assert [c.id for c in await ledger.list(db_session)] == [comment.id]

    @pytest.mark.asyncio
    async def test_author_deletes_own_comment(self, ledger, db_session):
        alice = await _account(db_session, "alice")
        keep = await ledger.create(db_session, alice.id, "keep")
        drop = await ledger.create(db_session, alice.id, "drop")

        assert await ledger.delete(db_session, alice.id, drop.id) is True
        assert [c.id for c in await ledger.list(db_session)] == [keep.id]

    @pytest.mark.asyncio
    async def test_missing_comment(self, ledger, db_session):
        alice = await _account(db_session, "alice")
        assert await ledger.delete(db_session, alice.id, 999) is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("comment_id", [0, -1, 2**31, 2**64])
    async def test_out_of_range_id(self, ledger, db_session, comment_id):
        alice = await _account(db_session, "alice")
        assert await ledger.delete(db_session, alice.id, comment_id) is False
