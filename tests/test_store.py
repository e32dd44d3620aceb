"""
Tests for the Document Store

EXPLANATION FOR VIVA:
=====================
These tests talk to the store directly (no agents) to check the things the
agents rely on: filters, the visible-set union, ordering, escaping of search
text, cascade delete, the optimistic lock and how database failures surface.
"""

from datetime import datetime, timedelta

import pytest

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import ConcurrentModification, ErrorCode, NotFound, StoreError
from models.access import Principal
from models.document import Document
from models.share import share
from models.store import DocumentFilter
from models.version import append_version

ALICE = Principal(id="u-alice", email="alice@example.com")
BOB = Principal(id="u-bob", email="bob@example.com")

BASE_TIME = datetime(2026, 1, 1, 12, 0, 0)


async def save_new(store, author, title, content="", is_public=False, minutes=0, shared_with=(), mentions=()):
    when = BASE_TIME + timedelta(minutes=minutes)
    async with store.open() as documents:
        await documents.ensure_user(author)
        document = Document(
            title=title, content=content, author_id=author.id, is_public=is_public,
            created_at=when, updated_at=when, shares=[], mentions=[], versions=[],
        )
        for email, access in shared_with:
            share(document, author, email, access)
        for email in mentions:
            document.add_mention(email)
        append_version(document, author.email, edited_at=when)
        await documents.create(document)
    return document.id


class TestFilters:

    @pytest.mark.asyncio
    async def test_each_filter_field(self, store):
        own = await save_new(store, ALICE, "own")
        public = await save_new(store, BOB, "public", is_public=True)
        shared = await save_new(store, BOB, "shared", shared_with=[("alice@example.com", "view")])
        mentioned = await save_new(store, BOB, "mentioned", mentions=["alice@example.com"])
        await save_new(store, BOB, "private")

        async with store.open() as documents:
            by_author = await documents.find(DocumentFilter(author_id=ALICE.id))
            by_public = await documents.find(DocumentFilter(is_public=True))
            by_share = await documents.find(DocumentFilter(shared_email="ALICE@example.com"))
            by_mention = await documents.find(DocumentFilter(mentioned_email="alice@example.com"))

        assert [d.id for d in by_author] == [own]
        assert [d.id for d in by_public] == [public]
        assert [d.id for d in by_share] == [shared]
        assert [d.id for d in by_mention] == [mentioned]

    @pytest.mark.asyncio
    async def test_visible_set_is_a_union_without_duplicates(self, store):
        """
        SCENARIO: A document is Alice's own AND public AND mentions her
        THEN: It appears once; Bob's private document does not appear
        """
        both = await save_new(store, ALICE, "mine and public", is_public=True,
                              mentions=["alice@example.com"], minutes=1)
        shared = await save_new(store, BOB, "shared", shared_with=[("alice@example.com", "edit")], minutes=2)
        await save_new(store, BOB, "bob private", minutes=3)

        async with store.open() as documents:
            found = await documents.find_any(DocumentFilter.accessible_to(ALICE))

        assert [d.id for d in found] == [shared, both], "newest update first"

    @pytest.mark.asyncio
    async def test_text_search_is_case_insensitive_on_title_or_content(self, store):
        title_hit = await save_new(store, ALICE, "Quarterly REPORT", minutes=1)
        content_hit = await save_new(store, ALICE, "Notes", content="see the report", minutes=2)
        await save_new(store, ALICE, "Unrelated", content="nothing here", minutes=3)

        async with store.open() as documents:
            found = await documents.find_any(DocumentFilter.accessible_to(ALICE), text="report")

        assert [d.id for d in found] == [content_hit, title_hit]

    @pytest.mark.asyncio
    async def test_search_text_wildcards_are_literal(self, store):
        hit = await save_new(store, ALICE, "Growth 100%")
        await save_new(store, ALICE, "Growth 1000")

        async with store.open() as documents:
            found = await documents.find_any(DocumentFilter.accessible_to(ALICE), text="100%")
            underscore = await documents.find_any(DocumentFilter.accessible_to(ALICE), text="_")

        assert [d.id for d in found] == [hit]
        assert underscore == []

    @pytest.mark.asyncio
    async def test_text_search_folds_non_ascii_case(self, store):
        umlaut = await save_new(store, ALICE, "Über den Plan", minutes=1)
        sharp_s = await save_new(store, ALICE, "Notes", content="HAUPTSTRASSE 5", minutes=2)

        async with store.open() as documents:
            by_umlaut = await documents.find_any(DocumentFilter.accessible_to(ALICE), text="über")
            by_sharp_s = await documents.find_any(DocumentFilter.accessible_to(ALICE), text="hauptstraße")

        assert [d.id for d in by_umlaut] == [umlaut]
        assert [d.id for d in by_sharp_s] == [sharp_s]

    @pytest.mark.asyncio
    async def test_readable_set_leaves_out_mention_only_documents(self, store):
        own = await save_new(store, ALICE, "own", minutes=1)
        await save_new(store, BOB, "mentions alice", mentions=["alice@example.com"], minutes=2)

        async with store.open() as documents:
            readable = await documents.find_any(DocumentFilter.readable_by(ALICE))
            discoverable = await documents.find_any(DocumentFilter.accessible_to(ALICE))

        assert [d.id for d in readable] == [own]
        assert len(discoverable) == 2

    @pytest.mark.asyncio
    async def test_find_any_without_criteria_is_empty(self, store):
        await save_new(store, ALICE, "anything", is_public=True)

        async with store.open() as documents:
            assert await documents.find_any([]) == []


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_require_missing_document_raises_not_found(self, store):
        async with store.open() as documents:
            assert await documents.find_by_id("missing") is None
            with pytest.raises(NotFound):
                await documents.require("missing")

    @pytest.mark.asyncio
    async def test_loaded_document_is_complete(self, store):
        document_id = await save_new(
            store, ALICE, "T", content="C",
            shared_with=[("bob@example.com", "edit")], mentions=["carol@example.com"]
        )

        async with store.open() as documents:
            document = await documents.require(document_id)
            author_email = await documents.get_user_email(document.author_id)

        data = document.to_dict(include_versions=True, author_email=author_email)
        assert data["authorEmail"] == "alice@example.com"
        assert data["sharedWith"] == [{"email": "bob@example.com", "access": "edit"}]
        assert data["mentions"] == ["carol@example.com"]
        assert [v["index"] for v in data["versions"]] == [0]
        assert data["editVersion"] == 1

    @pytest.mark.asyncio
    async def test_delete_removes_document_and_history(self, store):
        document_id = await save_new(store, ALICE, "T", shared_with=[("bob@example.com", "view")])

        async with store.open() as documents:
            await documents.delete_one(await documents.require(document_id))

        async with store.open() as documents:
            assert await documents.find_by_id(document_id) is None
            assert await documents.find(DocumentFilter(shared_email="bob@example.com")) == []

    @pytest.mark.asyncio
    async def test_ensure_user_refreshes_email(self, store):
        async with store.open() as documents:
            await documents.ensure_user(ALICE)
            await documents.save(None)

        renamed = Principal(id=ALICE.id, email="Alice.New@example.com")
        async with store.open() as documents:
            await documents.ensure_user(renamed)
            await documents.save(None)

        async with store.open() as documents:
            assert await documents.get_user_email(ALICE.id) == "alice.new@example.com"


class TestOptimisticLock:

    @pytest.mark.asyncio
    async def test_slower_writer_is_rejected(self, store):
        """
        SCENARIO: Two sessions load version 1 of the same document
        WHEN: The first one saves, then the second one saves
        THEN: The second save fails with ConcurrentModification and the
              first writer's title survives
        """
        document_id = await save_new(store, ALICE, "original")

        async with store.open() as first, store.open() as second:
            mine = await first.require(document_id)
            theirs = await second.require(document_id)

            theirs.title = "theirs"
            theirs.updated_at = datetime.utcnow()
            append_version(theirs, "bob@example.com")
            await second.save(theirs)

            mine.title = "mine"
            mine.updated_at = datetime.utcnow()
            append_version(mine, "alice@example.com")
            with pytest.raises(ConcurrentModification):
                await first.save(mine)

        async with store.open() as documents:
            stored = await documents.require(document_id)

        assert stored.title == "theirs"
        assert stored.edit_version == 2
        assert [(v.version_index, v.title) for v in stored.versions] == [(0, "original"), (1, "theirs")]


class TestStoreFailures:

    @pytest.mark.asyncio
    async def test_failed_query_is_a_store_error(self, store, monkeypatch):
        async def broken_execute(self, *args, **kwargs):
            raise SQLAlchemyError("disk I/O error")

        monkeypatch.setattr(AsyncSession, "execute", broken_execute)

        async with store.open() as documents:
            with pytest.raises(StoreError) as excinfo:
                await documents.find_any(DocumentFilter.accessible_to(ALICE))

        assert excinfo.value.code == ErrorCode.STORE_ERROR

    @pytest.mark.asyncio
    async def test_failed_commit_is_a_store_error_not_a_conflict(self, store, monkeypatch):
        async def broken_commit(self):
            raise SQLAlchemyError("database is locked")

        monkeypatch.setattr(AsyncSession, "commit", broken_commit)

        with pytest.raises(StoreError):
            await save_new(store, ALICE, "never stored")

        monkeypatch.undo()
        async with store.open() as documents:
            assert await documents.find(DocumentFilter(author_id=ALICE.id)) == []
