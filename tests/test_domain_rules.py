"""
Tests for the Share Registry, Version Ledger and Diff Engine

EXPLANATION FOR VIVA:
=====================
These rules are plain functions over in-memory Document objects. No session
is opened: a transient SQLAlchemy object behaves like a normal Python object
until it is added to a session.
"""

import pytest

from core.errors import (
    AlreadyShared, DuplicateMention, Forbidden, InvalidAccessLevel,
    InvalidInput, InvalidVersionIndex, NotShared, VersionNotFound,
)
from models.access import Principal
from models.diff import VersionRef, compute_diff, parse_version_ref
from models.document import Document
from models.share import AccessLevel, share, unshare
from models.version import append_version, get_version_at, get_versions

ALICE = Principal(id="u-alice", email="alice@example.com")
BOB = Principal(id="u-bob", email="bob@example.com")


def new_document(title="T1", content="C1", is_public=False):
    document = Document(
        title=title,
        content=content,
        author_id=ALICE.id,
        is_public=is_public,
        shares=[],
        mentions=[],
        versions=[],
    )
    append_version(document, ALICE.email)
    return document


def edit(document, title=None, content=None, editor="alice@example.com"):
    if title is not None:
        document.title = title
    if content is not None:
        document.content = content
    return append_version(document, editor)


# ==============================================================================
# SHARE REGISTRY
# ==============================================================================

class TestShareRegistry:

    def test_share_appends_entry_in_order(self):
        document = new_document()

        share(document, ALICE, "bob@example.com", "view")
        share(document, ALICE, "carol@example.com", "edit")

        assert [e.to_dict() for e in document.shares] == [
            {"email": "bob@example.com", "access": "view"},
            {"email": "carol@example.com", "access": "edit"},
        ]

    def test_share_normalises_email(self):
        document = new_document()

        share(document, ALICE, "  Bob@Example.com", "edit")

        assert document.shares[0].email == "bob@example.com"

    @pytest.mark.parametrize("access", ["admin", "", None, "VIEW"])
    def test_unknown_access_level_is_rejected(self, access):
        document = new_document()

        with pytest.raises(InvalidAccessLevel):
            share(document, ALICE, "bob@example.com", access)

        assert document.shares == []

    def test_only_author_can_share(self):
        document = new_document()
        share(document, ALICE, "bob@example.com", "edit")

        with pytest.raises(Forbidden):
            share(document, BOB, "carol@example.com", "view")

    def test_sharing_twice_is_a_conflict(self):
        """
        SCENARIO: Alice shares with Bob, then shares with BOB@example.com again
        THEN: The second call is refused and the list is unchanged
        """
        document = new_document()
        share(document, ALICE, "bob@example.com", "view")

        with pytest.raises(AlreadyShared):
            share(document, ALICE, "BOB@example.com", "edit")

        assert len(document.shares) == 1
        assert document.shares[0].access == "view"

    def test_unshare_of_unknown_email_is_a_conflict(self):
        with pytest.raises(NotShared):
            unshare(new_document(), ALICE, "nobody@example.com")

    def test_unshare_requires_author(self):
        document = new_document()
        share(document, ALICE, "bob@example.com", "view")

        with pytest.raises(Forbidden):
            unshare(document, BOB, "bob@example.com")

    def test_unshare_blank_email_is_invalid(self):
        with pytest.raises(InvalidInput):
            unshare(new_document(), ALICE, "  ")

    def test_share_then_unshare_restores_list(self):
        document = new_document()
        share(document, ALICE, "carol@example.com", "edit")
        before = {(e.email, e.access) for e in document.shares}

        share(document, ALICE, "bob@example.com", "view")
        unshare(document, ALICE, "bob@example.com")

        assert {(e.email, e.access) for e in document.shares} == before

    def test_access_level_parse(self):
        assert AccessLevel.parse("edit") is AccessLevel.EDIT
        with pytest.raises(InvalidAccessLevel):
            AccessLevel.parse("owner")


class TestMentions:

    def test_duplicate_mention_is_a_conflict(self):
        document = new_document()
        document.add_mention("bob@example.com")

        with pytest.raises(DuplicateMention):
            document.add_mention(" BOB@example.com ")

        assert document.mention_emails == ["bob@example.com"]

    def test_blank_mention_is_invalid(self):
        with pytest.raises(InvalidInput):
            new_document().add_mention("")


# ==============================================================================
# VERSION LEDGER
# ==============================================================================

class TestVersionLedger:

    def test_create_records_version_zero(self):
        document = new_document("T1", "C1")

        versions = get_versions(document)
        assert len(versions) == 1
        assert versions[0].version_index == 0
        assert (versions[0].title, versions[0].content) == ("T1", "C1")
        assert versions[0].editor == "alice@example.com"

    def test_each_edit_appends_the_state_after_it(self):
        """
        SCENARIO: Create then edit three times
        THEN: 4 versions, each holding the values in effect after its call
        """
        document = new_document("T0", "C0")
        edit(document, title="T1")
        edit(document, content="C2")
        edit(document, title="T3", content="C3", editor="bob@example.com")

        states = [(v.version_index, v.title, v.content) for v in get_versions(document)]
        assert states == [
            (0, "T0", "C0"),
            (1, "T1", "C0"),
            (2, "T1", "C2"),
            (3, "T3", "C3"),
        ]
        assert document.versions[3].editor == "bob@example.com"

    def test_snapshots_are_not_affected_by_later_edits(self):
        document = new_document("T0", "C0")
        first = get_version_at(document, 0)

        edit(document, title="changed")

        assert first.title == "T0"

    def test_none_content_is_stored_as_empty_string(self):
        document = new_document(content=None)

        assert document.versions[0].content == ""

    @pytest.mark.parametrize("index", [-1, "1", 1.0, True, None])
    def test_invalid_index(self, index):
        with pytest.raises(InvalidVersionIndex):
            get_version_at(new_document(), index)

    def test_index_past_end_is_not_found(self):
        with pytest.raises(VersionNotFound):
            get_version_at(new_document(), 1)


# ==============================================================================
# DIFF ENGINE
# ==============================================================================

class TestParseVersionRef:

    @pytest.mark.parametrize("raw,expected", [
        ("0", VersionRef.index(0)),
        (" 2 ", VersionRef.index(2)),
        (3, VersionRef.index(3)),
        ("current", VersionRef.current()),
    ])
    def test_valid_references(self, raw, expected):
        assert parse_version_ref(raw) == expected

    @pytest.mark.parametrize("raw", ["abc", "-1", "1.5", "", None, True, -4])
    def test_invalid_references(self, raw):
        with pytest.raises(InvalidVersionIndex):
            parse_version_ref(raw)

    def test_current_can_be_disallowed(self):
        with pytest.raises(InvalidVersionIndex):
            parse_version_ref("current", allow_current=False)


class TestComputeDiff:

    def test_diff_between_two_versions(self):
        document = new_document("T1", "C1")
        edit(document, title="T2", content="C2")

        diff = compute_diff(document, VersionRef.index(0), VersionRef.index(1))

        assert diff == {
            "version1": 0,
            "version2": 1,
            "titleDiff": {"from": "T1", "to": "T2"},
            "contentDiff": {"from": "C1", "to": "C2"},
        }

    def test_diff_against_current_uses_live_document(self):
        """
        SCENARIO: The live title differs from the last snapshot
        THEN: Comparing with "current" shows the live value
        """
        document = new_document("T1", "C1")
        document.title = "unsaved"

        diff = compute_diff(document, VersionRef.index(0), VersionRef.current())

        assert diff["version2"] == "current"
        assert diff["titleDiff"] == {"from": "T1", "to": "unsaved"}
        assert diff["contentDiff"] == {"from": "C1", "to": "C1"}

    def test_diff_is_reflexive(self):
        document = new_document("T1", "C1")
        edit(document, title="T2")

        for i in range(len(document.versions)):
            diff = compute_diff(document, VersionRef.index(i), VersionRef.index(i))
            assert diff["titleDiff"]["from"] == diff["titleDiff"]["to"]
            assert diff["contentDiff"]["from"] == diff["contentDiff"]["to"]

    def test_missing_version_is_not_found(self):
        with pytest.raises(VersionNotFound):
            compute_diff(new_document(), VersionRef.index(0), VersionRef.index(5))

    def test_old_side_cannot_be_current(self):
        with pytest.raises(InvalidVersionIndex):
            compute_diff(new_document(), VersionRef.current(), VersionRef.index(0))
