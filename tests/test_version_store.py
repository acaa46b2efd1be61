#!/usr/bin/env python3
"""
ABOUTME: Unit tests for version_store.py
ABOUTME: Snapshots, restore target resolution and rollback proposals
"""

import sys
from pathlib import Path

# Add skills/claim-refine/scripts directory to path (must be before import)
_scripts_dir = Path(__file__).parent.parent / 'skills' / 'claim-refine' / 'scripts'
sys.path.insert(0, str(_scripts_dir))

from claim_model import ClaimElement, ElementVersion  # noqa: E402  # type: ignore[import-not-found]
from version_store import (  # noqa: E402  # type: ignore[import-not-found]
    NOTE_BEFORE_REFINEMENT,
    build_restore_proposal,
    describe_version,
    is_restore_request,
    resolve_restore_target,
    snapshot,
)


def make_versions(count):
    return tuple(
        ElementVersion(
            reasoning=f"reasoning {i + 1}",
            evidence=f"evidence {i + 1}",
            confidence=50 + i,
            flags=(f"flag {i + 1}",),
            timestamp="2024-05-01T10:00:0%d+00:00" % i,
            note=NOTE_BEFORE_REFINEMENT,
        )
        for i in range(count)
    )


class TestSnapshot:

    def test_appends_current_fields(self):
        element = ClaimElement(id="1.a", element="A sensor", evidence="E", reasoning="R",
                               confidence=70, flags=("weak",))
        updated = snapshot(element, "Before refinement", timestamp="2024-05-01T12:00:00+00:00")

        assert len(updated.versions) == 1
        version = updated.versions[0]
        assert (version.reasoning, version.evidence, version.confidence, version.flags) == \
            ("R", "E", 70, ("weak",))
        assert version.note == "Before refinement"
        assert version.timestamp == "2024-05-01T12:00:00+00:00"

    def test_does_not_mutate_original(self):
        element = ClaimElement(id="1", element="x")
        snapshot(element, "note")
        assert element.versions == ()

    def test_existing_entries_untouched(self):
        element = ClaimElement(id="1", element="x", versions=make_versions(2))
        updated = snapshot(element, "note")
        assert updated.versions[:2] == element.versions


class TestResolveRestoreTarget:

    def test_explicit_version_case_insensitive(self):
        assert resolve_restore_target(make_versions(3), "Restore Version v2") == 1

    def test_without_v_prefix(self):
        assert resolve_restore_target(make_versions(3), "please restore version 1") == 0

    def test_out_of_range_clamps_to_latest(self):
        assert resolve_restore_target(make_versions(3), "restore version v9") == 2
        assert resolve_restore_target(make_versions(3), "restore version v0") == 2

    def test_undo_phrases_target_latest(self):
        versions = make_versions(3)
        for text in ("undo that", "Revert the last change", "roll back please", "rollback"):
            assert resolve_restore_target(versions, text) == 2

    def test_explicit_version_wins_over_undo(self):
        assert resolve_restore_target(make_versions(3), "undo and restore version v1") == 0

    def test_empty_log(self):
        assert resolve_restore_target((), "restore version v1") is None
        assert resolve_restore_target((), "undo") is None

    def test_not_a_restore_request(self):
        assert resolve_restore_target(make_versions(2), "Strengthen the reasoning") is None

    def test_word_boundary(self):
        """'undone' and 'revertible' are not undo requests"""
        assert resolve_restore_target(make_versions(2), "nothing was undone here") is None
        assert not is_restore_request("this is not revertible")


class TestRestoreProposal:

    def test_pairs_current_with_target(self):
        element = ClaimElement(id="1", element="x", evidence="cur E", reasoning="cur R",
                               confidence=40, flags=("f",))
        target = make_versions(1)[0]
        proposal = build_restore_proposal(element, target)

        assert proposal.old_reasoning == "cur R"
        assert proposal.new_reasoning == "reasoning 1"
        assert proposal.old_evidence == "cur E"
        assert proposal.new_evidence == "evidence 1"
        assert proposal.new_confidence == 50
        assert proposal.new_flags == ("flag 1",)
        assert proposal.is_restore is True


class TestDescribeVersion:

    def test_label(self):
        version = make_versions(2)[1]
        assert describe_version(1, version) == "v2 (10:00:01, Before refinement)"

    def test_bad_timestamp(self):
        version = ElementVersion("r", "e", 10, (), "not-a-time", "")
        assert describe_version(0, version) == "v1 (not-a-time)"
