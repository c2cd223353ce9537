"""
Tests for the resolution ladder search.
"""

from __future__ import annotations

import pytest

from pdf_squeeze.errors import BackendExecutionFailed, DocumentUnreadable
from pdf_squeeze.search import CandidateAttempt, find_best_for_target

from conftest import SizedBackend


LADDER_SIZES = {220: 9000, 180: 7000, 150: 5200, 130: 4100, 110: 3000, 95: 2500}


def _leftovers(workdir, keep):
    return [p for p in workdir.iterdir() if p != keep and p.name != "input.pdf"]


# ═══════════════════════════════════════════════════════════════════════════════
# EARLY EXIT
# ═══════════════════════════════════════════════════════════════════════════════


class TestEarlyExit:
    """The first candidate within budget wins."""

    def test_stops_at_first_fit(self, tmp_path, pdf_path):
        backend = SizedBackend(LADDER_SIZES)
        outcome = find_best_for_target(pdf_path, 5500, backend, tmp_path, ladder=tuple(LADDER_SIZES))

        assert outcome.met is True
        assert outcome.attempt.quality == 150
        assert outcome.attempt.size == 5200
        assert backend.calls == [220, 180, 150]
        assert outcome.tried == 3

    def test_does_not_keep_searching_for_smaller(self, tmp_path, pdf_path):
        backend = SizedBackend(LADDER_SIZES)
        outcome = find_best_for_target(pdf_path, 100_000, backend, tmp_path, ladder=tuple(LADDER_SIZES))

        assert outcome.attempt.quality == 220
        assert backend.calls == [220]

    def test_exact_boundary_counts_as_fit(self, tmp_path, pdf_path):
        backend = SizedBackend(LADDER_SIZES)
        outcome = find_best_for_target(pdf_path, 7000, backend, tmp_path, ladder=tuple(LADDER_SIZES))
        assert outcome.met is True
        assert outcome.attempt.quality == 180

    def test_accepted_not_larger_than_any_earlier(self, tmp_path, pdf_path):
        backend = SizedBackend(LADDER_SIZES)
        outcome = find_best_for_target(pdf_path, 3100, backend, tmp_path, ladder=tuple(LADDER_SIZES))
        earlier = [LADDER_SIZES[q] for q in backend.calls[:-1]]
        assert all(outcome.size <= s for s in earlier)

    def test_only_winner_left_on_disk(self, tmp_path, pdf_path):
        backend = SizedBackend(LADDER_SIZES)
        outcome = find_best_for_target(pdf_path, 4500, backend, tmp_path, ladder=tuple(LADDER_SIZES))
        assert outcome.attempt.path.exists()
        assert _leftovers(tmp_path, outcome.attempt.path) == []


# ═══════════════════════════════════════════════════════════════════════════════
# TARGET NOT REACHED
# ═══════════════════════════════════════════════════════════════════════════════


class TestUnmetTarget:

    def test_returns_smallest_seen(self, tmp_path, pdf_path):
        backend = SizedBackend(LADDER_SIZES)
        outcome = find_best_for_target(pdf_path, 100, backend, tmp_path, ladder=tuple(LADDER_SIZES))

        assert outcome.met is False
        assert outcome.size == min(LADDER_SIZES.values())
        assert outcome.attempt.quality == 95
        assert outcome.tried == len(LADDER_SIZES)

    def test_smallest_even_when_ladder_not_monotonic(self, tmp_path, pdf_path):
        sizes = {200: 5000, 150: 3000, 100: 3500, 50: 4000}
        backend = SizedBackend(sizes)
        outcome = find_best_for_target(pdf_path, 10, backend, tmp_path, ladder=tuple(sizes))

        assert outcome.size == 3000
        assert outcome.attempt.quality == 150
        assert _leftovers(tmp_path, outcome.attempt.path) == []

    def test_unmet_target_leaves_only_closest(self, tmp_path, pdf_path):
        backend = SizedBackend(LADDER_SIZES)
        outcome = find_best_for_target(pdf_path, 100, backend, tmp_path, ladder=tuple(LADDER_SIZES))
        assert outcome.attempt.path.exists()
        assert _leftovers(tmp_path, outcome.attempt.path) == []

    def test_at_most_two_candidate_files(self, tmp_path, pdf_path):
        backend = SizedBackend(LADDER_SIZES)
        find_best_for_target(pdf_path, 100, backend, tmp_path, ladder=tuple(LADDER_SIZES))
        # One survivor plus the file being written
        assert max(backend.live_files_seen) <= 1


# ═══════════════════════════════════════════════════════════════════════════════
# FAILING CANDIDATES
# ═══════════════════════════════════════════════════════════════════════════════


class TestFailures:

    def test_failed_candidate_is_skipped(self, tmp_path, pdf_path):
        backend = SizedBackend(LADDER_SIZES, fail_at={180, 150})
        outcome = find_best_for_target(pdf_path, 5500, backend, tmp_path, ladder=tuple(LADDER_SIZES))

        assert outcome.attempt.quality == 130
        assert outcome.failed == 2
        assert backend.calls == [220, 180, 150, 130]

    def test_all_failed_raises(self, tmp_path, pdf_path):
        backend = SizedBackend(LADDER_SIZES, fail_at=set(LADDER_SIZES))
        with pytest.raises(BackendExecutionFailed):
            find_best_for_target(pdf_path, 5500, backend, tmp_path, ladder=tuple(LADDER_SIZES))

    def test_unreadable_propagates_and_cleans_up(self, tmp_path, pdf_path):
        class Breaks(SizedBackend):
            def compress(self, input_path, output_path, quality, timeout=None):
                if quality == 150:
                    raise DocumentUnreadable("broken")
                super().compress(input_path, output_path, quality, timeout)

        backend = Breaks(LADDER_SIZES)
        with pytest.raises(DocumentUnreadable):
            find_best_for_target(pdf_path, 10, backend, tmp_path, ladder=tuple(LADDER_SIZES))
        assert _leftovers(tmp_path, None) == []

    def test_default_ladder_from_backend(self, tmp_path, pdf_path):
        backend = SizedBackend({300: 50, 200: 40})
        outcome = find_best_for_target(pdf_path, 45, backend, tmp_path)
        assert outcome.attempt.quality == 200

    def test_rejects_bad_target(self, tmp_path, pdf_path):
        with pytest.raises(ValueError):
            find_best_for_target(pdf_path, 0, SizedBackend(LADDER_SIZES), tmp_path)


class TestCandidateAttempt:

    def test_discard_twice(self, tmp_path):
        path = tmp_path / "c.pdf"
        path.write_bytes(b"x")
        attempt = CandidateAttempt(quality=100, size=1, path=path)
        attempt.discard()
        attempt.discard()
        assert not path.exists()
