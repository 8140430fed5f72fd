"""Unit tests for attempt consensus, representation merging and reliability."""
import pytest

from coinreader.core.entities import CoinResult, CoinSide, LineValue, MatchOutcome
from coinreader.services.consensus import (
    invert_sides, is_reliable, merge_representations, reliability_adjusted,
    resolve_attempts, resolve_candidate_evidence,
)


def front(confidence):
    return MatchOutcome(CoinSide.FRONT, confidence)


def back(confidence):
    return MatchOutcome(CoinSide.BACK, confidence)


def reading(*confidences, side=CoinSide.FRONT):
    return [CoinResult(6 - i, side, c) for i, c in enumerate(confidences)]


class TestCandidateEvidence:
    """Evidence totals to a per-slot answer."""

    def test_clear_majority(self):
        outcome = resolve_candidate_evidence(2.2, 0.7, 3, 1)
        assert outcome.side is CoinSide.FRONT
        assert outcome.confidence == pytest.approx(2.2 / 2.9)

    def test_close_race_is_uncertain(self):
        outcome = resolve_candidate_evidence(1.1, 1.0, 1, 1)
        assert outcome.side is CoinSide.UNCERTAIN
        assert outcome.confidence == pytest.approx(1.1 / 2.1)

    def test_single_supporting_attempt_is_not_enough(self):
        assert resolve_candidate_evidence(0.0, 0.9, 0, 1).side is CoinSide.UNCERTAIN

    def test_no_evidence(self):
        assert resolve_candidate_evidence(0.0, 0.0, 0, 0).side is CoinSide.UNCERTAIN


class TestResolveAttempts:

    def test_majority_of_attempts(self):
        outcome = resolve_attempts([front(0.8), front(0.7), back(0.9)])
        assert outcome.side is CoinSide.FRONT
        assert outcome.confidence == pytest.approx(1.5 / 2.4)

    def test_weak_decisive_attempts_are_downgraded(self):
        assert reliability_adjusted(front(0.5)).side is CoinSide.UNCERTAIN
        assert reliability_adjusted(front(0.7)).side is CoinSide.FRONT
        assert resolve_attempts([front(0.5), front(0.55)]).side is CoinSide.UNCERTAIN

    def test_no_decisive_evidence(self):
        assert resolve_attempts([MatchOutcome.invalid(), MatchOutcome.uncertain(0.4)]).side is CoinSide.UNCERTAIN
        assert resolve_attempts([MatchOutcome.invalid(), MatchOutcome.invalid()]).side is CoinSide.INVALID
        assert resolve_attempts([]).side is CoinSide.INVALID


class TestMergeRepresentations:
    """Descriptor answer versus feature-print answer for one crop."""

    def test_agreement_averages(self):
        merged = merge_representations(front(0.8), front(0.7))
        assert merged.side is CoinSide.FRONT
        assert merged.confidence == pytest.approx(0.75)

    def test_disagreement_needs_a_clear_lead(self):
        assert merge_representations(front(0.6), back(0.75)) == back(0.75)
        assert merge_representations(front(0.9), back(0.7)) == front(0.9)
        merged = merge_representations(front(0.7), back(0.72))
        assert merged.side is CoinSide.UNCERTAIN
        assert merged.confidence == pytest.approx(0.72)

    def test_descriptor_alone_must_be_strong(self):
        assert merge_representations(front(0.85), MatchOutcome.uncertain(0.5)) == front(0.85)
        assert merge_representations(front(0.7), MatchOutcome.invalid()).side is CoinSide.UNCERTAIN

    def test_feature_print_alone_is_accepted(self):
        assert merge_representations(MatchOutcome.uncertain(0.6), back(0.64)) == back(0.64)

    def test_neither_decisive_prefers_uncertain_over_invalid(self):
        merged = merge_representations(MatchOutcome.invalid(), MatchOutcome.uncertain(0.3))
        assert merged.side is CoinSide.UNCERTAIN

    def test_without_feature_print(self):
        assert merge_representations(front(0.6), None) == front(0.6)


class TestReliability:

    def test_uniform_reading_is_reliable(self):
        assert is_reliable(reading(0.7, 0.7, 0.7, 0.7, 0.7, 0.7))

    def test_one_weak_slot_is_tolerated(self):
        assert is_reliable(reading(0.5, 0.8, 0.8, 0.8, 0.8, 0.8))
        assert not is_reliable(reading(0.5, 0.5, 0.9, 0.9, 0.9, 0.9))

    def test_low_mean_is_unreliable(self):
        assert not is_reliable(reading(0.6, 0.6, 0.6, 0.6, 0.6, 0.6))

    def test_any_undecided_slot_is_unreliable(self):
        results = reading(0.9, 0.9, 0.9, 0.9, 0.9, 0.9)
        results[2].update(CoinSide.UNCERTAIN, 0.9)
        assert not is_reliable(results)
        assert not is_reliable([])


class TestInvertSides:

    def test_swaps_decisive_results_only(self):
        results = [CoinResult(2, CoinSide.FRONT, 0.8), CoinResult(1, CoinSide.UNCERTAIN, 0.4)]
        invert_sides(results)
        assert results[0].side is CoinSide.BACK
        assert results[0].line_value is LineValue.YANG
        assert results[0].confidence == pytest.approx(0.8)
        assert results[1].side is CoinSide.UNCERTAIN
