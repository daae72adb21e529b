"""Tests for the majority-vote stability filter."""

import itertools

import pytest

from client_card_control.classifier import GestureLabel
from client_card_control.session import SessionRegistry, UnknownSession
from client_card_control.stability import HistoryWindow, StabilityFilter, majority_label

N = GestureLabel.NONE
H = GestureLabel.HIGHER
L = GestureLabel.LOWER
R = GestureLabel.RESET


def window_of(*labels):
    window = HistoryWindow()
    for label in labels:
        window.append(label)
    return window


class TestHistoryWindow:
    def test_evicts_oldest_past_capacity(self):
        window = window_of(H, L, L, L, L, R)
        assert len(window) == 5
        assert window.labels() == [L, L, L, L, R]

    def test_counts_keep_first_appearance_order(self):
        window = window_of(L, H, L, N)
        assert list(window.counts()) == [L, H, N]


class TestMajorityLabel:
    def test_three_of_five_wins(self):
        assert majority_label(window_of(H, N, H, L, H)) is H

    def test_two_two_split_is_none(self):
        assert majority_label(window_of(H, L, N, H, L)) is N

    def test_none_majority_is_never_returned_as_gesture(self):
        assert majority_label(window_of(N, N, N, H, H)) is N

    def test_short_window(self):
        assert majority_label(window_of(R, R)) is N
        assert majority_label(window_of(R, R, R)) is R

    def test_never_returns_label_absent_from_window(self):
        for combo in itertools.product((N, H, L, R), repeat=5):
            result = majority_label(window_of(*combo))
            assert result is N or result in combo


class TestStabilityFilter:
    def setup_method(self):
        self.registry = SessionRegistry()
        self.registry.create("a")
        self.registry.create("b")
        self.filter = StabilityFilter(self.registry)

    def test_stabilizes_on_third_vote(self):
        assert self.filter.observe("a", H) is N
        assert self.filter.observe("a", H) is N
        assert self.filter.observe("a", H) is H

    def test_sessions_do_not_share_windows(self):
        self.filter.observe("a", H)
        self.filter.observe("a", H)
        assert self.filter.observe("b", H) is N
        assert self.filter.observe("a", H) is H

    def test_reset_clears_window(self):
        self.filter.observe("a", L)
        self.filter.observe("a", L)
        self.filter.reset("a")
        assert self.filter.observe("a", L) is N

    def test_old_votes_age_out(self):
        for label in (H, H, H, L, L):
            self.filter.observe("a", label)
        # Window is now H, H, L, L, L
        assert self.filter.observe("a", L) is L

    def test_unknown_session(self):
        with pytest.raises(UnknownSession):
            self.filter.observe("missing", H)
