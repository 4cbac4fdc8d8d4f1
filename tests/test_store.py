"""Tests for the transactional state store: ordering, lifecycle and persistence."""

import threading

import pytest
from pydantic import ValidationError

from core.exceptions import (
    NoActiveRound,
    PersistenceError,
    RoundAlreadyActive,
    RoundMismatch,
)
from core.persistence import InMemoryStateRepository
from core.store import AuctionStateStore


def start(store, item="Player A", price=1, who=("u1", "U1")):
    return store.start_round(item, {}, price, who[0], who[1])


class TestScenarios:

    def test_start_bid_and_auto_close(self, store, clock):
        store.read_state("u1", "U1")

        started = start(store)
        snapshot = store.read_state("u1", "U1")
        assert started.round_id == 1
        assert snapshot.current.amount == 1
        assert snapshot.current.leader_name == "U1"

        placed = store.place_bid(5, started.round_id, "u2", "U2")
        snapshot = store.read_state("u2", "U2")
        assert placed.amount == 6
        assert snapshot.current.leader_name == "U2"
        assert [e.seq for e in snapshot.bid_log] == [1, 2]
        bids_before_close = list(snapshot.bid_log)

        clock.advance(6)
        snapshot = store.read_state("u1", "U1")

        assert snapshot.current is None
        assert snapshot.bid_log == []
        assert len(snapshot.history) == 1
        entry = snapshot.history[0]
        assert entry.final_amount == 6
        assert entry.winner_name == "U2"
        assert entry.bids == bids_before_close

    def test_stale_bid_after_auto_close_is_not_applied_to_the_next_round(self, store, clock):
        started = start(store)
        clock.advance(6)
        store.read_state("screen", "Screen")

        with pytest.raises(NoActiveRound):
            store.place_bid(5, started.round_id, "u2", "U2")

        start(store, item="Player B")
        with pytest.raises(RoundMismatch):
            store.place_bid(5, started.round_id, "u2", "U2")

        snapshot = store.read_state()
        assert snapshot.current.round_id == 2
        assert snapshot.current.amount == 1


class TestTransactions:

    def test_start_while_active_never_mutates(self, store, repository):
        start(store)
        before = store.read_state()
        saves = repository.saves

        with pytest.raises(RoundAlreadyActive):
            start(store, item="Player B", who=("u9", "U9"))

        assert repository.saves == saves
        assert store.read_state() == before

    def test_round_zero_bids_against_whatever_is_active(self, store):
        start(store)
        assert store.place_bid(1, 0, "u2", "U2").amount == 2

    def test_failed_fn_leaves_state_untouched(self, store, repository):
        start(store)
        saves = repository.saves

        def broken(state):
            state.current.amount = 999
            state.next_seq = 500
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            store.transact(broken)

        assert repository.saves == saves
        snapshot = store.read_state()
        assert snapshot.current.amount == 1
        assert snapshot.next_seq == 2

    def test_persist_failure_keeps_previous_state(self, store, repository):
        started = start(store)
        repository.fail = True

        with pytest.raises(PersistenceError):
            store.place_bid(5, started.round_id, "u2", "U2")

        repository.fail = False
        snapshot = store.read_state()
        assert snapshot.current.amount == 1
        assert snapshot.current.leader_name == "U1"
        assert len(snapshot.bid_log) == 1

        placed = store.place_bid(5, started.round_id, "u2", "U2")
        assert placed.seq == 2

    def test_unchanged_reads_are_not_persisted(self, store, repository, clock):
        store.read_state()
        saves = repository.saves

        clock.advance(0.5)
        store.read_state()

        assert repository.saves == saves

    def test_mutated_flag_forces_a_save(self, store, repository):
        saves = repository.saves
        assert store.transact(lambda state: ("ok", True)) == "ok"
        assert repository.saves == saves + 1

    def test_snapshot_hides_housekeeping_and_is_frozen(self, store):
        snapshot = store.read_state()

        assert "last_checked_at" not in snapshot.model_dump()
        with pytest.raises(ValidationError):
            snapshot.next_seq = 99

    def test_snapshot_nested_values_are_read_only(self, store):
        start(store)
        snapshot = store.read_state("u1", "U1")

        with pytest.raises(ValidationError):
            snapshot.presence["u1"].participant_name = "Someone else"
        with pytest.raises(ValidationError):
            snapshot.presence["u1"].last_seen_at = 10 ** 9
        with pytest.raises(ValidationError):
            snapshot.current.amount = 999
        with pytest.raises(ValidationError):
            snapshot.bid_log[0].amount_after = 999

    def test_editing_snapshot_containers_does_not_reach_the_store(self, store, clock):
        start(store)
        snapshot = store.read_state("u1", "U1")

        snapshot.presence.clear()
        snapshot.bid_log.clear()
        snapshot.current.metadata["team"] = "Milan"

        fresh = store.read_state()
        assert set(fresh.presence) == {"u1"}
        assert len(fresh.bid_log) == 1
        assert fresh.current.metadata == {}

        clock.advance(100)
        assert store.read_state().presence == {}

    def test_poll_countdown_uses_the_transaction_clock(self, store, clock):
        started = start(store)
        clock.advance(3)
        store.place_bid(5, started.round_id, "u2", "U2")

        snapshot, closes_in = store.poll("u1", "U1")
        assert closes_in == 5.0
        assert snapshot.current.amount == 6

        clock.advance(1.5)
        _, closes_in = store.poll("u1", "U1")
        assert closes_in == 3.5

    def test_poll_countdown_never_exceeds_timeout(self, repository, settings, clock):
        class TickingClock(type(clock)):
            def now(self):
                self.t += 0.25
                return self.t

        ticking = TickingClock()
        store = AuctionStateStore(repository, settings, clock=ticking)
        started = start(store)
        store.place_bid(1, started.round_id, "u2", "U2")

        _, closes_in = store.poll()

        assert 0.0 <= closes_in <= settings.idle_timeout_seconds

    def test_poll_without_round_has_no_countdown(self, store):
        _, closes_in = store.poll()
        assert closes_in is None


class TestTimedChecks:

    def test_idle_close_happens_on_next_read(self, store, clock):
        start(store)
        store.read_state()

        clock.advance(5.5)
        snapshot = store.read_state()
        assert snapshot.current is None

    def test_throttle_window_defers_close(self, store, clock):
        start(store)
        clock.advance(4.5)
        store.read_state()

        clock.advance(0.8)
        assert store.read_state().current is not None

        clock.advance(0.3)
        assert store.read_state().current is None

    def test_each_close_appends_exactly_one_history_entry(self, store, clock):
        start(store)
        clock.advance(6)
        store.read_state()
        clock.advance(2)
        store.read_state()

        assert len(store.read_state().history) == 1

    def test_expired_presence_disappears(self, store, clock):
        store.read_state("u1", "U1")
        clock.advance(0.5)
        snapshot = store.read_state("u2", "U2")
        assert set(snapshot.presence) == {"u1", "u2"}

        clock.advance(3.0)
        store.read_state("u2", "U2")
        clock.advance(2.5)
        snapshot = store.read_state("u2", "U2")

        assert set(snapshot.presence) == {"u2"}

    def test_expired_presence_hidden_even_when_sweep_is_throttled(
        self, repository, settings, clock
    ):
        settings.check_interval_seconds = 100.0
        store = AuctionStateStore(repository, settings, clock=clock)
        store.read_state("u1", "U1")

        clock.advance(6)
        snapshot = store.read_state("u2", "U2")

        assert set(snapshot.presence) == {"u2"}

    def test_explicit_now_is_used(self, store, clock):
        start(store)
        snapshot = store.read_state(now=clock.now() + 10)
        assert snapshot.current is None


class TestConcurrency:

    def test_concurrent_bids_get_unique_increasing_seqs(self, store):
        start(store)
        results = []
        errors = []
        results_lock = threading.Lock()

        def bidder(n):
            for _ in range(25):
                try:
                    placed = store.place_bid(1, 1, f"u{n}", f"U{n}")
                except Exception as e:
                    errors.append(e)
                    return
                with results_lock:
                    results.append(placed.seq)

        threads = [threading.Thread(target=bidder, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(results) == len(set(results)) == 200

        snapshot = store.read_state()
        seqs = [e.seq for e in snapshot.bid_log]
        assert seqs == sorted(seqs)
        assert len(set(seqs)) == len(seqs) == 201
        assert snapshot.current.amount == 1 + 200
        amounts = [e.amount_after for e in snapshot.bid_log]
        assert amounts == sorted(amounts)

    def test_concurrent_starts_allow_exactly_one_round(self, store):
        outcomes = []
        outcomes_lock = threading.Lock()

        def starter(n):
            try:
                start(store, item=f"Player {n}", who=(f"u{n}", f"U{n}"))
                outcome = "started"
            except RoundAlreadyActive:
                outcome = "rejected"
            with outcomes_lock:
                outcomes.append(outcome)

        threads = [threading.Thread(target=starter, args=(n,)) for n in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count("started") == 1
        assert outcomes.count("rejected") == 9
        snapshot = store.read_state()
        assert snapshot.next_seq == 2
        assert snapshot.next_round_id == 2


class TestRecovery:

    def test_recover_from_sql(self, sql_repository, settings, clock):
        store = AuctionStateStore(sql_repository, settings, clock=clock)
        started = start(store)
        store.place_bid(10, started.round_id, "u2", "U2")
        store.read_state("u2", "U2")

        restarted_clock = type(clock)(start=5.0)
        recovered = AuctionStateStore.recover(sql_repository, settings, clock=restarted_clock)
        snapshot = recovered.read_state()

        assert snapshot.next_seq == 3
        assert snapshot.current.amount == 11
        assert snapshot.current.last_event_at == 5.0
        assert snapshot.presence == {}

        placed = recovered.place_bid(1, started.round_id, "u3", "U3")
        assert placed.seq == 3

    def test_recovered_round_still_auto_closes(self, sql_repository, settings, clock):
        store = AuctionStateStore(sql_repository, settings, clock=clock)
        start(store)

        recovered = AuctionStateStore.recover(sql_repository, settings, clock=clock)
        clock.advance(6)
        snapshot = recovered.read_state()

        assert snapshot.current is None
        assert snapshot.history[0].item == "Player A"

    def test_recover_without_saved_state(self, settings, clock):
        store = AuctionStateStore.recover(InMemoryStateRepository(), settings, clock=clock)
        snapshot = store.read_state()

        assert snapshot.next_seq == 1
        assert snapshot.current is None
        assert snapshot.history == []

    def test_history_survives_restart(self, sql_repository, settings, clock):
        store = AuctionStateStore(sql_repository, settings, clock=clock)
        start(store)
        clock.advance(6)
        store.read_state()

        recovered = AuctionStateStore.recover(sql_repository, settings, clock=clock)
        history = recovered.read_state().history

        assert len(history) == 1
        assert history[0].bids[0].note == "START"
