"""
Auction State Store：拍賣狀態唯一的真實來源

職責：
1. 持有整個聚合（AuctionState），並用一把鎖序列化所有讀寫
2. 提供 transact()：在工作副本上執行、成功寫入後才替換
3. 組合 RoundStateMachine 與 PresenceTracker，對外提供
   start_round / place_bid / read_state

原則：
- 一把粗粒度的鎖：聚合很小、transaction 很短，正確性比並行度重要
- 全有或全無：fn 拋異常或寫入失敗時，記憶體裡的狀態完全不變
- 不可重入：transaction 內不能再呼叫 store
"""
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Tuple
import logging
import threading

from core.clock import SystemClock
from core.exceptions import PersistenceError
from core.presence import PresenceTracker
from core.state import (
    AuctionState,
    AuctionStateSnapshot,
    PlacedBid,
    StartedRound
)
from core.state_machine import RoundStateMachine
from services.countdown_service import seconds_until_close

logger = logging.getLogger(__name__)

TransactionFn = Callable[[AuctionState], Tuple[Any, bool]]


class AuctionStateStore:

    def __init__(self, repository, settings, clock=None, state: Optional[AuctionState] = None):
        self.repository = repository
        self.settings = settings
        self.clock = clock or SystemClock(settings.timezone)

        self.machine = RoundStateMachine(
            allowed_increments=settings.allowed_increments,
            idle_timeout=settings.idle_timeout_seconds
        )
        self.presence = PresenceTracker(
            refresh_seconds=settings.presence_refresh_seconds,
            expiry_seconds=settings.presence_expiry_seconds
        )

        self._lock = threading.Lock()
        self._state = state if state is not None else AuctionState()

    @classmethod
    def recover(cls, repository, settings, clock=None) -> "AuctionStateStore":
        """
        從 repository 還原聚合（沒有就建立新的）

        單調時鐘在重啟後會歸零，所以：
        - 進行中回合的 last_event_at 重設為現在（重新給一個完整的 idle 視窗）
        - presence 全部清掉（本來就是近似值，客戶端下一次輪詢就會補回）
        - 節流時間重設
        """
        store = cls(repository, settings, clock=clock)
        state = repository.load()
        if state is None:
            logger.info("No persisted auction state, starting fresh")
            return store

        now = store.clock.now()
        if state.current is not None:
            state.current.last_event_at = now
        state.presence = {}
        state.last_checked_at = None
        store._state = state

        logger.info(
            f"Recovered auction state: next_seq={state.next_seq}, "
            f"status={state.status.value}, history={len(state.history)} rounds"
        )
        return store

    def transact(self, fn: TransactionFn) -> Any:
        """
        執行一個 exclusive transaction

        流程：
        1. 取得鎖
        2. 深拷貝目前狀態作為工作副本，交給 fn
        3. fn 回報 mutated 或副本內容有變 -> 寫入 repository
        4. 寫入成功才把副本換成目前狀態

        參數：
            fn: (state) -> (result, mutated)

        返回：
            fn 的 result

        異常：
            fn 拋出的任何異常（狀態不變）
            PersistenceError: 寫入失敗（狀態不變）
        """
        with self._lock:
            working = self._state.model_copy(deep=True)
            result, mutated = fn(working)

            if mutated or working != self._state:
                try:
                    self.repository.save(working)
                except Exception as e:
                    logger.error(f"Failed to persist auction state: {e}", exc_info=True)
                    raise PersistenceError(f"Unable to save auction state: {e}") from e
                self._state = working

            return result

    def start_round(
        self,
        item: str,
        metadata: Optional[Dict[str, str]],
        start_price: int,
        initiator_id: str,
        initiator_name: str
    ) -> StartedRound:
        def _start(state: AuctionState):
            round_id, seq = self.machine.start_round(
                state,
                item=item,
                metadata=metadata,
                start_price=start_price,
                initiator_id=initiator_id,
                initiator_name=initiator_name,
                now=self.clock.now(),
                wall_now=self.clock.wall_now()
            )
            return StartedRound(round_id=round_id, seq=seq), True

        return self.transact(_start)

    def place_bid(
        self,
        delta: int,
        client_round_id: Optional[int],
        bidder_id: str,
        bidder_name: str
    ) -> PlacedBid:
        def _bid(state: AuctionState):
            seq, amount = self.machine.place_bid(
                state,
                delta=delta,
                client_round_id=client_round_id,
                bidder_id=bidder_id,
                bidder_name=bidder_name,
                now=self.clock.now(),
                wall_now=self.clock.wall_now()
            )
            return PlacedBid(seq=seq, amount=amount), True

        return self.transact(_bid)

    def read_state(
        self,
        observer_id: Optional[str] = None,
        observer_name: str = "",
        now: Optional[float] = None
    ) -> AuctionStateSnapshot:
        """
        讀取狀態（短輪詢的入口）

        副作用：
        1. 更新觀察者的 presence（有寫入節流）
        2. 距離上次檢查超過 check_interval_seconds 時，
           執行 idle close 與 presence sweep（共用同一個節流時鐘）

        返回：
            去掉內部欄位、只含未過期 presence 的快照
        """
        snapshot, _ = self.poll(observer_id, observer_name, now=now)
        return snapshot

    def poll(
        self,
        observer_id: Optional[str] = None,
        observer_name: str = "",
        now: Optional[float] = None
    ) -> Tuple[AuctionStateSnapshot, Optional[float]]:
        """
        和 read_state 相同，另外回傳距離自動結標的秒數

        剩餘秒數和快照用同一個時間點計算，而且是在鎖內讀取時鐘，
        所以不會因為其他請求插隊而超過 idle_timeout_seconds。
        """
        def _read(state: AuctionState):
            current_now = now if now is not None else self.clock.now()
            wall_now = self.clock.wall_now()
            mutated = self.presence.touch(
                state, observer_id, observer_name, current_now, wall_now
            )
            mutated = self._run_timed_checks(state, current_now, wall_now) or mutated
            closes_in = seconds_until_close(
                state.current, current_now, self.settings.idle_timeout_seconds
            )
            return (self._snapshot(state, current_now), closes_in), mutated

        return self.transact(_read)

    def _run_timed_checks(self, state: AuctionState, now: float, wall_now: datetime) -> bool:
        last_checked = state.last_checked_at
        if last_checked is not None and now - last_checked < self.settings.check_interval_seconds:
            return False

        state.last_checked_at = now
        self.machine.check_idle_and_maybe_close(state, now, wall_now)
        self.presence.sweep(state, now)
        return True

    def _snapshot(self, state: AuctionState, now: float) -> AuctionStateSnapshot:
        data = state.model_dump(exclude={"last_checked_at", "presence"})
        data["presence"] = {
            pid: entry.model_dump()
            for pid, entry in self.presence.visible(state, now).items()
        }
        return AuctionStateSnapshot.model_validate(data)
