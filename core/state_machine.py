"""
Round State Machine：集中管理拍賣回合的狀態轉換

狀態：
    IDLE ──start_round──▶ ACTIVE ──check_idle_and_maybe_close──▶ IDLE

原則：
- 只操作 transaction 交給它的工作副本，不自己加鎖、不自己寫入
- 每個對外可見的事件（開標、出價）剛好消耗一個序號
- 驗證失敗直接拋異常，由 transaction 丟棄整份工作副本
"""
from datetime import datetime
from typing import Dict, Iterable, Optional, Tuple
import logging

from core.state import AuctionState, BidEvent, CurrentRound, HistoryEntry
from core.sequence import SequenceAllocator
from core.exceptions import (
    RoundAlreadyActive,
    NoActiveRound,
    RoundMismatch,
    InvalidIncrement,
    InvalidStartPrice,
    ItemRequired,
    NameRequired
)

logger = logging.getLogger(__name__)

START_NOTE = "START"

# client_round_id 的「還不知道」值：客戶端第一次成功讀取狀態前也能出價
UNKNOWN_ROUND_ID = 0


class RoundStateMachine:
    """拍賣回合生命週期"""

    def __init__(self, allowed_increments: Iterable[int], idle_timeout: float):
        self.allowed_increments = frozenset(allowed_increments)
        self.idle_timeout = idle_timeout

    def start_round(
        self,
        state: AuctionState,
        item: str,
        metadata: Optional[Dict[str, str]],
        start_price: int,
        initiator_id: str,
        initiator_name: str,
        now: float,
        wall_now: datetime
    ) -> Tuple[int, int]:
        """
        開始新回合（IDLE -> ACTIVE）

        前置條件（依序檢查）：
        1. 目前沒有進行中的回合
        2. 起標價 >= 0
        3. 拍賣品名稱不是空的
        4. 發起人有顯示名稱

        流程：
        1. 分配 round_id
        2. 建立 CurrentRound（價格 = 起標價，領先者 = 發起人）
        3. 清空出價紀錄
        4. 寫入一筆 delta=0 的 START 事件，作為本回合的序號錨點

        返回：
            (round_id, seq)

        異常：
            RoundAlreadyActive, InvalidStartPrice, ItemRequired, NameRequired
        """
        if state.current is not None:
            raise RoundAlreadyActive(state.current.round_id)
        if start_price < 0:
            raise InvalidStartPrice(start_price)
        if not item:
            raise ItemRequired()
        if not initiator_name:
            raise NameRequired()

        round_id = state.next_round_id
        state.next_round_id += 1

        state.current = CurrentRound(
            round_id=round_id,
            item=item,
            metadata=dict(metadata or {}),
            start_price=start_price,
            amount=start_price,
            leader_id=initiator_id,
            leader_name=initiator_name,
            started_at=wall_now,
            last_event_at=now
        )
        state.bid_log = []

        seq = SequenceAllocator(state).next()
        state.bid_log.append(BidEvent(
            seq=seq,
            timestamp=wall_now,
            participant_id=initiator_id,
            participant_name=initiator_name,
            delta=0,
            amount_after=start_price,
            note=START_NOTE
        ))

        logger.info(
            f"Round {round_id} started by {initiator_name}: {item} at {start_price} (seq={seq})"
        )
        return round_id, seq

    def place_bid(
        self,
        state: AuctionState,
        delta: int,
        client_round_id: Optional[int],
        bidder_id: str,
        bidder_name: str,
        now: float,
        wall_now: datetime
    ) -> Tuple[int, int]:
        """
        出價

        前置條件（依序檢查）：
        1. 有進行中的回合
        2. delta 在允許的加價集合內
        3. client_round_id 不是 0 時，必須等於目前回合
           （防止客戶端還停在上一回合時，出價落到新回合）
        4. 出價者有顯示名稱

        返回：
            (seq, 出價後金額)

        異常：
            NoActiveRound, InvalidIncrement, RoundMismatch, NameRequired
        """
        current = state.current
        if current is None:
            raise NoActiveRound()

        if delta not in self.allowed_increments:
            raise InvalidIncrement(delta, sorted(self.allowed_increments))

        if client_round_id not in (None, UNKNOWN_ROUND_ID) and client_round_id != current.round_id:
            raise RoundMismatch(client_round_id, current.round_id)

        if not bidder_name:
            raise NameRequired()

        current.amount += delta
        current.leader_id = bidder_id
        current.leader_name = bidder_name
        current.last_event_at = now

        seq = SequenceAllocator(state).next()
        state.bid_log.append(BidEvent(
            seq=seq,
            timestamp=wall_now,
            participant_id=bidder_id,
            participant_name=bidder_name,
            delta=delta,
            amount_after=current.amount
        ))

        logger.debug(
            f"Bid seq={seq} in round {current.round_id}: {bidder_name} +{delta} -> {current.amount}"
        )
        return seq, current.amount

    def check_idle_and_maybe_close(
        self,
        state: AuctionState,
        now: float,
        wall_now: Optional[datetime] = None
    ) -> Optional[HistoryEntry]:
        """
        閒置超過 idle_timeout 就結束回合（ACTIVE -> IDLE）

        由讀取狀態觸發，不是獨立的計時器；沒有回合時是 no-op。
        沒有任何人出價的回合一樣會結束，得標者就是發起人、金額就是起標價。

        返回：
            寫入 history 的 HistoryEntry，沒有結束則為 None
        """
        current = state.current
        if current is None:
            return None

        if now - current.last_event_at < self.idle_timeout:
            return None

        entry = HistoryEntry(
            round_id=current.round_id,
            item=current.item,
            metadata=dict(current.metadata),
            start_price=current.start_price,
            winner_id=current.leader_id,
            winner_name=current.leader_name,
            final_amount=current.amount,
            bids=list(state.bid_log),
            closed_at=wall_now
        )
        state.history.append(entry)
        state.current = None
        state.bid_log = []

        logger.info(
            f"Round {entry.round_id} closed: {entry.item} -> "
            f"{entry.winner_name} for {entry.final_amount} ({len(entry.bids)} events)"
        )
        return entry
