"""
拍賣聚合（aggregate）的資料結構

所有欄位都能無損地序列化成 JSON，transaction 會對整份聚合做深拷貝後再修改。
時間欄位分兩種：
- *_at 的 float：單調時鐘（monotonic），只用來判斷 idle / 過期
- datetime：牆上時鐘，用來顯示
"""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from models import RoundStatus


class BidEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    seq: int
    timestamp: datetime
    participant_id: str
    participant_name: str
    delta: int
    amount_after: int
    note: Optional[str] = None


class CurrentRound(BaseModel):
    round_id: int
    item: str
    metadata: Dict[str, str] = Field(default_factory=dict)
    start_price: int
    amount: int
    leader_id: Optional[str] = None
    leader_name: Optional[str] = None
    started_at: datetime
    last_event_at: float

    @computed_field
    @property
    def active(self) -> bool:
        # 回合存在就代表進行中，結束時整個 current 會被清掉
        return True


class HistoryEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    round_id: int
    item: str
    metadata: Dict[str, str] = Field(default_factory=dict)
    start_price: int
    winner_id: Optional[str] = None
    winner_name: Optional[str] = None
    final_amount: int
    bids: List[BidEvent] = Field(default_factory=list)
    closed_at: Optional[datetime] = None


class PresenceEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    participant_name: str
    last_seen_at: float
    last_seen: Optional[datetime] = None


class AuctionState(BaseModel):
    """單一、整個 process 共用的拍賣狀態"""

    next_seq: int = 1
    next_round_id: int = 1
    current: Optional[CurrentRound] = None
    bid_log: List[BidEvent] = Field(default_factory=list)
    history: List[HistoryEntry] = Field(default_factory=list)
    presence: Dict[str, PresenceEntry] = Field(default_factory=dict)

    # 內部用：上次執行 idle close / presence sweep 的時間
    last_checked_at: Optional[float] = None

    @property
    def status(self) -> RoundStatus:
        return RoundStatus.ACTIVE if self.current is not None else RoundStatus.IDLE


class RoundView(CurrentRound):
    """快照裡的目前回合，唯讀"""
    model_config = ConfigDict(frozen=True)


class AuctionStateSnapshot(BaseModel):
    """
    離開 core 的唯讀快照

    欄位與 AuctionState 相同，但去掉內部 housekeeping 欄位。
    每一層都是 frozen，而且由序列化後的資料重建，不會和 Store 內的狀態共用物件。
    """
    model_config = ConfigDict(frozen=True)

    next_seq: int
    next_round_id: int
    current: Optional[RoundView] = None
    bid_log: List[BidEvent] = Field(default_factory=list)
    history: List[HistoryEntry] = Field(default_factory=list)
    presence: Dict[str, PresenceEntry] = Field(default_factory=dict)


class StartedRound(BaseModel):
    round_id: int
    seq: int


class PlacedBid(BaseModel):
    seq: int
    amount: int
