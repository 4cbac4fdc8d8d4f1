"""
API request / response schemas
"""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from core.state import AuctionStateSnapshot


# ============ Requests ============

class Participant(BaseModel):
    participant_id: str
    participant_name: str = ""


class StartRoundRequest(Participant):
    item: str
    metadata: Dict[str, str] = Field(default_factory=dict)
    start_price: int = 0


class PlaceBidRequest(Participant):
    delta: int
    # 0 = 客戶端還不知道目前回合
    round_id: int = 0


# ============ Responses ============

class StartRoundResponse(BaseModel):
    round_id: int
    seq: int


class PlaceBidResponse(BaseModel):
    seq: int
    amount: int


class UserInfo(BaseModel):
    id: Optional[str] = None
    name: str = ""


class StateResponse(BaseModel):
    state: AuctionStateSnapshot
    user: UserInfo
    closes_in: Optional[float] = None


class HistoryRow(BaseModel):
    round_id: int
    item: str
    metadata: Dict[str, str] = Field(default_factory=dict)
    start_price: int
    winner_name: Optional[str] = None
    final_amount: int
    bid_count: int
    last_event_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None


class HistoryResponse(BaseModel):
    rounds: List[HistoryRow]
    totals: Dict[str, int]


class ConfigResponse(BaseModel):
    allowed_increments: List[int]
    idle_timeout_seconds: float
    presence_expiry_seconds: float
