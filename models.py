"""
資料庫模型與共用列舉

拍賣狀態是單一聚合（aggregate），整份以 JSON 存在 auction_state 表的唯一一列。
"""
import enum
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, DateTime, JSON

from database import Base

# 聚合只有一列，固定主鍵
AUCTION_STATE_ROW_ID = 1


class RoundStatus(str, enum.Enum):
    """拍賣回合狀態：沒有終止狀態，IDLE 與 ACTIVE 之間無限循環"""
    IDLE = "IDLE"
    ACTIVE = "ACTIVE"


def _utcnow():
    return datetime.now(timezone.utc)


class AuctionStateRecord(Base):
    __tablename__ = "auction_state"

    id = Column(Integer, primary_key=True, default=AUCTION_STATE_ROW_ID)
    payload = Column(JSON, nullable=False)
    next_seq = Column(Integer, nullable=False, default=1)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
