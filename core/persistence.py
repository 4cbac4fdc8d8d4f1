"""
聚合的持久化

Repository 只有兩個動作：
- load()  -> AuctionState | None
- save(state)

AuctionStateStore 不在乎底層是資料庫還是記憶體。
"""
from typing import Optional
import logging

from sqlalchemy.orm import Session, sessionmaker

from models import AuctionStateRecord, AUCTION_STATE_ROW_ID
from core.state import AuctionState
from core.locks import with_state_lock
from database import transactional

logger = logging.getLogger(__name__)


@transactional
def save_state(db: Session, state: AuctionState) -> AuctionStateRecord:
    """
    把整份聚合寫進唯一那一列（不存在就建立）

    使用 @transactional，自動處理 commit/rollback
    """
    record = with_state_lock(db).first()
    if record is None:
        record = AuctionStateRecord(id=AUCTION_STATE_ROW_ID)
        db.add(record)

    record.payload = state.model_dump(mode="json")
    record.next_seq = state.next_seq
    return record


def load_state(db: Session) -> Optional[AuctionState]:
    record = db.query(AuctionStateRecord).filter(
        AuctionStateRecord.id == AUCTION_STATE_ROW_ID
    ).first()
    if record is None or not record.payload:
        return None
    return AuctionState.model_validate(record.payload)


class SqlStateRepository:
    """以 SQLAlchemy 資料表存放聚合"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def load(self) -> Optional[AuctionState]:
        db = self.session_factory()
        try:
            return load_state(db)
        finally:
            db.close()

    def save(self, state: AuctionState) -> None:
        db = self.session_factory()
        try:
            save_state(db, state)
        finally:
            db.close()


class InMemoryStateRepository:
    """
    不接資料庫時使用：保存一份 JSON 序列化後的副本

    存成字串而不是物件參考，確保存進去之後不會被外部修改。
    """

    def __init__(self):
        self._raw: Optional[str] = None

    def load(self) -> Optional[AuctionState]:
        if self._raw is None:
            return None
        return AuctionState.model_validate_json(self._raw)

    def save(self, state: AuctionState) -> None:
        self._raw = state.model_dump_json()
        logger.debug(f"State saved in memory (next_seq={state.next_seq})")
