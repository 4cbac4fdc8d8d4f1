"""
並發控制工具

兩層鎖：
1. Process 內：AuctionStateStore 持有一把 threading.Lock，所有 transaction 都要先拿到它
   （序號順序 = 拿到鎖的順序）
2. Database：寫入時用 SELECT ... FOR UPDATE 鎖住聚合那一列，
   防止多個 process 指向同一個資料庫時互相覆寫（SQLite 會忽略 FOR UPDATE）
"""
from sqlalchemy.orm import Session, Query

from models import AuctionStateRecord, AUCTION_STATE_ROW_ID


def with_state_lock(db: Session) -> Query:
    """
    鎖定拍賣聚合那一列（行級鎖）

    使用場景：
    - 寫入新的聚合內容時
    - 需要確保整個 transaction 期間不被其他 process 修改

    範例：
        record = with_state_lock(db).first()
        if record is None:
            record = AuctionStateRecord(id=AUCTION_STATE_ROW_ID, payload={})
            db.add(record)
        record.payload = state.model_dump(mode="json")
        db.commit()

    參數：
        db: SQLAlchemy Session

    返回：
        Query object（需要呼叫 .first() 來取得結果）

    注意：
        - nowait=False 表示如果鎖被佔用，會等待
        - 必須在 transaction 內使用（確保有 commit 或 rollback）
    """
    return db.query(AuctionStateRecord).filter(
        AuctionStateRecord.id == AUCTION_STATE_ROW_ID
    ).with_for_update(nowait=False)
