"""
Auction API Endpoints - 短輪詢版

重點：
1. 每個請求剛好對應一個 Store transaction
2. 所有業務邏輯集中在 core（AuctionStateStore / RoundStateMachine）
3. 前端靠 GET /state 輪詢取得更新，讀取時順便觸發閒置結標與 presence 清理
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
import logging

from api.dependencies import get_store
from core.store import AuctionStateStore
from core.exceptions import (
    RoundAlreadyActive,
    NoActiveRound,
    RoundMismatch,
    InvalidIncrement,
    InvalidStartPrice,
    ItemRequired,
    NameRequired,
    PersistenceError
)
from schemas import (
    StartRoundRequest,
    StartRoundResponse,
    PlaceBidRequest,
    PlaceBidResponse,
    StateResponse,
    UserInfo,
    HistoryResponse,
    ConfigResponse
)
from services.naming_service import sanitize_text, sanitize_metadata
from services.history_service import summarize_history, total_spent_by_winner

router = APIRouter(prefix="/api/auction", tags=["auction"])
logger = logging.getLogger(__name__)


@router.post("/rounds", response_model=StartRoundResponse)
def start_round(data: StartRoundRequest, store: AuctionStateStore = Depends(get_store)):
    """
    開始新的拍賣回合

    前置條件：
    - 沒有進行中的回合
    - 起標價 >= 0、拍賣品不是空的、發起人有名字

    返回：
        - round_id: 新回合 ID
        - seq: START 事件的序號
    """
    try:
        started = store.start_round(
            item=sanitize_text(data.item),
            metadata=sanitize_metadata(data.metadata),
            start_price=data.start_price,
            initiator_id=data.participant_id,
            initiator_name=sanitize_text(data.participant_name)
        )
        return StartRoundResponse(round_id=started.round_id, seq=started.seq)

    except RoundAlreadyActive as e:
        raise HTTPException(status_code=409, detail=str(e))
    except (InvalidStartPrice, ItemRequired, NameRequired) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to start round: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/bids", response_model=PlaceBidResponse)
def place_bid(data: PlaceBidRequest, store: AuctionStateStore = Depends(get_store)):
    """
    出價

    參數：
        delta: 加價幅度（必須在允許集合內）
        round_id: 客戶端認為的目前回合（0 = 不檢查）

    返回：
        - seq: 出價事件序號
        - amount: 出價後金額
    """
    try:
        placed = store.place_bid(
            delta=data.delta,
            client_round_id=data.round_id,
            bidder_id=data.participant_id,
            bidder_name=sanitize_text(data.participant_name)
        )
        return PlaceBidResponse(seq=placed.seq, amount=placed.amount)

    except (NoActiveRound, RoundMismatch) as e:
        raise HTTPException(status_code=409, detail=str(e))
    except (InvalidIncrement, NameRequired) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to place bid: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/state", response_model=StateResponse)
def get_state(
    participant_id: Optional[str] = Query(None),
    participant_name: str = Query(""),
    store: AuctionStateStore = Depends(get_store)
):
    """
    取得目前狀態（短輪詢）

    副作用：
        更新呼叫者的 presence，並（節流後）執行閒置結標與 presence 清理

    返回：
        - state: 完整快照（目前回合、出價紀錄、歷史、presence）
        - user: 呼叫者身分
        - closes_in: 距離自動結標的秒數（沒有回合為 null）
    """
    try:
        name = sanitize_text(participant_name)
        snapshot, closes_in = store.poll(participant_id, name)

        return StateResponse(
            state=snapshot,
            user=UserInfo(id=participant_id, name=name),
            closes_in=closes_in
        )

    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to read state: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/history", response_model=HistoryResponse)
def get_history(store: AuctionStateStore = Depends(get_store)):
    """已結束回合的摘要（新的在前）與每位得標者的總花費"""
    try:
        snapshot = store.read_state()
        return HistoryResponse(
            rounds=summarize_history(snapshot.history),
            totals=total_spent_by_winner(snapshot.history)
        )

    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to get history: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/config", response_model=ConfigResponse)
def get_config(store: AuctionStateStore = Depends(get_store)):
    settings = store.settings
    return ConfigResponse(
        allowed_increments=sorted(settings.allowed_increments),
        idle_timeout_seconds=settings.idle_timeout_seconds,
        presence_expiry_seconds=settings.presence_expiry_seconds
    )
