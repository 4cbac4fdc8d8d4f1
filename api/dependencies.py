from fastapi import Request

from core.store import AuctionStateStore


def get_store(request: Request) -> AuctionStateStore:
    """
    FastAPI dependency：提供拍賣狀態 Store

    Store 在 lifespan 建立並掛在 app.state 上，整個 process 只有一個
    """
    return request.app.state.store
