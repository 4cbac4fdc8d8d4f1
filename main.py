from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from database import Base, engine, SessionLocal, settings
from core.persistence import SqlStateRepository
from core.store import AuctionStateStore
from api import auction

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: 建立資料表，並從資料庫還原拍賣狀態
    Base.metadata.create_all(bind=engine)
    app.state.store = AuctionStateStore.recover(
        repository=SqlStateRepository(SessionLocal),
        settings=settings
    )
    yield
    # Shutdown: 每次變更都已寫入，不需要額外清理


app = FastAPI(
    title="Live Auction API",
    description="Backend API for live multi-bidder lot auctions",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure this properly in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auction.router)


@app.get("/")
def root():
    return {"message": "Live Auction API", "status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
