"""
倒數服務：計算距離自動結標還剩多少秒

last_event_at 是伺服器的單調時鐘，客戶端無法直接換算，
所以剩餘秒數由伺服器算好再回傳。
"""
from typing import Optional

from core.state import CurrentRound


def seconds_until_close(
    current: Optional[CurrentRound],
    now: float,
    idle_timeout: float
) -> Optional[float]:
    """
    參數：
        current: 目前回合（沒有回合為 None）
        now: 單調時鐘的現在時間
        idle_timeout: 閒置結標秒數

    返回：
        剩餘秒數（最小為 0，四捨五入到 0.1 秒）；沒有回合時為 None

    範例：
        last_event_at=100, now=102, idle_timeout=5 -> 3.0
        last_event_at=100, now=107, idle_timeout=5 -> 0.0
    """
    if current is None:
        return None
    remaining = idle_timeout - (now - current.last_event_at)
    return round(max(0.0, remaining), 1)
