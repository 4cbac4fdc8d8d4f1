"""
Presence Tracker：記錄誰「大概」還連線中

連線狀態本來就是近似值，所以：
- touch 有寫入節流（同一人 refresh_seconds 內只更新一次）
- sweep 與 idle close 共用同一個節流時鐘，由 AuctionStateStore 控制呼叫頻率
- visible 在讀取時過濾掉已過期但還沒被 sweep 的項目
"""
from datetime import datetime
from typing import Dict, List, Optional
import logging

from core.state import AuctionState, PresenceEntry

logger = logging.getLogger(__name__)


class PresenceTracker:

    def __init__(self, refresh_seconds: float, expiry_seconds: float):
        self.refresh_seconds = refresh_seconds
        self.expiry_seconds = expiry_seconds

    def touch(
        self,
        state: AuctionState,
        participant_id: Optional[str],
        participant_name: str,
        now: float,
        wall_now: Optional[datetime] = None
    ) -> bool:
        """
        更新參與者的 last seen

        規則：
        - 沒有名字（或沒有 id）的觀察者不記錄
        - 既有紀錄比 refresh_seconds 還新時不寫入，避免高頻輪詢造成大量寫入

        返回：
            True 如果有寫入
        """
        if not participant_id or not participant_name:
            return False

        existing = state.presence.get(participant_id)
        if existing is not None and now - existing.last_seen_at < self.refresh_seconds:
            # 名字改了還是要更新
            if existing.participant_name == participant_name:
                return False

        state.presence[participant_id] = PresenceEntry(
            participant_name=participant_name,
            last_seen_at=now,
            last_seen=wall_now
        )
        return True

    def sweep(self, state: AuctionState, now: float) -> List[str]:
        """
        移除超過 expiry_seconds 沒出現的參與者

        返回：
            被移除的 participant_id 列表
        """
        expired = [
            pid for pid, entry in state.presence.items()
            if self._is_expired(entry, now)
        ]
        for pid in expired:
            del state.presence[pid]

        if expired:
            logger.debug(f"Presence expired: {expired}")
        return expired

    def visible(self, state: AuctionState, now: float) -> Dict[str, PresenceEntry]:
        return {
            pid: entry for pid, entry in state.presence.items()
            if not self._is_expired(entry, now)
        }

    def _is_expired(self, entry: PresenceEntry, now: float) -> bool:
        return now - entry.last_seen_at > self.expiry_seconds
