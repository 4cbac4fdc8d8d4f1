"""
時鐘

now() 是單調時鐘，用來算 idle timeout 與 presence 過期；
wall_now() 是牆上時鐘，只用來顯示。
"""
import time
from datetime import datetime
from zoneinfo import ZoneInfo


class SystemClock:
    def __init__(self, tz_name: str = "UTC"):
        self.tz = ZoneInfo(tz_name)

    def now(self) -> float:
        return time.monotonic()

    def wall_now(self) -> datetime:
        return datetime.now(self.tz)
