"""
全域序號分配器

序號計數器存在聚合本身（AuctionState.next_seq），所以分配器只綁定在
transaction 拿到的工作副本上；transaction 失敗時副本被丟棄，序號也跟著作廢，
不會有跳號被寫入。
"""
from core.state import AuctionState


class SequenceAllocator:
    """發出嚴格遞增的整數，用來排序每一個對外可見的事件（開標、出價）"""

    def __init__(self, state: AuctionState):
        self._state = state

    def next(self) -> int:
        seq = self._state.next_seq
        self._state.next_seq += 1
        return seq

