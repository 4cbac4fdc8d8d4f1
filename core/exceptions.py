"""
自定義異常類別

集中管理所有拍賣業務邏輯異常，方便 API 層統一處理
"""


class AuctionException(Exception):
    """所有拍賣異常的基類"""
    pass


# ============ Round 相關異常 ============

class RoundAlreadyActive(AuctionException):
    """已經有一個進行中的回合，不能再開新回合"""
    def __init__(self, round_id):
        self.round_id = round_id
        super().__init__(f"Round {round_id} is already active")


class NoActiveRound(AuctionException):
    """目前沒有進行中的回合"""
    def __init__(self):
        super().__init__("No active round")


class RoundMismatch(AuctionException):
    """客戶端看到的回合已經不是目前的回合"""
    def __init__(self, client_round_id, current_round_id):
        self.client_round_id = client_round_id
        self.current_round_id = current_round_id
        super().__init__(
            f"Round has changed (client={client_round_id}, current={current_round_id})"
        )


# ============ 輸入驗證異常 ============

class InvalidIncrement(AuctionException):
    """加價幅度不在允許的集合內"""
    def __init__(self, delta, allowed):
        self.delta = delta
        self.allowed = list(allowed)
        super().__init__(f"Invalid increment {delta}, allowed: {self.allowed}")


class InvalidStartPrice(AuctionException):
    """起標價不能是負數"""
    def __init__(self, start_price):
        self.start_price = start_price
        super().__init__(f"Invalid start price {start_price}")


class ItemRequired(AuctionException):
    """拍賣品名稱不能是空的"""
    def __init__(self):
        super().__init__("Item cannot be empty")


class NameRequired(AuctionException):
    """參與者必須先設定顯示名稱"""
    def __init__(self):
        super().__init__("Set your name first")


# ============ 持久化異常 ============

class PersistenceError(AuctionException):
    """狀態無法寫入後端儲存，整個 transaction 視為失敗"""
    pass
