"""
服務層

這個 package 包含純計算邏輯，不負責狀態轉換：
- NamingService：輸入文字清理
- CountdownService：距離自動結標的剩餘時間
- HistoryService：歷史回合摘要
"""
