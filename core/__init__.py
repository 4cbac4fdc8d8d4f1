"""
核心業務邏輯層

這個 package 包含拍賣的核心，包括：
- 狀態機：集中管理回合狀態轉換（開標、出價、閒置結標）
- Store：唯一的狀態來源與 transaction
- Presence：連線中參與者的近似追蹤
- Locks：並發控制工具
"""
