"""
API 層：FastAPI routers，只負責把 HTTP 請求轉成 core 呼叫、把異常轉成 HTTP 狀態碼
"""
