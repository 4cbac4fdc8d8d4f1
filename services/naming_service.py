"""
命名服務：清理使用者輸入的名稱與文字

純計算邏輯，不涉及狀態轉換
"""
import html
import re
from typing import Dict, Optional

# 控制字元（換行、tab 等）一律移除
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def sanitize_text(text: Optional[str]) -> str:
    """
    清理自由輸入的文字

    規則：
    - 移除控制字元
    - 跳脫 HTML 特殊字元（& < > " '），看板可以直接顯示
    - 去掉前後空白

    範例：
        sanitize_text("  Mario ") -> "Mario"
        sanitize_text("<b>x</b>") -> "&lt;b&gt;x&lt;/b&gt;"
        sanitize_text(None) -> ""
    """
    if not text:
        return ""
    return html.escape(_CONTROL_CHARS.sub("", text), quote=True).strip()


def sanitize_metadata(metadata: Optional[Dict[str, str]]) -> Dict[str, str]:
    """清理 metadata 的 key 與 value，丟掉清理後 key 為空的項目"""
    cleaned: Dict[str, str] = {}
    for key, value in (metadata or {}).items():
        clean_key = sanitize_text(key)
        if clean_key:
            cleaned[clean_key] = sanitize_text(str(value))
    return cleaned

