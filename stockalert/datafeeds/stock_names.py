"""Display names for commonly tracked TWSE codes."""
from typing import Dict, Optional

STOCK_NAMES: Dict[str, str] = {
    "2330": "台積電",
    "2317": "鴻海",
    "2454": "聯發科",
    "2412": "中華電",
    "1303": "南亞",
    "1301": "台塑",
    "2881": "富邦金",
    "2882": "國泰金",
    "2308": "台達電",
    "3008": "大立光",
}


def get_stock_name(code: str, overrides: Optional[Dict[str, str]] = None) -> str:
    """Return the display name for a code, or the code itself when unknown."""
    if overrides and code in overrides:
        return overrides[code]
    return STOCK_NAMES.get(code, code)
