# -*- coding: utf-8 -*-
"""
Message templates for alerts and command replies (Traditional Chinese).
"""
from typing import List

from stockalert.datafeeds.twse import Snapshot
from stockalert.notif.formatter import (
    format_price,
    format_signed,
    format_percentage,
    format_volume,
    format_quote_time,
    format_datetime_tw
)
from stockalert.rules.rule_defs import ChangeAlert, Direction, PriceAlert, VolumeAlert

MSG_QUOTE_ERROR = "❌ 查詢股票資訊時發生錯誤，請稍後再試"
MSG_NO_PRICE_ALERTS = "尚未設定任何價格/漲跌幅警報"
MSG_NO_VOLUME_ALERTS = "尚未設定任何量能警報"
MSG_PRICE_ALERTS_CLEARED = "✅ 已清除所有價格與漲跌幅警報"
MSG_VOLUME_ALERTS_CLEARED = "✅ 已清除所有量能警報"
MSG_INVALID_MULTIPLIER = "❌ 量能倍數需大於 1，例如 VOL 2330 2"
MSG_INVALID_NUMBER = "❌ 數值無效，請輸入正常的價格或百分比"


def _direction_text(direction: Direction) -> str:
    return "突破" if direction == Direction.ABOVE else "跌破"


def template_not_found(code: str) -> str:
    return f"❌ 查無股票代號 {code} 的資訊"


def template_quote(snapshot: Snapshot) -> str:
    """
    Quote reply for the P<code> command.

    Args:
        snapshot: fetched quote
    """
    return f"""📈 {snapshot.name} ({snapshot.identifier})
💰 現價: {format_price(snapshot.price)}
📊 漲跌: {format_signed(snapshot.price_change)}
📈 漲跌幅: {format_percentage(snapshot.percent_change)}
🔼 開盤: {format_price(snapshot.open)}
🔽 最高: {format_price(snapshot.high)}
📉 最低: {format_price(snapshot.low)}
📦 成交量: {format_volume(snapshot.volume)}
⏰ 更新時間: {format_quote_time(snapshot.timestamp)}"""


def template_price_alert(alert: PriceAlert, snapshot: Snapshot) -> str:
    return f"""🚨 價格警報
{snapshot.name} ({snapshot.identifier}) 已{_direction_text(alert.direction)} {format_price(alert.target_price)}
最新成交價：{format_price(snapshot.price)}"""


def template_change_alert(alert: ChangeAlert, snapshot: Snapshot) -> str:
    return f"""🚨 漲跌幅警報
{snapshot.name} ({snapshot.identifier}) 當日漲跌幅已達 {format_percentage(snapshot.percent_change)}
（門檻 ±{format_percentage(alert.change_percent, signed=False)}，現價 {format_price(snapshot.price)}）"""


def template_volume_alert(alert: VolumeAlert, snapshot: Snapshot, average: float) -> str:
    return f"""🚨 量能警報
{snapshot.name} ({snapshot.identifier}) 目前成交量 {format_volume(snapshot.volume)}
已達過去均量 {format_volume(average)} 的 {alert.multiplier:.2f} 倍以上"""


def describe_price_alert(alert: PriceAlert) -> str:
    return f"{alert.identifier} {_direction_text(alert.direction)} {format_price(alert.target_price)}"


def describe_change_alert(alert: ChangeAlert) -> str:
    return f"{alert.identifier} 漲跌幅超過 {format_percentage(alert.change_percent, signed=False)}"


def describe_volume_alert(alert: VolumeAlert) -> str:
    return f"{alert.identifier} 交易量達平均的 {alert.multiplier:.2f} 倍"


def template_alert_list(price_alerts: List[PriceAlert], change_alerts: List[ChangeAlert]) -> str:
    if not price_alerts and not change_alerts:
        return MSG_NO_PRICE_ALERTS

    lines = [f"• {describe_price_alert(alert)}" for alert in price_alerts]
    lines += [f"• {describe_change_alert(alert)}" for alert in change_alerts]
    return "📋 警報列表\n" + "\n".join(lines)


def template_volume_list(volume_alerts: List[VolumeAlert]) -> str:
    if not volume_alerts:
        return MSG_NO_VOLUME_ALERTS

    lines = [f"• {describe_volume_alert(alert)}" for alert in volume_alerts]
    return "📋 量能警報列表\n" + "\n".join(lines)


def template_price_ack(alert: PriceAlert, name: str, current_price: float = None) -> str:
    direction_text = "向上突破" if alert.direction == Direction.ABOVE else "向下跌破"
    message = (
        f"✅ 已設定 {name} ({alert.identifier}) {direction_text} "
        f"{format_price(alert.target_price)} 的價格警報"
    )
    if current_price is not None:
        message += f"\n（目前股價：{format_price(current_price)}）"
    return message


def template_change_ack(alert: ChangeAlert, name: str) -> str:
    return (
        f"✅ 已設定 {name} ({alert.identifier}) 漲跌幅超過 "
        f"{format_percentage(alert.change_percent, signed=False)} 的警報"
    )


def template_volume_ack(alert: VolumeAlert, name: str) -> str:
    return f"✅ 已設定 {name} ({alert.identifier}) 量能達平均 {alert.multiplier:.2f} 倍的警報"


def template_help() -> str:
    return """📱 股票查詢機器人使用說明

🔍 查詢即時資訊
P + 股票代號
例如：P2330 (查詢台積電)

🚨 價格警報
1. ALERT 股票代號 ABOVE/BELOW 價格
   例如：ALERT 2330 ABOVE 650
2. 簡單版：ALERT 股票代號 價格
   例如：ALERT 2330 650
   → 會自動判斷是突破還是跌破

📊 漲跌幅警報
ALERT 股票代號 CHANGE 百分比
例如：ALERT 2330 CHANGE 5
→ 當日漲跌幅超過 ±5% 通知

📈 量能警報
VOL 股票代號 倍數(>1)
例如：VOL 2330 2.5

📋 查詢或清除警報
ALERT LIST → 查看所有價格與漲跌幅警報
ALERT CLEAR → 清除所有價格與漲跌幅警報
VOL LIST → 查看量能警報
VOL CLEAR → 清除量能警報

💡 警報觸發一次後即自動移除
💡 輸入 HELP 查看此說明"""


def template_error_admin(error_type: str, error_msg: str, context: str = "") -> str:
    """Operational error report for the admin chat."""
    message = f"""⚠️ 系統錯誤: {error_type}

{error_msg}"""
    if context:
        message += f"\n\n📝 {context}"
    message += f"\n\n⏰ {format_datetime_tw()}"
    return message
