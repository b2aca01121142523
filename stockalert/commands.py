# -*- coding: utf-8 -*-
"""
Chat command layer.

Parses user text, mutates the alert registry and formats replies. It only
uses the registry's upsert / list_by_user / clear_user entry points.
"""
import math
import re
from typing import Dict, Optional

from loguru import logger

from stockalert.datafeeds.stock_names import get_stock_name
from stockalert.datafeeds.twse import NotFoundError, QuoteError
from stockalert.notif.templates import (
    MSG_INVALID_MULTIPLIER,
    MSG_INVALID_NUMBER,
    MSG_PRICE_ALERTS_CLEARED,
    MSG_QUOTE_ERROR,
    MSG_VOLUME_ALERTS_CLEARED,
    template_alert_list,
    template_change_ack,
    template_help,
    template_not_found,
    template_price_ack,
    template_quote,
    template_volume_ack,
    template_volume_list
)
from stockalert.rules.rule_defs import AlertKind, ChangeAlert, Direction, PriceAlert, VolumeAlert
from stockalert.storage.registry import AlertRegistry

_NUMBER = r"(\d+(?:\.\d+)?)"

QUOTE_PATTERN = re.compile(r"^P(\d{4})$")
PRICE_ALERT_PATTERN = re.compile(rf"^ALERT\s+(\d{{4}})\s+(ABOVE|BELOW)\s+{_NUMBER}$")
SIMPLE_PRICE_ALERT_PATTERN = re.compile(rf"^ALERT\s+(\d{{4}})\s+{_NUMBER}$")
CHANGE_ALERT_PATTERN = re.compile(rf"^ALERT\s+(\d{{4}})\s+CHANGE\s+{_NUMBER}$")
ALERT_LIST_PATTERN = re.compile(r"^ALERT\s+LIST$")
ALERT_CLEAR_PATTERN = re.compile(r"^ALERT\s+CLEAR$")
VOLUME_ALERT_PATTERN = re.compile(rf"^VOL\s+(\d{{4}})\s+{_NUMBER}$")
VOLUME_LIST_PATTERN = re.compile(r"^VOL\s+LIST$")
VOLUME_CLEAR_PATTERN = re.compile(r"^VOL\s+CLEAR$")

HELP_COMMANDS = {"HELP", "幫助", "START"}


def _parse_number(text: str) -> Optional[float]:
    """Parse a matched number; None when it overflows to inf."""
    value = float(text)
    return value if math.isfinite(value) else None


class CommandHandler:
    """Turns one inbound text message into registry changes and a reply."""

    def __init__(self, registry: AlertRegistry, quote_source, name_overrides: Optional[Dict[str, str]] = None):
        self.registry = registry
        self.quote_source = quote_source
        self.name_overrides = name_overrides or {}

    def _name(self, code: str) -> str:
        return get_stock_name(code, self.name_overrides)

    async def _lookup(self, code: str):
        """Fetch a snapshot; returns (snapshot, None) or (None, error reply)."""
        try:
            return await self.quote_source.fetch(code), None
        except NotFoundError:
            return None, template_not_found(code)
        except QuoteError as e:
            logger.warning(f"Quote lookup for {code} failed: {e}")
            return None, MSG_QUOTE_ERROR

    async def handle(self, user_id: str, text: str) -> Optional[str]:
        """
        Handle a message.

        Returns:
            Reply text, or None when the message is not a command
        """
        command = text.strip().upper()
        if command.startswith("/"):
            command = command[1:]

        match = QUOTE_PATTERN.match(command)
        if match:
            snapshot, error = await self._lookup(match.group(1))
            return error or template_quote(snapshot)

        match = PRICE_ALERT_PATTERN.match(command)
        if match:
            code, direction, price_text = match.groups()
            target_price = _parse_number(price_text)
            if target_price is None:
                return MSG_INVALID_NUMBER
            alert = PriceAlert(code, Direction(direction), target_price)
            self.registry.upsert(AlertKind.PRICE, user_id, alert)
            return template_price_ack(alert, self._name(code))

        match = SIMPLE_PRICE_ALERT_PATTERN.match(command)
        if match:
            code, price_text = match.groups()
            target_price = _parse_number(price_text)
            if target_price is None:
                return MSG_INVALID_NUMBER
            return await self._simple_price_alert(user_id, code, target_price)

        match = CHANGE_ALERT_PATTERN.match(command)
        if match:
            code, percent_text = match.groups()
            change_percent = _parse_number(percent_text)
            if change_percent is None:
                return MSG_INVALID_NUMBER
            alert = ChangeAlert(code, change_percent)
            self.registry.upsert(AlertKind.CHANGE, user_id, alert)
            return template_change_ack(alert, self._name(code))

        if ALERT_LIST_PATTERN.match(command):
            return template_alert_list(
                self.registry.list_by_user(AlertKind.PRICE, user_id),
                self.registry.list_by_user(AlertKind.CHANGE, user_id)
            )

        if ALERT_CLEAR_PATTERN.match(command):
            self.registry.clear_user(AlertKind.PRICE, user_id)
            self.registry.clear_user(AlertKind.CHANGE, user_id)
            return MSG_PRICE_ALERTS_CLEARED

        match = VOLUME_ALERT_PATTERN.match(command)
        if match:
            code, multiplier_text = match.groups()
            multiplier = _parse_number(multiplier_text)
            if multiplier is None or multiplier <= 1:
                return MSG_INVALID_MULTIPLIER
            alert = VolumeAlert(code, multiplier)
            self.registry.upsert(AlertKind.VOLUME, user_id, alert)
            return template_volume_ack(alert, self._name(code))

        if VOLUME_LIST_PATTERN.match(command):
            return template_volume_list(self.registry.list_by_user(AlertKind.VOLUME, user_id))

        if VOLUME_CLEAR_PATTERN.match(command):
            self.registry.clear_user(AlertKind.VOLUME, user_id)
            return MSG_VOLUME_ALERTS_CLEARED

        if command in HELP_COMMANDS:
            return template_help()

        return None

    async def _simple_price_alert(self, user_id: str, code: str, target_price: float) -> str:
        """ALERT <code> <price>: direction follows where the price is now."""
        snapshot, error = await self._lookup(code)
        if error:
            return error

        direction = Direction.ABOVE if snapshot.price <= target_price else Direction.BELOW
        alert = PriceAlert(code, direction, target_price)
        self.registry.upsert(AlertKind.PRICE, user_id, alert)
        return template_price_ack(alert, self._name(code), current_price=snapshot.price)
