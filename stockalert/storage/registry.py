# -*- coding: utf-8 -*-
"""
In-memory alert registry.

One mapping per alert kind: user_id -> {alert.key: alert}.
A user_id is present in a kind's mapping only while it holds at least one
alert of that kind, so membership doubles as a "has alerts" check.
"""
from typing import Callable, Dict, Hashable, List, Set

from loguru import logger

from stockalert.rules.rule_defs import Alert, AlertKind


class AlertRegistry:
    """Per-user, per-kind collections of active alerts."""

    def __init__(self):
        self._alerts: Dict[AlertKind, Dict[str, Dict[Hashable, Alert]]] = {
            kind: {} for kind in AlertKind
        }

    def upsert(self, kind: AlertKind, user_id: str, alert: Alert) -> None:
        """
        Insert an alert, or replace the one with the same key.

        Replacing keeps the key's position in the user's collection; the new
        alert is always a fresh, unfired condition.
        """
        bucket = self._alerts[kind].setdefault(user_id, {})
        replaced = alert.key in bucket
        bucket[alert.key] = alert
        logger.debug(f"{'Replaced' if replaced else 'Added'} {kind.value} alert for {user_id}: {alert}")

    def list_by_user(self, kind: AlertKind, user_id: str) -> List[Alert]:
        bucket = self._alerts[kind].get(user_id)
        return list(bucket.values()) if bucket else []

    def remove_fired(self, kind: AlertKind, user_id: str, predicate: Callable[[Alert], bool]) -> List[Alert]:
        """
        Remove every alert of the user matching predicate.

        Returns:
            The removed alerts, in collection order. The user_id is pruned
            when nothing is left.
        """
        bucket = self._alerts[kind].get(user_id)
        if not bucket:
            return []

        removed = [alert for alert in bucket.values() if predicate(alert)]
        for alert in removed:
            del bucket[alert.key]

        if not bucket:
            del self._alerts[kind][user_id]

        return removed

    def clear_user(self, kind: AlertKind, user_id: str) -> int:
        """Drop the user's whole collection for a kind. Returns how many alerts were dropped."""
        bucket = self._alerts[kind].pop(user_id, None)
        return len(bucket) if bucket else 0

    def distinct_identifiers(self, kind: AlertKind) -> Set[str]:
        return {
            alert.identifier
            for bucket in self._alerts[kind].values()
            for alert in bucket.values()
        }

    def all_identifiers(self) -> Set[str]:
        """Identifiers referenced by any alert of any kind (one fetch serves all three)."""
        identifiers: Set[str] = set()
        for kind in AlertKind:
            identifiers |= self.distinct_identifiers(kind)
        return identifiers

    def users(self, kind: AlertKind) -> List[str]:
        return list(self._alerts[kind].keys())

    def has_alerts(self, kind: AlertKind, user_id: str) -> bool:
        return user_id in self._alerts[kind]

    def count(self, kind: AlertKind) -> int:
        return sum(len(bucket) for bucket in self._alerts[kind].values())
