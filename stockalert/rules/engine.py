"""
Alert Rules Engine - polls quotes and fires one-shot alerts.
This is the core of the bot's alerting system.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Set

from loguru import logger

from stockalert.config import (
    ALERT_POLL_INTERVAL_SECONDS,
    QUOTE_FETCH_TIMEOUT_SECONDS,
    VOLUME_MIN_SAMPLES
)
from stockalert.datafeeds.twse import NotFoundError, QuoteError, Snapshot
from stockalert.notif.templates import (
    template_price_alert,
    template_change_alert,
    template_volume_alert
)
from stockalert.rules.rule_defs import Alert, AlertKind
from stockalert.storage.history import VolumeHistory
from stockalert.storage.registry import AlertRegistry


@dataclass
class CycleReport:
    """Summary of one evaluation cycle."""
    identifiers: int = 0
    evaluated: int = 0
    fired: int = 0
    skipped: List[str] = field(default_factory=list)


class AlertEngine:
    """
    Evaluates every active alert against fresh quotes on a fixed interval.

    Identifiers are processed one at a time: fetch, evaluate price/change/volume
    alerts, then record the volume sample. Fired alerts are removed before
    their notification is sent (at-most-once delivery).
    """

    def __init__(
        self,
        registry: AlertRegistry,
        history: VolumeHistory,
        quote_source,
        notifier,
        poll_interval: float = ALERT_POLL_INTERVAL_SECONDS,
        fetch_timeout: float = QUOTE_FETCH_TIMEOUT_SECONDS,
        min_volume_samples: int = VOLUME_MIN_SAMPLES
    ):
        """
        Args:
            quote_source: object with ``async fetch(identifier) -> Snapshot``
            notifier: object with ``async send(user_id, text) -> bool``
            poll_interval: pause between the end of a cycle and the next one (seconds)
            fetch_timeout: upper bound for a single quote fetch (seconds)
        """
        self.registry = registry
        self.history = history
        self.quote_source = quote_source
        self.notifier = notifier
        self.poll_interval = poll_interval
        self.fetch_timeout = fetch_timeout
        self.min_volume_samples = min_volume_samples
        self.running = False

        # Fire-and-forget deliveries; kept referenced until done
        self._notification_tasks: Set[asyncio.Task] = set()

        self.cycles_completed = 0
        self.alerts_fired = 0
        self.notifications_sent = 0
        self.notifications_failed = 0
        self.last_cycle_at: Optional[datetime] = None

    async def _fetch(self, identifier: str) -> Optional[Snapshot]:
        """Fetch a snapshot, or None when the identifier must be skipped this cycle."""
        try:
            return await asyncio.wait_for(self.quote_source.fetch(identifier), timeout=self.fetch_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Skipping {identifier}: quote fetch timed out after {self.fetch_timeout}s")
        except NotFoundError as e:
            logger.warning(f"Skipping {identifier}: {e}")
        except QuoteError as e:
            logger.warning(f"Skipping {identifier}: quote fetch failed: {e}")
        except Exception as e:
            logger.exception(f"Skipping {identifier}: unexpected quote source error: {e}")
        return None

    def _fire(
        self,
        kind: AlertKind,
        identifier: str,
        condition: Callable[[Alert], bool],
        render: Callable[[Alert], str]
    ) -> int:
        """Remove every triggered alert of a kind for identifier and queue its notification."""
        fired_count = 0

        for user_id in self.registry.users(kind):
            fired = self.registry.remove_fired(
                kind,
                user_id,
                lambda alert: alert.identifier == identifier and condition(alert)
            )
            for alert in fired:
                logger.info(f"{kind.value} alert fired for {user_id}: {alert}")
                self._dispatch(user_id, render(alert), f"{kind.value} {identifier}")
                fired_count += 1

        return fired_count

    def evaluate_snapshot(self, snapshot: Snapshot) -> int:
        """
        Evaluate all alerts on snapshot.identifier, then record its volume.

        The volume check compares against the average of strictly prior
        samples. Runs without suspension points.

        Returns:
            Number of alerts fired
        """
        identifier = snapshot.identifier
        price = snapshot.price
        percent_change = snapshot.percent_change
        volume = snapshot.volume

        average = self.history.average(identifier)
        sample_count = self.history.sample_count(identifier)

        fired = self._fire(
            AlertKind.PRICE, identifier,
            lambda alert: alert.is_triggered(price),
            lambda alert: template_price_alert(alert, snapshot)
        )
        fired += self._fire(
            AlertKind.CHANGE, identifier,
            lambda alert: alert.is_triggered(percent_change),
            lambda alert: template_change_alert(alert, snapshot)
        )
        fired += self._fire(
            AlertKind.VOLUME, identifier,
            lambda alert: alert.is_triggered(volume, average, sample_count, self.min_volume_samples),
            lambda alert: template_volume_alert(alert, snapshot, average)
        )

        self.history.append(identifier, volume)

        logger.debug(
            f"{identifier}: price={price:.2f} change={percent_change:+.2f}% "
            f"volume={volume:.0f} avg={average:.0f} (n={sample_count}) fired={fired}"
        )
        return fired

    async def run_cycle(self) -> CycleReport:
        """One full pass over every identifier referenced by an active alert."""
        report = CycleReport()
        identifiers = sorted(self.registry.all_identifiers())
        report.identifiers = len(identifiers)

        for identifier in identifiers:
            snapshot = await self._fetch(identifier)
            if snapshot is None:
                report.skipped.append(identifier)
                continue

            report.fired += self.evaluate_snapshot(snapshot)
            report.evaluated += 1

        self.cycles_completed += 1
        self.alerts_fired += report.fired
        self.last_cycle_at = datetime.now(timezone.utc)

        if identifiers:
            logger.info(
                f"Cycle {self.cycles_completed}: {report.evaluated}/{report.identifiers} identifiers evaluated, "
                f"{report.fired} alerts fired, {len(report.skipped)} skipped"
            )
        else:
            logger.debug(f"Cycle {self.cycles_completed}: no active alerts")

        return report

    def _dispatch(self, user_id: str, text: str, label: str) -> None:
        task = asyncio.create_task(self._deliver(user_id, text, label))
        self._notification_tasks.add(task)
        task.add_done_callback(self._notification_tasks.discard)

    async def _deliver(self, user_id: str, text: str, label: str) -> None:
        try:
            success = await self.notifier.send(user_id, text)
        except Exception as e:
            logger.exception(f"Notifier raised while sending {label} alert to {user_id}: {e}")
            success = False

        if success:
            self.notifications_sent += 1
        else:
            # Alert is not restored: delivery is at-most-once
            self.notifications_failed += 1
            logger.error(f"Failed to deliver {label} alert to {user_id} - alert discarded")

    @property
    def pending_notifications(self) -> int:
        return len(self._notification_tasks)

    async def drain_notifications(self) -> None:
        """Wait for every queued notification to finish."""
        while self._notification_tasks:
            await asyncio.gather(*list(self._notification_tasks), return_exceptions=True)

    def stats(self) -> Dict:
        return {
            "cycles_completed": self.cycles_completed,
            "last_cycle_at": self.last_cycle_at.isoformat() if self.last_cycle_at else None,
            "alerts_fired": self.alerts_fired,
            "notifications_sent": self.notifications_sent,
            "notifications_failed": self.notifications_failed,
            "pending_notifications": self.pending_notifications,
            "active_alerts": {kind.value: self.registry.count(kind) for kind in AlertKind},
            "tracked_identifiers": len(self.registry.all_identifiers()),
        }

    async def run(self):
        """Main loop: evaluate now, then once per poll interval after each cycle completes."""
        self.running = True
        logger.info(f"Alert Engine started (poll interval {self.poll_interval}s)")

        try:
            while self.running:
                try:
                    await self.run_cycle()
                except Exception as e:
                    logger.exception(f"Error in alert evaluation cycle: {e}")

                if not self.running:
                    break
                await asyncio.sleep(self.poll_interval)
        finally:
            self.running = False

    async def stop(self):
        """Stop the alert engine gracefully."""
        logger.info("Stopping alert engine...")
        self.running = False
        await self.drain_notifications()
