"""Tests for the chat command layer."""
import pytest

from conftest import FakeQuoteSource, make_snapshot
from stockalert.commands import CommandHandler
from stockalert.datafeeds.twse import FetchError
from stockalert.notif.templates import (
    MSG_INVALID_MULTIPLIER,
    MSG_INVALID_NUMBER,
    MSG_NO_PRICE_ALERTS,
    MSG_NO_VOLUME_ALERTS,
    MSG_QUOTE_ERROR
)
from stockalert.rules.rule_defs import AlertKind, ChangeAlert, Direction, PriceAlert, VolumeAlert


@pytest.fixture
def quotes() -> FakeQuoteSource:
    return FakeQuoteSource({
        "2330": make_snapshot(price=600.0, previous_close=590.0),
        "2317": FetchError("connection reset"),
    })


@pytest.fixture
def handler(registry, quotes) -> CommandHandler:
    return CommandHandler(registry, quotes)


class TestPriceCommands:
    """ALERT <code> ABOVE|BELOW <price> and the simple form."""

    @pytest.mark.asyncio
    async def test_explicit_direction(self, handler, registry):
        """ALERT 2330 ABOVE 650 stores an ABOVE alert and acknowledges it."""
        reply = await handler.handle("u1", "ALERT 2330 ABOVE 650")

        assert registry.list_by_user(AlertKind.PRICE, "u1") == [PriceAlert("2330", Direction.ABOVE, 650.0)]
        assert "台積電" in reply
        assert "650.00" in reply

    @pytest.mark.asyncio
    async def test_case_and_whitespace_insensitive(self, handler, registry):
        """Lower case and surrounding spaces are accepted."""
        await handler.handle("u1", "  alert 2330 below 550.5 ")

        assert registry.list_by_user(AlertKind.PRICE, "u1") == [PriceAlert("2330", Direction.BELOW, 550.5)]

    @pytest.mark.asyncio
    async def test_reissue_replaces(self, handler, registry):
        """Setting a new target for the same direction replaces the old one."""
        await handler.handle("u1", "ALERT 2330 ABOVE 650")
        await handler.handle("u1", "ALERT 2330 ABOVE 700")

        assert registry.list_by_user(AlertKind.PRICE, "u1") == [PriceAlert("2330", Direction.ABOVE, 700.0)]

    @pytest.mark.asyncio
    async def test_simple_form_above(self, handler, registry):
        """Target above the current price becomes ABOVE."""
        reply = await handler.handle("u1", "ALERT 2330 650")

        assert registry.list_by_user(AlertKind.PRICE, "u1") == [PriceAlert("2330", Direction.ABOVE, 650.0)]
        assert "600.00" in reply

    @pytest.mark.asyncio
    async def test_simple_form_below(self, handler, registry):
        """Target under the current price becomes BELOW."""
        await handler.handle("u1", "ALERT 2330 550")

        assert registry.list_by_user(AlertKind.PRICE, "u1") == [PriceAlert("2330", Direction.BELOW, 550.0)]

    @pytest.mark.asyncio
    async def test_simple_form_unknown_code(self, handler, registry):
        """Unknown code replies not-found and stores nothing."""
        reply = await handler.handle("u1", "ALERT 9999 10")

        assert "9999" in reply
        assert not registry.has_alerts(AlertKind.PRICE, "u1")

    @pytest.mark.asyncio
    async def test_simple_form_fetch_error(self, handler, registry):
        """Transient quote failure replies with a retry message."""
        reply = await handler.handle("u1", "ALERT 2317 100")

        assert reply == MSG_QUOTE_ERROR
        assert not registry.has_alerts(AlertKind.PRICE, "u1")


class TestChangeAndVolumeCommands:
    """ALERT <code> CHANGE <pct> and VOL <code> <multiplier>."""

    @pytest.mark.asyncio
    async def test_change_alert(self, handler, registry):
        """ALERT 2330 CHANGE 5 stores a 5% change alert."""
        reply = await handler.handle("u1", "ALERT 2330 CHANGE 5")

        assert registry.list_by_user(AlertKind.CHANGE, "u1") == [ChangeAlert("2330", 5.0)]
        assert "5.00%" in reply

    @pytest.mark.asyncio
    async def test_volume_alert(self, handler, registry):
        """VOL 2330 2.5 stores a volume alert."""
        reply = await handler.handle("u1", "VOL 2330 2.5")

        assert registry.list_by_user(AlertKind.VOLUME, "u1") == [VolumeAlert("2330", 2.5)]
        assert "2.50" in reply

    @pytest.mark.asyncio
    @pytest.mark.parametrize("multiplier", ["1", "0.5", "1.0"])
    async def test_volume_multiplier_must_exceed_one(self, handler, registry, multiplier):
        """Multipliers <= 1 are rejected before reaching the registry."""
        reply = await handler.handle("u1", f"VOL 2330 {multiplier}")

        assert reply == MSG_INVALID_MULTIPLIER
        assert not registry.has_alerts(AlertKind.VOLUME, "u1")

    @pytest.mark.asyncio
    async def test_volume_multiplier_overflow_rejected(self, handler, registry):
        """A digit string too long for a float is not a multiplier."""
        reply = await handler.handle("u1", "VOL 2330 " + "9" * 400)

        assert reply == MSG_INVALID_MULTIPLIER
        assert not registry.has_alerts(AlertKind.VOLUME, "u1")


class TestNonFiniteNumbers:
    """Numbers that overflow to inf are rejected before reaching the registry."""

    HUGE = "9" * 400

    @pytest.mark.asyncio
    @pytest.mark.parametrize("template", ["ALERT 2330 ABOVE {}", "ALERT 2330 BELOW {}", "ALERT 2330 {}"])
    async def test_price_forms(self, handler, registry, quotes, template):
        """Explicit and simple price alerts reply with an error and store nothing."""
        reply = await handler.handle("u1", template.format(self.HUGE))

        assert reply == MSG_INVALID_NUMBER
        assert not registry.has_alerts(AlertKind.PRICE, "u1")
        assert quotes.calls == []

    @pytest.mark.asyncio
    async def test_change_form(self, handler, registry):
        """ALERT <code> CHANGE <inf> is rejected."""
        reply = await handler.handle("u1", f"ALERT 2330 CHANGE {self.HUGE}")

        assert reply == MSG_INVALID_NUMBER
        assert not registry.has_alerts(AlertKind.CHANGE, "u1")

    @pytest.mark.asyncio
    async def test_long_but_finite_number_accepted(self, handler, registry):
        """Large finite targets are still valid."""
        await handler.handle("u1", "ALERT 2330 ABOVE 123456789.5")

        assert registry.list_by_user(AlertKind.PRICE, "u1") == [PriceAlert("2330", Direction.ABOVE, 123456789.5)]


class TestListAndClear:
    """LIST / CLEAR commands."""

    @pytest.mark.asyncio
    async def test_alert_list_empty(self, handler):
        """No alerts gives the empty message."""
        assert await handler.handle("u1", "ALERT LIST") == MSG_NO_PRICE_ALERTS

    @pytest.mark.asyncio
    async def test_alert_list_shows_price_and_change(self, handler):
        """ALERT LIST includes price and change alerts."""
        await handler.handle("u1", "ALERT 2330 ABOVE 650")
        await handler.handle("u1", "ALERT 2330 CHANGE 5")

        reply = await handler.handle("u1", "ALERT LIST")

        assert "2330 突破 650.00" in reply
        assert "2330 漲跌幅超過 5.00%" in reply

    @pytest.mark.asyncio
    async def test_alert_clear(self, handler, registry):
        """ALERT CLEAR removes price and change alerts but keeps volume alerts."""
        await handler.handle("u1", "ALERT 2330 ABOVE 650")
        await handler.handle("u1", "ALERT 2330 CHANGE 5")
        await handler.handle("u1", "VOL 2330 2")

        await handler.handle("u1", "ALERT CLEAR")

        assert not registry.has_alerts(AlertKind.PRICE, "u1")
        assert not registry.has_alerts(AlertKind.CHANGE, "u1")
        assert registry.has_alerts(AlertKind.VOLUME, "u1")

    @pytest.mark.asyncio
    async def test_volume_list_and_clear(self, handler, registry):
        """VOL LIST shows volume alerts; VOL CLEAR removes them."""
        assert await handler.handle("u1", "VOL LIST") == MSG_NO_VOLUME_ALERTS

        await handler.handle("u1", "VOL 2330 3")
        assert "3.00" in await handler.handle("u1", "VOL LIST")

        await handler.handle("u1", "VOL CLEAR")
        assert not registry.has_alerts(AlertKind.VOLUME, "u1")

    @pytest.mark.asyncio
    async def test_users_do_not_see_each_other(self, handler):
        """Lists are per user."""
        await handler.handle("u1", "ALERT 2330 ABOVE 650")

        assert await handler.handle("u2", "ALERT LIST") == MSG_NO_PRICE_ALERTS


class TestOtherCommands:
    """Quote, help and unknown input."""

    @pytest.mark.asyncio
    async def test_quote(self, handler):
        """P2330 replies with the formatted quote."""
        reply = await handler.handle("u1", "p2330")

        assert "台積電 (2330)" in reply
        assert "600.00" in reply
        assert "+10.00" in reply

    @pytest.mark.asyncio
    async def test_quote_unknown(self, handler):
        """Unknown code replies not found."""
        reply = await handler.handle("u1", "P9999")
        assert "查無股票代號 9999" in reply

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["HELP", "help", "/help", "幫助", "/start"])
    async def test_help(self, handler, text):
        """Help aliases return the usage text."""
        reply = await handler.handle("u1", text)
        assert "ALERT LIST" in reply

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["hello", "ALERT 23300 ABOVE 1", "VOL 2330", "P23"])
    async def test_unknown_text_has_no_reply(self, handler, registry, text):
        """Non-commands return None and change nothing."""
        assert await handler.handle("u1", text) is None
        assert registry.all_identifiers() == set()
