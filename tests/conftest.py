"""Shared test fixtures and configuration."""
import asyncio
from pathlib import Path
from typing import Dict, List, Optional, Tuple
import pytest
import yaml

from stockalert.datafeeds.twse import NotFoundError, Snapshot
from stockalert.storage.history import VolumeHistory
from stockalert.storage.registry import AlertRegistry


class FakeQuoteSource:
    """
    Quote source returning canned snapshots.

    Values in `quotes` may be a Snapshot, an exception instance to raise,
    or the string "hang" to never resolve.
    """

    def __init__(self, quotes: Optional[Dict] = None):
        self.quotes = dict(quotes or {})
        self.calls: List[str] = []

    async def fetch(self, identifier: str) -> Snapshot:
        self.calls.append(identifier)
        quote = self.quotes.get(identifier)
        if quote is None:
            raise NotFoundError(f"No TWSE data for {identifier}")
        if quote == "hang":
            await asyncio.Event().wait()
        if isinstance(quote, Exception):
            raise quote
        return quote


class RecordingNotifier:
    """Notifier that records messages; can be told to fail or raise."""

    def __init__(self, succeed: bool = True, raise_error: bool = False):
        self.succeed = succeed
        self.raise_error = raise_error
        self.sent: List[Tuple[str, str]] = []

    async def send(self, user_id: str, text: str) -> bool:
        self.sent.append((user_id, text))
        if self.raise_error:
            raise RuntimeError("telegram down")
        return self.succeed


def make_snapshot(
    identifier: str = "2330",
    price: float = 650.0,
    previous_close: Optional[float] = 600.0,
    volume: float = 100.0,
    name: str = "台積電"
) -> Snapshot:
    return Snapshot(
        identifier=identifier,
        name=name,
        price=price,
        previous_close=previous_close,
        volume=volume,
        open=previous_close or price,
        high=price,
        low=previous_close or price,
        timestamp=1700000000000,
    )


@pytest.fixture
def registry() -> AlertRegistry:
    return AlertRegistry()


@pytest.fixture
def history() -> VolumeHistory:
    return VolumeHistory()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def sample_twse_payload() -> Dict:
    """Trimmed getStockInfo.jsp response for 2330."""
    return {
        "msgArray": [
            {
                "c": "2330",
                "n": "台積電",
                "z": "650.0000",
                "y": "600.0000",
                "v": "25123",
                "o": "605.0000",
                "h": "655.0000",
                "l": "602.0000",
                "tlong": "1700000000000"
            }
        ],
        "rtmessage": "OK",
        "rtcode": "0000"
    }


@pytest.fixture
def test_config_yaml(tmp_path: Path) -> Path:
    """Create a temporary test config YAML file."""
    config = {
        'bot': {
            'name': 'TWSE Alert Bot Test',
            'version': '1.2.0'
        },
        'quotes': {
            'base_url': 'https://example.test/getStockInfo.jsp',
            'market': 'tse',
            'timeout_seconds': 5
        },
        'healthcheck': {
            'enabled': False,
            'port': 9090
        },
        'stocks': {
            'names': {
                '0050': '元大台灣50'
            }
        }
    }

    config_file = tmp_path / 'test_config.yaml'
    with open(config_file, 'w', encoding='utf-8') as f:
        yaml.dump(config, f, allow_unicode=True)

    return config_file


@pytest.fixture
def loaded_config(monkeypatch, test_config_yaml: Path):
    """Install the test YAML as the global config instance."""
    from stockalert import config as config_module

    loader = config_module.ConfigLoader(str(test_config_yaml))
    monkeypatch.setattr(config_module, "_config_instance", loader)
    return loader
