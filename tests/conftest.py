import sys
from pathlib import Path
from typing import Any, Dict, List, Mapping, Sequence, Union

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from btc_ltp.datasource.kraken_http_async import decode_ticker_payload  # noqa: E402
from btc_ltp.errors import reset_error_metrics  # noqa: E402


BATCH_KEY = "XBTUSD,XBTCHF,XBTEUR"

Outcome = Union[BaseException, Mapping[str, Any]]


def ticker(price: str, volume: str = "1.0") -> dict[str, Any]:
    return {"c": [price, volume]}


def ok_payload(**tickers: Mapping[str, Any]) -> dict[str, Any]:
    return {"error": [], "result": dict(tickers)}


class FakeTickerClient:
    """Scripted stand-in for :class:`KrakenTickerClient`.

    ``script`` maps a comma-joined symbol list to the outcomes returned on
    successive calls; the last outcome repeats once the list runs out.
    Mappings are passed through the real envelope decoder so error lists
    and bad shapes behave as they would against the upstream.
    """

    def __init__(self, script: Dict[str, Sequence[Outcome]] | None = None) -> None:
        self.script = {key: list(values) for key, values in (script or {}).items()}
        self.calls: List[str] = []
        self.closed = False

    async def fetch_ticker(self, symbols: Sequence[str]) -> Mapping[str, Any]:
        key = ",".join(symbols)
        self.calls.append(key)
        outcomes = self.script.get(key)
        if not outcomes:
            raise AssertionError(f"unscripted upstream call for {key}")
        outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return decode_ticker_payload(outcome, symbols=symbols)

    async def close(self) -> None:
        self.closed = True


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def _reset_error_counters() -> None:
    reset_error_metrics()


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
