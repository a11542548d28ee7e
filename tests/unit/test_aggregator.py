"""
Price Aggregator Unit Tests
Tests for agents/aggregator/

Tests:
- Median consensus and outlier rejection
- Quorum and disagreement failures
- Operator override bypass
- Source extraction paths and failure isolation
- Concurrent fetch, per-source timeout and worker reuse
"""
import threading
import time
import typing
from typing import Sequence

import pytest

from agents.aggregator import PriceAggregator, PriceSource, deviation_bps, parse_override
from agents.aggregator.sources import default_sources
from core.config.runtime import DEFAULT_SOURCES
from core.http import HttpClient, HttpError, HttpResponse
from core.schemas.errors import AggregationError, ErrorCodes, SourceFetchError
from core.schemas.oracle import OVERRIDE_SOURCE

from fixtures.common import StubHttpClient, source_responses


def make_aggregator(http, **kwargs) -> PriceAggregator:
    return PriceAggregator(default_sources(DEFAULT_SOURCES), http, **kwargs)


class TestDeviation:
    """Tests for deviation_bps()."""

    def test_deviation_rounds_half_up(self):
        assert deviation_bps(351.0, 350.0) == 29
        assert deviation_bps(349.5, 350.0) == 14
        assert deviation_bps(100.5, 100.0) == 50
        assert deviation_bps(350.0, 350.0) == 0


class TestAggregate:
    """Tests for PriceAggregator.aggregate()."""

    def test_outlier_scenario(self):
        """350 / 351 / 349.5 agree, 500 is flagged and excluded from the median."""
        http = StubHttpClient(source_responses(350.0, 351.0, 349.5, 500.0))

        result = make_aggregator(http).aggregate()

        assert result.consensus_price == 350.0
        assert result.valid_count == 3
        assert [o.source_name for o in result.outliers] == ["CoinGecko"]
        assert result.spread_bps == 29
        assert not result.is_override

    def test_all_sources_agree(self):
        http = StubHttpClient(source_responses(350.0, 351.0, 349.5, 350.5))

        result = make_aggregator(http).aggregate()

        assert result.valid_count == 4
        assert result.outliers == []
        assert result.consensus_price == pytest.approx(350.25)

    def test_observations_keep_source_order(self):
        http = StubHttpClient(source_responses(350.0, None, 349.5, 350.5))

        result = make_aggregator(http).aggregate()

        assert result.source_names == ["Binance", "Coinbase", "Kraken", "CoinGecko"]
        assert result.source_summary()[1] == "Coinbase:fail"
        assert result.valid_count == 3

    def test_every_source_requested(self):
        http = StubHttpClient(source_responses())

        make_aggregator(http).aggregate()

        assert sorted(http.requested) == sorted(s["url"] for s in DEFAULT_SOURCES)

    def test_quorum_not_met(self):
        """One responding source is below the default minimum of two."""
        http = StubHttpClient(source_responses(350.0, None, None, None))

        with pytest.raises(AggregationError) as exc_info:
            make_aggregator(http).aggregate()

        assert exc_info.value.code == ErrorCodes.QUORUM_NOT_MET
        assert "insufficient sources responded" in exc_info.value.message
        assert not exc_info.value.retryable

    def test_no_sources_respond(self):
        with pytest.raises(AggregationError):
            make_aggregator(StubHttpClient({})).aggregate()

    def test_disagreement_is_possible_manipulation(self):
        """Two sources that both sit far from their median cannot form a quorum."""
        http = StubHttpClient(source_responses(100.0, 300.0, None, None))

        with pytest.raises(AggregationError) as exc_info:
            make_aggregator(http).aggregate()

        assert exc_info.value.code == ErrorCodes.SOURCE_DISAGREEMENT
        assert "possible manipulation" in exc_info.value.message

    def test_tolerance_is_configurable(self):
        http = StubHttpClient(source_responses(350.0, 370.0, None, None))

        with pytest.raises(AggregationError):
            make_aggregator(http).aggregate()

        result = make_aggregator(http, max_deviation_bps=500).aggregate()
        assert result.valid_count == 2
        assert result.consensus_price == 360.0

    def test_min_sources_validated(self):
        with pytest.raises(ValueError):
            make_aggregator(StubHttpClient(), min_sources=0)

    def test_constructor_annotations_resolve(self):
        hints = typing.get_type_hints(PriceAggregator.__init__)

        assert hints["sources"] == Sequence[PriceSource]
        assert hints["http"] is HttpClient


class StallingHttpClient(StubHttpClient):
    """Holds requests for the given URLs until release is set."""

    def __init__(self, responses, stalled: set[str]) -> None:
        super().__init__(responses)
        self.stalled = stalled
        self.release = threading.Event()

    def get(self, url: str, **kwargs) -> HttpResponse:
        if url in self.stalled:
            self.release.wait(timeout=10.0)
        return super().get(url, **kwargs)


class TestFetchAll:
    """Tests for PriceAggregator.fetch_all() concurrency and pool reuse."""

    def test_stalled_sources_time_out_together(self):
        """Two hung venues cost one timeout window, and the others still reach quorum."""
        urls = {s["name"]: s["url"] for s in DEFAULT_SOURCES}
        http = StallingHttpClient(
            source_responses(350.0, 351.0, 349.5, 350.5),
            stalled={urls["Coinbase"], urls["CoinGecko"]},
        )
        agg = make_aggregator(http, fetch_timeout_s=0.2)
        window = agg.fetch_timeout_s + 1.0

        try:
            started = time.monotonic()
            observations = agg.fetch_all()
            elapsed = time.monotonic() - started
        finally:
            http.release.set()
            agg.close()

        by_name = {o.source_name: o for o in observations}
        assert not by_name["Coinbase"].ok
        assert "timeout" in by_name["Coinbase"].error
        assert not by_name["CoinGecko"].ok
        assert by_name["Binance"].ok and by_name["Kraken"].ok
        assert elapsed < 2 * window

        result = agg.reduce(observations)
        assert result.valid_count == 2
        assert result.consensus_price == pytest.approx(349.75)

    def test_sessions_reused_across_cycles(self):
        """Worker threads persist, so HTTP sessions never exceed one per source."""
        sources = [
            PriceSource(name=f"Local{i}", url=f"http://127.0.0.1:1/price/{i}", path="price")
            for i in range(4)
        ]
        http = HttpClient(timeout=0.5)
        agg = PriceAggregator(sources, http, fetch_timeout_s=0.5)

        try:
            for _ in range(5):
                observations = agg.fetch_all()
                assert not any(o.ok for o in observations)
                assert len(http._sessions) <= len(sources)
        finally:
            agg.close()

        assert http._sessions == []


class TestOverride:
    """Tests for the operator override."""

    def test_override_bypasses_sources(self):
        http = StubHttpClient(source_responses())

        result = make_aggregator(http).aggregate(override_price="200")

        assert result.consensus_price == 200.0
        assert result.source_names == [OVERRIDE_SOURCE]
        assert result.valid_count == 1
        assert result.spread_bps == 0
        assert result.is_override
        assert http.requested == []

    @pytest.mark.parametrize("bad", ["abc", "-5", "0", "nan", "inf", [1]])
    def test_invalid_override_rejected(self, bad):
        with pytest.raises(AggregationError) as exc_info:
            parse_override(bad)
        assert exc_info.value.code == ErrorCodes.INVALID_OVERRIDE


class TestPriceSource:
    """Tests for PriceSource extraction and fetching."""

    def test_dotted_path(self):
        src = PriceSource("Coinbase", "https://x", "data.amount")
        assert src.extract({"data": {"amount": "616.51"}}) == 616.51

    def test_wildcard_and_index(self):
        """Kraken nests the pair under a venue-specific key."""
        src = PriceSource("Kraken", "https://x", "result.*.c.0")
        assert src.extract({"result": {"BNBUSD": {"c": ["349.50", "1.0"]}}}) == 349.5

    def test_missing_field(self):
        src = PriceSource("Binance", "https://x", "price")
        with pytest.raises(SourceFetchError) as exc_info:
            src.extract({"symbol": "BNBUSDT"})
        assert exc_info.value.details["source"] == "Binance"

    @pytest.mark.parametrize("leaf", ["abc", None, "-1", "0", "nan"])
    def test_invalid_leaf(self, leaf):
        src = PriceSource("Binance", "https://x", "price")
        with pytest.raises(SourceFetchError):
            src.extract({"price": leaf})

    def test_bad_index(self):
        src = PriceSource("Kraken", "https://x", "c.5")
        with pytest.raises(SourceFetchError):
            src.extract({"c": ["1"]})

    def test_wildcard_on_empty_object(self):
        src = PriceSource("Kraken", "https://x", "result.*.c.0")
        with pytest.raises(SourceFetchError):
            src.extract({"result": {}})

    def test_http_error_status_is_failed_observation(self):
        url = "https://api.example/price"
        http = StubHttpClient({url: HttpResponse(status_code=503, content=b"busy", url=url)})

        obs = PriceSource("Venue", url, "price").observe(http)

        assert not obs.ok
        assert obs.error.startswith("HTTP 503")
        assert "busy" in obs.error

    def test_malformed_json_is_failed_observation(self):
        url = "https://api.example/price"
        http = StubHttpClient({url: HttpResponse(status_code=200, content=b"<html>", url=url)})

        obs = PriceSource("Venue", url, "price").observe(http)

        assert not obs.ok
        assert "malformed JSON" in obs.error

    def test_transport_error_is_failed_observation(self):
        url = "https://api.example/price"
        http = StubHttpClient({url: HttpError("connection timed out")})

        obs = PriceSource("Venue", url, "price").observe(http)

        assert not obs.ok
        assert obs.error == "connection timed out"

    def test_from_dict(self):
        src = PriceSource.from_dict(DEFAULT_SOURCES[2])
        assert src.name == "Kraken"
        assert src.path == "result.*.c.0"
