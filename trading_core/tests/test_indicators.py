"""
Tests for the indicator library.
Property-based checks for result lengths, RSI bounds and MACD crossover
flags, plus fixed-series checks for each indicator.
"""

import numpy as np
import pandas as pd
import pytest
from hypothesis import given, settings, strategies as st

from trading_core.indicators import (
    ATRIndicator,
    BollingerBandsIndicator,
    EMAIndicator,
    InsufficientDataError,
    MACDIndicator,
    RSIIndicator,
    SMAIndicator,
    create_indicator,
    default_parameters,
    detect_crossover,
    observations_from_frame,
    results_to_frame,
    supported_indicators,
)
from trading_core.indicators.macd import BEARISH, BULLISH
from trading_core.indicators.math_utils import ema, sma
from trading_core.interfaces.types import IndicatorType, PriceObservation, TimeFrame

from .helpers import make_series, rising_closes

TF = TimeFrame.ONE_MINUTE

prices_strategy = st.lists(
    st.floats(min_value=1.0, max_value=1000.0, allow_nan=False, allow_infinity=False),
    min_size=1,
    max_size=80,
)


def build(kind: str, period: int):
    if kind == "sma":
        return SMAIndicator("BTC-USD", TF, period=period)
    if kind == "ema":
        return EMAIndicator("BTC-USD", TF, period=period)
    if kind == "rsi":
        return RSIIndicator("BTC-USD", TF, period=period)
    if kind == "bollinger":
        return BollingerBandsIndicator("BTC-USD", TF, period=period)
    if kind == "atr":
        return ATRIndicator("BTC-USD", TF, period=period)
    return MACDIndicator("BTC-USD", TF, fast_period=period, slow_period=period + 3, signal_period=3)


class TestResultLength:
    """Window length vs. number of results."""

    @given(
        kind=st.sampled_from(["sma", "ema", "rsi", "bollinger", "atr", "macd"]),
        period=st.integers(min_value=1, max_value=20),
        closes=prices_strategy,
    )
    @settings(max_examples=150, deadline=None)
    def test_length_property(self, kind, period, closes):
        indicator = build(kind, period)
        window = make_series(closes)

        if len(window) < indicator.min_length:
            with pytest.raises(InsufficientDataError):
                indicator.calculate(window)
        else:
            results = indicator.calculate(window)
            assert len(results) == len(window) - indicator.min_length + 1
            # Results are aligned to the tail of the window
            assert results[-1].timestamp == window[-1].timestamp

    def test_insufficient_data_message(self):
        indicator = SMAIndicator("BTC-USD", TF, period=5)
        with pytest.raises(InsufficientDataError, match="need at least 5 data points, got 3") as exc_info:
            indicator.calculate(make_series([1, 2, 3]))
        assert exc_info.value.required == 5
        assert exc_info.value.available == 3

    def test_empty_window_raises(self):
        with pytest.raises(InsufficientDataError):
            RSIIndicator("BTC-USD", TF).calculate([])


class TestConstruction:

    @pytest.mark.parametrize("factory", [
        lambda: SMAIndicator("BTC-USD", TF, period=0),
        lambda: EMAIndicator("BTC-USD", TF, period=-1),
        lambda: RSIIndicator("BTC-USD", TF, period=0),
        lambda: ATRIndicator("BTC-USD", TF, period=0),
        lambda: BollingerBandsIndicator("BTC-USD", TF, period=0),
        lambda: MACDIndicator("BTC-USD", TF, fast_period=26, slow_period=12),
        lambda: MACDIndicator("BTC-USD", TF, fast_period=12, slow_period=12),
    ])
    def test_invalid_parameters_raise(self, factory):
        with pytest.raises(ValueError):
            factory()

    def test_rsi_thresholds_validated(self):
        with pytest.raises(ValueError):
            RSIIndicator("BTC-USD", TF, overbought=30.0, oversold=70.0)


class TestMovingAverages:

    def test_sma_values(self):
        results = SMAIndicator("BTC-USD", TF, period=3).calculate(make_series([1, 2, 3, 4, 5]))
        assert [r.value for r in results] == [2.0, 3.0, 4.0]
        assert results[0].metadata["period"] == 3

    def test_ema_seeded_with_sma(self):
        results = EMAIndicator("BTC-USD", TF, period=3).calculate(make_series([1, 2, 3, 4, 5]))
        # seed 2.0, multiplier 0.5
        assert [r.value for r in results] == [2.0, 3.0, 4.0]

    def test_ema_kernel_matches_pandas(self):
        values = np.linspace(10, 50, 40) + np.sin(np.arange(40))
        ours = ema(values, 5)
        seeded = pd.Series(np.concatenate([[values[:5].mean()], values[5:]]))
        expected = seeded.ewm(span=5, adjust=False).mean().to_numpy()
        np.testing.assert_allclose(ours, expected, rtol=1e-10)

    def test_sma_kernel_matches_rolling_mean(self):
        values = np.arange(1, 31, dtype=float) ** 1.5
        expected = pd.Series(values).rolling(7).mean().dropna().to_numpy()
        np.testing.assert_allclose(sma(values, 7), expected, rtol=1e-10)


class TestRSI:

    @given(closes=st.lists(
        st.floats(min_value=0.01, max_value=1e6, allow_nan=False, allow_infinity=False),
        min_size=15,
        max_size=60,
    ))
    @settings(max_examples=100, deadline=None)
    def test_rsi_bounded(self, closes):
        results = RSIIndicator("BTC-USD", TF, period=14).calculate(make_series(closes))
        assert all(0.0 <= r.value <= 100.0 for r in results)

    def test_all_gains_is_100(self):
        results = RSIIndicator("BTC-USD", TF).calculate(make_series(rising_closes(20)))
        assert all(r.value == 100.0 for r in results)
        assert results[-1].metadata["signal"] == "overbought"

    def test_all_losses_is_0(self):
        results = RSIIndicator("BTC-USD", TF).calculate(make_series(rising_closes(20, start=100, step=-1)))
        assert all(r.value == 0.0 for r in results)
        assert results[-1].metadata["signal"] == "oversold"

    def test_flat_series_is_100(self):
        # No losses at all
        results = RSIIndicator("BTC-USD", TF).calculate(make_series([50.0] * 16))
        assert results[-1].value == 100.0

    def test_metadata(self):
        latest = RSIIndicator("BTC-USD", TF, period=5, overbought=80, oversold=20).calculate(
            make_series([1, 2, 1, 2, 1, 2, 1])
        )[-1]
        assert latest.metadata["period"] == 5
        assert latest.metadata["overbought"] == 80
        assert latest.metadata["oversold"] == 20
        assert latest.metadata["signal"] in {"overbought", "oversold", "neutral"}


class TestMACD:

    @given(closes=st.lists(
        st.floats(min_value=1.0, max_value=500.0, allow_nan=False, allow_infinity=False),
        min_size=12,
        max_size=80,
    ))
    @settings(max_examples=100, deadline=None)
    def test_crossovers_only_on_sign_transitions(self, closes):
        indicator = MACDIndicator("BTC-USD", TF, fast_period=3, slow_period=6, signal_period=4)
        results = indicator.calculate(make_series(closes))

        assert results[0].metadata["crossover"] is None
        for previous, current in zip(results, results[1:]):
            prev_hist = previous.metadata["histogram"]
            hist = current.metadata["histogram"]
            flag = current.metadata["crossover"]
            if prev_hist <= 0 < hist:
                assert flag == BULLISH
            elif prev_hist >= 0 > hist:
                assert flag == BEARISH
            else:
                assert flag is None

    def test_detect_crossover(self):
        assert detect_crossover(None, 1.0) is None
        assert detect_crossover(-0.5, 0.5) == BULLISH
        assert detect_crossover(0.0, 0.5) == BULLISH
        assert detect_crossover(0.5, -0.5) == BEARISH
        assert detect_crossover(0.5, 0.7) is None
        assert detect_crossover(-0.5, -0.2) is None

    def test_histogram_is_macd_minus_signal(self):
        results = MACDIndicator("BTC-USD", TF).calculate(make_series(rising_closes(60)))
        for r in results:
            meta = r.metadata
            assert r.value == meta["histogram"]
            assert meta["histogram"] == pytest.approx(meta["macd"] - meta["signal"], abs=1e-7)
        assert results[-1].metadata["fast_period"] == 12

    def test_min_length(self):
        assert MACDIndicator("BTC-USD", TF).min_length == 34


class TestVolatility:

    def test_bollinger_bands_on_flat_series(self):
        latest = BollingerBandsIndicator("BTC-USD", TF, period=5).calculate(make_series([10.0] * 6))[-1]
        meta = latest.metadata
        assert meta["upper_band"] == meta["middle_band"] == meta["lower_band"] == 10.0
        assert meta["bandwidth"] == 0.0
        assert meta["squeeze"] is True
        assert meta["position"] == "inside"

    def test_bollinger_band_ordering(self):
        closes = [10, 12, 11, 13, 15, 14, 16, 18, 17, 19]
        for r in BollingerBandsIndicator("BTC-USD", TF, period=4).calculate(make_series(closes)):
            meta = r.metadata
            assert meta["lower_band"] <= meta["middle_band"] <= meta["upper_band"]

    def test_atr_constant_range(self):
        # high-low is always 2 with no gaps, so ATR is 2
        series = [
            PriceObservation(obs.timestamp, obs.open, obs.close + 1, obs.close - 1, obs.close, obs.volume)
            for obs in make_series([100.0] * 20)
        ]
        results = ATRIndicator("BTC-USD", TF, period=14).calculate(series)
        assert results[-1].value == pytest.approx(2.0)
        assert results[-1].metadata["atr_percentage"] == pytest.approx(2.0)
        assert results[-1].metadata["volatility"] == "medium"


class TestFactory:

    def test_supported_indicators(self):
        assert set(supported_indicators()) == set(IndicatorType)

    def test_defaults_applied(self):
        indicator = create_indicator(IndicatorType.RSI, "BTC-USD", TF)
        assert isinstance(indicator, RSIIndicator)
        assert indicator.period == 14
        assert default_parameters(IndicatorType.MACD) == {"fast_period": 12, "slow_period": 26, "signal_period": 9}

    def test_override_and_string_type(self):
        indicator = create_indicator("sma", "BTC-USD", TF, {"period": 7})
        assert isinstance(indicator, SMAIndicator)
        assert indicator.min_length == 7

    def test_unknown_parameter_rejected(self):
        with pytest.raises(ValueError, match="Unknown parameters"):
            create_indicator(IndicatorType.EMA, "BTC-USD", TF, {"length": 7})


class TestFrameBridge:

    def test_round_trip_through_dataframe(self):
        index = pd.date_range("2024-01-01", periods=25, freq="1min", tz="UTC")
        df = pd.DataFrame({
            "open": np.arange(25.0),
            "high": np.arange(25.0) + 1,
            "low": np.arange(25.0) - 1,
            "close": np.arange(25.0) + 10,
            "volume": 5.0,
        }, index=index)

        observations = observations_from_frame(df)
        assert len(observations) == 25
        assert observations[0].close == 10.0

        frame = results_to_frame(SMAIndicator("BTC-USD", TF, period=5).calculate(observations))
        assert list(frame.columns) == ["value", "period"]
        assert len(frame) == 21

    def test_missing_columns(self):
        with pytest.raises(ValueError, match="Missing OHLC columns"):
            observations_from_frame(pd.DataFrame({"close": [1.0]}))
