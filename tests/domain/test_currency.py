"""Tests for currency normalization and USD conversion."""

from decimal import Decimal

import pytest

from winroom_kernel.domain.currency import (
    MissingCurrency,
    SupportedCurrency,
    UnsupportedCurrency,
    convert_to_usd,
    normalize_currency,
)


class TestNormalizeCurrency:
    @pytest.mark.parametrize("raw", ["USD", "usd", " US ", "$"])
    def test_dollar_aliases(self, raw):
        assert normalize_currency(raw) == SupportedCurrency("USD")

    @pytest.mark.parametrize("raw", ["TRY", "tr", "TL", "tl", "₺"])
    def test_lira_aliases(self, raw):
        assert normalize_currency(raw) == SupportedCurrency("TRY")

    def test_riyal(self):
        assert normalize_currency("sar") == SupportedCurrency("SAR")

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_missing(self, raw):
        assert isinstance(normalize_currency(raw), MissingCurrency)

    def test_unsupported_keeps_raw_text(self):
        assert normalize_currency(" EUR ") == UnsupportedCurrency("EUR")


class TestConvertToUsd:
    def test_usd_passthrough(self):
        assert convert_to_usd(Decimal("12.5"), SupportedCurrency("USD"), Decimal("40")) == Decimal("12.5")

    def test_try_divided_by_rate(self):
        assert convert_to_usd(Decimal("420"), SupportedCurrency("TRY"), Decimal("42")) == Decimal("10")

    def test_try_with_unusable_rate(self):
        assert convert_to_usd(Decimal("420"), SupportedCurrency("TRY"), Decimal("0")) is None

    def test_sar_peg_ignores_try_rate(self):
        assert convert_to_usd(Decimal("375"), SupportedCurrency("SAR"), Decimal("0")) == Decimal("100")

    def test_unsupported_and_missing(self):
        rate = Decimal("40")
        assert convert_to_usd(Decimal("1"), UnsupportedCurrency("EUR"), rate) is None
        assert convert_to_usd(Decimal("1"), MissingCurrency(), rate) is None

    def test_unknown_resolution_type_rejected(self):
        with pytest.raises(TypeError):
            convert_to_usd(Decimal("1"), "USD", Decimal("40"))
