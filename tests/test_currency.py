"""
Test suite for currency module

Tests Money class, currency conversion through the USD base, and
locale-aware display formatting. All amounts must use Decimal precision.
"""

import pytest
from decimal import Decimal
from unittest.mock import Mock

from gold_platform.currency import (
    Money, Currency, CurrencyConverter, BASE_CURRENCY,
    format_currency, format_gold, format_number, format_percentage,
    quantize_amount, to_decimal
)
from gold_platform.errors import InvalidAmount, InvalidCurrency, RateUnavailable
from gold_platform.rates import StaticExchangeRateProvider


class TestCurrency:
    """Test the supported currency set"""

    def test_supported_currencies(self):
        assert [c.code for c in Currency] == ["USD", "EUR", "GBP", "EGP", "SAR"]
        assert BASE_CURRENCY == Currency.USD

    def test_symbols_and_names(self):
        assert Currency.USD.symbol == "$"
        assert Currency.EUR.symbol == "€"
        assert Currency.GBP.symbol == "£"
        assert Currency.EGP.symbol == "E£"
        assert Currency.SAR.display_name == "Saudi Riyal"

    def test_from_code(self):
        assert Currency.from_code("EUR") == Currency.EUR
        assert Currency.from_code(" egp ") == Currency.EGP
        assert Currency.from_code(Currency.SAR) == Currency.SAR

    def test_from_code_unsupported(self):
        with pytest.raises(InvalidCurrency) as exc_info:
            Currency.from_code("JPY")
        assert exc_info.value.code == "JPY"
        assert "Currency not supported: JPY" in str(exc_info.value)

        with pytest.raises(InvalidCurrency):
            Currency.from_code(123)


class TestMoney:
    """Test Money class operations"""

    def test_money_rounds_half_up(self):
        money = Money(Decimal('10.005'), Currency.USD)
        assert money.amount == Decimal('10.01')

    def test_money_from_string(self):
        money = Money("99.999", Currency.EUR)
        assert money.amount == Decimal('100.00')

    def test_money_arithmetic(self):
        a = Money(Decimal('100.50'), Currency.USD)
        b = Money(Decimal('50.25'), Currency.USD)

        assert (a + b).amount == Decimal('150.75')
        assert (a - b).amount == Decimal('50.25')
        assert (a * Decimal('2')).amount == Decimal('201.00')
        assert b < a
        assert a.is_positive()

    def test_money_currency_mismatch(self):
        usd = Money(Decimal('10'), Currency.USD)
        eur = Money(Decimal('10'), Currency.EUR)
        with pytest.raises(ValueError):
            usd + eur
        assert usd != eur

    def test_money_display(self):
        money = Money(Decimal('1234.5'), Currency.USD)
        assert money.to_string() == "$1,234.50"
        assert money.to_dict() == {"amount": "1234.50", "currency": "USD"}


class TestCurrencyConverter:
    """Test conversion through the base currency"""

    def setup_method(self):
        self.provider = Mock(wraps=StaticExchangeRateProvider())
        self.converter = CurrencyConverter(self.provider)

    def test_convert_from_base(self):
        assert self.converter.convert(Decimal('100'), "USD", "EUR") == Decimal('92.00')
        assert self.converter.convert(Decimal('100'), "USD", "EGP") == Decimal('4850.00')

    def test_convert_to_base(self):
        # 100 / 0.92 = 108.695...
        assert self.converter.convert(Decimal('100'), "EUR", "USD") == Decimal('108.70')

    def test_cross_conversion(self):
        # 1000 / 48.5 * 3.75 = 77.3195...
        assert self.converter.convert(Decimal('1000'), Currency.EGP, Currency.SAR) == Decimal('77.32')

    def test_same_currency_is_identity(self):
        assert self.converter.convert(Decimal('123.456'), "GBP", "GBP") == Decimal('123.456')
        self.provider.get_rates.assert_not_called()

    def test_invalid_currency_checked_before_provider(self):
        with pytest.raises(InvalidCurrency):
            self.converter.convert(Decimal('10'), "USD", "XYZ")
        with pytest.raises(InvalidCurrency):
            self.converter.convert(Decimal('10'), "ABC", "USD")
        self.provider.get_rates.assert_not_called()

    def test_round_trip_within_rounding(self):
        amount = Decimal('1000')
        for a in Currency:
            for b in Currency:
                there = self.converter.convert(amount, a, b)
                back = self.converter.convert(there, b, a)
                tolerance = Decimal('0.005') * self.converter.rate(b, a) + Decimal('0.005')
                assert abs(back - amount) <= tolerance, f"{a.code}->{b.code}"

    def test_rate(self):
        assert self.converter.rate("USD", "EGP") == Decimal('48.5')
        assert self.converter.rate("EUR", "EUR") == Decimal('1')
        assert self.converter.rate("EUR", "GBP") == Decimal('0.79') / Decimal('0.92')

    def test_all_rates(self):
        rates = self.converter.all_rates()
        assert rates["USD"] == Decimal('1')
        assert rates["SAR"] == Decimal('3.75')
        assert set(rates) == {"USD", "EUR", "GBP", "EGP", "SAR"}

    def test_convert_money(self):
        converted = self.converter.convert_money(Money(Decimal('50'), Currency.USD), "GBP")
        assert converted == Money(Decimal('39.50'), Currency.GBP)

    def test_same_currency_rate_without_provider(self):
        provider = Mock()
        provider.get_rates.side_effect = RateUnavailable("feed down")
        converter = CurrencyConverter(provider)
        for currency in Currency:
            assert converter.rate(currency, currency) == Decimal('1')
        provider.get_rates.assert_not_called()

    def test_provider_failure_propagates(self):
        provider = Mock()
        provider.get_rates.side_effect = RateUnavailable("feed down")
        converter = CurrencyConverter(provider)
        with pytest.raises(RateUnavailable):
            converter.convert(Decimal('10'), "USD", "EUR")


class TestFormatting:
    """Test display formatting helpers"""

    def test_format_currency_default_locale(self):
        assert format_currency(Decimal('1234.56'), "USD") == "$1,234.56"
        assert format_currency(Decimal('0.5'), "GBP") == "£0.50"
        assert format_currency(Decimal('-5'), "USD") == "-$5.00"

    def test_format_currency_other_locales(self):
        assert format_currency(Decimal('1234.56'), "EUR", "de-DE") == "1.234,56 €"
        assert format_currency(Decimal('1234.5'), "EUR", "fr-FR") == "1 234,50 €"

    def test_format_currency_unknown_locale_falls_back(self):
        assert format_currency(Decimal('1000'), "USD", "xx-XX") == "$1,000.00"

    def test_format_currency_invalid_code(self):
        with pytest.raises(InvalidCurrency):
            format_currency(Decimal('1'), "BTC")

    def test_format_gold(self):
        assert format_gold(Decimal('10.5')) == "10.50g"
        assert format_gold(Decimal('1.123')) == "1.123g"
        assert format_gold(Decimal('0.1234567')) == "0.123457g"
        assert format_gold(Decimal('1234.5')) == "1,234.50g"
        assert format_gold(10) == "10.00g"

    def test_format_percentage(self):
        assert format_percentage(Decimal('0.1523')) == "15.23%"
        assert format_percentage(Decimal('-0.05')) == "-5.00%"

    def test_format_number(self):
        assert format_number(Decimal('1234567.891')) == "1,234,567.89"
        assert format_number(Decimal('1234.5'), 1, "de-DE") == "1.234,5"


class TestDecimalHelpers:

    def test_to_decimal_avoids_float_artefacts(self):
        assert to_decimal(0.1) == Decimal('0.1')
        assert to_decimal("2.50") == Decimal('2.50')

    def test_to_decimal_rejects_garbage(self):
        with pytest.raises(ValueError):
            to_decimal("abc")
        with pytest.raises(InvalidAmount):
            to_decimal("abc")

    @pytest.mark.parametrize("value", ["Infinity", "-Infinity", "NaN", Decimal('Infinity'), float('nan')])
    def test_to_decimal_rejects_non_finite(self, value):
        with pytest.raises(InvalidAmount):
            to_decimal(value)

    def test_non_finite_amounts_rejected_by_convert_and_format(self):
        converter = CurrencyConverter(StaticExchangeRateProvider())
        with pytest.raises(InvalidAmount):
            converter.convert("Infinity", "USD", "EUR")
        with pytest.raises(InvalidAmount):
            converter.convert("NaN", "USD", "USD")
        with pytest.raises(InvalidAmount):
            format_currency("NaN", "USD")

    def test_quantize_amount(self):
        assert quantize_amount(Decimal('2.345')) == Decimal('2.35')
        assert quantize_amount(Decimal('2.3449')) == Decimal('2.34')
