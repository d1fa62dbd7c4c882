"""
Exchange rate, gold price and fee endpoints
"""

from fastapi import APIRouter, Depends

from .deps import GoldPlatform, get_platform
from .schemas import GoldQuoteRequest, DeliveryQuoteRequest, ProfitLossRequest
from ..currency import Currency, format_currency
from ..pricing import deposit_fee, withdrawal_fee


router = APIRouter()


@router.get("/rates")
def get_rates(system: GoldPlatform = Depends(get_platform)):
    """Exchange rates relative to USD"""
    return {
        "base": "USD",
        "rates": {code: str(rate) for code, rate in system.converter.all_rates().items()}
    }


@router.get("/rates/convert")
def convert_amount(
    amount: str,
    from_currency: str,
    to_currency: str,
    locale: str = "en-US",
    system: GoldPlatform = Depends(get_platform)
):
    """Convert an amount between supported currencies"""
    converted = system.converter.convert(amount, from_currency, to_currency)
    return {
        "amount": str(converted),
        "currency": Currency.from_code(to_currency).code,
        "formatted": format_currency(converted, to_currency, locale)
    }


@router.get("/gold/price")
def get_gold_price(currency: str = "USD", system: GoldPlatform = Depends(get_platform)):
    """Current gold price per gram and per troy ounce"""
    engine = system.pricing_engine
    return {
        "currency": Currency.from_code(currency).code,
        "price_per_gram": str(engine.price_per_gram(currency)),
        "price_per_ounce": str(engine.price_per_ounce(currency))
    }


@router.post("/gold/quote/buy")
def quote_buy(request: GoldQuoteRequest, system: GoldPlatform = Depends(get_platform)):
    """Quote a gold purchase including fee"""
    return system.pricing_engine.quote_buy(request.grams, request.currency).to_dict()


@router.post("/gold/quote/sell")
def quote_sell(request: GoldQuoteRequest, system: GoldPlatform = Depends(get_platform)):
    """Quote a gold sale net of fee"""
    return system.pricing_engine.quote_sell(request.grams, request.currency).to_dict()


@router.post("/gold/quote/delivery")
def quote_delivery(request: DeliveryQuoteRequest, system: GoldPlatform = Depends(get_platform)):
    """Quote physical delivery"""
    quote = system.pricing_engine.quote_delivery(request.grams, request.delivery_type, request.currency)
    return quote.to_dict()


@router.post("/gold/profit-loss")
def profit_loss(request: ProfitLossRequest, system: GoldPlatform = Depends(get_platform)):
    result = system.pricing_engine.profit_loss(
        request.grams, request.average_purchase_price, request.current_price
    )
    return {
        "total_investment": str(result.total_investment),
        "current_value": str(result.current_value),
        "profit_loss": str(result.profit_loss),
        "profit_loss_percentage": str(result.profit_loss_percentage)
    }


@router.get("/fees/deposit")
def get_deposit_fee(amount: str, method: str):
    return {"amount": amount, "method": method, "fee": str(deposit_fee(amount, method))}


@router.get("/fees/withdrawal")
def get_withdrawal_fee(amount: str, method: str):
    return {"amount": amount, "method": method, "fee": str(withdrawal_fee(amount, method))}
