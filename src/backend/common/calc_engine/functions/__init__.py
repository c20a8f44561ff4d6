from .payment import (
    DiscountCurveId,
    DiscountRateKey,
    Payment,
    PaymentForecastValueFunction,
    PaymentPvFunction,
    discount_curve_mappings,
)

__all__ = [
    "DiscountCurveId",
    "DiscountRateKey",
    "Payment",
    "PaymentForecastValueFunction",
    "PaymentPvFunction",
    "discount_curve_mappings",
]
