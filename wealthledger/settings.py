"""Per-asset-class default annual rates, stored in app_config as rate_<type>."""

import logging
import math
from dataclasses import dataclass, field, replace
from typing import Dict

from wealthledger.db.config import get_config_prefixed, set_config
from wealthledger.exceptions import ConfigurationError
from wealthledger.formulas import safe_rate
from wealthledger.models import InvestmentType

logger = logging.getLogger(__name__)

RATE_KEY_PREFIX = "rate_"
FALLBACK_RATE = 8.0

DEFAULT_RATES = {
    InvestmentType.FD: 7.0,
    InvestmentType.RD: 7.0,
    InvestmentType.MF_EQUITY: 12.0,
    InvestmentType.MF_HYBRID: 10.0,
    InvestmentType.MF_DEBT: 7.0,
    InvestmentType.SHARES: 12.0,
    InvestmentType.GOLD: 8.0,
    InvestmentType.LOAN: 9.0,
    InvestmentType.FIXED_ASSET: 6.0,
    InvestmentType.PENSION: 8.0,
    InvestmentType.SAVINGS_ACCOUNT: 4.0,
    InvestmentType.EXPENSE: 0.0,
}


@dataclass(frozen=True)
class RateSettings:
    """
    Annual growth assumptions per asset class, loaded once per operation.

    Used wherever a class has no contractual rate of its own: goal
    projections, gold back-extrapolation and forward appreciation.
    """
    rates: Dict[InvestmentType, float] = field(default_factory=lambda: dict(DEFAULT_RATES))

    def rate_for(self, investment_type: InvestmentType) -> float:
        """Configured rate for a class; 8% when unset or zero."""
        return self.rates.get(InvestmentType(investment_type)) or FALLBACK_RATE

    def with_rate(self, investment_type: InvestmentType, rate: float) -> "RateSettings":
        rates = dict(self.rates)
        rates[InvestmentType(investment_type)] = rate
        return replace(self, rates=rates)

    def to_dict(self) -> Dict[str, float]:
        return {f"{RATE_KEY_PREFIX}{t.value}": r for t, r in self.rates.items()}


def load_rate_settings() -> RateSettings:
    """Read rate_<type> overrides from app_config on top of the defaults."""
    stored = get_config_prefixed(RATE_KEY_PREFIX)
    rates = dict(DEFAULT_RATES)
    for inv_type, default in DEFAULT_RATES.items():
        key = f"{RATE_KEY_PREFIX}{inv_type.value}"
        if key in stored:
            rates[inv_type] = safe_rate(stored[key], default)
    return RateSettings(rates=rates)


def save_rate(investment_type: InvestmentType, rate: float) -> bool:
    """Persist a class default. Raises ConfigurationError for a non-numeric rate."""
    inv_type = InvestmentType(investment_type)
    try:
        rate = float(rate)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Rate for {inv_type.value} must be a number, got {rate!r}")
    if math.isnan(rate) or math.isinf(rate):
        raise ConfigurationError(f"Rate for {inv_type.value} must be finite, got {rate}")
    logger.info(f"Setting default rate for {inv_type.value} to {rate}%")
    return set_config(f"{RATE_KEY_PREFIX}{inv_type.value}", str(rate))
