"""
FX rate provider backed by DolarApi (https://dolarapi.com/v1/dolares).

The endpoint returns a list of quotes, one per "casa":
    [{"moneda": "USD", "casa": "bolsa", "compra": 1180.5, "venta": 1195.0, ...}, ...]

"bolsa" is the MEP rate used to value foreign-currency card spend. Any
network or payload problem yields None: callers treat a missing rate as
"do not convert", never as zero.
"""
import logging
from dataclasses import dataclass

import requests

from app.config import get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FxRate:
    buy: float | None
    sell: float | None


def usable_rate(rate: FxRate | None) -> float | None:
    """Positive sell rate (buy as fallback), else None."""
    if rate is None:
        return None
    for value in (rate.sell, rate.buy):
        if value is not None and value > 0:
            return value
    return None


class DolarApiFxProvider:
    def __init__(self, url: str | None = None, timeout: float | None = None):
        cfg = get_settings()
        self.url = url or cfg.FX_API_URL
        self.timeout = timeout if timeout is not None else cfg.FX_TIMEOUT_SECONDS

    def get_rate(self, kind: str | None = None) -> FxRate | None:
        kind = kind or get_settings().FX_RATE_KIND
        try:
            resp = requests.get(self.url, timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError):
            logger.exception("FX rate fetch failed (%s)", self.url)
            return None

        if not isinstance(data, list):
            logger.warning("FX payload is not a list: %r", type(data))
            return None

        for quote in data:
            if isinstance(quote, dict) and quote.get("casa") == kind:
                return FxRate(buy=_as_float(quote.get("compra")), sell=_as_float(quote.get("venta")))

        logger.warning("FX rate %r not present in payload", kind)
        return None


def _as_float(value) -> float | None:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None
