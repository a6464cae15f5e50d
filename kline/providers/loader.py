from kline.config import Settings
from kline.providers.base import QuoteProvider
from kline.providers.huobi import HuobiProvider


def get_provider(settings: Settings) -> QuoteProvider:
    """
    Provider loader / factory.

    Reads KLINE_PROVIDER from config and returns an instance of the selected provider.
    This is the single place that knows about concrete providers.
    """
    provider_name = settings.provider.strip().upper()

    if provider_name == "HUOBI":
        return HuobiProvider(
            base_url=settings.huobi_base_url,
            timeout_seconds=settings.huobi_timeout_seconds,
        )

    raise ValueError(f"Unknown KLINE_PROVIDER='{settings.provider}'. Expected: HUOBI")
