import asyncio
import logging
from typing import List, Optional

from binance import AsyncClient

from .core_import_models import MinuteRecord
from .port_import_stores import ExchangeFetchPort

logger = logging.getLogger(__name__)


class BinanceExchangeClient(ExchangeFetchPort):
    def __init__(self,
                 api_key: Optional[str] = None,
                 api_secret: Optional[str] = None,
                 tld: str = 'us',
                 timeout: float = 15.0):
        self.api_key = api_key
        self.api_secret = api_secret
        self.tld = tld
        self.timeout = timeout
        self.client: Optional[AsyncClient] = None
        self._start_lock = asyncio.Lock()

    async def start(self) -> AsyncClient:
        async with self._start_lock:
            if self.client is None:
                try:
                    self.client = await AsyncClient.create(
                        api_key=self.api_key,
                        api_secret=self.api_secret,
                        tld=self.tld,
                        requests_params={'timeout': self.timeout}
                    )
                    logger.info(f"Binance client initialized (tld={self.tld})")
                except Exception as e:
                    logger.error(f"Failed to initialize Binance client: {e}")
                    raise
        return self.client

    async def close(self) -> None:
        if self.client:
            await self.client.close_connection()
            self.client = None
            logger.info("Binance client stopped")

    async def fetch_window(self,
                           ticker: str,
                           interval: str,
                           start_time: int,
                           end_time: int,
                           limit: int) -> List[MinuteRecord]:
        client = await self.start()
        try:
            klines = await client.get_klines(
                symbol=ticker.upper(),
                interval=interval,
                startTime=start_time,
                endTime=end_time,
                limit=limit
            )
        except Exception as e:
            logger.error(f"Failed to get klines for {ticker} {start_time}-{end_time}: {e}")
            raise

        return [MinuteRecord.from_kline(kline) for kline in klines]
