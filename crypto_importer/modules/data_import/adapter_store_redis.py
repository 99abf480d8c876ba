"""
Redis-backed span registry and record sink

Layout:
- Spans live in one list (default key 'spansets'), one JSON object per entry
- Each minute is a hash keyed '<openTime>:<ticker>' whose fields are exchange
  names and whose values are the record JSON
"""

import json
from typing import List, Optional, Tuple
import logging

from redis.asyncio import Redis
from redis.exceptions import RedisError, WatchError

from .core_import_models import MinuteRecord, RegistryFailure, Span
from .port_import_stores import RecordSinkPort, SpanRegistryPort

logger = logging.getLogger(__name__)

SPAN_LIST_KEY = 'spansets'

# attempts at a watched replace before giving up
REPLACE_RETRIES = 5


def encode_span(span: Span) -> str:
    # compact separators match what other writers of the list produce
    return json.dumps(span.to_dict(), separators=(',', ':'))


def record_key(open_time: int, ticker: str) -> str:
    return f"{open_time}:{ticker}"


class RedisSpanRegistry(SpanRegistryPort):
    """Span registry stored in a Redis list"""

    def __init__(self, client: Redis, key: str = SPAN_LIST_KEY):
        self.client = client
        self.key = key

    async def _load_entries(self) -> List[Tuple[str, Span]]:
        try:
            raw_entries = await self.client.lrange(self.key, 0, -1)
        except RedisError as e:
            raise RegistryFailure(f"Could not read spans from '{self.key}': {e}") from e

        return self._decode_entries(raw_entries)

    def _decode_entries(self, raw_entries) -> List[Tuple[str, Span]]:
        entries = []
        for raw in raw_entries:
            if isinstance(raw, bytes):
                raw = raw.decode()
            try:
                entries.append((raw, Span.from_dict(json.loads(raw))))
            except (ValueError, KeyError, TypeError) as e:
                logger.warning(f"Skipping malformed span entry {raw!r}: {e}")
        return entries

    async def _find_raw(self, span: Span) -> Optional[str]:
        for raw, stored in await self._load_entries():
            if stored == span:
                return raw
        return None

    async def list_spans(self) -> List[Span]:
        return [span for _, span in await self._load_entries()]

    async def append_span(self, span: Span) -> None:
        try:
            await self.client.rpush(self.key, encode_span(span))
        except RedisError as e:
            raise RegistryFailure(f"Could not append span {span.to_dict()}: {e}") from e

    async def remove_span(self, span: Span) -> None:
        raw = await self._find_raw(span)
        if raw is None:
            logger.warning(f"Span {span.to_dict()} not found in '{self.key}'")
            return
        try:
            await self.client.lrem(self.key, 1, raw)
        except RedisError as e:
            raise RegistryFailure(f"Could not remove span {span.to_dict()}: {e}") from e

    async def replace_span(self, old: Optional[Span], new: Span) -> None:
        """
        Remove the superseded span and push the merged one in a single MULTI

        The list is WATCHed while the superseded entry is looked up, so a
        concurrent writer aborts the transaction and the lookup is retried.
        """
        try:
            for attempt in range(1, REPLACE_RETRIES + 1):
                async with self.client.pipeline(transaction=True) as pipe:
                    try:
                        await pipe.watch(self.key)
                        raw_old = None
                        if old is not None:
                            entries = self._decode_entries(await pipe.lrange(self.key, 0, -1))
                            raw_old = next((raw for raw, stored in entries if stored == old), None)
                            if raw_old is None:
                                logger.warning(f"Superseded span {old.to_dict()} already gone from '{self.key}'")

                        pipe.multi()
                        if raw_old is not None:
                            pipe.lrem(self.key, 1, raw_old)
                        pipe.rpush(self.key, encode_span(new))
                        await pipe.execute()
                        return
                    except WatchError:
                        logger.warning(f"'{self.key}' changed during span replace, retry {attempt}/{REPLACE_RETRIES}")
        except RedisError as e:
            raise RegistryFailure(f"Could not commit span {new.to_dict()}: {e}") from e

        raise RegistryFailure(
            f"Could not commit span {new.to_dict()}: '{self.key}' kept changing"
        )


class RedisRecordSink(RecordSinkPort):
    """Record sink writing one hash field per (minute, ticker, exchange)"""

    def __init__(self, client: Redis):
        self.client = client

    async def put_record(self, record: MinuteRecord, ticker: str, exchange: str) -> None:
        await self.client.hset(
            record_key(record.open_time, ticker),
            exchange,
            json.dumps(record.to_dict(), separators=(',', ':'))
        )
