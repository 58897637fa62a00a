"""
Usage Repository: per-subject generation counters
=================================================

Two backends behind one interface:
- InMemoryUsageRepository: dict + per-subject asyncio.Lock (single process)
- RedisUsageRepository: one hash per subject, read-check-write inside a
  WATCH/MULTI transaction, retried with tenacity on WatchError

try_consume() is the admission primitive: it checks the cap and increments
in one atomic step, so two concurrent requests at count == limit - 1 can
never both be admitted.

Free-tier counters reset once reset_period_days have passed since
reset_at; the reset is applied on every read and inside every write.
"""

import asyncio
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from loguru import logger
from redis.asyncio import Redis
from redis.exceptions import RedisError, WatchError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_random

from core.enums import SubscriptionStatus
from core.exceptions import UsageStoreError
from core.models import UsageRecord

Clock = Callable[[], datetime]


@dataclass(frozen=True)
class ConsumeResult:
    admitted: bool
    record: UsageRecord


# =============================================================================
# PURE TRANSITIONS
# =============================================================================


def apply_periodic_reset(record: UsageRecord, period_days: int, now: datetime) -> UsageRecord:
    """Zero an account counter whose reset period has elapsed. Guests never reset."""
    if record.is_guest or now - record.reset_at < timedelta(days=period_days):
        return record
    return record.model_copy(update={"usage_count": 0, "reset_at": now})


def consume(record: UsageRecord, limit: Optional[int]) -> Tuple[bool, Optional[UsageRecord]]:
    """
    Decide one admission against a record.

    Paid records are uncapped. Returns (admitted, updated record or None
    when nothing must be written).
    """
    if limit is not None and not record.subscription_status.is_paid:
        if record.usage_count >= limit:
            return False, None
    return True, record.model_copy(update={"usage_count": record.usage_count + 1})


def change_status(
    record: UsageRecord, status: SubscriptionStatus, now: datetime
) -> UsageRecord:
    """Apply a billing status change. Upgrading to active starts a fresh period."""
    update: Dict[str, Any] = {"subscription_status": status}
    if status.is_paid and not record.subscription_status.is_paid:
        update.update(usage_count=0, reset_at=now)
    return record.model_copy(update=update)


# =============================================================================
# INTERFACE
# =============================================================================


class UsageRepository(ABC):
    def __init__(self, reset_period_days: int = 30, clock: Optional[Clock] = None):
        self.reset_period_days = reset_period_days
        self.clock: Clock = clock or datetime.utcnow

    def _fresh(self, subject_id: str) -> UsageRecord:
        return UsageRecord(subject_id=subject_id, reset_at=self.clock())

    @abstractmethod
    async def get_usage(self, subject_id: str) -> UsageRecord:
        """Current record; unknown subjects get a fresh free record."""

    @abstractmethod
    async def increment_usage(self, subject_id: str) -> UsageRecord:
        """Unconditionally add one generation."""

    @abstractmethod
    async def try_consume(self, subject_id: str, limit: Optional[int]) -> ConsumeResult:
        """Atomically check the cap and increment when under it."""

    @abstractmethod
    async def set_subscription_status(
        self, subject_id: str, status: SubscriptionStatus
    ) -> UsageRecord:
        """Billing collaborator hook."""

    @abstractmethod
    async def reset_usage(self, subject_id: str) -> UsageRecord:
        """Zero the counter and start a new period."""

    async def close(self) -> None:
        return None


# =============================================================================
# IN-MEMORY
# =============================================================================


class InMemoryUsageRepository(UsageRepository):
    """Process-local store, correct for a single worker."""

    def __init__(self, reset_period_days: int = 30, clock: Optional[Clock] = None):
        super().__init__(reset_period_days, clock)
        self._records: Dict[str, UsageRecord] = {}
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        logger.debug("InMemoryUsageRepository initialized")

    def _load(self, subject_id: str) -> UsageRecord:
        record = self._records.get(subject_id) or self._fresh(subject_id)
        return apply_periodic_reset(record, self.reset_period_days, self.clock())

    async def get_usage(self, subject_id: str) -> UsageRecord:
        return self._load(subject_id)

    async def increment_usage(self, subject_id: str) -> UsageRecord:
        async with self._locks[subject_id]:
            record = self._load(subject_id)
            updated = record.model_copy(update={"usage_count": record.usage_count + 1})
            self._records[subject_id] = updated
            return updated

    async def try_consume(self, subject_id: str, limit: Optional[int]) -> ConsumeResult:
        async with self._locks[subject_id]:
            record = self._load(subject_id)
            admitted, updated = consume(record, limit)
            if updated is not None:
                self._records[subject_id] = updated
                record = updated
            return ConsumeResult(admitted=admitted, record=record)

    async def set_subscription_status(
        self, subject_id: str, status: SubscriptionStatus
    ) -> UsageRecord:
        async with self._locks[subject_id]:
            updated = change_status(self._load(subject_id), status, self.clock())
            self._records[subject_id] = updated
            logger.info(f"Subscription status updated | subject={subject_id} | status={status.value}")
            return updated

    async def reset_usage(self, subject_id: str) -> UsageRecord:
        async with self._locks[subject_id]:
            record = self._load(subject_id)
            updated = record.model_copy(update={"usage_count": 0, "reset_at": self.clock()})
            self._records[subject_id] = updated
            return updated


# =============================================================================
# REDIS
# =============================================================================


def _text(value: Any) -> str:
    return value.decode() if isinstance(value, bytes) else str(value)


class RedisUsageRepository(UsageRepository):
    """
    Redis hash per subject: {prefix}:{subject_id} → usage_count,
    subscription_status, reset_at.

    Guest hashes expire after guest_ttl seconds so abandoned sessions do
    not accumulate.
    """

    def __init__(
        self,
        redis: Redis,
        *,
        key_prefix: str = "usage",
        reset_period_days: int = 30,
        guest_ttl: int = 86400 * 7,
        max_attempts: int = 10,
        clock: Optional[Clock] = None,
    ):
        super().__init__(reset_period_days, clock)
        self.redis = redis
        self.key_prefix = key_prefix
        self.guest_ttl = guest_ttl
        self.max_attempts = max_attempts
        logger.debug(f"RedisUsageRepository initialized | prefix={key_prefix}")

    def _key(self, subject_id: str) -> str:
        return f"{self.key_prefix}:{subject_id}"

    def _decode(self, subject_id: str, data: Mapping[Any, Any]) -> UsageRecord:
        if not data:
            return self._fresh(subject_id)
        fields = {_text(k): _text(v) for k, v in data.items()}
        record = UsageRecord(
            subject_id=subject_id,
            usage_count=int(fields.get("usage_count", 0)),
            subscription_status=SubscriptionStatus(
                fields.get("subscription_status", SubscriptionStatus.FREE.value)
            ),
            reset_at=datetime.fromisoformat(fields["reset_at"])
            if "reset_at" in fields
            else self.clock(),
        )
        return apply_periodic_reset(record, self.reset_period_days, self.clock())

    @staticmethod
    def _encode(record: UsageRecord) -> Dict[str, str]:
        return {
            "usage_count": str(record.usage_count),
            "subscription_status": record.subscription_status.value,
            "reset_at": record.reset_at.isoformat(),
        }

    async def _transact(
        self,
        subject_id: str,
        mutate: Callable[[UsageRecord], Tuple[Any, Optional[UsageRecord]]],
    ) -> Tuple[Any, UsageRecord]:
        """
        Optimistic read-modify-write of one subject.

        mutate returns (outcome, updated record or None for no write).
        """
        key = self._key(subject_id)
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(WatchError),
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_random(0, 0.05),
                reraise=True,
            ):
                with attempt:
                    async with self.redis.pipeline(transaction=True) as pipe:
                        await pipe.watch(key)
                        record = self._decode(subject_id, await pipe.hgetall(key))
                        outcome, updated = mutate(record)
                        if updated is None:
                            return outcome, record
                        pipe.multi()
                        pipe.hset(key, mapping=self._encode(updated))
                        if updated.is_guest:
                            pipe.expire(key, self.guest_ttl)
                        await pipe.execute()
                        return outcome, updated
        except WatchError as e:
            logger.error(f"Usage transaction contention exhausted retries | subject={subject_id}")
            raise UsageStoreError(
                f"Usage record for {subject_id} is under contention", cause=e
            ) from e
        except RedisError as e:
            logger.error(f"Usage store failure | subject={subject_id} | error={e}")
            raise UsageStoreError(cause=e) from e

    async def get_usage(self, subject_id: str) -> UsageRecord:
        try:
            data = await self.redis.hgetall(self._key(subject_id))
        except RedisError as e:
            logger.error(f"Usage store failure | subject={subject_id} | error={e}")
            raise UsageStoreError(cause=e) from e
        return self._decode(subject_id, data)

    async def increment_usage(self, subject_id: str) -> UsageRecord:
        _, record = await self._transact(
            subject_id,
            lambda r: (None, r.model_copy(update={"usage_count": r.usage_count + 1})),
        )
        return record

    async def try_consume(self, subject_id: str, limit: Optional[int]) -> ConsumeResult:
        admitted, record = await self._transact(subject_id, lambda r: consume(r, limit))
        return ConsumeResult(admitted=admitted, record=record)

    async def set_subscription_status(
        self, subject_id: str, status: SubscriptionStatus
    ) -> UsageRecord:
        now = self.clock()
        _, record = await self._transact(subject_id, lambda r: (None, change_status(r, status, now)))
        logger.info(f"Subscription status updated | subject={subject_id} | status={status.value}")
        return record

    async def reset_usage(self, subject_id: str) -> UsageRecord:
        now = self.clock()
        _, record = await self._transact(
            subject_id,
            lambda r: (None, r.model_copy(update={"usage_count": 0, "reset_at": now})),
        )
        return record
