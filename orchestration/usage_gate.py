"""
Usage Gate: admission control before any paid provider call.

Rules, evaluated in order:
- Anonymous caller: allowed while its session is under the guest limit,
  otherwise GUEST_LIMIT_REACHED (caller should sign up)
- Authenticated, non-active subscription: allowed while under the free
  limit, otherwise FREE_LIMIT_REACHED with count and limit
- Authenticated, active subscription: always allowed

The check and the increment happen in one atomic store operation, so an
Allow has incremented exactly once and a Deny never increments.
"""

from typing import Optional

from loguru import logger

from core.enums import DenialReason, SubscriptionTier
from core.models import AdmissionDecision, Allow, CallerIdentity, Deny, UsageRecord, UsageSummary
from infrastructure.monitoring import MetricsCollector
from knowledge.usage_repository import UsageRepository

GUEST_DENIAL_MESSAGE = (
    "You've used your free guest generation. Sign up to keep creating content."
)
FREE_DENIAL_MESSAGE = (
    "You've reached the limit of {limit} free generations. "
    "Upgrade to Pro for unlimited content generation."
)


class UsageGate:
    def __init__(
        self,
        repository: UsageRepository,
        *,
        guest_limit: int = 1,
        free_limit: int = 5,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.repository = repository
        self.guest_limit = guest_limit
        self.free_limit = free_limit
        self.metrics = metrics

    def limit_for(self, caller: CallerIdentity) -> int:
        return self.guest_limit if caller.is_anonymous else self.free_limit

    async def admit(self, caller: CallerIdentity) -> AdmissionDecision:
        """
        Decide and, on Allow, consume one generation.

        Raises:
            UsageStoreError: If the usage store cannot answer
        """
        subject_id = caller.subject_id
        limit = self.limit_for(caller)
        result = await self.repository.try_consume(subject_id, limit)
        record = result.record

        if result.admitted:
            tier = record.tier
            if self.metrics:
                self.metrics.record_admission(True)
            logger.info(
                f"Admission granted | subject={subject_id} | tier={tier.value} | "
                f"usage_count={record.usage_count}"
            )
            return Allow(record=record, tier=tier)

        if caller.is_anonymous:
            decision = Deny(
                reason=DenialReason.GUEST_LIMIT_REACHED,
                record=record,
                limit=limit,
                message=GUEST_DENIAL_MESSAGE,
            )
        else:
            decision = Deny(
                reason=DenialReason.FREE_LIMIT_REACHED,
                record=record,
                limit=limit,
                message=FREE_DENIAL_MESSAGE.format(limit=limit),
            )

        if self.metrics:
            self.metrics.record_admission(False, decision.reason.value)
        logger.warning(
            f"Admission denied | subject={subject_id} | reason={decision.reason.value} | "
            f"usage_count={record.usage_count} | limit={limit}"
        )
        return decision

    async def tier_of(self, caller: CallerIdentity) -> SubscriptionTier:
        """Current tier without consuming anything."""
        record = await self.repository.get_usage(caller.subject_id)
        return record.tier

    async def summary(self, caller: CallerIdentity) -> UsageSummary:
        record: UsageRecord = await self.repository.get_usage(caller.subject_id)
        limit = None if record.subscription_status.is_paid else self.limit_for(caller)
        return UsageSummary(
            usage_count=record.usage_count,
            usage_limit=limit,
            subscription_status=record.subscription_status,
            tier=record.tier,
            reset_at=record.reset_at,
        )
