"""
RateLimiter -- tenant-scoped fixed-window throttle for publish attempts.

Responsibility:
    Counts publish attempts per tenant in a durable row and rejects attempts
    beyond ``max_requests`` within ``window_seconds``.

Architecture position:
    Kernel > Services -- called by ScheduleCompiler before any other work.

Invariants enforced:
    - The expiry check and the increment are ONE statement:
      ``INSERT ... ON CONFLICT (key) DO UPDATE SET count = CASE ...``
      with ``RETURNING``.  Two concurrent attempts can never both read a
      stale count; the database serializes them on the row.
    - Window arithmetic is done on epoch milliseconds inside SQL.

Failure modes:
    - RateLimitExceededError with ``retry_after`` seconds until the window
      resets.
"""

from dataclasses import dataclass
from uuid import UUID, uuid4

from sqlalchemy import case
from sqlalchemy.orm import Session

from roster_kernel.db.types import to_epoch_millis
from roster_kernel.db.upsert import upsert_insert
from roster_kernel.domain.clock import Clock
from roster_kernel.domain.policy import RateLimitPolicy
from roster_kernel.exceptions import RateLimitExceededError
from roster_kernel.logging_config import get_logger
from roster_kernel.models.throttling import RateLimitState
from roster_kernel.services.base import BaseService

logger = get_logger("services.rate_limiter")


@dataclass(frozen=True)
class RateLimitDecision:
    key: str
    request_count: int
    window_start_ms: int
    limit: int
    retry_after: int

    @property
    def allowed(self) -> bool:
        return self.request_count <= self.limit

    @property
    def remaining(self) -> int:
        return max(self.limit - self.request_count, 0)


class RateLimiter(BaseService):
    """
    Durable fixed-window counter.

    Non-goals:
        - Does NOT commit.  ScheduleCompiler commits the attempt on its own
          so that a later failure in the same request still counts.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: RateLimitPolicy | None = None,
    ):
        super().__init__(session, clock)
        self._policy = policy or RateLimitPolicy()

    def key_for(self, tenant_id: UUID) -> str:
        return f"{self._policy.key_prefix}:{tenant_id}"

    def hit(self, tenant_id: UUID) -> RateLimitDecision:
        """
        Record one attempt for ``tenant_id`` and return the decision.

        Raises:
            RateLimitExceededError: The attempt is over the window's limit.
        """
        key = self.key_for(tenant_id)
        now_ms = to_epoch_millis(self._clock.now())
        window_ms = self._policy.window_seconds * 1000

        stmt = upsert_insert(self.session, RateLimitState).values(
            id=uuid4(),
            key=key,
            request_count=1,
            window_start_ms=now_ms,
        )
        # SET expressions see the pre-update row on both dialects
        window_expired = stmt.excluded.window_start_ms - RateLimitState.window_start_ms >= window_ms
        stmt = stmt.on_conflict_do_update(
            index_elements=[RateLimitState.key],
            set_={
                "request_count": case(
                    (window_expired, 1),
                    else_=RateLimitState.request_count + 1,
                ),
                "window_start_ms": case(
                    (window_expired, stmt.excluded.window_start_ms),
                    else_=RateLimitState.window_start_ms,
                ),
            },
        ).returning(RateLimitState.request_count, RateLimitState.window_start_ms)

        request_count, window_start_ms = self.session.execute(stmt).one()

        reset_in_ms = max(window_start_ms + window_ms - now_ms, 0)
        decision = RateLimitDecision(
            key=key,
            request_count=request_count,
            window_start_ms=window_start_ms,
            limit=self._policy.max_requests,
            retry_after=max(-(-reset_in_ms // 1000), 1),
        )

        if not decision.allowed:
            logger.warning(
                "rate_limit_exceeded",
                extra={
                    "rate_key": key,
                    "request_count": request_count,
                    "retry_after": decision.retry_after,
                },
            )
            raise RateLimitExceededError(key, decision.retry_after)

        logger.debug(
            "rate_limit_hit",
            extra={"rate_key": key, "request_count": request_count, "remaining": decision.remaining},
        )
        return decision
