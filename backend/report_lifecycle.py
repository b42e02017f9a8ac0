"""Generation lifecycle of one report kind for one crawled URL.

States: empty -> generating -> ready, generating -> failed, failed -> generating.
A ready report can be regenerated with `refresh()`; while that runs, and if it
fails, the previous report is kept.

At most one generation request is in flight per lifecycle. Each request
carries a generation number; responses for an older generation (after
`invalidate()` or `discard()`) are dropped without touching state.
"""

import logging
from datetime import datetime, timezone
from typing import Callable

from pydantic import ValidationError as PydanticValidationError

from errors import DashboardError, DecodeError
from models import ReportKind, ReportState
from schemas import AIRecommendationReport, PerformanceAuditReport, ReportSnapshot

logger = logging.getLogger(__name__)

Listener = Callable[[ReportSnapshot], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def decode_performance_audit(payload: dict, received_at: datetime) -> PerformanceAuditReport:
    scores = payload.get("scores")
    if not isinstance(scores, dict):
        raise DecodeError("Lighthouse response has no scores")
    try:
        return PerformanceAuditReport(
            performance_score=scores.get("performance"),
            accessibility_score=scores.get("accessibility"),
            best_practices_score=scores.get("best-practices", scores.get("best_practices")),
            seo_score=scores.get("seo"),
            created_at=received_at,
        )
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ()))
        raise DecodeError(f"Invalid Lighthouse score {field}: {first['msg']}") from e


def decode_ai_recommendation(payload: dict, received_at: datetime) -> AIRecommendationReport:
    text = payload.get("ai_response")
    if not isinstance(text, str) or not text.strip():
        raise DecodeError("AI report response has no ai_response text")
    return AIRecommendationReport(ai_response=text, created_at=received_at)


DECODERS = {
    ReportKind.PERFORMANCE_AUDIT: decode_performance_audit,
    ReportKind.AI_RECOMMENDATION: decode_ai_recommendation,
}


def decode_report(kind: ReportKind, payload: object, received_at: datetime):
    """Decode a raw generation payload into the report model for `kind`.

    The backend response carries no timestamp, so `created_at` is the time the
    response was received.
    """
    if not isinstance(payload, dict):
        raise DecodeError("Report response is not an object")
    return DECODERS[kind](payload, received_at)


class ReportLifecycle:
    def __init__(
        self,
        client,
        token: str,
        link_id: int,
        kind: ReportKind,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.client = client
        self.token = token
        self.link_id = link_id
        self.kind = ReportKind(kind)
        self.clock = clock
        self.state = ReportState.EMPTY
        self.report = None
        self.error: str | None = None
        self.discarded = False
        self._generation = 0
        self._in_flight = False
        self._listeners: list[Listener] = []

    def snapshot(self) -> ReportSnapshot:
        return ReportSnapshot(
            link_id=self.link_id,
            kind=self.kind,
            state=self.state,
            report=self.report,
            error=self.error,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call `listener` with a snapshot after every transition."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Report listener failed for link %s", self.link_id)

    @property
    def can_request(self) -> bool:
        return not self.discarded and not self._in_flight and self.state in (ReportState.EMPTY, ReportState.FAILED)

    async def request_generation(self) -> bool:
        """Generate the report from empty or failed. Returns True when it became ready.

        A call while a request is outstanding, or once the report is ready, is a
        no-op and returns False.
        """
        if not self.can_request:
            logger.warning(
                "Ignoring %s request for link %s in state %s", self.kind.value, self.link_id, self.state.value
            )
            return False
        return await self._generate()

    async def refresh(self) -> bool:
        """Regenerate a ready report, keeping the current one until a new one arrives."""
        if self.discarded or self._in_flight or self.state != ReportState.READY:
            logger.warning(
                "Ignoring %s refresh for link %s in state %s", self.kind.value, self.link_id, self.state.value
            )
            return False
        return await self._generate()

    async def _generate(self) -> bool:
        self._generation += 1
        generation = self._generation
        self.state = ReportState.GENERATING
        self.error = None
        self._in_flight = True
        self._publish()

        error = None
        try:
            payload = await self.client.generate_report(self.token, self.link_id, self.kind)
            report = decode_report(self.kind, payload, received_at=self.clock())
        except DashboardError as e:
            error = e.message
        except Exception:
            logger.exception("Unexpected error generating %s for link %s", self.kind.value, self.link_id)
            error = "Unexpected error while generating report"
        finally:
            # Cleared even for a stale response: the backend call is over.
            self._in_flight = False

        if error is not None:
            return self._fail(generation, error)
        if self._is_stale(generation):
            return False
        self.state = ReportState.READY
        self.report = report
        logger.info("%s report ready for link %s", self.kind.value, self.link_id)
        self._publish()
        return True

    def _fail(self, generation: int, message: str) -> bool:
        if self._is_stale(generation):
            return False
        self.state = ReportState.FAILED
        self.error = message
        logger.warning("%s report failed for link %s: %s", self.kind.value, self.link_id, message)
        self._publish()
        return False

    def _is_stale(self, generation: int) -> bool:
        if self.discarded or generation != self._generation:
            logger.info("Dropping stale %s response for link %s", self.kind.value, self.link_id)
            return True
        return False

    def invalidate(self) -> None:
        """Reset to empty, e.g. after a recrawl changed the link.

        An in-flight response is dropped, and no new request is accepted until
        that call has returned.
        """
        if self.discarded:
            return
        self._generation += 1
        self.state = ReportState.EMPTY
        self.report = None
        self.error = None
        self._publish()

    def discard(self) -> None:
        """Detach from the owner; nothing mutates this instance afterwards."""
        self.discarded = True
        self._generation += 1
        self._listeners.clear()
