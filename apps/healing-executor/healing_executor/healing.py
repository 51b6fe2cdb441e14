"""Healing event tracking and the approve/reject workflow."""

from __future__ import annotations

from typing import Optional

import structlog

from .models import HealingConfig, HealingDecision, HealingEvent, HealingStatus, LocatorStrategy

LOGGER = structlog.get_logger("healing_executor")

DEFAULT_AUTO_APPROVE_THRESHOLD = 0.9


class HealingTracker:
    """Collects healing events and review decisions keyed by ``{run_id}-{step_id}``.

    A tracker belongs to one executor; concurrent runs must not share one.
    """

    def __init__(self, auto_approve_threshold: float = DEFAULT_AUTO_APPROVE_THRESHOLD) -> None:
        self._events: dict[str, HealingEvent] = {}
        self._decisions: dict[str, HealingDecision] = {}
        self._auto_approve_threshold = DEFAULT_AUTO_APPROVE_THRESHOLD
        self.set_auto_approve_threshold(auto_approve_threshold)

    @property
    def auto_approve_threshold(self) -> float:
        return self._auto_approve_threshold

    @property
    def events(self) -> list[HealingEvent]:
        return list(self._events.values())

    def record_event(self, event: HealingEvent, healing_config: Optional[HealingConfig] = None) -> str:
        """Store ``event``; it is auto-approved at or above the tracker threshold.

        A locator whose ``healing_config`` opts into ``auto_approve`` may lower the
        bar to its own ``confidence_threshold`` for its events.
        """
        event_id = event.event_id
        self._events[event_id] = event
        threshold = self._auto_approve_threshold
        if healing_config is not None and healing_config.auto_approve:
            threshold = min(threshold, healing_config.confidence_threshold)
        if event.confidence >= threshold:
            self._decisions[event_id] = HealingDecision(event_id=event_id, status=HealingStatus.AUTO_APPROVED)
            LOGGER.info("healing_auto_approved", event_id=event_id, confidence=event.confidence)
        else:
            LOGGER.info("healing_pending_review", event_id=event_id, confidence=event.confidence)
        return event_id

    def approve(
        self,
        event_id: str,
        reviewed_by: Optional[str] = None,
        review_note: Optional[str] = None,
    ) -> HealingDecision | None:
        return self._decide(event_id, HealingStatus.APPROVED, reviewed_by, review_note)

    def reject(
        self,
        event_id: str,
        reviewed_by: Optional[str] = None,
        review_note: Optional[str] = None,
    ) -> HealingDecision | None:
        return self._decide(event_id, HealingStatus.REJECTED, reviewed_by, review_note)

    def get_event(self, event_id: str) -> HealingEvent | None:
        return self._events.get(event_id)

    def get_pending_events(self) -> list[HealingEvent]:
        pending: list[HealingEvent] = []
        for event_id, event in self._events.items():
            decision = self._decisions.get(event_id)
            if decision is None or decision.status == HealingStatus.PENDING:
                pending.append(event)
        return pending

    def get_decision(self, event_id: str) -> HealingDecision | None:
        return self._decisions.get(event_id)

    def should_use_healed_strategy(self, scenario_id: str, step_id: str) -> LocatorStrategy | None:
        """Healed strategy of the first approved event for this scenario step, if any."""

        for event_id, event in self._events.items():
            if event.scenario_id != scenario_id or event.step_id != step_id:
                continue
            decision = self._decisions.get(event_id)
            if decision is not None and decision.status in (HealingStatus.APPROVED, HealingStatus.AUTO_APPROVED):
                return event.healed_strategy
        return None

    def set_auto_approve_threshold(self, threshold: float) -> None:
        self._auto_approve_threshold = max(0.0, min(1.0, threshold))

    def clear(self) -> None:
        self._events.clear()
        self._decisions.clear()

    def _decide(
        self,
        event_id: str,
        status: HealingStatus,
        reviewed_by: Optional[str],
        review_note: Optional[str],
    ) -> HealingDecision | None:
        if event_id not in self._events:
            return None
        decision = HealingDecision(
            event_id=event_id,
            status=status,
            reviewed_by=reviewed_by,
            review_note=review_note,
        )
        self._decisions[event_id] = decision
        LOGGER.info("healing_reviewed", event_id=event_id, status=status.value, reviewed_by=reviewed_by)
        return decision
