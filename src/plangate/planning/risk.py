"""Risk assessment for candidate mutations and the safety context built from it."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from .schemas import (
    DocumentShape,
    RiskAssessment,
    RiskLevel,
    SafetyContext,
    SafetyFlags,
    SafetyLimits,
    Selection,
)

LOGGER = logging.getLogger(__name__)

# Selections larger than max_units_to_write / MEDIUM_RISK_DIVISOR are medium risk.
MEDIUM_RISK_DIVISOR = 10


def assess_risk(
    selection: Optional[Selection],
    limits: SafetyLimits,
) -> Optional[RiskAssessment]:
    """Classify the active selection against ``limits``.

    Returns ``None`` when nothing is selected: the risk is not yet
    assessable, which is different from being safe.
    """
    if selection is None or selection.type == "none":
        return None

    row_count = selection.row_count or 0
    column_count = selection.column_count or 0
    estimated_units = row_count * column_count

    level = RiskLevel.LOW
    if estimated_units > limits.max_units_to_write:
        level = RiskLevel.HIGH
    elif estimated_units > limits.max_units_to_write / MEDIUM_RISK_DIVISOR:
        level = RiskLevel.MEDIUM

    reasons: list[str] = []
    if estimated_units > limits.max_units_to_write:
        reasons.append("Selection exceeds max_units_to_write limit.")

    return RiskAssessment(
        level=level,
        reasons=reasons,
        estimated_units_affected=estimated_units,
        touches_formulas=False,
        touches_tables=selection.type == "table",
        touches_named_ranges=False,
    )


class DefaultSafetyConfigProvider:
    """Build the safety context for a snapshot from configured limits and flags."""

    def __init__(
        self,
        limits: SafetyLimits | None = None,
        flags: SafetyFlags | None = None,
    ) -> None:
        self.limits = limits or SafetyLimits()
        self.flags = flags or SafetyFlags()

    @classmethod
    def from_config(cls, config: Mapping[str, Any] | None) -> "DefaultSafetyConfigProvider":
        return cls(SafetyLimits.from_config(config), SafetyFlags.from_config(config))

    def build_safety_context(
        self,
        document_id: str,
        document: DocumentShape,
        selection: Optional[Selection],
    ) -> SafetyContext:
        current_risk = assess_risk(selection, self.limits)
        if current_risk is not None:
            LOGGER.debug(
                "Assessed %s risk for document %s (%s unit(s))",
                current_risk.level.value,
                document_id,
                current_risk.estimated_units_affected,
            )
        return SafetyContext(
            limits=self.limits.model_copy(),
            flags=self.flags.model_copy(),
            current_risk=current_risk,
        )
