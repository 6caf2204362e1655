"""
Recipe Wizard - Navigation.

Step-to-step movement over a RecipeStore. Whether a transition is allowed is
always decided by the store's prerequisite table; this layer only adds
"next/previous/first" semantics and progress reporting.
"""

import logging
from dataclasses import dataclass

from .steps import (
    STEP_ORDER,
    TOTAL_STEPS,
    WIZARD_STEPS,
    RecipeStep,
    StepDescriptor,
    next_step,
    previous_step,
    step_index,
)
from .store import RecipeStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NavigationResult:
    success: bool
    error: str | None = None


@dataclass(frozen=True)
class StepInfo:
    current: StepDescriptor
    previous: StepDescriptor | None
    next: StepDescriptor | None
    progress: int  # 1-based position of the current step
    is_first: bool
    is_last: bool


class WizardNavigator:
    """Navigation controls for one wizard session."""

    def __init__(self, store: RecipeStore):
        self.store = store

    @property
    def current_step(self) -> RecipeStep:
        return self.store.state.current_step

    @property
    def step_info(self) -> StepInfo:
        current = self.current_step
        prev, nxt = previous_step(current), next_step(current)
        return StepInfo(
            current=WIZARD_STEPS[current],
            previous=WIZARD_STEPS[prev] if prev else None,
            next=WIZARD_STEPS[nxt] if nxt else None,
            progress=step_index(current) + 1,
            is_first=prev is None,
            is_last=nxt is None,
        )

    def is_step_completed(self, step: RecipeStep) -> bool:
        return RecipeStep(step) in self.store.state.completed_steps

    def completion_percentage(self) -> int:
        return round(len(self.store.state.completed_steps) / TOTAL_STEPS * 100)

    def can_go_next(self) -> bool:
        nxt = next_step(self.current_step)
        return nxt is not None and self.store.can_navigate_to_step(nxt)

    def can_go_previous(self) -> bool:
        return previous_step(self.current_step) is not None

    def mark_current_step_completed(self) -> bool:
        return self.store.mark_step_completed(self.current_step)

    def go_to_step(self, step: RecipeStep) -> NavigationResult:
        if not self.store.can_navigate_to_step(step):
            logger.debug(f"Navigation to {step} blocked by prerequisites")
            return NavigationResult(
                success=False,
                error="Cannot navigate to this step. Please complete previous steps first.",
            )
        self.store.set_current_step(step)
        return NavigationResult(success=True)

    def go_to_next(self) -> NavigationResult:
        """Complete the current step and advance."""
        nxt = next_step(self.current_step)
        if nxt is None:
            return NavigationResult(success=False, error="No next step available")
        if not self.store.can_navigate_to_step(nxt):
            return NavigationResult(
                success=False,
                error="Cannot navigate to this step. Please complete previous steps first.",
            )

        self.mark_current_step_completed()
        return self.go_to_step(nxt)

    def go_to_previous(self) -> NavigationResult:
        prev = previous_step(self.current_step)
        if prev is None:
            return NavigationResult(success=False, error="No previous step available")
        return self.go_to_step(prev)

    def go_to_first(self) -> NavigationResult:
        return self.go_to_step(STEP_ORDER[0])
