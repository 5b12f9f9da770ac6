"""
Eight-step housing ad wizard.

The wizard owns navigation state (current step, visited steps, last step errors)
and the form values. Forward navigation is gated on validation of every earlier
step; backward navigation is always allowed. Every edit goes through
`apply_dependent_rules` so derived fields never drift from the fields they follow.
"""
from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Callable

from app.classifieds.modules.housing.schema import (
    MAX_IMAGES,
    STEP_FIELDS,
    TOTAL_STEPS,
    apply_dependent_rules,
    default_values,
    stable_stringify,
    validate_step,
    values_from_json,
    values_to_json,
)


@dataclass(frozen=True)
class StepConfig:
    id: int
    label: str
    title: str
    fields: tuple[str, ...]
    validator: Callable[[dict[str, Any]], dict[str, str]]
    lazy: bool = False  # mounted (and marked visited) only once navigated to


def _validator_for(step: int) -> Callable[[dict[str, Any]], dict[str, str]]:
    return lambda values: validate_step(step, values)


STEPS: tuple[StepConfig, ...] = (
    StepConfig(1, "Basics", "What are you renting out?", STEP_FIELDS[1], _validator_for(1)),
    StepConfig(2, "Availability", "When is it available?", STEP_FIELDS[2], _validator_for(2)),
    StepConfig(3, "Pricing", "Price, deposit and bills", STEP_FIELDS[3], _validator_for(3)),
    StepConfig(4, "Features", "Features and amenities", STEP_FIELDS[4], _validator_for(4)),
    StepConfig(5, "Household", "Who lives there?", STEP_FIELDS[5], _validator_for(5)),
    StepConfig(6, "Location", "Where is it?", STEP_FIELDS[6], _validator_for(6), lazy=True),
    StepConfig(7, "Photos", "Upload photos", STEP_FIELDS[7], _validator_for(7), lazy=True),
    StepConfig(8, "Review", "Review and submit", STEP_FIELDS[8], _validator_for(8)),
)
STEP_BY_ID = {cfg.id: cfg for cfg in STEPS}


@dataclass
class HousingWizard:
    mode: str = "create"  # create | edit
    current_step: int = 1
    visited_steps: set[int] = field(default_factory=lambda: {1})
    values: dict[str, Any] = field(default_factory=default_values)
    initial_values: dict[str, Any] = field(default_factory=default_values)
    initial_step: int = 1
    baseline: str = ""
    errors: dict[str, str] = field(default_factory=dict)
    max_images: int = MAX_IMAGES

    def __post_init__(self) -> None:
        self.values, _ = apply_dependent_rules(self.values)
        self.initial_values, _ = apply_dependent_rules(self.initial_values)
        if not self.baseline:
            self.baseline = stable_stringify(self.initial_values)

    # ---------- Construction ----------
    @classmethod
    def for_create(cls, *, max_images: int = MAX_IMAGES) -> "HousingWizard":
        return cls(mode="create", max_images=max_images)

    @classmethod
    def for_edit(cls, values: dict[str, Any], *, initial_step: int = 1, max_images: int = MAX_IMAGES) -> "HousingWizard":
        step = initial_step if 1 <= initial_step <= TOTAL_STEPS else 1
        w = cls(
            mode="edit",
            current_step=step,
            values=copy.deepcopy(values),
            initial_values=copy.deepcopy(values),
            initial_step=step,
            max_images=max_images,
        )
        w.mark_all_visited()
        return w

    # ---------- Queries ----------
    @property
    def total_steps(self) -> int:
        return TOTAL_STEPS

    @property
    def step_config(self) -> StepConfig:
        return STEP_BY_ID[self.current_step]

    @property
    def is_first_step(self) -> bool:
        return self.current_step == 1

    @property
    def is_last_step(self) -> bool:
        return self.current_step == TOTAL_STEPS

    @property
    def is_dirty(self) -> bool:
        return stable_stringify(self.values) != self.baseline

    @property
    def can_save(self) -> bool:
        """Edit mode offers 'save changes' only when something changed."""
        return self.mode == "edit" and self.is_dirty

    def validate_step(self, step: int) -> dict[str, str]:
        return validate_step(step, self.values, max_images=self.max_images)

    def step_is_valid(self, step: int) -> bool:
        return not self.validate_step(step)

    def can_navigate_to(self, target: int) -> bool:
        if target < 1 or target > TOTAL_STEPS:
            return False
        if target <= self.current_step:
            return True
        return all(self.step_is_valid(step) for step in range(1, target))

    def first_invalid_step(self, upto: int = TOTAL_STEPS) -> int | None:
        for step in range(1, upto):
            if not self.step_is_valid(step):
                return step
        return None

    # ---------- Commands ----------
    def update(self, changes: dict[str, Any]) -> set[str]:
        """Merge coerced input, then recompute derived values. Returns the fields that changed."""
        merged = dict(self.values)
        changed = {k for k, v in changes.items() if merged.get(k) != v}
        merged.update(changes)
        self.values, derived = apply_dependent_rules(merged)
        changed |= derived
        for f in changed:
            self.errors.pop(f, None)
        return changed

    def go_to(self, target: int) -> bool:
        if not self.can_navigate_to(target):
            return False
        self.current_step = target
        self.visited_steps.add(target)
        return True

    def go_next(self) -> dict[str, str]:
        """
        Validate the current step. On failure stay put and return the errors that belong
        to this step's fields; on success clear them and advance.
        """
        cfg = self.step_config
        errors = self.validate_step(cfg.id)
        step_errors = {f: m for f, m in errors.items() if f in cfg.fields or f == "_step"}
        for f in cfg.fields:
            self.errors.pop(f, None)
        if step_errors:
            self.errors.update(step_errors)
            return step_errors
        if not self.is_last_step:
            self.current_step += 1
            self.visited_steps.add(self.current_step)
        return {}

    def go_prev(self) -> bool:
        if self.is_first_step:
            return False
        self.current_step -= 1
        self.visited_steps.add(self.current_step)
        return True

    def mark_all_visited(self) -> None:
        self.visited_steps = set(range(1, TOTAL_STEPS + 1))

    def reset(self) -> None:
        self.values = copy.deepcopy(self.initial_values)
        self.current_step = self.initial_step
        self.errors = {}
        self.baseline = stable_stringify(self.values)
        if self.mode == "edit":
            self.mark_all_visited()
        else:
            self.visited_steps = {self.current_step}

    def mark_saved(self) -> None:
        """Current values become the new baseline (after a successful save)."""
        self.initial_values = copy.deepcopy(self.values)
        self.baseline = stable_stringify(self.values)

    # ---------- Persistence ----------
    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode,
            "current_step": self.current_step,
            "initial_step": self.initial_step,
            "visited_steps": sorted(self.visited_steps),
            "values": values_to_json(self.values),
            "initial_values": values_to_json(self.initial_values),
            "baseline": self.baseline,
            "errors": dict(self.errors),
            "max_images": self.max_images,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HousingWizard":
        return cls(
            mode=data.get("mode") or "create",
            current_step=int(data.get("current_step") or 1),
            initial_step=int(data.get("initial_step") or 1),
            visited_steps=set(data.get("visited_steps") or [1]),
            values=values_from_json(data.get("values")),
            initial_values=values_from_json(data.get("initial_values")),
            baseline=data.get("baseline") or "",
            errors=dict(data.get("errors") or {}),
            max_images=int(data.get("max_images") or MAX_IMAGES),
        )
