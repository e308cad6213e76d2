"""Step navigator: totals, loops and the backward reset table."""

from __future__ import annotations

import random
from datetime import date
from typing import Any, Dict, List, Tuple

import pytest

from lernplan.allocation import generate_preview
from lernplan.catalog import assign_theme
from lernplan.models import (
    DailyStructure,
    NavigationState,
    PeriodSettings,
    PlanningBlock,
    SubArea,
    SubjectSelection,
    Task,
    Theme,
    ThemeContent,
    WizardState,
)
from lernplan.navigator import StepNavigator
from lernplan.step_graph import CASCADE_RESETS, ResetField, total_steps
from lernplan.telemetry import TelemetryEvent, clear_listeners, register_listener

navigator = StepNavigator()


def _pattern() -> Dict[str, List[str]]:
    pattern = {day: ["learning", "learning"] for day in ("monday", "tuesday", "wednesday", "thursday", "friday")}
    pattern.update({"saturday": ["free", "free"], "sunday": ["free", "free"]})
    return pattern


def _subject_ids(count: int) -> List[str]:
    return [f"S{index}" for index in range(count)]


def _manual_state(subjects: int = 2, step: int = 7, *, with_themes: bool = True) -> WizardState:
    ids = _subject_ids(subjects)
    catalog = {
        subject_id: [
            SubArea(
                sub_area_id=f"{subject_id}-sa1",
                name=f"{subject_id} basics",
                themes=(
                    [
                        Theme(
                            theme_id=f"{subject_id}-t1",
                            name=f"{subject_id} theme",
                            tasks=[Task(task_id=f"{subject_id}-task1", name="Case study")],
                        )
                    ]
                    if with_themes
                    else []
                ),
            )
        ]
        for subject_id in ids
    }
    return WizardState(
        period=PeriodSettings(
            start_date=date(2025, 1, 1), end_date=date(2025, 1, 31), buffer_days=2, vacation_days=3
        ),
        daily_structure=DailyStructure(blocks_per_day=2, week_pattern=_pattern()),
        creation_method="manual",
        subjects=[SubjectSelection(subject_id=subject_id, label=subject_id) for subject_id in ids],
        sub_area_mode="manual",
        subject_catalog=catalog,
        navigation=NavigationState(current_step=step, total_steps=22),
    )


def _full_state(step: int) -> WizardState:
    """Manual state with every resettable field populated."""
    state = _manual_state(subjects=3, step=step)
    for subject, weight in zip(state.subjects, (40, 30, 30)):
        subject.weight = weight
    for subject_id in state.subject_ids():
        state.block_assignments[subject_id] = [
            PlanningBlock(
                block_id=f"{subject_id}-block-1",
                content=ThemeContent(theme_id=f"{subject_id}-t1", theme_name=f"{subject_id} theme"),
            ),
            PlanningBlock(block_id=f"{subject_id}-block-2"),
        ]
    state.preview_calendar = generate_preview(state)
    state.distribution_mode = "focused"
    for loop_id, cursor in (("sub_areas", 2), ("themes", 1), ("blocks", 0)):
        state.navigation.loop_cursors[loop_id] = cursor
        state.navigation.completed_flags[loop_id] = {subject_id: True for subject_id in state.subject_ids()}
    return state


def _observables(state: WizardState) -> Dict[str, Any]:
    navigation = state.navigation
    return {
        ResetField.SUB_AREAS.value: {
            subject_id: [sub_area.sub_area_id for sub_area in sub_areas]
            for subject_id, sub_areas in state.subject_catalog.items()
        },
        ResetField.THEMES.value: {
            sub_area.sub_area_id: [theme.model_dump() for theme in sub_area.themes]
            for sub_areas in state.subject_catalog.values()
            for sub_area in sub_areas
        },
        ResetField.WEIGHTS.value: [subject.weight for subject in state.subjects],
        ResetField.BLOCK_ASSIGNMENTS.value: {
            key: [block.model_dump() for block in blocks] for key, blocks in state.block_assignments.items()
        },
        ResetField.PREVIEW.value: (
            None if state.preview_calendar is None else [day.model_dump() for day in state.preview_calendar]
        ),
        ResetField.DISTRIBUTION_MODE.value: state.distribution_mode,
        ResetField.SUB_AREA_LOOP.value: (
            navigation.loop_cursors.get("sub_areas"),
            navigation.completed_flags.get("sub_areas"),
        ),
        ResetField.THEME_LOOP.value: (navigation.loop_cursors.get("themes"), navigation.completed_flags.get("themes")),
        ResetField.BLOCK_LOOP.value: (navigation.loop_cursors.get("blocks"), navigation.completed_flags.get("blocks")),
        "subjects": [subject.subject_id for subject in state.subjects],
        "period": state.period.model_dump(),
        "daily_structure": state.daily_structure.model_dump(),
        "creation_method": state.creation_method,
        "sub_area_mode": state.sub_area_mode,
    }


def _is_initial(name: str, value: Any) -> bool:
    if name == ResetField.WEIGHTS.value:
        return all(weight is None for weight in value)
    if name == ResetField.THEMES.value:
        return all(not themes for themes in value.values())
    if name.startswith("loop:"):
        return value == (None, None)
    return value in (None, {}, [])


def test_total_steps_per_method() -> None:
    assert total_steps("calendar") == 7
    assert total_steps("manual") == 22
    assert total_steps("template") == 9
    assert total_steps("ai") == 8
    assert total_steps("automatic") == 10
    assert total_steps(None) == 10


def test_go_to_ignores_out_of_range_targets() -> None:
    state = _manual_state(step=7)
    assert navigator.go_to(state, 23) is state
    assert navigator.go_to(state, 0) is state
    moved = navigator.go_to(state, 3)
    assert moved.navigation.current_step == 3
    assert state.navigation.current_step == 7


def test_go_to_does_not_cascade() -> None:
    state = _full_state(step=9)
    moved = navigator.go_to(state, 6)
    assert moved.navigation.current_step == 6
    assert moved.subject_catalog == state.subject_catalog
    assert moved.block_assignments == state.block_assignments


def test_previous_from_first_step_and_next_from_terminal_are_noops() -> None:
    state = WizardState()
    assert navigator.previous_step(state) is state
    terminal = _manual_state(step=22)
    assert navigator.next_step(terminal) is terminal
    calendar_terminal = _manual_state(step=7).model_copy(update={"creation_method": "calendar"})
    assert navigator.next_step(calendar_terminal) is calendar_terminal


def test_invalid_step_blocks_forward_navigation() -> None:
    state = WizardState()
    assert navigator.next_step(state) is state


def test_shared_steps_lead_into_method_flow() -> None:
    state = WizardState(
        period=PeriodSettings(start_date=date(2025, 1, 1), end_date=date(2025, 3, 31)),
        daily_structure=DailyStructure(blocks_per_day=2, week_pattern=_pattern()),
    )
    for expected in range(2, 7):
        state = navigator.next_step(state)
        assert state.navigation.current_step == expected
    assert navigator.next_step(state) is state

    state = navigator.select_creation_method(state, "template")
    assert state.navigation.total_steps == 9
    state = navigator.next_step(state)
    assert state.navigation.current_step == 7


@pytest.mark.parametrize("count", [1, 2, 3, 5, 8])
def test_sub_area_loop_visits_every_subject_once(count: int) -> None:
    state = navigator.next_step(_manual_state(subjects=count, step=8))
    assert state.navigation.current_step == 9
    visited = []
    for _ in range(count):
        assert state.navigation.current_step == 9
        visited.append(navigator.current_subject(state))
        state = navigator.next_step(state)
    assert state.navigation.current_step == 10
    assert visited == _subject_ids(count)
    assert all(state.navigation.completed_flags["sub_areas"].values())
    assert len(state.navigation.completed_flags["sub_areas"]) == count


def test_sub_area_loop_jumps_to_first_incomplete_subject() -> None:
    rng = random.Random(7)
    for _ in range(20):
        count = rng.randint(2, 7)
        state = _manual_state(subjects=count, step=8)
        ids = _subject_ids(count)
        done = set(rng.sample(ids, rng.randint(0, count - 1)))
        state.navigation.completed_flags["sub_areas"] = {subject_id: True for subject_id in done}

        state = navigator.next_step(state)
        remaining = [subject_id for subject_id in ids if subject_id not in done]
        visited = []
        while state.navigation.current_step == 9:
            visited.append(navigator.current_subject(state))
            state = navigator.next_step(state)
        assert visited == remaining
        assert state.navigation.current_step == 10


def test_theme_loop_is_sequential_and_exits_when_complete() -> None:
    state = navigator.next_step(_manual_state(subjects=3, step=11))
    assert state.navigation.current_step == 12
    subjects = []
    for _ in range(3):
        subjects.append(navigator.current_subject(state))
        state = navigator.next_step(state)
    assert subjects == ["S0", "S1", "S2"]
    assert state.navigation.current_step == 13


def test_theme_loop_exit_requires_confirmation_when_incomplete() -> None:
    state = _manual_state(subjects=2, step=12, with_themes=False)
    state.navigation.loop_cursors["themes"] = 1

    assert navigator.next_step(state) is state
    assert navigator.next_step(state, confirm_exit=lambda incomplete: False) is state

    seen: List[List[Tuple[str, str]]] = []

    def confirm(incomplete: List[Tuple[str, str]]) -> bool:
        seen.append(incomplete)
        return True

    exited = navigator.next_step(state, confirm_exit=confirm)
    assert exited.navigation.current_step == 13
    assert seen == [[("S0", "S0-sa1"), ("S1", "S1-sa1")]]
    assert state.navigation.current_step == 12


def test_block_loop_requires_full_theme_coverage() -> None:
    state = _manual_state(subjects=2, step=16)
    for subject in state.subjects:
        subject.weight = 50
    state = navigator.next_step(state)
    assert state.navigation.current_step == 17
    assert len(state.block_assignments["S0"]) == 18
    assert navigator.current_subject(state) == "S0"

    assert navigator.next_step(state) is state
    state = assign_theme(state, "S0", "S0-block-1", "S0-t1")
    state = navigator.next_step(state)
    assert state.navigation.current_step == 17
    assert navigator.current_subject(state) == "S1"

    state = assign_theme(state, "S1", "S1-block-1", "S1-t1")
    state = navigator.next_step(state)
    assert state.navigation.current_step == 18


def test_entering_weighting_applies_default_weights() -> None:
    state = navigator.next_step(_manual_state(subjects=3, step=13))
    assert state.navigation.current_step == 14
    assert [subject.weight for subject in state.subjects] == [40, 30, 30]

    weighted = _manual_state(subjects=2, step=13)
    weighted.subjects[0].weight = 70
    weighted.subjects[1].weight = 30
    state = navigator.next_step(weighted)
    assert [subject.weight for subject in state.subjects] == [70, 30]


def test_entering_preview_generates_calendar_once() -> None:
    state = _full_state(step=19)
    state.preview_calendar = None
    state = navigator.next_step(state)
    assert state.navigation.current_step == 20
    assert state.preview_calendar is not None
    assert len(state.preview_calendar) == 31


@pytest.mark.parametrize("edge", sorted(key for key in CASCADE_RESETS if key[0] == "manual"))
def test_backward_cascade_clears_exactly_the_listed_fields(edge: Tuple[str, int, int]) -> None:
    _, from_step, to_step = edge
    cleared = {field.value for field in CASCADE_RESETS[edge]}
    before = _full_state(step=from_step)
    before_values = _observables(before)

    after = navigator.previous_step(before)
    assert after.navigation.current_step == to_step
    after_values = _observables(after)

    for name, value in after_values.items():
        if name in cleared:
            assert _is_initial(name, value), name
        else:
            assert value == before_values[name], name
    assert _observables(before) == before_values


def test_previous_without_table_entry_keeps_state() -> None:
    before = _full_state(step=16)
    after = navigator.previous_step(before)
    assert after.navigation.current_step == 15
    assert _observables(after) == _observables(before)


def test_other_methods_clear_their_own_field_when_leaving_step_seven() -> None:
    state = _manual_state(step=7).model_copy(update={"creation_method": "template", "selected_template": "exam"})
    after = navigator.previous_step(state)
    assert after.selected_template is None
    assert after.subjects == state.subjects


def test_changing_method_resets_downstream_content() -> None:
    state = _full_state(step=6)
    switched = navigator.select_creation_method(state, "automatic")
    assert switched.creation_method == "automatic"
    assert switched.navigation.total_steps == 10
    assert switched.subjects == []
    assert switched.subject_catalog == {}
    assert switched.block_assignments == {}
    assert switched.preview_calendar is None
    assert switched.navigation.loop_cursors == {}
    assert switched.period == state.period

    same = navigator.select_creation_method(state, "manual")
    assert same.subject_catalog == state.subject_catalog


def test_navigation_emits_telemetry() -> None:
    events: List[TelemetryEvent] = []
    register_listener(events.append)
    try:
        navigator.previous_step(_full_state(step=7))
    finally:
        clear_listeners()
    names = [event.name for event in events]
    assert "wizard_cascade_reset" in names
    assert "wizard_step_changed" in names
    cascade = next(event for event in events if event.name == "wizard_cascade_reset")
    assert cascade.payload["from_step"] == 7
    assert "sub_areas" in cascade.payload["cleared"]
