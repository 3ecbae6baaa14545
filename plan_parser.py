"""Parse free-form workout plan text into structured days and exercises.

The accepted grammar is line oriented::

    Day 1 - Chest:
    1. Bench Press - 4x8 @ 80kg | 120s rest (pause at the bottom)
    2. Dips - 3x12 @ bodyweight | 90s

Lines that match neither a day header nor an exercise line are ignored, so
the parser never fails on arbitrary text.  The mapping is one way: rows
generated from a plan are always rebuilt from its text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

DAY_HEADER_PATTERN = re.compile(r"^day\s+(\d+)\s*-\s*(.*?)\s*$", re.IGNORECASE)
EXERCISE_LINE_PATTERN = re.compile(
    r"^\d+\.\s*(?P<name>.+?)\s*-\s*"
    r"(?P<sets>\d+)\s*[x×]\s*(?P<reps>\d+)\s*@\s*"
    r"(?P<weight>bodyweight\b|\d+(?:\.\d+)?\s*kg\b)",
    re.IGNORECASE,
)
WEIGHT_PATTERN = re.compile(r"@\s*(\d+(?:\.\d+)?)\s*kg\b", re.IGNORECASE)
REST_PATTERN = re.compile(r"\|\s*(\d+)\s*s\b", re.IGNORECASE)
NOTES_PATTERN = re.compile(r"\(([^)]+)\)")

UNKNOWN_MUSCLE_GROUP = "Unknown"


@dataclass(frozen=True)
class ParsedExercise:
    name: str
    sets: int
    reps: int
    weight: Optional[float] = None
    is_bodyweight: bool = False
    rest_seconds: Optional[int] = None
    notes: Optional[str] = None
    line: str = ""

    @property
    def reps_sequence(self) -> List[int]:
        """Reps for every set; the grammar has one rep count per exercise."""
        return [self.reps] * self.sets

    def as_dict(self) -> dict:
        return {
            "name": self.name,
            "sets": self.sets,
            "reps": self.reps,
            "weight": self.weight,
            "is_bodyweight": self.is_bodyweight,
            "rest_seconds": self.rest_seconds,
            "notes": self.notes,
        }


@dataclass(frozen=True)
class ParsedDay:
    day: int
    muscle_group: str
    exercises: Tuple[ParsedExercise, ...] = field(default_factory=tuple)

    def as_dict(self) -> dict:
        return {
            "day": self.day,
            "muscle_group": self.muscle_group,
            "exercises": [ex.as_dict() for ex in self.exercises],
        }


@dataclass(frozen=True)
class ExerciseDetails:
    """Annotations found on an exercise line independently of its shape."""

    weight: Optional[float] = None
    rest_seconds: Optional[int] = None
    notes: Optional[str] = None


def _parse_header(line: str) -> Optional[Tuple[int, str]]:
    match = DAY_HEADER_PATTERN.match(line)
    if not match:
        return None
    label = match.group(2).rstrip(":").strip()
    return int(match.group(1)), label or UNKNOWN_MUSCLE_GROUP


def scan_exercise_details(line: str) -> ExerciseDetails:
    """Return weight, rest and notes annotations found anywhere in ``line``."""
    weight = WEIGHT_PATTERN.search(line)
    rest = REST_PATTERN.search(line)
    notes = NOTES_PATTERN.search(line)
    return ExerciseDetails(
        weight=float(weight.group(1)) if weight else None,
        rest_seconds=int(rest.group(1)) if rest else None,
        notes=notes.group(1) if notes else None,
    )


def parse_exercise_line(line: str) -> Optional[ParsedExercise]:
    """Parse ``N. Name - SxR @ weight`` or return ``None``."""
    line = line.strip()
    match = EXERCISE_LINE_PATTERN.match(line)
    if not match:
        return None
    sets = int(match.group("sets"))
    reps = int(match.group("reps"))
    if sets <= 0 or reps <= 0:
        return None

    token = match.group("weight").lower()
    is_bodyweight = token == "bodyweight"
    weight = None if is_bodyweight else float(token[:-2].strip())

    # rest is only honoured after the weight token, notes anywhere
    rest = REST_PATTERN.search(line, match.end())
    notes = NOTES_PATTERN.search(line)
    return ParsedExercise(
        name=match.group("name").strip(),
        sets=sets,
        reps=reps,
        weight=weight,
        is_bodyweight=is_bodyweight,
        rest_seconds=int(rest.group(1)) if rest else None,
        notes=notes.group(1) if notes else None,
        line=line,
    )


def parse_day_headers(plan_text: str) -> List[int]:
    """Return the valid day numbers declared in ``plan_text``."""
    days: List[int] = []
    for raw in (plan_text or "").splitlines():
        header = _parse_header(raw.strip())
        if header and header[0] > 0 and header[0] not in days:
            days.append(header[0])
    return days


def _fold_lines(lines: Iterable[str]) -> List[ParsedDay]:
    closed: dict[int, ParsedDay] = {}
    open_day: Optional[Tuple[int, str]] = None
    exercises: List[ParsedExercise] = []

    def flush() -> None:
        if open_day is None:
            return
        day, label = open_day
        # a repeated day replaces the earlier block and moves to its position
        closed.pop(day, None)
        closed[day] = ParsedDay(day, label, tuple(exercises))

    for raw in lines:
        line = raw.strip()
        if not line:
            continue
        header = _parse_header(line)
        if header is not None:
            flush()
            open_day = header if header[0] > 0 else None
            exercises = []
            continue
        if open_day is None:
            continue
        exercise = parse_exercise_line(line)
        if exercise is not None:
            exercises.append(exercise)
    flush()
    return list(closed.values())


def parse(plan_text: str) -> List[ParsedDay]:
    """Parse ``plan_text`` into days in the order they appear.

    Duplicate day numbers are resolved last-wins: the later block replaces
    the earlier one entirely.
    """
    if not plan_text:
        return []
    return _fold_lines(plan_text.splitlines())
