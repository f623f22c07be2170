"""
Jovika Kito v2.0 — Lesson Progression
Deterministic part sequencing. Python decides where the student is; the
handlers only phrase it.

    part done → next part in the lesson
    lesson done → first part of the next lesson
    last lesson done → stay on the last lesson (no terminal state; the
                       student repeats the final lesson's parts)
"""

from dataclasses import dataclass
from typing import Optional

from app.content.curriculum import Lesson, Part, clamp_position, get_lessons


@dataclass(frozen=True)
class Position:
    lesson_index: int
    part_index: int
    lesson: Lesson
    part: Part
    lesson_count: int

    @property
    def part_count(self) -> int:
        return len(self.lesson.parts)


def current_position(language: Optional[str], lesson_index: int, part_index: int) -> Position:
    """Resolve (possibly out-of-range) indices to a valid position."""
    lessons = get_lessons(language)
    lesson_index, part_index = clamp_position(language, lesson_index, part_index)
    lesson = lessons[lesson_index]
    return Position(
        lesson_index=lesson_index,
        part_index=part_index,
        lesson=lesson,
        part=lesson.parts[part_index],
        lesson_count=len(lessons),
    )


def next_position(language: Optional[str], lesson_index: int, part_index: int) -> Position:
    """Position after the current part is satisfied. Never leaves the curriculum."""
    here = current_position(language, lesson_index, part_index)
    if here.part_index + 1 < here.part_count:
        return current_position(language, here.lesson_index, here.part_index + 1)
    # Lesson exhausted: next lesson, part 0. Past the end clamps to the last lesson.
    return current_position(language, here.lesson_index + 1, 0)
