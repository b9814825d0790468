"""
classroom.clock — School-day clock face computation.

Turns a SchoolSchedule into the chronological 24-hour segments drawn on
the clock chart. Angles follow the pie convention used by the front-end:
0° is 3 o'clock, 90° is 12 o'clock, and segments run clockwise from 90°
(angles decrease) through a full 360° sweep.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from classroom.constants import HOURS_PER_DAY
from classroom.shaping import SchoolSchedule

PIE_START_ANGLE: float = 90.0
PIE_END_ANGLE: float = PIE_START_ANGLE - 360.0


@dataclass(frozen=True, slots=True)
class Segment:
    name: str
    hours: float
    start_angle: float = 0.0
    end_angle: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "hours": self.hours,
            "start_angle": self.start_angle,
            "end_angle": self.end_angle,
        }


@dataclass(frozen=True, slots=True)
class ClockFace:
    country: str
    school_hours: float
    cram_hours: float
    segments: tuple[Segment, ...]

    @property
    def education_hours(self) -> float:
        return self.school_hours + self.cram_hours

    @property
    def percentage(self) -> float:
        """Share of the day spent in school or cram school, one decimal."""
        return round(self.education_hours / HOURS_PER_DAY * 100, 1)

    def to_dict(self) -> dict[str, Any]:
        return {
            "country": self.country,
            "school_hours": self.school_hours,
            "cram_hours": self.cram_hours,
            "education_hours": self.education_hours,
            "percentage": self.percentage,
            "segments": [s.to_dict() for s in self.segments],
        }


def span_hours(start: float, end: float) -> float:
    """Hours from start to end on a 24-hour dial, wrapping past midnight."""
    start %= HOURS_PER_DAY
    end %= HOURS_PER_DAY
    if end > start:
        return end - start
    return HOURS_PER_DAY - start + end


def _with_angles(segments: list[Segment]) -> tuple[Segment, ...]:
    total = sum(s.hours for s in segments)
    if total <= 0:
        return tuple(segments)
    sweep = PIE_START_ANGLE - PIE_END_ANGLE
    angle = PIE_START_ANGLE
    placed = []
    for s in segments:
        end = angle - s.hours / total * sweep
        placed.append(Segment(s.name, s.hours, start_angle=angle, end_angle=end))
        angle = end
    return tuple(placed)


def build_clock(schedule: SchoolSchedule) -> ClockFace:
    """Build the chronological clock face for one country's school day.

    Raises ValueError if the schedule has no sessions.
    """
    if not schedule.start_times:
        raise ValueError(f"Schedule for '{schedule.country}' has no sessions.")

    sessions = [
        (start % HOURS_PER_DAY, end % HOURS_PER_DAY, span_hours(start, end))
        for start, end in zip(schedule.start_times, schedule.end_times)
    ]
    school_hours = sum(hours for _, _, hours in sessions)
    first_start = min(start for start, _, _ in sessions)
    last_end = max(end for _, end, _ in sessions)

    cram_hours = 0.0
    cram_start = cram_end = 0.0
    if schedule.has_cram_school:
        cram_hours = span_hours(schedule.cram_start, schedule.cram_end)
        cram_start = schedule.cram_start % HOURS_PER_DAY
        cram_end = schedule.cram_end % HOURS_PER_DAY

    segments: list[Segment] = []
    if first_start > 0:
        segments.append(Segment("Before School", first_start))

    for i, (start, _, hours) in enumerate(sessions):
        if i > 0:
            gap = start - sessions[i - 1][1]
            if gap > 0:
                segments.append(Segment("Break", gap))
        segments.append(Segment("School Hours", hours))

    if cram_hours > 0:
        gap = cram_start - last_end
        if gap > 0:
            segments.append(Segment("Between School and Cram", gap))
        segments.append(Segment("Cram School", cram_hours))

    final_end = cram_end if cram_hours > 0 else last_end
    if final_end < HOURS_PER_DAY:
        after = HOURS_PER_DAY - final_end
        if after > 0:
            segments.append(Segment("After School", after))

    return ClockFace(
        country=schedule.country,
        school_hours=school_hours,
        cram_hours=cram_hours,
        segments=_with_angles(segments),
    )
