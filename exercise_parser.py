from __future__ import annotations
import os
import re
from typing import List, Optional

from pydantic import BaseModel


class ParsedExercise(BaseModel):
    name: str
    warmup_sets: str = ""
    prep_sets: str = ""
    working_sets: str = ""
    working_reps: str = ""
    weight_kg: Optional[float] = None
    rest_seconds: Optional[int] = None
    notes: Optional[str] = None


class ExerciseTextParser:
    """Parse exercise lists pasted or uploaded as plain text.

    Three layouts are understood:

    * ``Name | warmup | prep | working sets | working reps``
    * an ``Exercise:`` header followed by ``warmup:``, ``prep:``,
      ``working:``, ``reps:`` and ``weight:`` lines (Portuguese labels too)
    * a bare name followed by a ``3x10`` style line
    """

    HEADER_RE = re.compile(r"exercício:|exercise:", re.IGNORECASE)
    SETS_RE = re.compile(r"(\d+)x")
    LOOKAHEAD = 5
    DEFAULT_SETS = 3

    _DETAIL_KEYS = (
        ("warmup_sets", ("aquecimento:", "warmup:")),
        ("prep_sets", ("preparatórias:", "prep:")),
        ("working_sets", ("valendo:", "working:")),
        ("working_reps", ("repetições:", "reps:")),
    )

    @classmethod
    def _is_header(cls, line: str) -> bool:
        return bool(cls.HEADER_RE.search(line))

    @staticmethod
    def _value(line: str) -> str:
        return line.partition(":")[2].strip()

    @staticmethod
    def _parse_weight(text: str) -> Optional[float]:
        cleaned = re.sub(r"[^\d.,]", "", text).replace(",", ".")
        try:
            return float(cleaned)
        except ValueError:
            return None

    @classmethod
    def _parse_pipe(cls, line: str) -> Optional[ParsedExercise]:
        parts = [p.strip() for p in line.split("|")]
        if len(parts) < 5:
            return None
        return ParsedExercise(
            name=parts[0],
            warmup_sets="" if parts[1] == "-" else parts[1],
            prep_sets="" if parts[2] == "-" else parts[2],
            working_sets=parts[3],
            working_reps=parts[4],
        )

    @classmethod
    def _parse_block(cls, lines: List[str], idx: int) -> Optional[ParsedExercise]:
        exercise = ParsedExercise(name=cls.HEADER_RE.sub("", lines[idx]).strip())
        for j in range(idx + 1, min(idx + 1 + cls.LOOKAHEAD, len(lines))):
            if cls._is_header(lines[j]):
                break
            lowered = lines[j].lower()
            for field, labels in cls._DETAIL_KEYS:
                if any(label in lowered for label in labels):
                    setattr(exercise, field, cls._value(lines[j]))
            if "peso:" in lowered or "weight:" in lowered:
                value = cls._value(lines[j])
                if value:
                    exercise.weight_kg = cls._parse_weight(value)
        if exercise.working_sets and exercise.working_reps:
            return exercise
        return None

    @classmethod
    def parse(cls, text: str) -> List[ParsedExercise]:
        lines = [line.strip() for line in text.splitlines() if line.strip()]
        exercises: List[ParsedExercise] = []
        i = 0
        while i < len(lines):
            line = lines[i]
            if "|" in line:
                parsed = cls._parse_pipe(line)
                if parsed is not None:
                    exercises.append(parsed)
            elif cls._is_header(line):
                parsed = cls._parse_block(lines, i)
                if parsed is not None:
                    exercises.append(parsed)
            elif ":" not in line and i + 1 < len(lines):
                detail = lines[i + 1]
                if "x" in detail or "séries" in detail or "sets" in detail:
                    if "x" in detail:
                        working_sets = detail.split(" ")[0]
                        working_reps = detail.split("x", 1)[1].split(" ")[0] or "8-10"
                    else:
                        working_sets = "3x8-10"
                        working_reps = "8-10"
                    exercises.append(
                        ParsedExercise(
                            name=line,
                            working_sets=working_sets,
                            working_reps=working_reps,
                        )
                    )
                    i += 1
            i += 1
        return exercises

    @classmethod
    def parse_file(cls, path: str) -> List[ParsedExercise]:
        """Parse a ``.txt`` file, raising ``ValueError`` when nothing is found."""
        if not path.lower().endswith(".txt"):
            raise ValueError("only .txt files are supported")
        if not os.path.exists(path):
            raise ValueError(f"file not found: {path}")
        with open(path, "r", encoding="utf-8") as f:
            parsed = cls.parse(f.read())
        if not parsed:
            raise ValueError("no valid exercises found")
        return parsed

    @classmethod
    def total_sets(cls, exercise: ParsedExercise) -> int:
        """Sum the set counts of warmup, prep and working schemes."""
        total = 0
        for scheme in (exercise.warmup_sets, exercise.prep_sets, exercise.working_sets):
            if not scheme or scheme == "-":
                continue
            match = cls.SETS_RE.search(scheme)
            if match:
                total += int(match.group(1))
        return total or cls.DEFAULT_SETS

    @classmethod
    def to_exercise_records(
        cls,
        parsed: List[ParsedExercise],
        default_rest_seconds: int = 60,
        start_order: int = 1,
    ) -> List[dict]:
        """Convert parsed entries into ``ExerciseRepository.add`` keyword sets."""
        records: List[dict] = []
        for index, exercise in enumerate(parsed, start=start_order):
            records.append(
                {
                    "name": exercise.name,
                    "sets": cls.total_sets(exercise),
                    "reps": exercise.working_reps or "8-10",
                    "weight_kg": exercise.weight_kg,
                    "rest_seconds": exercise.rest_seconds or default_rest_seconds,
                    "execution_notes": exercise.notes,
                    "exercise_order": index,
                    "warmup_sets": exercise.warmup_sets or None,
                    "prep_sets": exercise.prep_sets or None,
                    "working_sets": exercise.working_sets,
                    "working_reps": exercise.working_reps,
                }
            )
        return records
