"""
File-Tree Assembler.

Reads the file-per-lesson tree an agent writes into a working directory and
builds a single CurriculumOutput from it:

    topic.json
    modules/
      01-<slug>/
        module.json
        01-<lesson-slug>.json
        ...

Module and lesson order comes from the numeric file-name prefix, never from
directory listing order. The assembled document is validated against the
curriculum schema before it is returned.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import ValidationError

from apollo.schema import SchemaError, validate

from .models import (
    MODULE_FILE_NAME,
    MODULES_DIR_NAME,
    TOPIC_FILE_NAME,
    CurriculumOutput,
    LessonOutput,
    ModuleFile,
    ModuleOutput,
    TopicFile,
)


class AssemblyError(Exception):
    """Raised when a working directory cannot be assembled into a curriculum."""

    def __init__(self, message: str, path: Path | str | None = None):
        super().__init__(message)
        self.path = Path(path) if path is not None else None


def numeric_prefix(name: str) -> int:
    """Leading integer of ``01-intro`` or ``02-basics.json``; 0 when there is none."""
    head = name.split("-", 1)[0]
    try:
        return int(head)
    except ValueError:
        return 0


def _order_key(path: Path) -> tuple[int, str]:
    return numeric_prefix(path.name), path.name


def _read_json(path: Path, missing_label: str) -> Any:
    try:
        raw = path.read_bytes()
    except FileNotFoundError as e:
        raise AssemblyError(f"read {missing_label}: file not found: {path}", path) from e
    except OSError as e:
        raise AssemblyError(f"read {missing_label}: {e}", path) from e

    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise AssemblyError(f"parse {path}: {e}", path) from e


def _parse_model(model: type[Any], data: Any, path: Path) -> Any:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise AssemblyError(f"parse {path}: {e}", path) from e


def _sorted_module_dirs(modules_dir: Path) -> list[Path]:
    if not modules_dir.is_dir():
        raise AssemblyError(
            f"read {MODULES_DIR_NAME} directory: not found: {modules_dir}", modules_dir
        )
    return sorted((p for p in modules_dir.iterdir() if p.is_dir()), key=_order_key)


def _sorted_lesson_files(module_dir: Path) -> list[Path]:
    return sorted(
        (
            p
            for p in module_dir.iterdir()
            if p.is_file() and p.suffix == ".json" and p.name != MODULE_FILE_NAME
        ),
        key=_order_key,
    )


def assemble_module(module_dir: Path) -> ModuleOutput:
    """Read module.json and every lesson file from one module directory."""
    module_path = module_dir / MODULE_FILE_NAME
    try:
        data = _read_json(module_path, MODULE_FILE_NAME)
        module_file: ModuleFile = _parse_model(ModuleFile, data, module_path)

        lessons: list[LessonOutput] = []
        for lesson_path in _sorted_lesson_files(module_dir):
            lesson_data = _read_json(lesson_path, f"lesson {lesson_path.name}")
            lessons.append(_parse_model(LessonOutput, lesson_data, lesson_path))
    except AssemblyError as e:
        raise AssemblyError(f"module {module_dir.name}: {e}", e.path) from e

    return ModuleOutput(
        id=module_file.id,
        title=module_file.title,
        description=module_file.description,
        learning_objectives=module_file.learning_objectives,
        estimated_minutes=module_file.estimated_minutes,
        order=module_file.order,
        lessons=lessons,
        assessment=module_file.assessment,
    )


def assemble_from_dir(work_dir: Path | str) -> CurriculumOutput:
    """
    Assemble a working directory into a validated CurriculumOutput.

    Args:
        work_dir: Job working directory containing topic.json and modules/

    Raises:
        AssemblyError: If a file is missing or malformed, modules/ is empty,
            or the assembled curriculum fails schema validation. ``path``
            names the offending file or directory.
    """
    work_dir = Path(work_dir)

    topic_path = work_dir / TOPIC_FILE_NAME
    topic: TopicFile = _parse_model(TopicFile, _read_json(topic_path, TOPIC_FILE_NAME), topic_path)

    modules_dir = work_dir / MODULES_DIR_NAME
    module_dirs = _sorted_module_dirs(modules_dir)
    if not module_dirs:
        raise AssemblyError(
            f"{MODULES_DIR_NAME} directory is empty: no module directories found", modules_dir
        )

    modules = [assemble_module(module_dir) for module_dir in module_dirs]

    curriculum = CurriculumOutput(
        id=topic.id,
        title=topic.title,
        description=topic.description,
        difficulty=topic.difficulty,
        estimated_hours=topic.estimated_hours,
        tags=topic.tags,
        prerequisites=topic.prerequisites,
        related_topics=topic.related_topics,
        modules=modules,
        source_urls=topic.source_urls,
        generated_at=topic.generated_at,
        version=topic.version,
    )

    try:
        validate(curriculum.to_json())
    except SchemaError as e:
        raise AssemblyError(f"assembled curriculum schema validation: {e}", work_dir) from e

    lesson_count = sum(len(m.lessons) for m in modules)
    logger.debug(f"Assembled {topic.id}: {len(modules)} modules, {lesson_count} lessons")
    return curriculum
