"""
Unit tests for the file-tree assembler.

Run: pytest tests/unit/test_assembler.py -v
"""
import json

import pytest

from apollo.research.assembler import AssemblyError, assemble_from_dir, numeric_prefix
from doubles import sample_curriculum, write_curriculum_tree


def _rename(path, new_name):
    target = path.with_name(new_name)
    path.rename(target)
    return target


class TestNumericPrefix:
    """Order prefix extraction from directory and file names."""

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("01-introduction", 1),
            ("02-basics.json", 2),
            ("10-goroutines", 10),
            ("intro", 0),
            ("abc-def", 0),
            ("", 0),
        ],
    )
    def test_prefix(self, name, expected):
        assert numeric_prefix(name) == expected


class TestAssembleFromDir:
    """Assembling a working directory into a CurriculumOutput."""

    def test_assembles_sample_tree(self, curriculum_tree):
        """The sample tree assembles with topic fields, modules and lessons intact."""
        result = assemble_from_dir(curriculum_tree)

        assert result.id == "go-concurrency"
        assert result.difficulty == "intermediate"
        assert len(result.modules) == 1
        module = result.modules[0]
        assert module.id == "go-concurrency/goroutines"
        assert module.assessment["questions"][0]["type"] == "conceptual"
        assert [lesson.id for lesson in module.lessons] == [
            "go-concurrency/goroutines/what-are-goroutines",
            "go-concurrency/goroutines/waitgroups",
        ]
        assert module.lessons[0].concepts_taught[0].flashcard.front == "What is a goroutine?"

    def test_output_matches_source_document(self, curriculum_tree):
        """Serializing the assembled tree reproduces the original curriculum."""
        result = assemble_from_dir(curriculum_tree)
        assert json.loads(result.to_json()) == sample_curriculum()

    def test_module_directories_ordered_by_numeric_prefix(self, tmp_path):
        """10-goroutines sorts after 05-channels regardless of listing order."""
        doc = sample_curriculum()
        second = json.loads(json.dumps(doc["modules"][0]))
        second["id"] = "go-concurrency/channels"
        second["title"] = "Channels"
        for lesson in second["lessons"]:
            lesson["id"] = lesson["id"].replace("goroutines", "channels")
            lesson["concepts_taught"] = []
            lesson["concepts_referenced"] = []
        doc["modules"].append(second)
        work = write_curriculum_tree(tmp_path / "work", doc)

        modules_dir = work / "modules"
        _rename(modules_dir / "01-goroutines", "10-goroutines")
        _rename(modules_dir / "02-channels", "05-channels")

        result = assemble_from_dir(work)
        assert [m.id for m in result.modules] == [
            "go-concurrency/channels",
            "go-concurrency/goroutines",
        ]

    def test_lesson_files_ordered_by_numeric_prefix(self, curriculum_tree):
        """Lesson file order comes from the prefix, not lexical order."""
        module_dir = curriculum_tree / "modules" / "01-goroutines"
        _rename(module_dir / "01-what-are-goroutines.json", "10-what-are-goroutines.json")
        _rename(module_dir / "02-waitgroups.json", "05-waitgroups.json")

        result = assemble_from_dir(curriculum_tree)
        assert [lesson.title for lesson in result.modules[0].lessons] == [
            "WaitGroups",
            "What Are Goroutines",
        ]

    def test_prefix_ties_broken_by_name(self, curriculum_tree):
        """Equal prefixes fall back to the full file name."""
        module_dir = curriculum_tree / "modules" / "01-goroutines"
        _rename(module_dir / "01-what-are-goroutines.json", "01-b-what-are-goroutines.json")
        _rename(module_dir / "02-waitgroups.json", "01-a-waitgroups.json")

        result = assemble_from_dir(curriculum_tree)
        assert result.modules[0].lessons[0].title == "WaitGroups"

    def test_non_json_files_ignored(self, curriculum_tree):
        module_dir = curriculum_tree / "modules" / "01-goroutines"
        (module_dir / "notes.md").write_text("scratch", encoding="utf-8")

        result = assemble_from_dir(curriculum_tree)
        assert len(result.modules[0].lessons) == 2

    # ========================================
    # Error Cases
    # ========================================

    def test_missing_topic_json(self, curriculum_tree):
        """Missing topic.json is reported by name."""
        (curriculum_tree / "topic.json").unlink()
        with pytest.raises(AssemblyError) as exc:
            assemble_from_dir(curriculum_tree)
        assert "topic.json" in str(exc.value)
        assert exc.value.path == curriculum_tree / "topic.json"

    def test_malformed_topic_json(self, curriculum_tree):
        (curriculum_tree / "topic.json").write_text("{broken", encoding="utf-8")
        with pytest.raises(AssemblyError) as exc:
            assemble_from_dir(curriculum_tree)
        assert str(curriculum_tree / "topic.json") in str(exc.value)

    def test_missing_modules_directory(self, tmp_path):
        work = tmp_path / "work"
        work.mkdir()
        (work / "topic.json").write_text(json.dumps({"id": "t"}), encoding="utf-8")
        with pytest.raises(AssemblyError) as exc:
            assemble_from_dir(work)
        assert "modules" in str(exc.value)

    def test_empty_modules_directory(self, tmp_path):
        """An empty modules/ directory is an error."""
        work = tmp_path / "work"
        (work / "modules").mkdir(parents=True)
        (work / "topic.json").write_text(json.dumps({"id": "t"}), encoding="utf-8")
        with pytest.raises(AssemblyError) as exc:
            assemble_from_dir(work)
        assert "modules directory is empty" in str(exc.value)

    def test_module_without_module_json(self, curriculum_tree):
        """A module directory without module.json names the module and file."""
        module_dir = curriculum_tree / "modules" / "01-goroutines"
        (module_dir / "module.json").unlink()
        with pytest.raises(AssemblyError) as exc:
            assemble_from_dir(curriculum_tree)
        assert "01-goroutines" in str(exc.value)
        assert "module.json" in str(exc.value)
        assert exc.value.path == module_dir / "module.json"

    def test_invalid_lesson_json(self, curriculum_tree):
        """A malformed lesson file is reported by path."""
        lesson = curriculum_tree / "modules" / "01-goroutines" / "02-waitgroups.json"
        lesson.write_text('{"id": "x", ', encoding="utf-8")
        with pytest.raises(AssemblyError) as exc:
            assemble_from_dir(curriculum_tree)
        assert str(lesson) in str(exc.value)
        assert exc.value.path == lesson

    @pytest.mark.parametrize("relative", ["topic.json", "modules/01-goroutines/02-waitgroups.json"])
    def test_invalid_utf8_reported_by_path(self, curriculum_tree, relative):
        """Bytes that are not UTF-8 are an AssemblyError, not a UnicodeDecodeError."""
        path = curriculum_tree / relative
        path.write_bytes(b'{"id": "\xff\xfe"}')
        with pytest.raises(AssemblyError) as exc:
            assemble_from_dir(curriculum_tree)
        assert exc.value.path == path

    def test_lesson_with_wrong_shape(self, curriculum_tree):
        """Structurally wrong lesson fields are reported by path."""
        lesson = curriculum_tree / "modules" / "01-goroutines" / "02-waitgroups.json"
        lesson.write_text(json.dumps({"id": "x", "concepts_taught": "nope"}), encoding="utf-8")
        with pytest.raises(AssemblyError) as exc:
            assemble_from_dir(curriculum_tree)
        assert exc.value.path == lesson

    def test_schema_violation_fails_assembly(self, curriculum_tree):
        """The assembled document is validated against the curriculum schema."""
        topic_path = curriculum_tree / "topic.json"
        topic = json.loads(topic_path.read_text(encoding="utf-8"))
        topic["difficulty"] = "expert"
        topic_path.write_text(json.dumps(topic), encoding="utf-8")

        with pytest.raises(AssemblyError) as exc:
            assemble_from_dir(curriculum_tree)
        assert "schema validation failed" in str(exc.value)
        assert "/difficulty" in str(exc.value)
