"""
Integration tests for the knowledge pool summary.

Run: pytest tests/integration/test_pool_summary.py -v
"""
import json

from apollo.research.ingest import CurriculumIngester
from apollo.research.pool import PoolSummaryBuilder


class TestPoolSummaryBuilder:
    def test_empty_catalog(self, session_factory):
        """An empty catalog yields empty lists, not nulls."""
        data = json.loads(PoolSummaryBuilder(session_factory).build())
        assert data == {"existing_topics": [], "existing_concepts": []}

    def test_summary_after_ingest(self, session_factory, curriculum_json):
        CurriculumIngester(session_factory).ingest(curriculum_json)

        data = json.loads(PoolSummaryBuilder(session_factory).build())

        assert data == {
            "existing_topics": [
                {"id": "go-concurrency", "modules": ["go-concurrency/goroutines"]}
            ],
            "existing_concepts": ["goroutine"],
        }

    def test_output_is_indented(self, session_factory):
        assert b"\n  " in PoolSummaryBuilder(session_factory).build()

    def test_write_to_dir(self, session_factory, curriculum_json, tmp_path):
        CurriculumIngester(session_factory).ingest(curriculum_json)

        path = PoolSummaryBuilder(session_factory).write_to_dir(tmp_path)

        assert path == tmp_path / "knowledge_pool_summary.json"
        assert json.loads(path.read_text(encoding="utf-8"))["existing_concepts"] == ["goroutine"]
