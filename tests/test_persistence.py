"""
Tests for the audit ledger.
"""

from pathlib import Path

from rvmprov.core.persistence.audit import AuditEntry, AuditWriter


class TestAuditWriter:
    def test_write_and_read(self, tmp_path: Path):
        writer = AuditWriter(tmp_path / "audit.ndjson")
        writer.write(AuditEntry(run_id="run-1", user="alice", status="ok", performed=["import_key"]))
        writer.write(AuditEntry(run_id="run-2", user="bob", status="failed", failed_step="import_key"))

        entries = writer.read_all()
        assert [e.run_id for e in entries] == ["run-1", "run-2"]
        assert entries[0].performed == ["import_key"]
        assert entries[1].failed_step == "import_key"

    def test_creates_directories(self, tmp_path: Path):
        path = tmp_path / "logs" / "nested" / "audit.ndjson"
        AuditWriter(path).write(AuditEntry(user="alice"))
        assert path.is_file()

    def test_read_missing(self, tmp_path: Path):
        assert AuditWriter(tmp_path / "none.ndjson").read_all() == []

    def test_corrupt_lines_skipped(self, tmp_path: Path):
        path = tmp_path / "audit.ndjson"
        writer = AuditWriter(path)
        writer.write(AuditEntry(user="alice"))
        with path.open("a", encoding="utf-8") as f:
            f.write("not json {{{\n\n")
        writer.write(AuditEntry(user="bob"))
        assert [e.user for e in writer.read_all()] == ["alice", "bob"]

    def test_read_recent(self, tmp_path: Path):
        writer = AuditWriter(tmp_path / "audit.ndjson")
        for i in range(5):
            writer.write(AuditEntry(run_id=f"run-{i}"))
        assert [e.run_id for e in writer.read_recent(2)] == ["run-3", "run-4"]

    def test_default_path(self):
        assert AuditWriter().path == Path("rvmprov-audit.ndjson")
