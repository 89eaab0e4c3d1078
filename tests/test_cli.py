"""Tests for pst_viewer.cli."""

from __future__ import annotations

import os
import time

import pytest
from typer.testing import CliRunner

from pst_viewer.cli import _require_folder, app
from pst_viewer.errors import ParseError
from pst_viewer.store import ArchiveStore

runner = CliRunner()

INBOX = "0.0.0.Inbox"


@pytest.fixture(autouse=True)
def cli_env(monkeypatch, tmp_path, make_backend, make_archive, mailbox):
    monkeypatch.setenv("PST_VIEWER_LOG_LEVEL", "ERROR")
    monkeypatch.setenv("PST_VIEWER_ATTACHMENTS_TEMP_DIR", str(tmp_path / "transient"))
    monkeypatch.setattr(
        "pst_viewer.cli._make_backend",
        lambda: make_backend(make_archive(mailbox["root"], mailbox["top"])),
    )


class TestBrowse:
    def test_tree(self, archive_file):
        result = runner.invoke(app, ["tree", str(archive_file)])
        assert result.exit_code == 0, result.output
        assert "Top of Personal Folders (0)  [0.0.Top of Personal Folders]" in result.output
        assert f"\n    Inbox (2)  [{INBOX}]" in result.output

    def test_list_newest_first_with_archive_positions(self, archive_file):
        result = runner.invoke(app, ["list", str(archive_file), INBOX])
        assert result.exit_code == 0, result.output
        lines = [line for line in result.output.splitlines() if line.strip()]
        assert lines[0].split()[0] == "1"
        assert lines[0].endswith("Invoice 2025-04")
        assert lines[1].split()[0] == "0"
        assert lines[1].endswith("Lunch on Friday?")

    def test_list_sort_option(self, archive_file):
        result = runner.invoke(app, ["list", str(archive_file), INBOX, "--sort", "subject-asc"])
        assert result.exit_code == 0, result.output
        assert result.output.index("Invoice") < result.output.index("Lunch")

    def test_show(self, archive_file):
        result = runner.invoke(app, ["show", str(archive_file), INBOX, "1"])
        assert result.exit_code == 0, result.output
        assert "Subject: Invoice 2025-04" in result.output
        assert "Please find the BUDGET figures below." in result.output
        assert "[0] invoice.pdf (8 bytes)" in result.output

    def test_unknown_folder(self, archive_file):
        result = runner.invoke(app, ["list", str(archive_file), "0.9.Nope"])
        assert result.exit_code == 1
        assert "No folder with id" in result.output

    def test_index_out_of_range(self, archive_file):
        result = runner.invoke(app, ["show", str(archive_file), INBOX, "7"])
        assert result.exit_code == 1
        assert "no message at index 7" in result.output

    def test_missing_archive(self, tmp_path):
        result = runner.invoke(app, ["tree", str(tmp_path / "absent.pst")])
        assert result.exit_code == 1
        assert "could not be found" in result.output


class TestSearch:
    def test_metadata_search(self, archive_file):
        result = runner.invoke(app, ["search", str(archive_file), "lunch"])
        assert result.exit_code == 0, result.output
        assert "Lunch on Friday?" in result.output
        assert "Re: Lunch on Friday?" in result.output
        assert "2 result(s)." in result.output

    def test_body_and_filters(self, archive_file):
        result = runner.invoke(
            app,
            ["search", str(archive_file), "budget", "--body", "--attachments", "--since", "2025-04-01"],
        )
        assert result.exit_code == 0, result.output
        assert "Invoice 2025-04" in result.output
        assert "Project kickoff" not in result.output

    def test_folder_scope(self, archive_file):
        result = runner.invoke(app, ["search", str(archive_file), "lunch", "--folder", "0.0.1.Sent Items"])
        assert result.exit_code == 0, result.output
        assert "1 result(s)." in result.output

    def test_bad_date(self, archive_file):
        result = runner.invoke(app, ["search", str(archive_file), "x", "--since", "yesterday"])
        assert result.exit_code == 2

    def test_inverted_range(self, archive_file):
        result = runner.invoke(
            app, ["search", str(archive_file), "x", "--since", "2025-02-01", "--until", "2025-01-01"]
        )
        assert result.exit_code == 2


class TestExport:
    def test_export_into_directory_uses_suggested_name(self, archive_file, tmp_path):
        out = tmp_path / "out"
        out.mkdir()
        result = runner.invoke(app, ["export", str(archive_file), INBOX, "0", str(out)])
        assert result.exit_code == 0, result.output
        exported = out / "Lunch on Friday_.eml"
        assert exported.is_file()
        assert b"Subject: Lunch on Friday?\r\n" in exported.read_bytes()

    def test_export_txt_to_file(self, archive_file, tmp_path):
        target = tmp_path / "lunch.txt"
        result = runner.invoke(
            app, ["export", str(archive_file), INBOX, "0", str(target), "--format", "txt"]
        )
        assert result.exit_code == 0, result.output
        assert target.read_text(encoding="utf-8").endswith("\nPizza or tacos\n")

    def test_export_folder(self, archive_file, tmp_path):
        out = tmp_path / "batch"
        result = runner.invoke(app, ["export-folder", str(archive_file), INBOX, str(out)])
        assert result.exit_code == 0, result.output
        assert "2 of 2 email(s) exported." in result.output
        assert sorted(p.name for p in out.iterdir()) == ["Invoice 2025-04_2.eml", "Lunch on Friday__1.eml"]


class TestAttachments:
    def test_save(self, archive_file, tmp_path):
        target = tmp_path / "saved.pdf"
        result = runner.invoke(
            app, ["attachment", "save", str(archive_file), INBOX, "1", "0", str(target)]
        )
        assert result.exit_code == 0, result.output
        assert target.read_bytes() == b"%PDF-1.4"

    def test_save_missing_attachment_index(self, archive_file, tmp_path):
        result = runner.invoke(
            app, ["attachment", "save", str(archive_file), INBOX, "0", "0", str(tmp_path / "x")]
        )
        assert result.exit_code == 1
        assert "no attachment at index 0" in result.output

    def test_cleanup(self, tmp_path):
        transient = tmp_path / "transient"
        transient.mkdir()
        stale = transient / "old.txt"
        stale.write_text("x")
        past = time.time() - 600
        os.utime(stale, (past, past))
        (transient / "new.txt").write_text("y")

        result = runner.invoke(app, ["cleanup", "--max-age", "60"])
        assert result.exit_code == 0, result.output
        assert "Removed 1 file(s)" in result.output
        assert sorted(p.name for p in transient.iterdir()) == ["new.txt"]


class TestRequireFolder:
    @pytest.mark.asyncio
    async def test_without_open_archive_raises_parse_error(self, make_backend):
        async with ArchiveStore(make_backend()) as store:
            with pytest.raises(ParseError, match="No archive is open"):
                _require_folder(store, INBOX)
