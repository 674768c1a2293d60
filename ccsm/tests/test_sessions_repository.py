import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from ccsm.repositories.sessions import SessionRepository, validate_segment


class SessionRepositoryTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.projects_dir = Path(self.tmpdir.name) / "projects"
        self.project_dir = self.projects_dir / "-home-dev-app"
        self.project_dir.mkdir(parents=True)
        self.repo = SessionRepository(self.projects_dir)

    async def asyncTearDown(self) -> None:
        self.tmpdir.cleanup()

    def _write_session(self, session_id: str, lines: list, mtime: float | None = None) -> Path:
        path = self.project_dir / f"{session_id}.jsonl"
        rendered = [line if isinstance(line, str) else json.dumps(line) for line in lines]
        path.write_text("\n".join(rendered) + "\n", encoding="utf-8")
        if mtime is not None:
            os.utime(path, (mtime, mtime))
        return path

    async def test_list_sessions_sorted_by_updated_at_desc(self) -> None:
        self._write_session("old", [{"role": "user", "content": "old one"}], mtime=1_700_000_000)
        self._write_session("new", [{"role": "user", "content": "new one"}], mtime=1_700_000_500)
        (self.project_dir / "notes.txt").write_text("ignored", encoding="utf-8")

        sessions = await self.repo.list_sessions("-home-dev-app")

        self.assertEqual([s.id for s in sessions], ["new", "old"])
        self.assertEqual(sessions[0].updatedAt, 1_700_000_500_000)
        self.assertEqual(sessions[0].preview, "new one")
        self.assertEqual(sessions[0].projectHash, "-home-dev-app")

    async def test_list_sessions_summary_fields(self) -> None:
        path = self._write_session(
            "s1",
            [
                {"type": "init", "cwd": "/home/dev/app"},
                {"message": {"role": "user", "content": "hello there"}},
                "{broken",
                {"message": {"role": "assistant", "model": "claude-sonnet", "content": "hi"}},
            ],
        )

        [summary] = await self.repo.list_sessions("-home-dev-app")

        self.assertEqual(summary.messageCount, 4)
        self.assertEqual(summary.fileSize, path.stat().st_size)
        self.assertEqual(summary.model, "claude-sonnet")
        self.assertEqual(summary.cwd, "/home/dev/app")
        self.assertGreater(summary.createdAt, 0)

    async def test_list_sessions_missing_project_is_empty(self) -> None:
        self.assertEqual(await self.repo.list_sessions("nope"), [])

    async def test_list_skips_directories_named_like_transcripts(self) -> None:
        (self.project_dir / "odd.jsonl").mkdir()
        self._write_session("real", [{"role": "user", "content": "x"}])
        sessions = await self.repo.list_sessions("-home-dev-app")
        self.assertEqual([s.id for s in sessions], ["real"])

    async def test_list_and_get_agree_on_shared_fields(self) -> None:
        self._write_session(
            "s1",
            [
                {"cwd": "/home/dev/app", "message": {"role": "user", "content": "question"}},
                {"message": {"role": "assistant", "model": "claude-opus", "content": "answer"}},
                "not json",
            ],
        )

        [summary] = await self.repo.list_sessions("-home-dev-app")
        session = await self.repo.get_session("-home-dev-app", "s1")

        self.assertEqual(session.model_dump(exclude={"messages"}), summary.model_dump())
        self.assertEqual(len(session.messages), 2)

    async def test_get_session_parses_messages(self) -> None:
        self._write_session(
            "s1",
            [
                {"role": "user", "content": "run it"},
                {"role": "tool", "tool_name": "Bash", "tool_result": ""},
            ],
        )

        session = await self.repo.get_session("-home-dev-app", "s1")

        self.assertEqual([m.role for m in session.messages], ["user", "tool"])
        self.assertEqual(session.messages[1].toolName, "Bash")
        self.assertIn("toolResult", session.messages[1].model_fields_set)

    async def test_get_session_reports_dropped_lines(self) -> None:
        self._write_session("s1", [{"role": "user", "content": "ok"}, "{bad", "[oops"])
        with patch("ccsm.repositories.sessions.record_parser_failure") as record_failure:
            session = await self.repo.get_session("-home-dev-app", "s1")

        self.assertEqual(len(session.messages), 1)
        record_failure.assert_called_once_with("transcript", project_id="-home-dev-app", count=2)

    async def test_deeply_nested_line_does_not_break_listing_or_fetch(self) -> None:
        self._write_session("good", [{"role": "user", "content": "fine"}], mtime=1_700_000_000)
        self._write_session("nested", [{"role": "user", "content": "before"}, "[" * 100_000], mtime=1_700_000_100)

        sessions = await self.repo.list_sessions("-home-dev-app")
        self.assertEqual([s.id for s in sessions], ["nested", "good"])
        self.assertEqual(sessions[0].messageCount, 2)

        session = await self.repo.get_session("-home-dev-app", "nested")
        self.assertEqual([m.content for m in session.messages], ["before"])

    async def test_looping_symlink_is_skipped_in_listing(self) -> None:
        self._write_session("real", [{"role": "user", "content": "x"}])
        loop = self.project_dir / "loop.jsonl"
        os.symlink(loop, loop)

        sessions = await self.repo.list_sessions("-home-dev-app")

        self.assertEqual([s.id for s in sessions], ["real"])

    async def test_get_missing_session_returns_none(self) -> None:
        self.assertIsNone(await self.repo.get_session("-home-dev-app", "absent"))
        self.assertIsNone(await self.repo.get_session("no-project", "absent"))

    async def test_delete_removes_file_and_subordinate_directory(self) -> None:
        path = self._write_session("s1", [{"role": "user", "content": "x"}])
        children = self.project_dir / "s1" / "subagents"
        children.mkdir(parents=True)
        (children / "agent-1.jsonl").write_text("{}\n", encoding="utf-8")

        self.assertTrue(await self.repo.delete_session("-home-dev-app", "s1"))
        self.assertFalse(path.exists())
        self.assertFalse((self.project_dir / "s1").exists())
        self.assertIsNone(await self.repo.get_session("-home-dev-app", "s1"))
        self.assertEqual(await self.repo.list_sessions("-home-dev-app"), [])

    async def test_delete_missing_session_returns_false(self) -> None:
        (self.project_dir / "ghost").mkdir()
        self.assertFalse(await self.repo.delete_session("-home-dev-app", "ghost"))
        self.assertTrue((self.project_dir / "ghost").is_dir())

    async def test_batch_delete_splits_deleted_and_failed(self) -> None:
        self._write_session("a", [{"role": "user", "content": "a"}])
        self._write_session("b", [{"role": "user", "content": "b"}])

        result = await self.repo.delete_sessions("-home-dev-app", ["a", "missing", "b"])

        self.assertEqual(sorted(result.deleted), ["a", "b"])
        self.assertEqual(result.failed, ["missing"])
        self.assertEqual(await self.repo.list_sessions("-home-dev-app"), [])

    async def test_batch_delete_propagates_unexpected_errors(self) -> None:
        self._write_session("a", [{"role": "user", "content": "a"}])
        with patch("pathlib.Path.unlink", side_effect=PermissionError("read-only")):
            with self.assertRaises(PermissionError):
                await self.repo.delete_sessions("-home-dev-app", ["a"])

    async def test_rejects_path_traversal_identifiers(self) -> None:
        with self.assertRaises(ValueError):
            await self.repo.get_session("-home-dev-app", "../escape")
        with self.assertRaises(ValueError):
            await self.repo.list_sessions("..")
        with self.assertRaises(ValueError):
            await self.repo.delete_session("a/b", "s1")


class ValidateSegmentTests(unittest.TestCase):
    def test_accepts_plain_names(self) -> None:
        self.assertEqual(validate_segment("-home-dev-app", "project hash"), "-home-dev-app")
        self.assertEqual(validate_segment("3f2a-uuid.v2", "session id"), "3f2a-uuid.v2")

    def test_rejects_separators_and_dot_names(self) -> None:
        for value in ("", ".", "..", "a/b", "a\\b", "a\x00b"):
            with self.subTest(value=value):
                with self.assertRaises(ValueError):
                    validate_segment(value, "session id")


if __name__ == "__main__":
    unittest.main()
