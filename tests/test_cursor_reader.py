import json
import tempfile
import unittest
from pathlib import Path


def _write(path: Path, text: str) -> None:
    path.write_text(text, encoding="utf-8")


class TestCursorReader(unittest.TestCase):
    def test_malformed_line_is_skipped_but_counted(self) -> None:
        from agentmux.kernel.cursor import read_log

        with tempfile.TemporaryDirectory() as td:
            log = Path(td) / "inbox.jsonl"
            _write(log, "BAD\n" + json.dumps({"type": "task", "taskId": "x"}) + "\n")

            res = read_log(log, 0)
            self.assertEqual(res.records, [{"type": "task", "taskId": "x"}])
            self.assertEqual(res.next_cursor, 2)

    def test_limit_then_resume(self) -> None:
        from agentmux.kernel.cursor import read_log

        with tempfile.TemporaryDirectory() as td:
            log = Path(td) / "inbox.jsonl"
            _write(log, "".join(json.dumps({"n": i}) + "\n" for i in range(3)))

            first = read_log(log, 0, limit=2)
            self.assertEqual([r["n"] for r in first.records], [0, 1])
            self.assertEqual(first.next_cursor, 2)

            rest = read_log(log, first.next_cursor)
            self.assertEqual([r["n"] for r in rest.records], [2])
            self.assertEqual(rest.next_cursor, 3)

            empty = read_log(log, rest.next_cursor)
            self.assertEqual(empty.records, [])
            self.assertEqual(empty.next_cursor, 3)

    def test_replay_visits_every_record_once(self) -> None:
        from agentmux.kernel.cursor import read_log

        with tempfile.TemporaryDirectory() as td:
            log = Path(td) / "inbox.jsonl"
            lines = [json.dumps({"n": 0}), "{oops", json.dumps({"n": 1}), "[1, 2]", "", json.dumps({"n": 2})]
            _write(log, "\n".join(lines) + "\n")

            seen = []
            cursor = 0
            for _ in range(10):
                res = read_log(log, cursor, limit=1)
                seen.extend(r["n"] for r in res.records)
                if res.next_cursor == cursor:
                    break
                cursor = res.next_cursor

            self.assertEqual(seen, [0, 1, 2])
            # Blank lines do not count; the non-object array line does.
            self.assertEqual(cursor, 5)

    def test_missing_log_is_no_data(self) -> None:
        from agentmux.kernel.cursor import read_log

        with tempfile.TemporaryDirectory() as td:
            res = read_log(Path(td) / "nope.jsonl", 7)
            self.assertEqual(res.records, [])
            self.assertEqual(res.next_cursor, 7)

    def test_cursor_past_end_is_unchanged(self) -> None:
        from agentmux.kernel.cursor import read_log

        with tempfile.TemporaryDirectory() as td:
            log = Path(td) / "inbox.jsonl"
            _write(log, json.dumps({"a": 1}) + "\n")
            res = read_log(log, 5)
            self.assertEqual(res.records, [])
            self.assertEqual(res.next_cursor, 5)

    def test_incomplete_trailing_line_is_not_consumed(self) -> None:
        from agentmux.kernel.cursor import read_log

        with tempfile.TemporaryDirectory() as td:
            log = Path(td) / "inbox.jsonl"
            _write(log, json.dumps({"a": 1}) + '\n{"b": ')

            res = read_log(log, 0)
            self.assertEqual(res.records, [{"a": 1}])
            self.assertEqual(res.next_cursor, 1)

            # The writer finishes the line; the reader picks it up from the same cursor.
            with log.open("a", encoding="utf-8") as f:
                f.write("2}\n")
            res = read_log(log, res.next_cursor)
            self.assertEqual(res.records, [{"b": 2}])
            self.assertEqual(res.next_cursor, 2)

    def test_trailing_line_without_newline_that_parses_is_read(self) -> None:
        from agentmux.kernel.cursor import read_log

        with tempfile.TemporaryDirectory() as td:
            log = Path(td) / "inbox.jsonl"
            _write(log, json.dumps({"a": 1}) + "\n" + json.dumps({"b": 2}))
            res = read_log(log, 0)
            self.assertEqual(len(res.records), 2)
            self.assertEqual(res.next_cursor, 2)

    def test_invalid_cursor_and_limit_are_rejected(self) -> None:
        from agentmux.kernel.cursor import read_log
        from agentmux.kernel.errors import ValidationError

        with tempfile.TemporaryDirectory() as td:
            log = Path(td) / "inbox.jsonl"
            with self.assertRaises(ValidationError):
                read_log(log, -1)
            with self.assertRaises(ValidationError):
                read_log(log, 0, limit=-2)
            with self.assertRaises(ValidationError):
                read_log(log, True)  # type: ignore[arg-type]


if __name__ == "__main__":
    unittest.main()
