import io
import json
import os
import tempfile
import unittest
from contextlib import redirect_stdout
from unittest.mock import patch


def _run(argv):
    from agentmux.cli import main

    buf = io.StringIO()
    with redirect_stdout(buf):
        code = main(argv)
    return code, buf.getvalue()


class TestCli(unittest.TestCase):
    def setUp(self) -> None:
        p = patch.dict("os.environ", {}, clear=False)
        p.start()
        self.addCleanup(p.stop)
        os.environ.pop("AGENT_SESSION_ID", None)
        os.environ.pop("AGENTMUX_ROOT", None)

    def test_session_new_then_send_and_read(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            code, out = _run(["--root", td, "session", "new"])
            self.assertEqual(code, 0)
            sid = json.loads(out)["result"]["session_id"]

            code, out = _run(["--root", td, "--session", sid, "send", '{"type": "note"}', "--from", "master", "--to", "master"])
            self.assertEqual(code, 0, out)
            self.assertEqual(json.loads(out)["result"]["delivered"], ["master"])

            code, out = _run(["--root", td, "--session", sid, "inbox", "master"])
            self.assertEqual(code, 0)
            doc = json.loads(out)
            self.assertEqual(doc["result"]["next_cursor"], 1)
            self.assertEqual(doc["result"]["records"][0]["type"], "note")

    def test_missing_session_is_an_error(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            code, out = _run(["--root", td, "agent", "list"])
            self.assertEqual(code, 2)
            self.assertEqual(json.loads(out)["error"]["code"], "missing_session")

    def test_error_result_exits_2(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            code, out = _run(["--root", td, "--session", "s1", "task", "55555555-5555-4555-8555-555555555555", "{}"])
            self.assertEqual(code, 2)
            self.assertEqual(json.loads(out)["error"]["code"], "not_found")

    def test_settings_init_and_show(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            code, _ = _run(["--root", td, "settings", "init"])
            self.assertEqual(code, 0)
            code, out = _run(["--root", td, "settings", "init"])
            self.assertEqual(code, 2)
            self.assertEqual(json.loads(out)["error"]["code"], "already_exists")

            code, out = _run(["--root", td, "settings", "show"])
            self.assertEqual(code, 0)
            self.assertEqual(json.loads(out)["result"]["settings"]["poll_interval_ms"], 500)


if __name__ == "__main__":
    unittest.main()
