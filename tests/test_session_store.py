import json
import tempfile
import unittest
from pathlib import Path


class TestSessionStore(unittest.TestCase):
    def test_create_agent_record_layout(self) -> None:
        from agentmux.kernel.session import Session, SessionStore

        with tempfile.TemporaryDirectory() as td:
            session = Session(root=Path(td), session_id="s1")
            store = SessionStore(session)
            agent = store.create_agent_record(name="Alice", role="worker", pane_ref="$0:@0:%5", metadata={"cwd": "/tmp"})

            adir = Path(td) / ".agents" / "sessions" / "s1" / "agents" / agent.id
            self.assertTrue((adir / "artifacts").is_dir())
            self.assertTrue((adir / "inbox.jsonl").exists())
            self.assertEqual((adir / "inbox.jsonl").read_text(encoding="utf-8"), "")

            meta = json.loads((adir / "meta.json").read_text(encoding="utf-8"))
            self.assertEqual(meta["id"], agent.id)
            self.assertEqual(meta["name"], "Alice")
            self.assertEqual(meta["role"], "worker")
            self.assertEqual(meta["paneRef"], "$0:@0:%5")
            self.assertEqual(meta["status"], "created")
            self.assertIsInstance(meta["createdAt"], int)
            self.assertEqual(meta["metadata"], {"cwd": "/tmp"})

            loaded = store.load_agent(agent.id)
            self.assertEqual(loaded, agent)

    def test_list_agents_skips_broken_entries(self) -> None:
        from agentmux.kernel.session import Session, SessionStore

        with tempfile.TemporaryDirectory() as td:
            session = Session(root=Path(td), session_id="s1")
            store = SessionStore(session)
            self.assertEqual(store.list_agents(), [])

            good = store.create_agent_record(name="A", role="worker", pane_ref="%1")
            (session.agents_dir / "no-meta").mkdir()
            corrupt = session.agents_dir / "corrupt"
            corrupt.mkdir()
            (corrupt / "meta.json").write_text("{not json", encoding="utf-8")
            (session.agents_dir / "stray.txt").write_text("x", encoding="utf-8")

            with self.assertLogs("agentmux.session", level="WARNING"):
                agents = store.list_agents()
            self.assertEqual([a.id for a in agents], [good.id])

    def test_list_agents_skips_meta_naming_another_agent(self) -> None:
        from agentmux.kernel.session import Session, SessionStore

        with tempfile.TemporaryDirectory() as td:
            session = Session(root=Path(td), session_id="s1")
            store = SessionStore(session)
            good = store.create_agent_record(name="A", role="worker", pane_ref="%1")
            moved = store.create_agent_record(name="B", role="worker", pane_ref="%2")
            doc = json.loads(session.meta_path(moved.id).read_text(encoding="utf-8"))
            doc["id"] = good.id
            session.meta_path(moved.id).write_text(json.dumps(doc), encoding="utf-8")

            with self.assertLogs("agentmux.session", level="WARNING") as logs:
                agents = store.list_agents()
            self.assertEqual([a.id for a in agents], [good.id])
            self.assertTrue(any(moved.id in line for line in logs.output))

    def test_create_recreates_directory_removed_after_inbox(self) -> None:
        import shutil
        from unittest.mock import patch

        from agentmux.kernel.session import Session, SessionStore

        with tempfile.TemporaryDirectory() as td:
            session = Session(root=Path(td), session_id="s1")
            store = SessionStore(session)
            real_touch = Path.touch
            calls = []

            def _touch_then_remove(path, *args, **kwargs):
                calls.append(path)
                real_touch(path, *args, **kwargs)
                if len(calls) == 1:
                    shutil.rmtree(path.parent)

            with patch.object(Path, "touch", _touch_then_remove):
                agent = store.create_agent_record(name="A", role="worker", pane_ref="%1")

            self.assertTrue(session.inbox_path(agent.id).exists())
            self.assertTrue(session.meta_path(agent.id).exists())
            self.assertEqual([a.id for a in store.list_agents()], [agent.id])

    def test_create_recreates_directory_removed_before_inbox(self) -> None:
        import shutil
        from unittest.mock import patch

        from agentmux.kernel.session import Session, SessionStore

        with tempfile.TemporaryDirectory() as td:
            session = Session(root=Path(td), session_id="s1")
            store = SessionStore(session)
            real_touch = Path.touch
            calls = []

            def _touch(path, *args, **kwargs):
                calls.append(path)
                if len(calls) == 1:
                    shutil.rmtree(path.parent)
                return real_touch(path, *args, **kwargs)

            with patch.object(Path, "touch", _touch):
                agent = store.create_agent_record(name="A", role="worker", pane_ref="%1")

            self.assertEqual(len(calls), 2)
            self.assertTrue(session.inbox_path(agent.id).exists())
            self.assertTrue(session.meta_path(agent.id).exists())
            self.assertEqual(store.load_agent(agent.id), agent)

    def test_legacy_meta_field_names_are_accepted(self) -> None:
        from agentmux.kernel.session import Session, SessionStore

        with tempfile.TemporaryDirectory() as td:
            session = Session(root=Path(td), session_id="s1")
            adir = session.agent_dir("legacy-1")
            adir.mkdir(parents=True)
            (adir / "meta.json").write_text(
                json.dumps({"id": "legacy-1", "name": "L", "role": "worker", "tmuxPaneId": "%3", "createdAt": 5}),
                encoding="utf-8",
            )
            agent = SessionStore(session).load_agent("legacy-1")
            self.assertEqual(agent.pane_ref, "%3")
            self.assertEqual(agent.created_at, 5)

    def test_load_agent_errors(self) -> None:
        from agentmux.kernel.errors import MalformedRecordError, NotFoundError
        from agentmux.kernel.session import Session, SessionStore

        with tempfile.TemporaryDirectory() as td:
            session = Session(root=Path(td), session_id="s1")
            store = SessionStore(session)
            with self.assertRaises(NotFoundError):
                store.load_agent("missing")
            session.agent_dir("empty").mkdir(parents=True)
            with self.assertRaises(MalformedRecordError):
                store.load_agent("empty")

    def test_delete_removes_subtree_even_if_teardown_fails(self) -> None:
        from agentmux.kernel.session import Session, SessionStore

        with tempfile.TemporaryDirectory() as td:
            session = Session(root=Path(td), session_id="s1")
            store = SessionStore(session)
            agent = store.create_agent_record(name="A", role="worker", pane_ref="$1:@1:%7")
            (session.agent_dir(agent.id) / "artifacts" / "out.txt").write_text("x", encoding="utf-8")
            seen = []

            def _teardown(pane_ref: str) -> None:
                seen.append(pane_ref)
                raise RuntimeError("pane already gone")

            with self.assertLogs("agentmux.session", level="WARNING"):
                existed = store.delete_agent(agent.id, teardown=_teardown)

            self.assertTrue(existed)
            self.assertEqual(seen, ["$1:@1:%7"])
            self.assertFalse(session.agent_dir(agent.id).exists())
            self.assertEqual(store.list_agents(), [])

    def test_delete_with_corrupt_meta_still_removes(self) -> None:
        from agentmux.kernel.session import Session, SessionStore

        with tempfile.TemporaryDirectory() as td:
            session = Session(root=Path(td), session_id="s1")
            store = SessionStore(session)
            agent = store.create_agent_record(name="A", role="worker", pane_ref="%1")
            session.meta_path(agent.id).write_text("garbage", encoding="utf-8")
            calls = []

            existed = store.delete_agent(agent.id, teardown=calls.append)
            self.assertTrue(existed)
            self.assertEqual(calls, [])
            self.assertFalse(session.agent_dir(agent.id).exists())

            self.assertFalse(store.delete_agent(agent.id))

    def test_sessions_are_isolated(self) -> None:
        from agentmux.kernel.session import Session, SessionStore

        with tempfile.TemporaryDirectory() as td:
            one = SessionStore(Session(root=Path(td), session_id="one"))
            two = SessionStore(Session(root=Path(td), session_id="two"))
            one.create_agent_record(name="A", role="worker", pane_ref="%1")
            self.assertEqual(len(one.list_agents()), 1)
            self.assertEqual(two.list_agents(), [])

    def test_agent_paths_reject_traversal(self) -> None:
        from agentmux.kernel.errors import ValidationError
        from agentmux.kernel.session import Session

        session = Session(root=Path("/tmp/x"), session_id="s1")
        for bad in ("..", "../etc", "a/b", "", "master"):
            with self.subTest(agent_id=bad):
                with self.assertRaises(ValidationError):
                    session.agent_dir(bad)


class TestResolveSessionId(unittest.TestCase):
    def test_inherited_env_wins(self) -> None:
        from agentmux.kernel.session import resolve_session_id

        self.assertEqual(resolve_session_id("explicit", {"AGENT_SESSION_ID": "inherited"}), "inherited")

    def test_explicit_then_fresh(self) -> None:
        from agentmux.kernel.session import resolve_session_id

        self.assertEqual(resolve_session_id("explicit", {}), "explicit")
        a = resolve_session_id(None, {})
        b = resolve_session_id(None, {})
        self.assertNotEqual(a, b)
        self.assertEqual(len(a), 36)

    def test_invalid_inherited_id_is_rejected(self) -> None:
        from agentmux.kernel.errors import ValidationError
        from agentmux.kernel.session import resolve_session_id

        with self.assertRaises(ValidationError):
            resolve_session_id(None, {"AGENT_SESSION_ID": "../../etc"})


if __name__ == "__main__":
    unittest.main()
