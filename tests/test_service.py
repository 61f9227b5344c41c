import tempfile
import unittest
from pathlib import Path


class _Provider:
    def __init__(self) -> None:
        self.sent = []
        self.killed = []
        self.n = 0

    def get_current_context(self):
        from agentmux.runners.base import PaneRef

        return PaneRef("$1", "@1", "%1")

    def get_shared_context(self, name):
        return None

    def create_shared_context(self, name):
        raise AssertionError("not expected")

    def split_slot(self, context, cwd=None):
        from agentmux.runners.base import PaneRef

        self.n += 1
        return PaneRef("$1", "@1", f"%{100 + self.n}")

    def send_command(self, slot, text):
        self.sent.append((slot.pane_id, text))

    def kill_slot(self, slot):
        self.killed.append(slot.pane_id)

    def capture_output(self, slot, lines=100):
        return f"{slot.pane_id}:{lines}"


def _service(td: str, provider=None):
    from agentmux.service import AgentService

    return AgentService.from_env(root=td, env={"AGENT_SESSION_ID": "sess-x"}, provider=provider or _Provider())


class TestAgentService(unittest.TestCase):
    def test_session_info_uses_inherited_session(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            svc = _service(td)
            resp = svc.call("session_info")
            self.assertTrue(resp.ok, resp.error)
            self.assertEqual(resp.result["session_id"], "sess-x")
            self.assertEqual(Path(resp.result["root"]), Path(td).resolve())

    def test_agent_roundtrip(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            provider = _Provider()
            svc = _service(td, provider)

            created = svc.call("agent_create", name="Coder", role="worker", env={"K": "v"})
            self.assertTrue(created.ok, created.error)
            agent = created.result["agent"]
            self.assertEqual(agent["paneRef"], "$1:@1:%101")
            self.assertEqual(len(provider.sent), 1)

            listed = svc.call("agent_list")
            self.assertEqual([a["id"] for a in listed.result["agents"]], [agent["id"]])

            out = svc.call("agent_output", agent_id=agent["id"], lines="25")
            self.assertEqual(out.result["output"], "%101:25")

            deleted = svc.call("agent_delete", agent_id=agent["id"])
            self.assertTrue(deleted.ok, deleted.error)
            self.assertEqual(provider.killed, ["%101"])
            self.assertEqual(svc.call("agent_list").result["agents"], [])

    def test_messages_and_cursors(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            svc = _service(td)
            aid = svc.call("agent_create", name="A", role="worker").result["agent"]["id"]

            sent = svc.call("send_message", agent_id="master", message={"type": "task", "taskId": "t"}, target=aid)
            self.assertTrue(sent.ok, sent.error)
            self.assertEqual(sent.result["delivered"], [aid])

            waited = svc.call("wait_for_command", agent_id=aid, cursor=0, timeout_ms=1000)
            self.assertEqual(waited.result["status"], "command")
            self.assertEqual(waited.result["next_cursor"], 1)

            svc.call("send_message", agent_id=aid, message={"type": "task_completed", "taskId": "t"}, target="master")
            inbox = svc.call("read_inbox", agent_id="master", cursor=0)
            self.assertEqual(inbox.result["next_cursor"], 1)
            self.assertEqual(inbox.result["records"][0]["from"], aid)

            task = svc.call("enqueue_task", agent_id=aid, payload={"instruction": "x"})
            self.assertTrue(task.result["task_id"])
            event = svc.call("emit_event", agent_id=aid, type="task_started", task_id=task.result["task_id"])
            self.assertEqual(event.result["event"]["taskId"], task.result["task_id"])

    def test_partial_fanout_is_ok_with_failures(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            svc = _service(td)
            aid = svc.call("agent_create", name="A", role="worker").result["agent"]["id"]
            ghost = "11111111-1111-4111-8111-111111111111"
            resp = svc.call("send_message", agent_id="master", message={"type": "note"}, target=[aid, ghost])
            self.assertTrue(resp.ok)
            self.assertEqual(resp.result["delivered"], [aid])
            self.assertIn(ghost, resp.result["failed"])

    def test_errors_are_labeled(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            svc = _service(td)

            bad_env = svc.call("agent_create", name="A", role="worker", env={"9X": "v"})
            self.assertFalse(bad_env.ok)
            self.assertEqual(bad_env.error.code, "validation_error")

            missing_field = svc.call("agent_create", name="A")
            self.assertEqual(missing_field.error.code, "validation_error")
            self.assertTrue(missing_field.error.details.get("errors"))

            unknown = svc.call("agent_delete", agent_id="22222222-2222-4222-8222-222222222222")
            self.assertEqual(unknown.error.code, "not_found")

            bad_cursor = svc.call("read_inbox", agent_id="master", cursor=-3)
            self.assertEqual(bad_cursor.error.code, "validation_error")

            bad_msg = svc.call("send_message", agent_id="master", message="hi", target="all")
            self.assertEqual(bad_msg.error.code, "validation_error")

            self.assertEqual(svc.call("no_such_op").error.code, "unknown_op")

    def test_unexpected_exception_becomes_internal_error(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            provider = _Provider()

            def _boom(context, cwd=None):
                raise RuntimeError("kaboom")

            provider.split_slot = _boom
            svc = _service(td, provider)
            with self.assertLogs("agentmux.service", level="ERROR"):
                resp = svc.call("agent_create", name="A", role="worker")
            self.assertFalse(resp.ok)
            self.assertEqual(resp.error.code, "internal_error")


if __name__ == "__main__":
    unittest.main()
