# tests/test_commands.py

from __future__ import annotations

import re
import time
from pathlib import Path

from ember_followup.cli.background import start_jobs_in_background
from ember_followup.cli.commands import CommandRegistry, registry
from ember_followup.core.models import TaskStatus

from .fakes import FakeNotifier


def _id_from(reply: str, kind: str) -> str:
    m = re.search(rf"{kind} (\w+)", reply)
    assert m, reply
    return m.group(1)


def _signup(state) -> None:
    reply = registry.handle(
        state, '/signup sarah@gracecity.test director123 "Grace City" "Sarah Summers"'
    )
    assert reply == "Church Grace City created. Signed in as Sarah Summers (director)."


def test_command_registry_routes_2_and_3_params(state) -> None:
    reg = CommandRegistry()
    called = {"h2": 0, "h3": 0}
    emitted: list[str] = []

    def h2(state, args):
        called["h2"] += 1
        return "h2:" + ",".join(args)

    def h3(state, args, emit):
        called["h3"] += 1
        if emit is not None:
            emit("note")
        return "h3"

    reg.register("a", h2, "a")
    reg.register("b", h3, "b", aliases=["bee"])

    assert reg.handle(state, '/a x "y z"') == "h2:x,y z"
    assert reg.handle(state, "/bee", emit=emitted.append) == "h3"
    assert called == {"h2": 1, "h3": 1}
    assert emitted == ["note"]
    assert "/a - a" in reg.build_help()


def test_command_registry_unknown_and_non_command(state) -> None:
    reg = CommandRegistry()
    assert reg.handle(state, "hello") is None
    assert "Unknown command" in (reg.handle(state, "/nope") or "")
    assert "Empty command" in (reg.handle(state, "/") or "")
    assert "Unbalanced quotes" in (reg.handle(state, '/a "open') or "")


def test_commands_require_a_session(state) -> None:
    assert registry.handle(state, "/contacts").startswith("Not signed in")
    assert registry.handle(state, "/tasks").startswith("Not signed in")


def test_bad_login_reports_error(state) -> None:
    _signup(state)
    reply = registry.handle(state, "/login sarah@gracecity.test wrong-password")
    assert reply.startswith("Error: ")
    assert state.session is None


def test_login_logout(state) -> None:
    _signup(state)
    assert registry.handle(state, "/logout") == "Signed out."
    assert registry.handle(state, "/logout") == "Not signed in."
    assert registry.handle(state, "/login sarah@gracecity.test director123").startswith("Welcome, Sarah Summers")
    assert state.church_id is not None


def test_user_detail_by_id_or_prefix(state) -> None:
    _signup(state)
    reply = registry.handle(state, '/users add connector dana@gracecity.test pw12345 "Dana Brooks"')
    assert reply.endswith("Dana Brooks <dana@gracecity.test> added as connector.")
    [dana] = [u for u in state.store.list_users(state.church_id) if u.name == "Dana Brooks"]

    detail = registry.handle(state, f"/users {dana.id}")
    assert detail.startswith("Dana Brooks <dana@gracecity.test>")
    assert "Role: connector" in detail
    assert "Open tasks: 0" in detail
    assert registry.handle(state, f"/users {dana.id[:6]}") == detail

    # A director of another church is not visible by id.
    other = state.store.signup(church_name="Hope Chapel", name="Nia", email="nia@hope.test", password="pw12345")
    assert registry.handle(state, f"/users {other.user.id}").startswith("Error: ")


def test_outreach_flow(state, notifier: FakeNotifier) -> None:
    _signup(state)

    reply = registry.handle(state, '/contacts add "Jasmine Patel" jasmine@example.test')
    contact_ref = _id_from(reply, "Contact")
    assert "Jasmine Patel" in registry.handle(state, "/contacts")
    assert registry.handle(state, f"/temp {contact_ref} warm") == "Jasmine Patel is now warm."
    assert registry.handle(state, "/contacts hot") == "No contacts."

    reply = registry.handle(state, f"/tasks add {contact_ref} call 2000-01-01 check in")
    task_ref = _id_from(reply, "Task")

    emitted: list[str] = []
    reply = registry.handle(state, "/sweep", emit=emitted.append)
    assert reply.startswith("1 task(s) marked past due")
    assert emitted == ["[SWEEP] Checking for past-due tasks..."]
    assert notifier.titles == ["Past Due Alert"]
    assert "past-due" in registry.handle(state, "/tasks past-due")

    reply = registry.handle(state, f"/progress {task_ref}")
    assert reply.startswith("Error: ")

    assert registry.handle(state, f"/done {task_ref} Prayed together") == f"Task {task_ref} is now completed."
    [task] = state.store.list_tasks(state.church_id)
    assert task.status == TaskStatus.COMPLETED
    assert task.outcome_note == "Prayed together"
    assert notifier.titles[-1] == "Assignment completed"

    history = registry.handle(state, f"/activity {contact_ref}")
    assert "assignment-result" in history
    assert "Prayed together" in history


def test_reschedule_and_note(state) -> None:
    _signup(state)
    contact_ref = _id_from(registry.handle(state, '/contacts add "Marcus Reid"'), "Contact")
    task_ref = _id_from(registry.handle(state, f"/tasks add {contact_ref} visit 2999-01-01"), "Task")

    assert registry.handle(state, f"/reschedule {task_ref} someday").startswith("Error: ")
    assert registry.handle(state, f"/reschedule {task_ref} 2999-02-01T18:30 traveling") == (
        f"Task {task_ref} is now rescheduled."
    )
    assert registry.handle(state, f"/note {contact_ref} Stopped by --visit") == "Logged visit for Marcus Reid."


def test_settings_commands(state) -> None:
    _signup(state)
    assert registry.handle(state, "/settings digest fri 07:30") == "Digest schedule updated."
    assert registry.handle(state, "/settings digest 9 07:30").startswith("Error: ")
    assert registry.handle(state, "/settings email on") == "Email alerts on."
    assert registry.handle(state, "/settings plan plan-growth") == "Plan set to plan-growth."
    assert registry.handle(state, "/settings smtp smtp.grace.test 465 mailer s3cret --secure") == (
        "SMTP set to smtp.grace.test:465."
    )

    shown = registry.handle(state, "/settings")
    assert "Digest: fri 07:30" in shown
    assert "Email alerts: on" in shown
    assert "Plan: plan-growth" in shown
    assert "s3cret" not in shown


def test_digest_command_writes_report(state) -> None:
    _signup(state)
    registry.handle(state, '/contacts add "Jasmine Patel"')

    reply = registry.handle(state, "/digest weekly")
    assert reply.startswith("Weekly digest")
    assert "Activities: 1" in reply
    assert "New contacts: 1" in reply
    assert list(state.store.reports_dir.glob("weekly-digest-*.json"))

    assert registry.handle(state, "/digest monthly").startswith("Monthly digest")
    assert registry.handle(state, "/digest yearly").startswith("Usage")


def test_export_and_import(state, tmp_path: Path) -> None:
    _signup(state)
    registry.handle(state, '/contacts add "Jasmine Patel"')

    target = tmp_path / "bundle.json"
    assert registry.handle(state, f"/export {target}") == f"Exported 1 contacts and 0 tasks to {target}"
    assert target.is_file()

    # Same church, same ids: nothing new to admit.
    assert registry.handle(state, f"/import {target}").startswith("Imported 0 contacts and 0 tasks")
    assert registry.handle(state, f"/import {tmp_path / 'missing.json'}").startswith("No such file")


def test_status_and_background_jobs(state) -> None:
    runner = start_jobs_in_background(state)
    assert runner is not None
    state.runner = runner
    try:
        assert "Background jobs: running" in registry.handle(state, "/status")
        _signup(state)
        contact_ref = _id_from(registry.handle(state, '/contacts add "Elena"'), "Contact")
        registry.handle(state, f"/tasks add {contact_ref} text 2000-01-01")

        # The sweep job ticks every 50ms in tests.
        deadline = time.monotonic() + 5
        while time.monotonic() < deadline:
            if state.store.list_tasks(state.church_id, status=TaskStatus.PAST_DUE):
                break
            time.sleep(0.05)
        assert state.store.list_tasks(state.church_id, status=TaskStatus.PAST_DUE)

        assert registry.handle(state, "/sweep") == "No newly past-due tasks."
    finally:
        runner.stop()
        runner.join(timeout=5)
    assert not runner.thread.is_alive()
