# src/ember_followup/cli/commands.py

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
import shlex
from collections.abc import Callable, Coroutine, Sequence
from pathlib import Path
from typing import Any, TypeVar, cast

from ..core.clock import parse_iso, to_iso, try_parse_iso
from ..core.errors import EmberError, ValidationError
from ..core.models import (
    ActivityInput,
    ActivityType,
    ContactInput,
    ContactStatusUpdate,
    ContactTemperature,
    DigestPreference,
    SessionInfo,
    TaskCategory,
    TaskInput,
    TaskStatus,
    TaskStatusUpdate,
)
from ..core.state import AppState
from ..sync.bundle import default_export_path, read_bundle, write_bundle

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)

_T = TypeVar("_T")

_DAYS = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /tasks, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(self, state: AppState, line: str, emit: CommandEmitter | None = None) -> str | None:
        """
        Handle a string like '/command args "quoted arg"'.
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        try:
            parts = shlex.split(line[1:])
        except ValueError:
            return "Unbalanced quotes in command."
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except Exception:
            nparams = 3

        try:
            if nparams >= 3:
                h3 = cast(CommandHandler3, handler)
                return h3(state, args, emit)
            h2 = cast(CommandHandler2, handler)
            return h2(state, args)
        except EmberError as e:
            logger.debug("/%s rejected: %s", name, e)
            return f"Error: {e}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- helpers ----


def _short(record_id: str) -> str:
    return record_id[:8]


def _pick(items: Sequence[_T], ref: str, what: str) -> _T:
    """Find a record by full id or unique id prefix."""
    ref = ref.strip().lower()
    exact = [i for i in items if getattr(i, "id").lower() == ref]
    if exact:
        return exact[0]
    matches = [i for i in items if getattr(i, "id").lower().startswith(ref)]
    if len(matches) == 1:
        return matches[0]
    if not matches:
        raise ValidationError(f"no {what} matching {ref!r}")
    raise ValidationError(f"{what} reference {ref!r} is ambiguous ({len(matches)} matches)")


def _when(raw: str) -> str:
    try:
        return to_iso(parse_iso(raw))
    except ValueError as e:
        raise ValidationError(f"not a date: {raw!r} (use YYYY-MM-DD or YYYY-MM-DDTHH:MM)") from e


def _local(raw: str | None) -> str:
    ts = try_parse_iso(raw)
    return ts.astimezone().strftime("%Y-%m-%d %H:%M") if ts else "-"


def _run(state: AppState, coro: Coroutine[Any, Any, _T]) -> _T:
    """Run a coroutine to completion: on the job loop when it is running, else inline."""
    if state.runner is not None:
        return state.runner.submit(coro).result(timeout=120)
    return asyncio.run(coro)


def _fire_and_forget(state: AppState, coro: Coroutine[Any, Any, Any]) -> None:
    if state.runner is not None:
        state.runner.submit(coro)
        return
    asyncio.run(coro)


def _on_off(raw: str) -> bool:
    value = raw.lower()
    if value in ("on", "1", "true", "yes"):
        return True
    if value in ("off", "0", "false", "no"):
        return False
    raise ValidationError(f"expected on/off, got {raw!r}")


def _signed_in(state: AppState) -> SessionInfo | None:
    session = state.session
    if session is None:
        return None
    # Revoked elsewhere (or store restarted)?
    refreshed = state.store.get_session(session.token)
    state.session = refreshed
    return refreshed


_NEED_LOGIN = "Not signed in. Use /login <email> <password> or /signup."


# ---- general ----


def cmd_help(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    stats = state.store.stats()
    session = state.session
    who = f"{session.user.name} ({session.user.role.value}) @ {session.church.name}" if session else "-"
    jobs = "running" if state.runner is not None else "stopped"
    return (
        "Status:\n"
        f"  Data file: {state.store.path}\n"
        f"  Signed in: {who}\n"
        f"  Background jobs: {jobs}\n"
        f"  Records: {stats['churches']} churches, {stats['users']} users, "
        f"{stats['contacts']} contacts, {stats['tasks']} tasks, {stats['activities']} activities"
    )


# ---- identity ----


def cmd_login(state: AppState, args: list[str]) -> str:
    if len(args) < 2:
        return "Usage: /login <email> <password>"
    if state.session is not None:
        state.store.logout(state.session.token)
    state.session = None
    session = state.store.authenticate(args[0], args[1])
    state.session = session
    return f"Welcome, {session.user.name}. Church: {session.church.name}."


def cmd_logout(state: AppState, args: list[str]) -> str:
    if state.session is None:
        return "Not signed in."
    state.store.logout(state.session.token)
    state.session = None
    return "Signed out."


def cmd_signup(state: AppState, args: list[str]) -> str:
    """
    /signup <email> <password> "<church name>" "<your name>"
    """
    if len(args) < 4:
        return 'Usage: /signup <email> <password> "<church name>" "<your name>"'
    session = state.store.signup(church_name=args[2], name=args[3], email=args[0], password=args[1])
    state.session = session
    return f"Church {session.church.name} created. Signed in as {session.user.name} (director)."


def cmd_users(state: AppState, args: list[str]) -> str:
    """
    /users                                   -> list team members
    /users <user>                            -> one member, by id or id prefix
    /users add <role> <email> <password> "<name>"
    """
    session = _signed_in(state)
    if session is None:
        return _NEED_LOGIN

    if args and args[0].lower() == "add":
        if len(args) < 5:
            return 'Usage: /users add <role> <email> <password> "<name>"'
        user = state.store.create_user(
            session.church.id, role=args[1], email=args[2], password=args[3], name=args[4]
        )
        return f"User {_short(user.id)} {user.name} <{user.email}> added as {user.role.value}."

    if args:
        user = state.store.find_user(args[0])
        if user is None or user.church_id != session.church.id:
            user = _pick(state.store.list_users(session.church.id), args[0], "user")
        open_tasks = [
            t
            for t in state.store.list_tasks(session.church.id)
            if t.assignee_id == user.id and t.status != TaskStatus.COMPLETED
        ]
        return (
            f"{user.name} <{user.email}>\n"
            f"  Id: {user.id}\n"
            f"  Role: {user.role.value}\n"
            f"  Phone: {user.phone or '-'}\n"
            f"  Active: {'yes' if user.active else 'no'}\n"
            f"  Open tasks: {len(open_tasks)}"
        )

    users = state.store.list_users(session.church.id)
    lines = [f"Team ({len(users)}):"]
    for u in users:
        lines.append(f"  {_short(u.id)}  {u.name:<24} {u.role.value:<13} {u.email}")
    return "\n".join(lines)


# ---- contacts ----


def cmd_contacts(state: AppState, args: list[str]) -> str:
    """
    /contacts [temperature]                          -> list
    /contacts add "<name>" [email] [phone]            -> create
    """
    session = _signed_in(state)
    if session is None:
        return _NEED_LOGIN
    church_id = session.church.id

    if args and args[0].lower() == "add":
        if len(args) < 2:
            return 'Usage: /contacts add "<name>" [email] [phone]'
        contact = state.store.create_contact(
            ContactInput(
                church_id=church_id,
                display_name=args[1],
                email=args[2] if len(args) > 2 else None,
                phone=args[3] if len(args) > 3 else None,
                owner_id=session.user.id,
            )
        )
        return f"Contact {_short(contact.id)} {contact.display_name} created."

    temperature = None
    if args:
        try:
            temperature = ContactTemperature(args[0].lower())
        except ValueError:
            return f"Unknown temperature {args[0]!r}. Use one of: {', '.join(t.value for t in ContactTemperature)}"

    contacts = state.store.list_contacts(church_id, temperature=temperature)
    if not contacts:
        return "No contacts."
    lines = [f"Contacts ({len(contacts)}):"]
    for c in contacts:
        lines.append(
            f"  {_short(c.id)}  {c.display_name:<24} {c.temperature.value:<8} "
            f"last activity {_local(c.last_activity_at)}"
        )
    return "\n".join(lines)


def cmd_temp(state: AppState, args: list[str]) -> str:
    """/temp <contact> <temperature> [note...]"""
    session = _signed_in(state)
    if session is None:
        return _NEED_LOGIN
    if len(args) < 2:
        return "Usage: /temp <contact> <new|cool|warm|hot|convert> [note]"

    contact = _pick(state.store.list_contacts(session.church.id), args[0], "contact")
    updated = state.store.update_contact_status(
        ContactStatusUpdate(
            contact_id=contact.id,
            church_id=session.church.id,
            temperature=cast(ContactTemperature, args[1].lower()),
            user_id=session.user.id,
            note=" ".join(args[2:]) or None,
        )
    )
    if updated is None:
        return "Contact not found."
    return f"{updated.display_name} is now {updated.temperature.value}."


def cmd_note(state: AppState, args: list[str]) -> str:
    """/note <contact> <text...> [--call|--visit]"""
    session = _signed_in(state)
    if session is None:
        return _NEED_LOGIN
    if len(args) < 2:
        return "Usage: /note <contact> <text> [--call|--visit]"

    kind = ActivityType.NOTE
    words = []
    for a in args[1:]:
        if a in ("--call", "--visit"):
            kind = ActivityType(a[2:])
        else:
            words.append(a)

    contact = _pick(state.store.list_contacts(session.church.id), args[0], "contact")
    entry = state.store.record_activity(
        ActivityInput(
            church_id=session.church.id,
            contact_id=contact.id,
            user_id=session.user.id,
            type=kind,
            note=" ".join(words),
        )
    )
    return f"Logged {entry.type.value} for {contact.display_name}."


def cmd_activity(state: AppState, args: list[str]) -> str:
    """/activity [contact] -> newest 20 entries"""
    session = _signed_in(state)
    if session is None:
        return _NEED_LOGIN

    contact_id = None
    if args:
        contact_id = _pick(state.store.list_contacts(session.church.id), args[0], "contact").id
    entries = state.store.list_activities(session.church.id, contact_id=contact_id)[:20]
    if not entries:
        return "No activity."
    names = {c.id: c.display_name for c in state.store.list_contacts(session.church.id)}
    lines = ["Recent activity:"]
    for a in entries:
        lines.append(
            f"  {_local(a.created_at)}  {names.get(a.contact_id, '?'):<20} {a.type.value:<17} {a.note}"
        )
    return "\n".join(lines)


# ---- tasks ----


def cmd_tasks(state: AppState, args: list[str]) -> str:
    """
    /tasks [status]                                           -> list
    /tasks add <contact> <category> <due> [notes...]          -> assign to yourself
    """
    session = _signed_in(state)
    if session is None:
        return _NEED_LOGIN
    church_id = session.church.id

    if args and args[0].lower() == "add":
        if len(args) < 4:
            return "Usage: /tasks add <contact> <category> <due YYYY-MM-DD[THH:MM]> [notes]"
        contact = _pick(state.store.list_contacts(church_id), args[1], "contact")
        try:
            category = TaskCategory(args[2].lower())
        except ValueError:
            return f"Unknown category {args[2]!r}. Use one of: {', '.join(c.value for c in TaskCategory)}"
        task = state.store.create_task(
            TaskInput(
                church_id=church_id,
                contact_id=contact.id,
                assignee_id=session.user.id,
                category=category,
                due_date=_when(args[3]),
                notes=" ".join(args[4:]) or None,
            )
        )
        return f"Task {_short(task.id)} ({task.category.value}) for {contact.display_name} due {_local(task.due_date)}."

    status = None
    if args:
        try:
            status = TaskStatus(args[0].lower())
        except ValueError:
            return f"Unknown status {args[0]!r}. Use one of: {', '.join(s.value for s in TaskStatus)}"

    tasks = state.store.list_tasks(church_id, status=status)
    if not tasks:
        return "No tasks."
    names = {c.id: c.display_name for c in state.store.list_contacts(church_id)}
    lines = [f"Tasks ({len(tasks)}):"]
    for t in tasks:
        due = t.rescheduled_for if t.status == TaskStatus.RESCHEDULED and t.rescheduled_for else t.due_date
        lines.append(
            f"  {_short(t.id)}  {names.get(t.contact_id, '?'):<20} {t.category.value:<11} "
            f"{t.status.value:<11} due {_local(due)}"
        )
    return "\n".join(lines)


def _update_task(
    state: AppState,
    session: SessionInfo,
    ref: str,
    status: TaskStatus,
    note: str | None,
    rescheduled_for: str | None = None,
) -> str:
    task = _pick(state.store.list_tasks(session.church.id), ref, "task")
    updated = state.store.update_task_status(
        TaskStatusUpdate(
            task_id=task.id,
            status=status,
            user_id=session.user.id,
            note=note,
            rescheduled_for=rescheduled_for,
        )
    )
    if updated is None:
        return "Task not found."
    _fire_and_forget(state, state.alerts.task_updated(updated))
    return f"Task {_short(updated.id)} is now {updated.status.value}."


def cmd_done(state: AppState, args: list[str]) -> str:
    """/done <task> [outcome note...]"""
    session = _signed_in(state)
    if session is None:
        return _NEED_LOGIN
    if not args:
        return "Usage: /done <task> [outcome note]"
    return _update_task(state, session, args[0], TaskStatus.COMPLETED, " ".join(args[1:]) or None)


def cmd_reschedule(state: AppState, args: list[str]) -> str:
    """/reschedule <task> <when> [note...]"""
    session = _signed_in(state)
    if session is None:
        return _NEED_LOGIN
    if len(args) < 2:
        return "Usage: /reschedule <task> <YYYY-MM-DD[THH:MM]> [note]"
    return _update_task(
        state,
        session,
        args[0],
        TaskStatus.RESCHEDULED,
        " ".join(args[2:]) or None,
        rescheduled_for=_when(args[1]),
    )


def cmd_progress(state: AppState, args: list[str]) -> str:
    """/progress <task> -> in-progress"""
    session = _signed_in(state)
    if session is None:
        return _NEED_LOGIN
    if not args:
        return "Usage: /progress <task>"
    return _update_task(state, session, args[0], TaskStatus.IN_PROGRESS, " ".join(args[1:]) or None)


def cmd_sweep(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if emit:
        with contextlib.suppress(Exception):
            emit("[SWEEP] Checking for past-due tasks...")
    changed = _run(state, state.sweeper.run())
    if not changed:
        return "No newly past-due tasks."
    return f"{len(changed)} task(s) marked past due: {', '.join(_short(t.id) for t in changed)}"


# ---- reports ----


def cmd_digest(state: AppState, args: list[str]) -> str:
    """/digest weekly|monthly -> compute, save to the reports folder, print"""
    session = _signed_in(state)
    if session is None:
        return _NEED_LOGIN
    kind = (args[0].lower() if args else "weekly")
    if kind == "weekly":
        digest = state.store.generate_weekly_digest(session.church.id)
    elif kind == "monthly":
        digest = state.store.generate_monthly_digest(session.church.id)
    else:
        return "Usage: /digest weekly | /digest monthly"

    path = state.store.write_report_to_disk(session.church.id, digest)
    return (
        f"{digest.label} digest {_local(digest.period_start)} .. {_local(digest.period_end)}\n"
        f"  Activities: {digest.total_activities}\n"
        f"  New contacts: {digest.new_contacts}\n"
        f"  Converts: {digest.converts}\n"
        + "\n".join(f"  {line}" for line in digest.summary_text(str(path)).splitlines())
    )


# ---- settings ----


def cmd_settings(state: AppState, args: list[str]) -> str:
    """
    /settings                               -> show
    /settings digest <day 0-6|mon..> <HH:mm>
    /settings email on|off
    /settings audible on|off
    /settings plan <plan-id>
    /settings smtp <host> [port] [user] [password] [--secure]
    /settings smtp off
    """
    session = _signed_in(state)
    if session is None:
        return _NEED_LOGIN
    church_id = session.church.id

    if not args:
        church = state.store.find_church(church_id)
        if church is None:
            return "Church not found."
        pref = church.digest_preference
        smtp = f"{church.smtp.host}:{church.smtp.port}" if church.smtp else "not configured"
        plans = ", ".join(p.id for p in state.store.list_plans())
        return (
            f"Settings for {church.name}:\n"
            f"  Digest: {_DAYS[pref.day_of_week % 7]} {pref.time}\n"
            f"  Email alerts: {'on' if church.email_alerts else 'off'}\n"
            f"  Audible alerts: {'on' if church.audible_alerts else 'off'}\n"
            f"  Plan: {church.plan_id} (available: {plans})\n"
            f"  SMTP: {smtp}"
        )

    sub = args[0].lower()
    rest = args[1:]

    if sub == "digest":
        if len(rest) < 2:
            return "Usage: /settings digest <day 0-6|sun..sat> <HH:mm>"
        day_raw = rest[0].lower()[:3]
        day = _DAYS.index(day_raw) if day_raw in _DAYS else int(rest[0]) if rest[0].isdigit() else -1
        church = state.store.update_church_settings(
            church_id, digest_preference=DigestPreference(day_of_week=day, time=rest[1])
        )
        return "Digest schedule updated." if church else "Church not found."

    if sub in ("email", "audible"):
        if not rest:
            return f"Usage: /settings {sub} on|off"
        flag = _on_off(rest[0])
        if sub == "email":
            state.store.update_church_settings(church_id, email_alerts=flag)
        else:
            state.store.update_church_settings(church_id, audible_alerts=flag)
        return f"{sub.capitalize()} alerts {'on' if flag else 'off'}."

    if sub == "plan":
        if not rest:
            return "Usage: /settings plan <plan-id>"
        state.store.update_plan(church_id, rest[0])
        return f"Plan set to {rest[0]}."

    if sub == "smtp":
        if not rest or rest[0].lower() == "off":
            state.store.update_smtp_settings(church_id, host="")
            return "SMTP cleared; emails go to the outbox folder only."
        secure = "--secure" in rest
        values = [v for v in rest if v != "--secure"]
        smtp = state.store.update_smtp_settings(
            church_id,
            host=values[0],
            port=int(values[1]) if len(values) > 1 else None,
            user=values[2] if len(values) > 2 else None,
            password=values[3] if len(values) > 3 else None,
            secure=secure,
        )
        return f"SMTP set to {smtp.host}:{smtp.port}." if smtp else "Church not found."

    return "Unknown /settings subcommand. Use /help."


# ---- sync ----


def cmd_export(state: AppState, args: list[str]) -> str:
    """/export [path]"""
    session = _signed_in(state)
    if session is None:
        return _NEED_LOGIN
    bundle = state.store.create_sync_bundle(session.church.id)
    if bundle is None:
        return "Church not found."
    path = Path(args[0]) if args else default_export_path(state.store.sync_dir, session.church.id)
    write_bundle(path, bundle)
    return f"Exported {len(bundle.contacts)} contacts and {len(bundle.tasks)} tasks to {path}"


def cmd_import(state: AppState, args: list[str]) -> str:
    """/import <path>"""
    session = _signed_in(state)
    if session is None:
        return _NEED_LOGIN
    if not args:
        return "Usage: /import <path>"
    path = Path(args[0]).expanduser()
    if not path.is_file():
        return f"No such file: {path}"
    result = state.store.import_sync_bundle(session.church.id, read_bundle(path), path)
    return f"Imported {result.imported_contacts} contacts and {result.imported_tasks} tasks from {result.path}"


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show data file, session and record counts.")
registry.register("login", cmd_login, help_text="Sign in: /login <email> <password>.")
registry.register("logout", cmd_logout, help_text="Sign out.")
registry.register("signup", cmd_signup, help_text='Create a church: /signup <email> <password> "<church>" "<name>".')
registry.register("users", cmd_users, help_text="Team members: /users [user] | /users add <role> <email> <password> <name>.")
registry.register("contacts", cmd_contacts, help_text="Contacts: /contacts [temperature] | /contacts add <name> [email] [phone].")
registry.register("temp", cmd_temp, help_text="Move a contact: /temp <contact> <temperature> [note].")
registry.register("note", cmd_note, help_text="Log activity: /note <contact> <text> [--call|--visit].")
registry.register("activity", cmd_activity, help_text="Recent activity: /activity [contact].")
registry.register("tasks", cmd_tasks, help_text="Tasks: /tasks [status] | /tasks add <contact> <category> <due> [notes].")
registry.register("done", cmd_done, help_text="Complete a task: /done <task> [outcome].")
registry.register("reschedule", cmd_reschedule, help_text="Reschedule: /reschedule <task> <when> [note].")
registry.register("progress", cmd_progress, help_text="Mark a task in progress: /progress <task>.")
registry.register("sweep", cmd_sweep, help_text="Run the past-due sweep now.")
registry.register("digest", cmd_digest, help_text="Build a report: /digest weekly | /digest monthly.")
registry.register("settings", cmd_settings, help_text="Church settings: digest, email, audible, plan, smtp.")
registry.register("export", cmd_export, help_text="Write a sync bundle: /export [path].")
registry.register("import", cmd_import, help_text="Merge a sync bundle: /import <path>.")
