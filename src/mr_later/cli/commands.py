# src/mr_later/cli/commands.py

from __future__ import annotations

import logging
import webbrowser
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime
from typing import TypeVar

from ..auth.secure_login import LoginMethod, UnlockResult
from ..billing.plans import get_plan_tier, limits_for
from ..challenges.challenge_models import MembershipResult
from ..core.ports import UnlockPrompt
from ..core.state import AppState
from ..core.wire import now_utc
from ..errors import MrLaterError, ValidationError, error_message
from ..leaderboard import fetch_leaderboard
from ..tasks.task_models import TaskActionResult, TaskPriority
from ..tasks.task_stats import motivational_message, summarize_tasks

CommandHandler = Callable[[AppState, list[str]], Awaitable[str]]

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CommandRegistry:
    """Simple slash-command registry used by the console connector (/help, /tasks, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}
        # Set by the connector; asked before releasing cached credentials.
        self.unlock_prompt: UnlockPrompt | None = None

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

    async def handle(self, state: AppState, line: str) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            return await handler(state, args)
        except MrLaterError as e:
            return f"Error: {error_message(e)}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _require_user(state: AppState) -> str:
    if not state.user_id:
        raise ValidationError("Not signed in. Use /login, /unlock, /google or /otp.")
    return state.user_id


def _resolve(ref: str, items: Sequence[T], key: Callable[[T], str]) -> T:
    """Pick an item by 1-based list number or by id prefix."""
    if ref.isdigit() and 1 <= int(ref) <= len(items):
        return items[int(ref) - 1]
    matches = [it for it in items if key(it).startswith(ref)]
    if len(matches) == 1:
        return matches[0]
    if not matches:
        raise ValidationError(f"Nothing matches {ref!r}.")
    raise ValidationError(f"{ref!r} is ambiguous ({len(matches)} matches).")


def _fmt_ts(state: AppState, dt: datetime) -> str:
    return dt.astimezone(state.tz).strftime("%Y-%m-%d %H:%M")


# ---- auth ----


async def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


async def cmd_login(state: AppState, args: list[str]) -> str:
    if len(args) != 2:
        raise ValidationError("Email and password are required: /login <email> <password>")
    email, password = args
    await state.auth.sign_in(email, password)
    state.secure_login.remember_credentials(email, password)
    state.secure_login.set_preferred_method(LoginMethod.PASSWORD)
    return f"Signed in as {email}."


async def cmd_unlock(state: AppState, args: list[str]) -> str:
    if registry.unlock_prompt is None:
        return "Unlock is not available in this front end."
    result = await state.secure_login.unlock(registry.unlock_prompt)
    if result == UnlockResult.NO_CREDENTIALS:
        return "Please sign in once with email and password first to enable quick unlock."
    if result == UnlockResult.CANCELLED:
        return "Unlock cancelled."
    state.secure_login.set_preferred_method(LoginMethod.BIOMETRIC)
    return "Signed in."


async def cmd_google(state: AppState, args: list[str]) -> str:
    await state.auth.sign_in_with_google()
    state.secure_login.set_preferred_method(LoginMethod.GOOGLE)
    return "Browser opened. After signing in, paste the redirect URL with /oauth <url>."


async def cmd_oauth(state: AppState, args: list[str]) -> str:
    if len(args) != 1:
        raise ValidationError("Usage: /oauth <redirect-url>")
    await state.auth.complete_oauth(args[0])
    return "Signed in."


async def cmd_otp(state: AppState, args: list[str]) -> str:
    if len(args) != 1:
        raise ValidationError("Usage: /otp <email>")
    await state.auth.sign_in_with_otp(args[0])
    state.secure_login.set_preferred_method(LoginMethod.OTP)
    return "Check your inbox, then use /verify <email> <code>."


async def cmd_verify(state: AppState, args: list[str]) -> str:
    if len(args) != 2:
        raise ValidationError("Usage: /verify <email> <code>")
    await state.auth.verify_otp(args[0], args[1])
    return "Signed in."


async def cmd_signup(state: AppState, args: list[str]) -> str:
    if len(args) < 3:
        raise ValidationError("Usage: /signup <email> <password> <name>")
    email, password, name = args[0], args[1], " ".join(args[2:])
    await state.auth.sign_up(email, password, name)
    if state.user_id:
        return f"Welcome, {name}!"
    return "Account created. Confirm your email, then /login."


async def cmd_reset(state: AppState, args: list[str]) -> str:
    if len(args) != 1:
        raise ValidationError("Usage: /reset <email>")
    await state.auth.reset_password(args[0])
    return "Password reset email sent."


async def cmd_logout(state: AppState, args: list[str]) -> str:
    await state.auth.sign_out()
    state.secure_login.forget()
    if state.auth.error:
        return f"Signed out locally ({state.auth.error})."
    return "Signed out."


async def cmd_whoami(state: AppState, args: list[str]) -> str:
    user_id = _require_user(state)
    profile = state.auth.profile
    if profile is None:
        return f"User {user_id} (profile not loaded)"
    return (
        "Profile:\n"
        f"  Name: {profile.name or '-'}\n"
        f"  Email: {profile.email or '-'}\n"
        f"  Plan: {get_plan_tier(profile.plan).value}"
    )


async def cmd_profile(state: AppState, args: list[str]) -> str:
    """
    /profile name=<new name>
    /profile avatar_url=<url>
    """
    _require_user(state)
    changes: dict[str, str] = {}
    current_key: str | None = None
    for token in args:
        if "=" in token:
            current_key, value = token.split("=", 1)
            changes[current_key] = value
        elif current_key is not None:
            changes[current_key] += f" {token}"
    if not changes:
        raise ValidationError("Usage: /profile name=<new name>")
    if not await state.auth.update_profile(changes):
        return f"Profile not updated: {state.auth.error or 'no profile loaded'}"
    return "Profile updated."


# ---- tasks ----


def _parse_add_args(state: AppState, args: list[str]) -> dict[str, object]:
    """
    /add <title words> [@YYYY-MM-DD[THH:MM]] [!low|!medium|!high] [#category]
    """
    title_words: list[str] = []
    fields: dict[str, object] = {}
    for token in args:
        if token.startswith("@") and len(token) > 1:
            try:
                due = datetime.fromisoformat(token[1:])
            except ValueError as e:
                raise ValidationError(f"Bad due date: {token[1:]!r}") from e
            fields["due_date"] = due if due.tzinfo else due.replace(tzinfo=state.tz)
        elif token.startswith("!") and len(token) > 1:
            try:
                fields["priority"] = TaskPriority(token[1:].lower())
            except ValueError as e:
                raise ValidationError(f"Priority must be low, medium or high, not {token[1:]!r}") from e
        elif token.startswith("#") and len(token) > 1:
            fields["category"] = token[1:]
        else:
            title_words.append(token)
    fields["title"] = " ".join(title_words)
    return fields


async def cmd_tasks(state: AppState, args: list[str]) -> str:
    _require_user(state)
    tasks = state.tasks.tasks
    if not tasks:
        return "No tasks. Add one with /add <title>."

    now = now_utc()
    lines = ["Tasks:"]
    for i, t in enumerate(tasks, start=1):
        flag = " (overdue)" if not t.is_done and t.due_date < now else ""
        cat = f" #{t.category}" if t.category else ""
        lines.append(
            f"{i:>3}. [{t.status.value:<7}] {t.title} ({t.priority.value}){cat} "
            f"due {_fmt_ts(state, t.due_date)}{flag}"
        )
    return "\n".join(lines)


async def cmd_add(state: AppState, args: list[str]) -> str:
    user_id = _require_user(state)
    task = await state.tasks.create_task(user_id, _parse_add_args(state, args))
    if task is None:
        return "Not signed in."
    return f"Added: {task.title} (due {_fmt_ts(state, task.due_date)})"


async def cmd_done(state: AppState, args: list[str]) -> str:
    _require_user(state)
    if len(args) != 1:
        raise ValidationError("Usage: /done <n|id>")
    task = _resolve(args[0], state.tasks.tasks, lambda t: t.id)
    if await state.tasks.toggle_complete(task.id) == TaskActionResult.NOT_FOUND:
        return "Task not found."
    updated = state.tasks.get(task.id)
    return f"{task.title}: {updated.status.value if updated else 'updated'}"


async def cmd_later(state: AppState, args: list[str]) -> str:
    _require_user(state)
    if len(args) != 1:
        raise ValidationError("Usage: /later <n|id>")
    task = _resolve(args[0], state.tasks.tasks, lambda t: t.id)
    if await state.tasks.do_later(task.id) == TaskActionResult.NOT_FOUND:
        return "Task not found."
    updated = state.tasks.get(task.id)
    due = _fmt_ts(state, updated.due_date) if updated else "?"
    return f"Later it is: {task.title} now due {due}"


async def cmd_rm(state: AppState, args: list[str]) -> str:
    _require_user(state)
    if len(args) != 1:
        raise ValidationError("Usage: /rm <n|id>")
    task = _resolve(args[0], state.tasks.tasks, lambda t: t.id)
    await state.tasks.delete_task(task.id)
    return f"Task deleted: {task.title}"


async def cmd_stats(state: AppState, args: list[str]) -> str:
    _require_user(state)
    stats = summarize_tasks(state.tasks.tasks, now=now_utc(), tz=state.tz)
    lines = [
        f"Task progress: {stats.completion_rate}% ({stats.completed}/{stats.total} done, {stats.remaining} left)",
        motivational_message(stats.completion_rate),
        f"Today: {len(stats.today)}  Upcoming: {len(stats.upcoming)}  Overdue: {len(stats.overdue)}",
    ]
    for t in stats.upcoming:
        lines.append(f"  - {t.title} due {_fmt_ts(state, t.due_date)}")
    return "\n".join(lines)


# ---- challenges ----


async def cmd_challenges(state: AppState, args: list[str]) -> str:
    user_id = _require_user(state)
    mine = bool(args) and args[0].lower() in ("mine", "joined")
    items = state.challenges.user_challenges if mine else state.challenges.challenges
    if not items:
        return "No challenges joined yet." if mine else "No challenges available."

    now = now_utc()
    lines = ["Joined challenges:" if mine else "Challenges:"]
    for i, c in enumerate(items, start=1):
        joined = " *" if c.has_participant(user_id) else ""
        lines.append(
            f"{i:>3}. {c.name} [{c.phase(now).value}] "
            f"{_fmt_ts(state, c.start_date)} - {_fmt_ts(state, c.end_date)} "
            f"({len(c.participants)} participants){joined}"
        )
    return "\n".join(lines)


async def cmd_join(state: AppState, args: list[str]) -> str:
    user_id = _require_user(state)
    if len(args) != 1:
        raise ValidationError("Usage: /join <n|id>")
    challenge = _resolve(args[0], state.challenges.challenges, lambda c: c.id)
    result = await state.challenges.join_challenge(user_id, challenge.id)
    if result == MembershipResult.FAILED:
        return f"Could not join: {state.challenges.error}"
    if result == MembershipResult.ALREADY_MEMBER:
        return f"Already in {challenge.name}."
    return f"Joined {challenge.name}."


async def cmd_leave(state: AppState, args: list[str]) -> str:
    user_id = _require_user(state)
    if len(args) != 1:
        raise ValidationError("Usage: /leave <n|id>")
    challenge = _resolve(args[0], state.challenges.challenges, lambda c: c.id)
    result = await state.challenges.leave_challenge(user_id, challenge.id)
    if result == MembershipResult.FAILED:
        return f"Could not leave: {state.challenges.error}"
    if result == MembershipResult.NOT_MEMBER:
        return f"You are not in {challenge.name}."
    return f"Left {challenge.name}."


async def cmd_board(state: AppState, args: list[str]) -> str:
    limit = int(getattr(state.settings, "leaderboard_limit", 50))
    entries = await fetch_leaderboard(state.gateway, limit=limit)
    if not entries:
        return "No data yet."
    lines = ["Leaderboard:"]
    for i, e in enumerate(entries, start=1):
        you = " (you)" if e.user_id == state.user_id else ""
        lines.append(f"{i:>3}. {e.user_id}{you}: {e.completed_tasks} tasks done")
    return "\n".join(lines)


# ---- billing ----


async def cmd_plan(state: AppState, args: list[str]) -> str:
    _require_user(state)
    plan = state.auth.profile.plan if state.auth.profile else None
    limits = limits_for(plan)
    return (
        f"Current plan: {get_plan_tier(plan).value}\n"
        f"  Active tasks: up to {limits.max_active_tasks}\n"
        f"  Joined challenges: up to {limits.max_joined_challenges}"
    )


async def cmd_upgrade(state: AppState, args: list[str]) -> str:
    user_id = _require_user(state)
    if state.payments is None:
        return "Billing is not configured."
    customer_id = state.auth.profile.stripe_customer_id if state.auth.profile else None
    url = await state.payments.create_checkout_session(user_id, customer_id)
    webbrowser.open(url)
    return f"Checkout opened in your browser: {url}"


async def cmd_billing(state: AppState, args: list[str]) -> str:
    _require_user(state)
    if state.payments is None:
        return "Billing is not configured."
    customer_id = state.auth.profile.stripe_customer_id if state.auth.profile else None
    url = await state.payments.create_portal_session(customer_id)
    webbrowser.open(url)
    return f"Billing portal opened in your browser: {url}"


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("login", cmd_login, help_text="Sign in: /login <email> <password>.")
registry.register("unlock", cmd_unlock, help_text="Sign in with the credential saved on this device.")
registry.register("google", cmd_google, help_text="Sign in with Google in the browser.")
registry.register("oauth", cmd_oauth, help_text="Finish browser sign-in: /oauth <redirect-url>.")
registry.register("otp", cmd_otp, help_text="Email a one-time code: /otp <email>.")
registry.register("verify", cmd_verify, help_text="Verify a one-time code: /verify <email> <code>.")
registry.register("signup", cmd_signup, help_text="Create an account: /signup <email> <password> <name>.")
registry.register("reset", cmd_reset, help_text="Send a password reset email: /reset <email>.")
registry.register("logout", cmd_logout, help_text="Sign out and forget the saved credential.")
registry.register("whoami", cmd_whoami, help_text="Show your profile.", aliases=["me"])
registry.register("profile", cmd_profile, help_text="Edit profile: /profile name=<new name>.")
registry.register("tasks", cmd_tasks, help_text="List your tasks.", aliases=["ls"])
registry.register(
    "add", cmd_add, help_text="Add a task: /add <title> [@2024-03-01T09:00] [!high] [#work]."
)
registry.register("done", cmd_done, help_text="Toggle completion: /done <n|id>.")
registry.register("later", cmd_later, help_text="Push a task to tomorrow: /later <n|id>.")
registry.register("rm", cmd_rm, help_text="Delete a task: /rm <n|id>.")
registry.register("stats", cmd_stats, help_text="Progress, today's and upcoming tasks.")
registry.register("challenges", cmd_challenges, help_text="List challenges: /challenges [mine].")
registry.register("join", cmd_join, help_text="Join a challenge: /join <n|id>.")
registry.register("leave", cmd_leave, help_text="Leave a challenge: /leave <n|id>.")
registry.register("board", cmd_board, help_text="Leaderboard by completed tasks.", aliases=["leaderboard"])
registry.register("plan", cmd_plan, help_text="Show your plan and its limits.")
registry.register("upgrade", cmd_upgrade, help_text="Upgrade to Pro (opens checkout).")
registry.register("billing", cmd_billing, help_text="Manage billing (opens portal).")
