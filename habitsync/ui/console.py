"""HabitSync terminal client - menu-driven front end for the sync layer"""

import asyncio
from typing import Any, Callable, Optional

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from ..app import HabitSyncApp
from ..models.habit import CheckInStatus, Habit, HabitFields
from ..utils.exceptions import (
    ApiError,
    AuthorizationError,
    HabitSyncError,
    ValidationError,
)

console = Console()


async def ask(prompt: str, **kwargs) -> str:
    """Prompt without blocking the event loop"""
    return await asyncio.to_thread(Prompt.ask, prompt, **kwargs)


async def confirm(prompt: str, default: bool = False) -> bool:
    return await asyncio.to_thread(Confirm.ask, prompt, default=default)


def describe_error(error: HabitSyncError) -> str:
    """User-facing text for a failure, phrased by error class"""
    if isinstance(error, AuthorizationError):
        return "Your session has expired. Please log in again."
    if isinstance(error, ValidationError):
        lines = [error.message]
        for field, reason in error.details.items():
            if isinstance(reason, list):
                reason = "; ".join(str(r) for r in reason)
            lines.append(f"  {field}: {reason}")
        return "\n".join(lines)
    if isinstance(error, ApiError) and error.retryable:
        return f"{error.message} Please try again."
    return str(error)


class HabitConsole:
    """Interactive menu over HabitSyncApp"""

    def __init__(self, app: HabitSyncApp):
        self.app = app
        self.running = True

    async def _run_action(self, action: Callable[[], Any]) -> Optional[Any]:
        try:
            return await action()
        except HabitSyncError as e:
            console.print(f"[bold red]✗ {describe_error(e)}[/bold red]")
            return None

    def _render_habits(self, habits) -> None:
        stats = self.app.habits.stats()
        table = Table(
            title=f"Habits ({stats.active_habits} active, best streak {stats.best_streak})",
            box=box.ROUNDED,
        )
        table.add_column("#", style="cyan", width=4)
        table.add_column("Habit", style="white")
        table.add_column("Streak", style="green", justify="right")
        for i, habit in enumerate(habits, 1):
            table.add_row(str(i), f"{habit.icon} {habit.title}", f"{habit.streak} 🔥")
        console.print(table)

    async def _pick_habit(self) -> Optional[Habit]:
        habits = self.app.habits.habits or await self.app.habits.list_habits()
        if not habits:
            console.print("[yellow]No habits yet.[/yellow]")
            return None
        self._render_habits(habits)
        choice = await ask("Select habit number", default="1")
        try:
            return habits[int(choice) - 1]
        except (ValueError, IndexError):
            console.print("[red]Invalid selection[/red]")
            return None

    async def _ask_fields(self, current: Optional[Habit] = None) -> HabitFields:
        title = await ask("Title", default=current.title if current else "")
        description = await ask("Description (optional)", default=(current.description or "") if current else "")
        icon = await ask("Icon", default=current.icon if current else "⭐")
        colour = await ask("Colour", default=current.colour if current else "#FCD34D")
        return HabitFields(title=title, description=description or None, icon=icon, colour=colour)

    async def login_menu(self) -> None:
        sessions = self.app.session_manager
        menu_text = """
[bold cyan]Welcome to HabitSync[/bold cyan]

[1] Log in with email
[2] Sign up
[3] Log in with identity token
[Q] Quit
"""
        console.print(Panel(menu_text, title="Account", border_style="cyan"))
        choice = (await ask("Select option", choices=["1", "2", "3", "q", "Q"], default="1")).lower()

        if choice == "1":
            email = await ask("Email")
            password = await ask("Password", password=True)
            await self._run_action(lambda: sessions.login_with_password(email, password))
        elif choice == "2":
            name = await ask("Name")
            email = await ask("Email")
            password = await ask("Password", password=True)
            await self._run_action(lambda: sessions.signup(email, password, name))
        elif choice == "3":
            id_token = await ask("Identity token", password=True)
            await self._run_action(lambda: sessions.login_with_identity_token(id_token))
        elif choice == "q":
            self.running = False

        if sessions.is_authenticated:
            console.print(f"[bold green]✓ Logged in as {sessions.user.email}[/bold green]")

    async def main_menu(self) -> None:
        sync = self.app.habits
        user = self.app.session_manager.user
        menu_text = f"""
[bold cyan]Signed in as {user.name or user.email}[/bold cyan]

[1] List habits
[2] Check in
[3] New habit
[4] Edit habit
[5] Check-in history
[6] Update profile
[7] Log out
[Q] Quit
"""
        console.print(Panel(menu_text, title="Menu", border_style="cyan"))
        choice = (await ask(
            "Select option",
            choices=["1", "2", "3", "4", "5", "6", "7", "q", "Q"],
            default="1",
        )).lower()

        if choice == "1":
            habits = await self._run_action(sync.list_habits)
            if habits is not None:
                self._render_habits(habits)
        elif choice == "2":
            habit = await self._pick_habit()
            if habit:
                result = await self._run_action(lambda: sync.check_in(habit.id))
                if result and result.status == CheckInStatus.CHECKED_IN:
                    streak = result.habit.streak if result.habit else "?"
                    console.print(f"[bold green]✓ Checked in! Streak: {streak} 🔥[/bold green]")
                elif result:
                    console.print(f"[yellow]{result.message or 'Already checked in today.'}[/yellow]")
        elif choice == "3":
            fields = await self._ask_fields()
            created = await self._run_action(lambda: sync.create_habit(fields))
            if created:
                console.print(f"[bold green]✓ Created {created.title}[/bold green]")
        elif choice == "4":
            habit = await self._pick_habit()
            if habit:
                fields = await self._ask_fields(habit)
                updated = await self._run_action(lambda: sync.update_habit(habit.id, fields))
                if updated:
                    console.print(f"[bold green]✓ Saved {updated.title}[/bold green]")
        elif choice == "5":
            habit = await self._pick_habit()
            if habit:
                await self.show_history(habit)
        elif choice == "6":
            await self.profile_menu()
        elif choice == "7":
            if await confirm("Log out?", default=True):
                await self._run_action(self.app.session_manager.logout)
                console.print("[yellow]Logged out[/yellow]")
        elif choice == "q":
            self.running = False

    async def show_history(self, habit: Habit) -> None:
        check_ins = await self._run_action(lambda: self.app.habits.list_check_ins(habit.id))
        if check_ins is None:
            return
        if not check_ins:
            console.print("[yellow]No check-ins yet. Start checking in to see your progress![/yellow]")
            return
        days = "day" if len(check_ins) == 1 else "days"
        table = Table(title=f"{habit.icon} {habit.title} ({len(check_ins)} {days})", box=box.ROUNDED)
        table.add_column("Date", style="cyan")
        table.add_column("Photo", style="white")
        for check_in in check_ins:
            table.add_row(
                check_in.check_in_date.strftime("%A, %B %d, %Y"),
                check_in.resolve_image_url(self.app.gateway.base_url) or "",
            )
        console.print(table)

    async def profile_menu(self) -> None:
        sessions = self.app.session_manager
        name = await ask("Name", default=sessions.user.name)
        password = await ask("New password (blank to keep current)", password=True, default="")
        if password:
            repeat = await ask("Confirm new password", password=True)
            if repeat != password:
                console.print("[red]Passwords do not match[/red]")
                return
        user = await self._run_action(lambda: sessions.update_profile(name, password or None))
        if user:
            console.print("[bold green]✓ Profile updated successfully![/bold green]")

    async def run(self) -> None:
        console.print("[bold blue]Starting HabitSync...[/bold blue]")
        try:
            await self.app.start()
        except HabitSyncError as e:
            console.print(f"[bold red]✗ {describe_error(e)}[/bold red]")
        try:
            while self.running:
                if self.app.session_manager.is_authenticated:
                    await self.main_menu()
                else:
                    await self.login_menu()
        finally:
            await self.app.close()


def main() -> None:
    """Main entry point for the terminal client"""
    app = HabitSyncApp()
    try:
        app.initialize()
    except HabitSyncError as e:
        console.print(f"[bold red]✗ Initialization failed: {e}[/bold red]")
        return

    try:
        asyncio.run(HabitConsole(app).run())
    except KeyboardInterrupt:
        console.print("\n[yellow]Goodbye![/yellow]")


if __name__ == "__main__":
    main()
