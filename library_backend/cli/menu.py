"""Interactive text menu for running the library from a terminal.

The menu talks to the same services as the HTTP API. Choosing Exit, closing
the input stream (Ctrl-D) or pressing Ctrl-C all leave :meth:`LibraryMenu.run`
and hand control back to the caller.
"""
import logging
from typing import List, Optional, TextIO

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.table import Table

from library_backend.config import settings
from library_backend.database import init_db
from library_backend.services.catalog import CatalogService
from library_backend.services.identity import IdentityService
from library_backend.services.loans import LoanService

APP_NAME = "LIBRARY MANAGEMENT SYSTEM"

logger = logging.getLogger(__name__)


class _ClosingStream:
    """Wrap a text stream so that running out of input raises EOFError."""

    def __init__(self, stream: TextIO):
        self._stream = stream

    def readline(self) -> str:
        line = self._stream.readline()
        if not line:
            raise EOFError
        # An empty answer lets the prompt fall back to its default
        return line.rstrip("\r\n")


class LibraryMenu:
    def __init__(
        self,
        catalog: CatalogService,
        identity: IdentityService,
        loans: LoanService,
        console: Optional[Console] = None,
        stream: Optional[TextIO] = None,
    ):
        self.catalog = catalog
        self.identity = identity
        self.loans = loans
        self.console = console or Console()
        self.stream = _ClosingStream(stream) if stream is not None else None
        self.user = None
        self._running = False

    # -- loop -------------------------------------------------------------

    def run(self) -> None:
        self._running = True
        self.console.print(Panel.fit(f"[bold cyan]{APP_NAME}[/]", box=box.DOUBLE))
        try:
            while self._running:
                if self.user is None:
                    self._login_menu()
                elif self.user.is_admin:
                    self._admin_menu()
                else:
                    self._student_menu()
        except (EOFError, KeyboardInterrupt):
            self.console.print()
        self._running = False
        self.console.print("[green]Thank you for using Library Management System![/]")

    def stop(self) -> None:
        """Ask the loop to finish after the current action."""
        self._running = False

    # -- menus ------------------------------------------------------------

    def _login_menu(self) -> None:
        choice = self._choose("LOGIN MENU", ["Login", "Register", "Exit"])
        if choice == 1:
            self._login()
        elif choice == 2:
            self._register()
        elif choice == 3:
            self.stop()

    def _admin_menu(self) -> None:
        choice = self._choose(
            f"ADMIN MENU - Welcome, {escape(self.user.full_name)}!",
            [
                "Manage Books",
                "Issue Book",
                "Return Book",
                "View All Issued Books",
                "View Overdue Books",
                "View All Students",
                "Logout",
            ],
        )
        actions = {
            1: self._manage_books,
            2: self._issue_book,
            3: self._return_book,
            4: self._show_issued_books,
            5: self._show_overdue_books,
            6: self._show_students,
            7: self._logout,
        }
        if choice in actions:
            actions[choice]()

    def _student_menu(self) -> None:
        choice = self._choose(
            f"STUDENT MENU - Welcome, {escape(self.user.full_name)}!",
            ["View All Books", "Search Books", "My Issued Books", "My History", "Logout"],
        )
        actions = {
            1: self._show_all_books,
            2: self._search_books,
            3: self._show_my_books,
            4: self._show_my_history,
            5: self._logout,
        }
        if choice in actions:
            actions[choice]()

    def _manage_books(self) -> None:
        choice = self._choose(
            "BOOK MANAGEMENT",
            ["Add Book", "Update Book", "Delete Book", "View All Books", "Back"],
        )
        actions = {
            1: self._add_book,
            2: self._update_book,
            3: self._delete_book,
            4: self._show_all_books,
        }
        if choice in actions:
            actions[choice]()

    # -- account actions --------------------------------------------------

    def _login(self) -> None:
        username = self._ask("Username")
        password = self._ask("Password", password=True)
        result = self.identity.login(username, password)
        if result.ok:
            self.user = result.value
            self.console.print(f"\n[green]✓ Login successful! Welcome, {escape(self.user.full_name)}[/]")
        else:
            self.console.print(f"\n[red]✗ {escape(result.message)}[/]")

    def _register(self) -> None:
        self.console.print("\n[bold]--- REGISTRATION ---[/]")
        result = self.identity.register(
            username=self._ask("Username"),
            password=self._ask("Password", password=True),
            full_name=self._ask("Full Name"),
            email=self._ask("Email"),
            role=self._ask("Role (ADMIN/STUDENT)"),
        )
        if result.ok:
            self.console.print("\n[green]✓ Registration successful! You can now login.[/]")
        else:
            self.console.print(f"\n[red]✗ Registration failed: {escape(result.message)}[/]")

    def _logout(self) -> None:
        self.user = None
        self.console.print("\n[green]✓ Logged out successfully![/]")

    # -- book actions -----------------------------------------------------

    def _add_book(self) -> None:
        self.console.print("\n[bold]--- ADD NEW BOOK ---[/]")
        result = self.catalog.add_book(
            title=self._ask("Title"),
            author=self._ask("Author"),
            isbn=self._ask("ISBN"),
            publisher=self._ask("Publisher", default=""),
            publication_year=self._ask_int("Publication Year"),
            category=self._ask("Category", default=""),
            total_copies=self._ask_int("Total Copies"),
        )
        self._report(result, "Book added successfully!", "Failed to add book")

    def _update_book(self) -> None:
        self.console.print("\n[bold]--- UPDATE BOOK ---[/]")
        found = self.catalog.get_book(self._ask_int("Enter Book ID to update"))
        if not found.ok:
            self.console.print(f"[red]{escape(found.message)}[/]")
            return
        book = found.value
        self.console.print(f"Current details: [bold]{escape(book.title)}[/] (press Enter to keep a value)")
        result = self.catalog.update_book(
            book_id=book.book_id,
            title=self._ask("Title", default=book.title),
            author=self._ask("Author", default=book.author),
            isbn=self._ask("ISBN", default=book.isbn),
            publisher=self._ask("Publisher", default=book.publisher or ""),
            publication_year=self._ask_int("Publication Year", default=book.publication_year),
            category=self._ask("Category", default=book.category or ""),
            total_copies=self._ask_int("Total Copies", default=book.total_copies),
        )
        self._report(result, "Book updated successfully!")

    def _delete_book(self) -> None:
        self.console.print("\n[bold]--- DELETE BOOK ---[/]")
        book_id = self._ask_int("Enter Book ID to delete")
        if not Confirm.ask("Are you sure you want to delete this book?", console=self.console, stream=self.stream):
            self.console.print("[blue]Deletion cancelled.[/]")
            return
        self._report(self.catalog.delete_book(book_id), "Book deleted successfully!")

    def _show_all_books(self) -> None:
        self._print_books("ALL BOOKS", self.catalog.list_books())

    def _search_books(self) -> None:
        choice = self._choose("SEARCH BOOKS", ["Search by Title", "Search by Author"])
        if choice == 1:
            result = self.catalog.search_by_title(self._ask("Enter title"))
        elif choice == 2:
            result = self.catalog.search_by_author(self._ask("Enter author"))
        else:
            return
        self._print_books("SEARCH RESULTS", result)

    # -- loan actions -----------------------------------------------------

    def _issue_book(self) -> None:
        self.console.print("\n[bold]--- ISSUE BOOK ---[/]")
        book_id = self._ask_int("Enter Book ID")
        user_id = self._ask_int("Enter Student User ID")
        result = self.loans.issue_book(book_id, user_id)
        if result.ok:
            self.console.print(
                f"\n[green]✓ Book issued successfully! Due on {result.value.dueDate.isoformat()}[/]"
            )
        else:
            self.console.print(f"\n[red]✗ {escape(result.message)}[/]")

    def _return_book(self) -> None:
        self.console.print("\n[bold]--- RETURN BOOK ---[/]")
        result = self.loans.return_book(self._ask_int("Enter Issue ID"))
        if result.ok:
            self.console.print(f"\n[green]✓ {result.value.message}[/]")
        else:
            self.console.print(f"\n[red]✗ {escape(result.message)}[/]")

    def _show_issued_books(self) -> None:
        self._print_loans("CURRENTLY ISSUED BOOKS", self.loans.open_loans_all())

    def _show_overdue_books(self) -> None:
        result = self.loans.overdue()
        self._print_loans("OVERDUE BOOKS", result)
        if result.ok:
            self.console.print(f"Total Overdue: {len(result.value)}")

    def _show_my_books(self) -> None:
        result = self.loans.open_loans_by_user(self.user.user_id)
        if result.ok and not result.value:
            self.console.print("[yellow]You have no issued books currently.[/]")
            return
        self._print_loans("MY ISSUED BOOKS", result)

    def _show_my_history(self) -> None:
        self._print_loans("MY BOOK HISTORY", self.loans.history_by_user(self.user.user_id), show_fine=True)

    def _show_students(self) -> None:
        result = self.identity.list_students()
        if not result.ok:
            self.console.print(f"[red]{escape(result.message)}[/]")
            return
        table = Table(title="ALL STUDENTS", header_style="bold cyan")
        table.add_column("ID", justify="right")
        table.add_column("Name")
        table.add_column("Email")
        for user in result.value:
            table.add_row(str(user.user_id), escape(user.full_name), escape(user.email))
        self.console.print(table)

    # -- helpers ----------------------------------------------------------

    def _choose(self, title: str, options: List[str]) -> Optional[int]:
        table = Table.grid(padding=(0, 2))
        table.add_column(justify="right", style="bold cyan")
        table.add_column(justify="left")
        for number, label in enumerate(options, start=1):
            table.add_row(f"{number}.", label)
        self.console.print(Panel(table, title=title, border_style="cyan"))

        choice = self._ask_int("Choose an option")
        if 1 <= choice <= len(options):
            return choice
        self.console.print("[yellow]Invalid option. Please try again.[/]")
        return None

    def _ask(self, prompt: str, password: bool = False, default: Optional[str] = None) -> str:
        if default is None:
            # rich reads hidden input from the terminal, so scripted streams are read plainly
            hidden = password and self.stream is None
            return Prompt.ask(prompt, console=self.console, password=hidden, stream=self.stream)
        return Prompt.ask(prompt, console=self.console, default=default, stream=self.stream)

    def _ask_int(self, prompt: str, default: Optional[int] = None) -> int:
        if default is None:
            return IntPrompt.ask(prompt, console=self.console, stream=self.stream)
        return IntPrompt.ask(prompt, console=self.console, default=default, stream=self.stream)

    def _report(self, result, success_text: str, failure_prefix: Optional[str] = None) -> None:
        if result.ok:
            self.console.print(f"\n[green]✓ {success_text}[/]")
        elif failure_prefix:
            self.console.print(f"\n[red]✗ {failure_prefix}: {escape(result.message)}[/]")
        else:
            self.console.print(f"\n[red]✗ {escape(result.message)}[/]")

    def _print_books(self, title: str, result) -> None:
        if not result.ok:
            self.console.print(f"[red]{escape(result.message)}[/]")
            return
        table = Table(title=title, header_style="bold cyan")
        table.add_column("ID", justify="right")
        table.add_column("Title")
        table.add_column("Author")
        table.add_column("Category")
        table.add_column("Total", justify="right")
        table.add_column("Available", justify="right")
        for book in result.value:
            table.add_row(
                str(book.book_id),
                escape(book.title),
                escape(book.author),
                escape(book.category or ""),
                str(book.total_copies),
                str(book.available_copies),
            )
        self.console.print(table)
        self.console.print(f"Total Books: {len(result.value)}")

    def _print_loans(self, title: str, result, show_fine: bool = False) -> None:
        if not result.ok:
            self.console.print(f"[red]{escape(result.message)}[/]")
            return
        table = Table(title=title, header_style="bold cyan")
        table.add_column("Issue", justify="right")
        table.add_column("Book")
        table.add_column("Student")
        table.add_column("Issued")
        table.add_column("Due")
        table.add_column("Status")
        if show_fine:
            table.add_column("Fine (Rs)", justify="right")
        for view in result.value:
            row = [
                str(view.issueId),
                escape(view.bookTitle or "-"),
                escape(view.userName or "-"),
                view.issueDate.isoformat(),
                view.dueDate.isoformat(),
                view.status,
            ]
            if show_fine:
                row.append(f"{view.fineAmount:.2f}")
            table.add_row(*row)
        self.console.print(table)


def main() -> None:
    logging.basicConfig(
        level=logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    init_db()
    catalog = CatalogService()
    loans = LoanService(catalog)
    if settings.reconcile_on_startup:
        loans.reconcile_inventory()
    LibraryMenu(catalog, IdentityService(), loans).run()


if __name__ == "__main__":
    main()
