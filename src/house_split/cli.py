"""CLI for house-split using Typer."""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal, InvalidOperation

import typer
from rich.console import Console
from rich.table import Table

from .config import load_settings
from .exceptions import HouseSplitError
from .models import (
    Bill,
    BillCreate,
    BillUpdate,
    DateWindow,
    DebtLine,
    RecurringBillCreate,
    ShareInput,
)
from .service import LedgerService

app = typer.Typer(
    name="house-split",
    help="Split shared household bills by percentage and track who owes whom",
)
user_app = typer.Typer(help="Manage users")
group_app = typer.Typer(help="Manage groups, members, environments and categories")
bill_app = typer.Typer(help="Create, edit, archive and pay bills")
recurring_app = typer.Typer(help="Recurring bill templates")
dashboard_app = typer.Typer(help="Balances, debts and category totals")
inbox_app = typer.Typer(help="Notifications and activity history")

app.add_typer(user_app, name="user")
app.add_typer(group_app, name="group")
app.add_typer(bill_app, name="bill")
app.add_typer(recurring_app, name="recurring")
app.add_typer(dashboard_app, name="dashboard")
app.add_typer(inbox_app, name="inbox")

console = Console()

DATE_FORMATS = ["%Y-%m-%d"]


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    # Downgrade httpx logging to DEBUG (webhook requests are too noisy at INFO)
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


@contextmanager
def open_service(verbose: bool = False) -> Iterator[LedgerService]:
    """Open the ledger for one command, reporting failures and exiting with 1."""
    setup_logging(verbose)
    service = None
    try:
        service = LedgerService.from_settings(load_settings())
        yield service
    except HouseSplitError as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        sys.exit(1)
    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if service is not None:
            service.close()


def parse_amount(value: str) -> Decimal:
    """Parse a decimal amount given on the command line."""
    try:
        return Decimal(value)
    except InvalidOperation:
        raise typer.BadParameter(f"'{value}' is not a valid amount") from None


def parse_window(month: int | None, year: int | None) -> DateWindow | None:
    """Build a month window from ``--month``/``--year``, which go together."""
    if month is None and year is None:
        return None
    if month is None or year is None:
        raise typer.BadParameter("--month and --year must be given together")
    return DateWindow(month=month, year=year)


def parse_shares(values: list[str]) -> list[ShareInput]:
    """Parse ``USER_ID:PERCENTAGE`` pairs."""
    shares = []
    for value in values:
        user_id, sep, percentage = value.partition(":")
        if not sep or not user_id.strip().isdigit():
            raise typer.BadParameter(
                f"'{value}' is not a share, expected USER_ID:PERCENTAGE"
            )
        shares.append(
            ShareInput(user_id=int(user_id), percentage=parse_amount(percentage))
        )
    return shares


def format_money(amount: Decimal, use_color: bool = True) -> str:
    """
    Format money in accounting style with alignment.

    Negative amounts use parentheses: (85.02)
    Positive amounts have spaces:      85.02
    The spaces ensure decimal points align in tables.
    """
    abs_amount = abs(amount)
    if amount < 0:
        if use_color:
            return f"([red]{abs_amount:,.2f}[/red])"
        return f"({abs_amount:,.2f})"
    if use_color:
        return f" [green]{abs_amount:,.2f}[/green] "
    return f" {abs_amount:,.2f} "


def display_bills(bills: list[Bill], title: str = "Bills"):
    """Display bills in a table."""
    if not bills:
        console.print("[yellow]No bills found.[/yellow]")
        return

    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim", width=6)
    table.add_column("Due", width=10)
    table.add_column("Title", style="cyan")
    table.add_column("Total", justify="right", width=12)
    table.add_column("Status", width=14)
    table.add_column("Category", style="yellow")
    table.add_column("Shares", style="dim")

    for bill in bills:
        shares = ", ".join(
            f"{s.user_id}: {s.amount} ({s.status.lower()})" for s in bill.shares
        )
        table.add_row(
            str(bill.id),
            bill.due_date.isoformat(),
            bill.title,
            format_money(bill.total_amount),
            bill.status,
            bill.category or "[dim]Uncategorized[/dim]",
            shares,
        )

    console.print(table)


def display_debts(debts: list[DebtLine]):
    """Display pending shares in a table."""
    if not debts:
        console.print("[green]Nothing pending.[/green]")
        return

    table = Table(title="Pending Shares", show_header=True, header_style="bold magenta")
    table.add_column("Due", width=10)
    table.add_column("Bill", style="cyan")
    table.add_column("Group / Environment", style="dim")
    table.add_column("Pay to")
    table.add_column("Share", justify="right", width=12)
    table.add_column("Category", style="yellow")

    for debt in debts:
        table.add_row(
            debt.due_date.isoformat(),
            f"#{debt.bill_id} {debt.title}",
            f"{debt.group_name} / {debt.environment_name}",
            debt.receiver_user_name or debt.receiver_name or "-",
            format_money(debt.share_amount),
            debt.category or "[dim]Uncategorized[/dim]",
        )

    console.print(table)
    total = sum((d.share_amount for d in debts), Decimal("0"))
    console.print(f"  Total: {format_money(total)}")


# ============================================================================
# Users
# ============================================================================


@user_app.command("add")
def user_add(
    name: str = typer.Argument(..., help="Display name"),
    email: str = typer.Argument(..., help="E-mail address"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Register a user."""
    with open_service(verbose) as service:
        user = service.directory.create_user(name, email)
        console.print(f"[green]✓ Created user {user.id}: {user.name}[/green]")


# ============================================================================
# Groups
# ============================================================================


@group_app.command("create")
def group_create(
    name: str = typer.Argument(..., help="Group name"),
    actor: int = typer.Option(..., "--as", help="Acting user id"),
    description: str | None = typer.Option(None, "--description", "-d"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Create a group owned by the acting user."""
    with open_service(verbose) as service:
        group = service.directory.create_group(actor, name, description)
        assert group.id is not None
        environments = service.directory.list_environments(group.id)
        console.print(f"[green]✓ Created group {group.id}: {group.name}[/green]")
        for environment in environments:
            console.print(f"  Environment {environment.id}: {environment.name}")


@group_app.command("list")
def group_list(
    actor: int = typer.Option(..., "--as", help="Acting user id"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """List the acting user's groups and their environments."""
    with open_service(verbose) as service:
        groups = service.directory.list_groups(actor)
        if not groups:
            console.print("[yellow]No groups found.[/yellow]")
            return

        table = Table(title="Groups", show_header=True, header_style="bold magenta")
        table.add_column("ID", style="dim", width=6)
        table.add_column("Name", style="cyan")
        table.add_column("Environments")
        for group in groups:
            assert group.id is not None
            environments = service.directory.list_environments(group.id)
            table.add_row(
                str(group.id),
                group.name,
                ", ".join(f"{e.id}: {e.name}" for e in environments),
            )
        console.print(table)


@group_app.command("add-member")
def group_add_member(
    group_id: int = typer.Argument(..., help="Group id"),
    actor: int = typer.Option(..., "--as", help="Acting user id"),
    user_id: int | None = typer.Option(None, "--user", help="User id to add"),
    email: str | None = typer.Option(None, "--email", help="E-mail of the user to add"),
    admin: bool = typer.Option(False, "--admin", help="Add as group admin"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Add a user to a group by id or e-mail."""
    with open_service(verbose) as service:
        member = service.directory.add_member(
            group_id,
            actor,
            user_id=user_id,
            email=email,
            role="ADMIN" if admin else "MEMBER",
        )
        console.print(
            f"[green]✓ User {member.user_id} is a member of group {group_id}[/green]"
        )


@group_app.command("leave")
def group_leave(
    group_id: int = typer.Argument(..., help="Group id"),
    actor: int = typer.Option(..., "--as", help="Acting user id"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Leave a group."""
    with open_service(verbose) as service:
        service.directory.leave_group(group_id, actor)
        console.print(f"[green]✓ Left group {group_id}[/green]")


@group_app.command("archive")
def group_archive(
    group_id: int = typer.Argument(..., help="Group id"),
    actor: int = typer.Option(..., "--as", help="Acting user id"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Archive a group (owner only)."""
    with open_service(verbose) as service:
        service.directory.archive_group(group_id, actor)
        console.print(f"[green]✓ Archived group {group_id}[/green]")


@group_app.command("env")
def group_env(
    group_id: int = typer.Argument(..., help="Group id"),
    name: str = typer.Argument(..., help="Environment name"),
    actor: int = typer.Option(..., "--as", help="Acting user id"),
    description: str | None = typer.Option(None, "--description", "-d"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Add an environment to a group."""
    with open_service(verbose) as service:
        environment = service.directory.create_environment(
            group_id, actor, name, description
        )
        console.print(
            f"[green]✓ Created environment {environment.id}: {environment.name}[/green]"
        )


@group_app.command("archive-env")
def group_archive_env(
    environment_id: int = typer.Argument(..., help="Environment id"),
    actor: int = typer.Option(..., "--as", help="Acting user id"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Archive an environment (group owner only)."""
    with open_service(verbose) as service:
        service.directory.archive_environment(environment_id, actor)
        console.print(f"[green]✓ Archived environment {environment_id}[/green]")


@group_app.command("category")
def group_category(
    group_id: int = typer.Argument(..., help="Group id"),
    name: str | None = typer.Argument(None, help="Category to add (omit to list)"),
    actor: int = typer.Option(..., "--as", help="Acting user id"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Add a category to a group, or list its categories."""
    with open_service(verbose) as service:
        if name is not None:
            category = service.directory.upsert_category(group_id, actor, name)
            console.print(f"[green]✓ Category '{category.name}' is available[/green]")
            return
        for category in service.directory.list_categories(group_id):
            console.print(f"  {category.name}")


@group_app.command("summary")
def group_summary(
    group_id: int = typer.Argument(..., help="Group id"),
    environment_id: int | None = typer.Option(
        None, "--env", help="Only bills of this environment"
    ),
    month: int | None = typer.Option(None, "--month", min=1, max=12),
    year: int | None = typer.Option(None, "--year"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show who owes whom within a group or environment."""
    window = parse_window(month, year)
    with open_service(verbose) as service:
        summary = service.balances.group_member_summary(
            group_id,
            environment_id=environment_id,
            window=window,
        )

        table = Table(
            title=f"Group {group_id} balances",
            show_header=True,
            header_style="bold magenta",
        )
        table.add_column("Member", style="cyan")
        table.add_column("To pay", justify="right", width=12)
        table.add_column("To receive", justify="right", width=12)
        table.add_column("Net", justify="right", width=12)
        for member in summary.members:
            table.add_row(
                member.name,
                format_money(member.total_to_pay),
                format_money(member.total_to_receive),
                format_money(member.net_balance),
            )
        console.print(table)


# ============================================================================
# Bills
# ============================================================================


@bill_app.command("create")
def bill_create(
    actor: int = typer.Option(..., "--as", help="Acting user id"),
    group_id: int = typer.Option(..., "--group", help="Group id"),
    environment_id: int = typer.Option(..., "--env", help="Environment id"),
    title: str = typer.Option(..., "--title", help="Bill title"),
    due: datetime = typer.Option(..., "--due", formats=DATE_FORMATS, help="Due date"),
    amount: str = typer.Option(..., "--amount", help="Total amount"),
    shares: list[str] = typer.Option(
        ..., "--share", help="USER_ID:PERCENTAGE, repeat for each participant"
    ),
    receiver_id: int | None = typer.Option(None, "--receiver", help="Receiver user id"),
    receiver_name: str | None = typer.Option(
        None, "--receiver-name", help="Receiver name when not a registered user"
    ),
    category: str | None = typer.Option(None, "--category", help="Category label"),
    installments: int = typer.Option(1, "--installments", min=1),
    pix_key: str | None = typer.Option(None, "--pix-key"),
    payment_link: str | None = typer.Option(None, "--payment-link"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Create a bill split between group members."""
    data = BillCreate(
        group_id=group_id,
        environment_id=environment_id,
        title=title,
        due_date=due.date(),
        total_amount=parse_amount(amount),
        installments=installments,
        pix_key=pix_key,
        payment_link=payment_link,
        receiver_id=receiver_id,
        receiver_name=receiver_name,
        category=category,
        shares=parse_shares(shares),
    )
    with open_service(verbose) as service:
        bill = service.bills.create_bill(actor, data)
        console.print(f"[green]✓ Created bill {bill.id}: {bill.title}[/green]")
        display_bills([bill], title="New Bill")


@bill_app.command("list")
def bill_list(
    environment_id: int = typer.Argument(..., help="Environment id"),
    month: int | None = typer.Option(None, "--month", min=1, max=12),
    year: int | None = typer.Option(None, "--year"),
    status: str | None = typer.Option(
        None, "--status", help="OPEN, PARTIALLY_PAID or PAID"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """List an environment's bills by due date."""
    if status is not None and status.upper() not in ("OPEN", "PARTIALLY_PAID", "PAID"):
        raise typer.BadParameter(f"Unknown status '{status}'")
    window = parse_window(month, year)
    with open_service(verbose) as service:
        bills = service.bills.list_bills(
            environment_id,
            window=window,
            status=status.upper() if status else None,  # type: ignore[arg-type]
        )
        display_bills(bills)


@bill_app.command("show")
def bill_show(
    bill_id: int = typer.Argument(..., help="Bill id"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show a bill with its shares and payments."""
    with open_service(verbose) as service:
        bill = service.bills.get_bill(bill_id)
        display_bills([bill], title=f"Bill {bill_id}")

        payments = service.bills.list_payments(bill_id)
        if not payments:
            console.print("[dim]No payments yet.[/dim]")
            return
        console.print("\n[bold]Payments:[/bold]")
        for payment in payments:
            console.print(
                f"  {payment.paid_at:%Y-%m-%d} user {payment.from_user_id} -> "
                f"user {payment.to_user_id}: {format_money(payment.amount)}"
                f"{f' ({payment.method})' if payment.method else ''}"
            )


@bill_app.command("update")
def bill_update(
    bill_id: int = typer.Argument(..., help="Bill id"),
    actor: int = typer.Option(..., "--as", help="Acting user id"),
    title: str | None = typer.Option(None, "--title"),
    due: datetime | None = typer.Option(None, "--due", formats=DATE_FORMATS),
    amount: str | None = typer.Option(None, "--amount"),
    shares: list[str] | None = typer.Option(
        None, "--share", help="USER_ID:PERCENTAGE, replaces every share"
    ),
    receiver_id: int | None = typer.Option(None, "--receiver"),
    receiver_name: str | None = typer.Option(None, "--receiver-name"),
    category: str | None = typer.Option(None, "--category"),
    installments: int | None = typer.Option(None, "--installments", min=1),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Edit an open bill. Only the options given are changed."""
    changes: dict = {
        "title": title,
        "due_date": due.date() if due else None,
        "total_amount": parse_amount(amount) if amount is not None else None,
        "shares": parse_shares(shares) if shares else None,
        "receiver_id": receiver_id,
        "receiver_name": receiver_name,
        "category": category,
        "installments": installments,
    }
    update = BillUpdate(**{k: v for k, v in changes.items() if v is not None})

    with open_service(verbose) as service:
        bill = service.bills.update_bill(bill_id, actor, update)
        console.print(f"[green]✓ Updated bill {bill.id}[/green]")
        display_bills([bill], title=f"Bill {bill_id}")


@bill_app.command("archive")
def bill_archive(
    bill_id: int = typer.Argument(..., help="Bill id"),
    actor: int = typer.Option(..., "--as", help="Acting user id"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Archive a bill (owner only)."""
    with open_service(verbose) as service:
        service.bills.archive_bill(bill_id, actor)
        console.print(f"[green]✓ Archived bill {bill_id}[/green]")


@bill_app.command("pay")
def bill_pay(
    bill_id: int = typer.Argument(..., help="Bill id"),
    amount: str = typer.Argument(..., help="Amount paid"),
    actor: int = typer.Option(..., "--as", help="Paying user id"),
    method: str | None = typer.Option(None, "--method", help="pix, cash, transfer..."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Record a payment from the acting user to the bill's receiver."""
    value = parse_amount(amount)
    with open_service(verbose) as service:
        payment = service.payments.record_payment(
            bill_id, actor, value, method=method, actor_id=actor
        )
        bill = service.bills.get_bill(bill_id)
        console.print(
            f"[green]✓ Recorded payment {payment.id} of {format_money(payment.amount)}"
            f"[/green] (bill is now {bill.status})"
        )


# ============================================================================
# Recurring bills
# ============================================================================


@recurring_app.command("create")
def recurring_create(
    actor: int = typer.Option(..., "--as", help="Acting user id"),
    group_id: int = typer.Option(..., "--group", help="Group id"),
    environment_id: int = typer.Option(..., "--env", help="Environment id"),
    title: str = typer.Option(..., "--title", help="Bill title"),
    first_due: datetime = typer.Option(
        ..., "--first-due", formats=DATE_FORMATS, help="First due date"
    ),
    amount: str = typer.Option(..., "--amount", help="Total amount"),
    shares: list[str] = typer.Option(
        ..., "--share", help="USER_ID:PERCENTAGE, repeat for each participant"
    ),
    frequency: str = typer.Option(
        "MONTHLY", "--frequency", "-f", help="WEEKLY, MONTHLY or YEARLY"
    ),
    receiver_id: int | None = typer.Option(None, "--receiver"),
    receiver_name: str | None = typer.Option(None, "--receiver-name"),
    category: str | None = typer.Option(None, "--category"),
    first_bill: bool = typer.Option(
        True, "--first-bill/--no-first-bill", help="Also create the first bill now"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Create a recurring bill template."""
    if frequency.upper() not in ("WEEKLY", "MONTHLY", "YEARLY"):
        raise typer.BadParameter(f"Unknown frequency '{frequency}'")
    data = RecurringBillCreate(
        group_id=group_id,
        environment_id=environment_id,
        title=title,
        total_amount=parse_amount(amount),
        frequency=frequency.upper(),  # type: ignore[arg-type]
        first_due_date=first_due.date(),
        receiver_id=receiver_id,
        receiver_name=receiver_name,
        category=category,
        shares=parse_shares(shares),
        create_first_bill=first_bill,
    )
    with open_service(verbose) as service:
        created = service.recurrence.create_template(actor, data)
        template = created.template
        console.print(
            f"[green]✓ Created template {template.id}: {template.title}[/green] "
            f"(next due {template.next_due_date})"
        )
        if created.first_bill:
            console.print(f"  First bill: {created.first_bill.id}")


@recurring_app.command("list")
def recurring_list(
    environment_id: int = typer.Argument(..., help="Environment id"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """List an environment's recurring templates."""
    with open_service(verbose) as service:
        templates = service.recurrence.list_templates(environment_id)
        if not templates:
            console.print("[yellow]No recurring bills found.[/yellow]")
            return

        table = Table(title="Recurring Bills", show_header=True, header_style="bold magenta")
        table.add_column("ID", style="dim", width=6)
        table.add_column("Title", style="cyan")
        table.add_column("Total", justify="right", width=12)
        table.add_column("Frequency", width=9)
        table.add_column("Next due", width=10)
        table.add_column("Active", justify="center", width=6)
        for template in templates:
            table.add_row(
                str(template.id),
                template.title,
                format_money(template.total_amount),
                template.frequency,
                template.next_due_date.isoformat(),
                "✓" if template.active else "✗",
            )
        console.print(table)


@recurring_app.command("toggle")
def recurring_toggle(
    template_id: int = typer.Argument(..., help="Template id"),
    actor: int = typer.Option(..., "--as", help="Acting user id"),
    active: bool = typer.Option(
        ..., "--enable/--disable", help="Enable or disable future generation"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Enable or disable a recurring template."""
    with open_service(verbose) as service:
        service.recurrence.toggle(template_id, active, actor)
        console.print(
            f"[green]✓ Template {template_id} {'enabled' if active else 'disabled'}[/green]"
        )


@recurring_app.command("generate")
def recurring_generate(
    group_id: int | None = typer.Option(None, "--group", help="Only this group"),
    environment_id: int | None = typer.Option(None, "--env", help="Only this environment"),
    as_of: datetime | None = typer.Option(
        None, "--as-of", formats=DATE_FORMATS, help="Reference date (default today)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Create the bills of every recurring template that is due."""
    with open_service(verbose) as service:
        result = service.recurrence.generate_due(
            group_id=group_id,
            environment_id=environment_id,
            as_of=as_of.date() if as_of else None,
        )
        console.print(f"[green]✓ Generated {result.count} bills[/green]")
        if result.bills:
            display_bills(result.bills, title="Generated Bills")


# ============================================================================
# Dashboard
# ============================================================================


@dashboard_app.command("summary")
def dashboard_summary(
    actor: int = typer.Option(..., "--as", help="Viewing user id"),
    person_id: int | None = typer.Option(None, "--person", help="Defaults to --as"),
    group_id: int | None = typer.Option(None, "--group"),
    environment_id: int | None = typer.Option(None, "--env"),
    month: int | None = typer.Option(None, "--month", min=1, max=12),
    year: int | None = typer.Option(None, "--year"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show what a person owes and is owed."""
    window = parse_window(month, year)
    with open_service(verbose) as service:
        summary = service.balances.summary(
            actor,
            person_id=person_id,
            window=window,
            group_id=group_id,
            environment_id=environment_id,
        )
        console.print("\n[bold]Balance:[/bold]")
        console.print(f"  To pay:     {format_money(summary.total_to_pay)}")
        console.print(f"  To receive: {format_money(summary.total_to_receive)}")
        console.print(f"  Net:        {format_money(summary.net_balance)}")


@dashboard_app.command("debts")
def dashboard_debts(
    actor: int = typer.Option(..., "--as", help="Viewing user id"),
    person_id: int | None = typer.Option(None, "--person", help="Defaults to --as"),
    group_id: int | None = typer.Option(None, "--group"),
    environment_id: int | None = typer.Option(None, "--env"),
    month: int | None = typer.Option(None, "--month", min=1, max=12),
    year: int | None = typer.Option(None, "--year"),
    category: str | None = typer.Option(None, "--category"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """List a person's pending shares by due date."""
    window = parse_window(month, year)
    with open_service(verbose) as service:
        debts = service.balances.debts(
            actor,
            person_id=person_id,
            window=window,
            group_id=group_id,
            environment_id=environment_id,
            category=category,
        )
        display_debts(debts)


@dashboard_app.command("categories")
def dashboard_categories(
    actor: int = typer.Option(..., "--as", help="Viewing user id"),
    person_id: int | None = typer.Option(None, "--person", help="Defaults to --as"),
    group_id: int | None = typer.Option(None, "--group"),
    environment_id: int | None = typer.Option(None, "--env"),
    month: int | None = typer.Option(None, "--month", min=1, max=12),
    year: int | None = typer.Option(None, "--year"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show what a person owes per category."""
    window = parse_window(month, year)
    with open_service(verbose) as service:
        totals = service.balances.category_breakdown(
            actor,
            person_id=person_id,
            window=window,
            group_id=group_id,
            environment_id=environment_id,
        )
        if not totals:
            console.print("[green]Nothing pending.[/green]")
            return
        for total in totals:
            console.print(f"  {total.category:<24} {format_money(total.amount)}")


# ============================================================================
# Inbox
# ============================================================================


@inbox_app.command("list")
def inbox_list(
    actor: int = typer.Option(..., "--as", help="User id"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show notifications, newest first."""
    with open_service(verbose) as service:
        notifications = service.inbox.notifications(actor)
        if not notifications:
            console.print("[dim]No notifications.[/dim]")
            return
        for n in notifications:
            marker = "[dim]·[/dim]" if n.read else "[bold blue]●[/bold blue]"
            console.print(f"{marker} [{n.id}] [bold]{n.title}[/bold]: {n.message}")


@inbox_app.command("read")
def inbox_read(
    notification_id: int | None = typer.Argument(None, help="Omit to mark all"),
    actor: int = typer.Option(..., "--as", help="User id"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Mark notifications as read."""
    with open_service(verbose) as service:
        if notification_id is None:
            count = service.inbox.mark_all_read(actor)
            console.print(f"[green]✓ Marked {count} notifications read[/green]")
        else:
            service.inbox.mark_read(actor, notification_id)
            console.print(f"[green]✓ Marked notification {notification_id} read[/green]")


@inbox_app.command("history")
def inbox_history(
    actor: int = typer.Option(..., "--as", help="User id"),
    month: int | None = typer.Option(None, "--month", min=1, max=12),
    year: int | None = typer.Option(None, "--year"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show recent activity in the user's groups."""
    window = parse_window(month, year)
    with open_service(verbose) as service:
        activities = service.inbox.history(actor, window)
        if not activities:
            console.print("[dim]No activity.[/dim]")
            return
        for activity in activities:
            console.print(
                f"  {activity.created_at:%Y-%m-%d %H:%M} "
                f"[cyan]{activity.type}[/cyan] {activity.description}"
            )


if __name__ == "__main__":
    app()
