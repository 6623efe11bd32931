"""SQLite database operations for house-split."""

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any

from .models import (
    Activity,
    Bill,
    BillFilter,
    BillStatus,
    Category,
    DateWindow,
    DebtLine,
    Environment,
    Group,
    Member,
    Notification,
    Payment,
    RecurringBill,
    RecurringShare,
    Role,
    Share,
    ShareAllocation,
    ShareStatus,
    User,
)

logger = logging.getLogger(__name__)

# Columns of the bills table that a partial update may touch
_BILL_UPDATABLE_COLUMNS = {
    "title",
    "due_date",
    "total_amount",
    "installments",
    "pix_key",
    "payment_link",
    "attachment_url",
    "owner_id",
    "receiver_id",
    "receiver_name",
    "category",
}


def _to_db(value: Any) -> Any:
    """Convert a Python value into its stored representation."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


class Database:
    """SQLite database manager.

    The connection runs in autocommit mode; multi-statement writes must be
    wrapped in ``transaction()`` to be applied atomically.
    """

    def __init__(self, db_path: Path):
        """Initialize database connection."""
        self.db_path = db_path
        self.conn = sqlite3.connect(str(db_path), isolation_level=None)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        self._depth = 0
        self._init_schema()

    def _init_schema(self):
        """Initialize database schema."""
        cursor = self.conn.cursor()

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                email TEXT NOT NULL UNIQUE,
                created_at TIMESTAMP NOT NULL
            )
        """
        )

        # "groups" is an SQL keyword, hence the prefix
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS expense_groups (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                description TEXT,
                owner_id INTEGER NOT NULL REFERENCES users(id),
                archived INTEGER NOT NULL DEFAULT 0,
                created_at TIMESTAMP NOT NULL
            )
        """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS group_members (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                group_id INTEGER NOT NULL REFERENCES expense_groups(id),
                user_id INTEGER NOT NULL REFERENCES users(id),
                role TEXT NOT NULL,
                active INTEGER NOT NULL DEFAULT 1,
                created_at TIMESTAMP NOT NULL,
                UNIQUE (group_id, user_id)
            )
        """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS environments (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                group_id INTEGER NOT NULL REFERENCES expense_groups(id),
                name TEXT NOT NULL,
                description TEXT,
                archived INTEGER NOT NULL DEFAULT 0,
                created_at TIMESTAMP NOT NULL
            )
        """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS categories (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                group_id INTEGER NOT NULL REFERENCES expense_groups(id),
                name TEXT NOT NULL,
                archived INTEGER NOT NULL DEFAULT 0,
                created_at TIMESTAMP NOT NULL,
                UNIQUE (group_id, name)
            )
        """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS recurring_bills (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                group_id INTEGER NOT NULL REFERENCES expense_groups(id),
                environment_id INTEGER NOT NULL REFERENCES environments(id),
                title TEXT NOT NULL,
                total_amount TEXT NOT NULL,
                frequency TEXT NOT NULL,
                day_of_month INTEGER NOT NULL,
                next_due_date DATE NOT NULL,
                pix_key TEXT,
                payment_link TEXT,
                attachment_url TEXT,
                owner_id INTEGER NOT NULL REFERENCES users(id),
                receiver_id INTEGER REFERENCES users(id),
                receiver_name TEXT,
                category TEXT,
                active INTEGER NOT NULL DEFAULT 1,
                created_at TIMESTAMP NOT NULL
            )
        """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS recurring_shares (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                recurring_bill_id INTEGER NOT NULL
                    REFERENCES recurring_bills(id) ON DELETE CASCADE,
                user_id INTEGER NOT NULL REFERENCES users(id),
                percentage TEXT NOT NULL
            )
        """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS bills (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                group_id INTEGER NOT NULL REFERENCES expense_groups(id),
                environment_id INTEGER NOT NULL REFERENCES environments(id),
                title TEXT NOT NULL,
                due_date DATE NOT NULL,
                total_amount TEXT NOT NULL,
                installments INTEGER NOT NULL DEFAULT 1,
                pix_key TEXT,
                payment_link TEXT,
                attachment_url TEXT,
                owner_id INTEGER NOT NULL REFERENCES users(id),
                receiver_id INTEGER REFERENCES users(id),
                receiver_name TEXT,
                category TEXT,
                status TEXT NOT NULL DEFAULT 'OPEN',
                archived INTEGER NOT NULL DEFAULT 0,
                recurring_bill_id INTEGER REFERENCES recurring_bills(id),
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP NOT NULL
            )
        """
        )

        # One materialized bill per (template, due date)
        cursor.execute(
            """
            CREATE UNIQUE INDEX IF NOT EXISTS idx_bills_recurrence
            ON bills (recurring_bill_id, due_date)
            WHERE recurring_bill_id IS NOT NULL
        """
        )

        cursor.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_bills_environment_due
            ON bills (environment_id, due_date)
        """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS bill_shares (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                bill_id INTEGER NOT NULL REFERENCES bills(id) ON DELETE CASCADE,
                user_id INTEGER NOT NULL REFERENCES users(id),
                percentage TEXT NOT NULL,
                amount TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'PENDING',
                created_at TIMESTAMP NOT NULL
            )
        """
        )

        cursor.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_bill_shares_user_status
            ON bill_shares (user_id, status)
        """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS payments (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                bill_id INTEGER NOT NULL REFERENCES bills(id),
                from_user_id INTEGER NOT NULL REFERENCES users(id),
                to_user_id INTEGER NOT NULL REFERENCES users(id),
                amount TEXT NOT NULL,
                method TEXT,
                status TEXT NOT NULL,
                paid_at TIMESTAMP NOT NULL
            )
        """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS activities (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                group_id INTEGER NOT NULL REFERENCES expense_groups(id),
                user_id INTEGER REFERENCES users(id),
                type TEXT NOT NULL,
                description TEXT NOT NULL,
                created_at TIMESTAMP NOT NULL
            )
        """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS notifications (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL REFERENCES users(id),
                title TEXT NOT NULL,
                message TEXT NOT NULL,
                type TEXT NOT NULL,
                read INTEGER NOT NULL DEFAULT 0,
                read_at TIMESTAMP,
                created_at TIMESTAMP NOT NULL
            )
        """
        )

    def close(self):
        """Close database connection."""
        self.conn.close()

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """
        Run a block of writes atomically.

        Takes the write lock up front (BEGIN IMMEDIATE) so concurrent writers
        serialize instead of interleaving. Nested calls join the outer
        transaction; any exception rolls everything back and propagates.
        """
        if self._depth:
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
            return

        self.conn.execute("BEGIN IMMEDIATE")
        self._depth = 1
        try:
            yield
        except BaseException:
            self.conn.rollback()
            logger.debug("Transaction rolled back")
            raise
        else:
            self.conn.commit()
        finally:
            self._depth = 0

    def _insert(self, sql: str, params: tuple[Any, ...]) -> int:
        cursor = self.conn.execute(sql, tuple(_to_db(p) for p in params))
        row_id = cursor.lastrowid
        if row_id is None:
            raise RuntimeError(f"Failed to insert row: {sql.split('(')[0].strip()}")
        return row_id

    # ========================================================================
    # Users
    # ========================================================================

    def insert_user(self, user: User) -> User:
        """Save a user."""
        user.id = self._insert(
            "INSERT INTO users (name, email, created_at) VALUES (?, ?, ?)",
            (user.name, user.email, user.created_at),
        )
        return user

    def get_user(self, user_id: int) -> User | None:
        """Get a user by id."""
        row = self.conn.execute(
            "SELECT * FROM users WHERE id = ?", (user_id,)
        ).fetchone()
        return _row_to_user(row) if row else None

    def get_user_by_email(self, email: str) -> User | None:
        """Get a user by e-mail."""
        row = self.conn.execute(
            "SELECT * FROM users WHERE email = ?", (email,)
        ).fetchone()
        return _row_to_user(row) if row else None

    def find_users_by_name(self, name: str) -> list[User]:
        """Get all users with exactly this name, oldest first."""
        rows = self.conn.execute(
            "SELECT * FROM users WHERE name = ? ORDER BY id", (name,)
        ).fetchall()
        return [_row_to_user(row) for row in rows]

    # ========================================================================
    # Groups and members
    # ========================================================================

    def insert_group(self, group: Group) -> Group:
        """Save a group."""
        group.id = self._insert(
            """
            INSERT INTO expense_groups (
                name, description, owner_id, archived, created_at
            ) VALUES (?, ?, ?, ?, ?)
            """,
            (
                group.name,
                group.description,
                group.owner_id,
                group.archived,
                group.created_at,
            ),
        )
        return group

    def get_group(self, group_id: int) -> Group | None:
        """Get a group by id (archived groups included)."""
        row = self.conn.execute(
            "SELECT * FROM expense_groups WHERE id = ?", (group_id,)
        ).fetchone()
        return _row_to_group(row) if row else None

    def set_group_archived(self, group_id: int, archived: bool = True):
        """Archive or restore a group."""
        self.conn.execute(
            "UPDATE expense_groups SET archived = ? WHERE id = ?",
            (int(archived), group_id),
        )

    def list_groups_for_user(self, user_id: int) -> list[Group]:
        """Get the non-archived groups a user is an active member of."""
        rows = self.conn.execute(
            """
            SELECT g.* FROM expense_groups g
            JOIN group_members m ON m.group_id = g.id
            WHERE m.user_id = ? AND m.active = 1 AND g.archived = 0
            ORDER BY g.created_at DESC, g.id DESC
            """,
            (user_id,),
        ).fetchall()
        return [_row_to_group(row) for row in rows]

    def get_active_group_ids(self, user_id: int) -> list[int]:
        """Get ids of non-archived groups where the user is an active member."""
        rows = self.conn.execute(
            """
            SELECT g.id FROM expense_groups g
            JOIN group_members m ON m.group_id = g.id
            WHERE m.user_id = ? AND m.active = 1 AND g.archived = 0
            ORDER BY g.id
            """,
            (user_id,),
        ).fetchall()
        return [row["id"] for row in rows]

    def upsert_member(self, group_id: int, user_id: int, role: Role) -> Member:
        """Add a member, re-activating a previous membership if there is one."""
        self.conn.execute(
            """
            INSERT INTO group_members (group_id, user_id, role, active, created_at)
            VALUES (?, ?, ?, 1, ?)
            ON CONFLICT(group_id, user_id) DO UPDATE SET active = 1
            """,
            (group_id, user_id, role, datetime.now().isoformat()),
        )
        member = self.get_member(group_id, user_id)
        if member is None:
            raise RuntimeError("Failed to upsert group member")
        return member

    def get_member(self, group_id: int, user_id: int) -> Member | None:
        """Get a membership (active or not)."""
        row = self.conn.execute(
            "SELECT * FROM group_members WHERE group_id = ? AND user_id = ?",
            (group_id, user_id),
        ).fetchone()
        return _row_to_member(row) if row else None

    def list_members(self, group_id: int, active_only: bool = True) -> list[Member]:
        """Get the members of a group in joining order."""
        sql = "SELECT * FROM group_members WHERE group_id = ?"
        if active_only:
            sql += " AND active = 1"
        rows = self.conn.execute(sql + " ORDER BY id", (group_id,)).fetchall()
        return [_row_to_member(row) for row in rows]

    def set_member_active(self, member_id: int, active: bool):
        """Activate or deactivate a membership."""
        self.conn.execute(
            "UPDATE group_members SET active = ? WHERE id = ?",
            (int(active), member_id),
        )

    # ========================================================================
    # Environments and categories
    # ========================================================================

    def insert_environment(self, environment: Environment) -> Environment:
        """Save an environment."""
        environment.id = self._insert(
            """
            INSERT INTO environments (
                group_id, name, description, archived, created_at
            ) VALUES (?, ?, ?, ?, ?)
            """,
            (
                environment.group_id,
                environment.name,
                environment.description,
                environment.archived,
                environment.created_at,
            ),
        )
        return environment

    def get_environment(self, environment_id: int) -> Environment | None:
        """Get an environment by id (archived environments included)."""
        row = self.conn.execute(
            "SELECT * FROM environments WHERE id = ?", (environment_id,)
        ).fetchone()
        return _row_to_environment(row) if row else None

    def list_environments(self, group_id: int) -> list[Environment]:
        """Get the non-archived environments of a group, newest first."""
        rows = self.conn.execute(
            """
            SELECT * FROM environments
            WHERE group_id = ? AND archived = 0
            ORDER BY created_at DESC, id DESC
            """,
            (group_id,),
        ).fetchall()
        return [_row_to_environment(row) for row in rows]

    def set_environment_archived(self, environment_id: int, archived: bool = True):
        """Archive or restore an environment."""
        self.conn.execute(
            "UPDATE environments SET archived = ? WHERE id = ?",
            (int(archived), environment_id),
        )

    def upsert_category(self, group_id: int, name: str) -> Category:
        """Create a category or re-activate an archived one with the same name."""
        self.conn.execute(
            """
            INSERT INTO categories (group_id, name, archived, created_at)
            VALUES (?, ?, 0, ?)
            ON CONFLICT(group_id, name) DO UPDATE SET archived = 0
            """,
            (group_id, name, datetime.now().isoformat()),
        )
        row = self.conn.execute(
            "SELECT * FROM categories WHERE group_id = ? AND name = ?",
            (group_id, name),
        ).fetchone()
        return _row_to_category(row)

    def list_categories(self, group_id: int) -> list[Category]:
        """Get the non-archived categories of a group by name."""
        rows = self.conn.execute(
            """
            SELECT * FROM categories
            WHERE group_id = ? AND archived = 0
            ORDER BY name
            """,
            (group_id,),
        ).fetchall()
        return [_row_to_category(row) for row in rows]

    # ========================================================================
    # Bills and shares
    # ========================================================================

    def insert_bill(self, bill: Bill) -> int:
        """Save a bill row (shares are inserted separately)."""
        return self._insert(
            """
            INSERT INTO bills (
                group_id, environment_id, title, due_date, total_amount,
                installments, pix_key, payment_link, attachment_url,
                owner_id, receiver_id, receiver_name, category, status,
                archived, recurring_bill_id, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                bill.group_id,
                bill.environment_id,
                bill.title,
                bill.due_date,
                bill.total_amount,
                bill.installments,
                bill.pix_key,
                bill.payment_link,
                bill.attachment_url,
                bill.owner_id,
                bill.receiver_id,
                bill.receiver_name,
                bill.category,
                bill.status,
                bill.archived,
                bill.recurring_bill_id,
                bill.created_at,
                bill.updated_at,
            ),
        )

    def insert_shares(self, bill_id: int, allocations: list[ShareAllocation]):
        """Save the derived shares of a bill."""
        now = datetime.now().isoformat()
        self.conn.executemany(
            """
            INSERT INTO bill_shares (
                bill_id, user_id, percentage, amount, status, created_at
            ) VALUES (?, ?, ?, ?, 'PENDING', ?)
            """,
            [
                (bill_id, a.user_id, str(a.percentage), str(a.amount), now)
                for a in allocations
            ],
        )

    def delete_shares(self, bill_id: int):
        """Remove every share of a bill."""
        self.conn.execute("DELETE FROM bill_shares WHERE bill_id = ?", (bill_id,))

    def update_share_amount(self, share_id: int, amount: Decimal):
        """Store a re-derived share amount."""
        self.conn.execute(
            "UPDATE bill_shares SET amount = ? WHERE id = ?", (str(amount), share_id)
        )

    def set_share_status(self, share_id: int, status: ShareStatus):
        """Set a share's payment status."""
        self.conn.execute(
            "UPDATE bill_shares SET status = ? WHERE id = ?", (status, share_id)
        )

    def count_pending_shares(self, bill_id: int) -> int:
        """Count the shares of a bill still waiting for payment."""
        row = self.conn.execute(
            """
            SELECT COUNT(*) AS pending FROM bill_shares
            WHERE bill_id = ? AND status = 'PENDING'
            """,
            (bill_id,),
        ).fetchone()
        return int(row["pending"])

    def get_bill(self, bill_id: int) -> Bill | None:
        """Get a bill with its shares (archived bills included)."""
        row = self.conn.execute(
            "SELECT * FROM bills WHERE id = ?", (bill_id,)
        ).fetchone()
        if not row:
            return None
        return self._attach_shares([_row_to_bill(row)])[0]

    def update_bill(self, bill_id: int, fields: dict[str, Any]):
        """Apply a set of column values to a bill and bump updated_at."""
        unknown = set(fields) - _BILL_UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update bill columns: {sorted(unknown)}")

        assignments = [f"{column} = ?" for column in fields]
        params = [_to_db(value) for value in fields.values()]
        assignments.append("updated_at = ?")
        params.append(datetime.now().isoformat())
        self.conn.execute(
            f"UPDATE bills SET {', '.join(assignments)} WHERE id = ?",
            (*params, bill_id),
        )

    def set_bill_status(self, bill_id: int, status: BillStatus):
        """Set a bill's payment status."""
        self.conn.execute(
            "UPDATE bills SET status = ?, updated_at = ? WHERE id = ?",
            (status, datetime.now().isoformat(), bill_id),
        )

    def set_bill_archived(self, bill_id: int):
        """Archive a bill."""
        self.conn.execute(
            "UPDATE bills SET archived = 1, updated_at = ? WHERE id = ?",
            (datetime.now().isoformat(), bill_id),
        )

    def list_bills(
        self,
        environment_id: int,
        window: DateWindow | None = None,
        status: BillStatus | None = None,
    ) -> list[Bill]:
        """Get the non-archived bills of an environment by due date."""
        sql = "SELECT * FROM bills WHERE environment_id = ? AND archived = 0"
        params: list[Any] = [environment_id]
        if window:
            sql += " AND due_date >= ? AND due_date < ?"
            params.extend([window.start.isoformat(), window.end.isoformat()])
        if status:
            sql += " AND status = ?"
            params.append(status)
        rows = self.conn.execute(sql + " ORDER BY due_date, id", params).fetchall()
        return self._attach_shares([_row_to_bill(row) for row in rows])

    def _attach_shares(self, bills: list[Bill]) -> list[Bill]:
        if not bills:
            return bills
        by_id = {bill.id: bill for bill in bills}
        placeholders = ", ".join("?" for _ in by_id)
        rows = self.conn.execute(
            f"SELECT * FROM bill_shares WHERE bill_id IN ({placeholders}) ORDER BY id",
            list(by_id),
        ).fetchall()
        for row in rows:
            by_id[row["bill_id"]].shares.append(_row_to_share(row))
        return bills

    # ========================================================================
    # Payments
    # ========================================================================

    def insert_payment(self, payment: Payment) -> Payment:
        """Append a payment to the log."""
        payment.id = self._insert(
            """
            INSERT INTO payments (
                bill_id, from_user_id, to_user_id, amount, method, status, paid_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                payment.bill_id,
                payment.from_user_id,
                payment.to_user_id,
                payment.amount,
                payment.method,
                payment.status,
                payment.paid_at,
            ),
        )
        return payment

    def list_payments(self, bill_id: int) -> list[Payment]:
        """Get the payments of a bill, oldest first."""
        rows = self.conn.execute(
            "SELECT * FROM payments WHERE bill_id = ? ORDER BY paid_at, id",
            (bill_id,),
        ).fetchall()
        return [_row_to_payment(row) for row in rows]

    # ========================================================================
    # Recurring bills
    # ========================================================================

    def insert_recurring_bill(self, template: RecurringBill) -> RecurringBill:
        """Save a recurring template together with its share percentages."""
        template.id = self._insert(
            """
            INSERT INTO recurring_bills (
                group_id, environment_id, title, total_amount, frequency,
                day_of_month, next_due_date, pix_key, payment_link,
                attachment_url, owner_id, receiver_id, receiver_name,
                category, active, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                template.group_id,
                template.environment_id,
                template.title,
                template.total_amount,
                template.frequency,
                template.day_of_month,
                template.next_due_date,
                template.pix_key,
                template.payment_link,
                template.attachment_url,
                template.owner_id,
                template.receiver_id,
                template.receiver_name,
                template.category,
                template.active,
                template.created_at,
            ),
        )
        for share in template.shares:
            share.recurring_bill_id = template.id
            share.id = self._insert(
                """
                INSERT INTO recurring_shares (recurring_bill_id, user_id, percentage)
                VALUES (?, ?, ?)
                """,
                (template.id, share.user_id, share.percentage),
            )
        return template

    def get_recurring_bill(self, template_id: int) -> RecurringBill | None:
        """Get a recurring template with its share percentages."""
        row = self.conn.execute(
            "SELECT * FROM recurring_bills WHERE id = ?", (template_id,)
        ).fetchone()
        if not row:
            return None
        return self._attach_recurring_shares([_row_to_recurring_bill(row)])[0]

    def list_recurring_bills(self, environment_id: int) -> list[RecurringBill]:
        """Get the templates of an environment, newest first."""
        rows = self.conn.execute(
            """
            SELECT * FROM recurring_bills
            WHERE environment_id = ?
            ORDER BY created_at DESC, id DESC
            """,
            (environment_id,),
        ).fetchall()
        return self._attach_recurring_shares(
            [_row_to_recurring_bill(row) for row in rows]
        )

    def find_due_recurring_bills(
        self,
        as_of: date,
        group_id: int | None = None,
        environment_id: int | None = None,
    ) -> list[RecurringBill]:
        """Get active templates due on or before as_of in live groups/environments."""
        sql = """
            SELECT r.* FROM recurring_bills r
            JOIN expense_groups g ON g.id = r.group_id
            JOIN environments e ON e.id = r.environment_id
            WHERE r.active = 1 AND r.next_due_date <= ?
              AND g.archived = 0 AND e.archived = 0
        """
        params: list[Any] = [as_of.isoformat()]
        if group_id is not None:
            sql += " AND r.group_id = ?"
            params.append(group_id)
        if environment_id is not None:
            sql += " AND r.environment_id = ?"
            params.append(environment_id)
        rows = self.conn.execute(
            sql + " ORDER BY r.next_due_date, r.id", params
        ).fetchall()
        return self._attach_recurring_shares(
            [_row_to_recurring_bill(row) for row in rows]
        )

    def find_recurring_bill_id(self, template_id: int, due_date: date) -> int | None:
        """Get the bill already materialized for a template and due date, if any."""
        row = self.conn.execute(
            "SELECT id FROM bills WHERE recurring_bill_id = ? AND due_date = ?",
            (template_id, due_date.isoformat()),
        ).fetchone()
        return int(row["id"]) if row else None

    def set_recurring_next_due_date(self, template_id: int, next_due_date: date):
        """Move a template's next due date."""
        self.conn.execute(
            "UPDATE recurring_bills SET next_due_date = ? WHERE id = ?",
            (next_due_date.isoformat(), template_id),
        )

    def set_recurring_active(self, template_id: int, active: bool):
        """Enable or disable a template."""
        self.conn.execute(
            "UPDATE recurring_bills SET active = ? WHERE id = ?",
            (int(active), template_id),
        )

    def _attach_recurring_shares(
        self, templates: list[RecurringBill]
    ) -> list[RecurringBill]:
        if not templates:
            return templates
        by_id = {template.id: template for template in templates}
        placeholders = ", ".join("?" for _ in by_id)
        rows = self.conn.execute(
            f"""
            SELECT * FROM recurring_shares
            WHERE recurring_bill_id IN ({placeholders})
            ORDER BY id
            """,
            list(by_id),
        ).fetchall()
        for row in rows:
            by_id[row["recurring_bill_id"]].shares.append(
                RecurringShare(
                    id=row["id"],
                    recurring_bill_id=row["recurring_bill_id"],
                    user_id=row["user_id"],
                    percentage=Decimal(row["percentage"]),
                )
            )
        return templates

    # ========================================================================
    # Activities and notifications
    # ========================================================================

    def insert_activity(self, activity: Activity) -> Activity:
        """Append an activity entry."""
        activity.id = self._insert(
            """
            INSERT INTO activities (group_id, user_id, type, description, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                activity.group_id,
                activity.user_id,
                activity.type,
                activity.description,
                activity.created_at,
            ),
        )
        return activity

    def list_activities(
        self, user_id: int, window: DateWindow | None = None, limit: int = 50
    ) -> list[Activity]:
        """Get activities authored by the user or in any group they joined."""
        sql = """
            SELECT * FROM activities
            WHERE (user_id = ? OR group_id IN (
                SELECT group_id FROM group_members WHERE user_id = ?
            ))
        """
        params: list[Any] = [user_id, user_id]
        if window:
            sql += " AND created_at >= ? AND created_at < ?"
            params.extend([window.start.isoformat(), window.end.isoformat()])
        sql += " ORDER BY created_at DESC, id DESC LIMIT ?"
        params.append(limit)
        rows = self.conn.execute(sql, params).fetchall()
        return [
            Activity(
                id=row["id"],
                group_id=row["group_id"],
                user_id=row["user_id"],
                type=row["type"],
                description=row["description"],
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in rows
        ]

    def insert_notification(self, notification: Notification) -> Notification:
        """Save an inbox entry."""
        notification.id = self._insert(
            """
            INSERT INTO notifications (
                user_id, title, message, type, read, read_at, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                notification.user_id,
                notification.title,
                notification.message,
                notification.type,
                notification.read,
                notification.read_at,
                notification.created_at,
            ),
        )
        return notification

    def list_notifications(self, user_id: int, limit: int = 100) -> list[Notification]:
        """Get a user's inbox, newest first."""
        rows = self.conn.execute(
            """
            SELECT * FROM notifications WHERE user_id = ?
            ORDER BY created_at DESC, id DESC LIMIT ?
            """,
            (user_id, limit),
        ).fetchall()
        return [_row_to_notification(row) for row in rows]

    def mark_notifications_read(
        self, user_id: int, notification_id: int | None = None
    ) -> int:
        """Mark one (or every unread) notification of a user as read."""
        sql = "UPDATE notifications SET read = 1, read_at = ? WHERE user_id = ?"
        params: list[Any] = [datetime.now().isoformat(), user_id]
        if notification_id is None:
            sql += " AND read = 0"
        else:
            sql += " AND id = ?"
            params.append(notification_id)
        return self.conn.execute(sql, params).rowcount

    # ========================================================================
    # Balance queries
    # ========================================================================

    def find_pending_debts(self, user_id: int, bill_filter: BillFilter) -> list[DebtLine]:
        """Get a user's pending shares with display data, by due date."""
        where, params = _bill_filter_clause(bill_filter)
        rows = self.conn.execute(
            f"""
            SELECT
                s.id AS share_id, s.amount AS share_amount,
                s.percentage AS share_percentage,
                b.id AS bill_id, b.title, b.category, b.due_date, b.total_amount,
                b.group_id, g.name AS group_name,
                b.environment_id, e.name AS environment_name,
                s.user_id AS payer_user_id, payer.name AS payer_name,
                b.receiver_id, receiver.name AS receiver_user_name,
                b.receiver_name,
                b.owner_id, owner.name AS owner_user_name
            FROM bill_shares s
            JOIN bills b ON b.id = s.bill_id
            JOIN expense_groups g ON g.id = b.group_id
            JOIN environments e ON e.id = b.environment_id
            JOIN users payer ON payer.id = s.user_id
            LEFT JOIN users owner ON owner.id = b.owner_id
            LEFT JOIN users receiver ON receiver.id = b.receiver_id
            WHERE s.user_id = ? AND s.status = 'PENDING' AND {where}
            ORDER BY b.due_date, s.id
            """,
            [user_id, *params],
        ).fetchall()
        return [
            DebtLine(
                share_id=row["share_id"],
                bill_id=row["bill_id"],
                group_id=row["group_id"],
                group_name=row["group_name"],
                environment_id=row["environment_id"],
                environment_name=row["environment_name"],
                title=row["title"],
                category=row["category"],
                due_date=date.fromisoformat(row["due_date"]),
                total_amount=Decimal(row["total_amount"]),
                share_amount=Decimal(row["share_amount"]),
                share_percentage=Decimal(row["share_percentage"]),
                payer_user_id=row["payer_user_id"],
                payer_name=row["payer_name"],
                receiver_user_id=row["receiver_id"],
                receiver_user_name=row["receiver_user_name"],
                receiver_name=row["receiver_name"],
                owner_user_id=row["owner_id"],
                owner_user_name=row["owner_user_name"],
            )
            for row in rows
        ]

    def find_receivable_shares(
        self, receiver_id: int, bill_filter: BillFilter
    ) -> list[Share]:
        """Get pending shares of other members on bills the user receives."""
        where, params = _bill_filter_clause(bill_filter)
        rows = self.conn.execute(
            f"""
            SELECT s.* FROM bill_shares s
            JOIN bills b ON b.id = s.bill_id
            WHERE b.receiver_id = ? AND s.user_id != ?
              AND s.status = 'PENDING' AND {where}
            ORDER BY b.due_date, s.id
            """,
            [receiver_id, receiver_id, *params],
        ).fetchall()
        return [_row_to_share(row) for row in rows]


# ============================================================================
# Row mapping
# ============================================================================


def _bill_filter_clause(bill_filter: BillFilter) -> tuple[str, list[Any]]:
    """Build the WHERE fragment (on alias ``b``) for a bill population."""
    clauses = ["b.archived = 0"]
    params: list[Any] = []
    if bill_filter.group_ids is not None:
        if not bill_filter.group_ids:
            clauses.append("0")
        else:
            placeholders = ", ".join("?" for _ in bill_filter.group_ids)
            clauses.append(f"b.group_id IN ({placeholders})")
            params.extend(bill_filter.group_ids)
    if bill_filter.environment_id is not None:
        clauses.append("b.environment_id = ?")
        params.append(bill_filter.environment_id)
    if bill_filter.window:
        clauses.append("b.due_date >= ? AND b.due_date < ?")
        params.extend(
            [bill_filter.window.start.isoformat(), bill_filter.window.end.isoformat()]
        )
    return " AND ".join(clauses), params


def _row_to_user(row: sqlite3.Row) -> User:
    return User(
        id=row["id"],
        name=row["name"],
        email=row["email"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _row_to_group(row: sqlite3.Row) -> Group:
    return Group(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        owner_id=row["owner_id"],
        archived=bool(row["archived"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _row_to_member(row: sqlite3.Row) -> Member:
    return Member(
        id=row["id"],
        group_id=row["group_id"],
        user_id=row["user_id"],
        role=row["role"],
        active=bool(row["active"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _row_to_environment(row: sqlite3.Row) -> Environment:
    return Environment(
        id=row["id"],
        group_id=row["group_id"],
        name=row["name"],
        description=row["description"],
        archived=bool(row["archived"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _row_to_category(row: sqlite3.Row) -> Category:
    return Category(
        id=row["id"],
        group_id=row["group_id"],
        name=row["name"],
        archived=bool(row["archived"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _row_to_bill(row: sqlite3.Row) -> Bill:
    return Bill(
        id=row["id"],
        group_id=row["group_id"],
        environment_id=row["environment_id"],
        title=row["title"],
        due_date=date.fromisoformat(row["due_date"]),
        total_amount=Decimal(row["total_amount"]),
        installments=row["installments"],
        pix_key=row["pix_key"],
        payment_link=row["payment_link"],
        attachment_url=row["attachment_url"],
        owner_id=row["owner_id"],
        receiver_id=row["receiver_id"],
        receiver_name=row["receiver_name"],
        category=row["category"],
        status=row["status"],
        archived=bool(row["archived"]),
        recurring_bill_id=row["recurring_bill_id"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def _row_to_share(row: sqlite3.Row) -> Share:
    return Share(
        id=row["id"],
        bill_id=row["bill_id"],
        user_id=row["user_id"],
        percentage=Decimal(row["percentage"]),
        amount=Decimal(row["amount"]),
        status=row["status"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _row_to_payment(row: sqlite3.Row) -> Payment:
    return Payment(
        id=row["id"],
        bill_id=row["bill_id"],
        from_user_id=row["from_user_id"],
        to_user_id=row["to_user_id"],
        amount=Decimal(row["amount"]),
        method=row["method"],
        status=row["status"],
        paid_at=datetime.fromisoformat(row["paid_at"]),
    )


def _row_to_recurring_bill(row: sqlite3.Row) -> RecurringBill:
    return RecurringBill(
        id=row["id"],
        group_id=row["group_id"],
        environment_id=row["environment_id"],
        title=row["title"],
        total_amount=Decimal(row["total_amount"]),
        frequency=row["frequency"],
        day_of_month=row["day_of_month"],
        next_due_date=date.fromisoformat(row["next_due_date"]),
        pix_key=row["pix_key"],
        payment_link=row["payment_link"],
        attachment_url=row["attachment_url"],
        owner_id=row["owner_id"],
        receiver_id=row["receiver_id"],
        receiver_name=row["receiver_name"],
        category=row["category"],
        active=bool(row["active"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _row_to_notification(row: sqlite3.Row) -> Notification:
    return Notification(
        id=row["id"],
        user_id=row["user_id"],
        title=row["title"],
        message=row["message"],
        type=row["type"],
        read=bool(row["read"]),
        read_at=datetime.fromisoformat(row["read_at"]) if row["read_at"] else None,
        created_at=datetime.fromisoformat(row["created_at"]),
    )
