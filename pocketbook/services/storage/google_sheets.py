"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the persistent backend because:
1. Users can view and export their ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions: record_execution appends the transaction first and
  deletes it again if the recurring expense row can't be updated
- Limited query capabilities (we filter in Python)

The implementation follows the abstract interfaces, so the in-memory
backend and this one are interchangeable.
"""

import json
from datetime import datetime
from typing import Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from pocketbook.config import get_settings
from pocketbook.config.settings import GoogleSheetsSettings
from pocketbook.models.audit import AuditEvent, AuditEventType, AuditSeverity
from pocketbook.models.ledger import Category, Project, Subcategory, Transaction
from pocketbook.models.recurring import RecurrenceRule, RecurringExpense
from pocketbook.services.storage.interface import (
    AuditStorageInterface,
    CatalogStorageInterface,
    ConnectionError,
    DuplicateError,
    NotFoundError,
    RecurringExpenseStorageInterface,
    StorageError,
    TransactionStorageInterface,
)


logger = structlog.get_logger(__name__)


TRANSACTION_COLUMNS = [
    "id",
    "category_id",
    "subcategory_id",
    "project_id",
    "amount",
    "date",
    "note",
    "recurring_expense_id",
]

RECURRING_COLUMNS = [
    "id",
    "name",
    "amount",
    "note",
    "is_active",
    "recurrence_json",
    "next_execution_date",
    "last_execution_date",
    "created_date",
    "category_id",
    "subcategory_id",
    "project_id",
]

CATEGORY_COLUMNS = [
    "id",
    "name",
    "order",
    "subcategories_json",
]

PROJECT_COLUMNS = [
    "id",
    "name",
    "order",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


def _opt_uuid(value: str) -> Optional[UUID]:
    return UUID(value) if value else None


def _opt_datetime(value: str) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _cell(row: list, index: int) -> str:
    """Cell value, or "" for short rows."""
    try:
        return row[index] or ""
    except IndexError:
        return ""


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @property
    def settings(self) -> GoogleSheetsSettings:
        return self._settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get a worksheet, creating it with a header row if missing."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet


class _SheetTable:
    """
    Id-keyed rows of one worksheet.

    Column 0 always holds the entity id. Row numbers are 1-based and the
    header occupies row 1.
    """

    def __init__(self, client: GoogleSheetsClient, title: str, columns: list[str]):
        self._client = client
        self._title = title
        self._columns = columns

    def sheet(self) -> gspread.Worksheet:
        return self._client.get_worksheet(self._title, self._columns)

    def rows(self) -> list[list]:
        return [row for row in self.sheet().get_all_values()[1:] if row and row[0]]

    def find_row_number(self, entity_id: UUID) -> Optional[int]:
        for number, row in enumerate(self.sheet().get_all_values()[1:], start=2):
            if row and row[0] == str(entity_id):
                return number
        return None

    def append(self, row: list) -> None:
        self.sheet().append_row(row, value_input_option="RAW")

    def replace(self, row_number: int, row: list) -> None:
        self.sheet().update(
            range_name=f"A{row_number}",
            values=[row],
            value_input_option="RAW",
        )

    def delete(self, entity_id: UUID) -> bool:
        row_number = self.find_row_number(entity_id)
        if row_number is None:
            return False
        self.sheet().delete_rows(row_number)
        return True

    def upsert(self, entity_id: UUID, row: list) -> None:
        row_number = self.find_row_number(entity_id)
        if row_number is None:
            self.append(row)
        else:
            self.replace(row_number, row)


class GoogleSheetsLedgerStorage(
    TransactionStorageInterface,
    RecurringExpenseStorageInterface,
    CatalogStorageInterface,
):
    """
    Google Sheets implementation of the ledger, recurring and catalog storage.

    One worksheet per entity type. Nested values (recurrence rule,
    subcategories) are JSON-serialized into a single cell.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        settings = self._client.settings
        self._transactions = _SheetTable(
            self._client, settings.transactions_sheet_name, TRANSACTION_COLUMNS
        )
        self._recurring = _SheetTable(
            self._client, settings.recurring_sheet_name, RECURRING_COLUMNS
        )
        self._categories = _SheetTable(
            self._client, settings.categories_sheet_name, CATEGORY_COLUMNS
        )
        self._projects = _SheetTable(
            self._client, settings.projects_sheet_name, PROJECT_COLUMNS
        )

    # -------------------------------------------------------------------------
    # Row mapping
    # -------------------------------------------------------------------------

    def _transaction_to_row(self, transaction: Transaction) -> list:
        return [
            str(transaction.id),
            str(transaction.category_id),
            str(transaction.subcategory_id),
            str(transaction.project_id) if transaction.project_id else "",
            str(transaction.amount),
            transaction.date.isoformat(),
            transaction.note or "",
            str(transaction.recurring_expense_id) if transaction.recurring_expense_id else "",
        ]

    def _row_to_transaction(self, row: list) -> Transaction:
        return Transaction(
            id=UUID(_cell(row, 0)),
            category_id=UUID(_cell(row, 1)),
            subcategory_id=UUID(_cell(row, 2)),
            project_id=_opt_uuid(_cell(row, 3)),
            amount=int(_cell(row, 4)),
            date=datetime.fromisoformat(_cell(row, 5)),
            note=_cell(row, 6) or None,
            recurring_expense_id=_opt_uuid(_cell(row, 7)),
        )

    def _expense_to_row(self, expense: RecurringExpense) -> list:
        return [
            str(expense.id),
            expense.name,
            str(expense.amount),
            expense.note or "",
            str(expense.is_active),
            json.dumps(expense.recurrence.model_dump(mode="json")),
            expense.next_execution_date.isoformat(),
            expense.last_execution_date.isoformat() if expense.last_execution_date else "",
            expense.created_date.isoformat(),
            str(expense.category_id),
            str(expense.subcategory_id),
            str(expense.project_id) if expense.project_id else "",
        ]

    def _row_to_expense(self, row: list) -> RecurringExpense:
        return RecurringExpense(
            id=UUID(_cell(row, 0)),
            name=_cell(row, 1),
            amount=int(_cell(row, 2)),
            note=_cell(row, 3) or None,
            is_active=_cell(row, 4).lower() == "true",
            recurrence=RecurrenceRule(**json.loads(_cell(row, 5))),
            next_execution_date=datetime.fromisoformat(_cell(row, 6)),
            last_execution_date=_opt_datetime(_cell(row, 7)),
            created_date=datetime.fromisoformat(_cell(row, 8)),
            category_id=UUID(_cell(row, 9)),
            subcategory_id=UUID(_cell(row, 10)),
            project_id=_opt_uuid(_cell(row, 11)),
        )

    def _category_to_row(self, category: Category) -> list:
        return [
            str(category.id),
            category.name,
            str(category.order),
            json.dumps([s.model_dump(mode="json") for s in category.subcategories]),
        ]

    def _row_to_category(self, row: list) -> Category:
        subcategories_json = _cell(row, 3)
        subcategories = [
            Subcategory(**item) for item in json.loads(subcategories_json)
        ] if subcategories_json else []
        return Category(
            id=UUID(_cell(row, 0)),
            name=_cell(row, 1),
            order=int(_cell(row, 2) or 0),
            subcategories=subcategories,
        )

    def _project_to_row(self, project: Project) -> list:
        return [str(project.id), project.name, str(project.order)]

    def _row_to_project(self, row: list) -> Project:
        return Project(
            id=UUID(_cell(row, 0)),
            name=_cell(row, 1),
            order=int(_cell(row, 2) or 0),
        )

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    @retry(
        retry=retry_if_not_exception_type(DuplicateError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def save_transaction(self, transaction: Transaction) -> bool:
        try:
            if self._transactions.find_row_number(transaction.id) is not None:
                raise DuplicateError(f"Transaction already exists: {transaction.id}")
            self._transactions.append(self._transaction_to_row(transaction))
            return True
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save transaction: {e}")

    async def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        try:
            for row in self._transactions.rows():
                if row[0] == str(transaction_id):
                    return self._row_to_transaction(row)
            return None
        except Exception as e:
            raise StorageError(f"Failed to get transaction: {e}")

    async def update_transaction(self, transaction: Transaction) -> bool:
        try:
            row_number = self._transactions.find_row_number(transaction.id)
            if row_number is None:
                raise NotFoundError(f"Transaction not found: {transaction.id}")
            self._transactions.replace(row_number, self._transaction_to_row(transaction))
            return True
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update transaction: {e}")

    async def delete_transaction(self, transaction_id: UUID) -> bool:
        try:
            return self._transactions.delete(transaction_id)
        except Exception as e:
            raise StorageError(f"Failed to delete transaction: {e}")

    async def list_transactions(
        self,
        category_id: Optional[UUID] = None,
        subcategory_id: Optional[UUID] = None,
        project_id: Optional[UUID] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[Transaction]:
        try:
            rows = self._transactions.rows()
        except Exception as e:
            raise StorageError(f"Failed to list transactions: {e}")

        transactions = []
        for row in rows:
            try:
                transaction = self._row_to_transaction(row)
            except Exception:
                logger.warning("malformed_transaction_row", row_id=row[0])
                continue

            if category_id and transaction.category_id != category_id:
                continue
            if subcategory_id and transaction.subcategory_id != subcategory_id:
                continue
            if project_id and transaction.project_id != project_id:
                continue
            if date_from and transaction.date < date_from:
                continue
            if date_to and transaction.date >= date_to:
                continue
            transactions.append(transaction)

        # Newest first
        transactions.sort(key=lambda t: t.date, reverse=True)
        return transactions[:limit] if limit is not None else transactions

    # -------------------------------------------------------------------------
    # Recurring expenses
    # -------------------------------------------------------------------------

    @retry(
        retry=retry_if_not_exception_type(DuplicateError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def insert_recurring_expense(self, expense: RecurringExpense) -> bool:
        try:
            if self._recurring.find_row_number(expense.id) is not None:
                raise DuplicateError(f"Recurring expense already exists: {expense.id}")
            self._recurring.append(self._expense_to_row(expense))
            return True
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save recurring expense: {e}")

    async def update_recurring_expense(self, expense: RecurringExpense) -> bool:
        try:
            row_number = self._recurring.find_row_number(expense.id)
            if row_number is None:
                raise NotFoundError(f"Recurring expense not found: {expense.id}")
            self._recurring.replace(row_number, self._expense_to_row(expense))
            return True
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update recurring expense: {e}")

    async def delete_recurring_expense(self, expense_id: UUID) -> bool:
        try:
            return self._recurring.delete(expense_id)
        except Exception as e:
            raise StorageError(f"Failed to delete recurring expense: {e}")

    async def fetch_recurring_expenses(self) -> list[RecurringExpense]:
        try:
            rows = self._recurring.rows()
        except Exception as e:
            raise StorageError(f"Failed to list recurring expenses: {e}")

        expenses = []
        for row in rows:
            try:
                expenses.append(self._row_to_expense(row))
            except Exception:
                logger.warning("malformed_recurring_expense_row", row_id=row[0])
        expenses.sort(key=lambda e: e.next_execution_date)
        return expenses

    async def record_execution(
        self,
        expense: RecurringExpense,
        transaction: Transaction,
    ) -> bool:
        try:
            row_number = self._recurring.find_row_number(expense.id)
            if row_number is None:
                raise NotFoundError(f"Recurring expense not found: {expense.id}")
            self._transactions.append(self._transaction_to_row(transaction))
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to record execution: {e}")

        try:
            self._recurring.replace(row_number, self._expense_to_row(expense))
        except Exception as e:
            # Compensate so the ledger doesn't keep a transaction whose
            # definition was never advanced
            try:
                self._transactions.delete(transaction.id)
            except Exception as cleanup_error:
                logger.error(
                    "execution_rollback_failed",
                    transaction_id=str(transaction.id),
                    error=str(cleanup_error),
                )
            raise StorageError(f"Failed to record execution: {e}")
        return True

    # -------------------------------------------------------------------------
    # Catalog
    # -------------------------------------------------------------------------

    async def list_categories(self) -> list[Category]:
        try:
            categories = [self._row_to_category(row) for row in self._categories.rows()]
        except Exception as e:
            raise StorageError(f"Failed to list categories: {e}")
        categories.sort(key=lambda c: c.order)
        return categories

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def save_category(self, category: Category) -> bool:
        try:
            self._categories.upsert(category.id, self._category_to_row(category))
            return True
        except Exception as e:
            raise StorageError(f"Failed to save category: {e}")

    async def delete_category(self, category_id: UUID) -> bool:
        try:
            return self._categories.delete(category_id)
        except Exception as e:
            raise StorageError(f"Failed to delete category: {e}")

    async def list_projects(self) -> list[Project]:
        try:
            projects = [self._row_to_project(row) for row in self._projects.rows()]
        except Exception as e:
            raise StorageError(f"Failed to list projects: {e}")
        projects.sort(key=lambda p: p.order)
        return projects

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def save_project(self, project: Project) -> bool:
        try:
            self._projects.upsert(project.id, self._project_to_row(project))
            return True
        except Exception as e:
            raise StorageError(f"Failed to save project: {e}")

    async def delete_project(self, project_id: UUID) -> bool:
        try:
            return self._projects.delete(project_id)
        except Exception as e:
            raise StorageError(f"Failed to delete project: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._table = _SheetTable(
            self._client,
            self._client.settings.audit_sheet_name,
            AUDIT_COLUMNS,
        )

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        return AuditEvent(
            event_id=UUID(_cell(row, 0)),
            timestamp=datetime.fromisoformat(_cell(row, 1)),
            event_type=AuditEventType(_cell(row, 2)),
            severity=AuditSeverity(_cell(row, 3)),
            entity_type=_cell(row, 4) or None,
            entity_id=_opt_uuid(_cell(row, 5)),
            correlation_id=_opt_uuid(_cell(row, 6)),
            description=_cell(row, 7),
            details=json.loads(_cell(row, 8)) if _cell(row, 8) else {},
            error_message=_cell(row, 9) or None,
            is_user_action=_cell(row, 10).lower() == "true",
        )

    def _all_events(self) -> list[AuditEvent]:
        events = []
        for row in self._table.rows():
            try:
                events.append(self._row_to_event(row))
            except Exception:
                logger.warning("malformed_audit_row", row_id=row[0])
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            self._table.append(event.to_sheets_row())
            return True
        except Exception as e:
            # Audit logging must not break the main flow
            logger.warning("audit_sheet_write_failed", error=str(e))
            return False

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        try:
            events = [
                e for e in self._all_events()
                if e.entity_type == entity_type and e.entity_id == entity_id
            ]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        try:
            events = self._all_events()
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        # Newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
