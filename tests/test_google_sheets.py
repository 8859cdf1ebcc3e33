"""
Tests for the Google Sheets backend against an in-process worksheet fake.
"""

import asyncio
from datetime import datetime

import pytest

from pocketbook.config.settings import GoogleSheetsSettings
from pocketbook.models.audit import AuditEventBuilder, AuditEventType
from pocketbook.models.ledger import Category, Project, Subcategory, Transaction
from pocketbook.models.recurring import RecurrenceRule, RecurringExpense
from pocketbook.services.storage import (
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    NotFoundError,
    StorageError,
)


class FakeWorksheet:
    """The subset of gspread.Worksheet the storage uses."""

    def __init__(self, header):
        self.values = [list(header)]
        self.fail_updates = False

    def get_all_values(self):
        return [list(row) for row in self.values]

    def append_row(self, row, value_input_option=None):
        self.values.append(list(row))

    def update(self, range_name, values, value_input_option=None):
        if self.fail_updates:
            raise RuntimeError("quota exceeded")
        row_number = int(range_name[1:])
        self.values[row_number - 1] = list(values[0])

    def delete_rows(self, row_number):
        del self.values[row_number - 1]


class FakeSheetsClient(GoogleSheetsClient):
    def __init__(self, settings):
        super().__init__(settings)
        self.worksheets = {}

    def get_worksheet(self, title, columns, rows=1000):
        if title not in self.worksheets:
            self.worksheets[title] = FakeWorksheet(columns)
        return self.worksheets[title]


@pytest.fixture
def client(tmp_path):
    credentials = tmp_path / "credentials.json"
    credentials.write_text("{}", encoding="utf-8")
    return FakeSheetsClient(GoogleSheetsSettings(
        credentials_path=str(credentials),
        spreadsheet_id="spreadsheet-id",
    ))


@pytest.fixture
def sheets(client):
    return GoogleSheetsLedgerStorage(client)


@pytest.fixture
def food():
    return Category(
        name="Food & Drink",
        subcategories=[Subcategory(name="Lunch"), Subcategory(name="Dinner", order=1)],
    )


def make_expense(food) -> RecurringExpense:
    return RecurringExpense(
        name="Rent",
        amount=15000,
        recurrence=RecurrenceRule.monthly(1, 15),
        next_execution_date=datetime(2025, 2, 1),
        created_date=datetime(2025, 1, 20, 9, 0),
        category_id=food.id,
        subcategory_id=food.subcategories[0].id,
    )


class TestSheetsLedgerStorage:
    """Row mapping and the compensating write of record_execution."""

    def test_transaction_rows(self, sheets, client, food):
        transaction = Transaction(
            category_id=food.id,
            subcategory_id=food.subcategories[0].id,
            amount=120,
            date=datetime(2025, 1, 5, 12, 30),
            note="Ramen",
        )

        asyncio.run(sheets.save_transaction(transaction))

        assert asyncio.run(sheets.get_transaction(transaction.id)) == transaction
        assert client.worksheets["Transactions"].values[1][4] == "120"
        with pytest.raises(DuplicateError):
            asyncio.run(sheets.save_transaction(transaction))

    def test_update_and_delete_transaction(self, sheets, food):
        transaction = Transaction(
            category_id=food.id,
            subcategory_id=food.subcategories[0].id,
            amount=120,
        )
        asyncio.run(sheets.save_transaction(transaction))

        edited = transaction.model_copy(update={"amount": 150})
        asyncio.run(sheets.update_transaction(edited))
        assert asyncio.run(sheets.get_transaction(transaction.id)).amount == 150

        assert asyncio.run(sheets.delete_transaction(transaction.id)) is True
        assert asyncio.run(sheets.list_transactions()) == []
        with pytest.raises(NotFoundError):
            asyncio.run(sheets.update_transaction(edited))

    def test_malformed_rows_are_skipped(self, sheets, client, food):
        asyncio.run(sheets.list_transactions())
        client.worksheets["Transactions"].values.append(["not-a-uuid", "", "", "", "x"])

        assert asyncio.run(sheets.list_transactions()) == []

    def test_recurring_expense_round_trip(self, sheets, food):
        expense = make_expense(food)

        asyncio.run(sheets.insert_recurring_expense(expense))

        assert asyncio.run(sheets.fetch_recurring_expenses()) == [expense]

    def test_catalog_rows(self, sheets, food):
        project = Project(name="Trip")

        asyncio.run(sheets.save_category(food))
        renamed = food.model_copy(update={"name": "Meals"})
        asyncio.run(sheets.save_category(renamed))
        asyncio.run(sheets.save_project(project))

        assert asyncio.run(sheets.list_categories()) == [renamed]
        assert asyncio.run(sheets.list_projects()) == [project]
        assert asyncio.run(sheets.delete_project(project.id)) is True

    def test_record_execution(self, sheets, food):
        expense = make_expense(food)
        asyncio.run(sheets.insert_recurring_expense(expense))
        transaction = expense.build_transaction(datetime(2025, 2, 1, 8, 0))
        advanced = expense.model_copy(update={
            "last_execution_date": datetime(2025, 2, 1, 8, 0),
            "next_execution_date": datetime(2025, 2, 15),
        })

        asyncio.run(sheets.record_execution(advanced, transaction))

        assert asyncio.run(sheets.fetch_recurring_expenses()) == [advanced]
        assert asyncio.run(sheets.list_transactions()) == [transaction]

    def test_failed_execution_is_rolled_back(self, sheets, client, food):
        expense = make_expense(food)
        asyncio.run(sheets.insert_recurring_expense(expense))
        client.worksheets["RecurringExpenses"].fail_updates = True
        transaction = expense.build_transaction(datetime(2025, 2, 1, 8, 0))

        with pytest.raises(StorageError):
            asyncio.run(sheets.record_execution(expense, transaction))

        assert asyncio.run(sheets.list_transactions()) == []

    def test_execution_of_unknown_expense(self, sheets, food):
        expense = make_expense(food)
        with pytest.raises(NotFoundError):
            asyncio.run(sheets.record_execution(expense, expense.build_transaction(datetime.now())))


class TestSheetsAuditStorage:
    """Audit rows are appended and read back."""

    def test_append_and_query(self, client, food):
        audit = GoogleSheetsAuditStorage(client)
        event = AuditEventBuilder.catalog_changed(
            AuditEventType.CATEGORY_ADDED, "category", food.id, food.name
        )

        assert asyncio.run(audit.append_event(event)) is True

        assert asyncio.run(audit.get_events_by_entity("category", food.id)) == [event]
        assert asyncio.run(audit.get_recent_events(limit=5)) == [event]
