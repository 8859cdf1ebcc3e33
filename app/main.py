"""
Streamlit Frontend for Pocketbook

DESIGN PRINCIPLES:
1. Simple, clear interface
2. Amounts are always shown in the home currency after conversion
3. Clear error messages in simple language
4. Visual feedback for all operations
5. No hidden actions: every automatically recorded expense is announced

Streamlit reruns the script on every interaction, so there is no
long-lived event loop for the background timer. Instead the due check
runs on launch and again on the first interaction after the check
interval has passed, plus on demand from the Recurring page.
"""

import asyncio
import calendar
from datetime import date, datetime
from decimal import Decimal

import streamlit as st

from pocketbook.config import get_settings, validate_all_settings
from pocketbook.ledger import CatalogError
from pocketbook.models.currency import Currency
from pocketbook.models.recurring import RecurrenceType
from pocketbook.orchestrator import AppComponents, create_app_components, initialize_app
from pocketbook.queries import month_range
from pocketbook.services.storage import NotFoundError, StorageError
from pocketbook.validation import RecurringExpenseValidationError


# Page configuration
st.set_page_config(
    page_title="Pocketbook",
    page_icon="💰",
    layout="wide",
    initial_sidebar_state="expanded",
)


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_components() -> AppComponents:
    """Get or create application components (cached)."""
    try:
        components = create_app_components(use_storage=True)
    except Exception as e:
        st.error(f"Failed to initialize: {e}")
        components = create_app_components(use_storage=False)
    run_async(initialize_app(components))
    return components


def home_format(amount) -> str:
    home = get_settings().rates.home_currency
    try:
        return Currency(home).format_amount(amount)
    except ValueError:
        return f"{home} {amount:,}"


def run_periodic_check(components: AppComponents) -> None:
    """Run the due check when the check interval has passed."""
    interval = get_settings().scheduler.check_interval_seconds
    last_check = st.session_state.get("last_recurring_check")
    now = datetime.now()
    if last_check is not None and (now - last_check).total_seconds() < interval:
        return

    report = run_async(components.scheduler.tick(now))
    if not report.busy:
        st.session_state.last_recurring_check = now


def refresh_rates_if_stale(components: AppComponents) -> None:
    """Refresh exchange rates when a rate-dependent page is shown."""
    run_async(components.currency.update_rates_if_needed())


def show_notifications(components: AppComponents) -> None:
    drain = getattr(components.notifier, "drain", None)
    if drain is None:
        return
    for count in drain():
        st.toast(f"🔁 {count} recurring expense(s) were recorded automatically")


def category_pickers(components: AppComponents, key: str):
    """Category / subcategory / project selectors. Returns their ids."""
    categories = run_async(components.catalog.list_categories())
    projects = run_async(components.catalog.list_projects())
    if not categories:
        st.warning("Add a category first (Categories page).")
        return None, None, None

    category = st.selectbox(
        "Category",
        categories,
        format_func=lambda c: c.name,
        key=f"{key}_category",
    )
    if not category.subcategories:
        st.warning(f"{category.name} has no subcategories yet.")
        return category.id, None, None

    subcategory = st.selectbox(
        "Subcategory",
        sorted(category.subcategories, key=lambda s: s.order),
        format_func=lambda s: s.name,
        key=f"{key}_subcategory",
    )
    project = st.selectbox(
        "Project (optional)",
        [None, *projects],
        format_func=lambda p: "—" if p is None else p.name,
        key=f"{key}_project",
    )
    return category.id, subcategory.id, project.id if project else None


def main():
    """Main application entry point."""
    components = get_components()
    run_periodic_check(components)
    show_notifications(components)

    st.sidebar.title("💰 Pocketbook")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        [
            "➕ Add Expense",
            "🔁 Recurring",
            "📊 Statistics",
            "🔍 Search",
            "🗂️ Categories",
            "💱 Exchange Rates",
            "⚙️ Settings",
        ],
        index=0,
    )

    if page == "➕ Add Expense":
        render_add_expense_page(components)
    elif page == "🔁 Recurring":
        render_recurring_page(components)
    elif page == "📊 Statistics":
        render_statistics_page(components)
    elif page == "🔍 Search":
        render_search_page(components)
    elif page == "🗂️ Categories":
        render_categories_page(components)
    elif page == "💱 Exchange Rates":
        render_rates_page(components)
    elif page == "⚙️ Settings":
        render_settings_page()


def render_add_expense_page(components: AppComponents):
    """Render the expense entry page."""
    st.title("➕ Add Expense")
    refresh_rates_if_stale(components)

    if components.currency.error_message:
        st.warning(components.currency.error_message)

    col1, col2 = st.columns(2)
    with col1:
        amount = st.number_input("Amount", min_value=0.0, step=1.0, format="%.2f")
        currency = st.selectbox(
            "Currency",
            list(Currency),
            format_func=lambda c: c.display_name,
        )
        expense_date = st.date_input("Date", value=date.today())
        note = st.text_input("Note (optional)")
    with col2:
        category_id, subcategory_id, project_id = category_pickers(components, "add")

    if amount > 0:
        preview = components.expense_entry.preview_conversion(Decimal(str(amount)), currency)
        if preview.was_converted:
            st.info(
                f"{currency.format_amount(preview.original_amount)} ≈ "
                f"**{home_format(preview.home_amount)}** (rate {preview.rate or 'n/a'})"
            )

    if st.button("💾 Save", type="primary", disabled=not (amount > 0 and subcategory_id)):
        try:
            transaction, _ = run_async(components.expense_entry.record_expense(
                amount=Decimal(str(amount)),
                currency=currency,
                category_id=category_id,
                subcategory_id=subcategory_id,
                date=datetime.combine(expense_date, datetime.now().time()),
                note=note or None,
                project_id=project_id,
            ))
            st.success(f"✅ Saved {home_format(transaction.amount)}")
        except (ValueError, NotFoundError, StorageError) as e:
            st.error(f"❌ Could not save: {e}")

    st.markdown("---")
    st.markdown("### Recent expenses")
    for transaction in run_async(components.transactions.list_transactions(limit=10)):
        st.markdown(
            f"- {transaction.date:%Y-%m-%d} · **{home_format(transaction.amount)}**"
            f"{' · ' + transaction.note if transaction.note else ''}"
        )


def render_recurring_page(components: AppComponents):
    """Render the recurring expense management page."""
    st.title("🔁 Recurring Expenses")
    scheduler = components.scheduler

    stats = run_async(scheduler.stats())
    col1, col2, col3 = st.columns(3)
    col1.metric("Total", stats.total_count)
    col2.metric("Active", stats.active_count)
    col3.metric("Monthly estimate", home_format(stats.estimated_monthly_total))

    if st.button("🔄 Check now"):
        report = run_async(scheduler.manual_check_now())
        if report.busy:
            st.info("A check is already running, try again in a moment.")
        elif report.executed_count:
            st.success(f"✅ Recorded {report.executed_count} expense(s)")
        else:
            st.info("Nothing is due.")
        for skipped in report.skipped:
            st.warning(f"⚠️ {skipped.expense_name} was skipped: {skipped.message}")
        show_notifications(components)

    upcoming = run_async(scheduler.upcoming())
    if upcoming:
        st.markdown(f"### Due within {get_settings().scheduler.upcoming_window_days} days")
        for expense in upcoming:
            st.markdown(
                f"- **{expense.name}** · {home_format(expense.amount)} · "
                f"{expense.next_execution_date:%Y-%m-%d}"
            )

    st.markdown("### All recurring expenses")
    for expense in run_async(scheduler.list_all()):
        with st.expander(
            f"{'✅' if expense.is_active else '⏸️'} {expense.name} · {home_format(expense.amount)}"
        ):
            st.markdown(f"**Schedule:** {expense.recurrence.description}")
            st.markdown(f"**Next:** {expense.next_execution_date:%Y-%m-%d %H:%M}")
            if expense.last_execution_date:
                st.markdown(f"**Last:** {expense.last_execution_date:%Y-%m-%d %H:%M}")
            col1, col2 = st.columns(2)
            if col1.button(
                "Pause" if expense.is_active else "Resume",
                key=f"toggle_{expense.id}",
            ):
                run_async(scheduler.toggle_active(expense.id))
                st.rerun()
            if col2.button("🗑️ Delete", key=f"delete_{expense.id}"):
                run_async(scheduler.delete(expense.id))
                st.rerun()

    st.markdown("---")
    st.markdown("### Add a recurring expense")
    name = st.text_input("Name", key="recurring_name")
    amount = st.number_input("Amount", min_value=0, step=100, key="recurring_amount")
    recurrence_type = st.radio(
        "Schedule",
        list(RecurrenceType),
        format_func=lambda r: r.display_name,
        horizontal=True,
    )
    monthly_dates: list[int] = []
    interval_days = 30
    if recurrence_type == RecurrenceType.MONTHLY_DATES:
        monthly_dates = st.multiselect("Days of the month", list(range(1, 32)), default=[1])
    else:
        interval_days = st.number_input("Every N days", min_value=1, value=30, step=1)
    note = st.text_input("Note (optional)", key="recurring_note")
    category_id, subcategory_id, project_id = category_pickers(components, "recurring")

    if st.button("➕ Add", type="primary"):
        try:
            expense = run_async(scheduler.add(
                name=name,
                amount=int(amount),
                category_id=category_id,
                subcategory_id=subcategory_id,
                recurrence_type=recurrence_type,
                monthly_dates=monthly_dates,
                interval_days=int(interval_days),
                note=note or None,
                project_id=project_id,
            ))
            st.success(f"✅ Added. First run: {expense.next_execution_date:%Y-%m-%d}")
        except RecurringExpenseValidationError as e:
            for issue in e.result.issues:
                if issue.severity == "error":
                    st.error(f"❌ {issue.message}")
        except StorageError as e:
            st.error(f"❌ Could not save: {e}")


def render_statistics_page(components: AppComponents):
    """Render monthly statistics with a calendar of daily totals."""
    st.title("📊 Statistics")

    today = date.today()
    col1, col2 = st.columns(2)
    year = col1.number_input("Year", min_value=2000, max_value=2100, value=today.year)
    month = col2.selectbox(
        "Month",
        list(range(1, 13)),
        index=today.month - 1,
        format_func=lambda m: calendar.month_name[m],
    )
    start, end = month_range(int(year), int(month))

    summary = run_async(components.statistics.summary(start, end))
    col1, col2, col3 = st.columns(3)
    col1.metric("Total", home_format(summary.total))
    col2.metric("Transactions", summary.count)
    col3.metric("Daily average", home_format(summary.daily_average))

    st.markdown("### By category")
    for row in run_async(components.statistics.totals_by_category(start, end)):
        st.markdown(
            f"- **{row.name}** · {home_format(row.total)} · {row.count} · {row.share:.0%}"
        )

    st.markdown("### By project")
    for row in run_async(components.statistics.totals_by_project(start, end)):
        st.markdown(f"- **{row.name}** · {home_format(row.total)} · {row.share:.0%}")

    st.markdown("### Calendar")
    daily = run_async(components.statistics.daily_totals(int(year), int(month)))
    for week in calendar.Calendar().monthdayscalendar(int(year), int(month)):
        cols = st.columns(7)
        for col, day in zip(cols, week):
            if day:
                col.markdown(f"**{day}**  \n{daily.get(day, '')}")


def render_search_page(components: AppComponents):
    """Render the note search page."""
    st.title("🔍 Search")
    text = st.text_input("Search notes")
    if not text:
        return

    result = run_async(components.transactions.search(text))
    st.markdown(f"**{result.count}** matches · total **{home_format(result.total)}**")
    for transaction in result.transactions:
        st.markdown(
            f"- {transaction.date:%Y-%m-%d} · {home_format(transaction.amount)} · "
            f"{transaction.note}"
        )


def render_categories_page(components: AppComponents):
    """Render catalog management."""
    st.title("🗂️ Categories & Projects")
    catalog = components.catalog

    for category in run_async(catalog.list_categories()):
        with st.expander(category.name):
            for subcategory in sorted(category.subcategories, key=lambda s: s.order):
                col1, col2 = st.columns([4, 1])
                col1.markdown(f"- {subcategory.name}")
                if col2.button("🗑️", key=f"delete_sub_{subcategory.id}"):
                    try:
                        run_async(catalog.delete_subcategory(category.id, subcategory.id))
                        st.rerun()
                    except CatalogError as e:
                        st.error(f"❌ {e}")

            new_sub = st.text_input("New subcategory", key=f"new_sub_{category.id}")
            if st.button("Add subcategory", key=f"add_sub_{category.id}") and new_sub:
                run_async(catalog.add_subcategory(category.id, new_sub))
                st.rerun()

            cascade = st.checkbox(
                "Also delete its transactions",
                key=f"cascade_{category.id}",
            )
            if st.button("Delete category", key=f"delete_cat_{category.id}"):
                try:
                    run_async(catalog.delete_category(category.id, cascade_transactions=cascade))
                    st.rerun()
                except CatalogError as e:
                    st.error(f"❌ {e}")

    new_category = st.text_input("New category")
    if st.button("Add category") and new_category:
        run_async(catalog.add_category(new_category))
        st.rerun()

    st.markdown("---")
    st.markdown("### Projects")
    for project in run_async(catalog.list_projects()):
        col1, col2 = st.columns([4, 1])
        col1.markdown(f"- {project.name}")
        if col2.button("🗑️", key=f"delete_project_{project.id}"):
            run_async(catalog.delete_project(project.id))
            st.rerun()

    new_project = st.text_input("New project")
    if st.button("Add project") and new_project:
        run_async(catalog.add_project(new_project))
        st.rerun()


def render_rates_page(components: AppComponents):
    """Render current exchange rates."""
    st.title("💱 Exchange Rates")
    refresh_rates_if_stale(components)
    service = components.currency

    if service.error_message:
        st.warning(service.error_message)
    if service.last_updated:
        st.caption(f"Last updated {service.last_updated:%Y-%m-%d %H:%M}")

    if st.button("🔄 Refresh now", disabled=service.is_loading):
        result = run_async(service.fetch_rates())
        if result.success:
            st.success("✅ Rates updated")
        elif result.used_fallback:
            st.warning(f"Using offline rates ({result.error})")

    for code in service.supported_currencies:
        rate = service.display_rate(code)
        st.markdown(f"- 1 {service.home_currency} = **{rate or 'n/a'}** {code}")


def render_settings_page():
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Configuration Status")

    status = validate_all_settings()

    sections = [
        ("Exchange rates", "rates"),
        ("Recurring check", "scheduler"),
        ("Local cache", "cache"),
        ("Google Sheets (Storage)", "google_sheets"),
        ("Application", "app"),
    ]

    for name, key in sections:
        if status.get(key, False):
            st.success(f"✅ {name} - OK")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        "To configure the application, create a `.env` file. "
        "See `.env.example` for the available variables. Without Google Sheets "
        "settings, data is kept in memory for the session."
    )


if __name__ == "__main__":
    main()
