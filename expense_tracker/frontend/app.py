from datetime import date

import streamlit as st

from expense_tracker.frontend import views
from expense_tracker.frontend.api import ExpenseApiClient
from expense_tracker.frontend.coordinator import SubmissionCoordinator
from expense_tracker.frontend.errors import ApiError, ClientError, TransientError, ValidationError
from expense_tracker.frontend.pending import AuthSessionStore, PendingOperationStore
from expense_tracker.frontend.storage import FileSlotStorage
from expense_tracker.logging_setup import configure_logging

# ── Config ────────────────────────────────────────────────────────────────────
configure_logging()

st.set_page_config(
    page_title="Expense Tracker",
    page_icon="💸",
    layout="centered",
)

# ── Session state init ─────────────────────────────────────────────────────────
if "storage" not in st.session_state:
    st.session_state.storage = FileSlotStorage()

if "auth_store" not in st.session_state:
    st.session_state.auth_store = AuthSessionStore(st.session_state.storage)

if "user" not in st.session_state:
    st.session_state.user = st.session_state.auth_store.load()

if "api" not in st.session_state:
    st.session_state.api = ExpenseApiClient()

if "coordinator" not in st.session_state:
    st.session_state.coordinator = SubmissionCoordinator(
        st.session_state.api,
        PendingOperationStore(st.session_state.storage),
    )

if "submit_result" not in st.session_state:
    st.session_state.submit_result = None  # (success: bool, message: str)

if "form_nonce" not in st.session_state:
    st.session_state.form_nonce = 0

api: ExpenseApiClient = st.session_state.api
coordinator: SubmissionCoordinator = st.session_state.coordinator
user = st.session_state.user


def account_key(session) -> str | None:
    if not session:
        return None
    return session.get("id") or session.get("email")


def sign_in(session: dict) -> None:
    st.session_state.user = session
    st.session_state.auth_store.save(session)


def sign_out() -> None:
    st.session_state.user = None
    st.session_state.submit_result = None
    st.session_state.auth_store.clear()


def show_result(result) -> None:
    st.session_state.submit_result = (result.ok, result.message)
    if result.ok:
        # Fresh widgets so the form resets after a confirmed save
        st.session_state.form_nonce += 1


api.token = user.get("token") if user else None
# Re-running the script inside the same activation is a no-op here
coordinator.activate(account_key(user))

# ── Page ───────────────────────────────────────────────────────────────────────
st.title("💸 Expense Tracker")
st.caption("Track your personal expenses. All amounts in ₹.")

if user is None:
    login_tab, signup_tab = st.tabs(["Login", "Sign up"])

    with login_tab:
        with st.form("login_form"):
            email = st.text_input("Email", key="login_email")
            password = st.text_input("Password", type="password", key="login_password")
            if st.form_submit_button("Login", type="primary", use_container_width=True):
                try:
                    sign_in(api.login(email.strip(), password))
                    st.rerun()
                except ClientError as e:
                    st.error(str(e))

    with signup_tab:
        with st.form("signup_form"):
            name = st.text_input("Name", key="signup_name")
            email = st.text_input("Email", key="signup_email")
            password = st.text_input(
                "Password", type="password", help="At least 6 characters.", key="signup_password"
            )
            if st.form_submit_button("Create account", type="primary", use_container_width=True):
                try:
                    sign_in(api.register(name.strip(), email.strip(), password))
                    st.rerun()
                except ClientError as e:
                    st.error(str(e))
    st.stop()

col_user, col_logout = st.columns([3, 1])
with col_user:
    st.markdown(f"Signed in as **{user.get('name', user.get('email'))}**")
with col_logout:
    if st.button("Logout", use_container_width=True):
        sign_out()
        st.rerun()

# Resume a submission left unconfirmed by an earlier session (once per activation)
replayed = coordinator.replay_pending()
if replayed is not None:
    show_result(replayed)

st.divider()

# ── Section 1: Add Expense ─────────────────────────────────────────────────────
with st.expander("➕ Add New Expense", expanded=True):
    nonce = st.session_state.form_nonce
    with st.form(f"add_expense_form_{nonce}", clear_on_submit=False):
        col1, col2 = st.columns(2)

        with col1:
            amount_str = st.text_input(
                "Amount (₹) *",
                placeholder="e.g. 499.00",
                key=f"amount_{nonce}",
                help="Must be a positive number.",
            )

        with col2:
            category = st.text_input(
                "Category *",
                placeholder="e.g. Food, Transport, Utilities",
                key=f"category_{nonce}",
                max_chars=100,
            )

        description = st.text_input(
            "Description *",
            placeholder="What was this expense for?",
            key=f"description_{nonce}",
            max_chars=1000,
        )

        expense_date = st.date_input(
            "Date *",
            value=date.today(),
            max_value=date.today(),
            key=f"date_{nonce}",
        )

        submitted = st.form_submit_button("Save Expense", type="primary", use_container_width=True)

        if submitted:
            try:
                with st.spinner("Saving..."):
                    result = coordinator.submit(amount_str, category, description, expense_date)
                show_result(result)
                st.rerun()
            except ValidationError as e:
                for err in e.errors:
                    st.error(err)

    pending = coordinator.pending()
    if pending is not None:
        with st.container(border=True):
            st.warning(
                f"A previous submission ({pending.payload.category}, "
                f"{views.format_inr(pending.payload.amount)}) is pending confirmation."
            )
            if st.button("Retry pending save"):
                with st.spinner("Resuming pending expense submission..."):
                    result = coordinator.retry_pending()
                if result is not None:
                    show_result(result)
                st.rerun()

    # Show result outside the form so it persists after rerun
    if st.session_state.submit_result is not None:
        ok, msg = st.session_state.submit_result
        if ok:
            st.success(msg)
        else:
            st.error(msg)
        st.session_state.submit_result = None

st.divider()

# ── Section 2: Expense List ────────────────────────────────────────────────────
st.subheader("📋 My Expenses")

try:
    with st.spinner("Loading expenses..."):
        data = api.list_expenses(sort="date_desc")
except ApiError as e:
    if e.status_code == 401:
        # Token expired or revoked
        sign_out()
        st.rerun()
    st.error(f"⚠️ {e}")
    st.stop()
except TransientError as e:
    st.error(f"⚠️ Unable to load expenses. {e}")
    st.stop()

expenses = data.get("expenses", [])

col_f1, col_f2 = st.columns([2, 1])

with col_f1:
    categories = [views.ALL_CATEGORIES] + views.distinct_categories(expenses)
    selected_category = st.selectbox("Filter by Category", options=categories)

with col_f2:
    sort_order = st.selectbox("Sort by Date", options=["Newest First", "Oldest First"])

visible = views.filter_and_sort(
    expenses,
    category=selected_category,
    sort="date_desc" if sort_order == "Newest First" else "date_asc",
)
count = len(visible)

if count == 0:
    st.info("No expenses found for the selected filter.")
else:
    # ── Total banner ──
    st.metric(
        label=f"Total ({count} expense{'s' if count != 1 else ''})",
        value=views.format_inr(views.visible_total(visible)),
    )

    # ── Per-category summary ──
    if selected_category == views.ALL_CATEGORIES:
        with st.expander("📊 Summary by Category"):
            st.table([
                {"Category": cat, "Total": views.format_inr(amt)}
                for cat, amt in views.category_totals(visible)
            ])

    for exp in visible:
        with st.container(border=True):
            c1, c2, c3, c4 = st.columns([3, 2, 2, 1])
            with c1:
                st.markdown(f"**{exp['category']}**")
                if exp.get("description"):
                    st.caption(exp["description"])
            with c2:
                st.markdown(f"**{views.format_inr(exp['amount'])}**")
            with c3:
                st.caption(f"📅 {views.format_date(exp['date'])}")
            with c4:
                if st.button("🗑️", key=f"delete_{exp['id']}", help="Delete expense"):
                    try:
                        outcome = api.delete_expense(exp["id"])["outcome"]
                        if outcome == "not_found":
                            st.session_state.submit_result = (True, "Expense was already deleted.")
                        st.rerun()
                    except ClientError as e:
                        st.error(f"Delete failed: {e}")
