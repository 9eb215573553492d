import streamlit as st
from pathlib import Path
from datetime import datetime, time as dt_time
from decimal import Decimal
import logging
import sys

# Add current directory to path
sys.path.append(str(Path(__file__).parent))

from assistant import AlertNotifier, ChatAssistant, FinanceSnapshot, WELCOME_MESSAGE, bot_message, save_transcript, user_message
from budget_alerts import Severity, evaluate_budgets, new_alerts
from categories import DEFAULT_CATEGORIES, INCOME
from config import load_settings, setup_logging
from dashboard import _prep, _kpis, cat_spend, budget_progress
from database import SessionLocal, init_db
from exceptions import StorageUnavailableError
from stores import BudgetDraft, BudgetStore, CategoryStore, ChatTranscriptStore, TransactionDraft, TransactionStore

# --- Configuration ---
st.set_page_config(page_title="SpendWise", layout="wide", page_icon="💰")
settings = load_settings()
setup_logging(settings.log_level)
logger = logging.getLogger(__name__)

# --- Database Session ---
init_db()

if "db" not in st.session_state:
    st.session_state.db = SessionLocal()

def get_db():
    return st.session_state.db

# --- Login ---
def check_login():
    """Decorative login/register card; any submission signs in."""
    if "authenticated" not in st.session_state:
        st.session_state["authenticated"] = False

    if st.session_state.get("authenticated", False):
        return True

    st.markdown("<h1 style='text-align:center'>💰 SpendWise</h1>", unsafe_allow_html=True)
    st.markdown("<p style='text-align:center'>Your Personal Finance Companion</p>", unsafe_allow_html=True)

    login_tab, register_tab = st.tabs(["Login", "Register"])
    with login_tab:
        with st.form("login"):
            st.text_input("Email", placeholder="you@example.com", key="login_email")
            st.text_input("Password", type="password", key="login_password")
            submitted_login = st.form_submit_button("Sign In", type="primary", use_container_width=True)
    with register_tab:
        with st.form("register"):
            st.text_input("Full name", key="register_name")
            st.text_input("Email", placeholder="you@example.com", key="register_email")
            st.text_input("Password", type="password", key="register_password")
            submitted_register = st.form_submit_button("Create Account", use_container_width=True)

    if submitted_login or submitted_register:
        st.session_state["authenticated"] = True
        st.rerun()

    return st.session_state.get("authenticated", False)

if not check_login():
    st.stop()

user_id = settings.user_id

# --- Data Loading ---
def load_data():
    db = get_db()
    try:
        categories = CategoryStore(db).list()
        transactions = TransactionStore(db).list(user_id)
        budgets = BudgetStore(db).list(user_id)
    except StorageUnavailableError as e:
        logger.error("Dashboard load failed for user %s: %s", user_id, e)
        st.error("We couldn't load your data right now. Please try again later.")
        st.stop()
    return categories, transactions, budgets

categories, transactions, budgets = load_data()
category_names = {c.id: c.name for c in categories} or DEFAULT_CATEGORIES

# Alerts are recomputed from scratch on every run and replace the previous list
previous_alerts = st.session_state.get("budget_alerts", [])
budget_alerts = evaluate_budgets(budgets, transactions)
if new_alerts(previous_alerts, budget_alerts):
    st.session_state["has_new_alert"] = True
st.session_state["budget_alerts"] = budget_alerts

# --- Chat state ---
if "notifier" not in st.session_state:
    st.session_state["notifier"] = AlertNotifier()
if "messages" not in st.session_state:
    st.session_state["messages"] = [bot_message(user_id, WELCOME_MESSAGE)]

for text in st.session_state["notifier"].notify(budget_alerts):
    st.session_state["messages"].append(bot_message(user_id, text))

# --- Header ---
st.title("💰 SpendWise")
st.caption("Welcome back!")

if budget_alerts:
    st.error(f"🔔 {len(budget_alerts)} Budget Alert{'s' if len(budget_alerts) > 1 else ''}")

# Sidebar
with st.sidebar:
    st.header("Account")
    st.caption(f"Signed in as user #{user_id}")
    if st.session_state.get("has_new_alert"):
        st.warning("🔴 New budget alert. See the Assistant tab.")
        if st.button("Dismiss", key="dismiss_alert"):
            st.session_state["has_new_alert"] = False
            st.rerun()
    if st.button("🚪 Logout", use_container_width=True):
        st.session_state["authenticated"] = False
        st.rerun()

tab1, tab2, tab3, tab4 = st.tabs(["📊 Spending Overview", "💳 Transactions", "🎯 Budgets", "💬 Assistant"])

with tab1:
    st.header("Spending Overview")
    _kpis(transactions)
    fig = cat_spend(transactions)
    if fig is not None:
        st.plotly_chart(fig, use_container_width=True)
    else:
        st.info("No spending recorded yet.")

with tab2:
    st.header("Recent Transactions")

    with st.expander("➕ Add Transaction"):
        with st.form("add_transaction"):
            col1, col2 = st.columns(2)
            merchant = col1.text_input("Merchant")
            amount = col2.number_input("Amount ($)", min_value=0.01, step=0.01, format="%.2f")
            col3, col4 = st.columns(2)
            category_id = col3.selectbox(
                "Category",
                list(category_names.keys()),
                key="txn_category",
                format_func=lambda cid: category_names[cid],
            )
            occurred_on = col4.date_input("Date", value=datetime.today())

            if st.form_submit_button("Add Transaction"):
                draft = TransactionDraft(
                    amount=Decimal(str(amount)).quantize(Decimal("0.01")),
                    category_id=category_id,
                    merchant=merchant,
                    occurred_at=datetime.combine(occurred_on, dt_time()),
                )
                try:
                    TransactionStore(get_db()).create(user_id, draft)
                    st.success("Added!")
                    st.rerun()
                except StorageUnavailableError:
                    st.error("Error saving transaction. Please try again.")

    df = _prep(transactions)
    if df.empty:
        st.info("No transactions.")
    else:
        col1, col2 = st.columns(2)
        with col1:
            search_term = st.text_input("Search")
        with col2:
            cats = ["All"] + sorted(df["Category"].unique().tolist())
            sel_cat = st.selectbox("Category", cats, key="txn_filter")

        filt_df = df.copy()
        if search_term:
            filt_df = filt_df[filt_df["Merchant"].str.contains(search_term, case=False, regex=False)]
        if sel_cat != "All":
            filt_df = filt_df[filt_df["Category"] == sel_cat]

        filt_df["Signed"] = [
            f"+${amount:,.2f}" if is_income else f"-${amount:,.2f}"
            for amount, is_income in zip(filt_df["Amount"], filt_df["IsIncome"])
        ]
        st.dataframe(
            filt_df[["Date", "Merchant", "Category", "Signed"]].rename(columns={"Signed": "Amount"}),
            use_container_width=True,
            hide_index=True,
        )

with tab3:
    st.header("Monthly Budgets")
    budget_progress(budgets, transactions, alert_ids={a.budget_id for a in budget_alerts})

    with st.expander("➕ Set Budget"):
        with st.form("add_budget"):
            budget_category = st.selectbox(
                "Category",
                [cid for cid in category_names if category_names[cid] != INCOME],
                key="budget_category",
                format_func=lambda cid: category_names[cid],
            )
            limit = st.number_input("Budget Limit ($)", min_value=0.01, step=50.0, format="%.2f")

            if st.form_submit_button("Set Budget"):
                draft = BudgetDraft(category_id=budget_category, limit_amount=Decimal(str(limit)).quantize(Decimal("0.01")))
                try:
                    BudgetStore(get_db()).create(user_id, draft)
                    st.success(f"Budget saved for {category_names[budget_category]}.")
                    st.rerun()
                except StorageUnavailableError:
                    st.error("Error saving budget")

with tab4:
    st.header("Financial Assistant")

    critical = [a for a in budget_alerts if a.severity == Severity.CRITICAL]
    if critical:
        st.warning(f"{len(critical)} budget(s) exceeded. Check messages for details.")
    elif budget_alerts:
        st.warning(f"{len(budget_alerts)} budget warning(s). Check messages for details.")

    for message in st.session_state["messages"]:
        with st.chat_message("user" if message.sender == "User" else "assistant"):
            st.markdown(message.message_text)
            st.caption(message.timestamp.strftime("%H:%M"))

    prompt = st.chat_input("Ask me anything...")
    if prompt:
        db = get_db()
        try:
            history = ChatTranscriptStore(db).list_by_user(user_id)
        except StorageUnavailableError:
            history = []
        assistant = ChatAssistant(max_turns=settings.chat_history_turns)
        reply = assistant.reply(prompt, FinanceSnapshot.build(budgets, transactions), history)

        turn = [user_message(user_id, prompt), bot_message(user_id, reply)]
        st.session_state["messages"].extend(turn)
        save_transcript(SessionLocal, turn)
        st.rerun()

    st.caption("Try asking: • How much did I spend on food this month? • Am I over budget? • Give me savings tips")
