# dashboard.py - spending overview, KPIs and budget progress widgets

import streamlit as st
import plotly.express as px
import pandas as pd

from budget_alerts import budget_usage, spending_by_category, total_income, total_spent
from categories import INCOME

CATEGORY_COLORS = {
    "Food & Dining": "#3b82f6",
    "Transportation": "#8b5cf6",
    "Shopping": "#ec4899",
    "Bills & Utilities": "#10b981",
    "Other": "#6b7280",
}

STATUS_COLORS = {
    "green": "#22c55e",
    "yellow": "#eab308",
    "orange": "#f97316",
    "red": "#ef4444",
}

def _prep(transactions):
    """
    Turns transaction records into the dataframe shown in the transaction log.
    """
    if not transactions:
        return pd.DataFrame(columns=["Date", "Merchant", "Category", "Amount", "IsIncome", "ID"])

    df = pd.DataFrame([{
        "Date": t.occurred_at,
        "Merchant": t.merchant or t.category.name,
        "Category": t.category.name,
        "Amount": float(t.amount),
        "IsIncome": t.is_income,
        "ID": t.id,
    } for t in transactions])
    df["Date"] = pd.to_datetime(df["Date"])
    return df

def _kpis(transactions):
    """
    Total spent, income and expense count.
    """
    spent = total_spent(transactions)
    income = total_income(transactions)
    expense_count = sum(1 for t in transactions if t.category.name != INCOME)

    col1, col2, col3 = st.columns(3)
    col1.metric("💸 Total Spent", f"${spent:,.2f}")
    col2.metric("💰 Income", f"${income:,.2f}")
    col3.metric("🧾 Transactions", f"{expense_count}")

def cat_spend(transactions):
    """
    Donut chart of spending by category (Income excluded).
    """
    by_cat = spending_by_category(transactions)
    data = pd.DataFrame(
        [{"Category": name, "Amount": float(value)} for name, value in by_cat.items() if value > 0]
    )
    if data.empty:
        return None

    fig = px.pie(
        data,
        values="Amount",
        names="Category",
        hole=0.4,
        title="Spending by Category",
        color="Category",
        color_discrete_map=CATEGORY_COLORS,
    )
    fig.update_traces(textposition="inside", textinfo="percent+label")
    return fig

def budget_progress(budgets, transactions, alert_ids=()):
    """
    One progress bar per budget, colored by how much of the limit is used.
    """
    rows = budget_usage(budgets, transactions)
    if not rows:
        st.info("No budgets set. Add one below.")
        return

    for row in rows:
        color = STATUS_COLORS[row["status"]]
        flag = " 🔔" if row["budget_id"] in alert_ids else ""
        st.markdown(
            f"**{row['category']}**{flag} · "
            f"<span style='color:{color}'>${row['spent']:,.0f} / ${row['limit']:,.0f}</span>",
            unsafe_allow_html=True,
        )
        st.progress(row["percentage"] / 100, text=f"{row['percentage']:.0f}% used")
