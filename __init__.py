"""SpendWise personal finance tracker.

Streamlit dashboard (``app.py``) and FastAPI service (``api.py``) over a
shared budget alerting core.  See ``budget_alerts.py`` for the spend
aggregation and threshold evaluation and ``seed_db.py`` to initialise a
database.
"""
