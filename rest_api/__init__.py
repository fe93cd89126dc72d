"""
REST API for the finance tracker: transactions, budgets and savings goals,
served together with the realtime sync gateway.
"""
