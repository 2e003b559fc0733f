"""
Exploratory analysis fetching for the control panel.
It groups the concurrent section queries and the partial-failure report they produce.
"""
