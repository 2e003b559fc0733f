"""
Remote-service wiring for the forecasting control panel.
It groups the HTTP client, the async adapter, input validation, configuration, and the stage facade.
"""
