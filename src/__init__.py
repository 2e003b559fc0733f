"""
Source root for the forecasting control panel core.
Subpackages are imported as `src.<package>` from the repository root.
"""
