"""
Training and forecast result handling for the control panel.
It groups the canonical metric model, accuracy policies, ensemble weighting, and payload normalizers.
Most functionality lives in the sibling modules; this file intentionally stays lightweight.
"""
