"""
Dataset schema ownership and propagation for the control panel.
It groups the schema snapshot, consumer registrations, and the synchronization manager.
Most functionality lives in the sibling modules; this file intentionally stays lightweight.
"""
