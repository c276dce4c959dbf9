"""State layer.

The session holder and the live table cache are the only components allowed
to mutate authentication state and cached rows. Everything else reads their
snapshots or registers observers.
"""
