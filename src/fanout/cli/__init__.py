"""``fanout`` command-line interface."""
