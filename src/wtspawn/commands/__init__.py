"""CLI command modules for wt.

    - spawn: spawn, ps, attach, review, merge, kill
    - epic: the ``wt epic`` command group
"""
