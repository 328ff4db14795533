"""
Live-stack integration suites.

Run against the containers started by ``stack-harness run``. They are
excluded from the default pytest collection; the harness passes this
directory to pytest explicitly once every phase is ready.
"""
