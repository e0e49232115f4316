"""Command-line interface for the project assistant.

Run the service or talk to a running one:
    project-assistant serve
    project-assistant ask "What's the budget position?" --project P1 --user U1 --role supplier_pm

Note: CLI components are not exported from __init__.py so the module can be
run as a script without double imports.
"""

__all__ = []  # CLI is run directly, no exports needed
