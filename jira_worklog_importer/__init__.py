"""
jira_worklog_importer package

- Re-exports the pipeline functions from core so callers can import them from the package.
- Provides a package-level main() suitable for console_scripts entrypoints.
"""

from .core import *  # noqa: F401,F403


def main() -> None:
    """Package entrypoint. Delegates to core.main()."""
    from .core import main as _main
    _main()
