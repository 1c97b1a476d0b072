"""unified-ci: run code-quality and security checks against pull requests.

The package is organised around a supervisor (``unified_ci.supervisor``) that
starts a fixed set of long-running tasks depending on the working mode, and
checks (``unified_ci.checker``) that report their verdicts to GitHub as check
runs.
"""

import platform

__version__ = "0.3.0.dev0"


def user_agent() -> str:
    """Return the user-agent banner sent to remote services and printed by the CLI."""
    return (
        f"unified-ci/{__version__} "
        f"(Python {platform.python_version()}; {platform.system().lower()})"
    )
