"""Allow ``python -m unified_ci``."""

from .cli import run

if __name__ == "__main__":
    run()
