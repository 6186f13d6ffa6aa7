"""
Allow running mailcraft as a module: python -m mailcraft

Which is equivalent to:
    mailcraft [OPTIONS]
"""

from mailcraft.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
