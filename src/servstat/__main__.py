"""Allow ``python -m servstat``."""

from servstat.cli import main

if __name__ == "__main__":
    main()
