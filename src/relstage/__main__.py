"""Allow running relstage as ``python -m relstage``."""

from relstage.cli import main

if __name__ == "__main__":
    main()
