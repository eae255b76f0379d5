"""Allow ``python -m makeshift``."""

from .app import main

if __name__ == "__main__":
    main()
