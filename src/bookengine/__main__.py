"""Main entry point for ``python -m bookengine``."""

from bookengine.cli import main

if __name__ == "__main__":
    main()
