"""Entry point for the log monitor."""

from logmonitor.cli import main

if __name__ == "__main__":
    main()
