"""Allow running the remote control with ``python -m jellyremote``."""

from jellyremote.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
