"""Allow ``python -m siteflow`` to run the command-line interface."""

from .cli import main

if __name__ == "__main__":  # pragma: no cover
    main()
