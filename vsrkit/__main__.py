"""Entry point for running vsrkit as a module."""

from vsrkit.cli import app


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
