"""Allow `python -m mcp_devin` to run the CLI."""

from .cli import app


def main() -> None:
    app(prog_name="mcp-devin")


if __name__ == "__main__":  # pragma: no cover - manual execution path
    main()
