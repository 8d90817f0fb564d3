"""Entry point for CLI invocation via python -m."""

from BuildRelay.JobWatch.cli_main import app

if __name__ == "__main__":
    app()
