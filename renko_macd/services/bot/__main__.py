"""Module entrypoint for running the bot with shared settings."""

from renko_macd.services.bot.main import main

if __name__ == "__main__":
    raise SystemExit(main())
