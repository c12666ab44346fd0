"""Dumka entry point."""

import logging
import sys

from dotenv import find_dotenv, load_dotenv

from .config import load_settings
from .errors import ConfigError, StorageError
from .logging import configure_logger
from .storage import Store

USAGE = "usage: dumka [bot | init-db]"


def main() -> None:
    """Main entry point."""
    load_dotenv(find_dotenv(usecwd=True))
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # httpx logs every request at INFO, including the bot token in the URL
    logging.getLogger("httpx").setLevel(logging.WARNING)

    command = sys.argv[1] if len(sys.argv) > 1 else "bot"

    try:
        settings = load_settings()
    except ConfigError as e:
        print(f"❌ {e}", file=sys.stderr)
        sys.exit(1)

    configure_logger(settings.log_dir)

    if command == "init-db":
        store = Store(settings.db_path)
        try:
            store.init_db()
        except StorageError as e:
            print(f"❌ {e}", file=sys.stderr)
            sys.exit(1)
        finally:
            store.close()
        print(f"✅ Database ready: {settings.db_path}")
        return

    if command != "bot":
        print(USAGE, file=sys.stderr)
        sys.exit(2)

    from .telegram import TelegramBot

    try:
        bot = TelegramBot(settings)
    except (ConfigError, StorageError) as e:
        print(f"❌ {e}", file=sys.stderr)
        sys.exit(1)

    bot.run()


if __name__ == "__main__":
    main()
