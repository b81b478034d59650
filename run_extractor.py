# run_extractor.py
import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from rich.errors import MarkupError
from rich.logging import RichHandler
from rich.text import Text

from lego_scraper import config
from lego_scraper.main import main as run_pipeline

LOG_FORMAT = "%(asctime)s - %(levelname)-8s - %(name)-35s - %(message)s"
LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]
QUIET_LOGGERS = ["asyncio", "playwright"]


def load_input(path: Optional[str]) -> Dict[str, Any]:
    """Reads an optional JSON input file (startUrl, maxProducts, followProductPages, proxyConfiguration)."""
    if not path:
        return {}
    with Path(path).open("r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Input file {path} must contain a JSON object")
    return data


def build_proxy(args: argparse.Namespace, input_data: Dict[str, Any]) -> Optional[Dict[str, str]]:
    proxy_input = input_data.get("proxyConfiguration") or {}
    server = args.proxy_server or proxy_input.get("server")
    if not server:
        return None
    proxy = {"server": server}
    username = args.proxy_username or proxy_input.get("username")
    password = args.proxy_password or proxy_input.get("password")
    if username:
        proxy["username"] = username
    if password:
        proxy["password"] = password
    return proxy


class PlainTextFormatter(logging.Formatter):
    """Log file formatter. Drops the rich markup meant for the console."""

    def formatMessage(self, record: logging.LogRecord) -> str:
        plain = logging.makeLogRecord(record.__dict__)
        try:
            plain.message = Text.from_markup(record.message).plain
        except MarkupError:
            pass
        return super().formatMessage(plain)


def add_logging_arguments(parser: argparse.ArgumentParser) -> None:
    group = parser.add_argument_group("logging")
    group.add_argument(
        '--log-level',
        default="INFO",
        choices=LOG_LEVELS,
        help="Console log level. The log file always gets DEBUG."
    )
    group.add_argument(
        '--log-file',
        type=Path,
        default=config.LOG_PATH,
        help=f"Where the DEBUG log is written.\nDefault: {config.LOG_PATH}"
    )


def configure_logging(args: argparse.Namespace) -> None:
    """Console output through rich at --log-level, everything at DEBUG to --log-file."""
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    args.log_file.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(args.log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(PlainTextFormatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    root_logger.addHandler(file_handler)

    root_logger.addHandler(RichHandler(level=args.log_level, show_path=False, markup=True))

    # Playwright's driver and asyncio log connection chatter at DEBUG.
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Extract LEGO product records from catalog and product pages.",
        formatter_class=argparse.RawTextHelpFormatter
    )
    parser.add_argument('--input', type=str, help="JSON input file. Command-line flags override its values.")
    parser.add_argument('--start-url', type=str, help=f"Catalog page to start from.\nDefault: {config.START_URL}")
    parser.add_argument('--max-products', type=int, help="Maximum products per catalog page (0 = unlimited).")
    parser.add_argument(
        '--follow-product-pages',
        action='store_true',
        default=None,
        help="Visit every discovered product page for a detailed record\ninstead of saving catalog summaries."
    )
    parser.add_argument('--proxy-server', type=str, help="Proxy URL, e.g. http://proxy.example.com:8000")
    parser.add_argument('--proxy-username', type=str)
    parser.add_argument('--proxy-password', type=str)
    parser.add_argument(
        '--har-output',
        type=str,
        help="Record all network traffic to this HAR file (useful when the site's API changes)."
    )
    parser.add_argument('--headful', action='store_true', help="Show the browser window.")
    add_logging_arguments(parser)
    args = parser.parse_args()

    configure_logging(args)

    try:
        input_data = load_input(args.input)
    except (OSError, ValueError) as e:
        logging.critical("Could not read input file %s: %s", args.input, e)
        sys.exit(1)

    start_url = args.start_url or input_data.get("startUrl") or config.START_URL
    max_products = args.max_products if args.max_products is not None else int(input_data.get("maxProducts") or config.MAX_PRODUCTS)
    follow = args.follow_product_pages if args.follow_product_pages is not None else bool(input_data.get("followProductPages"))
    har_path = Path(args.har_output) if args.har_output else None
    if har_path:
        har_path.parent.mkdir(parents=True, exist_ok=True)

    logging.info("=" * 60)
    logging.info("LEGO Product Extraction Pipeline Starting...")
    logging.info("=" * 60)

    try:
        asyncio.run(run_pipeline(
            start_url=start_url,
            max_products=max_products,
            follow_product_pages=follow,
            proxy=build_proxy(args, input_data),
            har_path=har_path,
            headless=not args.headful,
        ))
    except KeyboardInterrupt:
        logging.warning("Pipeline interrupted by user.")
    except Exception as e:
        logging.critical("An unexpected error occurred: %s", e, exc_info=True)
    finally:
        logging.info("=" * 60)
        logging.info("Pipeline execution finished.")
