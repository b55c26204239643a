import argparse
import logging
import sys
from typing import List, Optional
from urllib.parse import urlparse

from .mirror import SiteMirror
from .settings import Settings, load_config_file, settings_from_mapping

DEFAULT_OUTPUT = "output"
PROMPT = "Please input the root URL (http://www.example.com): "
INVALID_URL = "Invalid URL. Use http:// or https://"


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description="Mirror a website into a local folder for offline viewing.",
        add_help=True,
    )
    p.add_argument("--config", type=str, help="path to config.toml|.yaml", default=None)

    p.add_argument("url", nargs="?", default=None, help="http(s) root URL")
    p.add_argument(
        "--output", type=str, default=DEFAULT_OUTPUT, help="destination root directory"
    )
    p.add_argument("--workers", type=int, default=8, help="concurrent fetches")
    p.add_argument(
        "--timeout", type=float, default=15.0, help="request timeout seconds"
    )
    p.add_argument(
        "--max-bytes", type=int, default=50_000_000, help="max bytes per file"
    )
    p.add_argument("--verbose", action="store_true", help="debug logging")
    return p


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = build_arg_parser()
    preliminary, _ = parser.parse_known_args(argv)
    if preliminary.config:
        cfg = load_config_file(preliminary.config)
        parser.set_defaults(**{k.replace("-", "_"): v for k, v in cfg.items()})
    return parser.parse_args(argv)


def settings_from_args(args: argparse.Namespace) -> Settings:
    return settings_from_mapping(vars(args))


def prompt_url() -> str:
    return input(PROMPT).strip()


def is_http_url(url: str) -> bool:
    try:
        return urlparse(url).scheme in {"http", "https"}
    except ValueError:
        return False


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    url = args.url or prompt_url()
    if not is_http_url(url):
        print(INVALID_URL)
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    try:
        mirror = SiteMirror(url, args.output, settings_from_args(args))
    except ValueError as e:
        logging.debug("rejected root URL: %s", e)
        print(INVALID_URL)
        sys.exit(1)
    stats = mirror.run()
    print("Mirroring complete")
    print(
        f"Saved: {stats.written}  skipped: {stats.skipped}  "
        f"failed: {stats.failed}  abandoned: {stats.abandoned}"
    )
    print(f"Root: {mirror.site_root}")


if __name__ == "__main__":
    main()
