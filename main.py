"""
clipfilter - AI Clipboard Filters
=================================

Main entry point. Sends the clipboard content (text or image) through a
configurable AI model endpoint and replaces the clipboard with the result.

Usage:
    python main.py --list
    python main.py --run "Translate"
    python main.py --run "Translate" --input "Bonjour"       # headless, prints result
    python main.py --run "Describe Image" --image photo.png
    python main.py --run "Illustrate" --input "a red fox" --output fox.png
    python main.py --models --provider OpenAI --api-key sk-...
    python main.py --setup --provider OpenRouter --api-key sk-or-...

Author: clipfilter Project
"""

import argparse
import logging
import sys
import threading

from PIL import Image

from clipfilter.utils.logger import setup_logging, shutdown_logging
from clipfilter.core.catalog import ProviderCatalog
from clipfilter.core.discovery import fetch_models, perform_initial_setup
from clipfilter.core.errors import ClipFilterError, FailureKind
from clipfilter.core.executor import FilterExecutor
from clipfilter.core.session import IOType
from clipfilter.integrations.clipboard import MemoryClipboard, TkClipboard
from clipfilter.integrations.http_transport import RequestsTransport
from clipfilter.utils.config_manager import load_config, load_default_filters, save_config
from clipfilter.utils.localization import Localizer
from clipfilter.utils.secret_store import SecretStore


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clipfilter",
        description="AI clipboard filters",
        epilog=(
            "Without --input or --image the desktop clipboard is used through Tk. "
            "On X11 text written there is only kept while a clipboard manager holds it, "
            "so the result is lost once clipfilter exits without one."
        ),
    )
    action = parser.add_mutually_exclusive_group(required=True)
    action.add_argument("--list", action="store_true", help="list configured filters")
    action.add_argument("--providers", action="store_true", help="list API providers and templates")
    action.add_argument("--run", metavar="TITLE", help="run the filter with this title")
    action.add_argument("--models", action="store_true", help="list the models a provider offers")
    action.add_argument("--setup", action="store_true", help="create models and filters from a provider")

    parser.add_argument("--config", metavar="PATH", help="config.json location")
    parser.add_argument("--apidef", metavar="DIR", help="directory of provider definitions")
    parser.add_argument("--provider", default="", help="provider id for --models/--setup")
    parser.add_argument("--server", default="", help="server base URL for --models/--setup")
    parser.add_argument("--api-key", default="", help="API key for --models/--setup")
    parser.add_argument("--input", metavar="TEXT", help="use TEXT instead of the desktop clipboard")
    parser.add_argument("--image", metavar="PATH", help="use this image instead of the desktop clipboard")
    parser.add_argument("--output", metavar="PATH", help="save an image result here (required for image results when using the desktop clipboard)")
    parser.add_argument("--verbose", action="store_true", help="show debug output on the console")
    return parser


def cmd_list(app_config) -> int:
    for f in app_config.filters:
        model = app_config.model_for(f)
        model_name = model.name if model else "-"
        print(f"{f.title}\t{f.input.value}->{f.output.value}\t{model_name}")
    return 0


def cmd_providers(catalog) -> int:
    for provider_id, templates in catalog.as_dict().items():
        print(f"{provider_id}\t{', '.join(templates)}")
    return 0


def cmd_models(args, catalog, transport) -> int:
    provider = catalog.find_provider(args.provider) if args.provider else catalog.first_provider()
    if provider is None:
        print(f"Unknown provider '{args.provider}'", file=sys.stderr)
        return 1
    try:
        models = fetch_models(provider, args.server, args.api_key, transport)
    except ClipFilterError as e:
        logging.getLogger(__name__).error(f"Model listing failed: {e}")
        return 1
    for model in models:
        print(model)
    return 0


def cmd_setup(args, app_config, catalog, transport, secret_store, localizer) -> int:
    try:
        new_config = perform_initial_setup(
            catalog, args.provider, args.server, args.api_key, transport,
            app_config=app_config, default_filters=load_default_filters(),
        )
    except ClipFilterError as e:
        logging.getLogger(__name__).error(f"Initial setup failed: {e}")
        print(localizer.get("connection_failed"), file=sys.stderr)
        return 1
    if not save_config(new_config, args.config, secret_store, catalog):
        return 1
    print(localizer.get("setup_complete"))
    return 0


def cmd_run(args, app_config, catalog, transport, localizer) -> int:
    f = app_config.find_filter(args.run)
    if f is None:
        print(f"No filter titled '{args.run}'", file=sys.stderr)
        return 1

    headless = args.input is not None or args.image is not None
    if headless:
        image = None
        if args.image:
            try:
                with Image.open(args.image) as opened:
                    image = opened.copy()
            except OSError as e:
                print(f"Cannot open image {args.image}: {e}", file=sys.stderr)
                return 1
        clipboard = MemoryClipboard(text=args.input or "", image=image)
        sink = clipboard
    else:
        if f.output == IOType.IMAGE and not args.output:
            print("Image results cannot be placed on the desktop clipboard; pass --output", file=sys.stderr)
            return 1
        clipboard = TkClipboard()
        # Image results go to --output instead of the clipboard.
        sink = MemoryClipboard() if f.output == IOType.IMAGE else clipboard

    executor = FilterExecutor(app_config, catalog, clipboard, sink, transport)
    print(f"{localizer.get('executing_filter')}: {f.title}", file=sys.stderr)

    if headless:
        done = threading.Event()
        outcomes = []

        def on_complete(outcome):
            outcomes.append(outcome)
            done.set()

        try:
            if not executor.submit(f, on_complete):
                print(localizer.get("filter_busy"), file=sys.stderr)
                return 1
            done.wait()
        finally:
            executor.shutdown()
        outcome = outcomes[0]
    else:
        # Tk objects must stay on the thread that created them.
        try:
            outcome = executor.run(f)
        finally:
            clipboard.close()

    if not outcome.success:
        if outcome.kind == FailureKind.BUSY:
            print(localizer.get("filter_busy"), file=sys.stderr)
        else:
            print(localizer.get("filter_execution_failed"), file=sys.stderr)
        return 1

    if headless or sink is not clipboard:
        if sink.image is not None:
            if args.output:
                sink.image.save(args.output, format="PNG")
                print(args.output)
            else:
                print("Image result produced; pass --output to save it", file=sys.stderr)
        else:
            print(sink.text)
    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(console_level=logging.DEBUG if args.verbose else logging.WARNING)
    logger = logging.getLogger(__name__)

    try:
        secret_store = SecretStore()
        app_config = load_config(args.config, secret_store)
        catalog = ProviderCatalog.load(args.apidef)
        localizer = Localizer(language=app_config.language)
        transport = RequestsTransport()

        if args.list:
            return cmd_list(app_config)
        if args.providers:
            return cmd_providers(catalog)
        if args.models:
            return cmd_models(args, catalog, transport)
        if args.setup:
            return cmd_setup(args, app_config, catalog, transport, secret_store, localizer)
        return cmd_run(args, app_config, catalog, transport, localizer)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    finally:
        shutdown_logging()


if __name__ == "__main__":
    sys.exit(main())
