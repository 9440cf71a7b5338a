"""capturedemo CLI: unified entry point.

Usage:
    capturedemo                         # run the configured demos
    capturedemo run capture             # run one demo
    capturedemo list                    # demo names
    capturedemo explain                 # how each closure captures
    capturedemo config                  # merged config and where it came from
    capturedemo config set trace true   # write ~/.capturedemo/config.json
    capturedemo config set demos capture --project   # write .capturedemo.json
    capturedemo --verbose run           # debug log lines on stderr
    capturedemo --trace run             # export spans to stderr
"""

import argparse
import io
import sys
from contextlib import redirect_stdout
from pathlib import Path

from dotenv import load_dotenv
load_dotenv()

from capturedemo import paths
from capturedemo.config import (
    list_config, load_config, parse_value, set_global_value, set_project_value,
)
from capturedemo.errors import CaptureError
from capturedemo.log import enable_console_export, error, set_level


# ============================================================
# COMMANDS
# ============================================================

def cmd_run(args, config):
    from capturedemo.demo import run
    run(args.demos or config.get("demos"))


def cmd_list(args, config):
    from capturedemo.demo import DEMOS
    width = max(len(name) for name in DEMOS)
    for name, (_, description) in DEMOS.items():
        print(f"  {name:<{width}}  {description}")


def cmd_explain(args, config):
    from rich.console import Console
    from rich.table import Table

    from capturedemo.closure import watch
    from capturedemo.demo import resolve, run

    names = resolve(args.demos or config.get("demos"))
    table = Table(title="closures built by " + ", ".join(names))
    table.add_column("demo")
    table.add_column("closure", style="bold")
    table.add_column("kind", style="green")
    table.add_column("captures")
    table.add_column("mut")

    for name in names:
        with watch() as seen, redirect_stdout(io.StringIO()):
            run([name])
        for c in seen:
            caps = ", ".join(
                f"{cap.name} {cap.mode.describe()}"
                + (" (copied)" if cap.copied else "")
                for cap in c.captures.values()
            ) or "-"
            table.add_row(name, c.name, f"{c.kind} ({c.kind.describe()})",
                          caps, "yes" if c.mut else "")

    console = Console(no_color=not config.get("color_output"))
    console.print(table)


def cmd_config(args, config):
    if args.config_command == "set":
        value = parse_value(args.key, args.value)
        if args.project:
            set_project_value(args.key, value, args.root)
            where = str(Path(args.root) / paths.PROJECT_CONFIG_NAME)
        else:
            set_global_value(args.key, value)
            where = str(paths.GLOBAL_CONFIG)
        print(f"  {args.key} = {value!r}  -> {where}")
        return

    for key, entry in list_config(args.root).items():
        print(f"  {key} = {entry['value']!r}  [{entry['source']}]")


# ============================================================
# PARSER
# ============================================================

def _build_parsers(subparsers):
    p = subparsers.add_parser("run", help="run demos (default: all configured)")
    p.add_argument("demos", nargs="*", help="demo names, in order")
    p.set_defaults(func=cmd_run)

    p = subparsers.add_parser("list", help="list demos")
    p.set_defaults(func=cmd_list)

    p = subparsers.add_parser("explain", help="show how each closure captures")
    p.add_argument("demos", nargs="*", help="demo names, in order")
    p.set_defaults(func=cmd_explain)

    p = subparsers.add_parser("config", help="show or change configuration")
    p.add_argument("--root", default=".", help="project root holding .capturedemo.json")
    p.set_defaults(func=cmd_config)
    config_sub = p.add_subparsers(dest="config_command")
    s = config_sub.add_parser("set", help="write one value to the global or project config")
    s.add_argument("key", help="config key")
    s.add_argument("value", help="value; demos take a comma-separated list")
    s.add_argument("--project", action="store_true",
                   help="write .capturedemo.json under --root instead of the global file")


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="capturedemo",
        description="Closures that capture by reference, by mutable reference, and by value.",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="log at debug level")
    parser.add_argument("--trace", action="store_true", help="export spans to stderr")
    subparsers = parser.add_subparsers(dest="command")
    _build_parsers(subparsers)

    args = parser.parse_args(argv)
    config = load_config()

    try:
        set_level("debug" if args.verbose else config.get("log_level"))
    except ValueError as e:
        error("cli", str(e))
        set_level("info")
    if args.trace or config.get("trace"):
        enable_console_export()

    if not args.command:
        args.func, args.demos = cmd_run, []

    try:
        args.func(args, config)
    except ValueError as e:
        error("cli", str(e))
        sys.exit(2)
    except CaptureError as e:
        error("cli", f"{type(e).__name__}: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
