import sys
from pathlib import Path

from sandex.sandex_builtins import default_whitelist
from sandex.sandex_printer import Printer
from sandex.sandex_runtime import ExpressionRunner
from sandex.sandex_whitelist import Whitelist

USAGE = "usage: sandex_repl.py [--whitelist FILE.yaml] [EXPRESSIONS_FILE]"


def build_runner(whitelist_path=None) -> ExpressionRunner:
    whitelist = default_whitelist()
    if whitelist_path:
        whitelist = whitelist.merged(Whitelist.from_file(whitelist_path))
    return ExpressionRunner(whitelist=whitelist)


def run_expression_file(runner: ExpressionRunner, file_path: str, bindings: dict):
    """Evaluate one expression per non-blank line and exit with appropriate status."""
    printer = Printer()
    p = Path(file_path)
    try:
        source = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        print(f"Error: file not found: {file_path}", file=sys.stderr)
        raise SystemExit(1)
    failed = False
    for line in source.splitlines():
        line = line.strip()
        if not line or line.startswith("//"):
            continue
        result = runner.handle_expression(line, bindings)
        if result.status == 'error':
            print(result.format_error(), file=sys.stderr)
            failed = True
            continue
        print(printer.pformat(result.value))
    if failed:
        raise SystemExit(1)


def handle_command(runner: ExpressionRunner, printer: Printer, line: str, bindings: dict):
    """`:ast EXPR` prints the canonical form, `:let NAME = EXPR` binds a value."""
    command, _, rest = line.partition(" ")
    match command:
        case ":ast":
            print(printer.pformat(runner.parse(rest)))
        case ":let":
            name, eq, expr = rest.partition("=")
            if not eq or not name.strip():
                print("usage: :let NAME = EXPR", file=sys.stderr)
                return
            result = runner.handle_expression(expr.strip(), bindings)
            if result.status == 'error':
                print(result.format_error(), file=sys.stderr)
                return
            bindings[name.strip()] = result.value
        case ":bindings":
            print(printer.format_value(bindings))
        case _:
            print(f"Unknown command {command}", file=sys.stderr)


def main(argv=None):
    """Evaluate a file when provided, otherwise start the interactive REPL."""
    args = list(sys.argv[1:] if argv is None else argv)
    whitelist_path = None
    if "--whitelist" in args:
        i = args.index("--whitelist")
        if i + 1 >= len(args):
            print(USAGE, file=sys.stderr)
            raise SystemExit(2)
        whitelist_path = args[i + 1]
        del args[i:i + 2]

    runner = build_runner(whitelist_path)
    bindings: dict = {}
    if args:
        if args[0].startswith("-"):
            print(USAGE, file=sys.stderr)
            raise SystemExit(2)
        run_expression_file(runner, args[0], bindings)
        return

    print("Sandex REPL v0.1")
    print("Type 'exit' or press Ctrl+D to quit.")
    printer = Printer()

    while True:
        try:
            line = input(">> ").strip()
            if not line:
                continue
            if line == "exit":
                break
            if line.startswith(":"):
                handle_command(runner, printer, line, bindings)
                continue

            result = runner.handle_expression(line, bindings)
            if result.status == 'error':
                print(result.format_error(), file=sys.stderr)
                continue
            print(printer.pformat(result.value))

        except EOFError:
            print("\nExiting.")
            break
        except Exception as e:
            print(f"Error: {e}", file=sys.stderr)


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\nExiting.")
