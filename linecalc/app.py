import argparse
import atexit
import logging
import re
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import flask
from flask import jsonify, request

from linecalc.config import (
    DEBUG_MODE,
    HISTORY_FILE,
    LOG_FORMAT,
    LOG_LEVEL,
    OFFLINE_MODE,
    WEB_HOST,
    WEB_PORT,
)
from linecalc.currency import BASE_CURRENCY, CurrencyTable, RateProvider
from linecalc.session import CalculationSession, LineResult
from linecalc.tokenizer import CURRENCY_CODES

# --- Logging Setup ---
logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
logger = logging.getLogger(__name__)

# --- Flask App Setup ---
app = flask.Flask(__name__)
app.config["DEBUG"] = DEBUG_MODE

# Shared by all requests; swapped for a fresh provider by main()
rate_provider = RateProvider(offline=OFFLINE_MODE)

# --- Assignment Pattern ---
# Regex to capture 'var_name = expression_body'
ASSIGNMENT_PATTERN = re.compile(r"^\s*([a-zA-Z_][a-zA-Z0-9_]*)\s*=\s*(.*)$")


def serialize_result(result: LineResult) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"line": result.line, "result": None, "error": None}
    if result.error is not None:
        payload["error"] = str(result.error)
        payload["error_type"] = type(result.error).__name__
    elif result.value is not None:
        payload["result"] = result.display
        payload["value"] = str(result.value.amount)
        payload["currency"] = result.value.currency
    return payload


def serialize_table(table: CurrencyTable, source: str) -> Dict[str, Any]:
    quotes = table.quotes()
    return {
        "base": BASE_CURRENCY,
        "source": source,
        "currencies": [
            {
                "code": code,
                "symbol": table.symbol(code),
                "rate": str(quote),
                "numbering_style": table.numbering_style(code).value,
            }
            for code, quote in quotes.items()
        ],
    }


# --- API Endpoints ---


@app.route("/calculate", methods=["POST"])
def calculate():
    """Evaluates a single line without any variables."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or "query" not in data:
        return jsonify({"error": "Missing 'query' in JSON payload"}), 400

    query = str(data["query"]).strip()
    if not query:
        return jsonify({"error": "Query cannot be empty"}), 400

    # For a single line, assignments have nothing to feed
    if ASSIGNMENT_PATTERN.match(query):
        return jsonify({"error": "Variable assignments require a document. Use /documents/evaluate."}), 400

    session = CalculationSession(rate_provider.current_table())
    try:
        result = session.evaluate_line(query)
    except Exception as e:
        logger.error(f"Internal error evaluating '{query}': {e}", exc_info=True)
        return jsonify({"error": "An internal server error occurred during calculation."}), 500

    if result.error is not None:
        logger.warning(f"Calculation failed for expression '{query}': {result.error}")
        return jsonify(serialize_result(result)), 400

    logger.info(f"Calculation succeeded for expression '{query}'. Result: {result.display}")
    return jsonify(serialize_result(result)), 200


@app.route("/documents/evaluate", methods=["POST"])
def evaluate_document():
    """Evaluates every line of a document in order against one shared set of variables."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or ("lines" not in data and "text" not in data):
        return jsonify({"error": "Missing 'lines' or 'text' in JSON payload"}), 400

    if "lines" in data:
        lines = data["lines"]
        if not isinstance(lines, list) or not all(isinstance(line, str) for line in lines):
            return jsonify({"error": "'lines' must be a list of strings"}), 400
    else:
        if not isinstance(data["text"], str):
            return jsonify({"error": "'text' must be a string"}), 400
        lines = data["text"].splitlines()

    session = CalculationSession(rate_provider.current_table())
    try:
        results = session.evaluate_document(lines)
    except Exception as e:
        logger.error(f"Internal error evaluating document: {e}", exc_info=True)
        return jsonify({"error": "An internal server error occurred during calculation."}), 500

    failed = sum(1 for result in results if result.error is not None)
    logger.info(f"Evaluated document with {len(results)} lines ({failed} failed)")
    return (
        jsonify(
            {
                "results": [serialize_result(result) for result in results],
                "variables": {name: str(value) for name, value in session.variables.items()},
            }
        ),
        200,
    )


@app.route("/currencies", methods=["GET"])
def list_currencies():
    return jsonify(serialize_table(rate_provider.current_table(), rate_provider.source)), 200


@app.route("/currencies/refresh", methods=["POST"])
def refresh_currencies():
    """Fetches fresh rates; the previous table stays in use if the fetch fails."""
    table = rate_provider.refresh(force=True)
    return jsonify(serialize_table(table, rate_provider.source)), 200


# --- CLI Interface ---

HELP_TEXT = """
Usage examples:
  2 + 3 * 4            - Arithmetic with the usual precedence
  1 b / 4              - Magnitude words: k, thousand, lakh, lac, million, crore, billion
  x = 10               - Assign a variable
  x * 2                - Use a variable
  100 USD to INR       - Convert currencies (codes, symbols like $ or names like rupees)
  $ 50 + 20            - A currency amount; plain numbers keep its currency
  ?x                   - Print the value of variable x
  print x              - Alternative way to print variable x

Commands:
  vars                 - Show all variables
  rates                - Show the exchange rates in use
  refresh              - Fetch current exchange rates
  help                 - Show this help message
  exit/quit            - Exit the calculator
"""

COMMANDS = ["help", "vars", "rates", "refresh", "exit", "quit", "print"]


def setup_readline(session: CalculationSession, history_file: Path = HISTORY_FILE) -> bool:
    """Enables history and tab completion when readline is available."""
    try:
        import readline
    except ImportError:
        return False

    try:
        readline.read_history_file(str(history_file))
        readline.set_history_length(1000)
    except OSError:
        pass
    atexit.register(readline.write_history_file, str(history_file))

    def completer(text: str, state: int) -> Optional[str]:
        line = readline.get_line_buffer()
        if re.search(r"\b(to|in)\s+\w*$", line, re.IGNORECASE):
            # Complete currency codes after "to"
            options = sorted(set(session.currencies) | CURRENCY_CODES)
            matches = [code for code in options if code.startswith(text.upper())]
        else:
            matches = [cmd for cmd in COMMANDS if cmd.startswith(text)]
            matches.extend(name for name in session.variables if name.startswith(text))
        return matches[state] if state < len(matches) else None

    readline.set_completer(completer)
    readline.parse_and_bind("tab: complete")
    return True


def print_rates(table: CurrencyTable, source: str) -> None:
    print(f"Exchange rates per 1 {BASE_CURRENCY} ({source}):")
    for code, quote in table.quotes().items():
        print(f"  {code:<4} {table.symbol(code):<4} {quote}")


def handle_command(query: str, session: CalculationSession, provider: RateProvider) -> bool:
    """Runs a REPL command; returns False when the input is an expression instead."""
    command = query.strip().lower()
    if command == "help":
        print(HELP_TEXT)
        return True
    if command == "vars":
        if not session.variables:
            print("No variables defined.")
        else:
            print("Current variables:")
            for name, value in session.variables.items():
                print(f"  {name} = {value}")
        return True
    if command == "rates":
        print_rates(session.currencies, provider.source)
        return True
    if command == "refresh":
        session.replace_currency_table(provider.refresh(force=True))
        print(f"Using {provider.source} rates for {len(session.currencies)} currencies.")
        return True

    # Print variable command (e.g., "?x" or "print x")
    print_var_match = re.match(r"^\s*(?:\?|print\s+)([a-zA-Z_][a-zA-Z0-9_]*)\s*$", query, re.IGNORECASE)
    if print_var_match:
        var_name = print_var_match.group(1)
        if var_name in session.variables:
            print(f"{var_name} = {session.variables[var_name]}")
        else:
            print(f"Variable '{var_name}' is not defined")
        return True
    return False


def run_cli_mode(provider: RateProvider) -> None:
    """Run calculator in interactive CLI mode."""
    session = CalculationSession(provider.current_table())
    has_readline = setup_readline(session)

    print("linecalc - Press Ctrl+C or type 'exit' to quit")
    print("Enter calculations like: '2 + 2', '1 b / 4', 'x = 10 k' or '100 USD to INR'")
    if not has_readline:
        print("Note: readline is not available, history and tab completion are disabled")

    try:
        while True:
            query = input("calc> ")
            if not query.strip():
                continue
            if query.strip().lower() in ("exit", "quit", "bye"):
                break
            try:
                if handle_command(query, session, provider):
                    continue
                result = session.evaluate_line(query)
            except Exception as e:
                logger.error(f"Internal error evaluating '{query}': {e}", exc_info=True)
                print(f"Error processing input: {e}")
                continue

            assignment_match = ASSIGNMENT_PATTERN.match(query)
            if result.ok and assignment_match:
                print(f"{assignment_match.group(1)} = {result.display}")
            else:
                print(result.display)
    except (KeyboardInterrupt, EOFError):
        print()

    print("Thank you for using linecalc!")


def render_document(results: List[LineResult]) -> str:
    """Lines on the left, their results aligned in a column on the right."""
    width = max((len(result.line) for result in results), default=0)
    rendered = []
    for result in results:
        if result.is_empty:
            rendered.append(result.line)
        else:
            rendered.append(f"{result.line:<{width}}  {result.display}")
    return "\n".join(rendered)


def run_document_mode(path: str, provider: RateProvider) -> int:
    """Evaluates a document file ('-' for stdin) and prints every line with its result."""
    try:
        text = sys.stdin.read() if path == "-" else Path(path).read_text(encoding="utf-8")
    except OSError as e:
        print(f"Error: cannot read {path}: {e}", file=sys.stderr)
        return 1

    session = CalculationSession(provider.current_table())
    results = session.evaluate_document(text)
    print(render_document(results))
    return 1 if any(result.error is not None for result in results) else 0


# --- Entry Points ---


def start_web_server(host: str = WEB_HOST, port: int = WEB_PORT) -> None:
    """Entry point for running the web server."""
    print(f"Starting web server on http://{host}:{port}")
    app.run(host=host, port=port)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Line-oriented calculator with currencies and variables")
    parser.add_argument("file", nargs="?", help="Evaluate a document file ('-' for stdin) instead of starting a REPL")
    parser.add_argument("--serve", action="store_true", help="Start the JSON web API")
    parser.add_argument("--host", default=WEB_HOST, help="Web server host")
    parser.add_argument("--port", type=int, default=WEB_PORT, help="Web server port")
    parser.add_argument("--offline", action="store_true", help="Use the built-in exchange rates")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point that decides between web, document and interactive mode."""
    args = build_arg_parser().parse_args(argv)
    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    global rate_provider
    rate_provider = RateProvider(offline=args.offline or OFFLINE_MODE)
    rate_provider.refresh()

    if args.serve:
        start_web_server(args.host, args.port)
        return 0
    if args.file:
        return run_document_mode(args.file, rate_provider)
    run_cli_mode(rate_provider)
    return 0


if __name__ == "__main__":
    sys.exit(main())
