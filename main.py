"""
Main module for the budget tree command line.

This module wires the engine together for inspection and scripting:
1. Loads configuration and sets up logging
2. Opens the persistence collaborator
3. Loads the tree into a BudgetManager
4. Applies one command and prints the result as a table
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Callable, Dict, Optional, Sequence, Tuple

import pandas as pd
from tabulate import tabulate

from budget_manager import BudgetManager
from budget_models import TransactionType
from config_manager import CONFIG_FILE, load_config
from database_ops import DatabaseManager
from exceptions import BudgetTreeError
from lifecycle import get_category_transactions
from report_generator import ReportGenerator
from utils import resolve_log_path

# Configure module-level logger
logger = logging.getLogger(__name__)

DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(config: dict) -> None:
    """
    Configure logging based on config settings.

    An unknown level name falls back to INFO with a warning.

    Args:
        config: Configuration dictionary with logging settings
    """
    log_config = config.get("logging", {})
    level_name = str(log_config.get("level", "INFO")).upper()
    log_level = getattr(logging, level_name, None)
    invalid_level = not isinstance(log_level, int)
    if invalid_level:
        log_level = logging.INFO
    log_format = log_config.get("format", DEFAULT_LOG_FORMAT)
    log_file = log_config.get("file")

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        try:
            log_path = resolve_log_path(log_file)
        except OSError as exc:
            raise RuntimeError(f"Unable to prepare log file path '{log_file}': {exc}") from exc
        handlers.append(logging.FileHandler(log_path))

    logging.basicConfig(
        level=log_level,
        format=log_format,
        handlers=handlers,
        force=True
    )

    if invalid_level:
        logger.warning(f"Unknown log level '{level_name}', using INFO")


def parse_assignment(value: str) -> Tuple[str, float]:
    """
    Parse a NAME=AMOUNT command line value.

    Raises:
        argparse.ArgumentTypeError: If the value is not NAME=AMOUNT
    """
    name, sep, amount = value.rpartition("=")
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(f"Expected NAME=AMOUNT, got '{value}'")
    try:
        return name.strip(), float(amount.replace(",", ""))
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid amount in '{value}'") from None


def print_table(df: pd.DataFrame, title: str) -> None:
    """Print a DataFrame as a grid table under a title banner."""
    print("\n" + "=" * 100)
    print(title)
    print("=" * 100)
    if df.empty:
        print("(empty)")
    else:
        print(tabulate(
            df.values.tolist(),
            headers=df.columns.tolist(),
            tablefmt="grid",
            showindex=False
        ))
    print("=" * 100)


def report_failure(error: BudgetTreeError) -> int:
    """Print a user-facing failure and return the exit code."""
    print(f"Error: {error.message}", file=sys.stderr)
    return 1


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with every subcommand."""
    parser = argparse.ArgumentParser(
        description="Hierarchical budget tree manager",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py init --bank Wallet=1200 --bank Savings=148.17
  python main.py add Groceries 300
  python main.py add Produce 120 --parent <category-id>
  python main.py post <category-id> 42.50 --description "Market"
  python main.py show
  python main.py edges --focus total
        """
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=CONFIG_FILE,
        help=f"Path to configuration file (default: {CONFIG_FILE})"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    init_parser = subparsers.add_parser("init", help="Create a new tree from bank balances")
    init_parser.add_argument(
        "--bank", action="append", required=True, type=parse_assignment, metavar="NAME=BALANCE",
        help="Bank and its balance; the first bank is the primary wallet (repeatable)"
    )
    init_parser.add_argument(
        "--category", action="append", default=[], type=parse_assignment, metavar="NAME=AMOUNT",
        help="Starting category under the budget root (repeatable)"
    )

    show_parser = subparsers.add_parser("show", help="Show the tree as a table")
    show_parser.add_argument("--csv", type=str, help="Also export the table to this CSV file")

    summary_parser = subparsers.add_parser("summary", help="Show budget summary")
    summary_parser.add_argument(
        "--balance", type=float,
        help="Current total balance (default: sum of bank balances)"
    )

    add_parser = subparsers.add_parser("add", help="Add a category")
    add_parser.add_argument("name", help="Category name")
    add_parser.add_argument("amount", help="Allocated amount")
    add_parser.add_argument("--parent", default="total", help="Parent node id (default: total)")
    add_parser.add_argument("--icon", default="wallet", help="Icon name")
    add_parser.add_argument("--color", default="#3B82F6", help="Hex colour")

    edit_parser = subparsers.add_parser("edit", help="Edit a node")
    edit_parser.add_argument("id", help="Node id")
    edit_parser.add_argument("--name", help="New name")
    edit_parser.add_argument("--amount", help="New allocated amount")
    edit_parser.add_argument("--icon", help="New icon")
    edit_parser.add_argument("--color", help="New hex colour")

    delete_parser = subparsers.add_parser("delete", help="Delete a category and its subtree")
    delete_parser.add_argument("id", help="Node id")

    move_parser = subparsers.add_parser("move", help="Move a block on the canvas")
    move_parser.add_argument("id", help="Node id")
    move_parser.add_argument("x", type=float, help="New x coordinate")
    move_parser.add_argument("y", type=float, help="New y coordinate")

    post_parser = subparsers.add_parser("post", help="Post a transaction to a node")
    post_parser.add_argument("id", help="Node id")
    post_parser.add_argument("amount", help="Transaction amount (positive)")
    post_parser.add_argument("--description", default="", help="Description")
    post_parser.add_argument("--merchant", help="Merchant name")
    post_parser.add_argument("--income", action="store_true", help="Post as income instead of expense")

    unpost_parser = subparsers.add_parser("unpost", help="Remove a transaction from a node")
    unpost_parser.add_argument("id", help="Node id")
    unpost_parser.add_argument("transaction_id", help="Transaction id")

    tx_parser = subparsers.add_parser("transactions", help="List a node's transactions")
    tx_parser.add_argument("id", help="Node id")

    edges_parser = subparsers.add_parser("edges", help="Show routed connections")
    edges_parser.add_argument("--focus", help="Focused node id")

    return parser


def handle_init_command(args: argparse.Namespace, manager: BudgetManager, reporter: ReportGenerator) -> int:
    banks = [{"name": name, "balance": balance} for name, balance in args.bank]
    categories = [{"name": name, "allocated": amount} for name, amount in args.category]
    tree = manager.initialize(banks, categories)
    print(f"Initialized budget tree with {len(banks)} bank(s) and {len(tree)} node(s)")
    print_table(reporter.format_tree_frame(reporter.tree_to_dataframe(tree)), "BUDGET TREE")
    return 0


def handle_show_command(args: argparse.Namespace, manager: BudgetManager, reporter: ReportGenerator) -> int:
    df = reporter.tree_to_dataframe(manager.tree)
    print_table(reporter.format_tree_frame(df), "BUDGET TREE")
    if args.csv:
        reporter.export_to_csv(df, Path(args.csv), report_name="budget tree")
        print(f"Exported {len(df)} rows to {args.csv}")
    return 0


def handle_summary_command(args: argparse.Namespace, manager: BudgetManager, reporter: ReportGenerator) -> int:
    print(reporter.summary_report(manager.summary(args.balance)))
    return 0


def handle_add_command(args: argparse.Namespace, manager: BudgetManager, reporter: ReportGenerator) -> int:
    result = manager.add_child(args.parent, args.name, args.amount, args.icon, args.color)
    if not result.ok:
        return report_failure(result.error)
    node = result.value.node
    print(f"Created '{node.name}' ({node.id}) with {reporter.format_currency(node.allocated_amount)}")
    return 0


def handle_edit_command(args: argparse.Namespace, manager: BudgetManager, reporter: ReportGenerator) -> int:
    result = manager.edit_node(
        args.id, name=args.name, icon=args.icon, color=args.color, allocated_amount=args.amount
    )
    if not result.ok:
        return report_failure(result.error)
    print(f"Updated {args.id}")
    return 0


def handle_delete_command(args: argparse.Namespace, manager: BudgetManager, reporter: ReportGenerator) -> int:
    result = manager.delete_node(args.id)
    if not result.ok:
        return report_failure(result.error)
    outcome = result.value
    print(
        f"Deleted {len(outcome.deleted_ids)} node(s); "
        f"{reporter.format_currency(outcome.returned_amount)} returned to {outcome.parent_id}"
    )
    return 0


def handle_move_command(args: argparse.Namespace, manager: BudgetManager, reporter: ReportGenerator) -> int:
    manager.drag(args.id, (args.x, args.y))
    print(f"Moved {args.id} to ({args.x:g}, {args.y:g})")
    return 0


def handle_post_command(args: argparse.Namespace, manager: BudgetManager, reporter: ReportGenerator) -> int:
    tx_type = TransactionType.INCOME if args.income else TransactionType.EXPENSE
    result = manager.post_transaction(
        args.id, args.amount, description=args.description, type=tx_type, merchant=args.merchant
    )
    if not result.ok:
        return report_failure(result.error)
    transaction = result.value.transaction
    node = manager.tree.get(args.id)
    print(
        f"Posted {tx_type.value} {transaction.id} of {reporter.format_currency(transaction.amount)}; "
        f"'{node.name}' spent is now {reporter.format_currency(node.spent_amount)}"
    )
    return 0


def handle_unpost_command(args: argparse.Namespace, manager: BudgetManager, reporter: ReportGenerator) -> int:
    result = manager.remove_transaction(args.id, args.transaction_id)
    if not result.ok:
        return report_failure(result.error)
    node = manager.tree.get(args.id)
    print(f"Removed {args.transaction_id}; '{node.name}' spent is now {reporter.format_currency(node.spent_amount)}")
    return 0


def handle_transactions_command(args: argparse.Namespace, manager: BudgetManager, reporter: ReportGenerator) -> int:
    transactions = get_category_transactions(manager.tree, args.id)
    df = pd.DataFrame(
        [
            {
                "ID": t.id,
                "Date": t.date.strftime("%Y-%m-%d %H:%M"),
                "Type": t.type.value,
                "Amount": reporter.format_currency(t.amount),
                "Description": t.description,
                "Merchant": t.merchant or "",
            }
            for t in transactions
        ],
        columns=["ID", "Date", "Type", "Amount", "Description", "Merchant"]
    )
    print_table(df, f"TRANSACTIONS: {manager.tree.get(args.id).name} ({len(df)})")
    return 0


def handle_edges_command(args: argparse.Namespace, manager: BudgetManager, reporter: ReportGenerator) -> int:
    if args.focus:
        manager.select_node(args.focus)
    df = reporter.edges_to_dataframe(manager.edges(), manager.tree)
    title = f"CONNECTIONS (focus: {args.focus})" if args.focus else "CONNECTIONS"
    print_table(df, title)
    return 0


COMMAND_HANDLERS: Dict[str, Callable[[argparse.Namespace, BudgetManager, ReportGenerator], int]] = {
    "init": handle_init_command,
    "show": handle_show_command,
    "summary": handle_summary_command,
    "add": handle_add_command,
    "edit": handle_edit_command,
    "delete": handle_delete_command,
    "move": handle_move_command,
    "post": handle_post_command,
    "unpost": handle_unpost_command,
    "transactions": handle_transactions_command,
    "edges": handle_edges_command,
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main entry point for the application.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Process exit code
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    # Handle case where no command is provided
    if not args.command:
        parser.print_help()
        return 1

    config = load_config(Path(args.config))
    setup_logging(config)

    try:
        db_manager = DatabaseManager.from_config(config)
    except (BudgetTreeError, OSError) as e:
        logger.error(f"Failed to open database: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1

    manager = BudgetManager(db_manager, config)
    reporter = ReportGenerator()

    try:
        if args.command != "init":
            manager.load()
            if not len(manager.tree):
                print("No budget tree found. Run 'init' first.", file=sys.stderr)
                return 1
        return COMMAND_HANDLERS[args.command](args, manager, reporter)

    except BudgetTreeError as e:
        logger.error(f"Command '{args.command}' failed: {e}")
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    finally:
        db_manager.close()


if __name__ == "__main__":
    sys.exit(main())
