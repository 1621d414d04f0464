"""
Report generator module for formatting budget tree data.

This module turns tree snapshots, summaries, and routed connections into
pandas DataFrames and plain-text reports for the command line.
"""

import logging
from pathlib import Path
from typing import Iterable, List, Optional

import pandas as pd

from allocation import compute_display_amount, compute_display_denominator
from budget_models import BudgetSummary, NodeKind
from connections import Edge
from tree_store import BudgetTree

logger = logging.getLogger(__name__)

TREE_COLUMNS = [
    'id', 'name', 'kind', 'parent', 'allocated', 'spent',
    'display_amount', 'denominator', 'depth',
]
EDGE_COLUMNS = ['parent', 'child', 'segments', 'arrow_x', 'arrow_y', 'color', 'show_all']


class ReportGenerator:
    """
    Generate formatted reports from budget tree data.

    Supports DataFrame output (for tabulate in the CLI or CSV export) and
    fixed-width text reports.
    """

    def __init__(self):
        """Initialize the report generator."""
        logger.info("Report generator initialized")

    def format_currency(self, amount: float) -> str:
        """
        Format amount as currency string.

        Args:
            amount: Amount to format

        Returns:
            Formatted currency string
        """
        if amount < 0:
            return f"-${abs(amount):,.2f}"
        return f"${amount:,.2f}"

    def format_percentage(self, percentage: float) -> str:
        return f"{percentage:.1f}%"

    def tree_to_dataframe(self, tree: BudgetTree) -> pd.DataFrame:
        """
        Flatten a tree into one row per node.

        Banks come first, then the budget root and its categories in
        depth-first order, so the frame reads top to bottom like the canvas.

        Args:
            tree: Tree snapshot

        Returns:
            DataFrame with TREE_COLUMNS
        """
        ordered: List[str] = [node.id for node in tree if node.kind is NodeKind.BANK]
        for root in (node for node in tree if node.kind is NodeKind.BUDGET):
            ordered.append(root.id)
            ordered.extend(tree.descendant_ids(root.id))
        ordered.extend(node_id for node_id in tree.ids() if node_id not in ordered)

        rows = []
        for node_id in ordered:
            node = tree.get(node_id)
            rows.append({
                'id': node.id,
                'name': node.name,
                'kind': node.kind.value,
                'parent': node.parent_id or '',
                'allocated': node.allocated_amount,
                'spent': node.spent_amount,
                'display_amount': compute_display_amount(node, tree),
                'denominator': compute_display_denominator(node, tree),
                'depth': len(tree.ancestor_ids(node.id)),
            })

        df = pd.DataFrame(rows, columns=TREE_COLUMNS)
        logger.debug(f"Built tree frame with {len(df)} rows")
        return df

    def format_tree_frame(self, df: pd.DataFrame) -> pd.DataFrame:
        """Copy of a tree frame with indented names and currency strings, for display."""
        display_df = df.copy()
        if display_df.empty:
            return display_df

        display_df['name'] = [
            "  " * int(depth) + name for name, depth in zip(display_df['name'], display_df['depth'])
        ]
        for column in ('allocated', 'spent', 'display_amount', 'denominator'):
            display_df[column] = display_df[column].apply(self.format_currency)
        return display_df.drop(columns=['depth'])

    def summary_report(self, summary: BudgetSummary) -> str:
        """
        Generate text report for the budget summary.

        Args:
            summary: BudgetSummary from the budget manager

        Returns:
            Formatted text report
        """
        report_lines = [
            "=" * 60,
            "BUDGET SUMMARY",
            "=" * 60,
            f"Total Budget:       {self.format_currency(summary.total_budget):>20}",
            f"Total Spent:        {self.format_currency(summary.total_spent):>20}",
            f"Available:          {self.format_currency(summary.available):>20}",
            f"Used:               {self.format_percentage(summary.percentage_used):>20}",
            "-" * 60,
            f"Categories:         {summary.category_count:>20}",
            f"Banks:              {summary.bank_count:>20}",
            f"Bank Balance:       {self.format_currency(summary.total_bank_balance):>20}",
            "=" * 60,
        ]
        return "\n".join(report_lines)

    def edges_to_dataframe(self, edges: Iterable[Edge], tree: Optional[BudgetTree] = None) -> pd.DataFrame:
        """
        One row per routed connection.

        Args:
            edges: Routed edges
            tree: Optional tree used to show names instead of ids

        Returns:
            DataFrame with EDGE_COLUMNS
        """
        def label(node_id: str) -> str:
            if tree is None:
                return node_id
            node = tree.find(node_id)
            return node.name if node is not None else node_id

        rows = [
            {
                'parent': label(edge.parent_id),
                'child': label(edge.child_id),
                'segments': len(edge.segments),
                'arrow_x': edge.arrow.tip.x if edge.arrow else None,
                'arrow_y': edge.arrow.tip.y if edge.arrow else None,
                'color': edge.color,
                'show_all': edge.show_all_descendants,
            }
            for edge in edges
        ]
        return pd.DataFrame(rows, columns=EDGE_COLUMNS)

    def export_to_csv(self, df: pd.DataFrame, output_path: Path, report_name: str = "report") -> None:
        """
        Export DataFrame to CSV file.

        Args:
            df: DataFrame to export
            output_path: Output file path
            report_name: Name of the report for logging
        """
        try:
            df.to_csv(output_path, index=False)
            logger.info(f"Exported {report_name} to {output_path}")
        except OSError as e:
            logger.error(f"Failed to export {report_name}: {e}")
            raise
