"""Text report output for PAB analysis.

This module creates text-based output to inspect a propagation pass:
- Per-order process sequence and start days
- Per-process daily input, output and running balance
- Shortfall summary (days with a negative balance)
"""

from datetime import date
from pathlib import Path
from typing import Optional, Union

from stitchplan.domain.models import PabResult

# Balances this close to zero are float noise, not shortfalls.
SHORTFALL_TOLERANCE = 1e-6


class PabReportGenerator:
    """Generates fixed-width text tables from a PAB result.

    Creates human-readable text showing, for every order and process in
    execution order, one row per reporting day with activity or a nonzero
    balance.
    """

    def __init__(self, show_idle_days: bool = False):
        """
        Args:
            show_idle_days: Also print days with no input, no output and a
                zero balance.
        """
        self.show_idle_days = show_idle_days

    def generate(
        self,
        result: PabResult,
        output_path: Union[str, Path],
        order_ids: Optional[list[str]] = None,
    ) -> str:
        """Generate the report and save it to a file.

        Returns:
            The generated text content.
        """
        content = self.generate_to_string(result, order_ids)
        Path(output_path).write_text(content)
        return content

    def generate_to_string(
        self,
        result: PabResult,
        order_ids: Optional[list[str]] = None,
    ) -> str:
        """Generate the report and return it as a string."""
        lines = []

        lines.append("=" * 80)
        lines.append("PROJECTED AVERAGE BALANCE")
        lines.append("=" * 80)
        lines.append(f"Orders computed: {len(result.sequences)}")
        if result.errors:
            lines.append(f"Orders failed: {len(result.errors)}")
        lines.append("")

        for order_id in order_ids or result.order_ids:
            if order_id not in result.sequences:
                continue
            lines.extend(self._order_section(result, order_id))

        shortfalls = self._shortfalls(result)
        lines.append("-" * 80)
        lines.append("SHORTFALLS (negative balance)")
        lines.append("-" * 80)
        if shortfalls:
            for order_id, process_id, day, balance in shortfalls:
                name = result.process_names.get(process_id, process_id)
                lines.append(
                    f"  {order_id:<24} {name:<16} {day.isoformat()} {balance:>12.1f}"
                )
        else:
            lines.append("  none")
        lines.append("")

        if result.errors:
            lines.append("-" * 80)
            lines.append("FAILED ORDERS")
            lines.append("-" * 80)
            for order_id, message in sorted(result.errors.items()):
                lines.append(f"  {order_id}: {message}")
            lines.append("")

        lines.append("=" * 80)
        lines.append("END OF PAB REPORT")
        lines.append("=" * 80)

        return "\n".join(lines)

    def _order_section(self, result: PabResult, order_id: str) -> list[str]:
        lines = []
        sequence = result.sequences[order_id]
        starts = result.process_start_dates.get(order_id, {})

        lines.append("-" * 80)
        lines.append(f"ORDER {order_id}")
        lines.append("-" * 80)
        names = [result.process_names.get(pid, pid) for pid in sequence]
        lines.append(f"Sequence: {' -> '.join(names)}")

        for process_id in sequence:
            name = result.process_names.get(process_id, process_id)
            start = starts.get(process_id)
            start_str = start.isoformat() if start else "-"
            lines.append("")
            lines.append(f"  {name} (starts {start_str})")
            lines.append(f"  {'Date':<12} {'Input':>12} {'Output':>12} {'Balance':>12}")

            inputs = result.inputs[order_id][process_id]
            outputs = result.outputs[order_id][process_id]
            balances = result.balances[order_id][process_id]
            for day in sorted(balances):
                received = inputs.get(day, 0.0)
                produced = outputs.get(day, 0.0)
                balance = balances[day]
                if not self.show_idle_days and not (received or produced or balance):
                    continue
                lines.append(
                    f"  {day.isoformat():<12} {received:>12.1f} "
                    f"{produced:>12.1f} {balance:>12.1f}"
                )

        lines.append("")
        return lines

    def _shortfalls(self, result: PabResult) -> list[tuple[str, str, date, float]]:
        """First negative-balance day per order and process."""
        found = []
        for order_id, per_process in result.balances.items():
            for process_id in result.sequences.get(order_id, []):
                daily = per_process.get(process_id, {})
                for day in sorted(daily):
                    if daily[day] < -SHORTFALL_TOLERANCE:
                        found.append((order_id, process_id, day, daily[day]))
                        break
        return found
