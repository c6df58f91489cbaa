"""
kig-style run summaries - comfortable, informative summaries.

Printed once when a run of the coordinator ends, so it is easy to see at a
glance which pollers passed, which failed, and how many rows were polled.
"""
from typing import Any, Dict, List, Optional

from kig.messages.logger import KigLogger, _get_event_loop_time


def _format_elapsed(elapsed_time: float) -> str:
    hours = int(elapsed_time // 3600)
    minutes = int((elapsed_time % 3600) // 60)
    seconds = elapsed_time % 60

    time_parts = []
    if hours > 0:
        time_parts.append(f"{hours} hour{'s' if hours != 1 else ''}")
    if minutes > 0:
        time_parts.append(f"{minutes} minute{'s' if minutes != 1 else ''}")
    time_parts.append(f"{seconds:.2f} second{'s' if seconds != 1.0 else ''}")

    if len(time_parts) > 1:
        return ", ".join(time_parts[:-1]) + f" and {time_parts[-1]}"
    return time_parts[0]


class Summary:
    """Generates kig-style run summaries."""

    def __init__(self, logger: Optional[KigLogger] = None):
        """
        Initialize summary generator.

        Args:
            logger: Optional logger instance (default: creates new logger)
        """
        self.logger = logger or KigLogger("kig.summary")

    def generate_summary(
        self,
        poller_results: List[Dict[str, Any]],
        start_time: Optional[float] = None,
    ) -> None:
        """
        Generate and log run summary.

        Args:
            poller_results: List of poller result dictionaries with keys:
                - name: Poller name
                - status: "pass" or "fail"
                - cycles: Number of cycles run
                - rows: Number of rows published
                - error: Optional error message (for failures)
            start_time: Optional event loop start time for elapsed time
        """
        if not poller_results:
            return

        elapsed_time = (
            _get_event_loop_time() - start_time if start_time is not None else 0.0
        )

        total_rows = sum(r.get("rows", 0) for r in poller_results)
        total_cycles = sum(r.get("cycles", 0) for r in poller_results)
        passed = sum(1 for r in poller_results if r["status"] == "pass")
        failed = sum(1 for r in poller_results if r["status"] == "fail")

        self.logger.info("")

        poller_word = "poller" if len(poller_results) == 1 else "pollers"
        self.logger.info(
            f"Finished running {len(poller_results)} {poller_word} "
            f"in {_format_elapsed(elapsed_time)} ({elapsed_time:.2f}s)."
        )

        if failed == 0:
            self.logger.info("Completed successfully", color_prefix="OK")
            self.logger.info(f"{passed} {'poller' if passed == 1 else 'pollers'} passed.")
        else:
            self.logger.error("Completed with errors")
            parts = []
            if passed > 0:
                parts.append(f"{passed} passed")
            parts.append(f"{failed} failed")
            self.logger.info(f"{', '.join(parts)} ({len(poller_results)} total).")

        if total_cycles > 0:
            cycle_word = "cycle" if total_cycles == 1 else "cycles"
            self.logger.info(f"Ran {total_cycles:,} {cycle_word}.")

        if total_rows > 0:
            self.logger.info(f"Total rows polled: {total_rows:,}")
            if elapsed_time > 0:
                self.logger.info(f"Overall rate: {total_rows / elapsed_time:,.0f} rows/s")

        self.logger.info("")

        if failed > 0:
            self.logger.error("Failed pollers:")
            for result in poller_results:
                if result["status"] == "fail":
                    error_msg = result.get("error") or "Unknown error"
                    self.logger.error(f"  {result['name']}: {error_msg}")
