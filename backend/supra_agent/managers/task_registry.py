"""Task registry: local record of registered automations plus remote status."""

import logging
import threading
from typing import Any, Dict, List, Optional

from supra_agent.ledger.ledger_client import LedgerClient
from supra_agent.models import AutomationStatus, AutomationTask


logger = logging.getLogger(__name__)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


class TaskRegistry:
    """Append-only task store. Status is always re-read from the ledger."""

    def __init__(self, ledger: LedgerClient, module_address: str):
        self.ledger = ledger
        self.module_address = module_address
        self._tasks: List[AutomationTask] = []
        self._lock = threading.Lock()

    def append(self, task: AutomationTask) -> None:
        with self._lock:
            self._tasks.append(task)

    def tasks(self) -> List[AutomationTask]:
        """Snapshot of all tasks in insertion order."""
        with self._lock:
            return list(self._tasks)

    def get(self, task_id: str) -> Optional[AutomationTask]:
        with self._lock:
            for task in self._tasks:
                if task.task_id == task_id:
                    return task
        return None

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)

    def _view(self, function_name: str, address: str) -> List[Any]:
        function = f"{self.module_address}::agent_swap_autom::{function_name}"
        return self.ledger.view(function, [], [address])

    def refresh_status(self, address: str) -> AutomationStatus:
        """
        Query the automation module for the account's current state.

        Any failure degrades to the inactive status.
        """
        try:
            initialized = self._view("is_automation_initialized", address)
            if not initialized or not _as_bool(initialized[0]):
                return AutomationStatus.inactive()

            stats = self._view("get_user_automation_stats", address)
            if len(stats) < 5:
                raise ValueError(f"Unexpected automation stats: {stats}")
            trigger = self._view("will_swap_trigger", address)

            return AutomationStatus(
                initialized=True,
                budget_used=int(stats[0]),
                total_budget=int(stats[1]),
                received=int(stats[2]),
                total_swaps=int(stats[3]),
                active=_as_bool(stats[4]),
                will_trigger_next=bool(trigger) and _as_bool(trigger[0]),
            )
        except Exception as e:
            logger.warning(f"Could not read automation status for {address}: {e}")
            return AutomationStatus.inactive()

    def task_overview(self, address: str) -> List[Dict[str, Any]]:
        """Each task alongside the freshly queried automation status."""
        tasks = self.tasks()
        if not tasks:
            return []

        status = self.refresh_status(address)
        return [
            {
                "task_id": task.task_id,
                "tx_hash": task.tx_hash,
                "trigger_pair": task.trigger_pair,
                "total_budget": task.total_budget,
                "amount_per_step": task.amount_per_step,
                "status": task.status,
                "registered_at": task.registered_at,
                "expires_at": task.expires_at,
                "active": status.active,
                "total_swaps": status.total_swaps,
                "progress_pct": round(status.progress_pct, 1),
            }
            for task in tasks
        ]
