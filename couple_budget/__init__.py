"""Top-level package for the couple budget tracker.

The primary modules are:

* ``frequency`` – payment cadences and next-occurrence rules
* ``models`` – transactions, recurring expenses, savings goals, budgets
* ``recurring`` / ``goals`` – scheduling and savings bookkeeping
* ``analytics`` – the budget aggregator behind the dashboard figures
* ``db`` / ``records`` – the SQLite record store and its field maps
* ``manager`` – the state service tying everything together

To print this month's summary from the command line you can execute:

```bash
python scripts/budget_cli.py summary
```
"""

from .manager import BudgetManager, SyncStatus  # noqa: F401  # re-exported for convenience

__all__ = ["BudgetManager", "SyncStatus"]
