from rich.console import Console
from rich.table import Table

from subscription_engine.dispatch.expiry import SweepReport
from subscription_engine.dispatch.reminders import DispatchReport


def get_rich_console() -> Console: return Console(stderr=True)


def sweep_table(report: SweepReport) -> Table:
    table = Table(title="Subscription sweep")
    table.add_column("expired", justify="right")
    table.add_column("sent", justify="right")
    table.add_column("skipped", justify="right")
    table.add_column("failed", justify="right")
    table.add_row(str(report.expired), str(report.sent), str(report.skipped), str(report.failed))
    return table


def reminders_table(report: DispatchReport) -> Table:
    table = Table(title="Reminder dispatch")
    for column in ("due", "sent", "claimed elsewhere", "skipped", "failed"):
        table.add_column(column, justify="right")
    table.add_row(
        str(report.total), str(report.sent), str(report.already_claimed), str(report.skipped), str(report.failed)
    )
    return table
