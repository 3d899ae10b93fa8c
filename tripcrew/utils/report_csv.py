import csv
import io
import re

from tripcrew.schemas.choices.choice import ItemReport, UserReport


def export_filename(choice_name: str, kind: str) -> str:
    return f"{re.sub(r'[^A-Za-z0-9]', '_', choice_name)}_{kind}.csv"


def _write(rows) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerows(rows)
    return buffer.getvalue()


def items_report_csv(report: ItemReport) -> str:
    rows = [["Item Name", "Unit Price", "Total Quantity", "Total Price", "Distinct Users"]]
    for item in report.items:
        rows.append([
            item.name,
            f"{item.price:.2f}" if item.price is not None else "N/A",
            item.qty_total,
            f"{item.total_price:.2f}",
            item.distinct_users,
        ])
    rows.append(["GRAND TOTAL", "", "", f"{report.grand_total:.2f}", ""])
    return _write(rows)


def users_report_csv(report: UserReport) -> str:
    """
    One row per selected item. The person's name and overall note sit on their
    first row, followed by a subtotal row.
    """
    rows = [["User", "Item", "Quantity", "Price", "Note"]]
    for user in report.users:
        for index, line in enumerate(user.lines):
            first = index == 0
            rows.append([
                user.name if first else "",
                line.name,
                line.quantity,
                f"{line.line_total:.2f}",
                (user.note or "") if first else (line.note or ""),
            ])
        rows.append(["", f"{user.name} Total", "", f"{user.user_total_price:.2f}", ""])
    rows.append(["", "GRAND TOTAL", "", f"{report.grand_total:.2f}", ""])
    return _write(rows)
