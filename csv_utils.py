from datetime import datetime
from decimal import Decimal
from typing import Sequence

from clock import Clock
from errors import EmptyExport
from ledger import LedgerEntry
from models import EntryType, PaymentMethod

CSV_HEADER = ["Tipo", "Monto", "Fecha", "Método", "Descripción"]

TYPE_LABELS = {
    EntryType.income: "Ingreso",
    EntryType.expense: "Gasto",
}

METHOD_LABELS = {
    PaymentMethod.cash: "Efectivo",
    PaymentMethod.debit_card: "Tarjeta de Débito",
    PaymentMethod.credit_card: "Tarjeta de Crédito",
    PaymentMethod.transfer: "Transferencia",
    PaymentMethod.other: "Otro",
}


def escape_csv_field(value: str) -> str:
    """
    Double embedded quotes, then quote the field only when it contains a comma.
    """
    escaped = value.replace('"', '""')
    if "," in escaped:
        return f'"{escaped}"'
    return escaped


def format_amount(amount: Decimal) -> str:
    return format(amount.normalize(), "f")


def export_row(entry: LedgerEntry, clock: Clock) -> list[str]:
    return [
        TYPE_LABELS[entry.type],
        format_amount(entry.amount),
        clock.format_civil_date(entry.date),
        METHOD_LABELS[entry.method],
        entry.description or "",
    ]


def serialize_entries(entries: Sequence[LedgerEntry], clock: Clock) -> str:
    if not entries:
        raise EmptyExport()
    lines = [",".join(escape_csv_field(cell) for cell in CSV_HEADER)]
    for entry in entries:
        lines.append(",".join(escape_csv_field(cell) for cell in export_row(entry, clock)))
    return "\n".join(lines)


def export_filename(now: datetime, clock: Clock) -> str:
    return f"caja-verduleria-{clock.to_civil_date_key(now)}.csv"
