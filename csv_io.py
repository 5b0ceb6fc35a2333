"""CSV boundary of the ledger.

``TransactionReader`` turns lines of ``type,client,tx,amount`` into
``TransactionRecord`` values, dropping rows that cannot be parsed.
``write_accounts`` renders the final account table.
"""
import csv
from typing import Iterable, Iterator, List, TextIO

import structlog
from pydantic import ValidationError

from models import AccountSnapshot, TransactionRecord

logger = structlog.get_logger()

INPUT_COLUMNS = ("type", "client", "tx", "amount")
OUTPUT_COLUMNS = ("client", "available", "held", "total", "locked")


class TransactionReader:
    """Lazily yields records from CSV lines, in input order.

    The header row is optional and the trailing amount column may be
    omitted. Malformed rows are logged and counted in ``dropped``.
    """

    def __init__(self, lines: Iterable[str]):
        self.lines = lines
        self.dropped = 0

    def __iter__(self) -> Iterator[TransactionRecord]:
        reader = csv.reader(self.lines, skipinitialspace=True)
        first_row = True
        for row in reader:
            fields = [field.strip() for field in row]
            if not any(fields):
                continue
            if first_row:
                first_row = False
                if fields[0].lower() == INPUT_COLUMNS[0]:
                    continue

            record = self._parse_row(fields, reader.line_num)
            if record is not None:
                yield record

    def _parse_row(self, fields: List[str], line_no: int):
        if len(fields) < 3:
            self._drop(line_no, fields, "too few fields")
            return None

        data = dict(zip(INPUT_COLUMNS, fields))
        if not data.get("amount"):
            data.pop("amount", None)

        try:
            return TransactionRecord(**data)
        except ValidationError as e:
            self._drop(line_no, fields, "; ".join(err["msg"] for err in e.errors()))
            return None

    def _drop(self, line_no: int, fields: List[str], reason: str) -> None:
        self.dropped += 1
        logger.warning(
            "Dropping malformed row",
            line=line_no,
            row=",".join(fields),
            reason=reason
        )


def write_accounts(accounts: Iterable[AccountSnapshot], out: TextIO) -> None:
    writer = csv.writer(out, lineterminator="\n")
    writer.writerow(OUTPUT_COLUMNS)
    for snapshot in accounts:
        row = snapshot.model_dump()
        writer.writerow([
            row["client"],
            row["available"],
            row["held"],
            row["total"],
            str(row["locked"]).lower(),
        ])
