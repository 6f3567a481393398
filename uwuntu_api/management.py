"""Administrative listing, revocation, deletion and CSV export of accounts."""
from __future__ import annotations

import csv
import io
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterator, List, Optional, Sequence

from .database import Database
from .errors import InvalidId
from .models import AccountRecord, UserListing

logger = logging.getLogger("uwuntu.management")

# Answers "seen recently", not "connected right now".
PRESENCE_WINDOW = timedelta(days=30)

CSV_COLUMNS = (
    "id",
    "firstname",
    "lastname",
    "email",
    "user_created_at",
    "api_key",
    "apikey_created_at",
    "last_seen",
)
CSV_FILENAME = "users_apikeys.csv"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def is_online_now(last_seen: Optional[datetime], now: datetime, *, window: timedelta = PRESENCE_WINDOW) -> bool:
    if last_seen is None:
        return False
    return now - last_seen <= window


def _csv_row(record: AccountRecord) -> List[object]:
    return [
        record.id,
        record.firstname,
        record.lastname,
        record.email,
        _isoformat(record.user_created_at),
        record.api_key,
        _isoformat(record.apikey_created_at),
        _isoformat(record.last_seen),
    ]


def render_csv_lines(records: Sequence[AccountRecord]) -> Iterator[str]:
    """Yield the export one line at a time, header first.

    Text fields are always quoted with embedded quotes doubled, missing values
    become an empty quoted field and the numeric id is left bare.
    """

    yield ",".join(CSV_COLUMNS) + "\n"
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
    for record in records:
        writer.writerow(_csv_row(record))
        yield buffer.getvalue()
        buffer.seek(0)
        buffer.truncate(0)


class AdminManagementService:
    def __init__(
        self,
        database: Database,
        *,
        clock: Callable[[], datetime] = _utcnow,
        presence_window: timedelta = PRESENCE_WINDOW,
    ) -> None:
        self._database = database
        self._clock = clock
        self._presence_window = presence_window

    def list_users(self, now: Optional[datetime] = None) -> List[UserListing]:
        reference = now or self._clock()
        return [
            UserListing(
                record=record,
                online_now=is_online_now(record.last_seen, reference, window=self._presence_window),
            )
            for record in self._database.list_accounts()
        ]

    def revoke_key(self, user_id: int) -> None:
        removed = self._database.delete_api_key(user_id)
        logger.info("Revoked API key for user %s (existed=%s)", user_id, removed)

    def delete_user(self, user_id: Optional[int]) -> None:
        if not user_id:
            raise InvalidId("invalid id")
        removed = self._database.delete_account(user_id)
        logger.info("Deleted user %s and its API key (existed=%s)", user_id, removed)

    def export_csv(self) -> Iterator[bytes]:
        """Return the CSV export as an iterator of encoded lines.

        Rows are read before the iterator is returned so store failures are
        raised to the caller rather than in the middle of a stream.
        """

        records = self._database.list_accounts()
        logger.info("Exporting %d account(s) as CSV", len(records))
        return (line.encode("utf-8") for line in render_csv_lines(records))


__all__ = [
    "AdminManagementService",
    "CSV_COLUMNS",
    "CSV_FILENAME",
    "PRESENCE_WINDOW",
    "is_online_now",
    "render_csv_lines",
]
