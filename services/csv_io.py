import csv
import io
import re
from typing import Iterable

from models.card import Card

EXPORT_FIELDS = ["front", "back", "correct_count", "incorrect_count"]
REQUIRED_COLUMNS = ("front", "back")


class CsvFormatError(ValueError):
    pass


def export_filename(name: str | None, deck_id: int) -> str:
    """Create a filesystem-friendly filename for deck exports."""
    if name:
        slug = re.sub(r"[^A-Za-z0-9]+", "-", name.lower()).strip("-")
    else:
        slug = ""
    if not slug:
        slug = f"deck-{deck_id}"
    return f"{slug}.csv"


def export_cards(cards: Iterable[Card]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=EXPORT_FIELDS)
    writer.writeheader()
    for card in cards:
        writer.writerow(
            {
                "front": card.front or "",
                "back": card.back or "",
                "correct_count": card.correct_count or 0,
                "incorrect_count": card.incorrect_count or 0,
            }
        )
    return buffer.getvalue()


def decode_upload(raw_bytes: bytes) -> str:
    if not raw_bytes:
        raise CsvFormatError("Uploaded file is empty.")
    try:
        return raw_bytes.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise CsvFormatError("CSV must be UTF-8 encoded.") from exc


def parse_cards(content: str) -> list[dict]:
    """Read ``front``/``back`` rows from CSV text.

    Headers are matched case-insensitively. A file whose first row is not a
    recognised header is read positionally as ``front, back``. Blank rows are
    skipped; every returned row carries its 1-based line number under ``row``.
    """
    rows = list(csv.reader(io.StringIO(content)))
    if not rows:
        raise CsvFormatError("CSV file must include a header row.")

    header = [(cell or "").strip().lower() for cell in rows[0]]
    if all(column in header for column in REQUIRED_COLUMNS):
        front_idx, back_idx = header.index("front"), header.index("back")
        body, first_row = rows[1:], 2
    elif len(header) == 2:
        front_idx, back_idx = 0, 1
        body, first_row = rows, 1
    else:
        raise CsvFormatError("CSV must include Front and Back columns.")

    entries: list[dict] = []
    for row_number, row in enumerate(body, start=first_row):
        cells = [(cell or "").strip() for cell in row]
        if not any(cells):
            continue
        front = cells[front_idx] if front_idx < len(cells) else ""
        back = cells[back_idx] if back_idx < len(cells) else ""
        entries.append({"row": row_number, "front": front, "back": back})
    return entries
