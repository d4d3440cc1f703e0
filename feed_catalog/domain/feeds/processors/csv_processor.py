import pandas as pd
from typing import Any, Dict, Iterator, List
import csv
import io
import logging

from feed_catalog.domain.feeds.records import RawRecord

logger = logging.getLogger(__name__)

# Order breaks ties between equally frequent candidates.
DELIMITER_CANDIDATES = (",", ";", "\t")
CHUNK_SIZE = 5000


def detect_delimiter(header_line: str) -> str:
    """
    Pick the most frequent delimiter candidate in the header line.

    Args:
        header_line: First line of the CSV payload

    Returns:
        The chosen delimiter; comma when no candidate occurs at all
    """
    best = DELIMITER_CANDIDATES[0]
    best_count = 0
    for candidate in DELIMITER_CANDIDATES:
        count = header_line.count(candidate)
        if count > best_count:
            best, best_count = candidate, count
    return best


def _first_line(text: str) -> str:
    for line in text.splitlines():
        if line.strip():
            return line
    return ""


def _clean_row(row: Dict[str, Any]) -> RawRecord:
    """Drop missing and blank cells so absent fields stay absent."""
    record: RawRecord = {}
    for key, value in row.items():
        if not isinstance(value, str) or not value.strip():
            continue
        record[str(key)] = value
    return record


def _iter_rows(text: str, delimiter: str, quoting: int) -> Iterator[RawRecord]:
    read_options = dict(
        sep=delimiter,
        dtype=str,
        keep_default_na=False,
        engine="python",
        quoting=quoting,
        skip_blank_lines=True,
    )
    header = pd.read_csv(io.StringIO(text), nrows=0, **read_options)
    width = len(header.columns)

    # Rows with surplus fields are truncated to the header width, short rows
    # come back with missing cells; neither is rejected.
    reader = pd.read_csv(
        io.StringIO(text),
        chunksize=CHUNK_SIZE,
        on_bad_lines=lambda fields: fields[:width],
        **read_options,
    )
    with reader:
        for chunk in reader:
            for row in chunk.to_dict("records"):
                record = _clean_row(row)
                if record:
                    yield record


def iter_csv_records(file_content: bytes) -> Iterator[RawRecord]:
    """
    Stream records from a CSV feed keyed by header name.

    The delimiter is detected from the header line. Parsing is lenient: a
    quoting failure before any row was produced is retried with quoting
    disabled, and a failure after that ends the stream.
    """
    text = file_content.decode("utf-8-sig", errors="replace")
    header_line = _first_line(text)
    if not header_line:
        return

    delimiter = detect_delimiter(header_line)
    yielded = 0

    for quoting in (csv.QUOTE_MINIMAL, csv.QUOTE_NONE):
        try:
            for record in _iter_rows(text, delimiter, quoting):
                yielded += 1
                yield record
            return
        except pd.errors.EmptyDataError:
            return
        except (pd.errors.ParserError, csv.Error) as exc:
            if yielded:
                logger.warning("CSV feed parsing stopped after %d rows: %s", yielded, exc)
                return
            if quoting == csv.QUOTE_NONE:
                logger.warning("CSV feed could not be parsed with delimiter %r: %s", delimiter, exc)
                return
            logger.info("CSV parsing failed with quoting enabled (%s); retrying with quoting disabled", exc)


def process_csv(file_content: bytes) -> List[RawRecord]:
    """Process a CSV feed and return every row as a raw record."""
    records = list(iter_csv_records(file_content))
    logger.info("Processed CSV feed: %d rows", len(records))
    return records
