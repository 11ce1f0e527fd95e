"""CSV and Excel serial number reader.

This adapter implements ISerialFileReader to read the list of device
serial numbers to delete from a CSV file or an .xlsx workbook.
"""

import csv
import io
import logging
from pathlib import Path
from typing import Iterable, Optional, Union
from zipfile import BadZipFile

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from ...api.exceptions import InputFileError
from ..domain.entities import SerialSet
from ..domain.ports import ISerialFileReader

logger = logging.getLogger(__name__)


class SerialFileReader(ISerialFileReader):
    """Serial file reader using csv and openpyxl.

    Expected format:
    | Device Serial Number |
    |----------------------|
    | 7243-2648-3107-2818  |
    | 6923-30              |

    - First row is treated as header
    - Serial number column is required, other columns are ignored
    - Duplicate serials (case-insensitive) are dropped, first one kept
    """

    # Column name variations we accept
    SERIAL_COLUMNS = [
        "device serial number",
        "serial number",
        "serial",
        "serialnumber",
        "serial_number",
        "sn",
    ]

    def read(self, path: Union[str, Path]) -> SerialSet:
        """Read serial numbers from a CSV or .xlsx file.

        Args:
            path: File to read

        Returns:
            SerialSet in file order

        Raises:
            InputFileError: If the file is missing, empty, unreadable,
                or has no serial number column
        """
        path = Path(path)
        try:
            content = path.read_bytes()
        except FileNotFoundError:
            raise InputFileError(f"Input file not found: {path}", path=str(path))
        except OSError as e:
            raise InputFileError(f"Cannot read input file {path}: {e}", path=str(path), cause=e)

        if not content.strip():
            raise InputFileError(f"Input file is empty: {path}", path=str(path))

        if self._is_csv(content):
            serials = self._read_csv(content, path)
        else:
            serials = self._read_excel(content, path)

        result = SerialSet(serials)
        if result.duplicates_removed:
            logger.info(f"Removed {result.duplicates_removed} duplicate serial(s) from {path.name}")
        logger.info(f"Read {len(result)} serial(s) from {path.name}")
        return result

    def _is_csv(self, content: bytes) -> bool:
        """Detect whether content is delimited text rather than a workbook.

        A single-column CSV has no delimiter, so any UTF-8 text that is not
        a zip archive (xlsx) is treated as CSV.
        """
        if content[:2] == b"PK":
            return False
        try:
            content.decode("utf-8-sig")
        except UnicodeDecodeError:
            return False
        return True

    def _read_csv(self, content: bytes, path: Path) -> list[str]:
        text = content.decode("utf-8-sig")  # Handle BOM

        # Detect delimiter
        try:
            dialect = csv.Sniffer().sniff(text[:1024], delimiters=",;\t")
        except csv.Error:
            dialect = csv.excel

        reader = csv.reader(io.StringIO(text), dialect)
        try:
            header_row = next(reader)
        except StopIteration:
            raise InputFileError(f"Input file is empty: {path}", path=str(path))

        serial_col = self._find_serial_column(header_row)
        if serial_col is None:
            raise self._missing_column_error(path)

        return [
            row[serial_col].strip()
            for row in reader
            if row and serial_col < len(row) and row[serial_col].strip()
        ]

    def _read_excel(self, content: bytes, path: Path) -> list[str]:
        try:
            wb = load_workbook(filename=io.BytesIO(content), read_only=True)
        except (BadZipFile, InvalidFileException, OSError) as e:
            raise InputFileError(
                f"Input file is neither CSV nor a readable .xlsx workbook: {path}",
                path=str(path),
                cause=e,
            )

        try:
            ws = wb.active
            if ws is None:
                raise InputFileError(f"Workbook has no active worksheet: {path}", path=str(path))

            rows = ws.iter_rows(values_only=True)
            header_row = next(rows, None)
            if header_row is None:
                raise InputFileError(f"Input file is empty: {path}", path=str(path))

            serial_col = self._find_serial_column(header_row)
            if serial_col is None:
                raise self._missing_column_error(path)

            serials = []
            for row in rows:
                value = row[serial_col] if serial_col < len(row) else None
                if value is None or str(value).strip() == "":
                    continue
                serials.append(str(value).strip())
            return serials
        finally:
            wb.close()

    def _find_serial_column(self, header_row: Iterable[Optional[object]]) -> Optional[int]:
        for idx, cell in enumerate(header_row):
            if cell is None:
                continue
            if str(cell).strip().lower() in self.SERIAL_COLUMNS:
                return idx
        return None

    def _missing_column_error(self, path: Path) -> InputFileError:
        return InputFileError(
            f"Could not find serial number column in {path}. "
            f"Expected one of: {', '.join(self.SERIAL_COLUMNS)}",
            path=str(path),
        )
