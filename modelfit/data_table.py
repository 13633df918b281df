"""
data_table.py
~~~~~~~~~~~~~

A simple table of raw string values loaded from a CSV file, with numeric
access to its rows and columns.

Non-numeric cells are given numeric aliases so the data can be used for
fitting: within each column, distinct non-numeric values are numbered
0, 1, 2, ... in the order they are first converted. Aliases are kept per
column, so 'red' can be 0 in one column and 2 in another. Aliases can
also be set explicitly with set_alias().
"""

import csv
import logging
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

logger = logging.getLogger(__name__)

ColumnKey = Union[int, str]


class DataTable:
    """Rows of raw string values with per-column numeric aliases."""

    def __init__(self, has_header: bool = True):
        self.has_header = has_header
        self._column_names: List[str] = []
        self._rows: List[List[str]] = []
        self._num_cols = 0
        self._aliases: Dict[Tuple[str, int], float] = {}
        self._next_alias: List[float] = []

    @classmethod
    def from_csv(cls, path: str, has_header: bool = True) -> 'DataTable':
        """
        Load a comma-separated file.

        Args:
            path: Path to the CSV file
            has_header: Whether the first row holds column names

        Raises:
            OSError: If the file cannot be read
            ValueError: If a row has a different number of columns
        """
        table = cls(has_header)
        with open(path, 'r', newline='', encoding='utf-8') as f:
            reader = csv.reader(f)
            for line_no, row in enumerate(reader, start=1):
                row = [cell.strip() for cell in row]
                if not any(row):
                    continue
                if has_header and not table._column_names and not table._rows:
                    table.set_column_names(row)
                    continue
                try:
                    table.add_raw_row(row)
                except ValueError as e:
                    raise ValueError(f"{path}, line {line_no}: {e}") from e

        logger.info(
            f"Loaded {table.num_rows} rows and {table.num_cols} columns from {path}"
        )
        return table

    @property
    def num_rows(self) -> int:
        return len(self._rows)

    @property
    def num_cols(self) -> int:
        return self._num_cols

    @property
    def column_names(self) -> List[str]:
        return list(self._column_names)

    def set_column_names(self, names: Sequence[str]) -> None:
        """
        Name the columns.

        Raises:
            ValueError: If the table already has a different column count
        """
        if self._num_cols and len(names) != self._num_cols:
            raise ValueError(
                f"Got {len(names)} column names for a table with {self._num_cols} columns"
            )
        self._column_names = [str(n) for n in names]
        if not self._num_cols:
            self._set_num_cols(len(names))

    def _set_num_cols(self, count: int) -> None:
        self._num_cols = count
        self._next_alias = [0.0] * count

    def add_raw_row(self, row: Sequence[str]) -> None:
        """
        Append a row of raw values.

        Raises:
            ValueError: If the row's column count differs from the table's
        """
        if not self._num_cols:
            self._set_num_cols(len(row))
        if len(row) != self._num_cols:
            raise ValueError(
                f"Cannot insert a row with {len(row)} columns into a table "
                f"with {self._num_cols} columns"
            )
        self._rows.append([str(v) for v in row])

    def get_raw_row(self, row: int) -> List[str]:
        self._check_row(row)
        return list(self._rows[row])

    def get_raw_col(self, col: ColumnKey) -> List[str]:
        index = self._resolve_col(col)
        return [r[index] for r in self._rows]

    def get_numeric_row(self, row: int) -> np.ndarray:
        self._check_row(row)
        return np.array([
            self._numeric_value(value, col) for col, value in enumerate(self._rows[row])
        ])

    def get_numeric_col(self, col: ColumnKey) -> np.ndarray:
        """Values of a column (by index or name) with non-numeric cells aliased."""
        index = self._resolve_col(col)
        return np.array([self._numeric_value(r[index], index) for r in self._rows])

    def get_col_index(self, name: str) -> int:
        """Index of a named column, or -1 if there is no such column."""
        try:
            return self._column_names.index(name)
        except ValueError:
            return -1

    def set_alias(self, value: str, alias: float, col: int) -> None:
        """Use ``alias`` for every ``value`` cell in column ``col``."""
        self._check_col(col)
        self._aliases[(value, col)] = float(alias)

    def get_alias_value(self, value: str, col: int) -> Optional[float]:
        """The alias of a value in a column, or None if it has none."""
        alias = self._aliases.get((value, col))
        if alias is None:
            logger.warning(f"The string {value!r} does not have an alias in column {col}")
        return alias

    def write_to_file(self, path: str) -> None:
        with open(path, 'w', newline='', encoding='utf-8') as f:
            writer = csv.writer(f)
            if self.has_header and self._column_names:
                writer.writerow(self._column_names)
            writer.writerows(self._rows)

    def _numeric_value(self, value: str, col: int) -> float:
        alias = self._aliases.get((value, col))
        if alias is not None:
            return alias
        try:
            return float(value)
        except ValueError:
            alias = self._next_alias[col]
            self._next_alias[col] = alias + 1
            self._aliases[(value, col)] = alias
            logger.debug(f"Aliased {value!r} in column {col} to {alias}")
            return alias

    def _resolve_col(self, col: ColumnKey) -> int:
        if isinstance(col, str):
            index = self.get_col_index(col)
            if index < 0:
                raise KeyError(f"No column named {col!r}")
            return index
        self._check_col(col)
        return col

    def _check_row(self, row: int) -> None:
        if not 0 <= row < self.num_rows:
            raise IndexError(
                f"Row {row} out of bounds; the table has {self.num_rows} rows"
            )

    def _check_col(self, col: int) -> None:
        if not 0 <= col < self._num_cols:
            raise IndexError(
                f"Column {col} out of bounds; the table has {self._num_cols} columns"
            )
