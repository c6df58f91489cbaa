"""
SQL statements with named parameters.

A statement is the immutable SQL text a poller runs every cycle. Named
placeholders (`:name`) are resolved against the poller's parameters when a
cycle starts and rewritten to positional `?` markers for the driver.

Placeholders are only recognized in SQL code, not inside string literals,
quoted identifiers, or comments, and `::` (PostgreSQL casts) is left alone:

    SELECT * FROM orders
    WHERE updated_at > :sql_last_start     -- placeholder
      AND note <> 'a:b'                    -- not a placeholder
      AND id::text = :my_id                -- cast kept, :my_id bound
"""
from pathlib import Path
from typing import Any, List, Mapping, NamedTuple, Optional, Tuple, Union

from kig.utility.exceptions import BindingError, ConfigError


class BoundStatement(NamedTuple):
    """A statement ready for the driver: qmark SQL plus ordered values."""

    sql: str
    values: List[Any]


def _is_name_start(char: str) -> bool:
    return char.isalpha() or char == "_"


def _is_name_char(char: str) -> bool:
    return char.isalnum() or char == "_"


def _parse(text: str) -> Tuple[List[str], List[str]]:
    """
    Split SQL text into literal chunks and placeholder names.

    Returns:
        (chunks, names) where len(chunks) == len(names) + 1 and the SQL is
        chunks[0] + <names[0]> + chunks[1] + ... + chunks[-1]
    """
    chunks: List[str] = []
    names: List[str] = []
    current: List[str] = []
    i = 0
    length = len(text)

    while i < length:
        char = text[i]

        if char in ("'", '"'):
            # Quoted string or identifier, doubled quote escapes itself
            end = i + 1
            while end < length:
                if text[end] == char:
                    if end + 1 < length and text[end + 1] == char:
                        end += 2
                        continue
                    break
                end += 1
            current.append(text[i:end + 1])
            i = end + 1
        elif text.startswith("--", i):
            end = text.find("\n", i)
            end = length if end == -1 else end
            current.append(text[i:end])
            i = end
        elif text.startswith("/*", i):
            end = text.find("*/", i + 2)
            end = length if end == -1 else end + 2
            current.append(text[i:end])
            i = end
        elif text.startswith("::", i):
            current.append("::")
            i += 2
        elif char == ":" and i + 1 < length and _is_name_start(text[i + 1]):
            end = i + 1
            while end < length and _is_name_char(text[end]):
                end += 1
            chunks.append("".join(current))
            current = []
            names.append(text[i + 1:end])
            i = end
        else:
            current.append(char)
            i += 1

    chunks.append("".join(current))
    return chunks, names


class Statement:
    """
    Immutable SQL text with named placeholders.

    Example:
        ```python
        statement = Statement("SELECT * FROM t WHERE id > :last_max_id")
        statement.parameter_names      # ['last_max_id']
        statement.bind({"last_max_id": 41})
        # BoundStatement(sql='SELECT * FROM t WHERE id > ?', values=[41])
        ```
    """

    def __init__(self, text: str, source: Optional[str] = None):
        if text is None or not str(text).strip():
            raise ConfigError("A statement is required and cannot be empty")
        self._text = str(text)
        self._source = source
        self._chunks, self._placeholders = _parse(self._text)

    @property
    def text(self) -> str:
        return self._text

    @property
    def source(self) -> Optional[str]:
        """Path of the file the statement was read from, if any."""
        return self._source

    @property
    def placeholders(self) -> List[str]:
        """Placeholder names in order of appearance, repeats included."""
        return list(self._placeholders)

    @property
    def parameter_names(self) -> List[str]:
        """Unique placeholder names in order of first appearance."""
        return list(dict.fromkeys(self._placeholders))

    def bind(self, parameters: Mapping[str, Any]) -> BoundStatement:
        """
        Resolve every placeholder against parameters.

        A parameter that is present with a None value binds as NULL. Keys
        the statement does not reference are ignored.

        Args:
            parameters: Parameter mapping for this cycle

        Returns:
            BoundStatement with `?` markers and their values in order

        Raises:
            BindingError: If a placeholder has no matching key
        """
        missing = [name for name in self.parameter_names if name not in parameters]
        if missing:
            raise BindingError(missing[0], missing)

        sql_parts = [self._chunks[0]]
        for chunk in self._chunks[1:]:
            sql_parts.append("?")
            sql_parts.append(chunk)

        return BoundStatement(
            sql="".join(sql_parts),
            values=[parameters[name] for name in self._placeholders],
        )

    @classmethod
    def load(
        cls,
        value: Union[str, "Statement", None],
        base_dir: Optional[Union[str, Path]] = None,
    ) -> "Statement":
        """
        Build a statement from literal SQL or from a file holding it.

        If value names an existing file (relative paths are tried against
        base_dir first, then the current directory), the file's contents
        trimmed of surrounding whitespace become the statement. Otherwise
        value itself is the SQL.

        Raises:
            ConfigError: If the statement is missing or empty
        """
        if isinstance(value, Statement):
            return value
        if value is None or not str(value).strip():
            raise ConfigError("A statement is required and cannot be empty")

        for candidate in cls._candidate_paths(str(value), base_dir):
            try:
                is_file = candidate.is_file()
            except (OSError, ValueError):
                # Long SQL text is not a valid path on most systems
                is_file = False
            if is_file:
                return cls(
                    candidate.read_text(encoding="utf-8").strip(),
                    source=str(candidate),
                )

        return cls(str(value))

    @staticmethod
    def _candidate_paths(
        value: str, base_dir: Optional[Union[str, Path]]
    ) -> List[Path]:
        if "\n" in value:
            return []
        path = Path(value.strip())
        if base_dir is not None and not path.is_absolute():
            return [Path(base_dir) / path, path]
        return [path]

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Statement) and other._text == self._text

    def __hash__(self) -> int:
        return hash(self._text)

    def __repr__(self) -> str:
        preview = " ".join(self._text.split())
        if len(preview) > 60:
            preview = preview[:57] + "..."
        return f"Statement({preview!r})"
