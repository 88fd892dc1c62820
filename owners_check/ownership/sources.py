import logging
import os
from pathlib import Path
from typing import (
    NamedTuple,
    Protocol,
)

OWNERS_FILE_NAME = "OWNERS"

_LOG = logging.getLogger(__name__)


class RuleSourceError(Exception):
    """
    The ownership declarations could not be read at all. Unlike parse
    errors this aborts the refresh cycle.
    """


class RawDeclaration(NamedTuple):
    path: str
    text: str


class RuleSource(Protocol):
    def list_raw_declarations(self) -> list[RawDeclaration]:
        ...


class LocalRuleSource:
    """
    Reads OWNERS files from a checked out repository.
    """

    def __init__(self, root: str | Path, filename: str = OWNERS_FILE_NAME):
        self._root = Path(root)
        self._filename = filename

    def __str__(self) -> str:
        return str(self._root)

    def list_raw_declarations(self) -> list[RawDeclaration]:
        if not self._root.is_dir():
            raise RuleSourceError(f"{self._root} is not a directory")

        declarations = []
        for dirpath, dirnames, filenames in os.walk(self._root):
            dirnames[:] = sorted(d for d in dirnames if d != ".git")
            if self._filename not in filenames:
                continue
            owners_file = Path(dirpath) / self._filename
            try:
                text = owners_file.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                raise RuleSourceError(f"unable to read {owners_file}: {e}") from e
            directory = Path(dirpath).relative_to(self._root).as_posix()
            _LOG.debug(f"found owners file {owners_file}")
            declarations.append(RawDeclaration(path=directory, text=text))
        return declarations
