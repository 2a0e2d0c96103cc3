"""Error raised when a named service or method cannot be found."""

from __future__ import annotations

import json
from collections.abc import Iterable


def _quote(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


class NotFound(LookupError):
    """A symbol was missing or not specified; lists what is available instead."""

    def __init__(
        self,
        encoding: str,
        search_type: str,
        example: str = "",
        search: str = "",
        look_in: str = "",
        available: Iterable[str] = (),
    ) -> None:
        self.encoding = encoding
        self.search_type = search_type
        self.example = example
        self.search = search
        self.look_in = look_in
        self.available = sorted(available)
        super().__init__(str(self))

    @property
    def _qualified_type(self) -> str:
        return f"{self.encoding} {self.search_type}"

    def __str__(self) -> str:
        if not self.search:
            msg = f"no {self._qualified_type} specified, specify {self.example}"
        elif not self.look_in:
            msg = f"could not find {self._qualified_type} {_quote(self.search)}"
        else:
            msg = (
                f"{self.encoding} {self.look_in} does not contain "
                f"{self.search_type} {_quote(self.search)}"
            )
        msg += ". "

        look_in_suffix = f" in {self.look_in}" if self.look_in else ""

        if not self.available:
            return msg + f"No known {self._qualified_type}s{look_in_suffix} to list"

        kind = self.search_type + ("s" if len(self.available) > 1 else "")
        listing = "\n\t".join(self.available)
        return msg + f"Available {self.encoding} {kind}{look_in_suffix}:\n\t{listing}"