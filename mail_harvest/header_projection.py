"""Reduce raw header blocks to a configured set of header names."""

from __future__ import annotations

from typing import Iterable

from .utils import is_valid_email, strip_angle_brackets

CRLF = "\r\n"


class HeaderProjector:
    """Keep allowed header lines plus a ``Return-Path`` holding a valid address.

    Lines are physical lines; names match exactly, case-sensitively, and the
    surviving lines keep their original order.
    """

    def __init__(self, header_names: Iterable[str]) -> None:
        self.header_names = set(header_names)

    def project(self, raw_header: str) -> str:
        if not raw_header:
            return raw_header

        kept: list[str] = []
        for line in raw_header.splitlines():
            name, separator, value = line.partition(":")
            if not separator:
                continue
            name = name.strip()
            if name == "Return-Path":
                if is_valid_email(strip_angle_brackets(value)):
                    kept.append(line)
            elif name in self.header_names:
                kept.append(line)
        return CRLF.join(kept)
