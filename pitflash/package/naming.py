"""Package and PIT destination filename normalization."""

from __future__ import annotations

from pathlib import Path
from typing import Union

PACKAGE_SUFFIX = ".tar.gz"
PIT_SUFFIX = ".pit"


def normalize_package_path(path: Union[str, Path]) -> str:
    """Coerce a destination path to end with ``.tar.gz``.

    Single ``.tar``, ``.gz`` and ``.tgz`` endings are corrected by suffix
    substitution; anything else gets the canonical suffix appended.
    """
    text = str(path)
    lower = text.lower()
    if lower.endswith(PACKAGE_SUFFIX):
        return text
    if lower.endswith(".tar"):
        return text + ".gz"
    if lower.endswith(".gz"):
        return text[: -len(".gz")] + PACKAGE_SUFFIX
    if lower.endswith(".tgz"):
        return text[: -len(".tgz")] + PACKAGE_SUFFIX
    return text + PACKAGE_SUFFIX


def normalize_pit_path(path: Union[str, Path]) -> str:
    text = str(path)
    if not text.endswith(PIT_SUFFIX):
        text += PIT_SUFFIX
    return text
