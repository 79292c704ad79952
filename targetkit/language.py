"""Detection of the programming language of source files."""
from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, List, Sequence
import re

from .errors import NoSources
from .model import Language
from .sources import read_first_line, strip_template_suffix

EXTENSION_LANGUAGES: Dict[str, Language] = {
    ".c": Language.CXX,
    ".cc": Language.CXX,
    ".cpp": Language.CXX,
    ".cxx": Language.CXX,
    ".c++": Language.CXX,
    ".h": Language.CXX,
    ".hh": Language.CXX,
    ".hpp": Language.CXX,
    ".hxx": Language.CXX,
    ".inl": Language.CXX,
    ".txx": Language.CXX,
    ".py": Language.PYTHON,
    ".pl": Language.PERL,
    ".pm": Language.PERL,
    ".t": Language.PERL,
    ".sh": Language.BASH,
    ".m": Language.MATLAB,
}

INTERPRETER_LANGUAGES: Dict[str, Language] = {
    "python": Language.PYTHON,
    "jython": Language.JYTHON,
    "perl": Language.PERL,
    "bash": Language.BASH,
    "sh": Language.BASH,
}

_SHEBANG_PATTERN = re.compile(r"^#!\s*(?:/usr)?(?:/local)?/bin/(?:env\s+(?:-\S+\s+)*)?(?P<name>[^\s/]+)")
_VERSION_SUFFIX = re.compile(r"[0-9.]+$")

LineReader = Callable[[Path], str]


def interpreter_language(first_line: str) -> Language:
    """Map an interpreter directive (``#!/usr/bin/env python3``) to a language."""

    match = _SHEBANG_PATTERN.match(first_line)
    if not match:
        return Language.UNKNOWN
    name = _VERSION_SUFFIX.sub("", match.group("name")).lower()
    return INTERPRETER_LANGUAGES.get(name, Language.UNKNOWN)


def language_of(path: Path, *, reader: LineReader = read_first_line) -> Language:
    """Return the language of a single source file.

    The file name extension (ignoring a trailing ``.in``) decides where it is
    known. Python sources whose interpreter directive names ``jython`` are
    Jython. Files with an unrecognized extension are classified by their
    interpreter directive.
    """

    name = strip_template_suffix(path)
    language = EXTENSION_LANGUAGES.get(name.suffix.lower())
    if language is Language.PYTHON or language is None:
        try:
            first_line = reader(path)
        except OSError:
            return language or Language.UNKNOWN
        detected = interpreter_language(first_line)
        if language is Language.PYTHON:
            return Language.JYTHON if detected is Language.JYTHON else Language.PYTHON
        return detected
    return language


def classify_sources(sources: Sequence[Path], *, reader: LineReader = read_first_line) -> Language:
    """Classify a list of source files.

    Returns the common language, :attr:`Language.AMBIGUOUS` if the files are
    written in different languages, or :attr:`Language.UNKNOWN` if no file
    could be mapped to a known language.
    """

    if not sources:
        raise NoSources("No source files given to determine the programming language of")
    found: List[Language] = []
    for source in sources:
        language = language_of(Path(source), reader=reader)
        if language not in found:
            found.append(language)
    if len(found) > 1:
        return Language.AMBIGUOUS
    return found[0]


__all__ = [
    "EXTENSION_LANGUAGES",
    "INTERPRETER_LANGUAGES",
    "classify_sources",
    "interpreter_language",
    "language_of",
]
