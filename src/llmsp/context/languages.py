"""Language detection and source snippet helpers."""

from pathlib import PurePosixPath

LANGUAGES_BY_EXTENSION = {
    ".go": "Go",
    ".py": "Python",
    ".js": "JavaScript",
    ".ts": "TypeScript",
    ".tsx": "TypeScript React",
    ".java": "Java",
    ".c": "C",
    ".cpp": "C++",
    ".lua": "Lua",
    ".rb": "Ruby",
    ".php": "PHP",
    ".cs": "C#",
}

COMMENT_PREFIXES = {
    "Go": "//",
    "Python": "#",
    "JavaScript": "//",
    "TypeScript": "//",
    "TypeScript React": "//",
    "Java": "//",
    "C": "//",
    "C++": "//",
    "Lua": "--",
    "Ruby": "#",
    "PHP": "#",
    "C#": "//",
}


def determine_language(file_name: str) -> str:
    """Map a file name or URI to a language name.

    Unknown extensions fall back to the bare extension, so ``notes.md``
    becomes ``"md"``.
    """
    ext = PurePosixPath(file_name).suffix
    return LANGUAGES_BY_EXTENSION.get(ext, ext.removeprefix("."))


def comment_prefix(language: str) -> str:
    """Line comment marker for ``language``, or "" when unknown."""
    return COMMENT_PREFIXES.get(language, "")


def fence_tag(file_name: str) -> str:
    """Info string used on fenced code blocks for ``file_name``."""
    return determine_language(file_name).lower()


def get_file_snippet(contents: str, start_line: int, end_line: int) -> str:
    """Return lines ``start_line..end_line`` (inclusive) of ``contents``.

    Out of range bounds are clamped to the document.
    """
    lines = contents.split("\n")
    start = max(start_line, 0)
    end = min(end_line, len(lines) - 1)
    return "\n".join(lines[start:end + 1])


def number_lines(snippet: str, start_line: int) -> str:
    """Prefix every line with its zero-based line number, ``"N. "``."""
    return "\n".join(
        f"{i + start_line}. {line}" for i, line in enumerate(snippet.split("\n"))
    )


def line_length(contents: str, line: int) -> int:
    """Length of ``line`` in ``contents``, 0 when the line does not exist."""
    lines = contents.split("\n")
    if 0 <= line < len(lines):
        return len(lines[line])
    return 0


def leading_whitespace(line: str) -> str:
    """The run of spaces and tabs that starts ``line``."""
    return line[: len(line) - len(line.lstrip(" \t"))]
