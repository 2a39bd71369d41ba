"""Commit message templating.

Workspace templates reference two placeholders, ``${action}`` and
``${filename}`` (default ``"${action} ${filename}"``).  The rendered message
is capitalised, so ``update notes/a.md`` becomes ``Update notes/a.md``.

One externally triggered action produces one commit.  When that action
touches several files (a batch upload), ``${filename}`` receives an
aggregate description rather than one commit per file.
"""

from __future__ import annotations

from collections.abc import Sequence

from inkwell.storage.models.enums import FileAction

DEFAULT_TEMPLATE = "${action} ${filename}"

_MAX_LISTED = 3


def describe_files(filenames: Sequence[str]) -> str:
    """Aggregate description of the files touched by one action.

    >>> describe_files(["a.md"])
    'a.md'
    >>> describe_files(["a.md", "b.md"])
    'a.md, b.md'
    >>> describe_files(["a.md", "b.md", "c.md", "d.md", "e.md"])
    'a.md, b.md, c.md and 2 more'
    """
    names = list(filenames)
    if not names:
        return ""
    if len(names) <= _MAX_LISTED:
        return ", ".join(names)
    listed = ", ".join(names[:_MAX_LISTED])
    return f"{listed} and {len(names) - _MAX_LISTED} more"


def render_commit_message(template: str, action: FileAction | str, filenames: Sequence[str]) -> str:
    """Fill a commit template for one action on one or more files."""
    message = (template or DEFAULT_TEMPLATE).replace("${action}", str(action))
    message = message.replace("${filename}", describe_files(filenames)).strip()
    if not message:
        message = f"{action} {describe_files(filenames)}".strip()
    return message[:1].upper() + message[1:]
