"""Display helpers for snake_case tags."""

import re

_WORD_START = re.compile(r"\b\w")


def humanize_tag(tag: str) -> str:
    """Turn a tag such as ``in_progress`` into ``In Progress``.

    Only the first underscore becomes a space, so ``legal_notice_sent``
    renders as ``Legal Notice_sent``. Existing labels depend on this.
    """
    return _WORD_START.sub(lambda m: m.group().upper(), tag.replace("_", " ", 1))
