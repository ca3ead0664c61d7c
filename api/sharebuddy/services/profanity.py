"""Word filter for text users publish: comments, questions and answers.

The moderation scorer uses :func:`contains_profanity` on extracted document
text. Deployments extend or relax the stock better-profanity list through
``PROFANITY_EXTRA_WORDS`` and ``PROFANITY_ALLOWED_WORDS``.
"""

from __future__ import annotations

from better_profanity import profanity

from .. import settings

profanity.load_censor_words(whitelist_words=list(settings.PROFANITY_ALLOWED_WORDS))
if settings.PROFANITY_EXTRA_WORDS:
    profanity.add_censor_words(list(settings.PROFANITY_EXTRA_WORDS))


def contains_profanity(text: str | None) -> bool:
    if not text:
        return False
    return profanity.contains_profanity(text)


def clean_text(text: str) -> str:
    """Trim user input and mask banned words with asterisks."""
    return profanity.censor(text.strip())
