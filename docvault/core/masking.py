"""
Masking primitives: partial redaction and semantic rewriting of field values.
"""

from typing import Optional, Union

from . import config
from .schema import Role


def partial_mask(value: str, filler: Optional[str] = None) -> str:
    """
    Keep the first and last character and replace everything between them.

    The filler run is at least one character long, so one- and two-character
    values still come back as first + filler + last. Empty input stays empty.
    """
    if not value:
        return ""

    filler = filler or config.MASK_FILLER
    middle = filler * max(1, len(value) - 2)
    return f"{value[0]}{middle}{value[-1]}"


def semantic_mask(value: str, role: Union[Role, str], rewriter=None) -> str:
    """
    Ask the rewrite service for a de-identified paraphrase of value.

    The result is not stable across calls; callers cache it per viewing session.
    Raises RewriteError (or a subclass) when no paraphrase can be produced.
    """
    if rewriter is None:
        from ..agents.rewriter import get_rewriter
        rewriter = get_rewriter()

    role_name = role.value if isinstance(role, Role) else str(role)
    return rewriter.rewrite(value, role_name)
