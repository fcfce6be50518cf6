"""
Split a payer display name into first_name / last_name candidates.

Bank statements carry the payer as one free-text name ("Jane Mary Doe").
Depending on the analyser's name mode, the tokens are partitioned by
position or by looking each token up in the known first names.
"""
import logging
from typing import Optional, Protocol, Union

from config.resolver_config import NameMode

logger = logging.getLogger(__name__)


class FirstNameLookup(Protocol):
    """Anything that can tell whether a token is a known first name."""

    def is_first_name(self, token: str) -> bool:
        ...


def tokenize_name(display_name: Optional[str]) -> list[str]:
    """Split on runs of whitespace, dropping empty tokens."""
    if not display_name:
        return []
    return display_name.split()


def split_name(
    display_name: Optional[str],
    mode: Union[NameMode, str],
    oracle: Optional[FirstNameLookup] = None,
) -> dict[str, str]:
    """
    Partition a display name into first and last name.

    Modes:
        first: "Jane Mary Doe" -> first_name="Jane", last_name="Mary Doe"
        last:  "Jane Mary Doe" -> first_name="Jane Mary", last_name="Doe"
        off:   always {}
        db:    tokens the oracle knows as first names -> first_name,
               all other tokens -> last_name (original order kept in both)

    In first/last mode a single token only yields the primary key
    ("Cher" -> first_name="Cher"). In db mode both keys are always present.

    Args:
        display_name: Free-text name, e.g. the payer name of a transaction
        mode: NameMode (or its string value)
        oracle: First name lookup, required for db mode

    Returns:
        Dict with first_name and/or last_name
    """
    mode = NameMode.parse(mode)
    if mode == NameMode.OFF:
        return {}

    tokens = tokenize_name(display_name)

    if mode == NameMode.FIRST:
        result = {"first_name": tokens[0] if tokens else ""}
        if len(tokens) > 1:
            result["last_name"] = " ".join(tokens[1:])
        return result

    if mode == NameMode.LAST:
        result = {"last_name": tokens[-1] if tokens else ""}
        if len(tokens) > 1:
            result["first_name"] = " ".join(tokens[:-1])
        return result

    # NameMode.DB
    if oracle is None:
        raise ValueError("Name mode 'db' needs a first name oracle")

    first_names = []
    last_names = []
    for token in tokens:
        if oracle.is_first_name(token):
            first_names.append(token)
        else:
            last_names.append(token)

    logger.debug(f"Identified (by DB) first names of '{display_name}': {', '.join(first_names)}")
    return {
        "first_name": " ".join(first_names),
        "last_name": " ".join(last_names),
    }
