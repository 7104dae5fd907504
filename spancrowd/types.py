"""Closed set of annotation kinds handled by spancrowd."""

from __future__ import annotations

import enum


class SpanKind(str, enum.Enum):
    """
    The kinds of span annotations.

    Each kind carries its behaviour as fixed properties instead of looking up
    type and feature names at runtime:

    - :attr:`prefix`: prefix prepended to the label when rendering, so that
      different kinds can use the same label (a POS tag ``N`` and a named
      entity type ``N``)
    - :attr:`single_token`: whether a span may only cover a single token;
      spans made across several tokens are split into one span per token
    - :attr:`attach_feature`: name of the :class:`~spancrowd.models.token.Token`
      feature that points at spans of this kind, or None
    """

    POS = "pos"
    LEMMA = "lemma"
    NAMED_ENTITY = "named_entity"

    @property
    def prefix(self) -> str:
        return _PREFIXES[self]

    @property
    def single_token(self) -> bool:
        return self in (SpanKind.POS, SpanKind.LEMMA)

    @property
    def attach_feature(self) -> str | None:
        if self is SpanKind.POS:
            return "pos"
        if self is SpanKind.LEMMA:
            return "lemma"
        return None

    @classmethod
    def from_name(cls, name: str) -> SpanKind:
        """
        Look up a kind by its name, e.g. from the command line.

        Both the value (``named_entity``) and the member name
        (``NAMED_ENTITY``) are accepted, as is ``named-entity``.

        Args:
            name: The name of the kind

        Returns:
            The matching :class:`SpanKind`

        Raises:
            ValueError: If no kind has that name

        """
        normalized = name.strip().lower().replace("-", "_")
        for kind in cls:
            if kind.value == normalized:
                return kind
        msg = f"Unknown span kind: {name}"
        raise ValueError(msg)


_PREFIXES: dict[SpanKind, str] = {
    SpanKind.POS: "POS_",
    SpanKind.LEMMA: "",
    SpanKind.NAMED_ENTITY: "NE_",
}
