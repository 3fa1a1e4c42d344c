"""Reversible text encoding for payloads that cross a storage or URL boundary.

The encoded form is base64 of the UTF-8 bytes with ``=``, ``+`` and ``/``
swapped for ``_``, ``-`` and ``.``, written back to front. It is never sent to
a model: prompts and responses stay plain text inside the pipeline.
"""

import base64

_TO_STORAGE = str.maketrans({"=": "_", "+": "-", "/": "."})
_FROM_STORAGE = str.maketrans({"_": "=", "-": "+", ".": "/"})


def encode(text: str) -> str:
    """Encode text for storage."""
    raw = base64.b64encode(text.encode("utf-8")).decode("ascii")
    return raw.translate(_TO_STORAGE)[::-1]


def decode(encoded: str) -> str:
    """Decode text produced by :func:`encode`.

    Raises:
        ValueError: If ``encoded`` was not produced by :func:`encode`.
    """
    restored = encoded[::-1].translate(_FROM_STORAGE)
    return base64.b64decode(restored.encode("ascii"), validate=True).decode("utf-8")
