"""Structural interface shared by the models of this package."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class Machine(Protocol):
    """A model mapping one input vector to one output value.

    Implementations provide a validating call, :meth:`forward`, and a raw
    call, :meth:`forward_unchecked`, that trusts its caller to have already
    checked shapes.
    """

    def forward(self, x):
        """Validate ``x`` and return the model output."""
        ...

    def forward_unchecked(self, x):
        """Return the model output without validating ``x``."""
        ...
