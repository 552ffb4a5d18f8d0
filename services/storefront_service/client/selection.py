"""Selection Model: which cart lines the next checkout covers.

Lines are selected by default. A line the user deselects stays deselected
across cart refreshes (remembered by product/variant key, since guest line
ids change when the cart is merged into a remote one).
"""

from decimal import Decimal
from typing import Optional

from services.storefront_service.client.cart_store import CartSnapshot, CartStore
from services.storefront_service.schemas import CartLine


class SelectionModel:
    def __init__(self, cart: CartStore):
        self._lines: tuple[CartLine, ...] = ()
        self._selected: set[str] = set()
        self._deselected_keys: set[tuple[str, Optional[str]]] = set()
        self._sync(cart.snapshot())
        self._unsubscribe = cart.subscribe(self._sync)

    def _sync(self, snapshot: CartSnapshot) -> None:
        """Reconcile with a new cart snapshot."""
        known = {line.id for line in self._lines}
        self._lines = snapshot.lines
        present_keys = {line.key for line in self._lines}

        self._deselected_keys &= present_keys
        selected = set()
        for line in self._lines:
            if line.id in self._selected:
                selected.add(line.id)
            elif line.id not in known and line.key not in self._deselected_keys:
                selected.add(line.id)
        self._selected = selected

    def close(self) -> None:
        self._unsubscribe()

    def toggle(self, line_id: str) -> bool:
        """Flip one line; returns whether it is now selected."""
        line = next((line for line in self._lines if line.id == line_id), None)
        if line is None:
            return False
        if line_id in self._selected:
            self._selected.discard(line_id)
            self._deselected_keys.add(line.key)
            return False
        self._selected.add(line_id)
        self._deselected_keys.discard(line.key)
        return True

    def toggle_all(self) -> None:
        """Select everything, or clear the selection if everything is selected."""
        if self.all_selected:
            self._selected = set()
            self._deselected_keys = {line.key for line in self._lines}
        else:
            self._selected = {line.id for line in self._lines}
            self._deselected_keys = set()

    def is_selected(self, line_id: str) -> bool:
        return line_id in self._selected

    @property
    def selected_ids(self) -> frozenset[str]:
        return frozenset(self._selected)

    @property
    def selected_lines(self) -> tuple[CartLine, ...]:
        return tuple(line for line in self._lines if line.id in self._selected)

    @property
    def all_selected(self) -> bool:
        return bool(self._lines) and len(self._selected) == len(self._lines)

    @property
    def selected_count(self) -> int:
        return sum(line.quantity for line in self.selected_lines)

    @property
    def selected_subtotal(self) -> Decimal:
        return sum((line.line_total for line in self.selected_lines), Decimal("0"))

    @property
    def selected_weight(self) -> Decimal:
        return sum(
            (line.weight * line.quantity for line in self.selected_lines), Decimal("0")
        )
