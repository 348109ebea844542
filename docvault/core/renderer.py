"""
Field renderer and unmask controller.

render_field() is the one place that branches on AccessDecision. The unmask
controller owns the semantic rewrites for one viewing session: it fetches a
rewrite on first reveal, caches it, and toggles between the masked
placeholder and the cached text.
"""

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from .errors import RewriteError
from .masking import partial_mask, semantic_mask
from .policy import PolicyTable, evaluate
from .schema import AccessDecision, DocumentField, Role, Sensitivity
from util.logging import logger

DENIED_INDICATOR = "[ACCESS DENIED]"
SEMANTIC_PLACEHOLDER = "[Semantically masked - reveal to view summary]"


class UnmaskState(str, Enum):
    MASKED = "masked"
    LOADING = "loading"
    REVEALED = "revealed"
    ERROR = "error"


@dataclass
class FieldView:
    field_id: str
    name: str
    sensitivity: Sensitivity
    decision: AccessDecision
    display_value: str
    message: str
    unmask_state: Optional[UnmaskState] = None
    error: Optional[str] = None

    @property
    def can_unmask(self) -> bool:
        return self.decision == AccessDecision.SEMANTIC


def render_field(field: DocumentField, decision: AccessDecision,
                 controller: 'UnmaskController' = None) -> FieldView:
    """Build the view of one field. Raw values only appear for full access."""
    view = FieldView(
        field_id=field.id,
        name=field.name,
        sensitivity=field.sensitivity,
        decision=decision,
        display_value="",
        message=decision.message,
    )

    if decision == AccessDecision.FULL:
        view.display_value = field.value
    elif decision == AccessDecision.PARTIAL:
        view.display_value = partial_mask(field.value)
    elif decision == AccessDecision.SEMANTIC:
        state = controller.state(field.id) if controller else UnmaskState.MASKED
        view.unmask_state = state
        if state == UnmaskState.REVEALED:
            view.display_value = controller.cached(field.id)
        else:
            view.display_value = SEMANTIC_PLACEHOLDER
        if state == UnmaskState.ERROR:
            view.error = controller.error(field.id)
    elif decision == AccessDecision.DENIED:
        view.display_value = DENIED_INDICATOR
    else:
        raise ValueError(f"Unhandled access decision: {decision}")

    return view


def render_document(role: Optional[Role], fields: List[DocumentField], policy: PolicyTable = None,
                    controller: 'UnmaskController' = None) -> List[FieldView]:
    """Render every field for a role, in document order."""
    return [render_field(field, evaluate(role, field, policy), controller) for field in fields]


class UnmaskController:
    """
    Per-session cache of semantic rewrites.

    A reveal that is cancelled while the rewrite is in flight discards the
    result when it arrives; nothing on the server side changes either way.
    """

    def __init__(self, role: Role, rewriter=None):
        self.role = role
        self.rewriter = rewriter
        self._cache: Dict[str, str] = {}
        self._states: Dict[str, UnmaskState] = {}
        self._errors: Dict[str, str] = {}
        self._generation: Dict[str, int] = {}
        self._lock = threading.Lock()

    def state(self, field_id: str) -> UnmaskState:
        return self._states.get(field_id, UnmaskState.MASKED)

    def cached(self, field_id: str) -> Optional[str]:
        return self._cache.get(field_id)

    def error(self, field_id: str) -> Optional[str]:
        return self._errors.get(field_id)

    def reveal(self, field: DocumentField) -> UnmaskState:
        """Show the rewrite, fetching it once per session. Failures leave a retryable error state."""
        with self._lock:
            if field.id in self._cache:
                self._states[field.id] = UnmaskState.REVEALED
                return UnmaskState.REVEALED
            generation = self._generation.get(field.id, 0) + 1
            self._generation[field.id] = generation
            self._states[field.id] = UnmaskState.LOADING
            self._errors.pop(field.id, None)

        try:
            masked = semantic_mask(field.value, self.role, self.rewriter)
        except RewriteError as e:
            return self._fail(field.id, generation, str(e))
        except Exception as e:
            logger.error(f"Unexpected rewrite failure for field {field.id}: {e!r}")
            return self._fail(field.id, generation, f"Rewrite failed: {e}")

        with self._lock:
            if self._generation.get(field.id) != generation:
                # Cancelled while in flight
                return self.state(field.id)
            self._cache[field.id] = masked
            self._states[field.id] = UnmaskState.REVEALED
            return UnmaskState.REVEALED

    def _fail(self, field_id: str, generation: int, message: str) -> UnmaskState:
        with self._lock:
            if self._generation.get(field_id) != generation:
                return self.state(field_id)
            self._states[field_id] = UnmaskState.ERROR
            self._errors[field_id] = message
            return UnmaskState.ERROR

    def hide(self, field_id: str) -> UnmaskState:
        """Go back to the placeholder; the cached rewrite is kept."""
        with self._lock:
            self._states[field_id] = UnmaskState.MASKED
            return UnmaskState.MASKED

    def cancel(self, field_id: str):
        """Abandon an in-flight reveal."""
        with self._lock:
            if self._states.get(field_id) == UnmaskState.LOADING:
                self._generation[field_id] = self._generation.get(field_id, 0) + 1
                self._states[field_id] = UnmaskState.MASKED

    def toggle(self, field: DocumentField) -> UnmaskState:
        if self.state(field.id) == UnmaskState.REVEALED:
            return self.hide(field.id)
        return self.reveal(field)

    def clear(self):
        """Forget every rewrite, e.g. when the session's role changes."""
        with self._lock:
            self._cache.clear()
            self._states.clear()
            self._errors.clear()
            for field_id in self._generation:
                self._generation[field_id] += 1
