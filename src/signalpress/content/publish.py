"""Forward-only draft status changes."""

from __future__ import annotations

import logging

from signalpress.errors import ValidationError
from signalpress.storage.database import get_session
from signalpress.storage.models import Draft, utcnow
from signalpress.workflow.states import SessionStateMachine, Stage

logger = logging.getLogger(__name__)

DRAFT_STATUSES = ("draft", "final", "published")


class DraftPublisher:
    """Move a draft through ``draft -> final -> published``.

    Publishing also moves the owning session from ``final`` to ``published``.
    """

    def __init__(self, db_url: str, state_machine: SessionStateMachine | None = None) -> None:
        self._db_url = db_url
        self._states = state_machine or SessionStateMachine()

    def advance(self, user_id: str, draft_id: str, status: str) -> Draft:
        if status not in DRAFT_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(DRAFT_STATUSES)}")
        with get_session(self._db_url) as db:
            draft = db.get(Draft, draft_id) if draft_id else None
            if draft is None:
                raise ValidationError(f"Draft {draft_id} not found")
            wf = self._states.load(db, draft.session_id, user_id)

            current = DRAFT_STATUSES.index(draft.status)
            target = DRAFT_STATUSES.index(status)
            if target == current:
                return draft
            if target < current:
                raise ValidationError(f"Draft {draft_id} cannot move from {draft.status} back to {status}")

            draft.status = status
            draft.updated_at = utcnow()
            db.add(draft)
            if status == "published" and wf.stage != Stage.PUBLISHED.value:
                self._states.begin(db, wf, "publish")
                self._states.complete(db, wf, "publish")
            else:
                db.commit()
            db.refresh(draft)

        logger.info("Draft %s is now %s", draft_id, status)
        return draft
