"""Session stage ordering and the only code path that writes ``stage``.

Stages run forward only::

    input -> analyzing -> selection -> researching -> outline -> writing -> final [-> published]

Each operation names the stages it may start from, the stage it moves the
session into while working, and the stage it leaves behind. Re-entering the
working stage is allowed so that a failed call can be re-invoked; moving
backwards never is.

Every write is a compare-and-set on ``(stage, version)``. If two requests
race on the same session, the loser gets a StageError instead of silently
interleaving its writes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from sqlalchemy import update
from sqlmodel import Session

from signalpress.errors import StageError, ValidationError
from signalpress.storage.models import WorkflowSession, utcnow

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    INPUT = "input"
    ANALYZING = "analyzing"
    SELECTION = "selection"
    RESEARCHING = "researching"
    OUTLINE = "outline"
    WRITING = "writing"
    FINAL = "final"
    PUBLISHED = "published"


FORWARD_ORDER: tuple[Stage, ...] = tuple(Stage)


@dataclass(frozen=True)
class StageRule:
    entry: frozenset[Stage]
    working: Stage | None = None
    done: Stage | None = None


def _rule(entry: set[Stage], working: Stage | None = None, done: Stage | None = None) -> StageRule:
    return StageRule(frozenset(entry), working, done or working)


RULES: dict[str, StageRule] = {
    "collect-resource": _rule({Stage.INPUT}),
    "extract-insights": _rule({Stage.INPUT, Stage.ANALYZING}, Stage.ANALYZING, Stage.SELECTION),
    "deep-research": _rule({Stage.SELECTION, Stage.RESEARCHING}, Stage.RESEARCHING),
    "generate-outline": _rule({Stage.RESEARCHING, Stage.OUTLINE}, Stage.OUTLINE),
    "write-draft": _rule({Stage.OUTLINE, Stage.WRITING}, Stage.WRITING, Stage.FINAL),
    "analyze-seo": _rule({Stage.FINAL, Stage.PUBLISHED}),
    "publish": _rule({Stage.FINAL}, Stage.PUBLISHED),
}


def is_forward_step(src: Stage, dst: Stage) -> bool:
    """True when ``dst`` is ``src`` itself or its immediate successor."""
    return FORWARD_ORDER.index(dst) - FORWARD_ORDER.index(src) in (0, 1)


class SessionStateMachine:
    """Guards stage preconditions and applies stage transitions."""

    def __init__(self, rules: dict[str, StageRule] | None = None) -> None:
        self._rules = rules or RULES

    def rule(self, operation: str) -> StageRule:
        try:
            return self._rules[operation]
        except KeyError:
            raise ValueError(f"Unknown operation: {operation}") from None

    def load(self, db: Session, session_id: str, user_id: str) -> WorkflowSession:
        """Fetch a session owned by ``user_id``."""
        if not session_id:
            raise ValidationError("session_id is required")
        wf = db.get(WorkflowSession, session_id)
        if wf is None or wf.user_id != user_id:
            raise ValidationError(f"Session {session_id} not found")
        return wf

    def open(self, db: Session, session_id: str, user_id: str) -> WorkflowSession:
        """Fetch a session, or add a new one in ``input`` on first submission.

        A new session is only added to ``db``; it is written by the caller's
        commit together with its first resource.
        """
        wf = db.get(WorkflowSession, session_id) if session_id else None
        if wf is None:
            wf = WorkflowSession(user_id=user_id, stage=Stage.INPUT.value)
            if session_id:
                wf.id = session_id
            db.add(wf)
            logger.info("Opening session %s for user %s", wf.id, user_id)
        elif wf.user_id != user_id:
            raise ValidationError(f"Session {session_id} not found")
        return wf

    def require(self, wf: WorkflowSession, operation: str) -> None:
        """Raise StageError unless the session may run ``operation`` now."""
        rule = self.rule(operation)
        if Stage(wf.stage) not in rule.entry:
            allowed = ", ".join(sorted(s.value for s in rule.entry))
            raise StageError(
                f"{operation} cannot run while session {wf.id} is in '{wf.stage}' (expected {allowed})"
            )

    def begin(self, db: Session, wf: WorkflowSession, operation: str) -> WorkflowSession:
        """Check the precondition and move into the working stage."""
        self.require(wf, operation)
        rule = self.rule(operation)
        if rule.working is not None:
            self._transition(db, wf, rule.working)
        return wf

    def complete(self, db: Session, wf: WorkflowSession, operation: str) -> WorkflowSession:
        """Move into the done stage and commit pending writes with it."""
        rule = self.rule(operation)
        if rule.working is not None and Stage(wf.stage) != rule.working:
            raise StageError(f"{operation} was not started on session {wf.id}")
        if rule.done is not None:
            self._transition(db, wf, rule.done)
        else:
            db.commit()
        return wf

    def _transition(self, db: Session, wf: WorkflowSession, dst: Stage) -> None:
        src = Stage(wf.stage)
        if not is_forward_step(src, dst):
            raise StageError(f"Illegal transition {src.value} -> {dst.value} for session {wf.id}")

        stmt = (
            update(WorkflowSession)
            .where(
                WorkflowSession.id == wf.id,
                WorkflowSession.version == wf.version,
                WorkflowSession.stage == src.value,
            )
            .values(stage=dst.value, version=wf.version + 1, updated_at=utcnow())
        )
        result = db.execute(stmt)
        if result.rowcount != 1:
            db.rollback()
            raise StageError(f"Session {wf.id} was modified by another request")
        db.commit()
        db.refresh(wf)
        logger.info("Session %s: %s -> %s", wf.id, src.value, dst.value)
