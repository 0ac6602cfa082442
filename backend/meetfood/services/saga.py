"""
Saga runner for operations spanning independently stored entities.

A saga is an ordered list of steps, each idempotent and each tagged with a
policy:
- REQUIRED: a failure stops the saga. If any earlier step was applied the
  caller gets a PartialFailure listing the completed steps, otherwise the
  original error (nothing applied, safe to retry).
- BEST_EFFORT: a failure is logged and reported as a warning, and the saga
  carries on.

When a journal key is given, the high-water mark (completed steps plus the
context captured up front) is persisted in ``saga_journal`` after every step,
so re-invoking the operation resumes where the previous run stopped.
Completed journals are pruned once older than
``settings.saga_journal_retention_days``; until then a repeat call is a no-op.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from meetfood.core.config import settings
from meetfood.core.errors import (
    AssetStoreError,
    ConsistencyError,
    IdentityDirectoryError,
    PartialFailure,
    UpstreamFailure,
)
from meetfood.models import SagaJournal

logger = logging.getLogger(__name__)

# Errors a step may raise that the runner turns into saga outcomes
STEP_ERRORS = (ConsistencyError, AssetStoreError, IdentityDirectoryError, SQLAlchemyError)


class StepPolicy(str, Enum):
    """How a step failure affects the rest of the saga."""

    REQUIRED = "required"
    BEST_EFFORT = "best_effort"


@dataclass
class SagaStep:
    """One idempotent step. ``action`` receives the shared context dict."""

    name: str
    action: Callable[[Dict[str, Any]], Any]
    policy: StepPolicy = StepPolicy.REQUIRED


@dataclass
class SagaOutcome:
    """Result of a saga that ran to the end."""

    operation: str
    completed_steps: List[str]
    context: Dict[str, Any]
    warnings: List[Dict[str, Any]] = field(default_factory=list)
    resumed: bool = False


def service_for_error(exc: Exception) -> str:
    """Name the collaborator an error came from."""
    if isinstance(exc, AssetStoreError):
        return "asset_store"
    if isinstance(exc, IdentityDirectoryError):
        return "identity_directory"
    if isinstance(exc, UpstreamFailure):
        return exc.service
    return "document_store"


class SagaJournalStore:
    """Persistence for saga high-water marks."""

    def __init__(self, db: Session):
        self.db = db

    def load(self, key: str) -> Optional[SagaJournal]:
        return self.db.query(SagaJournal).filter(SagaJournal.key == key).first()

    def start(self, operation: str, key: str, context: Dict[str, Any]) -> SagaJournal:
        journal = SagaJournal(
            operation=operation,
            key=key,
            status="running",
            completed_steps=[],
            context=context,
        )
        self.db.add(journal)
        try:
            self.db.commit()
        except IntegrityError:
            # Another run of the same operation got there first
            self.db.rollback()
            existing = self.load(key)
            if existing is None:
                raise
            return existing
        self.db.refresh(journal)
        return journal

    def mark_step(self, journal: SagaJournal, step_name: str) -> None:
        # Reassign so the JSON column is flagged dirty
        journal.completed_steps = list(journal.completed_steps or []) + [step_name]
        journal.status = "running"
        self.db.commit()

    def fail(self, journal: SagaJournal, error: str) -> None:
        journal.status = "failed"
        journal.last_error = error
        self.db.commit()

    def finish(self, journal: SagaJournal) -> None:
        journal.status = "completed"
        journal.last_error = None
        self.db.commit()

    def prune_completed(self, operation: str, retention_days: int) -> int:
        """
        Delete completed journals of an operation last touched before the
        retention window. Failed and running journals are kept for resume.
        """
        cutoff = datetime.utcnow() - timedelta(days=retention_days)
        pruned = (
            self.db.query(SagaJournal)
            .filter(
                SagaJournal.operation == operation,
                SagaJournal.status == "completed",
                SagaJournal.updated_at < cutoff,
            )
            .delete(synchronize_session=False)
        )
        self.db.commit()
        if pruned:
            logger.info(f"Pruned {pruned} completed {operation} journal(s)")
        return pruned


class Saga:
    """Ordered, resumable multi-step operation."""

    def __init__(
        self,
        operation: str,
        steps: List[SagaStep],
        db: Optional[Session] = None,
        journal_key: Optional[str] = None,
    ):
        if journal_key and db is None:
            raise ValueError("A journaled saga needs a database session")
        self.operation = operation
        self.steps = steps
        self.db = db
        self.journal_key = journal_key
        self.journal_store = SagaJournalStore(db) if journal_key else None

    def load_journal(self) -> Optional[SagaJournal]:
        """Return the persisted journal for this saga's key, if any."""
        if not self.journal_store:
            return None
        return self.journal_store.load(self.journal_key)

    def _rollback(self) -> None:
        if self.db is not None:
            self.db.rollback()

    def run(self, context: Dict[str, Any]) -> SagaOutcome:
        """
        Run all steps not yet completed.

        Args:
            context: Values the steps need. For journaled sagas this is only
                used on the first run; a resumed run uses the persisted context.

        Returns:
            SagaOutcome with completed steps and best-effort warnings

        Raises:
            PartialFailure: A required step failed after others were applied
            ConsistencyError: A required step failed before anything was applied
        """
        journal = None
        resumed = False
        completed: List[str] = []

        if self.journal_store:
            journal = self.journal_store.load(self.journal_key)
            if journal is None:
                journal = self.journal_store.start(self.operation, self.journal_key, context)
            else:
                resumed = True

            context = dict(journal.context or {})
            completed = list(journal.completed_steps or [])

            if journal.status == "completed":
                logger.info(f"[{self.journal_key}] Saga already completed, nothing to do")
                return SagaOutcome(
                    operation=self.operation,
                    completed_steps=completed,
                    context=context,
                    resumed=True,
                )

            if resumed:
                logger.info(f"[{self.journal_key}] Resuming saga after steps: {completed}")

        label = self.journal_key or self.operation
        warnings: List[Dict[str, Any]] = []

        for step in self.steps:
            if step.name in completed:
                logger.debug(f"[{label}] Skipping completed step {step.name}")
                continue

            logger.debug(f"[{label}] Running step {step.name}")
            try:
                step.action(context)
            except STEP_ERRORS as exc:
                self._rollback()
                service = service_for_error(exc)

                if step.policy == StepPolicy.BEST_EFFORT:
                    logger.warning(f"[{label}] Best-effort step {step.name} failed: {exc}")
                    warnings.append({"step": step.name, "service": service, "detail": str(exc)})
                    continue

                logger.error(f"[{label}] Required step {step.name} failed: {exc}")
                if journal is not None:
                    self.journal_store.fail(journal, f"{step.name}: {exc}")

                if completed:
                    details = {"warnings": warnings} if warnings else {}
                    if isinstance(exc, ConsistencyError):
                        details["cause"] = exc.kind
                    raise PartialFailure(
                        f"{self.operation} stopped at step '{step.name}': {exc}",
                        operation=self.operation,
                        completed_steps=completed,
                        failed_step=step.name,
                        details=details,
                    ) from exc

                if isinstance(exc, ConsistencyError):
                    raise
                raise UpstreamFailure(
                    f"{self.operation} failed at step '{step.name}': {exc}",
                    service=service,
                    applied=False,
                ) from exc

            completed.append(step.name)
            if journal is not None:
                self.journal_store.mark_step(journal, step.name)
            logger.debug(f"[{label}] Completed step {step.name}")

        if journal is not None:
            self.journal_store.finish(journal)
            self.journal_store.prune_completed(self.operation, settings.saga_journal_retention_days)

        return SagaOutcome(
            operation=self.operation,
            completed_steps=completed,
            context=context,
            warnings=warnings,
            resumed=resumed,
        )
