"""
Extraction orchestrator.

Sequences the two asynchronous inputs of a reconciliation, the persisted
baseline and the record extracted from the binary object, as a per-session
state machine:

    IDLE -> FETCHING_BASELINE -> BASELINE_READY -> EXTRACTING_FILE
         -> RECONCILING -> PERSISTING -> SETTLED

``ABORTED`` is reachable from every non-terminal state. Binary extraction is
only started once the baseline is in hand, so the fill-only merge always
sees the real baseline.

One orchestrator drives one viewer (or one upload). Selecting a new image
aborts the in-flight session; results that arrive for an aborted session
are discarded instead of being applied.
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Dict, FrozenSet, List, Optional, Union

from dicomvault.core.exceptions import ExtractionStateException
from dicomvault.core.interfaces import IBinaryCodec, IMetadataGateway
from dicomvault.core.logging import get_context_logger, get_session_id, set_session_id
from dicomvault.models.metadata import MetadataRecord, build_record
from dicomvault.services.reconciliation_service import (
    FieldChange,
    ReconciliationEngine,
)

logger = get_context_logger(__name__)

# Raw bytes, or an async loader called once the baseline is ready
BinarySource = Union[bytes, Callable[[], Awaitable[bytes]]]


class ExtractionState(str, Enum):
    IDLE = "idle"
    FETCHING_BASELINE = "fetching_baseline"
    BASELINE_READY = "baseline_ready"
    EXTRACTING_FILE = "extracting_file"
    RECONCILING = "reconciling"
    PERSISTING = "persisting"
    SETTLED = "settled"
    ABORTED = "aborted"


_TERMINAL: FrozenSet[ExtractionState] = frozenset(
    {ExtractionState.SETTLED, ExtractionState.ABORTED}
)

_TRANSITIONS: Dict[ExtractionState, FrozenSet[ExtractionState]] = {
    ExtractionState.IDLE: frozenset({ExtractionState.FETCHING_BASELINE}),
    ExtractionState.FETCHING_BASELINE: frozenset({ExtractionState.BASELINE_READY}),
    ExtractionState.BASELINE_READY: frozenset({ExtractionState.EXTRACTING_FILE}),
    ExtractionState.EXTRACTING_FILE: frozenset({ExtractionState.RECONCILING}),
    ExtractionState.RECONCILING: frozenset({ExtractionState.PERSISTING}),
    ExtractionState.PERSISTING: frozenset({ExtractionState.SETTLED}),
    ExtractionState.SETTLED: frozenset(),
    ExtractionState.ABORTED: frozenset(),
}


@dataclass
class ExtractionSession:
    """
    State of one extraction, keyed by the image it was started for.

    ``merged`` stays valid and displayable even when ``persisted`` is False.
    """
    image_id: str
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: ExtractionState = ExtractionState.IDLE
    history: List[ExtractionState] = field(default_factory=lambda: [ExtractionState.IDLE])
    baseline: Optional[MetadataRecord] = None
    candidate: Optional[MetadataRecord] = None
    merged: Optional[MetadataRecord] = None
    delta: Dict[str, FieldChange] = field(default_factory=dict)
    conflicts: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    persisted: bool = False
    abort_reason: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in _TERMINAL

    @property
    def is_settled(self) -> bool:
        return self.state == ExtractionState.SETTLED

    def transition(self, target: ExtractionState) -> None:
        """
        Move to ``target``.

        Raises:
            ExtractionStateException: If the transition is not allowed
        """
        allowed = _TRANSITIONS[self.state]
        if target == ExtractionState.ABORTED and not self.is_terminal:
            allowed = allowed | {ExtractionState.ABORTED}

        if target not in allowed:
            raise ExtractionStateException(
                message=f"Cannot move extraction session from {self.state.value} to {target.value}",
                details={
                    "session_id": self.session_id,
                    "image_id": self.image_id,
                    "from_state": self.state.value,
                    "to_state": target.value,
                }
            )

        self.state = target
        self.history.append(target)

    def abort(self, reason: str) -> None:
        """Abort the session; no-op once terminal."""
        if self.is_terminal:
            return
        self.abort_reason = reason
        self.transition(ExtractionState.ABORTED)


class ExtractionOrchestrator:
    """
    Runs extraction sessions for one viewer or upload.

    Args:
        gateway: Persistence gateway supplying baselines and storing merges
        codec: Binary codec producing element dictionaries
        engine: Reconciliation engine (a default one is created if omitted)
        name: Label used in logs (e.g. the viewer id)
    """

    def __init__(
        self,
        gateway: IMetadataGateway,
        codec: IBinaryCodec,
        engine: Optional[ReconciliationEngine] = None,
        name: str = "default"
    ):
        self._gateway = gateway
        self._codec = codec
        self._engine = engine or ReconciliationEngine()
        self.name = name
        self._current: Optional[ExtractionSession] = None

    @property
    def current(self) -> Optional[ExtractionSession]:
        """Most recently selected session."""
        return self._current

    def select(self, image_id: str) -> ExtractionSession:
        """
        Start a fresh session for ``image_id``.

        Any in-flight session is aborted and its partial state discarded.
        """
        previous = self._current
        if previous is not None and not previous.is_terminal:
            previous.abort(f"superseded by selection of image {image_id}")
            logger.info(
                "Extraction session superseded",
                extra={
                    "orchestrator": self.name,
                    "aborted_session_id": previous.session_id,
                    "aborted_image_id": previous.image_id,
                    "aborted_in_state": previous.history[-2].value,
                    "image_id": image_id,
                }
            )

        session = ExtractionSession(image_id=str(image_id))
        self._current = session
        return session

    def cancel(self, reason: str = "cancelled") -> Optional[ExtractionSession]:
        """Abort the current session, if any is still running."""
        session = self._current
        if session is not None and not session.is_terminal:
            session.abort(reason)
            logger.info(
                "Extraction session cancelled",
                extra={
                    "orchestrator": self.name,
                    "session_id": session.session_id,
                    "image_id": session.image_id,
                    "reason": reason,
                }
            )
        return session

    async def run(
        self,
        image_id: str,
        source: BinarySource,
        image_ref: Optional[str] = None
    ) -> ExtractionSession:
        """
        Select ``image_id`` and run a full extraction session for it.

        Args:
            image_id: Image identifier (baseline and persistence key)
            source: Raw bytes of the DICOM object, or an async loader for them
            image_ref: Source reference recorded as the record's image id

        Returns:
            The session, either SETTLED or ABORTED. Store and codec
            failures degrade to warnings on the session; they never raise.
        """
        session = self.select(image_id)
        previous_session_id = get_session_id()
        set_session_id(session.session_id)
        try:
            await self._execute(session, source, image_ref)
        finally:
            set_session_id(previous_session_id)
        return session

    async def _execute(
        self,
        session: ExtractionSession,
        source: BinarySource,
        image_ref: Optional[str]
    ) -> None:
        session.transition(ExtractionState.FETCHING_BASELINE)
        baseline = await self._fetch_baseline(session)
        if not self._accept(session, "baseline"):
            return
        session.baseline = baseline
        session.transition(ExtractionState.BASELINE_READY)

        session.transition(ExtractionState.EXTRACTING_FILE)
        candidate = await self._extract(session, source, image_ref)
        if candidate is None or not self._accept(session, "candidate"):
            return
        session.candidate = candidate

        session.transition(ExtractionState.RECONCILING)
        result = self._engine.reconcile(baseline, candidate)
        session.merged = result.merged
        session.delta = result.delta
        session.conflicts = result.conflicts

        session.transition(ExtractionState.PERSISTING)
        session.persisted = await self._persist(session, result.merged)
        if not self._accept(session, "persist"):
            return
        session.transition(ExtractionState.SETTLED)

        logger.info(
            "Extraction session settled",
            extra={
                "orchestrator": self.name,
                "image_id": session.image_id,
                "filled_fields": sorted(session.delta),
                "conflicts": session.conflicts,
                "persisted": session.persisted,
                "warning_count": len(session.warnings),
            }
        )

    def _accept(self, session: ExtractionSession, stage: str) -> bool:
        """Stale-response guard: only the current, live session takes results."""
        if session is self._current and session.state != ExtractionState.ABORTED:
            return True

        session.abort("stale session")
        logger.info(
            "Discarding stale extraction result",
            extra={
                "orchestrator": self.name,
                "session_id": session.session_id,
                "image_id": session.image_id,
                "stage": stage,
                "current_image_id": self._current.image_id if self._current else None,
            }
        )
        return False

    async def _fetch_baseline(self, session: ExtractionSession) -> MetadataRecord:
        try:
            baseline = await self._gateway.get(session.image_id)
        except Exception as e:
            session.warnings.append(f"Baseline read failed: {e}")
            logger.warning(
                "Baseline read failed, continuing with empty baseline",
                extra={
                    "image_id": session.image_id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )
            return MetadataRecord.empty()
        return baseline if baseline is not None else MetadataRecord.empty()

    async def _extract(
        self,
        session: ExtractionSession,
        source: BinarySource,
        image_ref: Optional[str]
    ) -> Optional[MetadataRecord]:
        """Build the candidate record; None when the session went stale meanwhile."""
        try:
            data = await source() if callable(source) else source
            if not self._accept(session, "load"):
                return None
            elements = await self._codec.decode(data)
        except Exception as e:
            session.warnings.append(f"Binary extraction failed: {e}")
            logger.warning(
                "Binary extraction failed, continuing with empty candidate",
                extra={
                    "image_id": session.image_id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )
            return MetadataRecord.empty()

        return build_record(elements, image_ref=image_ref)

    async def _persist(self, session: ExtractionSession, record: MetadataRecord) -> bool:
        try:
            stored = await self._gateway.put(session.image_id, record)
        except Exception as e:
            session.warnings.append(f"Metadata write failed: {e}")
            logger.warning(
                "Metadata write failed, merged record kept in memory only",
                extra={
                    "image_id": session.image_id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )
            return False

        if not stored:
            session.warnings.append("Metadata write rejected: image not found in store")
            logger.warning(
                "Metadata write rejected by store",
                extra={"image_id": session.image_id}
            )
        return bool(stored)
