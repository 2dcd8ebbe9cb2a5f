# utils/proof_capture.py
"""
Proof-of-delivery capture flow.

    Idle -> PermissionRequested -> Capturing -> Uploading -> Success | Failed -> Idle

The flow is driven by events because in the bot every step arrives in a
separate update: the source button, the permission check, the photo message.
`run()` drives the same steps in one go when a permission gate and a picker
are at hand.

Only one flow may be active per order view. Cancelling is honored while
capturing only; once the upload starts it runs to completion.
"""
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Hashable, Optional, Protocol

from database.models.order import ServiceResult
from utils.logger import get_logger

log = get_logger("[ProofCapture]")

GENERIC_FAILURE = "Failed to upload proof of delivery. Please try again."


class CaptureState(str, Enum):
    IDLE = "idle"
    PERMISSION_REQUESTED = "permission_requested"
    CAPTURING = "capturing"
    UPLOADING = "uploading"
    SUCCESS = "success"
    FAILED = "failed"


class CaptureSource(str, Enum):
    CAMERA = "camera"
    GALLERY = "gallery"


class CaptureIntent(str, Enum):
    MARK_DELIVERED = "dlv"
    UPLOAD_PROOF = "proof"


PERMISSION_DENIED_MESSAGES = {
    CaptureSource.CAMERA: "Camera access is required to take a delivery photo.",
    CaptureSource.GALLERY: "Photo library access is required to choose a delivery photo.",
}


class CaptureFlowBusy(Exception):
    """A capture or upload is already running for this order view."""


class PermissionGate(Protocol):
    async def request(self, source: CaptureSource) -> bool: ...


class ImagePicker(Protocol):
    async def pick(self, source: CaptureSource) -> Optional[str]:
        """Image reference, or None if the user backed out."""
        ...


class ProofUploader(Protocol):
    async def upload_delivery_proof(self, order_id: str, actor_id: str, image_uri: str) -> ServiceResult: ...

    async def mark_order_delivered(self, order_id: str, actor_id: str,
                                   image_uri: Optional[str] = None) -> ServiceResult: ...


@dataclass(frozen=True)
class CaptureOutcome:
    state: CaptureState  # SUCCESS, FAILED or IDLE (denied / cancelled)
    message: Optional[str] = None
    title: Optional[str] = None
    proof_uploaded: bool = False

    @property
    def ok(self) -> bool:
        return self.state == CaptureState.SUCCESS


class ProofCaptureFlow:
    def __init__(
            self,
            order_id: str,
            rider_id: str,
            intent: CaptureIntent,
            uploader: ProofUploader,
            on_refresh: Optional[Callable[[], Awaitable[None]]] = None,
    ):
        self.order_id = order_id
        self.rider_id = rider_id
        self.intent = intent
        self.uploader = uploader
        self.on_refresh = on_refresh
        self.source: Optional[CaptureSource] = None
        self.started_at: Optional[float] = None
        self.last_outcome: Optional[CaptureOutcome] = None
        self._state = CaptureState.IDLE
        self.transitions: list[CaptureState] = [CaptureState.IDLE]

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def is_busy(self) -> bool:
        return self._state != CaptureState.IDLE

    @property
    def is_uploading(self) -> bool:
        return self._state == CaptureState.UPLOADING

    def _move(self, state: CaptureState) -> None:
        log.debug(f"Order {self.order_id}: {self._state.value} -> {state.value}")
        self._state = state
        self.transitions.append(state)

    def _finish(self, outcome: CaptureOutcome) -> CaptureOutcome:
        if outcome.state in (CaptureState.SUCCESS, CaptureState.FAILED):
            self._move(outcome.state)
        self._move(CaptureState.IDLE)
        self.source = None
        self.started_at = None
        self.last_outcome = outcome
        return outcome

    # --- events ---

    def begin(self, source: CaptureSource) -> None:
        if self.is_busy:
            raise CaptureFlowBusy(f"Capture already in progress for order {self.order_id}")
        self.source = CaptureSource(source)
        self.started_at = time.monotonic()
        self._move(CaptureState.PERMISSION_REQUESTED)

    def permission_resolved(self, granted: bool) -> Optional[CaptureOutcome]:
        """Denied -> back to Idle with a message. Granted -> Capturing, returns None."""
        if self._state != CaptureState.PERMISSION_REQUESTED:
            log.warning(f"Order {self.order_id}: permission result ignored in state {self._state.value}")
            return None
        if not granted:
            log.info(f"Order {self.order_id}: {self.source.value} permission denied")
            return self._finish(CaptureOutcome(CaptureState.IDLE, PERMISSION_DENIED_MESSAGES[self.source]))
        self._move(CaptureState.CAPTURING)
        return None

    def cancel(self) -> bool:
        """User backed out of the picker. Silent, not a failure. Ignored outside Capturing."""
        if self._state != CaptureState.CAPTURING:
            log.debug(f"Order {self.order_id}: cancel ignored in state {self._state.value}")
            return False
        self._finish(CaptureOutcome(CaptureState.IDLE))
        return True

    async def image_captured(self, image_uri: str) -> CaptureOutcome:
        if self._state != CaptureState.CAPTURING:
            raise CaptureFlowBusy(f"Order {self.order_id} is not waiting for a photo ({self._state.value})")

        self._move(CaptureState.UPLOADING)
        try:
            if self.intent == CaptureIntent.MARK_DELIVERED:
                result = await self.uploader.mark_order_delivered(self.order_id, self.rider_id, image_uri)
            else:
                result = await self.uploader.upload_delivery_proof(self.order_id, self.rider_id, image_uri)
        except Exception as e:
            log.exception(f"Order {self.order_id}: proof upload failed: {e}")
            return self._finish(CaptureOutcome(CaptureState.FAILED, getattr(e, "message", None) or GENERIC_FAILURE,
                                               title="Error"))

        if not result.success:
            log.warning(f"Order {self.order_id}: proof upload rejected: {result.message}")
            return self._finish(CaptureOutcome(CaptureState.FAILED, result.message or GENERIC_FAILURE,
                                               title="Error"))

        if self.on_refresh is not None:
            try:
                await self.on_refresh()
            except Exception as e:
                # The mutation went through, the next refresh will pick it up
                log.warning(f"Order {self.order_id}: refresh after upload failed: {e}")

        return self._finish(CaptureOutcome(
            CaptureState.SUCCESS,
            result.message,
            title=self.success_title(result),
            proof_uploaded=result.proof_uploaded,
        ))

    def success_title(self, result: ServiceResult) -> str:
        if self.intent == CaptureIntent.UPLOAD_PROOF:
            return "Proof Updated! 📸"
        return "Success! 📸" if result.proof_uploaded else "Success! ✅"

    # --- one-shot driver ---

    async def run(self, source: CaptureSource, permissions: PermissionGate, picker: ImagePicker) -> CaptureOutcome:
        self.begin(source)
        try:
            granted = await permissions.request(self.source)
        except Exception as e:
            log.exception(f"Order {self.order_id}: permission request failed: {e}")
            granted = False
        denied = self.permission_resolved(granted)
        if denied is not None:
            return denied

        try:
            image_uri = await picker.pick(self.source)
        except Exception as e:
            log.exception(f"Order {self.order_id}: picker failed: {e}")
            return self._finish(CaptureOutcome(CaptureState.FAILED, GENERIC_FAILURE, title="Error"))

        if image_uri is None:
            self.cancel()
            return self.last_outcome
        return await self.image_captured(image_uri)


class FlowRegistry:
    """One capture flow per open order view (chat, order)."""

    def __init__(self):
        self._flows: dict[Hashable, ProofCaptureFlow] = {}

    def get(self, key: Hashable) -> Optional[ProofCaptureFlow]:
        return self._flows.get(key)

    def start(self, key: Hashable, flow: ProofCaptureFlow, source: CaptureSource) -> ProofCaptureFlow:
        current = self._flows.get(key)
        if current is not None and current.is_busy:
            raise CaptureFlowBusy(f"Capture already in progress for {key}")
        self._flows[key] = flow
        flow.begin(source)
        return flow

    def discard(self, key: Hashable) -> None:
        flow = self._flows.get(key)
        if flow is not None and flow.is_uploading:
            # An upload runs to completion, it is removed when it finishes
            return
        self._flows.pop(key, None)

    def prune(self, max_age_seconds: float) -> int:
        """Drops flows left waiting for a photo longer than max_age_seconds."""
        now = time.monotonic()
        stale = [
            key for key, flow in self._flows.items()
            if not flow.is_uploading and (flow.started_at is None or now - flow.started_at > max_age_seconds)
        ]
        for key in stale:
            flow = self._flows.pop(key)
            flow.cancel()
        return len(stale)

    def __len__(self) -> int:
        return len(self._flows)
