import asyncio
from unittest.mock import AsyncMock

import pytest

from api.errors import BackendError
from database.models.order import ServiceResult
from utils.proof_capture import (
    GENERIC_FAILURE, PERMISSION_DENIED_MESSAGES, CaptureFlowBusy, CaptureIntent, CaptureSource,
    CaptureState, FlowRegistry, ProofCaptureFlow,
)

pytestmark = pytest.mark.unit


class Gate:
    def __init__(self, granted=True):
        self.granted = granted

    async def request(self, source):
        return self.granted


class Picker:
    def __init__(self, uri):
        self.uri = uri

    async def pick(self, source):
        return self.uri


def make_uploader():
    uploader = AsyncMock()
    uploader.mark_order_delivered.return_value = ServiceResult(True, "Order marked as delivered with proof photo!",
                                                               proof_uploaded=True)
    uploader.upload_delivery_proof.return_value = ServiceResult(True, "Proof of delivery uploaded successfully!",
                                                                proof_uploaded=True)
    return uploader


def make_flow(intent=CaptureIntent.MARK_DELIVERED, uploader=None, on_refresh=None):
    return ProofCaptureFlow("o-1", "rider-1", intent, uploader or make_uploader(), on_refresh=on_refresh)


def test_cancel_at_picker_returns_to_idle_without_upload():
    uploader = make_uploader()
    flow = make_flow(uploader=uploader)

    outcome = asyncio.run(flow.run(CaptureSource.CAMERA, Gate(), Picker(None)))

    assert outcome.state == CaptureState.IDLE
    assert outcome.message is None
    assert flow.state == CaptureState.IDLE
    uploader.mark_order_delivered.assert_not_called()
    uploader.upload_delivery_proof.assert_not_called()


def test_successful_delivery_walks_every_state_and_refreshes():
    refresh = AsyncMock()
    uploader = make_uploader()
    flow = make_flow(uploader=uploader, on_refresh=refresh)

    outcome = asyncio.run(flow.run(CaptureSource.GALLERY, Gate(), Picker("/tmp/p.jpg")))

    assert outcome.ok
    assert outcome.title == "Success! 📸"
    assert flow.transitions == [
        CaptureState.IDLE, CaptureState.PERMISSION_REQUESTED, CaptureState.CAPTURING,
        CaptureState.UPLOADING, CaptureState.SUCCESS, CaptureState.IDLE,
    ]
    uploader.mark_order_delivered.assert_awaited_once_with("o-1", "rider-1", "/tmp/p.jpg")
    refresh.assert_awaited_once()


def test_upload_proof_intent_uses_proof_endpoint():
    uploader = make_uploader()
    flow = make_flow(CaptureIntent.UPLOAD_PROOF, uploader)
    outcome = asyncio.run(flow.run(CaptureSource.CAMERA, Gate(), Picker("/tmp/p.jpg")))
    assert outcome.title == "Proof Updated! 📸"
    uploader.upload_delivery_proof.assert_awaited_once()
    uploader.mark_order_delivered.assert_not_called()


def test_permission_denied_is_terminal_for_the_attempt():
    uploader = make_uploader()
    flow = make_flow(uploader=uploader)
    outcome = asyncio.run(flow.run(CaptureSource.CAMERA, Gate(granted=False), Picker("/tmp/p.jpg")))
    assert outcome.state == CaptureState.IDLE
    assert outcome.message == PERMISSION_DENIED_MESSAGES[CaptureSource.CAMERA]
    assert not flow.is_busy
    uploader.mark_order_delivered.assert_not_called()


def test_collaborator_message_is_surfaced_verbatim():
    uploader = make_uploader()
    uploader.mark_order_delivered.return_value = ServiceResult(False, "Order is locked")
    flow = make_flow(uploader=uploader)
    outcome = asyncio.run(flow.run(CaptureSource.CAMERA, Gate(), Picker("/tmp/p.jpg")))
    assert outcome.state == CaptureState.FAILED
    assert outcome.message == "Order is locked"
    assert flow.state == CaptureState.IDLE


def test_exception_uses_its_message_or_generic_text():
    uploader = make_uploader()
    uploader.mark_order_delivered.side_effect = BackendError(500, "Storage is down")
    outcome = asyncio.run(make_flow(uploader=uploader).run(CaptureSource.CAMERA, Gate(), Picker("/tmp/p.jpg")))
    assert outcome.message == "Storage is down"

    uploader.mark_order_delivered.side_effect = RuntimeError()
    outcome = asyncio.run(make_flow(uploader=uploader).run(CaptureSource.CAMERA, Gate(), Picker("/tmp/p.jpg")))
    assert outcome.message == GENERIC_FAILURE


def test_refresh_failure_does_not_turn_success_into_failure():
    refresh = AsyncMock(side_effect=RuntimeError("telegram down"))
    outcome = asyncio.run(make_flow(on_refresh=refresh).run(CaptureSource.CAMERA, Gate(), Picker("/tmp/p.jpg")))
    assert outcome.ok


def test_reentry_while_busy_is_refused():
    flow = make_flow()
    flow.begin(CaptureSource.CAMERA)
    with pytest.raises(CaptureFlowBusy):
        flow.begin(CaptureSource.GALLERY)


def test_cancel_is_ignored_while_uploading():
    started = asyncio.Event()
    release = asyncio.Event()

    async def slow_delivery(*args):
        started.set()
        await release.wait()
        return ServiceResult(True, "Order marked as delivered!")

    uploader = make_uploader()
    uploader.mark_order_delivered.side_effect = slow_delivery
    flow = make_flow(uploader=uploader)

    async def scenario():
        flow.begin(CaptureSource.CAMERA)
        flow.permission_resolved(True)
        task = asyncio.create_task(flow.image_captured("/tmp/p.jpg"))
        await started.wait()
        assert flow.is_uploading
        assert flow.cancel() is False
        with pytest.raises(CaptureFlowBusy):
            await flow.image_captured("/tmp/other.jpg")
        release.set()
        return await task

    outcome = asyncio.run(scenario())
    assert outcome.ok
    assert outcome.title == "Success! ✅"


def test_registry_keeps_one_flow_per_view():
    registry = FlowRegistry()
    first = registry.start((1, "o-1"), make_flow(), CaptureSource.CAMERA)
    with pytest.raises(CaptureFlowBusy):
        registry.start((1, "o-1"), make_flow(), CaptureSource.GALLERY)

    first.permission_resolved(True)
    first.cancel()
    registry.start((1, "o-1"), make_flow(), CaptureSource.GALLERY)
    assert len(registry) == 1


def test_registry_prunes_abandoned_prompts():
    registry = FlowRegistry()
    flow = registry.start((1, "o-1"), make_flow(), CaptureSource.CAMERA)
    flow.permission_resolved(True)
    assert registry.prune(max_age_seconds=-1) == 1
    assert flow.state == CaptureState.IDLE
    assert registry.get((1, "o-1")) is None
