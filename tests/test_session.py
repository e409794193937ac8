import io
import threading

import pytest
from PIL import Image

import session
from conftest import FakeGenerator, page
from errors import GenerationFailure, InvalidInstruction, SessionBusy, ValidationRejected
from session import GenerationStatus, SessionController, SessionState
from system_prompt import TAILWIND_SCRIPT
from validator import UnsupportedDesignFile, UploadCandidate


def png_upload(data):
    return UploadCandidate(data, "image/png", "shot.png")


def test_upload_then_refine_then_reject_concurrent_refine(controller, generator, png_bytes):
    artifact_a = controller.on_file_selected(png_upload(png_bytes)).result(timeout=5)
    snap = controller.snapshot
    assert snap.state is SessionState.READY
    assert snap.status is GenerationStatus.IDLE
    assert snap.artifact == artifact_a
    assert TAILWIND_SCRIPT in artifact_a

    generator.gate = threading.Event()
    generator.entered.clear()
    pending = controller.on_instruction_submitted("make the background dark")
    assert generator.entered.wait(5)
    assert controller.snapshot.state is SessionState.REFINING
    assert controller.snapshot.status is GenerationStatus.IN_FLIGHT

    with pytest.raises(SessionBusy):
        controller.on_instruction_submitted("and bigger buttons")
    assert controller.snapshot.artifact == artifact_a

    generator.gate.set()
    artifact_b = pending.result(timeout=5)
    assert artifact_b != artifact_a
    assert TAILWIND_SCRIPT in artifact_b
    assert controller.snapshot.artifact == artifact_b
    assert controller.snapshot.state is SessionState.READY
    assert controller.snapshot.version == 2
    assert generator.calls[-1] == ("refine", artifact_a, "make the background dark")


def test_upload_rejected_while_synthesizing(controller, generator, png_bytes):
    generator.gate = threading.Event()
    pending = controller.on_file_selected(png_upload(png_bytes))
    assert controller.snapshot.state is SessionState.SYNTHESIZING
    with pytest.raises(SessionBusy):
        controller.on_file_selected(png_upload(png_bytes))
    generator.gate.set()
    pending.result(timeout=5)
    assert [c[0] for c in generator.calls] == ["synthesize"]


def test_design_file_enters_guidance(controller, generator):
    result = controller.on_file_selected(UploadCandidate(b"", "", "design.fig"))
    assert isinstance(result, UnsupportedDesignFile)
    assert controller.snapshot.state is SessionState.GUIDANCE
    assert controller.snapshot.guidance == "design.fig"
    assert generator.calls == []

    controller.leave_guidance()
    assert controller.snapshot.state is SessionState.IDLE
    assert controller.snapshot.guidance is None


def test_rejected_upload_returns_to_idle(controller):
    with pytest.raises(ValidationRejected):
        controller.on_file_selected(UploadCandidate(b"%PDF", "application/pdf", "mockup.pdf"))
    assert controller.snapshot.state is SessionState.IDLE


def test_rejected_upload_keeps_current_artifact(controller, png_bytes):
    artifact = controller.on_file_selected(png_upload(png_bytes)).result(timeout=5)
    with pytest.raises(ValidationRejected):
        controller.on_file_selected(UploadCandidate(b"junk", "image/png", "broken.png"))
    assert controller.snapshot.state is SessionState.READY
    assert controller.snapshot.artifact == artifact


def test_refine_failure_keeps_previous_artifact(executor, png_bytes):
    gen = FakeGenerator(synth=[page("A")], refine=[GenerationFailure("quota exceeded")])
    controller = SessionController(gen, executor=executor)
    artifact = controller.on_file_selected(png_upload(png_bytes)).result(timeout=5)

    with pytest.raises(GenerationFailure, match="quota"):
        controller.on_instruction_submitted("dark mode").result(timeout=5)

    snap = controller.snapshot
    assert snap.artifact == artifact
    assert snap.state is SessionState.READY
    assert snap.status is GenerationStatus.IDLE
    assert snap.error == "quota exceeded"
    assert snap.version == 1

    controller.dismiss_error()
    assert controller.snapshot.error is None


def test_synthesis_failure_without_artifact_returns_to_idle(executor, png_bytes):
    controller = SessionController(FakeGenerator(synth=[RuntimeError("boom")]), executor=executor)
    with pytest.raises(GenerationFailure):
        controller.on_file_selected(png_upload(png_bytes)).result(timeout=5)
    assert controller.snapshot.state is SessionState.IDLE
    assert controller.snapshot.artifact is None
    assert "boom" in controller.snapshot.error


def test_empty_result_is_a_failure(executor, png_bytes):
    controller = SessionController(FakeGenerator(synth=["  \n"]), executor=executor)
    with pytest.raises(GenerationFailure, match="empty"):
        controller.on_file_selected(png_upload(png_bytes)).result(timeout=5)
    assert controller.snapshot.artifact is None


def test_instruction_guards(controller, png_bytes):
    with pytest.raises(InvalidInstruction):
        controller.on_instruction_submitted("make it blue")
    controller.on_file_selected(png_upload(png_bytes)).result(timeout=5)
    with pytest.raises(InvalidInstruction):
        controller.on_instruction_submitted("   ")


def test_cancel_discards_late_result(controller, generator, executor, png_bytes):
    artifact = controller.on_file_selected(png_upload(png_bytes)).result(timeout=5)
    generator.gate = threading.Event()
    generator.entered.clear()
    pending = controller.on_instruction_submitted("dark")
    assert generator.entered.wait(5)

    assert controller.cancel() is True
    assert pending.cancelled()
    assert controller.snapshot.state is SessionState.READY
    assert controller.snapshot.status is GenerationStatus.IDLE

    generator.gate.set()
    executor.shutdown(wait=True)
    assert controller.snapshot.artifact == artifact
    assert controller.snapshot.version == 1
    assert controller.cancel() is False


def test_timeout_resolves_to_failure(generator, executor, png_bytes):
    controller = SessionController(generator, timeout=0.05, executor=executor)
    generator.gate = threading.Event()
    pending = controller.on_file_selected(png_upload(png_bytes))

    with pytest.raises(GenerationFailure, match="timed out"):
        pending.result(timeout=5)
    assert controller.snapshot.state is SessionState.IDLE
    assert controller.snapshot.status is GenerationStatus.IDLE

    generator.gate.set()
    executor.shutdown(wait=True)
    assert controller.snapshot.artifact is None


def test_listeners_see_each_transition(controller, png_bytes):
    seen = []
    unsubscribe = controller.subscribe(lambda snap: seen.append(snap.state))
    controller.on_file_selected(png_upload(png_bytes)).result(timeout=5)
    assert seen == [SessionState.UPLOADING, SessionState.SYNTHESIZING, SessionState.READY]

    unsubscribe()
    controller.dismiss_error()
    controller.on_instruction_submitted("dark").result(timeout=5)
    assert len(seen) == 3


def test_instruction_rejected_while_synthesizing(controller, generator, png_bytes):
    generator.gate = threading.Event()
    pending = controller.on_file_selected(png_upload(png_bytes))
    assert controller.snapshot.state is SessionState.SYNTHESIZING

    with pytest.raises(SessionBusy):
        controller.on_instruction_submitted("make it dark")
    assert controller.snapshot.artifact is None

    generator.gate.set()
    pending.result(timeout=5)
    assert [c[0] for c in generator.calls] == ["synthesize"]


def test_upload_rejected_while_preparing_image(controller, monkeypatch, png_bytes):
    preparing = threading.Event()
    release = threading.Event()

    def slow_prepare(candidate, max_edge):
        preparing.set()
        release.wait(5)
        return candidate.data, candidate.media_type

    monkeypatch.setattr(session, "prepare_image", slow_prepare)
    results = []
    first = threading.Thread(
        target=lambda: results.append(controller.on_file_selected(png_upload(png_bytes))),
    )
    first.start()
    assert preparing.wait(5)
    assert controller.snapshot.state is SessionState.UPLOADING

    with pytest.raises(SessionBusy):
        controller.on_file_selected(png_upload(png_bytes))

    release.set()
    first.join(5)
    results[0].result(timeout=5)
    assert controller.snapshot.state is SessionState.READY


def test_large_cmyk_tiff_upload_synthesizes(controller, generator):
    buf = io.BytesIO()
    Image.new("CMYK", (2000, 100), (0, 80, 160, 20)).save(buf, format="TIFF")
    candidate = UploadCandidate(buf.getvalue(), "image/tiff", "scan.tiff")

    controller.on_file_selected(candidate).result(timeout=5)

    assert controller.snapshot.state is SessionState.READY
    assert generator.calls == [("synthesize", "image/png")]


def test_unexpected_prepare_error_leaves_session_usable(controller, monkeypatch, png_bytes):
    def broken_prepare(candidate, max_edge):
        raise RuntimeError("encoder crashed")

    monkeypatch.setattr(session, "prepare_image", broken_prepare)
    with pytest.raises(ValidationRejected):
        controller.on_file_selected(png_upload(png_bytes))
    assert controller.snapshot.state is SessionState.IDLE

    monkeypatch.undo()
    controller.on_file_selected(png_upload(png_bytes)).result(timeout=5)
    assert controller.snapshot.state is SessionState.READY


def test_refine_from_guidance_clears_guidance(controller, png_bytes):
    controller.on_file_selected(png_upload(png_bytes)).result(timeout=5)
    controller.on_file_selected(UploadCandidate(b"", "", "design.fig"))
    assert controller.snapshot.state is SessionState.GUIDANCE

    pending = controller.on_instruction_submitted("dark")
    assert controller.snapshot.guidance is None
    pending.result(timeout=5)
    assert controller.snapshot.state is SessionState.READY
    assert controller.snapshot.guidance is None
