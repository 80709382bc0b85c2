import json
import tempfile
import unittest
from pathlib import Path

from fakes import FakePage

from pointer_replay.config import RecorderConfig
from pointer_replay.models import Action, RecordingFormatError
from pointer_replay.recorder import PhaseError, PointerRecorder


def _config(tmp: str, **overrides) -> RecorderConfig:
    config = RecorderConfig(
        post_replay_script="",
        post_replay_wait_ms=0,
        post_reload_wait_ms=0,
        recordings_dir=str(Path(tmp) / "recordings"),
    )
    for key, value in overrides.items():
        setattr(config, key, value)
    return config


class PointerRecorderTests(unittest.IsolatedAsyncioTestCase):
    async def test_capture_saves_recording_with_fault_flag(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            page = FakePage()
            recorder = PointerRecorder(page, _config(tmp), url="https://example.test/")
            await recorder.start_capture()
            self.assertEqual(recorder.phase, "capturing")
            page.main_frame.buffered.append(
                {"kind": "click", "x": 3, "y": 4, "isDrag": False, "isCanvasTarget": False, "capturedAtMs": 1}
            )
            await recorder.set_fault(True)
            await recorder.set_fault(False)

            path = await recorder.stop_capture()

            self.assertEqual(recorder.phase, "idle")
            self.assertIsNotNone(path)
            payload = json.loads(path.read_text(encoding="utf-8"))
        self.assertEqual(payload["metadata"]["sourceUrl"], "https://example.test/")
        self.assertTrue(payload["metadata"]["faultWasUsedDuringCapture"])
        kinds = [item["kind"] for item in payload["actions"]]
        self.assertEqual(kinds.count("network-toggle"), 2)
        self.assertEqual(len(recorder.actions), 3)

    async def test_fault_toggle_is_logged_before_it_is_applied(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            page = FakePage()
            recorder = PointerRecorder(page, _config(tmp))
            await recorder.start_capture()
            apply_fault = recorder.fault.set_fault
            logged_at_apply: list[list[str]] = []

            async def checking_set_fault(enabled: bool):
                logged_at_apply.append([a.get("networkToggleKind") for a in page.main_frame.buffered])
                return await apply_fault(enabled)

            recorder.fault.set_fault = checking_set_fault
            await recorder.set_fault(True)
            await recorder.set_fault(False)
            await recorder.stop_capture()

        self.assertEqual(logged_at_apply, [["enable-fault"], ["enable-fault", "disable-fault"]])

    async def test_empty_capture_saves_nothing(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            recorder = PointerRecorder(FakePage(), _config(tmp))
            await recorder.start_capture()
            self.assertIsNone(await recorder.stop_capture())
            self.assertFalse((Path(tmp) / "recordings").exists())

    async def test_phases_are_mutually_exclusive(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            recorder = PointerRecorder(FakePage(), _config(tmp))
            with self.assertRaises(PhaseError):
                await recorder.stop_capture()
            await recorder.start_capture()
            with self.assertRaises(PhaseError):
                await recorder.start_capture()
            with self.assertRaises(PhaseError):
                await recorder.replay(1)
            with self.assertRaises(PhaseError):
                recorder.load(Path(tmp) / "whatever.json")

    async def test_failed_load_keeps_log_by_default(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            bad = Path(tmp) / "bad.json"
            bad.write_text('"not a recording"', encoding="utf-8")
            recorder = PointerRecorder(FakePage(), _config(tmp))
            recorder.actions = [Action(kind="click", captured_at_ms=1, x=1, y=1)]
            with self.assertRaises(RecordingFormatError):
                recorder.load(bad)
            self.assertEqual(len(recorder.actions), 1)

            recorder.config.clear_log_on_load_failure = True
            with self.assertRaises(RecordingFormatError):
                recorder.load(bad)
            self.assertEqual(recorder.actions, [])

    async def test_out_of_range_number_honours_clear_policy(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            bad = Path(tmp) / "huge.json"
            bad.write_text('[{"kind": "click", "capturedAtMs": 0, "x": 1e400, "y": 1}]', encoding="utf-8")
            recorder = PointerRecorder(FakePage(), _config(tmp, clear_log_on_load_failure=True))
            recorder.actions = [Action(kind="click", captured_at_ms=1, x=1, y=1)]
            with self.assertRaises(RecordingFormatError):
                recorder.load(bad)
            self.assertEqual(recorder.actions, [])

    async def test_load_then_replay(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "legacy.json"
            path.write_text(
                json.dumps([{"type": "click", "timestamp": 1, "x": 7, "y": 8}]),
                encoding="utf-8",
            )
            page = FakePage()
            recorder = PointerRecorder(page, _config(tmp))
            recording = recorder.load(path)
            self.assertTrue(recording.legacy)

            report = await recorder.replay(2)

        self.assertEqual(report.loops_completed, 2)
        self.assertEqual(page.mouse.calls, [("click", 7, 8), ("click", 7, 8)])
        self.assertEqual(page.navigations, [("reload", page.url), ("reload", page.url)])
        self.assertEqual(recorder.phase, "idle")
        self.assertFalse(recorder.cancel())


if __name__ == "__main__":
    unittest.main()
