import unittest

from pointer_replay.models import (
    Action,
    FrameOffset,
    RecordingFormatError,
    decode_recording,
    fault_used,
    merge_frame_logs,
)


def _pointer(kind: str, at: float, frame: int = 0, **extra) -> dict:
    payload = {"kind": kind, "capturedAtMs": at, "x": 10, "y": 20, "frameIndex": frame}
    payload.update(extra)
    return payload


class DecodeRecordingTests(unittest.TestCase):
    def test_wrapped_and_bare_list_decode_to_same_actions(self) -> None:
        items = [
            _pointer("pointer-down", 1000),
            _pointer("pointer-up", 1100, isDrag=True),
            {"kind": "network-toggle", "networkToggleKind": "enable-fault", "capturedAtMs": 1200},
        ]
        wrapped = decode_recording({"metadata": {"sourceUrl": "https://a.test"}, "actions": items})
        bare = decode_recording(list(items))

        self.assertEqual(wrapped.actions, bare.actions)
        self.assertFalse(wrapped.legacy)
        self.assertTrue(bare.legacy)
        self.assertEqual(bare.metadata.source_url, "")
        self.assertEqual(wrapped.metadata.source_url, "https://a.test")

    def test_legacy_field_names_are_accepted(self) -> None:
        recording = decode_recording(
            {
                "metadata": {"url": "https://old.test", "packetLossEnabledInRecording": True},
                "actions": [
                    {"type": "mousedown", "timestamp": 5, "x": 1.4, "y": 2.6, "isCanvas": True},
                    {"type": "networkAction", "networkActionType": "disablePacketLoss", "timestamp": 6},
                ],
            }
        )
        down, toggle = recording.actions
        self.assertEqual(down.kind, "pointer-down")
        self.assertEqual((down.x, down.y), (1, 3))
        self.assertTrue(down.is_canvas_target)
        self.assertEqual(toggle.network_toggle_kind, "disable-fault")
        self.assertTrue(recording.metadata.fault_was_used_during_capture)
        self.assertEqual(recording.metadata.source_url, "https://old.test")

    def test_rejects_other_shapes(self) -> None:
        for payload in ("actions", 42, None, {"metadata": {}}, {"actions": "nope"}):
            with self.subTest(payload=payload):
                with self.assertRaises(RecordingFormatError):
                    decode_recording(payload)

    def test_rejects_bad_action_with_position(self) -> None:
        with self.assertRaises(RecordingFormatError) as ctx:
            decode_recording([_pointer("pointer-down", 1), {"kind": "scroll", "capturedAtMs": 2}])
        self.assertIn("action 2", str(ctx.exception))

    def test_rejects_pointer_action_without_coordinates(self) -> None:
        with self.assertRaises(RecordingFormatError):
            decode_recording([{"kind": "click", "capturedAtMs": 1}])

    def test_to_dict_round_trips_frame_fields(self) -> None:
        action = Action(
            kind="click",
            captured_at_ms=3,
            x=4,
            y=5,
            frame_index=2,
            frame_offset=FrameOffset(100.0, 50.0),
        )
        self.assertEqual(Action.from_dict(action.to_dict()), action)
        self.assertEqual(action.global_point(), (104.0, 55.0))


class MergeTests(unittest.TestCase):
    def test_merge_is_stable_by_capture_time(self) -> None:
        main = [Action.from_dict(_pointer("pointer-down", 10)), Action.from_dict(_pointer("pointer-up", 30))]
        child = [
            Action.from_dict(_pointer("click", 10, frame=1)),
            Action.from_dict(_pointer("click", 20, frame=1)),
        ]
        merged = merge_frame_logs([main, child])
        self.assertEqual(
            [(a.captured_at_ms, a.frame_index) for a in merged],
            [(10, 0), (10, 1), (20, 1), (30, 0)],
        )

    def test_fault_used_requires_enable_toggle(self) -> None:
        disable = Action(kind="network-toggle", captured_at_ms=1, network_toggle_kind="disable-fault")
        enable = Action(kind="network-toggle", captured_at_ms=2, network_toggle_kind="enable-fault")
        self.assertFalse(fault_used([disable]))
        self.assertTrue(fault_used([disable, enable]))


if __name__ == "__main__":
    unittest.main()
