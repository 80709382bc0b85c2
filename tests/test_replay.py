import unittest
from unittest.mock import patch

from fakes import FakeFrame, FakeMouse, FakePage, FakeRequest

from pointer_replay.cancellation import CancellationToken
from pointer_replay.config import RecorderConfig
from pointer_replay.constants import DRAW_PANEL_ID, FILTER_PANEL_ID, REPLAY_BADGE_ID
from pointer_replay.models import Action, FrameOffset
from pointer_replay.network_fault import NetworkFaultController
from pointer_replay.post_replay import PostReplayOutcome
from pointer_replay.replay import DriverClosedError, ReplayEngine, inter_action_delay_ms, interpolate_drag
from pointer_replay.watch import RequestWatcher


class _StubPostReplay:
    def __init__(self) -> None:
        self.runs = 0

    async def run(self, token: CancellationToken) -> PostReplayOutcome:
        self.runs += 1
        return PostReplayOutcome(waited=True)


class _CancellingMouse(FakeMouse):
    """Cancels the token as soon as the n-th click lands."""

    def __init__(self, page: FakePage, token: CancellationToken, after: int) -> None:
        super().__init__(page)
        self.token = token
        self.after = after

    async def click(self, x: float, y: float) -> None:
        await super().click(x, y)
        if sum(1 for call in self.calls if call[0] == "click") == self.after:
            self.token.cancel("operator cancel")


class _DrawingMouse(FakeMouse):
    """Every click starts a spin that loads one symbol."""

    def __init__(self, page: FakePage, watcher: RequestWatcher, symbols: list[str]) -> None:
        super().__init__(page)
        self.watcher = watcher
        self.symbols = list(symbols)

    async def click(self, x: float, y: float) -> None:
        await super().click(x, y)
        await self.watcher.on_request(FakeRequest("https://a.test/api/spin", "POST"))
        await self.watcher.on_request(FakeRequest(f"https://cdn.test/symbols/{self.symbols.pop(0)}_big"))


def _click(at: float, x: int = 10, y: int = 10, **extra) -> Action:
    return Action(kind="click", captured_at_ms=at, x=x, y=y, **extra)


class InterpolationTests(unittest.TestCase):
    def test_even_steps_end_on_target(self) -> None:
        points = interpolate_drag((100, 100), (200, 100), 15)
        self.assertEqual(len(points), 15)
        for k, (x, y) in enumerate(points, start=1):
            self.assertAlmostEqual(x, 100 + k * (100 / 15))
            self.assertEqual(y, 100)
        self.assertAlmostEqual(points[-1][0], 200)

    def test_delay_is_stamp_gap_clamped_at_zero(self) -> None:
        self.assertEqual(inter_action_delay_ms(_click(100), _click(250)), 150.0)
        self.assertEqual(inter_action_delay_ms(_click(100), _click(40)), 0.0)
        self.assertEqual(inter_action_delay_ms(_click(100), _click(100)), 0.0)
        self.assertEqual(inter_action_delay_ms(_click(100), None), 0.0)


class ReplayEngineTests(unittest.IsolatedAsyncioTestCase):
    def _engine(self, page: FakePage, **kwargs) -> ReplayEngine:
        kwargs.setdefault("drag_step_delay_ms", 0)
        return ReplayEngine(page, NetworkFaultController(page), **kwargs)

    async def test_drag_replays_interpolated_moves(self) -> None:
        page = FakePage()
        actions = [
            Action(kind="pointer-down", captured_at_ms=0, x=100, y=100),
            Action(kind="pointer-move", captured_at_ms=5, x=150, y=100, is_drag=True),
            Action(kind="pointer-up", captured_at_ms=10, x=200, y=100, is_drag=True),
        ]

        report = await self._engine(page).replay(actions, 1, CancellationToken())

        calls = page.mouse.calls
        self.assertEqual(calls[:2], [("move", 100, 100), ("down",)])
        moves = calls[2:-1]
        self.assertEqual(len(moves), 16)
        for k, call in enumerate(moves[:15], start=1):
            self.assertEqual(call[0], "move")
            self.assertAlmostEqual(call[1], 100 + k * (100 / 15))
            self.assertEqual(call[2], 100)
        self.assertEqual(moves[15], ("move", 200, 100))
        self.assertEqual(calls[-1], ("up",))
        self.assertEqual(report.loops_completed, 1)
        self.assertEqual(report.failed_actions, [])

    async def test_frame_offset_is_added_to_coordinates(self) -> None:
        main = FakeFrame("main")
        child = FakeFrame("child", parent=main)
        page = FakePage([main, child])
        action = _click(0, x=5, y=6, frame_index=1, frame_offset=FrameOffset(100.0, 50.0))

        await self._engine(page).replay([action], 1, CancellationToken())

        self.assertEqual(page.mouse.calls, [("click", 105.0, 56.0)])
        self.assertTrue(any(arg == [5, 6, False] for _, arg in child.evaluations))

    async def test_cancel_stops_before_next_action_and_skips_post_replay(self) -> None:
        page = FakePage()
        token = CancellationToken()
        page.mouse = _CancellingMouse(page, token, after=2)
        post = _StubPostReplay()
        actions = [_click(0), _click(1), _click(2), _click(3)]

        report = await self._engine(page, post_replay=post).replay(actions, 3, token)

        self.assertEqual(len(page.mouse.calls), 2)
        self.assertTrue(report.cancelled)
        self.assertEqual(report.cancel_reason, "operator cancel")
        self.assertEqual(report.loops_completed, 0)
        self.assertEqual(post.runs, 0)
        self.assertEqual(page.badge_states(REPLAY_BADGE_ID)[-1], False)

    async def test_failed_action_is_logged_and_replay_continues(self) -> None:
        page = FakePage()
        page.mouse.fail_on = {"click"}
        actions = [
            _click(0),
            Action(kind="pointer-down", captured_at_ms=1, x=1, y=1),
            Action(kind="pointer-up", captured_at_ms=2, x=1, y=1),
        ]

        report = await self._engine(page).replay(actions, 1, CancellationToken())

        self.assertEqual(report.failed_actions, [0])
        self.assertEqual(report.actions_performed, 2)
        self.assertEqual(page.mouse.calls, [("move", 1, 1), ("down",), ("move", 1, 1), ("up",)])
        self.assertEqual(report.loops_completed, 1)

    async def test_closed_page_raises_driver_closed(self) -> None:
        page = FakePage()
        page.closed = True
        with self.assertRaises(DriverClosedError):
            await self._engine(page).replay([_click(0)], 1, CancellationToken())

    async def test_post_replay_runs_after_each_completed_loop(self) -> None:
        page = FakePage()
        post = _StubPostReplay()
        loops_seen = []

        report = await self._engine(
            page,
            post_replay=post,
            on_loop_start=lambda current, total: loops_seen.append((current, total)),
        ).replay([_click(0)], 2, CancellationToken())

        self.assertEqual(report.loops_completed, 2)
        self.assertEqual(post.runs, 2)
        self.assertEqual(len(report.post_replay), 2)
        self.assertEqual(loops_seen, [(1, 2), (2, 2)])

    async def test_network_toggle_action_drives_fault_controller(self) -> None:
        page = FakePage()
        engine = self._engine(page)
        actions = [
            Action(kind="network-toggle", captured_at_ms=0, network_toggle_kind="enable-fault"),
            _click(1),
        ]

        await engine.replay(actions, 1, CancellationToken())

        self.assertTrue(engine.fault.enabled)
        self.assertEqual(page.mouse.calls, [("click", 10, 10)])

    async def test_pacing_follows_capture_stamps(self) -> None:
        page = FakePage()
        delays: list[float] = []

        async def record_sleep(token: CancellationToken, ms: float) -> bool:
            delays.append(ms)
            return True

        actions = [_click(0), _click(100), _click(50), _click(50), _click(80)]
        with patch.object(CancellationToken, "sleep", record_sleep):
            report = await self._engine(page).replay(actions, 1, CancellationToken())

        # 0->100 waits, 100->50 is out of order, 50->50 is equal, 80 is last.
        self.assertEqual(delays, [100.0, 30.0])
        self.assertEqual(report.actions_performed, 5)

    async def test_panels_rebuilt_each_loop_and_draws_listed(self) -> None:
        page = FakePage()
        config = RecorderConfig(
            tracking_start_patterns=["/spin"],
            tracking_filter_patterns=["symbols/"],
            tracking_suffix="_big",
        )
        watcher = RequestWatcher(config)
        watcher.attach(page)
        page.mouse = _DrawingMouse(page, watcher, ["plum", "bell"])

        with patch("pointer_replay.replay.READY_SETTLE_MS", 0):
            report = await self._engine(page, watcher=watcher, ready_wait_ms=1).replay(
                [_click(0)], 2, CancellationToken(), target_draws=5
            )

        self.assertEqual(report.loops_completed, 2)
        self.assertEqual(report.draw_labels, ["plum", "bell"])
        self.assertEqual(
            page.panel_updates(FILTER_PANEL_ID),
            [("Filter Patterns:", ["symbols/"], "None")] * 2,
        )
        self.assertEqual(
            [lines for _, lines, _ in page.panel_updates(DRAW_PANEL_ID)],
            [[], ["1. plum"], ["1. plum"], ["1. plum", "2. bell"]],
        )
        self.assertEqual(page.panel_updates(DRAW_PANEL_ID)[0], ("Draw:", [], "No draw"))

    async def test_filter_panel_without_patterns_shows_none(self) -> None:
        page = FakePage()
        watcher = RequestWatcher(RecorderConfig(tracking_start_patterns=[], tracking_filter_patterns=[]))

        report = await self._engine(page, watcher=watcher).replay([_click(0)], 1, CancellationToken())

        self.assertEqual(page.panel_updates(FILTER_PANEL_ID), [("Filter Patterns:", [], "None")])
        self.assertEqual(report.draw_labels, [])

    async def test_empty_log_does_nothing(self) -> None:
        page = FakePage()
        report = await self._engine(page).replay([], 2, CancellationToken())
        self.assertEqual(report.loops_completed, 0)
        self.assertEqual(page.mouse.calls, [])


if __name__ == "__main__":
    unittest.main()
