import unittest

from fakes import FakeFrame, FakePage

from pointer_replay.constants import (
    FAULT_BADGE_ID,
    FAULT_NETWORK_CONDITIONS,
    RESTORED_NETWORK_CONDITIONS,
)
from pointer_replay.network_fault import NetworkFaultController


def _conditions(session) -> list[dict]:
    return [params for method, params in session.sent if method == "Network.emulateNetworkConditions"]


class NetworkFaultTests(unittest.IsolatedAsyncioTestCase):
    async def test_enable_then_disable_restores_every_target(self) -> None:
        main = FakeFrame("main")
        child = FakeFrame("child", parent=main)
        page = FakePage([main, child])
        controller = NetworkFaultController(page)

        enabled = await controller.set_fault(True)
        self.assertTrue(controller.enabled)
        self.assertEqual(enabled.applied, 2)
        disabled = await controller.set_fault(False)
        self.assertFalse(controller.enabled)
        self.assertEqual(disabled.applied, 2)

        self.assertEqual(page.context.created, 2, "sessions are reused across toggles")
        for target in (page, child):
            session = page.context.sessions[id(target)]
            self.assertEqual([m for m, _ in session.sent].count("Network.enable"), 1)
            self.assertEqual(_conditions(session), [FAULT_NETWORK_CONDITIONS, RESTORED_NETWORK_CONDITIONS])
        self.assertEqual(page.badge_states(FAULT_BADGE_ID), [True, False])

    async def test_child_session_rejection_does_not_fail_toggle(self) -> None:
        main = FakeFrame("main")
        blocked = FakeFrame("blocked", parent=main, cdp_error="no separate target")
        page = FakePage([main, blocked])
        controller = NetworkFaultController(page)

        result = await controller.set_fault(True)

        self.assertTrue(controller.enabled)
        self.assertEqual(result.applied, 1)
        self.assertEqual(result.skipped, [1])

    async def test_main_page_failure_propagates(self) -> None:
        page = FakePage()
        page.cdp_error = "debugger detached"
        controller = NetworkFaultController(page)
        with self.assertRaises(RuntimeError):
            await controller.set_fault(True)
        self.assertFalse(controller.enabled)

    async def test_clear_is_safe_without_fault_and_on_closed_page(self) -> None:
        page = FakePage()
        controller = NetworkFaultController(page)
        result = await controller.clear()
        self.assertIsNotNone(result)
        self.assertFalse(result.enabled)

        page.closed = True
        self.assertIsNone(await controller.clear())

    async def test_clear_swallows_restore_failure(self) -> None:
        page = FakePage()
        controller = NetworkFaultController(page)
        await controller.set_fault(True)
        page.context.sessions[id(page)].fail = True
        self.assertIsNone(await controller.clear())


if __name__ == "__main__":
    unittest.main()
