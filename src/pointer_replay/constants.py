"""Shared constants for capture, replay and network-fault control."""

# Displacement (px, either axis, strict) above which a down/up pair is a drag.
DRAG_THRESHOLD_PX = 5

# Synthetic moves emitted between pointer-down and pointer-up of a drag.
DRAG_INTERPOLATION_STEPS = 15
DRAG_STEP_DELAY_MS = 5

# Granularity of cancellable waits.
POLL_INTERVAL_MS = 500

# Defensive reload timings.
RELOAD_ABORT_SETTLE_MS = 1000
RELOAD_TIMEOUT_MS = 30000
BLANK_PAGE_TIMEOUT_MS = 5000
BLANK_PAGE_URL = "about:blank"
RELOAD_WAIT_UNTIL = "domcontentloaded"

# Settle after the ready signal before a loop starts.
READY_SETTLE_MS = 2000

ACTION_KINDS = (
    "pointer-down",
    "pointer-move",
    "pointer-up",
    "click",
    "network-toggle",
)

POINTER_KINDS = frozenset({"pointer-down", "pointer-move", "pointer-up", "click"})

NETWORK_TOGGLE_KINDS = ("enable-fault", "disable-fault")

# Aliases written by the earlier recorder.
LEGACY_KIND_ALIASES = {
    "mousedown": "pointer-down",
    "mousemove": "pointer-move",
    "mouseup": "pointer-up",
    "click": "click",
    "networkAction": "network-toggle",
}

LEGACY_TOGGLE_ALIASES = {
    "enablePacketLoss": "enable-fault",
    "disablePacketLoss": "disable-fault",
}

# Network.emulateNetworkConditions payloads.
FAULT_NETWORK_CONDITIONS = {
    "offline": False,
    "downloadThroughput": 1,
    "uploadThroughput": 1,
    "latency": 0,
    "packetLoss": 100,
    "packetQueueLength": 0,
    "packetReordering": False,
}

RESTORED_NETWORK_CONDITIONS = {
    "offline": False,
    "downloadThroughput": -1,
    "uploadThroughput": -1,
    "latency": 0,
    "packetLoss": 0,
    "packetQueueLength": 0,
    "packetReordering": False,
}

# Overlay element ids.
RECORDING_BADGE_ID = "__pointer_replay_recording_badge"
REPLAY_BADGE_ID = "__pointer_replay_replay_badge"
FAULT_BADGE_ID = "__pointer_replay_fault_badge"
RIPPLE_STYLE_ID = "__pointer_replay_ripple_style"
DRAW_PANEL_ID = "__pointer_replay_draw_panel"
FILTER_PANEL_ID = "__pointer_replay_filter_panel"
OVERLAY_Z_INDEX = 2147483645
