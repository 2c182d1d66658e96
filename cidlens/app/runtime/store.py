from __future__ import annotations

from dataclasses import dataclass, field

from cidlens.app.observability.contracts import AttemptTrace

MAX_TRACE_LOG_ENTRIES = 500


@dataclass
class RuntimeStore:
    """Process-wide state that lives exactly as long as the session.

    ``session_storage`` mirrors a browser session store: string keys to
    string values, nothing typed. ``relay_preferences`` maps an endpoint base
    URL to the name of the relay that last worked for it.
    """

    session_storage: dict[str, str] = field(default_factory=dict)
    relay_preferences: dict[str, str] = field(default_factory=dict)
    attempt_trace_log: list[AttemptTrace] = field(default_factory=list)

    def record_trace(self, trace: AttemptTrace) -> None:
        self.attempt_trace_log.append(trace)
        overflow = len(self.attempt_trace_log) - MAX_TRACE_LOG_ENTRIES
        if overflow > 0:
            del self.attempt_trace_log[:overflow]

    def clear(self) -> None:
        self.session_storage.clear()
        self.relay_preferences.clear()
        self.attempt_trace_log.clear()


runtime_store = RuntimeStore()
