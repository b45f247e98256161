import json
import unittest
from contextlib import redirect_stderr
from io import StringIO

import structlog

from operator_cli.log_config import bind_run_context, configure_logging


class LogConfigTests(unittest.TestCase):
    def tearDown(self) -> None:
        structlog.contextvars.clear_contextvars()

    def _emit(self, verbose: bool, emit) -> list:
        err = StringIO()
        with redirect_stderr(err):
            configure_logging(verbose=verbose, log_json=True)
            emit(structlog.get_logger("execution_controller.executor"))
        return [json.loads(line) for line in err.getvalue().splitlines() if line.strip()]

    def test_run_context_is_attached_to_events(self) -> None:
        bind_run_context(command="batch-delegate", height=42, operations=3)

        events = self._emit(False, lambda log: log.warning("submission_rejected", sequence=7))

        self.assertEqual(len(events), 1)
        event = events[0]
        self.assertEqual(event["event"], "submission_rejected")
        self.assertEqual(event["level"], "warning")
        self.assertEqual(event["logger"], "execution_controller.executor")
        self.assertEqual(event["height"], 42)
        self.assertEqual(event["operations"], 3)
        self.assertEqual(event["sequence"], 7)

    def test_binding_replaces_previous_context(self) -> None:
        bind_run_context(command="plan", height=1)
        bind_run_context(command="batch-delegate")

        events = self._emit(False, lambda log: log.error("boom"))

        self.assertEqual(events[0]["command"], "batch-delegate")
        self.assertNotIn("height", events[0])

    def test_info_events_only_when_verbose(self) -> None:
        self.assertEqual(self._emit(False, lambda log: log.info("settled")), [])

        events = self._emit(True, lambda log: log.info("settled"))
        self.assertEqual([event["event"] for event in events], ["settled"])


if __name__ == "__main__":
    unittest.main()
