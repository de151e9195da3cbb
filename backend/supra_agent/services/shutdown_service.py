"""Stops the agent's round loop on SIGINT/SIGTERM."""

import logging
import signal

logger = logging.getLogger(__name__)


class ShutdownService:
    """Translates termination signals into a stop request for the round loop."""

    def __init__(self, loop_controller):
        """
        Args:
            loop_controller: LoopController whose stop event ends the round loop
        """
        self.loop_controller = loop_controller

    def shutdown(self) -> None:
        """
        Ask the round loop to exit.

        A round already running for the configured pairs finishes, including any
        automation registration in flight. The wait before the next round is cut short.
        """
        logger.info("Shutdown requested: finishing the current round, no further rounds will start")
        self.loop_controller.stop()

    def register_signal_handlers(self) -> None:
        """Route SIGINT (Ctrl+C) and SIGTERM to ``shutdown``."""
        def on_signal(signum, frame):
            logger.info(f"Received {signal.Signals(signum).name}")
            self.shutdown()

        for signum in (signal.SIGINT, signal.SIGTERM):
            signal.signal(signum, on_signal)

        logger.debug("Round loop stops on SIGINT/SIGTERM")
