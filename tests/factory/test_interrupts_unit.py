"""Unit tests for operator interrupt handling."""

import signal
from unittest.mock import MagicMock, patch

from src.factory import interrupts
from src.factory.interrupts import InterruptController, install_signal_handlers


class TestInterruptController:
    def test_request_sets_flag_and_signal(self):
        controller = InterruptController()

        controller.request(signal.SIGINT)

        assert controller.interrupted is True
        assert controller.signal_number == signal.SIGINT

    def test_reset(self):
        controller = InterruptController()
        controller.request(signal.SIGTERM)

        controller.reset()

        assert controller.interrupted is False
        assert controller.signal_number is None

    def test_callbacks_run_only_while_registered(self):
        controller = InterruptController()
        callback = MagicMock()

        with controller.on_interrupt(callback):
            controller.request()
        controller.request()

        callback.assert_called_once()

    def test_exited_child_is_ignored(self):
        controller = InterruptController()
        gone = MagicMock(side_effect=ProcessLookupError)
        alive = MagicMock()

        with controller.on_interrupt(gone), controller.on_interrupt(alive):
            controller.request()

        alive.assert_called_once()


class TestInstallSignalHandlers:
    def test_installed_once_per_process(self, monkeypatch):
        monkeypatch.setattr(interrupts, "_handlers_registered", False)

        with patch("signal.signal") as mock_signal:
            assert install_signal_handlers() is True
            assert install_signal_handlers() is False

        registered = [call.args[0] for call in mock_signal.call_args_list]
        assert registered == [signal.SIGINT, signal.SIGTERM]

    def test_handler_routes_to_controller(self, monkeypatch):
        controller = InterruptController()
        monkeypatch.setattr(interrupts, "_controller", controller)

        interrupts._handle_signal(signal.SIGINT, None)

        assert controller.interrupted is True
