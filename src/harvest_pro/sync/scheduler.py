"""SyncScheduler: drives sync passes from the Qt event loop.

Passes run on a fixed timer and immediately whenever connectivity comes
back. Everything happens on the thread that owns the scheduler, so the
queue is only ever drained by one pass at a time.
"""

import logging

from PySide6.QtCore import QObject, QTimer, Signal, Slot

from harvest_pro.config import Config

logger = logging.getLogger(__name__)


class SyncScheduler(QObject):
    """Runs ``SyncManager.process_queue`` periodically and on reconnect."""

    sync_finished = Signal(dict)
    connectivity_changed = Signal(bool)
    connectivity_restored = Signal()

    def __init__(self, sync_manager, interval_seconds: int | None = None,
                 parent=None):
        super().__init__(parent)
        self.sync_manager = sync_manager
        self._online = False
        self._timer = QTimer(self)
        seconds = interval_seconds or Config.SYNC_INTERVAL_SECONDS
        self._timer.setInterval(int(seconds * 1000))
        self._timer.timeout.connect(self._on_tick)

    @property
    def online(self) -> bool:
        return self._online

    @property
    def is_running(self) -> bool:
        return self._timer.isActive()

    def start(self):
        """Start the periodic timer and probe connectivity right away."""
        self._timer.start()
        self._on_tick()

    def stop(self):
        self._timer.stop()

    @Slot(bool)
    def set_online(self, online: bool):
        """Push a connectivity event; going online triggers a pass."""
        was_online = self._online
        self._online = online
        if online != was_online:
            self.connectivity_changed.emit(online)
        if online and not was_online:
            logger.info("Connectivity restored, syncing")
            self.connectivity_restored.emit()
            self.sync_now()

    @Slot()
    def sync_now(self) -> dict:
        result = self.sync_manager.process_queue().to_dict()
        self.sync_finished.emit(result)
        return result

    def _on_tick(self):
        online = self.sync_manager.is_online()
        if online and self._online:
            self.sync_now()
        else:
            self.set_online(online)
