import asyncio
import logging
from collections import deque
from datetime import datetime
from typing import List, Optional


class BroadcastChannel:
    """
    Ring buffer + fan-out to connected WebSocket clients

    New clients receive the buffered backlog first, then live entries.
    """

    def __init__(self, maxlen: int = 2000):
        self.buffer: deque = deque(maxlen=maxlen)
        self.connected_clients: List = []

    def register(self, websocket):
        self.connected_clients.append(websocket)

    def unregister(self, websocket):
        if websocket in self.connected_clients:
            self.connected_clients.remove(websocket)

    def publish(self, entry: dict):
        """Buffer an entry and broadcast it if anyone is listening"""
        self.buffer.append(entry)

        if self.connected_clients:
            try:
                loop = asyncio.get_running_loop()
                loop.create_task(self.broadcast_entry(entry))
            except RuntimeError:
                # No running loop (early startup / sync tests), buffering is enough
                pass

    async def broadcast_entry(self, entry: dict):
        to_remove = []
        for ws in list(self.connected_clients):
            try:
                await ws.send_json(entry)
            except Exception:
                to_remove.append(ws)

        for ws in to_remove:
            self.unregister(ws)


class LogStreamManager(BroadcastChannel):
    _instance: Optional["LogStreamManager"] = None

    @classmethod
    def get_instance(cls) -> "LogStreamManager":
        if cls._instance is None:
            cls._instance = LogStreamManager()
        return cls._instance

    def add_log(self, message: str, level: str = "INFO"):
        self.publish({
            "time": datetime.now().strftime("%H:%M:%S"),
            "message": message,
            "level": level,
        })


# Global instances
log_manager = LogStreamManager.get_instance()
job_events = BroadcastChannel(maxlen=500)


class ListLogHandler(logging.Handler):
    """Logging handler that pushes formatted records into the log stream"""

    def __init__(self, manager: LogStreamManager = None, level=logging.NOTSET):
        super().__init__(level)
        self.manager = manager or log_manager

    def emit(self, record):
        try:
            msg = self.format(record)
            self.manager.add_log(msg, record.levelname)
        except Exception:
            self.handleError(record)
