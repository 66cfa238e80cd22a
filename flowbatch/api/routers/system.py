"""
System Router
Implements: Single Responsibility Principle (SRP)

This router handles system endpoints:
- Run status / last report
- Emergency stop (stop run + close every session)
- Live log stream (WebSocket)
"""
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from ...core.logger import log_manager
from ...core.services.task_service import TaskService
from ...core.session_manager import SessionManager
from ..dependencies import get_task_service, get_session_manager

import logging
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/system", tags=["system"])


@router.get("/status")
async def system_status(service: TaskService = Depends(get_task_service)):
    """
    Scheduler status

    Returns:
        running flag, last run report, last run error, next job order
    """
    return service.status()


@router.post("/reset")
async def system_reset(
    service: TaskService = Depends(get_task_service),
    manager: SessionManager = Depends(get_session_manager)
):
    """
    Emergency reset

    1. Stop the active run (in-flight jobs -> error/Stopped)
    2. Close every known browser session
    """
    logger.warning("[WARNING] SYSTEM RESET TRIGGERED BY USER")
    stopped = await service.stop_run()
    closed = await manager.destroy_all()
    logger.info(f"[RESET] Stopped {stopped} job(s), closed {closed} session(s)")
    return {"ok": True, "stopped": stopped, "closed": closed}


@router.websocket("/ws/logs")
async def websocket_logs(websocket: WebSocket):
    await websocket.accept()
    log_manager.register(websocket)

    try:
        await websocket.send_json({"message": "SYSTEM LOGS CONNECTED", "level": "INFO"})

        # Send buffer first
        for entry in list(log_manager.buffer):
            await websocket.send_json(entry)

        # Keep alive loop
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        log_manager.unregister(websocket)
    except Exception as e:
        logger.error(f"WebSocket Error: {e}")
        log_manager.unregister(websocket)
