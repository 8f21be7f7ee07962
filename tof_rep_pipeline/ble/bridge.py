"""
Bridge from BLE characteristic notifications to a RepSession.

Device discovery and reconnection are handled elsewhere; this module only
subscribes to a known device address and routes each notification.
"""
import asyncio
import logging
import time
from typing import Callable, Dict, Optional

from bleak import BleakClient

from ..core.interfaces import MetricKind
from ..session.reconciler import COUNTER_REPS, COUNTER_SET, RepSession

logger = logging.getLogger(__name__)

# -------------------------------------------------------------------
# Characteristic UUIDs exposed by the rep counter firmware
# -------------------------------------------------------------------
SERVICE_UUID = "d1ad140f-bb29-4499-bc2b-3bc765cda45d"
REPS_CHAR_UUID = "0000aaaa-0000-1000-8000-00805f9b34fb"
SETS_CHAR_UUID = "0000aaab-0000-1000-8000-00805f9b34fb"
COMMAND_CHAR_UUID = "0000caaa-0000-1000-8000-00805f9b34fb"
RAW_TOF_CHAR_UUID = "0000feed-0000-1000-8000-00805f9b34fb"

METRIC_CHAR_UUIDS = {
    "0000aaad-0000-1000-8000-00805f9b34fb": MetricKind.CONCENTRIC,
    "0000aaae-0000-1000-8000-00805f9b34fb": MetricKind.ECCENTRIC,
    "0000aaaf-0000-1000-8000-00805f9b34fb": MetricKind.ROM,
    "0000baaa-0000-1000-8000-00805f9b34fb": MetricKind.VELOCITY,
}

START_COMMAND = b"start_workout"
END_COMMAND = b"end_workout"


class NotificationRouter:
    """Maps characteristic UUIDs to session inputs."""

    def __init__(self, session: RepSession):
        self.session = session
        self.handlers: Dict[str, Callable[[bytes], None]] = {
            RAW_TOF_CHAR_UUID: lambda data: self.session.on_frame(data, int(time.time() * 1000)),
            REPS_CHAR_UUID: lambda data: self.session.on_counter(COUNTER_REPS, data),
            SETS_CHAR_UUID: lambda data: self.session.on_counter(COUNTER_SET, data),
        }
        for uuid, kind in METRIC_CHAR_UUIDS.items():
            self.handlers[uuid] = lambda data, kind=kind: self.session.on_metric(kind, data)

    @property
    def characteristic_uuids(self):
        return list(self.handlers)

    def route(self, char_uuid: str, data: bytes) -> bool:
        """Deliver one notification; returns False for characteristics we do not track."""
        handler = self.handlers.get(str(char_uuid).lower())
        if handler is None:
            logger.debug(f"Ignoring notification from {char_uuid}")
            return False
        handler(bytes(data))
        return True

    def notification_handler(self, sender, data: bytearray):
        """Callback in the shape bleak expects."""
        uuid = getattr(sender, "uuid", sender)
        self.route(uuid, data)


async def stream_session(address: str, session: RepSession, exercise_id: str,
                         seconds: Optional[float] = None):
    """
    Connect to a device, run one exercise until `seconds` elapse (or the task
    is cancelled), then end the exercise and stop notifications.
    """
    router = NotificationRouter(session)
    logger.info(f"Connecting to {address} ...")
    async with BleakClient(address) as client:
        logger.info("Connected.")
        subscribed = []
        for uuid in router.characteristic_uuids:
            try:
                await client.start_notify(uuid, router.notification_handler)
                subscribed.append(uuid)
            except Exception as e:
                logger.warning(f"Could not subscribe to {uuid}: {e}")

        session.start_exercise(exercise_id)
        await client.write_gatt_char(COMMAND_CHAR_UUID, START_COMMAND, response=True)

        try:
            if seconds is None:
                while True:
                    await asyncio.sleep(1.0)
            else:
                await asyncio.sleep(seconds)
        finally:
            session.end_exercise()
            try:
                await client.write_gatt_char(COMMAND_CHAR_UUID, END_COMMAND, response=True)
            except Exception as e:
                logger.warning(f"Could not send end command: {e}")
            for uuid in subscribed:
                await client.stop_notify(uuid)
    logger.info("Disconnected.")
