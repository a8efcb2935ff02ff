from __future__ import annotations

import logging
import queue
import threading
import time
import uuid

from .kinematics import KinematicEngine
from .types import (
    Message,
    RobotConstants,
    SessionCreated,
    SessionStatus,
    SimulationSession,
    StateSnapshot,
    WheelCommand,
)

logger = logging.getLogger(__name__)

MSG_STATE_UPDATE = "stateUpdate"
MSG_SESSION_CREATED = "sessionCreated"
MSG_SIMULATION_STATUS = "simulationStatus"
MSG_ERROR = "error"

DEFAULT_RATE_HZ = 120.0
DEFAULT_QUEUE_SIZE = 16
MIN_QUEUE_SIZE = 2


class Observer:
    """Bounded outbound slot for one consumer.

    When the slot is full the oldest pending message is discarded so the
    producer never blocks. The slot holds at least two messages so the
    registration snapshot and status always arrive together.
    """

    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE):
        self._queue: queue.Queue[Message] = queue.Queue(maxsize=max(MIN_QUEUE_SIZE, queue_size))
        self._closed = threading.Event()
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def close(self) -> None:
        self._closed.set()

    def offer(self, message: Message) -> None:
        # Only the coordinator's fan-out lock holder calls this, so after
        # evicting one entry the put cannot fail.
        while True:
            try:
                self._queue.put_nowait(message)
                return
            except queue.Full:
                try:
                    self._queue.get_nowait()
                    self.dropped += 1
                except queue.Empty:
                    pass

    def get(self, timeout: float | None = None) -> Message:
        """Block until a message arrives; raises queue.Empty on timeout."""
        return self._queue.get(timeout=timeout)

    def get_nowait(self) -> Message:
        return self._queue.get_nowait()

    def drain(self) -> list[Message]:
        out: list[Message] = []
        while True:
            try:
                out.append(self._queue.get_nowait())
            except queue.Empty:
                return out

    def pending(self) -> int:
        return self._queue.qsize()


class SessionCoordinator:
    """Runs one KinematicEngine at a fixed rate and fans out snapshots.

    Engine state is guarded by a single lock. Every mutation and every
    snapshot read happens under it, so a snapshot is always a consistent view
    of ground truth, odometry and constants at one instant.

    Lifecycle transitions (start, stop, reset, register) are serialized by
    the transition lock and publish their events before releasing it, so
    observers see status changes in the order they took effect. Lock order
    is transition, then lifecycle/state, then fan-out. The driving loop
    never takes the transition lock.
    """

    def __init__(
        self,
        engine: KinematicEngine | None = None,
        rate_hz: float = DEFAULT_RATE_HZ,
        observer_queue_size: int = DEFAULT_QUEUE_SIZE,
    ):
        self.engine = engine if engine is not None else KinematicEngine()
        self.rate_hz = rate_hz
        self.dt_s = 1.0 / rate_hz
        self.observer_queue_size = observer_queue_size

        self._transition_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._lifecycle_lock = threading.Lock()
        self._fanout_lock = threading.Lock()

        self._observers: list[Observer] = []
        self._session: SimulationSession | None = None
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self.tick_count = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        with self._lifecycle_lock:
            return self._session is not None and self._session.running

    @property
    def session(self) -> SimulationSession | None:
        with self._lifecycle_lock:
            if self._session is None:
                return None
            return SimulationSession(self._session.session_id, self._session.running)

    def start(self) -> None:
        with self._transition_lock:
            with self._lifecycle_lock:
                if self._session is not None and self._session.running:
                    return
                session = SimulationSession(session_id=str(uuid.uuid4()), running=True)
                self._session = session
                self._stop_event = threading.Event()
                self._thread = threading.Thread(
                    target=self._loop,
                    args=(self._stop_event,),
                    name=f"odomsim-loop-{session.session_id[:8]}",
                    daemon=True,
                )
                self._thread.start()

            self._broadcast(Message(MSG_SESSION_CREATED, SessionCreated(session.session_id)))
            self._broadcast(Message(MSG_SIMULATION_STATUS, SessionStatus(True, session.session_id)))
        logger.info("Simulation started with session ID: %s", session.session_id)

    def stop(self) -> None:
        with self._transition_lock:
            self._stop_locked()

    def _stop_locked(self) -> None:
        with self._lifecycle_lock:
            if self._session is None or not self._session.running:
                return
            self._session.running = False
            session_id = self._session.session_id
            self._stop_event.set()
            thread = self._thread
            self._thread = None

        if thread is not None and thread is not threading.current_thread():
            thread.join()

        self._broadcast(Message(MSG_SIMULATION_STATUS, SessionStatus(False, session_id)))
        logger.info("Simulation stopped (session %s)", session_id)

    def reset(self) -> None:
        with self._transition_lock:
            self._stop_locked()

            with self._state_lock:
                self.engine.reset()
                snap = self.engine.snapshot()
            with self._lifecycle_lock:
                self._session = None
                self.tick_count = 0

            self._broadcast(Message(MSG_STATE_UPDATE, snap))
        logger.info("Simulation reset")

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def set_wheel_command(self, cmd: WheelCommand) -> None:
        with self._state_lock:
            self.engine.set_wheel_command(cmd)

    def update_constants(self, constants: RobotConstants) -> None:
        """Replace robot constants; callers must validate them first."""
        with self._state_lock:
            self.engine.update_constants(constants)

    def snapshot(self) -> StateSnapshot:
        with self._state_lock:
            return self.engine.snapshot()

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def register(self, queue_size: int | None = None) -> Observer:
        observer = Observer(queue_size if queue_size is not None else self.observer_queue_size)

        with self._transition_lock:
            snap = self.snapshot()
            session = self.session
            with self._fanout_lock:
                self._observers.append(observer)
                observer.offer(Message(MSG_STATE_UPDATE, snap))
                observer.offer(
                    Message(
                        MSG_SIMULATION_STATUS,
                        SessionStatus(
                            running=session is not None and session.running,
                            session_id=session.session_id if session is not None else "",
                        ),
                    )
                )
                count = len(self._observers)
        logger.debug("Observer registered. Total observers: %d", count)
        return observer

    def unregister(self, observer: Observer) -> None:
        observer.close()
        with self._fanout_lock:
            if observer in self._observers:
                self._observers.remove(observer)
            count = len(self._observers)
        logger.debug("Observer unregistered. Total observers: %d", count)

    @property
    def observer_count(self) -> int:
        with self._fanout_lock:
            return len(self._observers)

    def _broadcast(self, message: Message) -> None:
        with self._fanout_lock:
            live: list[Observer] = []
            for observer in self._observers:
                if observer.closed:
                    logger.debug("Pruning closed observer")
                    continue
                before = observer.dropped
                observer.offer(message)
                if observer.dropped != before:
                    logger.debug("Observer slot full, dropped oldest message")
                live.append(observer)
            self._observers = live

    # ------------------------------------------------------------------
    # Driving loop
    # ------------------------------------------------------------------

    def _loop(self, stop_event: threading.Event) -> None:
        period = self.dt_s
        next_tick = time.monotonic() + period

        while not stop_event.wait(max(0.0, next_tick - time.monotonic())):
            if stop_event.is_set():
                break

            with self._state_lock:
                self.engine.step(self.dt_s)
                snap = self.engine.snapshot()
            self.tick_count += 1

            self._broadcast(Message(MSG_STATE_UPDATE, snap))

            next_tick += period
            now = time.monotonic()
            if next_tick < now:
                # Fell behind; resync instead of bursting ticks.
                next_tick = now + period
