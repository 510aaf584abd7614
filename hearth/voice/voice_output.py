"""
HEARTH Voice Output - Spoken Reminder Delivery

Responsibilities:
- Queue fired reminders for speaking
- Speak in background thread
- Don't block the notifier's timer threads
- Handle TTS errors gracefully

Architecture:
- Timer thread: calls the instance with a ReminderRequest
- TTS thread: consumes queue and speaks
"""

import logging
import threading
from queue import Empty, Queue

import pyttsx3

from hearth.agents.reminder_scheduler import ReminderRequest

logger = logging.getLogger(__name__)


class SpokenReminderOutput:
    """
    Non-blocking text-to-speech delivery for TimerNotifier.

    Usage:
        voice = SpokenReminderOutput()
        notifier = TimerNotifier(deliver=voice)
    """

    def __init__(self, rate: int = 175, start: bool = True):
        """
        Initialize spoken output.

        Args:
            rate: Speech rate (words per minute, default: 175)
            start: Start the TTS worker immediately
        """
        self.tts_queue: Queue = Queue()
        self._shutdown = threading.Event()
        self._rate = rate
        self.tts_thread = threading.Thread(
            target=self._tts_worker,
            daemon=True,
            name="HEARTH-TTS"
        )
        if start:
            self.tts_thread.start()

        logger.info(f"SpokenReminderOutput initialized (rate={rate})")

    @staticmethod
    def phrase(request: ReminderRequest) -> str:
        """Sentence spoken for a reminder"""
        return f"{request.title}. {request.body}"

    def __call__(self, request: ReminderRequest):
        self.speak(self.phrase(request))

    def speak(self, text: str):
        """Queue text for speaking (non-blocking)"""
        if not text or not text.strip():
            return
        self.tts_queue.put(text)
        logger.debug(f"Queued TTS: {text[:50]}...")

    def _init_engine(self):
        engine = pyttsx3.init()
        engine.setProperty('rate', self._rate)
        return engine

    def _tts_worker(self):
        """Consume the queue and speak until shutdown"""
        try:
            # Initialize engine in worker thread
            engine = self._init_engine()
        except Exception as e:
            logger.error(f"TTS engine initialization failed: {e}", exc_info=True)
            return

        logger.info("TTS engine initialized")
        try:
            while not self._shutdown.is_set():
                try:
                    text = self.tts_queue.get(timeout=0.5)
                except Empty:
                    continue

                try:
                    logger.info(f"Speaking: {text}")
                    engine.say(text)
                    engine.runAndWait()
                except Exception as e:
                    logger.error(f"TTS error: {e}", exc_info=True)
                    engine = self._init_engine()
        except Exception as e:
            logger.error(f"TTS worker stopped: {e}", exc_info=True)
        finally:
            engine.stop()
            logger.info("TTS worker shutting down")

    def clear_queue(self):
        """Clear all pending TTS messages"""
        while not self.tts_queue.empty():
            try:
                self.tts_queue.get_nowait()
            except Empty:
                break
        logger.info("TTS queue cleared")

    def shutdown(self):
        """Signal the worker thread to stop and wait for it"""
        logger.info("Shutting down SpokenReminderOutput")
        self._shutdown.set()

        if self.tts_thread.is_alive():
            self.tts_thread.join(timeout=2.0)

            if self.tts_thread.is_alive():
                logger.warning("TTS worker thread did not stop cleanly")
