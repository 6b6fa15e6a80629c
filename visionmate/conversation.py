"""A single streaming multimodal conversation with a generative backend."""

import logging
from typing import Callable, List, Optional

from visionmate.alerts import is_alert
from visionmate.backends.base import ChatHandle, GenerativeBackend, classify_error
from visionmate.models import ConversationTurn, ImagePayload
from visionmate.services.persistence import BackgroundWrites

logger = logging.getLogger(__name__)

EMPTY_RESPONSE_MESSAGE = "I'm sorry, I couldn't analyze that. Please try again."
ERROR_MESSAGE = "Sorry, I encountered an error. Please try again.\nError: {error}"


class ConversationSession:
    """One conversation, created when a mode is entered and closed when it exits.

    At most one turn is in flight. While its reply streams in, the newest model
    turn is the accumulator that fragments are appended to; every other turn
    is final and never changes.
    """

    def __init__(
        self,
        backend: GenerativeBackend,
        *,
        system_instruction: Optional[str] = None,
        greeting: Optional[str] = None,
        chat_store=None,
        user_id: Optional[Callable[[], Optional[str]]] = None,
        on_alert: Optional[Callable[[str], None]] = None,
        on_update: Optional[Callable[[ConversationTurn], None]] = None,
        writes: Optional[BackgroundWrites] = None,
        empty_response_message: str = EMPTY_RESPONSE_MESSAGE,
    ):
        self._chat: ChatHandle = backend.start_chat(system_instruction)
        self._chat_store = chat_store
        self._user_id = user_id
        self._on_alert = on_alert
        self._on_update = on_update
        self.writes = writes or BackgroundWrites()
        self.empty_response_message = empty_response_message

        self._history: List[ConversationTurn] = []
        self._pending: Optional[ConversationTurn] = None
        self.is_loading = False
        self.is_closed = False
        self.error = ""

        if greeting:
            self._history.append(ConversationTurn(role="model", text=greeting))

    @property
    def turns(self) -> List[ConversationTurn]:
        return list(self._history)

    @property
    def pending_turn(self) -> Optional[ConversationTurn]:
        """The model turn still receiving fragments, if any."""
        return self._pending

    def get_history(self) -> List[dict]:
        return [turn.to_dict() for turn in self._history]

    async def send_turn(
        self,
        text: str,
        image: Optional[ImagePayload] = None,
        *,
        display_text: Optional[str] = None,
    ) -> Optional[ConversationTurn]:
        """Send one user turn and stream the reply into the history.

        Args:
            text: Prompt sent to the backend
            image: Optional camera frame sent with the prompt
            display_text: What the user turn shows instead of ``text``

        Returns:
            The finalized model-side turn (reply, fallback or error), or None
            when the turn was rejected.
        """
        if self.is_loading or self.is_closed:
            return None
        text = (text or "").strip()
        if not text and image is None:
            return None

        self.is_loading = True
        self.error = ""
        try:
            user_turn = ConversationTurn(role="user", text=display_text or text)
            self._history.append(user_turn)
            self._finalize(user_turn)

            placeholder = ConversationTurn(role="model", text="")
            self._pending = placeholder
            self._history.append(placeholder)
            self._notify(placeholder)

            try:
                async for fragment in self._chat.send_message_stream(text, image):
                    if self.is_closed:
                        continue
                    placeholder.text += fragment
                    self._notify(placeholder)
            except Exception as e:
                return self._handle_failure(placeholder, e)

            self._pending = None
            if self.is_closed:
                return None

            if not placeholder.text.strip():
                placeholder.text = self.empty_response_message
            self._finalize(placeholder)
            if is_alert(placeholder.text) and self._on_alert is not None:
                self._on_alert(placeholder.text)
            return placeholder
        finally:
            self._pending = None
            self.is_loading = False

    def close(self):
        """Detach from the view. In-flight replies are consumed and dropped."""
        self.is_closed = True

    async def flush(self):
        await self.writes.flush()

    # ------------------------------------------------------------------

    def _handle_failure(self, placeholder: ConversationTurn, e: Exception) -> Optional[ConversationTurn]:
        error = classify_error(e)
        logger.error("Conversation turn failed: %s", error)
        self._pending = None
        if self.is_closed:
            return None

        self.error = error.user_message
        message = ERROR_MESSAGE.format(error=error.user_message)
        if placeholder.text == "":
            placeholder.text = message
            turn = placeholder
        else:
            # Partial text already shown stays as it is
            self._finalize(placeholder)
            turn = ConversationTurn(role="model", text=message)
            self._history.append(turn)
        self._finalize(turn)
        return turn

    def _finalize(self, turn: ConversationTurn):
        self._notify(turn)
        user_id = self._user_id() if self._user_id else None
        if self._chat_store is None or not user_id:
            return
        self.writes.submit(
            self._chat_store.save_chat_message(user_id, turn.role, turn.text),
            label="chat save",
        )

    def _notify(self, turn: ConversationTurn):
        if self._on_update is not None:
            self._on_update(turn)
