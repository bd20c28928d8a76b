class EmptyStackError(IndexError):
    """
    Raised when a frame is popped or replaced on an empty dialog stack,
    or when something tries to pop the root frame of a live conversation.
    """


class PromptExhausted(Exception):
    """
    The user failed a prompt's validation more times than allowed.

    Never raised across the engine boundary: prompts hand it to their
    owning dialog as an `exhausted` outcome.
    """

    def __init__(self, field, attempts):
        super().__init__(f"prompt for {field!r} exhausted after {attempts} attempts")
        self.field = field
        self.attempts = attempts


class UnhandledStepFault(Exception):
    """
    Wraps any unexpected exception raised while a dialog handled a turn.
    """

    def __init__(self, conversation_id, dialog_id, message="dialog step failed"):
        super().__init__(f"{message} (conversation={conversation_id}, dialog={dialog_id})")
        self.conversation_id = conversation_id
        self.dialog_id = dialog_id
