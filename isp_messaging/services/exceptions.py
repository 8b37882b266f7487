class QueueError(Exception):
    """Base class for outbound queue errors surfaced to callers."""


class MessageNotFoundError(QueueError):
    def __init__(self, message_id):
        super().__init__(f"Queued message {message_id} not found")
        self.message_id = message_id


class TemplateNotFoundError(QueueError):
    def __init__(self, code):
        super().__init__(f"Template {code!r} not found or inactive")
        self.code = code


class InvalidStateError(QueueError):
    pass


class TransportError(Exception):
    """A delivery attempt failed. Always contained by drain and retry sweep."""
