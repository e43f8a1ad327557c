# Import models so Base metadata is aware of them
from .jobs import DeadLetterRow, JobRow  # noqa: F401
from .study import DeckRow, QuizAttemptRow  # noqa: F401
