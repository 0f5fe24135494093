class ActivationGateError(Exception):
    """Base exception for the activation gate."""

    pass


class OutOfOrderCompletion(ActivationGateError):
    """Raised when a step is completed before its predecessor."""

    def __init__(self, step: str, blocking_step: str | None = None):
        self.step = step
        self.blocking_step = blocking_step
        if blocking_step:
            message = f"Complete the '{blocking_step}' step before '{step}'"
        else:
            message = f"Step '{step}' is not unlocked yet"
        super().__init__(message)


class UnknownStep(ActivationGateError):
    """Raised when a step is not part of the role's activation sequence."""

    def __init__(self, step: str, role: str):
        self.step = step
        self.role = role
        super().__init__(f"Step '{step}' is not required for role '{role}'")


class InvalidStepTransition(ActivationGateError):
    """Raised when a reset or retry would break the step ordering."""

    pass


class QuizNotPassed(ActivationGateError):
    """Raised when the quiz step is completed without a passing grade."""

    def __init__(self):
        super().__init__("The quiz step can only be completed by a passing quiz attempt")


class QuizAlreadyPassed(ActivationGateError):
    """Raised when a quiz is submitted after it was already passed."""

    def __init__(self):
        super().__init__("Quiz already passed. Use retry to take it again")


class QuizRateLimited(ActivationGateError):
    """Raised when the quiz attempt window is exhausted."""

    def __init__(self, retry_after_minutes: int):
        self.retry_after_minutes = retry_after_minutes
        super().__init__(f"Too many quiz attempts. Try again in {retry_after_minutes} minutes")


class EmptyQuestionBank(ActivationGateError):
    """Raised when grading is attempted against zero questions."""

    def __init__(self, quiz_id: str | None = None):
        self.quiz_id = quiz_id
        super().__init__(f"Question bank '{quiz_id}' is empty" if quiz_id else "Question bank is empty")


class RecordFetchFailure(ActivationGateError):
    """Raised when the activation record store is unreachable."""

    def __init__(self, user_id: str, reason: str = ""):
        self.user_id = user_id
        self.reason = reason
        super().__init__("Could not load activation status. Please check your connection")


class StaleRecordRace(ActivationGateError):
    """Raised when a save targets a record that changed underneath it."""

    def __init__(self, user_id: str, expected_version: int, actual_version: int | None):
        self.user_id = user_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__("Activation status changed while saving. Please try again")
