"""Activation API routes: step completion, training, quiz and bank details."""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request

from activation_gate.core.auth import require_auth
from activation_gate.core.exceptions import (
    ActivationGateError,
    EmptyQuestionBank,
    InvalidStepTransition,
    OutOfOrderCompletion,
    QuizAlreadyPassed,
    QuizNotPassed,
    QuizRateLimited,
    RecordFetchFailure,
    StaleRecordRace,
    UnknownStep,
)
from activation_gate.domain.principal import Principal
from activation_gate.domain.steps import StepId
from activation_gate.schemas.activation import (
    ActivationStatusResponse,
    BankDetailsRequest,
    CompleteStepResponse,
    PublicQuestion,
    QuestionResultResponse,
    QuizQuestionsResponse,
    QuizSubmissionRequest,
    QuizSubmissionResponse,
    StepStatus,
    TrainingProgressRequest,
    TrainingProgressResponse,
    record_summary,
)
from activation_gate.services.activation_machine import ActivationStateMachine
from activation_gate.services.components import GateComponents

logger = structlog.get_logger(__name__)

router = APIRouter()

# Steps that need submitted data; the generic completion endpoint refuses them
EVIDENCE_ROUTES = {
    StepId.QUIZ: "submit_quiz",
    StepId.BANK_DETAILS: "submit_bank_details",
}


def get_components(request: Request) -> GateComponents:
    """Dependency that provides the process-wide gate components.

    Override this dependency in tests via app.dependency_overrides.
    """
    components = getattr(request.app.state, "components", None)
    if components is None:
        raise HTTPException(status_code=503, detail="Service starting, try again shortly")
    return components


def get_state_machine(
    user: Principal = Depends(require_auth),
    components: GateComponents = Depends(get_components),
) -> ActivationStateMachine:
    return components.state_machine_for(user)


def to_http_error(exc: ActivationGateError) -> HTTPException:
    """Translate a gate error into the HTTP status the clients expect."""
    if isinstance(exc, (OutOfOrderCompletion, InvalidStepTransition, QuizAlreadyPassed, QuizNotPassed)):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, StaleRecordRace):
        return HTTPException(status_code=409, detail={"message": str(exc), "retry": True})
    if isinstance(exc, UnknownStep):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, QuizRateLimited):
        return HTTPException(
            status_code=429,
            detail={"message": str(exc), "retry_after_minutes": exc.retry_after_minutes},
        )
    if isinstance(exc, (EmptyQuestionBank, RecordFetchFailure)):
        return HTTPException(status_code=503, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def _parse_step(step: str) -> StepId:
    try:
        return StepId(step)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown activation step '{step}'")


@router.get("/status", response_model=ActivationStatusResponse)
async def get_activation_status(
    machine: ActivationStateMachine = Depends(get_state_machine),
    components: GateComponents = Depends(get_components),
):
    """Return the user's record and the unlock state of every step."""
    try:
        record = await machine.refresh()
    except ActivationGateError as exc:
        raise to_http_error(exc)

    policy = components.step_policy
    state = policy.state(record)
    steps = [
        StepStatus(
            step=step.value,
            completed=policy.is_complete(record, step),
            unlocked=policy.is_unlocked(record, step),
            route=components.route_table.route_for_step(step),
        )
        for step in policy.order(record.role)
    ]
    return ActivationStatusResponse(
        **record_summary(record),
        phase=state.phase.value,
        current_step=state.step.value if state.step else None,
        steps=steps,
    )


@router.post("/steps/{step}/complete", response_model=CompleteStepResponse)
async def complete_step(
    step: str,
    request: Request,
    machine: ActivationStateMachine = Depends(get_state_machine),
    components: GateComponents = Depends(get_components),
):
    """Complete a step that carries no submitted data.

    The quiz and bank steps are completed only through their own endpoints;
    the 409 for them names the endpoint to use.

    Raises:
        HTTPException(404): Step unknown or not required for the role
        HTTPException(409): Predecessor incomplete, step needs its own endpoint,
            or record changed concurrently
    """
    step_id = _parse_step(step)
    try:
        if step_id in EVIDENCE_ROUTES:
            record = await machine.snapshot()
            if step_id in components.step_policy.order(record.role):
                endpoint = str(request.app.url_path_for(EVIDENCE_ROUTES[step_id]))
                logger.info("evidence_step_completion_refused", user_id=machine.user_id, step=step_id.value)
                raise HTTPException(
                    status_code=409,
                    detail={
                        "message": f"The {step_id.value} step is completed by submitting to {endpoint}",
                        "endpoint": endpoint,
                    },
                )
        current = await machine.complete_step(step_id)
    except ActivationGateError as exc:
        raise to_http_error(exc)

    return CompleteStepResponse(
        step=step_id.value,
        current_step=current.value if current else None,
        onboarding_completed=current is None,
        next_route=_next_route(components, current),
    )


@router.post("/training/progress", response_model=TrainingProgressResponse)
async def record_training_progress(
    body: TrainingProgressRequest,
    machine: ActivationStateMachine = Depends(get_state_machine),
    components: GateComponents = Depends(get_components),
):
    try:
        record = await machine.record_training_progress(body.percent)
    except ActivationGateError as exc:
        raise to_http_error(exc)

    current = components.step_policy.current_step(record)
    return TrainingProgressResponse(
        training_progress_percent=record.training_progress_percent,
        training_completed=record.training_completed,
        current_step=current.value if current else None,
    )


@router.get("/quiz/questions", response_model=QuizQuestionsResponse)
async def get_quiz_questions(
    machine: ActivationStateMachine = Depends(get_state_machine),
    components: GateComponents = Depends(get_components),
):
    """Return the role's question bank without correct answers."""
    try:
        record = await machine.refresh()
        if StepId.QUIZ not in components.step_policy.order(record.role):
            raise UnknownStep(StepId.QUIZ.value, record.role.value)
        questions = await components.questions.get_question_bank(record.role.value)
    except ActivationGateError as exc:
        raise to_http_error(exc)

    return QuizQuestionsResponse(
        quiz_id=record.role.value,
        passing_threshold_percent=components.grader.passing_threshold_percent,
        questions=[PublicQuestion.from_question(q) for q in questions],
    )


@router.post("/quiz/submit", response_model=QuizSubmissionResponse)
async def submit_quiz(
    body: QuizSubmissionRequest,
    machine: ActivationStateMachine = Depends(get_state_machine),
    components: GateComponents = Depends(get_components),
):
    """Grade a quiz submission server-side; client-side scores are never trusted.

    Raises:
        HTTPException(409): Training incomplete or quiz already passed
        HTTPException(429): Too many attempts in the current window
        HTTPException(503): No question bank published
    """
    try:
        attempt, grade = await machine.submit_quiz(body.answers)
        current = await machine.current_step()
    except ActivationGateError as exc:
        raise to_http_error(exc)

    return QuizSubmissionResponse(
        attempt=attempt,
        threshold=grade.threshold,
        per_question=[
            QuestionResultResponse(
                question_id=r.question_id,
                correct=r.correct,
                selected_option_index=r.selected_option_index,
                correct_option_index=r.correct_option_index,
                explanation=r.explanation,
            )
            for r in grade.per_question
        ],
        current_step=current.value if current else None,
        next_route=_next_route(components, current),
    )


@router.post("/quiz/retry", response_model=ActivationStatusResponse)
async def retry_quiz(
    machine: ActivationStateMachine = Depends(get_state_machine),
    components: GateComponents = Depends(get_components),
):
    try:
        await machine.retry_quiz()
    except ActivationGateError as exc:
        raise to_http_error(exc)
    return await get_activation_status(machine=machine, components=components)


@router.post("/bank-details", response_model=CompleteStepResponse)
async def submit_bank_details(
    body: BankDetailsRequest,
    machine: ActivationStateMachine = Depends(get_state_machine),
    components: GateComponents = Depends(get_components),
):
    """Accept validated bank details and complete the bank step.

    The account data goes to the payments collaborator; only the step flag
    is stored on the activation record.
    """
    try:
        current = await machine.complete_step(StepId.BANK_DETAILS)
    except ActivationGateError as exc:
        raise to_http_error(exc)

    logger.info(
        "bank_details_submitted",
        user_id=machine.user_id,
        account_last4=body.account_number[-4:],
        ifsc_code=body.ifsc_code,
    )
    return CompleteStepResponse(
        step=StepId.BANK_DETAILS.value,
        current_step=current.value if current else None,
        onboarding_completed=current is None,
        next_route=_next_route(components, current),
    )


def _next_route(components: GateComponents, current: StepId | None) -> str:
    if current is None:
        return components.route_table.home_route
    return components.route_table.route_for_step(current)
