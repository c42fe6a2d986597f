"""
Typed Exception Hierarchy for the Taskflow Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (the HTTP layer, background jobs, tests) must react to workflow
failures by TYPE, never by parsing message strings.  Every exception class:

  1. Has a CODE class attribute (machine-readable, API-safe)
  2. Has an HTTP_STATUS class attribute the transport layer may use
  3. Carries structured DATA as attributes (not just a message string)

Example:
    try:
        engine.perform_step_action(task_id, actor, payload)
    except CommentRequiredError as e:
        return {"error": e.code, "action": e.action}, e.http_status

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    TaskflowKernelError (base)
    |
    +-- WorkflowValidationError              (400, nothing mutated)
    |   +-- InvalidEstimateError
    |   +-- CommentRequiredError
    |   +-- ActionNotAllowedError
    |   +-- InvalidWorkflowDefinitionError
    |   +-- InvalidScheduleError
    |   +-- InvalidInstantError
    |   +-- UnknownEnumValueError
    |
    +-- WorkflowAuthorizationError           (403, nothing mutated)
    |   +-- UnauthorizedStepActorError
    |   +-- UnauthorizedFinalApproverError
    |   +-- UnauthorizedEstimateSubmitterError
    |   +-- UnauthorizedScheduleAccessError
    |
    +-- WorkflowStateError                   (400/404/409, nothing mutated)
    |   +-- TaskNotFoundError
    |   +-- UserNotFoundError
    |   +-- WorkflowDefinitionNotFoundError
    |   +-- WorkflowInstanceNotFoundError
    |   +-- NoActiveStepError
    |   +-- FinalStepApprovalError
    |   +-- NotReadyForFinalApprovalError
    |   +-- EstimateAlreadyUnderReviewError
    |   +-- EstimateAlreadyApprovedError
    |   +-- NoActiveEstimateError
    |   +-- WorkflowDefinitionMismatchError
    |   +-- WorkflowDefinitionInUseError
    |
    +-- WorkflowConfigurationError           (422)
    |   +-- WorkflowNotConfiguredError
    |   +-- InactiveWorkflowDefinitionError
    |   +-- InvalidEntityTypeError
    |
    +-- ComputationError                     (422, fatal for the call)
    |   +-- ScheduleExhaustedError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
"""


class TaskflowKernelError(Exception):
    """
    Base exception for all taskflow kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "TASKFLOW_KERNEL_ERROR"
    http_status: int = 500


# Validation exceptions


class WorkflowValidationError(TaskflowKernelError):
    """Base exception for malformed input.  No state is mutated."""

    code: str = "VALIDATION_ERROR"
    http_status: int = 400


class InvalidEstimateError(WorkflowValidationError):
    """Estimate payload failed validation (quantity, unit, confidence)."""

    code: str = "INVALID_ESTIMATE"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid estimate {field}: {reason}")


class CommentRequiredError(WorkflowValidationError):
    """The step requires a non-empty comment for this action."""

    code: str = "COMMENT_REQUIRED"

    def __init__(self, step_id: str, action: str):
        self.step_id = step_id
        self.action = action
        super().__init__(f"Comment is required for {action} on step {step_id}")


class ActionNotAllowedError(WorkflowValidationError):
    """The action is not in the step definition's allowed set."""

    code: str = "ACTION_NOT_ALLOWED"

    def __init__(self, step_id: str, action: str):
        self.step_id = step_id
        self.action = action
        super().__init__(f"Action {action} not allowed for step {step_id}")


class InvalidWorkflowDefinitionError(WorkflowValidationError):
    """A workflow definition or one of its steps is malformed."""

    code: str = "INVALID_WORKFLOW_DEFINITION"

    def __init__(self, reason: str, step_index: int | None = None):
        self.reason = reason
        self.step_index = step_index
        location = f" (step {step_index + 1})" if step_index is not None else ""
        super().__init__(f"Invalid workflow definition{location}: {reason}")


class InvalidScheduleError(WorkflowValidationError):
    """A weekly schedule slot is malformed."""

    code: str = "INVALID_SCHEDULE"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid schedule: {reason}")


class InvalidInstantError(WorkflowValidationError):
    """A timestamp or time zone could not be interpreted."""

    code: str = "INVALID_INSTANT"

    def __init__(self, value: str, reason: str):
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid instant {value!r}: {reason}")


class UnknownEnumValueError(WorkflowValidationError):
    """A value outside one of the closed enumerations was supplied."""

    code: str = "UNKNOWN_ENUM_VALUE"

    def __init__(self, enum_name: str, value: object):
        self.enum_name = enum_name
        self.value = value
        super().__init__(f"Unknown {enum_name} value: {value!r}")


# Authorization exceptions


class WorkflowAuthorizationError(TaskflowKernelError):
    """Base exception for role checks.  No state is mutated."""

    code: str = "AUTHORIZATION_ERROR"
    http_status: int = 403


class UnauthorizedStepActorError(WorkflowAuthorizationError):
    """Actor's role does not match the active step's assignee role."""

    code: str = "UNAUTHORIZED_STEP_ACTOR"

    def __init__(self, actor_id: str, actor_role: str, required_role: str):
        self.actor_id = actor_id
        self.actor_role = actor_role
        self.required_role = required_role
        super().__init__(
            f"Actor {actor_id} with role {actor_role} is not authorized "
            f"for this workflow step (requires {required_role})"
        )


class UnauthorizedFinalApproverError(WorkflowAuthorizationError):
    """Actor does not hold the role empowered to finalize."""

    code: str = "UNAUTHORIZED_FINAL_APPROVER"

    def __init__(self, actor_id: str, actor_role: str, required_role: str):
        self.actor_id = actor_id
        self.actor_role = actor_role
        self.required_role = required_role
        super().__init__(
            f"Only {required_role} can perform the final approval "
            f"(actor {actor_id} is {actor_role})"
        )


class UnauthorizedEstimateSubmitterError(WorkflowAuthorizationError):
    """Actor may not submit task estimates."""

    code: str = "UNAUTHORIZED_ESTIMATE_SUBMITTER"

    def __init__(self, actor_id: str, actor_role: str):
        self.actor_id = actor_id
        self.actor_role = actor_role
        super().__init__(f"Role {actor_role} cannot submit estimates")


class UnauthorizedScheduleAccessError(WorkflowAuthorizationError):
    """Actor may not manage another user's schedule."""

    code: str = "UNAUTHORIZED_SCHEDULE_ACCESS"

    def __init__(self, actor_id: str, target_user_id: str):
        self.actor_id = actor_id
        self.target_user_id = target_user_id
        super().__init__(
            f"Actor {actor_id} cannot manage the schedule of {target_user_id}"
        )


# State exceptions


class WorkflowStateError(TaskflowKernelError):
    """Base exception for operations invalid in the current state."""

    code: str = "WORKFLOW_STATE_ERROR"
    http_status: int = 409


class TaskNotFoundError(WorkflowStateError):
    """Task with given ID was not found."""

    code: str = "TASK_NOT_FOUND"
    http_status: int = 404

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task not found: {task_id}")


class UserNotFoundError(WorkflowStateError):
    """User with given ID was not found."""

    code: str = "USER_NOT_FOUND"
    http_status: int = 404

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


class WorkflowDefinitionNotFoundError(WorkflowStateError):
    """Workflow definition with given ID was not found."""

    code: str = "WORKFLOW_DEFINITION_NOT_FOUND"
    http_status: int = 404

    def __init__(self, definition_id: str):
        self.definition_id = definition_id
        super().__init__(f"Workflow definition not found: {definition_id}")


class WorkflowInstanceNotFoundError(WorkflowStateError):
    """No workflow instance exists for the entity."""

    code: str = "WORKFLOW_INSTANCE_NOT_FOUND"
    http_status: int = 404

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"Workflow instance not found for {entity_type} {entity_id}")


class NoActiveStepError(WorkflowStateError):
    """The instance has no active step that accepts actions."""

    code: str = "NO_ACTIVE_STEP"

    def __init__(self, instance_id: str, status: str):
        self.instance_id = instance_id
        self.status = status
        super().__init__(
            f"No active workflow step on instance {instance_id} (status {status})"
        )


class FinalStepApprovalError(WorkflowStateError):
    """Plain APPROVE was attempted on the last step."""

    code: str = "FINAL_STEP_REQUIRES_FINAL_APPROVAL"
    http_status: int = 400

    def __init__(self, step_id: str):
        self.step_id = step_id
        super().__init__(
            f"Step {step_id} is the final step; use the final approval "
            "operation to complete it"
        )


class NotReadyForFinalApprovalError(WorkflowStateError):
    """The active step is not the definition's last step."""

    code: str = "NOT_READY_FOR_FINAL_APPROVAL"
    http_status: int = 400

    def __init__(self, task_id: str, current_step_id: str | None):
        self.task_id = task_id
        self.current_step_id = current_step_id
        super().__init__(f"Task {task_id} is not ready for final approval")


class EstimateAlreadyUnderReviewError(WorkflowStateError):
    """An estimate is already being reviewed."""

    code: str = "ESTIMATE_UNDER_REVIEW"

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"An estimate is already under review for task {task_id}")


class EstimateAlreadyApprovedError(WorkflowStateError):
    """The task's estimate has already been approved."""

    code: str = "ESTIMATE_ALREADY_APPROVED"

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task {task_id} estimate already approved")


class NoActiveEstimateError(WorkflowStateError):
    """The task has no estimate, or it was rejected."""

    code: str = "NO_ACTIVE_ESTIMATE"
    http_status: int = 400

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task {task_id} does not have an active estimate")


class WorkflowDefinitionMismatchError(WorkflowStateError):
    """An instance step no longer exists in its definition."""

    code: str = "WORKFLOW_DEFINITION_MISMATCH"

    def __init__(self, definition_id: str, step_id: str):
        self.definition_id = definition_id
        self.step_id = step_id
        super().__init__(
            f"Workflow definition {definition_id} has no step {step_id}"
        )


class WorkflowDefinitionInUseError(WorkflowStateError):
    """Definition is referenced by workflow instances."""

    code: str = "WORKFLOW_DEFINITION_IN_USE"

    def __init__(self, definition_id: str, instance_count: int):
        self.definition_id = definition_id
        self.instance_count = instance_count
        super().__init__(
            f"Workflow definition {definition_id} is referenced by "
            f"{instance_count} instance(s)"
        )


# Configuration exceptions


class WorkflowConfigurationError(TaskflowKernelError):
    """Base exception for project/workflow setup problems."""

    code: str = "WORKFLOW_CONFIGURATION_ERROR"
    http_status: int = 422


class WorkflowNotConfiguredError(WorkflowConfigurationError):
    """Neither the project nor the registry supplies a workflow."""

    code: str = "WORKFLOW_NOT_CONFIGURED"

    def __init__(self, project_id: str, entity_type: str):
        self.project_id = project_id
        self.entity_type = entity_type
        super().__init__(
            f"Project {project_id} is missing a {entity_type} workflow configuration"
        )


class InactiveWorkflowDefinitionError(WorkflowConfigurationError):
    """The project's workflow definition is not active."""

    code: str = "INACTIVE_WORKFLOW_DEFINITION"

    def __init__(self, definition_id: str):
        self.definition_id = definition_id
        super().__init__(f"Workflow definition {definition_id} is not active")


class InvalidEntityTypeError(WorkflowConfigurationError):
    """The workflow definition targets an unsupported entity type."""

    code: str = "INVALID_ENTITY_TYPE"

    def __init__(self, entity_type: str, expected: str | None = None):
        self.entity_type = entity_type
        self.expected = expected
        if expected:
            message = f"Workflow entity type {entity_type} is invalid, expected {expected}"
        else:
            message = f"Unsupported workflow entity type: {entity_type}"
        super().__init__(message)


# Computation exceptions


class ComputationError(TaskflowKernelError):
    """Base exception for calculations that cannot produce a result."""

    code: str = "COMPUTATION_ERROR"
    http_status: int = 422


class ScheduleExhaustedError(ComputationError):
    """
    The duration calculator hit its iteration bound.

    Signals a schedule with effectively no working time.  Never
    accompanied by a best-guess date.
    """

    code: str = "SCHEDULE_EXHAUSTED"

    def __init__(self, iterations: int, remaining_minutes: object):
        self.iterations = iterations
        self.remaining_minutes = remaining_minutes
        super().__init__(
            "Unable to compute expected date with the provided schedule "
            f"after {iterations} iterations ({remaining_minutes} minutes remaining)"
        )


# Immutability exceptions


class ImmutabilityError(TaskflowKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"
    http_status: int = 409


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    WorkflowAction rows are append-only; COMPLETED workflow instances
    are frozen.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
