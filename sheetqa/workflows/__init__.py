from sheetqa.workflows.answer_question import (
    AnswerQuestionWorkflow,
    WorkflowDependencies,
    create_workflow_dependencies,
    run_answer_question,
)
from sheetqa.workflows.durable import StepRetries, StepRunner

__all__ = [
    "AnswerQuestionWorkflow",
    "StepRetries",
    "StepRunner",
    "WorkflowDependencies",
    "create_workflow_dependencies",
    "run_answer_question",
]
