"""CLI entry point for the survey question quality engine.

Usage:
    python run.py                                   # Healthcare example survey
    python run.py --survey-file my_survey.json      # Survey draft (+ variable model) from JSON
    python run.py --json                            # Uses surveys/healthcare.json
    python run.py --describe "Survey of ..."        # Extract the survey draft from free text
    python run.py --evaluate-only                   # Evaluate questions without generating
    python run.py --max-attempts 1 --verbose-json
"""

from __future__ import annotations

import argparse
import asyncio

from surveyq.agents.survey_config_extractor import extract_survey_config
from surveyq.agents.variable_modeler import generate_variable_model
from surveyq.config import get_agent_settings, get_settings
from surveyq.evaluation.evaluator import evaluate_questions
from surveyq.graphs.regeneration_loop import run_regeneration_loop
from surveyq.logging_config import setup_logging
from surveyq.schemas.presets import (
    HEALTHCARE_EXAMPLE_SURVEY,
    fallback_questions,
    load_questions_from_file,
    load_survey_from_file,
)
from surveyq.schemas.questions import SurveyConfig, VariableModel
from surveyq.utils.console import (
    console,
    print_evaluations,
    print_final_results,
    print_header,
    print_info,
    print_langsmith_status,
    set_console_output,
    set_verbose_json_output,
)
from surveyq.utils.structured_output import build_model_caller

DEFAULT_SURVEY_FILE = "surveys/healthcare.json"


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Survey question generation, evaluation and regeneration",
    )
    # Survey selection (mutually exclusive: file or free-text description)
    survey_group = parser.add_mutually_exclusive_group()
    survey_group.add_argument(
        "--survey-file",
        "--json",
        nargs="?",
        const=DEFAULT_SURVEY_FILE,
        type=str,
        default=None,
        help=(
            "Path to a JSON file with a survey draft and optional variable model "
            f"(alias: --json). If used without value, defaults to {DEFAULT_SURVEY_FILE}."
        ),
    )
    survey_group.add_argument(
        "--describe",
        type=str,
        default=None,
        help="Free-text survey description to extract the survey draft from.",
    )
    parser.add_argument(
        "--evaluate-only",
        action="store_true",
        default=False,
        help="Evaluate the file's questions (or the built-in set) without generating.",
    )
    parser.add_argument(
        "--max-attempts",
        type=int,
        default=None,
        help="Maximum number of question-generation calls.",
    )
    parser.add_argument(
        "--verbose-json",
        action="store_true",
        default=False,
        help="Print final results as raw JSON.",
    )
    return parser.parse_args()


async def _resolve_survey(args: argparse.Namespace) -> tuple[SurveyConfig, VariableModel | None]:
    if args.survey_file:
        return load_survey_from_file(args.survey_file)
    if args.describe:
        print_info("Extracting survey draft from description...")
        return await extract_survey_config(args.describe), None
    return HEALTHCARE_EXAMPLE_SURVEY, None


async def run() -> None:
    args = parse_args()
    set_verbose_json_output(args.verbose_json)
    set_console_output(not args.verbose_json)
    settings = get_settings()
    setup_logging(settings.log_level, json_logs=settings.log_json)
    agent_settings = get_agent_settings()
    max_attempts = (
        args.max_attempts
        if args.max_attempts is not None
        else agent_settings.workflow.max_regen_attempts
    )

    survey, variable_model = await _resolve_survey(args)

    if not args.verbose_json:
        print_header(
            survey.title or survey.topic,
            agent_settings.get_model("question_writer"),
            max_attempts,
            evaluate_only=args.evaluate_only,
        )
        print_langsmith_status(settings.langchain_tracing_v2)

    if args.evaluate_only:
        questions = (
            load_questions_from_file(args.survey_file) if args.survey_file else []
        ) or fallback_questions()
        evaluations = await evaluate_questions(
            survey.topic, questions, call_model=build_model_caller("quality_judge", settings)
        )
        print_evaluations(questions, evaluations)
        return

    if variable_model is None or variable_model.is_empty():
        print_info("Proposing variable model...")
        variable_model = await generate_variable_model(survey)

    result = await run_regeneration_loop(survey, variable_model, max_attempts=max_attempts)
    print_final_results(result)

    if result.fallback_used and not args.verbose_json:
        console.print("  [yellow]The built-in fallback question set was used.[/yellow]")


def main() -> None:
    asyncio.run(run())


if __name__ == "__main__":
    main()
