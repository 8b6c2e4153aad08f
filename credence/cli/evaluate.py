"""
credence/cli/evaluate.py

credence evaluate — offline consensus over a file of provider answers.

Input (YAML or JSON):

    question: "Did X happen?"
    answers:
      - {title: "Report", url: "https://reuters.com/a", answer: true, confidence: 0.9}
      - source: {title: "Story", url: "https://bbc.com/b"}
        answer: true
        confidence: 0.92
        provider_id: p2
        rank: 1

Exit codes:
    0  evaluated
    1  consensus error (insufficient sources, low confidence, tied vote)
    2  unreadable input or invalid configuration
"""

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click
import yaml

from credence.consensus.engine import ConsensusEngine
from credence.core.config import EngineConfig
from credence.core.exceptions import ConfigError
from credence.core.log import configure_logging
from credence.core.models import Algorithm, Evaluation, ProviderAnswer


def _load_answers(path: Path):
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if isinstance(data, list):
        return None, [ProviderAnswer.from_dict(a) for a in data]
    if not isinstance(data, dict) or not isinstance(data.get("answers"), list):
        raise ValueError("expected a list of answers or a mapping with an 'answers' list")
    return data.get("question"), [ProviderAnswer.from_dict(a) for a in data["answers"]]


@click.command(name="evaluate")
@click.argument("answers_file", type=click.Path(exists=False))
@click.option("--question", "-q", type=str, default=None, help="Question text (overrides the file).")
@click.option(
    "--config", "config_path",
    type=click.Path(), default=None, metavar="PATH",
    help="YAML engine configuration. CREDENCE_* variables still apply on top.",
)
@click.option(
    "--algorithm",
    type=click.Choice([a.value for a in Algorithm], case_sensitive=False),
    default=None,
    help="Aggregation algorithm.",
)
@click.option("--required-sources", type=int, default=None, help="Minimum distinct valid sources.")
@click.option("--threshold", type=float, default=None, help="Minimum aggregate confidence.")
@click.option(
    "--format", "fmt",
    type=click.Choice(["human", "json"], case_sensitive=False),
    default="human",
    show_default=True,
)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Log each pipeline step.")
def evaluate_command(
    answers_file:     str,
    question:         Optional[str],
    config_path:      Optional[str],
    algorithm:        Optional[str],
    required_sources: Optional[int],
    threshold:        Optional[float],
    fmt:              str,
    verbose:          bool,
) -> None:
    """
    Run the consensus engine over ANSWERS_FILE and print the evaluation.

    \b
    Examples:
      credence evaluate answers.yaml
      credence evaluate answers.json --algorithm majority_vote --format json
      credence evaluate answers.yaml --required-sources 5 --threshold 0.9
    """
    configure_logging(logging.DEBUG if verbose else logging.WARNING)

    path = Path(answers_file)
    if not path.exists():
        click.echo(f"Error: answers file not found: {answers_file}", err=True)
        sys.exit(2)

    try:
        config = EngineConfig.load(config_path)
        file_question, answers = _load_answers(path)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)
    except (yaml.YAMLError, ValueError, KeyError, TypeError) as e:
        click.echo(f"Error: could not read {answers_file}: {e}", err=True)
        sys.exit(2)

    question = question or file_question
    if not question:
        click.echo("Error: no question given (use --question or a 'question' key)", err=True)
        sys.exit(2)

    evaluation = ConsensusEngine(config).evaluate(
        question,
        answers,
        required_sources=     required_sources,
        confidence_threshold= threshold,
        algorithm=            algorithm,
    )

    if fmt == "json":
        click.echo(json.dumps(evaluation.to_dict(), indent=2))
    else:
        _output_human(evaluation, len(answers))

    sys.exit(0 if evaluation.is_evaluated else 1)


def _output_human(evaluation: Evaluation, submitted: int) -> None:
    bar = "─" * 60
    click.echo()
    click.echo(f"  {bar}")
    click.echo(f"  Question     {evaluation.question}")
    click.echo(f"  Algorithm    {evaluation.algorithm}")
    click.echo(f"  Sources      {len(evaluation.sources)} used of {submitted} submitted")
    if evaluation.reliability:
        tiers = "  ".join(f"{k}: {v}" for k, v in evaluation.reliability.items())
        click.echo(f"  Reliability  {tiers}")
    click.echo(f"  {bar}")
    if evaluation.is_evaluated:
        verdict = "YES" if evaluation.answer else "NO"
        click.echo(f"  ✅  {verdict}  ·  confidence {evaluation.confidence:.4f}")
        click.echo(f"  Hash         {evaluation.hash}")
        if evaluation.detail:
            click.echo(f"  Note         {evaluation.detail}")
    else:
        click.echo(f"  ❌  ERROR  ·  {evaluation.failure.value}")
        click.echo(f"  Detail       {evaluation.detail}")
    click.echo(f"  {bar}")
    click.echo()
