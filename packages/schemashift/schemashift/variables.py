"""
Variables and evaluated configuration.

Variables are declared under ``variables.*`` and, per environment, under
``environments.<env>.variables.*`` (environment values win). The active
environment name is always available as ``${environment}``.
"""

import logging
from typing import Dict, Optional

from .config import Configuration
from .environment import ENVIRONMENTS, Environment
from .errors import MisconfigurationError
from .expressions import ExpressionEvaluator

logger = logging.getLogger(__name__)

VARIABLES = "variables"
ENVIRONMENT_KEY = "environment"


def get_variables(
    configuration: Configuration,
    evaluator: ExpressionEvaluator,
    environment: Optional[Environment] = None,
) -> Dict[str, str]:
    """Return every variable, with its value expression evaluated."""
    variables = configuration.get_prefix_namespace(VARIABLES)
    if environment is not None:
        environment_variables = configuration.get_prefix_namespace(ENVIRONMENTS, environment.name, VARIABLES)
        variables = variables.add_all(environment_variables).with_entry(ENVIRONMENT_KEY, environment.name)

    raw = variables.as_dict()
    evaluated: Dict[str, str] = {}
    for name, expression in raw.items():
        try:
            evaluated[name] = evaluator.evaluate(expression, raw)
        except MisconfigurationError as e:
            raise MisconfigurationError(
                f"Failed to evaluate variable '{name}' expression: '{expression}'"
            ) from e
    return evaluated


def evaluate_configuration(
    raw_configuration: Configuration,
    evaluator: ExpressionEvaluator,
    environment: Optional[Environment] = None,
) -> Configuration:
    """
    Build the effective configuration for a run.

    Keeps every key outside ``environments.*`` plus the active environment's
    own ``environments.<env>.*`` keys, adds ``environment=<name>``, and
    evaluates each value against the variables.
    """
    applicable = raw_configuration.without_prefix(ENVIRONMENTS)
    if environment is not None:
        prefix = f"{ENVIRONMENTS}.{environment.name}."
        own = {key: value for key, value in raw_configuration.as_dict().items() if key.startswith(prefix)}
        applicable = Configuration({ENVIRONMENT_KEY: environment.name}).add_all(applicable).add_all(Configuration(own))

    variables = get_variables(raw_configuration, evaluator, environment)

    evaluated: Dict[str, str] = {}
    for key, expression in applicable.as_dict().items():
        try:
            evaluated[key] = evaluator.evaluate(expression, variables)
        except MisconfigurationError as e:
            raise MisconfigurationError(f"Failure evaluating configuration key '{key}'") from e

    logger.debug(f"Evaluated configuration: {len(evaluated)} keys (environment={environment})")
    return Configuration(evaluated)
