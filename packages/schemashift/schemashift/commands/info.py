"""Read-only views of the configuration."""

from typing import Dict, List, Optional

from ..command.context import CommandContext
from ..command.pipeline import Command
from ..engine import ChangeEngine
from ..environment import Environment, list_environments
from ..expressions import ExpressionEvaluator
from ..variables import get_variables


class ListEnvironments(Command[List[Environment]]):
    """Every environment declared under ``environments.*``."""

    def execute(self, context: CommandContext) -> List[Environment]:
        return list_environments(context.get(ChangeEngine).raw_configuration())


class ListVariables(Command[Dict[str, str]]):
    """Evaluated variables of one environment (default: the active one)."""

    def __init__(self, environment: Optional[Environment] = None):
        self.environment = environment

    def execute(self, context: CommandContext) -> Dict[str, str]:
        environment = self.environment or context.get_optional(Environment)
        raw_configuration = context.get(ChangeEngine).raw_configuration()
        return get_variables(raw_configuration, context.get(ExpressionEvaluator), environment)

    def __repr__(self) -> str:
        return f"ListVariables(environment={self.environment})"
