"""
Tests for configuration, environments, expressions, variables and secrets

Validates:
- Typed readers and combinators of Configuration
- YAML loading and flattening
- Environment declaration and scoped namespaces
- ${...} expression evaluation and lookups
- Variables and the evaluated configuration of an environment
- The passwordless default SecretsManager
"""

from pathlib import Path

import pytest

from schemashift.config import Configuration, ConfigurationLoader
from schemashift.environment import Environment, list_environments, scoped_namespace
from schemashift.errors import MisconfigurationError
from schemashift.expressions import ExpressionEvaluator
from schemashift.secrets import PasswordlessSecretsManager, SecretsManager, create_secrets_manager
from schemashift.variables import evaluate_configuration, get_variables


SAMPLE_YAML = """
variables:
  schema: app
  owner: ${schema}_owner
  greeting: hello ${environment}

connectors:
  main:
    type: jdbc
    url: sqlite:///default.db
    schema: ${schema}
    start:
      command: [sh, -c]

environments:
  DEV:
    variables:
      schema: app_dev
    connectors:
      main:
        url: sqlite:///dev.db
  PROD:
    variables:
      schema: app_prod
"""


class ReversingSecretsManager(SecretsManager):
    """Test double: 'decodes' by reversing the text."""

    def decode(self, expression: str) -> str:
        return expression[::-1]


@pytest.fixture
def raw_configuration():
    return ConfigurationLoader.from_yaml_string(SAMPLE_YAML)


# ========== Test 1: Configuration ==========

def test_yaml_is_flattened(raw_configuration):
    assert raw_configuration.get_string("connectors.main.type") == "jdbc"
    assert raw_configuration.get_string("connectors", "main", "url") == "sqlite:///default.db"
    assert raw_configuration.get_list("connectors.main.start.command") == ["sh", "-c"]
    assert raw_configuration.get_string("missing") is None


def test_typed_readers():
    configuration = Configuration({"a": 5, "b": True, "c": "no", "d": "x, y ,z", "e": "five"})

    assert configuration.get_int("a") == 5
    assert configuration.get_bool("b") is True
    assert configuration.get_bool("c") is False
    assert configuration.get_list("d") == ["x", "y", "z"]
    with pytest.raises(MisconfigurationError, match="must be an integer"):
        configuration.get_int("e")
    with pytest.raises(MisconfigurationError, match="must be a boolean"):
        configuration.get_bool("e")


def test_require_string():
    configuration = Configuration({"present": "value", "blank": "  "})

    assert configuration.require_string("present") == "value"
    with pytest.raises(MisconfigurationError, match="'blank' is not set"):
        configuration.require_string("blank")


def test_prefix_namespace_strips_prefix(raw_configuration):
    namespace = raw_configuration.get_prefix_namespace("connectors", "main")

    assert namespace.get_string("type") == "jdbc"
    assert "connectors.main.type" not in namespace.keys()


def test_add_all_other_wins():
    base = Configuration({"a": "1", "b": "1"})
    merged = base.add_all(Configuration({"b": "2", "c": "2"}))

    assert merged.as_dict() == {"a": "1", "b": "2", "c": "2"}
    assert base.get_string("b") == "1"


def test_configuration_equality_and_hash():
    assert Configuration({"a": 1}) == Configuration({"a": "1"})
    assert hash(Configuration({"a": 1, "b": 2})) == hash(Configuration({"b": "2", "a": "1"}))


def test_yaml_top_level_must_be_mapping():
    with pytest.raises(MisconfigurationError, match="mapping"):
        ConfigurationLoader.from_yaml_string("- a\n- b\n")


def test_missing_yaml_file(temp_workspace):
    with pytest.raises(MisconfigurationError, match="not found"):
        ConfigurationLoader.from_yaml_file(temp_workspace / "nope.yml")


def test_yaml_file(temp_workspace):
    path = temp_workspace / "schemashift.yml"
    path.write_text(SAMPLE_YAML, encoding="utf-8")

    assert ConfigurationLoader.from_yaml_file(path) == ConfigurationLoader.from_yaml_string(SAMPLE_YAML)


# ========== Test 2: Environments ==========

def test_list_environments_in_declaration_order(raw_configuration):
    assert [env.name for env in list_environments(raw_configuration)] == ["DEV", "PROD"]


@pytest.mark.parametrize("name", ["", "   "])
def test_blank_environment_rejected(name):
    with pytest.raises(ValueError):
        Environment(name)


def test_scoped_namespace_prefers_environment(raw_configuration):
    dev = scoped_namespace(raw_configuration, Environment("DEV"), "connectors", "main")
    prod = scoped_namespace(raw_configuration, Environment("PROD"), "connectors", "main")

    assert dev.get_string("url") == "sqlite:///dev.db"
    assert prod.get_string("url") == "sqlite:///default.db"
    assert dev.get_string("type") == "jdbc"


# ========== Test 3: Expressions ==========

def test_variable_substitution():
    evaluator = ExpressionEvaluator()

    assert evaluator.evaluate("${a}-${b}", {"a": "x", "b": "y"}) == "x-y"
    assert evaluator.evaluate("plain", {}) == "plain"
    assert evaluator.evaluate(42, {}) == 42
    assert evaluator.evaluate(None, {}) is None


def test_unknown_variable_raises():
    with pytest.raises(MisconfigurationError, match="missing"):
        ExpressionEvaluator().evaluate("${missing}", {})


def test_innermost_expression_first():
    evaluator = ExpressionEvaluator({"upper": str.upper})

    assert evaluator.evaluate("${upper:${name}}", {"name": "db"}) == "DB"


def test_lookup_result_is_not_evaluated_again():
    evaluator = ExpressionEvaluator({"secret": lambda key: "p@${ss}w0rd"})

    assert evaluator.evaluate("pw=${secret:db}", {}) == "pw=p@${ss}w0rd"
    assert evaluator.evaluate("${secret:${name}}!", {"name": "db", "ss": "x"}) == "p@${ss}w0rd!"


def test_variables_referencing_variables():
    evaluator = ExpressionEvaluator()

    assert evaluator.evaluate("${url}", {"url": "db://${host}/${schema}", "host": "h", "schema": "s"}) == "db://h/s"


def test_unterminated_expression_left_as_text():
    assert ExpressionEvaluator().evaluate("cost ${a} and ${unclosed", {"a": "1"}) == "cost 1 and ${unclosed"


def test_cyclic_reference_detected():
    with pytest.raises(MisconfigurationError, match="did not resolve"):
        ExpressionEvaluator().evaluate("${a}", {"a": "${b}", "b": "${a}"})


def test_registered_lookup():
    evaluator = ExpressionEvaluator()
    evaluator.register_lookup("env", lambda name: f"<{name}>")

    assert evaluator.evaluate("${env:HOME}", {}) == "<HOME>"


# ========== Test 4: Variables and evaluated configuration ==========

def test_variables_with_environment_overrides(raw_configuration):
    variables = get_variables(raw_configuration, ExpressionEvaluator(), Environment("DEV"))

    assert variables == {
        "schema": "app_dev",
        "owner": "app_dev_owner",
        "greeting": "hello DEV",
        "environment": "DEV",
    }


def test_evaluated_configuration_for_environment(raw_configuration):
    evaluated = evaluate_configuration(raw_configuration, ExpressionEvaluator(), Environment("DEV"))

    assert evaluated.get_string("environment") == "DEV"
    assert evaluated.get_string("connectors.main.schema") == "app_dev"
    assert evaluated.get_string("environments.DEV.connectors.main.url") == "sqlite:///dev.db"
    assert not any(key.startswith("environments.PROD.") for key in evaluated.keys())
    assert scoped_namespace(evaluated, Environment("DEV"), "connectors", "main").get_string("url") == "sqlite:///dev.db"


def test_evaluation_failure_names_key():
    raw = Configuration({"connectors.main.url": "${nope}"})

    with pytest.raises(MisconfigurationError, match="connectors.main.url"):
        evaluate_configuration(raw, ExpressionEvaluator())


def test_variable_failure_names_variable():
    raw = Configuration({"variables.broken": "${nope}"})

    with pytest.raises(MisconfigurationError, match="broken"):
        get_variables(raw, ExpressionEvaluator())


# ========== Test 5: Secrets ==========

def test_default_secrets_manager_has_no_password():
    manager = create_secrets_manager()

    assert isinstance(manager, PasswordlessSecretsManager)
    with pytest.raises(MisconfigurationError, match="password must be specified"):
        manager.decode("anything")


def test_supplied_secrets_manager_is_used():
    manager = ReversingSecretsManager()

    assert create_secrets_manager(manager) is manager


def test_secret_lookup_in_expression():
    evaluator = ExpressionEvaluator(ReversingSecretsManager().lookups())

    assert evaluator.evaluate("pw=${secret:terces}", {}) == "pw=secret"


def test_secret_file_content(temp_workspace):
    secret_file = temp_workspace / "db.secret"
    secret_file.write_text("drowssap\n", encoding="utf-8")

    assert ReversingSecretsManager().decoded_file_content(str(secret_file)) == "password"


def test_decoded_file_path_keeps_extension(temp_workspace):
    secret_file = temp_workspace / "key.pem.secret"
    secret_file.write_text("yek", encoding="utf-8")

    decoded = Path(ReversingSecretsManager().decoded_file_path(str(secret_file)))

    assert decoded.suffix == ".pem"
    assert decoded.read_text(encoding="utf-8") == "key"


def test_missing_secret_file(temp_workspace):
    with pytest.raises(MisconfigurationError, match="File not found"):
        ReversingSecretsManager().decoded_file_content(str(temp_workspace / "missing.secret"))
