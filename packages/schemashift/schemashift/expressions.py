"""
Expression evaluation for configuration values.

Supports ``${name}`` variable references and ``${lookup:argument}`` calls to
registered lookup functions (for example ``${secret:...}``). Innermost
expressions are resolved first, so ``${secret:${db_secret}}`` works.

Variable values may themselves contain expressions and are evaluated in
turn. Lookup results are final: a decoded secret is inserted verbatim, even
when it contains ``${``.
"""

from typing import Callable, Dict, List, Mapping, Optional, Tuple

from .errors import MisconfigurationError

OPEN = "${"
CLOSE = "}"

MAX_EVALUATION_DEPTH = 32


class ExpressionEvaluator:
    """Substitutes ``${...}`` expressions against a map of values."""

    def __init__(self, lookups: Optional[Mapping[str, Callable[[str], str]]] = None):
        self._lookups: Dict[str, Callable[[str], str]] = dict(lookups or {})

    def register_lookup(self, key: str, function: Callable[[str], str]) -> None:
        self._lookups[key] = function

    def evaluate(self, expression, values: Mapping[str, str]):
        """
        Evaluate every expression in a string.

        Args:
            expression: Text possibly containing ``${...}`` expressions
            values: Variable values by name

        Returns:
            The text with every expression substituted. Non-string input is
            returned unchanged.

        Raises:
            MisconfigurationError: On unknown variables or lookups, or when
                variables reference each other in a cycle
        """
        if not isinstance(expression, str):
            return expression
        return self._evaluate_text(expression, values, 0, expression)

    def _evaluate_text(self, text: str, values: Mapping[str, str], depth: int, root: str) -> str:
        if depth > MAX_EVALUATION_DEPTH:
            raise MisconfigurationError(
                f"Expression did not resolve within {MAX_EVALUATION_DEPTH} nested variables "
                f"(cyclic variable reference?): {root!r}"
            )

        parts: List[str] = []
        position = 0
        while True:
            start = text.find(OPEN, position)
            if start < 0:
                parts.append(text[position:])
                return "".join(parts)

            parsed = self._parse_expression(text, start + len(OPEN), values, depth, root)
            if parsed is None:
                # Unterminated: the rest is literal text.
                parts.append(text[position:])
                return "".join(parts)

            body, end = parsed
            parts.append(text[position:start])
            parts.append(self._resolve(body, values, depth, root))
            position = end

    def _parse_expression(
        self, text: str, index: int, values: Mapping[str, str], depth: int, root: str
    ) -> Optional[Tuple[str, int]]:
        """
        Read an expression body up to its closing brace.

        Nested expressions inside the body are resolved on the way.

        Returns:
            The body and the index after the closing brace, or None when the
            expression is never closed
        """
        parts: List[str] = []
        position = index
        while True:
            close = text.find(CLOSE, position)
            if close < 0:
                return None

            nested = text.find(OPEN, position)
            if 0 <= nested < close:
                parsed = self._parse_expression(text, nested + len(OPEN), values, depth, root)
                if parsed is None:
                    return None
                inner, position_after = parsed
                parts.append(text[position:nested])
                parts.append(self._resolve(inner, values, depth, root))
                position = position_after
                continue

            parts.append(text[position:close])
            return "".join(parts), close + len(CLOSE)

    def _resolve(self, body: str, values: Mapping[str, str], depth: int, root: str) -> str:
        if ":" in body:
            lookup_key, argument = body.split(":", 1)
            lookup = self._lookups.get(lookup_key)
            if lookup is not None:
                return lookup(argument)

        if body in values:
            value = values[body]
            if value is None:
                raise MisconfigurationError(f"Variable '{body}' has no value")
            return self._evaluate_text(str(value), values, depth + 1, root)

        raise MisconfigurationError(f"Unknown variable or lookup in expression: ${{{body}}}")
