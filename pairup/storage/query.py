"""
OData filter parser and evaluator for the in-memory table store.

Supports the $filter subset Azure Table Storage accepts.
"""

import re
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple


class ODataParseError(Exception):
    """Raised when OData expression parsing fails."""
    pass


# Token kinds
_STRING = "string"
_DATETIME = "datetime"
_GUID = "guid"
_NUMBER = "number"
_WORD = "word"
_PUNCT = "punct"

_TOKEN_PATTERN = re.compile(
    r"\s*(?:"
    r"(?P<datetime>datetime'[^']*')"
    r"|(?P<guid>guid'[^']*')"
    r"|(?P<string>'(?:[^']|'')*')"
    r"|(?P<number>-?\d+(?:\.\d+)?L?)"
    r"|(?P<punct>[(),])"
    r"|(?P<word>[A-Za-z_][A-Za-z0-9_]*)"
    r")",
)


class _Property:
    """Reference to an entity property inside an expression."""

    __slots__ = ("name",)

    def __init__(self, name: str):
        self.name = name


class ODataFilter:
    """
    OData filter expression parser and evaluator.

    Supports:
    - Comparison operators: eq, ne, gt, ge, lt, le
    - Logical operators: and, or, not
    - String functions: startswith, endswith, contains
    - Literals: 'string' (with '' escaping), integers (optional L suffix),
      doubles, true/false, datetime'...', guid'...'
    """

    COMPARISON_OPS = {
        'eq': lambda a, b: a == b,
        'ne': lambda a, b: a != b,
        'gt': lambda a, b: a > b,
        'ge': lambda a, b: a >= b,
        'lt': lambda a, b: a < b,
        'le': lambda a, b: a <= b,
    }

    STRING_FUNCS = {
        'startswith': lambda s, prefix: isinstance(s, str) and s.startswith(prefix),
        'endswith': lambda s, suffix: isinstance(s, str) and s.endswith(suffix),
        'contains': lambda s, substr: isinstance(s, str) and substr in s,
    }

    def __init__(self, filter_expr: str):
        """
        Initialize OData filter.

        Args:
            filter_expr: OData filter expression
        """
        self.filter_expr = filter_expr.strip()
        self.tokens = self._tokenize(self.filter_expr)
        self.pos = 0
        self._parsed_func: Optional[Callable[[Dict[str, Any]], bool]] = None

    def _tokenize(self, expr: str) -> List[Tuple[str, str]]:
        """
        Tokenize filter expression.

        Args:
            expr: Filter expression string

        Returns:
            List of (kind, text) tokens

        Raises:
            ODataParseError: On characters that start no token
        """
        tokens = []
        pos = 0
        while pos < len(expr):
            if expr[pos:].strip() == "":
                break
            match = _TOKEN_PATTERN.match(expr, pos)
            if match is None or match.end() == pos or match.lastgroup is None:
                raise ODataParseError(f"Unexpected character at position {pos}: {expr[pos:pos + 10]!r}")
            tokens.append((match.lastgroup, match.group(match.lastgroup)))
            pos = match.end()
        return tokens

    def _current_token(self) -> Optional[Tuple[str, str]]:
        """Get current token without consuming."""
        if self.pos < len(self.tokens):
            return self.tokens[self.pos]
        return None

    def _consume_token(self) -> Optional[Tuple[str, str]]:
        """Consume and return current token."""
        token = self._current_token()
        if token:
            self.pos += 1
        return token

    def _current_word(self) -> Optional[str]:
        token = self._current_token()
        if token and token[0] == _WORD:
            return token[1].lower()
        return None

    def _expect_punct(self, punct: str, context: str) -> None:
        token = self._consume_token()
        if token != (_PUNCT, punct):
            raise ODataParseError(f"Expected '{punct}' in {context}")

    def _parse_operand(self, token: Optional[Tuple[str, str]]) -> Any:
        """
        Convert a token into a literal value or a property reference.

        Args:
            token: (kind, text) token

        Returns:
            Parsed value (str, int, float, bool, datetime, UUID) or _Property
        """
        if token is None:
            raise ODataParseError("Expected value")

        kind, text = token
        if kind == _STRING:
            return text[1:-1].replace("''", "'")
        if kind == _DATETIME:
            raw = text[len("datetime'"):-1]
            # Azure writes 7 fractional digits; datetime keeps 6
            raw = re.sub(r"(\.\d{6})\d+", r"\1", raw)
            try:
                value = datetime.fromisoformat(raw.replace('Z', '+00:00'))
            except ValueError:
                raise ODataParseError(f"Invalid datetime literal: {text}")
            if value.tzinfo is None:
                value = value.replace(tzinfo=timezone.utc)
            return value
        if kind == _GUID:
            try:
                return uuid.UUID(text[len("guid'"):-1])
            except ValueError:
                raise ODataParseError(f"Invalid guid literal: {text}")
        if kind == _NUMBER:
            if text.endswith('L'):
                return int(text[:-1])
            if '.' in text:
                return float(text)
            return int(text)
        if kind == _WORD:
            lowered = text.lower()
            if lowered == 'true':
                return True
            if lowered == 'false':
                return False
            return _Property(text)

        raise ODataParseError(f"Unexpected token: {text}")

    def _parse_primary(self) -> Callable[[Dict[str, Any]], bool]:
        """
        Parse primary expression (comparison, string function, or parenthesized expression).

        Returns:
            Evaluation function
        """
        token = self._current_token()

        if token is None:
            raise ODataParseError("Unexpected end of expression")

        if token == (_PUNCT, '('):
            self._consume_token()
            expr = self._parse_or()
            self._expect_punct(')', "parenthesized expression")
            return expr

        if self._current_word() == 'not':
            self._consume_token()
            sub_expr = self._parse_primary()
            return lambda entity: not sub_expr(entity)

        next_token = self.tokens[self.pos + 1] if self.pos + 1 < len(self.tokens) else None
        if token[0] == _WORD and next_token == (_PUNCT, '('):
            func_name = token[1].lower()
            if func_name not in self.STRING_FUNCS:
                raise ODataParseError(f"Unknown function: {token[1]}")
            self._consume_token()
            return self._parse_string_function(func_name)

        return self._parse_comparison()

    def _parse_string_function(self, func_name: str) -> Callable[[Dict[str, Any]], bool]:
        """
        Parse string function call.

        Args:
            func_name: Function name (startswith, endswith, contains)

        Returns:
            Evaluation function
        """
        self._expect_punct('(', f"{func_name} function")

        prop = self._parse_operand(self._consume_token())
        if not isinstance(prop, _Property):
            raise ODataParseError(f"Expected property name in {func_name} function")

        self._expect_punct(',', f"{func_name} function")
        value = self._parse_operand(self._consume_token())
        self._expect_punct(')', f"{func_name} function")

        func = self.STRING_FUNCS[func_name]
        return lambda entity: func(entity.get(prop.name), value)

    def _parse_comparison(self) -> Callable[[Dict[str, Any]], bool]:
        """
        Parse comparison expression.

        Returns:
            Evaluation function
        """
        left = self._parse_operand(self._consume_token())

        op_token = self._consume_token()
        if op_token is None:
            raise ODataParseError("Expected comparison operator")

        op = op_token[1].lower()
        if op_token[0] != _WORD or op not in self.COMPARISON_OPS:
            raise ODataParseError(f"Unknown comparison operator: {op_token[1]}")

        right = self._parse_operand(self._consume_token())
        comparison_func = self.COMPARISON_OPS[op]

        def resolve(operand: Any, entity: Dict[str, Any]) -> Any:
            if isinstance(operand, _Property):
                return entity.get(operand.name)
            return operand

        def evaluate(entity: Dict[str, Any]) -> bool:
            left_eval = resolve(left, entity)
            right_eval = resolve(right, entity)

            # A missing property never matches, as in Azure
            if left_eval is None or right_eval is None:
                return False

            try:
                return comparison_func(left_eval, right_eval)
            except (TypeError, AttributeError):
                return False

        return evaluate

    def _parse_and(self) -> Callable[[Dict[str, Any]], bool]:
        """Parse AND expression."""
        left = self._parse_primary()

        while self._current_word() == 'and':
            self._consume_token()
            right = self._parse_primary()
            left = lambda entity, l=left, r=right: l(entity) and r(entity)

        return left

    def _parse_or(self) -> Callable[[Dict[str, Any]], bool]:
        """Parse OR expression."""
        left = self._parse_and()

        while self._current_word() == 'or':
            self._consume_token()
            right = self._parse_and()
            left = lambda entity, l=left, r=right: l(entity) or r(entity)

        return left

    def parse(self) -> Callable[[Dict[str, Any]], bool]:
        """
        Parse the complete filter expression.

        Returns:
            Evaluation function that takes entity dict and returns bool
        """
        if not self.filter_expr:
            return lambda entity: True

        self.pos = 0

        result = self._parse_or()

        if self.pos < len(self.tokens):
            raise ODataParseError(f"Unexpected token: {self.tokens[self.pos][1]}")

        return result

    def compile(self) -> Callable[[Dict[str, Any]], bool]:
        """Parse once and cache the evaluation function."""
        if self._parsed_func is None:
            self._parsed_func = self.parse()
        return self._parsed_func

    def evaluate(self, entity: Dict[str, Any]) -> bool:
        """
        Evaluate filter against entity.

        Args:
            entity: Entity as dictionary

        Returns:
            True if entity matches filter
        """
        return bool(self.compile()(entity))


class ODataQuery:
    """
    OData query for table scans.

    Supports $filter and $top.
    """

    def __init__(
        self,
        filter_expr: Optional[str] = None,
        top: Optional[int] = None
    ):
        """
        Initialize OData query.

        Args:
            filter_expr: $filter expression
            top: $top result limit
        """
        self.filter = ODataFilter(filter_expr) if filter_expr and filter_expr.strip() else None
        if self.filter is not None:
            # Fail on malformed expressions before touching any entity
            self.filter.compile()
        self.top = top

    def matches(self, entity: Dict[str, Any]) -> bool:
        """
        Check if entity matches filter.

        Args:
            entity: Entity as dictionary

        Returns:
            True if entity matches filter (or no filter specified)
        """
        if self.filter is None:
            return True
        return self.filter.evaluate(entity)
