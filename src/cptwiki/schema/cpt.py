"""
CPT Schema Compiler

Compiles CPT declaration text into ObjectStructure trees.

A block is a list of statements terminated by ``;``. Line breaks inside a
statement are treated as spaces. Each statement reads::

    name KIND(args)[][] modifiers

KIND is a primitive keyword (TEXTSHORT, TEXT, TEXTLONG, INT, BOOLEAN, DATE,
ID, FILE, SELECT) or a reusable shape written ``{SHAPE_NAME}``. The ``[]``
suffix may appear once (list) or twice (matrix). Modifiers:

    QUERY            field contributes to the search text
    *                anyone may edit the field
    "Header"         display name
    'Description'    help text; runs to the last single quote of the statement

Example:
    names {NAME}[] "Localized Names" 'Official names of the song';
    link TEXTSHORT 'YouTube link for the song';
    tags TEXT[] QUERY;
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Mapping, Optional

from ..exceptions import CompileError
from ..models import (
    ChoiceOption,
    ClassDefinition,
    ClassDescriptor,
    ObjectStructure,
    PrimitiveKind,
    PropertyDescriptor,
    Rule,
    ShapeDefinition,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Grammar
# =============================================================================

KIND_KEYWORDS: dict[str, PrimitiveKind] = {
    "TEXTSHORT": PrimitiveKind.SHORT_TEXT,
    "TEXT": PrimitiveKind.SHORT_TEXT,
    "TEXTLONG": PrimitiveKind.LONG_TEXT,
    "INT": PrimitiveKind.INTEGER,
    "BOOLEAN": PrimitiveKind.BOOLEAN,
    "DATE": PrimitiveKind.DATE,
    "ID": PrimitiveKind.REFERENCE,
    "FILE": PrimitiveKind.FILE_REF,
    "SELECT": PrimitiveKind.CHOICE,
}

STATEMENT_TERMINATOR = ";"
QUERY_MODIFIER = "QUERY"
OPEN_MODIFIER = "*"
MAX_ARRAY_DEPTH = 2

_HEAD_RE = re.compile(r"\s*([A-Za-z_]\w*)\s+(\{[A-Za-z_]\w*\}|[A-Za-z_]\w*)")
_ARRAY_RE = re.compile(r"(?:\[\])*")
_IDENT_RE = re.compile(r"^[A-Za-z_][\w-]*$")
_OPTION_RE = re.compile(r'\[\s*([\w-]+)\s+"([^"]*)"\s*\]')
_WORD_RE = re.compile(r"[A-Z]+(?![a-z])|[A-Z]?[a-z]+|\d+")
_SECOND_DESCRIPTION_RE = re.compile(r"'\s+(?:(?:QUERY|\*|\"[^\"]*\")\s+)*'")


def camel_to_phrase(name: str) -> str:
    """
    Display name for an identifier.

    Example:
        >>> camel_to_phrase("swfMusicNumbers")
        'Swf Music Numbers'
    """
    words = _WORD_RE.findall(name)
    if not words:
        return name
    return " ".join(word[0].upper() + word[1:] for word in words)


# =============================================================================
# Statements
# =============================================================================

@dataclass(frozen=True)
class Statement:
    """One tokenized CPT statement."""
    name: str
    base_kind: str
    arguments_text: Optional[str]
    array_depth: int
    flags: tuple[str, ...]
    header: Optional[str]
    description: Optional[str]
    source: str

    @property
    def shape_name(self) -> Optional[str]:
        if self.base_kind.startswith("{"):
            return self.base_kind[1:-1]
        return None


def split_statements(code: str) -> list[str]:
    """Statement texts of a block, line breaks collapsed."""
    flat = code.replace("\r", " ").replace("\n", " ")
    return [part.strip() for part in flat.split(STATEMENT_TERMINATOR) if part.strip()]


def _malformed(text: str, reason: str) -> CompileError:
    return CompileError(
        message=f"Malformed statement '{text}': {reason}",
        details={"statement": text, "reason": reason},
    )


def _scan_arguments(text: str, start: int) -> tuple[str, int]:
    """Text between the parenthesis at ``start`` and its match."""
    depth = 0
    in_quotes = False
    for pos in range(start, len(text)):
        ch = text[pos]
        if ch == '"':
            in_quotes = not in_quotes
        elif in_quotes:
            continue
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return text[start + 1:pos], pos + 1
    raise _malformed(text, "unbalanced parentheses")


def parse_statement(text: str) -> Statement:
    """
    Tokenize one statement.

    Raises:
        CompileError: If the statement does not follow the grammar
    """
    head = _HEAD_RE.match(text)
    if head is None:
        raise _malformed(text, "expected 'name KIND'")
    name, base_kind = head.group(1), head.group(2)
    pos = head.end()

    arguments_text = None
    if pos < len(text) and text[pos] == "(":
        arguments_text, pos = _scan_arguments(text, pos)

    suffix = _ARRAY_RE.match(text, pos)
    array_depth = len(suffix.group(0)) // 2
    pos = suffix.end()
    if array_depth > MAX_ARRAY_DEPTH:
        raise _malformed(text, f"at most {MAX_ARRAY_DEPTH} array dimensions are supported")

    rest = text[pos:]
    if rest and not rest[0].isspace():
        raise _malformed(text, f"unexpected '{rest.split()[0]}' after kind")

    flags: list[str] = []
    header = None
    description = None
    i = 0
    while i < len(rest):
        ch = rest[i]
        if ch.isspace():
            i += 1
        elif ch == '"':
            end = rest.find('"', i + 1)
            if end == -1:
                raise _malformed(text, "unterminated display name")
            if header is not None:
                raise _malformed(text, "display name given twice")
            header = rest[i + 1:end]
            i = end + 1
        elif ch == "'":
            end = rest.rfind("'")
            if end <= i:
                raise _malformed(text, "unterminated description")
            if description is not None or _SECOND_DESCRIPTION_RE.search(rest, i, end + 1):
                raise _malformed(text, "description given twice")
            description = rest[i + 1:end]
            i = end + 1
        else:
            token = rest[i:].split(None, 1)[0]
            if token not in (QUERY_MODIFIER, OPEN_MODIFIER):
                raise _malformed(text, f"unknown modifier '{token}'")
            flags.append(token)
            i += len(token)

    return Statement(
        name=name,
        base_kind=base_kind,
        arguments_text=arguments_text,
        array_depth=array_depth,
        flags=tuple(flags),
        header=header,
        description=description,
        source=text,
    )


def parse_block(code: str) -> list[Statement]:
    """Tokenize every statement of a block, rejecting duplicate names."""
    statements = [parse_statement(text) for text in split_statements(code)]
    seen: set[str] = set()
    for statement in statements:
        if statement.name in seen:
            raise CompileError(
                message=f"Duplicate property '{statement.name}'",
                details={"statement": statement.source},
            )
        seen.add(statement.name)
    return statements


def _parse_options(statement: Statement) -> tuple[ChoiceOption, ...]:
    text = statement.arguments_text or ""
    options = tuple(ChoiceOption(id=m.group(1), text=m.group(2)) for m in _OPTION_RE.finditer(text))
    leftover = _OPTION_RE.sub("", text).replace(",", "").strip()
    if not options or leftover:
        raise _malformed(statement.source, "SELECT expects options like [id \"Text\"]")
    ids = [option.id for option in options]
    if len(set(ids)) != len(ids):
        raise _malformed(statement.source, "duplicate SELECT option id")
    return options


# =============================================================================
# Compiler
# =============================================================================

class CPTCompiler:
    """
    Compiles CPT blocks against a set of reusable shape definitions.

    Shapes are compiled once and shared by every property that embeds them.
    ``dependency_order`` rejects undefined and cyclic shape references before
    anything is compiled; the in-progress set catches cycles reached directly
    through ``compile_shape``.

    Usage:
        compiler = CPTCompiler({"NAME": ShapeDefinition("NAME", "name TEXTSHORT QUERY;")})
        structure = compiler.compile("names {NAME}[];")
    """

    def __init__(self, shapes: Optional[Mapping[str, ShapeDefinition]] = None):
        self._shapes: dict[str, ShapeDefinition] = dict(shapes or {})
        self._parsed: dict[str, list[Statement]] = {}
        self._compiled: dict[str, ObjectStructure] = {}
        self._compiling: set[str] = set()

    @property
    def shapes(self) -> dict[str, ObjectStructure]:
        """Compiled shapes so far."""
        return dict(self._compiled)

    def _statements_of(self, shape_name: str) -> list[Statement]:
        if shape_name not in self._parsed:
            definition = self._shapes.get(shape_name)
            if definition is None:
                raise CompileError(
                    message=f"Undefined shape '{{{shape_name}}}'",
                    details={"shape": shape_name},
                )
            try:
                self._parsed[shape_name] = parse_block(definition.code)
            except CompileError as e:
                e.details.setdefault("shape", shape_name)
                raise
        return self._parsed[shape_name]

    def dependency_order(self) -> list[str]:
        """
        Shape names ordered so every shape follows the shapes it embeds.

        Raises:
            CompileError: On an undefined shape or a cycle between shapes
        """
        pending: dict[str, set[str]] = {}
        for name in sorted(self._shapes):
            deps = set()
            for statement in self._statements_of(name):
                if statement.shape_name is not None:
                    if statement.shape_name not in self._shapes:
                        raise CompileError(
                            message=f"Shape '{name}' references undefined shape '{{{statement.shape_name}}}'",
                            details={"shape": name, "statement": statement.source},
                        )
                    deps.add(statement.shape_name)
            pending[name] = deps

        order: list[str] = []
        done: set[str] = set()
        while pending:
            ready = sorted(name for name, deps in pending.items() if deps <= done)
            if not ready:
                raise CompileError(
                    message=f"Cyclic shape references between: {', '.join(sorted(pending))}",
                    details={"shapes": sorted(pending)},
                )
            for name in ready:
                order.append(name)
                done.add(name)
                del pending[name]
        return order

    def compile_all_shapes(self) -> dict[str, ObjectStructure]:
        """Compile every shape in dependency order."""
        for name in self.dependency_order():
            self.compile_shape(name)
        return self.shapes

    def compile_shape(self, name: str) -> ObjectStructure:
        """Compiled structure of a reusable shape (memoized)."""
        compiled = self._compiled.get(name)
        if compiled is not None:
            return compiled
        if name in self._compiling:
            raise CompileError(
                message=f"Cyclic reference to shape '{{{name}}}'",
                details={"shape": name, "compiling": sorted(self._compiling)},
            )

        statements = self._statements_of(name)
        self._compiling.add(name)
        try:
            structure = self._build(statements, self._shapes[name].rules, name)
        finally:
            self._compiling.discard(name)

        self._compiled[name] = structure
        logger.debug("Compiled shape %s (%d properties)", name, len(structure))
        return structure

    def compile(
        self,
        code: str,
        rules: tuple[Rule, ...] = (),
        name: Optional[str] = None,
    ) -> ObjectStructure:
        """Compile a block of CPT text."""
        return self._build(parse_block(code), tuple(rules), name)

    def compile_class(self, definition: ClassDefinition) -> ClassDescriptor:
        """Compile an item class definition."""
        try:
            structure = self.compile(definition.code, definition.rules, definition.key)
        except CompileError as e:
            e.details.setdefault("class", definition.key)
            raise
        return ClassDescriptor(
            key=definition.key,
            name=definition.name,
            structure=structure,
            is_static=definition.is_static,
        )

    def _build(
        self,
        statements: list[Statement],
        rules: tuple[Rule, ...],
        name: Optional[str],
    ) -> ObjectStructure:
        properties = tuple(self._property(statement) for statement in statements)
        return ObjectStructure(properties=properties, rules=tuple(rules), name=name)

    def _property(self, statement: Statement) -> PropertyDescriptor:
        arguments: tuple[str, ...] = ()
        options: tuple[ChoiceOption, ...] = ()

        shape_name = statement.shape_name
        if shape_name is not None:
            if statement.arguments_text is not None:
                raise _malformed(statement.source, "shapes do not take arguments")
            content = self.compile_shape(shape_name)
        else:
            kind = KIND_KEYWORDS.get(statement.base_kind)
            if kind is None:
                raise CompileError(
                    message=f"Unknown kind '{statement.base_kind}'",
                    details={"statement": statement.source},
                )
            content = kind
            raw = statement.arguments_text.strip() if statement.arguments_text is not None else None

            if kind == PrimitiveKind.REFERENCE:
                if not raw or not _IDENT_RE.match(raw):
                    raise _malformed(statement.source, "ID expects the referenced class name")
                arguments = (raw,)
            elif kind == PrimitiveKind.FILE_REF:
                if raw:
                    arguments = (raw,)
            elif kind == PrimitiveKind.CHOICE:
                options = _parse_options(statement)
                arguments = tuple(option.id for option in options)
            elif raw is not None:
                raise _malformed(statement.source, f"{statement.base_kind} does not take arguments")

        return PropertyDescriptor(
            name=statement.name,
            content=content,
            array_depth=statement.array_depth,
            arguments=arguments,
            options=options,
            is_queryable=QUERY_MODIFIER in statement.flags,
            is_openly_editable=OPEN_MODIFIER in statement.flags,
            display_name=statement.header if statement.header is not None else camel_to_phrase(statement.name),
            description=statement.description,
        )


def compile_schema(
    code: str,
    shapes: Optional[Mapping[str, ShapeDefinition]] = None,
    rules: tuple[Rule, ...] = (),
) -> ObjectStructure:
    """
    Compile one CPT block.

    Args:
        code: CPT text
        shapes: Reusable shapes the block may reference
        rules: Rules attached to the block's root

    Raises:
        CompileError: On any malformed statement or unresolved shape
    """
    compiler = CPTCompiler(shapes)
    return compiler.compile(code, rules)
