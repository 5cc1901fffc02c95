"""Generate JSON schemas from Python type annotations and bind call arguments."""

import inspect
import re
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union, get_args, get_origin, get_type_hints

from .jsonrpc import ToolError

_SECTION_HEADERS = ("Args:", "Arguments:", "Parameters:", "Params:")
_PARAM_LINE = re.compile(r"^(\w+)\s*(?:\([^)]*\))?\s*:\s*(.*)$")


def python_type_to_json_schema(type_hint: Any) -> Dict[str, Any]:
    """Convert a Python type hint to a JSON schema definition.

    Args:
        type_hint: The Python type annotation

    Returns:
        JSON schema dictionary
    """
    if type_hint is str:
        return {"type": "string"}
    if type_hint is bool:
        return {"type": "boolean"}
    if type_hint is int:
        return {"type": "integer"}
    if type_hint is float:
        return {"type": "number"}

    origin = get_origin(type_hint) or type_hint
    args = get_args(type_hint)

    # Optional[T] is described as T; optionality shows up in "required"
    if origin is Union:
        non_none_args = [arg for arg in args if arg is not type(None)]
        if len(non_none_args) == 1:
            return python_type_to_json_schema(non_none_args[0])
        return {"oneOf": [python_type_to_json_schema(arg) for arg in non_none_args]}

    if origin in (list, List):
        if args:
            return {"type": "array", "items": python_type_to_json_schema(args[0])}
        return {"type": "array"}

    if origin in (dict, Dict):
        return {"type": "object"}

    return {"type": "string"}


def _resolved_hints(func: Any) -> Dict[str, Any]:
    try:
        return get_type_hints(func)
    except (NameError, TypeError):
        return {}


def _parameters(func: Any) -> List[inspect.Parameter]:
    return [
        param
        for name, param in inspect.signature(func).parameters.items()
        if name != "self" and param.kind not in (param.VAR_POSITIONAL, param.VAR_KEYWORD)
    ]


def extract_parameter_schema(func: Any) -> Dict[str, Any]:
    """Build the input schema for a tool method.

    Each property gets its JSON type, its default when the parameter has one,
    and the description from the method's Args section. Parameters without a
    default are listed under "required".
    """
    hints = _resolved_hints(func)
    descriptions = parse_docstring_params(func.__doc__)
    properties: Dict[str, Dict[str, Any]] = {}
    required = []

    for param in _parameters(func):
        schema = python_type_to_json_schema(hints.get(param.name, str))
        if param.name in descriptions:
            schema["description"] = descriptions[param.name]
        if param.default is inspect.Parameter.empty:
            required.append(param.name)
        elif param.default is not None:
            schema["default"] = param.default
        properties[param.name] = schema

    schema = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    return schema


def parse_docstring_params(docstring: Optional[str]) -> Dict[str, str]:
    """Parse parameter descriptions from the Args section of a Google-style docstring.

    Returns:
        Dictionary mapping parameter names to descriptions
    """
    if not docstring:
        return {}

    params: Dict[str, List[str]] = {}
    current: Optional[str] = None
    param_indent: Optional[int] = None
    in_section = False

    for raw_line in inspect.cleandoc(docstring).splitlines():
        line = raw_line.strip()
        indent = len(raw_line) - len(raw_line.lstrip())

        if line in _SECTION_HEADERS:
            in_section, current, param_indent = True, None, None
            continue
        if not in_section:
            continue
        if not line:
            continue
        if param_indent is None:
            param_indent = indent
        if indent < param_indent:
            # Dedent past the parameter list ends the section
            in_section = False
            continue

        match = _PARAM_LINE.match(line)
        if indent == param_indent and match:
            current = match.group(1)
            params[current] = [match.group(2)] if match.group(2) else []
        elif current is not None:
            params[current].append(line)

    return {name: " ".join(parts).strip() for name, parts in params.items() if parts}


def coerce_argument(value: Any, type_hint: Any) -> Tuple[bool, Any]:
    """Check a decoded JSON value against a parameter annotation.

    Integral floats are accepted for int parameters; bools never are.

    Returns:
        (True, converted value) on success, (False, None) on a type mismatch
    """
    origin = get_origin(type_hint) or type_hint
    if origin is Union:
        non_none_args = [arg for arg in get_args(type_hint) if arg is not type(None)]
        if value is None:
            return True, None
        for arg in non_none_args:
            ok, converted = coerce_argument(value, arg)
            if ok:
                return True, converted
        return False, None

    if type_hint is bool:
        return (True, value) if isinstance(value, bool) else (False, None)
    if type_hint is int:
        if isinstance(value, bool):
            return False, None
        if isinstance(value, int):
            return True, value
        if isinstance(value, float) and value.is_integer():
            return True, int(value)
        return False, None
    if type_hint is float:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return True, float(value)
        return False, None
    if type_hint is str:
        return (True, value) if isinstance(value, str) else (False, None)
    if origin in (list, List):
        return (True, list(value)) if isinstance(value, list) else (False, None)
    if origin in (dict, Dict):
        return (True, dict(value)) if isinstance(value, dict) else (False, None)
    return True, value


def bind_arguments(func: Any, arguments: Mapping[str, Any]) -> Dict[str, Any]:
    """Map decoded tool arguments onto a method's keyword parameters.

    Unknown keys are ignored. An optional parameter with a missing or
    mistyped value keeps its default.

    Raises:
        ToolError: If a required parameter is missing or has the wrong type
    """
    hints = _resolved_hints(func)
    bound: Dict[str, Any] = {}

    for param in _parameters(func):
        has_default = param.default is not inspect.Parameter.empty
        if param.name not in arguments:
            if not has_default:
                raise ToolError(f"{param.name} is required")
            continue

        ok, value = coerce_argument(arguments[param.name], hints.get(param.name, Any))
        if ok:
            bound[param.name] = value
        elif not has_default:
            raise ToolError(f"{param.name} is required")

    return bound
