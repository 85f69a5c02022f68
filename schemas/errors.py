from pydantic import BaseModel, ValidationError


def _label(model: type[BaseModel], name: str) -> str:
    info = model.model_fields.get(name)
    if info is not None and info.title:
        return info.title
    return name.replace("_", " ").capitalize()


def _message(label: str, error: dict) -> str:
    kind = error.get("type", "")
    ctx = error.get("ctx") or {}
    if kind == "missing":
        return f"{label} is required"
    if kind == "string_too_short":
        if ctx.get("min_length", 1) <= 1:
            return f"{label} is required"
        return f"{label} must be at least {ctx['min_length']} characters"
    if kind == "string_too_long":
        return f"{label} must be {ctx.get('max_length')} characters or less"
    if kind == "greater_than":
        return f"{label} must be a positive integer"
    if kind in {"int_type", "int_parsing", "int_from_float"}:
        return f"{label} must be an integer"
    if kind in {"bool_type", "bool_parsing"}:
        return f"{label} must be true or false"
    if kind == "string_type":
        return f"{label} must be text"
    if kind == "value_error" and "error" in ctx:
        return str(ctx["error"])
    return error.get("msg", "Invalid value")


def field_errors(model: type[BaseModel], exc: ValidationError) -> dict[str, list[str]]:
    """Flatten a pydantic error into ``{field: [messages]}``."""
    details: dict[str, list[str]] = {}
    for error in exc.errors():
        loc = error.get("loc") or ()
        name = str(loc[0]) if loc else "__root__"
        message = _message(_label(model, name), error)
        messages = details.setdefault(name, [])
        if message not in messages:
            messages.append(message)
    return details
