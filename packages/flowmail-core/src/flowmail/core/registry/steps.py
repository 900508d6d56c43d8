from __future__ import annotations
from typing import Any, Dict, Optional, Type

_STEP_REGISTRY: Dict[str, Type] = {}
_STEP_INPUTS: Dict[str, Optional[Type]] = {}


def register_step(name: str, *, inputs_model: Optional[Type] = None):
    """Register a step class under `name`.

    `inputs_model` is an optional pydantic model describing the step's inputs.
    It is used by flow validation and exposed as a JSON schema via
    describe_step().
    """
    def deco(cls):
        _STEP_REGISTRY[name] = cls
        _STEP_INPUTS[name] = inputs_model
        return cls
    return deco


def get_step(name: str):
    if name not in _STEP_REGISTRY:
        raise KeyError(f"Unknown step type: {name}. Loaded: {sorted(_STEP_REGISTRY.keys())}")
    return _STEP_REGISTRY[name]


def get_step_inputs_model(name: str):
    get_step(name)
    return _STEP_INPUTS.get(name)


def describe_step(name: str) -> Dict[str, Any]:
    model = get_step_inputs_model(name)
    schema = model.model_json_schema(by_alias=True) if model is not None else None
    return {"type": name, "inputs": schema}


def list_steps() -> list[str]:
    return sorted(_STEP_REGISTRY.keys())
